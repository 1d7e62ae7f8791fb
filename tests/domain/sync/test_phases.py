"""Tests for the per-library phase runners."""

from unittest.mock import Mock

import pytest

from library_sync.core.config import SyncConfig
from library_sync.domain.sync import (
    ConcurrencyGate,
    EngineOptions,
    ErrorAggregator,
    FileSyncResult,
    PhaseContext,
    PreconditionFailedError,
    StorageControllerRegistry,
    SyncError,
    SyncOptions,
    UnexpectedStatusError,
    UserCancelledError,
    run_data_phase,
    run_file_phase,
    run_fulltext_phase,
)

from sync_fakes import FakeController


@pytest.fixture
def ctx(store, decisions, data_engine, storage_engine, fulltext_engine):
    gate = ConcurrencyGate()
    return PhaseContext(
        store=store,
        gate=gate,
        registry=StorageControllerRegistry({"zfs": FakeController, "webdav": FakeController}),
        aggregator=ErrorAggregator(decisions),
        engine_options=EngineOptions(api_client=Mock(), gate=gate),
        options=SyncOptions(),
        config=SyncConfig(),
        data_engine=data_engine,
        storage_engine=storage_engine,
        fulltext_engine=fulltext_engine,
        set_status=Mock(),
    )


class TestDataPhase:
    @pytest.mark.anyio
    async def test_all_succeed(self, ctx, store, data_engine):
        outcome = await run_data_phase([1, 2, 3], ctx)

        assert outcome.libraries == [1, 2, 3]
        assert outcome.errors == []
        assert data_engine.started == [1, 2, 3]
        assert store.last_sync_updates == 1

    @pytest.mark.anyio
    async def test_engine_gets_library_options(self, ctx, data_engine):
        await run_data_phase([7], ctx)

        assert data_engine.options[0].library_id == 7
        assert data_engine.options[0].gate is ctx.gate

    @pytest.mark.anyio
    async def test_failure_recorded_and_others_continue(self, ctx, data_engine):
        error = SyncError("bad item")
        data_engine.script[2] = [error]

        outcome = await run_data_phase([1, 2, 3], ctx)

        assert outcome.libraries == [1, 3]
        assert [(e.library_id, e.error) for e in outcome.errors] == [(2, error)]
        assert not outcome.stopped

    @pytest.mark.anyio
    async def test_fatal_error_stops_pass(self, ctx, data_engine):
        data_engine.script[1] = [SyncError("fatal", fatal=True)]

        outcome = await run_data_phase([1, 2], ctx)

        assert outcome.libraries == []
        assert outcome.stopped
        assert ctx.gate.stopped
        assert data_engine.started == [1]

    @pytest.mark.anyio
    async def test_stop_on_error(self, ctx, data_engine):
        ctx.engine_options.stop_on_error = True
        data_engine.script[1] = [RuntimeError("boom")]

        outcome = await run_data_phase([1, 2], ctx)

        assert outcome.stopped
        assert data_engine.started == [1]

    @pytest.mark.anyio
    async def test_advance_cancel_skips_library(self, ctx, data_engine):
        data_engine.script[1] = [UserCancelledError(advance_to_next_library=True)]

        outcome = await run_data_phase([1, 2], ctx)

        assert outcome.libraries == [2]
        assert outcome.errors == []

    @pytest.mark.anyio
    async def test_cancel_propagates(self, ctx, data_engine):
        data_engine.script[1] = [UserCancelledError()]

        with pytest.raises(UserCancelledError):
            await run_data_phase([1, 2], ctx)

    @pytest.mark.anyio
    async def test_last_sync_time_not_updated_when_all_fail(self, ctx, store, data_engine):
        data_engine.script[1] = [SyncError("bad")]

        await run_data_phase([1], ctx)

        assert store.last_sync_updates == 0

    @pytest.mark.anyio
    async def test_last_sync_time_updated_for_empty_set(self, ctx, store):
        await run_data_phase([], ctx)

        assert store.last_sync_updates == 1


class TestFilePhase:
    @pytest.mark.anyio
    async def test_no_resync_needed(self, ctx, storage_engine):
        outcome = await run_file_phase([1, 2], ctx)

        assert outcome.libraries == []
        assert storage_engine.started == [1, 2]
        ctx.set_status.assert_called_with("Syncing files")

    @pytest.mark.anyio
    async def test_controller_per_storage_mode(self, ctx, store, storage_engine):
        store.storage_modes = {1: "zfs", 2: "webdav", 3: "zfs"}

        await run_file_phase([1, 2, 3], ctx)

        controllers = [opts.controller for opts in storage_engine.options]
        assert controllers[0] is controllers[2]
        assert controllers[1] is not controllers[0]

    @pytest.mark.anyio
    async def test_sync_required_flags_library(self, ctx, storage_engine):
        storage_engine.script[2] = [FileSyncResult(sync_required=True)]

        outcome = await run_file_phase([1, 2], ctx)

        assert outcome.libraries == [2]

    @pytest.mark.anyio
    async def test_file_sync_required_repeats_in_place(self, ctx, storage_engine):
        storage_engine.script[1] = [FileSyncResult(file_sync_required=True), FileSyncResult()]

        outcome = await run_file_phase([1], ctx)

        assert outcome.libraries == []
        assert storage_engine.started == [1, 1]

    @pytest.mark.anyio
    async def test_file_sync_attempts_exhausted(self, ctx, storage_engine):
        storage_engine.default = FileSyncResult(file_sync_required=True)

        outcome = await run_file_phase([1, 2], ctx)

        assert storage_engine.started == [1, 1, 1]
        assert outcome.stopped
        assert "Too many file sync attempts for library 1" in str(outcome.errors[0].error)

    @pytest.mark.anyio
    async def test_invalid_storage_mode_is_library_error(self, ctx, store, storage_engine):
        store.storage_modes = {1: "ftp"}

        outcome = await run_file_phase([1, 2], ctx)

        assert outcome.errors[0].library_id == 1
        assert storage_engine.started == [2]

    @pytest.mark.anyio
    async def test_stopped_gate_skips_libraries(self, ctx, storage_engine):
        ctx.gate.stop()

        outcome = await run_file_phase([1, 2], ctx)

        assert outcome.stopped
        assert storage_engine.started == []


class TestFullTextPhase:
    @pytest.mark.anyio
    async def test_runs_all(self, ctx, fulltext_engine):
        outcome = await run_fulltext_phase([1, 2], ctx)

        assert outcome.libraries == []
        assert fulltext_engine.started == [1, 2]
        ctx.set_status.assert_called_with("Syncing full-text content")

    @pytest.mark.anyio
    async def test_disabled(self, ctx, fulltext_engine):
        ctx.config.fulltext_enabled = False

        outcome = await run_fulltext_phase([1, 2], ctx)

        assert fulltext_engine.started == []
        assert outcome.libraries == []

    @pytest.mark.anyio
    async def test_precondition_failed_flags_resync_silently(self, ctx, fulltext_engine):
        fulltext_engine.script[1] = [PreconditionFailedError()]
        fulltext_engine.script[2] = [UnexpectedStatusError(412)]

        outcome = await run_fulltext_phase([1, 2, 3], ctx)

        assert outcome.libraries == [1, 2]
        assert outcome.errors == []

    @pytest.mark.anyio
    async def test_other_errors_recorded(self, ctx, fulltext_engine):
        fulltext_engine.script[1] = [UnexpectedStatusError(500)]

        outcome = await run_fulltext_phase([1, 2], ctx)

        assert outcome.libraries == []
        assert outcome.errors[0].library_id == 1
        assert fulltext_engine.started == [1, 2]
