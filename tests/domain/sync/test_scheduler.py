"""Tests for the attempt loop across phases."""

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
    RetryScheduler,
    StorageControllerRegistry,
    SyncError,
    SyncOptions,
    SyncSession,
    TooManyAttemptsError,
)

from sync_fakes import FakeController


@pytest.fixture
def ctx(store, decisions, data_engine, storage_engine, fulltext_engine):
    gate = ConcurrencyGate()
    return PhaseContext(
        store=store,
        gate=gate,
        registry=StorageControllerRegistry({"zfs": FakeController}),
        aggregator=ErrorAggregator(decisions),
        engine_options=EngineOptions(api_client=Mock(), gate=gate),
        options=SyncOptions(),
        config=SyncConfig(),
        data_engine=data_engine,
        storage_engine=storage_engine,
        fulltext_engine=fulltext_engine,
    )


@pytest.fixture
def reports():
    return []


@pytest.fixture
def scheduler(ctx, reports):
    return RetryScheduler(ctx, report=reports.append)


def make_session(libraries):
    return SyncSession(options=SyncOptions(), libraries_to_sync=list(libraries))


@pytest.mark.anyio
async def test_single_attempt(scheduler, data_engine, storage_engine, fulltext_engine, reports):
    session = make_session([1, 2])

    assert await scheduler.run(session) is True

    assert session.attempt == 1
    assert data_engine.started == [1, 2]
    assert storage_engine.started == [1, 2]
    assert fulltext_engine.started == [1, 2]
    assert len(reports) == 3


@pytest.mark.anyio
async def test_file_resync_reruns_data_for_that_library_only(
    scheduler, data_engine, storage_engine, fulltext_engine
):
    storage_engine.script[2] = [FileSyncResult(sync_required=True)]
    session = make_session([1, 2])

    await scheduler.run(session)

    assert session.attempt == 2
    assert data_engine.started == [1, 2, 2]
    assert storage_engine.started == [1, 2, 2]
    # Full-text runs once, after the resync, over every successful library
    assert fulltext_engine.started == [1, 2]


@pytest.mark.anyio
async def test_fulltext_precondition_failure_resyncs(scheduler, data_engine, fulltext_engine):
    fulltext_engine.script[1] = [PreconditionFailedError()]
    session = make_session([1, 2])

    await scheduler.run(session)

    assert session.attempt == 2
    assert data_engine.started == [1, 2, 1]
    assert fulltext_engine.started == [1, 2, 1, 2]


@pytest.mark.anyio
async def test_persistent_resync_exhausts_attempts(
    scheduler, data_engine, storage_engine, fulltext_engine
):
    storage_engine.default = FileSyncResult(sync_required=True)
    session = make_session([1])

    with pytest.raises(TooManyAttemptsError) as exc_info:
        await scheduler.run(session)

    assert exc_info.value.fatal
    assert session.attempt == 4
    assert data_engine.started == [1, 1, 1]
    assert fulltext_engine.started == []


@pytest.mark.anyio
async def test_failed_data_sync_excluded_from_later_phases(
    scheduler, data_engine, storage_engine, fulltext_engine, reports
):
    data_engine.script[1] = [SyncError("bad item")]
    session = make_session([1, 2])

    await scheduler.run(session)

    assert session.successful_libraries == {2}
    assert storage_engine.started == [2]
    assert fulltext_engine.started == [2]
    assert reports[0].errors[0].library_id == 1


@pytest.mark.anyio
async def test_fatal_data_error_halts_session(scheduler, data_engine, storage_engine, fulltext_engine):
    data_engine.script[1] = [SyncError("fatal", fatal=True)]
    session = make_session([1, 2])

    assert await scheduler.run(session) is False

    assert data_engine.started == [1]
    assert storage_engine.started == []
    assert fulltext_engine.started == []


@pytest.mark.anyio
async def test_empty_set_runs_nothing(scheduler, data_engine, reports):
    assert await scheduler.run(make_session([])) is True

    assert data_engine.started == []
    assert reports == []
