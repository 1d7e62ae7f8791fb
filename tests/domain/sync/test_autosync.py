"""Tests for auto-sync timers."""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from library_sync.core.config import SyncConfig
from library_sync.domain.sync import AutoSyncScheduler, SyncOptions


@pytest.fixture
def runner():
    runner = Mock()
    runner.enabled = True
    runner.sync_in_progress = False
    runner.manual_sync_required = False
    runner.get_api_key = AsyncMock(return_value="abc123")
    runner.sync = AsyncMock(return_value=True)
    return runner


@pytest.fixture
def scheduler(runner):
    return AutoSyncScheduler(runner, SyncConfig())


@pytest.mark.anyio
async def test_one_shot_fires_background_sync(scheduler, runner):
    assert scheduler.set_sync_timeout(0.01) is True
    await asyncio.sleep(0.05)

    runner.sync.assert_awaited_once()
    options = runner.sync.call_args[0][0]
    assert options.background is True
    assert not scheduler.armed


@pytest.mark.anyio
async def test_recurring_keeps_firing(scheduler, runner):
    scheduler.set_sync_timeout(0.01, recurring=True)
    await asyncio.sleep(0.1)
    scheduler.clear_sync_timeout()

    assert runner.sync.await_count >= 2


@pytest.mark.anyio
async def test_new_timeout_replaces_old(scheduler, runner):
    scheduler.set_sync_timeout(0.05)
    scheduler.set_sync_timeout(0.01)
    await asyncio.sleep(0.1)

    runner.sync.assert_awaited_once()


@pytest.mark.anyio
async def test_clear_cancels(scheduler, runner):
    scheduler.set_sync_timeout(0.01)
    scheduler.clear_sync_timeout()
    await asyncio.sleep(0.05)

    runner.sync.assert_not_awaited()


@pytest.mark.anyio
async def test_disabled_auto_sync_is_noop(runner):
    scheduler = AutoSyncScheduler(runner, SyncConfig(auto_sync=False))

    assert scheduler.set_sync_timeout(0.01) is False
    assert not scheduler.armed


@pytest.mark.anyio
async def test_one_shot_refused_while_syncing(scheduler, runner):
    runner.sync_in_progress = True

    assert scheduler.set_sync_timeout(0.01) is False


@pytest.mark.anyio
async def test_missing_timeout(scheduler):
    with pytest.raises(ValueError):
        scheduler.set_sync_timeout(None)


@pytest.mark.anyio
async def test_recurring_defaults_to_configured_interval(runner):
    scheduler = AutoSyncScheduler(runner, SyncConfig(auto_sync_interval=1800))
    scheduler._run_recurring = AsyncMock()

    assert scheduler.set_sync_timeout(recurring=True) is True
    await asyncio.sleep(0)

    interval, options = scheduler._run_recurring.call_args[0]
    assert interval == 1800
    assert options.background is True
    scheduler.clear_sync_timeout()


@pytest.mark.anyio
@pytest.mark.parametrize(
    "blocker",
    ["disabled", "no_key", "locked", "in_progress", "manual"],
)
async def test_fire_skips_when_blocked(runner, blocker):
    config = SyncConfig()
    scheduler = AutoSyncScheduler(runner, config, is_locked=lambda: blocker == "locked")
    if blocker == "disabled":
        # Switched off after the timer was armed
        config.auto_sync = False
    if blocker == "no_key":
        runner.get_api_key.return_value = None
    elif blocker == "in_progress":
        runner.sync_in_progress = True
    elif blocker == "manual":
        runner.manual_sync_required = True

    assert await scheduler.fire(SyncOptions(background=True)) is False
    runner.sync.assert_not_awaited()


@pytest.mark.anyio
async def test_fire_passes_a_copy_of_options(scheduler, runner):
    options = SyncOptions(background=True, libraries=[1])

    assert await scheduler.fire(options) is True

    passed = runner.sync.call_args[0][0]
    assert passed == options
    assert passed is not options
