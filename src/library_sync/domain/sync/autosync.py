"""Timer-driven background syncs."""

import asyncio
from dataclasses import replace
from typing import Callable, Optional

from loguru import logger

from library_sync.core.config import SyncConfig

from .models import SyncOptions
from .runner import SyncRunner


class AutoSyncScheduler:
    """Arms one-shot or recurring auto-sync timers for a SyncRunner.

    Args:
        runner: Runner to start syncs on
        config: [sync] settings (auto_sync switches the timers on)
        is_locked: Tells whether the host is in a state where syncing must wait
    """

    def __init__(
        self,
        runner: SyncRunner,
        config: Optional[SyncConfig] = None,
        is_locked: Callable[[], bool] = lambda: False,
    ):
        self._runner = runner
        self._config = config or runner.config.sync
        self._is_locked = is_locked
        self._task: Optional[asyncio.Task] = None

    @property
    def armed(self) -> bool:
        return self._task is not None and not self._task.done()

    def set_sync_timeout(
        self,
        timeout: Optional[float] = None,
        recurring: bool = False,
        options: Optional[SyncOptions] = None,
    ) -> bool:
        """Arm the auto-sync timer, replacing any armed one.

        Args:
            timeout: Seconds until the sync (between syncs if recurring).
                Recurring timers default to ``auto_sync_interval``.
            recurring: Keep firing every ``timeout`` seconds
            options: Options for each sync (background sync by default)

        Returns:
            True if a timer was armed

        Raises:
            ValueError: If a one-shot timer is given no timeout
        """
        if not self._config.auto_sync or not self._runner.enabled:
            return False
        if not timeout and recurring:
            timeout = self._config.auto_sync_interval
        if not timeout:
            raise ValueError("Timeout not provided")

        if not recurring and self._runner.sync_in_progress:
            logger.debug("Sync already in progress -- not setting auto-sync timeout")
            return False

        self.clear_sync_timeout()
        options = options if options is not None else SyncOptions(background=True)

        if recurring:
            logger.debug(f"Setting auto-sync interval to {timeout} seconds")
            coro = self._run_recurring(timeout, options)
        else:
            logger.debug(f"Setting auto-sync timeout to {timeout} seconds")
            coro = self._run_once(timeout, options)
        self._task = asyncio.get_running_loop().create_task(coro)
        return True

    def clear_sync_timeout(self) -> None:
        if self._task is not None and not self._task.done():
            logger.debug("Clearing auto-sync timeout")
            self._task.cancel()
        self._task = None

    async def _run_once(self, timeout: float, options: SyncOptions) -> None:
        await asyncio.sleep(timeout)
        await self.fire(options)

    async def _run_recurring(self, timeout: float, options: SyncOptions) -> None:
        while True:
            await asyncio.sleep(timeout)
            await self.fire(options)

    async def fire(self, options: SyncOptions) -> bool:
        """Start an auto-sync unless something blocks it.

        Returns:
            True if a sync was started
        """
        if not self._config.auto_sync:
            logger.debug("Auto-sync is disabled -- skipping auto-sync")
            return False
        if not await self._runner.get_api_key():
            logger.debug("API key not set -- skipping auto-sync")
            return False
        if self._is_locked():
            logger.debug("Locked -- skipping auto-sync")
            return False
        if self._runner.sync_in_progress:
            logger.debug("Sync already in progress -- skipping auto-sync")
            return False
        if self._runner.manual_sync_required:
            logger.debug("Manual sync required -- skipping auto-sync")
            return False

        logger.info("Starting auto-sync")
        # Fresh copy so one run's resolved libraries and flags don't leak
        await self._runner.sync(replace(options))
        return True
