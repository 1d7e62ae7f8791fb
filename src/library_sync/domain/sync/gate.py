"""
Bounded-concurrency dispatcher shared by a whole sync session.

Every outbound request from every engine goes through one gate, so the
number of concurrent requests stays capped no matter how many libraries
are syncing. The gate never retries; stopping it makes queued and future
work fail with GateStoppedError while letting running work finish.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

from loguru import logger

from .exceptions import GateStoppedError

T = TypeVar("T")


class ConcurrencyGate:
    """Runs coroutines with at most ``limit`` in flight."""

    def __init__(self, limit: int = 4, stop_on_error: bool = False):
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self.limit = limit
        self.stop_on_error = stop_on_error
        self._semaphore = asyncio.Semaphore(limit)
        self._stopped = False
        self._running = 0
        self._waiting = 0
        self._log: Callable[[str], None] = logger.debug

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def running(self) -> int:
        return self._running

    @property
    def waiting(self) -> int:
        return self._waiting

    def set_logger(self, log_func: Optional[Callable[[str], None]]) -> None:
        """Route diagnostics somewhere else (None silences them)."""
        self._log = log_func or (lambda msg: None)

    async def run(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Wait for a free slot, then await ``func(*args, **kwargs)``.

        Raises:
            GateStoppedError: If the gate is stopped before the task starts
        """
        if self._stopped:
            raise GateStoppedError("Request cancelled: sync was stopped")

        self._waiting += 1
        try:
            await self._semaphore.acquire()
        finally:
            self._waiting -= 1

        try:
            # Stopped while queued
            if self._stopped:
                raise GateStoppedError("Request cancelled: sync was stopped")

            self._running += 1
            self._log(
                f"Running task ({self._running}/{self.limit} running, "
                f"{self._waiting} queued)"
            )
            try:
                return await func(*args, **kwargs)
            except Exception:
                if self.stop_on_error:
                    self._log("Task failed -- stopping")
                    self.stop()
                raise
            finally:
                self._running -= 1
        finally:
            self._semaphore.release()

    def stop(self) -> None:
        """Reject everything not yet running."""
        if not self._stopped:
            self._log(
                f"Stopping gate ({self._running} running, {self._waiting} queued)"
            )
        self._stopped = True

    def reset(self) -> None:
        """Reopen the gate for a new session."""
        self._stopped = False
