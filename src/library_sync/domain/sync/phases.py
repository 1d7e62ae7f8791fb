"""
Per-library phase runners: data, files, full-text.

Each runner walks its libraries one at a time (request concurrency is
bounded by the shared gate, not here), starts a fresh engine per library,
and returns a PhaseOutcome instead of routing errors itself. A fatal
error, or any error with stop-on-error set, stops the gate and ends the
pass.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

from loguru import logger

from library_sync.core.config import SyncConfig

from .errors import ErrorAggregator
from .exceptions import OfflineError, SyncError, UnexpectedStatusError, UserCancelledError
from .gate import ConcurrencyGate
from .models import EngineOptions, FileSyncResult, PhaseError, PhaseOutcome, SyncOptions
from .ports import EngineFactory, LocalStore
from .storage import StorageControllerRegistry


@dataclass
class PhaseContext:
    """What every phase runner needs for one session."""

    store: LocalStore
    gate: ConcurrencyGate
    registry: StorageControllerRegistry
    aggregator: ErrorAggregator
    engine_options: EngineOptions
    options: SyncOptions
    config: SyncConfig
    data_engine: EngineFactory
    storage_engine: EngineFactory
    fulltext_engine: EngineFactory
    set_status: Callable[[Optional[str]], None] = lambda msg=None: None
    active_engines: set = field(default_factory=set)

    @property
    def stop_on_error(self) -> bool:
        return self.engine_options.stop_on_error


async def _start(ctx: PhaseContext, engine: Any) -> Any:
    ctx.active_engines.add(engine)
    try:
        return await engine.start()
    finally:
        ctx.active_engines.discard(engine)


async def _record_failure(
    ctx: PhaseContext, outcome: PhaseOutcome, library_id: int, e: Exception, phase: str
) -> bool:
    """Classify and keep a failure. Returns True if the pass must stop."""
    logger.warning(f"{phase} sync failed for library {library_id}: {e}")
    await ctx.aggregator.classify(e, ctx.options)
    outcome.errors.append(PhaseError(library_id, e))

    if ctx.stop_on_error or getattr(e, "fatal", False):
        logger.error("Stopping on error")
        ctx.gate.stop()
        outcome.stopped = True
        return True
    return False


def _gate_closed(ctx: PhaseContext, outcome: PhaseOutcome) -> bool:
    if ctx.gate.stopped:
        logger.debug("Sync stopped -- skipping remaining libraries")
        outcome.stopped = True
        return True
    return False


async def run_data_phase(libraries: Sequence[int], ctx: PhaseContext) -> PhaseOutcome:
    """Sync item data. ``outcome.libraries`` holds the libraries that succeeded."""
    outcome = PhaseOutcome()
    for library_id in libraries:
        if _gate_closed(ctx, outcome):
            break
        try:
            engine = ctx.data_engine(ctx.engine_options.for_library(library_id))
            await _start(ctx, engine)
            outcome.libraries.append(library_id)
        except UserCancelledError as e:
            if e.advance_to_next_library:
                logger.debug(
                    f"Sync cancelled for library {library_id} -- advancing to next library"
                )
                continue
            raise
        except OfflineError:
            # Every remaining library would fail the same way
            raise
        except Exception as e:
            if await _record_failure(ctx, outcome, library_id, e, "Data"):
                break

    # Update last-sync time if any libraries synced
    if not libraries or outcome.libraries:
        await ctx.store.update_last_sync_time()
    return outcome


async def run_file_phase(libraries: Sequence[int], ctx: PhaseContext) -> PhaseOutcome:
    """Sync attachment files. ``outcome.libraries`` need another data sync."""
    logger.debug("Starting file syncing")
    ctx.set_status("Syncing files")
    outcome = PhaseOutcome()
    for library_id in libraries:
        if _gate_closed(ctx, outcome):
            break
        try:
            opts = ctx.engine_options.for_library(library_id)
            mode = ctx.store.get_storage_mode(library_id)
            opts.controller = ctx.registry.get(mode, opts)

            tries = ctx.config.max_file_attempts
            while True:
                if tries == 0:
                    raise SyncError(
                        f"Too many file sync attempts for library {library_id}", fatal=True
                    )
                tries -= 1
                result: FileSyncResult = await _start(ctx, ctx.storage_engine(opts))
                if result.sync_required:
                    outcome.libraries.append(library_id)
                elif result.file_sync_required:
                    logger.debug("Another file sync required -- restarting")
                    continue
                break
        except UserCancelledError as e:
            if e.advance_to_next_library:
                continue
            raise
        except OfflineError:
            raise
        except Exception as e:
            if await _record_failure(ctx, outcome, library_id, e, "File"):
                break

    logger.debug("Done with file syncing")
    if outcome.libraries:
        logger.debug(f"Libraries to resync: {', '.join(map(str, outcome.libraries))}")
    return outcome


async def run_fulltext_phase(libraries: Sequence[int], ctx: PhaseContext) -> PhaseOutcome:
    """Sync full-text content. ``outcome.libraries`` need another data sync."""
    outcome = PhaseOutcome()
    if not ctx.config.fulltext_enabled:
        return outcome

    logger.debug("Starting full-text syncing")
    ctx.set_status("Syncing full-text content")
    for library_id in libraries:
        if _gate_closed(ctx, outcome):
            break
        try:
            engine = ctx.fulltext_engine(ctx.engine_options.for_library(library_id))
            await _start(ctx, engine)
        except UserCancelledError as e:
            if e.advance_to_next_library:
                continue
            raise
        except OfflineError:
            raise
        except Exception as e:
            # 412: library changed remotely, data sync must run first
            if isinstance(e, UnexpectedStatusError) and e.status == 412:
                outcome.libraries.append(library_id)
                continue
            if await _record_failure(ctx, outcome, library_id, e, "Full-text"):
                break

    logger.debug("Done with full-text syncing")
    if outcome.libraries:
        logger.debug(f"Libraries to resync: {', '.join(map(str, outcome.libraries))}")
    return outcome
