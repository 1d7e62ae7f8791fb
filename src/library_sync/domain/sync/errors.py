"""
Error queue for a sync session.

Errors are deduplicated (each object is queued at most once), tagged with
the library they came from, and summarised by their worst severity. The
one extension point for error-specific remediation is classify().
"""

import asyncio
from typing import Callable, Iterable, Optional, Union

from loguru import logger

from .exceptions import (
    APIKeyInvalidError,
    APIKeyNotSetError,
    ErrorType,
    ObjectUploadError,
    SyncError,
)
from .models import SyncOptions
from .ports import Decision, DecisionKind, DecisionPort

# Highest wins; negative values never count
SEVERITY_PRECEDENCE = {
    ErrorType.INFO: 1,
    ErrorType.WARNING: 2,
    ErrorType.ERROR: 3,
    ErrorType.UPGRADE: 4,
    ErrorType.ANIMATE: -1,
}


def primary_severity(errors: Iterable[BaseException]) -> Union[ErrorType, bool]:
    """Return the most severe error type in ``errors``, or False if none.

    Any fatal error makes the result ERROR regardless of declared types.
    """
    state: Union[ErrorType, bool] = False
    for e in errors:
        if getattr(e, "fatal", False):
            return ErrorType.ERROR

        error_type = getattr(e, "error_type", None)
        if not error_type or SEVERITY_PRECEDENCE.get(error_type, -1) < 0:
            continue
        error_type = ErrorType(error_type)
        if not state or SEVERITY_PRECEDENCE[error_type] > SEVERITY_PRECEDENCE[state]:
            state = error_type
    return state


class ErrorAggregator:
    """Collects, classifies and summarises the errors of a session.

    Args:
        decisions: Port used by remediation callbacks
        is_editable: Tells whether a library may be modified locally
    """

    def __init__(
        self,
        decisions: Optional[DecisionPort] = None,
        is_editable: Callable[[int], bool] = lambda library_id: True,
    ):
        self.errors: list[SyncError] = []
        self._decisions = decisions
        self._is_editable = is_editable
        self._pending_prompts: set[asyncio.Task] = set()

    def parse_error(self, e: BaseException) -> SyncError:
        """Return ``e`` as a SyncError with a severity set."""
        error = SyncError.from_exception(e)
        if error.parsed:
            return error
        error.parsed = True
        error.error_type = error.error_type or ErrorType.ERROR
        return error

    def add(self, e: BaseException, library_id: Optional[int] = None) -> None:
        """Queue an error once, tagged with its library."""
        if getattr(e, "added", False):
            return
        error = self.parse_error(e)
        if error.added:
            return
        error.added = True
        if library_id is not None:
            error.library_id = library_id

        where = f" in library {error.library_id}" if error.library_id is not None else ""
        logger.opt(exception=error.__cause__ or error).error(f"Sync error{where}: {error}")
        self.errors.append(error)

    def by_library(self, library_id: int) -> list[SyncError]:
        return [e for e in self.errors if e.library_id == library_id]

    def primary_severity(self) -> Union[ErrorType, bool]:
        return primary_severity(self.errors)

    def clear(self) -> None:
        self.errors = []

    async def classify(self, e: BaseException, options: SyncOptions) -> bool:
        """Attach a remediation to errors that have one.

        Returns:
            True if ``e`` carries a remediation afterwards
        """
        if isinstance(e, SyncError) and e.has_remediation:
            return True

        if isinstance(e, (APIKeyNotSetError, APIKeyInvalidError)):
            self._attach_credentials_fix(e, options)
            return True

        if isinstance(e, ObjectUploadError) and e.is_long_tag:
            await self._attach_long_tag_fix(e, options)
            return True

        return False

    async def check_errors(self, errors: Iterable[BaseException], options: SyncOptions) -> None:
        """Classify queued errors, stopping at the first one with a remediation."""
        for e in list(errors):
            if await self.classify(e, options):
                break

    async def wait_for_prompts(self) -> None:
        """Wait for any prompts scheduled by classify()."""
        if self._pending_prompts:
            await asyncio.gather(*self._pending_prompts, return_exceptions=True)

    def _attach_credentials_fix(self, e: SyncError, options: SyncOptions) -> None:
        if isinstance(e, APIKeyNotSetError):
            e.message = "No API key is set. Enter your account details in the sync preferences."
        else:
            e.message = "The API key was rejected. Check your account details in the sync preferences."
        e.dialog_button_text = "Open Sync Preferences"

        async def open_preferences() -> None:
            if self._decisions is not None:
                await self._decisions.confirm(DecisionKind.CREDENTIALS, {"error": e})

        e.dialog_button_callback = open_preferences

        # Manual sync: prompt right away without holding up teardown
        if not options.background and self._decisions is not None:
            task = asyncio.get_running_loop().create_task(open_preferences())
            self._pending_prompts.add(task)
            task.add_done_callback(self._pending_prompts.discard)

    async def _attach_long_tag_fix(self, e: ObjectUploadError, options: SyncOptions) -> None:
        e.dialog_button_text = "Fix"

        async def fix_long_tags() -> None:
            if self._decisions is None:
                return
            editable = [
                library_id
                for library_id in options.libraries or []
                if self._is_editable(library_id)
            ]
            decision = await self._decisions.confirm(
                DecisionKind.LONG_TAG_FIX,
                {"tag": e.data["tag"], "libraries": editable},
            )
            if decision == Decision.PROCEED:
                logger.info("Long tags fixed -- restarting sync")
                options.restart_sync = True

        e.dialog_button_callback = fix_long_tags

        if not options.background:
            await fix_long_tags()
