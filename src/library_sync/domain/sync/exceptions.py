"""Sync-specific exceptions for error handling."""

from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union


class ErrorType(str, Enum):
    """Severity attached to a queued sync error."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    UPGRADE = "upgrade"
    ANIMATE = "animate"  # "in progress", never a real severity


ButtonCallback = Callable[[], Union[None, Awaitable[None]]]


class SyncError(Exception):
    """Base exception for sync operations.

    Carries the presentation hints the host needs to render the error:
    a severity, whether it ends the session, the library it belongs to,
    and an optional remediation button (label + callback). A
    ``dialog_button_text`` of None means "no button at all"; leaving it
    unset lets the host show its default "report error" button.
    """

    _UNSET: Any = object()

    def __init__(
        self,
        message: str = "",
        *,
        error_type: Optional[ErrorType] = None,
        fatal: bool = False,
        library_id: Optional[int] = None,
        dialog_button_text: Any = _UNSET,
        dialog_button_callback: Optional[ButtonCallback] = None,
        front_window_only: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.fatal = fatal
        self.library_id = library_id
        self.dialog_button_text = dialog_button_text
        self.dialog_button_callback = dialog_button_callback
        self.front_window_only = front_window_only
        self.added = False
        self.parsed = False

    def __str__(self) -> str:
        return self.message

    @property
    def has_button_text(self) -> bool:
        return self.dialog_button_text is not SyncError._UNSET

    @property
    def has_remediation(self) -> bool:
        return self.dialog_button_callback is not None

    @classmethod
    def from_exception(cls, exc: BaseException) -> "SyncError":
        """Wrap a foreign exception, reusing the wrapper on repeat calls."""
        if isinstance(exc, SyncError):
            return exc
        wrapped = getattr(exc, "_sync_error", None)
        if wrapped is None:
            wrapped = cls(
                f"An error occurred during syncing:\n\n{exc}",
                fatal=bool(getattr(exc, "fatal", False)),
            )
            wrapped.__cause__ = exc
            exc._sync_error = wrapped
        return wrapped


class APIKeyNotSetError(SyncError):
    """Raised when no API key is configured."""

    def __init__(self, message: str = "API key not set", **kwargs):
        kwargs.setdefault("fatal", True)
        super().__init__(message, **kwargs)


class APIKeyInvalidError(SyncError):
    """Raised when the server rejects the API key."""

    def __init__(self, message: str = "API key is invalid", **kwargs):
        kwargs.setdefault("fatal", True)
        super().__init__(message, **kwargs)


class AccessDeniedError(SyncError):
    """Raised when the key lacks access a sync needs."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("fatal", True)
        super().__init__(message, **kwargs)


class TooManyAttemptsError(SyncError):
    """Raised when the attempt budget for a session runs out."""

    def __init__(self, message: str = "Too many sync attempts -- stopping", **kwargs):
        kwargs.setdefault("fatal", True)
        super().__init__(message, **kwargs)


class SyncInProgressError(SyncError):
    """Raised (as a notification) when a second sync is requested."""

    def __init__(self, message: str = "A sync operation is already in progress.", **kwargs):
        kwargs.setdefault("dialog_button_text", None)
        kwargs.setdefault("front_window_only", True)
        super().__init__(message, **kwargs)


class ObjectUploadError(SyncError):
    """Raised when the server refuses an uploaded object."""

    def __init__(self, message: str, code: int, data: Optional[dict] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.code = code
        self.data = data or {}

    @property
    def is_long_tag(self) -> bool:
        return self.code == 413 and "tag" in self.data


class UnexpectedStatusError(SyncError):
    """Raised when the API answers with an unexpected HTTP status."""

    def __init__(self, status: int, message: str = "", **kwargs):
        super().__init__(message or f"Unexpected status code {status}", **kwargs)
        self.status = status


class PreconditionFailedError(UnexpectedStatusError):
    """Raised on 412: the local library version is behind the server."""

    def __init__(self, message: str = "", **kwargs):
        super().__init__(412, message or "Library version has changed remotely", **kwargs)


class UserCancelledError(Exception):
    """Raised when the user cancels part or all of a sync."""

    def __init__(self, message: str = "Sync cancelled", advance_to_next_library: bool = False):
        super().__init__(message)
        self.advance_to_next_library = advance_to_next_library


class OfflineError(Exception):
    """Raised when the network is unavailable."""

    pass


class GateStoppedError(Exception):
    """Raised when work is submitted to a stopped ConcurrencyGate."""

    pass
