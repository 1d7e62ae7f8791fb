"""
Sync domain models.

Contains data structures for sessions, access grants, groups and the
outcome of each sync phase.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Optional

from .exceptions import AccessDeniedError

if TYPE_CHECKING:
    from .gate import ConcurrencyGate
    from .ports import APIClient, StorageController


class LibraryType(str, Enum):
    USER = "user"
    PUBLICATIONS = "publications"
    GROUP = "group"


class GroupAccess(str, Enum):
    """How much group access an API key grants."""

    NONE = "none"
    ALL = "all"
    ENUMERATED = "enumerated"  # Per-group grants (unsupported)


@dataclass(frozen=True)
class AccessGrant:
    """User identity and access scopes for the current API key."""

    user_id: int
    username: str
    user_library: bool
    group_access: GroupAccess = GroupAccess.NONE

    @classmethod
    def from_key_info(cls, info: dict) -> "AccessGrant":
        """Build a grant from a key-info response.

        Raises:
            ValueError: If userID, username or access is missing
        """
        if not info.get("userID"):
            raise ValueError("userID not found in key response")
        if not info.get("username"):
            raise ValueError("username not found in key response")
        if not info.get("access"):
            raise ValueError("'access' not found in key response")

        access = info["access"]
        user = access.get("user") or {}
        groups = access.get("groups") or {}
        if not groups:
            group_access = GroupAccess.NONE
        elif "all" in groups:
            group_access = GroupAccess.ALL
        else:
            group_access = GroupAccess.ENUMERATED

        return cls(
            user_id=int(info["userID"]),
            username=info["username"],
            user_library=bool(user.get("library")),
            group_access=group_access,
        )

    def require_all_groups(self) -> None:
        """Fail closed on per-group access, which sync does not support."""
        if self.group_access == GroupAccess.ENUMERATED:
            raise AccessDeniedError("Full group access is currently required")


@dataclass
class LocalGroup:
    """A group library as stored locally."""

    group_id: int
    library_id: int
    name: str
    version: int
    editable: bool = True
    files_editable: bool = True


@dataclass
class GroupReconciliationResult:
    """How local groups compare with the server's group list."""

    groups_to_download: list[int] = field(default_factory=list)
    remotely_missing_groups: list[LocalGroup] = field(default_factory=list)
    removed_group_library_ids: list[int] = field(default_factory=list)
    # Libraries of up-to-date remote groups, added without a download
    current_library_ids: list[int] = field(default_factory=list)


@dataclass
class SyncOptions:
    """Options for a single sync() call.

    ``libraries`` empty or None means "sync everything the key can see".
    ``on_error`` receives errors instead of the internal queue.
    """

    background: bool = False
    libraries: Optional[list[int]] = None
    on_error: Optional[Callable[[BaseException], None]] = None
    stop_on_error: Optional[bool] = None  # None: use [sync] stop_on_error
    first_in_session: bool = False
    restart_sync: bool = False


@dataclass
class SyncSession:
    """State of the one sync session allowed to run at a time."""

    options: SyncOptions
    attempt: int = 1
    libraries_to_sync: list[int] = field(default_factory=list)
    successful_libraries: set[int] = field(default_factory=set)


@dataclass(frozen=True)
class PhaseError:
    """A failure of one library inside a phase."""

    library_id: Optional[int]
    error: BaseException


@dataclass
class PhaseOutcome:
    """Result of one phase pass.

    ``libraries`` means different things per phase: data-phase survivors
    for the data phase, libraries needing another data sync for the file
    and full-text phases.
    """

    libraries: list[int] = field(default_factory=list)
    errors: list[PhaseError] = field(default_factory=list)
    stopped: bool = False


@dataclass
class FileSyncResult:
    """What a storage engine reports after a run."""

    sync_required: bool = False  # Data sync must run again first
    file_sync_required: bool = False  # Repeat file sync in place


@dataclass
class EngineOptions:
    """Everything a per-library engine is constructed with."""

    api_client: "APIClient"
    gate: "ConcurrencyGate"
    library_id: Optional[int] = None
    set_status: Callable[[Optional[str]], None] = lambda msg=None: None
    on_error: Callable[[BaseException], None] = lambda e: None
    stop_on_error: bool = False
    background: bool = False
    first_in_session: bool = False
    controller: Optional["StorageController"] = None
    extra: dict[str, Any] = field(default_factory=dict)

    def for_library(self, library_id: int) -> "EngineOptions":
        """Copy with the library filled in."""
        return EngineOptions(
            api_client=self.api_client,
            gate=self.gate,
            library_id=library_id,
            set_status=self.set_status,
            on_error=self.on_error,
            stop_on_error=self.stop_on_error,
            background=self.background,
            first_in_session=self.first_in_session,
            controller=self.controller,
            extra=dict(self.extra),
        )
