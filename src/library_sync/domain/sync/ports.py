"""
Interfaces to everything the sync runner does not implement itself.

The runner only orchestrates. Item merging, file transfer, local storage
and all user interaction live behind these protocols, so hosts (and
tests) plug in their own implementations.
"""

from enum import Enum
from typing import Any, Optional, Protocol, Sequence, Union

from .models import EngineOptions, FileSyncResult, LibraryType, LocalGroup


class DecisionKind(str, Enum):
    """Questions the runner may ask the user."""

    EMPTY_LIBRARY = "empty_library"
    USER_MISMATCH = "user_mismatch"
    MISSING_GROUP = "missing_group"
    GROUP_ACCESS_CHANGED = "group_access_changed"
    LONG_TAG_FIX = "long_tag_fix"
    CREDENTIALS = "credentials"


class Decision(str, Enum):
    PROCEED = "proceed"
    CANCEL = "cancel"
    REMOVE = "remove"
    KEEP = "keep"
    SKIP = "skip"


class DecisionPort(Protocol):
    """Asks a human (or a test double) to decide something."""

    async def confirm(self, kind: DecisionKind, context: dict[str, Any]) -> Decision:
        """Return the decision for ``kind``.

        Context keys per kind:
            EMPTY_LIBRARY: username
            USER_MISMATCH: user_id, username, previous_user_id
            MISSING_GROUP: group, reason ("left" or "no_access")
            GROUP_ACCESS_CHANGED: group, editable, files_editable
            LONG_TAG_FIX: tag, libraries
            CREDENTIALS: error
        """
        ...


class Notifier(Protocol):
    """Receives status and error state for display."""

    def set_status(self, message: Optional[str]) -> None:
        ...

    def update_icons(
        self,
        state: Union[str, bool],
        errors: Sequence[BaseException],
        front_window_only: bool = False,
    ) -> None:
        """``state`` is "animate", a severity name, or False for no errors."""
        ...

    def sync_finished(self, libraries: Sequence[int]) -> None:
        ...


class APIClient(Protocol):
    async def get_key_info(self) -> Optional[dict[str, Any]]:
        ...

    async def get_group_versions(self, user_id: int) -> dict[int, int]:
        ...

    async def get_group(self, group_id: int) -> Optional[dict[str, Any]]:
        """Return ``{"version": int, "data": dict}`` or None if not found."""
        ...

    async def create_api_key_from_credentials(
        self, username: str, password: str
    ) -> Optional[dict[str, Any]]:
        ...

    async def delete_api_key(self) -> None:
        ...


class DataEngine(Protocol):
    async def start(self) -> None:
        ...


class StorageEngine(Protocol):
    async def start(self) -> FileSyncResult:
        ...


class FullTextEngine(Protocol):
    async def start(self) -> None:
        ...


class StorageController(Protocol):
    """Long-lived file storage backend for one storage mode."""

    verified: bool

    async def download_file(self, library_id: int, item_key: str) -> bool:
        ...


class LocalStore(Protocol):
    """Local persistent state the runner reads and updates."""

    user_library_id: int
    publications_library_id: int

    async def get_api_key(self) -> Optional[str]:
        ...

    async def set_api_key(self, api_key: Optional[str]) -> None:
        ...

    def has_credentials(self) -> bool:
        ...

    async def purge_deleted(self) -> None:
        """Drop locally deleted records before syncing."""
        ...

    def get_current_user_id(self) -> Optional[int]:
        ...

    async def set_current_user(self, user_id: int, username: str) -> None:
        ...

    async def is_library_empty(self) -> bool:
        ...

    def get_library_type(self, library_id: int) -> LibraryType:
        ...

    def is_library_editable(self, library_id: int) -> bool:
        ...

    def get_skipped_libraries(self) -> set[int]:
        ...

    def get_skipped_groups(self) -> set[int]:
        ...

    def get_group(self, group_id: int) -> Optional[LocalGroup]:
        ...

    def get_group_by_library(self, library_id: int) -> Optional[LocalGroup]:
        ...

    def get_groups(self) -> list[LocalGroup]:
        ...

    async def erase_group(self, group: LocalGroup) -> None:
        """Delete a group and its library in one transaction."""
        ...

    async def save_group(self, group_id: int, version: int, data: dict[str, Any]) -> LocalGroup:
        """Create or update a group from server JSON in one transaction."""
        ...

    def get_storage_mode(self, library_id: int) -> str:
        ...

    async def update_last_sync_time(self) -> None:
        ...


class EngineFactory(Protocol):
    def __call__(self, options: EngineOptions) -> Any:
        ...
