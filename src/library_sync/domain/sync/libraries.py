"""
Works out which libraries a sync session covers.

Starts from the requested libraries (or the personal + publications
libraries when none are requested), then reconciles group libraries with
the server: stale or new groups are downloaded, groups that vanished
remotely are removed, kept or cancel the whole session depending on the
user's decision.
"""

from typing import Any, Optional, Sequence

from loguru import logger

from .exceptions import AccessDeniedError, SyncError
from .models import (
    AccessGrant,
    GroupAccess,
    GroupReconciliationResult,
    LibraryType,
    LocalGroup,
)
from .ports import APIClient, Decision, DecisionKind, DecisionPort, LocalStore


def group_permissions(data: dict[str, Any], user_id: int) -> tuple[bool, bool]:
    """Work out ``(editable, files_editable)`` for a user from group JSON.

    Owners and admins can edit the library, and its files unless file
    editing is off. Plain members only get what the group opens up to
    all members.
    """
    admins = data.get("admins") or []
    members = data.get("members") or []
    file_editing = data.get("fileEditing", "none")

    if data.get("owner") == user_id or user_id in admins:
        return True, file_editing != "none"
    if user_id in members and data.get("libraryEditing") == "members":
        return True, file_editing == "members"
    return False, False


class LibrarySetResolver:
    """Resolves the working set of library IDs for a session."""

    def __init__(self, store: LocalStore, decisions: DecisionPort):
        self._store = store
        self._decisions = decisions

    async def resolve(
        self,
        client: APIClient,
        grant: AccessGrant,
        requested: Optional[Sequence[int]] = None,
    ) -> list[int]:
        """Return the libraries to sync, or an empty list to cancel the session.

        Raises:
            AccessDeniedError: If the key cannot reach a requested library,
                or only grants access to some groups
        """
        sync_all = not requested
        libraries = self._initial_libraries(grant, requested)

        result = await self.reconcile_groups(client, grant, libraries, sync_all)
        libraries.extend(result.current_library_ids)

        if result.remotely_missing_groups:
            removed = await self._handle_missing_groups(result, grant)
            if removed is None:
                return []
            libraries = [lib for lib in libraries if lib not in removed]

        libraries.extend(await self._download_groups(client, grant, result.groups_to_download))

        return list(dict.fromkeys(libraries))

    def _initial_libraries(
        self, grant: AccessGrant, requested: Optional[Sequence[int]]
    ) -> list[int]:
        if not requested:
            if not grant.user_library:
                return []
            skipped = self._store.get_skipped_libraries()
            return [
                library_id
                for library_id in (self._store.user_library_id, self._store.publications_library_id)
                if library_id not in skipped
            ]

        for library_id in requested:
            library_type = self._store.get_library_type(library_id)
            if library_type in (LibraryType.USER, LibraryType.PUBLICATIONS) and not grant.user_library:
                raise AccessDeniedError(f"Key does not have access to library {library_id}")
        return list(requested)

    async def reconcile_groups(
        self,
        client: APIClient,
        grant: AccessGrant,
        libraries: Sequence[int],
        sync_all: bool,
    ) -> GroupReconciliationResult:
        """Compare local groups with the server's group versions."""
        result = GroupReconciliationResult()
        skipped = self._store.get_skipped_groups()

        remote_versions: dict[int, int] = {}
        if grant.group_access != GroupAccess.NONE:
            grant.require_all_groups()
            versions = await client.get_group_versions(grant.user_id)
            remote_versions = {int(group_id): int(v) for group_id, v in versions.items()}
            if sync_all:
                remote_versions = {
                    group_id: v for group_id, v in remote_versions.items() if group_id not in skipped
                }

        for group_id, version in remote_versions.items():
            group = self._store.get_group(group_id)
            if sync_all:
                # Missing or outdated groups join the list after downloading
                if group is None or group.version < version:
                    result.groups_to_download.append(group_id)
                else:
                    result.current_library_ids.append(group.library_id)
            else:
                # Only requested groups we already know about
                if group is None or group.library_id not in libraries:
                    continue
                if group.version < version:
                    result.groups_to_download.append(group_id)

        if sync_all:
            local_groups = [g for g in self._store.get_groups() if g.group_id not in skipped]
        else:
            local_groups = [
                g
                for g in (self._store.get_group_by_library(lib) for lib in libraries)
                if g is not None
            ]
        result.remotely_missing_groups = [
            g for g in local_groups if g.group_id not in remote_versions
        ]
        return result

    async def _handle_missing_groups(
        self, result: GroupReconciliationResult, grant: AccessGrant
    ) -> Optional[set[int]]:
        """Ask about each vanished group; None means the user cancelled."""
        # With all-group access a missing group means the user left it
        reason = "left" if grant.group_access == GroupAccess.ALL else "no_access"

        to_remove: list[LocalGroup] = []
        for group in result.remotely_missing_groups:
            decision = await self._decisions.confirm(
                DecisionKind.MISSING_GROUP, {"group": group, "reason": reason}
            )
            if decision == Decision.REMOVE:
                to_remove.append(group)
            elif decision == Decision.CANCEL:
                logger.info("Cancelling sync")
                return None

        for group in to_remove:
            logger.info(f"Removing group {group.group_id} ({group.name})")
            await self._store.erase_group(group)
            result.removed_group_library_ids.append(group.library_id)
        return set(result.removed_group_library_ids)

    async def _download_groups(
        self, client: APIClient, grant: AccessGrant, group_ids: Sequence[int]
    ) -> list[int]:
        """Fetch metadata for new or outdated groups and save it locally."""
        library_ids = []
        for group_id in group_ids:
            info = await client.get_group(group_id)
            if not info:
                raise SyncError(f"Group {group_id} not found")

            group = self._store.get_group(group_id)
            if group is not None:
                editable, files_editable = group_permissions(info["data"], grant.user_id)
                if (editable, files_editable) != (group.editable, group.files_editable):
                    decision = await self._decisions.confirm(
                        DecisionKind.GROUP_ACCESS_CHANGED,
                        {"group": group, "editable": editable, "files_editable": files_editable},
                    )
                    if decision in (Decision.SKIP, Decision.CANCEL):
                        logger.debug(f"Skipping sync of group {group_id}")
                        continue

            group = await self._store.save_group(group_id, info["version"], info["data"])
            library_ids.append(group.library_id)
        return library_ids
