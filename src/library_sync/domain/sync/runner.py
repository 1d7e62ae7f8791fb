"""
Sync session controller.

SyncRunner owns the one session allowed at a time: it checks the API key
and user, resolves the libraries to sync, drives the data/file/full-text
phases through the RetryScheduler, and turns whatever went wrong into
error state for the host. Engines, storage and user prompts are supplied
by the host through the protocols in ``ports``.
"""

from typing import Any, Callable, Mapping, Optional, Sequence, Union

from loguru import logger

from library_sync.core.config import Config

from .errors import ErrorAggregator, primary_severity
from .exceptions import (
    APIKeyNotSetError,
    ErrorType,
    OfflineError,
    SyncError,
    SyncInProgressError,
    UserCancelledError,
)
from .gate import ConcurrencyGate
from .libraries import LibrarySetResolver
from .models import AccessGrant, EngineOptions, PhaseOutcome, SyncOptions, SyncSession
from .phases import PhaseContext
from .ports import (
    APIClient,
    Decision,
    DecisionKind,
    DecisionPort,
    EngineFactory,
    LocalStore,
    Notifier,
)
from .scheduler import RetryScheduler
from .storage import ControllerClass, StorageControllerRegistry

ErrorInput = Union[str, ErrorType, BaseException, Sequence[BaseException]]


class SyncRunner:
    """Runs sync sessions against the remote API.

    Args:
        store: Local persistent state
        notifier: Receives status text and error state
        decisions: Answers the questions a sync may need to ask
        data_engine: Builds the per-library data engine
        storage_engine: Builds the per-library file engine
        fulltext_engine: Builds the per-library full-text engine
        controller_classes: Storage mode -> controller class
        config: Loaded configuration (defaults if omitted)
        api_client_factory: Builds an API client for a key (None for no key)
        api_key: Key to use instead of the one in ``store``
        is_offline: Tells whether the network is known to be down
    """

    def __init__(
        self,
        store: LocalStore,
        notifier: Notifier,
        decisions: DecisionPort,
        *,
        data_engine: EngineFactory,
        storage_engine: EngineFactory,
        fulltext_engine: EngineFactory,
        controller_classes: Mapping[str, ControllerClass],
        config: Optional[Config] = None,
        api_client_factory: Optional[Callable[[Optional[str]], APIClient]] = None,
        api_key: Optional[str] = None,
        is_offline: Callable[[], bool] = lambda: False,
    ):
        self.config = config or Config()
        self._store = store
        self._notifier = notifier
        self._decisions = decisions
        self._data_engine = data_engine
        self._storage_engine = storage_engine
        self._fulltext_engine = fulltext_engine
        self._api_client_factory = api_client_factory or self._default_api_client
        self._api_key = api_key or self.config.api.api_key
        self._is_offline = is_offline

        self.gate = ConcurrencyGate(
            self.config.sync.concurrency, stop_on_error=self.config.sync.stop_on_error
        )
        self.storage_controllers = StorageControllerRegistry(controller_classes)
        self.errors = ErrorAggregator(decisions, store.is_library_editable)
        self.resolver = LibrarySetResolver(store, decisions)

        self.session: Optional[SyncSession] = None
        self.manual_sync_required = False
        self._first_in_session = True
        self._last_sync_status: Optional[str] = None
        self._active_engines: set = set()

    @property
    def enabled(self) -> bool:
        """True if there is a key to sync with."""
        return bool(self._api_key) or self._store.has_credentials()

    @property
    def sync_in_progress(self) -> bool:
        return self.session is not None

    @property
    def last_sync_status(self) -> Optional[str]:
        return self._last_sync_status

    def _default_api_client(self, api_key: Optional[str]) -> APIClient:
        from library_sync.api.client import APIClient as HTTPAPIClient

        return HTTPAPIClient(
            base_url=self.config.api.base_url,
            api_version=self.config.api.api_version,
            api_key=api_key,
            gate=self.gate,
            timeout=self.config.api.timeout,
        )

    def get_api_client(self, api_key: Optional[str] = None) -> APIClient:
        return self._api_client_factory(api_key)

    async def get_api_key(self) -> Optional[str]:
        return self._api_key or await self._store.get_api_key()

    async def sync(self, options: Optional[SyncOptions] = None) -> bool:
        """Run one sync session.

        Returns:
            True if the session ran to completion. False if it was refused
            (another sync running), cancelled by an identity check, or ended
            by an error. Errors end up in the error queue or ``options.on_error``.
        """
        options = options or SyncOptions()

        if self.session is not None:
            logger.debug("Sync already in progress")
            self.update_icons(SyncInProgressError())
            return False

        self.errors.clear()
        self.session = SyncSession(options=options)
        self.gate.reset()
        logger.info("Starting sync")

        completed = False
        try:
            completed = await self._run_session(options)
        except UserCancelledError:
            logger.debug("Sync was cancelled")
        except Exception as e:
            if isinstance(e, OfflineError):
                logger.warning(f"Network is offline: {e}")
                # Earlier errors of this attempt are noise once offline
                self.errors.clear()
                e = SyncError(
                    "The network is offline. Check your connection and try again.",
                    error_type=ErrorType.WARNING,
                    dialog_button_text=None,
                )
            self._route_error(e, options)
        finally:
            libraries = list(self.session.libraries_to_sync)
            await self.end(options)

        if options.restart_sync:
            options.restart_sync = False
            logger.info("Restarting sync")
            return await self.sync(options)

        logger.info("Done syncing")
        self._notifier.sync_finished(libraries)
        return completed

    async def _run_session(self, options: SyncOptions) -> bool:
        await self._store.purge_deleted()

        api_key = await self.get_api_key()
        if not api_key:
            raise APIKeyNotSetError()

        if self._first_in_session:
            options.first_in_session = True
            self._first_in_session = False

        self.update_icons(ErrorType.ANIMATE)

        client = self.get_api_client(api_key)
        grant = await self.check_access(client)

        if not await self.check_empty_library(grant):
            logger.debug("Syncing cancelled because user library is empty")
            return False
        if not await self.check_user(grant):
            logger.debug("User cancelled sync on username mismatch")
            return False

        stop_on_error = options.stop_on_error
        if stop_on_error is None:
            stop_on_error = self.config.sync.stop_on_error
        self.gate.stop_on_error = stop_on_error

        libraries = await self.resolver.resolve(client, grant, options.libraries)
        options.libraries = libraries
        self.session.libraries_to_sync = list(libraries)
        logger.debug(f"Libraries to sync: {libraries}")

        engine_options = EngineOptions(
            api_client=client,
            gate=self.gate,
            set_status=self.set_sync_status,
            on_error=lambda e: self._route_error(e, options),
            stop_on_error=stop_on_error,
            background=options.background,
            first_in_session=options.first_in_session,
        )
        ctx = PhaseContext(
            store=self._store,
            gate=self.gate,
            registry=self.storage_controllers,
            aggregator=self.errors,
            engine_options=engine_options,
            options=options,
            config=self.config.sync,
            data_engine=self._data_engine,
            storage_engine=self._storage_engine,
            fulltext_engine=self._fulltext_engine,
            set_status=self.set_sync_status,
            active_engines=self._active_engines,
        )
        scheduler = RetryScheduler(ctx, report=lambda outcome: self._report(outcome, options))
        if not await scheduler.run(self.session):
            logger.info("Sync stopped before all libraries were synced")
            return False
        return True

    async def end(self, options: SyncOptions) -> None:
        """Tear down the current session and publish its error state."""
        try:
            await self.errors.check_errors(self.errors.errors, options)
            if not options.restart_sync:
                self.update_icons(self.errors.errors)
        finally:
            self.errors.clear()
            self.session = None

    def stop(self) -> None:
        """Stop the running session: reject queued requests and stop engines."""
        logger.info("Stopping sync")
        self.gate.stop()
        for engine in list(self._active_engines):
            stop = getattr(engine, "stop", None)
            if stop is not None:
                stop()

    def _route_error(
        self, e: BaseException, options: SyncOptions, library_id: Optional[int] = None
    ) -> None:
        if options.on_error is not None:
            options.on_error(e)
        else:
            self.errors.add(e, library_id)

    def _report(self, outcome: PhaseOutcome, options: SyncOptions) -> None:
        for failure in outcome.errors:
            self._route_error(failure.error, options, failure.library_id)

    def set_sync_status(self, message: Optional[str] = None) -> None:
        self._last_sync_status = message
        self._notifier.set_status(message)

    def update_icons(self, errors: ErrorInput) -> None:
        """Publish "animate", a severity, or the state for a set of errors."""
        if isinstance(errors, str):
            state: Union[str, ErrorType, bool] = errors
            parsed: list[SyncError] = []
        else:
            if isinstance(errors, BaseException):
                errors = [errors]
            parsed = [self.errors.parse_error(e) for e in errors]
            state = primary_severity(parsed)

        front_window_only = len(parsed) == 1 and parsed[0].front_window_only
        self._notifier.update_icons(state, parsed, front_window_only=front_window_only)
        self.set_sync_status()

    async def check_access(self, client: APIClient) -> AccessGrant:
        """Fetch key info and turn it into an access grant.

        Raises:
            APIKeyNotSetError: If the server doesn't know the key
        """
        info = await client.get_key_info()
        if not info:
            raise APIKeyNotSetError()
        grant = AccessGrant.from_key_info(info)
        logger.debug(f"Key belongs to user {grant.user_id} ({grant.username})")
        return grant

    async def check_empty_library(self, grant: AccessGrant) -> bool:
        """Confirm a first sync into an empty local library."""
        if self._store.get_current_user_id() is not None:
            return True
        if not await self._store.is_library_empty():
            return True
        decision = await self._decisions.confirm(
            DecisionKind.EMPTY_LIBRARY, {"username": grant.username}
        )
        return decision == Decision.PROCEED

    async def check_user(self, grant: AccessGrant) -> bool:
        """Confirm syncing as a different user, then record the current user."""
        previous = self._store.get_current_user_id()
        if previous is not None and previous != grant.user_id:
            decision = await self._decisions.confirm(
                DecisionKind.USER_MISMATCH,
                {
                    "user_id": grant.user_id,
                    "username": grant.username,
                    "previous_user_id": previous,
                },
            )
            if decision != Decision.PROCEED:
                return False

        if previous != grant.user_id:
            await self._store.set_current_user(grant.user_id, grant.username)
        return True

    async def create_api_key_from_credentials(
        self, username: str, password: str
    ) -> Optional[dict[str, Any]]:
        """Create and store a key. Returns None if the credentials were rejected."""
        client = self.get_api_client()
        info = await client.create_api_key_from_credentials(username, password)
        if not info:
            return None

        # Validate before saving
        AccessGrant.from_key_info(info)
        await self._store.set_api_key(info["key"])
        # Controllers hold the old key
        self.storage_controllers.invalidate()
        return info

    async def delete_api_key(self) -> None:
        api_key = await self.get_api_key()
        client = self.get_api_client(api_key)
        await self._store.set_api_key(None)
        self._api_key = None
        self.storage_controllers.invalidate()
        await client.delete_api_key()

    async def download_file(self, library_id: int, item_key: str) -> bool:
        """Download one attachment outside a sync session.

        Returns:
            False if offline, without a key, or file sync isn't set up
        """
        if self._is_offline():
            logger.debug("Network is offline -- skipping download")
            return False

        api_key = await self.get_api_key()
        if not api_key:
            logger.debug("API key not set -- skipping download")
            return False

        mode = self._store.get_storage_mode(library_id)
        options = EngineOptions(
            api_client=self.get_api_client(api_key), gate=self.gate, library_id=library_id
        )
        controller = self.storage_controllers.create(mode, options)
        if not controller.verified:
            logger.debug("File syncing is not active for item's library -- skipping download")
            return False
        return await controller.download_file(library_id, item_key)
