import pytest

from library_sync.core.config import Config
from library_sync.domain.sync import FileSyncResult, SyncRunner

from sync_fakes import (
    EngineScript,
    FakeAPIClient,
    FakeController,
    FakeDecisions,
    FakeNotifier,
    FakeStore,
)


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def decisions():
    return FakeDecisions()


@pytest.fixture
def api_client():
    return FakeAPIClient()


@pytest.fixture
def data_engine():
    return EngineScript()


@pytest.fixture
def storage_engine():
    return EngineScript(default=FileSyncResult())


@pytest.fixture
def fulltext_engine():
    return EngineScript()


@pytest.fixture
def config():
    return Config()


@pytest.fixture
def runner(store, notifier, decisions, api_client, data_engine, storage_engine, fulltext_engine, config):
    return SyncRunner(
        store,
        notifier,
        decisions,
        data_engine=data_engine,
        storage_engine=storage_engine,
        fulltext_engine=fulltext_engine,
        controller_classes={"zfs": FakeController, "webdav": FakeController},
        config=config,
        api_client_factory=lambda api_key: api_client,
    )
