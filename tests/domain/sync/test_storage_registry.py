"""Tests for storage controller caching."""

from unittest.mock import Mock

import pytest

from library_sync.domain.sync import EngineOptions, StorageControllerRegistry


class Controller:
    def __init__(self, options):
        self.options = options
        self.verified = True


@pytest.fixture
def options():
    return EngineOptions(api_client=Mock(), gate=Mock())


def test_get_caches_per_mode(options):
    registry = StorageControllerRegistry({"zfs": Controller, "webdav": Controller})

    first = registry.get("zfs", options)
    assert registry.get("zfs", options) is first
    assert registry.get("webdav", options) is not first
    assert "zfs" in registry


def test_create_is_uncached(options):
    registry = StorageControllerRegistry({"zfs": Controller})

    assert registry.create("zfs", options) is not registry.create("zfs", options)
    assert "zfs" not in registry


def test_invalidate_single_mode(options):
    registry = StorageControllerRegistry({"zfs": Controller, "webdav": Controller})
    zfs = registry.get("zfs", options)
    webdav = registry.get("webdav", options)

    registry.invalidate("zfs")

    assert registry.get("zfs", options) is not zfs
    assert registry.get("webdav", options) is webdav


def test_invalidate_all(options):
    registry = StorageControllerRegistry({"zfs": Controller, "webdav": Controller})
    registry.get("zfs", options)
    registry.get("webdav", options)

    registry.invalidate()

    assert "zfs" not in registry
    assert "webdav" not in registry


def test_unknown_mode_raises(options):
    registry = StorageControllerRegistry({"zfs": Controller})

    with pytest.raises(ValueError, match="Invalid storage mode"):
        registry.get("ftp", options)
