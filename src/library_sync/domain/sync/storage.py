"""Cache of long-lived storage controllers, one per storage mode."""

from typing import Callable, Mapping, Optional

from loguru import logger

from .models import EngineOptions
from .ports import StorageController

ControllerClass = Callable[[EngineOptions], StorageController]


class StorageControllerRegistry:
    """Creates storage controllers lazily and keeps them per mode.

    Args:
        controller_classes: Map of storage mode ("zfs", "webdav", ...) to
            the class (or factory) that builds its controller
    """

    def __init__(self, controller_classes: Mapping[str, ControllerClass]):
        self._classes = dict(controller_classes)
        self._controllers: dict[str, StorageController] = {}

    def class_for_mode(self, mode: str) -> ControllerClass:
        try:
            return self._classes[mode]
        except KeyError:
            raise ValueError(f"Invalid storage mode '{mode}'") from None

    def create(self, mode: str, options: EngineOptions) -> StorageController:
        """Build a fresh, uncached controller."""
        return self.class_for_mode(mode)(options)

    def get(self, mode: str, options: EngineOptions) -> StorageController:
        """Return the cached controller for ``mode``, creating it if needed."""
        controller = self._controllers.get(mode)
        if controller is None:
            logger.debug(f"Creating storage controller for mode '{mode}'")
            controller = self._controllers[mode] = self.create(mode, options)
        return controller

    def invalidate(self, mode: Optional[str] = None) -> None:
        """Drop the controller for ``mode``, or every controller if None."""
        if mode is None:
            self._controllers.clear()
        else:
            self._controllers.pop(mode, None)

    def __contains__(self, mode: str) -> bool:
        return mode in self._controllers
