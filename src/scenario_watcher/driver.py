"""Browser/driver session collaborator.

The reporter does not manage browsers itself. It asks a
:class:`DriverSupport` implementation to initialise, probe, reset and clear
the session of the running worker, and keeps the drivers it requested for a
specific story in a shared :class:`StoryDrivers` map so they can be closed
when that story ends.
"""
from __future__ import annotations
import logging
import threading
from typing import Any, Dict, Optional, Protocol

from .model import Story


logger = logging.getLogger(__name__)


class DriverSupport(Protocol):
    """Session management for the worker calling it."""

    def initialize(self, name: Optional[str] = None) -> None:
        """Prepare a driver session, optionally of the named type."""
        ...

    def get_driver(self) -> Any: ...

    def reset_driver(self, driver: Any) -> None: ...

    def clear_session(self) -> None: ...

    def is_instantiated(self) -> bool:
        """True if the current driver has started a real browser session."""
        ...

    def ping(self, driver: Any) -> None:
        """Touch the driver; raises if the session is dead."""
        ...

    def use_unique_session(self, unique: bool) -> None: ...


class NullDriverSupport:
    """:class:`DriverSupport` for runs without a browser. Every call is a no-op."""

    def initialize(self, name: Optional[str] = None) -> None:
        pass

    def get_driver(self) -> Any:
        return None

    def reset_driver(self, driver: Any) -> None:
        pass

    def clear_session(self) -> None:
        pass

    def is_instantiated(self) -> bool:
        return False

    def ping(self, driver: Any) -> None:
        pass

    def use_unique_session(self, unique: bool) -> None:
        pass


class StoryDrivers:
    """Drivers requested for a specific story, shared by all workers.

    At most one driver is kept per story; it is closed and quit when the
    story ends.
    """

    def __init__(self):
        self._drivers: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def register(self, story: Story, driver: Any) -> None:
        if driver is None:
            return
        with self._lock:
            self._drivers[story.key] = driver

    def has_driver_for(self, story: Story) -> bool:
        with self._lock:
            return story.key in self._drivers

    def close_for(self, story: Story) -> bool:
        """Close and quit the driver registered for ``story``.

        Returns True if a driver was registered.
        """
        with self._lock:
            driver = self._drivers.pop(story.key, None)
        if driver is None:
            return False
        try:
            driver.close()
            driver.quit()
        except Exception:
            logger.warning("could not shut down the driver of story %s", story.key, exc_info=True)
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._drivers)
