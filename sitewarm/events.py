"""Observer registries and host visibility tracking."""

import logging
from collections.abc import Callable
from enum import Enum
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ListenerRegistry(Generic[T]):
    """Synchronous, in-order fan-out of values to registered callbacks.

    Listeners must not block or raise; that contract is on the caller.
    """

    def __init__(self) -> None:
        self._listeners: list[Callable[[T], None]] = []

    def add(self, listener: Callable[[T], None]) -> Callable[[], None]:
        """Register a listener and return a function that unregisters it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def notify(self, value: T) -> None:
        # Copy so a listener may unregister itself while being notified
        for listener in list(self._listeners):
            listener(value)

    def __len__(self) -> int:
        return len(self._listeners)


class Visibility(Enum):
    """Visibility of the host context running the warmers."""

    VISIBLE = "visible"
    HIDDEN = "hidden"


class VisibilityMonitor:
    """Holds the host's visibility state and broadcasts changes."""

    def __init__(self, initial: Visibility = Visibility.VISIBLE) -> None:
        self._state = initial
        self._listeners: ListenerRegistry[Visibility] = ListenerRegistry()

    @property
    def state(self) -> Visibility:
        return self._state

    def add_listener(self, listener: Callable[[Visibility], None]) -> Callable[[], None]:
        return self._listeners.add(listener)

    def set_state(self, state: Visibility) -> None:
        """Record a visibility change; repeated states are not rebroadcast."""
        if state == self._state:
            return
        self._state = state
        logger.debug("Host visibility changed to %s", state.value)
        self._listeners.notify(state)
