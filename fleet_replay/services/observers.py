"""
Listener registry for replay notifications.

Each clock owns its own registries. Listeners are called synchronously in
subscription order; a failing listener is logged and skipped so it cannot
stop the others or disturb the caller.
"""

import logging
from typing import Callable, Generic, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")

Unsubscribe = Callable[[], None]


class ListenerRegistry(Generic[T]):
    """Ordered collection of callbacks sharing one signature."""

    def __init__(self, name: str):
        self._name = name
        self._listeners: list[Callable[..., None]] = []

    def subscribe(self, listener: Callable[..., None]) -> Unsubscribe:
        """
        Register a listener.

        Returns:
            Callable that removes the listener; calling it twice is harmless
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, *args: T) -> int:
        """
        Call every listener with the given arguments.

        Returns:
            Number of listeners that raised
        """
        failures = 0
        # Copy so listeners may unsubscribe while being notified
        for listener in list(self._listeners):
            try:
                listener(*args)
            except Exception:
                failures += 1
                logger.exception(f"Error in {self._name} listener {listener!r}")
        return failures
