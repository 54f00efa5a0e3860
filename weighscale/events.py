"""
Synchronous publish/subscribe hooks used for device events.
"""

import logging
from typing import Callable, Generic, List, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EventHook(Generic[T]):
    """
    Ordered list of callbacks invoked synchronously on emit().

    A failing subscriber is logged and skipped so one bad callback cannot
    stop delivery to the others or break the emitter.
    """

    def __init__(self, name: str):
        self.name = name
        self._callbacks: List[Callable[[T], None]] = []

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """
        Register a callback.

        Returns:
            A function that removes the callback again
        """
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            self.unsubscribe(callback)

        return unsubscribe

    def unsubscribe(self, callback: Callable[[T], None]) -> None:
        try:
            self._callbacks.remove(callback)
        except ValueError:
            pass

    def emit(self, payload: T) -> None:
        # Snapshot so callbacks may unsubscribe while being called
        for callback in list(self._callbacks):
            try:
                callback(payload)
            except Exception as e:
                logger.warning(f"{self.name} subscriber error: {e}")

    def __len__(self) -> int:
        return len(self._callbacks)
