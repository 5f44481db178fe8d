# =============================================================================
# finca_core/offline/broadcast.py
# Subscriber Broadcast Channel
# =============================================================================

from __future__ import annotations
import threading
from typing import Any, Callable, List
import logging

logger = logging.getLogger(__name__)


class Broadcast:
    """
    Thread-safe list of subscriber callbacks.

    Usage:
        channel = Broadcast("queue-length")
        unsubscribe = channel.subscribe(lambda count: print(count))
        channel.publish(3)
        unsubscribe()
    """

    def __init__(self, name: str):
        self.name = name
        self._callbacks: List[Callable[[Any], None]] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._callbacks)

    def subscribe(self, callback: Callable[[Any], None]) -> Callable[[], None]:
        """Register ``callback``; returns an idempotent unsubscribe handle."""
        with self._lock:
            self._callbacks.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)

        return unsubscribe

    def publish(self, value: Any) -> None:
        """Invoke every subscriber; a failing subscriber does not stop the rest."""
        with self._lock:
            callbacks = list(self._callbacks)

        for callback in callbacks:
            try:
                callback(value)
            except Exception as e:
                logger.error(f"Error in {self.name} callback: {e}")
