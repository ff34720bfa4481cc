# =============================================================================
# medbuddy_core/offline/change_notifier.py
# Process-wide "data changed" publish/subscribe hub
# =============================================================================
"""
ChangeNotifier - tells the presentation layer to re-read after local writes
and sync status changes.

Delivery is synchronous, in subscription order, to the listeners registered
when publish() starts. A failing listener is logged and skipped.
"""

from __future__ import annotations
import threading
from typing import Callable, List
import logging

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class ChangeNotifier:
    """
    Observer registry.

    Usage:
        notifier = ChangeNotifier()
        unsubscribe = notifier.subscribe(lambda: print("changed"))
        notifier.publish()
        unsubscribe()
    """

    def __init__(self):
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener.

        Returns:
            A callable that removes this registration. Calling it twice is harmless.
        """
        # Wrap so the same function can be registered twice and removed independently
        entry = _Registration(listener)
        with self._lock:
            self._listeners.append(entry)

        def unsubscribe() -> None:
            with self._lock:
                if entry in self._listeners:
                    self._listeners.remove(entry)

        return unsubscribe

    def publish(self) -> None:
        """Notify every currently registered listener."""
        with self._lock:
            listeners = list(self._listeners)

        for entry in listeners:
            try:
                entry.listener()
            except Exception as e:
                logger.error(f"Error in change listener {entry.name}: {e}", exc_info=True)

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)


class _Registration:
    __slots__ = ("listener",)

    def __init__(self, listener: Listener):
        self.listener = listener

    @property
    def name(self) -> str:
        return getattr(self.listener, "__name__", repr(self.listener))
