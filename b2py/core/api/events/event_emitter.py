"""Event emitter implementation using Observer Pattern."""
import logging
from typing import Dict, List, Callable, Optional


class EventEmitter:
    """Event emitter using Observer Pattern."""

    def __init__(self, logger_name: str = 'b2py.events'):
        """Initializes event emitter."""
        self._events: Dict[str, List[Callable]] = {}
        self._logger = logging.getLogger(logger_name)

    def on(self, event: str, callback: Callable) -> 'EventEmitter':
        """Registers an event handler."""
        if event not in self._events:
            self._events[event] = []
        self._events[event].append(callback)
        return self

    def emit(self, event: str, *args, **kwargs):
        """Emits an event.

        A failing subscriber is logged and skipped so it cannot break
        the upload that is reporting to it.
        """
        for callback in list(self._events.get(event, [])):
            try:
                callback(*args, **kwargs)
            except Exception as e:
                self._logger.warning(f"Handler for '{event}' raised: {e}")

    def off(self, event: str, callback: Optional[Callable] = None) -> 'EventEmitter':
        """Removes an event handler."""
        if event not in self._events:
            return self

        if callback is None:
            del self._events[event]
        else:
            self._events[event] = [cb for cb in self._events[event] if cb != callback]

        return self

    def listener_count(self, event: str) -> int:
        return len(self._events.get(event, []))
