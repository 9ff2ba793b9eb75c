"""Observer registry for encoding queue lifecycle events."""

import logging
from enum import Enum
from typing import Any, Callable

from app.core.logging import log_error

logger = logging.getLogger(__name__)


class QueueEvent(str, Enum):
    """Lifecycle notifications published by the encoding queue."""

    ADDED = "added"
    COMPLETED = "completed"
    RETRY = "retry"
    FAILED = "failed"


Listener = Callable[[Any], None]


class QueueEventBus:
    """A simple synchronous event bus for decoupled communication.

    A listener that raises is logged and does not prevent the remaining
    listeners, or the queue transition that emitted the event, from running.
    """

    def __init__(self):
        self._subscribers: dict[QueueEvent, list[Listener]] = {}

    def subscribe(self, event: QueueEvent, callback: Listener) -> None:
        """Subscribes a callback to a specific event."""
        self._subscribers.setdefault(event, []).append(callback)

    def unsubscribe(self, event: QueueEvent, callback: Listener) -> None:
        listeners = self._subscribers.get(event, [])
        if callback in listeners:
            listeners.remove(callback)

    def publish(self, event: QueueEvent, payload: Any) -> None:
        """Publishes an event to all interested subscribers."""
        for callback in list(self._subscribers.get(event, [])):
            try:
                callback(payload)
            except Exception as e:
                log_error(logger, "Queue event listener failed", exception=e, event=event.value)
