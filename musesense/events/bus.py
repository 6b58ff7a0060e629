"""EventBus: synchronous pub/sub for pipeline events."""

from __future__ import annotations

from collections.abc import Callable

from ..ble.protocol import Channel
from .base import Event, EventType

EventHandler = Callable[[Event], None]


class EventBus:
    """Synchronous dispatcher with optional per-electrode filtering.

    Handlers run on the publishing thread, in subscription order, and their
    exceptions propagate to the publisher. A subscription may name a
    ``channel``; it then only sees events whose ``metadata["channel"]``
    matches, which is how a consumer follows one electrode's spectra.

    Usage::

        bus = EventBus()
        bus.subscribe(EventType.HEARTBEAT, lambda e: print(e.value))
        bus.subscribe(EventType.SPECTRUM, show_af7, channel=Channel.AF7)
        bus.publish(Event(EventType.HEARTBEAT, timestamp=1.0, value=62.0))
    """

    def __init__(self) -> None:
        self._handlers: dict[EventType | None, list[tuple[EventHandler, str | None]]] = {}

    def subscribe(
        self,
        event_type: EventType | None,
        handler: EventHandler,
        channel: Channel | None = None,
    ) -> None:
        """Subscribe to events. Pass ``None`` as type to receive all events."""
        key = channel.value if channel is not None else None
        self._handlers.setdefault(event_type, []).append((handler, key))

    def unsubscribe(self, event_type: EventType | None, handler: EventHandler) -> None:
        """Drop every subscription of ``handler`` for ``event_type``."""
        handlers = self._handlers.get(event_type, [])
        handlers[:] = [entry for entry in handlers if entry[0] != handler]

    def publish(self, event: Event) -> None:
        """Dispatch to handlers of the event's type, then to wildcard handlers."""
        channel = event.metadata.get("channel")
        for event_type in (event.type, None):
            for handler, wanted in list(self._handlers.get(event_type, [])):
                if wanted is None or wanted == channel:
                    handler(event)
