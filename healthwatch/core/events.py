"""EventHub — ordered observer delivery for monitor events."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from healthwatch.core.types import MonitorEvent, MonitorEventType

logger = structlog.stdlib.get_logger()

# Type alias for event subscribers
EventCallback = Callable[[MonitorEvent], Awaitable[None] | None]


class EventHub:
    """Delivers :class:`MonitorEvent` objects to registered subscribers.

    Subscribers are called one after another in registration order, and an
    event is fully delivered before ``emit`` returns. A subscriber that
    raises is logged and skipped; later subscribers still receive the event.

    Usage::

        hub = EventHub()
        hub.subscribe(dashboard.on_event)
        await hub.emit(MonitorEventType.ALERT_CREATED, alert_id="a1")
    """

    def __init__(self) -> None:
        self._callbacks: list[EventCallback] = []

    def subscribe(self, callback: EventCallback) -> None:
        """Register a callback for all monitor events."""
        self._callbacks.append(callback)

    def unsubscribe(self, callback: EventCallback) -> None:
        """Remove a previously registered callback (no-op if unknown)."""
        try:
            self._callbacks.remove(callback)
        except ValueError:
            pass

    @property
    def subscriber_count(self) -> int:
        return len(self._callbacks)

    async def emit(self, event_type: MonitorEventType, **payload: Any) -> MonitorEvent:
        """Build an event from *payload* and deliver it to every subscriber."""
        event = MonitorEvent(event_type=event_type, payload=payload)
        await self.publish(event)
        return event

    async def publish(self, event: MonitorEvent) -> None:
        """Deliver an already-built event."""
        for cb in list(self._callbacks):
            try:
                result = cb(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception(
                    "event_callback_error",
                    event_type=event.event_type,
                )
