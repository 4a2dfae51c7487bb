"""Tests for EventHub — ordering, sync/async subscribers, error isolation."""

from __future__ import annotations

from healthwatch.core.events import EventHub
from healthwatch.core.types import MonitorEvent, MonitorEventType


class TestSubscribe:
    async def test_emit_reaches_subscriber(self) -> None:
        hub = EventHub()
        seen: list[MonitorEvent] = []
        hub.subscribe(seen.append)
        ev = await hub.emit(MonitorEventType.ALERT_CREATED, alert_id="a1")
        assert seen == [ev]
        assert ev.payload == {"alert_id": "a1"}
        assert ev.event_type == MonitorEventType.ALERT_CREATED

    async def test_async_subscriber_awaited(self) -> None:
        hub = EventHub()
        seen: list[str] = []

        async def cb(ev: MonitorEvent) -> None:
            seen.append(ev.event_type.value)

        hub.subscribe(cb)
        await hub.emit(MonitorEventType.MONITORING_STARTED)
        assert seen == ["monitoring-started"]

    async def test_delivery_in_registration_order(self) -> None:
        hub = EventHub()
        order: list[int] = []
        hub.subscribe(lambda ev: order.append(1))

        async def second(ev: MonitorEvent) -> None:
            order.append(2)

        hub.subscribe(second)
        hub.subscribe(lambda ev: order.append(3))
        await hub.emit(MonitorEventType.ALERT_RESOLVED)
        assert order == [1, 2, 3]

    async def test_unsubscribe(self) -> None:
        hub = EventHub()
        seen: list[MonitorEvent] = []
        hub.subscribe(seen.append)
        hub.unsubscribe(seen.append)
        hub.unsubscribe(seen.append)
        await hub.emit(MonitorEventType.ALERT_RESOLVED)
        assert seen == []
        assert hub.subscriber_count == 0


class TestErrorIsolation:
    async def test_failing_subscriber_does_not_block_others(self) -> None:
        hub = EventHub()
        seen: list[MonitorEvent] = []

        def boom(ev: MonitorEvent) -> None:
            raise RuntimeError("subscriber broke")

        hub.subscribe(boom)
        hub.subscribe(seen.append)
        await hub.emit(MonitorEventType.NOTIFICATION_FAILED, channel_id="c")
        assert len(seen) == 1

    async def test_failing_async_subscriber(self) -> None:
        hub = EventHub()
        seen: list[MonitorEvent] = []

        async def boom(ev: MonitorEvent) -> None:
            raise ValueError("nope")

        hub.subscribe(boom)
        hub.subscribe(seen.append)
        await hub.publish(MonitorEvent(event_type=MonitorEventType.ALERT_ESCALATED))
        assert len(seen) == 1
