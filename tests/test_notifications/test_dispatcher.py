"""Tests for NotificationDispatcher — routing, rate limits, retry/backoff, events."""

from __future__ import annotations

from unittest.mock import patch

from healthwatch.core.config import ChannelConfig, RetryPolicyConfig
from healthwatch.core.events import EventHub
from healthwatch.core.types import (
    Alert,
    AlertCategory,
    AlertRule,
    AlertSeverity,
    ChannelType,
    ComparisonOperator,
    MonitorEvent,
    MonitorEventType,
    ThresholdCondition,
)
from healthwatch.notifications.channels import NotificationChannel
from healthwatch.notifications.dispatcher import NotificationDispatcher, backoff_delays
from healthwatch.notifications.rate_limiter import ChannelRateLimiter
from healthwatch.notifications.types import AlertMessage


# ── Helpers ─────────────────────────────────────────────────────


class FakeChannel(NotificationChannel):
    """In-memory channel for testing. Fails the first *fail_times* sends."""

    def __init__(
        self,
        channel_id: str = "fake",
        fail_times: int = 0,
        raise_error: bool = False,
        enabled: bool = True,
        rate_limit: int | None = None,
        retry: RetryPolicyConfig | None = None,
    ) -> None:
        super().__init__(ChannelConfig(
            id=channel_id,
            type=ChannelType.CONSOLE,
            enabled=enabled,
            rate_limit_per_minute=rate_limit,
            retry=retry or RetryPolicyConfig(max_attempts=1),
        ))
        self.sent: list[AlertMessage] = []
        self.calls = 0
        self._fail_times = fail_times
        self._raise = raise_error
        self.closed = False

    async def send(self, msg: AlertMessage) -> bool:
        self.calls += 1
        if self.calls <= self._fail_times:
            if self._raise:
                raise ConnectionError("fake error")
            return False
        self.sent.append(msg)
        return True

    async def close(self) -> None:
        self.closed = True


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, secs: float) -> None:
        self.delays.append(secs)


def _alert(**kw: object) -> Alert:
    defaults: dict[str, object] = {
        "id": "alert-1",
        "rule_id": "critical-health",
        "severity": AlertSeverity.CRITICAL,
        "category": AlertCategory.HEALTH,
        "unit_id": "auth",
        "title": "Critical Health Score",
    }
    defaults.update(kw)
    return Alert(**defaults)  # type: ignore[arg-type]


def _rule(channels: list[str]) -> AlertRule:
    return AlertRule(
        id="critical-health",
        name="Critical Health Score",
        condition=ThresholdCondition(metric="health_score", operator=ComparisonOperator.LT, value=30),
        channels=channels,
    )


def _collect(hub: EventHub) -> list[MonitorEvent]:
    events: list[MonitorEvent] = []
    hub.subscribe(events.append)
    return events


# ── Backoff ─────────────────────────────────────────────────────


class TestBackoffDelays:
    def test_exponential_capped(self) -> None:
        policy = RetryPolicyConfig(
            max_attempts=5, backoff_multiplier=2.0, initial_delay_ms=1000, max_delay_ms=5000,
        )
        assert backoff_delays(policy) == [1.0, 2.0, 4.0, 5.0]

    def test_non_decreasing(self) -> None:
        policy = RetryPolicyConfig(max_attempts=8, backoff_multiplier=1.5, initial_delay_ms=100)
        delays = backoff_delays(policy)
        assert delays == sorted(delays)

    def test_single_attempt_has_no_delay(self) -> None:
        assert backoff_delays(RetryPolicyConfig(max_attempts=1)) == []


# ── Routing ─────────────────────────────────────────────────────


class TestRouting:
    async def test_rule_channels_receive_alert(self) -> None:
        a, b, c = FakeChannel("a"), FakeChannel("b"), FakeChannel("c")
        disp = NotificationDispatcher(channels=[a, b, c])
        results = await disp.send_notifications(_alert(), _rule(["a", "c"]))
        assert [r.channel_id for r in results] == ["a", "c"]
        assert all(r.delivered for r in results)
        assert len(a.sent) == 1
        assert len(b.sent) == 0
        assert a.sent[0].alert_id == "alert-1"

    async def test_unknown_channel_skipped(self) -> None:
        a = FakeChannel("a")
        disp = NotificationDispatcher(channels=[a])
        results = await disp.send_to_channels(_alert(), ["missing", "a"])
        assert [r.channel_id for r in results] == ["a"]

    async def test_disabled_channel_skipped(self) -> None:
        a = FakeChannel("a", enabled=False)
        disp = NotificationDispatcher(channels=[a])
        assert await disp.send_to_channels(_alert(), ["a"]) == []
        assert a.calls == 0

    async def test_duplicate_ids_deliver_once(self) -> None:
        a = FakeChannel("a")
        disp = NotificationDispatcher(channels=[a])
        await disp.send_to_channels(_alert(), ["a", "a"])
        assert a.calls == 1

    async def test_one_failing_channel_does_not_affect_other(self) -> None:
        bad = FakeChannel("bad", fail_times=10, raise_error=True)
        good = FakeChannel("good")
        disp = NotificationDispatcher(channels=[bad, good])
        results = {r.channel_id: r for r in await disp.send_to_channels(_alert(), ["bad", "good"])}
        assert results["bad"].delivered is False
        assert "ConnectionError" in results["bad"].error
        assert results["good"].delivered is True


# ── Retries ─────────────────────────────────────────────────────


class TestRetries:
    async def test_retries_until_success(self) -> None:
        sleep = RecordingSleep()
        ch = FakeChannel("f", fail_times=2, retry=RetryPolicyConfig(
            max_attempts=3, backoff_multiplier=2.0, initial_delay_ms=1000, max_delay_ms=10_000,
        ))
        hub = EventHub()
        events = _collect(hub)
        disp = NotificationDispatcher(channels=[ch], events=hub, sleep=sleep)

        [result] = await disp.send_to_channels(_alert(), ["f"])
        assert result.delivered is True
        assert result.attempts == 3
        assert sleep.delays == [1.0, 2.0]
        assert [e.event_type for e in events] == [MonitorEventType.NOTIFICATION_SENT]
        assert events[0].payload["attempts"] == 3

    async def test_all_attempts_fail(self) -> None:
        sleep = RecordingSleep()
        ch = FakeChannel("f", fail_times=99, raise_error=True, retry=RetryPolicyConfig(
            max_attempts=3, initial_delay_ms=500, backoff_multiplier=2.0, max_delay_ms=800,
        ))
        hub = EventHub()
        events = _collect(hub)
        disp = NotificationDispatcher(channels=[ch], events=hub, sleep=sleep)

        [result] = await disp.send_to_channels(_alert(), ["f"])
        assert result.delivered is False
        assert result.attempts == 3
        assert ch.calls == 3
        assert sleep.delays == [0.5, 0.8]
        assert [e.event_type for e in events] == [MonitorEventType.NOTIFICATION_FAILED]

    async def test_single_attempt_never_sleeps(self) -> None:
        sleep = RecordingSleep()
        ch = FakeChannel("f", fail_times=1)
        disp = NotificationDispatcher(channels=[ch], sleep=sleep)
        [result] = await disp.send_to_channels(_alert(), ["f"])
        assert result.delivered is False
        assert sleep.delays == []


# ── Rate limiting ───────────────────────────────────────────────


class TestRateLimit:
    async def test_over_limit_dropped_not_queued(self) -> None:
        now = [0.0]
        limiter = ChannelRateLimiter(clock=lambda: now[0])
        ch = FakeChannel("sms", rate_limit=2)
        hub = EventHub()
        events = _collect(hub)
        disp = NotificationDispatcher(channels=[ch], events=hub, rate_limiter=limiter)

        results = [await disp.send_to_channels(_alert(id=f"a{i}"), ["sms"]) for i in range(3)]
        assert [r[0].delivered for r in results] == [True, True, False]
        assert results[2][0].rate_limited is True
        assert ch.calls == 2
        assert events[-1].event_type == MonitorEventType.NOTIFICATION_RATE_LIMITED

        now[0] = 61.0
        [later] = await disp.send_to_channels(_alert(id="a9"), ["sms"])
        assert later.delivered is True
        assert ch.calls == 3


# ── Logging / lifecycle ─────────────────────────────────────────


class TestDeliveryLog:
    async def test_delivery_logged(self) -> None:
        ch = FakeChannel("a")
        disp = NotificationDispatcher(channels=[ch])
        with patch("healthwatch.notifications.dispatcher.delivery_logger") as log:
            await disp.send_to_channels(_alert(), ["a"])
        log.info.assert_called_once()
        kwargs = log.info.call_args[1]
        assert kwargs["alert_id"] == "alert-1"
        assert kwargs["delivered"] is True


class TestClose:
    async def test_close_all_channels(self) -> None:
        a, b = FakeChannel("a"), FakeChannel("b")
        disp = NotificationDispatcher(channels=[a, b])
        await disp.close()
        assert a.closed and b.closed

    def test_add_and_get_channel(self) -> None:
        disp = NotificationDispatcher()
        ch = FakeChannel("x")
        disp.add_channel(ch)
        assert disp.get_channel("x") is ch
        assert disp.get_channel("y") is None
        assert list(disp.channels) == ["x"]
