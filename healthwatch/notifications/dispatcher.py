"""Notification dispatcher — fans alerts out to channels with rate limits and retries."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable

import structlog

from healthwatch.core.config import RetryPolicyConfig
from healthwatch.core.events import EventHub
from healthwatch.core.types import Alert, AlertRule, DeliveryResult, MonitorEventType
from healthwatch.notifications.channels import NotificationChannel
from healthwatch.notifications.formatters import format_alert
from healthwatch.notifications.rate_limiter import ChannelRateLimiter
from healthwatch.notifications.types import AlertMessage

# Dedicated structured logger for delivery records.
delivery_logger = structlog.get_logger("delivery_log")

logger = structlog.get_logger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


def backoff_delays(policy: RetryPolicyConfig) -> list[float]:
    """Seconds to wait after each failed attempt except the last.

    ``initial * multiplier**n`` capped at ``max_delay_ms``; non-decreasing.
    """
    delays: list[float] = []
    delay_ms = float(policy.initial_delay_ms)
    for _ in range(policy.max_attempts - 1):
        delays.append(min(delay_ms, float(policy.max_delay_ms)) / 1000.0)
        delay_ms *= policy.backoff_multiplier
    return delays


class NotificationDispatcher:
    """Routes alerts to the notification channels referenced by a rule.

    - Unknown and disabled channel ids are skipped.
    - Channels are delivered concurrently; one channel's failure never
      affects another.
    - Per channel, the sliding-window rate limit is checked first; an
      over-limit notification is dropped with a warning, not queued.
    - Delivery is retried per the channel's retry policy, then reported
      as ``notification-sent`` or ``notification-failed``.
    """

    def __init__(
        self,
        channels: Iterable[NotificationChannel] | None = None,
        events: EventHub | None = None,
        rate_limiter: ChannelRateLimiter | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._channels: dict[str, NotificationChannel] = {}
        for ch in channels or []:
            self.add_channel(ch)
        self._events = events or EventHub()
        self._rate_limiter = rate_limiter or ChannelRateLimiter()
        self._sleep = sleep

    @property
    def channels(self) -> dict[str, NotificationChannel]:
        return dict(self._channels)

    @property
    def rate_limiter(self) -> ChannelRateLimiter:
        return self._rate_limiter

    def add_channel(self, channel: NotificationChannel) -> None:
        self._channels[channel.id] = channel

    def get_channel(self, channel_id: str) -> NotificationChannel | None:
        return self._channels.get(channel_id)

    # ── Entry points ────────────────────────────────────────────

    async def send_notifications(self, alert: Alert, rule: AlertRule) -> list[DeliveryResult]:
        """Deliver *alert* to every enabled channel the rule references."""
        return await self.send_to_channels(alert, rule.channels)

    async def send_to_channels(
        self, alert: Alert, channel_ids: Iterable[str],
    ) -> list[DeliveryResult]:
        targets: list[NotificationChannel] = []
        for channel_id in dict.fromkeys(channel_ids):
            ch = self._channels.get(channel_id)
            if ch is None:
                logger.warning("unknown_channel", channel_id=channel_id, alert_id=alert.id)
                continue
            if not ch.config.enabled:
                continue
            targets.append(ch)

        if not targets:
            return []

        msg = format_alert(alert)
        return list(await asyncio.gather(*(self.deliver(ch, msg) for ch in targets)))

    async def deliver(self, channel: NotificationChannel, msg: AlertMessage) -> DeliveryResult:
        """Rate-limit check, then up to ``max_attempts`` delivery attempts."""
        cfg = channel.config
        result = DeliveryResult(channel_id=channel.id)

        if not self._rate_limiter.try_acquire(channel.id, cfg.rate_limit_per_minute):
            result.rate_limited = True
            logger.warning(
                "channel_rate_limited",
                channel_id=channel.id,
                limit_per_minute=cfg.rate_limit_per_minute,
                alert_id=msg.alert_id,
            )
            await self._events.emit(
                MonitorEventType.NOTIFICATION_RATE_LIMITED,
                alert_id=msg.alert_id,
                channel_id=channel.id,
            )
            return result

        delays = backoff_delays(cfg.retry)
        for attempt in range(1, cfg.retry.max_attempts + 1):
            result.attempts = attempt
            try:
                ok = await channel.send(msg)
                if not ok:
                    result.error = "channel reported failure"
            except Exception as exc:
                ok = False
                result.error = f"{type(exc).__name__}: {exc}"
                logger.exception(
                    "channel_dispatch_error",
                    channel_id=channel.id,
                    attempt=attempt,
                )

            if ok:
                result.delivered = True
                result.error = ""
                break

            logger.warning(
                "notification_attempt_failed",
                channel_id=channel.id,
                attempt=attempt,
                max_attempts=cfg.retry.max_attempts,
            )
            if attempt < cfg.retry.max_attempts:
                await self._sleep(delays[attempt - 1])

        self._log_delivery(msg, result)
        if result.delivered:
            await self._events.emit(
                MonitorEventType.NOTIFICATION_SENT,
                alert_id=msg.alert_id,
                channel_id=channel.id,
                attempts=result.attempts,
            )
        else:
            logger.error(
                "notification_failed",
                channel_id=channel.id,
                alert_id=msg.alert_id,
                attempts=result.attempts,
            )
            await self._events.emit(
                MonitorEventType.NOTIFICATION_FAILED,
                alert_id=msg.alert_id,
                channel_id=channel.id,
                attempts=result.attempts,
                error=result.error,
            )
        return result

    def _log_delivery(self, msg: AlertMessage, result: DeliveryResult) -> None:
        delivery_logger.info(
            "delivery",
            alert_id=msg.alert_id,
            unit_id=msg.unit_id,
            severity=msg.severity.value,
            title=msg.title,
            channel_id=result.channel_id,
            delivered=result.delivered,
            attempts=result.attempts,
        )

    # ── Lifecycle ───────────────────────────────────────────────

    async def close(self) -> None:
        for ch in self._channels.values():
            try:
                await ch.close()
            except Exception:
                logger.exception("channel_close_error", channel_id=ch.id)
