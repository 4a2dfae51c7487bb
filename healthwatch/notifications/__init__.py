"""Notification delivery subsystem — channels, formatting, rate limits, retries."""

from healthwatch.notifications.channels import (
    ConsoleChannel,
    EmailChannel,
    FileChannel,
    NotificationChannel,
    SlackChannel,
    SmsChannel,
    WebhookChannel,
    build_channel,
)
from healthwatch.notifications.dispatcher import NotificationDispatcher, backoff_delays
from healthwatch.notifications.exceptions import ChannelConfigError, NotificationError
from healthwatch.notifications.formatters import format_alert, render_summary, render_text
from healthwatch.notifications.rate_limiter import ChannelRateLimiter, SlidingWindow
from healthwatch.notifications.types import AlertMessage

__all__ = [
    "AlertMessage",
    "ChannelConfigError",
    "ChannelRateLimiter",
    "ConsoleChannel",
    "EmailChannel",
    "FileChannel",
    "NotificationChannel",
    "NotificationDispatcher",
    "NotificationError",
    "SlackChannel",
    "SlidingWindow",
    "SmsChannel",
    "WebhookChannel",
    "backoff_delays",
    "build_channel",
    "format_alert",
    "render_summary",
    "render_text",
]
