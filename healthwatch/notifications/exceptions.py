"""Notification delivery exceptions."""

from __future__ import annotations


class NotificationError(Exception):
    """Base exception for notification errors."""


class ChannelConfigError(NotificationError):
    """A channel's configuration is missing or invalid."""
