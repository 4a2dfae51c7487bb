"""Core module — config, types, events, logging, persistence."""

from healthwatch.core.config import Settings, get_settings, load_settings, reset_settings
from healthwatch.core.events import EventHub
from healthwatch.core.logging import setup_logging
from healthwatch.core.persistence import AlertRepository, ReportWriter
from healthwatch.core.types import (
    Alert,
    AlertRule,
    AlertSeverity,
    AlertStatus,
    HealthIssue,
    HealthMetrics,
    HealthStatus,
    MonitorEvent,
    MonitorEventType,
    MonitoringReport,
    UnitStatus,
)

__all__ = [
    "Alert",
    "AlertRepository",
    "AlertRule",
    "AlertSeverity",
    "AlertStatus",
    "EventHub",
    "HealthIssue",
    "HealthMetrics",
    "HealthStatus",
    "MonitorEvent",
    "MonitorEventType",
    "MonitoringReport",
    "ReportWriter",
    "Settings",
    "UnitStatus",
    "get_settings",
    "load_settings",
    "reset_settings",
    "setup_logging",
]
