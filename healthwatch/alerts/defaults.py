"""Built-in rules, channels and escalation policy."""

from __future__ import annotations

from pathlib import Path

from healthwatch.core.config import AlertThresholdsConfig, ChannelConfig, RetryPolicyConfig
from healthwatch.core.types import (
    AlertCategory,
    AlertRule,
    AlertSeverity,
    ChannelType,
    ComparisonOperator,
    EscalationLevel,
    EscalationPolicy,
    ThresholdCondition,
)

DEFAULT_POLICY_ID = "default"


def default_rules(
    thresholds: AlertThresholdsConfig | None = None,
    cooldown_minutes: float = 15.0,
) -> list[AlertRule]:
    t = thresholds or AlertThresholdsConfig()
    return [
        AlertRule(
            id="critical-health",
            name="Critical Health Score",
            description=f"Unit {{unit_id}} health score {{health_score}} is below {t.critical}",
            condition=ThresholdCondition(
                metric="health_score", operator=ComparisonOperator.LT, value=t.critical,
            ),
            severity=AlertSeverity.CRITICAL,
            category=AlertCategory.HEALTH,
            channels=["console", "file"],
            cooldown_minutes=cooldown_minutes,
            tags=["health", "critical"],
        ),
        AlertRule(
            id="module-offline",
            name="Unit Offline",
            description="Unit {unit_id} is offline",
            condition=ThresholdCondition(
                metric="status", operator=ComparisonOperator.EQ, value="offline",
            ),
            severity=AlertSeverity.CRITICAL,
            category=AlertCategory.AVAILABILITY,
            channels=["console", "file"],
            cooldown_minutes=5.0,
            escalation_policy=DEFAULT_POLICY_ID,
            tags=["availability", "offline"],
        ),
        AlertRule(
            id="high-error-rate",
            name="High Error Rate",
            description="Unit {unit_id} error rate {metrics.error_rate} exceeds "
            f"{t.error_rate}",
            condition=ThresholdCondition(
                metric="metrics.error_rate", operator=ComparisonOperator.GT, value=t.error_rate,
            ),
            severity=AlertSeverity.HIGH,
            category=AlertCategory.PERFORMANCE,
            channels=["console"],
            cooldown_minutes=cooldown_minutes,
            tags=["performance", "errors"],
        ),
    ]


def default_channels(data_dir: str | Path = "monitoring") -> list[ChannelConfig]:
    return [
        ChannelConfig(
            id="console",
            name="Console",
            type=ChannelType.CONSOLE,
            retry=RetryPolicyConfig(
                max_attempts=1, backoff_multiplier=1.0, initial_delay_ms=0, max_delay_ms=0,
            ),
        ),
        ChannelConfig(
            id="file",
            name="Log File",
            type=ChannelType.FILE,
            retry=RetryPolicyConfig(
                max_attempts=3, backoff_multiplier=2.0, initial_delay_ms=1000, max_delay_ms=10_000,
            ),
            options={"path": str(Path(data_dir) / "alerts" / "alerts.log"), "format": "text"},
        ),
    ]


def default_policies() -> list[EscalationPolicy]:
    return [
        EscalationPolicy(
            id=DEFAULT_POLICY_ID,
            name="Default Escalation Policy",
            description="Standard escalation for critical alerts",
            levels=[
                EscalationLevel(level=1, delay_minutes=15, channels=["console"]),
                EscalationLevel(level=2, delay_minutes=30, channels=["console", "file"]),
            ],
        ),
    ]
