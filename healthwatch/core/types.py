"""Domain types for health sampling, alerting and notification delivery."""

from __future__ import annotations

import time
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

# ── Health Types ─────────────────────────────────────────────────


class UnitStatus(StrEnum):
    """Coarse health classification of a monitored unit."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    CRITICAL = "critical"
    OFFLINE = "offline"


class IssueSeverity(StrEnum):
    """Severity of a detected health issue."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class HealthMetrics(BaseModel):
    """Runtime metrics snapshot for one unit. Never mutated after creation."""

    model_config = ConfigDict(frozen=True)

    response_time_ms: float = 0.0
    error_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    throughput: float = 0.0  # requests per minute
    memory_usage: float = Field(default=0.0, ge=0.0, le=1.0)
    cpu_usage: float = Field(default=0.0, ge=0.0, le=1.0)
    disk_usage: float = Field(default=0.0, ge=0.0, le=1.0)
    network_latency_ms: float = 0.0
    dependency_health: float = Field(default=1.0, ge=0.0, le=1.0)

    @classmethod
    def unreachable(cls) -> HealthMetrics:
        """Metrics reported for a unit that could not be sampled at all."""
        return cls(error_rate=1.0, dependency_health=0.0)


class HealthIssue(BaseModel):
    """A problem reported for a unit during a sampling pass."""

    id: str
    severity: IssueSeverity
    category: str
    message: str
    first_seen: float = Field(default_factory=time.time)
    last_seen: float = Field(default_factory=time.time)
    occurrences: int = 1
    resolved: bool = False
    auto_recoverable: bool = False


class HealthTrend(BaseModel):
    """One point of a unit's score history."""

    timestamp: float
    health_score: int
    metrics: dict[str, float] = Field(default_factory=dict)


class HealthStatus(BaseModel):
    """One unit's result for one sampling pass."""

    unit_id: str
    health_score: int = Field(ge=0, le=100)
    status: UnitStatus
    last_check: float = Field(default_factory=time.time)
    uptime_secs: float = 0.0
    issues: list[HealthIssue] = Field(default_factory=list)
    metrics: HealthMetrics = Field(default_factory=HealthMetrics)
    trends: list[HealthTrend] = Field(default_factory=list)

    @property
    def unresolved_issues(self) -> list[HealthIssue]:
        return [i for i in self.issues if not i.resolved]


class SystemMetrics(BaseModel):
    """System-wide aggregation over one sampling pass."""

    total_units: int = 0
    healthy_units: int = 0
    degraded_units: int = 0
    critical_units: int = 0
    offline_units: int = 0
    average_response_time_ms: float = 0.0
    total_errors: int = 0
    average_uptime_secs: float = 0.0


class MonitoringReport(BaseModel):
    """Result of a full sampling pass, persisted to the data directory."""

    timestamp: float = Field(default_factory=time.time)
    overall_health: int = 0
    unit_statuses: list[HealthStatus] = Field(default_factory=list)
    active_alerts: int = 0
    resolved_issues: int = 0
    system_metrics: SystemMetrics = Field(default_factory=SystemMetrics)
    recommendations: list[str] = Field(default_factory=list)
    duration_ms: float = 0.0


# ── Provider Contracts ───────────────────────────────────────────


class ValidationOptions(BaseModel):
    """Options passed to the metrics provider for one unit."""

    depth: str = "basic"
    include_health_metrics: bool = True
    include_dependency_checks: bool = True
    include_file_system_checks: bool = True


class ValidationIssue(BaseModel):
    """An issue as reported by the metrics provider."""

    id: str
    severity: IssueSeverity = IssueSeverity.MEDIUM
    category: str = "general"
    message: str = ""
    auto_recoverable: bool | None = None


class ValidationResult(BaseModel):
    """Structural health signal returned by the metrics provider."""

    health_score: float = Field(ge=0.0, le=100.0)
    issues: list[ValidationIssue] = Field(default_factory=list)


class RecoveryOptions(BaseModel):
    """Budget handed to the recovery service for one remediation attempt."""

    target_health_score: int
    max_attempts: int = 3
    timeout_ms: int = 10_000
    dry_run: bool = False
    skip_backup: bool = False


class RecoveryResult(BaseModel):
    """Outcome of a remediation attempt."""

    success: bool = False
    final_health_score: float = 0.0
    raw: dict[str, Any] = Field(default_factory=dict)


# ── Alert Types ──────────────────────────────────────────────────


class AlertSeverity(StrEnum):
    """Alert severity."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertCategory(StrEnum):
    """Alert category."""

    HEALTH = "health"
    PERFORMANCE = "performance"
    AVAILABILITY = "availability"
    SECURITY = "security"
    DEPENDENCY = "dependency"


class AlertStatus(StrEnum):
    """Lifecycle state of an alert."""

    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"
    SUPPRESSED = "suppressed"


class ComparisonOperator(StrEnum):
    """Operators usable in threshold conditions."""

    GT = ">"
    LT = "<"
    GTE = ">="
    LTE = "<="
    EQ = "=="
    NE = "!="
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"


class FilterOperator(StrEnum):
    """Operators usable in rule field filters."""

    EQ = "=="
    NE = "!="
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    IN = "in"
    NOT_IN = "not_in"


class ThresholdCondition(BaseModel):
    """Compare the value at *metric* against *value*."""

    type: Literal["threshold"] = "threshold"
    metric: str
    operator: ComparisonOperator
    value: Any


class AnomalyCondition(BaseModel):
    """Fire when *metric* deviates from the reference *value* by more than *tolerance*."""

    type: Literal["anomaly"] = "anomaly"
    metric: str
    value: float
    tolerance: float = 0.5


class ChangeCondition(BaseModel):
    """Fire when *metric* moved by at least *value* since the last observation."""

    type: Literal["change"] = "change"
    metric: str
    value: float


class CompositeCondition(BaseModel):
    """Combine child conditions with AND / OR."""

    type: Literal["composite"] = "composite"
    operator: Literal["AND", "OR"] = "AND"
    conditions: list[AlertCondition] = Field(default_factory=list)


AlertCondition = Annotated[
    ThresholdCondition | CompositeCondition | AnomalyCondition | ChangeCondition,
    Field(discriminator="type"),
]

CompositeCondition.model_rebuild()


class AlertFilter(BaseModel):
    """Cheap pre-condition on a payload field."""

    field: str
    operator: FilterOperator = FilterOperator.EQ
    value: Any = None


class AlertRule(BaseModel):
    """Declarative alert rule. Immutable while being evaluated."""

    id: str
    name: str
    description: str = ""
    condition: AlertCondition
    severity: AlertSeverity = AlertSeverity.MEDIUM
    category: AlertCategory = AlertCategory.HEALTH
    enabled: bool = True
    channels: list[str] = Field(default_factory=list)
    cooldown_minutes: float = 15.0
    escalation_policy: str | None = None
    tags: list[str] = Field(default_factory=list)
    filters: list[AlertFilter] = Field(default_factory=list)


class Alert(BaseModel):
    """A stateful incident derived from a rule firing for a unit."""

    id: str
    rule_id: str
    severity: AlertSeverity
    category: AlertCategory
    unit_id: str
    title: str
    message: str = ""
    details: dict[str, Any] = Field(default_factory=dict)
    status: AlertStatus = AlertStatus.ACTIVE
    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)
    acknowledged_by: str | None = None
    acknowledged_at: float | None = None
    resolved_at: float | None = None
    suppressed_until: float | None = None
    escalation_level: int = 0
    tags: list[str] = Field(default_factory=list)

    @property
    def is_open(self) -> bool:
        """Active or acknowledged."""
        return self.status in (AlertStatus.ACTIVE, AlertStatus.ACKNOWLEDGED)


class EscalationLevel(BaseModel):
    """One step of an escalation policy."""

    level: int
    delay_minutes: float
    channels: list[str] = Field(default_factory=list)
    stop_on_acknowledge: bool = True


class EscalationPolicy(BaseModel):
    """Ordered schedule of delayed re-notifications."""

    id: str
    name: str = ""
    description: str = ""
    enabled: bool = True
    levels: list[EscalationLevel] = Field(default_factory=list)


class AlertStats(BaseModel):
    """Aggregate view over the alert table."""

    total: int = 0
    active: int = 0
    acknowledged: int = 0
    resolved: int = 0
    suppressed: int = 0
    by_severity: dict[str, int] = Field(
        default_factory=lambda: {s.value: 0 for s in AlertSeverity},
    )
    by_category: dict[str, int] = Field(default_factory=dict)
    by_unit: dict[str, int] = Field(default_factory=dict)
    recent_alerts: int = 0
    average_resolution_minutes: float = 0.0


# ── Notification Types ───────────────────────────────────────────


class ChannelType(StrEnum):
    """Supported notification channel types."""

    CONSOLE = "console"
    FILE = "file"
    EMAIL = "email"
    SLACK = "slack"
    WEBHOOK = "webhook"
    SMS = "sms"


class DeliveryResult(BaseModel):
    """Outcome of delivering one notification to one channel."""

    channel_id: str
    delivered: bool = False
    attempts: int = 0
    rate_limited: bool = False
    error: str = ""


# ── Events ───────────────────────────────────────────────────────


class MonitorEventType(StrEnum):
    """Events published to external subscribers."""

    MONITORING_STARTED = "monitoring-started"
    MONITORING_STOPPED = "monitoring-stopped"
    MONITORING_ERROR = "monitoring-error"
    HEALTH_CHECK_STARTED = "health-check-started"
    HEALTH_CHECK_COMPLETED = "health-check-completed"
    HEALTH_CHECK_FAILED = "health-check-failed"
    ALERT_CREATED = "alert-created"
    ALERT_UPDATED = "alert-updated"
    ALERT_ACKNOWLEDGED = "alert-acknowledged"
    ALERT_RESOLVED = "alert-resolved"
    ALERT_ESCALATED = "alert-escalated"
    ALERT_SUPPRESSED = "alert-suppressed"
    NOTIFICATION_SENT = "notification-sent"
    NOTIFICATION_FAILED = "notification-failed"
    NOTIFICATION_RATE_LIMITED = "notification-rate-limited"
    AUTO_RECOVERY_SUCCESS = "auto-recovery-success"
    AUTO_RECOVERY_FAILED = "auto-recovery-failed"


class MonitorEvent(BaseModel):
    """An event delivered to subscribers of the event hub."""

    event_type: MonitorEventType
    timestamp: float = Field(default_factory=time.time)
    payload: dict[str, Any] = Field(default_factory=dict)
