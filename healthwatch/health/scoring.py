"""Pure scoring, classification and aggregation for sampling passes."""

from __future__ import annotations

import math
import time
from collections.abc import Sequence

from healthwatch.core.config import AlertThresholdsConfig
from healthwatch.core.types import (
    HealthIssue,
    HealthMetrics,
    HealthStatus,
    IssueSeverity,
    SystemMetrics,
    UnitStatus,
    ValidationIssue,
)

STRUCTURAL_WEIGHT = 7
METRICS_WEIGHT = 3

_RECOVERABLE_CATEGORIES = frozenset({"filesystem", "configuration", "dependency", "dependencies"})
_RECOVERABLE_SEVERITIES = frozenset({IssueSeverity.LOW, IssueSeverity.MEDIUM})


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives.

    The value is first rounded to 9 decimals so binary noise such as
    ``44.49999999999999`` still rounds as ``44.5``.
    """
    return math.floor(round(value, 9) + 0.5)


# ── Scoring ─────────────────────────────────────────────────────


def metrics_score(metrics: HealthMetrics, thresholds: AlertThresholdsConfig) -> int:
    score = 100
    if metrics.response_time_ms > thresholds.response_time_ms:
        score -= 20
    if metrics.error_rate > thresholds.error_rate:
        score -= 25
    if metrics.memory_usage > 0.8:
        score -= 15
    if metrics.cpu_usage > 0.7:
        score -= 15
    if metrics.dependency_health < 0.9:
        score -= 10
    return max(0, score)


def compute_health_score(structural: float, runtime_score: float) -> int:
    """Blend structural (70%) and runtime (30%) scores into 0..100."""
    weighted = (structural * STRUCTURAL_WEIGHT + runtime_score * METRICS_WEIGHT) / 10
    return max(0, min(100, round_half_up(weighted)))


def classify_status(
    score: int, metrics: HealthMetrics, thresholds: AlertThresholdsConfig,
) -> UnitStatus:
    """First match wins: offline, critical, degraded, healthy."""
    if score == 0 or metrics.error_rate >= 1.0:
        return UnitStatus.OFFLINE
    if score < thresholds.critical:
        return UnitStatus.CRITICAL
    if score < thresholds.degraded:
        return UnitStatus.DEGRADED
    return UnitStatus.HEALTHY


# ── Issues ──────────────────────────────────────────────────────


def is_auto_recoverable(issue: ValidationIssue) -> bool:
    if issue.auto_recoverable is not None:
        return issue.auto_recoverable
    return issue.category in _RECOVERABLE_CATEGORIES and issue.severity in _RECOVERABLE_SEVERITIES


def to_health_issue(
    issue: ValidationIssue, now: float, previous: HealthIssue | None = None,
) -> HealthIssue:
    """Convert a provider issue, carrying history forward from *previous*."""
    return HealthIssue(
        id=issue.id,
        severity=issue.severity,
        category=issue.category,
        message=issue.message,
        first_seen=previous.first_seen if previous else now,
        last_seen=now,
        occurrences=previous.occurrences + 1 if previous else 1,
        auto_recoverable=is_auto_recoverable(issue),
    )


def offline_status(unit_id: str, reason: str, now: float | None = None) -> HealthStatus:
    """The status reported for a unit whose check failed outright."""
    now = time.time() if now is None else now
    return HealthStatus(
        unit_id=unit_id,
        health_score=0,
        status=UnitStatus.OFFLINE,
        last_check=now,
        uptime_secs=0.0,
        issues=[
            HealthIssue(
                id=f"{unit_id}-offline",
                severity=IssueSeverity.CRITICAL,
                category="availability",
                message=f"Unit offline: {reason}",
                first_seen=now,
                last_seen=now,
                auto_recoverable=True,
            ),
        ],
        metrics=HealthMetrics.unreachable(),
    )


# ── Aggregation ─────────────────────────────────────────────────


def overall_health(statuses: Sequence[HealthStatus]) -> int:
    if not statuses:
        return 0
    return round_half_up(sum(s.health_score for s in statuses) / len(statuses))


def system_metrics(statuses: Sequence[HealthStatus]) -> SystemMetrics:
    total = len(statuses)
    counts = {s: 0 for s in UnitStatus}
    for status in statuses:
        counts[status.status] += 1
    return SystemMetrics(
        total_units=total,
        healthy_units=counts[UnitStatus.HEALTHY],
        degraded_units=counts[UnitStatus.DEGRADED],
        critical_units=counts[UnitStatus.CRITICAL],
        offline_units=counts[UnitStatus.OFFLINE],
        average_response_time_ms=(
            sum(s.metrics.response_time_ms for s in statuses) / total if total else 0.0
        ),
        total_errors=sum(len(s.unresolved_issues) for s in statuses),
        average_uptime_secs=sum(s.uptime_secs for s in statuses) / total if total else 0.0,
    )


def recommendations(
    statuses: Sequence[HealthStatus], thresholds: AlertThresholdsConfig,
) -> list[str]:
    out: list[str] = []

    critical = [s.unit_id for s in statuses if s.status in (UnitStatus.CRITICAL, UnitStatus.OFFLINE)]
    if critical:
        out.append(
            f"Immediate attention required for {len(critical)} critical units: {', '.join(critical)}"
        )

    degraded = [s.unit_id for s in statuses if s.status == UnitStatus.DEGRADED]
    if degraded:
        out.append(f"Monitor and improve {len(degraded)} degraded units: {', '.join(degraded)}")

    noisy = [s.unit_id for s in statuses if s.metrics.error_rate > thresholds.error_rate]
    if noisy:
        out.append(f"Investigate high error rates in units: {', '.join(noisy)}")

    slow = [s.unit_id for s in statuses if s.metrics.response_time_ms > thresholds.response_time_ms]
    if slow:
        out.append(f"Optimize response times for slow units: {', '.join(slow)}")

    return out
