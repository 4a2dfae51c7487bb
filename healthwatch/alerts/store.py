"""AlertStore — the alert table and its lifecycle transitions."""

from __future__ import annotations

import asyncio
import json
import math
import secrets
import time
from collections.abc import Callable, Iterable
from typing import Any

import structlog

from healthwatch.alerts.conditions import render_template, to_payload
from healthwatch.alerts.engine import context_unit
from healthwatch.alerts.escalation import EscalationScheduler
from healthwatch.core.events import EventHub
from healthwatch.core.persistence import AlertRepository
from healthwatch.core.types import (
    Alert,
    AlertRule,
    AlertSeverity,
    AlertStats,
    AlertStatus,
    EscalationLevel,
    EscalationPolicy,
    MonitorEventType,
)
from healthwatch.notifications.dispatcher import NotificationDispatcher

logger = structlog.get_logger(__name__)

_RECENT_WINDOW_SECS = 24 * 3600


def new_alert_id(now: float) -> str:
    return f"alert-{int(now * 1000)}-{secrets.token_hex(4)}"


def json_safe_details(details: dict[str, Any]) -> dict[str, Any]:
    """Coerce *details* to plain JSON values; unknown types become their str()."""
    return json.loads(json.dumps(details, default=str))


class AlertStore:
    """Owns every alert, keyed by id, and drives its state machine.

    ``active`` may move to acknowledged, resolved or suppressed;
    ``acknowledged`` to resolved or suppressed; ``suppressed`` to resolved.
    ``resolved`` is terminal: a later trigger for the same rule and unit
    creates a new alert.

    New alerts are persisted, notified in the background and, when their
    rule names an enabled escalation policy, handed to the scheduler.
    """

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        scheduler: EscalationScheduler | None = None,
        repository: AlertRepository | None = None,
        events: EventHub | None = None,
        policies: dict[str, EscalationPolicy] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._dispatcher = dispatcher
        self._scheduler = scheduler or EscalationScheduler()
        self._repository = repository
        self._events = events or EventHub()
        self._policies: dict[str, EscalationPolicy] = policies if policies is not None else {}
        self._clock = clock
        self._alerts: dict[str, Alert] = {}
        self._lock = asyncio.Lock()
        self._notify_tasks: set[asyncio.Task[Any]] = set()

    @property
    def scheduler(self) -> EscalationScheduler:
        return self._scheduler

    @property
    def policies(self) -> dict[str, EscalationPolicy]:
        """Escalation policies by id; the manager registers into this dict."""
        return self._policies

    # ── Creation ────────────────────────────────────────────────

    async def create_or_update(self, rule: AlertRule, payload: Any) -> tuple[Alert, bool]:
        """Record a firing of *rule* for the payload's unit.

        Returns ``(alert, created)``. An open alert for the same rule and
        unit absorbs the trigger, as does a suppressed one whose suppression
        has not expired yet.
        """
        details = json_safe_details(to_payload(payload))
        unit_id = context_unit(details)

        async with self._lock:
            now = self._clock()
            existing = self._find_absorbing(rule.id, unit_id, now)
            if existing is not None:
                existing.details.update(details)
                existing.updated_at = now
                self._persist(existing)
                logger.debug("alert_updated", alert_id=existing.id, rule_id=rule.id)
                await self._events.emit(
                    MonitorEventType.ALERT_UPDATED,
                    alert_id=existing.id,
                    status=existing.status.value,
                )
                return existing, False

            alert = Alert(
                id=new_alert_id(now),
                rule_id=rule.id,
                severity=rule.severity,
                category=rule.category,
                unit_id=unit_id,
                title=rule.name,
                message=render_template(rule.description, details),
                details=details,
                created_at=now,
                updated_at=now,
                tags=[*rule.tags, f"unit:{unit_id}"],
            )
            self._alerts[alert.id] = alert
            self._persist(alert)

        logger.info(
            "alert_created",
            alert_id=alert.id,
            rule_id=rule.id,
            unit_id=unit_id,
            severity=alert.severity.value,
        )
        await self._events.emit(
            MonitorEventType.ALERT_CREATED,
            alert_id=alert.id,
            rule_id=rule.id,
            unit_id=unit_id,
            severity=alert.severity.value,
        )

        self._spawn(self._dispatcher.send_notifications(alert, rule), alert.id)

        if rule.escalation_policy:
            policy = self._policies.get(rule.escalation_policy)
            if policy is None:
                logger.warning(
                    "escalation_policy_missing",
                    rule_id=rule.id,
                    policy_id=rule.escalation_policy,
                )
            elif policy.enabled:
                self._scheduler.arm(alert, policy, self._escalate)

        return alert, True

    def _find_absorbing(self, rule_id: str, unit_id: str, now: float) -> Alert | None:
        for alert in self._alerts.values():
            if alert.rule_id != rule_id or alert.unit_id != unit_id:
                continue
            if alert.is_open:
                return alert
            if (
                alert.status == AlertStatus.SUPPRESSED
                and alert.suppressed_until is not None
                and alert.suppressed_until > now
            ):
                return alert
        return None

    # ── Transitions ─────────────────────────────────────────────

    async def acknowledge(self, alert_id: str, actor: str) -> bool:
        alert = self._alerts.get(alert_id)
        if alert is None or alert.status != AlertStatus.ACTIVE:
            return False
        now = self._clock()
        alert.status = AlertStatus.ACKNOWLEDGED
        alert.acknowledged_by = actor
        alert.acknowledged_at = now
        alert.updated_at = now
        self._persist(alert)
        logger.info("alert_acknowledged", alert_id=alert_id, actor=actor)
        await self._events.emit(
            MonitorEventType.ALERT_ACKNOWLEDGED, alert_id=alert_id, actor=actor,
        )
        return True

    async def resolve(self, alert_id: str) -> bool:
        alert = self._alerts.get(alert_id)
        if alert is None or alert.status == AlertStatus.RESOLVED:
            return False
        now = self._clock()
        alert.status = AlertStatus.RESOLVED
        alert.resolved_at = now
        alert.updated_at = now
        self._scheduler.cancel(alert_id)
        self._persist(alert)
        logger.info("alert_resolved", alert_id=alert_id)
        await self._events.emit(MonitorEventType.ALERT_RESOLVED, alert_id=alert_id)
        return True

    async def suppress(self, alert_id: str, until: float) -> bool:
        alert = self._alerts.get(alert_id)
        if alert is None or not alert.is_open:
            return False
        alert.status = AlertStatus.SUPPRESSED
        alert.suppressed_until = until
        alert.updated_at = self._clock()
        self._scheduler.cancel(alert_id)
        self._persist(alert)
        logger.info("alert_suppressed", alert_id=alert_id, until=until)
        await self._events.emit(
            MonitorEventType.ALERT_SUPPRESSED, alert_id=alert_id, until=until,
        )
        return True

    async def _escalate(self, alert: Alert, level: EscalationLevel) -> None:
        results = await self._dispatcher.send_to_channels(alert, level.channels)
        alert.escalation_level = max(alert.escalation_level + 1, level.level)
        alert.updated_at = self._clock()
        self._persist(alert)
        logger.warning(
            "alert_escalated",
            alert_id=alert.id,
            level=alert.escalation_level,
            channels=level.channels,
        )
        await self._events.emit(
            MonitorEventType.ALERT_ESCALATED,
            alert_id=alert.id,
            level=alert.escalation_level,
            delivered=sum(1 for r in results if r.delivered),
        )

    # ── Queries ─────────────────────────────────────────────────

    def get(self, alert_id: str) -> Alert | None:
        return self._alerts.get(alert_id)

    def get_alerts(
        self,
        status: AlertStatus | None = None,
        severity: AlertSeverity | None = None,
        unit_ids: Iterable[str] | None = None,
        limit: int | None = None,
    ) -> list[Alert]:
        """Alerts matching every given filter, newest first."""
        units = set(unit_ids) if unit_ids is not None else None
        alerts = [
            a for a in self._alerts.values()
            if (status is None or a.status == status)
            and (severity is None or a.severity == severity)
            and (units is None or a.unit_id in units)
        ]
        alerts.sort(key=lambda a: a.created_at, reverse=True)
        if limit is not None:
            alerts = alerts[:limit]
        return alerts

    def active_count(self) -> int:
        return sum(1 for a in self._alerts.values() if a.status == AlertStatus.ACTIVE)

    def get_stats(self, now: float | None = None) -> AlertStats:
        now = self._clock() if now is None else now
        stats = AlertStats(total=len(self._alerts))
        resolution_secs: list[float] = []

        for alert in self._alerts.values():
            if alert.status == AlertStatus.ACTIVE:
                stats.active += 1
            elif alert.status == AlertStatus.ACKNOWLEDGED:
                stats.acknowledged += 1
            elif alert.status == AlertStatus.RESOLVED:
                stats.resolved += 1
            else:
                stats.suppressed += 1

            stats.by_severity[alert.severity.value] = stats.by_severity.get(alert.severity.value, 0) + 1
            stats.by_category[alert.category.value] = stats.by_category.get(alert.category.value, 0) + 1
            stats.by_unit[alert.unit_id] = stats.by_unit.get(alert.unit_id, 0) + 1

            if now - alert.created_at <= _RECENT_WINDOW_SECS:
                stats.recent_alerts += 1
            if alert.resolved_at is not None:
                resolution_secs.append(alert.resolved_at - alert.created_at)

        if resolution_secs:
            mean_minutes = sum(resolution_secs) / len(resolution_secs) / 60.0
            stats.average_resolution_minutes = float(math.floor(mean_minutes + 0.5))
        return stats

    # ── Persistence & lifecycle ─────────────────────────────────

    def load(self) -> int:
        """Reload persisted alerts. Returns the number of records loaded."""
        if self._repository is None:
            return 0
        loaded = self._repository.load_all()
        for alert in loaded:
            self._alerts[alert.id] = alert
        logger.info("alerts_loaded", count=len(loaded))
        return len(loaded)

    def _persist(self, alert: Alert) -> None:
        if self._repository is not None:
            self._repository.save(alert)

    def _spawn(self, coro: Any, alert_id: str) -> None:
        task = asyncio.create_task(coro, name=f"notify-{alert_id}")
        self._notify_tasks.add(task)
        task.add_done_callback(self._notify_done)

    def _notify_done(self, task: asyncio.Task[Any]) -> None:
        self._notify_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("notification_task_failed", task=task.get_name(), error=str(exc))

    async def drain(self) -> None:
        """Wait for every in-flight background notification."""
        while self._notify_tasks:
            await asyncio.gather(*list(self._notify_tasks), return_exceptions=True)

    async def close(self) -> None:
        await self._scheduler.close()
        await self.drain()
