"""HealthSampler — periodic sampling loop, per-unit checks and auto-recovery."""

from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import Callable, Sequence
from typing import Any

import structlog

from healthwatch.alerts.manager import AlertManager
from healthwatch.core.config import MonitoringConfig
from healthwatch.core.events import EventHub
from healthwatch.core.persistence import ReportWriter
from healthwatch.core.types import (
    HealthStatus,
    HealthTrend,
    MonitorEventType,
    MonitoringReport,
    RecoveryOptions,
    UnitStatus,
    ValidationOptions,
    ValidationResult,
)
from healthwatch.health.exceptions import UnitCheckError
from healthwatch.health.providers import MetricsProvider, RecoveryService
from healthwatch.health.runtime import RuntimeSampler
from healthwatch.health.scoring import (
    classify_status,
    compute_health_score,
    metrics_score,
    offline_status,
    overall_health,
    recommendations,
    system_metrics,
    to_health_issue,
)

logger = structlog.stdlib.get_logger()

TREND_HISTORY = 100

_RECOVERY_STRATEGY = "repair"


class HealthSampler:
    """Samples every configured unit and keeps the latest status per unit.

    One pass checks all units concurrently (bounded by ``max_concurrency``).
    A unit whose provider call fails or times out after every retry becomes
    an ``offline`` status instead of failing the pass. After scoring, each
    status is run through the alert manager, auto-recovery is attempted for
    critical and offline units, and the report is written to disk.

    Usage::

        sampler = HealthSampler(config, provider, runtime, alerts=manager)
        await sampler.start_monitoring()
        ...
        await sampler.stop_monitoring()
    """

    def __init__(
        self,
        config: MonitoringConfig,
        provider: MetricsProvider,
        runtime: RuntimeSampler,
        alerts: AlertManager | None = None,
        recovery: RecoveryService | None = None,
        events: EventHub | None = None,
        reports: ReportWriter | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._provider = provider
        self._runtime = runtime
        self._alerts = alerts
        self._recovery = recovery
        self._events = events or EventHub()
        self._reports = reports
        self._clock = clock

        self._statuses: dict[str, HealthStatus] = {}
        self._trends: dict[str, deque[HealthTrend]] = {}
        self._semaphore = asyncio.Semaphore(config.max_concurrency)
        self._task: asyncio.Task[None] | None = None
        self._stop: asyncio.Event | None = None
        self._pass_count = 0

    @property
    def config(self) -> MonitoringConfig:
        return self._config

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def pass_count(self) -> int:
        return self._pass_count

    @property
    def events(self) -> EventHub:
        return self._events

    # ── Lifecycle ───────────────────────────────────────────────

    async def start_monitoring(self) -> None:
        """Start the periodic loop. The first pass runs immediately."""
        if self.running:
            logger.info("monitoring_already_running")
            return
        self._stop = asyncio.Event()
        self._task = asyncio.create_task(self._loop(self._stop), name="health-sampler")
        logger.info(
            "monitoring_started",
            units=len(self._config.units),
            interval_ms=self._config.interval_ms,
        )
        await self._events.emit(
            MonitorEventType.MONITORING_STARTED,
            units=list(self._config.units),
            interval_ms=self._config.interval_ms,
        )

    async def stop_monitoring(self) -> None:
        """Stop the loop, letting an in-flight pass finish first."""
        if self._task is None:
            return
        task, stop = self._task, self._stop
        self._task = None
        self._stop = None
        if stop is not None:
            stop.set()
        await task
        logger.info("monitoring_stopped", passes=self._pass_count)
        await self._events.emit(MonitorEventType.MONITORING_STOPPED, passes=self._pass_count)

    async def _loop(self, stop: asyncio.Event) -> None:
        while not stop.is_set():
            try:
                await self.perform_health_check()
            except Exception as exc:
                logger.exception("monitoring_pass_error")
                await self._events.emit(MonitorEventType.MONITORING_ERROR, error=str(exc))

            try:
                await asyncio.wait_for(stop.wait(), timeout=self._config.interval_ms / 1000.0)
            except TimeoutError:
                continue

    def update_config(self, **changes: Any) -> MonitoringConfig:
        """Replace monitoring options; takes effect from the next pass."""
        data = self._config.model_dump()
        data.update(changes)
        self._config = MonitoringConfig.model_validate(data)
        if "max_concurrency" in changes:
            self._semaphore = asyncio.Semaphore(self._config.max_concurrency)
        logger.info("monitoring_config_updated", fields=sorted(changes))
        return self._config

    # ── Sampling pass ───────────────────────────────────────────

    async def perform_health_check(self) -> MonitoringReport:
        """Run one pass over every configured unit and return its report."""
        started = time.perf_counter()
        units = list(self._config.units)
        await self._events.emit(MonitorEventType.HEALTH_CHECK_STARTED, units=units)

        try:
            statuses = list(await asyncio.gather(*(self._check_bounded(u) for u in units)))
            for status in statuses:
                self._statuses[status.unit_id] = status

            if self._alerts is not None:
                for status in statuses:
                    try:
                        await self._alerts.evaluate(status)
                    except Exception:
                        logger.exception("alert_evaluation_error", unit_id=status.unit_id)

            if self._config.enable_auto_recovery:
                await self._run_auto_recovery(statuses)

            report = self._build_report(statuses, started)
            if self._reports is not None:
                self._reports.save(report)
        except Exception as exc:
            logger.exception("health_check_failed")
            await self._events.emit(MonitorEventType.HEALTH_CHECK_FAILED, error=str(exc))
            raise

        self._pass_count += 1
        sm = report.system_metrics
        logger.info(
            "health_check_completed",
            overall_health=report.overall_health,
            healthy=sm.healthy_units,
            degraded=sm.degraded_units,
            critical=sm.critical_units,
            offline=sm.offline_units,
            duration_ms=round(report.duration_ms, 1),
        )
        await self._events.emit(
            MonitorEventType.HEALTH_CHECK_COMPLETED,
            overall_health=report.overall_health,
            units=len(statuses),
            active_alerts=report.active_alerts,
            duration_ms=report.duration_ms,
        )
        return report

    def _build_report(self, statuses: Sequence[HealthStatus], started: float) -> MonitoringReport:
        thresholds = self._config.thresholds
        return MonitoringReport(
            timestamp=self._clock(),
            overall_health=overall_health(statuses),
            unit_statuses=list(statuses),
            active_alerts=self._alerts.active_count() if self._alerts is not None else 0,
            resolved_issues=sum(1 for s in statuses for i in s.issues if i.resolved),
            system_metrics=system_metrics(statuses),
            recommendations=recommendations(statuses, thresholds),
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )

    # ── Per-unit checks ─────────────────────────────────────────

    async def _check_bounded(self, unit_id: str) -> HealthStatus:
        async with self._semaphore:
            try:
                return await self._check_unit(unit_id)
            except Exception as exc:
                logger.warning("unit_check_failed", unit_id=unit_id, error=str(exc))
                return self._offline(unit_id, str(exc))

    async def _validate(self, unit_id: str) -> ValidationResult:
        """Call the provider, each attempt bounded by ``timeout_ms``."""
        options = ValidationOptions()
        attempts = max(1, self._config.retry_attempts)
        timeout = self._config.timeout_ms / 1000.0
        last_error: Exception | None = None

        for attempt in range(1, attempts + 1):
            try:
                return await asyncio.wait_for(self._provider.validate(unit_id, options), timeout)
            except TimeoutError as exc:
                last_error = exc
                logger.warning("provider_timeout", unit_id=unit_id, attempt=attempt, timeout_secs=timeout)
            except Exception as exc:
                last_error = exc
                logger.warning("provider_error", unit_id=unit_id, attempt=attempt, error=str(exc))

        reason = "timed out" if isinstance(last_error, TimeoutError) else str(last_error)
        raise UnitCheckError(unit_id, f"provider failed after {attempts} attempts: {reason}")

    async def _check_unit(self, unit_id: str) -> HealthStatus:
        result = await self._validate(unit_id)
        metrics = await self._runtime.sample(unit_id)
        now = self._clock()
        thresholds = self._config.thresholds

        score = compute_health_score(result.health_score, metrics_score(metrics, thresholds))
        status = classify_status(score, metrics, thresholds)

        previous = self._statuses.get(unit_id)
        prior_issues = {i.id: i for i in previous.issues} if previous else {}
        issues = [to_health_issue(i, now, prior_issues.get(i.id)) for i in result.issues]

        if status == UnitStatus.OFFLINE:
            uptime = 0.0
        elif previous is not None and previous.status != UnitStatus.OFFLINE:
            uptime = previous.uptime_secs + max(0.0, now - previous.last_check)
        else:
            uptime = 0.0

        trends = self._record_trend(
            unit_id,
            HealthTrend(
                timestamp=now,
                health_score=score,
                metrics={
                    "response_time_ms": metrics.response_time_ms,
                    "error_rate": metrics.error_rate,
                    "memory_usage": metrics.memory_usage,
                    "cpu_usage": metrics.cpu_usage,
                },
            ),
        )

        return HealthStatus(
            unit_id=unit_id,
            health_score=score,
            status=status,
            last_check=now,
            uptime_secs=uptime,
            issues=issues,
            metrics=metrics,
            trends=trends,
        )

    def _offline(self, unit_id: str, reason: str) -> HealthStatus:
        now = self._clock()
        status = offline_status(unit_id, reason, now)
        previous = self._statuses.get(unit_id)
        if previous is not None:
            prior = {i.id: i for i in previous.issues}
            for issue in status.issues:
                if issue.id in prior:
                    issue.first_seen = prior[issue.id].first_seen
                    issue.occurrences = prior[issue.id].occurrences + 1
        status.trends = self._record_trend(
            unit_id, HealthTrend(timestamp=now, health_score=0, metrics={"error_rate": 1.0}),
        )
        return status

    def _record_trend(self, unit_id: str, trend: HealthTrend) -> list[HealthTrend]:
        history = self._trends.get(unit_id)
        if history is None:
            history = deque(maxlen=TREND_HISTORY)
            self._trends[unit_id] = history
        history.append(trend)
        return list(history)

    # ── Auto-recovery ───────────────────────────────────────────

    async def _run_auto_recovery(self, statuses: Sequence[HealthStatus]) -> None:
        candidates = [
            s for s in statuses
            if s.status in (UnitStatus.CRITICAL, UnitStatus.OFFLINE)
            and any(i.auto_recoverable for i in s.unresolved_issues)
        ]
        if not candidates:
            return
        if self._recovery is None:
            logger.debug("auto_recovery_unavailable", units=[s.unit_id for s in candidates])
            return

        target = self._config.thresholds.degraded
        options = RecoveryOptions(
            target_health_score=target,
            max_attempts=self._config.retry_attempts,
            timeout_ms=self._config.timeout_ms,
        )
        for status in candidates:
            unit_id = status.unit_id
            logger.info("auto_recovery_attempt", unit_id=unit_id, status=status.status.value)
            try:
                result = await self._recovery.execute_recovery(unit_id, _RECOVERY_STRATEGY, options)
            except Exception as exc:
                logger.exception("auto_recovery_error", unit_id=unit_id)
                await self._events.emit(
                    MonitorEventType.AUTO_RECOVERY_FAILED, unit_id=unit_id, error=str(exc),
                )
                continue

            if result.success and result.final_health_score >= target:
                logger.info(
                    "auto_recovery_success",
                    unit_id=unit_id,
                    final_health_score=result.final_health_score,
                )
                await self._events.emit(
                    MonitorEventType.AUTO_RECOVERY_SUCCESS,
                    unit_id=unit_id,
                    final_health_score=result.final_health_score,
                )
            else:
                logger.warning(
                    "auto_recovery_failed",
                    unit_id=unit_id,
                    success=result.success,
                    final_health_score=result.final_health_score,
                )
                await self._events.emit(
                    MonitorEventType.AUTO_RECOVERY_FAILED,
                    unit_id=unit_id,
                    final_health_score=result.final_health_score,
                )

    # ── Accessors ───────────────────────────────────────────────

    def get_module_status(self, unit_id: str) -> HealthStatus | None:
        return self._statuses.get(unit_id)

    def get_all_statuses(self) -> list[HealthStatus]:
        return list(self._statuses.values())

    def get_system_health(self) -> int:
        """Mean score over the latest statuses, 0 before the first pass."""
        return overall_health(list(self._statuses.values()))

    async def force_health_check(
        self, unit_id: str | None = None,
    ) -> HealthStatus | list[HealthStatus]:
        """Check one unit now, or run a full pass and return its statuses."""
        if unit_id is None:
            report = await self.perform_health_check()
            return report.unit_statuses
        status = await self._check_bounded(unit_id)
        self._statuses[unit_id] = status
        return status

    async def close(self) -> None:
        await self.stop_monitoring()
        await self._runtime.close()
