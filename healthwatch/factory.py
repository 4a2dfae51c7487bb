"""Convenience factory for wiring the monitoring stack."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TypeVar

import structlog

from healthwatch.alerts.defaults import default_channels, default_policies, default_rules
from healthwatch.alerts.engine import RuleEngine
from healthwatch.alerts.escalation import EscalationScheduler
from healthwatch.alerts.manager import AlertManager
from healthwatch.alerts.store import AlertStore
from healthwatch.core.config import ChannelConfig, Settings
from healthwatch.core.events import EventHub
from healthwatch.core.persistence import AlertRepository, ReportWriter
from healthwatch.core.types import AlertRule, EscalationPolicy
from healthwatch.health.providers import (
    HttpMetricsProvider,
    HttpRecoveryService,
    MetricsProvider,
    RecoveryService,
)
from healthwatch.health.runtime import HostResourceSampler, HttpProbeSampler, RuntimeSampler
from healthwatch.health.sampler import HealthSampler
from healthwatch.notifications.channels import build_channel
from healthwatch.notifications.dispatcher import NotificationDispatcher

logger = structlog.get_logger(__name__)

_T = TypeVar("_T", ChannelConfig, AlertRule, EscalationPolicy)


@dataclass
class MonitorStack:
    """Every wired component, plus the resources the factory owns."""

    settings: Settings
    events: EventHub
    dispatcher: NotificationDispatcher
    scheduler: EscalationScheduler
    store: AlertStore
    manager: AlertManager
    sampler: HealthSampler
    _owned: list[Callable[[], Awaitable[None]]] = field(default_factory=list, repr=False)

    async def close(self) -> None:
        """Stop sampling, cancel escalations, flush notifications, close clients."""
        await self.sampler.close()
        await self.manager.close()
        await self.dispatcher.close()
        for close in self._owned:
            try:
                await close()
            except Exception:
                logger.exception("stack_close_error")


def _merge_by_id(
    defaults: list[_T], configured: list[_T],
) -> list[_T]:
    merged = {item.id: item for item in defaults}
    for item in configured:
        merged[item.id] = item
    return list(merged.values())


def create_monitor_stack(
    settings: Settings,
    provider: MetricsProvider | None = None,
    runtime: RuntimeSampler | None = None,
    recovery: RecoveryService | None = None,
) -> MonitorStack:
    """Build the full stack from settings.

    Collaborators that are not passed in are created from config: the HTTP
    metrics provider and recovery service, and an HTTP probe sampler with
    host resources. Invalid channel options raise ``ChannelConfigError``.
    """
    mon = settings.monitoring
    alerting = settings.alerting
    owned: list[Callable[[], Awaitable[None]]] = []

    events = EventHub()

    # ── Notifications ────────────────────────────────────────────
    channel_configs = alerting.channels
    rules = alerting.rules
    if alerting.include_default_rules:
        channel_configs = _merge_by_id(default_channels(mon.data_dir), channel_configs)
        rules = _merge_by_id(
            default_rules(mon.thresholds, alerting.cooldown_minutes), rules,
        )
    dispatcher = NotificationDispatcher(
        channels=[build_channel(cfg) for cfg in channel_configs],
        events=events,
    )

    # ── Alerting ─────────────────────────────────────────────────
    scheduler = EscalationScheduler()
    store = AlertStore(
        dispatcher=dispatcher,
        scheduler=scheduler,
        repository=AlertRepository(Path(mon.data_dir) / "alerts"),
        events=events,
    )
    manager = AlertManager(
        store=store,
        engine=RuleEngine(),
        rules=rules,
        policies=_merge_by_id(default_policies(), alerting.escalation_policies),
        enabled=alerting.enabled,
    )

    # ── Health sampling ──────────────────────────────────────────
    if provider is None:
        http_provider = HttpMetricsProvider(settings.provider)
        owned.append(http_provider.close)
        provider = http_provider

    if recovery is None and mon.enable_auto_recovery:
        http_recovery = HttpRecoveryService(settings.provider)
        owned.append(http_recovery.close)
        recovery = http_recovery

    if runtime is None:
        runtime = HttpProbeSampler(
            settings.runtime.probes,
            window_size=settings.runtime.window_size,
            host=HostResourceSampler(settings.runtime.disk_path),
        )

    sampler = HealthSampler(
        config=mon,
        provider=provider,
        runtime=runtime,
        alerts=manager,
        recovery=recovery,
        events=events,
        reports=ReportWriter(mon.data_dir),
    )

    logger.info(
        "monitor_stack_created",
        units=len(mon.units),
        channels=len(channel_configs),
        rules=len(rules),
        alerting=alerting.enabled,
    )

    return MonitorStack(
        settings=settings,
        events=events,
        dispatcher=dispatcher,
        scheduler=scheduler,
        store=store,
        manager=manager,
        sampler=sampler,
        _owned=owned,
    )
