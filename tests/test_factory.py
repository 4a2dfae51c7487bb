"""Tests for the monitor stack factory — default merging, wiring, shutdown."""

from __future__ import annotations

from pathlib import Path

import pytest

from healthwatch.core.config import AlertingConfig, ChannelConfig, MonitoringConfig, Settings
from healthwatch.core.types import (
    AlertRule,
    ChannelType,
    ComparisonOperator,
    EscalationLevel,
    EscalationPolicy,
    HealthMetrics,
    UnitStatus,
    ValidationOptions,
    ValidationResult,
)
from healthwatch.factory import create_monitor_stack
from healthwatch.health.providers import HttpMetricsProvider, HttpRecoveryService
from healthwatch.health.runtime import HttpProbeSampler, RuntimeSampler
from healthwatch.notifications.channels import ConsoleChannel, FileChannel
from healthwatch.notifications.exceptions import ChannelConfigError


# ── Helpers ─────────────────────────────────────────────────────


class StaticProvider:
    def __init__(self, score: float = 90) -> None:
        self.score = score

    async def validate(self, unit_id: str, options: ValidationOptions) -> ValidationResult:
        return ValidationResult(health_score=self.score)


class StaticRuntime(RuntimeSampler):
    def __init__(self) -> None:
        self.closed = False

    async def sample(self, unit_id: str) -> HealthMetrics:
        return HealthMetrics()

    async def close(self) -> None:
        self.closed = True


def _settings(tmp_path: Path, **alerting: object) -> Settings:
    return Settings(
        monitoring=MonitoringConfig(
            units=["auth", "payments"], data_dir=str(tmp_path), enable_auto_recovery=False,
        ),
        alerting=AlertingConfig(**alerting),  # type: ignore[arg-type]
    )


def _rule(rule_id: str, **kw: object) -> AlertRule:
    defaults: dict[str, object] = {
        "id": rule_id,
        "name": rule_id,
        "condition": {"type": "threshold", "metric": "health_score",
                      "operator": ComparisonOperator.LT, "value": 80},
    }
    defaults.update(kw)
    return AlertRule(**defaults)  # type: ignore[arg-type]


# ── Wiring ──────────────────────────────────────────────────────


class TestFactoryWiring:
    def test_defaults_included(self, tmp_path: Path) -> None:
        stack = create_monitor_stack(_settings(tmp_path), StaticProvider(), StaticRuntime())
        channels = stack.dispatcher.channels
        assert isinstance(channels["console"], ConsoleChannel)
        assert isinstance(channels["file"], FileChannel)
        assert channels["file"].path == tmp_path / "alerts" / "alerts.log"
        assert {r.id for r in stack.manager.list_rules()} == {
            "critical-health", "module-offline", "high-error-rate",
        }
        assert stack.manager.get_policy("default").levels[1].delay_minutes == 30
        assert stack.store.scheduler is stack.scheduler

    def test_defaults_excluded(self, tmp_path: Path) -> None:
        stack = create_monitor_stack(
            _settings(tmp_path, include_default_rules=False, rules=[_rule("mine")]),
            StaticProvider(), StaticRuntime(),
        )
        assert list(stack.dispatcher.channels) == []
        assert [r.id for r in stack.manager.list_rules()] == ["mine"]
        assert stack.manager.get_policy("default") is not None

    def test_configured_overrides_default_by_id(self, tmp_path: Path) -> None:
        settings = _settings(
            tmp_path,
            rules=[_rule("critical-health", cooldown_minutes=1), _rule("extra")],
            channels=[ChannelConfig(
                id="file", type=ChannelType.FILE, options={"path": str(tmp_path / "custom.log")},
            )],
            escalation_policies=[EscalationPolicy(
                id="default",
                levels=[EscalationLevel(level=1, delay_minutes=5, channels=["file"])],
            )],
        )
        stack = create_monitor_stack(settings, StaticProvider(), StaticRuntime())
        assert stack.manager.get_rule("critical-health").cooldown_minutes == 1
        assert len(stack.manager.list_rules()) == 4
        assert stack.dispatcher.channels["file"].path == tmp_path / "custom.log"
        assert len(stack.manager.get_policy("default").levels) == 1

    def test_invalid_channel_options(self, tmp_path: Path) -> None:
        settings = _settings(
            tmp_path, channels=[ChannelConfig(id="hook", type=ChannelType.WEBHOOK)],
        )
        with pytest.raises(ChannelConfigError):
            create_monitor_stack(settings, StaticProvider(), StaticRuntime())

    def test_http_collaborators_by_default(self, tmp_path: Path) -> None:
        settings = _settings(tmp_path)
        settings.monitoring.enable_auto_recovery = True
        stack = create_monitor_stack(settings)
        assert isinstance(stack.sampler._provider, HttpMetricsProvider)
        assert isinstance(stack.sampler._recovery, HttpRecoveryService)
        assert isinstance(stack.sampler._runtime, HttpProbeSampler)

    def test_alerting_disabled(self, tmp_path: Path) -> None:
        stack = create_monitor_stack(
            _settings(tmp_path, enabled=False), StaticProvider(), StaticRuntime(),
        )
        assert stack.manager.enabled is False


# ── End to end ──────────────────────────────────────────────────


class TestStackRun:
    async def test_pass_writes_report_and_alerts(self, tmp_path: Path) -> None:
        runtime = StaticRuntime()
        stack = create_monitor_stack(
            _settings(tmp_path, include_default_rules=False, rules=[_rule("below-80")]),
            StaticProvider(score=30),
            runtime,
        )
        report = await stack.sampler.perform_health_check()
        await stack.store.drain()

        assert {s.status for s in report.unit_statuses} == {UnitStatus.DEGRADED}
        assert report.active_alerts == 2
        assert len(list(tmp_path.glob("health-report-*.json"))) == 1
        assert len(list((tmp_path / "alerts").glob("alert-*.json"))) == 2

        await stack.close()
        assert runtime.closed

    async def test_close_idempotent_without_start(self, tmp_path: Path) -> None:
        stack = create_monitor_stack(_settings(tmp_path))
        await stack.close()
        assert not stack.sampler.running
