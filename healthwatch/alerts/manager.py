"""AlertManager — rule and escalation-policy registry in front of the store."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import structlog

from healthwatch.alerts.engine import RuleEngine, context_unit
from healthwatch.alerts.exceptions import DuplicateRuleError, UnknownPolicyError, UnknownRuleError
from healthwatch.alerts.store import AlertStore
from healthwatch.core.types import (
    Alert,
    AlertRule,
    AlertSeverity,
    AlertStats,
    AlertStatus,
    EscalationPolicy,
)

logger = structlog.get_logger(__name__)


class AlertManager:
    """Evaluates registered rules against health payloads.

    Each enabled rule is run through the :class:`RuleEngine`; rules that
    fire are handed to the :class:`AlertStore`, which decides whether a new
    alert is created or an open one absorbs the trigger.

    Usage::

        manager = AlertManager(store, rules=default_rules())
        new_alerts = await manager.evaluate(status)
    """

    def __init__(
        self,
        store: AlertStore,
        engine: RuleEngine | None = None,
        rules: Iterable[AlertRule] = (),
        policies: Iterable[EscalationPolicy] = (),
        enabled: bool = True,
    ) -> None:
        self._store = store
        self._engine = engine or RuleEngine()
        self._rules: dict[str, AlertRule] = {}
        self.enabled = enabled
        for policy in policies:
            self.add_policy(policy)
        for rule in rules:
            self.add_rule(rule, replace=True)

    @property
    def store(self) -> AlertStore:
        return self._store

    @property
    def engine(self) -> RuleEngine:
        return self._engine

    # ── Rules ───────────────────────────────────────────────────

    def add_rule(self, rule: AlertRule, replace: bool = False) -> None:
        if rule.id in self._rules and not replace:
            raise DuplicateRuleError(f"rule {rule.id!r} already registered")
        if rule.escalation_policy and rule.escalation_policy not in self._store.policies:
            logger.warning(
                "rule_policy_unknown", rule_id=rule.id, policy_id=rule.escalation_policy,
            )
        self._rules[rule.id] = rule
        logger.debug("rule_registered", rule_id=rule.id)

    def update_rule(self, rule_id: str, **changes: Any) -> AlertRule:
        """Replace a rule with a validated copy carrying *changes*."""
        current = self.get_rule(rule_id)
        data = current.model_dump()
        data.update(changes)
        data["id"] = rule_id
        updated = AlertRule.model_validate(data)
        self._rules[rule_id] = updated
        self._engine.reset_cooldown(rule_id)
        logger.info("rule_updated", rule_id=rule_id, fields=sorted(changes))
        return updated

    def remove_rule(self, rule_id: str) -> None:
        if self._rules.pop(rule_id, None) is None:
            raise UnknownRuleError(rule_id)
        self._engine.reset_cooldown(rule_id)
        logger.info("rule_removed", rule_id=rule_id)

    def set_rule_enabled(self, rule_id: str, enabled: bool) -> AlertRule:
        return self.update_rule(rule_id, enabled=enabled)

    def get_rule(self, rule_id: str) -> AlertRule:
        try:
            return self._rules[rule_id]
        except KeyError:
            raise UnknownRuleError(rule_id) from None

    def list_rules(self, enabled_only: bool = False) -> list[AlertRule]:
        return [r for r in self._rules.values() if r.enabled or not enabled_only]

    # ── Policies ────────────────────────────────────────────────

    def add_policy(self, policy: EscalationPolicy) -> None:
        self._store.policies[policy.id] = policy

    def get_policy(self, policy_id: str) -> EscalationPolicy:
        try:
            return self._store.policies[policy_id]
        except KeyError:
            raise UnknownPolicyError(policy_id) from None

    def list_policies(self) -> list[EscalationPolicy]:
        return list(self._store.policies.values())

    # ── Evaluation ──────────────────────────────────────────────

    async def evaluate(self, payload: Any) -> list[Alert]:
        """Run every enabled rule against *payload*; returns newly created alerts."""
        if not self.enabled:
            return []

        created: list[Alert] = []
        for rule in list(self._rules.values()):
            if not self._engine.evaluate(rule, payload):
                continue
            try:
                alert, is_new = await self._store.create_or_update(rule, payload)
            except Exception:
                logger.exception(
                    "alert_creation_error", rule_id=rule.id, unit_id=context_unit(payload),
                )
                continue
            if is_new:
                created.append(alert)
        return created

    # ── Lifecycle pass-through ──────────────────────────────────

    async def acknowledge(self, alert_id: str, actor: str) -> bool:
        return await self._store.acknowledge(alert_id, actor)

    async def resolve(self, alert_id: str) -> bool:
        return await self._store.resolve(alert_id)

    async def suppress(self, alert_id: str, until: float) -> bool:
        return await self._store.suppress(alert_id, until)

    def get_alerts(
        self,
        status: AlertStatus | None = None,
        severity: AlertSeverity | None = None,
        unit_ids: Iterable[str] | None = None,
        limit: int | None = None,
    ) -> list[Alert]:
        return self._store.get_alerts(status=status, severity=severity, unit_ids=unit_ids, limit=limit)

    def get_stats(self) -> AlertStats:
        return self._store.get_stats()

    def active_count(self) -> int:
        return self._store.active_count()

    async def close(self) -> None:
        await self._store.close()
