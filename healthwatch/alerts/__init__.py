"""Alerting — rule evaluation, alert lifecycle and escalation."""

from healthwatch.alerts.conditions import (
    ConditionDetector,
    DeltaDetector,
    DeviationDetector,
    evaluate_condition,
)
from healthwatch.alerts.defaults import default_channels, default_policies, default_rules
from healthwatch.alerts.engine import RuleEngine
from healthwatch.alerts.escalation import EscalationScheduler
from healthwatch.alerts.exceptions import (
    AlertError,
    DuplicateRuleError,
    UnknownPolicyError,
    UnknownRuleError,
)
from healthwatch.alerts.manager import AlertManager
from healthwatch.alerts.store import AlertStore

__all__ = [
    "AlertError",
    "AlertManager",
    "AlertStore",
    "ConditionDetector",
    "DeltaDetector",
    "DeviationDetector",
    "DuplicateRuleError",
    "EscalationScheduler",
    "RuleEngine",
    "UnknownPolicyError",
    "UnknownRuleError",
    "default_channels",
    "default_policies",
    "default_rules",
    "evaluate_condition",
]
