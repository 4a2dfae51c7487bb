"""RuleEngine — filters, cooldown, then the condition tree."""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from typing import Any

import structlog

from healthwatch.alerts.conditions import (
    ConditionDetector,
    default_detectors,
    evaluate_condition,
    matches_filter,
    resolve_path,
)
from healthwatch.core.types import AlertRule

logger = structlog.stdlib.get_logger()


def context_unit(payload: Any) -> str:
    """The unit a payload describes, or ``"unknown"``."""
    unit = resolve_path(payload, "unit_id")
    return str(unit) if unit is not None else "unknown"


class RuleEngine:
    """Evaluates alert rules against structured payloads.

    Evaluation order is fixed: disabled check, field filters (cheap
    rejects), cooldown for the (rule, unit) context, then the condition
    tree. A rule that fires records the firing time; it will not fire again
    for the same unit until ``cooldown_minutes`` have elapsed.

    A condition that raises is logged and treated as not firing.
    """

    def __init__(
        self,
        detectors: Mapping[str, ConditionDetector] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._detectors: dict[str, ConditionDetector] = dict(
            detectors if detectors is not None else default_detectors()
        )
        self._clock = clock
        self._last_fired: dict[tuple[str, str], float] = {}

    def register_detector(self, condition_type: str, detector: ConditionDetector) -> None:
        """Replace the detector used for *condition_type* (``anomaly`` / ``change``)."""
        self._detectors[condition_type] = detector

    # ── Evaluation ──────────────────────────────────────────────

    def evaluate(self, rule: AlertRule, payload: Any) -> bool:
        if not rule.enabled:
            return False

        unit = context_unit(payload)
        try:
            if not self.passes_filters(rule, payload):
                return False

            now = self._clock()
            if self.in_cooldown(rule, unit, now):
                return False

            fired = evaluate_condition(
                rule.condition, payload, self._detectors, scope=f"{rule.id}:{unit}",
            )
        except Exception:
            logger.exception("rule_evaluation_error", rule_id=rule.id, unit_id=unit)
            return False

        if fired:
            self._last_fired[(rule.id, unit)] = now
            logger.debug("rule_fired", rule_id=rule.id, unit_id=unit)
        return fired

    def passes_filters(self, rule: AlertRule, payload: Any) -> bool:
        return all(matches_filter(f, payload) for f in rule.filters)

    # ── Cooldown state ──────────────────────────────────────────

    def in_cooldown(self, rule: AlertRule, unit_id: str, now: float | None = None) -> bool:
        last = self._last_fired.get((rule.id, unit_id))
        if last is None:
            return False
        now = self._clock() if now is None else now
        return now - last < rule.cooldown_minutes * 60.0

    def last_fired(self, rule_id: str, unit_id: str) -> float | None:
        return self._last_fired.get((rule_id, unit_id))

    def reset_cooldown(self, rule_id: str, unit_id: str | None = None) -> None:
        """Clear cooldown state for a rule, optionally for one unit only."""
        if unit_id is not None:
            self._last_fired.pop((rule_id, unit_id), None)
            return
        for key in [k for k in self._last_fired if k[0] == rule_id]:
            del self._last_fired[key]
