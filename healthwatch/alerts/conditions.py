"""Condition evaluation — path resolution, comparators, and pluggable detectors.

Threshold and composite conditions are evaluated here directly. Anomaly and
change conditions are heuristics delegated to a :class:`ConditionDetector`
registered for their type, so a statistical implementation can be dropped
in without touching the rule engine.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from pydantic import BaseModel

from healthwatch.core.types import (
    AlertCondition,
    AlertFilter,
    AnomalyCondition,
    ChangeCondition,
    ComparisonOperator,
    CompositeCondition,
    FilterOperator,
    ThresholdCondition,
)

_PLACEHOLDER = re.compile(r"\{([A-Za-z_][\w.]*)\}")


# ── Payload access ──────────────────────────────────────────────


def to_payload(obj: Any) -> dict[str, Any]:
    """Normalise a pydantic model or mapping into a plain dict."""
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    if isinstance(obj, Mapping):
        return dict(obj)
    raise TypeError(f"unsupported payload type: {type(obj).__name__}")


def resolve_path(payload: Any, path: str) -> Any:
    """Resolve a dotted *path* into *payload*; None if any segment is missing.

    Segments index mappings by key, sequences by integer position, and fall
    back to attribute access for other objects.
    """
    current = payload
    for segment in path.split("."):
        if current is None:
            return None
        if isinstance(current, Mapping):
            current = current.get(segment)
        elif isinstance(current, Sequence) and not isinstance(current, str | bytes):
            try:
                current = current[int(segment)]
            except (ValueError, IndexError):
                return None
        else:
            current = getattr(current, segment, None)
    return current


def render_template(template: str, payload: Any) -> str:
    """Replace ``{dotted.path}`` placeholders; unknown placeholders stay as-is."""

    def _sub(match: re.Match[str]) -> str:
        value = resolve_path(payload, match.group(1))
        return match.group(0) if value is None else str(value)

    return _PLACEHOLDER.sub(_sub, template)


# ── Comparators ─────────────────────────────────────────────────


def _to_number(value: Any) -> float:
    if isinstance(value, bool):
        return float(value)
    number = float(value)
    if math.isnan(number):
        raise ValueError("NaN is not comparable")
    return number


def _loose_equals(actual: Any, expected: Any) -> bool:
    if actual == expected:
        return True
    try:
        return _to_number(actual) == _to_number(expected)
    except (TypeError, ValueError):
        return str(actual) == str(expected)


def _contains(actual: Any, expected: Any) -> bool:
    if isinstance(actual, Mapping):
        return expected in actual
    if isinstance(actual, list | tuple | set | frozenset):
        return expected in actual or str(expected) in (str(a) for a in actual)
    return str(expected) in str(actual)


def compare(actual: Any, operator: ComparisonOperator | str, expected: Any) -> bool:
    """Apply a comparison operator. Numeric operators coerce both sides."""
    op = ComparisonOperator(operator)
    if op is ComparisonOperator.GT:
        return _to_number(actual) > _to_number(expected)
    if op is ComparisonOperator.LT:
        return _to_number(actual) < _to_number(expected)
    if op is ComparisonOperator.GTE:
        return _to_number(actual) >= _to_number(expected)
    if op is ComparisonOperator.LTE:
        return _to_number(actual) <= _to_number(expected)
    if op is ComparisonOperator.EQ:
        return _loose_equals(actual, expected)
    if op is ComparisonOperator.NE:
        return not _loose_equals(actual, expected)
    if op is ComparisonOperator.CONTAINS:
        return _contains(actual, expected)
    return not _contains(actual, expected)


def matches_filter(flt: AlertFilter, payload: Any) -> bool:
    """Evaluate one field filter against *payload*."""
    value = resolve_path(payload, flt.field)
    op = flt.operator
    if op is FilterOperator.EQ:
        return _loose_equals(value, flt.value)
    if op is FilterOperator.NE:
        return not _loose_equals(value, flt.value)
    if op is FilterOperator.CONTAINS:
        return value is not None and _contains(value, flt.value)
    if op is FilterOperator.NOT_CONTAINS:
        return value is None or not _contains(value, flt.value)
    if op is FilterOperator.IN:
        return isinstance(flt.value, list | tuple | set) and value in flt.value
    return not isinstance(flt.value, list | tuple | set) or value not in flt.value


# ── Heuristic detectors ─────────────────────────────────────────


class ConditionDetector(Protocol):
    """Evaluates a non-threshold condition type.

    *scope* identifies the (rule, unit) context so stateful detectors can
    keep separate history per context.
    """

    def check(self, condition: Any, payload: Any, scope: str) -> bool: ...


class DeviationDetector:
    """Anomaly heuristic: relative deviation from a fixed reference value.

    Fires when ``|current - reference| / |reference|`` exceeds the
    condition's tolerance. A zero reference compares the absolute value.
    """

    def check(self, condition: AnomalyCondition, payload: Any, scope: str) -> bool:
        raw = resolve_path(payload, condition.metric)
        if raw is None:
            return False
        current = _to_number(raw)
        reference = float(condition.value)
        if reference == 0:
            return abs(current) > condition.tolerance
        return abs(current - reference) / abs(reference) > condition.tolerance


class DeltaDetector:
    """Change heuristic: absolute change since the previous observation.

    The first observation for a scope only records a baseline.
    """

    def __init__(self) -> None:
        self._last: dict[tuple[str, str], float] = {}

    def check(self, condition: ChangeCondition, payload: Any, scope: str) -> bool:
        raw = resolve_path(payload, condition.metric)
        if raw is None:
            return False
        current = _to_number(raw)
        key = (scope, condition.metric)
        previous = self._last.get(key)
        self._last[key] = current
        if previous is None:
            return False
        return abs(current - previous) >= condition.value

    def forget(self, scope_prefix: str = "") -> None:
        for key in [k for k in self._last if k[0].startswith(scope_prefix)]:
            del self._last[key]


def default_detectors() -> dict[str, ConditionDetector]:
    return {"anomaly": DeviationDetector(), "change": DeltaDetector()}


# ── Evaluation ──────────────────────────────────────────────────


def evaluate_condition(
    condition: AlertCondition,
    payload: Any,
    detectors: Mapping[str, ConditionDetector],
    scope: str = "",
) -> bool:
    """Evaluate a condition tree. Exceptions propagate to the caller."""
    if isinstance(condition, ThresholdCondition):
        actual = resolve_path(payload, condition.metric)
        if actual is None:
            return False
        return compare(actual, condition.operator, condition.value)

    if isinstance(condition, CompositeCondition):
        if not condition.conditions:
            return False
        # every child runs so stateful detectors see each observation
        results = [
            evaluate_condition(child, payload, detectors, scope)
            for child in condition.conditions
        ]
        return all(results) if condition.operator == "AND" else any(results)

    detector = detectors.get(condition.type)
    if detector is None:
        raise LookupError(f"no detector registered for condition type {condition.type!r}")
    return detector.check(condition, payload, scope)
