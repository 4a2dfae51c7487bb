"""Alerting exceptions."""

from __future__ import annotations


class AlertError(Exception):
    """Base exception for alerting errors."""


class UnknownRuleError(AlertError, KeyError):
    """No rule is registered under the given id."""


class DuplicateRuleError(AlertError):
    """A rule with the given id is already registered."""


class UnknownPolicyError(AlertError, KeyError):
    """No escalation policy is registered under the given id."""
