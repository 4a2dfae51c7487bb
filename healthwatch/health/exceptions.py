"""Exception hierarchy for health sampling and recovery."""

from __future__ import annotations


class HealthCheckError(Exception):
    """Base exception for all health-check errors."""


class UnitCheckError(HealthCheckError):
    """A single unit could not be checked."""

    def __init__(self, unit_id: str, message: str) -> None:
        super().__init__(f"{unit_id}: {message}")
        self.unit_id = unit_id


class MetricsProviderError(HealthCheckError):
    """The metrics provider failed or returned an unusable response."""


class RecoveryError(HealthCheckError):
    """The recovery service failed or returned an unusable response."""
