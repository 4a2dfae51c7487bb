"""Health sampling — providers, runtime metrics, scoring and the sampling loop."""

from healthwatch.health.exceptions import (
    HealthCheckError,
    MetricsProviderError,
    RecoveryError,
    UnitCheckError,
)
from healthwatch.health.providers import (
    HttpMetricsProvider,
    HttpRecoveryService,
    MetricsProvider,
    RecoveryService,
)
from healthwatch.health.runtime import HostResourceSampler, HttpProbeSampler, RuntimeSampler
from healthwatch.health.sampler import HealthSampler

__all__ = [
    "HealthCheckError",
    "HealthSampler",
    "HostResourceSampler",
    "HttpMetricsProvider",
    "HttpProbeSampler",
    "HttpRecoveryService",
    "MetricsProvider",
    "MetricsProviderError",
    "RecoveryError",
    "RecoveryService",
    "RuntimeSampler",
    "UnitCheckError",
]
