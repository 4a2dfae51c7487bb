"""Pydantic settings loaded from YAML configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, SecretStr

from healthwatch.core.types import AlertRule, ChannelType, EscalationPolicy

_settings: Settings | None = None

_DEFAULT_CONFIG_PATH = Path("config/settings.yaml")

DEFAULT_UNITS: list[str] = [
    "auth",
    "i18n",
    "cv-processing",
    "multimedia",
    "analytics",
    "premium",
    "public-profiles",
    "recommendations",
    "admin",
    "workflow",
    "payments",
]


class AlertThresholdsConfig(BaseModel):
    """Score cutoffs and metric thresholds used for classification."""

    critical: int = 30
    degraded: int = 60
    error_rate: float = 0.05
    response_time_ms: float = 5000.0


class MonitoringConfig(BaseModel):
    """Sampling loop configuration."""

    interval_ms: int = 30_000
    retry_attempts: int = 3
    timeout_ms: int = 10_000
    enable_auto_recovery: bool = True
    max_concurrency: int = 10
    data_dir: str = "monitoring"
    units: list[str] = Field(default_factory=lambda: list(DEFAULT_UNITS))
    thresholds: AlertThresholdsConfig = AlertThresholdsConfig()


class ProviderConfig(BaseModel):
    """HTTP endpoints of the validation and recovery services."""

    metrics_base_url: str = "http://localhost:8700"
    recovery_base_url: str = "http://localhost:8700"
    api_key: SecretStr = SecretStr("")
    request_timeout_secs: float = 10.0


class ProbeConfig(BaseModel):
    """Runtime probe endpoint for one unit."""

    url: str
    timeout_ms: int = 5000


class RuntimeConfig(BaseModel):
    """Runtime metric sampling configuration."""

    probes: dict[str, ProbeConfig] = Field(default_factory=dict)
    window_size: int = 20
    disk_path: str = "/"


class RetryPolicyConfig(BaseModel):
    """Delivery retry policy for a notification channel."""

    max_attempts: int = Field(default=3, ge=1)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)
    initial_delay_ms: int = Field(default=1000, ge=0)
    max_delay_ms: int = Field(default=10_000, ge=0)


class FileChannelOptions(BaseModel):
    """Append-to-file channel options."""

    path: str = "monitoring/alerts/notifications.log"
    format: Literal["text", "json", "csv"] = "text"


class EmailChannelOptions(BaseModel):
    """SMTP channel options."""

    smtp_host: str
    smtp_port: int = 587
    username: str = ""
    password: SecretStr = SecretStr("")
    from_address: str
    to: list[str] = Field(min_length=1)
    use_tls: bool = True
    timeout_secs: float = 10.0


class SlackChannelOptions(BaseModel):
    """Slack incoming-webhook options."""

    webhook_url: SecretStr
    channel: str | None = None
    username: str = "AlertBot"
    icon_emoji: str = ":warning:"
    timeout_secs: float = 10.0


class WebhookChannelOptions(BaseModel):
    """Generic HTTP webhook options."""

    url: str
    method: Literal["GET", "POST", "PUT"] = "POST"
    headers: dict[str, str] = Field(default_factory=dict)
    auth_type: Literal["none", "basic", "bearer", "api_key"] = "none"
    username: str = ""
    password: SecretStr = SecretStr("")
    token: SecretStr = SecretStr("")
    api_key_header: str = "X-API-Key"
    timeout_secs: float = 10.0


class SmsChannelOptions(BaseModel):
    """Twilio SMS options."""

    account_sid: str
    auth_token: SecretStr
    from_number: str
    to: list[str] = Field(min_length=1)
    api_base: str = "https://api.twilio.com/2010-04-01"
    timeout_secs: float = 10.0


class ChannelConfig(BaseModel):
    """A configured notification channel.

    ``options`` holds the type-specific settings; each channel validates
    them against its own options model.
    """

    id: str
    name: str = ""
    type: ChannelType
    enabled: bool = True
    rate_limit_per_minute: int | None = Field(default=None, ge=1)
    retry: RetryPolicyConfig = RetryPolicyConfig()
    options: dict[str, Any] = Field(default_factory=dict)


class AlertingConfig(BaseModel):
    """Rules, channels and escalation policies."""

    enabled: bool = True
    cooldown_minutes: float = 15.0
    include_default_rules: bool = True
    channels: list[ChannelConfig] = Field(default_factory=list)
    rules: list[AlertRule] = Field(default_factory=list)
    escalation_policies: list[EscalationPolicy] = Field(default_factory=list)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: Literal["json", "console"] = "json"
    file: str | None = None
    levels: dict[str, str] = Field(default_factory=dict)


class Settings(BaseModel):
    """Root settings container."""

    monitoring: MonitoringConfig = MonitoringConfig()
    provider: ProviderConfig = ProviderConfig()
    runtime: RuntimeConfig = RuntimeConfig()
    alerting: AlertingConfig = AlertingConfig()
    logging: LoggingConfig = LoggingConfig()


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file and cache globally.

    Args:
        path: Path to YAML config. Defaults to config/settings.yaml.

    Returns:
        Parsed Settings instance.
    """
    global _settings  # noqa: PLW0603

    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH

    data: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f)
            if isinstance(raw, dict):
                data = raw

    _settings = Settings(**data)
    return _settings


def get_settings() -> Settings:
    """Return the cached settings, loading defaults if not yet loaded."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Reset the cached settings (useful for testing)."""
    global _settings  # noqa: PLW0603
    _settings = None
