"""Message type handed to notification channels."""

from __future__ import annotations

import time
from typing import Any

from pydantic import BaseModel, Field

from healthwatch.core.types import AlertSeverity


class AlertMessage(BaseModel):
    """Normalised alert ready for delivery to channels."""

    severity: AlertSeverity
    title: str
    body: str = ""
    fields: dict[str, str] = Field(default_factory=dict)
    alert_id: str = ""
    unit_id: str = ""
    timestamp: float = Field(default_factory=time.time)
    raw: dict[str, Any] = Field(default_factory=dict)
