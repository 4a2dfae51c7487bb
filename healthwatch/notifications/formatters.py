"""Pure functions that turn alerts into channel-ready messages."""

from __future__ import annotations

import datetime
import json

from healthwatch.core.types import Alert, AlertSeverity
from healthwatch.notifications.types import AlertMessage

# ── Severity mappings ───────────────────────────────────────────

SEVERITY_EMOJI: dict[AlertSeverity, str] = {
    AlertSeverity.LOW: "🔵",
    AlertSeverity.MEDIUM: "🟡",
    AlertSeverity.HIGH: "🟠",
    AlertSeverity.CRITICAL: "🔴",
}

SEVERITY_COLORS: dict[AlertSeverity, str] = {
    AlertSeverity.LOW: "#36a64f",       # green
    AlertSeverity.MEDIUM: "#ffcc00",    # yellow
    AlertSeverity.HIGH: "#ff9900",      # orange
    AlertSeverity.CRITICAL: "#ff0000",  # red
}


def _iso(ts: float) -> str:
    return datetime.datetime.fromtimestamp(ts, datetime.UTC).isoformat(timespec="seconds")


# ── Formatters ──────────────────────────────────────────────────


def format_alert(alert: Alert) -> AlertMessage:
    """Convert an Alert to an AlertMessage."""
    fields: dict[str, str] = {
        "unit": alert.unit_id,
        "severity": alert.severity.value.upper(),
        "status": alert.status.value,
        "rule": alert.rule_id,
        "created": _iso(alert.created_at),
    }
    if alert.escalation_level:
        fields["escalation_level"] = str(alert.escalation_level)
    if alert.tags:
        fields["tags"] = ", ".join(alert.tags)

    return AlertMessage(
        severity=alert.severity,
        title=alert.title,
        body=alert.message,
        fields=fields,
        alert_id=alert.id,
        unit_id=alert.unit_id,
        timestamp=alert.updated_at,
        raw=alert.model_dump(mode="json"),
    )


def render_text(msg: AlertMessage, *, include_details: bool = True) -> str:
    """Multi-line plain-text rendering shared by console, file, email and SMS."""
    emoji = SEVERITY_EMOJI.get(msg.severity, "⚪")
    lines = [
        f"{emoji} ALERT [{msg.severity.value.upper()}]",
        f"Module: {msg.unit_id}",
        f"Title: {msg.title}",
    ]
    if msg.body:
        lines.append(f"Message: {msg.body}")
    lines.append(f"Time: {_iso(msg.timestamp)}")
    if include_details:
        details = msg.raw.get("details")
        if details:
            lines.append("Details: " + json.dumps(details, indent=2, default=str))
    return "\n".join(lines)


def render_summary(msg: AlertMessage, limit: int = 160) -> str:
    """One-line rendering truncated to *limit* characters (SMS)."""
    text = f"[{msg.severity.value.upper()}] {msg.unit_id}: {msg.title}"
    if msg.body:
        text += f" - {msg.body}"
    if len(text) > limit:
        text = text[: limit - 3] + "..."
    return text
