"""Tests for alert formatting."""

from __future__ import annotations

from healthwatch.core.types import Alert, AlertCategory, AlertSeverity, AlertStatus
from healthwatch.notifications.formatters import (
    SEVERITY_EMOJI,
    format_alert,
    render_summary,
    render_text,
)


def _alert(**kw: object) -> Alert:
    defaults: dict[str, object] = {
        "id": "alert-1",
        "rule_id": "critical-health",
        "severity": AlertSeverity.CRITICAL,
        "category": AlertCategory.HEALTH,
        "unit_id": "auth",
        "title": "Critical Health Score",
        "message": "Unit auth health score 25 is below 30",
        "details": {"health_score": 25},
        "created_at": 1_700_000_000.0,
        "updated_at": 1_700_000_060.0,
        "tags": ["health", "unit:auth"],
    }
    defaults.update(kw)
    return Alert(**defaults)  # type: ignore[arg-type]


class TestFormatAlert:
    def test_basic_fields(self) -> None:
        msg = format_alert(_alert())
        assert msg.severity == AlertSeverity.CRITICAL
        assert msg.title == "Critical Health Score"
        assert msg.body.startswith("Unit auth")
        assert msg.alert_id == "alert-1"
        assert msg.unit_id == "auth"
        assert msg.timestamp == 1_700_000_060.0
        assert msg.fields["unit"] == "auth"
        assert msg.fields["severity"] == "CRITICAL"
        assert msg.fields["status"] == "active"
        assert msg.fields["tags"] == "health, unit:auth"
        assert msg.fields["created"].startswith("2023-11-14T22:13:20")

    def test_escalation_level_only_when_set(self) -> None:
        assert "escalation_level" not in format_alert(_alert()).fields
        msg = format_alert(_alert(escalation_level=2, status=AlertStatus.ACKNOWLEDGED))
        assert msg.fields["escalation_level"] == "2"

    def test_raw_is_json_ready(self) -> None:
        raw = format_alert(_alert()).raw
        assert raw["severity"] == "critical"
        assert raw["details"] == {"health_score": 25}


class TestRenderText:
    def test_contains_key_lines(self) -> None:
        text = render_text(format_alert(_alert()))
        assert text.startswith(SEVERITY_EMOJI[AlertSeverity.CRITICAL])
        assert "ALERT [CRITICAL]" in text
        assert "Module: auth" in text
        assert "Title: Critical Health Score" in text
        assert '"health_score": 25' in text

    def test_details_optional(self) -> None:
        text = render_text(format_alert(_alert()), include_details=False)
        assert "Details" not in text


class TestRenderSummary:
    def test_short_message_untouched(self) -> None:
        text = render_summary(format_alert(_alert(message="")))
        assert text == "[CRITICAL] auth: Critical Health Score"

    def test_truncated_to_limit(self) -> None:
        text = render_summary(format_alert(_alert(message="x" * 400)))
        assert len(text) == 160
        assert text.endswith("...")
