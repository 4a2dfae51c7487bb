"""Tests for report and alert JSON persistence."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

from healthwatch.core.persistence import AlertRepository, ReportWriter
from healthwatch.core.types import (
    Alert,
    AlertCategory,
    AlertSeverity,
    AlertStatus,
    HealthStatus,
    MonitoringReport,
    UnitStatus,
)


def _alert(**kw: object) -> Alert:
    defaults: dict[str, object] = {
        "id": "alert-1",
        "rule_id": "critical-health",
        "severity": AlertSeverity.CRITICAL,
        "category": AlertCategory.HEALTH,
        "unit_id": "auth",
        "title": "Critical Health Score",
        "created_at": 1000.0,
        "updated_at": 1000.0,
    }
    defaults.update(kw)
    return Alert(**defaults)  # type: ignore[arg-type]


class TestReportWriter:
    def test_save_writes_json(self, tmp_path: Path) -> None:
        writer = ReportWriter(tmp_path / "monitoring")
        report = MonitoringReport(
            timestamp=1_700_000_000.5,
            overall_health=72,
            unit_statuses=[
                HealthStatus(unit_id="auth", health_score=72, status=UnitStatus.HEALTHY),
            ],
        )
        path = writer.save(report)
        assert path is not None
        assert path.name.startswith("health-report-")
        assert path.suffix == ".json"
        assert ":" not in path.name
        data = json.loads(path.read_text())
        assert data["overall_health"] == 72
        assert data["unit_statuses"][0]["unit_id"] == "auth"

    def test_list_reports_sorted(self, tmp_path: Path) -> None:
        writer = ReportWriter(tmp_path)
        writer.save(MonitoringReport(timestamp=2_000_000_000.0))
        writer.save(MonitoringReport(timestamp=1_000_000_000.0))
        names = [p.name for p in writer.list_reports()]
        assert names == sorted(names)
        assert len(names) == 2

    def test_list_reports_missing_dir(self, tmp_path: Path) -> None:
        assert ReportWriter(tmp_path / "absent").list_reports() == []

    def test_write_failure_returns_none(self, tmp_path: Path) -> None:
        writer = ReportWriter(tmp_path)
        with patch.object(Path, "write_text", side_effect=OSError("disk full")):
            assert writer.save(MonitoringReport()) is None


class TestAlertRepository:
    def test_save_and_load(self, tmp_path: Path) -> None:
        repo = AlertRepository(tmp_path / "alerts")
        assert repo.save(_alert()) is True
        assert repo.path_for("alert-1").name == "alert-alert-1.json"
        loaded = repo.load_all()
        assert len(loaded) == 1
        assert loaded[0].unit_id == "auth"

    def test_save_overwrites_on_transition(self, tmp_path: Path) -> None:
        repo = AlertRepository(tmp_path)
        alert = _alert()
        repo.save(alert)
        alert.status = AlertStatus.RESOLVED
        alert.resolved_at = 2000.0
        repo.save(alert)
        loaded = repo.load_all()
        assert len(loaded) == 1
        assert loaded[0].status == AlertStatus.RESOLVED

    def test_unreadable_file_skipped(self, tmp_path: Path) -> None:
        repo = AlertRepository(tmp_path)
        repo.save(_alert(id="good"))
        (tmp_path / "alert-broken.json").write_text("{not json")
        loaded = repo.load_all()
        assert [a.id for a in loaded] == ["good"]

    def test_write_failure_returns_false(self, tmp_path: Path) -> None:
        repo = AlertRepository(tmp_path)
        with patch.object(Path, "write_text", side_effect=OSError("read-only")):
            assert repo.save(_alert()) is False

    def test_serialization_failure_returns_false(self, tmp_path: Path) -> None:
        repo = AlertRepository(tmp_path)
        assert repo.save(_alert(details={"raw": b"\xff\xfe"})) is False
        assert not repo.path_for("alert-1").exists()
