"""JSON file persistence for monitoring reports and alert records.

Write and serialization failures are logged and reported through the return value; they never
raise, so an in-memory state transition is not undone by a full disk.
"""

from __future__ import annotations

import datetime
from pathlib import Path

import structlog
from pydantic import ValidationError

from healthwatch.core.types import Alert, MonitoringReport

logger = structlog.get_logger(__name__)


def _report_filename(timestamp: float) -> str:
    stamp = datetime.datetime.fromtimestamp(timestamp, datetime.UTC).isoformat()
    return "health-report-" + stamp.replace(":", "-").replace(".", "-").replace("+", "_") + ".json"


class ReportWriter:
    """Writes each completed sampling pass as a timestamped JSON file."""

    def __init__(self, data_dir: str | Path) -> None:
        self._dir = Path(data_dir)

    @property
    def directory(self) -> Path:
        return self._dir

    def save(self, report: MonitoringReport) -> Path | None:
        """Persist *report*. Returns the written path, or None on failure."""
        path = self._dir / _report_filename(report.timestamp)
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            path.write_text(report.model_dump_json(indent=2), encoding="utf-8")
        except (OSError, ValueError):
            logger.exception("report_write_failed", path=str(path))
            return None
        return path

    def list_reports(self) -> list[Path]:
        """Report files in chronological order."""
        if not self._dir.exists():
            return []
        return sorted(self._dir.glob("health-report-*.json"))


class AlertRepository:
    """One JSON file per alert, keyed by alert id, rewritten on every transition."""

    def __init__(self, alerts_dir: str | Path) -> None:
        self._dir = Path(alerts_dir)

    @property
    def directory(self) -> Path:
        return self._dir

    def path_for(self, alert_id: str) -> Path:
        return self._dir / f"alert-{alert_id}.json"

    def save(self, alert: Alert) -> bool:
        path = self.path_for(alert.id)
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            path.write_text(alert.model_dump_json(indent=2), encoding="utf-8")
        except (OSError, ValueError):
            logger.exception("alert_write_failed", alert_id=alert.id, path=str(path))
            return False
        return True

    def load_all(self) -> list[Alert]:
        """Load every readable alert record; unreadable files are skipped."""
        if not self._dir.exists():
            return []
        alerts: list[Alert] = []
        for path in sorted(self._dir.glob("alert-*.json")):
            try:
                alerts.append(Alert.model_validate_json(path.read_text(encoding="utf-8")))
            except (OSError, ValidationError):
                logger.warning("alert_record_unreadable", path=str(path))
        return alerts
