"""Tests for logging setup — handlers, levels, file output."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog

from healthwatch.core.config import LoggingConfig
from healthwatch.core.logging import setup_logging


@pytest.fixture(autouse=True)
def _restore_logging() -> Iterator[None]:
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    yield
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in saved_handlers:
        root.addHandler(handler)
    root.setLevel(saved_level)
    structlog.reset_defaults()


class TestSetupLogging:
    def test_level_override(self) -> None:
        setup_logging(LoggingConfig(level="INFO"), level="debug")
        assert logging.getLogger().level == logging.DEBUG

    def test_quiet_and_custom_levels(self) -> None:
        setup_logging(LoggingConfig(level="DEBUG", levels={"healthwatch.alerts": "ERROR"}))
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("healthwatch.alerts").level == logging.ERROR

    def test_single_stderr_handler(self) -> None:
        setup_logging(LoggingConfig())
        setup_logging(LoggingConfig())
        assert len(logging.getLogger().handlers) == 1

    def test_file_receives_json(self, tmp_path: Path) -> None:
        path = tmp_path / "logs" / "hw.log"
        setup_logging(LoggingConfig(file=str(path)))
        structlog.get_logger("healthwatch.test").info("unit_checked", unit_id="auth")
        logging.getLogger("thirdparty").warning("plain message")
        for handler in logging.getLogger().handlers:
            handler.flush()

        records = [json.loads(line) for line in path.read_text().splitlines()]
        assert records[0]["event"] == "unit_checked"
        assert records[0]["unit_id"] == "auth"
        assert records[0]["level"] == "info"
        assert records[1]["event"] == "plain message"
        assert records[1]["logger"] == "thirdparty"
