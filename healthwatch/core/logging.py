"""Structured logging setup using structlog.

Every record goes through the stdlib root logger, so structlog events and
third-party library logs share one renderer. An optional log file receives
the same output as stderr.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import structlog

from healthwatch.core.config import LoggingConfig, get_settings

# Chatty libraries held at WARNING unless overridden in ``levels``
_QUIET_LOGGERS = ("httpx", "httpcore", "aiohttp.access")


def _level(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)


def setup_logging(
    config: LoggingConfig | None = None,
    level: str | None = None,
    fmt: str | None = None,
) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        config: Logging section to apply. Uses the cached settings if None.
        level: Root level override (e.g. "DEBUG").
        fmt: Renderer override ("json" or "console").
    """
    cfg = config or get_settings().logging
    root_level = _level(level or cfg.level)
    log_format = fmt or cfg.format

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer: structlog.types.Processor
    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if cfg.file:
        path = Path(cfg.file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    root_logger = logging.getLogger()
    for old in root_logger.handlers[:]:
        root_logger.removeHandler(old)
        old.close()
    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
    root_logger.setLevel(root_level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(root_level, logging.WARNING))
    for name, name_level in cfg.levels.items():
        logging.getLogger(name).setLevel(_level(name_level))
