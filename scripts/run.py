#!/usr/bin/env python3
"""Monitor entrypoint — wires the stack and runs the sampling loop.

Usage::

    # Run with default config
    python scripts/run.py

    # Custom config file
    python scripts/run.py --config config/settings.yaml

    # One sampling pass, then exit
    python scripts/run.py --once --log-level DEBUG
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

import structlog

from healthwatch.core.config import load_settings
from healthwatch.core.logging import setup_logging
from healthwatch.factory import create_monitor_stack
from healthwatch.notifications.exceptions import ChannelConfigError

logger = structlog.get_logger(__name__)


async def run(args: argparse.Namespace) -> int:
    """Start the monitor and run until interrupted."""
    settings = load_settings(args.config)
    setup_logging(settings.logging, level=args.log_level)

    try:
        stack = create_monitor_stack(settings)
    except ChannelConfigError as exc:
        logger.error("invalid_channel_config", error=str(exc))
        print(f"Invalid channel configuration: {exc}", file=sys.stderr)
        return 1

    loaded = stack.store.load()
    logger.info(
        "monitor_starting",
        units=settings.monitoring.units,
        interval_ms=settings.monitoring.interval_ms,
        restored_alerts=loaded,
    )

    if args.once:
        try:
            report = await stack.sampler.perform_health_check()
        finally:
            await stack.close()
        print(
            f"overall health {report.overall_health}/100: "
            f"{report.system_metrics.healthy_units} healthy, "
            f"{report.system_metrics.degraded_units} degraded, "
            f"{report.system_metrics.critical_units} critical, "
            f"{report.system_metrics.offline_units} offline"
        )
        for rec in report.recommendations:
            print(f"  - {rec}")
        return 0

    await stack.sampler.start_monitoring()

    # ── Wait for shutdown signal ─────────────────────────────────
    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("shutdown_signal_received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            # Windows: signal handlers not supported on ProactorEventLoop
            pass

    try:
        await stop_event.wait()
    except KeyboardInterrupt:
        logger.info("keyboard_interrupt")

    # ── Graceful shutdown ────────────────────────────────────────
    logger.info("monitor_shutting_down")
    await stack.close()

    stats = stack.manager.get_stats()
    logger.info(
        "monitor_stopped",
        passes=stack.sampler.pass_count,
        alerts_total=stats.total,
        alerts_active=stats.active,
    )
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Run the unit health monitor and alerting loop.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level override: DEBUG, INFO, WARNING, ERROR",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single sampling pass and exit",
    )
    args = parser.parse_args()

    code = asyncio.run(run(args))
    sys.exit(code)


if __name__ == "__main__":
    main()
