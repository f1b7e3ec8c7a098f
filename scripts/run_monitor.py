#!/usr/bin/env python3
"""Standalone alert monitor entry point.

Runs the alert monitor outside the API process against the configured
database, metrics service and Telegram bot:

    metric -> condition -> cooldown -> Telegram -> last_fired_at

Usage::

    python scripts/run_monitor.py                 # run until interrupted
    python scripts/run_monitor.py --once          # one cycle, print the report
    python scripts/run_monitor.py --interval 30   # override the cycle interval
"""

import argparse
import asyncio
import json
import sys
from contextlib import AsyncExitStack

from defi_alerts.core.config import settings
from defi_alerts.core.database import async_engine, async_session_factory
from defi_alerts.core.utils.logging_config import configure_logging, get_logger
from defi_alerts.monitoring.alert_monitor import AlertMonitor
from defi_alerts.monitoring.alert_store import SqlAlertStore
from defi_alerts.monitoring.metrics import HttpMetricsProvider
from defi_alerts.notifications.telegram import TelegramNotifier

logger = get_logger("run_monitor")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments.

    Args:
        argv: Argument list (defaults to sys.argv[1:]).

    Returns:
        Parsed namespace with ``once``, ``interval`` and ``debug`` attributes.
    """
    parser = argparse.ArgumentParser(description="Run the DeFi alert monitor.")
    parser.add_argument(
        "--once",
        action="store_true",
        default=False,
        help="Run a single evaluation cycle, print its report and exit",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help=f"Seconds between cycles (default: {settings.monitor_interval_seconds:g})",
    )
    parser.add_argument("--debug", action="store_true", default=False)
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    async with AsyncExitStack() as stack:
        notifier = await stack.enter_async_context(TelegramNotifier())
        metrics = await stack.enter_async_context(HttpMetricsProvider())
        monitor = AlertMonitor(
            SqlAlertStore(async_session_factory),
            metrics,
            notifier,
            interval_seconds=args.interval,
        )
        try:
            if args.once:
                report = await monitor.run_cycle()
                print(json.dumps(report.to_dict(), indent=2))
                return 1 if report.failed else 0

            monitor.start()
            try:
                await asyncio.Event().wait()
            finally:
                await monitor.shutdown()
        finally:
            await async_engine.dispose()
    return 0


def main(argv: list[str] | None = None) -> int:
    """Entry point for the monitor CLI.

    Returns:
        Exit code: 0 on success, 1 when a ``--once`` cycle had failures.
    """
    args = parse_args(argv)
    configure_logging(debug=args.debug or settings.debug)
    if not settings.telegram_configured:
        logger.warning("telegram_disabled", hint="set TELEGRAM_BOT_TOKEN")
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("monitor_interrupted")
        return 0


if __name__ == "__main__":
    sys.exit(main())
