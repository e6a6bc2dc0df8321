"""
Command-line entry point.

Run with:
    python -m alertcrawler crawl            # poll forever
    python -m alertcrawler crawl --once     # single cycle, then exit
    python -m alertcrawler export           # write alerts.json for the map viewer

Settings come from the environment or a .env file in the working directory
(see alertcrawler.core.config).
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from alertcrawler import __version__
from alertcrawler.core.config import Settings, get_settings
from alertcrawler.core.errors import AlertCrawlerError, ConfigurationError
from alertcrawler.core.logging_config import get_logger, setup_logging
from alertcrawler.crawler.scheduler import CrawlScheduler
from alertcrawler.export.geojson import DEFAULT_FILENAME, export_geojson
from alertcrawler.ingestion.feed_client import FeedClient
from alertcrawler.storage.alert_store import AlertStore

logger = get_logger("alertcrawler")


def load_settings() -> Settings:
    """Load and validate settings; invalid values are fatal."""
    try:
        return get_settings()
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'settings'}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigurationError(f"Invalid configuration: {problems}") from e


def warn_defaults(settings: Settings) -> None:
    for key in settings.defaulted_keys():
        logger.warning("Environment variable '%s' not found, using default", key)


def _install_signal_handlers(scheduler: CrawlScheduler) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, scheduler.stop)
        except (NotImplementedError, RuntimeError):
            # Windows event loops have no signal handler support
            pass


async def crawl(settings: Settings, *, once: bool = False) -> int:
    store = AlertStore.from_settings(settings)
    try:
        await store.init_schema()
        async with FeedClient.from_settings(settings) as client:
            try:
                scheduler = CrawlScheduler.from_settings(settings, client, store)
            except ValueError as e:
                raise ConfigurationError(f"Invalid crawl area: {e}") from e
            _install_signal_handlers(scheduler)
            logger.info(
                "Starting %s v%s: capacity=%d cooldown=%.0fs delay=%.0fms db=%s",
                settings.APP_NAME, __version__, settings.MAX_ALERTS,
                settings.QUERY_COOLDOWN, settings.QUERY_DELAY, settings.DB_PATH,
            )
            if once:
                await scheduler.run_cycle()
            else:
                await scheduler.run_forever()
    finally:
        await store.close()
    return 0


async def export(settings: Settings, output: Optional[str] = None) -> int:
    path = Path(output) if output else Path(settings.SOURCE_PATH) / DEFAULT_FILENAME
    store = AlertStore.from_settings(settings)
    try:
        await store.init_schema()
        await export_geojson(store, path)
    finally:
        await store.close()
    return 0


def setup_argparse() -> argparse.ArgumentParser:
    """Setup command line argument parser."""
    parser = argparse.ArgumentParser(
        prog="alertcrawler",
        description="Adaptive crawler for the live traffic alert feed",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    crawl_parser = sub.add_parser("crawl", help="Poll the feed and store alerts")
    crawl_parser.add_argument(
        "--once", action="store_true",
        help="Run a single cycle and exit instead of polling forever",
    )

    export_parser = sub.add_parser("export", help="Export stored alerts as GeoJSON")
    export_parser.add_argument(
        "--output", "-o", default=None,
        help=f"Output file (default: $SOURCE_PATH/{DEFAULT_FILENAME})",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = setup_argparse().parse_args(argv)

    try:
        settings = load_settings()
    except ConfigurationError as e:
        setup_logging(Settings.model_construct())
        logger.critical(e.message)
        return 1

    setup_logging(settings)
    warn_defaults(settings)

    try:
        if args.command == "crawl":
            return asyncio.run(crawl(settings, once=args.once))
        return asyncio.run(export(settings, args.output))
    except AlertCrawlerError as e:
        logger.critical("%s | details=%s", e.message, e.details)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
