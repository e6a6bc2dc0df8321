"""
Crawler logging: JSON lines in production, coloured console lines in
development. The scheduler tags every record of a cycle with its number
through a context variable, and region bounds, depth and counts ride along
as `extra` fields.

Usage:
    from alertcrawler.core.logging_config import setup_logging, get_logger

    setup_logging()
    logger = get_logger(__name__)
    logger.info("Region fetched", extra={"top": -10.6, "alert_count": 12})
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from alertcrawler.core.config import Settings, get_settings

# ── Context variable for cycle-scoped data ──
_crawl_context: ContextVar[Dict[str, Any]] = ContextVar(
    "crawl_context", default={}
)

# Extra fields the JSON formatter copies from log records
EXTRA_FIELDS = (
    "top", "bottom", "left", "right", "depth",
    "queue_length", "alert_count", "stored_count", "duration_ms",
)


def set_crawl_context(**kwargs: Any) -> None:
    """Set cycle-scoped log context (called by the scheduler at seeding)."""
    _crawl_context.set(kwargs)


def get_crawl_context() -> Dict[str, Any]:
    """Get current cycle context."""
    return _crawl_context.get()


# ── JSON Formatter (Production) ──

class JSONFormatter(logging.Formatter):
    """One JSON object per line: core fields, cycle context, crawl extras."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "line": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        ctx = get_crawl_context()
        if ctx:
            entry["context"] = ctx

        entry.update(
            (key, getattr(record, key)) for key in EXTRA_FIELDS if hasattr(record, key)
        )

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


# ── Pretty Formatter (Development) ──

_LEVEL_COLOURS = {
    logging.DEBUG: 36,
    logging.INFO: 32,
    logging.WARNING: 33,
    logging.ERROR: 31,
    logging.CRITICAL: 35,
}


class PrettyFormatter(logging.Formatter):
    """Console line: time, coloured level, cycle tag, logger, message."""

    def format(self, record: logging.LogRecord) -> str:
        code = _LEVEL_COLOURS.get(record.levelno, 0)
        level = f"\033[{code}m{record.levelname:<8}\033[0m"

        cycle = get_crawl_context().get("cycle")
        tag = f" [cycle {cycle}]" if cycle is not None else ""

        line = (
            f"{self.formatTime(record, '%H:%M:%S')} {level}{tag} "
            f"{record.name}: {record.getMessage()}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


# ── Setup ──

def setup_logging(settings: Optional[Settings] = None) -> None:
    """Install one stdout handler on the root logger; JSON in production."""
    settings = settings or get_settings()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if settings.is_production else PrettyFormatter())

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    # Per-request chatter from the HTTP and SQLite drivers
    for name in ("httpx", "httpcore", "aiosqlite"):
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Return the standard library logger for *name*."""
    return logging.getLogger(name)
