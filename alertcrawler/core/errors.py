"""
Centralised exception hierarchy.

Feed failures never surface as exceptions inside the crawl loop: the feed
client folds them into a FeedResult and the scheduler logs and skips the
region. The classes here cover the paths that do raise:

    • ConfigurationError   — invalid settings at startup (fatal)
    • FeedUnavailableError — FeedClient.fetch_or_raise on a failed fetch
    • StorageError         — the alert store could not be opened/initialised

Usage:
    from alertcrawler.core.errors import ConfigurationError

    raise ConfigurationError("AREA_TOP must be greater than AREA_BOTTOM")
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class AlertCrawlerError(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}


class ConfigurationError(AlertCrawlerError):
    """Settings failed validation; the process cannot start."""

    def __init__(self, message: str, **details: Any):
        super().__init__(
            message=message,
            error_code="CONFIGURATION_ERROR",
            details=details,
        )


class FeedUnavailableError(AlertCrawlerError):
    """The alert feed did not return usable data for a region."""

    def __init__(self, status: str, message: str = "", **details: Any):
        super().__init__(
            message=f"Alert feed returned {status}: {message}",
            error_code="FEED_UNAVAILABLE",
            details={"status": status, **details},
        )


class StorageError(AlertCrawlerError):
    """The alert store could not be opened or initialised."""

    def __init__(self, path: str, message: str = ""):
        super().__init__(
            message=f"Alert store at '{path}' unavailable: {message}",
            error_code="STORAGE_ERROR",
            details={"path": path},
        )
