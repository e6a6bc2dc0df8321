"""
feed_client.py — Bounded-area queries against the live alert feed.

Issues one GET per region to the feed's georss endpoint:

    GET {FEED_URL}?top=..&bottom=..&left=..&right=..&env=row&types=alerts

and folds every outcome into a FeedResult instead of raising, so the crawl
loop can decide what to do with a region without exception plumbing.

Outcome Classification
======================
    ALERTS            → body is an object with an `alerts` list; every item
                        validated into an AlertRecord (list may be empty)
    EMPTY             → body is an object with neither `error` nor `alerts`
                        (no data for this area, not an error)
    FEED_ERROR        → body carries an `error` field (rate limiting,
                        bad bounds, ...)
    TRANSPORT_FAILURE → request did not complete: connection error,
                        timeout, non-2xx status, undecodable body, or an
                        alert item missing required fields

No retries happen here. A failed region is simply skipped for the current
cycle by the scheduler and re-covered when the root is seeded again.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from alertcrawler.core.config import Settings
from alertcrawler.core.errors import FeedUnavailableError
from alertcrawler.ingestion.models import AlertRecord, FeedAlert
from alertcrawler.spatial.region import Region

logger = logging.getLogger(__name__)


DEFAULT_FEED_URL = "https://www.waze.com/live-map/api/georss"
DEFAULT_TIMEOUT = 30.0  # seconds


class FetchStatus(str, Enum):
    """Outcome of a single feed query."""
    ALERTS = "alerts"
    EMPTY = "empty"
    FEED_ERROR = "feed_error"
    TRANSPORT_FAILURE = "transport_failure"


@dataclass
class FeedResult:
    """
    Result of one feed query for one region.

    Callers branch on `status`; `alerts` is only meaningful for ALERTS and
    `error_message` for FEED_ERROR / TRANSPORT_FAILURE.
    """
    status: FetchStatus
    region: Region
    alerts: List[AlertRecord] = field(default_factory=list)
    error_message: str = ""
    fetch_duration_ms: int = 0

    @property
    def success(self) -> bool:
        return self.status in (FetchStatus.ALERTS, FetchStatus.EMPTY)

    @property
    def alert_count(self) -> int:
        return len(self.alerts)


def parse_feed_body(body: Any, region: Region) -> FeedResult:
    """
    Classify a decoded JSON body.

    The `error` field wins over `alerts` when both are present.
    """
    if not isinstance(body, dict):
        return FeedResult(
            status=FetchStatus.TRANSPORT_FAILURE,
            region=region,
            error_message=f"Expected a JSON object, got {type(body).__name__}",
        )

    if body.get("error") is not None:
        return FeedResult(
            status=FetchStatus.FEED_ERROR,
            region=region,
            error_message=str(body["error"]),
        )

    if "alerts" not in body or body["alerts"] is None:
        return FeedResult(status=FetchStatus.EMPTY, region=region)

    items = body["alerts"]
    if not isinstance(items, list):
        return FeedResult(
            status=FetchStatus.TRANSPORT_FAILURE,
            region=region,
            error_message=f"'alerts' is not a list ({type(items).__name__})",
        )

    try:
        records = [FeedAlert.model_validate(item).to_record() for item in items]
    except ValidationError as e:
        return FeedResult(
            status=FetchStatus.TRANSPORT_FAILURE,
            region=region,
            error_message=f"Malformed alert item: {e.error_count()} validation error(s)",
        )

    return FeedResult(status=FetchStatus.ALERTS, region=region, alerts=records)


class FeedClient:
    """
    Async client for the alert feed.

    Usage:
        async with FeedClient.from_settings(settings) as client:
            result = await client.fetch(Region(-10.6, -43.6, 113.1, 153.6))
            if result.status is FetchStatus.ALERTS:
                print(result.alert_count)
    """

    def __init__(
        self,
        base_url: str = DEFAULT_FEED_URL,
        *,
        env: str = "row",
        types: str = "alerts",
        timeout: float = DEFAULT_TIMEOUT,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url
        self.env = env
        self.types = types
        self.timeout = timeout
        self._http_client = http_client

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> "FeedClient":
        return cls(
            settings.FEED_URL,
            env=settings.FEED_ENV,
            types=settings.FEED_TYPES,
            timeout=settings.FEED_TIMEOUT,
            http_client=http_client,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"Accept": "application/json"},
            )
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def __aenter__(self) -> "FeedClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def build_params(self, region: Region) -> Dict[str, Any]:
        params: Dict[str, Any] = dict(region.to_query_params())
        params["env"] = self.env
        params["types"] = self.types
        return params

    async def fetch(self, region: Region) -> FeedResult:
        """Query the feed for one region. Never raises for feed/network problems."""
        start_time = time.monotonic()

        try:
            client = await self._get_client()
            response = await client.get(self.base_url, params=self.build_params(region))
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            result = FeedResult(
                status=FetchStatus.TRANSPORT_FAILURE,
                region=region,
                error_message=f"HTTP {e.response.status_code}",
            )
        except httpx.HTTPError as e:
            result = FeedResult(
                status=FetchStatus.TRANSPORT_FAILURE,
                region=region,
                error_message=f"{type(e).__name__}: {e}",
            )
        except ValueError as e:
            # json.JSONDecodeError is a ValueError
            result = FeedResult(
                status=FetchStatus.TRANSPORT_FAILURE,
                region=region,
                error_message=f"Undecodable response body: {e}",
            )
        else:
            result = parse_feed_body(body, region)

        result.fetch_duration_ms = int((time.monotonic() - start_time) * 1000)
        return result

    async def fetch_or_raise(self, region: Region) -> List[AlertRecord]:
        """
        Strict variant of fetch(): return the alerts or raise.

        EMPTY yields an empty list; FEED_ERROR and TRANSPORT_FAILURE raise
        FeedUnavailableError.
        """
        result = await self.fetch(region)
        if result.status is FetchStatus.EMPTY:
            return []
        if not result.success:
            raise FeedUnavailableError(
                result.status.value,
                result.error_message,
                region=str(region),
            )
        return result.alerts
