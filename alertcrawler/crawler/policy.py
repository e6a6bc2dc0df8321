"""
policy.py — Density-triggered subdivision decision.

The feed silently truncates its answer at a fixed number of alerts (the
capacity). A response that reaches the capacity is therefore treated as
incomplete and its region is split into quadrants that are queried again;
a response below the capacity is complete and is ingested as-is.

Decision Table
==============
    status             alerts            depth          → action
    ─────────────────  ────────────────  ─────────────  ──────────
    EMPTY              -                 -              IGNORE
    FEED_ERROR         -                 -              IGNORE
    TRANSPORT_FAILURE  -                 -              IGNORE
    ALERTS             n <  capacity     -              INGEST
    ALERTS             n >= capacity     < max_depth    SUBDIVIDE
    ALERTS             n >= capacity     >= max_depth   INGEST (truncated)

The boundary is `>=`: a response of exactly `capacity` items is assumed to
be truncated, trading one extra round of requests for completeness.

Subdivision halves both spans, so termination does not depend on the depth
guard; it only protects against a feed that reports `capacity` alerts no
matter how small the area gets.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from alertcrawler.ingestion.feed_client import FeedResult, FetchStatus
from alertcrawler.ingestion.models import AlertRecord
from alertcrawler.spatial.region import Region

logger = logging.getLogger(__name__)


class Action(str, Enum):
    IGNORE = "ignore"
    SUBDIVIDE = "subdivide"
    INGEST = "ingest"


@dataclass
class Decision:
    """What to do with a region after its feed result is known."""
    action: Action
    region: Region
    children: Tuple[Region, ...] = ()
    alerts: List[AlertRecord] = field(default_factory=list)
    truncated: bool = False  # ingested at the depth limit while saturated
    reason: str = ""


def decide(
    region: Region,
    result: FeedResult,
    capacity: int,
    max_depth: Optional[int] = None,
) -> Decision:
    """
    Choose IGNORE, SUBDIVIDE or INGEST for `region` given its feed `result`.

    Parameters
    ----------
    region : Region
        The region that was queried.
    result : FeedResult
        The feed client's answer for that region.
    capacity : int
        Alert count at or above which the feed is assumed to have truncated.
    max_depth : int, optional
        Deepest subdivision level allowed. None means unlimited.
    """
    if capacity < 1:
        raise ValueError(f"capacity must be >= 1, got {capacity}")

    if result.status is FetchStatus.EMPTY:
        return Decision(Action.IGNORE, region, reason="no 'alerts' key in response")
    if result.status is FetchStatus.FEED_ERROR:
        return Decision(Action.IGNORE, region, reason=f"feed error: {result.error_message}")
    if result.status is FetchStatus.TRANSPORT_FAILURE:
        return Decision(Action.IGNORE, region, reason=f"transport failure: {result.error_message}")

    if len(result.alerts) < capacity:
        return Decision(Action.INGEST, region, alerts=list(result.alerts))

    at_depth_limit = max_depth is not None and region.depth >= max_depth
    if at_depth_limit or not region.can_subdivide:
        logger.warning(
            "Region %s still saturated (%d >= %d) but cannot be split further; "
            "ingesting possibly truncated results",
            region, len(result.alerts), capacity,
        )
        return Decision(
            Action.INGEST,
            region,
            alerts=list(result.alerts),
            truncated=True,
            reason="depth limit reached",
        )

    return Decision(Action.SUBDIVIDE, region, children=region.subdivide())
