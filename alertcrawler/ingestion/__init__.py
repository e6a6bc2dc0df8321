"""
Feed ingestion: typed alert items and the bounded-area feed client.
"""

from .models import AlertRecord, FeedAlert
from .feed_client import FeedClient, FeedResult, FetchStatus, parse_feed_body

__all__ = [
    "AlertRecord",
    "FeedAlert",
    "FeedClient",
    "FeedResult",
    "FetchStatus",
    "parse_feed_body",
]
