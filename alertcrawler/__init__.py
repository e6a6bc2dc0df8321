"""
Adaptive spatial crawler for a live geospatial alert feed.

Polls a bounding box, splits it into quadrants wherever the feed's
per-response cap is reached, and stores each alert once by uuid.
"""

__version__ = "1.0.0"
