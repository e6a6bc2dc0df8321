"""
region.py — Axis-aligned bounding boxes used as crawl query units.

A Region is the rectangle sent to the alert feed in one request. When the
feed answers with as many alerts as it is willing to return, the region is
split at its midpoints into four quadrants and each quadrant is queried on
its own:

    top    ┌───────────┬───────────┐
           │  top-left │ top-right │
    mid    ├───────────┼───────────┤
           │  bot-left │ bot-right │
    bottom └───────────┴───────────┘
          left        mid        right

Each split halves both the latitude span and the longitude span, so a
region at depth d covers 1/4^d of the root area. The four children share
their inner edges exactly (the same float is used for both sides), which
makes the partition gap-free and non-overlapping.

Coordinates are decimal degrees with the north bound numerically greater
than the south bound (top > bottom) and the east bound greater than the
west bound (right > left).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple


@dataclass(frozen=True)
class Region:
    """An immutable rectangular query area in decimal degrees."""
    top: float
    bottom: float
    left: float
    right: float
    depth: int = 0  # number of subdivisions from the root region

    def __post_init__(self) -> None:
        if not (-90.0 <= self.bottom < self.top <= 90.0):
            raise ValueError(
                f"Region needs -90 <= bottom < top <= 90, "
                f"got top={self.top}, bottom={self.bottom}"
            )
        if not (-180.0 <= self.left < self.right <= 180.0):
            raise ValueError(
                f"Region needs -180 <= left < right <= 180, "
                f"got left={self.left}, right={self.right}"
            )
        if self.depth < 0:
            raise ValueError(f"Region depth must be >= 0, got {self.depth}")

    @property
    def height(self) -> float:
        """Latitude span in degrees."""
        return self.top - self.bottom

    @property
    def width(self) -> float:
        """Longitude span in degrees."""
        return self.right - self.left

    @property
    def area(self) -> float:
        """Area in square degrees (planar, not geodesic)."""
        return self.height * self.width

    @property
    def mid_latitude(self) -> float:
        return self.top + (self.bottom - self.top) / 2

    @property
    def mid_longitude(self) -> float:
        return self.left + (self.right - self.left) / 2

    @property
    def can_subdivide(self) -> bool:
        """False once float precision can no longer place a midpoint strictly inside."""
        return (
            self.bottom < self.mid_latitude < self.top
            and self.left < self.mid_longitude < self.right
        )

    def subdivide(self) -> Tuple["Region", "Region", "Region", "Region"]:
        """
        Split into four quadrants: top-left, top-right, bottom-left, bottom-right.

        Raises ValueError when the region is too small to split.
        """
        if not self.can_subdivide:
            raise ValueError(f"Region too small to subdivide: {self}")

        mid_lat = self.mid_latitude
        mid_lon = self.mid_longitude
        depth = self.depth + 1

        return (
            Region(self.top, mid_lat, self.left, mid_lon, depth),
            Region(self.top, mid_lat, mid_lon, self.right, depth),
            Region(mid_lat, self.bottom, self.left, mid_lon, depth),
            Region(mid_lat, self.bottom, mid_lon, self.right, depth),
        )

    def contains(self, latitude: float, longitude: float) -> bool:
        """Point-in-box test, inclusive of the edges."""
        return (
            self.bottom <= latitude <= self.top
            and self.left <= longitude <= self.right
        )

    def to_query_params(self) -> Dict[str, float]:
        """Bounding-box parameters as the feed expects them."""
        return {
            "top": self.top,
            "bottom": self.bottom,
            "left": self.left,
            "right": self.right,
        }

    def __str__(self) -> str:
        return (
            f"lat {self.top} - {self.bottom}, "
            f"lon {self.left} - {self.right} (depth {self.depth})"
        )
