"""
Alert data models.

Two layers:
    • FeedAlert   — pydantic model validating one raw item from the feed
                    ({uuid, type, pubMillis, location: {x, y}, ...})
    • AlertRecord — the flat record persisted by the alert store

The feed reports location as x = longitude, y = latitude. Items carry many
more keys (street, city, reportRating, ...) which are ignored.

The feed's category code arrives either as a string ("ACCIDENT", "JAM",
"HAZARD", ...) or as a number from older payloads; both are stored in
their text form.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FeedLocation(BaseModel):
    model_config = ConfigDict(extra="ignore")

    x: float = Field(ge=-180.0, le=180.0)
    y: float = Field(ge=-90.0, le=90.0)


class FeedAlert(BaseModel):
    """One alert item as returned by the feed."""
    model_config = ConfigDict(extra="ignore")

    uuid: str = Field(min_length=1)
    type: str = Field(min_length=1)
    pubMillis: int = Field(ge=0)
    location: FeedLocation

    @field_validator("type", mode="before")
    @classmethod
    def _category_as_text(cls, value: Any) -> Any:
        if isinstance(value, bool):
            raise ValueError("category code must be text or an integer")
        if isinstance(value, int):
            return str(value)
        return value

    def to_record(self) -> "AlertRecord":
        return AlertRecord(
            uuid=self.uuid,
            type=self.type,
            pub_millis=self.pubMillis,
            latitude=self.location.y,
            longitude=self.location.x,
        )


@dataclass(frozen=True)
class AlertRecord:
    """A deduplicated alert as stored; `uuid` is the natural key."""
    uuid: str
    type: str
    pub_millis: int  # epoch milliseconds
    latitude: float
    longitude: float

    @property
    def published_at(self) -> datetime:
        return datetime.fromtimestamp(self.pub_millis / 1000, tz=timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uuid": self.uuid,
            "type": self.type,
            "pubMillis": self.pub_millis,
            "latitude": self.latitude,
            "longitude": self.longitude,
        }
