"""
geojson.py — Read-only GeoJSON export of the alert table.

Produces the FeatureCollection the map viewer loads as its data source:

    {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "geometry": {"type": "Point", "coordinates": [lon, lat]},
                "properties": {"uuid": "...", "type": "JAM", "pubMillis": 1700000000000}
            },
            ...
        ]
    }

GeoJSON orders coordinates longitude first.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Union

from alertcrawler.ingestion.models import AlertRecord

logger = logging.getLogger(__name__)

DEFAULT_FILENAME = "alerts.json"


def to_feature(record: AlertRecord) -> Dict[str, Any]:
    return {
        "type": "Feature",
        "geometry": {
            "type": "Point",
            "coordinates": [record.longitude, record.latitude],
        },
        "properties": {
            "uuid": record.uuid,
            "type": record.type,
            "pubMillis": record.pub_millis,
        },
    }


def build_feature_collection(records: Iterable[AlertRecord]) -> Dict[str, Any]:
    return {
        "type": "FeatureCollection",
        "features": [to_feature(r) for r in records],
    }


async def export_geojson(store, path: Union[str, Path]) -> int:
    """
    Write every stored alert to `path` as GeoJSON.

    Returns the number of features written.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    records = await store.fetch_all()
    collection = build_feature_collection(records)
    path.write_text(json.dumps(collection), encoding="utf-8")

    logger.info("Exported %d alerts to %s", len(records), path)
    return len(records)
