from .geojson import build_feature_collection, export_geojson

__all__ = ["build_feature_collection", "export_geojson"]
