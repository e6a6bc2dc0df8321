from .alert_store import AlertStore

__all__ = ["AlertStore"]
