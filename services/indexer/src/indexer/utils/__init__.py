"""Utility modules."""

from services.indexer.src.indexer.utils.timestamps import (
    ensure_utc,
    from_millis,
    lag_seconds,
    utc_now,
)

__all__ = [
    "utc_now",
    "from_millis",
    "ensure_utc",
    "lag_seconds",
]
