"""Timestamp utilities for chain time and wall-clock time (UTC with timezone)."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current wall-clock time, timezone-aware UTC."""
    return datetime.now(tz=timezone.utc)


def from_millis(ts_ms: int) -> datetime:
    """Convert a chain timestamp in unix milliseconds to timezone-aware UTC."""
    return datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Treat naive datetimes (as SQLite returns them) as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def lag_seconds(ts_ms: int, received_at: datetime | None = None) -> float:
    """Seconds between a checkpoint's chain timestamp and its receipt. Never negative."""
    received_at = received_at or utc_now()
    lag = (ensure_utc(received_at) - from_millis(ts_ms)).total_seconds()
    return max(lag, 0.0)
