"""Utility functions for vocab arena."""

import math
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None


def parse_iso(value) -> datetime | None:
    """Parse an ISO timestamp (or pass a datetime through). Naive values are UTC."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value)
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def elapsed_ms(start, now: datetime) -> int:
    """Milliseconds from start to now, never negative; 0 when start is unset."""
    started = parse_iso(start)
    if started is None:
        return 0
    return max(0, int((now - started).total_seconds() * 1000))


def clamp_int(value, low: int, high: int) -> int:
    """Truncate value to an int within [low, high]. Garbage becomes low."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return low
    if math.isnan(number):
        return low
    if math.isinf(number):
        return high if number > 0 else low
    return min(high, max(low, int(number)))
