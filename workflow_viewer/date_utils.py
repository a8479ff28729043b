"""Shared timestamp parsing and ordering helpers."""
from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any


def _parse_datetime_token(token: str) -> datetime | None:
    cleaned = token.strip()
    if not cleaned:
        return None
    try:
        return datetime.fromisoformat(cleaned.replace("Z", "+00:00"))
    except Exception:
        pass
    for fmt in ("%Y/%m/%d", "%m/%d/%Y", "%Y-%m-%d %H:%M:%S"):
        try:
            return datetime.strptime(cleaned, fmt).replace(tzinfo=timezone.utc)
        except Exception:
            continue
    return None


def format_datetime_utc(value: datetime) -> str:
    """Render a datetime as ISO-8601 UTC with millisecond precision."""
    dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def epoch_to_iso(epoch_seconds: float) -> str:
    return format_datetime_utc(datetime.fromtimestamp(float(epoch_seconds), timezone.utc))


def timestamp_ms(value: Any) -> float:
    """Epoch milliseconds for a record timestamp, NaN when it cannot be parsed."""
    if not isinstance(value, str):
        return math.nan
    parsed = _parse_datetime_token(value)
    if parsed is None:
        return math.nan
    dt = parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return dt.timestamp() * 1000.0


def timestamp_sort_key(value: Any) -> tuple[int, float]:
    """Ascending sort key that places unparsable timestamps last."""
    ms = timestamp_ms(value)
    if math.isnan(ms):
        return (1, 0.0)
    return (0, ms)
