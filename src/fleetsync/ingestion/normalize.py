"""Normalization helpers.

Coerces backend values: placeholder strings, numbers and timestamps.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime
from typing import Any

# Placeholder strings the backend uses for "not available".
SENTINELS = frozenset({"", "--", "NaN", "nan", "null", "None"})


def safe_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str) and value.strip() in SENTINELS:
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result):
        return None
    return result


def safe_int(value: Any) -> int | None:
    parsed = safe_float(value)
    if parsed is None:
        return None
    return int(parsed)


def safe_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def is_meaningful(value: Any) -> bool:
    """Return True if the value counts as "reported" for a record field.

    ``0`` and ``False`` are meaningful; empty strings, placeholder strings,
    NaN and empty containers are not.
    """

    if value is None:
        return False
    if isinstance(value, str) and value.strip() in SENTINELS:
        return False
    if isinstance(value, float) and math.isnan(value):
        return False
    if value == {}:
        return False
    return bool(value != [])


def normalize_timestamp_seconds(value: Any) -> float | None:
    """Normalize epoch timestamps to seconds.

    - Empty/missing -> None
    - <= 0 -> None
    - Milliseconds (> 1e11) -> seconds
    """

    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        ts = float(value)
    except (TypeError, ValueError):
        return None
    if ts <= 0 or math.isnan(ts):
        return None
    if ts > 1e11:
        ts /= 1000.0
    return ts


def parse_timestamp(value: Any) -> datetime | None:
    """Coerce backend timestamps (epoch s/ms, ISO-8601 strings) to aware UTC datetimes."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if isinstance(value, str):
        text = value.strip()
        if text in SENTINELS:
            return None
        seconds = normalize_timestamp_seconds(text)
        if seconds is not None:
            return datetime.fromtimestamp(seconds, tz=UTC)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)
    seconds = normalize_timestamp_seconds(value)
    if seconds is None:
        return None
    return datetime.fromtimestamp(seconds, tz=UTC)
