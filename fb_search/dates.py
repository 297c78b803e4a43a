from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any

_DIGITS_RE = re.compile(r"^\d+(?:\.\d+)?$")

# Values above this are treated as epoch milliseconds.
_MILLIS_THRESHOLD = 10**12

SECONDS_PER_DAY = 86400


def _from_number(value: float) -> int | None:
    if value <= 0:
        return None
    if value >= _MILLIS_THRESHOLD:
        value = value / 1000.0
    return int(value)


def to_epoch(value: Any) -> int | None:
    """
    Convert a date-ish input into epoch seconds (UTC).

    Accepts epoch numbers (seconds or milliseconds), `YYYY-MM-DD` and ISO-8601
    datetimes. Naive values are read as UTC. Returns None for empty or
    unparseable input.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        return _from_number(float(value))

    if isinstance(value, datetime):
        dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return int(dt.timestamp())

    if isinstance(value, date):
        return int(datetime(value.year, value.month, value.day, tzinfo=timezone.utc).timestamp())

    text = str(value).strip()
    if not text:
        return None

    if _DIGITS_RE.match(text):
        return _from_number(float(text))

    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"

    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())
