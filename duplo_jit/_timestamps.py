"""RFC 3339 timestamp helpers shared by the client and the credential documents."""

from __future__ import annotations

import re
from datetime import datetime, timezone

# fromisoformat before Python 3.11 takes exactly 3 or 6 fractional digits.
_FRACTION = re.compile(r"(T\d{2}:\d{2}:\d{2})\.(\d+)")


def format_timestamp(value: datetime) -> str:
    """Format a datetime as RFC 3339 in UTC, with second precision."""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC 3339 timestamp with any fractional precision. Naive values are taken as UTC.

    Raises:
        ValueError: If the value is empty or not a timestamp.
    """
    if not isinstance(value, str) or not value:
        raise ValueError(f"invalid timestamp: {value!r}")
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    value = _FRACTION.sub(lambda m: f"{m.group(1)}.{(m.group(2) + '000000')[:6]}", value, count=1)
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
