"""Time helpers shared by handlers that persist timestamps."""

from datetime import datetime, timezone
from typing import Any, Callable, Optional

# Returns the current time as a naive UTC datetime (the storage convention).
Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a stored timestamp into a naive UTC datetime.

    The Data API returns timestamps as ISO strings without timezone; values
    carrying an offset are normalised to UTC.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        s = value.strip()
        if not s:
            return None
        try:
            parsed = datetime.fromisoformat(s.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def from_unix(value: Any) -> Optional[datetime]:
    """Convert a unix timestamp (as sent by Stripe) into a naive UTC datetime."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc).replace(tzinfo=None)
    except (TypeError, ValueError, OverflowError, OSError):
        return None
