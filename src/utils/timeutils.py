"""Timestamp parsing, display formatting and bucketing helpers.

All engine arithmetic happens on integer epoch milliseconds. Display
strings and bucket boundaries are computed in a configurable zone.
"""

import math
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

MS_PER_MINUTE = 60_000

BUCKET_MINUTES = {
    "1min": 1,
    "15min": 15,
    "hour": 60,
}


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Naive timestamps are taken as UTC. A trailing ``Z`` is accepted.

    Args:
        value: Timestamp string from a detection record or filter.

    Returns:
        Timezone-aware datetime in UTC.

    Raises:
        ValueError: If the value is not a parseable timestamp string.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Invalid timestamp: {value!r}")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError as e:
        raise ValueError(f"Invalid timestamp: {value!r}") from e
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_epoch_ms(value: str) -> int:
    """Parse a timestamp string to epoch milliseconds."""
    dt = parse_timestamp(value)
    return int(round(dt.timestamp() * 1000))


def from_epoch_ms(ms: int, tz: str = "UTC") -> datetime:
    """Convert epoch milliseconds to an aware datetime in ``tz``."""
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).astimezone(ZoneInfo(tz))


def to_iso(ms: int) -> str:
    """Format epoch milliseconds as an ISO-8601 UTC string."""
    dt = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def format_clock(ms: int, tz: str = "UTC") -> str:
    """Format epoch milliseconds as ``HH:MM:SS`` in ``tz``."""
    return from_epoch_ms(ms, tz).strftime("%H:%M:%S")


def format_date(ms: int, tz: str = "UTC") -> str:
    """Format epoch milliseconds as ``YYYY-MM-DD`` in ``tz``."""
    return from_epoch_ms(ms, tz).strftime("%Y-%m-%d")


def format_hour_bucket(ms: int, tz: str = "UTC") -> str:
    """Format the hour containing ``ms`` as ``YYYY-MM-DD HH:00``."""
    return from_epoch_ms(ms, tz).strftime("%Y-%m-%d %H:00")


def floor_to_bucket(ms: int, granularity: str, tz: str = "UTC") -> int:
    """Floor epoch milliseconds to the start of its bucket.

    Seconds are always zeroed; minutes are floored to the bucket width.
    Flooring happens on the wall clock of ``tz`` so hour buckets follow
    local hours even in zones with fractional offsets.

    Args:
        ms: Epoch milliseconds.
        granularity: One of ``1min``, ``15min``, ``hour``.
        tz: IANA zone name.

    Returns:
        Epoch milliseconds of the bucket start.

    Raises:
        ValueError: If the granularity is unknown.
    """
    if granularity not in BUCKET_MINUTES:
        raise ValueError(f"Unknown granularity: {granularity}")
    width = BUCKET_MINUTES[granularity]
    local = from_epoch_ms(ms, tz)
    floored = local.replace(
        minute=(local.minute // width) * width if width < 60 else 0,
        second=0,
        microsecond=0,
    )
    return int(round(floored.timestamp() * 1000))


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves rounded up."""
    return int(math.floor(value + 0.5))


def round_half_up_places(value: float, places: int) -> float:
    """Round to ``places`` decimals with halves rounded up."""
    scale = 10**places
    return math.floor(value * scale + 0.5) / scale


def minutes_between(start_ms: int, end_ms: int) -> int:
    """Whole minutes between two instants, rounded half-up."""
    return round_half_up((end_ms - start_ms) / MS_PER_MINUTE)
