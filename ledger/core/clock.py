"""
Clocks and timestamp handling.

recorded_at comes from a clock owned by the store; occurred_at is supplied by
the caller. Both must be timezone-aware and are normalized to UTC with
microsecond precision so stored values re-canonicalize to identical bytes.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from .errors import InvalidTimestamp

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MICROSECOND = timedelta(microseconds=1)


def ensure_utc(ts: datetime) -> datetime:
    """
    Return ts converted to UTC.

    Raises:
        InvalidTimestamp: If ts is not a datetime or is naive
    """
    if not isinstance(ts, datetime):
        raise InvalidTimestamp(f"expected datetime, got {type(ts).__name__}")
    if ts.tzinfo is None or ts.utcoffset() is None:
        raise InvalidTimestamp("timestamp must be timezone-aware")
    return ts.astimezone(timezone.utc)


def to_micros(ts: datetime) -> int:
    """Integer microseconds since the Unix epoch (exact, no float rounding)."""
    return (ensure_utc(ts) - EPOCH) // _MICROSECOND


def format_timestamp(ts: datetime) -> str:
    """ISO-8601 UTC string with microseconds, e.g. 2024-01-01T00:00:00.000000+00:00."""
    return ensure_utc(ts).isoformat(timespec="microseconds")


def parse_timestamp(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp produced by format_timestamp (or any aware one).

    Raises:
        InvalidTimestamp: If value is malformed or naive
    """
    try:
        ts = datetime.fromisoformat(value)
    except (TypeError, ValueError) as ex:
        raise InvalidTimestamp(f"malformed timestamp: {value!r}") from ex
    return ensure_utc(ts)


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


@dataclass
class FixedClock:
    """
    Manually advanced clock.

    Useful in tests and replays where recorded_at must be predictable.
    """
    current: datetime = EPOCH

    def now(self) -> datetime:
        """Get current timestamp without advancing."""
        return self.current

    def tick(self, step: timedelta = timedelta(seconds=1)) -> datetime:
        """Advance clock by step and return the new time."""
        self.current = self.current + step
        return self.current
