"""
Time window utilities for sync jobs.

Provides helpers for computing incremental sync bounds, formatting timestamps
for the source APIs, and enforcing a caller-supplied deadline on a job run.
"""

import logging
import time
from datetime import UTC, datetime, timedelta

logger = logging.getLogger(__name__)


class DeadlineExceeded(Exception):
    """Raised when a job runs past its caller-supplied deadline."""


class Deadline:
    """Wall-clock budget for a job run, measured on a monotonic clock."""

    def __init__(self, seconds: float):
        self.seconds = seconds
        self._expires_at = time.monotonic() + seconds

    @classmethod
    def after(cls, seconds: float | None) -> "Deadline | None":
        """Build a deadline, or None when no budget is configured."""
        if seconds is None:
            return None
        return cls(seconds)

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self._expires_at

    def check(self, what: str) -> None:
        """Raise DeadlineExceeded if the budget is spent before `what` starts."""
        if self.expired:
            raise DeadlineExceeded(f"Deadline of {self.seconds}s exceeded before {what}")


def check_deadline(deadline: Deadline | None, what: str) -> None:
    """Check an optional deadline."""
    if deadline is not None:
        deadline.check(what)


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def truncate_to_second(dt: datetime) -> datetime:
    """Drop sub-second precision."""
    return dt.replace(microsecond=0)


def ensure_utc(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def format_iso_timestamp(dt: datetime) -> str:
    """Format datetime as ISO 8601 string in UTC with a Z suffix."""
    return ensure_utc(dt).isoformat().replace("+00:00", "Z")


def lookback_start(lookback_hours: int, now: datetime | None = None) -> datetime:
    """Lower bound for a first incremental run with no stored watermark."""
    now = now or utc_now()
    since = truncate_to_second(now - timedelta(hours=lookback_hours))
    logger.info(f"No stored watermark, looking back {lookback_hours} hours to {since}")
    return since


def format_duration(seconds: float) -> str:
    """Format a duration in seconds as a human-readable string."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    if minutes < 60:
        return f"{minutes}m {secs}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m"
