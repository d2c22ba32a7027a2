"""
Expiration deadlines for share links.

Relative durations are converted to an absolute naive-UTC ``expires_at``
when a link is created or updated; only the absolute value is stored.
Expiry is evaluated live on every access, so no background actor is
needed for correctness.
"""
from datetime import datetime, timedelta
from typing import Callable, Optional

from snipshare.utils.clock import utcnow


class ExpirationClock:
    """Computes and evaluates share link deadlines."""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock

    def now(self) -> datetime:
        """Current time as naive UTC."""
        return self._clock()

    def from_relative_duration(
        self,
        hours: Optional[int] = None,
        days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> datetime:
        """
        Convert a relative duration into an absolute deadline.

        Args:
            hours: Hours from now
            days: Days from now
            now: Reference time (defaults to the clock)

        Returns:
            now + duration
        """
        if hours is None and days is None:
            raise ValueError("hours or days is required")
        reference = now or self.now()
        return reference + timedelta(hours=hours or 0, days=days or 0)

    def apply(
        self,
        link,
        hours: Optional[int] = None,
        days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> datetime:
        """Set ``link.expires_at`` from a relative duration and return it."""
        link.expires_at = self.from_relative_duration(hours=hours, days=days, now=now)
        return link.expires_at

    @staticmethod
    def clear_expiration(link) -> None:
        link.expires_at = None

    @staticmethod
    def is_expired(link, now: datetime) -> bool:
        """True when the link has a deadline at or before ``now``."""
        return link.expires_at is not None and link.expires_at <= now

    def remaining_time(self, link, now: Optional[datetime] = None) -> Optional[str]:
        """
        Human readable time left, e.g. "3 days", "1 hour", "Less than a minute".

        Returns "Expired" once the deadline passed and None without a deadline.
        """
        if link.expires_at is None:
            return None
        now = now or self.now()
        if link.expires_at <= now:
            return "Expired"

        left = link.expires_at - now
        if left.days > 0:
            return _plural(left.days, "day")
        hours = left.seconds // 3600
        if hours > 0:
            return _plural(hours, "hour")
        minutes = (left.seconds % 3600) // 60
        if minutes > 0:
            return _plural(minutes, "minute")
        return "Less than a minute"


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'s' if count > 1 else ''}"
