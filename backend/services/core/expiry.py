"""Offer expiry window for match negotiation."""

from dataclasses import dataclass
from datetime import datetime, timedelta

from django.conf import settings

DEFAULT_EXPIRY_WINDOW = timedelta(hours=48)


@dataclass(frozen=True)
class ExpiryPolicy:
    """
    Pure expiry rules. The expiry instant is fixed at creation and never
    extended by counters or other responses.
    """
    window: timedelta = DEFAULT_EXPIRY_WINDOW

    @classmethod
    def from_settings(cls) -> "ExpiryPolicy":
        hours = getattr(settings, "MATCH_EXPIRY_HOURS", None)
        if hours is None:
            return cls()
        return cls(window=timedelta(hours=hours))

    def expires_at(self, created_at: datetime) -> datetime:
        return created_at + self.window

    def is_expired(self, expires_at: datetime, now: datetime) -> bool:
        return now > expires_at

    def hours_left(self, expires_at: datetime, now: datetime) -> int:
        """Whole hours remaining before expiry (never negative)."""
        seconds = (expires_at - now).total_seconds()
        return max(0, round(seconds / 3600))
