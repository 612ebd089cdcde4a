"""Server-side time source and operation deadlines."""

from datetime import datetime
from typing import Optional

from django.utils import timezone

from .exceptions import OperationTimeoutError


class SystemClock:
    """Wall clock used for every *_at timestamp the engine writes."""

    def now(self) -> datetime:
        return timezone.now()


def check_deadline(clock, deadline: Optional[datetime], operation: str) -> None:
    """
    Fail fast when the caller's deadline has already passed.

    Called before each write so an operation either completes or fails
    without a partial write.
    """
    if deadline is not None and clock.now() > deadline:
        raise OperationTimeoutError(f"{operation} did not finish before its deadline")
