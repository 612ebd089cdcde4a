"""
Driver rating aggregation.

A lessee rates the driver once per completed agreement. The driver's
running average and count, and the agreement's rated flag, change together
in one transaction or not at all.
"""

import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Tuple

from django.conf import settings
from django.db import transaction

from agreements.models import TripLeaseAgreement, DriverRating, TLAStatus
from drivers.models import Driver
from services.core import (
    SystemClock,
    check_deadline,
    EngineResult,
    AlreadyRatedError,
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    PreconditionError,
)

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5


class _LostRace(Exception):
    """A compare-and-set inside the rating transaction matched no row."""


def compute_running_average(current_rating: float, current_count: int, score: int) -> Tuple[float, int]:
    """
    Fold one score into a running average, rounded half up to one decimal.

    >>> compute_running_average(4.0, 2, 5)
    (4.3, 3)
    """
    new_count = current_count + 1
    total = Decimal(str(current_rating)) * current_count + score
    average = (total / new_count).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
    return float(average), new_count


class RatingAggregator:

    def __init__(self, clock=None, max_attempts: Optional[int] = None):
        self.clock = clock or SystemClock()
        self.max_attempts = max_attempts or getattr(settings, "RATING_MAX_ATTEMPTS", 3)

    def rate_driver(
        self,
        tla_id: int,
        rater_id: int,
        rating: int,
        comment: Optional[str] = None,
        deadline: Optional[datetime] = None,
    ) -> EngineResult:
        """
        Record the lessee's rating of the driver on a completed agreement.

        Raises:
            PreconditionError: Score outside 1-5
            NotFoundError: Agreement or driver missing
            ForbiddenError: Rater is not the lessee
            InvalidTransitionError: Agreement not completed
            AlreadyRatedError: Agreement already rated
            ConflictError: Retries exhausted under contention
        """
        if isinstance(rating, bool) or not isinstance(rating, int) or not MIN_RATING <= rating <= MAX_RATING:
            raise PreconditionError(f"Rating must be a whole number from {MIN_RATING} to {MAX_RATING}")

        for attempt in range(1, self.max_attempts + 1):
            try:
                tla, driver = self._rate_once(tla_id, rater_id, rating, comment, deadline)
                break
            except _LostRace:
                logger.warning("Rating TLA %s lost a race (attempt %d/%d)", tla_id, attempt, self.max_attempts)
        else:
            raise ConflictError(
                "The driver's rating was being updated by someone else. Please try again.",
                tla_id=tla_id,
            )

        self._append_history(tla, driver, rating, comment)
        logger.info(
            "Driver %s rated %s on TLA %s -> %.1f (%d ratings)",
            driver.id, rating, tla.id, driver.rating, driver.rating_count,
        )
        return EngineResult(
            success=True,
            record=driver,
            message=f"Thanks! You rated {driver.name} {rating} out of {MAX_RATING}.",
            extra={"rating": driver.rating, "rating_count": driver.rating_count},
        )

    def _rate_once(self, tla_id, rater_id, rating, comment, deadline):
        with transaction.atomic():
            tla = TripLeaseAgreement.objects.select_for_update().filter(pk=tla_id).first()
            if not tla:
                raise NotFoundError("Trip Lease Agreement not found", tla_id=tla_id)
            if tla.lessee_owner_id != rater_id:
                raise ForbiddenError("Only the lessee can rate the driver", tla_id=tla.id)
            if tla.status != TLAStatus.COMPLETED:
                raise InvalidTransitionError("Drivers can only be rated after the trip is completed", tla_id=tla.id)
            if tla.rated:
                raise AlreadyRatedError(tla_id=tla.id)

            driver = Driver.objects.select_for_update().filter(pk=tla.driver_id).first()
            if not driver:
                raise NotFoundError("Driver not found", driver_id=tla.driver_id)

            check_deadline(self.clock, deadline, "rate_driver")
            now = self.clock.now()
            new_rating, new_count = compute_running_average(driver.rating, driver.rating_count, rating)

            updated = Driver.objects.filter(pk=driver.pk, rating_count=driver.rating_count).update(
                rating=new_rating,
                rating_count=new_count,
                last_rated_at=now,
            )
            if not updated:
                raise _LostRace()

            flagged = TripLeaseAgreement.objects.filter(pk=tla.pk, rated=False).update(
                rated=True,
                rating_given=rating,
                rating_comment=comment or "",
                rated_at=now,
                updated_at=now,
            )
            if not flagged:
                raise _LostRace()

        tla.refresh_from_db()
        driver.refresh_from_db()
        return tla, driver

    @staticmethod
    def _append_history(tla, driver, rating, comment) -> None:
        try:
            DriverRating.objects.create(
                tla=tla,
                driver=driver,
                driver_owner_id=driver.owner_id,
                rated_by_owner_id=tla.lessee_owner_id,
                rated_by_company=tla.lessee.get("legalName", ""),
                rating=rating,
                comment=comment or "",
                trip_origin=tla.trip.get("origin", ""),
                trip_destination=tla.trip.get("destination", ""),
                created_at=tla.rated_at,
            )
        except Exception:
            logger.exception("Failed to record rating history for TLA %s", tla.id)
