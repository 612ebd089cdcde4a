"""
Trip start/end tracking on a signed agreement.

Start and end are conditional writes on the agreement status. The match,
load and driver follow the agreement best-effort: if one of those writes
fails it is logged and the agreement transition stands.
"""

import logging
from datetime import datetime
from typing import Optional

from agreements.models import TLAStatus
from common.utils import format_trip_duration, trip_duration_minutes
from drivers.services import update_driver_availability
from loads.models import Load
from matches.models import MatchStatus
from realtime.notifications import get_default_notifier
from services.core import (
    SystemClock,
    check_deadline,
    EngineResult,
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    PreconditionError,
)
from services.negotiation import MatchStore
from .agreement_store import AgreementStore
from .events import notify_owners

logger = logging.getLogger(__name__)


class TripTracker:
    """Start and end the trip covered by an agreement."""

    def __init__(self, store=None, match_store=None, clock=None, notifier=None):
        self.store = store or AgreementStore()
        self.match_store = match_store or MatchStore()
        self.clock = clock or SystemClock()
        self.notifier = notifier or get_default_notifier()

    def start(self, tla_id: int, actor_id: int, actor_name: str, deadline: Optional[datetime] = None) -> EngineResult:
        """
        Start the trip on a fully signed agreement.

        Raises:
            NotFoundError, ForbiddenError, InvalidTransitionError, ConflictError
        """
        tla = self.store.get(tla_id)
        if not tla.is_party(actor_id):
            raise ForbiddenError("Only the two fleets on this agreement can start the trip", tla_id=tla.id)
        self.store.check_transition(
            tla, TLAStatus.IN_PROGRESS,
            "The agreement must be fully signed before the trip can start",
        )

        check_deadline(self.clock, deadline, "start_trip")
        now = self.clock.now()
        tracking = {
            "startedAt": now.isoformat(),
            "startedBy": actor_id,
            "startedByName": actor_name,
        }
        if not self.store.transition(tla, TLAStatus.IN_PROGRESS, now, trip_tracking=tracking):
            raise ConflictError(tla_id=tla.id)

        tla = self.store.get(tla_id)
        logger.info("Trip started on TLA %s by %s", tla.id, actor_id)

        self.match_store.advance_best_effort(tla.match_id, MatchStatus.IN_PROGRESS, now)
        self._set_driver_availability(tla.driver_id, 'on_trip')
        self._set_load_status(tla.match.load_id, 'in_transit')

        notify_owners(
            self.notifier, 'trip_started', tla,
            [tla.lessor_owner, tla.lessee_owner], TLAStatus.SIGNED, actor_id,
            startedByName=actor_name,
        )
        return EngineResult(success=True, record=tla, message="Trip started. Both fleets have been notified.")

    def end(self, tla_id: int, actor_id: int, actor_name: str, deadline: Optional[datetime] = None) -> EngineResult:
        """
        End a trip in progress and record its duration in minutes.

        Raises:
            NotFoundError, ForbiddenError, PreconditionError (never started),
            InvalidTransitionError, ConflictError
        """
        tla = self.store.get(tla_id)
        if not tla.is_party(actor_id):
            raise ForbiddenError("Only the two fleets on this agreement can end the trip", tla_id=tla.id)

        tracking = tla.trip_tracking or {}
        if not tracking.get("startedAt"):
            raise PreconditionError("This trip was never started", tla_id=tla.id)
        self.store.check_transition(tla, TLAStatus.COMPLETED, f"Cannot end a trip on a {tla.status} agreement")

        check_deadline(self.clock, deadline, "end_trip")
        now = self.clock.now()
        minutes = trip_duration_minutes(datetime.fromisoformat(tracking["startedAt"]), now)
        tracking = {
            **tracking,
            "endedAt": now.isoformat(),
            "endedBy": actor_id,
            "endedByName": actor_name,
            "durationMinutes": minutes,
        }
        if not self.store.transition(tla, TLAStatus.COMPLETED, now, trip_tracking=tracking):
            raise ConflictError(tla_id=tla.id)

        tla = self.store.get(tla_id)
        duration = format_trip_duration(minutes)
        logger.info("Trip completed on TLA %s by %s (%s)", tla.id, actor_id, duration)

        self.match_store.advance_best_effort(tla.match_id, MatchStatus.COMPLETED, now)
        self._set_load_status(tla.match.load_id, 'delivered', delivered_at=now)

        notify_owners(
            self.notifier, 'trip_completed', tla,
            [tla.lessor_owner, tla.lessee_owner], TLAStatus.IN_PROGRESS, actor_id,
            tripDuration=duration,
        )
        return EngineResult(
            success=True,
            record=tla,
            message=f"Trip completed. Duration: {duration}",
            extra={"duration_minutes": minutes, "trip_duration": duration},
        )

    def set_post_trip_availability(self, tla_id: int, mark_available: bool, actor_id: Optional[int] = None) -> EngineResult:
        """After completion, put the driver back to available or off duty."""
        tla = self.store.get(tla_id)
        if actor_id is not None and not tla.is_party(actor_id):
            raise ForbiddenError("Only the two fleets on this agreement can update the driver", tla_id=tla.id)
        if tla.status != TLAStatus.COMPLETED:
            raise InvalidTransitionError("Driver availability is set after the trip is completed", tla_id=tla.id)

        availability = 'available' if mark_available else 'off_duty'
        if not update_driver_availability(tla.driver_id, availability):
            raise NotFoundError("Driver not found", driver_id=tla.driver_id)

        label = "available for new loads" if mark_available else "off duty"
        return EngineResult(
            success=True,
            record=tla,
            message=f"{tla.driver_snapshot.get('name', 'Driver')} is now {label}.",
            extra={"availability": availability},
        )

    # ===================== Best-effort side effects =====================

    @staticmethod
    def _set_driver_availability(driver_id: int, availability: str) -> None:
        try:
            update_driver_availability(driver_id, availability)
        except Exception:
            logger.exception("Could not set driver %s availability to %s", driver_id, availability)

    @staticmethod
    def _set_load_status(load_id: int, load_status: str, **fields) -> None:
        try:
            Load.objects.filter(pk=load_id).update(status=load_status, **fields)
        except Exception:
            logger.exception("Could not set load %s status to %s", load_id, load_status)
