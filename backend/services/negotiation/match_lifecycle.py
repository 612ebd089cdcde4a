"""
Match negotiation lifecycle.

A match is an offer from one fleet to another: "your driver on my load" or
"my driver on your load". The recipient can accept, decline or counter.
Each counter flips the recipient back to the other party. The expiry
instant is fixed at creation and dominates every response: an offer
answered after it has passed is expired, whatever the answer was.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional, Union

from drivers.models import Driver
from loads.models import Load
from matches.models import (
    Match,
    MatchStatus,
    NEGOTIABLE_STATUSES,
    CANCELLABLE_STATUSES,
)
from realtime.notifications import NotificationEvent, get_default_notifier, safe_notify
from services.core import (
    SystemClock,
    check_deadline,
    ExpiryPolicy,
    EngineResult,
    ConflictError,
    ExpiredError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    PreconditionError,
)
from services.core.snapshots import Terms, LoadSnapshot, DriverCardSnapshot
from services.matching import calculate_match_score
from .match_store import MatchStore

logger = logging.getLogger(__name__)

INITIATOR_ROLES = ('load_owner', 'driver_owner')
RESPONSE_ACTIONS = ('accept', 'decline', 'counter')


class MatchNegotiationEngine:
    """
    Create, answer, cancel and expire matches.

    All collaborators are injectable so tests can pin the clock and
    capture notifications.
    """

    def __init__(self, store=None, clock=None, notifier=None, expiry=None):
        self.store = store or MatchStore()
        self.clock = clock or SystemClock()
        self.notifier = notifier or get_default_notifier()
        self.expiry = expiry or ExpiryPolicy.from_settings()

    # ===================== Create =====================

    def create(
        self,
        initiated_by: str,
        initiator_id: int,
        load_id: int,
        driver_id: int,
        terms: Union[Terms, Dict[str, Any]],
        deadline: Optional[datetime] = None,
    ) -> EngineResult:
        """
        Send a match request from one fleet to the other.

        Args:
            initiated_by: 'load_owner' or 'driver_owner'
            initiator_id: Owner-operator id of the sender
            load_id: Load being matched
            driver_id: Driver being leased
            terms: {rate, pickupDate?, deliveryDate?, notes?}
            deadline: Optional instant after which no write is attempted

        Returns:
            EngineResult with the new pending match

        Raises:
            NotFoundError: Load or driver does not exist
            ForbiddenError: Initiator does not own the side they claim
            PreconditionError: Bad terms, same fleet on both sides, load taken
            ConflictError: An open match already exists for this pair
        """
        if initiated_by not in INITIATOR_ROLES:
            raise PreconditionError(f"initiated_by must be one of {', '.join(INITIATOR_ROLES)}")
        if not isinstance(terms, Terms):
            terms = Terms.from_dict(terms)

        load = Load.objects.select_related('owner').filter(pk=load_id).first()
        if not load:
            raise NotFoundError("Load not found", load_id=load_id)
        driver = Driver.objects.select_related('owner').filter(pk=driver_id).first()
        if not driver:
            raise NotFoundError("Driver not found", driver_id=driver_id)

        if load.owner_id == driver.owner_id:
            raise PreconditionError("A fleet cannot lease its own driver")

        if initiated_by == 'load_owner':
            initiator, recipient = load.owner, driver.owner
        else:
            initiator, recipient = driver.owner, load.owner
        if initiator.id != initiator_id:
            raise ForbiddenError("You can only send match requests for your own loads or drivers")

        if load.status != 'pending':
            raise PreconditionError("This load has already been matched")
        if self.store.find_open(driver.id, load.id):
            raise ConflictError("An open match already exists for this driver and load.")

        check_deadline(self.clock, deadline, "create_match")
        now = self.clock.now()

        match = self.store.create(
            load=load,
            driver=driver,
            load_owner=load.owner,
            driver_owner=driver.owner,
            initiated_by=initiated_by,
            recipient_owner=recipient,
            status=MatchStatus.PENDING,
            match_score=calculate_match_score(driver, load, now.date()).total,
            original_terms=terms.as_dict(),
            load_snapshot=LoadSnapshot.from_load(load).as_dict(),
            driver_snapshot=DriverCardSnapshot.from_driver(driver).as_dict(),
            created_at=now,
            expires_at=self.expiry.expires_at(now),
        )
        logger.info(
            "Match %s created by %s %s (driver=%s load=%s)",
            match.id, initiated_by, initiator_id, driver.id, load.id,
        )

        kind = 'match_request' if initiated_by == 'load_owner' else 'driver_offer_request'
        self._notify(kind, recipient, match, old_status=None, actor_id=initiator_id)

        window_hours = int(self.expiry.window.total_seconds() // 3600)
        return EngineResult(
            success=True,
            record=match,
            message=f"Match request sent. The other fleet has {window_hours} hours to respond.",
            extra={"expires_at": match.expires_at},
        )

    # ===================== Respond =====================

    def respond(
        self,
        match_id: int,
        actor_id: int,
        action: str,
        reason: Optional[str] = None,
        terms: Optional[Union[Terms, Dict[str, Any]]] = None,
        deadline: Optional[datetime] = None,
    ) -> EngineResult:
        """
        Accept, decline or counter an open match.

        Check order: existence, status, expiry, then actor. A late answer
        from anyone is therefore reported as expired.

        Raises:
            NotFoundError, InvalidTransitionError, ExpiredError,
            ForbiddenError, ConflictError, PreconditionError
        """
        if action not in RESPONSE_ACTIONS:
            raise PreconditionError(f"Unknown response action: {action}")

        match = self.store.get(match_id)

        if match.status not in NEGOTIABLE_STATUSES:
            if match.status == MatchStatus.EXPIRED:
                raise ExpiredError(match_id=match.id)
            raise InvalidTransitionError(
                f"Cannot {action} - this match is already {match.status}",
                match_id=match.id,
            )

        now = self.clock.now()
        if self.expiry.is_expired(match.expires_at, now):
            # Persist the expiry we just observed, then report it
            self._expire(match, now)
            raise ExpiredError(match_id=match.id)

        if actor_id != match.recipient_owner_id:
            raise ForbiddenError(
                "Only the party receiving this offer can respond to it",
                match_id=match.id,
            )

        check_deadline(self.clock, deadline, f"{action}_match")

        if action == 'accept':
            return self._accept(match, actor_id, now)
        if action == 'decline':
            return self._decline(match, actor_id, now, reason)
        if terms is None:
            raise PreconditionError("A counter offer needs new terms")
        if not isinstance(terms, Terms):
            terms = Terms.from_dict(terms)
        return self._counter(match, actor_id, now, terms)

    def _accept(self, match: Match, actor_id: int, now: datetime) -> EngineResult:
        old_status = match.status
        updated = self.store.transition(match, MatchStatus.ACCEPTED, now, responded_at=now)
        logger.info("Match %s accepted by %s", match.id, actor_id)

        other = self._owner(updated, updated.other_party_id(actor_id))
        self._notify('match_accepted', other, updated, old_status=old_status, actor_id=actor_id)
        return EngineResult(
            success=True,
            record=updated,
            message="Match accepted. The Trip Lease Agreement can now be generated.",
        )

    def _decline(self, match: Match, actor_id: int, now: datetime, reason: Optional[str]) -> EngineResult:
        old_status = match.status
        updated = self.store.transition(
            match,
            MatchStatus.DECLINED,
            now,
            responded_at=now,
            decline_reason=reason or "",
        )
        logger.info("Match %s declined by %s", match.id, actor_id)

        other = self._owner(updated, updated.other_party_id(actor_id))
        self._notify(
            'match_declined', other, updated,
            old_status=old_status, actor_id=actor_id, reason=reason or None,
        )
        return EngineResult(success=True, record=updated, message="Match declined.")

    def _counter(self, match: Match, actor_id: int, now: datetime, terms: Terms) -> EngineResult:
        old_status = match.status
        previous_rate = match.settlement_terms.get('rate')
        next_recipient_id = match.other_party_id(actor_id)

        updated = self.store.transition(
            match,
            MatchStatus.COUNTERED,
            now,
            responded_at=now,
            counter_terms=terms.as_dict(),
            recipient_owner_id=next_recipient_id,
        )
        logger.info(
            "Match %s countered by %s (rate %s -> %s)",
            match.id, actor_id, previous_rate, terms.rate,
        )

        self._notify(
            'match_countered', updated.recipient_owner, updated,
            old_status=old_status, actor_id=actor_id,
            previousRate=previous_rate, counterNotes=terms.notes,
        )
        return EngineResult(
            success=True,
            record=updated,
            message="Counter offer sent. Waiting for the other fleet to respond.",
        )

    # ===================== Cancel =====================

    def cancel(self, match_id: int, actor_id: int, deadline: Optional[datetime] = None) -> EngineResult:
        """
        Withdraw a match. Only its initiator can cancel, and only before any
        agreement exists. An unanswered offer past its expiry is expired
        instead and reported as ExpiredError.
        """
        match = self.store.get(match_id)

        if actor_id != match.initiator_id:
            raise ForbiddenError("Only the fleet that sent this request can cancel it", match_id=match.id)
        if match.status not in CANCELLABLE_STATUSES:
            raise InvalidTransitionError(
                f"Cannot cancel - this match is already {match.status}",
                match_id=match.id,
            )

        now = self.clock.now()
        if match.status in NEGOTIABLE_STATUSES and self.expiry.is_expired(match.expires_at, now):
            self._expire(match, now)
            raise ExpiredError(match_id=match.id)

        check_deadline(self.clock, deadline, "cancel_match")
        old_status = match.status
        updated = self.store.transition(match, MatchStatus.CANCELLED, now)
        logger.info("Match %s cancelled by %s", match.id, actor_id)

        other = self._owner(updated, updated.other_party_id(actor_id))
        self._notify('match_cancelled', other, updated, old_status=old_status, actor_id=actor_id)
        return EngineResult(success=True, record=updated, message="Match request cancelled.")

    # ===================== Expiry =====================

    def sweep_expired(self, now: Optional[datetime] = None) -> int:
        """
        Expire every open match whose expiry instant has passed.

        Safe to run repeatedly and concurrently: a match that was answered
        or expired by someone else is skipped.

        Returns:
            Number of matches this call moved to expired
        """
        now = now or self.clock.now()
        candidates = Match.objects.filter(
            status__in=NEGOTIABLE_STATUSES,
            expires_at__lt=now,
        ).select_related('load_owner', 'driver_owner', 'recipient_owner', 'driver', 'load')

        expired = 0
        for match in candidates:
            if self._expire(match, now):
                expired += 1

        if expired:
            logger.info("Expired %d matches", expired)
        return expired

    def hours_left(self, match: Match, now: Optional[datetime] = None) -> int:
        return self.expiry.hours_left(match.expires_at, now or self.clock.now())

    def _expire(self, match: Match, now: datetime) -> bool:
        old_status = match.status
        try:
            updated = self.store.transition(match, MatchStatus.EXPIRED, now)
        except (ConflictError, InvalidTransitionError):
            logger.info("Match %s changed before it could be expired", match.id)
            return False

        for owner in (updated.load_owner, updated.driver_owner):
            self._notify('match_expired', owner, updated, old_status=old_status, actor_id=None)
        return True

    # ===================== Helpers =====================

    @staticmethod
    def _owner(match: Match, owner_id: int):
        return match.load_owner if owner_id == match.load_owner_id else match.driver_owner

    def _notify(self, kind: str, recipient, match: Match, old_status, actor_id, **extra) -> bool:
        payload = {
            "matchId": match.id,
            "oldStatus": old_status,
            "newStatus": match.status,
            "actorId": actor_id,
            "driverName": match.driver_snapshot.get("name"),
            "loadOrigin": match.load_snapshot.get("origin"),
            "loadDestination": match.load_snapshot.get("destination"),
            "rate": match.settlement_terms.get("rate"),
        }
        payload.update({key: value for key, value in extra.items() if value is not None})
        return safe_notify(self.notifier, NotificationEvent.for_owner(kind, recipient, payload))
