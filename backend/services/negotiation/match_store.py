"""
Match persistence with optimistic concurrency.

Every mutation is a single conditional UPDATE keyed on the status and
version the caller read. Zero rows updated means another request got there
first, which surfaces as ConflictError instead of a silent overwrite.
"""

import logging
from typing import Optional

from django.db import IntegrityError, transaction
from django.db.models import F

from matches.models import Match, OPEN_PAIR_CONSTRAINT, OPEN_STATUSES, can_transition
from services.core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    LeaseEngineError,
    NotFoundError,
)

logger = logging.getLogger(__name__)


class MatchStore:
    """Create/read/conditionally update Match rows."""

    def get(self, match_id) -> Match:
        try:
            return Match.objects.select_related(
                'load_owner', 'driver_owner', 'recipient_owner', 'driver', 'load'
            ).get(pk=match_id)
        except Match.DoesNotExist:
            raise NotFoundError("Match not found", match_id=match_id)

    def find_open(self, driver_id, load_id) -> Optional[Match]:
        """Return the non-terminal match for this (driver, load) pair, if any."""
        return Match.objects.filter(
            driver_id=driver_id,
            load_id=load_id,
            status__in=OPEN_STATUSES,
        ).first()

    def create(self, **fields) -> Match:
        # The partial unique constraint backs up the caller's find_open pre-check
        driver, load = fields.get('driver'), fields.get('load')
        try:
            with transaction.atomic():
                return Match.objects.create(**fields)
        except IntegrityError as e:
            lost_pair_race = OPEN_PAIR_CONSTRAINT in str(e) or Match.objects.filter(
                driver=driver, load=load, status__in=OPEN_STATUSES,
            ).exists()
            if not lost_pair_race:
                raise
            raise ConflictError(
                "An open match already exists for this driver and load.",
                driver_id=driver.id if driver else None,
                load_id=load.id if load else None,
            )

    def update_if(self, match: Match, expected_status: str, now, **changes) -> Match:
        """
        Apply `changes` only if the row still has `expected_status` and the
        version read into `match`. Returns the freshly read row.
        """
        updated = Match.objects.filter(
            pk=match.pk,
            status=expected_status,
            version=match.version,
        ).update(version=F('version') + 1, updated_at=now, **changes)

        if not updated:
            raise ConflictError(match_id=match.pk)
        return self.get(match.pk)

    def transition(self, match: Match, new_status: str, now, **changes) -> Match:
        """Move `match` to `new_status` if the transition table allows it."""
        if not can_transition(match.status, new_status):
            raise InvalidTransitionError(
                f"Cannot move match from {match.status} to {new_status}",
                match_id=match.pk,
            )
        return self.update_if(match, match.status, now, status=new_status, **changes)

    def advance_best_effort(self, match_id, new_status: str, now) -> bool:
        """
        Propagate a status change from another entity (agreement, trip).

        Never raises: the originating transition is authoritative, so a
        failure here is only logged.
        """
        try:
            match = self.get(match_id)
            if match.status == new_status:
                return True
            self.transition(match, new_status, now)
            logger.info("Match %s -> %s (propagated)", match_id, new_status)
            return True
        except LeaseEngineError as e:
            logger.warning("Could not move match %s to %s: %s", match_id, new_status, e)
        except Exception:
            logger.exception("Unexpected error moving match %s to %s", match_id, new_status)
        return False
