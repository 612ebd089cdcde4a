"""Trip Lease Agreement persistence with conditional updates."""

import logging
from typing import Any, Dict, Optional

from django.db import IntegrityError, transaction

from agreements.models import TripLeaseAgreement, can_transition
from services.core.exceptions import ConflictError, InvalidTransitionError, NotFoundError

logger = logging.getLogger(__name__)


class AgreementStore:
    """Create/read/conditionally update TripLeaseAgreement rows."""

    def get(self, tla_id) -> TripLeaseAgreement:
        try:
            return TripLeaseAgreement.objects.select_related(
                'match', 'driver', 'lessor_owner', 'lessee_owner'
            ).get(pk=tla_id)
        except TripLeaseAgreement.DoesNotExist:
            raise NotFoundError("Trip Lease Agreement not found", tla_id=tla_id)

    def insert(self, fields: Dict[str, Any]) -> TripLeaseAgreement:
        """Insert a generated agreement. One agreement per match."""
        try:
            with transaction.atomic():
                return TripLeaseAgreement.objects.create(**fields)
        except IntegrityError:
            raise ConflictError(
                "An agreement already exists for this match.",
                match_id=fields["match"].id,
            )

    def update_if(
        self,
        tla: TripLeaseAgreement,
        expected_status: str,
        now,
        conditions: Optional[Dict[str, Any]] = None,
        **changes,
    ) -> bool:
        """
        Apply `changes` only if the row still has `expected_status` and
        matches any extra `conditions` (e.g. an empty signature slot).

        Returns:
            True if the row was written, False if someone else changed it first
        """
        updated = TripLeaseAgreement.objects.filter(
            pk=tla.pk,
            status=expected_status,
            **(conditions or {}),
        ).update(updated_at=now, **changes)
        if not updated:
            logger.info("Conditional update on TLA %s lost (expected %s)", tla.pk, expected_status)
        return bool(updated)

    def check_transition(self, tla: TripLeaseAgreement, new_status: str, message: Optional[str] = None) -> None:
        """Raise InvalidTransitionError unless TLA_TRANSITIONS allows the move."""
        if not can_transition(tla.status, new_status):
            raise InvalidTransitionError(
                message or f"Cannot move agreement from {tla.status} to {new_status}",
                tla_id=tla.pk,
            )

    def transition(
        self,
        tla: TripLeaseAgreement,
        new_status: str,
        now,
        conditions: Optional[Dict[str, Any]] = None,
        **changes,
    ) -> bool:
        """Move `tla` to `new_status` with a conditional write on the status it was read in."""
        self.check_transition(tla, new_status)
        return self.update_if(tla, tla.status, now, conditions, status=new_status, **changes)
