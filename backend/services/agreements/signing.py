"""
Trip Lease Agreement creation, signing and voiding.

Signatures are symmetric: either party may sign first while the agreement
is awaiting signatures. Each slot is written once by a single conditional
UPDATE, so two concurrent signers can never both win the same slot or
leave the status out of step with the slots.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction

from agreements.models import TLAStatus, SIGNATURE_ROLES
from loads.models import Load
from matches.models import Match, MatchStatus
from realtime.notifications import get_default_notifier
from services.core import (
    SystemClock,
    check_deadline,
    EngineResult,
    AlreadySignedError,
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    PreconditionError,
)
from services.core.snapshots import Signature
from services.negotiation import MatchStore
from .agreement_store import AgreementStore
from .events import notify_owners
from .tla_builder import generate_tla

logger = logging.getLogger(__name__)

INSURANCE_OPTIONS = ('existing_policy', 'trip_coverage')


def _other_role(role: str) -> str:
    return 'lessee' if role == 'lessor' else 'lessor'


class TLASigningEngine:
    """Generate agreements for accepted matches and collect both signatures."""

    def __init__(self, store=None, match_store=None, clock=None, notifier=None, enforce_signing_order=None):
        self.store = store or AgreementStore()
        self.match_store = match_store or MatchStore()
        self.clock = clock or SystemClock()
        self.notifier = notifier or get_default_notifier()
        if enforce_signing_order is None:
            enforce_signing_order = getattr(settings, "TLA_ENFORCE_SIGNING_ORDER", False)
        self.enforce_signing_order = enforce_signing_order

    # ===================== Generate =====================

    def generate(self, match: Match, lessor_profile, lessee_profile, driver_record,
                 now: Optional[datetime] = None) -> Dict[str, Any]:
        """Pure: field values of a new pending_lessor agreement for `match`."""
        return generate_tla(match, lessor_profile, lessee_profile, driver_record, now or self.clock.now())

    def create_for_match(self, match_id: int, actor_id: int, deadline: Optional[datetime] = None) -> EngineResult:
        """
        Create the agreement for an accepted match.

        In one transaction: insert the agreement, move the match to
        tla_pending and the load to matched.

        Raises:
            NotFoundError: Match does not exist
            ForbiddenError: Actor is not one of the two fleets
            InvalidTransitionError: Match is not accepted
            ConflictError: Load was matched elsewhere, or the match changed
        """
        match = self.match_store.get(match_id)

        if actor_id not in (match.load_owner_id, match.driver_owner_id):
            raise ForbiddenError("Only the two fleets on this match can create its agreement", match_id=match.id)
        if match.status != MatchStatus.ACCEPTED:
            raise InvalidTransitionError(
                f"An agreement can only be created for an accepted match (this one is {match.status})",
                match_id=match.id,
            )
        if match.load.status != 'pending':
            raise ConflictError("This load has already been matched to another driver.", load_id=match.load_id)

        check_deadline(self.clock, deadline, "create_tla")
        now = self.clock.now()
        fields = self.generate(match, match.driver_owner, match.load_owner, match.driver, now)

        with transaction.atomic():
            tla = self.store.insert(fields)
            self.match_store.transition(match, MatchStatus.TLA_PENDING, now)
            claimed = Load.objects.filter(pk=match.load_id, status='pending').update(
                status='matched',
                matched_at=now,
            )
            if not claimed:
                raise ConflictError("This load has already been matched to another driver.", load_id=match.load_id)

        tla = self.store.get(tla.pk)
        logger.info("TLA %s created for match %s by %s", tla.id, match.id, actor_id)

        notify_owners(self.notifier, 'tla_ready', tla, [tla.lessor_owner], None, actor_id, role='lessor')
        notify_owners(self.notifier, 'match_accepted', tla, [tla.lessee_owner], None, actor_id)

        return EngineResult(
            success=True,
            record=tla,
            message="Trip Lease Agreement created. Waiting for both fleets to sign.",
        )

    # ===================== Sign =====================

    def sign(
        self,
        tla_id: int,
        actor_id: int,
        role: str,
        signature_name: str,
        audit_context: Optional[Dict[str, str]] = None,
        insurance_option: Optional[str] = None,
        locations: Optional[Dict[str, Any]] = None,
        deadline: Optional[datetime] = None,
    ) -> EngineResult:
        """
        Record one party's e-signature.

        Args:
            tla_id: Agreement to sign
            actor_id: Owner-operator signing
            role: 'lessor' or 'lessee'
            signature_name: Typed legal name
            audit_context: {'ip_address', 'user_agent'} captured from the request
            insurance_option: Lessee only, 'existing_policy' or 'trip_coverage'
            locations: Lessee only, pickup/delivery details
            deadline: Optional instant after which no write is attempted

        Returns:
            EngineResult with the updated agreement
        """
        if role not in SIGNATURE_ROLES:
            raise PreconditionError(f"Role must be one of {', '.join(SIGNATURE_ROLES)}")
        if not signature_name or not signature_name.strip():
            raise PreconditionError("Type your full legal name to sign")
        if insurance_option and insurance_option not in INSURANCE_OPTIONS:
            raise PreconditionError(f"Unknown insurance option: {insurance_option}")

        tla = self.store.get(tla_id)
        other = _other_role(role)
        self._check_can_sign(tla, actor_id, role)

        check_deadline(self.clock, deadline, "sign_tla")
        now = self.clock.now()
        audit_context = audit_context or {}
        signature = Signature(
            signed_by=actor_id,
            signed_by_name=signature_name.strip(),
            signed_by_role=role,
            signed_at=now,
            ip_address=audit_context.get('ip_address') or "",
            user_agent=audit_context.get('user_agent') or "",
            consent_to_esign=True,
        )

        old_status = tla.status
        if not self._write_signature(tla, role, signature, now, insurance_option, locations):
            # The other party may have signed in between; retry once on the fresh row
            tla = self.store.get(tla_id)
            self._check_can_sign(tla, actor_id, role)
            old_status = tla.status
            if not self._write_signature(tla, role, signature, now, insurance_option, locations):
                raise ConflictError(tla_id=tla.id)

        tla = self.store.get(tla_id)
        logger.info("TLA %s signed by %s (%s) -> %s", tla.id, role, actor_id, tla.status)

        if tla.status == TLAStatus.SIGNED:
            self.match_store.advance_best_effort(tla.match_id, MatchStatus.TLA_SIGNED, now)
            notify_owners(
                self.notifier, 'tla_signed', tla,
                [tla.lessor_owner, tla.lessee_owner], old_status, actor_id,
            )
            message = "Agreement fully signed. The trip can now begin."
        else:
            other_owner = tla.lessee_owner if other == 'lessee' else tla.lessor_owner
            notify_owners(self.notifier, 'tla_ready', tla, [other_owner], old_status, actor_id, role=other)
            message = f"Signed. Waiting for the {other} to sign."

        return EngineResult(success=True, record=tla, message=message)

    @staticmethod
    def _signing_target(tla, role: str) -> str:
        if getattr(tla, f"{_other_role(role)}_signature"):
            return TLAStatus.SIGNED
        return TLAStatus.PENDING_LESSEE if role == 'lessor' else TLAStatus.PENDING_LESSOR

    def _check_can_sign(self, tla, actor_id: int, role: str) -> None:
        if actor_id != tla.owner_for_role(role):
            raise ForbiddenError(f"Only the {role} can sign as {role}", tla_id=tla.id)
        if getattr(tla, f"{role}_signature"):
            raise AlreadySignedError(tla_id=tla.id)
        self.store.check_transition(
            tla, self._signing_target(tla, role),
            f"This agreement is {tla.status} and cannot be signed",
        )
        if self.enforce_signing_order and role == 'lessee' and not tla.lessor_signature:
            raise InvalidTransitionError(
                "The driver owner (lessor) must sign this agreement first.",
                tla_id=tla.id,
            )

    def _write_signature(self, tla, role, signature, now, insurance_option, locations) -> bool:
        """Fill the role's slot if both slots still look the way they did when `tla` was read."""
        slot = f"{role}_signature"
        other_slot = f"{_other_role(role)}_signature"
        new_status = self._signing_target(tla, role)

        changes = {slot: signature.as_dict()}
        if new_status == TLAStatus.SIGNED:
            changes['signed_at'] = now
        if role == 'lessee':
            if insurance_option:
                changes['insurance'] = {
                    'option': insurance_option,
                    'confirmedAt': now.isoformat(),
                    'confirmedBy': signature.signed_by,
                }
            if locations:
                changes['locations'] = locations

        conditions = {
            f"{slot}__isnull": True,
            f"{other_slot}__isnull": not getattr(tla, other_slot),
        }
        return self.store.transition(tla, new_status, now, conditions, **changes)

    # ===================== Void =====================

    def void(self, tla_id: int, actor_id: int, reason: str = "", deadline: Optional[datetime] = None) -> EngineResult:
        """Void an agreement before completion. Staff only; signatures stay on the record."""
        User = get_user_model()
        if not User.objects.filter(pk=actor_id, is_staff=True).exists():
            raise ForbiddenError("Only XtraFleet staff can void an agreement", tla_id=tla_id)

        tla = self.store.get(tla_id)
        self.store.check_transition(
            tla, TLAStatus.VOIDED,
            f"Cannot void - this agreement is already {tla.status}",
        )

        check_deadline(self.clock, deadline, "void_tla")
        now = self.clock.now()
        old_status = tla.status
        written = self.store.transition(
            tla, TLAStatus.VOIDED, now,
            voided_at=now,
            voided_reason=reason or "",
        )
        if not written:
            raise ConflictError(tla_id=tla.id)

        tla = self.store.get(tla_id)
        logger.info("TLA %s voided by staff %s: %s", tla.id, actor_id, reason)
        notify_owners(
            self.notifier, 'tla_voided', tla,
            [tla.lessor_owner, tla.lessee_owner], old_status, actor_id, reason=reason or None,
        )
        return EngineResult(success=True, record=tla, message="Agreement voided.")
