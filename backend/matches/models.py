from django.db import models
from django.db.models import Q
from django.conf import settings


class MatchStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    COUNTERED = 'countered', 'Countered'
    ACCEPTED = 'accepted', 'Accepted'
    DECLINED = 'declined', 'Declined'
    EXPIRED = 'expired', 'Expired'
    CANCELLED = 'cancelled', 'Cancelled'
    TLA_PENDING = 'tla_pending', 'Awaiting TLA Signatures'
    TLA_SIGNED = 'tla_signed', 'TLA Signed'
    IN_PROGRESS = 'in_progress', 'Trip In Progress'
    COMPLETED = 'completed', 'Completed'


# Single source of truth for legal match transitions
MATCH_TRANSITIONS = {
    MatchStatus.PENDING: {
        MatchStatus.ACCEPTED, MatchStatus.DECLINED, MatchStatus.COUNTERED,
        MatchStatus.EXPIRED, MatchStatus.CANCELLED,
    },
    MatchStatus.COUNTERED: {
        MatchStatus.ACCEPTED, MatchStatus.DECLINED, MatchStatus.COUNTERED,
        MatchStatus.EXPIRED, MatchStatus.CANCELLED,
    },
    MatchStatus.ACCEPTED: {MatchStatus.TLA_PENDING, MatchStatus.CANCELLED},
    MatchStatus.TLA_PENDING: {MatchStatus.TLA_SIGNED},
    MatchStatus.TLA_SIGNED: {MatchStatus.IN_PROGRESS, MatchStatus.COMPLETED},
    MatchStatus.IN_PROGRESS: {MatchStatus.COMPLETED},
    MatchStatus.DECLINED: set(),
    MatchStatus.EXPIRED: set(),
    MatchStatus.CANCELLED: set(),
    MatchStatus.COMPLETED: set(),
}

NEGOTIABLE_STATUSES = (MatchStatus.PENDING, MatchStatus.COUNTERED)
CANCELLABLE_STATUSES = (MatchStatus.PENDING, MatchStatus.COUNTERED, MatchStatus.ACCEPTED)
TERMINAL_STATUSES = tuple(status for status, targets in MATCH_TRANSITIONS.items() if not targets)
OPEN_STATUSES = tuple(status for status in MatchStatus if status not in TERMINAL_STATUSES)

OPEN_PAIR_CONSTRAINT = 'unique_open_match_per_driver_load'


def can_transition(current, target) -> bool:
    return target in MATCH_TRANSITIONS.get(current, set())


class Match(models.Model):
    """A negotiated pairing of one fleet's driver with another fleet's load"""

    INITIATOR_CHOICES = [
        ('load_owner', 'Load Owner'),
        ('driver_owner', 'Driver Owner'),
    ]

    # Parties (immutable once created)
    load = models.ForeignKey('loads.Load', on_delete=models.PROTECT, related_name='matches')
    driver = models.ForeignKey('drivers.Driver', on_delete=models.PROTECT, related_name='matches')
    load_owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='load_matches'
    )
    driver_owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='driver_matches'
    )

    # Direction of the offer; recipient flips on every counter
    initiated_by = models.CharField(max_length=20, choices=INITIATOR_CHOICES)
    recipient_owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='incoming_matches'
    )

    status = models.CharField(max_length=20, choices=MatchStatus.choices, default=MatchStatus.PENDING)
    match_score = models.PositiveSmallIntegerField(default=0)

    # Terms: {rate, pickupDate?, deliveryDate?, notes?}
    original_terms = models.JSONField()
    counter_terms = models.JSONField(null=True, blank=True)
    decline_reason = models.TextField(blank=True)

    # Display snapshots captured at creation, never refreshed
    load_snapshot = models.JSONField()
    driver_snapshot = models.JSONField()

    # Timestamps (written by the engine clock)
    created_at = models.DateTimeField()
    expires_at = models.DateTimeField()
    responded_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    # Optimistic concurrency counter, bumped on every conditional update
    version = models.PositiveIntegerField(default=1)

    class Meta:
        db_table = 'matches'
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['driver', 'load'],
                condition=Q(status__in=OPEN_STATUSES),
                name=OPEN_PAIR_CONSTRAINT,
            )
        ]

    def __str__(self):
        return f"Match #{self.id} - driver {self.driver_id} / load {self.load_id} - {self.status}"

    @property
    def initiator_id(self):
        return self.load_owner_id if self.initiated_by == 'load_owner' else self.driver_owner_id

    @property
    def settlement_terms(self):
        """Counter terms supersede the original terms once they exist."""
        return self.counter_terms or self.original_terms

    @property
    def tla_id(self):
        agreement = getattr(self, 'agreement', None)
        return agreement.id if agreement else None

    def other_party_id(self, owner_id):
        return self.driver_owner_id if owner_id == self.load_owner_id else self.load_owner_id
