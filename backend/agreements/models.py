from django.db import models
from django.conf import settings

User = settings.AUTH_USER_MODEL


class TLAStatus(models.TextChoices):
    PENDING_LESSOR = 'pending_lessor', 'Awaiting Lessor Signature'
    PENDING_LESSEE = 'pending_lessee', 'Awaiting Lessee Signature'
    SIGNED = 'signed', 'Signed'
    IN_PROGRESS = 'in_progress', 'Trip In Progress'
    COMPLETED = 'completed', 'Completed'
    VOIDED = 'voided', 'Voided'


# A lessee signing first leaves the agreement in pending_lessor
TLA_TRANSITIONS = {
    TLAStatus.PENDING_LESSOR: {TLAStatus.PENDING_LESSOR, TLAStatus.PENDING_LESSEE, TLAStatus.SIGNED, TLAStatus.VOIDED},
    TLAStatus.PENDING_LESSEE: {TLAStatus.SIGNED, TLAStatus.VOIDED},
    TLAStatus.SIGNED: {TLAStatus.IN_PROGRESS, TLAStatus.VOIDED},
    TLAStatus.IN_PROGRESS: {TLAStatus.COMPLETED, TLAStatus.VOIDED},
    TLAStatus.COMPLETED: set(),
    TLAStatus.VOIDED: set(),
}

AWAITING_SIGNATURE_STATUSES = (TLAStatus.PENDING_LESSOR, TLAStatus.PENDING_LESSEE)
SIGNATURE_ROLES = ('lessor', 'lessee')


def can_transition(current, target) -> bool:
    return target in TLA_TRANSITIONS.get(current, set())


class TripLeaseAgreement(models.Model):
    """
    Trip Lease Agreement between the lessor fleet (owns the driver) and the
    lessee fleet (owns the load). Party, trip and payment fields are
    snapshots taken at generation and never change afterwards.
    """
    match = models.OneToOneField('matches.Match', on_delete=models.PROTECT, related_name='agreement')

    # Relational references used for authorization and side effects
    lessor_owner = models.ForeignKey(User, on_delete=models.PROTECT, related_name='agreements_as_lessor')
    lessee_owner = models.ForeignKey(User, on_delete=models.PROTECT, related_name='agreements_as_lessee')
    driver = models.ForeignKey('drivers.Driver', on_delete=models.PROTECT, related_name='agreements')

    # Snapshots
    lessor = models.JSONField()
    lessee = models.JSONField()
    driver_snapshot = models.JSONField()
    trip = models.JSONField()
    payment = models.JSONField()
    insurance = models.JSONField(default=dict)
    locations = models.JSONField(null=True, blank=True)

    # Signatures are written once per role
    lessor_signature = models.JSONField(null=True, blank=True)
    lessee_signature = models.JSONField(null=True, blank=True)

    # {startedAt, startedBy, startedByName, endedAt, endedBy, endedByName, durationMinutes}
    trip_tracking = models.JSONField(null=True, blank=True)

    status = models.CharField(max_length=20, choices=TLAStatus.choices, default=TLAStatus.PENDING_LESSOR)

    signed_at = models.DateTimeField(null=True, blank=True)
    voided_at = models.DateTimeField(null=True, blank=True)
    voided_reason = models.TextField(blank=True)

    # Lessee rating of the driver (once)
    rated = models.BooleanField(default=False)
    rating_given = models.PositiveSmallIntegerField(null=True, blank=True)
    rating_comment = models.TextField(blank=True)
    rated_at = models.DateTimeField(null=True, blank=True)

    # Agreement schema version
    version = models.PositiveIntegerField(default=1)

    created_at = models.DateTimeField()
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'tlas'
        ordering = ['-created_at']

    def __str__(self):
        return f"TLA #{self.id} for match {self.match_id} - {self.status}"

    @property
    def is_fully_signed(self):
        return bool(self.lessor_signature and self.lessee_signature)

    def owner_for_role(self, role):
        return self.lessor_owner_id if role == 'lessor' else self.lessee_owner_id

    def is_party(self, owner_id):
        return owner_id in (self.lessor_owner_id, self.lessee_owner_id)


class DriverRating(models.Model):
    """Append-only history of lessee ratings"""
    tla = models.ForeignKey(TripLeaseAgreement, on_delete=models.CASCADE, related_name='ratings')
    driver = models.ForeignKey('drivers.Driver', on_delete=models.CASCADE, related_name='ratings')
    driver_owner = models.ForeignKey(User, on_delete=models.CASCADE, related_name='driver_ratings_received')
    rated_by_owner = models.ForeignKey(User, on_delete=models.CASCADE, related_name='driver_ratings_given')
    rated_by_company = models.CharField(max_length=200, blank=True)

    rating = models.PositiveSmallIntegerField()
    comment = models.TextField(blank=True)

    trip_origin = models.CharField(max_length=200, blank=True)
    trip_destination = models.CharField(max_length=200, blank=True)

    created_at = models.DateTimeField()

    class Meta:
        db_table = 'ratings'
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.rating}/5 for driver {self.driver_id} (TLA #{self.tla_id})"
