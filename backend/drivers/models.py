from django.db import models
from django.conf import settings

User = settings.AUTH_USER_MODEL


class Driver(models.Model):
    """A CDL driver belonging to a fleet, with availability and running rating"""
    AVAILABILITY_CHOICES = [
        ('available', 'Available'),
        ('on_trip', 'On-trip'),
        ('off_duty', 'Off-duty'),
    ]

    VEHICLE_CHOICES = [
        ('dry_van', 'Dry Van'),
        ('reefer', 'Reefer'),
        ('flatbed', 'Flatbed'),
    ]

    owner = models.ForeignKey(User, on_delete=models.CASCADE, related_name='drivers')

    name = models.CharField(max_length=150)
    location = models.CharField(max_length=200, blank=True)
    vehicle_type = models.CharField(max_length=20, choices=VEHICLE_CHOICES, blank=True)
    certifications = models.JSONField(default=list, blank=True)

    # Qualification documents (only the fields the lease agreement needs)
    cdl_license = models.CharField(max_length=50, blank=True)
    cdl_expiry = models.DateField(null=True, blank=True)
    medical_card_expiry = models.DateField(null=True, blank=True)

    availability = models.CharField(max_length=20, choices=AVAILABILITY_CHOICES, default='available')

    # Running average of lessee ratings; only written by the rating aggregator
    rating = models.FloatField(default=0)
    rating_count = models.PositiveIntegerField(default=0)
    last_rated_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'drivers'
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.get_availability_display()})"
