from django.db import models
from django.conf import settings

User = settings.AUTH_USER_MODEL


class Load(models.Model):
    """Freight posted by a fleet that needs a leased driver"""
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('matched', 'Matched'),
        ('in_transit', 'In-transit'),
        ('delivered', 'Delivered'),
    ]

    owner = models.ForeignKey(User, on_delete=models.CASCADE, related_name='loads')

    origin = models.CharField(max_length=200)
    destination = models.CharField(max_length=200)
    cargo = models.CharField(max_length=200)
    weight = models.PositiveIntegerField(help_text="Weight in lbs")
    price = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    pickup_date = models.DateField(null=True, blank=True)
    required_qualifications = models.JSONField(default=list, blank=True)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    matched_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'loads'
        ordering = ['-created_at']

    def __str__(self):
        return f"Load #{self.id} {self.origin} -> {self.destination} ({self.status})"
