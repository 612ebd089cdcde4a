from django.db import models
from django.contrib.auth.models import AbstractUser


class User(AbstractUser):
    """Fleet owner account; carries the company profile used on lease agreements"""
    ROLE_CHOICES = [
        ('owner_operator', 'Owner Operator'),
        ('admin', 'Platform Admin'),
    ]

    # Role & contact
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default='owner_operator')
    phone_number = models.CharField(max_length=20, blank=True)

    # Company profile (snapshotted onto TLAs at generation time)
    company_name = models.CharField(max_length=200, blank=True)
    legal_name = models.CharField(max_length=200, blank=True)
    address = models.CharField(max_length=255, blank=True)
    dot_number = models.CharField(max_length=20, blank=True)
    mc_number = models.CharField(max_length=20, blank=True)

    class Meta:
        db_table = 'users'

    def __str__(self):
        return f"{self.username} ({self.get_role_display()})"

    @property
    def display_name(self):
        return self.legal_name or self.company_name or self.get_full_name() or self.username
