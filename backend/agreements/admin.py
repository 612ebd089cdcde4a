"""Tells what to show in the Django admin interface for agreements app"""

from django.contrib import admin
from .models import TripLeaseAgreement, DriverRating


@admin.register(TripLeaseAgreement)
class TripLeaseAgreementAdmin(admin.ModelAdmin):
    """Trip Lease Agreement admin"""
    list_display = ['id', 'match', 'lessor_owner', 'lessee_owner', 'driver', 'status', 'signed_at', 'rated']
    list_filter = ['status', 'rated', 'created_at']
    search_fields = ['lessor_owner__username', 'lessee_owner__username', 'driver__name']
    readonly_fields = ['lessor', 'lessee', 'driver_snapshot', 'trip', 'payment',
                       'lessor_signature', 'lessee_signature', 'trip_tracking',
                       'signed_at', 'voided_at', 'rated_at', 'created_at', 'updated_at']
    date_hierarchy = 'created_at'


@admin.register(DriverRating)
class DriverRatingAdmin(admin.ModelAdmin):
    list_display = ("driver", "rating", "rated_by_company", "tla", "created_at")
    list_filter = ("rating",)
    search_fields = ("driver__name", "rated_by_company")
    readonly_fields = ("created_at",)
