from django.contrib import admin
from drivers.models import Driver


@admin.register(Driver)
class DriverAdmin(admin.ModelAdmin):
    """Admin panel for fleet drivers"""

    list_display = [
        "name",
        "owner",
        "vehicle_type",
        "availability",
        "rating",
        "rating_count",
        "medical_card_expiry",
    ]

    list_filter = [
        "availability",
        "vehicle_type",
    ]

    search_fields = [
        "name",
        "owner__username",
        "owner__legal_name",
        "cdl_license",
    ]

    # Aggregate is maintained by the rating transaction only
    readonly_fields = [
        "rating",
        "rating_count",
        "last_rated_at",
        "created_at",
    ]

    ordering = ("name",)
