from django.contrib import admin
from loads.models import Load


@admin.register(Load)
class LoadAdmin(admin.ModelAdmin):
    list_display = ("id", "owner", "origin", "destination", "cargo", "weight", "status", "created_at")
    list_filter = ("status",)
    search_fields = ("origin", "destination", "cargo", "owner__username")
    readonly_fields = ("created_at", "matched_at", "delivered_at")
