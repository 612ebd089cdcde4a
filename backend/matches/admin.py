"""Tells what to show in the Django admin interface for matches app"""

from django.contrib import admin
from .models import Match


@admin.register(Match)
class MatchAdmin(admin.ModelAdmin):
    """Match admin"""
    list_display = ['id', 'load', 'driver', 'initiated_by', 'status', 'match_score', 'created_at', 'expires_at']
    list_filter = ['status', 'initiated_by', 'created_at']
    search_fields = ['load_owner__username', 'driver_owner__username', 'driver__name', 'load__origin']
    readonly_fields = ['original_terms', 'counter_terms', 'load_snapshot', 'driver_snapshot',
                       'created_at', 'expires_at', 'responded_at', 'updated_at', 'version']
    date_hierarchy = 'created_at'
