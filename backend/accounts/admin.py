from django.contrib import admin, messages
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from accounts.models import User

FLEET_PROFILE_FIELDS = ("company_name", "legal_name", "address", "dot_number", "mc_number")


@admin.register(User)
class FleetOwnerAdmin(BaseUserAdmin):
    """Fleet owner accounts and the company profile copied onto agreements"""

    list_display = ("username", "fleet_name", "role", "dot_number", "mc_number", "is_active")
    list_filter = ("role", "is_active", "is_staff")
    search_fields = ("username", "email") + FLEET_PROFILE_FIELDS[:2] + FLEET_PROFILE_FIELDS[3:]
    ordering = ("company_name", "username")
    actions = ["suspend_owners"]

    fieldsets = BaseUserAdmin.fieldsets + (
        ("Fleet Profile", {"fields": ("role", "phone_number") + FLEET_PROFILE_FIELDS}),
    )
    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        ("Fleet Profile", {"fields": ("role", "company_name", "legal_name")}),
    )

    @admin.display(description="Fleet", ordering="company_name")
    def fleet_name(self, obj):
        return obj.display_name

    @admin.action(description="Suspend selected fleet owners")
    def suspend_owners(self, request, queryset):
        updated = queryset.filter(is_staff=False).update(is_active=False)
        self.message_user(request, f"Suspended {updated} owner account(s).", messages.WARNING)
