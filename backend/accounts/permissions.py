# accounts/permissions.py
from rest_framework.permissions import BasePermission


class IsFleetOwner(BasePermission):
    """
    Allows access only to fleet owner accounts (role == 'owner_operator').
    Staff users may act as fleet owners for support purposes.
    """
    def has_permission(self, request, view):
        user = getattr(request, "user", None)
        if not user or not user.is_authenticated:
            return False
        return getattr(user, "role", None) == "owner_operator" or user.is_staff
