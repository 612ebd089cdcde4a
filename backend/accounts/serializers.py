from rest_framework import serializers
from .models import User


class FleetOwnerSerializer(serializers.ModelSerializer):
    """Public company profile of a fleet owner (party to a match or TLA)"""
    display_name = serializers.CharField(read_only=True)

    class Meta:
        model = User
        fields = [
            "id",
            "display_name",
            "company_name",
            "legal_name",
            "email",
            "phone_number",
            "dot_number",
            "mc_number",
        ]
        read_only_fields = fields
