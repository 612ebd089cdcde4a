from rest_framework import serializers

from accounts.serializers import FleetOwnerSerializer
from .models import TripLeaseAgreement, SIGNATURE_ROLES


class TripLeaseAgreementSerializer(serializers.ModelSerializer):
    """Serializer for Trip Lease Agreements"""
    lessor_owner = FleetOwnerSerializer(read_only=True)
    lessee_owner = FleetOwnerSerializer(read_only=True)

    class Meta:
        model = TripLeaseAgreement
        fields = ['id', 'match_id', 'driver_id', 'lessor_owner', 'lessee_owner',
                  'lessor', 'lessee', 'driver_snapshot', 'trip', 'payment',
                  'insurance', 'locations', 'lessor_signature', 'lessee_signature',
                  'trip_tracking', 'status', 'signed_at', 'voided_at', 'voided_reason',
                  'rated', 'rating_given', 'rating_comment', 'rated_at',
                  'version', 'created_at', 'updated_at']
        read_only_fields = fields


class SignAgreementSerializer(serializers.Serializer):
    """Serializer for an e-signature"""
    role = serializers.ChoiceField(choices=SIGNATURE_ROLES)
    signature_name = serializers.CharField(max_length=200)
    consent_to_esign = serializers.BooleanField()
    insurance_option = serializers.ChoiceField(
        choices=['existing_policy', 'trip_coverage'],
        required=False,
    )
    locations = serializers.JSONField(required=False)

    def validate_consent_to_esign(self, value):
        if not value:
            raise serializers.ValidationError("You must consent to sign electronically.")
        return value


class VoidAgreementSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True)


class RateDriverSerializer(serializers.Serializer):
    """Serializer for the lessee's driver rating"""
    rating = serializers.IntegerField(min_value=1, max_value=5)
    comment = serializers.CharField(required=False, allow_blank=True)
