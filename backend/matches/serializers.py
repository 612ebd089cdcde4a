import math

from django.utils import timezone
from rest_framework import serializers

from accounts.serializers import FleetOwnerSerializer
from services.core import ExpiryPolicy
from services.matching import match_quality_label
from .models import Match


class TermsSerializer(serializers.Serializer):
    """Negotiable terms: {rate, pickupDate?, deliveryDate?, notes?}"""
    rate = serializers.FloatField(min_value=0.01)
    pickupDate = serializers.DateField(required=False)
    deliveryDate = serializers.DateField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True)

    def validate_rate(self, value):
        if not math.isfinite(value):
            raise serializers.ValidationError("Rate must be a finite number")
        return value


class MatchSerializer(serializers.ModelSerializer):
    """Serializer for Matches"""
    load_owner = FleetOwnerSerializer(read_only=True)
    driver_owner = FleetOwnerSerializer(read_only=True)
    recipient_owner_id = serializers.IntegerField(read_only=True)
    tla_id = serializers.IntegerField(read_only=True)
    hours_left = serializers.SerializerMethodField()
    match_quality = serializers.SerializerMethodField()

    class Meta:
        model = Match
        fields = ['id', 'load_id', 'driver_id', 'load_owner', 'driver_owner',
                  'initiated_by', 'recipient_owner_id', 'status', 'match_score',
                  'match_quality', 'original_terms', 'counter_terms', 'decline_reason',
                  'load_snapshot', 'driver_snapshot', 'created_at', 'expires_at',
                  'responded_at', 'hours_left', 'tla_id']
        read_only_fields = fields

    def get_hours_left(self, obj):
        if obj.status not in ('pending', 'countered'):
            return None
        return ExpiryPolicy().hours_left(obj.expires_at, timezone.now())

    def get_match_quality(self, obj):
        return match_quality_label(obj.match_score)


class MatchCreateSerializer(serializers.Serializer):
    """Serializer for sending a match request"""
    initiated_by = serializers.ChoiceField(choices=Match.INITIATOR_CHOICES)
    load_id = serializers.IntegerField()
    driver_id = serializers.IntegerField()
    terms = TermsSerializer()


class MatchResponseSerializer(serializers.Serializer):
    """Serializer for accept / decline / counter"""
    action = serializers.ChoiceField(choices=['accept', 'decline', 'counter'])
    reason = serializers.CharField(required=False, allow_blank=True)
    terms = TermsSerializer(required=False)

    def validate(self, attrs):
        if attrs['action'] == 'counter' and not attrs.get('terms'):
            raise serializers.ValidationError({'terms': 'A counter offer needs new terms.'})
        return attrs
