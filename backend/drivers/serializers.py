from rest_framework import serializers
from drivers.models import Driver


class DriverRatingSerializer(serializers.ModelSerializer):
    """
    Driver rating aggregate returned after a rating is recorded.
    """

    class Meta:
        model = Driver
        fields = [
            "id",
            "name",
            "rating",
            "rating_count",
            "last_rated_at",
        ]
        read_only_fields = fields


class PostTripAvailabilitySerializer(serializers.Serializer):
    """
    Post-trip availability choice (available / off-duty).
    """
    mark_available = serializers.BooleanField()
