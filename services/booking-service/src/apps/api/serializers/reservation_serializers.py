# services/booking-service/src/apps/api/serializers/reservation_serializers.py
"""
Reservation Serializers
"""

from rest_framework import serializers

from apps.core.models import Reservation


class ReservationSerializer(serializers.ModelSerializer):
    """Base reservation serializer."""

    status_display = serializers.CharField(
        source='get_status_display',
        read_only=True
    )
    priority_tier_display = serializers.CharField(
        source='get_priority_tier_display',
        read_only=True
    )
    duration_minutes = serializers.IntegerField(read_only=True)

    class Meta:
        model = Reservation
        fields = [
            'id', 'vehicle_id', 'group_id', 'owner_id',
            'start_at', 'end_at', 'duration_minutes',
            'priority_tier', 'priority_tier_display',
            'is_emergency', 'emergency_reason',
            'status', 'status_display',
            'recurrence_rule', 'bumped_by',
            'checked_out_at', 'checked_out_by',
            'checked_in_at', 'checked_in_by', 'late_minutes',
            'cancelled_at', 'cancelled_by', 'cancellation_reason',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields


class ReservationCreateSerializer(serializers.Serializer):
    """Request for a one-off reservation."""

    vehicle_id = serializers.UUIDField()
    start_at = serializers.DateTimeField()
    end_at = serializers.DateTimeField()
    is_emergency = serializers.BooleanField(default=False)
    emergency_reason = serializers.CharField(
        required=False,
        allow_blank=True,
        allow_null=True
    )

    def validate(self, attrs):
        if attrs['end_at'] <= attrs['start_at']:
            raise serializers.ValidationError({
                'end_at': 'End time must be after start time.'
            })
        if attrs.get('is_emergency') and not (attrs.get('emergency_reason') or '').strip():
            raise serializers.ValidationError({
                'emergency_reason': 'A reason is required for emergency reservations.'
            })
        return attrs


class ReservationCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class ConflictSerializer(serializers.Serializer):
    """An existing reservation intersecting a request."""

    reservation_id = serializers.UUIDField()
    owner_id = serializers.UUIDField()
    start_at = serializers.DateTimeField()
    end_at = serializers.DateTimeField()
    status = serializers.CharField()
    priority_tier = serializers.IntegerField()
    is_emergency = serializers.BooleanField()


class CommitResultSerializer(serializers.Serializer):
    outcome = serializers.CharField(source='outcome.value')
    reservation = ReservationSerializer()
    bumped = ReservationSerializer(many=True)
    conflicts = ConflictSerializer(many=True)
