# services/booking-service/src/apps/api/serializers/trip_serializers.py
"""
Access Token, Trip and Late Fee Serializers
"""

from rest_framework import serializers

from apps.core.models import LateReturnFee
from apps.core.services import TripAction
from .reservation_serializers import ReservationSerializer


class AccessTokenValidateSerializer(serializers.Serializer):
    encrypted_payload = serializers.CharField(trim_whitespace=True)
    action = serializers.ChoiceField(choices=[a.value for a in TripAction])


class TripTokenSerializer(serializers.Serializer):
    """Blob scanned from the vehicle's QR code."""
    encrypted_payload = serializers.CharField(trim_whitespace=True)


class TripAuthorizationSerializer(serializers.Serializer):
    reservation_id = serializers.UUIDField(source='reservation.id')
    action = serializers.CharField(source='action.value')
    validated_at = serializers.DateTimeField()
    window_start = serializers.DateTimeField()
    window_end = serializers.DateTimeField()
    checkin_deadline = serializers.DateTimeField(allow_null=True)
    is_overdue = serializers.BooleanField()


class LateReturnFeeSerializer(serializers.ModelSerializer):
    status_display = serializers.CharField(
        source='get_status_display',
        read_only=True
    )

    class Meta:
        model = LateReturnFee
        fields = [
            'id', 'reservation', 'owner_id', 'vehicle_id', 'group_id',
            'late_minutes', 'chargeable_minutes',
            'fee_amount', 'original_fee_amount', 'calculation_method',
            'status', 'status_display',
            'waived_by', 'waived_reason', 'waived_at', 'charged_at',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields


class LateFeeWaiveSerializer(serializers.Serializer):
    reason = serializers.CharField()


class CheckInResultSerializer(serializers.Serializer):
    reservation = ReservationSerializer()
    late_minutes = serializers.IntegerField()
    is_overdue = serializers.BooleanField()
    fee = LateReturnFeeSerializer(allow_null=True)
