# services/booking-service/src/apps/api/serializers/recurrence_serializers.py
"""
Recurrence Rule Serializers
"""

from rest_framework import serializers

from apps.core.models import RecurrenceRule
from .reservation_serializers import ConflictSerializer, ReservationSerializer

# Sunday first, matching the mask bit order
WEEKDAY_NAMES = [
    'sunday', 'monday', 'tuesday', 'wednesday',
    'thursday', 'friday', 'saturday',
]


def mask_to_days(mask: int):
    return [name for bit, name in enumerate(WEEKDAY_NAMES) if mask & (1 << bit)]


def days_to_mask(days) -> int:
    mask = 0
    for day in days:
        mask |= 1 << WEEKDAY_NAMES.index(day)
    return mask


class RecurrenceRuleSerializer(serializers.ModelSerializer):
    """Base recurrence rule serializer."""

    pattern_display = serializers.CharField(
        source='get_pattern_display',
        read_only=True
    )
    status_display = serializers.CharField(
        source='get_status_display',
        read_only=True
    )
    days_of_week = serializers.SerializerMethodField()

    class Meta:
        model = RecurrenceRule
        fields = [
            'id', 'vehicle_id', 'group_id', 'owner_id',
            'pattern', 'pattern_display', 'interval',
            'days_of_week_mask', 'days_of_week',
            'start_time', 'end_time', 'timezone_id',
            'window_start_date', 'window_end_date',
            'status', 'status_display', 'paused_until',
            'generated_until', 'last_run_at',
            'cancelled_at', 'cancellation_reason', 'notes',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields

    def get_days_of_week(self, obj):
        return mask_to_days(obj.days_of_week_mask)


class RecurrenceRuleCreateSerializer(serializers.Serializer):
    """
    Create a recurrence rule. Weekdays may be given by name or as a raw
    Sunday-first mask.
    """

    vehicle_id = serializers.UUIDField()
    pattern = serializers.ChoiceField(
        choices=RecurrenceRule.Pattern.choices,
        default=RecurrenceRule.Pattern.WEEKLY
    )
    interval = serializers.IntegerField(min_value=1, default=1)
    days_of_week = serializers.ListField(
        child=serializers.ChoiceField(choices=WEEKDAY_NAMES),
        required=False
    )
    days_of_week_mask = serializers.IntegerField(
        min_value=0,
        max_value=RecurrenceRule.ALL_DAYS,
        required=False
    )
    start_time = serializers.TimeField()
    end_time = serializers.TimeField()
    window_start_date = serializers.DateField()
    window_end_date = serializers.DateField(required=False, allow_null=True)
    timezone_id = serializers.CharField(default='UTC')
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    def validate(self, attrs):
        days = attrs.pop('days_of_week', None)
        if days is not None:
            attrs['days_of_week_mask'] = days_to_mask(days)
        attrs.setdefault('days_of_week_mask', 0)

        if attrs['pattern'] == RecurrenceRule.Pattern.WEEKLY and not attrs['days_of_week_mask']:
            raise serializers.ValidationError({
                'days_of_week': 'Weekly rules need at least one weekday.'
            })
        return attrs


class RecurrenceExpandSerializer(serializers.Serializer):
    horizon = serializers.DateField(required=False)


class RecurrencePauseSerializer(serializers.Serializer):
    paused_until = serializers.DateTimeField(required=False, allow_null=True)


class RecurrenceCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class SkippedOccurrenceSerializer(serializers.Serializer):
    date = serializers.DateField(source='day')
    reason = serializers.CharField(source='reason.value')
    conflicts = ConflictSerializer(many=True)


class ExpansionResultSerializer(serializers.Serializer):
    rule_id = serializers.UUIDField()
    attempted = serializers.SerializerMethodField()
    committed = ReservationSerializer(many=True)
    skipped = SkippedOccurrenceSerializer(many=True)
    generated_until = serializers.DateField()

    def get_attempted(self, obj) -> int:
        return len(obj.attempted)
