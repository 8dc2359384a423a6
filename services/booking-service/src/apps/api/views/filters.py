# services/booking-service/src/apps/api/views/filters.py
"""
API Filters

Django Filter classes for booking API.
"""

import django_filters

from apps.core.models import LateReturnFee, RecurrenceRule, Reservation


class ReservationFilter(django_filters.FilterSet):
    """Filter for reservation queries."""

    # Time range
    start_after = django_filters.DateTimeFilter(
        field_name='start_at',
        lookup_expr='gte'
    )
    start_before = django_filters.DateTimeFilter(
        field_name='start_at',
        lookup_expr='lte'
    )
    date = django_filters.DateFilter(
        field_name='start_at',
        lookup_expr='date'
    )

    status = django_filters.ChoiceFilter(
        choices=Reservation.Status.choices
    )
    active = django_filters.BooleanFilter(
        method='filter_active'
    )

    vehicle_id = django_filters.UUIDFilter()
    group_id = django_filters.UUIDFilter()
    recurrence_rule = django_filters.UUIDFilter()
    is_emergency = django_filters.BooleanFilter()

    class Meta:
        model = Reservation
        fields = ['status', 'vehicle_id', 'group_id', 'recurrence_rule', 'is_emergency']

    def filter_active(self, queryset, name, value):
        """Filter for confirmed or checked out reservations."""
        active = [Reservation.Status.CONFIRMED, Reservation.Status.CHECKED_OUT]
        if value:
            return queryset.filter(status__in=active)
        return queryset.exclude(status__in=active)


class RecurrenceRuleFilter(django_filters.FilterSet):
    status = django_filters.ChoiceFilter(
        choices=RecurrenceRule.Status.choices
    )
    pattern = django_filters.ChoiceFilter(
        choices=RecurrenceRule.Pattern.choices
    )
    vehicle_id = django_filters.UUIDFilter()

    class Meta:
        model = RecurrenceRule
        fields = ['status', 'pattern', 'vehicle_id']


class LateReturnFeeFilter(django_filters.FilterSet):
    status = django_filters.ChoiceFilter(
        choices=LateReturnFee.Status.choices
    )
    vehicle_id = django_filters.UUIDFilter()
    group_id = django_filters.UUIDFilter()

    class Meta:
        model = LateReturnFee
        fields = ['status', 'vehicle_id', 'group_id']
