# services/booking-service/src/apps/api/serializers/__init__.py
"""
Booking API Serializers
"""

from .reservation_serializers import (
    ReservationSerializer,
    ReservationCreateSerializer,
    ReservationCancelSerializer,
    ConflictSerializer,
    CommitResultSerializer,
)

from .recurrence_serializers import (
    RecurrenceRuleSerializer,
    RecurrenceRuleCreateSerializer,
    RecurrenceExpandSerializer,
    RecurrencePauseSerializer,
    RecurrenceCancelSerializer,
    ExpansionResultSerializer,
)

from .trip_serializers import (
    AccessTokenValidateSerializer,
    TripTokenSerializer,
    TripAuthorizationSerializer,
    LateReturnFeeSerializer,
    LateFeeWaiveSerializer,
    CheckInResultSerializer,
)

__all__ = [
    # Reservation
    'ReservationSerializer',
    'ReservationCreateSerializer',
    'ReservationCancelSerializer',
    'ConflictSerializer',
    'CommitResultSerializer',

    # Recurrence
    'RecurrenceRuleSerializer',
    'RecurrenceRuleCreateSerializer',
    'RecurrenceExpandSerializer',
    'RecurrencePauseSerializer',
    'RecurrenceCancelSerializer',
    'ExpansionResultSerializer',

    # Trips and fees
    'AccessTokenValidateSerializer',
    'TripTokenSerializer',
    'TripAuthorizationSerializer',
    'LateReturnFeeSerializer',
    'LateFeeWaiveSerializer',
    'CheckInResultSerializer',
]
