# services/booking-service/src/apps/api/views/__init__.py
"""
Booking API Views
"""

from .reservation_views import (
    ReservationViewSet,
)

from .recurrence_views import (
    RecurrenceRuleViewSet,
)

from .trip_views import (
    VehicleAccessTokenView,
    AccessTokenValidateView,
    TripCheckoutView,
    TripCheckinView,
    LateReturnFeeViewSet,
)


__all__ = [
    # Reservations
    'ReservationViewSet',

    # Recurrence
    'RecurrenceRuleViewSet',

    # Trips
    'VehicleAccessTokenView',
    'AccessTokenValidateView',
    'TripCheckoutView',
    'TripCheckinView',
    'LateReturnFeeViewSet',
]
