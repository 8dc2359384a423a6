# services/booking-service/src/apps/api/urls.py
"""
Booking API URL Configuration

Defines all API routes for the booking service.
"""

from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import (
    # Reservations
    ReservationViewSet,
    # Recurrence
    RecurrenceRuleViewSet,
    # Trips
    VehicleAccessTokenView,
    AccessTokenValidateView,
    TripCheckoutView,
    TripCheckinView,
    LateReturnFeeViewSet,
)

app_name = 'api'

# Create router and register viewsets
router = DefaultRouter()
router.register(r'reservations', ReservationViewSet, basename='reservation')
router.register(r'recurring', RecurrenceRuleViewSet, basename='recurring')
router.register(r'late-fees', LateReturnFeeViewSet, basename='late-fee')

urlpatterns = [
    # Router URLs
    path('', include(router.urls)),

    # Vehicle access tokens
    path(
        'vehicles/<uuid:vehicle_id>/access-token/',
        VehicleAccessTokenView.as_view(),
        name='vehicle-access-token'
    ),
    path('access-tokens/validate/', AccessTokenValidateView.as_view(), name='access-token-validate'),

    # Trips
    path('trips/checkout/', TripCheckoutView.as_view(), name='trip-checkout'),
    path('trips/checkin/', TripCheckinView.as_view(), name='trip-checkin'),
]
