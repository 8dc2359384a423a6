# services/booking-service/src/apps/api/views/reservation_views.py
"""
Reservation API Views
"""

import logging

from rest_framework import filters, mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from django_filters.rest_framework import DjangoFilterBackend

from apps.core.models import Reservation
from apps.core.services import ReservationService, TripLifecycle
from apps.api.serializers import (
    CommitResultSerializer,
    ReservationCancelSerializer,
    ReservationCreateSerializer,
    ReservationSerializer,
)
from .errors import raise_for_rejection, service_errors
from .filters import ReservationFilter
from .pagination import StandardResultsSetPagination

logger = logging.getLogger(__name__)


class ReservationViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """
    ViewSet for the caller's reservations.

    Reservations are immutable once committed: they are created through the
    conflict guard and only change state through cancel or a trip.
    """

    queryset = Reservation.objects.all()
    serializer_class = ReservationSerializer
    permission_classes = [IsAuthenticated]
    pagination_class = StandardResultsSetPagination
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_class = ReservationFilter
    ordering_fields = ['start_at', 'created_at', 'status']
    ordering = ['start_at']

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.reservation_service = ReservationService()
        self.lifecycle = TripLifecycle()

    def get_queryset(self):
        """Only the caller's own reservations."""
        return super().get_queryset().filter(owner_id=self.request.user.uuid)

    def create(self, request, *args, **kwargs):
        """
        Request a reservation.

        201 with the committed reservation (and anything an emergency bumped),
        409 with the conflicting reservations otherwise.
        """
        serializer = ReservationCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        with service_errors():
            result = self.reservation_service.request_reservation(
                vehicle_id=data['vehicle_id'],
                owner_id=request.user.uuid,
                start_at=data['start_at'],
                end_at=data['end_at'],
                is_emergency=data['is_emergency'],
                emergency_reason=data.get('emergency_reason'),
            )

        raise_for_rejection(result)
        return Response(
            CommitResultSerializer(result).data,
            status=status.HTTP_201_CREATED
        )

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        """Cancel a confirmed reservation (owner or group admin)."""
        serializer = ReservationCancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        with service_errors():
            reservation = self.lifecycle.cancel(
                reservation_id=pk,
                user_id=request.user.uuid,
                reason=serializer.validated_data.get('reason'),
            )

        return Response(ReservationSerializer(reservation).data)
