# services/booking-service/src/apps/api/views/trip_views.py
"""
Access Token, Trip and Late Fee API Views
"""

import logging

from django.http import HttpResponse
from rest_framework import filters, mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from django_filters.rest_framework import DjangoFilterBackend

from shared.common.exceptions import ValidationException
from apps.core.models import LateReturnFee
from apps.core.services import (
    LateReturnFeeCalculator,
    RejectionKind,
    TripService,
    VehicleAccessTokenService,
)
from apps.api.serializers import (
    AccessTokenValidateSerializer,
    CheckInResultSerializer,
    LateFeeWaiveSerializer,
    LateReturnFeeSerializer,
    ReservationSerializer,
    TripAuthorizationSerializer,
    TripTokenSerializer,
)
from .errors import service_errors
from .filters import LateReturnFeeFilter
from .pagination import StandardResultsSetPagination

logger = logging.getLogger(__name__)

TOKEN_FORMATS = ('image', 'data_url', 'payload')


class VehicleAccessTokenView(APIView):
    """
    Current QR access token for a vehicle.

    ``?format=image`` (default) returns the PNG, ``data_url`` and ``payload``
    return JSON.
    """

    permission_classes = [IsAuthenticated]

    def get(self, request, vehicle_id):
        rendition = request.query_params.get('format', 'image')
        if rendition not in TOKEN_FORMATS:
            raise ValidationException(
                detail=f"format must be one of: {', '.join(TOKEN_FORMATS)}"
            )

        with service_errors():
            token = VehicleAccessTokenService().issue_token_for(vehicle_id, request.user.uuid)

        if rendition == 'image':
            response = HttpResponse(token.image_bytes, content_type='image/png')
            response['Cache-Control'] = 'no-store'
            return response

        data = {
            'vehicle_id': str(token.vehicle_id),
            'issued_at': token.issued_at,
            'expires_at': token.expires_at,
            'version': token.version,
        }
        if rendition == 'data_url':
            data['data_url'] = token.data_url
        else:
            data['encrypted_payload'] = token.encrypted_payload
        return Response(data)


class AccessTokenValidateView(APIView):
    """
    Validate a scanned token without changing any state.
    """

    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = AccessTokenValidateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = VehicleAccessTokenService().validate(
            data['encrypted_payload'],
            data['action'],
            request.user.uuid,
        )

        if result.ok:
            return Response({
                'valid': True,
                'authorization': TripAuthorizationSerializer(result.authorization).data,
            })

        code = {
            RejectionKind.SECURITY: status.HTTP_403_FORBIDDEN,
            RejectionKind.AUTHORIZATION: status.HTTP_403_FORBIDDEN,
            RejectionKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
        }[result.kind]
        return Response({
            'valid': False,
            'kind': result.kind.value,
            'message': result.message,
        }, status=code)


class TripCheckoutView(APIView):
    """Start a trip by presenting the vehicle's QR token."""

    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = TripTokenSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        with service_errors(trip_authorization=True):
            reservation = TripService().checkout_with_token(
                serializer.validated_data['encrypted_payload'],
                request.user.uuid,
            )

        return Response(ReservationSerializer(reservation).data)


class TripCheckinView(APIView):
    """End a trip. Late returns produce a fee record."""

    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = TripTokenSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        with service_errors(trip_authorization=True):
            result = TripService().checkin_with_token(
                serializer.validated_data['encrypted_payload'],
                request.user.uuid,
            )

        return Response(CheckInResultSerializer(result).data)


class LateReturnFeeViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """
    ViewSet for the caller's late return fees.
    """

    queryset = LateReturnFee.objects.all()
    serializer_class = LateReturnFeeSerializer
    permission_classes = [IsAuthenticated]
    pagination_class = StandardResultsSetPagination
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_class = LateReturnFeeFilter
    ordering_fields = ['created_at', 'fee_amount']
    ordering = ['-created_at']

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.fee_calculator = LateReturnFeeCalculator()

    def get_queryset(self):
        return super().get_queryset().filter(owner_id=self.request.user.uuid)

    @action(detail=True, methods=['post'])
    def waive(self, request, pk=None):
        """Waive a pending fee. Group admins only."""
        serializer = LateFeeWaiveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        with service_errors():
            fee = self.fee_calculator.waive(
                pk,
                request.user.uuid,
                serializer.validated_data['reason'],
            )

        return Response(LateReturnFeeSerializer(fee).data)
