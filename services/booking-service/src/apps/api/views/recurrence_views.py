# services/booking-service/src/apps/api/views/recurrence_views.py
"""
Recurrence Rule API Views
"""

import logging
from datetime import timedelta

from django.conf import settings
from django.utils import timezone
from rest_framework import filters, mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from django_filters.rest_framework import DjangoFilterBackend

from apps.core.models import RecurrenceRule
from apps.core.services import RecurrenceService
from apps.api.serializers import (
    ExpansionResultSerializer,
    RecurrenceCancelSerializer,
    RecurrenceExpandSerializer,
    RecurrencePauseSerializer,
    RecurrenceRuleCreateSerializer,
    RecurrenceRuleSerializer,
)
from .errors import service_errors
from .filters import RecurrenceRuleFilter
from .pagination import StandardResultsSetPagination

logger = logging.getLogger(__name__)


class RecurrenceRuleViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """
    ViewSet for recurring reservation series.

    Creating a rule books nothing; occurrences are committed by ``expand``
    or the nightly sweep.
    """

    queryset = RecurrenceRule.objects.all()
    serializer_class = RecurrenceRuleSerializer
    permission_classes = [IsAuthenticated]
    pagination_class = StandardResultsSetPagination
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_class = RecurrenceRuleFilter
    ordering_fields = ['created_at', 'window_start_date']
    ordering = ['-created_at']

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.recurrence_service = RecurrenceService()

    def get_queryset(self):
        return super().get_queryset().filter(owner_id=self.request.user.uuid)

    def create(self, request, *args, **kwargs):
        serializer = RecurrenceRuleCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        with service_errors():
            rule = self.recurrence_service.create_rule(
                owner_id=request.user.uuid,
                **serializer.validated_data
            )

        return Response(
            RecurrenceRuleSerializer(rule).data,
            status=status.HTTP_201_CREATED
        )

    @action(detail=True, methods=['post'])
    def expand(self, request, pk=None):
        """
        Book occurrences up to ``horizon`` (inclusive).

        Defaults to today plus the configured horizon. Skipped occurrences
        are reported, not raised.
        """
        rule = self.get_object()
        serializer = RecurrenceExpandSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        horizon = serializer.validated_data.get('horizon')
        if horizon is None:
            horizon = timezone.now().date() + timedelta(days=settings.RECURRENCE_HORIZON_DAYS)

        with service_errors():
            result = self.recurrence_service.expand_until(rule, horizon)

        return Response(ExpansionResultSerializer(result).data)

    @action(detail=True, methods=['post'])
    def pause(self, request, pk=None):
        serializer = RecurrencePauseSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        with service_errors():
            rule = self.recurrence_service.pause_rule(
                pk,
                request.user.uuid,
                paused_until=serializer.validated_data.get('paused_until'),
            )

        return Response(RecurrenceRuleSerializer(rule).data)

    @action(detail=True, methods=['post'])
    def resume(self, request, pk=None):
        with service_errors():
            rule = self.recurrence_service.resume_rule(pk, request.user.uuid)

        return Response(RecurrenceRuleSerializer(rule).data)

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        """Cancel the series and its upcoming reservations."""
        serializer = RecurrenceCancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        with service_errors():
            rule = self.recurrence_service.cancel_rule(
                pk,
                request.user.uuid,
                reason=serializer.validated_data.get('reason'),
            )

        return Response(RecurrenceRuleSerializer(rule).data)
