# services/booking-service/src/apps/core/services/interval_store.py
"""
Interval Store

Index of committed reservation intervals per vehicle. Intervals are only
ever added or retired (cancelled), never moved.
"""

import logging
import uuid
from datetime import datetime
from typing import List

from django.db import OperationalError, connection

from apps.core.models import Reservation
from .exceptions import TransientStoreError

logger = logging.getLogger(__name__)


class IntervalStore:
    """
    Overlap queries and writes for reservation intervals.

    Queries see every non-cancelled interval. Writes surface database
    failures as ``TransientStoreError``.
    """

    def __init__(self, statement_timeout_ms: int = None):
        from django.conf import settings
        self.statement_timeout_ms = (
            statement_timeout_ms
            if statement_timeout_ms is not None
            else getattr(settings, 'DB_STATEMENT_TIMEOUT_MS', 0)
        )

    # ==========================================================================
    # Queries
    # ==========================================================================

    def active(self, vehicle_id: uuid.UUID):
        """All intervals still occupying the vehicle's calendar."""
        return Reservation.objects.filter(
            vehicle_id=vehicle_id
        ).exclude(
            status=Reservation.Status.CANCELLED
        )

    def overlapping(
        self,
        vehicle_id: uuid.UUID,
        start: datetime,
        end: datetime,
        exclude_id: uuid.UUID = None
    ) -> List[Reservation]:
        """
        Non-cancelled intervals on the vehicle intersecting ``[start, end)``.
        """
        queryset = self.active(vehicle_id).filter(
            start_at__lt=end,
            end_at__gt=start,
        )
        if exclude_id:
            queryset = queryset.exclude(id=exclude_id)
        return list(queryset.order_by('start_at'))

    # ==========================================================================
    # Writes
    # ==========================================================================

    def add(self, reservation: Reservation) -> Reservation:
        """Persist a new interval."""
        self._write(reservation.save, force_insert=True)
        logger.debug(f"Stored interval {reservation.id} on vehicle {reservation.vehicle_id}")
        return reservation

    def update(self, reservation: Reservation, fields: List[str]) -> Reservation:
        """Persist status or lateness changes of a stored interval."""
        self._write(reservation.save, update_fields=list(fields) + ['updated_at'])
        return reservation

    def _write(self, save, **kwargs):
        try:
            self._apply_statement_timeout()
            save(**kwargs)
        except OperationalError as e:
            logger.error(f"Reservation write failed: {e}")
            raise TransientStoreError(f"Reservation store unavailable: {e}") from e

    def _apply_statement_timeout(self):
        if not self.statement_timeout_ms or connection.vendor != 'postgresql':
            return
        with connection.cursor() as cursor:
            cursor.execute(
                'SET LOCAL statement_timeout = %s',
                [int(self.statement_timeout_ms)]
            )
