# services/booking-service/src/apps/core/services/reservation_service.py
"""
Reservation Service

Entry point for one-off reservation requests: resolves the vehicle's
group, the requester's standing in it, and hands the candidate to the
conflict guard.
"""

import uuid
import logging
from datetime import datetime
from decimal import Decimal

from django.conf import settings
from django.utils import timezone

from apps.core.events import publish_reservation_bumped, publish_reservation_created
from apps.core.locks import emergency_quota_locks
from apps.core.models import Reservation
from .conflict_guard import BookingConflictGuard, CommitResult
from .directory import Membership, get_directory
from .exceptions import (
    AuthorizationError,
    ReservationNotFoundError,
    ReservationValidationError,
)

logger = logging.getLogger(__name__)


def priority_score(membership: Membership) -> int:
    """Ownership share (0-1) scaled to 0-100, plus 50 for group admins."""
    score = int(Decimal(membership.share_percentage) * 100)
    if membership.is_admin:
        score += 50
    return score


def priority_tier_for(membership: Membership) -> int:
    score = priority_score(membership)
    if score >= 150:
        return Reservation.PriorityTier.HIGH
    if score >= 50:
        return Reservation.PriorityTier.NORMAL
    return Reservation.PriorityTier.LOW


class ReservationService:
    """
    Service for one-off reservations.

    Handles:
    - Vehicle and membership checks
    - Priority tiers
    - Emergency admission rules and monthly limits
    """

    def __init__(self, guard: BookingConflictGuard = None, directory=None):
        self.guard = guard or BookingConflictGuard()
        self.directory = directory

    def _directory(self):
        return self.directory or get_directory()

    def request_reservation(
        self,
        vehicle_id: uuid.UUID,
        owner_id: uuid.UUID,
        start_at: datetime,
        end_at: datetime,
        is_emergency: bool = False,
        emergency_reason: str = None,
        now: datetime = None,
    ) -> CommitResult:
        """Request a reservation. Rejections come back as a result, not an exception."""
        now = now or timezone.now()

        vehicle = self._directory().get_vehicle(vehicle_id)
        if vehicle is None:
            raise ReservationValidationError(f"Vehicle {vehicle_id} not found")

        membership = self._directory().get_membership(vehicle.group_id, owner_id)
        if membership is None:
            raise AuthorizationError("User does not have access to this vehicle's group")

        if is_emergency:
            self._check_emergency_admission(membership, emergency_reason)

        candidate = Reservation(
            vehicle_id=vehicle_id,
            group_id=vehicle.group_id,
            owner_id=owner_id,
            start_at=start_at,
            end_at=end_at,
            priority_tier=priority_tier_for(membership),
            is_emergency=is_emergency,
            emergency_reason=(emergency_reason or '').strip() or None,
        )

        if is_emergency:
            # The monthly count and the commit must not interleave with
            # another emergency request by the same owner.
            with emergency_quota_locks.hold(owner_id):
                self._check_emergency_limit(owner_id, now)
                result = self.guard.try_commit(candidate, now=now)
        else:
            result = self.guard.try_commit(candidate, now=now)

        if result.committed:
            publish_reservation_created(result.reservation)
            for bumped in result.bumped:
                logger.info(f"Reservation {bumped.id} bumped by emergency reservation {candidate.id}")
                publish_reservation_bumped(bumped, result.reservation)
        return result

    def get_reservation(self, reservation_id: uuid.UUID) -> Reservation:
        try:
            return Reservation.objects.get(id=reservation_id)
        except Reservation.DoesNotExist:
            raise ReservationNotFoundError(f"Reservation {reservation_id} not found")

    def _check_emergency_admission(self, membership: Membership, reason: str):
        if not membership.is_admin:
            raise AuthorizationError("Only group admins can create emergency reservations")

        if not (reason or '').strip():
            raise ReservationValidationError("Emergency reason is required for emergency reservations")

    def _check_emergency_limit(self, owner_id, now: datetime):
        limit = getattr(settings, 'EMERGENCY_BOOKINGS_PER_MONTH', 2)
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        used = Reservation.objects.filter(
            owner_id=owner_id,
            is_emergency=True,
            created_at__gte=month_start,
        ).count()
        if used >= limit:
            logger.warning(f"User {owner_id} exceeded emergency limit for {month_start:%Y-%m}: {used}")
            raise ReservationValidationError(
                f"Emergency reservation limit of {limit} per month exceeded"
            )
