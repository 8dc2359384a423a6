# services/booking-service/src/apps/core/services/trip_lifecycle.py
"""
Trip Lifecycle

confirmed -> checked_out -> completed, with cancelled reachable from
confirmed only. Every illegal transition raises; nothing is a silent no-op.
"""

import uuid
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from django.utils import timezone

from apps.core.events import (
    publish_reservation_cancelled,
    publish_trip_checked_in,
    publish_trip_checked_out,
)
from apps.core.locks import vehicle_schedule_lock
from apps.core.models import LateReturnFee, Reservation
from .access_token_service import (
    RejectionKind,
    TokenValidationResult,
    TripAction,
    TripAuthorization,
    VehicleAccessTokenService,
)
from .directory import get_directory
from .exceptions import (
    AuthorizationError,
    ReservationNotFoundError,
    ReservationValidationError,
    SecurityError,
    TripStateError,
)
from .interval_store import IntervalStore
from .late_fee_calculator import LateReturnFeeCalculator

logger = logging.getLogger(__name__)


STATE_ERRORS = {
    Reservation.Status.CHECKED_OUT: 'Reservation is already checked out',
    Reservation.Status.COMPLETED: 'Reservation is already completed',
    Reservation.Status.CANCELLED: 'Reservation is already cancelled',
    Reservation.Status.CONFIRMED: 'Reservation is not checked out',
}


@dataclass
class CheckInResult:
    reservation: Reservation
    late_minutes: int
    fee: Optional[LateReturnFee] = None
    is_overdue: bool = False


class TripLifecycle:
    """
    Applies trip transitions after a successful token validation.

    Each transition re-reads the reservation under the vehicle's schedule
    lock, so a cancel racing a checkout sees the winner's state.
    """

    def __init__(
        self,
        fee_calculator: LateReturnFeeCalculator = None,
        store: IntervalStore = None,
        directory=None,
    ):
        self.fee_calculator = fee_calculator or LateReturnFeeCalculator(directory=directory)
        self.store = store or IntervalStore()
        self.directory = directory

    def _directory(self):
        return self.directory or get_directory()

    # ==========================================================================
    # Transitions
    # ==========================================================================

    def check_out(
        self,
        authorization: TripAuthorization,
        user_id: uuid.UUID,
        now: datetime = None,
    ) -> Reservation:
        """confirmed -> checked_out"""
        self._check_authorization(authorization, TripAction.CHECKOUT, user_id)
        now = now or timezone.now()
        reservation = authorization.reservation

        with vehicle_schedule_lock(reservation.vehicle_id, reservation.group_id):
            reservation = self._locked(reservation.id)
            self._require_status(reservation, Reservation.Status.CONFIRMED)
            reservation.mark_checked_out(user_id, now)
            self.store.update(reservation, ['status', 'checked_out_at', 'checked_out_by'])

        logger.info(f"Reservation {reservation.id} checked out by {user_id}")
        publish_trip_checked_out(reservation)
        return reservation

    def check_in(
        self,
        authorization: TripAuthorization,
        user_id: uuid.UUID,
        now: datetime = None,
    ) -> CheckInResult:
        """
        checked_out -> completed

        Lateness is realized here. Any positive lateness creates a fee
        record attached to the reservation.
        """
        self._check_authorization(authorization, TripAction.CHECKIN, user_id)
        now = now or timezone.now()
        reservation = authorization.reservation
        fee = None

        with vehicle_schedule_lock(reservation.vehicle_id, reservation.group_id):
            reservation = self._locked(reservation.id)
            self._require_status(reservation, Reservation.Status.CHECKED_OUT)
            reservation.mark_completed(user_id, now)
            self.store.update(reservation, ['status', 'checked_in_at', 'checked_in_by', 'late_minutes'])

            if reservation.late_minutes > 0:
                fee = self.fee_calculator.record_fee(reservation, reservation.late_minutes)

        logger.info(
            f"Reservation {reservation.id} checked in by {user_id}, "
            f"{reservation.late_minutes} min late"
        )
        publish_trip_checked_in(reservation)
        return CheckInResult(
            reservation=reservation,
            late_minutes=reservation.late_minutes,
            fee=fee,
            is_overdue=authorization.is_overdue,
        )

    def cancel(
        self,
        reservation_id: uuid.UUID,
        user_id: uuid.UUID,
        reason: str = None,
        now: datetime = None,
    ) -> Reservation:
        """confirmed -> cancelled. Refused once the trip has been checked out."""
        now = now or timezone.now()

        try:
            reservation = Reservation.objects.get(id=reservation_id)
        except Reservation.DoesNotExist:
            raise ReservationNotFoundError(f"Reservation {reservation_id} not found")

        if str(reservation.owner_id) != str(user_id):
            membership = self._directory().get_membership(reservation.group_id, user_id)
            if membership is None or not membership.is_admin:
                raise AuthorizationError("Only the owner or a group admin can cancel this reservation")

        with vehicle_schedule_lock(reservation.vehicle_id, reservation.group_id):
            reservation = self._locked(reservation.id)
            self._require_status(reservation, Reservation.Status.CONFIRMED)
            reservation.mark_cancelled(user_id, now, reason)
            self.store.update(reservation, ['status', 'cancelled_at', 'cancelled_by', 'cancellation_reason'])

        logger.info(f"Reservation {reservation.id} cancelled by {user_id}")
        publish_reservation_cancelled(reservation, cancelled_by=user_id, reason=reason)
        return reservation

    # ==========================================================================
    # Helpers
    # ==========================================================================

    def _check_authorization(self, authorization: TripAuthorization, action: TripAction, user_id):
        if authorization is None or authorization.action != action:
            raise ReservationValidationError(f"Authorization is not valid for {action.value}")
        if str(authorization.reservation.owner_id) != str(user_id):
            raise AuthorizationError("Authorization was issued to a different user")

    def _locked(self, reservation_id: uuid.UUID) -> Reservation:
        try:
            return Reservation.objects.select_for_update().get(id=reservation_id)
        except Reservation.DoesNotExist:
            raise ReservationNotFoundError(f"Reservation {reservation_id} not found")

    def _require_status(self, reservation: Reservation, expected: str):
        if reservation.status != expected:
            raise TripStateError(
                STATE_ERRORS.get(reservation.status, f"Invalid state {reservation.status}"),
                conflicts=[reservation],
            )


class TripService:
    """
    Token-driven trips: validate the presented blob, then transition.
    """

    def __init__(self, token_service: VehicleAccessTokenService = None, lifecycle: TripLifecycle = None):
        self.token_service = token_service or VehicleAccessTokenService()
        self.lifecycle = lifecycle or TripLifecycle()

    def checkout_with_token(self, blob: str, user_id: uuid.UUID, now: datetime = None) -> Reservation:
        now = now or timezone.now()
        result = self.token_service.validate(blob, TripAction.CHECKOUT, user_id, now=now)
        return self.lifecycle.check_out(self._authorization(result), user_id, now=now)

    def checkin_with_token(self, blob: str, user_id: uuid.UUID, now: datetime = None) -> CheckInResult:
        now = now or timezone.now()
        result = self.token_service.validate(blob, TripAction.CHECKIN, user_id, now=now)
        return self.lifecycle.check_in(self._authorization(result), user_id, now=now)

    def _authorization(self, result: TokenValidationResult) -> TripAuthorization:
        if result.ok:
            return result.authorization
        if result.kind == RejectionKind.SECURITY:
            raise SecurityError()
        if result.kind == RejectionKind.AUTHORIZATION:
            raise AuthorizationError(result.message)
        raise ReservationValidationError(result.message)
