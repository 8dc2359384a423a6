# services/booking-service/src/tests/unit/test_trip_lifecycle.py
"""
Unit Tests for Trip Lifecycle
"""

import uuid
from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal

import pytest

from apps.core.models import LateReturnFee, Reservation
from apps.core.services import (
    AuthorizationError,
    ReservationNotFoundError,
    ReservationValidationError,
    SecurityError,
    TripAction,
    TripLifecycle,
    TripService,
    TripStateError,
    VehicleAccessTokenService,
)

UTC = dt_timezone.utc
START = datetime(2024, 3, 4, 12, 0, tzinfo=UTC)
END = datetime(2024, 3, 4, 14, 0, tzinfo=UTC)


@pytest.mark.django_db
class TestTripService:
    """Token-driven checkout and check-in."""

    def setup_method(self):
        self.tokens = VehicleAccessTokenService()
        self.trips = TripService(token_service=self.tokens)

    @pytest.fixture
    def reservation(self, directory, create_reservation):
        return create_reservation(START, END)

    def checkout(self, vehicle_id, user_id, at):
        token = self.tokens.issue_token(vehicle_id, now=at)
        return self.trips.checkout_with_token(token.encrypted_payload, user_id, now=at)

    def checkin(self, vehicle_id, user_id, at):
        token = self.tokens.issue_token(vehicle_id, now=at)
        return self.trips.checkin_with_token(token.encrypted_payload, user_id, now=at)

    def test_checkout_then_late_checkin(self, reservation, vehicle_id, user_id):
        checked_out = self.checkout(vehicle_id, user_id, START - timedelta(minutes=5))

        assert checked_out.status == Reservation.Status.CHECKED_OUT
        assert checked_out.checked_out_by == user_id

        result = self.checkin(vehicle_id, user_id, END + timedelta(minutes=47))

        assert result.late_minutes == 47
        assert result.reservation.status == Reservation.Status.COMPLETED
        assert result.fee is not None
        assert result.fee.fee_amount == Decimal('5.33')
        assert result.fee.chargeable_minutes == 32
        assert result.fee.status == LateReturnFee.Status.PENDING
        assert not result.is_overdue

        reservation.refresh_from_db()
        assert reservation.late_minutes == 47
        assert reservation.late_return_fee.id == result.fee.id

    def test_partial_minute_rounds_up(self, reservation, vehicle_id, user_id):
        self.checkout(vehicle_id, user_id, START)

        result = self.checkin(vehicle_id, user_id, END + timedelta(minutes=46, seconds=1))

        assert result.late_minutes == 47

    def test_on_time_checkin_has_no_fee(self, reservation, vehicle_id, user_id):
        self.checkout(vehicle_id, user_id, START)

        result = self.checkin(vehicle_id, user_id, END - timedelta(minutes=10))

        assert result.late_minutes == 0
        assert result.fee is None
        assert not LateReturnFee.objects.exists()

    def test_lateness_within_grace_records_zero_fee(self, reservation, vehicle_id, user_id):
        self.checkout(vehicle_id, user_id, START)

        result = self.checkin(vehicle_id, user_id, END + timedelta(minutes=10))

        assert result.fee.fee_amount == Decimal('0.00')
        assert result.fee.late_minutes == 10

    def test_checkout_twice_is_refused(self, reservation, vehicle_id, user_id):
        self.checkout(vehicle_id, user_id, START)

        with pytest.raises(AuthorizationError):
            self.checkout(vehicle_id, user_id, START + timedelta(minutes=1))

    def test_rotated_token_raises_security_error(self, reservation, vehicle_id, user_id):
        old = self.tokens.issue_token(vehicle_id, now=START)
        self.tokens.issue_token(vehicle_id, now=START, force=True)

        with pytest.raises(SecurityError) as exc_info:
            self.trips.checkout_with_token(old.encrypted_payload, user_id, now=START)

        assert str(exc_info.value) == 'QR code is no longer valid'
        reservation.refresh_from_db()
        assert reservation.status == Reservation.Status.CONFIRMED

    def test_cancel_after_checkout_is_refused(self, reservation, vehicle_id, user_id):
        self.checkout(vehicle_id, user_id, START)

        with pytest.raises(TripStateError, match='Reservation is already checked out') as exc_info:
            TripLifecycle().cancel(reservation.id, user_id)

        assert exc_info.value.conflicts[0].id == reservation.id


@pytest.mark.django_db
class TestTripLifecycle:
    """Direct transitions and cancellation."""

    def setup_method(self):
        self.lifecycle = TripLifecycle()
        self.tokens = VehicleAccessTokenService()

    def authorize(self, vehicle_id, user_id, action, at):
        token = self.tokens.issue_token(vehicle_id, now=at)
        result = self.tokens.validate(token.encrypted_payload, action, user_id, now=at)
        assert result.ok
        return result.authorization

    def test_authorization_must_match_action(self, directory, create_reservation, vehicle_id, user_id):
        create_reservation(START, END)
        authorization = self.authorize(vehicle_id, user_id, TripAction.CHECKOUT, START)

        with pytest.raises(ReservationValidationError):
            self.lifecycle.check_in(authorization, user_id, now=START)

    def test_authorization_must_match_user(
        self, directory, create_reservation, vehicle_id, user_id, other_user_id
    ):
        create_reservation(START, END)
        authorization = self.authorize(vehicle_id, user_id, TripAction.CHECKOUT, START)

        with pytest.raises(AuthorizationError):
            self.lifecycle.check_out(authorization, other_user_id, now=START)

    def test_stale_authorization_sees_current_state(self, directory, create_reservation, vehicle_id, user_id):
        reservation = create_reservation(START, END)
        authorization = self.authorize(vehicle_id, user_id, TripAction.CHECKOUT, START)
        self.lifecycle.cancel(reservation.id, user_id, now=START - timedelta(minutes=1))

        with pytest.raises(TripStateError, match='already cancelled'):
            self.lifecycle.check_out(authorization, user_id, now=START)

    def test_owner_cancels(self, directory, create_reservation, user_id):
        reservation = create_reservation(START, END)

        cancelled = self.lifecycle.cancel(reservation.id, user_id, reason='Plans changed')

        assert cancelled.status == Reservation.Status.CANCELLED
        assert cancelled.cancellation_reason == 'Plans changed'

    def test_admin_cancels_for_member(self, directory, create_reservation, admin_id):
        reservation = create_reservation(START, END)

        cancelled = self.lifecycle.cancel(reservation.id, admin_id)

        assert cancelled.cancelled_by == admin_id

    def test_other_member_cannot_cancel(self, directory, create_reservation, other_user_id):
        reservation = create_reservation(START, END)

        with pytest.raises(AuthorizationError):
            self.lifecycle.cancel(reservation.id, other_user_id)

    def test_cancel_twice(self, directory, create_reservation, user_id):
        reservation = create_reservation(START, END)
        self.lifecycle.cancel(reservation.id, user_id)

        with pytest.raises(TripStateError, match='already cancelled'):
            self.lifecycle.cancel(reservation.id, user_id)

    def test_cancel_unknown_reservation(self, directory, user_id):
        with pytest.raises(ReservationNotFoundError):
            self.lifecycle.cancel(uuid.uuid4(), user_id)
