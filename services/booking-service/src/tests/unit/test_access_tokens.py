# services/booking-service/src/tests/unit/test_access_tokens.py
"""
Unit Tests for Vehicle Access Tokens
"""

import base64
import threading
import uuid
from datetime import datetime, timedelta, timezone as dt_timezone

import pytest
from django.core.exceptions import ImproperlyConfigured

from apps.core.locks import vehicle_token_locks
from apps.core.models import Reservation
from apps.core.services import (
    AccessTokenOptions,
    AuthorizationError,
    RejectionKind,
    TripAction,
    VehicleAccessTokenService,
    VehicleNotFoundError,
)
from apps.core.services.access_token_service import GENERIC_REJECTION, parse_key

UTC = dt_timezone.utc
T0 = datetime(2024, 3, 4, 11, 45, tzinfo=UTC)

ENCRYPTION_KEY = base64.b64encode(b'0123456789abcdef0123456789abcdef').decode()


class TestAccessTokenOptions:
    """Tests for token configuration."""

    def test_missing_encryption_key(self):
        with pytest.raises(ImproperlyConfigured):
            AccessTokenOptions.from_dict({})

    def test_key_of_wrong_length(self):
        with pytest.raises(ImproperlyConfigured):
            AccessTokenOptions.from_dict({'ENCRYPTION_KEY': 'too-short'})

    def test_raw_text_key_is_accepted(self):
        assert parse_key('0123456789abcdef', 'ENCRYPTION_KEY') == b'0123456789abcdef'

    def test_signing_key_defaults_to_encryption_key(self):
        options = AccessTokenOptions.from_dict({'ENCRYPTION_KEY': ENCRYPTION_KEY})

        assert options.signing_key == options.encryption_key

    def test_invalid_color(self):
        with pytest.raises(ImproperlyConfigured):
            AccessTokenOptions.from_dict({'ENCRYPTION_KEY': ENCRYPTION_KEY, 'FOREGROUND_COLOR': 'black'})

    def test_values_are_clamped(self):
        options = AccessTokenOptions.from_dict({
            'ENCRYPTION_KEY': ENCRYPTION_KEY,
            'EXPIRATION_MINUTES': 0,
            'TOKEN_LENGTH': 1000,
            'CHECKOUT_LEAD_MINUTES': -5,
        })

        assert options.expiration_minutes == 1
        assert options.token_length == 64
        assert options.checkout_lead_minutes == 0


@pytest.mark.django_db
class TestTokenIssuance:
    """Tests for VehicleAccessTokenService.issue_token."""

    def setup_method(self):
        self.service = VehicleAccessTokenService()

    def test_issue_renders_qr_png(self, vehicle_id):
        token = self.service.issue_token(vehicle_id, now=T0)

        assert token.vehicle_id == vehicle_id
        assert token.image_bytes.startswith(b'\x89PNG')
        assert token.data_url.startswith('data:image/png;base64,')
        assert token.expires_at == T0 + timedelta(minutes=60)
        assert str(vehicle_id) not in token.encrypted_payload

    def test_live_token_is_reused(self, vehicle_id):
        first = self.service.issue_token(vehicle_id, now=T0)
        second = self.service.issue_token(vehicle_id, now=T0 + timedelta(minutes=10))

        assert second.encrypted_payload == first.encrypted_payload
        assert second.version == first.version

    def test_expired_token_is_replaced(self, vehicle_id):
        first = self.service.issue_token(vehicle_id, now=T0)
        second = self.service.issue_token(vehicle_id, now=T0 + timedelta(minutes=61))

        assert second.encrypted_payload != first.encrypted_payload
        assert second.version == first.version + 1

    def test_vehicles_have_independent_tokens(self, vehicle_id):
        first = self.service.issue_token(vehicle_id, now=T0)
        other = self.service.issue_token(uuid.uuid4(), now=T0)

        assert other.encrypted_payload != first.encrypted_payload

    def test_issue_for_checks_vehicle_and_membership(self, directory, vehicle_id, user_id):
        assert self.service.issue_token_for(vehicle_id, user_id, now=T0).vehicle_id == vehicle_id

        with pytest.raises(VehicleNotFoundError):
            self.service.issue_token_for(uuid.uuid4(), user_id, now=T0)

        with pytest.raises(AuthorizationError):
            self.service.issue_token_for(vehicle_id, uuid.uuid4(), now=T0)


@pytest.mark.django_db
class TestTokenValidation:
    """Tests for VehicleAccessTokenService.validate."""

    def setup_method(self):
        self.service = VehicleAccessTokenService()

    @pytest.fixture
    def upcoming(self, directory, create_reservation):
        """Confirmed reservation starting 15 minutes after T0."""
        return create_reservation(T0 + timedelta(minutes=15), T0 + timedelta(hours=2, minutes=15))

    def test_checkout_is_authorized(self, upcoming, vehicle_id, user_id):
        token = self.service.issue_token(vehicle_id, now=T0)

        result = self.service.validate(token.encrypted_payload, TripAction.CHECKOUT, user_id, now=T0)

        assert result.ok
        assert result.authorization.reservation.id == upcoming.id
        assert result.authorization.action == TripAction.CHECKOUT
        assert result.authorization.window_start == upcoming.start_at - timedelta(minutes=30)

    def test_validation_changes_nothing(self, upcoming, vehicle_id, user_id):
        token = self.service.issue_token(vehicle_id, now=T0)
        self.service.validate(token.encrypted_payload, 'checkout', user_id, now=T0)

        upcoming.refresh_from_db()
        assert upcoming.status == Reservation.Status.CONFIRMED

    def test_rotated_token_is_rejected_generically(self, upcoming, vehicle_id, user_id):
        old = self.service.issue_token(vehicle_id, now=T0)
        new = self.service.issue_token(vehicle_id, now=T0, force=True)

        rejected = self.service.validate(old.encrypted_payload, TripAction.CHECKOUT, user_id, now=T0)
        accepted = self.service.validate(new.encrypted_payload, TripAction.CHECKOUT, user_id, now=T0)

        assert rejected.kind == RejectionKind.SECURITY
        assert rejected.message == GENERIC_REJECTION
        assert accepted.ok

    def test_tampered_blob_is_rejected(self, upcoming, vehicle_id, user_id):
        token = self.service.issue_token(vehicle_id, now=T0)
        raw = bytearray(base64.b64decode(token.encrypted_payload))
        raw[-1] ^= 0x01
        tampered = base64.b64encode(bytes(raw)).decode()

        result = self.service.validate(tampered, TripAction.CHECKOUT, user_id, now=T0)

        assert result.kind == RejectionKind.SECURITY
        assert result.message == GENERIC_REJECTION

    @pytest.mark.parametrize('blob', ['', 'not base64 at all!', base64.b64encode(b'short').decode()])
    def test_garbage_is_rejected(self, upcoming, user_id, blob):
        result = self.service.validate(blob, TripAction.CHECKOUT, user_id, now=T0)

        assert result.kind == RejectionKind.SECURITY

    def test_expired_token_is_rejected(self, upcoming, vehicle_id, user_id):
        token = self.service.issue_token(vehicle_id, now=T0)

        result = self.service.validate(
            token.encrypted_payload, TripAction.CHECKOUT, user_id,
            now=T0 + timedelta(minutes=61),
        )

        assert result.kind == RejectionKind.SECURITY

    def test_blob_sealed_with_other_key_is_rejected(self, upcoming, vehicle_id, user_id):
        other = VehicleAccessTokenService(
            options=AccessTokenOptions.from_dict({'ENCRYPTION_KEY': ENCRYPTION_KEY})
        )
        foreign = other.issue_token(vehicle_id, now=T0, force=True)

        result = self.service.validate(foreign.encrypted_payload, TripAction.CHECKOUT, user_id, now=T0)

        assert result.kind == RejectionKind.SECURITY

    def test_unknown_action(self, upcoming, vehicle_id, user_id):
        token = self.service.issue_token(vehicle_id, now=T0)

        result = self.service.validate(token.encrypted_payload, 'refuel', user_id, now=T0)

        assert result.kind == RejectionKind.VALIDATION

    def test_user_without_reservation(self, upcoming, vehicle_id, other_user_id):
        token = self.service.issue_token(vehicle_id, now=T0)

        result = self.service.validate(token.encrypted_payload, TripAction.CHECKOUT, other_user_id, now=T0)

        assert result.kind == RejectionKind.AUTHORIZATION

    def test_outside_checkout_window(self, upcoming, vehicle_id, user_id):
        early = T0 - timedelta(minutes=30)
        token = self.service.issue_token(vehicle_id, now=early)

        result = self.service.validate(token.encrypted_payload, TripAction.CHECKOUT, user_id, now=early)

        assert result.kind == RejectionKind.AUTHORIZATION

    def test_member_removed_from_group(self, upcoming, directory, vehicle_id, group_id, user_id):
        token = self.service.issue_token(vehicle_id, now=T0)
        directory.remove_member(group_id, user_id)

        result = self.service.validate(token.encrypted_payload, TripAction.CHECKOUT, user_id, now=T0)

        assert result.kind == RejectionKind.AUTHORIZATION

    def test_membership_lookup_runs_outside_token_lock(
        self, upcoming, directory, monkeypatch, vehicle_id, user_id
    ):
        token = self.service.issue_token(vehicle_id, now=T0)
        lock = vehicle_token_locks.get(vehicle_id)
        lock_states = []
        lookup = directory.get_membership

        def lock_is_free():
            outcome = []

            def try_lock():
                acquired = lock.acquire(blocking=False)
                if acquired:
                    lock.release()
                outcome.append(acquired)

            other = threading.Thread(target=try_lock)
            other.start()
            other.join()
            return outcome[0]

        def recording_lookup(group_id, member_id):
            lock_states.append(lock_is_free())
            return lookup(group_id, member_id)

        monkeypatch.setattr(directory, 'get_membership', recording_lookup)

        result = self.service.validate(token.encrypted_payload, TripAction.CHECKOUT, user_id, now=T0)

        assert result.ok
        assert lock_states == [True]

    def test_overdue_checkin_is_flagged(self, directory, create_reservation, vehicle_id, user_id):
        trip = create_reservation(
            T0 - timedelta(hours=4),
            T0 - timedelta(hours=2),
            status=Reservation.Status.CHECKED_OUT,
        )
        token = self.service.issue_token(vehicle_id, now=T0)

        result = self.service.validate(token.encrypted_payload, TripAction.CHECKIN, user_id, now=T0)

        assert result.ok
        assert result.authorization.reservation.id == trip.id
        assert result.authorization.checkin_deadline == trip.end_at + timedelta(minutes=60)
        assert result.authorization.is_overdue
