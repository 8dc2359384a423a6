# services/booking-service/src/tests/unit/test_reservation_service.py
"""
Unit Tests for Reservation Requests
"""

import threading
import uuid
from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from apps.core.locks import emergency_quota_locks
from apps.core.models import Reservation
from apps.core.services import (
    AuthorizationError,
    ReservationService,
    ReservationValidationError,
)
from apps.core.services.directory import Membership
from apps.core.services.reservation_service import priority_score, priority_tier_for


def membership(share, role='member'):
    return Membership(group_id=uuid.uuid4(), user_id=uuid.uuid4(), role=role, share_percentage=Decimal(share))


class TestPriority:
    """Tests for priority tiers."""

    @pytest.mark.parametrize('share,role,score,tier', [
        ('0.3', 'member', 30, Reservation.PriorityTier.LOW),
        ('0.5', 'member', 50, Reservation.PriorityTier.NORMAL),
        ('0.2', 'admin', 70, Reservation.PriorityTier.NORMAL),
        ('1.0', 'admin', 150, Reservation.PriorityTier.HIGH),
    ])
    def test_tiers(self, share, role, score, tier):
        m = membership(share, role)

        assert priority_score(m) == score
        assert priority_tier_for(m) == tier


@pytest.mark.django_db
class TestReservationService:
    """Tests for ReservationService."""

    def setup_method(self):
        self.service = ReservationService()
        self.start = (timezone.now() + timedelta(days=2)).replace(minute=0, second=0, microsecond=0)

    def test_request_commits(self, directory, vehicle_id, group_id, user_id):
        result = self.service.request_reservation(
            vehicle_id, user_id, self.start, self.start + timedelta(hours=2)
        )

        assert result.committed
        assert result.reservation.group_id == group_id
        assert result.reservation.priority_tier == Reservation.PriorityTier.NORMAL

    def test_overlapping_request_is_rejected(self, directory, vehicle_id, user_id, other_user_id):
        self.service.request_reservation(vehicle_id, user_id, self.start, self.start + timedelta(hours=2))

        result = self.service.request_reservation(
            vehicle_id, other_user_id,
            self.start + timedelta(hours=1), self.start + timedelta(hours=3),
        )

        assert not result.committed
        assert len(result.conflicts) == 1

    def test_unknown_vehicle(self, directory, user_id):
        with pytest.raises(ReservationValidationError):
            self.service.request_reservation(
                uuid.uuid4(), user_id, self.start, self.start + timedelta(hours=1)
            )

    def test_non_member(self, directory, vehicle_id):
        with pytest.raises(AuthorizationError):
            self.service.request_reservation(
                vehicle_id, uuid.uuid4(), self.start, self.start + timedelta(hours=1)
            )

    def test_emergency_requires_admin(self, directory, vehicle_id, user_id):
        with pytest.raises(AuthorizationError):
            self.service.request_reservation(
                vehicle_id, user_id, self.start, self.start + timedelta(hours=1),
                is_emergency=True, emergency_reason='Hospital',
            )

    def test_emergency_requires_reason(self, directory, vehicle_id, admin_id):
        with pytest.raises(ReservationValidationError):
            self.service.request_reservation(
                vehicle_id, admin_id, self.start, self.start + timedelta(hours=1),
                is_emergency=True,
            )

    def test_emergency_bumps_member(self, directory, vehicle_id, user_id, admin_id):
        booked = self.service.request_reservation(
            vehicle_id, user_id, self.start, self.start + timedelta(hours=2)
        )

        result = self.service.request_reservation(
            vehicle_id, admin_id, self.start, self.start + timedelta(hours=1),
            is_emergency=True, emergency_reason='Hospital',
        )

        assert result.committed
        assert [r.id for r in result.bumped] == [booked.reservation.id]

    def test_emergency_count_and_commit_share_owner_lock(self, directory, vehicle_id, user_id, admin_id):
        quota_held = []
        commit = self.service.guard.try_commit

        def owner_lock_taken(owner_id):
            outcome = []
            lock = emergency_quota_locks.get(owner_id)

            def try_lock():
                acquired = lock.acquire(blocking=False)
                if acquired:
                    lock.release()
                outcome.append(not acquired)

            other = threading.Thread(target=try_lock)
            other.start()
            other.join()
            return outcome[0]

        def recording_commit(candidate, now=None):
            quota_held.append(owner_lock_taken(candidate.owner_id))
            return commit(candidate, now=now)

        self.service.guard.try_commit = recording_commit

        self.service.request_reservation(
            vehicle_id, admin_id, self.start, self.start + timedelta(hours=1),
            is_emergency=True, emergency_reason='Hospital',
        )
        self.service.request_reservation(
            vehicle_id, user_id, self.start + timedelta(days=1), self.start + timedelta(days=1, hours=1),
        )

        assert quota_held == [True, False]

    def test_emergency_monthly_limit(self, settings, directory, vehicle_id, admin_id):
        settings.EMERGENCY_BOOKINGS_PER_MONTH = 1
        self.service.request_reservation(
            vehicle_id, admin_id, self.start, self.start + timedelta(hours=1),
            is_emergency=True, emergency_reason='Hospital',
        )

        with pytest.raises(ReservationValidationError, match='limit'):
            self.service.request_reservation(
                vehicle_id, admin_id,
                self.start + timedelta(days=1), self.start + timedelta(days=1, hours=1),
                is_emergency=True, emergency_reason='Hospital again',
            )
