# services/booking-service/src/tests/unit/test_conflict_guard.py
"""
Unit Tests for the Interval Store and Booking Conflict Guard
"""

import threading
import uuid
from datetime import datetime, timedelta, timezone as dt_timezone

import pytest
from django.db import connection

from apps.core.locks import vehicle_schedule_locks
from apps.core.models import Reservation, VehicleSchedule
from apps.core.services import (
    BookingConflictGuard,
    CommitOutcome,
    IntervalStore,
    ReservationValidationError,
)

UTC = dt_timezone.utc
DAY = datetime(2024, 3, 4, tzinfo=UTC)


def at(hour, minute=0):
    return DAY.replace(hour=hour, minute=minute)


@pytest.mark.django_db
class TestIntervalStore:
    """Tests for IntervalStore."""

    def setup_method(self):
        self.store = IntervalStore()

    def test_overlapping_is_half_open(self, vehicle_id, create_reservation):
        create_reservation(at(10), at(12))

        assert self.store.overlapping(vehicle_id, at(12), at(13)) == []
        assert self.store.overlapping(vehicle_id, at(8), at(10)) == []
        assert len(self.store.overlapping(vehicle_id, at(11, 59), at(13))) == 1

    def test_overlapping_ignores_cancelled(self, vehicle_id, create_reservation):
        create_reservation(at(10), at(12), status=Reservation.Status.CANCELLED)

        assert self.store.overlapping(vehicle_id, at(10), at(12)) == []

    def test_overlapping_is_per_vehicle(self, vehicle_id, create_reservation):
        create_reservation(at(10), at(12))

        assert self.store.overlapping(uuid.uuid4(), at(10), at(12)) == []

    def test_overlapping_orders_by_start(self, vehicle_id, create_reservation):
        later = create_reservation(at(14), at(15))
        earlier = create_reservation(at(9), at(10))

        result = self.store.overlapping(vehicle_id, at(8), at(16))

        assert [r.id for r in result] == [earlier.id, later.id]

    def test_overlapping_excludes_id(self, vehicle_id, create_reservation):
        reservation = create_reservation(at(10), at(12))

        assert self.store.overlapping(vehicle_id, at(10), at(12), exclude_id=reservation.id) == []


@pytest.mark.django_db
class TestBookingConflictGuard:
    """Tests for BookingConflictGuard."""

    def setup_method(self):
        self.guard = BookingConflictGuard()

    def candidate(self, vehicle_id, group_id, owner_id, start_at, end_at, **kwargs):
        return Reservation(
            vehicle_id=vehicle_id,
            group_id=group_id,
            owner_id=owner_id,
            start_at=start_at,
            end_at=end_at,
            **kwargs
        )

    def test_commit_into_empty_calendar(self, vehicle_id, group_id, user_id):
        result = self.guard.try_commit(
            self.candidate(vehicle_id, group_id, user_id, at(10), at(12))
        )

        assert result.outcome == CommitOutcome.COMMITTED
        assert result.committed
        assert result.reservation.status == Reservation.Status.CONFIRMED
        assert Reservation.objects.filter(id=result.reservation.id).exists()
        assert VehicleSchedule.objects.get(vehicle_id=vehicle_id).last_committed_at is not None

    def test_overlap_is_rejected_with_conflicts(
        self, vehicle_id, group_id, user_id, other_user_id, create_reservation
    ):
        existing = create_reservation(at(10), at(12))

        result = self.guard.try_commit(
            self.candidate(vehicle_id, group_id, other_user_id, at(11), at(13))
        )

        assert result.outcome == CommitOutcome.REJECTED
        assert result.reservation is None
        assert [c.reservation_id for c in result.conflicts] == [existing.id]
        assert Reservation.objects.filter(vehicle_id=vehicle_id).count() == 1

    def test_adjacent_reservations_both_commit(self, vehicle_id, group_id, user_id, other_user_id):
        first = self.guard.try_commit(self.candidate(vehicle_id, group_id, user_id, at(10), at(12)))
        second = self.guard.try_commit(self.candidate(vehicle_id, group_id, other_user_id, at(12), at(14)))

        assert first.committed
        assert second.committed

    def test_higher_tier_does_not_displace(self, vehicle_id, group_id, other_user_id, create_reservation):
        existing = create_reservation(at(10), at(12), priority_tier=Reservation.PriorityTier.LOW)

        result = self.guard.try_commit(
            self.candidate(
                vehicle_id, group_id, other_user_id, at(10), at(12),
                priority_tier=Reservation.PriorityTier.HIGH,
            )
        )

        assert not result.committed
        existing.refresh_from_db()
        assert existing.status == Reservation.Status.CONFIRMED

    def test_end_not_after_start_is_invalid(self, vehicle_id, group_id, user_id):
        with pytest.raises(ReservationValidationError):
            self.guard.try_commit(self.candidate(vehicle_id, group_id, user_id, at(12), at(12)))

        with pytest.raises(ReservationValidationError):
            self.guard.try_commit(self.candidate(vehicle_id, group_id, user_id, at(12), at(10)))

        assert not Reservation.objects.exists()

    def test_emergency_requires_reason(self, vehicle_id, group_id, admin_id):
        with pytest.raises(ReservationValidationError):
            self.guard.try_commit(
                self.candidate(vehicle_id, group_id, admin_id, at(10), at(12), is_emergency=True)
            )

    def test_emergency_bumps_confirmed_reservations(
        self, vehicle_id, group_id, admin_id, create_reservation
    ):
        existing = create_reservation(at(10), at(12))
        candidate = self.candidate(
            vehicle_id, group_id, admin_id, at(11), at(13),
            is_emergency=True, emergency_reason='Medical',
        )

        result = self.guard.try_commit(candidate)

        assert result.committed
        assert result.reservation.priority_tier == Reservation.PriorityTier.EMERGENCY
        assert [r.id for r in result.bumped] == [existing.id]
        assert result.conflicts == []

        existing.refresh_from_db()
        assert existing.status == Reservation.Status.CANCELLED
        assert existing.bumped_by_id == candidate.id
        assert existing.cancelled_by == admin_id

    def test_emergency_bumps_regardless_of_tier(
        self, vehicle_id, group_id, admin_id, create_reservation
    ):
        high = create_reservation(at(10), at(12), priority_tier=Reservation.PriorityTier.HIGH)

        result = self.guard.try_commit(
            self.candidate(
                vehicle_id, group_id, admin_id, at(11), at(13),
                is_emergency=True, emergency_reason='Medical',
            )
        )

        assert result.committed
        assert [r.id for r in result.bumped] == [high.id]

    def test_emergency_never_bumps_checked_out_trip(
        self, vehicle_id, group_id, admin_id, create_reservation
    ):
        in_progress = create_reservation(at(10), at(12), status=Reservation.Status.CHECKED_OUT)

        result = self.guard.try_commit(
            self.candidate(
                vehicle_id, group_id, admin_id, at(11), at(13),
                is_emergency=True, emergency_reason='Medical',
            )
        )

        assert result.committed
        assert result.bumped == []
        assert [c.reservation_id for c in result.conflicts] == [in_progress.id]
        in_progress.refresh_from_db()
        assert in_progress.status == Reservation.Status.CHECKED_OUT

    def test_emergency_does_not_bump_other_emergency(
        self, vehicle_id, group_id, admin_id, create_reservation
    ):
        other = create_reservation(
            at(10), at(12), is_emergency=True, emergency_reason='Flood',
            priority_tier=Reservation.PriorityTier.EMERGENCY,
        )

        result = self.guard.try_commit(
            self.candidate(
                vehicle_id, group_id, admin_id, at(10), at(12),
                is_emergency=True, emergency_reason='Medical',
            )
        )

        assert result.bumped == []
        other.refresh_from_db()
        assert other.status == Reservation.Status.CONFIRMED

    def test_committed_times_are_immutable(self, vehicle_id, group_id, user_id):
        result = self.guard.try_commit(self.candidate(vehicle_id, group_id, user_id, at(10), at(12)))
        stored = Reservation.objects.get(id=result.reservation.id)

        stored.end_at = at(15)
        with pytest.raises(ValueError, match='immutable'):
            stored.save()


@pytest.mark.django_db(transaction=True)
class TestConcurrentCommits:
    """Racing try_commit calls from threads against a shared database."""

    def commit_in_thread(self, candidate, outcomes, start=None):
        def run():
            try:
                if start is not None:
                    start.wait()
                outcomes.append(BookingConflictGuard().try_commit(candidate))
            finally:
                connection.close()

        worker = threading.Thread(target=run)
        worker.start()
        return worker

    def reservation(self, vehicle_id, group_id, owner_id, start_at, end_at):
        return Reservation(
            vehicle_id=vehicle_id,
            group_id=group_id,
            owner_id=owner_id,
            start_at=start_at,
            end_at=end_at,
        )

    def test_overlapping_race_commits_exactly_one(self, vehicle_id, group_id, user_id, other_user_id):
        start = threading.Barrier(2)
        outcomes = []
        workers = [
            self.commit_in_thread(
                self.reservation(vehicle_id, group_id, user_id, at(10), at(12)), outcomes, start
            ),
            self.commit_in_thread(
                self.reservation(vehicle_id, group_id, other_user_id, at(11), at(13)), outcomes, start
            ),
        ]
        for worker in workers:
            worker.join(timeout=30)

        assert sorted(r.outcome.value for r in outcomes) == ['committed', 'rejected']
        rejected = next(r for r in outcomes if not r.committed)
        committed = next(r for r in outcomes if r.committed)
        assert [c.reservation_id for c in rejected.conflicts] == [committed.reservation.id]
        assert Reservation.objects.filter(vehicle_id=vehicle_id).count() == 1

    def test_vehicles_do_not_serialize(self, vehicle_id, group_id, user_id):
        busy_vehicle = uuid.uuid4()
        outcomes = []

        with vehicle_schedule_locks.hold(busy_vehicle):
            blocked = self.commit_in_thread(
                self.reservation(busy_vehicle, group_id, user_id, at(10), at(12)), outcomes
            )
            free = self.commit_in_thread(
                self.reservation(vehicle_id, group_id, user_id, at(10), at(12)), outcomes
            )
            free.join(timeout=30)

            assert not free.is_alive()
            assert [r.reservation.vehicle_id for r in outcomes] == [vehicle_id]
            assert blocked.is_alive()

        blocked.join(timeout=30)

        assert len(outcomes) == 2
        assert all(r.committed for r in outcomes)
