# services/booking-service/src/apps/core/services/conflict_guard.py
"""
Booking Conflict Guard

The single gatekeeper for slot creation. The overlap check and the write
happen under the vehicle's schedule lock, so two overlapping candidates can
never both pass the check.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from django.core.exceptions import ValidationError
from django.db import OperationalError
from django.utils import timezone

from shared.common.validators import validate_time_range
from apps.core.locks import vehicle_schedule_lock
from apps.core.models import Reservation
from .exceptions import ReservationValidationError, TransientStoreError
from .interval_store import IntervalStore

logger = logging.getLogger(__name__)


class CommitOutcome(str, Enum):
    """Outcome of a commit attempt."""
    COMMITTED = 'committed'
    REJECTED = 'rejected'


@dataclass
class ConflictInfo:
    """An existing reservation intersecting a candidate."""
    reservation_id: uuid.UUID
    owner_id: uuid.UUID
    start_at: datetime
    end_at: datetime
    status: str
    priority_tier: int
    is_emergency: bool

    @classmethod
    def from_reservation(cls, reservation: Reservation) -> 'ConflictInfo':
        return cls(
            reservation_id=reservation.id,
            owner_id=reservation.owner_id,
            start_at=reservation.start_at,
            end_at=reservation.end_at,
            status=reservation.status,
            priority_tier=reservation.priority_tier,
            is_emergency=reservation.is_emergency,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'reservation_id': str(self.reservation_id),
            'owner_id': str(self.owner_id),
            'start_at': self.start_at.isoformat(),
            'end_at': self.end_at.isoformat(),
            'status': self.status,
            'priority_tier': self.priority_tier,
            'is_emergency': self.is_emergency,
        }


@dataclass
class CommitResult:
    """
    Result of ``BookingConflictGuard.try_commit``.

    ``bumped`` lists reservations retired by an emergency candidate.
    ``conflicts`` lists intersecting reservations that were left in place.
    """
    outcome: CommitOutcome
    reservation: Optional[Reservation] = None
    conflicts: List[ConflictInfo] = field(default_factory=list)
    bumped: List[Reservation] = field(default_factory=list)

    @property
    def committed(self) -> bool:
        return self.outcome == CommitOutcome.COMMITTED


class BookingConflictGuard:
    """
    Decides whether a candidate reservation may be committed.

    Policy:
    - no intersecting reservation: commit
    - emergency candidate: commit and retire every intersecting confirmed
      non-emergency reservation
    - anything else: reject with the full conflicting set, whatever the
      priority tiers involved
    """

    def __init__(self, store: IntervalStore = None):
        self.store = store or IntervalStore()

    def try_commit(self, candidate: Reservation, now: datetime = None) -> CommitResult:
        """Check and commit ``candidate`` atomically for its vehicle."""
        self._validate(candidate)
        now = now or timezone.now()

        if candidate.is_emergency:
            candidate.priority_tier = Reservation.PriorityTier.EMERGENCY
        candidate.status = Reservation.Status.CONFIRMED

        try:
            with vehicle_schedule_lock(candidate.vehicle_id, candidate.group_id):
                return self._decide_and_write(candidate, now)
        except OperationalError as e:
            logger.error(f"Commit on vehicle {candidate.vehicle_id} failed: {e}")
            raise TransientStoreError(f"Reservation store unavailable: {e}") from e

    # ==========================================================================
    # Internals
    # ==========================================================================

    def _decide_and_write(self, candidate: Reservation, now: datetime) -> CommitResult:
        overlapping = self.store.overlapping(
            candidate.vehicle_id,
            candidate.start_at,
            candidate.end_at,
        )

        if not overlapping:
            self.store.add(candidate)
            logger.info(
                f"Committed reservation {candidate.id} on vehicle {candidate.vehicle_id} "
                f"[{candidate.start_at.isoformat()}, {candidate.end_at.isoformat()})"
            )
            return CommitResult(outcome=CommitOutcome.COMMITTED, reservation=candidate)

        if not candidate.is_emergency:
            logger.info(
                f"Rejected reservation on vehicle {candidate.vehicle_id}: "
                f"{len(overlapping)} conflicting reservation(s)"
            )
            return CommitResult(
                outcome=CommitOutcome.REJECTED,
                conflicts=[ConflictInfo.from_reservation(r) for r in overlapping],
            )

        displaced = [
            r for r in overlapping
            if not r.is_emergency and r.status == Reservation.Status.CONFIRMED
        ]
        retained = [r for r in overlapping if r not in displaced]

        self.store.add(candidate)
        for reservation in displaced:
            reservation.mark_bumped(candidate, now)
            self.store.update(
                reservation,
                ['status', 'cancelled_at', 'cancelled_by', 'cancellation_reason', 'bumped_by'],
            )

        logger.info(
            f"Committed emergency reservation {candidate.id} on vehicle {candidate.vehicle_id}, "
            f"bumped {len(displaced)}, kept {len(retained)}"
        )
        return CommitResult(
            outcome=CommitOutcome.COMMITTED,
            reservation=candidate,
            conflicts=[ConflictInfo.from_reservation(r) for r in retained],
            bumped=displaced,
        )

    def _validate(self, candidate: Reservation):
        if not candidate.vehicle_id or not candidate.owner_id or not candidate.group_id:
            raise ReservationValidationError("Vehicle, group and owner are required")
        try:
            validate_time_range(candidate.start_at, candidate.end_at, 'reservation')
        except ValidationError as e:
            raise ReservationValidationError(e.messages[0]) from e
        if candidate.is_emergency and not (candidate.emergency_reason or '').strip():
            raise ReservationValidationError("Emergency reservations require a reason")
