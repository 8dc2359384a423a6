# services/booking-service/src/apps/core/locks.py
"""
Per-key serialization points.

Each vehicle (and each recurrence rule) gets its own re-entrant lock, created
on first use. Operations on different keys never contend with each other.
Across processes, commits additionally row-lock the vehicle's
``VehicleSchedule`` inside the commit transaction.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Hashable

from django.db import transaction
from django.utils import timezone

logger = logging.getLogger(__name__)


class KeyedLockRegistry:
    """
    Arena of re-entrant locks keyed by an arbitrary hashable id.
    """

    def __init__(self, name: str):
        self.name = name
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.RLock] = {}

    def get(self, key: Hashable) -> threading.RLock:
        key = str(key)
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: Hashable):
        lock = self.get(key)
        with lock:
            yield lock

    def __len__(self) -> int:
        return len(self._locks)


vehicle_schedule_locks = KeyedLockRegistry('vehicle-schedule')
vehicle_token_locks = KeyedLockRegistry('vehicle-token')
recurrence_rule_locks = KeyedLockRegistry('recurrence-rule')
# Per owner; taken before any vehicle lock
emergency_quota_locks = KeyedLockRegistry('emergency-quota')


@contextmanager
def vehicle_schedule_lock(vehicle_id, group_id):
    """
    Serialize every write to one vehicle's schedule.

    Holds the in-process lock, opens a transaction and row-locks the
    vehicle's schedule row. Yields the locked ``VehicleSchedule``.
    """
    from apps.core.models import VehicleSchedule

    with vehicle_schedule_locks.hold(vehicle_id):
        with transaction.atomic():
            VehicleSchedule.objects.get_or_create(
                vehicle_id=vehicle_id,
                defaults={'group_id': group_id}
            )
            schedule = VehicleSchedule.objects.select_for_update().get(vehicle_id=vehicle_id)
            yield schedule
            schedule.last_committed_at = timezone.now()
            schedule.save(update_fields=['last_committed_at', 'updated_at'])
