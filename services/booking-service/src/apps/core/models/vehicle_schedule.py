# services/booking-service/src/apps/core/models/vehicle_schedule.py
"""
Vehicle Schedule Model
"""

from django.db import models

from shared.common.mixins import TimestampMixin, UUIDPrimaryKeyMixin


class VehicleSchedule(UUIDPrimaryKeyMixin, TimestampMixin):
    """
    One row per vehicle, row-locked by every commit on that vehicle.
    """

    vehicle_id = models.UUIDField(unique=True)
    group_id = models.UUIDField(db_index=True)
    last_committed_at = models.DateTimeField(blank=True, null=True)

    class Meta:
        db_table = 'vehicle_schedules'

    def __str__(self):
        return f"Schedule for {self.vehicle_id}"
