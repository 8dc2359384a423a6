# services/booking-service/src/apps/core/models/reservation.py
"""
Reservation Model

A committed, half-open ``[start_at, end_at)`` hold on one shared vehicle.
"""

import math
import uuid
from datetime import datetime

from django.db import models

from shared.common.mixins import ImmutableFieldsMixin, TimestampMixin, UUIDPrimaryKeyMixin


class Reservation(ImmutableFieldsMixin, UUIDPrimaryKeyMixin, TimestampMixin):
    """
    Reservation of a vehicle by one co-owner.

    Time bounds are frozen once committed; only the trip status and the
    lateness-derived fields change afterwards.
    """

    class PriorityTier(models.IntegerChoices):
        LOW = 0, 'Low'
        NORMAL = 1, 'Normal'
        HIGH = 2, 'High'
        EMERGENCY = 3, 'Emergency'

    class Status(models.TextChoices):
        CONFIRMED = 'confirmed', 'Confirmed'
        CHECKED_OUT = 'checked_out', 'Checked Out'
        COMPLETED = 'completed', 'Completed'
        CANCELLED = 'cancelled', 'Cancelled'

    immutable_fields = ('vehicle_id', 'start_at', 'end_at')

    # Ownership
    vehicle_id = models.UUIDField(db_index=True)
    group_id = models.UUIDField(db_index=True)
    owner_id = models.UUIDField(db_index=True)

    # Time bounds (UTC)
    start_at = models.DateTimeField(db_index=True)
    end_at = models.DateTimeField(db_index=True)

    # Priority
    priority_tier = models.PositiveSmallIntegerField(
        choices=PriorityTier.choices,
        default=PriorityTier.NORMAL
    )
    is_emergency = models.BooleanField(default=False)
    emergency_reason = models.TextField(blank=True, null=True)

    # Status
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.CONFIRMED,
        db_index=True
    )

    # Recurrence
    recurrence_rule = models.ForeignKey(
        'core.RecurrenceRule',
        on_delete=models.SET_NULL,
        related_name='reservations',
        blank=True,
        null=True
    )

    # Bump
    bumped_by = models.ForeignKey(
        'self',
        on_delete=models.SET_NULL,
        related_name='bumped_reservations',
        blank=True,
        null=True
    )

    # Check-out / Check-in
    checked_out_at = models.DateTimeField(blank=True, null=True)
    checked_out_by = models.UUIDField(blank=True, null=True)
    checked_in_at = models.DateTimeField(blank=True, null=True)
    checked_in_by = models.UUIDField(blank=True, null=True)
    late_minutes = models.PositiveIntegerField(default=0)

    # Cancellation
    cancelled_at = models.DateTimeField(blank=True, null=True)
    cancelled_by = models.UUIDField(blank=True, null=True)
    cancellation_reason = models.TextField(blank=True, null=True)

    class Meta:
        db_table = 'reservations'
        ordering = ['start_at']
        indexes = [
            models.Index(fields=['vehicle_id', 'status', 'start_at', 'end_at']),
            models.Index(fields=['owner_id', 'start_at']),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(end_at__gt=models.F('start_at')),
                name='valid_reservation_times'
            ),
        ]

    def __str__(self):
        return f"{self.vehicle_id}: {self.start_at:%Y-%m-%d %H:%M} - {self.end_at:%H:%M}"

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_active(self) -> bool:
        """Whether the reservation still occupies its slot."""
        return self.status != self.Status.CANCELLED

    @property
    def duration_minutes(self) -> int:
        return int((self.end_at - self.start_at).total_seconds() // 60)

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Half-open interval intersection."""
        return self.start_at < end and start < self.end_at

    def lateness_at(self, moment: datetime) -> int:
        """Whole minutes past ``end_at``, rounded up."""
        overdue = (moment - self.end_at).total_seconds()
        if overdue <= 0:
            return 0
        return math.ceil(overdue / 60)

    # ==========================================================================
    # Status Transitions
    # ==========================================================================

    def mark_checked_out(self, user_id: uuid.UUID, at: datetime):
        if self.status != self.Status.CONFIRMED:
            raise ValueError(f"Cannot check out reservation in {self.status} status")
        self.status = self.Status.CHECKED_OUT
        self.checked_out_at = at
        self.checked_out_by = user_id

    def mark_completed(self, user_id: uuid.UUID, at: datetime):
        if self.status != self.Status.CHECKED_OUT:
            raise ValueError(f"Cannot check in reservation in {self.status} status")
        self.status = self.Status.COMPLETED
        self.checked_in_at = at
        self.checked_in_by = user_id
        self.late_minutes = self.lateness_at(at)

    def mark_cancelled(self, user_id: uuid.UUID, at: datetime, reason: str = None):
        if self.status != self.Status.CONFIRMED:
            raise ValueError(f"Cannot cancel reservation in {self.status} status")
        self.status = self.Status.CANCELLED
        self.cancelled_at = at
        self.cancelled_by = user_id
        self.cancellation_reason = reason

    def mark_bumped(self, emergency: 'Reservation', at: datetime):
        self.mark_cancelled(
            emergency.owner_id,
            at,
            reason=f"Bumped by emergency reservation {emergency.id}"
        )
        self.bumped_by = emergency
