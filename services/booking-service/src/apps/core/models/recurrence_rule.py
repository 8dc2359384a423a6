# services/booking-service/src/apps/core/models/recurrence_rule.py
"""
Recurrence Rule Model

A repeating reservation series materialized by the expander.
"""

from django.db import models

from shared.common.mixins import TimestampMixin, UUIDPrimaryKeyMixin


class RecurrenceRule(UUIDPrimaryKeyMixin, TimestampMixin):
    """
    Repeating schedule for one vehicle and owner.

    ``days_of_week_mask`` sets bit ``i`` for weekday ``i`` counted from
    Sunday (Sunday = 1, Monday = 2, ... Saturday = 64).
    ``generated_until`` is the expansion watermark and only moves forward.
    """

    class Pattern(models.TextChoices):
        DAILY = 'daily', 'Daily'
        WEEKLY = 'weekly', 'Weekly'
        MONTHLY = 'monthly', 'Monthly'

    class Status(models.TextChoices):
        ACTIVE = 'active', 'Active'
        PAUSED = 'paused', 'Paused'
        CANCELLED = 'cancelled', 'Cancelled'

    SUNDAY = 1 << 0
    MONDAY = 1 << 1
    TUESDAY = 1 << 2
    WEDNESDAY = 1 << 3
    THURSDAY = 1 << 4
    FRIDAY = 1 << 5
    SATURDAY = 1 << 6
    ALL_DAYS = 0b1111111

    # Ownership
    vehicle_id = models.UUIDField(db_index=True)
    group_id = models.UUIDField(db_index=True)
    owner_id = models.UUIDField(db_index=True)

    # Pattern
    pattern = models.CharField(
        max_length=20,
        choices=Pattern.choices,
        default=Pattern.WEEKLY
    )
    interval = models.PositiveIntegerField(default=1)
    days_of_week_mask = models.PositiveSmallIntegerField(default=0)

    # Time of day (local to timezone_id)
    start_time = models.TimeField()
    end_time = models.TimeField()
    timezone_id = models.CharField(max_length=64, default='UTC')

    # Window
    window_start_date = models.DateField()
    window_end_date = models.DateField(blank=True, null=True)

    # Status
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.ACTIVE,
        db_index=True
    )
    paused_until = models.DateTimeField(blank=True, null=True)
    cancelled_at = models.DateTimeField(blank=True, null=True)
    cancellation_reason = models.TextField(blank=True, null=True)

    # Expansion tracking
    generated_until = models.DateField(blank=True, null=True)
    last_run_at = models.DateTimeField(blank=True, null=True)

    notes = models.TextField(blank=True, null=True)

    class Meta:
        db_table = 'recurrence_rules'
        ordering = ['window_start_date', 'start_time']
        indexes = [
            models.Index(fields=['status', 'generated_until']),
            models.Index(fields=['vehicle_id', 'status']),
        ]

    def __str__(self):
        return f"{self.get_pattern_display()} rule {self.id} ({self.status})"

    @classmethod
    def mask_for(cls, weekdays) -> int:
        """
        Build a mask from Python weekday numbers (Monday = 0 ... Sunday = 6).
        """
        mask = 0
        for weekday in weekdays:
            mask |= 1 << ((weekday + 1) % 7)
        return mask

    @property
    def is_cancelled(self) -> bool:
        return self.status == self.Status.CANCELLED

    def is_paused_at(self, moment) -> bool:
        """Paused with no end, or with ``paused_until`` still in the future."""
        if self.status != self.Status.PAUSED:
            return False
        return self.paused_until is None or self.paused_until > moment
