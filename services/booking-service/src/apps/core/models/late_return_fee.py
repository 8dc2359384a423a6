# services/booking-service/src/apps/core/models/late_return_fee.py
"""
Late Return Fee Model
"""

from decimal import Decimal

from django.db import models

from shared.common.mixins import TimestampMixin, UUIDPrimaryKeyMixin


class LateReturnFee(UUIDPrimaryKeyMixin, TimestampMixin):
    """
    Fee realized at check-in for a late return.

    Rows are never deleted. A waiver zeroes ``fee_amount`` and keeps the
    computed value in ``original_fee_amount``.
    """

    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        CHARGED = 'charged', 'Charged'
        WAIVED = 'waived', 'Waived'

    reservation = models.OneToOneField(
        'core.Reservation',
        on_delete=models.PROTECT,
        related_name='late_return_fee'
    )
    owner_id = models.UUIDField(db_index=True)
    vehicle_id = models.UUIDField(db_index=True)
    group_id = models.UUIDField(db_index=True)

    # Calculation
    late_minutes = models.PositiveIntegerField()
    chargeable_minutes = models.PositiveIntegerField(default=0)
    fee_amount = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00')
    )
    original_fee_amount = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00')
    )
    calculation_method = models.CharField(max_length=255, blank=True, default='')

    # Status
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True
    )

    # Waiver
    waived_by = models.UUIDField(blank=True, null=True)
    waived_reason = models.TextField(blank=True, null=True)
    waived_at = models.DateTimeField(blank=True, null=True)

    charged_at = models.DateTimeField(blank=True, null=True)

    class Meta:
        db_table = 'late_return_fees'
        ordering = ['-created_at']

    def __str__(self):
        return f"Late fee {self.fee_amount} for {self.reservation_id} ({self.status})"
