# services/booking-service/src/apps/core/services/late_fee_calculator.py
"""
Late Return Fee Calculator

``compute`` is a pure function of (late minutes, policy): zero for an
on-time return, never decreasing as lateness grows, and capped.
Fees move ``pending -> charged`` or ``pending -> waived`` and never back.
"""

import uuid
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.db import transaction
from django.utils import timezone

from apps.core.events import publish_late_return_fee_created, publish_late_return_fee_waived
from apps.core.models import LateReturnFee, Reservation
from .directory import get_directory
from .exceptions import (
    AuthorizationError,
    FeeNotFoundError,
    FeeStateError,
    ReservationValidationError,
)

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')
ZERO = Decimal('0.00')


@dataclass(frozen=True)
class LateFeeBand:
    """Hourly rate for chargeable minutes in ``[from_minutes, to_minutes)``."""
    from_minutes: int
    rate_per_hour: Decimal
    to_minutes: Optional[int] = None
    flat_fee: Decimal = ZERO
    label: str = ''


@dataclass(frozen=True)
class LateFeePolicy:
    grace_period_minutes: int = 15
    max_fee_amount: Decimal = Decimal('200.00')
    default_hourly_rate: Decimal = ZERO
    bands: Tuple[LateFeeBand, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if self.grace_period_minutes < 0:
            raise ValueError("Grace period cannot be negative")
        if self.max_fee_amount < 0 or self.default_hourly_rate < 0:
            raise ValueError("Fee amounts cannot be negative")

        ordered = tuple(sorted(self.bands, key=lambda b: b.from_minutes))
        previous_end = 0
        for index, band in enumerate(ordered):
            if band.from_minutes < 0 or band.rate_per_hour < 0 or band.flat_fee < 0:
                raise ValueError(f"Band {band.label or index} has a negative value")
            if band.to_minutes is not None and band.to_minutes <= band.from_minutes:
                raise ValueError(f"Band {band.label or index} ends before it starts")
            if band.from_minutes < previous_end:
                raise ValueError(f"Band {band.label or index} overlaps the previous band")
            if band.to_minutes is None and index != len(ordered) - 1:
                raise ValueError(f"Open-ended band {band.label or index} must be the last band")
            previous_end = band.to_minutes if band.to_minutes is not None else previous_end
        object.__setattr__(self, 'bands', ordered)

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'LateFeePolicy':
        bands = tuple(
            LateFeeBand(
                from_minutes=int(band.get('FROM_MINUTES', 0)),
                to_minutes=int(band['TO_MINUTES']) if band.get('TO_MINUTES') is not None else None,
                rate_per_hour=Decimal(str(band.get('RATE_PER_HOUR', 0))),
                flat_fee=Decimal(str(band.get('FLAT_FEE', 0) or 0)),
                label=band.get('LABEL', ''),
            )
            for band in config.get('BANDS', [])
        )
        return cls(
            grace_period_minutes=int(config.get('GRACE_PERIOD_MINUTES', 15)),
            max_fee_amount=Decimal(str(config.get('MAX_FEE_AMOUNT', '200.00'))),
            default_hourly_rate=Decimal(str(config.get('DEFAULT_HOURLY_RATE', 0))),
            bands=bands,
        )

    @classmethod
    def from_settings(cls) -> 'LateFeePolicy':
        try:
            return cls.from_dict(getattr(settings, 'LATE_RETURN_FEES', {}))
        except (ValueError, ArithmeticError) as e:
            raise ImproperlyConfigured(f"Invalid LATE_RETURN_FEES: {e}")


@dataclass(frozen=True)
class FeeQuote:
    amount: Decimal
    late_minutes: int
    chargeable_minutes: int
    calculation_method: str


def _hourly(rate: Decimal, minutes: int) -> Decimal:
    return rate * minutes / 60


def compute(late_minutes: int, policy: LateFeePolicy) -> FeeQuote:
    """
    Price ``late_minutes`` of lateness.

    Minutes past the grace period are charged band by band at each band's
    hourly rate, plus the flat fee of every band they reach. Minutes outside
    all bands use the default hourly rate. The total is capped and rounded
    half-up to cents.
    """
    late_minutes = max(0, int(late_minutes))
    chargeable = max(0, late_minutes - policy.grace_period_minutes)

    if chargeable == 0:
        method = 'On time' if late_minutes == 0 else f'Within {policy.grace_period_minutes} min grace period'
        return FeeQuote(ZERO, late_minutes, 0, method)

    amount = Decimal('0')
    covered = 0
    parts: List[str] = []

    for band in policy.bands:
        if chargeable <= band.from_minutes:
            break
        upper = chargeable if band.to_minutes is None else min(chargeable, band.to_minutes)
        minutes = upper - band.from_minutes
        amount += _hourly(band.rate_per_hour, minutes) + band.flat_fee
        covered += minutes
        name = band.label or f'{band.from_minutes}+ min'
        part = f'{minutes} min @ {band.rate_per_hour}/h ({name})'
        if band.flat_fee:
            part += f' + {band.flat_fee} flat'
        parts.append(part)

    uncovered = chargeable - covered
    if uncovered:
        amount += _hourly(policy.default_hourly_rate, uncovered)
        parts.append(f'{uncovered} min @ {policy.default_hourly_rate}/h (default)')

    capped = amount > policy.max_fee_amount
    amount = min(amount, policy.max_fee_amount).quantize(CENT, rounding=ROUND_HALF_UP)

    method = f'{chargeable} chargeable min after {policy.grace_period_minutes} min grace: ' + '; '.join(parts)
    if capped:
        method += f'; capped at {policy.max_fee_amount}'
    return FeeQuote(amount, late_minutes, chargeable, method)


class LateReturnFeeCalculator:
    """
    Service for late return fees.

    Handles:
    - Pricing lateness under the configured policy
    - Recording the fee at check-in
    - Waiver and charge transitions
    """

    def __init__(self, policy: LateFeePolicy = None, directory=None):
        self.policy = policy or LateFeePolicy.from_settings()
        self.directory = directory

    def _directory(self):
        return self.directory or get_directory()

    def compute(self, late_minutes: int, policy: LateFeePolicy = None) -> FeeQuote:
        return compute(late_minutes, policy or self.policy)

    def record_fee(self, reservation: Reservation, late_minutes: int) -> LateReturnFee:
        """Create the fee row for a late check-in. Runs inside the caller's transaction."""
        quote = self.compute(late_minutes)
        fee = LateReturnFee.objects.create(
            reservation=reservation,
            owner_id=reservation.owner_id,
            vehicle_id=reservation.vehicle_id,
            group_id=reservation.group_id,
            late_minutes=quote.late_minutes,
            chargeable_minutes=quote.chargeable_minutes,
            fee_amount=quote.amount,
            original_fee_amount=quote.amount,
            calculation_method=quote.calculation_method,
        )
        logger.info(
            f"Late return fee {fee.id} of {fee.fee_amount} for reservation {reservation.id} "
            f"({late_minutes} min late)"
        )
        transaction.on_commit(lambda: publish_late_return_fee_created(fee))
        return fee

    def get_fee(self, fee_id: uuid.UUID) -> LateReturnFee:
        try:
            return LateReturnFee.objects.get(id=fee_id)
        except LateReturnFee.DoesNotExist:
            raise FeeNotFoundError(f"Late return fee {fee_id} not found")

    # ==========================================================================
    # Status Transitions
    # ==========================================================================

    def waive(
        self,
        fee_id: uuid.UUID,
        admin_id: uuid.UUID,
        reason: str,
        now: datetime = None,
    ) -> LateReturnFee:
        """Waive a pending fee. Irreversible."""
        if not (reason or '').strip():
            raise ReservationValidationError("A reason is required to waive a fee")
        now = now or timezone.now()

        with transaction.atomic():
            fee = self._locked_fee(fee_id)

            membership = self._directory().get_membership(fee.group_id, admin_id)
            if membership is None or not membership.is_admin:
                raise AuthorizationError("Only group admins can waive late return fees")

            if fee.status != LateReturnFee.Status.PENDING:
                raise FeeStateError(f"Late return fee is already {fee.status}")

            fee.status = LateReturnFee.Status.WAIVED
            fee.original_fee_amount = fee.fee_amount
            fee.fee_amount = ZERO
            fee.waived_by = admin_id
            fee.waived_reason = reason.strip()
            fee.waived_at = now
            fee.save()

        logger.info(f"Late return fee {fee.id} waived by {admin_id}")
        publish_late_return_fee_waived(fee)
        return fee

    def mark_charged(self, fee_id: uuid.UUID, now: datetime = None) -> LateReturnFee:
        """Record that the payment collaborator has charged the fee."""
        now = now or timezone.now()

        with transaction.atomic():
            fee = self._locked_fee(fee_id)
            if fee.status != LateReturnFee.Status.PENDING:
                raise FeeStateError(f"Late return fee is already {fee.status}")

            fee.status = LateReturnFee.Status.CHARGED
            fee.charged_at = now
            fee.save(update_fields=['status', 'charged_at', 'updated_at'])

        logger.info(f"Late return fee {fee.id} charged")
        return fee

    def _locked_fee(self, fee_id: uuid.UUID) -> LateReturnFee:
        try:
            return LateReturnFee.objects.select_for_update().get(id=fee_id)
        except LateReturnFee.DoesNotExist:
            raise FeeNotFoundError(f"Late return fee {fee_id} not found")
