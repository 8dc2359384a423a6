# services/booking-service/src/apps/core/services/recurrence_service.py
"""
Recurrence Service

Materializes recurrence rules into concrete reservations up to a rolling
horizon and manages the rule lifecycle (create, pause, resume, cancel).
"""

import uuid
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

import pytz
from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from shared.common.validators import validate_timezone
from apps.core.events import (
    publish_occurrences_skipped,
    publish_recurring_rule_cancelled,
    publish_recurring_rule_created,
)
from apps.core.locks import recurrence_rule_locks, vehicle_schedule_lock, vehicle_schedule_locks
from apps.core.models import RecurrenceRule, Reservation
from .conflict_guard import BookingConflictGuard, ConflictInfo
from .directory import get_directory
from .exceptions import (
    AuthorizationError,
    ConflictError,
    ReservationValidationError,
    RuleNotFoundError,
)
from .recurrence import pattern_for

logger = logging.getLogger(__name__)


class SkipReason(str, Enum):
    """Why an occurrence was not booked."""
    INVALID_TIME_RANGE = 'invalid_time_range'
    CONFLICT = 'conflict'
    PAUSED = 'paused'
    PAST = 'past'


@dataclass
class SkippedOccurrence:
    day: date
    reason: SkipReason
    conflicts: List[ConflictInfo] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'date': self.day.isoformat(),
            'reason': self.reason.value,
            'conflicts': [c.to_dict() for c in self.conflicts],
        }


@dataclass
class ExpansionResult:
    """
    Outcome of one ``expand_until`` call.

    ``attempted`` holds every candidate submitted to the guard, committed or
    not. ``generated_until`` is the watermark after the call.
    """
    rule_id: uuid.UUID
    attempted: List[Reservation] = field(default_factory=list)
    committed: List[Reservation] = field(default_factory=list)
    skipped: List[SkippedOccurrence] = field(default_factory=list)
    generated_until: Optional[date] = None

    @property
    def conflicts_skipped(self) -> List[SkippedOccurrence]:
        return [s for s in self.skipped if s.reason == SkipReason.CONFLICT]


class RecurrenceService:
    """
    Service for recurring reservation series.

    Handles:
    - Rule creation and validation
    - Incremental, idempotent expansion behind a watermark
    - Pause / resume / cancel
    - The periodic sweep over all live rules
    """

    def __init__(self, guard: BookingConflictGuard = None, directory=None):
        self.guard = guard or BookingConflictGuard()
        self.directory = directory

    def _directory(self):
        return self.directory or get_directory()

    # ==========================================================================
    # Rule Lifecycle
    # ==========================================================================

    def create_rule(
        self,
        owner_id: uuid.UUID,
        vehicle_id: uuid.UUID,
        start_time: time,
        end_time: time,
        window_start_date: date,
        pattern: str = RecurrenceRule.Pattern.WEEKLY,
        interval: int = 1,
        days_of_week_mask: int = 0,
        window_end_date: date = None,
        timezone_id: str = 'UTC',
        notes: str = None,
    ) -> RecurrenceRule:
        """Create a new recurrence rule. Nothing is booked until expansion."""
        vehicle = self._directory().get_vehicle(vehicle_id)
        if vehicle is None:
            raise ReservationValidationError(f"Vehicle {vehicle_id} not found")

        membership = self._directory().get_membership(vehicle.group_id, owner_id)
        if membership is None:
            raise AuthorizationError("User does not have access to this vehicle's group")

        self._validate_rule(
            pattern, interval, days_of_week_mask, start_time, end_time,
            window_start_date, window_end_date, timezone_id,
        )

        rule = RecurrenceRule.objects.create(
            vehicle_id=vehicle_id,
            group_id=vehicle.group_id,
            owner_id=owner_id,
            pattern=pattern,
            interval=interval,
            days_of_week_mask=days_of_week_mask,
            start_time=start_time,
            end_time=end_time,
            window_start_date=window_start_date,
            window_end_date=window_end_date,
            timezone_id=timezone_id,
            notes=notes,
        )

        logger.info(f"Created {pattern} recurrence rule {rule.id} for vehicle {vehicle_id}")
        publish_recurring_rule_created(rule)
        return rule

    def get_rule(self, rule_id: uuid.UUID) -> RecurrenceRule:
        try:
            return RecurrenceRule.objects.get(id=rule_id)
        except RecurrenceRule.DoesNotExist:
            raise RuleNotFoundError(f"Recurrence rule {rule_id} not found")

    def pause_rule(
        self,
        rule_id: uuid.UUID,
        user_id: uuid.UUID,
        paused_until: datetime = None,
    ) -> RecurrenceRule:
        """Pause expansion, indefinitely or until ``paused_until``."""
        with recurrence_rule_locks.hold(rule_id), transaction.atomic():
            rule = self._locked_rule(rule_id)
            self._check_can_manage(rule, user_id)
            if rule.is_cancelled:
                raise ConflictError("Recurring rule is cancelled")

            rule.status = RecurrenceRule.Status.PAUSED
            rule.paused_until = paused_until
            rule.save(update_fields=['status', 'paused_until', 'updated_at'])

        logger.info(f"Paused recurrence rule {rule.id} until {paused_until or 'further notice'}")
        return rule

    def resume_rule(self, rule_id: uuid.UUID, user_id: uuid.UUID) -> RecurrenceRule:
        with recurrence_rule_locks.hold(rule_id), transaction.atomic():
            rule = self._locked_rule(rule_id)
            self._check_can_manage(rule, user_id)
            if rule.status != RecurrenceRule.Status.PAUSED:
                raise ConflictError(f"Cannot resume recurring rule in {rule.status} status")

            rule.status = RecurrenceRule.Status.ACTIVE
            rule.paused_until = None
            rule.save(update_fields=['status', 'paused_until', 'updated_at'])

        logger.info(f"Resumed recurrence rule {rule.id}")
        return rule

    def cancel_rule(
        self,
        rule_id: uuid.UUID,
        user_id: uuid.UUID,
        reason: str = None,
        now: datetime = None,
    ) -> RecurrenceRule:
        """
        Cancel the series and every confirmed reservation of it that has
        not started yet.
        """
        now = now or timezone.now()

        with recurrence_rule_locks.hold(rule_id):
            with transaction.atomic():
                rule = self._locked_rule(rule_id)
                self._check_can_manage(rule, user_id)
                if rule.is_cancelled:
                    raise ConflictError("Recurring rule is already cancelled")

                rule.status = RecurrenceRule.Status.CANCELLED
                rule.cancelled_at = now
                rule.cancellation_reason = reason
                rule.save(update_fields=['status', 'cancelled_at', 'cancellation_reason', 'updated_at'])

            cancelled = 0
            with vehicle_schedule_lock(rule.vehicle_id, rule.group_id):
                upcoming = Reservation.objects.select_for_update().filter(
                    recurrence_rule=rule,
                    status=Reservation.Status.CONFIRMED,
                    start_at__gt=now,
                )
                for reservation in upcoming:
                    reservation.mark_cancelled(user_id, now, reason or 'Recurring series cancelled')
                    reservation.save(update_fields=[
                        'status', 'cancelled_at', 'cancelled_by', 'cancellation_reason', 'updated_at'
                    ])
                    cancelled += 1

        logger.info(f"Cancelled recurrence rule {rule.id} and {cancelled} upcoming reservation(s)")
        publish_recurring_rule_cancelled(rule, cancelled_reservations=cancelled)
        return rule

    # ==========================================================================
    # Expansion
    # ==========================================================================

    def expand_until(self, rule, horizon: date, now: datetime = None) -> ExpansionResult:
        """
        Book every occurrence after the watermark up to ``horizon``.

        Rejected, invalid or already started occurrences are skipped, never
        raised, and the watermark moves to ``horizon`` either way. Calling
        again with the same or an earlier horizon books nothing.

        The vehicle lock is held for the whole expansion: each commit's
        schedule row lock lives until the outer transaction ends, so no other
        thread of this process may take the vehicle lock in between.
        """
        if isinstance(rule, RecurrenceRule):
            rule_id, vehicle_id = rule.id, rule.vehicle_id
        else:
            rule_id = rule
            vehicle_id = (
                RecurrenceRule.objects.filter(id=rule_id)
                .values_list('vehicle_id', flat=True)
                .first()
            )
            if vehicle_id is None:
                raise RuleNotFoundError(f"Recurrence rule {rule_id} not found")
        now = now or timezone.now()

        with recurrence_rule_locks.hold(rule_id), vehicle_schedule_locks.hold(vehicle_id):
            with transaction.atomic():
                rule = self._locked_rule(rule_id)
                result = self._expand_locked(rule, horizon, now)

        if result.conflicts_skipped:
            publish_occurrences_skipped(rule, [s.to_dict() for s in result.conflicts_skipped])
        return result

    def _expand_locked(self, rule: RecurrenceRule, horizon: date, now: datetime) -> ExpansionResult:
        result = ExpansionResult(rule_id=rule.id, generated_until=rule.generated_until)

        if rule.is_cancelled:
            logger.debug(f"Skipping cancelled recurrence rule {rule.id}")
            return result

        if rule.is_paused_at(now):
            logger.debug(f"Skipping paused recurrence rule {rule.id}")
            return result

        if rule.generated_until is not None and horizon <= rule.generated_until:
            return result

        if rule.status == RecurrenceRule.Status.PAUSED:
            # Pause lapsed; occurrences before paused_until stay skipped.
            rule.status = RecurrenceRule.Status.ACTIVE

        first = (
            rule.generated_until + timedelta(days=1)
            if rule.generated_until is not None
            else rule.window_start_date
        )
        last = min(horizon, rule.window_end_date) if rule.window_end_date else horizon

        pattern = pattern_for(rule)
        tz = pytz.timezone(rule.timezone_id)

        day = first
        while day <= last:
            if pattern.includes(day):
                self._expand_occurrence(rule, day, tz, now, result)
            day += timedelta(days=1)

        rule.generated_until = horizon
        rule.last_run_at = now
        rule.save(update_fields=['status', 'generated_until', 'last_run_at', 'updated_at'])
        result.generated_until = horizon

        logger.info(
            f"Expanded recurrence rule {rule.id} to {horizon}: "
            f"{len(result.committed)} booked, {len(result.skipped)} skipped"
        )
        return result

    def _expand_occurrence(self, rule, day: date, tz, now: datetime, result: ExpansionResult):
        if rule.end_time <= rule.start_time:
            logger.warning(
                f"Recurrence rule {rule.id} has end time {rule.end_time} not after "
                f"start time {rule.start_time}; skipping {day}"
            )
            result.skipped.append(SkippedOccurrence(day, SkipReason.INVALID_TIME_RANGE))
            return

        start_at = tz.localize(datetime.combine(day, rule.start_time)).astimezone(pytz.utc)
        end_at = tz.localize(datetime.combine(day, rule.end_time)).astimezone(pytz.utc)

        if rule.paused_until and start_at < rule.paused_until:
            result.skipped.append(SkippedOccurrence(day, SkipReason.PAUSED))
            return

        if start_at < now:
            result.skipped.append(SkippedOccurrence(day, SkipReason.PAST))
            return

        candidate = Reservation(
            vehicle_id=rule.vehicle_id,
            group_id=rule.group_id,
            owner_id=rule.owner_id,
            start_at=start_at,
            end_at=end_at,
            priority_tier=Reservation.PriorityTier.NORMAL,
            recurrence_rule=rule,
        )
        result.attempted.append(candidate)

        commit = self.guard.try_commit(candidate, now=now)
        if commit.committed:
            result.committed.append(commit.reservation)
        else:
            logger.info(f"Recurrence rule {rule.id} occurrence on {day} conflicts; skipped")
            result.skipped.append(SkippedOccurrence(day, SkipReason.CONFLICT, commit.conflicts))

    def expand_due_rules(self, horizon_days: int = None, today: date = None, now: datetime = None) -> Dict[str, int]:
        """
        Sweep every live rule up to ``today + horizon_days``.

        A failing rule is logged and the sweep moves on.
        """
        now = now or timezone.now()
        today = today or now.date()
        if horizon_days is None:
            horizon_days = getattr(settings, 'RECURRENCE_HORIZON_DAYS', 28)
        horizon = today + timedelta(days=horizon_days)

        rule_ids = list(
            RecurrenceRule.objects.filter(
                status__in=[RecurrenceRule.Status.ACTIVE, RecurrenceRule.Status.PAUSED]
            ).values_list('id', flat=True)
        )

        stats = {'rules': len(rule_ids), 'booked': 0, 'skipped': 0, 'failed': 0}
        for rule_id in rule_ids:
            try:
                result = self.expand_until(rule_id, horizon, now=now)
            except Exception as e:
                stats['failed'] += 1
                logger.exception(f"Expansion of recurrence rule {rule_id} failed: {e}")
                continue
            stats['booked'] += len(result.committed)
            stats['skipped'] += len(result.skipped)

        logger.info(f"Recurrence sweep to {horizon} finished: {stats}")
        return stats

    # ==========================================================================
    # Helpers
    # ==========================================================================

    def _locked_rule(self, rule_id: uuid.UUID) -> RecurrenceRule:
        try:
            return RecurrenceRule.objects.select_for_update().get(id=rule_id)
        except RecurrenceRule.DoesNotExist:
            raise RuleNotFoundError(f"Recurrence rule {rule_id} not found")

    def _check_can_manage(self, rule: RecurrenceRule, user_id: uuid.UUID):
        if str(rule.owner_id) == str(user_id):
            return
        membership = self._directory().get_membership(rule.group_id, user_id)
        if membership is None or not membership.is_admin:
            raise AuthorizationError("Only the owner or a group admin can manage this rule")

    def _validate_rule(
        self,
        pattern, interval, days_of_week_mask, start_time, end_time,
        window_start_date, window_end_date, timezone_id,
    ):
        if pattern not in RecurrenceRule.Pattern.values:
            raise ReservationValidationError(f"Unknown recurrence pattern: {pattern}")
        if not isinstance(interval, int) or interval < 1:
            raise ReservationValidationError("Interval must be at least 1")
        if pattern == RecurrenceRule.Pattern.WEEKLY:
            if not days_of_week_mask or days_of_week_mask & ~RecurrenceRule.ALL_DAYS:
                raise ReservationValidationError("Weekly rules need at least one valid weekday")
        if end_time <= start_time:
            raise ReservationValidationError("End time must be after start time")
        if window_end_date and window_end_date < window_start_date:
            raise ReservationValidationError("Window end date must not be before its start date")
        try:
            validate_timezone(timezone_id, 'timezone_id')
        except ValidationError as e:
            raise ReservationValidationError(e.messages[0]) from e
