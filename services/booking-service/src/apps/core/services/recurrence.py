# services/booking-service/src/apps/core/services/recurrence.py
"""
Recurrence Patterns

Each pattern answers one question: does the series have an occurrence on a
given calendar day? The expander never needs to know which pattern it has.
"""

import calendar
from dataclasses import dataclass
from datetime import date, timedelta

from apps.core.models import RecurrenceRule


def weekday_bit(day: date) -> int:
    """Mask bit of ``day``, counting from Sunday = bit 0."""
    return 1 << ((day.weekday() + 1) % 7)


def week_start(day: date) -> date:
    """The Sunday starting the week that contains ``day``."""
    return day - timedelta(days=(day.weekday() + 1) % 7)


@dataclass(frozen=True)
class DailyPattern:
    anchor: date
    interval: int = 1

    def includes(self, day: date) -> bool:
        if day < self.anchor:
            return False
        return (day - self.anchor).days % self.interval == 0


@dataclass(frozen=True)
class WeeklyPattern:
    anchor: date
    days_of_week_mask: int
    interval: int = 1

    def includes(self, day: date) -> bool:
        if day < self.anchor or not self.days_of_week_mask & weekday_bit(day):
            return False
        weeks = (week_start(day) - week_start(self.anchor)).days // 7
        return weeks % self.interval == 0


@dataclass(frozen=True)
class MonthlyPattern:
    """
    Same day-of-month as the anchor, clamped to the end of shorter months.
    """
    anchor: date
    interval: int = 1

    def includes(self, day: date) -> bool:
        if day < self.anchor:
            return False
        months = (day.year - self.anchor.year) * 12 + (day.month - self.anchor.month)
        if months % self.interval != 0:
            return False
        last_day = calendar.monthrange(day.year, day.month)[1]
        return day.day == min(self.anchor.day, last_day)


def pattern_for(rule: RecurrenceRule):
    """Build the pattern variant described by ``rule``."""
    interval = max(1, rule.interval or 1)
    if rule.pattern == RecurrenceRule.Pattern.DAILY:
        return DailyPattern(anchor=rule.window_start_date, interval=interval)
    if rule.pattern == RecurrenceRule.Pattern.WEEKLY:
        return WeeklyPattern(
            anchor=rule.window_start_date,
            days_of_week_mask=rule.days_of_week_mask,
            interval=interval,
        )
    if rule.pattern == RecurrenceRule.Pattern.MONTHLY:
        return MonthlyPattern(anchor=rule.window_start_date, interval=interval)
    raise ValueError(f"Unknown recurrence pattern: {rule.pattern}")
