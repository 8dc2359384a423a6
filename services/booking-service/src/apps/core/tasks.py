# services/booking-service/src/apps/core/tasks.py
"""
Booking Service Celery Tasks

Background sweep that materializes recurring reservations.
"""

import logging
from typing import Optional

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3)
def expand_recurring_reservations(self, horizon_days: Optional[int] = None):
    """
    Expand every active recurrence rule up to the rolling horizon.

    Rules are independent; a retry re-runs the whole sweep, and rules whose
    watermark already covers the horizon are no-ops.

    Args:
        horizon_days: Days ahead to book; defaults to RECURRENCE_HORIZON_DAYS
    """
    try:
        from .services import RecurrenceService

        stats = RecurrenceService().expand_due_rules(horizon_days=horizon_days)
        logger.info(f"Recurring reservation sweep: {stats}")
        return stats

    except Exception as e:
        logger.error(f"Error expanding recurring reservations: {e}")
        self.retry(countdown=60, exc=e)
