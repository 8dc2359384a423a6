# services/booking-service/src/apps/core/events.py
"""
Booking Service Events

Event definitions and publishing for the booking service.
Owners of bumped reservations and of skipped recurring occurrences are
notified by consumers of these events.
"""

import json
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List
from uuid import UUID

from django.conf import settings
from django.utils import timezone

logger = logging.getLogger(__name__)


class EventType:
    """Event type constants for booking service."""

    # Reservation events
    RESERVATION_CREATED = 'reservation.created'
    RESERVATION_CANCELLED = 'reservation.cancelled'
    RESERVATION_BUMPED = 'reservation.bumped'

    # Trip events
    TRIP_CHECKED_OUT = 'trip.checked_out'
    TRIP_CHECKED_IN = 'trip.checked_in'

    # Recurring rule events
    RECURRING_RULE_CREATED = 'recurring_rule.created'
    RECURRING_RULE_CANCELLED = 'recurring_rule.cancelled'
    RECURRING_RULE_OCCURRENCES_SKIPPED = 'recurring_rule.occurrences_skipped'

    # Late return fee events
    LATE_RETURN_FEE_CREATED = 'late_return_fee.created'
    LATE_RETURN_FEE_WAIVED = 'late_return_fee.waived'


class JSONEncoder(json.JSONEncoder):
    """Custom JSON encoder for event payloads."""

    def default(self, obj):
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, Decimal):
            return str(obj)
        return super().default(obj)


class EventPublisher:
    """
    Event publisher for booking service.

    Publishing never raises: a failed publish is logged and reported as
    ``False`` so that a committed reservation is never undone by the bus.
    """

    def __init__(self):
        self.service_name = 'booking-service'

    @property
    def enabled(self) -> bool:
        return getattr(settings, 'EVENT_PUBLISHING_ENABLED', True)

    def publish(
        self,
        event_type: str,
        payload: Dict[str, Any],
        group_id: UUID = None,
        correlation_id: str = None,
        metadata: Dict[str, Any] = None
    ) -> bool:
        """
        Publish an event to the message bus.

        Args:
            event_type: Type of event (e.g., 'reservation.bumped')
            payload: Event data
            group_id: Co-ownership group context
            correlation_id: Optional correlation ID for tracing
            metadata: Additional metadata

        Returns:
            True if published successfully, False otherwise
        """
        if not self.enabled:
            logger.debug(f"Event publishing disabled, skipping: {event_type}")
            return False

        event = {
            'event_type': event_type,
            'service': self.service_name,
            'timestamp': timezone.now().isoformat(),
            'group_id': str(group_id) if group_id else None,
            'correlation_id': correlation_id,
            'payload': payload,
            'metadata': metadata or {},
        }

        try:
            event_json = json.dumps(event, cls=JSONEncoder)

            logger.info(f"Publishing event: {event_type}", extra={
                'event_type': event_type,
                'group_id': str(group_id) if group_id else None,
            })

            self._publish_to_backend(event_type, event_json)
            return True

        except Exception as e:
            logger.error(f"Failed to publish event {event_type}: {e}")
            return False

    def _publish_to_backend(self, event_type: str, event_json: str):
        """Publish to the configured message backend."""
        backend = getattr(settings, 'EVENT_BACKEND', 'log')

        if backend == 'redis':
            self._publish_redis(event_type, event_json)
        elif backend == 'webhook':
            self._publish_webhook(event_type, event_json)
        else:
            # Default: just log
            logger.debug(f"Event payload: {event_json[:500]}...")

    def _publish_redis(self, event_type: str, event_json: str):
        """Publish to Redis pub/sub."""
        import redis

        r = redis.Redis.from_url(getattr(settings, 'REDIS_URL', 'redis://localhost:6379/0'))
        r.publish(f"events:{event_type}", event_json)

    def _publish_webhook(self, event_type: str, event_json: str):
        """Publish via webhook."""
        import httpx

        webhook_url = getattr(settings, 'EVENT_WEBHOOK_URL', None)
        if not webhook_url:
            return

        response = httpx.post(
            webhook_url,
            content=event_json,
            headers={'Content-Type': 'application/json'},
            timeout=5
        )
        response.raise_for_status()


# Global event publisher instance
event_publisher = EventPublisher()


def _reservation_payload(reservation) -> Dict[str, Any]:
    return {
        'reservation_id': reservation.id,
        'vehicle_id': reservation.vehicle_id,
        'owner_id': reservation.owner_id,
        'start_at': reservation.start_at,
        'end_at': reservation.end_at,
        'status': reservation.status,
        'is_emergency': reservation.is_emergency,
    }


# Convenience functions for publishing specific events
def publish_reservation_created(reservation):
    """Publish reservation created event."""
    event_publisher.publish(
        EventType.RESERVATION_CREATED,
        payload=_reservation_payload(reservation),
        group_id=reservation.group_id
    )


def publish_reservation_cancelled(reservation, cancelled_by: UUID = None, reason: str = None):
    """Publish reservation cancelled event."""
    payload = _reservation_payload(reservation)
    payload.update({'cancelled_by': cancelled_by, 'reason': reason})
    event_publisher.publish(
        EventType.RESERVATION_CANCELLED,
        payload=payload,
        group_id=reservation.group_id
    )


def publish_reservation_bumped(reservation, emergency):
    """Publish one event per reservation retired by an emergency booking."""
    payload = _reservation_payload(reservation)
    payload.update({
        'bumped_by_reservation_id': emergency.id,
        'emergency_owner_id': emergency.owner_id,
        'emergency_reason': emergency.emergency_reason,
    })
    event_publisher.publish(
        EventType.RESERVATION_BUMPED,
        payload=payload,
        group_id=reservation.group_id
    )


def publish_trip_checked_out(reservation):
    event_publisher.publish(
        EventType.TRIP_CHECKED_OUT,
        payload={
            **_reservation_payload(reservation),
            'checked_out_at': reservation.checked_out_at,
            'checked_out_by': reservation.checked_out_by,
        },
        group_id=reservation.group_id
    )


def publish_trip_checked_in(reservation):
    event_publisher.publish(
        EventType.TRIP_CHECKED_IN,
        payload={
            **_reservation_payload(reservation),
            'checked_in_at': reservation.checked_in_at,
            'checked_in_by': reservation.checked_in_by,
            'late_minutes': reservation.late_minutes,
        },
        group_id=reservation.group_id
    )


def publish_recurring_rule_created(rule):
    event_publisher.publish(
        EventType.RECURRING_RULE_CREATED,
        payload={
            'rule_id': rule.id,
            'vehicle_id': rule.vehicle_id,
            'owner_id': rule.owner_id,
            'pattern': rule.pattern,
            'window_start_date': rule.window_start_date,
            'window_end_date': rule.window_end_date,
        },
        group_id=rule.group_id
    )


def publish_recurring_rule_cancelled(rule, cancelled_reservations: int = 0):
    event_publisher.publish(
        EventType.RECURRING_RULE_CANCELLED,
        payload={
            'rule_id': rule.id,
            'vehicle_id': rule.vehicle_id,
            'owner_id': rule.owner_id,
            'reason': rule.cancellation_reason,
            'cancelled_reservations': cancelled_reservations,
        },
        group_id=rule.group_id
    )


def publish_occurrences_skipped(rule, skipped: List[Dict[str, Any]]):
    """Tell the owner which occurrences of a series could not be booked."""
    event_publisher.publish(
        EventType.RECURRING_RULE_OCCURRENCES_SKIPPED,
        payload={
            'rule_id': rule.id,
            'vehicle_id': rule.vehicle_id,
            'owner_id': rule.owner_id,
            'skipped': skipped,
        },
        group_id=rule.group_id
    )


def publish_late_return_fee_created(fee):
    event_publisher.publish(
        EventType.LATE_RETURN_FEE_CREATED,
        payload={
            'fee_id': fee.id,
            'reservation_id': fee.reservation_id,
            'owner_id': fee.owner_id,
            'vehicle_id': fee.vehicle_id,
            'late_minutes': fee.late_minutes,
            'fee_amount': fee.fee_amount,
        },
        group_id=fee.group_id
    )


def publish_late_return_fee_waived(fee):
    event_publisher.publish(
        EventType.LATE_RETURN_FEE_WAIVED,
        payload={
            'fee_id': fee.id,
            'reservation_id': fee.reservation_id,
            'owner_id': fee.owner_id,
            'original_fee_amount': fee.original_fee_amount,
            'waived_by': fee.waived_by,
            'waived_reason': fee.waived_reason,
        },
        group_id=fee.group_id
    )
