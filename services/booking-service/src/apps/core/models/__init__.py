# services/booking-service/src/apps/core/models/__init__.py
"""
Booking Service Models
"""

from .reservation import Reservation
from .recurrence_rule import RecurrenceRule
from .late_return_fee import LateReturnFee
from .vehicle_schedule import VehicleSchedule

__all__ = [
    'Reservation',
    'RecurrenceRule',
    'LateReturnFee',
    'VehicleSchedule',
]
