# services/booking-service/src/apps/core/services/exceptions.py
"""
Booking Service Exceptions
"""


class BookingServiceError(Exception):
    """Base exception for booking service errors."""
    pass


class ReservationValidationError(BookingServiceError):
    """Malformed input, e.g. end not after start or unknown vehicle."""
    pass


class ConflictError(BookingServiceError):
    """Operation conflicts with the current state of a reservation."""

    def __init__(self, message: str, conflicts=None):
        super().__init__(message)
        self.conflicts = list(conflicts or [])


class TripStateError(ConflictError):
    """Invalid trip state transition."""
    pass


class FeeStateError(ConflictError):
    """Invalid late fee state transition."""
    pass


class AuthorizationError(BookingServiceError):
    """User is not allowed to act on this vehicle or reservation."""
    pass


class SecurityError(BookingServiceError):
    """Access token rejected. The message never says why."""

    GENERIC_MESSAGE = 'QR code is no longer valid'

    def __init__(self, message: str = GENERIC_MESSAGE):
        super().__init__(message)


class TransientStoreError(BookingServiceError):
    """Durable write failed. Safe to retry the whole operation."""
    pass


class ReservationNotFoundError(BookingServiceError):
    """Reservation not found."""
    pass


class FeeNotFoundError(BookingServiceError):
    """Late return fee not found."""
    pass


class RuleNotFoundError(BookingServiceError):
    """Recurrence rule not found."""
    pass


class VehicleNotFoundError(BookingServiceError):
    """Vehicle unknown to the directory."""
    pass
