# services/booking-service/src/apps/core/services/__init__.py
"""
Booking Service Business Logic
"""

from .exceptions import (
    BookingServiceError,
    ReservationValidationError,
    ConflictError,
    TripStateError,
    FeeStateError,
    AuthorizationError,
    SecurityError,
    TransientStoreError,
    ReservationNotFoundError,
    FeeNotFoundError,
    RuleNotFoundError,
    VehicleNotFoundError,
)
from .interval_store import IntervalStore
from .conflict_guard import BookingConflictGuard, CommitOutcome, CommitResult, ConflictInfo
from .recurrence import DailyPattern, WeeklyPattern, MonthlyPattern, pattern_for
from .recurrence_service import RecurrenceService, ExpansionResult, SkipReason
from .access_token_service import (
    VehicleAccessTokenService,
    AccessTokenOptions,
    IssuedToken,
    RejectionKind,
    TokenValidationResult,
    TripAction,
    TripAuthorization,
)
from .late_fee_calculator import LateReturnFeeCalculator, LateFeePolicy, LateFeeBand, FeeQuote, compute
from .trip_lifecycle import TripLifecycle, TripService, CheckInResult
from .reservation_service import ReservationService


__all__ = [
    # Services
    'IntervalStore',
    'BookingConflictGuard',
    'RecurrenceService',
    'VehicleAccessTokenService',
    'LateReturnFeeCalculator',
    'TripLifecycle',
    'TripService',
    'ReservationService',

    # Results and values
    'CommitOutcome',
    'CommitResult',
    'ConflictInfo',
    'ExpansionResult',
    'SkipReason',
    'DailyPattern',
    'WeeklyPattern',
    'MonthlyPattern',
    'pattern_for',
    'AccessTokenOptions',
    'IssuedToken',
    'RejectionKind',
    'TokenValidationResult',
    'TripAction',
    'TripAuthorization',
    'LateFeePolicy',
    'LateFeeBand',
    'FeeQuote',
    'compute',
    'CheckInResult',

    # Exceptions
    'BookingServiceError',
    'ReservationValidationError',
    'ConflictError',
    'TripStateError',
    'FeeStateError',
    'AuthorizationError',
    'SecurityError',
    'TransientStoreError',
    'ReservationNotFoundError',
    'FeeNotFoundError',
    'RuleNotFoundError',
    'VehicleNotFoundError',
]
