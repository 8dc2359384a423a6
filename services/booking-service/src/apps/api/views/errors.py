# services/booking-service/src/apps/api/views/errors.py
"""
Service error translation

Maps booking service exceptions onto the shared API exceptions so every
endpoint returns the same error envelope.
"""

from contextlib import contextmanager

from shared.common.exceptions import (
    AccessTokenInvalidException,
    ConflictException,
    ForbiddenException,
    NotFoundException,
    ReservationConflictException,
    ServiceUnavailableException,
    TripNotAuthorizedException,
    TripStateException,
    ValidationException,
)
from apps.core.services import (
    AuthorizationError,
    ConflictError,
    ConflictInfo,
    FeeNotFoundError,
    ReservationNotFoundError,
    ReservationValidationError,
    RuleNotFoundError,
    SecurityError,
    TransientStoreError,
    TripStateError,
    VehicleNotFoundError,
)


def _conflict_payload(conflicts):
    payload = []
    for conflict in conflicts:
        if not isinstance(conflict, ConflictInfo):
            conflict = ConflictInfo.from_reservation(conflict)
        payload.append(conflict.to_dict())
    return payload


@contextmanager
def service_errors(trip_authorization: bool = False):
    """
    Translate service exceptions raised in the block.

    With ``trip_authorization`` set, authorization failures are reported as
    token-driven trip refusals.
    """
    try:
        yield
    except ReservationValidationError as e:
        raise ValidationException(detail=str(e))
    except TripStateError as e:
        raise TripStateException(
            detail=str(e),
            extra_data={'conflicts': _conflict_payload(e.conflicts)}
        )
    except ConflictError as e:
        raise ConflictException(
            detail=str(e),
            extra_data={'conflicts': _conflict_payload(e.conflicts)}
        )
    except SecurityError as e:
        raise AccessTokenInvalidException(detail=str(e))
    except AuthorizationError as e:
        if trip_authorization:
            raise TripNotAuthorizedException(detail=str(e))
        raise ForbiddenException(detail=str(e))
    except (ReservationNotFoundError, RuleNotFoundError, FeeNotFoundError, VehicleNotFoundError) as e:
        raise NotFoundException(detail=str(e))
    except TransientStoreError as e:
        raise ServiceUnavailableException(detail=str(e))


def raise_for_rejection(result):
    """Turn a rejected commit into a 409 listing the conflicting reservations."""
    if not result.committed:
        raise ReservationConflictException(
            extra_data={'conflicts': _conflict_payload(result.conflicts)}
        )
