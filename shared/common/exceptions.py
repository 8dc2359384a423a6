# shared/common/exceptions.py
"""
API exceptions and the DRF exception handler.

Every error leaves the service in the same envelope::

    {"success": false,
     "error": {"code": ..., "message": ..., "request_id": ...,
               "details": {...} | "conflicts": [...]}}
"""

import logging
import traceback
from typing import Dict, Any, Optional
from rest_framework import status
from rest_framework.views import exception_handler
from rest_framework.response import Response
from rest_framework.exceptions import APIException
from django.core.exceptions import ValidationError as DjangoValidationError
from django.http import Http404
from django.conf import settings

logger = logging.getLogger(__name__)


class BaseAPIException(APIException):
    """Base class carrying a stable ``error_code`` and optional extra payload."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = 'An unexpected error occurred.'
    default_code = 'error'
    error_code = 'INTERNAL_ERROR'

    def __init__(
        self,
        detail: Optional[str] = None,
        code: Optional[str] = None,
        error_code: Optional[str] = None,
        extra_data: Optional[Dict] = None
    ):
        super().__init__(detail=detail, code=code)
        self.error_code = error_code or self.error_code
        self.extra_data = extra_data or {}


class ValidationException(BaseAPIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Validation error.'
    default_code = 'validation_error'
    error_code = 'VALIDATION_ERROR'

    def __init__(self, errors: Dict[str, Any] = None, detail: str = None):
        super().__init__(detail=detail, extra_data={'errors': errors} if errors else None)


class ForbiddenException(BaseAPIException):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'You do not have permission to perform this action.'
    default_code = 'forbidden'
    error_code = 'FORBIDDEN'


class NotFoundException(BaseAPIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'The requested resource was not found.'
    default_code = 'not_found'
    error_code = 'NOT_FOUND'


class ConflictException(BaseAPIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'A conflict occurred with the current state of the resource.'
    default_code = 'conflict'
    error_code = 'CONFLICT'


class ServiceUnavailableException(BaseAPIException):
    """Lock or store contention; the client may retry."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = 'The service is temporarily unavailable.'
    default_code = 'service_unavailable'
    error_code = 'SERVICE_UNAVAILABLE'


class ReservationConflictException(ConflictException):
    default_detail = 'The requested time slot conflicts with an existing reservation.'
    error_code = 'RESERVATION_CONFLICT'


class TripStateException(ConflictException):
    default_detail = 'The reservation is not in a state that allows this action.'
    error_code = 'INVALID_TRIP_STATE'


class AccessTokenInvalidException(BaseAPIException):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'QR code is no longer valid.'
    default_code = 'access_token_invalid'
    error_code = 'ACCESS_TOKEN_INVALID'


class TripNotAuthorizedException(ForbiddenException):
    """Valid token, but no reservation of the caller covers this moment."""
    default_detail = 'No reservation allows this action at this time.'
    error_code = 'TRIP_NOT_AUTHORIZED'


def _envelope(code: str, message: str, request_id: Optional[str], **extra) -> Dict[str, Any]:
    error = {'code': code, 'message': message, 'request_id': request_id}
    error.update({key: value for key, value in extra.items() if value is not None})
    return {'success': False, 'error': error}


def _message_for(exc, data) -> str:
    detail = getattr(exc, 'detail', data)
    if isinstance(detail, list) and detail:
        return str(detail[0])
    if isinstance(detail, dict):
        return str(detail.get('detail', 'Validation error'))
    return str(detail)


def custom_exception_handler(exc, context) -> Optional[Response]:
    """Wrap DRF, Django and unexpected errors into the service envelope."""
    request = context.get('request')
    request_id = getattr(request, 'request_id', None) if request else None

    response = exception_handler(exc, context)
    if response is not None:
        extra_data = getattr(exc, 'extra_data', {})
        details = extra_data.get('errors')
        if details is None and isinstance(response.data, dict) and 'detail' not in response.data:
            # Serializer field errors
            details = response.data
        response.data = _envelope(
            getattr(exc, 'error_code', 'ERROR'),
            _message_for(exc, response.data),
            request_id,
            details=details,
            conflicts=extra_data.get('conflicts'),
        )
        return response

    if isinstance(exc, DjangoValidationError):
        details = exc.message_dict if hasattr(exc, 'message_dict') else {'detail': exc.messages}
        return Response(
            _envelope('VALIDATION_ERROR', 'Validation error', request_id, details=details),
            status=status.HTTP_400_BAD_REQUEST,
        )

    if isinstance(exc, Http404):
        return Response(
            _envelope('NOT_FOUND', str(exc) or 'Resource not found', request_id),
            status=status.HTTP_404_NOT_FOUND,
        )

    logger.exception(
        f"Unhandled exception: {exc}",
        extra={'request_id': request_id, 'exception_type': type(exc).__name__},
    )

    if settings.DEBUG:
        body = _envelope(
            'INTERNAL_ERROR', str(exc), request_id,
            type=type(exc).__name__,
            traceback=traceback.format_exc().split('\n'),
        )
    else:
        body = _envelope(
            'INTERNAL_ERROR', 'An unexpected error occurred. Please try again later.', request_id
        )
    return Response(body, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
