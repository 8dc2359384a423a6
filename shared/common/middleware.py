# shared/common/middleware.py
"""
Request tracing middleware
"""

import re
import time
import uuid
import logging
from typing import Callable, Optional
from django.http import HttpRequest, HttpResponse

logger = logging.getLogger(__name__)

_REQUEST_ID_RE = re.compile(r'^[A-Za-z0-9._-]{1,64}$')


class RequestIDMiddleware:
    """
    Attach a request ID for tracing across services.

    An incoming ``X-Request-ID`` is reused when it looks sane, otherwise a
    fresh UUID is minted. The ID is echoed back on the response.
    """

    def __init__(self, get_response: Callable):
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        incoming = request.headers.get('X-Request-ID', '')
        request.request_id = incoming if _REQUEST_ID_RE.match(incoming) else str(uuid.uuid4())

        response = self.get_response(request)
        response['X-Request-ID'] = request.request_id
        return response


class LoggingMiddleware:
    """Log one line per request with caller, route parameters and timing."""

    # Route kwargs worth carrying into the log record
    TRACED_KWARGS = ('vehicle_id', 'pk')

    def __init__(self, get_response: Callable):
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        if request.path.endswith('/health/'):
            return self.get_response(request)

        started = time.monotonic()
        response = self.get_response(request)
        elapsed_ms = round((time.monotonic() - started) * 1000, 2)

        extra = {
            'request_id': getattr(request, 'request_id', None),
            'method': request.method,
            'path': request.path,
            'status_code': response.status_code,
            'duration_ms': elapsed_ms,
            'user_id': self._user_id(request),
            'ip_address': self._client_ip(request),
        }
        match = getattr(request, 'resolver_match', None)
        if match is not None:
            extra.update({
                key: str(value) for key, value in match.kwargs.items()
                if key in self.TRACED_KWARGS
            })

        level = logging.WARNING if response.status_code >= 400 else logging.INFO
        logger.log(level, f"{request.method} {request.path} -> {response.status_code}", extra=extra)

        response['X-Response-Time'] = f"{elapsed_ms:.2f}ms"
        return response

    @staticmethod
    def _user_id(request: HttpRequest) -> Optional[str]:
        # DRF copies the authenticated user back onto the Django request
        user = getattr(request, 'user', None)
        if user is None or not getattr(user, 'is_authenticated', False):
            return None
        return str(getattr(user, 'id', None))

    @staticmethod
    def _client_ip(request: HttpRequest) -> str:
        forwarded = request.META.get('HTTP_X_FORWARDED_FOR')
        if forwarded:
            return forwarded.split(',')[0].strip()
        return request.META.get('REMOTE_ADDR', '')
