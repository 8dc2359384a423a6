# services/booking-service/src/apps/core/services/access_token_service.py
"""
Vehicle Access Token Service

Issues and validates the short-lived QR tokens that gate physical checkout
and check-in. The plaintext payload is never stored: clients only ever see
the AES-GCM sealed blob, and the live cache entry for the vehicle is the
sole source of truth during validation. Issuing a new token replaces the
entry, which retires every older blob.
"""

import base64
import binascii
import hmac
import json
import logging
import os
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from io import BytesIO
from typing import Any, Dict, Optional

import qrcode
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from dateutil import parser as date_parser
from django.conf import settings
from django.core.cache import cache
from django.core.exceptions import ImproperlyConfigured, ValidationError
from django.utils import timezone

from shared.common.validators import validate_hex_color
from apps.core.locks import vehicle_token_locks
from apps.core.models import Reservation
from .directory import get_directory
from .exceptions import AuthorizationError, VehicleNotFoundError

logger = logging.getLogger(__name__)

NONCE_SIZE = 12
TAG_SIZE = 16
VALID_KEY_SIZES = (16, 24, 32)
GENERIC_REJECTION = 'QR code is no longer valid'


class TripAction(str, Enum):
    CHECKOUT = 'checkout'
    CHECKIN = 'checkin'


class RejectionKind(str, Enum):
    """Which error class a rejected validation belongs to."""
    SECURITY = 'security'
    AUTHORIZATION = 'authorization'
    VALIDATION = 'validation'


@dataclass
class IssuedToken:
    vehicle_id: uuid.UUID
    encrypted_payload: str
    image_bytes: bytes
    data_url: str
    issued_at: datetime
    expires_at: datetime
    version: int


@dataclass
class TripAuthorization:
    """
    Proof that a token was valid for ``action`` on ``reservation``.

    Advisory only: the state change is made by the trip lifecycle.
    """
    reservation: Reservation
    action: TripAction
    validated_at: datetime
    window_start: datetime
    window_end: datetime
    checkin_deadline: Optional[datetime] = None
    is_overdue: bool = False


@dataclass
class TokenValidationResult:
    authorization: Optional[TripAuthorization] = None
    kind: Optional[RejectionKind] = None
    message: str = ''

    @property
    def ok(self) -> bool:
        return self.authorization is not None

    @classmethod
    def accepted(cls, authorization: TripAuthorization) -> 'TokenValidationResult':
        return cls(authorization=authorization)

    @classmethod
    def rejected(cls, kind: RejectionKind, message: str) -> 'TokenValidationResult':
        return cls(kind=kind, message=message)


@dataclass(frozen=True)
class AccessTokenOptions:
    """Token options, normally read from ``settings.VEHICLE_ACCESS_TOKENS``."""
    encryption_key: bytes
    signing_key: bytes
    expiration_minutes: int = 60
    cache_minutes: int = 30
    checkout_lead_minutes: int = 30
    checkout_grace_minutes: int = 30
    checkin_grace_minutes: int = 60
    token_length: int = 16
    pixels_per_module: int = 10
    foreground_color: str = '000000'
    background_color: str = 'FFFFFF'
    draw_quiet_zones: bool = True

    @classmethod
    def from_settings(cls) -> 'AccessTokenOptions':
        config = dict(getattr(settings, 'VEHICLE_ACCESS_TOKENS', {}))
        return cls.from_dict(config)

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'AccessTokenOptions':
        raw_key = config.get('ENCRYPTION_KEY')
        if not raw_key:
            raise ImproperlyConfigured("VEHICLE_ACCESS_TOKENS['ENCRYPTION_KEY'] must be set")
        encryption_key = parse_key(raw_key, 'ENCRYPTION_KEY')
        signing_key = (
            parse_key(config['SIGNING_KEY'], 'SIGNING_KEY')
            if config.get('SIGNING_KEY') else encryption_key
        )

        try:
            foreground = validate_hex_color(config.get('FOREGROUND_COLOR', '000000'), 'FOREGROUND_COLOR')
            background = validate_hex_color(config.get('BACKGROUND_COLOR', 'FFFFFF'), 'BACKGROUND_COLOR')
        except ValidationError as e:
            raise ImproperlyConfigured(e.messages[0])

        return cls(
            encryption_key=encryption_key,
            signing_key=signing_key,
            expiration_minutes=max(1, int(config.get('EXPIRATION_MINUTES', 60))),
            cache_minutes=max(1, int(config.get('CACHE_MINUTES', 30))),
            checkout_lead_minutes=max(0, int(config.get('CHECKOUT_LEAD_MINUTES', 30))),
            checkout_grace_minutes=max(0, int(config.get('CHECKOUT_GRACE_MINUTES', 30))),
            checkin_grace_minutes=max(0, int(config.get('CHECKIN_GRACE_MINUTES', 60))),
            token_length=min(64, max(8, int(config.get('TOKEN_LENGTH', 16)))),
            pixels_per_module=max(1, int(config.get('PIXELS_PER_MODULE', 10))),
            foreground_color=foreground,
            background_color=background,
            draw_quiet_zones=bool(config.get('DRAW_QUIET_ZONES', True)),
        )

    @property
    def cache_timeout(self) -> int:
        """Seconds the cache keeps an entry; never shorter than the token TTL."""
        return max(self.cache_minutes, self.expiration_minutes) * 60


def parse_key(value, name: str) -> bytes:
    """
    Decode key material given as base64 or raw UTF-8 text.

    The result must be 16, 24 or 32 bytes long.
    """
    if isinstance(value, bytes):
        key = value
    else:
        try:
            key = base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError):
            key = b''
        if len(key) not in VALID_KEY_SIZES:
            key = str(value).encode('utf-8')

    if len(key) not in VALID_KEY_SIZES:
        raise ImproperlyConfigured(f"{name} must be 16, 24 or 32 bytes, got {len(key)}")
    return key


class VehicleAccessTokenService:
    """
    Service for vehicle access tokens.

    Handles:
    - Issuing one live token per vehicle, reused until it expires
    - Sealing and rendering tokens as QR codes
    - Validating presented blobs against the live entry and the
      requesting user's reservations
    """

    CACHE_PREFIX = 'vehicle-access-token'
    VERSION_PREFIX = 'vehicle-access-token-version'

    def __init__(self, options: AccessTokenOptions = None, directory=None):
        self.options = options or AccessTokenOptions.from_settings()
        self.directory = directory
        self._aead = AESGCM(self.options.encryption_key)

    def _directory(self):
        return self.directory or get_directory()

    # ==========================================================================
    # Issuance
    # ==========================================================================

    def issue_token(self, vehicle_id: uuid.UUID, now: datetime = None, force: bool = False) -> IssuedToken:
        """
        Return the vehicle's live token, issuing a new one if there is none,
        it has expired, or ``force`` is set.
        """
        now = now or timezone.now()
        vehicle_key = str(vehicle_id)

        with vehicle_token_locks.hold(vehicle_key):
            entry = cache.get(self._cache_key(vehicle_key))
            if entry and not force and entry['expires_at'] > now:
                return self._issued_from_entry(entry)

            version = self._next_version(vehicle_key)
            issued_at = now
            expires_at = now + timedelta(minutes=self.options.expiration_minutes)
            token = secrets.token_hex(self.options.token_length)

            payload = {
                'vehicle_id': vehicle_key,
                'token': token,
                'issued_at': issued_at.isoformat(),
                'expires_at': expires_at.isoformat(),
                'version': version,
            }
            encrypted_payload = self._seal(payload)
            image_bytes = self.render_qr(encrypted_payload)

            entry = {
                'vehicle_id': vehicle_key,
                'token': token,
                'issued_at': issued_at,
                'expires_at': expires_at,
                'version': version,
                'encrypted_payload': encrypted_payload,
                'image_bytes': image_bytes,
                'data_url': to_data_url(image_bytes),
            }
            cache.set(self._cache_key(vehicle_key), entry, timeout=self.options.cache_timeout)

        logger.info(f"Issued access token v{version} for vehicle {vehicle_key}, expires {expires_at.isoformat()}")
        return self._issued_from_entry(entry)

    def issue_token_for(self, vehicle_id: uuid.UUID, user_id: uuid.UUID, now: datetime = None) -> IssuedToken:
        """Issue (or reuse) the vehicle's token for a member of its group."""
        vehicle = self._directory().get_vehicle(vehicle_id)
        if vehicle is None:
            raise VehicleNotFoundError(f"Vehicle {vehicle_id} not found")
        if self._directory().get_membership(vehicle.group_id, user_id) is None:
            raise AuthorizationError("User does not have access to this vehicle's group")
        return self.issue_token(vehicle_id, now=now)

    def _next_version(self, vehicle_key: str) -> int:
        key = f"{self.VERSION_PREFIX}:{vehicle_key}"
        cache.add(key, 0, None)
        return cache.incr(key)

    def _issued_from_entry(self, entry: Dict[str, Any]) -> IssuedToken:
        return IssuedToken(
            vehicle_id=uuid.UUID(entry['vehicle_id']),
            encrypted_payload=entry['encrypted_payload'],
            image_bytes=entry['image_bytes'],
            data_url=entry['data_url'],
            issued_at=entry['issued_at'],
            expires_at=entry['expires_at'],
            version=entry['version'],
        )

    def _cache_key(self, vehicle_key: str) -> str:
        return f"{self.CACHE_PREFIX}:{vehicle_key}"

    # ==========================================================================
    # Sealing
    # ==========================================================================

    def _seal(self, payload: Dict[str, Any]) -> str:
        nonce = os.urandom(NONCE_SIZE)
        plaintext = json.dumps(payload, separators=(',', ':')).encode('utf-8')
        sealed = self._aead.encrypt(nonce, plaintext, self.options.signing_key)
        return base64.b64encode(nonce + sealed).decode('ascii')

    def _open(self, blob: str) -> Optional[Dict[str, Any]]:
        """Decrypt and parse a blob. ``None`` on any failure."""
        try:
            raw = base64.b64decode(blob, validate=True)
        except (binascii.Error, ValueError, TypeError):
            logger.warning("Access token rejected: blob is not base64")
            return None

        if len(raw) <= NONCE_SIZE + TAG_SIZE:
            logger.warning("Access token rejected: blob too short")
            return None

        try:
            plaintext = self._aead.decrypt(raw[:NONCE_SIZE], raw[NONCE_SIZE:], self.options.signing_key)
        except InvalidTag:
            logger.warning("Access token rejected: authentication failed")
            return None

        try:
            payload = json.loads(plaintext.decode('utf-8'))
            return {
                'vehicle_id': str(uuid.UUID(payload['vehicle_id'])),
                'token': str(payload['token']),
                'issued_at': date_parser.isoparse(payload['issued_at']),
                'expires_at': date_parser.isoparse(payload['expires_at']),
                'version': int(payload.get('version', 0)),
            }
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Access token rejected: malformed payload ({e})")
            return None

    # ==========================================================================
    # Rendering
    # ==========================================================================

    def render_qr(self, encrypted_payload: str) -> bytes:
        """PNG QR code for a sealed blob."""
        qr = qrcode.QRCode(
            version=None,
            error_correction=qrcode.constants.ERROR_CORRECT_Q,
            box_size=self.options.pixels_per_module,
            border=4 if self.options.draw_quiet_zones else 0,
        )
        qr.add_data(encrypted_payload)
        qr.make(fit=True)

        img = qr.make_image(
            fill_color=f"#{self.options.foreground_color}",
            back_color=f"#{self.options.background_color}",
        )

        buffer = BytesIO()
        img.save(buffer, format='PNG')
        return buffer.getvalue()

    # ==========================================================================
    # Validation
    # ==========================================================================

    def validate(
        self,
        blob: str,
        action,
        requesting_user_id: uuid.UUID,
        now: datetime = None,
    ) -> TokenValidationResult:
        """
        Check a presented blob for ``action`` by ``requesting_user_id``.

        Every cryptographic or freshness failure is reported with the same
        generic message; the specific reason is only logged.
        """
        now = now or timezone.now()

        try:
            action = TripAction(action)
        except ValueError:
            return TokenValidationResult.rejected(RejectionKind.VALIDATION, f"Unknown action: {action}")

        payload = self._open(blob or '')
        if payload is None:
            return self._security_rejection()

        vehicle_key = payload['vehicle_id']
        with vehicle_token_locks.hold(vehicle_key):
            if now > payload['expires_at']:
                logger.warning(f"Access token rejected for vehicle {vehicle_key}: payload expired")
                return self._security_rejection()

            entry = cache.get(self._cache_key(vehicle_key))
            if not entry:
                logger.warning(f"Access token rejected for vehicle {vehicle_key}: no live token")
                return self._security_rejection()

            if not hmac.compare_digest(entry['token'], payload['token']):
                logger.warning(f"Access token rejected for vehicle {vehicle_key}: token was rotated")
                return self._security_rejection()

            if now > entry['expires_at']:
                logger.warning(f"Access token rejected for vehicle {vehicle_key}: live token expired")
                return self._security_rejection()

        # Reservation and membership lookups run outside the token lock
        return self._authorize(uuid.UUID(vehicle_key), action, requesting_user_id, now)

    def _authorize(self, vehicle_id, action: TripAction, user_id, now: datetime) -> TokenValidationResult:
        options = self.options

        if action == TripAction.CHECKOUT:
            reservation = Reservation.objects.filter(
                vehicle_id=vehicle_id,
                owner_id=user_id,
                status=Reservation.Status.CONFIRMED,
                start_at__gte=now - timedelta(minutes=options.checkout_grace_minutes),
                start_at__lte=now + timedelta(minutes=options.checkout_lead_minutes),
            ).order_by('start_at').first()
        else:
            reservation = Reservation.objects.filter(
                vehicle_id=vehicle_id,
                owner_id=user_id,
                status=Reservation.Status.CHECKED_OUT,
                start_at__lte=now,
            ).order_by('start_at').first()

        if reservation is None:
            return TokenValidationResult.rejected(
                RejectionKind.AUTHORIZATION,
                f"No reservation allows {action.value} of this vehicle at this time"
            )

        if self._directory().get_membership(reservation.group_id, user_id) is None:
            return TokenValidationResult.rejected(
                RejectionKind.AUTHORIZATION,
                "User no longer has access to this vehicle's group"
            )

        if action == TripAction.CHECKOUT:
            authorization = TripAuthorization(
                reservation=reservation,
                action=action,
                validated_at=now,
                window_start=reservation.start_at - timedelta(minutes=options.checkout_lead_minutes),
                window_end=reservation.start_at + timedelta(minutes=options.checkout_grace_minutes),
            )
        else:
            deadline = reservation.end_at + timedelta(minutes=options.checkin_grace_minutes)
            authorization = TripAuthorization(
                reservation=reservation,
                action=action,
                validated_at=now,
                window_start=reservation.start_at,
                window_end=deadline,
                checkin_deadline=deadline,
                is_overdue=now > deadline,
            )

        logger.info(f"Access token accepted for {action.value} of reservation {reservation.id}")
        return TokenValidationResult.accepted(authorization)

    def _security_rejection(self) -> TokenValidationResult:
        return TokenValidationResult.rejected(RejectionKind.SECURITY, GENERIC_REJECTION)


def to_data_url(image_bytes: bytes) -> str:
    return f"data:image/png;base64,{base64.b64encode(image_bytes).decode('ascii')}"
