"""
Shared Validators Module.

Common validation utilities used across all microservices.
"""
import re
from datetime import datetime

from django.core.exceptions import ValidationError


# =============================================================================
# DATE/TIME VALIDATORS
# =============================================================================

def validate_aware_datetime(value: datetime, field_name: str = "datetime") -> datetime:
    """Validate that a datetime carries timezone information."""
    if not isinstance(value, datetime):
        raise ValidationError(f"{field_name} must be a datetime")
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        raise ValidationError(f"{field_name} must be timezone-aware")
    return value


def validate_time_range(
    start: datetime,
    end: datetime,
    field_name: str = "time range"
) -> None:
    """Validate a half-open ``[start, end)`` range with ``start < end``."""
    validate_aware_datetime(start, "start")
    validate_aware_datetime(end, "end")
    if end <= start:
        raise ValidationError(f"End must be after start for {field_name}")


def validate_timezone(value: str, field_name: str = "timezone") -> str:
    """Validate timezone string."""
    import pytz

    try:
        pytz.timezone(value)
        return value
    except pytz.UnknownTimeZoneError:
        raise ValidationError(f"Invalid {field_name}: {value}")


# =============================================================================
# STRING VALIDATORS
# =============================================================================

def validate_hex_color(value: str, field_name: str = "color") -> str:
    """Validate an ``RRGGBB`` color, with or without a leading ``#``."""
    cleaned = (value or '').strip().lstrip('#').upper()
    if not re.match(r'^[0-9A-F]{6}$', cleaned):
        raise ValidationError(f"{field_name} must be a 6-digit hex color")
    return cleaned
