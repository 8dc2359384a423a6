# services/booking-service/src/config/settings/test.py
"""
Test Settings

Django settings for running tests.
"""

import os
import tempfile

from .base import *

# Test mode
DEBUG = False
TESTING = True

# File-backed SQLite so threaded commit tests share one database
DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': os.path.join(tempfile.gettempdir(), 'booking-service-test.sqlite3'),
        'OPTIONS': {'timeout': 20},
        'TEST': {
            'NAME': os.path.join(tempfile.gettempdir(), 'booking-service-test.sqlite3'),
        },
    }
}

DB_STATEMENT_TIMEOUT_MS = 0

# Disable password hashers for faster tests
PASSWORD_HASHERS = [
    'django.contrib.auth.hashers.MD5PasswordHasher',
]

# Disable migrations for faster tests
class DisableMigrations:
    def __contains__(self, item):
        return True

    def __getitem__(self, item):
        return None

MIGRATION_MODULES = DisableMigrations()

# Use local memory cache
CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
    },
}

# JWT settings for testing
JWT_SETTINGS = {
    'ALGORITHM': 'HS256',
    'VERIFYING_KEY': 'test-secret-key-for-testing-only',
    'ISSUER': 'identity-service',
}

# Fixed token keys (base64, 32 and 16 bytes)
VEHICLE_ACCESS_TOKENS = {
    **VEHICLE_ACCESS_TOKENS,
    'ENCRYPTION_KEY': 'MDEyMzQ1Njc4OWFiY2RlZjAxMjM0NTY3ODlhYmNkZWY=',
    'SIGNING_KEY': 'c2lnbmluZy1rZXktMTZieQ==',
    'PIXELS_PER_MODULE': 2,
}

LATE_RETURN_FEES = {
    'GRACE_PERIOD_MINUTES': 15,
    'MAX_FEE_AMOUNT': '200.00',
    'DEFAULT_HOURLY_RATE': '0',
    'BANDS': [
        {'FROM_MINUTES': 0, 'TO_MINUTES': 60, 'RATE_PER_HOUR': '10.00', 'LABEL': 'First hour'},
        {'FROM_MINUTES': 60, 'RATE_PER_HOUR': '20.00', 'FLAT_FEE': '5.00', 'LABEL': 'Beyond first hour'},
    ],
}

# Event backend for testing
EVENT_BACKEND = 'log'

# Logging - minimal output during tests
LOGGING = {
    'version': 1,
    'disable_existing_loggers': True,
    'handlers': {
        'null': {
            'class': 'logging.NullHandler',
        },
    },
    'root': {
        'handlers': ['null'],
        'level': 'CRITICAL',
    },
    'loggers': {
        'django': {
            'handlers': ['null'],
            'level': 'CRITICAL',
            'propagate': False,
        },
        'apps': {
            'handlers': ['null'],
            'level': 'CRITICAL',
            'propagate': False,
        },
    },
}

# CORS - allow all for testing
CORS_ALLOW_ALL_ORIGINS = True
