"""Base settings for Booking Service."""
import os
import sys
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent.parent
sys.path.insert(0, str(BASE_DIR.parent.parent.parent))

SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key')
DEBUG = os.environ.get('DEBUG', 'True').lower() == 'true'
ALLOWED_HOSTS = os.environ.get('ALLOWED_HOSTS', '*').split(',')

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'rest_framework',
    'corsheaders',
    'django_filters',
    'apps.core',
    'apps.api',
]

MIDDLEWARE = [
    'corsheaders.middleware.CorsMiddleware',
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
    'shared.common.middleware.RequestIDMiddleware',
    'shared.common.middleware.LoggingMiddleware',
]

ROOT_URLCONF = 'config.urls'
TEMPLATES = [{'BACKEND': 'django.template.backends.django.DjangoTemplates', 'DIRS': [], 'APP_DIRS': True, 'OPTIONS': {'context_processors': ['django.template.context_processors.debug', 'django.template.context_processors.request', 'django.contrib.auth.context_processors.auth', 'django.contrib.messages.context_processors.messages']}}]
WSGI_APPLICATION = 'config.wsgi.application'

# Bounded statement time for reservation writes (PostgreSQL only)
DB_STATEMENT_TIMEOUT_MS = int(os.environ.get('DB_STATEMENT_TIMEOUT_MS', '5000'))

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.postgresql',
        'NAME': os.environ.get('DB_NAME', 'booking_service_db'),
        'USER': os.environ.get('DB_USER', 'booking_service_user'),
        'PASSWORD': os.environ.get('DB_PASSWORD', 'booking_service_password'),
        'HOST': os.environ.get('DB_HOST', 'pgbouncer'),
        'PORT': os.environ.get('DB_PORT', '6432'),
        'OPTIONS': {
            'connect_timeout': int(os.environ.get('DB_CONNECT_TIMEOUT', '5')),
        },
    }
}

AUTH_PASSWORD_VALIDATORS = [{'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'}]
LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True
STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': ['shared.common.authentication.JWTAuthentication'],
    'DEFAULT_PERMISSION_CLASSES': ['rest_framework.permissions.IsAuthenticated'],
    'DEFAULT_PAGINATION_CLASS': 'apps.api.views.pagination.StandardResultsSetPagination',
    'PAGE_SIZE': 20,
    'DEFAULT_FILTER_BACKENDS': ['django_filters.rest_framework.DjangoFilterBackend', 'rest_framework.filters.OrderingFilter'],
    'EXCEPTION_HANDLER': 'shared.common.exceptions.custom_exception_handler',
    # ?format= selects the QR rendition on the access token endpoint
    'URL_FORMAT_OVERRIDE': None,
}

CORS_ALLOW_ALL_ORIGINS = DEBUG
REDIS_URL = os.environ.get('REDIS_URL', 'redis://redis:6379/4')
CACHES = {'default': {'BACKEND': 'django_redis.cache.RedisCache', 'LOCATION': REDIS_URL}}
CELERY_BROKER_URL = os.environ.get('CELERY_BROKER_URL', REDIS_URL)
CELERY_TASK_ACKS_LATE = True

# Events
EVENT_PUBLISHING_ENABLED = os.environ.get('EVENT_PUBLISHING_ENABLED', 'True').lower() == 'true'
EVENT_BACKEND = os.environ.get('EVENT_BACKEND', 'log')
EVENT_WEBHOOK_URL = os.environ.get('EVENT_WEBHOOK_URL')

# Collaborating services
SERVICE_URLS = {
    'vehicle-service': os.environ.get('VEHICLE_SERVICE_URL', 'http://vehicle-service:8000'),
    'group-service': os.environ.get('GROUP_SERVICE_URL', 'http://group-service:8000'),
}
SERVICE_AUTH_TOKEN = os.environ.get('SERVICE_AUTH_TOKEN', '')
SERVICE_CLIENT_TIMEOUT = float(os.environ.get('SERVICE_CLIENT_TIMEOUT', '5'))

JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY', SECRET_KEY)
JWT_SETTINGS = {
    'ALGORITHM': os.environ.get('JWT_ALGORITHM', 'HS256'),
    'VERIFYING_KEY': os.environ.get('JWT_VERIFYING_KEY', JWT_SECRET_KEY),
    'ISSUER': os.environ.get('JWT_ISSUER', 'identity-service'),
}

# Vehicle access tokens (QR)
VEHICLE_ACCESS_TOKENS = {
    'ENCRYPTION_KEY': os.environ.get('VEHICLE_TOKEN_ENCRYPTION_KEY', ''),
    'SIGNING_KEY': os.environ.get('VEHICLE_TOKEN_SIGNING_KEY', ''),
    'EXPIRATION_MINUTES': int(os.environ.get('VEHICLE_TOKEN_EXPIRATION_MINUTES', '60')),
    'CACHE_MINUTES': int(os.environ.get('VEHICLE_TOKEN_CACHE_MINUTES', '30')),
    'CHECKOUT_LEAD_MINUTES': int(os.environ.get('VEHICLE_TOKEN_CHECKOUT_LEAD_MINUTES', '30')),
    'CHECKOUT_GRACE_MINUTES': int(os.environ.get('VEHICLE_TOKEN_CHECKOUT_GRACE_MINUTES', '30')),
    'CHECKIN_GRACE_MINUTES': int(os.environ.get('VEHICLE_TOKEN_CHECKIN_GRACE_MINUTES', '60')),
    'TOKEN_LENGTH': int(os.environ.get('VEHICLE_TOKEN_LENGTH', '16')),
    'PIXELS_PER_MODULE': 10,
    'FOREGROUND_COLOR': '000000',
    'BACKGROUND_COLOR': 'FFFFFF',
    'DRAW_QUIET_ZONES': True,
}

# Late return fees
LATE_RETURN_FEES = {
    'GRACE_PERIOD_MINUTES': int(os.environ.get('LATE_FEE_GRACE_PERIOD_MINUTES', '15')),
    'MAX_FEE_AMOUNT': os.environ.get('LATE_FEE_MAX_AMOUNT', '200.00'),
    'DEFAULT_HOURLY_RATE': os.environ.get('LATE_FEE_DEFAULT_HOURLY_RATE', '0'),
    'BANDS': [
        {'FROM_MINUTES': 0, 'TO_MINUTES': 60, 'RATE_PER_HOUR': '10.00', 'LABEL': 'First hour'},
        {'FROM_MINUTES': 60, 'TO_MINUTES': 180, 'RATE_PER_HOUR': '20.00', 'LABEL': 'Up to three hours'},
        {'FROM_MINUTES': 180, 'RATE_PER_HOUR': '30.00', 'FLAT_FEE': '25.00', 'LABEL': 'Extended'},
    ],
}

EMERGENCY_BOOKINGS_PER_MONTH = int(os.environ.get('EMERGENCY_BOOKINGS_PER_MONTH', '2'))
RECURRENCE_HORIZON_DAYS = int(os.environ.get('RECURRENCE_HORIZON_DAYS', '28'))

SERVICE_NAME = 'booking-service'
SERVICE_PORT = 8005

LOGGING = {'version': 1, 'disable_existing_loggers': False, 'formatters': {'json': {'()': 'pythonjsonlogger.jsonlogger.JsonFormatter'}}, 'handlers': {'console': {'class': 'logging.StreamHandler', 'formatter': 'json'}}, 'root': {'handlers': ['console'], 'level': 'INFO'}}
