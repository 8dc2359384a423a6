# services/booking-service/src/config/celery.py
"""
Celery application for the booking service.
"""

import os

from celery import Celery
from celery.schedules import crontab

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings.base')

app = Celery('booking_service')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()

app.conf.beat_schedule = {
    'expand-recurring-reservations': {
        'task': 'apps.core.tasks.expand_recurring_reservations',
        'schedule': crontab(hour=2, minute=0),
    },
}
