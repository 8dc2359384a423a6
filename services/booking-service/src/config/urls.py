# services/booking-service/src/config/urls.py
"""
URL configuration for Booking Service
"""

from django.contrib import admin
from django.urls import path, include
from django.http import JsonResponse


def health_check(request):
    return JsonResponse({'status': 'ok', 'service': 'booking-service'})


def readiness_check(request):
    from django.core.cache import cache
    from django.db import connection
    try:
        with connection.cursor() as cursor:
            cursor.execute('SELECT 1')
        cache.get('readiness-check')
        return JsonResponse({'status': 'ready', 'service': 'booking-service'})
    except Exception as e:
        return JsonResponse({'status': 'not_ready', 'error': str(e)}, status=503)


urlpatterns = [
    path('admin/', admin.site.urls),
    path('health/', health_check, name='health_check'),
    path('ready/', readiness_check, name='readiness_check'),
    path('api/v1/bookings/', include('apps.api.urls', namespace='api')),
]
