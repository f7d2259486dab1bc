"""
URL configuration for the retail stock and point-of-sale service.
"""
import logging

from django.contrib import admin
from django.db import DatabaseError, connection
from django.http import JsonResponse
from django.urls import path, include

logger = logging.getLogger(__name__)


def health_check(request):
    """Liveness plus a database round trip, for container orchestration."""
    try:
        connection.ensure_connection()
    except DatabaseError as e:
        logger.error(f"Health check failed: {e}")
        return JsonResponse({'status': 'unhealthy', 'database': 'unavailable'}, status=503)
    return JsonResponse({'status': 'healthy', 'service': 'retail-pos-api', 'database': 'ok'})


urlpatterns = [
    path('admin/', admin.site.urls),
    path('health/', health_check, name='health-check'),
    path('api/', include('catalog.urls')),
    path('api/', include('ledger.urls')),
    path('api/', include('billing.urls')),
    path('api/', include('reports.urls')),
]
