"""
Report API Views.

Implements:
- GET /stats/ - Dashboard statistics
- GET /reports/daily/ - Sales per day, newest first (admin)
- GET /reports/export/ - CSV export of ledger movements (admin, rate limited)
"""
from django.conf import settings
from django.http import StreamingHttpResponse
from django.utils import timezone
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView

from core.rate_limiting import RateLimitMixin
from ledger import services as ledger
from ledger.views import parse_date_range, parse_direction
from .aggregator import Aggregator
from .exports import export_movements_csv


def get_aggregator() -> Aggregator:
    return Aggregator(low_stock_threshold=settings.LOW_STOCK_THRESHOLD)


class StatsView(APIView):
    """
    GET: Dashboard statistics derived from the catalog and the ledger.
    """

    def get(self, request):
        return Response(get_aggregator().get_stats())


class DailyReportView(APIView):
    """
    GET: Revenue, bill count and units sold per calendar day.
    """
    permission_classes = [IsAdminUser]

    def get(self, request):
        return Response(get_aggregator().daily_report())


class MovementExportView(RateLimitMixin, APIView):
    """
    GET: Stream ledger movements as CSV.

    Query Parameters:
        - direction: OUT (default), IN or ALL
        - start / end: Date range (YYYY-MM-DD, inclusive)

    Columns: Date, Product, Quantity, Unit Price, Total, Actor
    """
    permission_classes = [IsAdminUser]
    rate_limit_max_requests = 5
    rate_limit_window_seconds = 60

    def get(self, request):
        params = request.query_params
        start, end = parse_date_range(params)
        movements = ledger.query(
            start=start,
            end=end,
            direction=parse_direction(params, default='OUT'),
        )

        filename = f"movements_{timezone.localdate().isoformat()}.csv"
        response = StreamingHttpResponse(
            export_movements_csv(movements.iterator()),
            content_type='text/csv'
        )
        response['Content-Disposition'] = f'attachment; filename="{filename}"'
        return response
