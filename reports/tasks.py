"""
Celery tasks for scheduled reports.

Tasks:
    - generate_daily_sales_report: Ledger-derived summary of one day's sales
    - check_low_stock: Log products under the low-stock threshold
"""
import logging
from datetime import date, timedelta
from decimal import Decimal

from celery import shared_task
from django.conf import settings
from django.utils import timezone

logger = logging.getLogger(__name__)


@shared_task
def generate_daily_sales_report(day: str = None):
    """
    Generate the sales report for ``day`` (ISO date), default yesterday.

    Can be scheduled via Celery Beat for daily execution.
    """
    from django.db.models import Count, Sum
    from ledger.models import MovementEntry
    from ledger.services import day_bounds
    from reports.aggregator import Aggregator

    report_day = date.fromisoformat(day) if day else timezone.localdate() - timedelta(days=1)
    start, end = day_bounds(report_day)

    sales = MovementEntry.objects.outgoing().between(start, end)
    counts = sales.aggregate(
        bills=Count('bill', distinct=True),
        movements=Count('id'),
        units=Sum('quantity'),
    )
    revenue = Aggregator(settings.LOW_STOCK_THRESHOLD).revenue_for_day(report_day)

    stats = {
        'date': report_day.isoformat(),
        'total_orders': counts['bills'],
        'total_movements': counts['movements'],
        'total_items_sold': counts['units'] or 0,
        'total_revenue': str(revenue.quantize(Decimal('0.01'))),
    }

    report = f"""
    ===============================================
    DAILY SALES REPORT - {report_day}
    ===============================================
    Bills: {stats['total_orders']}
    Lines sold: {stats['total_movements']}
    Units sold: {stats['total_items_sold']}
    Total Revenue: ${stats['total_revenue']}
    ===============================================
    """

    logger.info(report)

    return stats


@shared_task
def check_low_stock():
    """
    Log every product whose on-hand quantity is below the threshold.
    """
    from reports.aggregator import Aggregator

    aggregator = Aggregator(low_stock_threshold=settings.LOW_STOCK_THRESHOLD)
    low = list(aggregator.low_stock_products())

    for product in low:
        logger.warning(
            f"Low stock: {product.name} (#{product.pk}) has {product.quantity} "
            f"units, threshold {aggregator.low_stock_threshold}"
        )

    return {
        'threshold': aggregator.low_stock_threshold,
        'low_stock_count': len(low),
        'product_ids': [product.pk for product in low],
    }
