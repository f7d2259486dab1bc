"""
Read-side statistics derived from the catalog and the stock movement ledger.

Revenue always comes from OUT movements (quantity * unit_price recorded at
sale time). Bills are never read here.
"""
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List, Optional

from django.db.models import Count, DecimalField, F, Sum
from django.db.models.functions import TruncDate
from django.utils import timezone

from catalog.models import Product
from ledger.models import MovementEntry
from ledger.services import day_bounds

ZERO = Decimal('0.00')

MONEY = DecimalField(max_digits=14, decimal_places=2)


def revenue_expression():
    return Sum(F('quantity') * F('unit_price'), output_field=MONEY)


class Aggregator:
    """
    Point-in-time dashboard and report computations.

    Args:
        low_stock_threshold: Products with quantity below this are low stock
    """

    def __init__(self, low_stock_threshold: int = 5):
        if low_stock_threshold < 0:
            raise ValueError("low_stock_threshold must be >= 0")
        self.low_stock_threshold = low_stock_threshold

    # -- catalog ---------------------------------------------------------

    def total_products(self) -> int:
        return Product.objects.count()

    def total_stock_value(self) -> Decimal:
        value = Product.objects.aggregate(
            value=Sum(F('price') * F('quantity'), output_field=MONEY)
        )['value']
        return value or ZERO

    def low_stock_count(self) -> int:
        return Product.objects.filter(quantity__lt=self.low_stock_threshold).count()

    def low_stock_products(self):
        return Product.objects.select_related('category').filter(
            quantity__lt=self.low_stock_threshold
        ).order_by('quantity', 'name')

    def category_distribution(self) -> Dict[str, int]:
        rows = Product.objects.values('category__name').annotate(
            count=Count('id')
        ).order_by('category__name')
        return {row['category__name']: row['count'] for row in rows}

    # -- ledger ----------------------------------------------------------

    def _sales(self):
        return MovementEntry.objects.outgoing()

    def revenue_for_day(self, day: date) -> Decimal:
        start, end = day_bounds(day)
        revenue = self._sales().between(start, end).aggregate(
            revenue=revenue_expression()
        )['revenue']
        return revenue or ZERO

    def todays_revenue(self, today: Optional[date] = None) -> Decimal:
        return self.revenue_for_day(today or timezone.localdate())

    def _daily_rows(self, start=None, end=None):
        return (
            self._sales()
            .between(start, end)
            .annotate(day=TruncDate('created_at'))
            .values('day')
            .annotate(
                movements=Count('id'),
                orders=Count('bill', distinct=True),
                revenue=revenue_expression(),
                items=Sum('quantity'),
            )
            .order_by('day')
        )

    def last_7_days_series(self, today: Optional[date] = None) -> List[Dict]:
        """
        One entry per calendar day for the 7 days ending ``today``,
        oldest first, with zero entries for days without sales.
        """
        today = today or timezone.localdate()
        first_day = today - timedelta(days=6)
        start, _ = day_bounds(first_day)
        _, end = day_bounds(today)

        by_day = {row['day']: row for row in self._daily_rows(start, end)}

        series = []
        for offset in range(7):
            day = first_day + timedelta(days=offset)
            row = by_day.get(day)
            series.append({
                'date': day.isoformat(),
                'sales': row['movements'] if row else 0,
                'revenue': (row['revenue'] or ZERO) if row else ZERO,
            })
        return series

    def top_sellers(self, limit: int = 5) -> List[Dict]:
        """Products by total units sold, descending; ties by product id."""
        if limit < 0:
            raise ValueError("limit must be >= 0")
        rows = (
            self._sales()
            .values('product_id', 'product__name')
            .annotate(total_sold=Sum('quantity'))
            .order_by('-total_sold', 'product_id')[:limit]
        )
        return [
            {
                'product_id': row['product_id'],
                'name': row['product__name'],
                'total_sold': row['total_sold'],
            }
            for row in rows
        ]

    def daily_report(self) -> List[Dict]:
        """Revenue, distinct bills and units sold per day, most recent first."""
        rows = self._daily_rows().order_by('-day')
        return [
            {
                'date': row['day'].isoformat(),
                'total_orders': row['orders'],
                'total_revenue': row['revenue'] or ZERO,
                'total_items_sold': row['items'] or 0,
            }
            for row in rows
        ]

    # -- bundles ---------------------------------------------------------

    def get_stats(self, today: Optional[date] = None) -> Dict:
        today = today or timezone.localdate()
        return {
            'total_products': self.total_products(),
            'total_stock_value': self.total_stock_value(),
            'low_stock_count': self.low_stock_count(),
            'todays_revenue': self.todays_revenue(today),
            'category_distribution': self.category_distribution(),
            'last_7_days': self.last_7_days_series(today),
            'top_sellers': self.top_sellers(),
        }
