"""
Tests for ledger-derived statistics, reports and CSV export.
"""
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from billing.services import checkout
from catalog.models import Category, Product
from catalog.services import restock
from ledger.models import MovementEntry
from ledger.services import day_bounds
from .aggregator import Aggregator
from .tasks import check_low_stock, generate_daily_sales_report

User = get_user_model()


def at_noon(day):
    start, _ = day_bounds(day)
    return start + timedelta(hours=12)


class ReportDataMixin:
    """Two categories, four products and a cashier."""

    def create_catalog(self):
        self.user = User.objects.create_user(username='cashier', password='pass', is_staff=True)
        self.drinks = Category.objects.create(name='Drinks')
        self.snacks = Category.objects.create(name='Snacks')
        self.cola = Product.objects.create(
            name='Cola', category=self.drinks, price=Decimal('5.00'), quantity=10
        )
        self.juice = Product.objects.create(
            name='Juice', category=self.drinks, price=Decimal('3.00'), quantity=2
        )
        self.chips = Product.objects.create(
            name='Chips', category=self.snacks, price=Decimal('2.00'), quantity=0
        )
        self.nuts = Product.objects.create(
            name='Nuts', category=self.snacks, price=Decimal('8.00'), quantity=20
        )

    def sale(self, product, quantity, day, bill=None, unit_price=None):
        return MovementEntry.objects.create(
            product=product,
            direction=MovementEntry.Direction.OUT,
            quantity=quantity,
            unit_price=product.price if unit_price is None else unit_price,
            actor=self.user,
            bill=bill,
            created_at=at_noon(day),
        )


class AggregatorTestCase(ReportDataMixin, TestCase):

    def setUp(self):
        self.create_catalog()
        self.aggregator = Aggregator(low_stock_threshold=5)
        self.today = timezone.localdate()

    def test_catalog_statistics(self):
        self.assertEqual(self.aggregator.total_products(), 4)
        # 5*10 + 3*2 + 2*0 + 8*20
        self.assertEqual(self.aggregator.total_stock_value(), Decimal('216.00'))
        self.assertEqual(self.aggregator.low_stock_count(), 2)
        self.assertEqual(
            [p.name for p in self.aggregator.low_stock_products()],
            ['Chips', 'Juice']
        )
        self.assertEqual(self.aggregator.category_distribution(), {'Drinks': 2, 'Snacks': 2})

    def test_low_stock_threshold(self):
        self.assertEqual(Aggregator(low_stock_threshold=0).low_stock_count(), 0)
        self.assertEqual(Aggregator(low_stock_threshold=11).low_stock_count(), 3)

        with self.assertRaises(ValueError):
            Aggregator(low_stock_threshold=-1)

    def test_empty_store(self):
        aggregator = Aggregator()

        self.assertEqual(aggregator.todays_revenue(), Decimal('0.00'))
        self.assertEqual(aggregator.top_sellers(), [])
        self.assertEqual(aggregator.daily_report(), [])
        series = aggregator.last_7_days_series()
        self.assertEqual(len(series), 7)
        self.assertTrue(all(day['sales'] == 0 for day in series))

    def test_stats_after_checkout(self):
        """
        Given: Cola with quantity 10 and price 5.00
        When: 3 units are sold today
        Then: Today's revenue includes 15.00 and Cola is the top seller
        """
        checkout([{'product_id': self.cola.id, 'quantity': 3}], self.user)

        stats = self.aggregator.get_stats()

        self.assertEqual(stats['todays_revenue'], Decimal('15.00'))
        self.assertEqual(stats['top_sellers'][0], {
            'product_id': self.cola.id, 'name': 'Cola', 'total_sold': 3
        })
        self.assertEqual(stats['total_stock_value'], Decimal('201.00'))
        self.assertEqual(stats['last_7_days'][-1]['date'], self.today.isoformat())
        self.assertEqual(stats['last_7_days'][-1]['sales'], 1)

    def test_revenue_uses_sale_time_price(self):
        checkout([{'product_id': self.cola.id, 'quantity': 2}], self.user)
        self.cola.price = Decimal('50.00')
        self.cola.save()

        self.assertEqual(self.aggregator.todays_revenue(), Decimal('10.00'))

    def test_restocks_are_not_revenue(self):
        restock(self.nuts.id, 10, self.user)

        self.assertEqual(self.aggregator.todays_revenue(), Decimal('0.00'))
        self.assertEqual(self.aggregator.top_sellers(), [])

    def test_last_7_days_series(self):
        self.sale(self.cola, 1, self.today)
        self.sale(self.nuts, 2, self.today)
        self.sale(self.juice, 1, self.today - timedelta(days=3))
        self.sale(self.cola, 4, self.today - timedelta(days=6))
        self.sale(self.cola, 9, self.today - timedelta(days=7))  # outside the window

        series = self.aggregator.last_7_days_series(self.today)

        self.assertEqual(
            [day['date'] for day in series],
            [(self.today - timedelta(days=n)).isoformat() for n in range(6, -1, -1)]
        )
        self.assertEqual([day['sales'] for day in series], [1, 0, 0, 1, 0, 0, 2])
        self.assertEqual(series[0]['revenue'], Decimal('20.00'))
        self.assertEqual(series[3]['revenue'], Decimal('3.00'))
        self.assertEqual(series[1]['revenue'], Decimal('0.00'))
        self.assertEqual(series[6]['revenue'], Decimal('21.00'))

    def test_top_sellers_ties_by_product_id(self):
        self.sale(self.nuts, 4, self.today)
        self.sale(self.cola, 3, self.today)
        self.sale(self.cola, 1, self.today - timedelta(days=30))
        self.sale(self.juice, 2, self.today)
        self.sale(self.chips, 5, self.today)

        top = self.aggregator.top_sellers(limit=3)

        self.assertEqual(
            [(row['name'], row['total_sold']) for row in top],
            [('Chips', 5), ('Cola', 4), ('Nuts', 4)]
        )
        self.assertLess(self.cola.id, self.nuts.id)

    def test_top_sellers_rejects_negative_limit(self):
        self.sale(self.cola, 1, self.today)

        with self.assertRaises(ValueError):
            self.aggregator.top_sellers(limit=-1)
        self.assertEqual(self.aggregator.top_sellers(limit=0), [])

    def test_daily_report(self):
        yesterday = self.today - timedelta(days=1)
        first = checkout([
            {'product_id': self.cola.id, 'quantity': 2},
            {'product_id': self.nuts.id, 'quantity': 1},
        ], self.user)
        checkout([{'product_id': self.cola.id, 'quantity': 1}], self.user)
        self.sale(self.juice, 2, yesterday)

        report = self.aggregator.daily_report()

        self.assertEqual([row['date'] for row in report], [self.today.isoformat(), yesterday.isoformat()])
        self.assertEqual(report[0]['total_orders'], 2)
        self.assertEqual(report[0]['total_items_sold'], 4)
        self.assertEqual(report[0]['total_revenue'], first.total_amount + Decimal('5.00'))
        self.assertEqual(report[1]['total_orders'], 0)
        self.assertEqual(report[1]['total_revenue'], Decimal('6.00'))

    def test_stats_are_repeatable(self):
        checkout([{'product_id': self.cola.id, 'quantity': 1}], self.user)

        self.assertEqual(self.aggregator.get_stats(self.today), self.aggregator.get_stats(self.today))


class ReportTaskTestCase(ReportDataMixin, TestCase):

    def setUp(self):
        self.create_catalog()

    def test_daily_sales_report(self):
        day = timezone.localdate() - timedelta(days=2)
        self.sale(self.cola, 2, day)
        self.sale(self.nuts, 1, day, unit_price=Decimal('7.50'))

        stats = generate_daily_sales_report(day.isoformat())

        self.assertEqual(stats, {
            'date': day.isoformat(),
            'total_orders': 0,
            'total_movements': 2,
            'total_items_sold': 3,
            'total_revenue': '17.50',
        })

    def test_daily_sales_report_defaults_to_yesterday(self):
        stats = generate_daily_sales_report.apply().get()

        self.assertEqual(stats['date'], (timezone.localdate() - timedelta(days=1)).isoformat())
        self.assertEqual(stats['total_items_sold'], 0)

    @override_settings(LOW_STOCK_THRESHOLD=3)
    def test_check_low_stock(self):
        result = check_low_stock()

        self.assertEqual(result['threshold'], 3)
        self.assertEqual(result['low_stock_count'], 2)
        self.assertEqual(result['product_ids'], [self.chips.id, self.juice.id])


class ReportAPITestCase(ReportDataMixin, APITestCase):

    def setUp(self):
        self.create_catalog()
        self.clerk = User.objects.create_user(username='clerk', password='pass')

    def test_stats(self):
        self.client.force_authenticate(self.clerk)

        response = self.client.get(reverse('reports:stats'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_products'], 4)
        self.assertEqual(response.data['low_stock_count'], 2)
        self.assertEqual(len(response.data['last_7_days']), 7)

    @override_settings(LOW_STOCK_THRESHOLD=25)
    def test_stats_threshold_from_settings(self):
        self.client.force_authenticate(self.clerk)

        response = self.client.get(reverse('reports:stats'))

        self.assertEqual(response.data['low_stock_count'], 4)

    def test_daily_report_requires_staff(self):
        self.client.force_authenticate(self.clerk)
        self.assertEqual(
            self.client.get(reverse('reports:daily-report')).status_code,
            status.HTTP_403_FORBIDDEN
        )

        self.client.force_authenticate(self.user)
        self.assertEqual(
            self.client.get(reverse('reports:daily-report')).status_code,
            status.HTTP_200_OK
        )

    def test_csv_export(self):
        self.user.first_name = 'Ada'
        self.user.last_name = 'Lovelace'
        self.user.save()
        restock(self.juice.id, 4, self.user)
        checkout([{'product_id': self.cola.id, 'quantity': 3}], self.user)
        self.client.force_authenticate(self.user)

        response = self.client.get(reverse('reports:movement-export'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response['Content-Type'], 'text/csv')
        self.assertIn('attachment; filename="movements_', response['Content-Disposition'])
        lines = b''.join(response.streaming_content).decode('utf-8').splitlines()
        self.assertEqual(lines[0], 'Date,Product,Quantity,Unit Price,Total,Actor')
        self.assertEqual(len(lines), 2)
        self.assertEqual(
            lines[1],
            f"{timezone.localdate().isoformat()},Cola,3,5.00,15.00,Ada Lovelace"
        )

    def test_csv_export_all_directions(self):
        restock(self.juice.id, 4, self.user)
        checkout([{'product_id': self.cola.id, 'quantity': 3}], self.user)
        self.client.force_authenticate(self.user)

        response = self.client.get(reverse('reports:movement-export'), {'direction': 'ALL'})

        lines = b''.join(response.streaming_content).decode('utf-8').splitlines()
        self.assertEqual([line.split(',')[1] for line in lines[1:]], ['Juice', 'Cola'])

    def test_csv_export_requires_staff(self):
        self.client.force_authenticate(self.clerk)

        response = self.client.get(reverse('reports:movement-export'))

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    @override_settings(RATE_LIMIT_ENABLED=True)
    def test_export_limit_counts_authorized_calls_per_user(self):
        """
        Given: The export allows 5 calls per minute
        When: Anonymous and non-staff callers hit it first
        Then: Only the admin's own calls count against the admin's window
        """
        counter = CountingRedis()
        url = reverse('reports:movement-export')

        with patch('core.rate_limiting.get_redis_client', return_value=counter):
            for _ in range(10):
                self.client.get(url)
            self.client.force_authenticate(self.clerk)
            for _ in range(10):
                self.client.get(url)

            self.client.force_authenticate(self.user)
            for _ in range(5):
                response = self.client.get(url)
                self.assertEqual(response.status_code, status.HTTP_200_OK)
                b''.join(response.streaming_content)
            self.assertEqual(response['X-RateLimit-Remaining'], '0')

            response = self.client.get(url)

        self.assertEqual(response.status_code, status.HTTP_429_TOO_MANY_REQUESTS)
        self.assertEqual(response['Retry-After'], '60')
        self.assertEqual(list(counter.counts), [f"rate_limit:MovementExportView:user:{self.user.pk}"])


class CountingRedis:
    """In-process stand-in for the Redis calls made by core.rate_limiting."""

    def __init__(self):
        self.counts = {}

    def incr(self, key):
        self.counts[key] = self.counts.get(key, 0) + 1
        return self.counts[key]

    def expire(self, key, seconds):
        return True

    def ttl(self, key):
        return 60
