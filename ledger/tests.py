"""
Tests for the stock movement ledger.

Test Cases:
1. Append validates direction and quantity
2. Entries cannot be updated or deleted
3. Query ordering, range and filters
4. Conservation: opening stock + IN - OUT == on-hand quantity
"""
from datetime import date, datetime, timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from billing.services import checkout
from catalog.models import Category, Product
from catalog.services import restock
from core.exceptions import ImmutableMovementError, InsufficientStockError, InvalidQuantityError
from .models import MovementEntry
from .services import append, day_bounds, net_change, query

User = get_user_model()


def aware(year, month, day, hour=12):
    return timezone.make_aware(datetime(year, month, day, hour))


class AppendTestCase(TestCase):

    def setUp(self):
        self.user = User.objects.create_user(username='keeper', password='pass')
        category = Category.objects.create(name='Ledger')
        self.product = Product.objects.create(
            name='Ledger Item', category=category, price=Decimal('3.00'), quantity=10
        )

    def test_append_defaults(self):
        entry = append(self.product, MovementEntry.Direction.IN, 4, self.user)

        self.assertEqual(entry.unit_price, Decimal('3.00'))
        self.assertEqual(entry.remark, '')
        self.assertIsNone(entry.bill)
        self.assertEqual(entry.total, Decimal('12.00'))
        self.assertEqual(entry.signed_quantity, 4)
        self.assertIsNotNone(entry.created_at)

    def test_append_does_not_touch_stock(self):
        append(self.product, MovementEntry.Direction.OUT, 4, self.user, unit_price=Decimal('2.50'))

        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 10)
        entry = MovementEntry.objects.get()
        self.assertEqual(entry.signed_quantity, -4)
        self.assertEqual(entry.total, Decimal('10.00'))

    def test_append_rejects_bad_input(self):
        for quantity in (0, -1, 2.5, True):
            with self.assertRaises(InvalidQuantityError):
                append(self.product, MovementEntry.Direction.IN, quantity, self.user)

        with self.assertRaises(ValueError):
            append(self.product, 'SIDEWAYS', 1, self.user)

        self.assertFalse(MovementEntry.objects.exists())


class ImmutabilityTestCase(TestCase):

    def setUp(self):
        self.user = User.objects.create_user(username='keeper', password='pass')
        category = Category.objects.create(name='Immutable')
        self.product = Product.objects.create(
            name='Fixed Item', category=category, price=Decimal('1.00'), quantity=0
        )
        self.entry = append(self.product, MovementEntry.Direction.IN, 5, self.user, remark='Delivery')

    def test_save_existing_entry_rejected(self):
        self.entry.quantity = 50

        with self.assertRaises(ImmutableMovementError):
            self.entry.save()

        self.assertEqual(MovementEntry.objects.get(pk=self.entry.pk).quantity, 5)

    def test_delete_rejected(self):
        with self.assertRaises(ImmutableMovementError):
            self.entry.delete()
        with self.assertRaises(ImmutableMovementError):
            MovementEntry.objects.filter(pk=self.entry.pk).delete()
        with self.assertRaises(ImmutableMovementError):
            MovementEntry.objects.all().update(remark='rewritten')

        self.assertEqual(MovementEntry.objects.get().remark, 'Delivery')

    def test_product_with_history_is_protected(self):
        from django.db.models import ProtectedError

        with self.assertRaises(ProtectedError):
            self.product.delete()


class QueryTestCase(TestCase):

    def setUp(self):
        self.user = User.objects.create_user(username='auditor', password='pass')
        category = Category.objects.create(name='Query')
        self.apple = Product.objects.create(
            name='Apple', category=category, price=Decimal('1.00'), quantity=100
        )
        self.pear = Product.objects.create(
            name='Pear', category=category, price=Decimal('2.00'), quantity=100
        )
        self.entries = [
            self._entry(self.apple, 'IN', 10, aware(2024, 3, 1, 9)),
            self._entry(self.pear, 'OUT', 2, aware(2024, 3, 2, 15)),
            self._entry(self.apple, 'OUT', 3, aware(2024, 3, 2, 10)),
            self._entry(self.pear, 'IN', 7, aware(2024, 3, 4, 8)),
        ]

    def _entry(self, product, direction, quantity, created_at):
        return MovementEntry.objects.create(
            product=product,
            direction=direction,
            quantity=quantity,
            unit_price=product.price,
            actor=self.user,
            created_at=created_at,
        )

    def test_ordered_by_timestamp(self):
        ids = [entry.id for entry in query()]

        self.assertEqual(ids, [self.entries[i].id for i in (0, 2, 1, 3)])

    def test_range_is_half_open(self):
        start, _ = day_bounds(date(2024, 3, 2))
        end = aware(2024, 3, 4, 8)

        ids = [entry.id for entry in query(start=start, end=end)]

        self.assertEqual(ids, [self.entries[2].id, self.entries[1].id])

    def test_filters(self):
        self.assertEqual(
            [e.id for e in query(product=self.apple)],
            [self.entries[0].id, self.entries[2].id]
        )
        self.assertEqual(
            [e.id for e in query(direction=MovementEntry.Direction.IN)],
            [self.entries[0].id, self.entries[3].id]
        )
        self.assertEqual(
            [e.id for e in query(product=self.pear.id, direction='OUT')],
            [self.entries[1].id]
        )

    def test_query_can_be_reiterated(self):
        movements = query()

        first = [entry.id for entry in movements]
        self._entry(self.apple, 'OUT', 1, aware(2024, 3, 5))
        second = [entry.id for entry in movements.all()]

        self.assertEqual(len(first), 4)
        self.assertEqual(second[:4], first)
        self.assertEqual(len(second), 5)

    def test_day_bounds(self):
        start, end = day_bounds(date(2024, 3, 2))

        self.assertEqual(end - start, timedelta(days=1))
        self.assertEqual(timezone.localtime(start).date(), date(2024, 3, 2))
        self.assertEqual(timezone.localtime(start).hour, 0)


class ConservationTestCase(TestCase):
    """
    Given: A product with an opening quantity
    When: Any sequence of restocks and checkouts runs
    Then: opening + sum(IN) - sum(OUT) equals the on-hand quantity
    """

    def test_conservation(self):
        user = User.objects.create_user(username='ops', password='pass', is_staff=True)
        category = Category.objects.create(name='Conservation')
        product = Product.objects.create(
            name='Counted', category=category, price=Decimal('9.99'), quantity=7
        )
        opening = product.quantity

        restock(product.id, 5, user)
        checkout([{'product_id': product.id, 'quantity': 4}], user)
        checkout([{'product_id': product.id, 'quantity': 8}], user)
        with self.assertRaises(InsufficientStockError):
            checkout([{'product_id': product.id, 'quantity': 1}], user)
        restock(product.id, 3, user)
        checkout([{'product_id': product.id, 'quantity': 2}], user)

        product.refresh_from_db()
        self.assertEqual(product.quantity, 1)
        self.assertEqual(opening + net_change(product), product.quantity)
        self.assertEqual(MovementEntry.objects.filter(product=product).count(), 5)


class MovementAPITestCase(APITestCase):

    def setUp(self):
        self.user = User.objects.create_user(username='viewer', password='pass', is_staff=True)
        self.client.force_authenticate(self.user)
        category = Category.objects.create(name='API Ledger')
        self.product = Product.objects.create(
            name='Tracked', category=category, price=Decimal('6.00'), quantity=10
        )
        restock(self.product.id, 5, self.user)
        checkout([{'product_id': self.product.id, 'quantity': 3}], self.user)

    def test_list_movements(self):
        response = self.client.get(reverse('ledger:movement-list'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        results = response.data['results']
        self.assertEqual([m['direction'] for m in results], ['IN', 'OUT'])
        self.assertEqual(results[0]['remark'], 'Manual Restock')
        self.assertEqual(results[1]['product_name'], 'Tracked')
        self.assertEqual(results[1]['actor'], 'viewer')
        self.assertEqual(Decimal(results[1]['total']), Decimal('18.00'))

    def test_filter_by_direction(self):
        response = self.client.get(reverse('ledger:movement-list'), {'direction': 'out'})

        self.assertEqual(len(response.data['results']), 1)
        self.assertEqual(response.data['results'][0]['quantity'], 3)

    def test_filter_by_date(self):
        today = timezone.localdate()
        url = reverse('ledger:movement-list')

        response = self.client.get(url, {'start': today.isoformat(), 'end': today.isoformat()})
        self.assertEqual(len(response.data['results']), 2)

        tomorrow = today + timedelta(days=1)
        response = self.client.get(url, {'start': tomorrow.isoformat()})
        self.assertEqual(len(response.data['results']), 0)

    def test_invalid_filters(self):
        url = reverse('ledger:movement-list')

        for params in ({'direction': 'SIDEWAYS'}, {'start': '03/02/2024'}, {'product_id': 'abc'}):
            response = self.client.get(url, params)
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, params)

    def test_product_movements(self):
        response = self.client.get(reverse('ledger:product-movements', args=[self.product.id]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 2)

        response = self.client.get(reverse('ledger:product-movements', args=[99999]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
