"""
Tests for catalog stock primitives, restock and catalog API.
"""
from decimal import Decimal
from io import StringIO
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.db import DatabaseError
from django.urls import reverse
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APITestCase

from core.exceptions import (
    InsufficientStockError,
    InvalidQuantityError,
    ProductNotFoundError,
    StorageError,
)
from ledger.models import MovementEntry
from billing.services import checkout
from .models import Category, Product
from .services import get_product, increase, restock, try_reserve

User = get_user_model()


class StockPrimitiveTestCase(TestCase):
    """try_reserve / increase / get_product."""

    def setUp(self):
        self.category = Category.objects.create(name='Primitives')
        self.product = Product.objects.create(
            name='Widget', category=self.category, price=Decimal('4.00'), quantity=10
        )

    def test_get_product(self):
        self.assertEqual(get_product(self.product.id), self.product)

        for bad_id in (99999, 'abc', None):
            with self.assertRaises(ProductNotFoundError):
                get_product(bad_id)

    def test_try_reserve_decrements(self):
        price = try_reserve(self.product, 4)

        self.assertEqual(price, Decimal('4.00'))
        self.assertEqual(self.product.quantity, 6)
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 6)

    def test_try_reserve_insufficient(self):
        """
        Given: A stale in-memory product that still shows 10 units
        When: Another writer has already taken 8 units
        Then: The guarded update refuses and reports the real stock
        """
        Product.objects.filter(pk=self.product.pk).update(quantity=2)

        with self.assertRaises(InsufficientStockError) as context:
            try_reserve(self.product, 3)

        self.assertEqual(context.exception.available, 2)
        self.assertEqual(context.exception.requested, 3)
        self.assertEqual(Product.objects.get(pk=self.product.pk).quantity, 2)

    def test_try_reserve_invalid_quantity(self):
        for quantity in (0, -2, True):
            with self.assertRaises(InvalidQuantityError):
                try_reserve(self.product, quantity)

        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 10)

    def test_increase(self):
        self.assertEqual(increase(self.product.id, 5), 15)

        with self.assertRaises(ProductNotFoundError):
            increase(99999, 5)
        with self.assertRaises(InvalidQuantityError):
            increase(self.product.id, 0)

    def test_product_properties(self):
        self.assertEqual(self.product.stock_value, Decimal('40.00'))
        self.assertFalse(self.product.is_out_of_stock)
        self.assertFalse(self.product.is_low_stock(5))
        self.assertTrue(self.product.is_low_stock(11))


class RestockTestCase(TestCase):
    """Restock updates stock and the ledger together."""

    def setUp(self):
        self.admin = User.objects.create_user(username='manager', password='pass', is_staff=True)
        self.category = Category.objects.create(name='Restock')
        self.product = Product.objects.create(
            name='Gadget', category=self.category, price=Decimal('12.00'), quantity=10
        )

    def test_restock_records_in_entry(self):
        """
        Given: P with quantity 10
        When: Restocking 20 with no remark
        Then: P has 30 and one IN entry of 20 with remark "Manual Restock"
        """
        product = restock(self.product.id, 20, self.admin)

        self.assertEqual(product.quantity, 30)
        entry = MovementEntry.objects.get(product=self.product)
        self.assertEqual(entry.direction, MovementEntry.Direction.IN)
        self.assertEqual(entry.quantity, 20)
        self.assertEqual(entry.remark, 'Manual Restock')
        self.assertEqual(entry.actor, self.admin)
        self.assertEqual(entry.unit_price, Decimal('12.00'))
        self.assertIsNone(entry.bill)

    def test_restock_custom_remark(self):
        restock(self.product.id, 5, self.admin, remark='Supplier delivery')

        self.assertEqual(MovementEntry.objects.get().remark, 'Supplier delivery')

    def test_restock_rejections_leave_no_trace(self):
        with self.assertRaises(ProductNotFoundError):
            restock(99999, 5, self.admin)
        with self.assertRaises(InvalidQuantityError):
            restock(self.product.id, 0, self.admin)
        with self.assertRaises(InvalidQuantityError):
            restock(self.product.id, -3, self.admin)

        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 10)
        self.assertFalse(MovementEntry.objects.exists())

    def test_restock_then_sell(self):
        restock(self.product.id, 5, self.admin)
        checkout([{'product_id': self.product.id, 'quantity': 15}], self.admin)

        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 0)
        self.assertEqual(MovementEntry.objects.filter(product=self.product).count(), 2)

    def test_storage_failure_during_restock_rolls_back(self):
        """
        Given: P with quantity 10
        When: The ledger write fails after the stock increase
        Then: StorageError, P still has 10 and no entry exists
        """
        with patch('ledger.services.append', side_effect=DatabaseError('disk I/O error')):
            with self.assertRaises(StorageError):
                restock(self.product.id, 20, self.admin)

        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 10)
        self.assertFalse(MovementEntry.objects.exists())


class CatalogAPITestCase(APITestCase):

    def setUp(self):
        self.admin = User.objects.create_user(username='admin', password='pass', is_staff=True)
        self.staff = User.objects.create_user(username='clerk', password='pass')
        self.category = Category.objects.create(name='Electronics')
        self.mouse = Product.objects.create(
            name='Wireless Mouse', category=self.category, price=Decimal('20.00'),
            quantity=10, supplier='Tech Supplies Inc.'
        )
        self.keyboard = Product.objects.create(
            name='Keyboard', category=self.category, price=Decimal('45.00'), quantity=0
        )

    def test_admin_restock(self):
        self.client.force_authenticate(self.admin)
        url = reverse('catalog:product-restock', args=[self.mouse.id])

        response = self.client.post(url, {'quantity': 20, 'remark': ''}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['quantity'], 30)
        self.assertEqual(MovementEntry.objects.get().remark, 'Manual Restock')

    def test_restock_requires_staff(self):
        self.client.force_authenticate(self.staff)
        url = reverse('catalog:product-restock', args=[self.mouse.id])

        response = self.client.post(url, {'quantity': 20}, format='json')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.mouse.refresh_from_db()
        self.assertEqual(self.mouse.quantity, 10)

    def test_restock_errors(self):
        self.client.force_authenticate(self.admin)

        response = self.client.post(
            reverse('catalog:product-restock', args=[99999]), {'quantity': 1}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

        response = self.client.post(
            reverse('catalog:product-restock', args=[self.mouse.id]), {'quantity': 0}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_create_product(self):
        self.client.force_authenticate(self.admin)

        response = self.client.post(reverse('catalog:product-list'), {
            'name': 'Webcam HD',
            'category_id': self.category.id,
            'price': '35.00',
            'quantity': 4,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['quantity'], 4)
        self.assertEqual(response.data['category']['name'], 'Electronics')

    def test_staff_cannot_create_product(self):
        self.client.force_authenticate(self.staff)

        response = self.client.post(reverse('catalog:product-list'), {
            'name': 'Webcam HD', 'category_id': self.category.id, 'price': '35.00',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_quantity_not_editable(self):
        self.client.force_authenticate(self.admin)
        url = reverse('catalog:product-detail', args=[self.mouse.id])

        response = self.client.patch(url, {'quantity': 500}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.patch(url, {'price': '22.50'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        self.mouse.refresh_from_db()
        self.assertEqual(self.mouse.quantity, 10)
        self.assertEqual(self.mouse.price, Decimal('22.50'))

    def test_delete_product_with_history_conflicts(self):
        checkout([{'product_id': self.mouse.id, 'quantity': 1}], self.staff)
        self.client.force_authenticate(self.admin)

        response = self.client.delete(reverse('catalog:product-detail', args=[self.mouse.id]))
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertTrue(Product.objects.filter(pk=self.mouse.id).exists())

        response = self.client.delete(reverse('catalog:product-detail', args=[self.keyboard.id]))
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)

    def test_search(self):
        self.client.force_authenticate(self.staff)
        url = reverse('catalog:product-search')

        response = self.client.get(url, {'q': 'tech'})
        self.assertEqual([p['id'] for p in response.data], [self.mouse.id])

        response = self.client.get(url, {'q': 'electronics', 'in_stock': 'true'})
        self.assertEqual([p['id'] for p in response.data], [self.mouse.id])

        response = self.client.get(url, {'min_price': '30'})
        self.assertEqual([p['id'] for p in response.data], [self.keyboard.id])

    def test_autocomplete(self):
        self.client.force_authenticate(self.staff)
        url = reverse('catalog:product-autocomplete')

        response = self.client.get(url, {'q': 'wi'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([p['name'] for p in response.data], ['Wireless Mouse'])

        response = self.client.get(url, {'q': 'w'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_requires_authentication(self):
        response = self.client.get(reverse('catalog:product-list'))

        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))


class SeedDataCommandTestCase(TestCase):

    def test_seed_data(self):
        call_command('seed_data', products=8, stdout=StringIO())

        self.assertEqual(Product.objects.count(), 8)
        self.assertTrue(User.objects.get(username='admin').is_staff)
        self.assertFalse(User.objects.get(username='staff').is_staff)
        self.assertFalse(MovementEntry.objects.exists())


class HealthCheckTestCase(TestCase):

    def test_health_check(self):
        response = self.client.get('/health/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], 'healthy')
