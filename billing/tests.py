"""
Tests for checkout transaction logic.

Test Cases:
1. Bill committed with sufficient stock
2. Checkout rejected with insufficient stock
3. No stock deduction or ledger entry on rejection
4. Price snapshot survives later catalog edits
5. Concurrent checkout race condition prevention
6. Bounded retry on lock contention
"""
import threading
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.db import DatabaseError, OperationalError, connection
from django.test import TestCase, TransactionTestCase, override_settings
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from catalog.models import Category, Product
from core.exceptions import (
    CartValidationError,
    ConcurrencyConflictError,
    EmptyCartError,
    InsufficientStockError,
    InvalidPaymentModeError,
    InvalidQuantityError,
    ProductNotFoundError,
    StorageError,
)
from ledger.models import MovementEntry
from billing.models import Bill, BillLine
from billing.services import checkout, list_bills, merge_cart
from billing.tasks import send_bill_receipt

User = get_user_model()


class CheckoutTestCase(TestCase):
    """Test cases for checkout transaction logic."""

    def setUp(self):
        """Set up test data."""
        self.user = User.objects.create_user(username='cashier', password='pass')
        self.category = Category.objects.create(name='Test Category')

        self.product1 = Product.objects.create(
            name='Test Product 1',
            category=self.category,
            price=Decimal('5.00'),
            quantity=10
        )
        self.product2 = Product.objects.create(
            name='Test Product 2',
            category=self.category,
            price=Decimal('25.00'),
            quantity=50
        )
        self.product3 = Product.objects.create(
            name='Test Product 3',
            category=self.category,
            price=Decimal('15.50'),
            quantity=2  # Low stock
        )

    def test_checkout_commits_bill(self):
        """
        Given: P with quantity 10 and price 5.00
        When: Checking out 3 units
        Then: Bill total 15.00, P has 7 left, one OUT entry of 3
        """
        bill = checkout([{'product_id': self.product1.id, 'quantity': 3}], self.user)

        self.assertEqual(bill.lines.count(), 1)
        line = bill.lines.get()
        self.assertEqual(line.amount, Decimal('15.00'))
        self.assertEqual(bill.total_amount, Decimal('15.00'))

        self.product1.refresh_from_db()
        self.assertEqual(self.product1.quantity, 7)

        entries = MovementEntry.objects.filter(product=self.product1)
        self.assertEqual(entries.count(), 1)
        entry = entries.get()
        self.assertEqual(entry.direction, MovementEntry.Direction.OUT)
        self.assertEqual(entry.quantity, 3)
        self.assertEqual(entry.bill, bill)
        self.assertEqual(entry.remark, f"Bill #{bill.id}")
        self.assertEqual(entry.actor, self.user)

    def test_checkout_multiple_lines(self):
        items = [
            {'product_id': self.product1.id, 'quantity': 5},
            {'product_id': self.product2.id, 'quantity': 3}
        ]

        bill = checkout(items, self.user)

        # (5 * 5.00) + (3 * 25.00) = 100.00
        self.assertEqual(bill.total_amount, Decimal('100.00'))
        self.assertEqual(bill.lines.count(), 2)
        self.assertEqual(MovementEntry.objects.filter(bill=bill).count(), 2)

        self.product1.refresh_from_db()
        self.product2.refresh_from_db()
        self.assertEqual(self.product1.quantity, 5)
        self.assertEqual(self.product2.quantity, 47)

    def test_insufficient_stock_rejected(self):
        """
        Given: P with quantity 10
        When: Requesting 15 units
        Then: InsufficientStockError with requested 15, available 10
        """
        with self.assertRaises(InsufficientStockError) as context:
            checkout([{'product_id': self.product1.id, 'quantity': 15}], self.user)

        self.assertEqual(context.exception.product_id, self.product1.id)
        self.assertEqual(context.exception.requested, 15)
        self.assertEqual(context.exception.available, 10)
        self.assertIn('Test Product 1', str(context.exception))

        self.product1.refresh_from_db()
        self.assertEqual(self.product1.quantity, 10)
        self.assertFalse(MovementEntry.objects.exists())
        self.assertFalse(Bill.objects.exists())

    def test_no_partial_effect_on_rejection(self):
        """
        Given: Two valid lines and one short line
        When: Checkout is rejected
        Then: No quantities changed, no ledger entries, no bill
        """
        items = [
            {'product_id': self.product1.id, 'quantity': 5},
            {'product_id': self.product2.id, 'quantity': 10},
            {'product_id': self.product3.id, 'quantity': 20}  # Exceeds available
        ]

        with self.assertRaises(InsufficientStockError) as context:
            checkout(items, self.user)
        self.assertEqual(context.exception.product_id, self.product3.id)

        for product, expected in ((self.product1, 10), (self.product2, 50), (self.product3, 2)):
            product.refresh_from_db()
            self.assertEqual(product.quantity, expected)

        self.assertEqual(MovementEntry.objects.count(), 0)
        self.assertEqual(Bill.objects.count(), 0)
        self.assertEqual(BillLine.objects.count(), 0)

    def test_first_offending_line_reported(self):
        items = [
            {'product_id': self.product3.id, 'quantity': 3},
            {'product_id': self.product1.id, 'quantity': 11},
        ]

        with self.assertRaises(InsufficientStockError) as context:
            checkout(items, self.user)

        self.assertEqual(context.exception.product_id, self.product3.id)

    def test_checkout_with_exact_stock(self):
        checkout([{'product_id': self.product3.id, 'quantity': 2}], self.user)

        self.product3.refresh_from_db()
        self.assertEqual(self.product3.quantity, 0)

    def test_duplicate_lines_are_merged(self):
        items = [
            {'product_id': self.product1.id, 'quantity': 2},
            {'product_id': self.product2.id, 'quantity': 1},
            {'product_id': self.product1.id, 'quantity': 3},
        ]

        bill = checkout(items, self.user)

        self.assertEqual(bill.lines.count(), 2)
        line = bill.lines.get(product=self.product1)
        self.assertEqual(line.quantity, 5)
        self.assertEqual(MovementEntry.objects.filter(product=self.product1).count(), 1)
        self.product1.refresh_from_db()
        self.assertEqual(self.product1.quantity, 5)

    def test_merged_duplicates_checked_against_total(self):
        items = [
            {'product_id': self.product3.id, 'quantity': 1},
            {'product_id': self.product3.id, 'quantity': 2},
        ]

        with self.assertRaises(InsufficientStockError) as context:
            checkout(items, self.user)

        self.assertEqual(context.exception.requested, 3)
        self.assertEqual(context.exception.available, 2)

    def test_empty_cart(self):
        with self.assertRaises(EmptyCartError) as context:
            checkout([], self.user)

        self.assertIn('at least one item', str(context.exception))

    def test_invalid_quantity(self):
        for quantity in (0, -1, 1.5, '2', True):
            with self.assertRaises(InvalidQuantityError):
                checkout([{'product_id': self.product1.id, 'quantity': quantity}], self.user)

        self.assertFalse(MovementEntry.objects.exists())

    def test_malformed_line(self):
        with self.assertRaises(CartValidationError):
            checkout([{'quantity': 1}], self.user)
        with self.assertRaises(CartValidationError):
            checkout([{'product_id': 'abc', 'quantity': 1}], self.user)
        with self.assertRaises(CartValidationError):
            checkout(['not-a-line'], self.user)

    def test_unknown_product_aborts_checkout(self):
        items = [
            {'product_id': self.product1.id, 'quantity': 1},
            {'product_id': 99999, 'quantity': 5}
        ]

        with self.assertRaises(ProductNotFoundError) as context:
            checkout(items, self.user)

        self.assertEqual(context.exception.product_id, 99999)
        self.product1.refresh_from_db()
        self.assertEqual(self.product1.quantity, 10)
        self.assertFalse(MovementEntry.objects.exists())

    def test_defaults_customer_and_payment_mode(self):
        bill = checkout([{'product_id': self.product1.id, 'quantity': 1}], self.user, customer_name='   ')

        self.assertEqual(bill.customer_name, 'Walk-in Customer')
        self.assertEqual(bill.payment_mode, Bill.PaymentMode.CASH)
        self.assertEqual(bill.sold_by, self.user)

    def test_payment_modes(self):
        bill = checkout(
            [{'product_id': self.product1.id, 'quantity': 1}],
            self.user,
            customer_name='Jane',
            payment_mode='UPI'
        )
        self.assertEqual(bill.payment_mode, 'UPI')
        self.assertEqual(bill.customer_name, 'Jane')

        with self.assertRaises(InvalidPaymentModeError):
            checkout([{'product_id': self.product1.id, 'quantity': 1}], self.user, payment_mode='Cheque')

    def test_price_snapshot_survives_price_change(self):
        bill = checkout([{'product_id': self.product2.id, 'quantity': 2}], self.user)

        self.product2.price = Decimal('99.99')
        self.product2.save()

        bill.refresh_from_db()
        line = bill.lines.get()
        self.assertEqual(line.price, Decimal('25.00'))
        self.assertEqual(bill.total_amount, Decimal('50.00'))
        entry = MovementEntry.objects.get(bill=bill)
        self.assertEqual(entry.unit_price, Decimal('25.00'))

    def test_bill_total_matches_lines(self):
        bills = [
            checkout([{'product_id': self.product1.id, 'quantity': 2}], self.user),
            checkout([
                {'product_id': self.product2.id, 'quantity': 4},
                {'product_id': self.product3.id, 'quantity': 1},
            ], self.user),
        ]

        for bill in bills:
            lines = list(bill.lines.all())
            for line in lines:
                self.assertEqual(line.amount, line.price * line.quantity)
            self.assertEqual(bill.total_amount, sum(line.amount for line in lines))

    def test_sequential_checkouts_never_oversell(self):
        """
        Given: 10 units on hand
        When: Two checkouts of 6 units each, one after the other
        Then: First commits, second reports 4 available, 4 units remain
        """
        checkout([{'product_id': self.product1.id, 'quantity': 6}], self.user)

        with self.assertRaises(InsufficientStockError) as context:
            checkout([{'product_id': self.product1.id, 'quantity': 6}], self.user)

        self.assertEqual(context.exception.available, 4)
        self.product1.refresh_from_db()
        self.assertEqual(self.product1.quantity, 4)

    def test_list_bills_newest_first(self):
        first = checkout([{'product_id': self.product1.id, 'quantity': 1}], self.user)
        second = checkout([{'product_id': self.product2.id, 'quantity': 1}], self.user)

        self.assertEqual(list(list_bills()), [second, first])

    def test_merge_cart_preserves_order(self):
        cart = merge_cart([
            {'product_id': 3, 'quantity': 1},
            {'product_id': 1, 'quantity': 2},
            {'product_id': 3, 'quantity': 4},
        ])

        self.assertEqual(list(cart.items()), [(3, 5), (1, 2)])


class CheckoutRetryTestCase(TestCase):
    """Lock contention is retried a bounded number of times."""

    def setUp(self):
        self.user = User.objects.create_user(username='cashier', password='pass')
        category = Category.objects.create(name='Retry Category')
        self.product = Product.objects.create(
            name='Retry Product', category=category, price=Decimal('1.00'), quantity=5
        )
        self.items = [{'product_id': self.product.id, 'quantity': 1}]

    @override_settings(STOCK_MAX_RETRIES=3, STOCK_RETRY_BACKOFF_SECONDS=0)
    def test_contention_exhausts_retries(self):
        with patch('billing.services._lock_products',
                   side_effect=OperationalError('database is locked')) as locked:
            with self.assertRaises(ConcurrencyConflictError) as context:
                checkout(self.items, self.user)

        self.assertEqual(locked.call_count, 3)
        self.assertEqual(context.exception.attempts, 3)

    @override_settings(STOCK_MAX_RETRIES=3, STOCK_RETRY_BACKOFF_SECONDS=0)
    def test_contention_then_success(self):
        from billing import services

        real_lock = services._lock_products
        calls = {'count': 0}

        def flaky_lock(product_ids):
            calls['count'] += 1
            if calls['count'] == 1:
                raise OperationalError('deadlock detected')
            return real_lock(product_ids)

        with patch('billing.services._lock_products', side_effect=flaky_lock):
            bill = checkout(self.items, self.user)

        self.assertEqual(calls['count'], 2)
        self.assertEqual(bill.total_amount, Decimal('1.00'))
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 4)

    def test_other_database_errors_are_storage_errors(self):
        with patch('billing.services._lock_products',
                   side_effect=OperationalError('server closed the connection unexpectedly')):
            with self.assertRaises(StorageError):
                checkout(self.items, self.user)

    def test_storage_failure_mid_checkout_leaves_no_trace(self):
        """
        Given: A two-line cart
        When: The database fails while recording the second line
        Then: StorageError, and no stock change, ledger entry or bill survives
        """
        from ledger import services as ledger

        other = Product.objects.create(
            name='Second Product', category=self.product.category,
            price=Decimal('2.00'), quantity=10
        )
        real_append = ledger.append
        calls = {'count': 0}

        def failing_append(*args, **kwargs):
            calls['count'] += 1
            if calls['count'] == 2:
                raise DatabaseError('disk I/O error')
            return real_append(*args, **kwargs)

        items = [
            {'product_id': self.product.id, 'quantity': 2},
            {'product_id': other.id, 'quantity': 3},
        ]
        with patch('ledger.services.append', side_effect=failing_append):
            with self.assertRaises(StorageError):
                checkout(items, self.user)

        self.assertEqual(calls['count'], 2)
        self.product.refresh_from_db()
        other.refresh_from_db()
        self.assertEqual(self.product.quantity, 5)
        self.assertEqual(other.quantity, 10)
        self.assertEqual(MovementEntry.objects.count(), 0)
        self.assertEqual(Bill.objects.count(), 0)
        self.assertEqual(BillLine.objects.count(), 0)


class ConcurrentCheckoutTestCase(TransactionTestCase):
    """
    Test concurrent checkout handling.
    Uses TransactionTestCase for proper multi-threading support.
    """

    def setUp(self):
        """Set up test data for concurrent testing."""
        self.user = User.objects.create_user(username='racer', password='pass')
        self.category = Category.objects.create(name='Concurrent Test Category')
        # Only 10 units available
        self.product = Product.objects.create(
            name='Limited Stock Product',
            category=self.category,
            price=Decimal('50.00'),
            quantity=10
        )

    def run_concurrently(self, count, quantity):
        """Start ``count`` checkouts of ``quantity`` units at the same moment."""
        results = {}
        barrier = threading.Barrier(count)

        def place_checkout(key):
            try:
                barrier.wait()
                checkout([{'product_id': self.product.id, 'quantity': quantity}], self.user)
                results[key] = 'committed'
            except InsufficientStockError as e:
                results[key] = ('insufficient', e.available)
            except Exception as e:
                results[key] = ('error', repr(e))
            finally:
                connection.close()

        threads = [
            threading.Thread(target=place_checkout, args=(f'checkout{i}',))
            for i in range(count)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(len(results), count)
        return list(results.values())

    def assert_ledger_matches_stock(self, committed, quantity):
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 10 - quantity * committed)

        sold = sum(
            entry.quantity
            for entry in MovementEntry.objects.filter(product=self.product, direction='OUT')
        )
        self.assertEqual(sold, quantity * committed)
        self.assertEqual(Bill.objects.count(), committed)

    def test_concurrent_checkouts_no_overselling(self):
        """
        Given: 10 units in stock
        When: Two concurrent checkouts of 6 units each
        Then: Exactly one commits; the other sees 4 available
        """
        outcomes = self.run_concurrently(2, 6)

        self.assertEqual(outcomes.count('committed'), 1, outcomes)
        self.assertIn(('insufficient', 4), outcomes)
        self.assert_ledger_matches_stock(1, 6)

    def test_many_concurrent_checkouts_drain_stock(self):
        """
        Given: 10 units in stock
        When: Eight concurrent checkouts of 2 units each
        Then: Five commit, the other three are rejected as out of stock
        """
        outcomes = self.run_concurrently(8, 2)

        self.assertEqual(outcomes.count('committed'), 5, outcomes)
        rejected = [outcome for outcome in outcomes if outcome != 'committed']
        self.assertEqual(rejected, [('insufficient', 0)] * 3)
        self.assert_ledger_matches_stock(5, 2)


class BillModelTestCase(TestCase):
    """Test cases for Bill model properties."""

    def setUp(self):
        self.user = User.objects.create_user(username='model', password='pass')

    def test_bill_defaults(self):
        bill = Bill.objects.create(sold_by=self.user)

        self.assertEqual(bill.customer_name, 'Walk-in Customer')
        self.assertEqual(bill.payment_mode, 'Cash')
        self.assertEqual(bill.total_amount, Decimal('0.00'))
        self.assertEqual(bill.reference, f"Bill #{bill.id}")
        self.assertEqual(bill.item_count, 0)


class ReceiptTaskTestCase(TestCase):

    def setUp(self):
        self.user = User.objects.create_user(username='cashier', password='pass')
        category = Category.objects.create(name='Receipt Category')
        self.product = Product.objects.create(
            name='Receipt Product', category=category, price=Decimal('2.50'), quantity=4
        )

    def test_receipt_rendered(self):
        bill = checkout([{'product_id': self.product.id, 'quantity': 2}], self.user, customer_name='Ann')

        result = send_bill_receipt.apply(args=[bill.id]).get()

        self.assertEqual(result['status'], 'success')
        self.assertIn(f"Bill #{bill.id}", result['receipt'])
        self.assertIn('2x Receipt Product', result['receipt'])
        self.assertIn('Total: $5.00', result['receipt'])

    def test_receipt_for_missing_bill(self):
        result = send_bill_receipt.apply(args=[424242]).get()

        self.assertEqual(result['status'], 'error')

    def test_receipt_queued_after_commit(self):
        with patch('billing.tasks.send_bill_receipt.delay') as delay:
            with self.captureOnCommitCallbacks(execute=True):
                bill = checkout([{'product_id': self.product.id, 'quantity': 1}], self.user)

        delay.assert_called_once_with(bill.id)


class CheckoutAPITestCase(APITestCase):
    """HTTP contract of POST/GET /api/bills/."""

    def setUp(self):
        self.user = User.objects.create_user(username='staff', password='pass')
        self.client.force_authenticate(self.user)
        category = Category.objects.create(name='API Category')
        self.product = Product.objects.create(
            name='API Product', category=category, price=Decimal('5.00'), quantity=10
        )
        self.url = reverse('billing:bill-list')

    def test_checkout_created(self):
        response = self.client.post(self.url, {
            'customer_name': 'Jane',
            'payment_mode': 'Card',
            'items': [{'product_id': self.product.id, 'quantity': 3}]
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Decimal(response.data['total_amount']), Decimal('15.00'))
        self.assertEqual(response.data['payment_mode'], 'Card')
        self.assertEqual(len(response.data['lines']), 1)
        self.assertEqual(response.data['sold_by'], 'staff')

    def test_checkout_insufficient_stock(self):
        response = self.client.post(self.url, {
            'items': [{'product_id': self.product.id, 'quantity': 15}]
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Insufficient Stock')
        self.assertEqual(response.data['requested'], 15)
        self.assertEqual(response.data['available'], 10)
        self.assertIn('requested 15, available 10', response.data['detail'])

    def test_checkout_unknown_product(self):
        response = self.client.post(self.url, {
            'items': [{'product_id': 99999, 'quantity': 1}]
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['product_id'], 99999)

    def test_checkout_validation(self):
        for payload in (
            {'items': []},
            {'items': [{'product_id': self.product.id, 'quantity': 0}]},
            {'items': [{'product_id': self.product.id, 'quantity': 1}], 'payment_mode': 'Cheque'},
            {},
        ):
            response = self.client.post(self.url, payload, format='json')
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, payload)

        self.assertFalse(Bill.objects.exists())

    def test_list_bills(self):
        self.client.post(self.url, {
            'items': [{'product_id': self.product.id, 'quantity': 1}]
        }, format='json')
        self.client.post(self.url, {
            'items': [{'product_id': self.product.id, 'quantity': 2}]
        }, format='json')

        response = self.client.get(self.url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 2)
        self.assertGreater(response.data[0]['id'], response.data[1]['id'])
        self.assertEqual(response.data[0]['item_count'], 1)

    def test_requires_authentication(self):
        self.client.force_authenticate(None)

        response = self.client.get(self.url)

        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))
