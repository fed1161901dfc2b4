"""
Test suite for the inventory module
Tests: stock ledger service, lost-update handling, ledger API, check_ledger command
"""
import threading
import unittest
from io import StringIO
from unittest import mock

from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import OperationalError, connection, connections
from django.test import TestCase, TransactionTestCase
from rest_framework import status

from stockroom.catalog.models import Product
from stockroom.core.models import AuditLog
from stockroom.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from stockroom.inventory import services
from stockroom.inventory.exceptions import Conflict, InsufficientStock, InvalidArgument, NotFound
from stockroom.inventory.models import InventoryTransaction
from stockroom.inventory.services import apply_inventory_transaction, ledger_balance


class StockLedgerServiceTests(TestCase):
    """Test apply_inventory_transaction"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.product = TestDataFactory.create_product(quantity=10)

    def assertUnchanged(self, quantity):
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, quantity)

    def test_scenario_out_rejected_out_in(self):
        """stock 10: OUT 4 -> 6, OUT 10 rejected, IN 5 -> 11"""
        result = apply_inventory_transaction(self.product.id, 'OUT', 4, user=self.user)
        self.assertEqual(result.new_quantity, 6)
        self.assertEqual(InventoryTransaction.objects.filter(product=self.product).count(), 1)

        with self.assertRaises(InsufficientStock):
            apply_inventory_transaction(self.product.id, 'OUT', 10, user=self.user)
        self.assertUnchanged(6)
        self.assertEqual(InventoryTransaction.objects.filter(product=self.product).count(), 1)

        result = apply_inventory_transaction(self.product.id, 'IN', 5, user=self.user)
        self.assertEqual(result.new_quantity, 11)
        self.assertUnchanged(11)

    def test_ledger_row_contents(self):
        result = apply_inventory_transaction(self.product.id, 'IN', 3, user=self.user)
        entry = result.transaction
        self.assertEqual(entry.product_id, self.product.id)
        self.assertEqual(entry.direction, InventoryTransaction.IN)
        self.assertEqual(entry.quantity, 3)
        self.assertEqual(entry.quantity_after, 13)
        self.assertEqual(entry.created_by, self.user)
        self.assertIsNotNone(entry.created_at)
        self.assertEqual(entry.signed_quantity, 3)

    def test_direction_is_case_insensitive(self):
        result = apply_inventory_transaction(self.product.id, 'out', 2)
        self.assertEqual(result.transaction.direction, 'OUT')
        self.assertEqual(result.transaction.signed_quantity, -2)
        self.assertIsNone(result.transaction.created_by)

    def test_out_of_entire_stock(self):
        result = apply_inventory_transaction(self.product.id, 'OUT', 10)
        self.assertEqual(result.new_quantity, 0)

    def test_invalid_quantities_write_nothing(self):
        for bad in (0, -1, 2.5, '3', None, True):
            with self.subTest(quantity=bad):
                with self.assertRaises(InvalidArgument):
                    apply_inventory_transaction(self.product.id, 'IN', bad)
        self.assertUnchanged(10)
        self.assertFalse(InventoryTransaction.objects.exists())

    def test_invalid_direction(self):
        with self.assertRaises(InvalidArgument) as ctx:
            apply_inventory_transaction(self.product.id, 'SIDEWAYS', 1)
        self.assertEqual(ctx.exception.context['field'], 'direction')
        self.assertFalse(InventoryTransaction.objects.exists())

    def test_unknown_product(self):
        with self.assertRaises(NotFound):
            apply_inventory_transaction(999999, 'IN', 1)
        self.assertFalse(InventoryTransaction.objects.exists())

    def test_insufficient_stock_reports_available(self):
        with self.assertRaises(InsufficientStock) as ctx:
            apply_inventory_transaction(self.product.id, 'OUT', 11)
        self.assertEqual(ctx.exception.context['available'], 10)
        self.assertEqual(ctx.exception.context['requested'], 11)
        self.assertEqual(ctx.exception.status_code, 422)

    def test_resubmitting_is_not_deduplicated(self):
        apply_inventory_transaction(self.product.id, 'IN', 4)
        apply_inventory_transaction(self.product.id, 'IN', 4)
        self.assertUnchanged(18)
        self.assertEqual(InventoryTransaction.objects.filter(product=self.product).count(), 2)

    def test_quantity_matches_ledger_after_many_movements(self):
        movements = [('IN', 5), ('OUT', 3), ('OUT', 12), ('IN', 1), ('OUT', 1), ('IN', 20), ('OUT', 20)]
        for direction, quantity in movements:
            apply_inventory_transaction(self.product.id, direction, quantity)
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 10 + 5 - 3 - 12 + 1 - 1 + 20 - 20)
        self.assertEqual(ledger_balance(self.product), self.product.quantity)

    def test_rejected_movements_keep_ledger_balanced(self):
        apply_inventory_transaction(self.product.id, 'OUT', 7)
        with self.assertRaises(InsufficientStock):
            apply_inventory_transaction(self.product.id, 'OUT', 4)
        self.product.refresh_from_db()
        self.assertEqual(ledger_balance(self.product), self.product.quantity)


class LostUpdateTests(TestCase):
    """
    Another writer commits a movement after this one read the product, so
    the compare-and-set sees a different value. Simulated with a stale read
    so it runs on SQLite.
    """

    def setUp(self):
        self.product = TestDataFactory.create_product(quantity=5)
        self.real_load = services._load_product

    def other_writer_sets(self, quantity):
        Product.objects.filter(pk=self.product.pk).update(quantity=quantity)

    def stale_load(self, stale_quantity, times=1):
        """Wrap _load_product so the first reads return an outdated quantity"""
        calls = {'count': 0}

        def load(product_id):
            product = self.real_load(product_id)
            if calls['count'] < times:
                calls['count'] += 1
                product.quantity = stale_quantity
            return product
        return load

    def test_competing_out_drains_stock(self):
        """Two OUT 5 against stock 5: the one that loses the race gets InsufficientStock"""
        self.other_writer_sets(0)
        with mock.patch.object(services, '_load_product', side_effect=self.stale_load(5)):
            with self.assertRaises(InsufficientStock):
                apply_inventory_transaction(self.product.id, 'OUT', 5)
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 0)
        self.assertFalse(InventoryTransaction.objects.exists())

    def test_conflict_is_retried(self):
        self.other_writer_sets(8)
        with mock.patch.object(services, '_load_product', side_effect=self.stale_load(5)):
            result = apply_inventory_transaction(self.product.id, 'OUT', 2, max_retries=1)
        self.assertEqual(result.new_quantity, 6)
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 6)
        self.assertEqual(InventoryTransaction.objects.count(), 1)

    def test_conflict_surfaces_when_retries_exhausted(self):
        self.other_writer_sets(9)
        with mock.patch.object(services, '_load_product', side_effect=self.stale_load(5, times=5)):
            with self.assertRaises(Conflict):
                apply_inventory_transaction(self.product.id, 'IN', 1, max_retries=2)
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 9)
        self.assertFalse(InventoryTransaction.objects.exists())

    def test_no_retry_when_disabled(self):
        self.other_writer_sets(4)
        with mock.patch.object(services, '_load_product', side_effect=self.stale_load(5)) as load:
            with self.assertRaises(Conflict):
                apply_inventory_transaction(self.product.id, 'IN', 1, max_retries=0)
        self.assertEqual(load.call_count, 1)

    def test_locked_row_is_retried(self):
        """A writer that finds the table locked retries instead of failing"""
        real_apply = services._apply_once
        calls = {'count': 0}

        def locked_once(*args):
            calls['count'] += 1
            if calls['count'] == 1:
                raise OperationalError('database table is locked: products')
            return real_apply(*args)

        with mock.patch.object(services, '_apply_once', side_effect=locked_once):
            result = apply_inventory_transaction(self.product.id, 'OUT', 5, max_retries=1)
        self.assertEqual(calls['count'], 2)
        self.assertEqual(result.new_quantity, 0)
        self.assertEqual(InventoryTransaction.objects.count(), 1)

    def test_locked_row_surfaces_as_conflict(self):
        locked = OperationalError('database table is locked: products')
        with mock.patch.object(services, '_apply_once', side_effect=locked) as apply_once:
            with self.assertRaises(Conflict) as ctx:
                apply_inventory_transaction(self.product.id, 'OUT', 5, max_retries=2)
        self.assertEqual(apply_once.call_count, 3)
        self.assertEqual(ctx.exception.context['product_id'], self.product.id)
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 5)


@unittest.skipUnless(connection.vendor == 'postgresql', 'row locks need a server database')
class ConcurrentStockOutTests(TransactionTestCase):
    """Real concurrent writers on separate connections"""

    def test_two_concurrent_outs_only_one_succeeds(self):
        product = TestDataFactory.create_product(quantity=5)
        barrier = threading.Barrier(2)
        outcomes = []

        def worker():
            try:
                barrier.wait()
                apply_inventory_transaction(product.id, 'OUT', 5)
                outcomes.append('ok')
            except (InsufficientStock, Conflict) as e:
                outcomes.append(e.code)
            finally:
                connections.close_all()

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(outcomes.count('ok'), 1)
        product.refresh_from_db()
        self.assertEqual(product.quantity, 0)
        self.assertEqual(InventoryTransaction.objects.filter(product=product).count(), 1)


class InventoryTransactionAPITests(TestCase):
    """Test ledger API endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.product = TestDataFactory.create_product(name='Widget', quantity=10)

    def post_movement(self, direction, quantity, product_id=None):
        return self.client.post('/api/v1/transactions/', {
            'product_id': product_id or self.product.id,
            'direction': direction,
            'quantity': quantity,
        }, format='json')

    def test_apply_out(self):
        response = self.post_movement('OUT', 4)
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['new_quantity'], 6)
        self.assertEqual(response.data['transaction']['product_name'], 'Widget')
        self.assertEqual(response.data['transaction']['created_by_email'], self.user.email)
        self.assertTrue(AuditLog.objects.filter(action='stock_out', model_name='InventoryTransaction').exists())

    def test_insufficient_stock(self):
        response = self.post_movement('OUT', 11)
        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.assertEqual(response.data['code'], 'insufficient_stock')
        self.assertEqual(response.data['available'], 10)

    def test_invalid_quantity(self):
        response = self.post_movement('IN', 0)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'invalid_argument')

    def test_non_integer_quantity(self):
        response = self.post_movement('IN', 'lots')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'invalid_argument')
        self.assertIn('quantity', response.data['fields'])

    def test_missing_product_id(self):
        response = self.client.post('/api/v1/transactions/', {'direction': 'IN', 'quantity': 1}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'invalid_argument')
        self.assertIn('product_id', response.data['fields'])

    def test_invalid_direction(self):
        response = self.post_movement('UP', 1)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'invalid_argument')

    def test_unknown_product(self):
        response = self.post_movement('IN', 1, product_id=999999)
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['code'], 'not_found')

    def test_conflict_status(self):
        conflict = Conflict(product_id=self.product.id)
        with mock.patch('stockroom.inventory.views.apply_inventory_transaction', side_effect=conflict):
            response = self.post_movement('IN', 1)
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'conflict')

    def test_list_newest_first_with_filters(self):
        other = TestDataFactory.create_product(quantity=3)
        apply_inventory_transaction(self.product.id, 'IN', 1)
        apply_inventory_transaction(self.product.id, 'OUT', 2)
        apply_inventory_transaction(other.id, 'OUT', 1)

        response = self.client.get(f'/api/v1/transactions/?product_id={self.product.id}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 2)
        self.assertEqual([t['direction'] for t in response.data['results']], ['OUT', 'IN'])

        response = self.client.get('/api/v1/transactions/?direction=out')
        self.assertEqual(response.data['count'], 2)

    def test_list_is_paginated(self):
        for _ in range(3):
            apply_inventory_transaction(self.product.id, 'IN', 1)
        response = self.client.get('/api/v1/transactions/?limit=2')
        self.assertEqual(len(response.data['results']), 2)
        self.assertEqual(response.data['total_pages'], 2)
        self.assertEqual(response.data['next'], 2)

    def test_list_bad_pagination(self):
        response = self.client.get('/api/v1/transactions/?limit=abc')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_non_integer_product_id(self):
        response = self.client.get('/api/v1/transactions/?product_id=abc')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'invalid_argument')

    def test_locked_table_returns_conflict(self):
        locked = OperationalError('database table is locked: products')
        with mock.patch.object(services, '_apply_once', side_effect=locked):
            response = self.post_movement('OUT', 1)
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'conflict')
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 10)

    def test_detail_is_read_only(self):
        entry = apply_inventory_transaction(self.product.id, 'IN', 1).transaction
        response = self.client.get(f'/api/v1/transactions/{entry.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['quantity'], 1)
        response = self.client.delete(f'/api/v1/transactions/{entry.id}/')
        self.assertEqual(response.status_code, status.HTTP_405_METHOD_NOT_ALLOWED)

    def test_requires_authentication(self):
        self.client.logout()
        response = self.post_movement('IN', 1)
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 10)


class CheckLedgerCommandTests(TestCase):
    """Test the check_ledger management command"""

    def test_all_products_reconcile(self):
        product = TestDataFactory.create_product(quantity=4)
        apply_inventory_transaction(product.id, 'IN', 2)
        out = StringIO()
        call_command('check_ledger', '--show-all', stdout=out)
        self.assertIn('All products reconcile', out.getvalue())
        self.assertIn(product.name, out.getvalue())

    def test_discrepancy_fails(self):
        product = TestDataFactory.create_product(quantity=4)
        # Bypass both the ledger and the serializer
        Product.objects.filter(pk=product.pk).update(quantity=9)
        out = StringIO()
        with self.assertRaises(CommandError):
            call_command('check_ledger', stdout=out)
        self.assertIn('difference +5', out.getvalue())

    def test_unknown_product(self):
        with self.assertRaises(CommandError):
            call_command('check_ledger', '--product-id', '999999', stdout=StringIO())
