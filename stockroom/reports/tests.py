"""
Test suite for the reports module
Tests: dashboard summary, stock per category, summary caching
"""
from django.core.cache import cache
from django.test import TestCase
from rest_framework import status
from stockroom.core.cache_utils import cache_dashboard_summary, get_cached_dashboard_summary
from stockroom.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from stockroom.inventory.services import apply_inventory_transaction


class DashboardSummaryTests(TestCase):
    """Test the dashboard report endpoint"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def tearDown(self):
        cache.clear()

    def test_requires_authentication(self):
        self.client.logout()
        response = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_empty_inventory(self):
        response = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, {
            'products': 0,
            'categories': 0,
            'total_stock': 0,
            'stock_by_category': [],
        })

    def test_summary_totals(self):
        """Counts, total stock and stock grouped by category name"""
        tools = TestDataFactory.create_category(name='Tools')
        garden = TestDataFactory.create_category(name='Garden')
        TestDataFactory.create_category(name='Empty')
        TestDataFactory.create_product(category=tools, quantity=4)
        TestDataFactory.create_product(category=tools, quantity=6)
        TestDataFactory.create_product(category=garden, quantity=3)
        TestDataFactory.create_product(with_category=False, quantity=2)

        response = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['products'], 4)
        self.assertEqual(response.data['categories'], 3)
        self.assertEqual(response.data['total_stock'], 15)

        by_category = {row['name']: row['value'] for row in response.data['stock_by_category']}
        self.assertEqual(by_category, {'Tools': 10, 'Garden': 3, 'Uncategorized': 2})

    def test_second_request_is_cached(self):
        first = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(first['X-Cache'], 'MISS')
        second = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(second['X-Cache'], 'HIT')
        self.assertEqual(first.data, second.data)

    def test_stock_movement_invalidates_cache(self):
        product = TestDataFactory.create_product(quantity=5)
        response = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(response.data['total_stock'], 5)

        with self.captureOnCommitCallbacks(execute=True):
            apply_inventory_transaction(product.id, 'IN', 7)

        response = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(response['X-Cache'], 'MISS')
        self.assertEqual(response.data['total_stock'], 12)

    def test_catalog_change_invalidates_cache(self):
        self.client.get('/api/v1/reports/dashboard/')
        with self.captureOnCommitCallbacks(execute=True):
            TestDataFactory.create_category(name='New')
        response = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(response['X-Cache'], 'MISS')
        self.assertEqual(response.data['categories'], 1)

    def test_summary_cached_before_commit_is_dropped(self):
        """A summary rebuilt while a movement is still uncommitted does not outlive the commit"""
        product = TestDataFactory.create_product(quantity=10)
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            apply_inventory_transaction(product.id, 'OUT', 4)
            cache_dashboard_summary({'total_stock': 10})
            self.assertEqual(get_cached_dashboard_summary(), {'total_stock': 10})
        self.assertTrue(callbacks)
        self.assertIsNone(get_cached_dashboard_summary())

        response = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(response['X-Cache'], 'MISS')
        self.assertEqual(response.data['total_stock'], 6)
