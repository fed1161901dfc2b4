"""
Test suite for the catalog module
Tests: category CRUD, restricted category deletion, product CRUD, filtering,
direct quantity edits
"""
from decimal import Decimal
from django.test import TestCase
from rest_framework import status
from stockroom.catalog.models import Category, Product
from stockroom.core.models import AuditLog
from stockroom.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from stockroom.inventory.models import InventoryTransaction
from stockroom.inventory.services import apply_inventory_transaction, ledger_balance


class CategoryAPITests(TestCase):
    """Test Category API endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_requires_authentication(self):
        self.client.logout()
        response = self.client.get('/api/v1/categories/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_create_category(self):
        response = self.client.post('/api/v1/categories/', {'name': 'Beverages'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['name'], 'Beverages')
        self.assertEqual(response.data['products_count'], 0)
        self.assertTrue(AuditLog.objects.filter(model_name='Category', action='create').exists())

    def test_create_category_blank_name(self):
        response = self.client.post('/api/v1/categories/', {'name': '   '}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('name', response.data)

    def test_list_categories(self):
        first = TestDataFactory.create_category(name='First')
        second = TestDataFactory.create_category(name='Second')
        response = self.client.get('/api/v1/categories/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        ids = [c['id'] for c in response.data]
        self.assertEqual(set(ids), {first.id, second.id})

    def test_update_category(self):
        category = TestDataFactory.create_category(name='Snacks')
        response = self.client.patch(f'/api/v1/categories/{category.id}/', {'name': 'Sweets'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        category.refresh_from_db()
        self.assertEqual(category.name, 'Sweets')

    def test_delete_unused_category(self):
        category = TestDataFactory.create_category()
        response = self.client.delete(f'/api/v1/categories/{category.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Category.objects.filter(pk=category.id).exists())

    def test_delete_category_in_use_is_restricted(self):
        """A category referenced by products is not deleted and the products survive"""
        category = TestDataFactory.create_category()
        product = TestDataFactory.create_product(category=category)
        response = self.client.delete(f'/api/v1/categories/{category.id}/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'category_in_use')
        self.assertEqual(response.data['products_count'], 1)
        self.assertTrue(Category.objects.filter(pk=category.id).exists())
        product.refresh_from_db()
        self.assertEqual(product.category_id, category.id)

    def test_get_missing_category(self):
        response = self.client.get('/api/v1/categories/999999/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class ProductAPITests(TestCase):
    """Test Product API endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.category = TestDataFactory.create_category(name='Hardware')

    def test_create_product(self):
        data = {
            'name': 'Hammer',
            'category': self.category.id,
            'price': '12.50',
            'quantity': 7,
        }
        response = self.client.post('/api/v1/products/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['category_name'], 'Hardware')
        self.assertEqual(response.data['quantity'], 7)
        # Initial quantity becomes the ledger baseline
        self.assertEqual(response.data['opening_quantity'], 7)

    def test_create_product_defaults_quantity_to_zero(self):
        response = self.client.post('/api/v1/products/', {
            'name': 'Nails',
            'category': self.category.id,
            'price': '0.10',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['quantity'], 0)

    def test_create_product_rejects_negative_quantity_and_price(self):
        response = self.client.post('/api/v1/products/', {
            'name': 'Saw',
            'category': self.category.id,
            'price': '-1.00',
            'quantity': -3,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('price', response.data)
        self.assertIn('quantity', response.data)

    def test_create_product_requires_price(self):
        response = self.client.post('/api/v1/products/', {'name': 'Drill', 'category': self.category.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('price', response.data)

    def test_search_filter(self):
        TestDataFactory.create_product(name='Green Tea', category=self.category)
        TestDataFactory.create_product(name='Black Coffee', category=self.category)
        response = self.client.get('/api/v1/products/?search=tea')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([p['name'] for p in response.data], ['Green Tea'])

    def test_category_filter(self):
        other = TestDataFactory.create_category(name='Garden')
        TestDataFactory.create_product(name='Wrench', category=self.category)
        TestDataFactory.create_product(name='Rake', category=other)
        TestDataFactory.create_product(name='Loose Item', with_category=False)

        response = self.client.get(f'/api/v1/products/?category={other.id}')
        self.assertEqual([p['name'] for p in response.data], ['Rake'])

        response = self.client.get('/api/v1/products/?category=all')
        self.assertEqual(len(response.data), 3)

        response = self.client.get('/api/v1/products/?category=uncategorized')
        self.assertEqual([p['name'] for p in response.data], ['Loose Item'])

    def test_search_and_category_combined(self):
        other = TestDataFactory.create_category(name='Garden')
        TestDataFactory.create_product(name='Steel Rake', category=other)
        TestDataFactory.create_product(name='Steel Wrench', category=self.category)
        response = self.client.get(f'/api/v1/products/?search=steel&category={self.category.id}')
        self.assertEqual([p['name'] for p in response.data], ['Steel Wrench'])

    def test_update_product_without_quantity_keeps_ledger_stock(self):
        product = TestDataFactory.create_product(category=self.category, quantity=10)
        apply_inventory_transaction(product.id, 'OUT', 3)
        response = self.client.patch(f'/api/v1/products/{product.id}/', {'price': '20.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        product.refresh_from_db()
        self.assertEqual(product.price, Decimal('20.00'))
        self.assertEqual(product.quantity, 7)
        self.assertEqual(ledger_balance(product), product.quantity)

    def test_direct_quantity_edit_rebaselines_ledger(self):
        product = TestDataFactory.create_product(category=self.category, quantity=10)
        apply_inventory_transaction(product.id, 'IN', 5)
        response = self.client.patch(f'/api/v1/products/{product.id}/', {'quantity': 4}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        product.refresh_from_db()
        self.assertEqual(product.quantity, 4)
        self.assertEqual(product.opening_quantity, -1)
        self.assertEqual(ledger_balance(product), 4)
        self.assertTrue(AuditLog.objects.filter(model_name='Product', action='stock_rebase').exists())

    def test_put_product(self):
        product = TestDataFactory.create_product(category=self.category, quantity=2)
        response = self.client.put(f'/api/v1/products/{product.id}/', {
            'name': 'Renamed',
            'category': None,
            'price': '1.00',
            'quantity': 2,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIsNone(response.data['category'])
        self.assertIsNone(response.data['category_name'])

    def test_delete_product_removes_its_ledger(self):
        product = TestDataFactory.create_product(category=self.category, quantity=5)
        product_id = product.id
        apply_inventory_transaction(product.id, 'OUT', 1)
        response = self.client.delete(f'/api/v1/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Product.objects.filter(pk=product.id).exists())
        self.assertFalse(InventoryTransaction.objects.filter(product_id=product_id).exists())
