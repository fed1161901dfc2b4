"""
Test suite for the core module
Tests: sign-up, sign-in, session retrieval, sign-out, audit logs
"""
from django.test import TestCase
from rest_framework import status
from stockroom.core.models import AuditLog
from stockroom.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from stockroom.core.utils import create_audit_log, get_client_ip


STRONG_PASSWORD = 'Wh3at-Field-Tractor!'


class AuthAPITests(TestCase):
    """Test auth endpoints"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()

    def test_register(self):
        """Sign-up returns the user and a token pair"""
        response = self.client.post('/api/v1/auth/register/', {
            'email': 'alice@example.com',
            'password': STRONG_PASSWORD,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['user']['email'], 'alice@example.com')
        # Username falls back to the e-mail address
        self.assertEqual(response.data['user']['username'], 'alice@example.com')
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)

    def test_register_duplicate_email(self):
        """Sign-up with an e-mail already in use fails"""
        TestDataFactory.create_user(email='taken@example.com')
        response = self.client.post('/api/v1/auth/register/', {
            'email': 'taken@example.com',
            'password': STRONG_PASSWORD,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('email', response.data)

    def test_register_weak_password(self):
        """Password validators apply on sign-up"""
        response = self.client.post('/api/v1/auth/register/', {
            'email': 'bob@example.com',
            'password': '123',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('password', response.data)

    def test_login_with_email_and_password(self):
        """Password sign-in returns a token pair"""
        TestDataFactory.create_user(email='carol@example.com', password=STRONG_PASSWORD)
        response = self.client.post('/api/v1/auth/login/', {
            'email': 'carol@example.com',
            'password': STRONG_PASSWORD,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)
        self.assertEqual(response.data['user']['email'], 'carol@example.com')

    def test_login_wrong_password(self):
        """Wrong password is rejected"""
        TestDataFactory.create_user(email='dave@example.com', password=STRONG_PASSWORD)
        response = self.client.post('/api/v1/auth/login/', {
            'email': 'dave@example.com',
            'password': 'not-the-password',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_me_requires_authentication(self):
        """Session retrieval without a token is rejected"""
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_me(self):
        """Session retrieval returns the signed-in user"""
        user = TestDataFactory.create_user(email='erin@example.com')
        self.client.authenticate_user(user)
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['id'], user.id)
        self.assertEqual(response.data['email'], 'erin@example.com')
        self.assertEqual(set(response.data), {
            'id', 'username', 'email', 'first_name', 'last_name',
            'is_active', 'is_staff', 'is_superuser', 'created_at', 'updated_at',
        })

    def test_logout_blacklists_refresh_token(self):
        """After sign-out the refresh token can no longer be used"""
        TestDataFactory.create_user(email='frank@example.com', password=STRONG_PASSWORD)
        login = self.client.post('/api/v1/auth/login/', {
            'email': 'frank@example.com',
            'password': STRONG_PASSWORD,
        }, format='json')
        refresh = login.data['refresh']
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {login.data['access']}")

        response = self.client.post('/api/v1/auth/logout/', {'refresh': refresh}, format='json')
        self.assertEqual(response.status_code, status.HTTP_205_RESET_CONTENT)

        response = self.client.post('/api/v1/auth/refresh/', {'refresh': refresh}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_logout_with_garbage_token(self):
        """Sign-out with a malformed refresh token fails cleanly"""
        user = TestDataFactory.create_user()
        self.client.authenticate_user(user)
        response = self.client.post('/api/v1/auth/logout/', {'refresh': 'not-a-token'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class AuditLogTests(TestCase):
    """Test audit log helpers and endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.admin = TestDataFactory.create_user(is_staff=True)
        self.client = AuthenticatedAPIClient()

    def test_create_audit_log(self):
        log = create_audit_log(
            action='create',
            model_name='Category',
            object_id=7,
            object_name='Tools',
            user=self.user,
        )
        self.assertIsNotNone(log)
        self.assertEqual(log.object_id, '7')
        self.assertEqual(log.user, self.user)
        self.assertEqual(log.changes, {})

    def test_create_audit_log_skips_missing_fields(self):
        self.assertIsNone(create_audit_log(action='create', model_name=None, object_id=1))
        self.assertEqual(AuditLog.objects.count(), 0)

    def test_get_client_ip_prefers_forwarded_for(self):
        class FakeRequest:
            META = {'HTTP_X_FORWARDED_FOR': '10.0.0.1, 10.0.0.2', 'REMOTE_ADDR': '127.0.0.1'}

        self.assertEqual(get_client_ip(FakeRequest()), '10.0.0.1')
        self.assertIsNone(get_client_ip(None))

    def test_audit_log_list_admin_only(self):
        self.client.authenticate_user(self.user)
        response = self.client.get('/api/v1/audit-logs/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_audit_log_list(self):
        create_audit_log(action='delete', model_name='Product', object_id=3, user=self.user)
        create_audit_log(action='create', model_name='Category', object_id=4, user=self.user)
        self.client.authenticate_user(self.admin)
        response = self.client.get('/api/v1/audit-logs/?model_name=Product')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['action'], 'delete')

    def test_audit_log_list_bad_pagination(self):
        self.client.authenticate_user(self.admin)
        response = self.client.get('/api/v1/audit-logs/?page=first')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.get('/api/v1/audit-logs/?limit=abc')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_audit_log_list_clamps_limit(self):
        create_audit_log(action='create', model_name='Category', object_id=1, user=self.user)
        self.client.authenticate_user(self.admin)
        response = self.client.get('/api/v1/audit-logs/?limit=0')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['page_size'], 1)
        self.assertEqual(response.data['count'], 1)
