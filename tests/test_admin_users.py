"""
Tests for admin user management.

Test Coverage:
- Only platform admins reach /api/admin/users
- Listing with role, is_active and search filters
- PATCH changes profile, role and is_active; credentials are refused
- Admins cannot demote, deactivate or delete themselves
- Deactivation blacklists outstanding refresh tokens
- Users with transactions cannot be deleted
"""

from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient
from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken
from rest_framework_simplejwt.tokens import RefreshToken

from core import services
from core.models import NoteListing

User = get_user_model()

ADMIN_USERS_URL = '/api/admin/users'


class AdminUserTestCase(TestCase):
    """Test suite for /api/admin/users."""

    def setUp(self):
        self.client = APIClient()
        self.admin = User.objects.create_user(
            username='admin', email='admin@example.com', password='testpass123', role='admin'
        )
        self.alice = User.objects.create_user(
            username='alice', email='alice@example.com', password='testpass123', company='Acme Capital'
        )
        self.bob = User.objects.create_user(
            username='bob', email='bob@example.com', password='testpass123', is_active=False
        )
        self.client.force_authenticate(user=self.admin)

    def emails(self, response):
        return sorted(item['email'] for item in response.data['data'])

    def test_non_admin_is_forbidden(self):
        self.client.force_authenticate(user=self.alice)

        self.assertEqual(self.client.get(ADMIN_USERS_URL).status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(
            self.client.delete(f'{ADMIN_USERS_URL}/{self.bob.id}').status_code, status.HTTP_403_FORBIDDEN
        )
        self.assertTrue(User.objects.filter(pk=self.bob.pk).exists())

    def test_anonymous_is_unauthorized(self):
        self.client.force_authenticate(user=None)

        response = self.client.get(ADMIN_USERS_URL)

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_list_users(self):
        response = self.client.get(ADMIN_USERS_URL)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total'], 3)
        self.assertEqual(
            self.emails(response), ['admin@example.com', 'alice@example.com', 'bob@example.com']
        )
        self.assertNotIn('password', response.data['data'][0])
        self.assertIn('is_active', response.data['data'][0])

    def test_list_filters(self):
        self.assertEqual(self.emails(self.client.get(ADMIN_USERS_URL, {'role': 'admin'})), ['admin@example.com'])
        self.assertEqual(self.emails(self.client.get(ADMIN_USERS_URL, {'is_active': 'false'})), ['bob@example.com'])
        self.assertEqual(self.emails(self.client.get(ADMIN_USERS_URL, {'search': 'acme'})), ['alice@example.com'])

        response = self.client.get(ADMIN_USERS_URL, {'role': 'superhero'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_get_user(self):
        response = self.client.get(f'{ADMIN_USERS_URL}/{self.alice.id}')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['company'], 'Acme Capital')

        response = self.client.get(f'{ADMIN_USERS_URL}/99999')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_promote_user(self):
        response = self.client.patch(
            f'{ADMIN_USERS_URL}/{self.alice.id}', {'role': 'admin', 'company': 'Acme Notes'}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['data']['is_admin'])
        self.alice.refresh_from_db()
        self.assertEqual(self.alice.role, 'admin')
        self.assertEqual(self.alice.company, 'Acme Notes')

    def test_credentials_cannot_be_changed(self):
        response = self.client.patch(
            f'{ADMIN_USERS_URL}/{self.alice.id}',
            {'password': 'hijacked123', 'email': 'new@example.com'},
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('email, password', response.data['message'])
        self.alice.refresh_from_db()
        self.assertTrue(self.alice.check_password('testpass123'))
        self.assertEqual(self.alice.email, 'alice@example.com')

    def test_invalid_phone_number(self):
        response = self.client.patch(
            f'{ADMIN_USERS_URL}/{self.alice.id}', {'phone_number': 'call me'}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('phone_number', response.data['message'])

    def test_deactivation_blacklists_refresh_tokens(self):
        refresh = RefreshToken.for_user(self.alice)

        response = self.client.patch(f'{ADMIN_USERS_URL}/{self.alice.id}', {'is_active': False}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['data']['is_active'])
        self.assertTrue(BlacklistedToken.objects.filter(token__jti=refresh['jti']).exists())

    def test_admin_cannot_demote_or_deactivate_self(self):
        url = f'{ADMIN_USERS_URL}/{self.admin.id}'

        response = self.client.patch(url, {'role': 'user'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.patch(url, {'is_active': False}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        self.admin.refresh_from_db()
        self.assertEqual(self.admin.role, 'admin')
        self.assertTrue(self.admin.is_active)

    def test_delete_user(self):
        response = self.client.delete(f'{ADMIN_USERS_URL}/{self.bob.id}')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(User.objects.filter(pk=self.bob.pk).exists())

    def test_admin_cannot_delete_self(self):
        response = self.client.delete(f'{ADMIN_USERS_URL}/{self.admin.id}')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_delete_unknown_user(self):
        response = self.client.delete(f'{ADMIN_USERS_URL}/99999')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_user_with_transaction_cannot_be_deleted(self):
        listing = NoteListing.objects.create(
            seller=self.alice,
            note_type='Residential Mortgage',
            performance_status='performing',
            original_loan_amount=Decimal('200000.00'),
            current_loan_amount=Decimal('150000.00'),
            interest_rate=Decimal('6.500'),
            original_loan_term=360,
            remaining_loan_term=300,
            monthly_payment_amount=Decimal('1264.14'),
            property_address='123 Main St',
            property_state='CA',
            property_type='Single Family',
            asking_price=Decimal('120000.00'),
            status='active',
        )
        buyer = User.objects.create_user(username='carol', email='carol@example.com', password='testpass123')
        services.open_transaction(listing, buyer, Decimal('110000.00'), actor=self.alice)

        response = self.client.delete(f'{ADMIN_USERS_URL}/{self.alice.id}')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertIn('Deactivate', response.data['message'])
        self.assertTrue(User.objects.filter(pk=self.alice.pk).exists())
