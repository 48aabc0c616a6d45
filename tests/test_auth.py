"""
Tests for invite-only signup, login, logout, token refresh and the profile endpoint.

Test Coverage:
- Signup with a valid invite key returns the user and a token pair
- Invalid invite keys, mismatched passwords and duplicate emails are rejected
- Clients cannot choose their own role
- Login by username or email, generic error on bad credentials
- Logout blacklists the refresh token
- Refresh rotates tokens
"""

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

User = get_user_model()

SIGNUP_URL = '/api/auth/signup'
LOGIN_URL = '/api/auth/login'
LOGOUT_URL = '/api/auth/logout'
REFRESH_URL = '/api/auth/token/refresh'
ME_URL = '/api/auth/me'


class SignupTestCase(TestCase):
    """Test suite for POST /api/auth/signup."""

    def setUp(self):
        self.client = APIClient()
        self.valid_data = {
            'username': 'noteinvestor',
            'email': 'investor@example.com',
            'password': 'Str0ngPassw0rd!',
            'confirm_password': 'Str0ngPassw0rd!',
            'invite_key': 'TEST123',
            'first_name': 'Ada',
            'last_name': 'Lovelace',
            'company': 'Lovelace Capital',
        }

    def test_signup_with_valid_invite_key(self):
        response = self.client.post(SIGNUP_URL, self.valid_data, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['data']['user']['email'], 'investor@example.com')
        self.assertEqual(response.data['data']['user']['role'], 'user')
        self.assertIn('access', response.data['data'])
        self.assertIn('refresh', response.data['data'])
        self.assertNotIn('password', response.data['data']['user'])

        user = User.objects.get(email='investor@example.com')
        self.assertTrue(user.check_password('Str0ngPassw0rd!'))
        self.assertEqual(user.company, 'Lovelace Capital')

    def test_signup_with_invalid_invite_key(self):
        self.valid_data['invite_key'] = 'WRONG'

        response = self.client.post(SIGNUP_URL, self.valid_data, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])
        self.assertIn('invite_key', response.data['message'])
        self.assertFalse(User.objects.filter(email='investor@example.com').exists())

    def test_signup_without_invite_key(self):
        del self.valid_data['invite_key']

        response = self.client.post(SIGNUP_URL, self.valid_data, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('invite_key', response.data['message'])

    def test_signup_password_mismatch(self):
        self.valid_data['confirm_password'] = 'Different1!'

        response = self.client.post(SIGNUP_URL, self.valid_data, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('confirm_password', response.data['message'])

    def test_signup_weak_password(self):
        self.valid_data['password'] = '123'
        self.valid_data['confirm_password'] = '123'

        response = self.client.post(SIGNUP_URL, self.valid_data, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('password', response.data['message'])

    def test_signup_duplicate_email_case_insensitive(self):
        User.objects.create_user(username='existing', email='investor@example.com', password='testpass123')
        self.valid_data['email'] = 'INVESTOR@Example.com'

        response = self.client.post(SIGNUP_URL, self.valid_data, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('email', response.data['message'])

    def test_signup_cannot_choose_role(self):
        self.valid_data['role'] = 'admin'
        self.valid_data['is_staff'] = True

        response = self.client.post(SIGNUP_URL, self.valid_data, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        user = User.objects.get(email='investor@example.com')
        self.assertEqual(user.role, 'user')
        self.assertFalse(user.is_staff)


class LoginTestCase(TestCase):
    """Test suite for POST /api/auth/login."""

    def setUp(self):
        self.client = APIClient()
        self.user = User.objects.create_user(
            username='seller',
            email='seller@example.com',
            password='testpass123',
        )

    def test_login_with_email(self):
        response = self.client.post(
            LOGIN_URL, {'email': 'Seller@Example.com', 'password': 'testpass123'}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['data']['user']['id'], self.user.id)
        self.assertIn('access', response.data['data'])
        self.assertIn('refresh', response.data['data'])

    def test_login_with_username(self):
        response = self.client.post(
            LOGIN_URL, {'username': 'seller', 'password': 'testpass123'}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_login_updates_last_login(self):
        self.assertIsNone(self.user.last_login)

        self.client.post(LOGIN_URL, {'username': 'seller', 'password': 'testpass123'}, format='json')

        self.user.refresh_from_db()
        self.assertIsNotNone(self.user.last_login)

    def test_login_wrong_password(self):
        response = self.client.post(
            LOGIN_URL, {'username': 'seller@example.com', 'password': 'wrong'}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(response.data['success'])
        self.assertEqual(response.data['message'], 'Invalid credentials')

    def test_login_unknown_user_same_message(self):
        response = self.client.post(
            LOGIN_URL, {'username': 'nobody@example.com', 'password': 'wrong'}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['message'], 'Invalid credentials')

    def test_login_inactive_user(self):
        self.user.is_active = False
        self.user.save()

        response = self.client.post(
            LOGIN_URL, {'username': 'seller', 'password': 'testpass123'}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_login_missing_identifier(self):
        response = self.client.post(LOGIN_URL, {'password': 'testpass123'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class TokenLifecycleTestCase(TestCase):
    """Test suite for logout, refresh and the profile endpoint."""

    def setUp(self):
        self.client = APIClient()
        self.user = User.objects.create_user(
            username='buyer',
            email='buyer@example.com',
            password='testpass123',
        )
        self.refresh = RefreshToken.for_user(self.user)

    def test_me_requires_authentication(self):
        response = self.client.get(ME_URL)

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(response.data['success'])

    def test_me_with_bearer_token(self):
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {self.refresh.access_token}')

        response = self.client.get(ME_URL)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['email'], 'buyer@example.com')
        self.assertFalse(response.data['data']['is_admin'])

    def test_invalid_bearer_token(self):
        self.client.credentials(HTTP_AUTHORIZATION='Bearer invalid_token_here')

        response = self.client.get(ME_URL)

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_refresh_returns_new_tokens(self):
        response = self.client.post(REFRESH_URL, {'refresh': str(self.refresh)}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data['data'])
        self.assertIn('refresh', response.data['data'])

    def test_refresh_with_garbage_token(self):
        response = self.client.post(REFRESH_URL, {'refresh': 'not-a-token'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(response.data['success'])

    def test_logout_blacklists_refresh_token(self):
        self.client.force_authenticate(user=self.user)

        response = self.client.post(LOGOUT_URL, {'refresh': str(self.refresh)}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])

        self.client.force_authenticate(user=None)
        response = self.client.post(REFRESH_URL, {'refresh': str(self.refresh)}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_logout_with_another_users_token(self):
        other = User.objects.create_user(username='other', email='other@example.com', password='testpass123')
        self.client.force_authenticate(user=other)

        response = self.client.post(LOGOUT_URL, {'refresh': str(self.refresh)}, format='json')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_logout_requires_authentication(self):
        response = self.client.post(LOGOUT_URL, {'refresh': str(self.refresh)}, format='json')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
