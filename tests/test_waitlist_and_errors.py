"""
Tests for the waitlist endpoints and the error envelope.

Test Coverage:
- Joining the waitlist, duplicate emails in any case
- Waitlist count
- Unsupported methods answer with the envelope
- flatten_errors and the exception handler mapping
"""

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError
from django.test import SimpleTestCase, TestCase
from rest_framework import status
from rest_framework.test import APIClient

from core.exceptions import ConflictError, envelope_exception_handler, flatten_errors
from core.models import WaitlistEntry

WAITLIST_URL = '/api/waitlist'


class WaitlistTestCase(TestCase):
    """Test suite for /api/waitlist."""

    def setUp(self):
        self.client = APIClient()

    def test_join_waitlist(self):
        response = self.client.post(WAITLIST_URL, {'email': 'Investor@Example.com', 'role': 'buyer'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['data']['email'], 'investor@example.com')
        self.assertEqual(response.data['data']['role'], 'buyer')

    def test_duplicate_email_in_different_case(self):
        WaitlistEntry.objects.create(email='investor@example.com', role='seller')

        response = self.client.post(WAITLIST_URL, {'email': 'INVESTOR@example.com', 'role': 'buyer'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['message'], 'This email is already on the waitlist.')
        self.assertEqual(WaitlistEntry.objects.count(), 1)

    def test_invalid_role(self):
        response = self.client.post(WAITLIST_URL, {'email': 'a@example.com', 'role': 'broker'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('role', response.data['message'])

    def test_invalid_email(self):
        response = self.client.post(WAITLIST_URL, {'email': 'not-an-email', 'role': 'both'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('email', response.data['message'])

    def test_count(self):
        WaitlistEntry.objects.create(email='a@example.com', role='buyer')
        WaitlistEntry.objects.create(email='b@example.com', role='both')

        response = self.client.get(f'{WAITLIST_URL}/count')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data'], {'count': 2})

    def test_validate_email(self):
        response = self.client.post('/api/validate-email', {'email': 'investor@example.com'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data'], {'valid': True})
        self.assertFalse(WaitlistEntry.objects.exists())

    def test_validate_email_rejects_bad_input(self):
        for payload in ({'email': 'investor@'}, {'email': ''}, {}):
            response = self.client.post('/api/validate-email', payload, format='json')

            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
            self.assertEqual(response.data['message'], 'email: Please enter a valid email address.')

    def test_unsupported_method_uses_envelope(self):
        response = self.client.delete(WAITLIST_URL)

        self.assertEqual(response.status_code, status.HTTP_405_METHOD_NOT_ALLOWED)
        self.assertFalse(response.data['success'])
        self.assertIn('DELETE', response.data['message'])


class FlattenErrorsTestCase(SimpleTestCase):

    def test_field_errors_are_prefixed(self):
        message = flatten_errors({
            'email': ['Enter a valid email address.'],
            'role': ['"broker" is not a valid choice.'],
        })

        self.assertEqual(message, 'email: Enter a valid email address.; role: "broker" is not a valid choice.')

    def test_non_field_and_detail_are_bare(self):
        self.assertEqual(flatten_errors({'non_field_errors': ['Passwords differ.']}), 'Passwords differ.')
        self.assertEqual(flatten_errors({'detail': 'Not found.'}), 'Not found.')

    def test_nested_and_list_errors(self):
        self.assertEqual(flatten_errors({'criteria': {'limit': ['Too big.']}}), 'criteria: limit: Too big.')
        self.assertEqual(flatten_errors(['First.', 'Second.']), 'First. Second.')


class ExceptionHandlerTestCase(TestCase):

    def test_django_validation_error_becomes_400(self):
        response = envelope_exception_handler(
            DjangoValidationError({'asking_price': 'Must be positive.'}), {}
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data, {'success': False, 'message': 'asking_price: Must be positive.'})

    def test_integrity_error_becomes_409(self):
        response = envelope_exception_handler(
            IntegrityError('UNIQUE constraint failed: core_user.email'), {}
        )

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertFalse(response.data['success'])

    def test_non_constraint_integrity_error_is_not_a_conflict(self):
        response = envelope_exception_handler(IntegrityError('datatype mismatch'), {})

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data['message'], 'An unexpected error occurred.')

    def test_domain_error_keeps_its_message(self):
        response = envelope_exception_handler(ConflictError('Already sold.'), {})

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['message'], 'Already sold.')

    def test_unexpected_error_becomes_500(self):
        response = envelope_exception_handler(RuntimeError('boom'), {})

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data['message'], 'An unexpected error occurred.')
