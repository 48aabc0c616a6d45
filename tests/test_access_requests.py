"""
Tests for time-boxed access requests.

Test Coverage:
- A buyer can hold at most one pending request per listing
- The database rejects a second pending row even when the API is bypassed
- Pending requests past expires_at are marked expired when read
- Sellers (and admins) approve or reject; decided requests are final
- Requests on behalf of another user are limited to admins
"""

from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from core.models import AccessRequest, NoteListing

User = get_user_model()

REQUEST_ACCESS_URL = '/api/request-access'
ACCESS_REQUESTS_URL = '/api/access-requests'


def create_listing(seller, **overrides):
    data = {
        'note_type': 'Commercial Mortgage',
        'performance_status': 'non-performing',
        'original_loan_amount': Decimal('500000.00'),
        'current_loan_amount': Decimal('480000.00'),
        'interest_rate': Decimal('8.000'),
        'original_loan_term': 120,
        'remaining_loan_term': 60,
        'monthly_payment_amount': Decimal('6066.38'),
        'property_address': '9 Harbor Rd',
        'property_state': 'FL',
        'property_type': 'Mixed Use',
        'asking_price': Decimal('300000.00'),
        'status': 'active',
    }
    data.update(overrides)
    return NoteListing.objects.create(seller=seller, **data)


class AccessRequestTestBase(TestCase):

    def setUp(self):
        self.client = APIClient()
        self.seller = User.objects.create_user(
            username='seller', email='seller@example.com', password='testpass123'
        )
        self.buyer = User.objects.create_user(
            username='buyer', email='buyer@example.com', password='testpass123'
        )
        self.other = User.objects.create_user(
            username='other', email='other@example.com', password='testpass123'
        )
        self.admin = User.objects.create_user(
            username='admin', email='admin@example.com', password='testpass123', role='admin'
        )
        self.listing = create_listing(self.seller)

    def request_access(self, user=None, **extra):
        self.client.force_authenticate(user=user or self.buyer)
        payload = {'note_listing': self.listing.id, 'request_type': 'document'}
        payload.update(extra)
        return self.client.post(REQUEST_ACCESS_URL, payload, format='json')


class RequestAccessTestCase(AccessRequestTestBase):
    """Test suite for POST /api/request-access."""

    def test_request_access(self):
        before = timezone.now()

        response = self.request_access()

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        data = response.data['data']
        self.assertEqual(data['status'], 'pending')
        self.assertEqual(data['request_type'], 'document')
        self.assertEqual(data['buyer']['id'], self.buyer.id)

        access_request = AccessRequest.objects.get(pk=data['id'])
        self.assertGreaterEqual(access_request.expires_at, before + timedelta(hours=48))
        self.assertLessEqual(access_request.expires_at, timezone.now() + timedelta(hours=48))

    @override_settings(NOTE_MARKETPLACE={'ACCESS_REQUEST_TTL_HOURS': 2})
    def test_ttl_is_configurable(self):
        response = self.request_access()

        access_request = AccessRequest.objects.get(pk=response.data['data']['id'])
        self.assertLessEqual(access_request.expires_at, timezone.now() + timedelta(hours=2))

    def test_client_expiry_is_ignored(self):
        response = self.request_access(expires_at='2099-01-01T00:00:00Z', status='approved')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['status'], 'pending')
        self.assertFalse(response.data['data']['expires_at'].startswith('2099'))

    def test_default_request_type_is_contact(self):
        self.client.force_authenticate(user=self.buyer)

        response = self.client.post(REQUEST_ACCESS_URL, {'note_listing': self.listing.id}, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['request_type'], 'contact')

    def test_second_pending_request_conflicts(self):
        self.assertEqual(self.request_access().status_code, status.HTTP_201_CREATED)

        response = self.request_access()

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertFalse(response.data['success'])
        self.assertEqual(
            AccessRequest.objects.filter(buyer=self.buyer, note_listing=self.listing).count(), 1
        )

    def test_different_buyers_do_not_conflict(self):
        self.assertEqual(self.request_access().status_code, status.HTTP_201_CREATED)
        self.assertEqual(self.request_access(user=self.other).status_code, status.HTTP_201_CREATED)

    def test_database_rejects_duplicate_pending_rows(self):
        now = timezone.now()
        AccessRequest.objects.create(
            buyer=self.buyer, note_listing=self.listing, expires_at=now + timedelta(hours=1)
        )

        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                AccessRequest.objects.create(
                    buyer=self.buyer, note_listing=self.listing, expires_at=now + timedelta(hours=1)
                )

    def test_decided_requests_do_not_block_new_ones(self):
        AccessRequest.objects.create(
            buyer=self.buyer, note_listing=self.listing, status='rejected',
            expires_at=timezone.now() + timedelta(hours=1)
        )

        response = self.request_access()

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

    def test_stale_request_is_expired_before_new_one(self):
        stale = AccessRequest.objects.create(
            buyer=self.buyer, note_listing=self.listing,
            expires_at=timezone.now() - timedelta(minutes=1)
        )

        response = self.request_access()

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        stale.refresh_from_db()
        self.assertEqual(stale.status, 'expired')

    def test_cannot_request_own_listing(self):
        response = self.request_access(user=self.seller)

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_listing_must_be_active(self):
        NoteListing.objects.filter(pk=self.listing.pk).update(status='sold')

        response = self.request_access()

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_unknown_listing(self):
        response = self.request_access(note_listing=99999)

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_requires_authentication(self):
        response = self.client.post(REQUEST_ACCESS_URL, {'note_listing': self.listing.id}, format='json')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_cannot_request_for_someone_else(self):
        response = self.request_access(buyer=self.other.id)

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(AccessRequest.objects.exists())

    def test_admin_can_request_on_behalf_of_buyer(self):
        response = self.request_access(user=self.admin, buyer=self.buyer.id)

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['buyer']['id'], self.buyer.id)


class AccessRequestListTestCase(AccessRequestTestBase):
    """Test suite for GET /api/access-requests."""

    def test_lazy_expiry_on_read(self):
        stale = AccessRequest.objects.create(
            buyer=self.buyer, note_listing=self.listing,
            expires_at=timezone.now() - timedelta(seconds=1)
        )
        self.client.force_authenticate(user=self.buyer)

        response = self.client.get(ACCESS_REQUESTS_URL)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data'][0]['id'], stale.id)
        self.assertEqual(response.data['data'][0]['status'], 'expired')
        stale.refresh_from_db()
        self.assertEqual(stale.status, 'expired')

    def test_scoped_to_buyer_and_seller(self):
        self.request_access()
        self.request_access(user=self.other)

        self.client.force_authenticate(user=self.buyer)
        self.assertEqual(len(self.client.get(ACCESS_REQUESTS_URL).data['data']), 1)

        self.client.force_authenticate(user=self.seller)
        self.assertEqual(len(self.client.get(ACCESS_REQUESTS_URL).data['data']), 2)

        self.client.force_authenticate(user=self.admin)
        self.assertEqual(len(self.client.get(ACCESS_REQUESTS_URL).data['data']), 2)

    def test_filter_by_status_and_listing(self):
        self.request_access()
        second_listing = create_listing(self.seller)
        self.client.force_authenticate(user=self.buyer)
        self.client.post(REQUEST_ACCESS_URL, {'note_listing': second_listing.id}, format='json')

        self.client.force_authenticate(user=self.seller)
        response = self.client.get(ACCESS_REQUESTS_URL, {'note_listing': second_listing.id})
        self.assertEqual(len(response.data['data']), 1)

        response = self.client.get(ACCESS_REQUESTS_URL, {'status': 'approved'})
        self.assertEqual(response.data['data'], [])

        response = self.client.get(ACCESS_REQUESTS_URL, {'note_listing': 'abc'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class AccessRequestDecisionTestCase(AccessRequestTestBase):
    """Test suite for PUT /api/access-requests/<id>."""

    def setUp(self):
        super().setUp()
        response = self.request_access()
        self.access_request_id = response.data['data']['id']
        self.url = f'{ACCESS_REQUESTS_URL}/{self.access_request_id}'

    def test_seller_approves(self):
        self.client.force_authenticate(user=self.seller)

        response = self.client.put(self.url, {'status': 'approved'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['status'], 'approved')
        self.assertIsNotNone(response.data['data']['approved_at'])
        self.assertIsNone(response.data['data']['rejected_at'])

    def test_seller_rejects(self):
        self.client.force_authenticate(user=self.seller)

        response = self.client.put(self.url, {'status': 'rejected'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIsNotNone(response.data['data']['rejected_at'])

    def test_decision_is_final(self):
        self.client.force_authenticate(user=self.seller)
        self.client.put(self.url, {'status': 'approved'}, format='json')

        response = self.client.put(self.url, {'status': 'rejected'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(AccessRequest.objects.get(pk=self.access_request_id).status, 'approved')

    def test_expired_request_cannot_be_approved(self):
        AccessRequest.objects.filter(pk=self.access_request_id).update(
            expires_at=timezone.now() - timedelta(minutes=5)
        )
        self.client.force_authenticate(user=self.seller)

        response = self.client.put(self.url, {'status': 'approved'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(AccessRequest.objects.get(pk=self.access_request_id).status, 'expired')

    def test_buyer_cannot_decide(self):
        self.client.force_authenticate(user=self.buyer)

        response = self.client.put(self.url, {'status': 'approved'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_admin_can_decide(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.put(self.url, {'status': 'approved'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_invalid_status(self):
        self.client.force_authenticate(user=self.seller)

        response = self.client.put(self.url, {'status': 'expired'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_only_status_is_writable(self):
        self.client.force_authenticate(user=self.seller)

        response = self.client.put(
            self.url, {'status': 'approved', 'expires_at': '2099-01-01T00:00:00Z'}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('expires_at', response.data['message'])

    def test_unknown_request(self):
        self.client.force_authenticate(user=self.seller)

        response = self.client.put(f'{ACCESS_REQUESTS_URL}/99999', {'status': 'approved'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
