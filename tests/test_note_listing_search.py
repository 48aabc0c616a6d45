"""
Tests for the public note listing search endpoint.

Test Coverage:
- Every supplied criterion narrows the result (AND semantics)
- Only active listings by default; explicit status filters
- Blank parameters are ignored, malformed ones are rejected with 400
- Aliases and camelCase spellings
- Ordering, pagination and limit clamping
- Saving a search with email_notify
"""

from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient

from core.filters import ListingSearchFilters
from core.models import NoteListing, SavedSearch

User = get_user_model()

SEARCH_URL = '/api/note-listings'


def create_listing(seller, **overrides):
    data = {
        'note_type': 'Residential Mortgage',
        'performance_status': 'performing',
        'original_loan_amount': Decimal('200000.00'),
        'current_loan_amount': Decimal('150000.00'),
        'interest_rate': Decimal('6.500'),
        'original_loan_term': 360,
        'remaining_loan_term': 300,
        'monthly_payment_amount': Decimal('1264.14'),
        'property_address': '123 Main St',
        'property_city': 'Sacramento',
        'property_state': 'CA',
        'property_type': 'Single Family',
        'asking_price': Decimal('120000.00'),
        'status': 'active',
    }
    data.update(overrides)
    return NoteListing.objects.create(seller=seller, **data)


class ListingSearchTestCase(TestCase):
    """Test suite for GET /api/note-listings."""

    def setUp(self):
        self.client = APIClient()
        self.seller = User.objects.create_user(
            username='seller', email='seller@example.com', password='testpass123'
        )

        self.cheap_ca = create_listing(self.seller, asking_price=Decimal('80000.00'), title='Cheap California note')
        self.pricey_ca = create_listing(self.seller, asking_price=Decimal('250000.00'),
                                        current_loan_amount=Decimal('190000.00'))
        self.cheap_tx = create_listing(self.seller, asking_price=Decimal('95000.00'), property_state='TX',
                                       property_city='Austin', interest_rate=Decimal('9.250'))
        self.pending_ca = create_listing(self.seller, asking_price=Decimal('70000.00'), status='pending')
        self.sold_ca = create_listing(self.seller, asking_price=Decimal('60000.00'))
        NoteListing.objects.filter(pk=self.sold_ca.pk).update(status='sold')

    def result_ids(self, response):
        return [item['id'] for item in response.data['data']]

    def test_default_search_returns_only_active(self):
        response = self.client.get(SEARCH_URL)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['total'], 3)
        self.assertEqual(
            set(self.result_ids(response)),
            {self.cheap_ca.id, self.pricey_ca.id, self.cheap_tx.id}
        )

    def test_max_price_and_state_are_combined(self):
        response = self.client.get(SEARCH_URL, {'max_asking_price': '100000', 'property_state': 'CA'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(self.result_ids(response), [self.cheap_ca.id])
        self.assertEqual(response.data['total'], 1)

    def test_state_filter_is_case_insensitive(self):
        response = self.client.get(SEARCH_URL, {'property_state': 'tx'})

        self.assertEqual(self.result_ids(response), [self.cheap_tx.id])

    def test_adding_a_filter_never_grows_the_result(self):
        base = self.client.get(SEARCH_URL, {'property_state': 'CA'}).data['total']
        narrower = self.client.get(
            SEARCH_URL, {'property_state': 'CA', 'min_interest_rate': '7'}
        ).data['total']

        self.assertLessEqual(narrower, base)
        self.assertEqual(narrower, 0)

    def test_contradictory_bounds_return_empty_result(self):
        response = self.client.get(SEARCH_URL, {'min_asking_price': '200000', 'max_asking_price': '100000'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total'], 0)
        self.assertEqual(response.data['data'], [])

    def test_bounds_are_inclusive(self):
        response = self.client.get(SEARCH_URL, {'min_asking_price': '95000', 'max_asking_price': '95000'})

        self.assertEqual(self.result_ids(response), [self.cheap_tx.id])

    def test_explicit_status_filter(self):
        response = self.client.get(SEARCH_URL, {'status': 'sold'})

        self.assertEqual(self.result_ids(response), [self.sold_ca.id])

    def test_anonymous_cannot_search_pending(self):
        response = self.client.get(SEARCH_URL, {'status': 'pending'})

        self.assertEqual(response.data['total'], 0)

    def test_seller_can_search_own_pending(self):
        self.client.force_authenticate(user=self.seller)

        response = self.client.get(SEARCH_URL, {'status': 'pending'})

        self.assertEqual(self.result_ids(response), [self.pending_ca.id])

    def test_blank_values_are_ignored(self):
        response = self.client.get(SEARCH_URL, {'max_asking_price': '', 'property_state': '   '})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total'], 3)

    def test_malformed_number_is_rejected(self):
        response = self.client.get(SEARCH_URL, {'max_asking_price': 'cheap'})

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])
        self.assertIn('max_asking_price', response.data['message'])

    def test_out_of_range_numbers_are_rejected(self):
        for params in (
            {'offset': '99999999999999999999999'},
            {'limit': '-99999999999999999999999'},
            {'min_remaining_loan_term': '4294967296'},
            {'max_asking_price': '1e30'},
        ):
            response = self.client.get(SEARCH_URL, params)

            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
            self.assertFalse(response.data['success'])
            self.assertIn('out of range', response.data['message'])
            self.assertIn(next(iter(params)), response.data['message'])

    def test_malformed_boolean_is_rejected(self):
        response = self.client.get(SEARCH_URL, {'is_secured': 'maybe'})

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_unknown_ordering_is_rejected(self):
        response = self.client.get(SEARCH_URL, {'ordering': 'password'})

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('ordering', response.data['message'])

    def test_aliases_and_camel_case(self):
        expected = self.result_ids(self.client.get(SEARCH_URL, {'max_asking_price': '100000'}))

        alias = self.result_ids(self.client.get(SEARCH_URL, {'price_max': '100000'}))
        camel = self.result_ids(self.client.get(SEARCH_URL, {'maxAskingPrice': '100000'}))

        self.assertEqual(alias, expected)
        self.assertEqual(camel, expected)
        self.assertEqual(set(expected), {self.cheap_ca.id, self.cheap_tx.id})

    def test_location_alias(self):
        response = self.client.get(SEARCH_URL, {'location_city': 'austin'})

        self.assertEqual(self.result_ids(response), [self.cheap_tx.id])

    def test_property_type_set_filter(self):
        condo = create_listing(self.seller, property_type='Condo')

        response = self.client.get(SEARCH_URL, {'property_type': 'Condo,Townhouse'})

        self.assertEqual(self.result_ids(response), [condo.id])

    def test_keyword_search(self):
        response = self.client.get(SEARCH_URL, {'keyword': 'california'})

        self.assertEqual(self.result_ids(response), [self.cheap_ca.id])

    def test_ordering_by_price(self):
        response = self.client.get(SEARCH_URL, {'ordering': 'asking_price'})

        self.assertEqual(
            self.result_ids(response),
            [self.cheap_ca.id, self.cheap_tx.id, self.pricey_ca.id]
        )

        response = self.client.get(SEARCH_URL, {'sort': '-asking_price'})

        self.assertEqual(
            self.result_ids(response),
            [self.pricey_ca.id, self.cheap_tx.id, self.cheap_ca.id]
        )

    def test_pagination(self):
        response = self.client.get(SEARCH_URL, {'ordering': 'asking_price', 'limit': '2', 'offset': '1'})

        self.assertEqual(response.data['total'], 3)
        self.assertEqual(response.data['limit'], 2)
        self.assertEqual(response.data['offset'], 1)
        self.assertEqual(self.result_ids(response), [self.cheap_tx.id, self.pricey_ca.id])

    def test_limit_is_clamped(self):
        response = self.client.get(SEARCH_URL, {'limit': '5000'})
        self.assertEqual(response.data['limit'], 100)

        response = self.client.get(SEARCH_URL, {'limit': '0'})
        self.assertEqual(response.data['limit'], 1)

        response = self.client.get(SEARCH_URL)
        self.assertEqual(response.data['limit'], 20)
        self.assertEqual(response.data['offset'], 0)


class SavedSearchTestCase(TestCase):
    """Test suite for email_notify saved searches."""

    def setUp(self):
        self.client = APIClient()
        self.buyer = User.objects.create_user(
            username='buyer', email='buyer@example.com', password='testpass123'
        )

    def test_email_notify_requires_authentication(self):
        response = self.client.get(SEARCH_URL, {'property_state': 'CA', 'email_notify': 'true'})

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(SavedSearch.objects.count(), 0)

    def test_email_notify_saves_criteria_once(self):
        self.client.force_authenticate(user=self.buyer)
        params = {'property_state': 'ca', 'max_asking_price': '100000', 'email_notify': 'true', 'limit': '5'}

        first = self.client.get(SEARCH_URL, params)
        second = self.client.get(SEARCH_URL, params)

        self.assertEqual(first.status_code, status.HTTP_200_OK)
        self.assertEqual(first.data['saved_search_id'], second.data['saved_search_id'])
        self.assertEqual(SavedSearch.objects.filter(user=self.buyer).count(), 1)

        saved = SavedSearch.objects.get(user=self.buyer)
        self.assertEqual(saved.criteria, {'property_state': 'CA', 'max_asking_price': '100000'})

    def test_saved_searches_list_and_deactivate(self):
        self.client.force_authenticate(user=self.buyer)
        saved_id = self.client.get(
            SEARCH_URL, {'property_state': 'CA', 'email_notify': 'true'}
        ).data['saved_search_id']

        response = self.client.get('/api/saved-searches')
        self.assertEqual([item['id'] for item in response.data['data']], [saved_id])

        response = self.client.delete(f'/api/saved-searches/{saved_id}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(SavedSearch.objects.get(pk=saved_id).is_active)

    def test_cannot_delete_another_users_saved_search(self):
        other = User.objects.create_user(username='other', email='other@example.com', password='testpass123')
        saved = SavedSearch.objects.create(user=other, name='Other', criteria={'property_state': 'CA'})
        self.client.force_authenticate(user=self.buyer)

        response = self.client.delete(f'/api/saved-searches/{saved.id}')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class ListingSearchFiltersTestCase(TestCase):
    """Unit tests for the filter value object."""

    def test_criteria_round_trip_through_query_params(self):
        filters = ListingSearchFilters.from_query_params({
            'minInterestRate': '5.5',
            'property_state': 'ny',
            'status': 'active,sold',
            'is_secured': 'false',
        })

        self.assertEqual(filters.min_interest_rate, Decimal('5.5'))
        self.assertEqual(filters.property_state, 'NY')
        self.assertEqual(filters.statuses, ('active', 'sold'))
        self.assertFalse(filters.is_secured)
        self.assertEqual(ListingSearchFilters.from_query_params(filters.to_query_params()), filters)

    def test_unknown_parameters_are_ignored(self):
        filters = ListingSearchFilters.from_query_params({'colour': 'blue'})

        self.assertEqual(filters, ListingSearchFilters())
        self.assertEqual(filters.effective_statuses, ('active',))
