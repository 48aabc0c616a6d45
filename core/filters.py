"""
Listing search engine.

Query parameters are parsed into a ``ListingSearchFilters`` value where every
criterion is either present or ``None``. Each present criterion contributes one
predicate and all predicates are AND-ed together. Only ``statuses`` has a
default: when no status filter is supplied, only active listings are visible.
"""

import re
from dataclasses import dataclass, fields, replace
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple

from django.db.models import Q

from .conf import marketplace_setting
from .exceptions import ValidationFailed


DEFAULT_STATUSES = ('active',)

DEFAULT_ORDERING = '-created_at'

# Largest magnitudes accepted for numeric parameters
MAX_INTEGER = 2 ** 31 - 1
MAX_DECIMAL = Decimal(10) ** 15

# Public sort keys -> model fields
ORDERING_FIELDS = {
    'created_at': 'created_at',
    'updated_at': 'updated_at',
    'listed_at': 'listed_at',
    'asking_price': 'asking_price',
    'interest_rate': 'interest_rate',
    'original_loan_amount': 'original_loan_amount',
    'current_loan_amount': 'current_loan_amount',
    'property_value': 'property_value',
    'loan_to_value_ratio': 'loan_to_value_ratio',
    'remaining_loan_term': 'remaining_loan_term',
    'expected_yield': 'expected_yield',
    'view_count': 'view_count',
    'inquiry_count': 'inquiry_count',
}

# Range criteria: name -> (model field, value type)
RANGE_CRITERIA = {
    'original_amount': ('original_loan_amount', Decimal),
    'current_amount': ('current_loan_amount', Decimal),
    'interest_rate': ('interest_rate', Decimal),
    'asking_price': ('asking_price', Decimal),
    'property_value': ('property_value', Decimal),
    'loan_to_value_ratio': ('loan_to_value_ratio', Decimal),
    'remaining_loan_term': ('remaining_loan_term', int),
    'loan_origination_date': ('loan_origination_date', date),
    'loan_maturity_date': ('loan_maturity_date', date),
}

# Exact-match criteria: name -> model field
EXACT_CRITERIA = {
    'note_type': 'note_type',
    'property_state': 'property_state',
    'property_city': 'property_city',
    'property_zip_code': 'property_zip_code',
    'property_county': 'property_county',
    'collateral_type': 'collateral_type',
    'amortization_type': 'amortization_type',
    'payment_frequency': 'payment_frequency',
}

# Set-membership criteria: dataclass field -> (query parameter, model field)
SET_CRITERIA = {
    'property_types': ('property_type', 'property_type'),
    'statuses': ('status', 'status'),
    'performance_statuses': ('performance_status', 'performance_status'),
}

KEYWORD_FIELDS = ('title', 'description', 'property_address')

# Extra spellings accepted for a few parameters
PARAM_ALIASES = {
    'price_min': 'min_asking_price',
    'price_max': 'max_asking_price',
    'location_state': 'property_state',
    'location_city': 'property_city',
    'location_zip': 'property_zip_code',
    'sort': 'ordering',
}

TRUE_VALUES = ('true', '1', 'yes')
FALSE_VALUES = ('false', '0', 'no')


def to_camel(name):
    """min_asking_price -> minAskingPrice"""
    head, *rest = name.split('_')
    return head + ''.join(part.capitalize() for part in rest)


def to_snake(name):
    """minAskingPrice -> min_asking_price"""
    return re.sub(r'(?<!^)(?=[A-Z])', '_', name).lower()


def _clean(value):
    """Blank and whitespace-only values count as not supplied."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _parse(name, raw, kind):
    try:
        if kind is Decimal:
            value = Decimal(raw)
            if not value.is_finite():
                raise InvalidOperation
            if abs(value) >= MAX_DECIMAL:
                raise ValidationFailed(f'Value for "{name}" is out of range.')
            return value
        if kind is int:
            value = int(raw)
            if abs(value) > MAX_INTEGER:
                raise ValidationFailed(f'Value for "{name}" is out of range.')
            return value
        if kind is date:
            return date.fromisoformat(raw[:10])
    except (ValueError, InvalidOperation):
        pass
    expected = {Decimal: 'a number', int: 'a whole number', date: 'a date (YYYY-MM-DD)'}[kind]
    raise ValidationFailed(f'Invalid value for "{name}". Must be {expected}.')


def _parse_bool(name, raw):
    lowered = raw.lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise ValidationFailed(f'Invalid value for "{name}". Must be "true" or "false".')


def _parse_set(raw):
    values = tuple(part.strip() for part in raw.split(',') if part.strip())
    return values or None


def normalize_params(params):
    """
    Fold camelCase spellings and aliases into snake_case parameter names.

    Args:
        params: QueryDict or plain dict of query parameters

    Returns:
        dict: parameter name -> raw string value (last value wins)
    """
    normalized = {}
    for key in params.keys():
        if hasattr(params, 'getlist'):
            values = params.getlist(key)
            raw = ','.join(v for v in values if v is not None) if len(values) > 1 else params.get(key)
        else:
            raw = params[key]
        name = to_snake(key) if any(ch.isupper() for ch in key) else key
        name = PARAM_ALIASES.get(name, name)
        normalized[name] = raw
    return normalized


@dataclass(frozen=True)
class ListingSearchFilters:
    """
    Closed set of listing search criteria.

    ``None`` means "not supplied". Ranges are inclusive and either bound may be
    given alone. Contradictory bounds produce an empty result, not an error.
    """

    min_original_amount: Optional[Decimal] = None
    max_original_amount: Optional[Decimal] = None
    min_current_amount: Optional[Decimal] = None
    max_current_amount: Optional[Decimal] = None
    min_interest_rate: Optional[Decimal] = None
    max_interest_rate: Optional[Decimal] = None
    min_asking_price: Optional[Decimal] = None
    max_asking_price: Optional[Decimal] = None
    min_property_value: Optional[Decimal] = None
    max_property_value: Optional[Decimal] = None
    min_loan_to_value_ratio: Optional[Decimal] = None
    max_loan_to_value_ratio: Optional[Decimal] = None
    min_remaining_loan_term: Optional[int] = None
    max_remaining_loan_term: Optional[int] = None
    min_loan_origination_date: Optional[date] = None
    max_loan_origination_date: Optional[date] = None
    min_loan_maturity_date: Optional[date] = None
    max_loan_maturity_date: Optional[date] = None

    note_type: Optional[str] = None
    property_state: Optional[str] = None
    property_city: Optional[str] = None
    property_zip_code: Optional[str] = None
    property_county: Optional[str] = None
    collateral_type: Optional[str] = None
    amortization_type: Optional[str] = None
    payment_frequency: Optional[str] = None
    is_secured: Optional[bool] = None

    property_types: Optional[Tuple[str, ...]] = None
    statuses: Optional[Tuple[str, ...]] = None
    performance_statuses: Optional[Tuple[str, ...]] = None

    keyword: Optional[str] = None

    ordering: Optional[str] = None
    limit: Optional[int] = None
    offset: Optional[int] = None

    @classmethod
    def from_query_params(cls, params):
        """
        Build filters from request query parameters.

        Unknown parameters are ignored. Malformed numbers, dates, booleans
        or sort keys raise ValidationFailed.
        """
        raw = normalize_params(params)
        values = {}

        for name, (_field, kind) in RANGE_CRITERIA.items():
            for bound in ('min', 'max'):
                key = f'{bound}_{name}'
                value = _clean(raw.get(key))
                if value is not None:
                    values[key] = _parse(key, value, kind)

        for name in EXACT_CRITERIA:
            value = _clean(raw.get(name))
            if value is not None:
                values[name] = value.upper() if name == 'property_state' else value

        secured = _clean(raw.get('is_secured'))
        if secured is not None:
            values['is_secured'] = _parse_bool('is_secured', secured)

        for attr, (param, _field) in SET_CRITERIA.items():
            value = _clean(raw.get(param))
            if value is not None:
                values[attr] = _parse_set(value)

        keyword = _clean(raw.get('keyword'))
        if keyword is not None:
            values['keyword'] = keyword

        ordering = _clean(raw.get('ordering'))
        if ordering is not None:
            if ordering.lstrip('-') not in ORDERING_FIELDS:
                raise ValidationFailed(
                    f'Invalid ordering field "{ordering}". '
                    f'Valid options: {", ".join(sorted(ORDERING_FIELDS))}'
                )
            values['ordering'] = ordering

        for key in ('limit', 'offset'):
            value = _clean(raw.get(key))
            if value is not None:
                values[key] = _parse(key, value, int)

        return cls(**values)

    @property
    def effective_statuses(self):
        return self.statuses if self.statuses else DEFAULT_STATUSES

    @property
    def page_limit(self):
        default = marketplace_setting('SEARCH_DEFAULT_LIMIT')
        maximum = marketplace_setting('SEARCH_MAX_LIMIT')
        if self.limit is None:
            return default
        return max(1, min(self.limit, maximum))

    @property
    def page_offset(self):
        return max(0, self.offset or 0)

    def build_query(self):
        """Return the conjunction of every supplied criterion as a Q object."""
        query = Q(status__in=self.effective_statuses)

        for name, (field, _kind) in RANGE_CRITERIA.items():
            low = getattr(self, f'min_{name}')
            high = getattr(self, f'max_{name}')
            if low is not None:
                query &= Q(**{f'{field}__gte': low})
            if high is not None:
                query &= Q(**{f'{field}__lte': high})

        for name, field in EXACT_CRITERIA.items():
            value = getattr(self, name)
            if value is not None:
                query &= Q(**{f'{field}__iexact': value})

        if self.is_secured is not None:
            query &= Q(is_secured=self.is_secured)

        for attr, (_param, field) in SET_CRITERIA.items():
            if attr == 'statuses':
                continue
            value = getattr(self, attr)
            if value:
                query &= Q(**{f'{field}__in': value})

        if self.keyword:
            keyword_query = Q()
            for field in KEYWORD_FIELDS:
                keyword_query |= Q(**{f'{field}__icontains': self.keyword})
            query &= keyword_query

        return query

    def order_by(self):
        ordering = self.ordering or DEFAULT_ORDERING
        descending = ordering.startswith('-')
        field = ORDERING_FIELDS[ordering.lstrip('-')]
        primary = f'-{field}' if descending else field
        return [primary, '-id']

    def apply(self, queryset):
        """Filter and order a NoteListing queryset (no pagination)."""
        return queryset.filter(self.build_query()).order_by(*self.order_by())

    def search(self, queryset):
        """
        Run the search.

        Returns:
            tuple: (list of listings in the requested page, total match count)
        """
        matches = self.apply(queryset)
        total = matches.count()
        start = self.page_offset
        page = list(matches[start:start + self.page_limit])
        return page, total

    def matches(self, listing):
        """Check a single saved listing against the criteria."""
        return type(listing).objects.filter(pk=listing.pk).filter(self.build_query()).exists()

    def criteria_only(self):
        """Copy without pagination and ordering, for saved searches."""
        return replace(self, ordering=None, limit=None, offset=None)

    def to_query_params(self):
        """
        Serialize supplied criteria back to snake_case query parameters.

        ``ListingSearchFilters.from_query_params(f.to_query_params()) == f``.
        """
        params = {}
        for field in fields(self):
            value = getattr(self, field.name)
            if value is None:
                continue
            name = field.name
            for attr, (param, _model_field) in SET_CRITERIA.items():
                if attr == name:
                    name = param
            if isinstance(value, tuple):
                params[name] = ','.join(value)
            elif isinstance(value, bool):
                params[name] = 'true' if value else 'false'
            elif isinstance(value, date):
                params[name] = value.isoformat()
            else:
                params[name] = str(value)
        return params

