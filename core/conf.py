"""
Access to the ``NOTE_MARKETPLACE`` settings dictionary with defaults.
"""

from datetime import timedelta

from django.conf import settings


DEFAULTS = {
    'INVITE_KEYS': [],
    'REQUIRE_LISTING_REVIEW': True,
    'ACCESS_REQUEST_TTL_HOURS': 48,
    'INQUIRY_EXPIRY_DAYS': 30,
    'SEARCH_DEFAULT_LIMIT': 20,
    'SEARCH_MAX_LIMIT': 100,
    'NOTIFICATIONS_ASYNC': True,
    'NOTIFICATION_MAX_RETRIES': 3,
    'DEFAULT_TRANSACTION_TASKS': [],
}


def marketplace_setting(name):
    """
    Return a marketplace setting, falling back to the built-in default.

    The settings dictionary is read on every call so ``override_settings``
    works in tests.
    """
    if name not in DEFAULTS:
        raise KeyError(f'Unknown marketplace setting: {name}')
    configured = getattr(settings, 'NOTE_MARKETPLACE', {})
    return configured.get(name, DEFAULTS[name])


def access_request_ttl():
    return timedelta(hours=marketplace_setting('ACCESS_REQUEST_TTL_HOURS'))


def inquiry_ttl():
    return timedelta(days=marketplace_setting('INQUIRY_EXPIRY_DAYS'))
