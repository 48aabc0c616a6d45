"""
Best-effort email notifications.

Notifications are queued with ``transaction.on_commit`` so they are only sent
once the triggering change is durable, and they never fail the request that
triggered them. Delivery runs on a small thread pool unless
``NOTIFICATIONS_ASYNC`` is disabled, and each message is retried up to
``NOTIFICATION_MAX_RETRIES`` times.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor

from django.conf import settings
from django.core.mail import send_mail
from django.db import transaction

from .conf import marketplace_setting

logger = logging.getLogger(__name__)

_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix='notify')

RETRY_BACKOFF_SECONDS = 0.5


def deliver(subject, body, recipients):
    """
    Send one email with bounded retries.

    Returns:
        bool: True if the message was handed to the mail backend
    """
    max_attempts = max(1, marketplace_setting('NOTIFICATION_MAX_RETRIES'))

    for attempt in range(1, max_attempts + 1):
        try:
            send_mail(
                subject,
                body,
                getattr(settings, 'DEFAULT_FROM_EMAIL', 'no-reply@notemarketplace.local'),
                recipients,
                fail_silently=False,
            )
            logger.info(f"Notification sent. Subject: {subject}, Recipients: {recipients}")
            return True
        except Exception as e:
            logger.warning(
                f"Notification attempt {attempt}/{max_attempts} failed. "
                f"Subject: {subject}, Recipients: {recipients}, Error: {e}"
            )
            if attempt < max_attempts:
                time.sleep(RETRY_BACKOFF_SECONDS * attempt)

    logger.error(f"Notification dropped after {max_attempts} attempts. Subject: {subject}")
    return False


def _dispatch(subject, body, recipients):
    if marketplace_setting('NOTIFICATIONS_ASYNC'):
        _executor.submit(deliver, subject, body, recipients)
    else:
        deliver(subject, body, recipients)


def notify(user, subject, body):
    """
    Queue an email to a user after the current database transaction commits.

    Users who opted out of email notifications are skipped.
    """
    if user is None or not user.email or not getattr(user, 'email_notifications', True):
        return

    recipients = [user.email]
    transaction.on_commit(lambda: _dispatch(subject, body, recipients))


# ============================================================================
# Marketplace events
# ============================================================================

def notify_inquiry_received(inquiry):
    listing = inquiry.note_listing
    offer = f"\nOffer amount: ${inquiry.offer_amount:,.2f}" if inquiry.offer_amount else ''
    notify(
        listing.seller,
        f'New inquiry on "{listing.title}"',
        f"You received a new inquiry on your listing \"{listing.title}\".\n\n"
        f"Message: {inquiry.message}{offer}"
    )


def notify_inquiry_response(inquiry):
    listing = inquiry.note_listing
    notify(
        inquiry.buyer,
        f'Your inquiry on "{listing.title}" was {inquiry.status}',
        f"The seller responded to your inquiry on \"{listing.title}\".\n\n"
        f"Status: {inquiry.status}\nResponse: {inquiry.response_message}"
    )


def notify_listing_reviewed(listing):
    if listing.status == 'active':
        body = f"Your listing \"{listing.title}\" has been approved and is now visible to buyers."
    else:
        body = (
            f"Your listing \"{listing.title}\" was not approved.\n\n"
            f"Reason: {listing.rejection_reason}"
        )
    notify(listing.seller, f'Listing review: {listing.title}', body)


def notify_access_request(access_request):
    listing = access_request.note_listing
    notify(
        listing.seller,
        f'New {access_request.request_type} access request',
        f"A buyer requested {access_request.request_type} access for \"{listing.title}\". "
        f"The request expires at {access_request.expires_at:%Y-%m-%d %H:%M} UTC."
    )


def notify_access_decision(access_request):
    notify(
        access_request.buyer,
        f'Access request {access_request.status}',
        f"Your {access_request.request_type} access request for "
        f"\"{access_request.note_listing.title}\" was {access_request.status}."
    )


def notify_phase_change(note_transaction):
    body = (
        f"Transaction #{note_transaction.pk} for \"{note_transaction.note_listing.title}\" "
        f"moved to the {note_transaction.current_phase} phase."
    )
    for party in (note_transaction.buyer, note_transaction.seller):
        notify(party, 'Transaction update', body)


def notify_saved_search_match(saved_search, listing):
    notify(
        saved_search.user,
        f'New listing matches "{saved_search.name}"',
        f"A new note matching your saved search \"{saved_search.name}\" was listed:\n\n"
        f"{listing.title} - asking ${listing.asking_price:,.2f} "
        f"at {listing.interest_rate}% in {listing.property_state}"
    )
