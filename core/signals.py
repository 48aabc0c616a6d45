"""
Django signals for listing counters and saved-search alerts.

- Creating an inquiry increments the listing's lifetime inquiry_count in the
  same database transaction as the insert.
- A listing that becomes active (created active or approved) is matched
  against saved searches once the change has committed.
"""

import logging

from django.db import transaction
from django.db.models import F
from django.db.models.signals import post_init, post_save
from django.dispatch import receiver

from .models import Inquiry, NoteListing

logger = logging.getLogger(__name__)


@receiver(post_save, sender=Inquiry)
def increment_inquiry_count_on_create(sender, instance, created, **kwargs):
    """
    Increment NoteListing.inquiry_count when an inquiry is created.

    Uses an F() update so concurrent inquiries never lose an increment.
    The counter is never decremented; deleting an inquiry leaves it as is.

    Note: This signal runs within the same transaction as the Inquiry.save().
    If it fails, the inquiry insert is rolled back with it.
    """
    if not created:
        return

    try:
        with transaction.atomic():
            NoteListing.objects.filter(pk=instance.note_listing_id).update(
                inquiry_count=F('inquiry_count') + 1
            )

        logger.info(
            f"Incremented inquiry_count for listing {instance.note_listing_id} "
            f"(inquiry {instance.id})"
        )

    except Exception as e:
        logger.error(
            f"Error incrementing inquiry_count for listing {instance.note_listing_id}: {e}",
            exc_info=True
        )
        # Re-raise to ensure transaction rollback
        raise


@receiver(post_init, sender=NoteListing)
def remember_loaded_listing_status(sender, instance, **kwargs):
    # __dict__ lookup so deferred loads do not trigger a query
    instance._loaded_status = instance.__dict__.get('status')


@receiver(post_save, sender=NoteListing)
def schedule_saved_search_alerts(sender, instance, created, **kwargs):
    """
    Queue saved-search matching when a listing transitions into active.

    Matching runs after commit so alerts only go out for durable listings.
    """
    became_active = instance.status == 'active' and (
        created or instance._loaded_status != 'active'
    )
    instance._loaded_status = instance.status

    if not became_active:
        return

    from .services import run_saved_search_alerts

    listing_id = instance.pk
    transaction.on_commit(lambda: run_saved_search_alerts(listing_id))
