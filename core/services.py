"""
Marketplace workflows.

Every write runs inside one database transaction together with its derived
side effects (counters, timeline events). Notifications are queued to run
after commit and never affect the outcome of the operation.

Race handling:
- Inquiry responses are a compare-and-set UPDATE on the open statuses.
- Task completion locks the transaction row, so the check-then-advance of
  the phase has a single writer per transaction.
- Access requests lock the listing row and are backed by a conditional
  unique constraint on pending (buyer, listing) pairs.
"""

import logging
from datetime import timedelta

from django.db import IntegrityError, transaction
from django.db.models import Avg, Count, F, ProtectedError, Q, Sum
from django.db.models.functions import TruncMonth
from django.utils import timezone
from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken, OutstandingToken

from . import notifications
from .conf import access_request_ttl, inquiry_ttl, marketplace_setting
from .exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationFailed
from .filters import ListingSearchFilters
from .models import (
    AccessRequest,
    Inquiry,
    NoteDocument,
    NoteListing,
    NoteTransaction,
    SavedSearch,
    TransactionFile,
    TransactionTask,
    TransactionTimelineEvent,
    User,
    WaitlistEntry,
)

logger = logging.getLogger(__name__)


def is_admin(user):
    return bool(user and user.is_authenticated and user.is_admin())


# ============================================================================
# Listings
# ============================================================================

def create_listing(seller, validated_data):
    """
    Create a listing owned by ``seller``.

    New listings start as draft when requested, otherwise they wait for admin
    review. With REQUIRE_LISTING_REVIEW disabled they are published directly.
    """
    requested_status = validated_data.pop('status', None)
    if requested_status == 'draft':
        status = 'draft'
    elif marketplace_setting('REQUIRE_LISTING_REVIEW'):
        status = 'pending'
    else:
        status = 'active'

    with transaction.atomic():
        listing = NoteListing(seller=seller, status=status, **validated_data)
        listing.save()

    logger.info(
        f"Listing created. Listing ID: {listing.id}, Seller: {seller.email} (ID: {seller.id}), "
        f"Status: {listing.status}"
    )
    return listing


def update_listing(listing, validated_data):
    """
    Apply seller edits.

    The only status change a seller can make is submitting a draft for
    review (draft -> pending).
    """
    requested_status = validated_data.pop('status', None)

    with transaction.atomic():
        listing = NoteListing.objects.select_for_update().get(pk=listing.pk)

        for field, value in validated_data.items():
            setattr(listing, field, value)

        if requested_status and requested_status != listing.status:
            if not (listing.status == 'draft' and requested_status == 'pending'):
                raise ValidationFailed(
                    f'Sellers cannot change listing status from {listing.status} to {requested_status}.'
                )
            listing.status = 'pending'

        listing.save()

        if listing.status == 'pending' and not marketplace_setting('REQUIRE_LISTING_REVIEW'):
            listing.status = 'active'
            listing.save()

    return listing


def review_listing(listing_id, admin_user, approve, reason='', admin_notes=''):
    """
    Approve (pending -> active) or reject (pending -> rejected) a listing.

    Raises:
        NotFoundError: listing does not exist
        ValidationFailed: listing is not pending, or rejection has no reason
    """
    if not approve and not (reason or '').strip():
        raise ValidationFailed('A rejection reason is required.')

    with transaction.atomic():
        try:
            listing = NoteListing.objects.select_for_update().select_related('seller').get(pk=listing_id)
        except NoteListing.DoesNotExist:
            raise NotFoundError(f'Note listing with ID {listing_id} does not exist.')

        if listing.status != 'pending':
            action = 'approved' if approve else 'rejected'
            raise ValidationFailed(f'Only pending listings can be {action}.')

        listing.status = 'active' if approve else 'rejected'
        listing.reviewed_by = admin_user
        listing.reviewed_at = timezone.now()
        if not approve:
            listing.rejection_reason = reason.strip()
        if admin_notes:
            listing.admin_notes = admin_notes
        listing.save()

        notifications.notify_listing_reviewed(listing)

    logger.info(
        f"Listing {'approved' if approve else 'rejected'}. Listing ID: {listing.id}, "
        f"Admin: {admin_user.email} (ID: {admin_user.id})"
    )
    return listing


def record_listing_view(listing):
    NoteListing.objects.filter(pk=listing.pk).update(view_count=F('view_count') + 1)


def visible_listings_for(user):
    """
    Listings a caller may open by id.

    Active and sold listings are public; anything else is visible only to
    its seller and to admins.
    """
    queryset = NoteListing.objects.select_related('seller')
    if is_admin(user):
        return queryset
    public = Q(status__in=['active', 'sold'], is_public=True)
    if user and user.is_authenticated:
        return queryset.filter(public | Q(seller=user))
    return queryset.filter(public)


# ============================================================================
# Listing documents
# ============================================================================

def can_view_private_documents(user, listing):
    """
    Sellers, admins, buyers in a transaction on the listing and buyers with an
    approved document access request see private documents.
    """
    if not user or not user.is_authenticated:
        return False
    if is_admin(user) or listing.seller_id == user.id:
        return True
    if NoteTransaction.objects.filter(note_listing=listing, buyer=user).exists():
        return True
    return AccessRequest.objects.filter(
        note_listing=listing, buyer=user, request_type='document', status='approved'
    ).exists()


def documents_for(user, listing_id):
    """
    Documents of a listing the caller can open.

    Raises:
        NotFoundError: listing does not exist or is not visible to the caller
    """
    try:
        listing = visible_listings_for(user).get(pk=listing_id)
    except NoteListing.DoesNotExist:
        raise NotFoundError(f'Note listing with ID {listing_id} does not exist.')

    documents = listing.documents.select_related('uploaded_by', 'verified_by')
    if not can_view_private_documents(user, listing):
        documents = documents.filter(is_public=True)
    return documents


def _apply_verification(document, user, verification_status):
    if verification_status == document.verification_status:
        return
    if not is_admin(user):
        raise AuthorizationError('Only admins can change a document verification status.')
    document.verification_status = verification_status
    document.verified_by = user
    document.verified_at = timezone.now()


def add_document(user, validated_data):
    """
    Attach a document to a listing.

    Raises:
        AuthorizationError: caller is not the seller or an admin, or a seller
            tried to set a verification status
        ConflictError: listing is sold or rejected
    """
    listing = validated_data.pop('note_listing')
    verification_status = validated_data.pop('verification_status', 'pending')

    if listing.seller_id != user.id and not is_admin(user):
        raise AuthorizationError('Only the listing seller or an admin can add documents.')
    if listing.status in ('sold', 'rejected'):
        raise ConflictError(f'Documents cannot be added to a {listing.status} listing.')

    document = NoteDocument(note_listing=listing, uploaded_by=user, **validated_data)
    _apply_verification(document, user, verification_status)
    document.save()

    logger.info(
        f"Document added. Document ID: {document.id}, Listing ID: {listing.id}, "
        f"User: {user.email} (ID: {user.id}), Public: {document.is_public}"
    )
    return document


def _get_document_for_change(user, document_id):
    try:
        document = NoteDocument.objects.select_for_update().select_related('note_listing').get(pk=document_id)
    except NoteDocument.DoesNotExist:
        raise NotFoundError(f'Document with ID {document_id} does not exist.')

    if document.note_listing.seller_id != user.id and not is_admin(user):
        raise AuthorizationError('Only the listing seller or an admin can change this document.')
    return document


def update_document(user, document_id, validated_data):
    with transaction.atomic():
        document = _get_document_for_change(user, document_id)

        verification_status = validated_data.pop('verification_status', None)
        if verification_status is not None:
            _apply_verification(document, user, verification_status)

        for field, value in validated_data.items():
            setattr(document, field, value)
        document.save()

    logger.info(
        f"Document updated. Document ID: {document.id}, "
        f"Verification: {document.verification_status}, User: {user.email} (ID: {user.id})"
    )
    return document


def delete_document(user, document_id):
    with transaction.atomic():
        document = _get_document_for_change(user, document_id)
        document.delete()

    logger.info(f"Document deleted. Document ID: {document_id}, User: {user.email} (ID: {user.id})")


# ============================================================================
# Saved searches
# ============================================================================

def save_search(user, filters, name=None):
    """
    Store search criteria for alerts. Identical criteria are stored once per user.
    """
    criteria = filters.criteria_only().to_query_params()
    for existing in SavedSearch.objects.filter(user=user):
        if existing.criteria == criteria:
            if not existing.is_active:
                existing.is_active = True
                existing.save(update_fields=['is_active', 'updated_at'])
            return existing

    saved = SavedSearch.objects.create(
        user=user,
        name=name or f'Search {timezone.now():%Y-%m-%d %H:%M}',
        criteria=criteria,
    )
    logger.info(f"Saved search created. ID: {saved.id}, User: {user.email} (ID: {user.id})")
    return saved


def run_saved_search_alerts(listing_id):
    """
    Evaluate active saved searches against a newly active listing.

    Returns:
        int: Number of saved searches that matched
    """
    try:
        listing = NoteListing.objects.get(pk=listing_id)
    except NoteListing.DoesNotExist:
        return 0

    matched = 0
    searches = SavedSearch.objects.filter(is_active=True).exclude(user_id=listing.seller_id).select_related('user')
    for saved in searches:
        try:
            filters = ListingSearchFilters.from_query_params(saved.criteria)
        except ValidationFailed as e:
            logger.warning(f"Skipping saved search {saved.id} with invalid criteria: {e.detail}")
            continue

        if not filters.matches(listing):
            continue

        matched += 1
        SavedSearch.objects.filter(pk=saved.pk).update(
            total_matches=F('total_matches') + 1,
            last_run_at=timezone.now(),
        )
        notifications.notify_saved_search_match(saved, listing)

    if matched:
        logger.info(f"Listing {listing.id} matched {matched} saved searches")
    return matched


# ============================================================================
# Inquiries
# ============================================================================

def create_inquiry(buyer, listing, message, offer_amount=None):
    """
    Create a pending inquiry.

    The listing's inquiry_count is incremented in the same database
    transaction by the post_save signal.

    Raises:
        ValidationFailed: listing not active, or buyer is the seller
    """
    if listing.seller_id == buyer.id:
        raise ValidationFailed('You cannot submit an inquiry on your own listing.')

    with transaction.atomic():
        listing = NoteListing.objects.select_for_update().get(pk=listing.pk)
        if listing.status != 'active':
            raise ValidationFailed('Inquiries can only be submitted on active listings.')

        inquiry = Inquiry(
            buyer=buyer,
            note_listing=listing,
            message=message,
            offer_amount=offer_amount,
            expires_at=timezone.now() + inquiry_ttl(),
        )
        inquiry.save()
        notifications.notify_inquiry_received(inquiry)

    logger.info(
        f"Inquiry created. Inquiry ID: {inquiry.id}, Listing ID: {listing.id}, "
        f"Buyer: {buyer.email} (ID: {buyer.id})"
    )
    return inquiry


def _expire_if_stale(inquiry_id, now):
    return Inquiry.objects.filter(
        pk=inquiry_id, status='pending', expires_at__lte=now
    ).update(status='expired', updated_at=now)


def respond_to_inquiry(inquiry, seller, new_status, response_message):
    """
    Seller response to an open (pending or countered) inquiry.

    responded_at is stamped only for accepted and rejected. Accepting opens
    a transaction for the listing.

    Raises:
        AuthorizationError: caller is not the listing's seller
        ValidationFailed: bad status or empty message
        ConflictError: inquiry already closed or expired, or accepting on a
            listing that is no longer active
    """
    if inquiry.note_listing.seller_id != seller.id:
        raise AuthorizationError('Only the listing seller can respond to this inquiry.')
    if new_status not in Inquiry.RESPONSE_STATUSES:
        raise ValidationFailed(
            f'status: Must be one of: {", ".join(Inquiry.RESPONSE_STATUSES)}.'
        )
    if not response_message or not response_message.strip():
        raise ValidationFailed('response_message: A response message is required.')

    now = timezone.now()
    updates = {
        'status': new_status,
        'response_message': response_message.strip(),
        'updated_at': now,
    }
    if new_status in ('accepted', 'rejected'):
        updates['responded_at'] = now

    with transaction.atomic():
        if new_status == 'accepted':
            listing = NoteListing.objects.select_for_update().get(pk=inquiry.note_listing_id)
            if listing.status != 'active':
                raise ConflictError(
                    f'This listing is {listing.status} and can no longer accept inquiries.'
                )

        updated = Inquiry.objects.filter(
            pk=inquiry.pk, status__in=Inquiry.OPEN_STATUSES
        ).exclude(
            status='pending', expires_at__lte=now
        ).update(**updates)

        if updated:
            inquiry.refresh_from_db()
            if new_status == 'accepted':
                open_transaction(
                    listing=inquiry.note_listing,
                    buyer=inquiry.buyer,
                    initial_amount=inquiry.offer_amount or inquiry.note_listing.asking_price,
                    inquiry=inquiry,
                    actor=seller,
                )
            notifications.notify_inquiry_response(inquiry)

    if not updated:
        if _expire_if_stale(inquiry.pk, now):
            raise ConflictError('This inquiry has expired and can no longer be answered.')
        inquiry.refresh_from_db()
        raise ConflictError(f'This inquiry has already been {inquiry.status}.')

    logger.info(
        f"Inquiry responded. Inquiry ID: {inquiry.id}, Status: {new_status}, "
        f"Seller: {seller.email} (ID: {seller.id})"
    )
    return inquiry


def withdraw_inquiry(inquiry, buyer):
    if inquiry.buyer_id != buyer.id:
        raise AuthorizationError('Only the buyer can withdraw this inquiry.')

    updated = Inquiry.objects.filter(
        pk=inquiry.pk, status__in=Inquiry.OPEN_STATUSES
    ).update(status='withdrawn', updated_at=timezone.now())

    inquiry.refresh_from_db()
    if not updated:
        raise ConflictError(f'This inquiry has already been {inquiry.status}.')
    return inquiry


def update_inquiry(inquiry, buyer, validated_data):
    """Buyer edits of message and offer amount while the inquiry is pending."""
    if inquiry.buyer_id != buyer.id:
        raise AuthorizationError('Only the buyer can edit this inquiry.')

    with transaction.atomic():
        inquiry = Inquiry.objects.select_for_update().get(pk=inquiry.pk)
        if inquiry.status != 'pending':
            raise ConflictError('Only pending inquiries can be edited.')
        for field in ('message', 'offer_amount'):
            if field in validated_data:
                setattr(inquiry, field, validated_data[field])
        inquiry.save()
    return inquiry


def expire_stale_inquiries(queryset=None, now=None, dry_run=False):
    """
    Flip pending inquiries past expires_at to expired.

    Returns:
        int: Number of inquiries expired (or that would be, for a dry run)
    """
    now = now or timezone.now()
    queryset = Inquiry.objects.all() if queryset is None else queryset
    stale = queryset.filter(status='pending', expires_at__lte=now)
    if dry_run:
        return stale.count()
    return stale.update(status='expired', updated_at=now)


def inquiry_stats(now=None):
    now = now or timezone.now()
    by_status = dict(
        Inquiry.objects.values_list('status').annotate(total=Count('id')).order_by()
    )

    responded = Inquiry.objects.filter(responded_at__isnull=False).values_list('created_at', 'responded_at')
    durations = [(responded_at - created_at).total_seconds() for created_at, responded_at in responded]
    average_hours = round(sum(durations) / len(durations) / 3600, 2) if durations else None

    return {
        'total': sum(by_status.values()),
        'by_status': {key: by_status.get(key, 0) for key, _label in Inquiry.STATUS_CHOICES},
        'average_response_hours': average_hours,
        'last_7_days': Inquiry.objects.filter(created_at__gte=now - timedelta(days=7)).count(),
    }


# ============================================================================
# Access requests
# ============================================================================

def expire_stale_access_requests(queryset=None, now=None, dry_run=False):
    """
    Flip pending access requests past expires_at to expired.

    Returns:
        int: Number of rows expired (or that would be, for a dry run)
    """
    now = now or timezone.now()
    queryset = AccessRequest.objects.all() if queryset is None else queryset
    stale = queryset.filter(status='pending', expires_at__lte=now)
    if dry_run:
        return stale.count()
    return stale.update(status='expired')


def request_access(buyer, listing_id, request_type):
    """
    Create a pending access request valid for ACCESS_REQUEST_TTL_HOURS.

    Raises:
        NotFoundError: listing does not exist
        ValidationFailed: buyer is the seller, or listing not active
        ConflictError: an active request already exists for the pair
    """
    with transaction.atomic():
        try:
            listing = NoteListing.objects.select_for_update().get(pk=listing_id)
        except NoteListing.DoesNotExist:
            raise NotFoundError(f'Note listing with ID {listing_id} does not exist.')

        if listing.seller_id == buyer.id:
            raise ValidationFailed('You cannot request access to your own listing.')
        if listing.status != 'active':
            raise ValidationFailed('Access can only be requested for active listings.')

        now = timezone.now()
        pair = AccessRequest.objects.filter(buyer=buyer, note_listing=listing)
        expire_stale_access_requests(pair, now=now)

        if pair.filter(status='pending').exists():
            raise ConflictError('You already have an active access request for this listing.')

        try:
            with transaction.atomic():
                access_request = AccessRequest.objects.create(
                    buyer=buyer,
                    note_listing=listing,
                    request_type=request_type,
                    requested_at=now,
                    expires_at=now + access_request_ttl(),
                )
        except IntegrityError:
            raise ConflictError('You already have an active access request for this listing.')

        notifications.notify_access_request(access_request)

    logger.info(
        f"Access request created. ID: {access_request.id}, Listing ID: {listing.id}, "
        f"Buyer: {buyer.email} (ID: {buyer.id}), Expires: {access_request.expires_at}"
    )
    return access_request


def access_requests_for(user):
    """
    Access requests visible to a user, after lazily expiring stale ones.

    Admins see everything; others see requests they made or received as seller.
    """
    queryset = AccessRequest.objects.select_related('buyer', 'note_listing', 'note_listing__seller')
    if not is_admin(user):
        queryset = queryset.filter(Q(buyer=user) | Q(note_listing__seller=user))

    expire_stale_access_requests(queryset)
    return queryset


def decide_access_request(access_request_id, user, new_status):
    """
    Seller or admin approves or rejects a pending access request.

    Raises:
        NotFoundError, AuthorizationError, ValidationFailed, ConflictError
    """
    if new_status not in ('approved', 'rejected'):
        raise ValidationFailed('status: Must be one of: approved, rejected.')

    expire_stale_access_requests(AccessRequest.objects.filter(pk=access_request_id))

    with transaction.atomic():
        try:
            access_request = AccessRequest.objects.select_for_update().select_related(
                'note_listing', 'buyer'
            ).get(pk=access_request_id)
        except AccessRequest.DoesNotExist:
            raise NotFoundError(f'Access request with ID {access_request_id} does not exist.')

        if access_request.note_listing.seller_id != user.id and not is_admin(user):
            raise AuthorizationError('Only the listing seller can decide this access request.')

        if access_request.status != 'pending':
            raise ConflictError(f'This access request is already {access_request.status}.')

        now = timezone.now()
        access_request.status = new_status
        if new_status == 'approved':
            access_request.approved_at = now
        else:
            access_request.rejected_at = now
        access_request.save(update_fields=['status', 'approved_at', 'rejected_at'])

        notifications.notify_access_decision(access_request)

    logger.info(
        f"Access request {new_status}. ID: {access_request.id}, "
        f"User: {user.email} (ID: {user.id})"
    )
    return access_request


# ============================================================================
# Transactions
# ============================================================================

def add_timeline_event(note_transaction, description, event_type='info', user=None,
                       task=None, file=None, data=None):
    """Append an audit event. Callers run this inside their own atomic block."""
    event = TransactionTimelineEvent(
        transaction=note_transaction,
        event_description=description,
        event_type=event_type,
        triggered_by=user,
        related_task=task,
        related_file=file,
        event_data=data,
    )
    event.save()
    return event


def seed_default_tasks(note_transaction):
    tasks = []
    for order, template in enumerate(marketplace_setting('DEFAULT_TRANSACTION_TASKS'), start=1):
        task = TransactionTask(
            transaction=note_transaction,
            phase=template['phase'],
            title=template['title'],
            description=template.get('description', ''),
            is_required=template.get('is_required', True),
            display_order=order,
        )
        task.save()
        tasks.append(task)
    return tasks


def open_transaction(listing, buyer, initial_amount, inquiry=None, actor=None, seed_tasks=True, **extra):
    """
    Start a transaction in the negotiations phase.

    Seeds the configured default tasks and records "Transaction created".
    """
    with transaction.atomic():
        note_transaction = NoteTransaction(
            note_listing=listing,
            buyer=buyer,
            seller_id=listing.seller_id,
            inquiry=inquiry,
            initial_amount=initial_amount,
            status='active',
            current_phase='negotiations',
            **extra
        )
        note_transaction.save()

        if seed_tasks:
            seed_default_tasks(note_transaction)

        add_timeline_event(
            note_transaction,
            'Transaction created',
            event_type='info',
            user=actor,
            data={'initial_amount': str(initial_amount), 'inquiry_id': inquiry.pk if inquiry else None},
        )

    logger.info(
        f"Transaction created. Transaction ID: {note_transaction.id}, Listing ID: {listing.id}, "
        f"Buyer ID: {buyer.id}, Seller ID: {listing.seller_id}"
    )
    return note_transaction


def get_transaction_for(user, transaction_id, lock=False):
    """
    Load a transaction the user may see.

    Raises:
        NotFoundError: no such transaction
        AuthorizationError: user is not buyer, seller or admin
    """
    queryset = NoteTransaction.objects.select_related('buyer', 'seller', 'note_listing')
    if lock:
        queryset = queryset.select_for_update()
    try:
        note_transaction = queryset.get(pk=transaction_id)
    except NoteTransaction.DoesNotExist:
        raise NotFoundError(f'Transaction with ID {transaction_id} does not exist.')

    if not note_transaction.is_party(user) and not is_admin(user):
        raise AuthorizationError('You do not have access to this transaction.')
    return note_transaction


def update_transaction(transaction_id, user, validated_data):
    with transaction.atomic():
        note_transaction = get_transaction_for(user, transaction_id, lock=True)

        changed = {}
        for field, value in validated_data.items():
            if getattr(note_transaction, field) != value:
                setattr(note_transaction, field, value)
                changed[field] = str(value) if value is not None else None

        if changed:
            note_transaction.save()
            add_timeline_event(
                note_transaction,
                'Transaction details updated',
                event_type='info',
                user=user,
                data={'changed': changed},
            )
    return note_transaction


def create_task(transaction_id, user, validated_data):
    with transaction.atomic():
        note_transaction = get_transaction_for(user, transaction_id, lock=True)
        if note_transaction.seller_id != user.id and not is_admin(user):
            raise AuthorizationError('Only the seller or an admin can create tasks.')
        if note_transaction.current_phase == 'completed':
            raise ConflictError('Tasks cannot be added to a completed transaction.')

        if 'display_order' not in validated_data:
            last = note_transaction.tasks.order_by('-display_order').values_list('display_order', flat=True).first()
            validated_data['display_order'] = (last or 0) + 1

        task = TransactionTask(transaction=note_transaction, **validated_data)
        task.save()

        add_timeline_event(
            note_transaction,
            f'Task created: {task.title}',
            event_type='info',
            user=user,
            task=task,
        )
    return task


def advance_phase_if_ready(note_transaction, user=None):
    """
    Advance while every required task of the current phase is complete.

    Each step moves exactly one phase and records its own timeline event, so
    closing tasks finished during negotiations carry the transaction through
    closing once negotiations is done. A phase with no required tasks never
    advances on its own. The caller must hold a row lock on the transaction.

    Returns:
        bool: True if the phase changed
    """
    advanced = False
    while _advance_one_phase(note_transaction, user):
        advanced = True
    return advanced


def _advance_one_phase(note_transaction, user):
    current = note_transaction.current_phase
    next_phase = note_transaction.next_phase()
    if next_phase is None:
        return False

    required = note_transaction.tasks.filter(phase=current, is_required=True)
    if not required.exists() or required.exclude(status='complete').exists():
        return False

    note_transaction.current_phase = next_phase
    if next_phase == 'completed':
        note_transaction.status = 'completed'
        note_transaction.completed_at = timezone.now()
    note_transaction.save()

    add_timeline_event(
        note_transaction,
        f'Transaction moved to {next_phase} phase',
        event_type='info',
        user=user,
        data={'from_phase': current, 'to_phase': next_phase},
    )

    if next_phase == 'completed':
        listing = NoteListing.objects.select_for_update().get(pk=note_transaction.note_listing_id)
        if listing.can_transition_to('sold') and listing.status != 'sold':
            listing.status = 'sold'
            listing.save()
        else:
            logger.warning(
                f"Transaction {note_transaction.id} completed but listing {listing.id} "
                f"is {listing.status} and was not marked sold"
            )
        add_timeline_event(note_transaction, 'Transaction completed', event_type='success', user=user)

    notifications.notify_phase_change(note_transaction)
    logger.info(f"Transaction {note_transaction.id} moved from {current} to {next_phase}")
    return True


def complete_task(transaction_id, task_id, user):
    """
    Mark a task complete and advance the phase if it was the last required one.

    Permitted for the assignee, for either party when unassigned, and for admins.

    Returns:
        tuple: (task, transaction, phase_advanced)
    """
    with transaction.atomic():
        note_transaction = get_transaction_for(user, transaction_id, lock=True)

        try:
            task = note_transaction.tasks.select_for_update().get(pk=task_id)
        except TransactionTask.DoesNotExist:
            raise NotFoundError(f'Task with ID {task_id} does not exist on this transaction.')

        if task.assigned_to_id and task.assigned_to_id != user.id and not is_admin(user):
            raise AuthorizationError('Only the assigned user can complete this task.')
        if task.is_complete():
            raise ConflictError('This task is already complete.')

        task.status = 'complete'
        task.completed_by = user
        task.completed_at = timezone.now()
        task.save()

        add_timeline_event(
            note_transaction,
            f'Task completed: {task.title}',
            event_type='success',
            user=user,
            task=task,
        )

        advanced = advance_phase_if_ready(note_transaction, user)

    logger.info(
        f"Task completed. Task ID: {task.id}, Transaction ID: {note_transaction.id}, "
        f"User: {user.email} (ID: {user.id}), Phase advanced: {advanced}"
    )
    return task, note_transaction, advanced


def add_file(transaction_id, user, validated_data):
    with transaction.atomic():
        note_transaction = get_transaction_for(user, transaction_id, lock=True)
        record = TransactionFile(transaction=note_transaction, uploaded_by=user, **validated_data)
        record.save()

        add_timeline_event(
            note_transaction,
            f'File uploaded: {record.file_name}',
            event_type='info',
            user=user,
            file=record,
            data={'category': record.category, 'is_public': record.is_public},
        )
    return record


def visible_files(note_transaction, user):
    files = note_transaction.files.select_related('uploaded_by')
    if is_admin(user):
        return files
    return files.filter(Q(is_public=True) | Q(uploaded_by=user))


def transactions_for(user, role=None):
    queryset = NoteTransaction.objects.select_related('buyer', 'seller', 'note_listing')
    if role == 'buyer':
        return queryset.filter(buyer=user)
    if role == 'seller':
        return queryset.filter(seller=user)
    if is_admin(user):
        return queryset
    return queryset.filter(Q(buyer=user) | Q(seller=user))


def transaction_stats(now=None):
    now = now or timezone.now()
    by_status = dict(
        NoteTransaction.objects.values_list('status').annotate(total=Count('id')).order_by()
    )
    since = (now - timedelta(days=183)).replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    monthly = (
        NoteTransaction.objects.filter(status='completed', completed_at__gte=since)
        .annotate(month=TruncMonth('completed_at'))
        .values('month')
        .annotate(count=Count('id'), volume=Sum('final_amount'))
        .order_by('month')
    )
    return {
        'by_status': {key: by_status.get(key, 0) for key, _label in NoteTransaction.STATUS_CHOICES},
        'monthly_completed': [
            {
                'month': row['month'].strftime('%Y-%m'),
                'count': row['count'],
                'volume': str(row['volume'] or 0),
            }
            for row in monthly
        ],
    }


def platform_stats(now=None):
    now = now or timezone.now()
    month_ago = now - timedelta(days=30)
    listing_counts = dict(
        NoteListing.objects.values_list('status').annotate(total=Count('id')).order_by()
    )
    completed = NoteTransaction.objects.filter(status='completed')
    average_rate = NoteListing.objects.filter(status='active').aggregate(avg=Avg('interest_rate'))['avg']

    return {
        'users': {
            'total': User.objects.count(),
            'new_last_30_days': User.objects.filter(created_at__gte=month_ago).count(),
        },
        'listings': {
            'total': sum(listing_counts.values()),
            'by_status': {key: listing_counts.get(key, 0) for key, _label in NoteListing.STATUS_CHOICES},
            'average_active_interest_rate': str(round(average_rate, 3)) if average_rate is not None else None,
        },
        'transactions': {
            'completed': completed.count(),
            'completed_volume': str(completed.aggregate(total=Sum('final_amount'))['total'] or 0),
            'started_last_30_days': NoteTransaction.objects.filter(created_at__gte=month_ago).count(),
        },
        'inquiries_last_30_days': Inquiry.objects.filter(created_at__gte=month_ago).count(),
    }


# ============================================================================
# User management
# ============================================================================

def update_user_as_admin(admin_user, target, validated_data):
    """
    Apply an admin's changes to an account.

    Deactivating an account blacklists its outstanding refresh tokens.

    Raises:
        ValidationFailed: an admin tried to demote or deactivate themselves
    """
    if target.pk == admin_user.pk:
        if validated_data.get('is_active') is False:
            raise ValidationFailed('is_active: You cannot deactivate your own account.')
        if validated_data.get('role', target.role) != 'admin' and not target.is_staff:
            raise ValidationFailed('role: You cannot remove your own admin role.')

    with transaction.atomic():
        target = User.objects.select_for_update().get(pk=target.pk)
        deactivated = target.is_active and validated_data.get('is_active') is False

        for field, value in validated_data.items():
            setattr(target, field, value)
        target.save()

        if deactivated:
            for token in OutstandingToken.objects.filter(user=target):
                BlacklistedToken.objects.get_or_create(token=token)

    logger.info(
        f"User updated by admin. User: {target.email} (ID: {target.id}), "
        f"Admin: {admin_user.email} (ID: {admin_user.id}), Fields: {', '.join(sorted(validated_data))}"
    )
    return target


def delete_user_as_admin(admin_user, user_id):
    """
    Raises:
        NotFoundError: no such user
        ValidationFailed: an admin tried to delete themselves
        ConflictError: the user is a party to a transaction
    """
    if user_id == admin_user.pk:
        raise ValidationFailed('You cannot delete your own account.')

    try:
        target = User.objects.get(pk=user_id)
    except User.DoesNotExist:
        raise NotFoundError(f'User with ID {user_id} does not exist.')

    email = target.email
    try:
        with transaction.atomic():
            target.delete()
    except ProtectedError:
        raise ConflictError(
            'Users with transactions cannot be deleted. Deactivate the account instead.'
        )

    logger.info(
        f"User deleted by admin. User: {email} (ID: {user_id}), "
        f"Admin: {admin_user.email} (ID: {admin_user.id})"
    )


# ============================================================================
# Waitlist
# ============================================================================

def join_waitlist(email, role):
    email = email.strip().lower()
    if WaitlistEntry.objects.filter(email__iexact=email).exists():
        raise ConflictError('This email is already on the waitlist.')
    try:
        with transaction.atomic():
            entry = WaitlistEntry.objects.create(email=email, role=role)
    except IntegrityError:
        raise ConflictError('This email is already on the waitlist.')
    logger.info(f"Waitlist entry created. Email: {email}, Role: {role}")
    return entry
