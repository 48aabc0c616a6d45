"""
API views for the Note Marketplace.

Every response uses the ``{success, data?, message?}`` envelope. Errors are
raised as exceptions from ``core.exceptions`` (or DRF's own) and rendered by
the project exception handler.
"""

import logging

from django.contrib.auth import authenticate, get_user_model
from django.contrib.auth.models import update_last_login
from django.db import transaction
from django.db.models import ProtectedError, Q
from rest_framework import status
from rest_framework.exceptions import AuthenticationFailed, NotAuthenticated
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError
from rest_framework_simplejwt.serializers import TokenRefreshSerializer
from rest_framework_simplejwt.tokens import RefreshToken

from . import services
from .exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationFailed
from .filters import MAX_INTEGER, TRUE_VALUES, ListingSearchFilters, normalize_params
from .models import AccessRequest, Inquiry, NoteListing, SavedSearch, WaitlistEntry
from .permissions import (
    IsInquiryParticipant,
    IsListingSellerOrAdmin,
    IsPlatformAdmin,
    IsTransactionParty,
)
from .responses import success_response
from .serializers import (
    AccessRequestCreateSerializer,
    AccessRequestSerializer,
    AccessRequestUpdateSerializer,
    AdminNoteListingSerializer,
    AdminUserSerializer,
    AdminUserUpdateSerializer,
    EmailCheckSerializer,
    InquiryCreateSerializer,
    InquiryRespondSerializer,
    InquirySerializer,
    InquiryUpdateSerializer,
    ListingReviewSerializer,
    LoginSerializer,
    NoteDocumentCreateSerializer,
    NoteDocumentSerializer,
    NoteDocumentUpdateSerializer,
    NoteListingSerializer,
    NoteListingWriteSerializer,
    NoteTransactionCreateSerializer,
    NoteTransactionDetailSerializer,
    NoteTransactionSerializer,
    NoteTransactionUpdateSerializer,
    RefreshTokenSerializer,
    SavedSearchSerializer,
    SignupSerializer,
    TimelineEventSerializer,
    TransactionFileSerializer,
    TransactionTaskCreateSerializer,
    TransactionTaskSerializer,
    UserSerializer,
    WaitlistEntrySerializer,
)

User = get_user_model()
logger = logging.getLogger(__name__)


class MarketplaceAPIView(APIView):
    """
    Base view with the helpers shared by every endpoint.

    Subclasses default to requiring authentication; unauthenticated calls get 401.
    """

    permission_classes = [IsAuthenticated]

    def get_client_ip(self, request):
        """
        Get client IP address from request.
        Handles proxy headers for accurate IP detection.
        """
        x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
        if x_forwarded_for:
            ip = x_forwarded_for.split(',')[0]
        else:
            ip = request.META.get('REMOTE_ADDR')
        return ip

    def describe_user(self, request):
        return f"{request.user.email} (ID: {request.user.id}), IP: {self.get_client_ip(request)}"

    def require_authentication(self, request):
        if not request.user or not request.user.is_authenticated:
            raise NotAuthenticated()

    def check_object(self, request, permission, obj):
        """Raise 403 with the permission's message when the check fails."""
        if not permission.has_object_permission(request, self, obj):
            logger.warning(
                f"Unauthorized access attempt on {obj.__class__.__name__} {obj.pk}. "
                f"User: {self.describe_user(request)}"
            )
            raise AuthorizationError(permission.message)


# ============================================================================
# Authentication Views
# ============================================================================

def token_pair(user):
    refresh = RefreshToken.for_user(user)
    return {'access': str(refresh.access_token), 'refresh': str(refresh)}


class SignupView(MarketplaceAPIView):
    """
    Invite-only registration.

    POST /api/auth/signup
    Request body: {"username", "email", "password", "confirm_password", "invite_key", ...}

    Success response (201): {"success": true, "data": {"user": {...}, "access": "...", "refresh": "..."}}
    """

    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'signup'

    def post(self, request, *args, **kwargs):
        serializer = SignupSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()

        logger.info(f"User registered. Email: {user.email} (ID: {user.id}), IP: {self.get_client_ip(request)}")

        return success_response(
            data={'user': UserSerializer(user, context={'request': request}).data, **token_pair(user)},
            message='Account created.',
            status_code=status.HTTP_201_CREATED,
        )


class LoginView(MarketplaceAPIView):
    """
    API endpoint for login with JWT token generation.

    Security features:
    - Rate limiting per IP (throttle scope 'login')
    - Generic error message to prevent user enumeration
    - Failed login attempt logging

    POST /api/auth/login
    Request body: {"username": "<username or email>", "password": "..."}

    Error response (401): {"success": false, "message": "Invalid credentials"}
    """

    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'login'

    def post(self, request, *args, **kwargs):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        identifier = serializer.validated_data['identifier']
        client_ip = self.get_client_ip(request)

        user = authenticate(
            request._request,
            username=identifier,
            password=serializer.validated_data['password'],
        )
        if user is None:
            logger.warning(f"Failed login attempt. Identifier: {identifier}, IP: {client_ip}")
            raise AuthenticationFailed('Invalid credentials')

        update_last_login(None, user)
        logger.info(f"Successful login. Email: {user.email}, IP: {client_ip}")

        return success_response(
            data={'user': UserSerializer(user, context={'request': request}).data, **token_pair(user)}
        )


class LogoutView(MarketplaceAPIView):
    """
    Blacklist the caller's refresh token.

    POST /api/auth/logout
    Request body: {"refresh": "<jwt_refresh_token>"}
    """

    def post(self, request, *args, **kwargs):
        serializer = RefreshTokenSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            token = RefreshToken(serializer.validated_data['refresh'])
        except TokenError:
            raise ValidationFailed('Invalid or expired refresh token.')

        if str(token.get('user_id')) != str(request.user.id):
            raise AuthorizationError('This refresh token belongs to another user.')

        token.blacklist()
        logger.info(f"User logged out. User: {self.describe_user(request)}")

        return success_response(message='Logged out.')


class TokenRefreshView(MarketplaceAPIView):
    """
    Exchange a refresh token for a new access token.

    Refresh tokens rotate and the old one is blacklisted (SIMPLE_JWT settings).

    POST /api/auth/token/refresh
    Request body: {"refresh": "<jwt_refresh_token>"}
    """

    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'login'

    def post(self, request, *args, **kwargs):
        serializer = TokenRefreshSerializer(data=request.data)
        try:
            serializer.is_valid(raise_exception=True)
        except (TokenError, InvalidToken) as e:
            logger.warning(f"Failed token refresh attempt. Error: {e}, IP: {self.get_client_ip(request)}")
            raise AuthenticationFailed('Token is invalid or expired')

        return success_response(data=serializer.validated_data)


class MeView(MarketplaceAPIView):
    """GET /api/auth/me"""

    def get(self, request, *args, **kwargs):
        return success_response(data=UserSerializer(request.user, context={'request': request}).data)


# ============================================================================
# Note Listing Views
# ============================================================================

class NoteListingListCreateView(MarketplaceAPIView):
    """
    Search and create note listings.

    GET /api/note-listings?<filters>
    Public. Every supplied filter narrows the result; without a status
    filter only active listings are returned. Adding email_notify=true as an
    authenticated user stores the criteria as a saved search.

    Success response (200):
    {"success": true, "data": [...], "total": 42, "limit": 20, "offset": 0}

    POST /api/note-listings
    Authenticated. The caller becomes the seller. New listings wait for
    admin review unless status "draft" is requested.
    """

    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        filters = ListingSearchFilters.from_query_params(request.query_params)

        queryset = services.visible_listings_for(request.user)
        listings, total = filters.search(queryset)

        extra = {'total': total, 'limit': filters.page_limit, 'offset': filters.page_offset}

        email_notify = normalize_params(request.query_params).get('email_notify')
        if email_notify and str(email_notify).strip().lower() in TRUE_VALUES:
            self.require_authentication(request)
            saved = services.save_search(request.user, filters, name=request.query_params.get('search_name'))
            extra['saved_search_id'] = saved.id

        return success_response(
            data=NoteListingSerializer(listings, many=True).data,
            **extra
        )

    def post(self, request, *args, **kwargs):
        self.require_authentication(request)

        serializer = NoteListingWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        listing = services.create_listing(request.user, dict(serializer.validated_data))

        logger.info(f"Listing {listing.id} submitted. User: {self.describe_user(request)}")

        return success_response(
            data=NoteListingSerializer(listing).data,
            message='Listing submitted for review.' if listing.status == 'pending' else None,
            status_code=status.HTTP_201_CREATED,
        )


class NoteListingDetailView(MarketplaceAPIView):
    """
    GET /api/note-listings/<id>       Public for active and sold listings.
    PUT|PATCH /api/note-listings/<id> Seller or admin.
    DELETE /api/note-listings/<id>    Seller or admin; listings with transactions cannot be deleted.
    """

    permission_classes = [AllowAny]

    def get_listing(self, request, pk):
        try:
            return services.visible_listings_for(request.user).get(pk=pk)
        except NoteListing.DoesNotExist:
            raise NotFoundError(f'Note listing with ID {pk} does not exist.')

    def get(self, request, pk, *args, **kwargs):
        listing = self.get_listing(request, pk)

        services.record_listing_view(listing)
        listing.view_count += 1

        return success_response(data=NoteListingSerializer(listing).data)

    def put(self, request, pk, *args, **kwargs):
        return self.update(request, pk, partial=False)

    def patch(self, request, pk, *args, **kwargs):
        return self.update(request, pk, partial=True)

    def update(self, request, pk, partial):
        self.require_authentication(request)

        listing = self.get_listing(request, pk)
        self.check_object(request, IsListingSellerOrAdmin(), listing)

        if listing.status in ('sold', 'rejected'):
            raise ConflictError(f'A {listing.status} listing can no longer be edited.')

        serializer = NoteListingWriteSerializer(listing, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)

        listing = services.update_listing(listing, dict(serializer.validated_data))

        logger.info(f"Listing {listing.id} updated. User: {self.describe_user(request)}")

        return success_response(data=NoteListingSerializer(listing).data)

    def delete(self, request, pk, *args, **kwargs):
        self.require_authentication(request)

        listing = self.get_listing(request, pk)
        self.check_object(request, IsListingSellerOrAdmin(), listing)

        try:
            listing.delete()
        except ProtectedError:
            raise ConflictError('Listings with transactions cannot be deleted.')

        logger.info(f"Listing {pk} deleted. User: {self.describe_user(request)}")

        return success_response(message='Listing deleted.')


class SellerListingsView(MarketplaceAPIView):
    """
    GET /api/note-listings/seller/<seller_id>

    The seller and admins see every listing; everyone else sees the seller's
    public active and sold listings.
    """

    permission_classes = [AllowAny]

    def get(self, request, seller_id, *args, **kwargs):
        if not User.objects.filter(pk=seller_id).exists():
            raise NotFoundError(f'User with ID {seller_id} does not exist.')

        listings = services.visible_listings_for(request.user).filter(seller_id=seller_id)

        status_filter = request.query_params.get('status')
        if status_filter:
            listings = listings.filter(status__in=[s.strip() for s in status_filter.split(',') if s.strip()])

        return success_response(data=NoteListingSerializer(listings, many=True).data)


class SavedSearchListView(MarketplaceAPIView):
    """GET /api/saved-searches"""

    def get(self, request, *args, **kwargs):
        searches = SavedSearch.objects.filter(user=request.user)
        return success_response(data=SavedSearchSerializer(searches, many=True).data)


class SavedSearchDetailView(MarketplaceAPIView):
    """DELETE /api/saved-searches/<id> stops alerts for a saved search."""

    def delete(self, request, pk, *args, **kwargs):
        try:
            saved = SavedSearch.objects.get(pk=pk, user=request.user)
        except SavedSearch.DoesNotExist:
            raise NotFoundError(f'Saved search with ID {pk} does not exist.')

        saved.is_active = False
        saved.save(update_fields=['is_active', 'updated_at'])

        return success_response(message='Saved search alerts turned off.')


# ============================================================================
# Note Document Views
# ============================================================================

class NoteDocumentCreateView(MarketplaceAPIView):
    """
    POST /api/note-documents
    Request body: {"note_listing": 1, "document_type": "payment_history",
                   "document_url": "https://...", "file_name": "history.pdf",
                   "file_size": 20480, "is_public": false, "description": "..."}

    Only the listing seller or an admin can attach documents.
    """

    def post(self, request, *args, **kwargs):
        serializer = NoteDocumentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        document = services.add_document(request.user, dict(serializer.validated_data))

        return success_response(
            data=NoteDocumentSerializer(document).data,
            message='Document added successfully.',
            status_code=status.HTTP_201_CREATED,
        )


class ListingDocumentsView(MarketplaceAPIView):
    """
    GET /api/note-documents/listing/<listing_id>

    Public documents for anyone who can open the listing; private ones only
    for the seller, admins and buyers who were granted document access.
    """

    permission_classes = [AllowAny]

    def get(self, request, listing_id, *args, **kwargs):
        documents = services.documents_for(request.user, listing_id)
        return success_response(data=NoteDocumentSerializer(documents, many=True).data)


class NoteDocumentDetailView(MarketplaceAPIView):
    """
    PATCH /api/note-documents/<id>   Seller or admin; verification_status is admin only.
    DELETE /api/note-documents/<id>  Seller or admin.
    """

    def patch(self, request, pk, *args, **kwargs):
        serializer = NoteDocumentUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        document = services.update_document(request.user, pk, dict(serializer.validated_data))

        return success_response(data=NoteDocumentSerializer(document).data)

    def delete(self, request, pk, *args, **kwargs):
        services.delete_document(request.user, pk)
        return success_response(message='Document deleted successfully.')


# ============================================================================
# Admin Views
# ============================================================================

class AdminListingQueueView(MarketplaceAPIView):
    """
    GET /api/admin/listings?status=pending

    Review queue. Defaults to pending listings; status=all returns everything.
    """

    permission_classes = [IsAuthenticated, IsPlatformAdmin]

    def get(self, request, *args, **kwargs):
        listings = NoteListing.objects.select_related('seller', 'reviewed_by')

        status_filter = request.query_params.get('status', 'pending').strip()
        if status_filter and status_filter != 'all':
            statuses = [s.strip() for s in status_filter.split(',') if s.strip()]
            listings = listings.filter(status__in=statuses)

        listings = listings.order_by('created_at', 'id')
        return success_response(
            data=AdminNoteListingSerializer(listings, many=True).data,
            total=listings.count(),
        )


class AdminListingApproveView(MarketplaceAPIView):
    """POST /api/admin/listings/<id>/approve"""

    permission_classes = [IsAuthenticated, IsPlatformAdmin]

    def post(self, request, pk, *args, **kwargs):
        serializer = ListingReviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        listing = services.review_listing(
            pk, request.user, approve=True,
            admin_notes=serializer.validated_data['admin_notes'],
        )
        return success_response(data=AdminNoteListingSerializer(listing).data, message='Listing approved.')


class AdminListingRejectView(MarketplaceAPIView):
    """
    POST /api/admin/listings/<id>/reject
    Request body: {"reason": "...", "admin_notes": "..."}
    """

    permission_classes = [IsAuthenticated, IsPlatformAdmin]

    def post(self, request, pk, *args, **kwargs):
        serializer = ListingReviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        listing = services.review_listing(
            pk, request.user, approve=False,
            reason=serializer.validated_data['reason'],
            admin_notes=serializer.validated_data['admin_notes'],
        )
        return success_response(data=AdminNoteListingSerializer(listing).data, message='Listing rejected.')


class AdminUserListView(MarketplaceAPIView):
    """
    GET /api/admin/users?role=admin&is_active=false&search=acme

    search matches username, email, name and company.
    """

    permission_classes = [IsAuthenticated, IsPlatformAdmin]

    def get(self, request, *args, **kwargs):
        users = User.objects.all()

        role = request.query_params.get('role')
        if role:
            if role not in dict(User.ROLE_CHOICES):
                raise ValidationFailed(f'role: Must be one of: {", ".join(dict(User.ROLE_CHOICES))}.')
            users = users.filter(role=role)

        is_active = request.query_params.get('is_active')
        if is_active:
            users = users.filter(is_active=is_active.strip().lower() in TRUE_VALUES)

        search = (request.query_params.get('search') or '').strip()
        if search:
            users = users.filter(
                Q(username__icontains=search) | Q(email__icontains=search)
                | Q(first_name__icontains=search) | Q(last_name__icontains=search)
                | Q(company__icontains=search)
            )

        return success_response(
            data=AdminUserSerializer(users, many=True, context={'request': request}).data,
            total=users.count(),
        )


class AdminUserDetailView(MarketplaceAPIView):
    """
    GET /api/admin/users/<id>
    PATCH /api/admin/users/<id>   Profile, role and is_active; never credentials.
    DELETE /api/admin/users/<id>  Users with transactions can only be deactivated.
    """

    permission_classes = [IsAuthenticated, IsPlatformAdmin]

    def get_user(self, pk):
        try:
            return User.objects.get(pk=pk)
        except User.DoesNotExist:
            raise NotFoundError(f'User with ID {pk} does not exist.')

    def get(self, request, pk, *args, **kwargs):
        user = self.get_user(pk)
        return success_response(data=AdminUserSerializer(user, context={'request': request}).data)

    def patch(self, request, pk, *args, **kwargs):
        user = self.get_user(pk)

        serializer = AdminUserUpdateSerializer(user, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        user = services.update_user_as_admin(request.user, user, dict(serializer.validated_data))

        logger.info(f"User {user.id} updated. Admin: {self.describe_user(request)}")

        return success_response(data=AdminUserSerializer(user, context={'request': request}).data)

    def delete(self, request, pk, *args, **kwargs):
        services.delete_user_as_admin(request.user, pk)
        return success_response(message='User deleted successfully.')


class AdminStatsView(MarketplaceAPIView):
    """GET /api/admin/stats"""

    permission_classes = [IsAuthenticated, IsPlatformAdmin]

    def get(self, request, *args, **kwargs):
        return success_response(data=services.platform_stats())


class AdminTransactionStatsView(MarketplaceAPIView):
    """GET /api/admin/transactions/stats"""

    permission_classes = [IsAuthenticated, IsPlatformAdmin]

    def get(self, request, *args, **kwargs):
        return success_response(data=services.transaction_stats())


# ============================================================================
# Inquiry Views
# ============================================================================

def get_inquiry(pk):
    try:
        return Inquiry.objects.select_related('buyer', 'note_listing', 'note_listing__seller').get(pk=pk)
    except Inquiry.DoesNotExist:
        raise NotFoundError(f'Inquiry with ID {pk} does not exist.')


class InquiryCreateView(MarketplaceAPIView):
    """
    POST /api/inquiries
    Request body: {"note_listing": 1, "message": "...", "offer_amount": "95000.00"}

    The caller is the buyer. The listing must be active and not the caller's own.
    """

    def post(self, request, *args, **kwargs):
        serializer = InquiryCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        inquiry = services.create_inquiry(
            request.user,
            serializer.validated_data['note_listing'],
            serializer.validated_data['message'],
            serializer.validated_data.get('offer_amount'),
        )

        return success_response(
            data=InquirySerializer(inquiry).data,
            message='Inquiry sent.',
            status_code=status.HTTP_201_CREATED,
        )


class InquiryDetailView(MarketplaceAPIView):
    """
    GET /api/inquiries/<id>     Buyer, listing seller or admin.
    PUT /api/inquiries/<id>     Buyer, while pending; message and offer_amount only.
    DELETE /api/inquiries/<id>  Buyer or admin. The listing's inquiry_count is kept.
    """

    def get(self, request, pk, *args, **kwargs):
        inquiry = get_inquiry(pk)
        self.check_object(request, IsInquiryParticipant(), inquiry)
        return success_response(data=InquirySerializer(inquiry).data)

    def put(self, request, pk, *args, **kwargs):
        inquiry = get_inquiry(pk)

        serializer = InquiryUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        inquiry = services.update_inquiry(inquiry, request.user, serializer.validated_data)
        return success_response(data=InquirySerializer(inquiry).data)

    def delete(self, request, pk, *args, **kwargs):
        inquiry = get_inquiry(pk)

        if inquiry.buyer_id != request.user.id and not request.user.is_admin():
            logger.warning(f"Unauthorized inquiry delete attempt. Inquiry ID: {pk}, User: {self.describe_user(request)}")
            raise AuthorizationError('Only the buyer or an admin can delete this inquiry.')

        inquiry.delete()
        logger.info(f"Inquiry {pk} deleted. User: {self.describe_user(request)}")

        return success_response(message='Inquiry deleted.')


class InquiryRespondView(MarketplaceAPIView):
    """
    POST /api/inquiries/<id>/respond
    Request body: {"status": "accepted|rejected|countered", "response_message": "..."}

    Error responses:
    - 403: Caller is not the listing's seller
    - 409: Inquiry already answered, withdrawn or expired
    """

    def post(self, request, pk, *args, **kwargs):
        inquiry = get_inquiry(pk)

        serializer = InquiryRespondSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        inquiry = services.respond_to_inquiry(
            inquiry,
            request.user,
            serializer.validated_data['status'],
            serializer.validated_data['response_message'],
        )

        inquiry = get_inquiry(inquiry.pk)
        return success_response(data=InquirySerializer(inquiry).data)


class InquiryWithdrawView(MarketplaceAPIView):
    """POST /api/inquiries/<id>/withdraw"""

    def post(self, request, pk, *args, **kwargs):
        inquiry = services.withdraw_inquiry(get_inquiry(pk), request.user)
        return success_response(data=InquirySerializer(inquiry).data, message='Inquiry withdrawn.')


class ListingInquiriesView(MarketplaceAPIView):
    """GET /api/inquiries/listing/<listing_id> (listing seller or admin)"""

    def get(self, request, listing_id, *args, **kwargs):
        try:
            listing = NoteListing.objects.get(pk=listing_id)
        except NoteListing.DoesNotExist:
            raise NotFoundError(f'Note listing with ID {listing_id} does not exist.')

        if listing.seller_id != request.user.id and not request.user.is_admin():
            raise AuthorizationError('Only the listing seller can view its inquiries.')

        inquiries = Inquiry.objects.filter(note_listing=listing).select_related(
            'buyer', 'note_listing', 'transaction'
        )
        return success_response(data=InquirySerializer(inquiries, many=True).data)


class BuyerInquiriesView(MarketplaceAPIView):
    """GET /api/inquiries/buyer/<buyer_id> (that buyer or admin)"""

    def get(self, request, buyer_id, *args, **kwargs):
        if buyer_id != request.user.id and not request.user.is_admin():
            raise AuthorizationError('You can only view your own inquiries.')

        inquiries = Inquiry.objects.filter(buyer_id=buyer_id).select_related(
            'buyer', 'note_listing', 'transaction'
        )
        return success_response(data=InquirySerializer(inquiries, many=True).data)


class SellerInquiriesView(MarketplaceAPIView):
    """
    GET /api/inquiries/seller/<seller_id> (that seller or admin)

    All inquiries on the seller's listings, in one joined query.
    """

    def get(self, request, seller_id, *args, **kwargs):
        if seller_id != request.user.id and not request.user.is_admin():
            raise AuthorizationError('You can only view inquiries on your own listings.')

        inquiries = Inquiry.objects.filter(note_listing__seller_id=seller_id).select_related(
            'buyer', 'note_listing', 'transaction'
        )

        status_filter = request.query_params.get('status')
        if status_filter:
            inquiries = inquiries.filter(status=status_filter)

        return success_response(data=InquirySerializer(inquiries, many=True).data)


class InquiryStatsView(MarketplaceAPIView):
    """GET /api/inquiries/stats (admin)"""

    permission_classes = [IsAuthenticated, IsPlatformAdmin]

    def get(self, request, *args, **kwargs):
        return success_response(data=services.inquiry_stats())


# ============================================================================
# Access Request Views
# ============================================================================

class RequestAccessView(MarketplaceAPIView):
    """
    POST /api/request-access
    Request body: {"note_listing": 1, "request_type": "contact|document"}

    The buyer is the caller. An admin may pass "buyer" to file a request on
    someone's behalf. The request expires after ACCESS_REQUEST_TTL_HOURS.

    Error responses:
    - 403: "buyer" differs from the caller and the caller is not an admin
    - 409: An active request already exists for this buyer and listing
    """

    def post(self, request, *args, **kwargs):
        serializer = AccessRequestCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        buyer = request.user
        buyer_id = serializer.validated_data.get('buyer')
        if buyer_id is not None and buyer_id != request.user.id:
            if not request.user.is_admin():
                logger.warning(
                    f"Access request on behalf of another user rejected. "
                    f"Buyer ID: {buyer_id}, User: {self.describe_user(request)}"
                )
                raise AuthorizationError('You can only request access for yourself.')
            try:
                buyer = User.objects.get(pk=buyer_id)
            except User.DoesNotExist:
                raise NotFoundError(f'User with ID {buyer_id} does not exist.')

        access_request = services.request_access(
            buyer,
            serializer.validated_data['note_listing'],
            serializer.validated_data['request_type'],
        )

        return success_response(
            data=AccessRequestSerializer(access_request).data,
            message='Access requested.',
            status_code=status.HTTP_201_CREATED,
        )


class AccessRequestListView(MarketplaceAPIView):
    """
    GET /api/access-requests

    Pending requests past their expiry are marked expired before listing.
    """

    def get(self, request, *args, **kwargs):
        access_requests = services.access_requests_for(request.user)

        status_filter = request.query_params.get('status')
        if status_filter:
            access_requests = access_requests.filter(status=status_filter)

        listing_id = request.query_params.get('note_listing') or request.query_params.get('listing_id')
        if listing_id:
            if not str(listing_id).isdigit() or int(listing_id) > MAX_INTEGER:
                raise ValidationFailed('note_listing must be a listing ID.')
            access_requests = access_requests.filter(note_listing_id=int(listing_id))

        return success_response(data=AccessRequestSerializer(access_requests, many=True).data)


class AccessRequestUpdateView(MarketplaceAPIView):
    """
    PUT /api/access-requests/<id>
    Request body: {"status": "approved|rejected"}
    """

    def put(self, request, pk, *args, **kwargs):
        serializer = AccessRequestUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        access_request = services.decide_access_request(pk, request.user, serializer.validated_data['status'])

        return success_response(data=AccessRequestSerializer(access_request).data)

    def get(self, request, pk, *args, **kwargs):
        try:
            access_request = services.access_requests_for(request.user).get(pk=pk)
        except AccessRequest.DoesNotExist:
            raise NotFoundError(f'Access request with ID {pk} does not exist.')
        return success_response(data=AccessRequestSerializer(access_request).data)


# ============================================================================
# Transaction Views
# ============================================================================

class TransactionListCreateView(MarketplaceAPIView):
    """
    GET /api/transactions?role=buyer|seller&status=...&phase=...
    POST /api/transactions

    Creation is allowed for the buyer or the listing's seller named in the
    payload, or an admin. Default tasks are seeded and "Transaction created"
    is recorded on the timeline.
    """

    def get(self, request, *args, **kwargs):
        role = request.query_params.get('role')
        if role and role not in ('buyer', 'seller'):
            raise ValidationFailed('role must be "buyer" or "seller".')

        transactions = services.transactions_for(request.user, role=role)

        status_filter = request.query_params.get('status')
        if status_filter:
            transactions = transactions.filter(status=status_filter)

        phase = request.query_params.get('phase')
        if phase:
            transactions = transactions.filter(current_phase=phase)

        return success_response(data=NoteTransactionSerializer(transactions, many=True).data)

    def post(self, request, *args, **kwargs):
        serializer = NoteTransactionCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        data = dict(serializer.validated_data)
        listing = data.pop('note_listing')
        buyer = data.pop('buyer')

        if request.user.id not in (buyer.id, listing.seller_id) and not request.user.is_admin():
            logger.warning(
                f"Unauthorized transaction creation attempt. Listing ID: {listing.id}, "
                f"User: {self.describe_user(request)}"
            )
            raise AuthorizationError('Only the buyer, the seller or an admin can open a transaction.')

        initial_amount = data.pop('initial_amount', None) or listing.asking_price
        extra = {key: value for key, value in data.items() if value is not None}

        note_transaction = services.open_transaction(
            listing=listing,
            buyer=buyer,
            initial_amount=initial_amount,
            actor=request.user,
            **extra
        )

        return success_response(
            data=NoteTransactionDetailSerializer(note_transaction).data,
            message='Transaction created.',
            status_code=status.HTTP_201_CREATED,
        )


class TransactionDetailView(MarketplaceAPIView):
    """
    GET /api/transactions/<id>        Transaction with tasks and timeline.
    PUT|PATCH /api/transactions/<id>  Amounts, closing date, contract URL, notes.
    """

    def get(self, request, pk, *args, **kwargs):
        note_transaction = services.get_transaction_for(request.user, pk)
        return success_response(data=NoteTransactionDetailSerializer(note_transaction).data)

    def put(self, request, pk, *args, **kwargs):
        return self.update(request, pk)

    def patch(self, request, pk, *args, **kwargs):
        return self.update(request, pk)

    def update(self, request, pk):
        services.get_transaction_for(request.user, pk)

        serializer = NoteTransactionUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        note_transaction = services.update_transaction(pk, request.user, dict(serializer.validated_data))

        logger.info(f"Transaction {pk} updated. User: {self.describe_user(request)}")

        return success_response(data=NoteTransactionDetailSerializer(note_transaction).data)


class TransactionTaskListCreateView(MarketplaceAPIView):
    """
    GET /api/transactions/<id>/tasks?phase=...
    POST /api/transactions/<id>/tasks  (seller or admin)
    """

    def get(self, request, pk, *args, **kwargs):
        note_transaction = services.get_transaction_for(request.user, pk)
        tasks = note_transaction.tasks.select_related('assigned_to', 'completed_by')

        phase = request.query_params.get('phase')
        if phase:
            tasks = tasks.filter(phase=phase)

        return success_response(data=TransactionTaskSerializer(tasks, many=True).data)

    def post(self, request, pk, *args, **kwargs):
        note_transaction = services.get_transaction_for(request.user, pk)

        serializer = TransactionTaskCreateSerializer(
            data=request.data, context={'transaction': note_transaction}
        )
        serializer.is_valid(raise_exception=True)

        task = services.create_task(pk, request.user, dict(serializer.validated_data))

        return success_response(
            data=TransactionTaskSerializer(task).data,
            status_code=status.HTTP_201_CREATED,
        )


class TransactionTaskCompleteView(MarketplaceAPIView):
    """
    POST /api/transactions/<id>/tasks/<task_id>/complete

    Completing the last required task of the current phase advances the
    transaction. Access and assignee checks happen in services.complete_task.

    Success response (200):
    {"success": true, "data": {"task": {...}, "current_phase": "closing",
                               "status": "active", "phase_advanced": true}}
    """

    def post(self, request, pk, task_id, *args, **kwargs):
        task, note_transaction, advanced = services.complete_task(pk, task_id, request.user)

        return success_response(data={
            'task': TransactionTaskSerializer(task).data,
            'current_phase': note_transaction.current_phase,
            'status': note_transaction.status,
            'phase_advanced': advanced,
        })


class TransactionFileListCreateView(MarketplaceAPIView):
    """
    GET /api/transactions/<id>/files
    Admins and uploaders see every file; other parties only public ones.

    POST /api/transactions/<id>/files
    Request body: {"file_url", "file_name", "file_type", "file_size"?, "description"?,
                   "is_public"?, "category"?}
    """

    def get(self, request, pk, *args, **kwargs):
        note_transaction = services.get_transaction_for(request.user, pk)
        files = services.visible_files(note_transaction, request.user)
        return success_response(data=TransactionFileSerializer(files, many=True).data)

    def post(self, request, pk, *args, **kwargs):
        services.get_transaction_for(request.user, pk)

        serializer = TransactionFileSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        record = services.add_file(pk, request.user, dict(serializer.validated_data))

        logger.info(f"File {record.id} uploaded to transaction {pk}. User: {self.describe_user(request)}")

        return success_response(
            data=TransactionFileSerializer(record).data,
            status_code=status.HTTP_201_CREATED,
        )


class TransactionTimelineView(MarketplaceAPIView):
    """
    GET /api/transactions/<id>/timeline   Events in chronological order.
    POST /api/transactions/<id>/timeline  Manual note by a party or admin.
    """

    def get(self, request, pk, *args, **kwargs):
        note_transaction = services.get_transaction_for(request.user, pk)
        events = note_transaction.timeline_events.select_related('triggered_by')
        return success_response(data=TimelineEventSerializer(events, many=True).data)

    def post(self, request, pk, *args, **kwargs):
        note_transaction = services.get_transaction_for(request.user, pk)
        self.check_object(request, IsTransactionParty(), note_transaction)

        serializer = TimelineEventSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        with transaction.atomic():
            event = services.add_timeline_event(
                note_transaction,
                serializer.validated_data['event_description'],
                event_type=serializer.validated_data.get('event_type', 'info'),
                user=request.user,
                data=serializer.validated_data.get('event_data'),
            )

        return success_response(
            data=TimelineEventSerializer(event).data,
            status_code=status.HTTP_201_CREATED,
        )


# ============================================================================
# Waitlist Views
# ============================================================================

class WaitlistJoinView(MarketplaceAPIView):
    """
    POST /api/waitlist
    Request body: {"email": "...", "role": "buyer|seller|both"}

    Error response (409): email already on the waitlist
    """

    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'waitlist'

    def post(self, request, *args, **kwargs):
        serializer = WaitlistEntrySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        entry = services.join_waitlist(serializer.validated_data['email'], serializer.validated_data['role'])

        return success_response(
            data=WaitlistEntrySerializer(entry).data,
            message="You're on the list.",
            status_code=status.HTTP_201_CREATED,
        )


class WaitlistCountView(MarketplaceAPIView):
    """GET /api/waitlist/count"""

    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        return success_response(data={'count': WaitlistEntry.objects.count()})


class ValidateEmailView(MarketplaceAPIView):
    """
    POST /api/validate-email
    Request body: {"email": "..."}

    Format check used by the waitlist form before joining.
    """

    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'waitlist'

    def post(self, request, *args, **kwargs):
        serializer = EmailCheckSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return success_response(data={'valid': True})
