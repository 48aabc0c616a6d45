"""
Serializers for accounts, note listings, inquiries, access requests and transactions.
"""

from decimal import Decimal

from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import serializers

from .conf import marketplace_setting
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
    WaitlistEntry,
)

User = get_user_model()


# ============================================================================
# Account Serializers
# ============================================================================

class UserSummarySerializer(serializers.ModelSerializer):
    """Public view of a user embedded in other resources."""

    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'first_name', 'last_name', 'company']
        read_only_fields = fields


class UserSerializer(serializers.ModelSerializer):
    """
    Serializer for the authenticated user's own profile.

    Excludes sensitive fields (password, is_superuser, permissions).
    """

    profile_image_url = serializers.SerializerMethodField()
    is_admin = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            'id',
            'username',
            'email',
            'first_name',
            'last_name',
            'role',
            'is_admin',
            'phone_number',
            'company',
            'bio',
            'location',
            'profile_image_url',
            'email_notifications',
            'created_at',
        ]
        read_only_fields = fields

    def get_profile_image_url(self, obj):
        if obj.profile_image:
            request = self.context.get('request')
            if request is not None:
                return request.build_absolute_uri(obj.profile_image.url)
            return obj.profile_image.url
        return None

    def get_is_admin(self, obj):
        return obj.is_admin()


class AdminUserSerializer(UserSerializer):
    """User representation for admin user management."""

    class Meta(UserSerializer.Meta):
        fields = UserSerializer.Meta.fields + ['is_active', 'is_staff', 'last_login', 'date_joined', 'updated_at']
        read_only_fields = fields


class AdminUserUpdateSerializer(serializers.ModelSerializer):
    """
    Fields an admin may change on another account.

    Credentials, email and username are not editable here; any attempt to
    send them is rejected rather than silently dropped.
    """

    RESTRICTED_FIELDS = (
        'password', 'email', 'username', 'is_staff', 'is_superuser',
        'groups', 'user_permissions', 'last_login', 'date_joined',
    )

    class Meta:
        model = User
        fields = [
            'first_name', 'last_name', 'role', 'phone_number', 'company',
            'bio', 'location', 'email_notifications', 'is_active',
        ]

    def validate(self, attrs):
        restricted = sorted(set(self.initial_data.keys()) & set(self.RESTRICTED_FIELDS))
        if restricted:
            raise serializers.ValidationError(
                f'These fields cannot be changed by an admin: {", ".join(restricted)}.'
            )
        return attrs


class SignupSerializer(serializers.ModelSerializer):
    """
    Serializer for invite-only registration.

    Fields:
    - username, email: Required, unique (email case-insensitive)
    - password / confirm_password: Required, must match and pass Django's validators
    - invite_key: Required, must be one of the configured INVITE_KEYS
    - first_name, last_name, phone_number, company: Optional

    role, is_staff and is_superuser are never accepted from the client.
    """

    password = serializers.CharField(write_only=True, required=True, style={'input_type': 'password'})
    confirm_password = serializers.CharField(write_only=True, required=True, style={'input_type': 'password'})
    invite_key = serializers.CharField(write_only=True, required=True)

    class Meta:
        model = User
        fields = [
            'id', 'username', 'email', 'password', 'confirm_password', 'invite_key',
            'first_name', 'last_name', 'phone_number', 'company',
        ]
        read_only_fields = ['id']
        extra_kwargs = {
            'email': {'required': True},
        }

    def validate_email(self, value):
        value = value.strip().lower()

        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError("A user with that email already exists.")

        return value

    def validate_invite_key(self, value):
        if value.strip() not in marketplace_setting('INVITE_KEYS'):
            raise serializers.ValidationError("Invalid invite key.")
        return value

    def validate_password(self, value):
        try:
            validate_password(value)
        except DjangoValidationError as e:
            raise serializers.ValidationError(list(e.messages))
        return value

    def validate(self, attrs):
        if attrs.get('password') != attrs.get('confirm_password'):
            raise serializers.ValidationError({
                'confirm_password': 'Password confirmation does not match.'
            })
        return attrs

    def create(self, validated_data):
        from django.db import transaction

        validated_data.pop('confirm_password', None)
        validated_data.pop('invite_key', None)
        password = validated_data.pop('password')

        with transaction.atomic():
            user = User.objects.create_user(password=password, role='user', **validated_data)

        return user


class LoginSerializer(serializers.Serializer):
    """
    Login with a username or an email address.

    Minimal validation to prevent user enumeration attacks.
    Actual authentication happens in the view.
    """

    username = serializers.CharField(required=False, allow_blank=True, help_text='Username or email address')
    email = serializers.CharField(required=False, allow_blank=True)
    password = serializers.CharField(required=True, write_only=True, style={'input_type': 'password'})

    def validate(self, attrs):
        identifier = (attrs.get('username') or attrs.get('email') or '').strip()
        if not identifier:
            raise serializers.ValidationError('A username or email address is required.')
        attrs['identifier'] = identifier
        return attrs


class RefreshTokenSerializer(serializers.Serializer):
    refresh = serializers.CharField(required=True, help_text='Refresh token')


# ============================================================================
# Note Listing Serializers
# ============================================================================

class NoteListingSerializer(serializers.ModelSerializer):
    """Full read representation of a note listing."""

    seller = UserSummarySerializer(read_only=True)

    class Meta:
        model = NoteListing
        fields = [
            'id', 'seller', 'title', 'note_type', 'performance_status',
            'original_loan_amount', 'current_loan_amount', 'interest_rate',
            'original_loan_term', 'remaining_loan_term', 'monthly_payment_amount',
            'loan_origination_date', 'loan_maturity_date', 'payment_history',
            'property_address', 'property_city', 'property_state', 'property_zip_code',
            'property_county', 'property_type', 'property_value', 'loan_to_value_ratio',
            'property_description', 'is_secured', 'collateral_type',
            'asking_price', 'expected_yield', 'amortization_type', 'payment_frequency',
            'status', 'featured', 'is_public', 'description', 'special_notes',
            'reviewed_at', 'rejection_reason',
            'view_count', 'favorite_count', 'inquiry_count',
            'listed_at', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class NoteListingWriteSerializer(serializers.ModelSerializer):
    """
    Serializer for creating and editing note listings.

    The seller comes from the authenticated user. Sellers may only choose
    draft or pending as a status; review outcomes are set by admins.

    Cross-field rules:
    - current_loan_amount <= original_loan_amount
    - remaining_loan_term <= original_loan_term
    - loan_maturity_date > loan_origination_date
    """

    status = serializers.ChoiceField(choices=['draft', 'pending'], required=False)

    class Meta:
        model = NoteListing
        fields = [
            'title', 'note_type', 'performance_status',
            'original_loan_amount', 'current_loan_amount', 'interest_rate',
            'original_loan_term', 'remaining_loan_term', 'monthly_payment_amount',
            'loan_origination_date', 'loan_maturity_date', 'payment_history',
            'property_address', 'property_city', 'property_state', 'property_zip_code',
            'property_county', 'property_type', 'property_value', 'loan_to_value_ratio',
            'property_description', 'is_secured', 'collateral_type',
            'asking_price', 'expected_yield', 'amortization_type', 'payment_frequency',
            'status', 'is_public', 'description', 'special_notes',
        ]

    def validate_property_state(self, value):
        return value.strip().upper()

    def _current(self, attrs, field):
        if field in attrs:
            return attrs[field]
        if self.instance is not None:
            return getattr(self.instance, field)
        return None

    def validate(self, attrs):
        original_amount = self._current(attrs, 'original_loan_amount')
        current_amount = self._current(attrs, 'current_loan_amount')
        if original_amount is not None and current_amount is not None and current_amount > original_amount:
            raise serializers.ValidationError({
                'current_loan_amount': 'Current loan amount cannot exceed the original loan amount.'
            })

        original_term = self._current(attrs, 'original_loan_term')
        remaining_term = self._current(attrs, 'remaining_loan_term')
        if original_term is not None and remaining_term is not None and remaining_term > original_term:
            raise serializers.ValidationError({
                'remaining_loan_term': 'Remaining loan term cannot exceed the original loan term.'
            })

        originated = self._current(attrs, 'loan_origination_date')
        matures = self._current(attrs, 'loan_maturity_date')
        if originated and matures and matures <= originated:
            raise serializers.ValidationError({
                'loan_maturity_date': 'Maturity date must be after the origination date.'
            })

        return attrs


class ListingReviewSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default='')
    admin_notes = serializers.CharField(required=False, allow_blank=True, default='')


class AdminNoteListingSerializer(NoteListingSerializer):
    """Listing representation for the review queue, including admin-only fields."""

    reviewed_by = UserSummarySerializer(read_only=True)

    class Meta(NoteListingSerializer.Meta):
        fields = NoteListingSerializer.Meta.fields + ['reviewed_by', 'admin_notes']
        read_only_fields = fields


# ============================================================================
# Note Document Serializers
# ============================================================================

class NoteDocumentSerializer(serializers.ModelSerializer):
    uploaded_by = UserSummarySerializer(read_only=True)
    verified_by = UserSummarySerializer(read_only=True)

    class Meta:
        model = NoteDocument
        fields = [
            'id', 'note_listing', 'uploaded_by', 'document_type', 'document_url',
            'file_name', 'file_size', 'description', 'is_public',
            'verification_status', 'verified_by', 'verified_at', 'uploaded_at',
        ]
        read_only_fields = fields


class NoteDocumentCreateSerializer(serializers.ModelSerializer):
    """
    Fields:
    - note_listing (alias listing_id / note_listing_id): Required listing ID
    - document_type, document_url, file_name, file_size: Required
    - description, is_public: Optional
    - verification_status: Optional, only admins may set anything but pending
    """

    note_listing = serializers.PrimaryKeyRelatedField(queryset=NoteListing.objects.all())

    class Meta:
        model = NoteDocument
        fields = [
            'note_listing', 'document_type', 'document_url', 'file_name', 'file_size',
            'description', 'is_public', 'verification_status',
        ]
        extra_kwargs = {
            'verification_status': {'required': False},
        }

    def to_internal_value(self, data):
        if hasattr(data, 'copy'):
            data = data.copy()
        for alias in ('note_listing_id', 'listing_id'):
            if 'note_listing' not in data and alias in data:
                data['note_listing'] = data[alias]
        return super().to_internal_value(data)

    def validate_file_name(self, value):
        if not value or not value.strip():
            raise serializers.ValidationError("File name cannot be empty.")
        return value.strip()


class NoteDocumentUpdateSerializer(serializers.ModelSerializer):
    class Meta:
        model = NoteDocument
        fields = ['document_type', 'description', 'is_public', 'verification_status']


# ============================================================================
# Saved Search Serializers
# ============================================================================

class SavedSearchSerializer(serializers.ModelSerializer):
    class Meta:
        model = SavedSearch
        fields = ['id', 'name', 'criteria', 'is_active', 'total_matches', 'last_run_at', 'created_at']
        read_only_fields = fields


# ============================================================================
# Inquiry Serializers
# ============================================================================

class InquiryListingSerializer(serializers.ModelSerializer):
    class Meta:
        model = NoteListing
        fields = ['id', 'title', 'status', 'asking_price', 'property_state', 'seller_id']
        read_only_fields = fields


class InquirySerializer(serializers.ModelSerializer):
    """Read representation of an inquiry with buyer and listing summaries."""

    buyer = UserSummarySerializer(read_only=True)
    note_listing = InquiryListingSerializer(read_only=True)
    transaction_id = serializers.SerializerMethodField()

    class Meta:
        model = Inquiry
        fields = [
            'id', 'buyer', 'note_listing', 'message', 'offer_amount', 'status',
            'response_message', 'responded_at', 'expires_at', 'transaction_id',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields

    def get_transaction_id(self, obj):
        note_transaction = getattr(obj, 'transaction', None)
        return note_transaction.pk if note_transaction else None


class InquiryCreateSerializer(serializers.Serializer):
    """
    Fields:
    - note_listing: Required listing ID (``note_listing_id`` and ``listing_id`` also accepted)
    - message: Required, cannot be whitespace only
    - offer_amount: Optional, positive
    """

    note_listing = serializers.IntegerField(required=True)
    message = serializers.CharField(required=True, allow_blank=False, trim_whitespace=True)
    offer_amount = serializers.DecimalField(
        max_digits=14, decimal_places=2, required=False, allow_null=True, min_value=Decimal('0.01')
    )

    def to_internal_value(self, data):
        if hasattr(data, 'copy'):
            data = data.copy()
        for alias in ('note_listing_id', 'listing_id'):
            if 'note_listing' not in data and alias in data:
                data['note_listing'] = data[alias]
        return super().to_internal_value(data)

    def validate_note_listing(self, value):
        try:
            return NoteListing.objects.select_related('seller').get(pk=value)
        except NoteListing.DoesNotExist:
            raise serializers.ValidationError(f'Note listing with ID {value} does not exist.')


class InquiryUpdateSerializer(serializers.Serializer):
    """Buyer edits. Only message and offer_amount are accepted."""

    message = serializers.CharField(required=False, allow_blank=False, trim_whitespace=True)
    offer_amount = serializers.DecimalField(
        max_digits=14, decimal_places=2, required=False, allow_null=True, min_value=Decimal('0.01')
    )

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError('Provide a message or an offer_amount to update.')
        return attrs


class InquiryRespondSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Inquiry.RESPONSE_STATUSES)
    response_message = serializers.CharField(required=True, allow_blank=False, trim_whitespace=True)


# ============================================================================
# Access Request Serializers
# ============================================================================

class AccessRequestSerializer(serializers.ModelSerializer):
    buyer = UserSummarySerializer(read_only=True)
    note_listing = InquiryListingSerializer(read_only=True)

    class Meta:
        model = AccessRequest
        fields = [
            'id', 'buyer', 'note_listing', 'request_type', 'status',
            'requested_at', 'approved_at', 'rejected_at', 'expires_at',
        ]
        read_only_fields = fields


class AccessRequestCreateSerializer(serializers.Serializer):
    """
    Fields:
    - note_listing: Required listing ID
    - request_type: 'contact' (default) or 'document'
    - buyer: Optional; must match the caller unless the caller is an admin

    Client-supplied status or expires_at values are ignored.
    """

    note_listing = serializers.IntegerField(required=True)
    request_type = serializers.ChoiceField(choices=['contact', 'document'], default='contact')
    buyer = serializers.IntegerField(required=False)

    def to_internal_value(self, data):
        if hasattr(data, 'copy'):
            data = data.copy()
        for alias in ('note_listing_id', 'listing_id'):
            if 'note_listing' not in data and alias in data:
                data['note_listing'] = data[alias]
        if 'buyer' not in data and 'buyer_id' in data:
            data['buyer'] = data['buyer_id']
        return super().to_internal_value(data)


class AccessRequestUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=['approved', 'rejected'])

    def validate(self, attrs):
        unexpected = set(self.initial_data.keys()) - {'status'}
        if unexpected:
            raise serializers.ValidationError(
                f'Only the status field can be updated. Unexpected: {", ".join(sorted(unexpected))}.'
            )
        return attrs


# ============================================================================
# Transaction Serializers
# ============================================================================

class TransactionTaskSerializer(serializers.ModelSerializer):
    assigned_to = UserSummarySerializer(read_only=True)
    completed_by = UserSummarySerializer(read_only=True)

    class Meta:
        model = TransactionTask
        fields = [
            'id', 'task_identifier', 'phase', 'title', 'description', 'status',
            'is_required', 'assigned_to', 'display_order', 'completed_by',
            'completed_at', 'created_at',
        ]
        read_only_fields = fields


class TransactionTaskCreateSerializer(serializers.ModelSerializer):
    """
    Fields:
    - title, phase: Required (phase is negotiations or closing)
    - description, is_required, display_order, task_identifier: Optional
    - assigned_to: Optional user ID; must be the buyer or seller
    """

    assigned_to = serializers.PrimaryKeyRelatedField(
        queryset=User.objects.all(), required=False, allow_null=True
    )

    class Meta:
        model = TransactionTask
        fields = ['task_identifier', 'phase', 'title', 'description', 'is_required', 'assigned_to', 'display_order']
        extra_kwargs = {
            'display_order': {'required': False},
        }

    def validate_title(self, value):
        if not value or not value.strip():
            raise serializers.ValidationError("Title cannot be empty or whitespace only.")
        return value.strip()

    def validate_assigned_to(self, value):
        note_transaction = self.context.get('transaction')
        if value is not None and note_transaction is not None and not note_transaction.is_party(value):
            raise serializers.ValidationError('Tasks can only be assigned to the buyer or seller.')
        return value


class TransactionFileSerializer(serializers.ModelSerializer):
    uploaded_by = UserSummarySerializer(read_only=True)

    class Meta:
        model = TransactionFile
        fields = [
            'id', 'uploaded_by', 'file_url', 'file_name', 'file_type', 'file_size',
            'description', 'is_public', 'category', 'is_verified', 'uploaded_at',
        ]
        read_only_fields = ['id', 'uploaded_by', 'is_verified', 'uploaded_at']


class TimelineEventSerializer(serializers.ModelSerializer):
    triggered_by = UserSummarySerializer(read_only=True)

    class Meta:
        model = TransactionTimelineEvent
        fields = [
            'id', 'event_description', 'event_type', 'triggered_by', 'event_data',
            'related_task', 'related_file', 'event_timestamp',
        ]
        read_only_fields = ['id', 'triggered_by', 'related_task', 'related_file', 'event_timestamp']

    def validate_event_description(self, value):
        if not value or not value.strip():
            raise serializers.ValidationError("Event description cannot be empty.")
        return value.strip()


class NoteTransactionSerializer(serializers.ModelSerializer):
    """Transaction summary used in lists."""

    buyer = UserSummarySerializer(read_only=True)
    seller = UserSummarySerializer(read_only=True)
    note_listing = InquiryListingSerializer(read_only=True)

    class Meta:
        model = NoteTransaction
        fields = [
            'id', 'note_listing', 'buyer', 'seller', 'inquiry', 'initial_amount',
            'final_amount', 'platform_fee', 'status', 'current_phase', 'closing_date',
            'contract_url', 'notes', 'created_at', 'updated_at', 'completed_at',
        ]
        read_only_fields = fields


class NoteTransactionDetailSerializer(NoteTransactionSerializer):
    """Transaction with its tasks and timeline."""

    tasks = TransactionTaskSerializer(many=True, read_only=True)
    timeline_events = TimelineEventSerializer(many=True, read_only=True)

    class Meta(NoteTransactionSerializer.Meta):
        fields = NoteTransactionSerializer.Meta.fields + ['tasks', 'timeline_events']
        read_only_fields = fields


class NoteTransactionCreateSerializer(serializers.Serializer):
    """
    Fields:
    - note_listing: Required listing ID; the seller is the listing's seller
    - buyer: Required user ID
    - initial_amount: Optional, defaults to the listing's asking price
    - final_amount, closing_date, contract_url, notes: Optional
    """

    note_listing = serializers.PrimaryKeyRelatedField(queryset=NoteListing.objects.all())
    buyer = serializers.PrimaryKeyRelatedField(queryset=User.objects.all())
    initial_amount = serializers.DecimalField(
        max_digits=14, decimal_places=2, required=False, min_value=Decimal('0.01')
    )
    final_amount = serializers.DecimalField(
        max_digits=14, decimal_places=2, required=False, allow_null=True, min_value=Decimal('0.01')
    )
    closing_date = serializers.DateField(required=False, allow_null=True)
    contract_url = serializers.URLField(required=False, allow_blank=True, max_length=500)
    notes = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        if attrs['buyer'].pk == attrs['note_listing'].seller_id:
            raise serializers.ValidationError({'buyer': 'Buyer and seller cannot be the same user.'})
        if attrs['note_listing'].status != 'active':
            raise serializers.ValidationError({'note_listing': 'Transactions can only be opened on active listings.'})
        return attrs


class NoteTransactionUpdateSerializer(serializers.ModelSerializer):
    """Editable transaction details. Phase and status are never writable."""

    class Meta:
        model = NoteTransaction
        fields = ['final_amount', 'platform_fee', 'closing_date', 'contract_url', 'notes']


# ============================================================================
# Waitlist Serializers
# ============================================================================

class WaitlistEntrySerializer(serializers.ModelSerializer):
    class Meta:
        model = WaitlistEntry
        fields = ['id', 'email', 'role', 'created_at']
        read_only_fields = ['id', 'created_at']
        extra_kwargs = {
            # Duplicates are reported as 409 by the view, not as a field error
            'email': {'validators': []},
        }


class EmailCheckSerializer(serializers.Serializer):
    email = serializers.EmailField(
        error_messages={
            'invalid': 'Please enter a valid email address.',
            'required': 'Please enter a valid email address.',
            'blank': 'Please enter a valid email address.',
        }
    )
