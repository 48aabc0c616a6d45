"""
Django admin configuration for the Note Marketplace models.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.utils.translation import gettext_lazy as _

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


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """
    Custom admin interface for User model.

    Extends Django's UserAdmin with role and profile fields.
    """

    list_display = [
        'email',
        'username',
        'role',
        'company',
        'is_staff',
        'is_active',
        'created_at',
    ]

    list_filter = [
        'role',
        'is_staff',
        'is_superuser',
        'is_active',
        'email_notifications',
        'created_at',
    ]

    search_fields = [
        'email',
        'username',
        'first_name',
        'last_name',
        'company',
    ]

    ordering = ['-created_at']

    fieldsets = (
        (None, {
            'fields': ('username', 'password')
        }),
        (_('Personal Info'), {
            'fields': (
                'first_name',
                'last_name',
                'email',
                'phone_number',
                'company',
                'location',
                'bio',
                'profile_image',
            )
        }),
        (_('Marketplace'), {
            'fields': ('role', 'email_notifications')
        }),
        (_('Permissions'), {
            'fields': (
                'is_active',
                'is_staff',
                'is_superuser',
                'groups',
                'user_permissions',
            ),
            'classes': ('collapse',),
        }),
        (_('Important Dates'), {
            'fields': ('last_login', 'date_joined', 'created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': (
                'username',
                'email',
                'password1',
                'password2',
                'role',
            ),
        }),
    )

    readonly_fields = ['created_at', 'updated_at', 'last_login', 'date_joined']

    date_hierarchy = 'created_at'

    list_per_page = 25

    def get_readonly_fields(self, request, obj=None):
        if obj:  # Editing an existing object
            return self.readonly_fields
        return []


# ============================================================================
# Listing Admin
# ============================================================================

@admin.register(NoteListing)
class NoteListingAdmin(admin.ModelAdmin):
    """Admin interface for NoteListing model."""

    list_display = [
        'id',
        'title',
        'seller',
        'status',
        'performance_status',
        'property_state',
        'asking_price',
        'interest_rate',
        'inquiry_count',
        'created_at',
    ]

    list_filter = [
        'status',
        'performance_status',
        'property_state',
        'featured',
        'is_secured',
        'created_at',
    ]

    search_fields = [
        'title',
        'description',
        'property_address',
        'property_city',
        'seller__email',
        'seller__username',
    ]

    readonly_fields = [
        'view_count', 'favorite_count', 'inquiry_count',
        'reviewed_by', 'reviewed_at', 'listed_at', 'created_at', 'updated_at',
    ]

    ordering = ['-created_at']

    date_hierarchy = 'created_at'

    list_per_page = 25

    fieldsets = (
        (None, {
            'fields': ('seller', 'title', 'note_type', 'performance_status', 'status', 'featured', 'is_public')
        }),
        (_('Loan'), {
            'fields': (
                'original_loan_amount', 'current_loan_amount', 'interest_rate',
                'original_loan_term', 'remaining_loan_term', 'monthly_payment_amount',
                'loan_origination_date', 'loan_maturity_date', 'payment_history',
                'amortization_type', 'payment_frequency',
            )
        }),
        (_('Property'), {
            'fields': (
                'property_address', 'property_city', 'property_state', 'property_zip_code',
                'property_county', 'property_type', 'property_value', 'loan_to_value_ratio',
                'property_description', 'is_secured', 'collateral_type',
            )
        }),
        (_('Pricing'), {
            'fields': ('asking_price', 'expected_yield', 'description', 'special_notes')
        }),
        (_('Review'), {
            'fields': ('reviewed_by', 'reviewed_at', 'rejection_reason', 'admin_notes')
        }),
        (_('Activity'), {
            'fields': ('view_count', 'favorite_count', 'inquiry_count', 'listed_at', 'created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )


@admin.register(Inquiry)
class InquiryAdmin(admin.ModelAdmin):
    """Admin interface for Inquiry model."""

    list_display = ['id', 'buyer', 'note_listing', 'status', 'offer_amount', 'responded_at', 'expires_at', 'created_at']

    list_filter = ['status', 'created_at']

    search_fields = ['buyer__email', 'note_listing__title', 'message']

    readonly_fields = ['responded_at', 'created_at', 'updated_at']

    ordering = ['-created_at']

    list_per_page = 25


@admin.register(AccessRequest)
class AccessRequestAdmin(admin.ModelAdmin):
    """Admin interface for AccessRequest model."""

    list_display = ['id', 'buyer', 'note_listing', 'request_type', 'status', 'requested_at', 'expires_at']

    list_filter = ['status', 'request_type']

    search_fields = ['buyer__email', 'note_listing__title']

    readonly_fields = ['requested_at', 'approved_at', 'rejected_at']

    ordering = ['-requested_at']

    list_per_page = 25


# ============================================================================
# Transaction Admin
# ============================================================================

class TransactionTaskInline(admin.TabularInline):
    """Inline admin for transaction tasks."""
    model = TransactionTask
    extra = 0
    fields = ['phase', 'title', 'status', 'is_required', 'assigned_to', 'display_order', 'completed_at']
    readonly_fields = ['completed_at']
    ordering = ['display_order']


class TimelineEventInline(admin.TabularInline):
    """Read-only inline for the audit trail."""
    model = TransactionTimelineEvent
    extra = 0
    fields = ['event_timestamp', 'event_type', 'event_description', 'triggered_by']
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(NoteTransaction)
class NoteTransactionAdmin(admin.ModelAdmin):
    """Admin interface for NoteTransaction model."""

    list_display = [
        'id',
        'note_listing',
        'buyer',
        'seller',
        'status',
        'current_phase',
        'initial_amount',
        'final_amount',
        'created_at',
    ]

    list_filter = [
        'status',
        'current_phase',
        'created_at',
    ]

    search_fields = [
        'buyer__email',
        'seller__email',
        'note_listing__title',
    ]

    readonly_fields = ['status', 'current_phase', 'created_at', 'updated_at', 'completed_at']

    ordering = ['-created_at']

    date_hierarchy = 'created_at'

    list_per_page = 25

    inlines = [TransactionTaskInline, TimelineEventInline]


@admin.register(NoteDocument)
class NoteDocumentAdmin(admin.ModelAdmin):
    """Admin interface for NoteDocument model."""

    list_display = ['id', 'file_name', 'note_listing', 'document_type', 'is_public', 'verification_status', 'uploaded_at']

    list_filter = ['document_type', 'is_public', 'verification_status']

    search_fields = ['file_name', 'note_listing__title', 'uploaded_by__email']

    readonly_fields = ['uploaded_at', 'verified_at']

    list_per_page = 50


@admin.register(TransactionFile)
class TransactionFileAdmin(admin.ModelAdmin):
    """Admin interface for TransactionFile model."""

    list_display = ['id', 'file_name', 'transaction', 'uploaded_by', 'category', 'is_public', 'is_verified', 'uploaded_at']

    list_filter = ['category', 'is_public', 'is_verified']

    search_fields = ['file_name', 'uploaded_by__email']

    readonly_fields = ['uploaded_at']

    list_per_page = 50

    def has_change_permission(self, request, obj=None):
        # Uploaded files are append-only
        return False


# ============================================================================
# Saved Search and Waitlist Admin
# ============================================================================

@admin.register(SavedSearch)
class SavedSearchAdmin(admin.ModelAdmin):
    list_display = ['id', 'name', 'user', 'is_active', 'total_matches', 'last_run_at', 'created_at']
    list_filter = ['is_active']
    search_fields = ['name', 'user__email']


@admin.register(WaitlistEntry)
class WaitlistEntryAdmin(admin.ModelAdmin):
    list_display = ['email', 'role', 'created_at']
    list_filter = ['role']
    search_fields = ['email']
    ordering = ['-created_at']
