"""
URL configuration for the note_marketplace project.
"""
from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.urls import path

from core.views import (
    AccessRequestListView,
    AccessRequestUpdateView,
    AdminListingApproveView,
    AdminListingQueueView,
    AdminListingRejectView,
    AdminStatsView,
    AdminTransactionStatsView,
    AdminUserDetailView,
    AdminUserListView,
    BuyerInquiriesView,
    InquiryCreateView,
    InquiryDetailView,
    InquiryRespondView,
    InquiryStatsView,
    InquiryWithdrawView,
    ListingDocumentsView,
    ListingInquiriesView,
    LoginView,
    LogoutView,
    MeView,
    NoteDocumentCreateView,
    NoteDocumentDetailView,
    NoteListingDetailView,
    NoteListingListCreateView,
    RequestAccessView,
    SavedSearchDetailView,
    SavedSearchListView,
    SellerInquiriesView,
    SellerListingsView,
    SignupView,
    TokenRefreshView,
    TransactionDetailView,
    TransactionFileListCreateView,
    TransactionListCreateView,
    TransactionTaskCompleteView,
    TransactionTaskListCreateView,
    TransactionTimelineView,
    ValidateEmailView,
    WaitlistCountView,
    WaitlistJoinView,
)


urlpatterns = [
    path('admin/', admin.site.urls),

    # Authentication endpoints
    path('api/auth/signup', SignupView.as_view(), name='auth_signup'),
    path('api/auth/login', LoginView.as_view(), name='auth_login'),
    path('api/auth/logout', LogoutView.as_view(), name='auth_logout'),
    path('api/auth/me', MeView.as_view(), name='auth_me'),
    path('api/auth/token/refresh', TokenRefreshView.as_view(), name='token_refresh'),

    # Note listing endpoints
    path('api/note-listings', NoteListingListCreateView.as_view(), name='note_listing_list'),
    path('api/note-listings/<int:pk>', NoteListingDetailView.as_view(), name='note_listing_detail'),
    path('api/note-listings/seller/<int:seller_id>', SellerListingsView.as_view(), name='seller_listings'),
    path('api/note-documents', NoteDocumentCreateView.as_view(), name='note_document_create'),
    path('api/note-documents/<int:pk>', NoteDocumentDetailView.as_view(), name='note_document_detail'),
    path(
        'api/note-documents/listing/<int:listing_id>',
        ListingDocumentsView.as_view(),
        name='listing_documents'
    ),
    path('api/saved-searches', SavedSearchListView.as_view(), name='saved_search_list'),
    path('api/saved-searches/<int:pk>', SavedSearchDetailView.as_view(), name='saved_search_detail'),

    # Inquiry endpoints
    path('api/inquiries', InquiryCreateView.as_view(), name='inquiry_create'),
    path('api/inquiries/stats', InquiryStatsView.as_view(), name='inquiry_stats'),
    path('api/inquiries/<int:pk>', InquiryDetailView.as_view(), name='inquiry_detail'),
    path('api/inquiries/<int:pk>/respond', InquiryRespondView.as_view(), name='inquiry_respond'),
    path('api/inquiries/<int:pk>/withdraw', InquiryWithdrawView.as_view(), name='inquiry_withdraw'),
    path('api/inquiries/listing/<int:listing_id>', ListingInquiriesView.as_view(), name='listing_inquiries'),
    path('api/inquiries/buyer/<int:buyer_id>', BuyerInquiriesView.as_view(), name='buyer_inquiries'),
    path('api/inquiries/seller/<int:seller_id>', SellerInquiriesView.as_view(), name='seller_inquiries'),

    # Access request endpoints
    path('api/request-access', RequestAccessView.as_view(), name='request_access'),
    path('api/access-requests', AccessRequestListView.as_view(), name='access_request_list'),
    path('api/access-requests/<int:pk>', AccessRequestUpdateView.as_view(), name='access_request_detail'),

    # Transaction endpoints
    path('api/transactions', TransactionListCreateView.as_view(), name='transaction_list'),
    path('api/transactions/<int:pk>', TransactionDetailView.as_view(), name='transaction_detail'),
    path('api/transactions/<int:pk>/tasks', TransactionTaskListCreateView.as_view(), name='transaction_tasks'),
    path(
        'api/transactions/<int:pk>/tasks/<int:task_id>/complete',
        TransactionTaskCompleteView.as_view(),
        name='transaction_task_complete'
    ),
    path('api/transactions/<int:pk>/files', TransactionFileListCreateView.as_view(), name='transaction_files'),
    path('api/transactions/<int:pk>/timeline', TransactionTimelineView.as_view(), name='transaction_timeline'),

    # Admin endpoints
    path('api/admin/listings', AdminListingQueueView.as_view(), name='admin_listing_queue'),
    path('api/admin/listings/<int:pk>/approve', AdminListingApproveView.as_view(), name='admin_listing_approve'),
    path('api/admin/listings/<int:pk>/reject', AdminListingRejectView.as_view(), name='admin_listing_reject'),
    path('api/admin/users', AdminUserListView.as_view(), name='admin_user_list'),
    path('api/admin/users/<int:pk>', AdminUserDetailView.as_view(), name='admin_user_detail'),
    path('api/admin/stats', AdminStatsView.as_view(), name='admin_stats'),
    path('api/admin/transactions/stats', AdminTransactionStatsView.as_view(), name='admin_transaction_stats'),

    # Waitlist endpoints
    path('api/waitlist', WaitlistJoinView.as_view(), name='waitlist_join'),
    path('api/waitlist/count', WaitlistCountView.as_view(), name='waitlist_count'),
    path('api/validate-email', ValidateEmailView.as_view(), name='validate_email'),
]

if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
