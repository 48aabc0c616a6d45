"""
Custom permission classes for the Note Marketplace.
"""

from rest_framework import permissions


class IsPlatformAdmin(permissions.BasePermission):
    """
    Permission class that allows only platform admins to access the endpoint.

    A user is an admin when role='admin' or is_staff=True.
    Returns 403 Forbidden for everyone else.

    Usage:
        class MyView(APIView):
            permission_classes = [IsAuthenticated, IsPlatformAdmin]
    """

    message = 'You do not have permission to perform this action. Admin privileges required.'

    def has_permission(self, request, view):
        """
        Check if user is authenticated and is a platform admin.

        Returns:
            bool: True if user is admin, False otherwise
        """
        if not request.user or not request.user.is_authenticated:
            return False

        return request.user.is_admin()


class IsListingSellerOrAdmin(permissions.BasePermission):
    """
    Object-level permission for editing or deleting a note listing.

    Only the listing's seller or a platform admin may modify it.
    """

    message = 'You do not have permission to modify this listing.'

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated)

    def has_object_permission(self, request, view, obj):
        if request.user.is_admin():
            return True
        return obj.seller_id == request.user.id


class IsInquiryParticipant(permissions.BasePermission):
    """
    Object-level permission for reading an inquiry.

    Allowed: the buyer who sent it, the seller of the listing, and admins.
    """

    message = 'You do not have permission to view this inquiry.'

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated)

    def has_object_permission(self, request, view, obj):
        if request.user.is_admin():
            return True
        return request.user.id in (obj.buyer_id, obj.note_listing.seller_id)


class IsTransactionParty(permissions.BasePermission):
    """
    Object-level permission for transaction resources.

    Allowed: the buyer, the seller, and admins. Tasks, files and timeline
    events are checked against their parent transaction.

    Usage:
        class TransactionDetailView(APIView):
            permission_classes = [IsAuthenticated, IsTransactionParty]
    """

    message = 'You do not have access to this transaction.'

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated)

    def has_object_permission(self, request, view, obj):
        if request.user.is_admin():
            return True

        note_transaction = getattr(obj, 'transaction', obj)
        return note_transaction.is_party(request.user)

