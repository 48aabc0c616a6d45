"""
Authentication backend accepting either a username or an email address.
"""

from django.contrib.auth import get_user_model
from django.contrib.auth.backends import ModelBackend
from django.db.models import Q

User = get_user_model()


class EmailBackend(ModelBackend):
    """
    Authenticate with a username or an email address plus password.

    Email lookups are case-insensitive. Usernames are matched exactly.
    """

    def authenticate(self, request, username=None, password=None, **kwargs):
        """
        Args:
            request: HTTP request object
            username: Username or email address
            password: User password
            **kwargs: May carry ``email`` instead of ``username``

        Returns:
            User object if authentication successful, None otherwise
        """
        identifier = kwargs.get('email', username)

        if identifier is None or password is None:
            return None

        identifier = identifier.strip()
        user = User.objects.filter(
            Q(email__iexact=identifier) | Q(username=identifier)
        ).order_by('id').first()

        if user is None:
            # Run the default password hasher once to reduce the timing
            # difference between an existing and a nonexistent user
            User().set_password(password)
            return None

        if user.check_password(password) and self.user_can_authenticate(user):
            return user

        return None

    def get_user(self, user_id):
        try:
            return User.objects.get(pk=user_id)
        except User.DoesNotExist:
            return None
