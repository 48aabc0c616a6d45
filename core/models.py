"""
Models for the Note Marketplace.
"""

from decimal import Decimal

from django.contrib.auth.models import AbstractUser
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models
from django.utils import timezone
from django.utils.text import slugify
from django.utils.translation import gettext_lazy as _

from .validators import validate_phone_number, validate_profile_image, validate_state_code


def user_profile_image_upload_path(instance, filename):
    """
    Generate upload path for user profile images.

    Path format: profile_images/{user_id}/{filename}
    If user_id is not yet available (user not saved), uses 'temp' as placeholder.
    """
    user_id = instance.id if instance.id else 'temp'
    return f'profile_images/{user_id}/{filename}'


class User(AbstractUser):
    """
    Custom User model extending Django's AbstractUser.

    Buyer and seller are positions relative to a listing or transaction,
    not account types. The only account-level role is platform admin.

    Additional fields:
    - email: Required, unique email address
    - role: Either 'user' or 'admin'
    - phone_number: Optional phone number with validation
    - company: Optional company name
    - bio / location: Optional profile details
    - profile_image: Optional profile picture
    - email_notifications: Whether the user receives marketplace emails
    - created_at / updated_at: Timestamps
    """

    ROLE_CHOICES = [
        ('user', 'User'),
        ('admin', 'Admin'),
    ]

    email = models.EmailField(
        _('email address'),
        unique=True,
        blank=False,
        null=False,
        error_messages={
            'unique': _('A user with that email already exists.'),
        },
        help_text=_('Required. Enter a valid email address.')
    )

    role = models.CharField(
        _('role'),
        max_length=10,
        choices=ROLE_CHOICES,
        default='user',
        help_text=_('Platform role. Admins can review listings and see all records.')
    )

    phone_number = models.CharField(
        _('phone number'),
        max_length=20,
        blank=True,
        default='',
        validators=[validate_phone_number],
        help_text=_('Optional. Enter phone number in international format.')
    )

    company = models.CharField(
        _('company'),
        max_length=200,
        blank=True,
        default='',
    )

    bio = models.TextField(_('bio'), blank=True, default='')

    location = models.CharField(_('location'), max_length=200, blank=True, default='')

    profile_image = models.ImageField(
        _('profile image'),
        upload_to=user_profile_image_upload_path,
        blank=True,
        null=True,
        validators=[validate_profile_image],
        help_text=_('Optional. Upload a profile picture (max 5MB, formats: jpg, png, webp).')
    )

    email_notifications = models.BooleanField(
        _('email notifications'),
        default=True,
        help_text=_('Whether the user receives marketplace notification emails.')
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('user')
        verbose_name_plural = _('users')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['email'], name='user_email_idx'),
            models.Index(fields=['role'], name='user_role_idx'),
        ]

    def __str__(self):
        return self.email or self.username

    def is_admin(self):
        """
        Check if user has platform admin rights.

        Returns:
            bool: True for role 'admin' or Django staff users
        """
        return self.role == 'admin' or self.is_staff

    def clean(self):
        super().clean()

        # Normalize email to lowercase for case-insensitive uniqueness
        if self.email:
            self.email = self.email.lower()

        if not self.email:
            raise ValidationError({
                'email': _('Email address is required.')
            })

    def save(self, *args, **kwargs):
        """
        Normalize email and validate updates.

        Creation skips full_clean so duplicate emails surface as
        IntegrityError from the database.
        """
        if self.email:
            self.email = self.email.lower()

        if self.pk is not None:
            self.full_clean()

        super().save(*args, **kwargs)


# ============================================================================
# Note Listings
# ============================================================================

class NoteListing(models.Model):
    """
    A mortgage note offered for sale.

    Status lifecycle: draft -> pending -> active -> sold, or pending -> rejected.
    Listings never move backward. Admin review moves pending listings to
    active or rejected; a completed transaction moves an active listing to sold.
    """

    STATUS_CHOICES = [
        ('draft', 'Draft'),
        ('pending', 'Pending Review'),
        ('active', 'Active'),
        ('sold', 'Sold'),
        ('rejected', 'Rejected'),
    ]

    VALID_TRANSITIONS = {
        'draft': ['pending'],
        'pending': ['active', 'rejected'],
        'active': ['sold'],
        'sold': [],  # Terminal state
        'rejected': [],  # Terminal state
    }

    PERFORMANCE_STATUS_CHOICES = [
        ('performing', 'Performing'),
        ('non-performing', 'Non-Performing'),
        ('sub-performing', 'Sub-Performing'),
        ('re-performing', 'Re-Performing'),
    ]

    PAYMENT_FREQUENCY_CHOICES = [
        ('monthly', 'Monthly'),
        ('quarterly', 'Quarterly'),
        ('semi-annually', 'Semi-Annually'),
        ('annually', 'Annually'),
    ]

    seller = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='note_listings',
        help_text=_('User selling this note')
    )

    title = models.CharField(
        _('title'),
        max_length=200,
        blank=True,
        help_text=_('Defaults to "Property Note in <state>"')
    )

    note_type = models.CharField(
        _('note type'),
        max_length=100,
        help_text=_('For example Residential Mortgage or Commercial Mortgage')
    )

    performance_status = models.CharField(
        _('performance status'),
        max_length=20,
        choices=PERFORMANCE_STATUS_CHOICES,
    )

    # Loan details
    original_loan_amount = models.DecimalField(
        _('original loan amount'),
        max_digits=14,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )

    current_loan_amount = models.DecimalField(
        _('current loan amount'),
        max_digits=14,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text=_('Unpaid principal balance. Cannot exceed the original amount.')
    )

    interest_rate = models.DecimalField(
        _('interest rate'),
        max_digits=6,
        decimal_places=3,
        validators=[
            MinValueValidator(Decimal('0.000')),
            MaxValueValidator(Decimal('100.000'))
        ],
        help_text=_('Annual interest rate in percent')
    )

    original_loan_term = models.PositiveIntegerField(
        _('original loan term'),
        help_text=_('Term in months')
    )

    remaining_loan_term = models.PositiveIntegerField(
        _('remaining loan term'),
        help_text=_('Remaining term in months')
    )

    monthly_payment_amount = models.DecimalField(
        _('monthly payment amount'),
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))]
    )

    loan_origination_date = models.DateField(_('loan origination date'), null=True, blank=True)

    loan_maturity_date = models.DateField(_('loan maturity date'), null=True, blank=True)

    payment_history = models.PositiveIntegerField(
        _('payment history'),
        null=True,
        blank=True,
        help_text=_('Number of consecutive on-time payments')
    )

    # Property details
    property_address = models.CharField(_('property address'), max_length=300)

    property_city = models.CharField(_('property city'), max_length=100, blank=True, default='')

    property_state = models.CharField(
        _('property state'),
        max_length=2,
        validators=[validate_state_code],
        help_text=_('Two-letter state code')
    )

    property_zip_code = models.CharField(_('property zip code'), max_length=10, blank=True, default='')

    property_county = models.CharField(_('property county'), max_length=100, blank=True, default='')

    property_type = models.CharField(
        _('property type'),
        max_length=100,
        help_text=_('For example Single Family, Condo or Land')
    )

    property_value = models.DecimalField(
        _('property value'),
        max_digits=14,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal('0.00'))]
    )

    loan_to_value_ratio = models.DecimalField(
        _('loan to value ratio'),
        max_digits=6,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text=_('Percent. Computed from current amount and property value when omitted.')
    )

    property_description = models.TextField(_('property description'), blank=True, default='')

    # Security and collateral
    is_secured = models.BooleanField(_('is secured'), default=True)

    collateral_type = models.CharField(_('collateral type'), max_length=100, blank=True, default='')

    # Financial details
    asking_price = models.DecimalField(
        _('asking price'),
        max_digits=14,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )

    expected_yield = models.DecimalField(
        _('expected yield'),
        max_digits=6,
        decimal_places=3,
        null=True,
        blank=True,
    )

    amortization_type = models.CharField(_('amortization type'), max_length=50, blank=True, default='')

    payment_frequency = models.CharField(
        _('payment frequency'),
        max_length=20,
        choices=PAYMENT_FREQUENCY_CHOICES,
        default='monthly'
    )

    # Listing status and visibility
    status = models.CharField(
        _('status'),
        max_length=20,
        choices=STATUS_CHOICES,
        default='pending',
    )

    featured = models.BooleanField(_('featured'), default=False)

    is_public = models.BooleanField(_('is public'), default=True)

    description = models.TextField(_('description'), blank=True, default='')

    special_notes = models.TextField(_('special notes'), blank=True, default='')

    # Admin review
    reviewed_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='reviewed_listings',
    )

    reviewed_at = models.DateTimeField(_('reviewed at'), null=True, blank=True)

    rejection_reason = models.TextField(_('rejection reason'), blank=True, default='')

    admin_notes = models.TextField(_('admin notes'), blank=True, default='')

    # Counters, maintained with F() updates
    view_count = models.PositiveIntegerField(_('view count'), default=0)

    favorite_count = models.PositiveIntegerField(_('favorite count'), default=0)

    inquiry_count = models.PositiveIntegerField(
        _('inquiry count'),
        default=0,
        help_text=_('Lifetime number of inquiries received. Not decremented on delete.')
    )

    listed_at = models.DateTimeField(_('listed at'), null=True, blank=True)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('note listing')
        verbose_name_plural = _('note listings')
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['seller'], name='listing_seller_idx'),
            models.Index(fields=['status'], name='listing_status_idx'),
            models.Index(fields=['property_state'], name='listing_state_idx'),
            models.Index(fields=['asking_price'], name='listing_price_idx'),
            models.Index(fields=['interest_rate'], name='listing_rate_idx'),
            models.Index(fields=['created_at'], name='listing_created_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(current_loan_amount__lte=models.F('original_loan_amount')),
                name='current_amount_not_above_original',
            ),
        ]

    def __str__(self):
        return self.title

    def clean(self):
        """
        Validate model fields and status transitions.

        Ensures:
        - Title defaults to "Property Note in <state>"
        - Current loan amount does not exceed the original amount
        - Remaining term does not exceed the original term
        - Maturity date is after origination date
        - Status transitions follow VALID_TRANSITIONS

        Raises:
            ValidationError: If validation fails
        """
        super().clean()

        if (self.current_loan_amount is not None and self.original_loan_amount is not None
                and self.current_loan_amount > self.original_loan_amount):
            raise ValidationError({
                'current_loan_amount': _('Current loan amount cannot exceed the original loan amount.')
            })

        if (self.remaining_loan_term is not None and self.original_loan_term is not None
                and self.remaining_loan_term > self.original_loan_term):
            raise ValidationError({
                'remaining_loan_term': _('Remaining loan term cannot exceed the original loan term.')
            })

        if (self.loan_origination_date and self.loan_maturity_date
                and self.loan_maturity_date <= self.loan_origination_date):
            raise ValidationError({
                'loan_maturity_date': _('Maturity date must be after the origination date.')
            })

        if self.status == 'rejected' and not (self.rejection_reason or '').strip():
            raise ValidationError({
                'rejection_reason': _('A rejection reason is required.')
            })

        if self.pk is not None:
            try:
                old_status = NoteListing.objects.values_list('status', flat=True).get(pk=self.pk)
            except NoteListing.DoesNotExist:
                old_status = None

            if old_status and old_status != self.status:
                if self.status not in self.VALID_TRANSITIONS.get(old_status, []):
                    raise ValidationError({
                        'status': _(
                            f'Invalid listing status transition from {old_status} to {self.status}.'
                        )
                    })

    def save(self, *args, **kwargs):
        if self.property_state:
            self.property_state = self.property_state.strip().upper()

        if not self.title or not self.title.strip():
            self.title = f'Property Note in {self.property_state}'

        if self.loan_to_value_ratio is None and self.property_value and self.current_loan_amount is not None:
            ratio = (Decimal(self.current_loan_amount) / Decimal(self.property_value)) * 100
            self.loan_to_value_ratio = ratio.quantize(Decimal('0.01'))

        if self.status == 'active' and self.listed_at is None:
            self.listed_at = timezone.now()

        self.full_clean()
        super().save(*args, **kwargs)

    def can_transition_to(self, new_status):
        """
        Check if transition to new status is valid.

        Returns:
            bool: True if transition is valid, False otherwise
        """
        return new_status == self.status or new_status in self.VALID_TRANSITIONS.get(self.status, [])

    def is_active(self):
        return self.status == 'active'


class NoteDocument(models.Model):
    """
    Diligence document attached to a listing by its seller.

    Private documents are shown only to the seller, admins, buyers with an
    approved document access request and buyers in a transaction on the
    listing. Verification is an admin decision and never returns to pending.
    """

    DOCUMENT_TYPE_CHOICES = [
        ('loan_application', 'Loan Application'),
        ('credit_appraisal', 'Credit Appraisal'),
        ('title_report', 'Title Report'),
        ('note', 'Note'),
        ('payment_history', 'Payment History'),
        ('appraisal', 'Appraisal'),
        ('other', 'Other'),
    ]

    VERIFICATION_STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('verified', 'Verified'),
        ('rejected', 'Rejected'),
    ]

    VALID_TRANSITIONS = {
        'pending': ['verified', 'rejected'],
        'verified': ['rejected'],
        'rejected': ['verified'],
    }

    note_listing = models.ForeignKey(
        NoteListing,
        on_delete=models.CASCADE,
        related_name='documents',
    )

    uploaded_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='note_documents',
    )

    document_type = models.CharField(
        _('document type'),
        max_length=30,
        choices=DOCUMENT_TYPE_CHOICES,
    )

    document_url = models.URLField(_('document url'), max_length=500)

    file_name = models.CharField(_('file name'), max_length=255)

    file_size = models.PositiveBigIntegerField(_('file size'))

    description = models.TextField(_('description'), blank=True, default='')

    is_public = models.BooleanField(
        _('is public'),
        default=False,
        help_text=_('Whether the document is viewable before a transaction')
    )

    verification_status = models.CharField(
        _('verification status'),
        max_length=20,
        choices=VERIFICATION_STATUS_CHOICES,
        default='pending',
    )

    verified_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='verified_documents',
    )

    verified_at = models.DateTimeField(_('verified at'), null=True, blank=True)

    uploaded_at = models.DateTimeField(_('uploaded at'), auto_now_add=True)

    class Meta:
        verbose_name = _('note document')
        verbose_name_plural = _('note documents')
        ordering = ['-uploaded_at', '-id']
        indexes = [
            models.Index(fields=['note_listing', 'is_public'], name='doc_listing_public_idx'),
            models.Index(fields=['verification_status'], name='doc_verification_idx'),
        ]

    def __str__(self):
        return f'{self.file_name} ({self.document_type})'

    def clean(self):
        super().clean()

        if self.pk is not None:
            try:
                old_status = NoteDocument.objects.values_list(
                    'verification_status', flat=True
                ).get(pk=self.pk)
            except NoteDocument.DoesNotExist:
                old_status = None

            if old_status and old_status != self.verification_status:
                if self.verification_status not in self.VALID_TRANSITIONS.get(old_status, []):
                    raise ValidationError({
                        'verification_status': _(
                            f'Invalid verification change from {old_status} to {self.verification_status}.'
                        )
                    })

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)


# ============================================================================
# Inquiries
# ============================================================================

class Inquiry(models.Model):
    """
    A buyer's message or offer against a listing.

    Only the listing's seller responds; only the buyer withdraws or edits.
    responded_at is stamped exactly when the inquiry becomes accepted or
    rejected and never changes afterwards.
    """

    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('accepted', 'Accepted'),
        ('rejected', 'Rejected'),
        ('countered', 'Countered'),
        ('withdrawn', 'Withdrawn'),
        ('expired', 'Expired'),
    ]

    RESPONSE_STATUSES = ['accepted', 'rejected', 'countered']

    # Statuses from which the seller may still respond
    OPEN_STATUSES = ['pending', 'countered']

    VALID_TRANSITIONS = {
        'pending': ['accepted', 'rejected', 'countered', 'withdrawn', 'expired'],
        'countered': ['accepted', 'rejected', 'countered', 'withdrawn', 'expired'],
        'accepted': [],
        'rejected': [],
        'withdrawn': [],
        'expired': [],
    }

    buyer = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='inquiries',
        help_text=_('User asking about the listing')
    )

    note_listing = models.ForeignKey(
        NoteListing,
        on_delete=models.CASCADE,
        related_name='inquiries',
    )

    message = models.TextField(_('message'))

    offer_amount = models.DecimalField(
        _('offer amount'),
        max_digits=14,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal('0.01'))]
    )

    status = models.CharField(
        _('status'),
        max_length=20,
        choices=STATUS_CHOICES,
        default='pending',
    )

    response_message = models.TextField(_('response message'), blank=True, default='')

    responded_at = models.DateTimeField(_('responded at'), null=True, blank=True)

    expires_at = models.DateTimeField(_('expires at'), null=True, blank=True)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('inquiry')
        verbose_name_plural = _('inquiries')
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['buyer'], name='inquiry_buyer_idx'),
            models.Index(fields=['note_listing'], name='inquiry_listing_idx'),
            models.Index(fields=['status'], name='inquiry_status_idx'),
            models.Index(fields=['expires_at'], name='inquiry_expires_idx'),
        ]

    def __str__(self):
        return f'Inquiry {self.pk} on listing {self.note_listing_id} by {self.buyer_id}'

    def clean(self):
        super().clean()

        if not self.message or not self.message.strip():
            raise ValidationError({
                'message': _('Message cannot be empty.')
            })

        if self.status == 'pending' and self.responded_at is not None:
            raise ValidationError({
                'responded_at': _('A pending inquiry cannot have a response time.')
            })

        if self.pk is not None:
            try:
                old_instance = Inquiry.objects.get(pk=self.pk)
            except Inquiry.DoesNotExist:
                old_instance = None

            if old_instance is not None:
                if old_instance.status != self.status:
                    if self.status not in self.VALID_TRANSITIONS.get(old_instance.status, []):
                        raise ValidationError({
                            'status': _(
                                f'Invalid inquiry status transition from {old_instance.status} to {self.status}.'
                            )
                        })

                if old_instance.responded_at is not None and self.responded_at != old_instance.responded_at:
                    raise ValidationError({
                        'responded_at': _('Response time cannot be changed once set.')
                    })

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)

    def is_past_expiry(self, now=None):
        if self.expires_at is None:
            return False
        return (now or timezone.now()) >= self.expires_at


# ============================================================================
# Access Requests
# ============================================================================

class AccessRequest(models.Model):
    """
    Time-boxed request by a buyer to see a listing's contact details or documents.

    At most one pending request may exist per (buyer, listing). Pending
    requests past expires_at are flipped to expired when they are read.
    """

    REQUEST_TYPE_CHOICES = [
        ('contact', 'Contact'),
        ('document', 'Document'),
    ]

    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('approved', 'Approved'),
        ('rejected', 'Rejected'),
        ('expired', 'Expired'),
    ]

    VALID_TRANSITIONS = {
        'pending': ['approved', 'rejected', 'expired'],
        'approved': [],
        'rejected': [],
        'expired': [],
    }

    buyer = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='access_requests',
    )

    note_listing = models.ForeignKey(
        NoteListing,
        on_delete=models.CASCADE,
        related_name='access_requests',
    )

    request_type = models.CharField(
        _('request type'),
        max_length=20,
        choices=REQUEST_TYPE_CHOICES,
        default='contact',
    )

    status = models.CharField(
        _('status'),
        max_length=20,
        choices=STATUS_CHOICES,
        default='pending',
    )

    requested_at = models.DateTimeField(_('requested at'), default=timezone.now)

    approved_at = models.DateTimeField(_('approved at'), null=True, blank=True)

    rejected_at = models.DateTimeField(_('rejected at'), null=True, blank=True)

    expires_at = models.DateTimeField(_('expires at'))

    class Meta:
        verbose_name = _('access request')
        verbose_name_plural = _('access requests')
        ordering = ['-requested_at', '-id']
        indexes = [
            models.Index(fields=['buyer', 'note_listing'], name='access_buyer_listing_idx'),
            models.Index(fields=['status'], name='access_status_idx'),
            models.Index(fields=['expires_at'], name='access_expires_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['buyer', 'note_listing'],
                name='unique_pending_access_request',
                condition=models.Q(status='pending')
            )
        ]

    def __str__(self):
        return f'{self.request_type} access to listing {self.note_listing_id} for {self.buyer_id}'

    def is_past_expiry(self, now=None):
        return (now or timezone.now()) >= self.expires_at

    def is_active(self, now=None):
        return self.status == 'pending' and not self.is_past_expiry(now)


# ============================================================================
# Transactions
# ============================================================================

class NoteTransaction(models.Model):
    """
    A buyer-seller deal on a listing.

    current_phase only moves forward (negotiations -> closing -> completed)
    and only when every required task in the current phase is complete.
    Reaching completed sets status to completed.
    """

    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('active', 'Active'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
    ]

    PHASE_CHOICES = [
        ('negotiations', 'Negotiations'),
        ('closing', 'Closing'),
        ('completed', 'Completed'),
    ]

    NEXT_PHASE = {
        'negotiations': 'closing',
        'closing': 'completed',
        'completed': None,  # Terminal phase
    }

    note_listing = models.ForeignKey(
        NoteListing,
        on_delete=models.PROTECT,
        related_name='transactions',
    )

    buyer = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='purchases',
    )

    seller = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='sales',
    )

    inquiry = models.OneToOneField(
        Inquiry,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='transaction',
        help_text=_('Accepted inquiry that opened this transaction')
    )

    initial_amount = models.DecimalField(
        _('initial amount'),
        max_digits=14,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )

    final_amount = models.DecimalField(
        _('final amount'),
        max_digits=14,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal('0.01'))]
    )

    platform_fee = models.DecimalField(
        _('platform fee'),
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal('0.00'))]
    )

    status = models.CharField(
        _('status'),
        max_length=20,
        choices=STATUS_CHOICES,
        default='active',
    )

    current_phase = models.CharField(
        _('current phase'),
        max_length=20,
        choices=PHASE_CHOICES,
        default='negotiations',
    )

    closing_date = models.DateField(_('closing date'), null=True, blank=True)

    contract_url = models.URLField(_('contract url'), max_length=500, blank=True, default='')

    notes = models.TextField(_('notes'), blank=True, default='')

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    completed_at = models.DateTimeField(_('completed at'), null=True, blank=True)

    class Meta:
        verbose_name = _('transaction')
        verbose_name_plural = _('transactions')
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['buyer'], name='txn_buyer_idx'),
            models.Index(fields=['seller'], name='txn_seller_idx'),
            models.Index(fields=['note_listing'], name='txn_listing_idx'),
            models.Index(fields=['status'], name='txn_status_idx'),
            models.Index(fields=['current_phase'], name='txn_phase_idx'),
        ]

    def __str__(self):
        return f'Transaction {self.pk}: {self.buyer_id} <- listing {self.note_listing_id} <- {self.seller_id}'

    def clean(self):
        """
        Validate parties and phase ordering.

        Raises:
            ValidationError: If validation fails
        """
        super().clean()

        if self.buyer_id and self.seller_id and self.buyer_id == self.seller_id:
            raise ValidationError({
                'buyer': _('Buyer and seller cannot be the same user.')
            })

        if self.seller_id and self.note_listing_id:
            listing_seller_id = NoteListing.objects.filter(
                pk=self.note_listing_id
            ).values_list('seller_id', flat=True).first()
            if listing_seller_id is not None and listing_seller_id != self.seller_id:
                raise ValidationError({
                    'seller': _('Transaction seller must match the listing seller.')
                })

        if self.pk is not None:
            try:
                old_phase = NoteTransaction.objects.values_list('current_phase', flat=True).get(pk=self.pk)
            except NoteTransaction.DoesNotExist:
                old_phase = None

            if old_phase and old_phase != self.current_phase:
                if self.current_phase != self.NEXT_PHASE.get(old_phase):
                    raise ValidationError({
                        'current_phase': _(
                            f'Invalid phase transition from {old_phase} to {self.current_phase}.'
                        )
                    })

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)

    def is_party(self, user):
        return user.id in (self.buyer_id, self.seller_id)

    def next_phase(self):
        return self.NEXT_PHASE.get(self.current_phase)


class TransactionTask(models.Model):
    """A unit of work scoped to one phase of a transaction."""

    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('complete', 'Complete'),
    ]

    PHASE_CHOICES = [
        ('negotiations', 'Negotiations'),
        ('closing', 'Closing'),
    ]

    transaction = models.ForeignKey(
        NoteTransaction,
        on_delete=models.CASCADE,
        related_name='tasks',
    )

    task_identifier = models.SlugField(
        _('task identifier'),
        max_length=100,
        blank=True,
        help_text=_('Stable key for the task type. Derived from the title when omitted.')
    )

    phase = models.CharField(_('phase'), max_length=20, choices=PHASE_CHOICES)

    title = models.CharField(_('title'), max_length=200)

    description = models.TextField(_('description'), blank=True, default='')

    status = models.CharField(
        _('status'),
        max_length=20,
        choices=STATUS_CHOICES,
        default='pending',
    )

    is_required = models.BooleanField(_('is required'), default=True)

    assigned_to = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='assigned_tasks',
        help_text=_('Buyer or seller responsible. Either party may complete an unassigned task.')
    )

    display_order = models.PositiveIntegerField(_('display order'), default=0)

    completed_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='completed_tasks',
    )

    completed_at = models.DateTimeField(_('completed at'), null=True, blank=True)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('transaction task')
        verbose_name_plural = _('transaction tasks')
        ordering = ['display_order', 'id']
        indexes = [
            models.Index(fields=['transaction', 'phase'], name='task_txn_phase_idx'),
            models.Index(fields=['status'], name='task_status_idx'),
        ]

    def __str__(self):
        return f'{self.title} ({self.phase}, {self.status})'

    def clean(self):
        super().clean()

        if not self.task_identifier:
            self.task_identifier = slugify(self.title or '')[:100]

        if self.assigned_to_id and self.transaction_id:
            parties = NoteTransaction.objects.filter(
                pk=self.transaction_id
            ).values_list('buyer_id', 'seller_id').first()
            if parties and self.assigned_to_id not in parties:
                raise ValidationError({
                    'assigned_to': _('Tasks can only be assigned to the buyer or seller.')
                })

        if self.pk is not None:
            try:
                old_status = TransactionTask.objects.values_list('status', flat=True).get(pk=self.pk)
            except TransactionTask.DoesNotExist:
                old_status = None

            if old_status == 'complete' and self.status != 'complete':
                raise ValidationError({
                    'status': _('A completed task cannot be reopened.')
                })

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)

    def is_complete(self):
        return self.status == 'complete'


class TransactionFile(models.Model):
    """
    Metadata for a document attached to a transaction.

    The bytes live in external storage; only the URL is recorded here.
    """

    CATEGORY_CHOICES = [
        ('closing', 'Closing'),
        ('collateral', 'Collateral'),
        ('legal', 'Legal'),
        ('financial', 'Financial'),
        ('other', 'Other'),
    ]

    transaction = models.ForeignKey(
        NoteTransaction,
        on_delete=models.CASCADE,
        related_name='files',
    )

    uploaded_by = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='uploaded_files',
    )

    file_url = models.URLField(_('file url'), max_length=500)

    file_name = models.CharField(_('file name'), max_length=255)

    file_type = models.CharField(
        _('file type'),
        max_length=100,
        help_text=_('Document type, for example PSA, Assignment or Allonge')
    )

    file_size = models.PositiveBigIntegerField(_('file size'), null=True, blank=True)

    description = models.TextField(_('description'), blank=True, default='')

    is_public = models.BooleanField(
        _('is public'),
        default=False,
        help_text=_('Whether the counterparty can see the file')
    )

    category = models.CharField(
        _('category'),
        max_length=20,
        choices=CATEGORY_CHOICES,
        default='other',
    )

    is_verified = models.BooleanField(_('is verified'), default=False)

    uploaded_at = models.DateTimeField(_('uploaded at'), auto_now_add=True)

    class Meta:
        verbose_name = _('transaction file')
        verbose_name_plural = _('transaction files')
        ordering = ['-uploaded_at', '-id']
        indexes = [
            models.Index(fields=['transaction'], name='file_txn_idx'),
            models.Index(fields=['category'], name='file_category_idx'),
        ]

    def __str__(self):
        return self.file_name

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise ValidationError(_('Transaction files cannot be modified once uploaded.'))
        self.full_clean()
        super().save(*args, **kwargs)


class TransactionTimelineEvent(models.Model):
    """Append-only audit record of a transaction action."""

    EVENT_TYPE_CHOICES = [
        ('info', 'Info'),
        ('success', 'Success'),
        ('warning', 'Warning'),
        ('error', 'Error'),
    ]

    transaction = models.ForeignKey(
        NoteTransaction,
        on_delete=models.CASCADE,
        related_name='timeline_events',
    )

    event_description = models.TextField(_('event description'))

    event_type = models.CharField(
        _('event type'),
        max_length=20,
        choices=EVENT_TYPE_CHOICES,
        default='info',
    )

    triggered_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='timeline_events',
    )

    event_data = models.JSONField(_('event data'), null=True, blank=True)

    related_task = models.ForeignKey(
        TransactionTask,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='timeline_events',
    )

    related_file = models.ForeignKey(
        TransactionFile,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='timeline_events',
    )

    event_timestamp = models.DateTimeField(_('event timestamp'), default=timezone.now)

    class Meta:
        verbose_name = _('timeline event')
        verbose_name_plural = _('timeline events')
        ordering = ['event_timestamp', 'id']
        indexes = [
            models.Index(fields=['transaction', 'event_timestamp'], name='event_txn_time_idx'),
        ]

    def __str__(self):
        return f'[{self.event_type}] {self.event_description}'

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise ValidationError(_('Timeline events are append-only.'))
        self.full_clean()
        super().save(*args, **kwargs)


# ============================================================================
# Saved Searches and Waitlist
# ============================================================================

class SavedSearch(models.Model):
    """Search criteria a user wants to be alerted about."""

    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='saved_searches',
    )

    name = models.CharField(_('name'), max_length=200)

    criteria = models.JSONField(
        _('criteria'),
        default=dict,
        help_text=_('Cleaned listing search query parameters')
    )

    is_active = models.BooleanField(_('is active'), default=True)

    total_matches = models.PositiveIntegerField(_('total matches'), default=0)

    last_run_at = models.DateTimeField(_('last run at'), null=True, blank=True)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('saved search')
        verbose_name_plural = _('saved searches')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user'], name='search_user_idx'),
            models.Index(fields=['is_active'], name='search_active_idx'),
        ]

    def __str__(self):
        return f'{self.name} ({self.user_id})'


class WaitlistEntry(models.Model):
    """Pre-launch signup interest."""

    ROLE_CHOICES = [
        ('buyer', 'Buyer'),
        ('seller', 'Seller'),
        ('both', 'Both'),
    ]

    email = models.EmailField(
        _('email address'),
        unique=True,
        error_messages={
            'unique': _('This email is already on the waitlist.'),
        },
    )

    role = models.CharField(_('role'), max_length=10, choices=ROLE_CHOICES)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('waitlist entry')
        verbose_name_plural = _('waitlist entries')
        ordering = ['-created_at']

    def __str__(self):
        return self.email

    def save(self, *args, **kwargs):
        if self.email:
            self.email = self.email.strip().lower()
        super().save(*args, **kwargs)
