import core.models
import core.validators
import django.contrib.auth.models
import django.contrib.auth.validators
import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('auth', '0012_alter_user_first_name_max_length'),
    ]

    operations = [
        migrations.CreateModel(
            name='User',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('password', models.CharField(max_length=128, verbose_name='password')),
                ('last_login', models.DateTimeField(blank=True, null=True, verbose_name='last login')),
                ('is_superuser', models.BooleanField(default=False, help_text='Designates that this user has all permissions without explicitly assigning them.', verbose_name='superuser status')),
                ('username', models.CharField(error_messages={'unique': 'A user with that username already exists.'}, help_text='Required. 150 characters or fewer. Letters, digits and @/./+/-/_ only.', max_length=150, unique=True, validators=[django.contrib.auth.validators.UnicodeUsernameValidator()], verbose_name='username')),
                ('first_name', models.CharField(blank=True, max_length=150, verbose_name='first name')),
                ('last_name', models.CharField(blank=True, max_length=150, verbose_name='last name')),
                ('is_staff', models.BooleanField(default=False, help_text='Designates whether the user can log into this admin site.', verbose_name='staff status')),
                ('is_active', models.BooleanField(default=True, help_text='Designates whether this user should be treated as active. Unselect this instead of deleting accounts.', verbose_name='active')),
                ('date_joined', models.DateTimeField(default=django.utils.timezone.now, verbose_name='date joined')),
                ('email', models.EmailField(error_messages={'unique': 'A user with that email already exists.'}, help_text='Required. Enter a valid email address.', max_length=254, unique=True, verbose_name='email address')),
                ('role', models.CharField(choices=[('user', 'User'), ('admin', 'Admin')], default='user', help_text='Platform role. Admins can review listings and see all records.', max_length=10, verbose_name='role')),
                ('phone_number', models.CharField(blank=True, default='', help_text='Optional. Enter phone number in international format.', max_length=20, validators=[core.validators.validate_phone_number], verbose_name='phone number')),
                ('company', models.CharField(blank=True, default='', max_length=200, verbose_name='company')),
                ('bio', models.TextField(blank=True, default='', verbose_name='bio')),
                ('location', models.CharField(blank=True, default='', max_length=200, verbose_name='location')),
                ('profile_image', models.ImageField(blank=True, help_text='Optional. Upload a profile picture (max 5MB, formats: jpg, png, webp).', null=True, upload_to=core.models.user_profile_image_upload_path, validators=[core.validators.validate_profile_image], verbose_name='profile image')),
                ('email_notifications', models.BooleanField(default=True, help_text='Whether the user receives marketplace notification emails.', verbose_name='email notifications')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('groups', models.ManyToManyField(blank=True, help_text='The groups this user belongs to. A user will get all permissions granted to each of their groups.', related_name='user_set', related_query_name='user', to='auth.group', verbose_name='groups')),
                ('user_permissions', models.ManyToManyField(blank=True, help_text='Specific permissions for this user.', related_name='user_set', related_query_name='user', to='auth.permission', verbose_name='user permissions')),
            ],
            options={
                'verbose_name': 'user',
                'verbose_name_plural': 'users',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['email'], name='user_email_idx'),
                    models.Index(fields=['role'], name='user_role_idx'),
                ],
            },
            managers=[
                ('objects', django.contrib.auth.models.UserManager()),
            ],
        ),
        migrations.CreateModel(
            name='NoteListing',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('title', models.CharField(blank=True, help_text='Defaults to "Property Note in <state>"', max_length=200, verbose_name='title')),
                ('note_type', models.CharField(help_text='For example Residential Mortgage or Commercial Mortgage', max_length=100, verbose_name='note type')),
                ('performance_status', models.CharField(choices=[('performing', 'Performing'), ('non-performing', 'Non-Performing'), ('sub-performing', 'Sub-Performing'), ('re-performing', 'Re-Performing')], max_length=20, verbose_name='performance status')),
                ('original_loan_amount', models.DecimalField(decimal_places=2, max_digits=14, validators=[django.core.validators.MinValueValidator(Decimal('0.01'))], verbose_name='original loan amount')),
                ('current_loan_amount', models.DecimalField(decimal_places=2, help_text='Unpaid principal balance. Cannot exceed the original amount.', max_digits=14, validators=[django.core.validators.MinValueValidator(Decimal('0.00'))], verbose_name='current loan amount')),
                ('interest_rate', models.DecimalField(decimal_places=3, help_text='Annual interest rate in percent', max_digits=6, validators=[django.core.validators.MinValueValidator(Decimal('0.000')), django.core.validators.MaxValueValidator(Decimal('100.000'))], verbose_name='interest rate')),
                ('original_loan_term', models.PositiveIntegerField(help_text='Term in months', verbose_name='original loan term')),
                ('remaining_loan_term', models.PositiveIntegerField(help_text='Remaining term in months', verbose_name='remaining loan term')),
                ('monthly_payment_amount', models.DecimalField(decimal_places=2, max_digits=12, validators=[django.core.validators.MinValueValidator(Decimal('0.00'))], verbose_name='monthly payment amount')),
                ('loan_origination_date', models.DateField(blank=True, null=True, verbose_name='loan origination date')),
                ('loan_maturity_date', models.DateField(blank=True, null=True, verbose_name='loan maturity date')),
                ('payment_history', models.PositiveIntegerField(blank=True, help_text='Number of consecutive on-time payments', null=True, verbose_name='payment history')),
                ('property_address', models.CharField(max_length=300, verbose_name='property address')),
                ('property_city', models.CharField(blank=True, default='', max_length=100, verbose_name='property city')),
                ('property_state', models.CharField(help_text='Two-letter state code', max_length=2, validators=[core.validators.validate_state_code], verbose_name='property state')),
                ('property_zip_code', models.CharField(blank=True, default='', max_length=10, verbose_name='property zip code')),
                ('property_county', models.CharField(blank=True, default='', max_length=100, verbose_name='property county')),
                ('property_type', models.CharField(help_text='For example Single Family, Condo or Land', max_length=100, verbose_name='property type')),
                ('property_value', models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True, validators=[django.core.validators.MinValueValidator(Decimal('0.00'))], verbose_name='property value')),
                ('loan_to_value_ratio', models.DecimalField(blank=True, decimal_places=2, help_text='Percent. Computed from current amount and property value when omitted.', max_digits=6, null=True, validators=[django.core.validators.MinValueValidator(Decimal('0.00'))], verbose_name='loan to value ratio')),
                ('property_description', models.TextField(blank=True, default='', verbose_name='property description')),
                ('is_secured', models.BooleanField(default=True, verbose_name='is secured')),
                ('collateral_type', models.CharField(blank=True, default='', max_length=100, verbose_name='collateral type')),
                ('asking_price', models.DecimalField(decimal_places=2, max_digits=14, validators=[django.core.validators.MinValueValidator(Decimal('0.01'))], verbose_name='asking price')),
                ('expected_yield', models.DecimalField(blank=True, decimal_places=3, max_digits=6, null=True, verbose_name='expected yield')),
                ('amortization_type', models.CharField(blank=True, default='', max_length=50, verbose_name='amortization type')),
                ('payment_frequency', models.CharField(choices=[('monthly', 'Monthly'), ('quarterly', 'Quarterly'), ('semi-annually', 'Semi-Annually'), ('annually', 'Annually')], default='monthly', max_length=20, verbose_name='payment frequency')),
                ('status', models.CharField(choices=[('draft', 'Draft'), ('pending', 'Pending Review'), ('active', 'Active'), ('sold', 'Sold'), ('rejected', 'Rejected')], default='pending', max_length=20, verbose_name='status')),
                ('featured', models.BooleanField(default=False, verbose_name='featured')),
                ('is_public', models.BooleanField(default=True, verbose_name='is public')),
                ('description', models.TextField(blank=True, default='', verbose_name='description')),
                ('special_notes', models.TextField(blank=True, default='', verbose_name='special notes')),
                ('reviewed_at', models.DateTimeField(blank=True, null=True, verbose_name='reviewed at')),
                ('rejection_reason', models.TextField(blank=True, default='', verbose_name='rejection reason')),
                ('admin_notes', models.TextField(blank=True, default='', verbose_name='admin notes')),
                ('view_count', models.PositiveIntegerField(default=0, verbose_name='view count')),
                ('favorite_count', models.PositiveIntegerField(default=0, verbose_name='favorite count')),
                ('inquiry_count', models.PositiveIntegerField(default=0, help_text='Lifetime number of inquiries received. Not decremented on delete.', verbose_name='inquiry count')),
                ('listed_at', models.DateTimeField(blank=True, null=True, verbose_name='listed at')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('reviewed_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='reviewed_listings', to=settings.AUTH_USER_MODEL)),
                ('seller', models.ForeignKey(help_text='User selling this note', on_delete=django.db.models.deletion.CASCADE, related_name='note_listings', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'note listing',
                'verbose_name_plural': 'note listings',
                'ordering': ['-created_at', '-id'],
                'indexes': [
                    models.Index(fields=['seller'], name='listing_seller_idx'),
                    models.Index(fields=['status'], name='listing_status_idx'),
                    models.Index(fields=['property_state'], name='listing_state_idx'),
                    models.Index(fields=['asking_price'], name='listing_price_idx'),
                    models.Index(fields=['interest_rate'], name='listing_rate_idx'),
                    models.Index(fields=['created_at'], name='listing_created_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('current_loan_amount__lte', models.F('original_loan_amount'))), name='current_amount_not_above_original'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Inquiry',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('message', models.TextField(verbose_name='message')),
                ('offer_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True, validators=[django.core.validators.MinValueValidator(Decimal('0.01'))], verbose_name='offer amount')),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('accepted', 'Accepted'), ('rejected', 'Rejected'), ('countered', 'Countered'), ('withdrawn', 'Withdrawn'), ('expired', 'Expired')], default='pending', max_length=20, verbose_name='status')),
                ('response_message', models.TextField(blank=True, default='', verbose_name='response message')),
                ('responded_at', models.DateTimeField(blank=True, null=True, verbose_name='responded at')),
                ('expires_at', models.DateTimeField(blank=True, null=True, verbose_name='expires at')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('buyer', models.ForeignKey(help_text='User asking about the listing', on_delete=django.db.models.deletion.CASCADE, related_name='inquiries', to=settings.AUTH_USER_MODEL)),
                ('note_listing', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='inquiries', to='core.notelisting')),
            ],
            options={
                'verbose_name': 'inquiry',
                'verbose_name_plural': 'inquiries',
                'ordering': ['-created_at', '-id'],
                'indexes': [
                    models.Index(fields=['buyer'], name='inquiry_buyer_idx'),
                    models.Index(fields=['note_listing'], name='inquiry_listing_idx'),
                    models.Index(fields=['status'], name='inquiry_status_idx'),
                    models.Index(fields=['expires_at'], name='inquiry_expires_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='AccessRequest',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('request_type', models.CharField(choices=[('contact', 'Contact'), ('document', 'Document')], default='contact', max_length=20, verbose_name='request type')),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('approved', 'Approved'), ('rejected', 'Rejected'), ('expired', 'Expired')], default='pending', max_length=20, verbose_name='status')),
                ('requested_at', models.DateTimeField(default=django.utils.timezone.now, verbose_name='requested at')),
                ('approved_at', models.DateTimeField(blank=True, null=True, verbose_name='approved at')),
                ('rejected_at', models.DateTimeField(blank=True, null=True, verbose_name='rejected at')),
                ('expires_at', models.DateTimeField(verbose_name='expires at')),
                ('buyer', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='access_requests', to=settings.AUTH_USER_MODEL)),
                ('note_listing', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='access_requests', to='core.notelisting')),
            ],
            options={
                'verbose_name': 'access request',
                'verbose_name_plural': 'access requests',
                'ordering': ['-requested_at', '-id'],
                'indexes': [
                    models.Index(fields=['buyer', 'note_listing'], name='access_buyer_listing_idx'),
                    models.Index(fields=['status'], name='access_status_idx'),
                    models.Index(fields=['expires_at'], name='access_expires_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('status', 'pending')), fields=('buyer', 'note_listing'), name='unique_pending_access_request'),
                ],
            },
        ),
        migrations.CreateModel(
            name='NoteTransaction',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('initial_amount', models.DecimalField(decimal_places=2, max_digits=14, validators=[django.core.validators.MinValueValidator(Decimal('0.01'))], verbose_name='initial amount')),
                ('final_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True, validators=[django.core.validators.MinValueValidator(Decimal('0.01'))], verbose_name='final amount')),
                ('platform_fee', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True, validators=[django.core.validators.MinValueValidator(Decimal('0.00'))], verbose_name='platform fee')),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('active', 'Active'), ('completed', 'Completed'), ('cancelled', 'Cancelled')], default='active', max_length=20, verbose_name='status')),
                ('current_phase', models.CharField(choices=[('negotiations', 'Negotiations'), ('closing', 'Closing'), ('completed', 'Completed')], default='negotiations', max_length=20, verbose_name='current phase')),
                ('closing_date', models.DateField(blank=True, null=True, verbose_name='closing date')),
                ('contract_url', models.URLField(blank=True, default='', max_length=500, verbose_name='contract url')),
                ('notes', models.TextField(blank=True, default='', verbose_name='notes')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('completed_at', models.DateTimeField(blank=True, null=True, verbose_name='completed at')),
                ('buyer', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='purchases', to=settings.AUTH_USER_MODEL)),
                ('inquiry', models.OneToOneField(blank=True, help_text='Accepted inquiry that opened this transaction', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='transaction', to='core.inquiry')),
                ('note_listing', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='transactions', to='core.notelisting')),
                ('seller', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='sales', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'transaction',
                'verbose_name_plural': 'transactions',
                'ordering': ['-created_at', '-id'],
                'indexes': [
                    models.Index(fields=['buyer'], name='txn_buyer_idx'),
                    models.Index(fields=['seller'], name='txn_seller_idx'),
                    models.Index(fields=['note_listing'], name='txn_listing_idx'),
                    models.Index(fields=['status'], name='txn_status_idx'),
                    models.Index(fields=['current_phase'], name='txn_phase_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='TransactionTask',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('task_identifier', models.SlugField(blank=True, help_text='Stable key for the task type. Derived from the title when omitted.', max_length=100, verbose_name='task identifier')),
                ('phase', models.CharField(choices=[('negotiations', 'Negotiations'), ('closing', 'Closing')], max_length=20, verbose_name='phase')),
                ('title', models.CharField(max_length=200, verbose_name='title')),
                ('description', models.TextField(blank=True, default='', verbose_name='description')),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('complete', 'Complete')], default='pending', max_length=20, verbose_name='status')),
                ('is_required', models.BooleanField(default=True, verbose_name='is required')),
                ('display_order', models.PositiveIntegerField(default=0, verbose_name='display order')),
                ('completed_at', models.DateTimeField(blank=True, null=True, verbose_name='completed at')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('assigned_to', models.ForeignKey(blank=True, help_text='Buyer or seller responsible. Either party may complete an unassigned task.', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='assigned_tasks', to=settings.AUTH_USER_MODEL)),
                ('completed_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='completed_tasks', to=settings.AUTH_USER_MODEL)),
                ('transaction', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='tasks', to='core.notetransaction')),
            ],
            options={
                'verbose_name': 'transaction task',
                'verbose_name_plural': 'transaction tasks',
                'ordering': ['display_order', 'id'],
                'indexes': [
                    models.Index(fields=['transaction', 'phase'], name='task_txn_phase_idx'),
                    models.Index(fields=['status'], name='task_status_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='TransactionFile',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('file_url', models.URLField(max_length=500, verbose_name='file url')),
                ('file_name', models.CharField(max_length=255, verbose_name='file name')),
                ('file_type', models.CharField(help_text='Document type, for example PSA, Assignment or Allonge', max_length=100, verbose_name='file type')),
                ('file_size', models.PositiveBigIntegerField(blank=True, null=True, verbose_name='file size')),
                ('description', models.TextField(blank=True, default='', verbose_name='description')),
                ('is_public', models.BooleanField(default=False, help_text='Whether the counterparty can see the file', verbose_name='is public')),
                ('category', models.CharField(choices=[('closing', 'Closing'), ('collateral', 'Collateral'), ('legal', 'Legal'), ('financial', 'Financial'), ('other', 'Other')], default='other', max_length=20, verbose_name='category')),
                ('is_verified', models.BooleanField(default=False, verbose_name='is verified')),
                ('uploaded_at', models.DateTimeField(auto_now_add=True, verbose_name='uploaded at')),
                ('transaction', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='files', to='core.notetransaction')),
                ('uploaded_by', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='uploaded_files', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'transaction file',
                'verbose_name_plural': 'transaction files',
                'ordering': ['-uploaded_at', '-id'],
                'indexes': [
                    models.Index(fields=['transaction'], name='file_txn_idx'),
                    models.Index(fields=['category'], name='file_category_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='TransactionTimelineEvent',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('event_description', models.TextField(verbose_name='event description')),
                ('event_type', models.CharField(choices=[('info', 'Info'), ('success', 'Success'), ('warning', 'Warning'), ('error', 'Error')], default='info', max_length=20, verbose_name='event type')),
                ('event_data', models.JSONField(blank=True, null=True, verbose_name='event data')),
                ('event_timestamp', models.DateTimeField(default=django.utils.timezone.now, verbose_name='event timestamp')),
                ('related_file', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='timeline_events', to='core.transactionfile')),
                ('related_task', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='timeline_events', to='core.transactiontask')),
                ('transaction', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='timeline_events', to='core.notetransaction')),
                ('triggered_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='timeline_events', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'timeline event',
                'verbose_name_plural': 'timeline events',
                'ordering': ['event_timestamp', 'id'],
                'indexes': [
                    models.Index(fields=['transaction', 'event_timestamp'], name='event_txn_time_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='SavedSearch',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=200, verbose_name='name')),
                ('criteria', models.JSONField(default=dict, help_text='Cleaned listing search query parameters', verbose_name='criteria')),
                ('is_active', models.BooleanField(default=True, verbose_name='is active')),
                ('total_matches', models.PositiveIntegerField(default=0, verbose_name='total matches')),
                ('last_run_at', models.DateTimeField(blank=True, null=True, verbose_name='last run at')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='saved_searches', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'saved search',
                'verbose_name_plural': 'saved searches',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['user'], name='search_user_idx'),
                    models.Index(fields=['is_active'], name='search_active_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='WaitlistEntry',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('email', models.EmailField(error_messages={'unique': 'This email is already on the waitlist.'}, max_length=254, unique=True, verbose_name='email address')),
                ('role', models.CharField(choices=[('buyer', 'Buyer'), ('seller', 'Seller'), ('both', 'Both')], max_length=10, verbose_name='role')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
            ],
            options={
                'verbose_name': 'waitlist entry',
                'verbose_name_plural': 'waitlist entries',
                'ordering': ['-created_at'],
            },
        ),
    ]
