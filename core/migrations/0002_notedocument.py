import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('core', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='NoteDocument',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('document_type', models.CharField(choices=[('loan_application', 'Loan Application'), ('credit_appraisal', 'Credit Appraisal'), ('title_report', 'Title Report'), ('note', 'Note'), ('payment_history', 'Payment History'), ('appraisal', 'Appraisal'), ('other', 'Other')], max_length=30, verbose_name='document type')),
                ('document_url', models.URLField(max_length=500, verbose_name='document url')),
                ('file_name', models.CharField(max_length=255, verbose_name='file name')),
                ('file_size', models.PositiveBigIntegerField(verbose_name='file size')),
                ('description', models.TextField(blank=True, default='', verbose_name='description')),
                ('is_public', models.BooleanField(default=False, help_text='Whether the document is viewable before a transaction', verbose_name='is public')),
                ('verification_status', models.CharField(choices=[('pending', 'Pending'), ('verified', 'Verified'), ('rejected', 'Rejected')], default='pending', max_length=20, verbose_name='verification status')),
                ('verified_at', models.DateTimeField(blank=True, null=True, verbose_name='verified at')),
                ('uploaded_at', models.DateTimeField(auto_now_add=True, verbose_name='uploaded at')),
                ('note_listing', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='documents', to='core.notelisting')),
                ('uploaded_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='note_documents', to=settings.AUTH_USER_MODEL)),
                ('verified_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='verified_documents', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'note document',
                'verbose_name_plural': 'note documents',
                'ordering': ['-uploaded_at', '-id'],
                'indexes': [
                    models.Index(fields=['note_listing', 'is_public'], name='doc_listing_public_idx'),
                    models.Index(fields=['verification_status'], name='doc_verification_idx'),
                ],
            },
        ),
    ]
