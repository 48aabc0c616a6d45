# Expire Stale Requests Management Command
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from django.utils import timezone

from core.models import AccessRequest, Inquiry
from core.services import expire_stale_access_requests, expire_stale_inquiries


class Command(BaseCommand):
    help = 'Marks pending inquiries and access requests past their expiry time as expired.'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Report what would expire without saving changes to the database.',
        )
        parser.add_argument(
            '--inquiries-only',
            action='store_true',
            help='Expire only inquiries.',
        )
        parser.add_argument(
            '--access-requests-only',
            action='store_true',
            help='Expire only access requests.',
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            default=1000,
            help='Number of rows updated per statement.',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        inquiries_only = options['inquiries_only']
        access_only = options['access_requests_only']
        batch_size = options['batch_size']

        if inquiries_only and access_only:
            raise CommandError('--inquiries-only and --access-requests-only cannot be combined.')
        if batch_size < 1:
            raise CommandError('--batch-size must be a positive integer.')

        now = timezone.now()

        if not access_only:
            self.expire_inquiries(now, dry_run, batch_size)

        if not inquiries_only:
            self.expire_access_requests(now, dry_run, batch_size)

        if dry_run:
            self.stdout.write(self.style.SUCCESS('Dry run completed. No changes saved.'))
        else:
            self.stdout.write(self.style.SUCCESS('Expiry completed successfully.'))

    def expire_inquiries(self, now, dry_run, batch_size):
        self.stdout.write('Expiring stale inquiries...')

        if dry_run:
            count = expire_stale_inquiries(now=now, dry_run=True)
            self.stdout.write(f'  [DRY-RUN] {count} inquiries would be expired.')
            return

        total = 0
        while True:
            ids = list(
                Inquiry.objects.filter(status='pending', expires_at__lte=now)
                .values_list('id', flat=True)[:batch_size]
            )
            if not ids:
                break
            with transaction.atomic():
                total += expire_stale_inquiries(Inquiry.objects.filter(pk__in=ids), now=now)

        self.stdout.write(f'Expired {total} inquiries.')

    def expire_access_requests(self, now, dry_run, batch_size):
        self.stdout.write('Expiring stale access requests...')

        if dry_run:
            count = expire_stale_access_requests(now=now, dry_run=True)
            self.stdout.write(f'  [DRY-RUN] {count} access requests would be expired.')
            return

        total = 0
        while True:
            ids = list(
                AccessRequest.objects.filter(status='pending', expires_at__lte=now)
                .values_list('id', flat=True)[:batch_size]
            )
            if not ids:
                break
            with transaction.atomic():
                total += expire_stale_access_requests(
                    AccessRequest.objects.filter(pk__in=ids), now=now
                )

        self.stdout.write(f'Expired {total} access requests.')
