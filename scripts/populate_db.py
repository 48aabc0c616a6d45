import os
import sys
import django
import random
from decimal import Decimal
from datetime import timedelta
from django.utils import timezone
from faker import Faker

# Add project root to Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Set up Django environment
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'note_marketplace.settings')
django.setup()

from core import services
from core.models import User, NoteListing, Inquiry
from core.validators import US_STATE_CODES

fake = Faker()

NOTE_TYPES = ["Residential Mortgage", "Commercial Mortgage", "Land Contract", "Deed of Trust"]
PROPERTY_TYPES = ["Single Family", "Condo", "Townhouse", "Multi Family", "Land", "Mixed Use"]
PERFORMANCE_STATUSES = [choice for choice, _label in NoteListing.PERFORMANCE_STATUS_CHOICES]


def money(low, high):
    return Decimal(random.uniform(low, high)).quantize(Decimal('0.01'))


def create_users(num_users=20):
    print(f"Creating {num_users} users and 1 admin...")

    users = []
    for _ in range(num_users):
        email = fake.unique.email()
        username = email.split('@')[0]
        user = User.objects.create_user(
            username=username,
            email=email,
            password='password123',
            first_name=fake.first_name(),
            last_name=fake.last_name(),
            company=fake.company(),
            location=f"{fake.city()}, {random.choice(sorted(US_STATE_CODES))}",
        )
        users.append(user)

    admin = User.objects.create_user(
        username='admin',
        email='admin@notemarketplace.local',
        password='password123',
        role='admin',
        is_staff=True,
    )

    print(f"Created {len(users)} users.")
    return users, admin


def create_listings(sellers, admin):
    print("Creating note listings...")
    listings = []

    for seller in sellers:
        # Each seller lists 0-3 notes
        for _ in range(random.randint(0, 3)):
            original = money(50000, 900000)
            current = (original * Decimal(random.uniform(0.4, 1.0))).quantize(Decimal('0.01'))
            original_term = random.choice([180, 240, 360])
            originated = fake.date_between(start_date='-15y', end_date='-1y')

            listing = services.create_listing(seller, {
                'note_type': random.choice(NOTE_TYPES),
                'performance_status': random.choice(PERFORMANCE_STATUSES),
                'original_loan_amount': original,
                'current_loan_amount': current,
                'interest_rate': Decimal(random.uniform(3.0, 12.0)).quantize(Decimal('0.001')),
                'original_loan_term': original_term,
                'remaining_loan_term': random.randint(12, original_term),
                'monthly_payment_amount': money(400, 6000),
                'loan_origination_date': originated,
                'loan_maturity_date': originated + timedelta(days=original_term * 30),
                'payment_history': random.randint(0, 120),
                'property_address': fake.street_address(),
                'property_city': fake.city(),
                'property_state': random.choice(sorted(US_STATE_CODES)),
                'property_zip_code': fake.postcode(),
                'property_type': random.choice(PROPERTY_TYPES),
                'property_value': (current * Decimal(random.uniform(1.1, 2.0))).quantize(Decimal('0.01')),
                'asking_price': (current * Decimal(random.uniform(0.6, 0.95))).quantize(Decimal('0.01')),
                'description': fake.paragraph(),
            })

            # Review most pending listings
            outcome = random.random()
            if outcome < 0.7:
                listing = services.review_listing(listing.id, admin, approve=True)
            elif outcome < 0.8:
                listing = services.review_listing(listing.id, admin, approve=False, reason='Incomplete collateral file.')

            listings.append(listing)

    print(f"Created {len(listings)} note listings.")
    return listings


def create_inquiries(buyers, listings):
    print("Creating inquiries...")
    inquiries = []

    active_listings = [listing for listing in listings if listing.status == 'active']

    for buyer in buyers:
        # Each buyer sends 0-3 inquiries
        candidates = [listing for listing in active_listings if listing.seller_id != buyer.id]
        for listing in random.sample(candidates, min(len(candidates), random.randint(0, 3))):
            offer = None
            if random.random() < 0.6:
                offer = (listing.asking_price * Decimal(random.uniform(0.85, 1.0))).quantize(Decimal('0.01'))
            inquiry = services.create_inquiry(buyer, listing, fake.paragraph(), offer)
            inquiries.append(inquiry)

    print(f"Created {len(inquiries)} inquiries.")
    return inquiries


def respond_to_inquiries(inquiries):
    print("Responding to inquiries...")
    accepted = 0
    used_listings = set()

    for inquiry in inquiries:
        # 50% chance the seller answers
        if random.random() >= 0.5:
            continue
        seller = inquiry.note_listing.seller
        if inquiry.note_listing_id in used_listings:
            new_status = random.choice(['rejected', 'countered'])
        else:
            new_status = random.choice(['accepted', 'rejected', 'countered'])
        services.respond_to_inquiry(inquiry, seller, new_status, fake.sentence())
        if new_status == 'accepted':
            accepted += 1
            used_listings.add(inquiry.note_listing_id)

    print(f"Accepted {accepted} inquiries.")


def progress_transactions():
    print("Progressing transactions...")
    completed = 0

    for inquiry in Inquiry.objects.filter(status='accepted').select_related('transaction'):
        note_transaction = inquiry.transaction
        # Work through the tasks of a random number of phases
        for _ in range(random.randint(0, 2)):
            note_transaction.refresh_from_db()
            if note_transaction.current_phase == 'completed':
                break
            for task in note_transaction.tasks.filter(
                phase=note_transaction.current_phase, is_required=True, status='pending'
            ):
                services.complete_task(note_transaction.id, task.id, note_transaction.seller)

        note_transaction.refresh_from_db()
        if note_transaction.current_phase == 'completed':
            completed += 1

    print(f"Completed {completed} transactions.")


def create_access_requests(buyers, listings):
    print("Creating access requests...")
    count = 0
    active_listings = [listing for listing in listings if listing.status == 'active']

    for buyer in buyers:
        candidates = [listing for listing in active_listings if listing.seller_id != buyer.id]
        for listing in random.sample(candidates, min(len(candidates), random.randint(0, 2))):
            services.request_access(buyer, listing.id, random.choice(['contact', 'document']))
            count += 1

    print(f"Created {count} access requests.")


def create_waitlist(num_entries=15):
    print("Creating waitlist entries...")
    for _ in range(num_entries):
        services.join_waitlist(fake.unique.email(), random.choice(['buyer', 'seller', 'both']))
    print(f"Created {num_entries} waitlist entries.")


def main():
    print("Starting database population...")
    started = timezone.now()

    users, admin = create_users(num_users=20)

    listings = create_listings(users, admin)

    inquiries = create_inquiries(users, listings)
    respond_to_inquiries(inquiries)

    progress_transactions()

    # Listings that sold are no longer open for access requests
    listings = list(NoteListing.objects.filter(pk__in=[listing.pk for listing in listings]))
    create_access_requests(users, listings)

    create_waitlist()

    print(f"Database population completed successfully in {(timezone.now() - started).total_seconds():.1f}s!")


if __name__ == '__main__':
    main()
