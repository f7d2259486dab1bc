"""
Management command to seed the database with sample data.

Generates:
- Categories
- Products with price, opening stock and supplier
- An admin user and a staff user

Usage:
    python manage.py seed_data
    python manage.py seed_data --clear  # Clear catalog data first
"""
import random
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction

from catalog.models import Category, Product


PRODUCT_TEMPLATES = {
    'Electronics': [
        ('Wireless Mouse', 'Tech Supplies Inc.'), ('Keyboard', 'KeyWorld'),
        ('USB-C Cable', 'Tech Supplies Inc.'), ('Power Bank', 'ChargeIt'),
        ('Webcam HD', 'Visionary'), ('Bluetooth Speaker', 'SoundCo'),
    ],
    'Furniture': [
        ('Office Chair', 'ComfySit'), ('Standing Desk', 'ComfySit'),
        ('Bookshelf', 'WoodWorks'), ('Filing Cabinet', 'WoodWorks'),
    ],
    'Stationery': [
        ('Notebook A5', 'PaperMill'), ('Gel Pen Pack', 'InkLine'),
        ('Stapler', 'OfficePro'), ('Sticky Notes', 'PaperMill'),
    ],
    'Groceries': [
        ('Basmati Rice 5kg', 'FarmFresh'), ('Green Tea', 'LeafCo'),
        ('Olive Oil 1L', 'Mediterra'), ('Ground Coffee', 'BeanHouse'),
    ],
    'Home & Kitchen': [
        ('Kitchen Knife Set', 'ChefLine'), ('LED Light Bulb', 'BrightHome'),
        ('Storage Bins', 'BrightHome'), ('Water Bottle', 'HydroMax'),
    ],
}

ADJECTIVES = ['Classic', 'Premium', 'Compact', 'Essential', 'Deluxe', 'Eco']


class Command(BaseCommand):
    help = 'Seed the database with sample categories, products and users'

    def add_arguments(self, parser):
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Delete products and categories without stock history before seeding',
        )
        parser.add_argument(
            '--products',
            type=int,
            default=40,
            help='Number of products to create (default: 40)',
        )
        parser.add_argument(
            '--password',
            default='password123',
            help='Password for the seeded admin and staff users',
        )

    def handle(self, *args, **options):
        if options['clear']:
            self.stdout.write('Clearing existing data...')
            self._clear_data()

        self.stdout.write('Starting database seeding...')

        with transaction.atomic():
            self._create_users(options['password'])
            categories = self._create_categories()
            self._create_products(options['products'], categories)

        self.stdout.write(self.style.SUCCESS('Database seeding completed successfully!'))

    def _clear_data(self):
        """Remove catalog rows that no bill or ledger entry references."""
        deletable = Product.objects.filter(movements__isnull=True, bill_lines__isnull=True)
        count = deletable.count()
        deletable.delete()
        Category.objects.filter(products__isnull=True).delete()
        self.stdout.write(self.style.WARNING(f'Cleared {count} products without stock history.'))

    def _create_users(self, password):
        User = get_user_model()
        for username, is_staff in (('admin', True), ('staff', False)):
            user, created = User.objects.get_or_create(
                username=username,
                defaults={
                    'email': f'{username}@example.com',
                    'is_staff': is_staff,
                    'is_superuser': is_staff,
                }
            )
            if created:
                user.set_password(password)
                user.save()
                self.stdout.write(f'  Created user: {username}')

    def _create_categories(self):
        categories = []
        for name in PRODUCT_TEMPLATES:
            category, created = Category.objects.get_or_create(name=name)
            categories.append(category)
            if created:
                self.stdout.write(f'  Created category: {name}')

        self.stdout.write(self.style.SUCCESS(f'Created {len(categories)} categories'))
        return categories

    def _create_products(self, count, categories):
        existing_names = set(Product.objects.values_list('name', flat=True))
        products = []

        for i in range(count):
            category = random.choice(categories)
            base_name, supplier = random.choice(PRODUCT_TEMPLATES[category.name])

            for _ in range(10):  # Try up to 10 times to get a unique name
                name = f"{random.choice(ADJECTIVES)} {base_name}"
                if name not in existing_names:
                    break
            else:
                name = f"{base_name} #{i + 1}"
            existing_names.add(name)

            products.append(Product(
                name=name,
                category=category,
                price=Decimal(str(round(random.uniform(1, 300), 2))),
                quantity=random.randint(0, 60),
                supplier=supplier,
            ))

        Product.objects.bulk_create(products)
        self.stdout.write(self.style.SUCCESS(f'Created {len(products)} products'))
