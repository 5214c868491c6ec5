from django.core.management.base import BaseCommand
from django.db import transaction

from apps.catalog.models import Product, ProductCategory


SAMPLE_PRODUCTS = [
    ("Midnight Oud", "A rich, woody fragrance with notes of oud, amber, and sandalwood. Perfect for evening wear.",
     12900, "https://images.unsplash.com/photo-1595425970377-c97036c88f63?w=800", ProductCategory.PERFUME, "Maison Noir", 50, True),
    ("Citrus Dawn", "Fresh and invigorating with bergamot, lemon, and white tea. An energizing morning scent.",
     8900, "https://images.unsplash.com/photo-1541643600914-78b084683601?w=800", ProductCategory.COLOGNE, "Aroma Luxe", 75, True),
    ("Rose Elixir", "Timeless elegance with Bulgarian rose, jasmine, and peony. A romantic floral masterpiece.",
     15900, "https://images.unsplash.com/photo-1588405748880-12d1d2a59db9?w=800", ProductCategory.PERFUME, "Pétale Précieux", 30, True),
    ("Ocean Breeze", "Aquatic and fresh with sea salt, driftwood, and white musk. Like a walk by the sea.",
     9900, "https://images.unsplash.com/photo-1615634260167-c8cdede054de?w=800", ProductCategory.COLOGNE, "Coastal Scents", 60, False),
    ("Vanilla Dreams", "Warm and comforting with Madagascar vanilla, tonka bean, and praline. Pure indulgence.",
     11900, "https://images.unsplash.com/photo-1592945403244-b3fbafd7f539?w=800", ProductCategory.PERFUME, "Gourmand House", 45, False),
    ("Leather & Spice", "Bold and masculine with leather, black pepper, and tobacco. For the confident individual.",
     13900, "https://images.unsplash.com/photo-1563170351-be82bc888aa4?w=800", ProductCategory.COLOGNE, "Maison Noir", 40, False),
    ("Luxury Gift Set", "Our bestselling fragrances in travel sizes. Perfect for gifting or discovering new favorites.",
     24900, "https://images.unsplash.com/photo-1549488344-cbb7501214e3?w=800", ProductCategory.GIFT_SET, "Various", 25, True),
    ("Amber Noir Candle", "Hand-poured soy candle with amber, vanilla, and cedarwood. 50 hour burn time.",
     4900, "https://images.unsplash.com/photo-1602874801007-e7852ba5a12a?w=800", ProductCategory.CANDLE, "Home Essence", 100, False),
    ("Jasmine Body Lotion", "Luxurious body lotion with jasmine, shea butter, and vitamin E. Deeply moisturizing.",
     3900, "https://images.unsplash.com/photo-1556228720-195a672e8a03?w=800", ProductCategory.BODY_CARE, "Pure Botanics", 80, False),
]


class Command(BaseCommand):
    help = "Seeds the sample fragrance catalog (safe to run repeatedly)"

    def add_arguments(self, parser):
        parser.add_argument(
            "--reset-prices",
            action="store_true",
            help="Overwrite price/stock of products that already exist",
        )

    def handle(self, *args, **options):
        created_count = 0
        updated_count = 0

        with transaction.atomic():
            for name, description, price, image_url, category, brand, stock, featured in SAMPLE_PRODUCTS:
                defaults = {
                    "description": description,
                    "price": price,
                    "image_url": image_url,
                    "category": category,
                    "brand": brand,
                    "stock": stock,
                    "featured": featured,
                }
                product, created = Product.objects.get_or_create(name=name, defaults=defaults)
                if created:
                    created_count += 1
                elif options["reset_prices"]:
                    product.price = price
                    product.stock = stock
                    product.save(update_fields=["price", "stock", "updated_at"])
                    updated_count += 1

        self.stdout.write(self.style.SUCCESS(
            f"Catalog seeded: {created_count} created, {updated_count} updated."
        ))
