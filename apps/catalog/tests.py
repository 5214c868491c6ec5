# apps/catalog/tests.py
from io import StringIO
import uuid

from django.core.management import call_command
from django.test import TestCase
from django.urls import reverse

from rest_framework.test import APITestCase, APIClient
from rest_framework import status

from .models import Product, ProductCategory


class ProductModelTests(TestCase):
    def test_in_stock_follows_stock(self):
        product = Product.objects.create(name="Rose Elixir", price=15900, stock=0)
        self.assertFalse(product.in_stock)

        product.stock = 3
        self.assertTrue(product.in_stock)

    def test_featured_products_listed_first(self):
        Product.objects.create(name="Alpha", price=100)
        Product.objects.create(name="Zeta", price=100, featured=True)

        self.assertEqual(list(Product.objects.values_list("name", flat=True)), ["Zeta", "Alpha"])


class ProductViewSetTests(APITestCase):
    def setUp(self):
        self.client = APIClient()
        self.oud = Product.objects.create(
            name="Midnight Oud", price=12900, category=ProductCategory.PERFUME,
            brand="Maison Noir", stock=50, featured=True,
        )
        self.citrus = Product.objects.create(
            name="Citrus Dawn", price=8900, category=ProductCategory.COLOGNE,
            brand="Aroma Luxe", stock=75,
        )
        self.candle = Product.objects.create(
            name="Amber Noir Candle", price=4900, category=ProductCategory.CANDLE,
            brand="Home Essence", stock=0,
        )

    def test_list_is_public(self):
        resp = self.client.get(reverse("product-list"))

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["count"], 3)
        first = resp.data["results"][0]
        self.assertEqual(first["name"], "Midnight Oud")
        self.assertEqual(first["price"], 12900)
        self.assertEqual(first["category_display"], "Perfumes")

    def test_filter_by_category_and_featured(self):
        resp = self.client.get(reverse("product-list"), {"category": "cologne"})
        self.assertEqual([p["name"] for p in resp.data["results"]], ["Citrus Dawn"])

        resp = self.client.get(reverse("product-list"), {"featured": "true"})
        self.assertEqual([p["name"] for p in resp.data["results"]], ["Midnight Oud"])

    def test_ordering_by_price(self):
        resp = self.client.get(reverse("product-list"), {"ordering": "price"})
        self.assertEqual([p["price"] for p in resp.data["results"]], [4900, 8900, 12900])

    def test_detail_and_stock_flag(self):
        resp = self.client.get(reverse("product-detail", kwargs={"pk": str(self.candle.id)}))

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertFalse(resp.data["in_stock"])

    def test_unknown_product_is_404(self):
        resp = self.client.get(reverse("product-detail", kwargs={"pk": str(uuid.uuid4())}))

        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(resp.data["error"], "Product not found")
        self.assertEqual(resp.data["code"], "not_found")

    def test_catalog_is_read_only(self):
        resp = self.client.post(reverse("product-list"), {"name": "Free", "price": 1}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_405_METHOD_NOT_ALLOWED)


class SeedCatalogCommandTests(TestCase):
    def test_seed_is_repeatable(self):
        call_command("seed_catalog", stdout=StringIO())
        call_command("seed_catalog", stdout=StringIO())

        self.assertEqual(Product.objects.count(), 9)
        self.assertEqual(Product.objects.get(name="Luxury Gift Set").price, 24900)
        self.assertEqual(Product.objects.filter(featured=True).count(), 4)

    def test_reset_prices(self):
        call_command("seed_catalog", stdout=StringIO())
        Product.objects.filter(name="Citrus Dawn").update(price=1)

        call_command("seed_catalog", stdout=StringIO())
        self.assertEqual(Product.objects.get(name="Citrus Dawn").price, 1)

        call_command("seed_catalog", "--reset-prices", stdout=StringIO())
        self.assertEqual(Product.objects.get(name="Citrus Dawn").price, 8900)
