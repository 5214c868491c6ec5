# apps/catalog/models.py
from django.db import models
from django.core.validators import MinValueValidator

from apps.utils.models import TimestampedModel


class ProductCategory(models.TextChoices):
    PERFUME = "perfume", "Perfumes"
    COLOGNE = "cologne", "Colognes"
    GIFT_SET = "gift-set", "Gift Sets"
    CANDLE = "candle", "Candles"
    BODY_CARE = "body-care", "Body Care"


class Product(TimestampedModel):
    """
    Sellable catalog entry.

    NOTE:
    - `price` is an integer amount in minor currency units (cents). Orders
      snapshot it at checkout, so editing it never rewrites history.
    """
    name = models.CharField(max_length=255)
    description = models.TextField()
    price = models.PositiveIntegerField(
        validators=[MinValueValidator(1)],
        help_text="Unit price in cents",
    )
    image_url = models.URLField(max_length=500)
    category = models.CharField(
        max_length=20,
        choices=ProductCategory.choices,
        db_index=True,
    )
    brand = models.CharField(max_length=255)
    stock = models.PositiveIntegerField(default=0)
    featured = models.BooleanField(default=False, db_index=True)

    class Meta:
        db_table = "products"
        ordering = ["-featured", "name"]

    def __str__(self):
        return self.name

    @property
    def in_stock(self):
        return self.stock > 0
