# apps/catalog/serializers.py
from rest_framework import serializers
from .models import Product


class ProductSerializer(serializers.ModelSerializer):
    category_display = serializers.CharField(source="get_category_display", read_only=True)

    class Meta:
        model = Product
        fields = [
            "id",
            "name",
            "description",
            "price",
            "image_url",
            "category",
            "category_display",
            "brand",
            "stock",
            "in_stock",
            "featured",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields
