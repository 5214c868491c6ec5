# apps/catalog/admin.py
from django.contrib import admin
from .models import Product


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = (
        "name",
        "brand",
        "category",
        "price",
        "stock",
        "featured",
    )
    search_fields = ("name", "brand", "description")
    list_filter = ("category", "featured", "brand")
    list_editable = ("price", "stock", "featured")
    readonly_fields = ("created_at", "updated_at")
