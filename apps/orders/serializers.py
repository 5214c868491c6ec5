from django.conf import settings
from rest_framework import serializers

from apps.catalog.serializers import ProductSerializer
from .models import Order, OrderItem, CartItem


class ShippingAddressSerializer(serializers.Serializer):
    full_name = serializers.CharField(max_length=255)
    address_line1 = serializers.CharField(max_length=255)
    address_line2 = serializers.CharField(max_length=255, required=False, allow_blank=True)
    city = serializers.CharField(max_length=120)
    state = serializers.CharField(max_length=120)
    postal_code = serializers.CharField(max_length=20)
    country = serializers.CharField(max_length=120)
    phone = serializers.CharField(max_length=30, required=False, allow_blank=True)


class CartLineSerializer(serializers.Serializer):
    # Any string; the catalog lookup decides whether it exists
    product_id = serializers.CharField(max_length=64)
    quantity = serializers.IntegerField(min_value=1, max_value=settings.MAX_CART_LINE_QUANTITY)


class CheckoutRequestSerializer(serializers.Serializer):
    """
    Client-supplied prices, if any, are ignored: only ids and quantities are read.
    """
    shipping_address = ShippingAddressSerializer()
    cart_items = CartLineSerializer(many=True, required=False)


class CartItemSerializer(serializers.ModelSerializer):
    product = ProductSerializer(read_only=True)
    line_total = serializers.SerializerMethodField()

    class Meta:
        model = CartItem
        fields = ['id', 'product', 'quantity', 'line_total', 'created_at', 'updated_at']

    def get_line_total(self, obj):
        return obj.product.price * obj.quantity


class CartQuantitySerializer(serializers.Serializer):
    quantity = serializers.IntegerField(min_value=1, max_value=settings.MAX_CART_LINE_QUANTITY)


class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = ['product', 'product_name', 'product_price', 'quantity', 'subtotal']


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)

    class Meta:
        model = Order
        fields = [
            'id', 'email', 'status', 'status_display', 'total_amount',
            'shipping_address', 'checkout_session_id', 'created_at', 'updated_at', 'items'
        ]
