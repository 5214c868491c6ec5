from django.contrib import admin
from .models import Order, OrderItem, CartItem


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ('product', 'product_name', 'product_price', 'quantity', 'subtotal')

    def has_add_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ('id', 'email', 'status', 'total_amount', 'created_at')
    list_filter = ('status', 'created_at')
    search_fields = ('id', 'email', 'checkout_session_id', 'payment_intent_id')

    inlines = [OrderItemInline]

    # Totals and processor references are owned by checkout and the webhook
    readonly_fields = (
        'id',
        'user',
        'email',
        'total_amount',
        'checkout_session_id',
        'payment_intent_id',
        'shipping_address',
        'created_at',
        'updated_at',
    )

    def has_add_permission(self, request):
        return False


@admin.register(CartItem)
class CartItemAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'session_key', 'product', 'quantity', 'updated_at')
    search_fields = ('user__email', 'session_key', 'product__name')
    readonly_fields = ('created_at', 'updated_at')
