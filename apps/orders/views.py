from rest_framework import viewsets, status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated, AllowAny

from .models import Order
from .serializers import (
    CartItemSerializer,
    CartLineSerializer,
    CartQuantitySerializer,
    CheckoutRequestSerializer,
    OrderSerializer,
)
from .services import CartLine, CartOwner, CartService, CheckoutService

CART_SESSION_HEADER = "X-Cart-Session"


def cart_owner_for(request) -> CartOwner:
    """
    Signed-in shoppers own their cart by user id; guests by the cart key
    their client sends in the X-Cart-Session header.
    """
    if request.user and request.user.is_authenticated:
        return CartOwner(user_id=request.user.pk)
    return CartOwner(session_key=request.headers.get(CART_SESSION_HEADER) or None)


class CheckoutView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        """
        Main checkout endpoint.
        Returns the hosted payment page URL the client should redirect to.
        """
        serializer = CheckoutRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        cart_lines = [
            CartLine(product_id=line['product_id'], quantity=line['quantity'])
            for line in serializer.validated_data.get('cart_items', [])
        ]
        result = CheckoutService.start_checkout(
            user=request.user,
            shipping_address=serializer.validated_data['shipping_address'],
            cart_lines=cart_lines,
        )

        return Response({
            "success": True,
            "data": {
                "order_id": str(result.order_id),
                "session_id": result.session_id,
                "url": result.url,
            }
        }, status=status.HTTP_200_OK)


class CartViewSet(viewsets.ViewSet):
    """
    /cart/              GET list, POST add {product_id, quantity}
    /cart/<product_id>/ PATCH {quantity}, DELETE
    /cart/clear/        POST
    """
    permission_classes = [AllowAny]
    lookup_value_regex = '[^/]+'

    def _cart_response(self, owner, status_code=status.HTTP_200_OK):
        cart = CartService.summary(owner)
        return Response({
            "items": CartItemSerializer(cart.items, many=True).data,
            "count": cart.count,
            "total": cart.total,
        }, status=status_code)

    def list(self, request):
        return self._cart_response(cart_owner_for(request))

    def create(self, request):
        owner = cart_owner_for(request)
        serializer = CartLineSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        CartService.add_item(
            owner,
            serializer.validated_data['product_id'],
            serializer.validated_data['quantity'],
        )
        return self._cart_response(owner, status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):
        owner = cart_owner_for(request)
        serializer = CartQuantitySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        CartService.set_quantity(owner, pk, serializer.validated_data['quantity'])
        return self._cart_response(owner)

    def destroy(self, request, pk=None):
        owner = cart_owner_for(request)
        CartService.remove_item(owner, pk)
        return self._cart_response(owner)

    @action(detail=False, methods=['post'])
    def clear(self, request):
        owner = cart_owner_for(request)
        CartService.clear(owner)
        return self._cart_response(owner)


class OrderViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = OrderSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        return Order.objects.filter(user=self.request.user).prefetch_related('items')
