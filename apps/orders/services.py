import enum
import logging
import uuid
from dataclasses import dataclass, field
from typing import List, Optional

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from apps.catalog.models import Product
from apps.utils.exceptions import (
    BusinessLogicException,
    CartOwnerRequired,
    EmptyCart,
    UnknownProduct,
)
from .models import Order, OrderItem, CartItem

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CartLine:
    """(product, quantity) pair submitted by the client at checkout."""
    product_id: uuid.UUID
    quantity: int


@dataclass(frozen=True)
class PricedLine:
    product_id: uuid.UUID
    name: str
    description: str
    image_url: str
    unit_price: int
    quantity: int

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class PricedCart:
    lines: List[PricedLine] = field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(line.line_total for line in self.lines)


@dataclass(frozen=True)
class CheckoutResult:
    order_id: uuid.UUID
    session_id: str
    url: str


@dataclass(frozen=True)
class CartSummary:
    items: list
    count: int
    total: int


@dataclass(frozen=True)
class CartOwner:
    """
    Whose cart a call operates on: a signed-in user or a guest cart key.
    Built once at the request edge and passed explicitly to CartService.
    """
    user_id: Optional[int] = None
    session_key: Optional[str] = None

    def __post_init__(self):
        if (self.user_id is None) == (not self.session_key):
            raise CartOwnerRequired()

    @property
    def lookup(self) -> dict:
        if self.user_id is not None:
            return {"user_id": self.user_id}
        return {"session_key": self.session_key}


class TransitionOutcome(str, enum.Enum):
    TRANSITIONED = "transitioned"
    ALREADY_TERMINAL = "already_terminal"
    NOT_FOUND = "not_found"


def _as_uuid(value):
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


class PricingService:

    @staticmethod
    def resolve(cart_lines) -> PricedCart:
        """
        Prices cart lines from the catalog (never from client input).

        Raises EmptyCart for no lines and UnknownProduct when any id does not
        resolve. Read-only, so callers may retry freely.
        """
        cart_lines = list(cart_lines)
        if not cart_lines:
            raise EmptyCart()

        for line in cart_lines:
            if line.quantity < 1:
                raise BusinessLogicException("Quantity must be at least 1", code="invalid_quantity")

        wanted = [_as_uuid(line.product_id) for line in cart_lines]
        products = Product.objects.in_bulk([pid for pid in wanted if pid is not None])

        missing = [
            line.product_id for line, pid in zip(cart_lines, wanted)
            if pid is None or pid not in products
        ]
        if missing:
            logger.info(f"Checkout rejected, unknown products: {missing}")
            raise UnknownProduct(missing)

        priced = []
        for line, pid in zip(cart_lines, wanted):
            product = products[pid]
            priced.append(PricedLine(
                product_id=product.id,
                name=product.name,
                description=product.description,
                image_url=product.image_url,
                unit_price=product.price,
                quantity=line.quantity,
            ))
        return PricedCart(lines=priced)


class OrderService:

    @staticmethod
    def create_pending_order(user, email: str, shipping_address: dict, priced_cart: PricedCart) -> Order:
        """
        Writes the order and its item snapshot as one unit.
        Either both land or neither does.
        """
        if not priced_cart.lines:
            raise EmptyCart()

        with transaction.atomic():
            order = Order.objects.create(
                user=user,
                email=email,
                total_amount=priced_cart.total,
                status=Order.Status.PENDING,
                shipping_address=dict(shipping_address),
            )
            OrderItem.objects.bulk_create([
                OrderItem(
                    order=order,
                    product_id=line.product_id,
                    product_name=line.name,
                    product_price=line.unit_price,
                    quantity=line.quantity,
                ) for line in priced_cart.lines
            ])

        logger.info(
            f"Order {order.id} created: {len(priced_cart.lines)} items, total {order.total_amount}",
            extra={"order_id": order.id, "user_id": getattr(user, "pk", None)},
        )
        return order

    @staticmethod
    def attach_checkout_session(order_id, session_id: str) -> None:
        # Column-scoped update so a concurrent status change is never overwritten
        Order.objects.filter(id=order_id).update(
            checkout_session_id=session_id,
            updated_at=timezone.now(),
        )

    @staticmethod
    def mark_completed(order_id, payment_intent_id: Optional[str]) -> TransitionOutcome:
        """
        Transition: PENDING/PROCESSING -> COMPLETED
        """
        with transaction.atomic():
            try:
                order = Order.objects.select_for_update().get(id=order_id)
            except (Order.DoesNotExist, ValidationError, ValueError):
                logger.warning(f"Completion for unknown order {order_id}. Ignoring.", extra={"order_id": order_id})
                return TransitionOutcome.NOT_FOUND

            if not order.can_transition_to(Order.Status.COMPLETED):
                logger.info(
                    f"Order {order_id} already {order.status}. Ignoring completion.",
                    extra={"order_id": order_id},
                )
                return TransitionOutcome.ALREADY_TERMINAL

            order.status = Order.Status.COMPLETED
            order.payment_intent_id = payment_intent_id
            order.save(update_fields=['status', 'payment_intent_id', 'updated_at'])

        logger.info(f"Order {order_id} marked as completed", extra={"order_id": order_id})
        return TransitionOutcome.TRANSITIONED

    @staticmethod
    def mark_cancelled_by_payment_intent(payment_intent_id: Optional[str]) -> TransitionOutcome:
        """
        Transition: PENDING/PROCESSING -> CANCELLED, located by payment intent.
        """
        if not payment_intent_id:
            return TransitionOutcome.NOT_FOUND

        with transaction.atomic():
            order = (
                Order.objects.select_for_update()
                .filter(payment_intent_id=payment_intent_id)
                .order_by("created_at")
                .first()
            )
            if order is None:
                logger.info(f"No order for failed payment {payment_intent_id}")
                return TransitionOutcome.NOT_FOUND

            if not order.can_transition_to(Order.Status.CANCELLED):
                logger.info(
                    f"Order {order.id} already {order.status}. Ignoring payment failure.",
                    extra={"order_id": order.id},
                )
                return TransitionOutcome.ALREADY_TERMINAL

            order.status = Order.Status.CANCELLED
            order.save(update_fields=['status', 'updated_at'])

        logger.info(f"Order {order.id} cancelled after failed payment", extra={"order_id": order.id})
        return TransitionOutcome.TRANSITIONED


class CartService:
    """
    Server-side cart lines. Every call names its owner explicitly.
    """

    @staticmethod
    def list_items(owner: CartOwner):
        return CartItem.objects.filter(**owner.lookup).select_related("product")

    @staticmethod
    def summary(owner: CartOwner) -> CartSummary:
        items = list(CartService.list_items(owner))
        return CartSummary(
            items=items,
            count=sum(item.quantity for item in items),
            total=sum(item.product.price * item.quantity for item in items),
        )

    @staticmethod
    def _get_product(product_id) -> Product:
        pid = _as_uuid(product_id)
        product = Product.objects.filter(id=pid).first() if pid else None
        if product is None:
            raise UnknownProduct([product_id])
        return product

    @staticmethod
    def _check_quantity(quantity: int) -> None:
        if quantity < 1 or quantity > settings.MAX_CART_LINE_QUANTITY:
            raise BusinessLogicException(
                f"Quantity must be between 1 and {settings.MAX_CART_LINE_QUANTITY}",
                code="invalid_quantity",
            )

    @staticmethod
    @transaction.atomic
    def add_item(owner: CartOwner, product_id, quantity: int = 1) -> CartItem:
        CartService._check_quantity(quantity)
        product = CartService._get_product(product_id)

        item = CartItem.objects.select_for_update().filter(product=product, **owner.lookup).first()
        if item is None:
            return CartItem.objects.create(product=product, quantity=quantity, **owner.lookup)

        new_quantity = item.quantity + quantity
        CartService._check_quantity(new_quantity)
        item.quantity = new_quantity
        item.save(update_fields=["quantity", "updated_at"])
        return item

    @staticmethod
    def set_quantity(owner: CartOwner, product_id, quantity: int) -> CartItem:
        CartService._check_quantity(quantity)
        item = CartItem.objects.filter(product_id=_as_uuid(product_id), **owner.lookup).first()
        if item is None:
            raise BusinessLogicException("Item is not in the cart", code="not_in_cart")
        item.quantity = quantity
        item.save(update_fields=["quantity", "updated_at"])
        return item

    @staticmethod
    def remove_item(owner: CartOwner, product_id) -> int:
        deleted, _ = CartItem.objects.filter(product_id=_as_uuid(product_id), **owner.lookup).delete()
        return deleted

    @staticmethod
    def clear(owner: CartOwner) -> int:
        deleted, _ = CartItem.objects.filter(**owner.lookup).delete()
        return deleted

    @staticmethod
    def clear_for_user(user_id) -> int:
        """
        Bulk-deletes a user's cart. Deleting an already empty cart is a no-op,
        so repeated calls are harmless.
        """
        deleted, _ = CartItem.objects.filter(user_id=user_id).delete()
        logger.info(f"Cleared {deleted} cart items for user {user_id}", extra={"user_id": user_id})
        return deleted


class CheckoutService:

    @staticmethod
    def redirect_urls():
        base = settings.FRONTEND_URL.rstrip("/")
        return (
            f"{base}{settings.CHECKOUT_SUCCESS_PATH}",
            f"{base}{settings.CHECKOUT_CANCEL_PATH}",
        )

    @staticmethod
    def start_checkout(user, shipping_address: dict, cart_lines) -> CheckoutResult:
        """
        Checkout sequence:
        1. Price lines from the catalog
        2. Persist the pending order + item snapshot (atomic)
        3. Open the hosted payment session and return its URL

        A failure in step 3 leaves the pending order in place.
        """
        if not user.email:
            raise BusinessLogicException("An email address is required to check out", code="email_required")

        priced_cart = PricingService.resolve(cart_lines)
        order = OrderService.create_pending_order(user, user.email, shipping_address, priced_cart)

        from apps.payments.services import PaymentService

        success_url, cancel_url = CheckoutService.redirect_urls()
        session = PaymentService.create_checkout_session(
            priced_cart,
            order_id=order.id,
            user_id=user.pk,
            email=user.email,
            success_url=success_url,
            cancel_url=cancel_url,
        )
        return CheckoutResult(order_id=order.id, session_id=session.session_id, url=session.url)
