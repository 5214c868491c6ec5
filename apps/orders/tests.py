# apps/orders/tests.py
from unittest import mock
import uuid

from django.contrib.auth import get_user_model
from django.db import DatabaseError
from django.test import TestCase
from django.urls import reverse

import stripe
from rest_framework import status
from rest_framework.test import APITestCase, APIClient

from apps.catalog.models import Product, ProductCategory
from apps.utils.exceptions import CartOwnerRequired, EmptyCart, UnknownProduct
from .models import Order, OrderItem, CartItem
from .services import (
    CartLine,
    CartOwner,
    CartService,
    OrderService,
    PricingService,
    TransitionOutcome,
)

User = get_user_model()

ADDRESS = {
    "full_name": "Ada Lovelace",
    "address_line1": "12 St James's Square",
    "city": "London",
    "state": "London",
    "postal_code": "SW1Y 4JH",
    "country": "GB",
}


def make_product(name, price, **extra):
    defaults = {
        "description": f"{name} description",
        "image_url": f"https://img.example.com/{name.lower().replace(' ', '-')}.jpg",
        "category": ProductCategory.PERFUME,
        "brand": "Maison Noir",
        "stock": 10,
    }
    defaults.update(extra)
    return Product.objects.create(name=name, price=price, **defaults)


class OrderTransitionTests(TestCase):
    def setUp(self):
        self.order = Order.objects.create(
            email="a@example.com", total_amount=100, shipping_address=ADDRESS
        )

    def test_pending_can_move_to_any_other_state(self):
        for target in (Order.Status.PROCESSING, Order.Status.COMPLETED, Order.Status.CANCELLED):
            self.assertTrue(self.order.can_transition_to(target))

    def test_processing_cannot_go_back_to_pending(self):
        self.order.status = Order.Status.PROCESSING
        self.assertFalse(self.order.can_transition_to(Order.Status.PENDING))
        self.assertTrue(self.order.can_transition_to(Order.Status.COMPLETED))

    def test_terminal_states_have_no_exits(self):
        for terminal in (Order.Status.COMPLETED, Order.Status.CANCELLED):
            self.order.status = terminal
            for target in Order.Status.values:
                self.assertFalse(self.order.can_transition_to(target))


class PricingServiceTests(TestCase):
    def setUp(self):
        self.product_a = make_product("Product A", 1000)
        self.product_b = make_product("Product B", 2500)

    def test_resolves_catalog_prices_and_total(self):
        priced = PricingService.resolve([
            CartLine(self.product_a.id, 2),
            CartLine(self.product_b.id, 1),
        ])

        self.assertEqual(priced.total, 4500)
        self.assertEqual([line.unit_price for line in priced.lines], [1000, 2500])
        self.assertEqual([line.quantity for line in priced.lines], [2, 1])
        self.assertEqual(priced.lines[0].name, "Product A")
        self.assertEqual(priced.lines[0].image_url, self.product_a.image_url)

    def test_accepts_string_ids(self):
        priced = PricingService.resolve([CartLine(str(self.product_a.id), 3)])
        self.assertEqual(priced.total, 3000)

    def test_empty_cart_rejected(self):
        with self.assertRaises(EmptyCart):
            PricingService.resolve([])

    def test_unknown_product_rejected(self):
        missing = uuid.uuid4()
        with self.assertRaises(UnknownProduct) as ctx:
            PricingService.resolve([CartLine(self.product_a.id, 1), CartLine(missing, 1)])
        self.assertEqual(ctx.exception.product_ids, [str(missing)])
        self.assertEqual(ctx.exception.code, "unknown_product")

    def test_malformed_id_is_unknown(self):
        with self.assertRaises(UnknownProduct):
            PricingService.resolve([CartLine("not-a-uuid", 1)])

    def test_resolves_in_one_query(self):
        with self.assertNumQueries(1):
            PricingService.resolve([CartLine(self.product_a.id, 1), CartLine(self.product_b.id, 1)])


class OrderServiceTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="ada", email="ada@example.com", password="pw")
        self.product_a = make_product("Product A", 1000)
        self.product_b = make_product("Product B", 2500)
        self.priced = PricingService.resolve([
            CartLine(self.product_a.id, 2),
            CartLine(self.product_b.id, 1),
        ])

    def test_create_pending_order_with_snapshot(self):
        order = OrderService.create_pending_order(self.user, self.user.email, ADDRESS, self.priced)

        self.assertEqual(order.status, Order.Status.PENDING)
        self.assertEqual(order.total_amount, 4500)
        self.assertEqual(order.shipping_address["city"], "London")
        items = list(order.items.order_by("product_price"))
        self.assertEqual([(i.product_name, i.product_price, i.quantity) for i in items],
                         [("Product A", 1000, 2), ("Product B", 2500, 1)])
        self.assertEqual(order.total_amount, sum(i.subtotal for i in items))

    def test_snapshot_survives_catalog_changes(self):
        order = OrderService.create_pending_order(self.user, self.user.email, ADDRESS, self.priced)
        self.product_a.price = 9999
        self.product_a.save()
        self.product_b.delete()

        order.refresh_from_db()
        self.assertEqual(order.total_amount, 4500)
        prices = sorted(order.items.values_list("product_price", flat=True))
        self.assertEqual(prices, [1000, 2500])
        self.assertEqual(order.items.filter(product__isnull=True).count(), 1)

    def test_item_write_failure_leaves_no_order(self):
        with mock.patch.object(OrderItem.objects, "bulk_create", side_effect=DatabaseError("boom")):
            with self.assertRaises(DatabaseError):
                OrderService.create_pending_order(self.user, self.user.email, ADDRESS, self.priced)

        self.assertEqual(Order.objects.count(), 0)
        self.assertEqual(OrderItem.objects.count(), 0)

    def test_attach_checkout_session_keeps_status(self):
        order = OrderService.create_pending_order(self.user, self.user.email, ADDRESS, self.priced)
        Order.objects.filter(id=order.id).update(status=Order.Status.COMPLETED)

        OrderService.attach_checkout_session(order.id, "cs_test_1")

        order.refresh_from_db()
        self.assertEqual(order.checkout_session_id, "cs_test_1")
        self.assertEqual(order.status, Order.Status.COMPLETED)

    def test_mark_completed_is_idempotent(self):
        order = OrderService.create_pending_order(self.user, self.user.email, ADDRESS, self.priced)

        first = OrderService.mark_completed(order.id, "pi_1")
        second = OrderService.mark_completed(order.id, "pi_2")

        self.assertEqual(first, TransitionOutcome.TRANSITIONED)
        self.assertEqual(second, TransitionOutcome.ALREADY_TERMINAL)
        order.refresh_from_db()
        self.assertEqual(order.status, Order.Status.COMPLETED)
        self.assertEqual(order.payment_intent_id, "pi_1")

    def test_mark_completed_unknown_order(self):
        self.assertEqual(OrderService.mark_completed(uuid.uuid4(), "pi_1"), TransitionOutcome.NOT_FOUND)
        self.assertEqual(OrderService.mark_completed("garbage", "pi_1"), TransitionOutcome.NOT_FOUND)

    def test_cancelled_order_is_not_completed(self):
        order = OrderService.create_pending_order(self.user, self.user.email, ADDRESS, self.priced)
        Order.objects.filter(id=order.id).update(status=Order.Status.CANCELLED)

        self.assertEqual(OrderService.mark_completed(order.id, "pi_1"), TransitionOutcome.ALREADY_TERMINAL)
        order.refresh_from_db()
        self.assertEqual(order.status, Order.Status.CANCELLED)

    def test_mark_cancelled_by_payment_intent(self):
        order = OrderService.create_pending_order(self.user, self.user.email, ADDRESS, self.priced)
        Order.objects.filter(id=order.id).update(payment_intent_id="pi_9", status=Order.Status.PROCESSING)

        outcome = OrderService.mark_cancelled_by_payment_intent("pi_9")

        self.assertEqual(outcome, TransitionOutcome.TRANSITIONED)
        order.refresh_from_db()
        self.assertEqual(order.status, Order.Status.CANCELLED)

    def test_mark_cancelled_without_match(self):
        self.assertEqual(OrderService.mark_cancelled_by_payment_intent("pi_none"), TransitionOutcome.NOT_FOUND)
        self.assertEqual(OrderService.mark_cancelled_by_payment_intent(None), TransitionOutcome.NOT_FOUND)


class CartServiceTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="ada", email="ada@example.com", password="pw")
        self.other = User.objects.create_user(username="bob", email="bob@example.com", password="pw")
        self.product = make_product("Midnight Oud", 12900)
        self.candle = make_product("Amber Noir Candle", 4900, category=ProductCategory.CANDLE)

    def test_owner_requires_exactly_one_identity(self):
        with self.assertRaises(CartOwnerRequired):
            CartOwner()
        with self.assertRaises(CartOwnerRequired):
            CartOwner(user_id=self.user.pk, session_key="guest-1")
        with self.assertRaises(CartOwnerRequired):
            CartOwner(session_key="")

    def test_add_item_merges_quantities(self):
        owner = CartOwner(user_id=self.user.pk)
        CartService.add_item(owner, self.product.id, 1)
        CartService.add_item(owner, self.product.id, 2)

        item = CartItem.objects.get(user=self.user, product=self.product)
        self.assertEqual(item.quantity, 3)
        summary = CartService.summary(owner)
        self.assertEqual((summary.count, summary.total), (3, 3 * 12900))

    def test_guest_and_user_carts_are_separate(self):
        guest = CartOwner(session_key="guest-1")
        CartService.add_item(guest, self.product.id, 1)
        CartService.add_item(CartOwner(user_id=self.user.pk), self.candle.id, 1)

        self.assertEqual([i.product_id for i in CartService.list_items(guest)], [self.product.id])
        self.assertIsNone(CartItem.objects.get(session_key="guest-1").user_id)

    def test_add_unknown_product(self):
        with self.assertRaises(UnknownProduct):
            CartService.add_item(CartOwner(user_id=self.user.pk), uuid.uuid4(), 1)

    def test_clear_for_user_only_touches_that_user(self):
        CartService.add_item(CartOwner(user_id=self.user.pk), self.product.id, 1)
        CartService.add_item(CartOwner(user_id=self.user.pk), self.candle.id, 1)
        CartService.add_item(CartOwner(user_id=self.other.pk), self.product.id, 1)

        self.assertEqual(CartService.clear_for_user(self.user.pk), 2)
        self.assertEqual(CartService.clear_for_user(self.user.pk), 0)
        self.assertEqual(CartItem.objects.filter(user=self.other).count(), 1)


class CheckoutAPITests(APITestCase):
    def setUp(self):
        self.client = APIClient()
        self.url = reverse("checkout")
        self.user = User.objects.create_user(username="ada", email="ada@example.com", password="pw")
        self.product_a = make_product("Product A", 1000)
        self.product_b = make_product("Product B", 2500)

    def _payload(self, items=None):
        if items is None:
            items = [
                {"product_id": str(self.product_a.id), "quantity": 2, "price": 1},
                {"product_id": str(self.product_b.id), "quantity": 1, "price": 1},
            ]
        return {"shipping_address": ADDRESS, "cart_items": items}

    @mock.patch("stripe.checkout.Session.create")
    def test_checkout_creates_pending_order_and_session(self, create_session):
        create_session.return_value = mock.MagicMock(
            id="cs_test_123", url="https://checkout.stripe.com/c/pay/cs_test_123"
        )
        self.client.force_authenticate(self.user)

        resp = self.client.post(self.url, self._payload(), format="json")

        self.assertEqual(resp.status_code, status.HTTP_200_OK, resp.data)
        self.assertTrue(resp.data["success"])
        self.assertEqual(resp.data["data"]["url"], "https://checkout.stripe.com/c/pay/cs_test_123")

        order = Order.objects.get()
        self.assertEqual(str(order.id), resp.data["data"]["order_id"])
        self.assertEqual(order.status, Order.Status.PENDING)
        self.assertEqual(order.total_amount, 4500)
        self.assertEqual(order.email, "ada@example.com")
        self.assertEqual(order.checkout_session_id, "cs_test_123")
        self.assertEqual(sorted(order.items.values_list("product_price", flat=True)), [1000, 2500])

        kwargs = create_session.call_args.kwargs
        self.assertEqual(kwargs["metadata"], {"order_id": str(order.id), "user_id": str(self.user.pk)})
        self.assertEqual(kwargs["customer_email"], "ada@example.com")
        self.assertEqual(
            [li["price_data"]["unit_amount"] for li in kwargs["line_items"]], [1000, 2500]
        )
        self.assertEqual([li["quantity"] for li in kwargs["line_items"]], [2, 1])
        self.assertEqual(kwargs["line_items"][0]["price_data"]["product_data"]["name"], "Product A")
        self.assertEqual(
            kwargs["success_url"], "http://shop.test/order-success?session_id={CHECKOUT_SESSION_ID}"
        )
        self.assertEqual(kwargs["cancel_url"], "http://shop.test/cart")

    def test_unauthenticated_checkout_rejected(self):
        resp = self.client.post(self.url, self._payload(), format="json")

        self.assertEqual(resp.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(resp.data["code"], "not_authenticated")
        self.assertEqual(Order.objects.count(), 0)

    def test_empty_cart_creates_nothing(self):
        self.client.force_authenticate(self.user)

        for payload in (self._payload(items=[]), {"shipping_address": ADDRESS}):
            resp = self.client.post(self.url, payload, format="json")
            self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
            self.assertEqual(resp.data["code"], "empty_cart")

        self.assertEqual(Order.objects.count(), 0)
        self.assertEqual(OrderItem.objects.count(), 0)

    @mock.patch("stripe.checkout.Session.create")
    def test_unknown_product_creates_nothing(self, create_session):
        self.client.force_authenticate(self.user)
        items = [
            {"product_id": str(self.product_a.id), "quantity": 1},
            {"product_id": str(uuid.uuid4()), "quantity": 1},
        ]

        resp = self.client.post(self.url, self._payload(items=items), format="json")

        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resp.data["code"], "unknown_product")
        self.assertEqual(Order.objects.count(), 0)
        self.assertEqual(OrderItem.objects.count(), 0)
        create_session.assert_not_called()

    @mock.patch("stripe.checkout.Session.create")
    def test_non_uuid_product_id_is_unknown_product(self, create_session):
        self.client.force_authenticate(self.user)
        items = [{"product_id": "does-not-exist", "quantity": 1}]

        resp = self.client.post(self.url, self._payload(items=items), format="json")

        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resp.data["code"], "unknown_product")
        self.assertIn("does-not-exist", resp.data["error"])
        self.assertEqual(Order.objects.count(), 0)
        create_session.assert_not_called()

    def test_malformed_address_rejected(self):
        self.client.force_authenticate(self.user)
        payload = self._payload()
        payload["shipping_address"] = {**ADDRESS, "city": ""}

        resp = self.client.post(self.url, payload, format="json")

        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resp.data["code"], "invalid")
        self.assertIn("city", resp.data["details"]["shipping_address"])
        self.assertEqual(Order.objects.count(), 0)

    def test_zero_quantity_rejected(self):
        self.client.force_authenticate(self.user)
        items = [{"product_id": str(self.product_a.id), "quantity": 0}]

        resp = self.client.post(self.url, self._payload(items=items), format="json")

        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Order.objects.count(), 0)

    @mock.patch("stripe.checkout.Session.create")
    def test_gateway_failure_reports_internal_error(self, create_session):
        create_session.side_effect = stripe.APIConnectionError("Stripe is down")
        self.client.force_authenticate(self.user)

        resp = self.client.post(self.url, self._payload(), format="json")

        self.assertEqual(resp.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(resp.data["code"], "internal_error")
        # The pending order stays behind for the shopper to retry or abandon
        order = Order.objects.get()
        self.assertEqual(order.status, Order.Status.PENDING)
        self.assertIsNone(order.checkout_session_id)

    def test_user_without_email_rejected(self):
        user = User.objects.create_user(username="noemail", password="pw")
        self.client.force_authenticate(user)

        resp = self.client.post(self.url, self._payload(), format="json")

        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resp.data["code"], "email_required")
        self.assertEqual(Order.objects.count(), 0)


class CartAPITests(APITestCase):
    def setUp(self):
        self.client = APIClient()
        self.user = User.objects.create_user(username="ada", email="ada@example.com", password="pw")
        self.product = make_product("Midnight Oud", 12900)

    def test_guest_cart_via_session_header(self):
        headers = {"HTTP_X_CART_SESSION": "guest-abc"}
        resp = self.client.post(
            reverse("cart-list"), {"product_id": str(self.product.id), "quantity": 2},
            format="json", **headers
        )
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED, resp.data)
        self.assertEqual(resp.data["total"], 2 * 12900)

        resp = self.client.get(reverse("cart-list"), **headers)
        self.assertEqual(resp.data["count"], 2)
        self.assertEqual(resp.data["items"][0]["product"]["name"], "Midnight Oud")

    def test_add_malformed_product_id(self):
        resp = self.client.post(
            reverse("cart-list"), {"product_id": "nope", "quantity": 1},
            format="json", HTTP_X_CART_SESSION="guest-abc"
        )
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resp.data["code"], "unknown_product")
        self.assertFalse(CartItem.objects.exists())

    def test_cart_requires_owner(self):
        resp = self.client.get(reverse("cart-list"))
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resp.data["code"], "cart_owner_required")

    def test_update_remove_and_clear(self):
        self.client.force_authenticate(self.user)
        self.client.post(reverse("cart-list"), {"product_id": str(self.product.id), "quantity": 1}, format="json")

        detail = reverse("cart-detail", kwargs={"pk": str(self.product.id)})
        resp = self.client.patch(detail, {"quantity": 5}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["count"], 5)

        resp = self.client.delete(detail)
        self.assertEqual(resp.data["count"], 0)

        self.client.post(reverse("cart-list"), {"product_id": str(self.product.id), "quantity": 1}, format="json")
        resp = self.client.post(reverse("cart-clear"))
        self.assertEqual(resp.data["items"], [])
        self.assertFalse(CartItem.objects.filter(user=self.user).exists())


class OrderAPITests(APITestCase):
    def setUp(self):
        self.client = APIClient()
        self.user = User.objects.create_user(username="ada", email="ada@example.com", password="pw")
        self.other = User.objects.create_user(username="bob", email="bob@example.com", password="pw")
        self.order = Order.objects.create(
            user=self.user, email=self.user.email, total_amount=1000, shipping_address=ADDRESS
        )
        OrderItem.objects.create(order=self.order, product_name="Product A", product_price=1000, quantity=1)

    def test_lists_only_own_orders(self):
        Order.objects.create(user=self.other, email=self.other.email, total_amount=5, shipping_address=ADDRESS)
        self.client.force_authenticate(self.user)

        resp = self.client.get(reverse("orders-list"))

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual([o["id"] for o in resp.data["results"]], [str(self.order.id)])
        self.assertEqual(resp.data["results"][0]["items"][0]["subtotal"], 1000)

    def test_other_user_cannot_see_order(self):
        self.client.force_authenticate(self.other)
        resp = self.client.get(reverse("orders-detail", kwargs={"pk": str(self.order.id)}))
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)
