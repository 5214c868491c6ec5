# apps/payments/tests.py
import hashlib
import hmac
import json
import time
from unittest import mock

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import DatabaseError
from django.test import TestCase, override_settings
from django.urls import reverse

from rest_framework import status
from rest_framework.test import APITestCase, APIClient

from apps.catalog.models import Product
from apps.orders.models import Order, CartItem
from apps.orders.services import CartService, OrderService
from apps.utils.exceptions import WebhookSignatureError
from .events import (
    CheckoutSessionCompleted,
    PaymentFailed,
    UnrecognizedEvent,
    parse_event,
)
from .services import PaymentService, WebhookService

User = get_user_model()

ADDRESS = {
    "full_name": "Ada Lovelace",
    "address_line1": "12 St James's Square",
    "city": "London",
    "state": "London",
    "postal_code": "SW1Y 4JH",
    "country": "GB",
}


def sign(payload: str, secret=None, timestamp=None) -> str:
    """Builds a Stripe-Signature header the way Stripe does."""
    secret = secret or settings.STRIPE_WEBHOOK_SECRET
    timestamp = timestamp or int(time.time())
    digest = hmac.new(
        secret.encode("utf-8"), f"{timestamp}.{payload}".encode("utf-8"), hashlib.sha256
    ).hexdigest()
    return f"t={timestamp},v1={digest}"


def completed_event(order_id, user_id, payment_intent="pi_123", event_id="evt_1"):
    return {
        "id": event_id,
        "type": "checkout.session.completed",
        "data": {"object": {
            "id": "cs_test_1",
            "object": "checkout.session",
            "payment_intent": payment_intent,
            "metadata": {"order_id": str(order_id), "user_id": str(user_id)},
        }},
    }


def failed_event(payment_intent, event_id="evt_2"):
    return {
        "id": event_id,
        "type": "payment_intent.payment_failed",
        "data": {"object": {"id": payment_intent, "object": "payment_intent"}},
    }


class ParseEventTests(TestCase):
    def test_checkout_completed(self):
        event = parse_event(completed_event("ord-1", "7"))

        self.assertIsInstance(event, CheckoutSessionCompleted)
        self.assertEqual(event.order_id, "ord-1")
        self.assertEqual(event.user_id, "7")
        self.assertEqual(event.session_id, "cs_test_1")
        self.assertEqual(event.payment_intent_id, "pi_123")

    def test_expanded_payment_intent(self):
        data = completed_event("ord-1", "7", payment_intent={"id": "pi_exp", "object": "payment_intent"})
        self.assertEqual(parse_event(data).payment_intent_id, "pi_exp")

    def test_missing_metadata(self):
        data = completed_event("ord-1", "7")
        del data["data"]["object"]["metadata"]

        event = parse_event(data)
        self.assertIsNone(event.order_id)
        self.assertIsNone(event.user_id)

    def test_payment_failed(self):
        event = parse_event(failed_event("pi_9"))
        self.assertIsInstance(event, PaymentFailed)
        self.assertEqual(event.payment_intent_id, "pi_9")

    def test_anything_else_is_unrecognized(self):
        event = parse_event({"id": "evt_3", "type": "customer.created", "data": {"object": {}}})
        self.assertIsInstance(event, UnrecognizedEvent)
        self.assertEqual(event.event_type, "customer.created")

        self.assertEqual(parse_event({}).event_type, "unknown")

    def test_non_object_sections_are_invalid_payload(self):
        bad_object = {"id": "evt_4", "type": "checkout.session.completed", "data": {"object": "x"}}
        bad_metadata = completed_event("ord-1", "7")
        bad_metadata["data"]["object"]["metadata"] = ["ord-1"]

        for data in (bad_object, bad_metadata, {"type": "customer.created", "data": "x"}):
            with self.assertRaises(WebhookSignatureError) as ctx:
                parse_event(data)
            self.assertEqual(ctx.exception.code, "invalid_payload")


class ConstructEventTests(TestCase):
    def test_valid_signature(self):
        payload = json.dumps(failed_event("pi_9"))
        event = PaymentService.construct_event(payload.encode("utf-8"), sign(payload))
        self.assertIsInstance(event, PaymentFailed)

    def test_missing_signature(self):
        with self.assertRaises(WebhookSignatureError):
            PaymentService.construct_event(b"{}", None)

    def test_wrong_secret(self):
        payload = json.dumps(failed_event("pi_9"))
        with self.assertRaises(WebhookSignatureError) as ctx:
            PaymentService.construct_event(payload.encode("utf-8"), sign(payload, secret="whsec_other"))
        self.assertEqual(ctx.exception.code, "invalid_signature")

    def test_stale_timestamp(self):
        payload = json.dumps(failed_event("pi_9"))
        header = sign(payload, timestamp=int(time.time()) - 3600)
        with self.assertRaises(WebhookSignatureError):
            PaymentService.construct_event(payload.encode("utf-8"), header)

    @override_settings(STRIPE_WEBHOOK_SECRET="")
    def test_unconfigured_secret_rejects_everything(self):
        payload = json.dumps(failed_event("pi_9"))
        with self.assertRaises(WebhookSignatureError):
            PaymentService.construct_event(payload.encode("utf-8"), sign(payload, secret="whsec_x"))

    def test_signed_garbage_is_invalid_payload(self):
        payload = "not json"
        with self.assertRaises(WebhookSignatureError) as ctx:
            PaymentService.construct_event(payload.encode("utf-8"), sign(payload))
        self.assertEqual(ctx.exception.code, "invalid_payload")


class WebhookServiceTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="ada", email="ada@example.com", password="pw")
        self.product = Product.objects.create(name="Midnight Oud", price=12900, stock=5)
        self.order = Order.objects.create(
            user=self.user, email=self.user.email, total_amount=12900, shipping_address=ADDRESS
        )
        CartItem.objects.create(user=self.user, product=self.product, quantity=1)

    def test_missing_order_id_changes_nothing(self):
        event = CheckoutSessionCompleted("evt_1", "cs_1", None, str(self.user.pk), "pi_1")

        result = WebhookService.process(event)

        self.assertEqual(result.outcome, "missing_order_id")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PENDING)
        self.assertEqual(CartItem.objects.filter(user=self.user).count(), 1)

    def test_status_write_failure_still_clears_cart(self):
        event = parse_event(completed_event(self.order.id, self.user.pk))

        with mock.patch.object(OrderService, "mark_completed", side_effect=DatabaseError("down")):
            result = WebhookService.process(event)

        self.assertEqual(result.outcome, "error")
        self.assertFalse(CartItem.objects.filter(user=self.user).exists())

    def test_cart_clear_failure_keeps_completion(self):
        event = parse_event(completed_event(self.order.id, self.user.pk))

        with mock.patch.object(CartService, "clear_for_user", side_effect=DatabaseError("down")):
            result = WebhookService.process(event)

        self.assertEqual(result.outcome, "transitioned")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.COMPLETED)

    def test_unknown_order_leaves_cart_alone(self):
        event = CheckoutSessionCompleted(
            "evt_1", "cs_1", "00000000-0000-0000-0000-000000000000", str(self.user.pk), "pi_1"
        )

        result = WebhookService.process(event)

        self.assertEqual(result.outcome, "not_found")
        self.assertEqual(CartItem.objects.filter(user=self.user).count(), 1)


class StripeWebhookAPITests(APITestCase):
    def setUp(self):
        self.client = APIClient()
        self.url = reverse("payment-webhook")
        self.user = User.objects.create_user(username="ada", email="ada@example.com", password="pw")
        self.product = Product.objects.create(name="Midnight Oud", price=12900, stock=5)
        self.order = Order.objects.create(
            user=self.user, email=self.user.email, total_amount=12900, shipping_address=ADDRESS
        )
        CartItem.objects.create(user=self.user, product=self.product, quantity=2)

    def _post(self, data, header=None):
        payload = data if isinstance(data, str) else json.dumps(data)
        extra = {}
        if header is not False:
            extra["HTTP_STRIPE_SIGNATURE"] = header or sign(payload)
        return self.client.post(self.url, data=payload, content_type="application/json", **extra)

    def test_checkout_completed_marks_order_and_clears_cart(self):
        resp = self._post(completed_event(self.order.id, self.user.pk))

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data, {
            "received": True,
            "event_type": "checkout.session.completed",
            "outcome": "transitioned",
        })
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.COMPLETED)
        self.assertEqual(self.order.payment_intent_id, "pi_123")
        self.assertFalse(CartItem.objects.filter(user=self.user).exists())

    def test_duplicate_delivery_is_acknowledged_once(self):
        event = completed_event(self.order.id, self.user.pk)
        self._post(event)

        # Items added after payment belong to the next purchase
        CartItem.objects.create(user=self.user, product=self.product, quantity=1)
        resp = self._post(event)

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["outcome"], "already_terminal")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.COMPLETED)
        self.assertEqual(CartItem.objects.filter(user=self.user).count(), 1)

    def test_cancelled_order_stays_cancelled(self):
        Order.objects.filter(id=self.order.id).update(status=Order.Status.CANCELLED)

        resp = self._post(completed_event(self.order.id, self.user.pk))

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.CANCELLED)

    def test_payment_failed_cancels_matching_order(self):
        Order.objects.filter(id=self.order.id).update(payment_intent_id="pi_fail")

        resp = self._post(failed_event("pi_fail"))

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["outcome"], "transitioned")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.CANCELLED)

    def test_payment_failed_without_match_is_acknowledged(self):
        resp = self._post(failed_event("pi_unknown"))

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["outcome"], "not_found")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PENDING)

    def test_unrecognized_event_is_ignored(self):
        resp = self._post({"id": "evt_x", "type": "charge.refunded", "data": {"object": {}}})

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["outcome"], "ignored")
        self.assertEqual(resp.data["event_type"], "charge.refunded")

    def test_bad_signature_touches_nothing(self):
        payload = json.dumps(completed_event(self.order.id, self.user.pk))

        with self.assertNumQueries(0):
            resp = self._post(payload, header=sign(payload, secret="whsec_forged"))

        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resp.data["code"], "invalid_signature")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PENDING)
        self.assertEqual(CartItem.objects.filter(user=self.user).count(), 1)

    def test_missing_signature_rejected(self):
        resp = self._post(completed_event(self.order.id, self.user.pk), header=False)

        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PENDING)

    def test_signed_malformed_payload_is_rejected(self):
        resp = self._post({"id": "evt_5", "type": "checkout.session.completed", "data": {"object": "x"}})

        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resp.data["code"], "invalid_payload")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PENDING)

    def test_tampered_body_rejected(self):
        payload = json.dumps(completed_event(self.order.id, self.user.pk))
        header = sign(payload)
        tampered = payload.replace("pi_123", "pi_666")

        resp = self._post(tampered, header=header)

        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.order.refresh_from_db()
        self.assertIsNone(self.order.payment_intent_id)
