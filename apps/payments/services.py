import json
import logging
from dataclasses import dataclass

import stripe
from django.conf import settings
from django.db import DatabaseError

from apps.orders.services import CartService, OrderService, PricedCart, TransitionOutcome
from apps.utils.exceptions import PaymentGatewayError, WebhookSignatureError
from .events import (
    CheckoutSessionCompleted,
    PaymentEvent,
    PaymentFailed,
    UnrecognizedEvent,
    parse_event,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutSession:
    session_id: str
    url: str


@dataclass(frozen=True)
class WebhookResult:
    event_type: str
    outcome: str


class PaymentService:
    """
    Talks to the payment processor (Stripe hosted Checkout).
    """

    @staticmethod
    def build_line_items(priced_cart: PricedCart) -> list:
        line_items = []
        for line in priced_cart.lines:
            product_data = {"name": line.name}
            if line.description:
                product_data["description"] = line.description
            if line.image_url:
                product_data["images"] = [line.image_url]

            line_items.append({
                "price_data": {
                    "currency": settings.STRIPE_CURRENCY,
                    "product_data": product_data,
                    "unit_amount": line.unit_price,
                },
                "quantity": line.quantity,
            })
        return line_items

    @staticmethod
    def create_checkout_session(priced_cart: PricedCart, order_id, user_id, email: str,
                                success_url: str, cancel_url: str) -> CheckoutSession:
        """
        Opens a hosted checkout session for an already persisted order and
        records the session id on it. The order id travels in the session
        metadata so the webhook can find the order again.
        """
        try:
            session = stripe.checkout.Session.create(
                api_key=settings.STRIPE_SECRET_KEY,
                mode="payment",
                payment_method_types=["card"],
                line_items=PaymentService.build_line_items(priced_cart),
                success_url=success_url,
                cancel_url=cancel_url,
                customer_email=email,
                client_reference_id=str(order_id),
                metadata={
                    "order_id": str(order_id),
                    "user_id": str(user_id),
                },
                idempotency_key=f"checkout_{order_id}",
            )
        except stripe.StripeError as e:
            logger.error(
                f"Stripe Checkout Session Create Failed for order {order_id}: {e}",
                extra={"order_id": order_id},
            )
            raise PaymentGatewayError("Failed to create checkout session") from e

        OrderService.attach_checkout_session(order_id, session.id)
        logger.info(
            f"Checkout session {session.id} created for order {order_id}",
            extra={"order_id": order_id, "session_id": session.id},
        )
        return CheckoutSession(session_id=session.id, url=session.url)

    @staticmethod
    def construct_event(payload: bytes, signature: str) -> PaymentEvent:
        """
        Strict Signature Verification, then parsing.
        Nothing in the payload is looked at before the signature checks out.
        """
        if not signature:
            logger.warning("Stripe Webhook: Missing Signature")
            raise WebhookSignatureError("No signature")

        secret = settings.STRIPE_WEBHOOK_SECRET
        if not secret:
            logger.error("Stripe Webhook: STRIPE_WEBHOOK_SECRET is not configured")
            raise WebhookSignatureError("Webhook secret not configured")

        try:
            body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
            stripe.WebhookSignature.verify_header(
                body, signature, secret, tolerance=settings.STRIPE_WEBHOOK_TOLERANCE
            )
        except (stripe.SignatureVerificationError, UnicodeDecodeError) as e:
            logger.warning(f"Webhook signature verification failed: {e}")
            raise WebhookSignatureError(f"Webhook Error: {e}") from e

        try:
            data = json.loads(body)
        except ValueError as e:
            logger.warning(f"Webhook payload is not valid JSON: {e}")
            raise WebhookSignatureError("Invalid payload", code="invalid_payload") from e

        if not isinstance(data, dict):
            raise WebhookSignatureError("Invalid payload", code="invalid_payload")

        return parse_event(data)


class WebhookService:
    """
    Reconciles processor callbacks into order state.

    Every recognised or ignored event is acknowledged; inconsistencies are
    logged instead of failing so the processor does not keep redelivering
    a callback that can never succeed.
    """

    @staticmethod
    def process(event: PaymentEvent) -> WebhookResult:
        if isinstance(event, CheckoutSessionCompleted):
            return WebhookService._handle_checkout_completed(event)
        if isinstance(event, PaymentFailed):
            return WebhookService._handle_payment_failed(event)

        logger.info(f"Unhandled event type: {event.event_type}", extra={"event_type": event.event_type})
        return WebhookResult(event.event_type, "ignored")

    @staticmethod
    def _handle_checkout_completed(event: CheckoutSessionCompleted) -> WebhookResult:
        if not event.order_id:
            logger.error(
                f"No order ID in session metadata for session {event.session_id}",
                extra={"event_id": event.event_id, "session_id": event.session_id},
            )
            return WebhookResult(event.event_type, "missing_order_id")

        try:
            outcome = OrderService.mark_completed(event.order_id, event.payment_intent_id).value
        except DatabaseError:
            # Still try the cart cleanup below
            logger.exception(
                f"Failed to mark order {event.order_id} completed",
                extra={"order_id": event.order_id},
            )
            outcome = "error"

        if outcome in (TransitionOutcome.ALREADY_TERMINAL.value, TransitionOutcome.NOT_FOUND.value):
            return WebhookResult(event.event_type, outcome)

        if event.user_id:
            try:
                CartService.clear_for_user(event.user_id)
            except (DatabaseError, ValueError):
                logger.exception(
                    f"Failed to clear cart for user {event.user_id}",
                    extra={"order_id": event.order_id, "user_id": event.user_id},
                )

        return WebhookResult(event.event_type, outcome)

    @staticmethod
    def _handle_payment_failed(event: PaymentFailed) -> WebhookResult:
        logger.warning(f"Payment failed: {event.payment_intent_id}", extra={"event_id": event.event_id})
        outcome = OrderService.mark_cancelled_by_payment_intent(event.payment_intent_id)
        return WebhookResult(event.event_type, outcome.value)
