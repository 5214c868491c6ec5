# apps/payments/events.py
"""
Typed view of the processor callbacks this app acts on.

Every verified payload is turned into exactly one of the variants below;
anything we do not handle becomes UnrecognizedEvent instead of being
inspected ad hoc further down the call chain.
"""
from dataclasses import dataclass
from typing import ClassVar, Optional, Union

from apps.utils.exceptions import WebhookSignatureError

CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
PAYMENT_INTENT_FAILED = "payment_intent.payment_failed"


@dataclass(frozen=True)
class CheckoutSessionCompleted:
    event_id: str
    session_id: str
    order_id: Optional[str]
    user_id: Optional[str]
    payment_intent_id: Optional[str]

    event_type: ClassVar[str] = CHECKOUT_SESSION_COMPLETED


@dataclass(frozen=True)
class PaymentFailed:
    event_id: str
    payment_intent_id: Optional[str]

    event_type: ClassVar[str] = PAYMENT_INTENT_FAILED


@dataclass(frozen=True)
class UnrecognizedEvent:
    event_id: str
    event_type: str


PaymentEvent = Union[CheckoutSessionCompleted, PaymentFailed, UnrecognizedEvent]


def _reference(value) -> Optional[str]:
    # Stripe sends either a bare id or an expanded object
    if isinstance(value, dict):
        value = value.get("id")
    return _text(value)


def _section(value, name: str) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise WebhookSignatureError(f"Invalid payload: {name} is not an object", code="invalid_payload")
    return value


def _text(value) -> Optional[str]:
    return str(value) if value else None


def parse_event(data: dict) -> PaymentEvent:
    """
    Raises WebhookSignatureError(code="invalid_payload") when a section the
    handlers read is present but is not a JSON object.
    """
    event_type = str(data.get("type") or "")
    event_id = str(data.get("id") or "")
    obj = _section(_section(data.get("data"), "data").get("object"), "data.object")

    if event_type == CHECKOUT_SESSION_COMPLETED:
        metadata = _section(obj.get("metadata"), "metadata")
        return CheckoutSessionCompleted(
            event_id=event_id,
            session_id=str(obj.get("id") or ""),
            order_id=_text(metadata.get("order_id")),
            user_id=_text(metadata.get("user_id")),
            payment_intent_id=_reference(obj.get("payment_intent")),
        )

    if event_type == PAYMENT_INTENT_FAILED:
        return PaymentFailed(
            event_id=event_id,
            payment_intent_id=_reference(obj.get("id")),
        )

    return UnrecognizedEvent(event_id=event_id, event_type=event_type or "unknown")
