
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import AllowAny
from rest_framework import status

from .services import PaymentService, WebhookService



class StripeWebhookView(APIView):
    """
    Handles Stripe Webhooks with Strict Signature Verification.
    Called by Stripe, not by a browser: no session, JWT or throttling.
    """
    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_classes = []

    def post(self, request, *args, **kwargs):
        # Must use raw request body bytes for verification
        event = PaymentService.construct_event(
            request.body,
            request.headers.get('Stripe-Signature'),
        )
        result = WebhookService.process(event)

        return Response(
            {"received": True, "event_type": result.event_type, "outcome": result.outcome},
            status=status.HTTP_200_OK
        )
