from rest_framework.views import exception_handler
from rest_framework.response import Response
from rest_framework import status
from rest_framework.exceptions import ValidationError
import logging

logger = logging.getLogger(__name__)


class BusinessLogicException(Exception):
    """
    Raised when a domain rule is violated (e.g. 'Cart is empty').
    """
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "business_error"

    def __init__(self, message, code=None):
        self.message = message
        self.code = code or self.default_code
        super().__init__(message)


class EmptyCart(BusinessLogicException):
    default_code = "empty_cart"

    def __init__(self, message="Cart is empty"):
        super().__init__(message)


class UnknownProduct(BusinessLogicException):
    default_code = "unknown_product"

    def __init__(self, product_ids):
        self.product_ids = [str(pid) for pid in product_ids]
        super().__init__(f"Product {', '.join(self.product_ids)} not found")


class CartOwnerRequired(BusinessLogicException):
    default_code = "cart_owner_required"

    def __init__(self, message="Sign in or send an X-Cart-Session header"):
        super().__init__(message)


class PaymentGatewayError(BusinessLogicException):
    """
    The payment processor could not be reached or refused the request.
    """
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code = "internal_error"


class InvalidCredentials(BusinessLogicException):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_code = "invalid_credentials"

    def __init__(self, message="Invalid email or password"):
        super().__init__(message)


class WebhookSignatureError(BusinessLogicException):
    default_code = "invalid_signature"


def custom_exception_handler(exc, context):
    if isinstance(exc, BusinessLogicException):
        return Response(
            {"error": exc.message, "code": exc.code},
            status=exc.status_code
        )

    # Call REST framework's default exception handler first
    response = exception_handler(exc, context)

    # If response is None, it's an unhandled server error (500)
    if response is None:
        logger.error(f"Unhandled Exception: {exc}", exc_info=True)
        return Response(
            {"error": "Internal Server Error", "code": "internal_error"},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    if isinstance(exc, ValidationError):
        response.data = {"error": "Invalid request", "code": "invalid", "details": response.data}
    elif isinstance(response.data, dict) and "detail" in response.data:
        code = exc.get_codes() if hasattr(exc, "get_codes") else "error"
        response.data = {"error": str(response.data["detail"]), "code": code}

    return response
