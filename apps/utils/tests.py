# apps/utils/tests.py
import json
import logging
from unittest import mock

from django.db import DatabaseError
from django.test import TestCase, SimpleTestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.exceptions import NotAuthenticated, ValidationError

from .exceptions import BusinessLogicException, EmptyCart, PaymentGatewayError, custom_exception_handler
from .logging import JSONFormatter


class JSONFormatterTests(SimpleTestCase):
    def _record(self, msg, args=None, **extra):
        record = logging.LogRecord("apps.test", logging.INFO, __file__, 10, msg, args, None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_scrubs_sensitive_keys(self):
        record = self._record({"signature": "t=1,v1=abc", "nested": {"Secret": "whsec"}, "order": "o-1"})

        out = json.loads(JSONFormatter().format(record))

        self.assertNotIn("abc", out["msg"])
        self.assertNotIn("whsec", out["msg"])
        self.assertIn("o-1", out["msg"])

    def test_copies_context_fields(self):
        record = self._record("Order created", order_id="o-1", user_id=7)

        out = json.loads(JSONFormatter().format(record))

        self.assertEqual(out["msg"], "Order created")
        self.assertEqual(out["order_id"], "o-1")
        self.assertEqual(out["user_id"], "7")
        self.assertTrue(out["ts"].endswith("Z"))


class ExceptionHandlerTests(SimpleTestCase):
    def test_business_errors_keep_their_code(self):
        resp = custom_exception_handler(EmptyCart(), {})
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resp.data, {"error": "Cart is empty", "code": "empty_cart"})

        resp = custom_exception_handler(PaymentGatewayError("down"), {})
        self.assertEqual(resp.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(resp.data["code"], "internal_error")

    def test_default_code(self):
        resp = custom_exception_handler(BusinessLogicException("nope"), {})
        self.assertEqual(resp.data["code"], "business_error")

    def test_validation_errors_are_wrapped(self):
        resp = custom_exception_handler(ValidationError({"city": ["required"]}), {})
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resp.data["code"], "invalid")
        self.assertEqual(resp.data["details"], {"city": ["required"]})

    def test_framework_errors_flattened(self):
        resp = custom_exception_handler(NotAuthenticated(), {})
        self.assertEqual(resp.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(resp.data["code"], "not_authenticated")

    def test_unexpected_errors_hide_details(self):
        with self.assertLogs("apps.utils.exceptions", level="ERROR"):
            resp = custom_exception_handler(RuntimeError("db password leaked"), {})
        self.assertEqual(resp.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertNotIn("password", resp.data["error"])


class HealthCheckTests(TestCase):
    def test_healthy(self):
        resp = self.client.get(reverse("health-check"))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["components"]["db"], "ok")

    def test_database_down(self):
        with mock.patch("apps.utils.health.connection") as conn:
            conn.cursor.side_effect = DatabaseError("gone")
            resp = self.client.get(reverse("health-check"))
        self.assertEqual(resp.status_code, 503)
        self.assertEqual(resp.json()["status"], "error")
