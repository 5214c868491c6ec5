# apps/accounts/tests.py
from unittest import mock

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse

from rest_framework.test import APIClient
from rest_framework import status

from apps.catalog.models import Product
from apps.orders.models import Order

User = get_user_model()


class SignupLoginTests(TestCase):

    def setUp(self):
        self.client = APIClient()
        self.signup_url = reverse("auth-signup")
        self.login_url = reverse("auth-login")
        self.payload = {
            "email": "Ada@Example.com",
            "password": "correct-horse",
            "full_name": "Ada Lovelace",
        }

    def test_signup_creates_user_and_returns_tokens(self):
        resp = self.client.post(self.signup_url, self.payload, format="json")

        self.assertEqual(resp.status_code, status.HTTP_201_CREATED, resp.data)
        data = resp.data["data"]
        self.assertTrue(data["access"])
        self.assertTrue(data["refresh"])
        self.assertEqual(data["user"]["email"], "ada@example.com")
        self.assertEqual(data["user"]["full_name"], "Ada Lovelace")

        user = User.objects.get()
        self.assertEqual(user.email, "ada@example.com")
        self.assertTrue(user.check_password("correct-horse"))

    def test_duplicate_email_rejected(self):
        self.client.post(self.signup_url, self.payload, format="json")
        resp = self.client.post(
            self.signup_url, {**self.payload, "email": "ADA@example.com"}, format="json"
        )

        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resp.data["code"], "email_taken")
        self.assertEqual(User.objects.count(), 1)

    def test_short_password_rejected(self):
        resp = self.client.post(self.signup_url, {**self.payload, "password": "short"}, format="json")

        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("password", resp.data["details"])
        self.assertEqual(User.objects.count(), 0)

    def test_login_with_email(self):
        self.client.post(self.signup_url, self.payload, format="json")

        resp = self.client.post(
            self.login_url, {"email": "ada@example.com", "password": "correct-horse"}, format="json"
        )

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertTrue(resp.data["data"]["access"])

    def test_login_wrong_password(self):
        self.client.post(self.signup_url, self.payload, format="json")

        resp = self.client.post(
            self.login_url, {"email": "ada@example.com", "password": "wrong-horse"}, format="json"
        )

        self.assertEqual(resp.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(resp.data["code"], "invalid_credentials")

    def test_stock_token_endpoints(self):
        self.client.post(self.signup_url, self.payload, format="json")

        resp = self.client.post(
            reverse("token-obtain-pair"),
            {"username": "ada@example.com", "password": "correct-horse"},
            format="json",
        )
        self.assertEqual(resp.status_code, status.HTTP_200_OK)

        resp = self.client.post(reverse("token-refresh"), {"refresh": resp.data["refresh"]}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertIn("access", resp.data)


class TokenCheckoutFlowTests(TestCase):

    def setUp(self):
        self.client = APIClient()
        self.product = Product.objects.create(name="Midnight Oud", price=12900, stock=5)

    @mock.patch("stripe.checkout.Session.create")
    def test_signed_up_shopper_can_check_out(self, create_session):
        create_session.return_value = mock.MagicMock(id="cs_test_9", url="https://checkout.stripe.com/c/pay/cs_test_9")

        resp = self.client.post(reverse("auth-signup"), {
            "email": "grace@example.com",
            "password": "correct-horse",
            "full_name": "Grace Hopper",
        }, format="json")
        access = resp.data["data"]["access"]

        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {access}")
        me = self.client.get(reverse("user-me"))
        self.assertEqual(me.data["data"]["email"], "grace@example.com")

        resp = self.client.post(reverse("checkout"), {
            "shipping_address": {
                "full_name": "Grace Hopper",
                "address_line1": "1 Navy Way",
                "city": "Arlington",
                "state": "VA",
                "postal_code": "22202",
                "country": "US",
            },
            "cart_items": [{"product_id": str(self.product.id), "quantity": 1}],
        }, format="json")

        self.assertEqual(resp.status_code, status.HTTP_200_OK, resp.data)
        order = Order.objects.get()
        self.assertEqual(order.user.email, "grace@example.com")
        self.assertEqual(order.total_amount, 12900)

    def test_garbage_token_is_unauthorized(self):
        self.client.credentials(HTTP_AUTHORIZATION="Bearer not-a-token")
        resp = self.client.get(reverse("user-me"))
        self.assertEqual(resp.status_code, status.HTTP_401_UNAUTHORIZED)
