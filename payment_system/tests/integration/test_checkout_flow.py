import json

from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from gallery.models import Image
from gallery.tests.factories import ForSaleImageFactory, SellerFactory, UserFactory
from infrastructure.container import container
from infrastructure.payments import Discount
from payment_system.models import Settlement


class CheckoutViewIntegrationTest(TestCase):
    def setUp(self):
        self.provider = container.configure_for_testing()
        self.client = APIClient()

        self.buyer = UserFactory()
        self.image_a = ForSaleImageFactory(user=SellerFactory(), price=1000)
        self.image_b = ForSaleImageFactory(user=SellerFactory(), price=2000)
        self.url = reverse("payment_system:create_checkout_session")

    def tearDown(self):
        container.reset()

    def _payload(self, **overrides):
        payload = {
            "images": [str(self.image_a.id), str(self.image_b.id)],
            "currentUrl": "https://pixora.test/gallery",
        }
        payload.update(overrides)
        return payload

    def test_checkout_returns_payment_link(self):
        self.client.force_authenticate(user=self.buyer)

        response = self.client.post(self.url, self._payload(), format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        settlement = Settlement.objects.get()
        self.assertEqual(response.data["settlementId"], str(settlement.id))
        self.assertEqual(response.data["sessionId"], settlement.stripe_checkout_session_id)
        self.assertEqual(response.data["url"], "https://pixora.test/gallery")
        self.assertTrue(response.data["paymentLink"].startswith("https://checkout.mock/pay/"))

    def test_checkout_requires_authentication(self):
        response = self.client.post(self.url, self._payload(), format="json")

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_malformed_request_is_rejected(self):
        self.client.force_authenticate(user=self.buyer)

        response = self.client.post(self.url, self._payload(images=["not-a-uuid"], currentUrl="nope"), format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"], "invalid_request")
        self.assertIn("images", response.data["detail"])
        self.assertIn("currentUrl", response.data["detail"])

    def test_missing_image_maps_to_404(self):
        self.client.force_authenticate(user=self.buyer)
        self.image_b.is_deleted = True
        self.image_b.save()

        response = self.client.post(self.url, self._payload(), format="json")

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data["error"], "not_found")
        self.assertFalse(Settlement.objects.exists())

    def test_own_image_maps_to_403(self):
        self.client.force_authenticate(user=self.image_a.user)

        response = self.client.post(self.url, self._payload(), format="json")

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_provider_failure_maps_to_502(self):
        self.provider.fail_checkout = True
        self.client.force_authenticate(user=self.buyer)

        response = self.client.post(self.url, self._payload(), format="json")

        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY)
        self.assertEqual(response.data["error"], "payment_provider_error")

    def test_discount_code_is_applied(self):
        self.provider.discounts["SPRING"] = Discount(code="SPRING", coupon_id="co_1", percent_off=10)
        self.client.force_authenticate(user=self.buyer)

        response = self.client.post(self.url, self._payload(discountCode="SPRING"), format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Settlement.objects.get().discount_code, "SPRING")


class DiscountViewIntegrationTest(TestCase):
    def setUp(self):
        self.provider = container.configure_for_testing()
        self.client = APIClient()
        self.client.force_authenticate(user=UserFactory())
        self.url = reverse("payment_system:verify_discount_code")

    def tearDown(self):
        container.reset()

    def test_valid_code(self):
        self.provider.discounts["SPRING"] = Discount(code="SPRING", coupon_id="co_1", percent_off=10, max_redemptions=50)

        response = self.client.post(self.url, {"code": "SPRING"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["valid"])
        self.assertEqual(response.data["percent_off"], 10)
        self.assertEqual(response.data["max_redemptions"], 50)

    def test_unknown_code(self):
        response = self.client.post(self.url, {"code": "NOPE"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"], "invalid_request")

    def test_exhausted_code(self):
        self.provider.discounts["FULL"] = Discount(code="FULL", coupon_id="co_2", times_redeemed=1, max_redemptions=1)

        response = self.client.post(self.url, {"code": "FULL"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class StripeWebhookViewIntegrationTest(TestCase):
    def setUp(self):
        self.provider = container.configure_for_testing()
        self.client = APIClient()
        self.url = reverse("payment_system:stripe_webhook")

        self.buyer = UserFactory()
        self.seller = SellerFactory()
        self.image = ForSaleImageFactory(user=self.seller, price=1000)

        checkout = container.checkout_service().create_checkout_session(
            self.buyer, [str(self.image.id)], "https://pixora.test/gallery"
        )
        self.settlement = checkout.value.settlement

    def tearDown(self):
        container.reset()

    def _event(self, event_type="checkout.session.completed"):
        return json.dumps(
            {
                "id": "evt_test_1",
                "type": event_type,
                "data": {
                    "object": {
                        "id": self.settlement.stripe_checkout_session_id,
                        "payment_status": "paid",
                        "metadata": {"transfer_group": self.settlement.transfer_group},
                    }
                },
            }
        ).encode("utf-8")

    def _post(self, payload, signature=None):
        headers = {"HTTP_STRIPE_SIGNATURE": signature} if signature else {}
        return self.client.generic("POST", self.url, payload, content_type="application/json", **headers)

    def test_signed_completion_event_settles(self):
        payload = self._event()

        response = self._post(payload, self.provider.sign_payload(payload))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.content, b"checkout.session.completed: processed")
        self.settlement.refresh_from_db()
        self.assertEqual(self.settlement.status, Settlement.Status.SETTLED)
        self.assertEqual(Image.objects.filter(user=self.buyer, source_image=self.image).count(), 1)

    def test_missing_signature_is_rejected(self):
        response = self._post(self._event())

        self.assertEqual(response.status_code, 400)
        self.settlement.refresh_from_db()
        self.assertFalse(self.settlement.payment_completed)

    def test_invalid_signature_is_rejected(self):
        payload = self._event()

        response = self._post(payload, self.provider.sign_payload(payload, secret="whsec_forged"))

        self.assertEqual(response.status_code, 400)
        self.assertFalse(Image.objects.filter(user=self.buyer).exists())

    def test_unhandled_event_type_is_acknowledged(self):
        payload = self._event("invoice.paid")

        response = self._post(payload, self.provider.sign_payload(payload))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.content, b"invoice.paid: ignored")

    def test_replayed_event_is_acknowledged_as_duplicate(self):
        payload = self._event()
        self._post(payload, self.provider.sign_payload(payload))

        response = self._post(payload, self.provider.sign_payload(payload))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.content, b"checkout.session.completed: duplicate")
        self.assertEqual(len(self.provider.transfers), 1)

    def test_partial_transfer_failure_is_still_acknowledged(self):
        self.provider.failing_accounts.add(self.seller.stripe_account_id)
        payload = self._event()

        response = self._post(payload, self.provider.sign_payload(payload))

        self.assertEqual(response.status_code, 200)
        self.settlement.refresh_from_db()
        self.assertEqual(self.settlement.status, Settlement.Status.PAID_PARTIAL_TRANSFER_FAILURE)

    def test_missing_webhook_secret_fails_closed(self):
        payload = self._event()

        with self.settings(STRIPE_WEBHOOK_SECRET=""):
            container.reset()
            response = self._post(payload, self.provider.sign_payload(payload))

        self.assertEqual(response.status_code, 500)
        self.settlement.refresh_from_db()
        self.assertFalse(self.settlement.payment_completed)
