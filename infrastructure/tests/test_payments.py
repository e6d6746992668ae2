"""
Payment Infrastructure Tests
==============================

Unit tests for payment provider abstraction layer.
"""

import json
from unittest.mock import patch

import stripe
from django.test import TestCase, override_settings

from infrastructure.payments import (
    CheckoutLineItem,
    CheckoutSession,
    Discount,
    DiscountNotFound,
    MockPaymentProvider,
    PaymentException,
    PaymentFactory,
    PaymentProviderInterface,
    PaymentStatus,
    StripeProvider,
    WebhookEvent,
    WebhookVerificationError,
)


class StripeObjectStub(dict):
    """Dict with attribute access, shaped like the objects the Stripe SDK returns."""

    def __getattr__(self, name):
        try:
            return self[name]
        except KeyError as e:
            raise AttributeError(name) from e


class PaymentInterfaceTest(TestCase):
    """Test PaymentProviderInterface contract."""

    def test_interface_is_abstract(self):
        """PaymentProviderInterface should not be instantiable."""
        with self.assertRaises(TypeError):
            PaymentProviderInterface()

    def test_discount_limits(self):
        self.assertTrue(Discount(code="A", coupon_id="c", times_redeemed=3, max_redemptions=3).is_exhausted)
        self.assertFalse(Discount(code="A", coupon_id="c", times_redeemed=3).is_exhausted)
        self.assertTrue(Discount(code="A", coupon_id="c", expires_at=0).is_expired())
        self.assertTrue(Discount(code="A", coupon_id="c", valid=False).is_expired())
        self.assertFalse(Discount(code="A", coupon_id="c").is_expired())


@override_settings(
    STRIPE_SECRET_KEY="sk_test_fake",
    STRIPE_WEBHOOK_SECRET="whsec_test_fake",
)
class StripeProviderTest(TestCase):
    """Test StripeProvider implementation."""

    def setUp(self):
        """Set up test fixtures."""
        self.provider = StripeProvider()

    def _create_session(self, **overrides):
        params = {
            "line_items": [CheckoutLineItem("price_a"), CheckoutLineItem("price_b")],
            "return_url": "https://example.com/gallery",
            "customer_handle": "cus_123",
            "buyer_id": "buyer-1",
            "item_ids": ["img-a", "img-b"],
            "correlation_token": "G-abc-20261017T101500Z-1a2b3c4d",
        }
        params.update(overrides)
        return self.provider.create_checkout_session(**params)

    @patch("stripe.checkout.Session.create")
    def test_create_checkout_session_success(self, mock_create):
        """Session carries the transfer group on both metadata and payment intent."""
        mock_create.return_value = StripeObjectStub(
            id="cs_test_123",
            url="https://checkout.stripe.com/pay/cs_test_123",
            amount_total=3000,
            currency="usd",
            payment_status="unpaid",
        )

        result = self._create_session()

        self.assertIsInstance(result, CheckoutSession)
        self.assertEqual(result.session_id, "cs_test_123")
        self.assertEqual(result.amount, 3000)
        self.assertEqual(result.status, PaymentStatus.PENDING)

        kwargs = mock_create.call_args.kwargs
        self.assertEqual(kwargs["mode"], "payment")
        self.assertEqual(
            kwargs["line_items"], [{"price": "price_a", "quantity": 1}, {"price": "price_b", "quantity": 1}]
        )
        self.assertEqual(kwargs["customer"], "cus_123")
        self.assertEqual(kwargs["metadata"]["image_ids"], "img-a,img-b")
        self.assertEqual(kwargs["metadata"]["transfer_group"], "G-abc-20261017T101500Z-1a2b3c4d")
        self.assertEqual(kwargs["payment_intent_data"]["transfer_group"], "G-abc-20261017T101500Z-1a2b3c4d")
        self.assertNotIn("discounts", kwargs)

    @patch("stripe.checkout.Session.create")
    def test_promotion_code_discount_is_attached(self, mock_create):
        mock_create.return_value = StripeObjectStub(id="cs_1", url="https://checkout.stripe.com/pay/cs_1")

        self._create_session(discount=Discount(code="SPRING", coupon_id="co_1", promotion_code_id="promo_1"))

        self.assertEqual(mock_create.call_args.kwargs["discounts"], [{"promotion_code": "promo_1"}])

    @patch("stripe.checkout.Session.create")
    def test_coupon_discount_is_attached(self, mock_create):
        mock_create.return_value = StripeObjectStub(id="cs_1", url="https://checkout.stripe.com/pay/cs_1")

        self._create_session(discount=Discount(code="co_1", coupon_id="co_1"))

        self.assertEqual(mock_create.call_args.kwargs["discounts"], [{"coupon": "co_1"}])

    @patch("stripe.checkout.Session.create")
    def test_session_retry_reuses_transfer_group_as_idempotency_key(self, mock_create):
        """A connection error that Stripe committed must not open a second session."""
        mock_create.side_effect = [
            stripe.APIConnectionError("connection reset"),
            StripeObjectStub(id="cs_1", url="https://checkout.stripe.com/pay/cs_1"),
        ]

        with patch.object(StripeProvider._create_checkout_session_api.retry, "sleep", lambda seconds: None):
            result = self._create_session()

        self.assertEqual(result.session_id, "cs_1")
        self.assertEqual(mock_create.call_count, 2)
        keys = [call.kwargs["idempotency_key"] for call in mock_create.call_args_list]
        self.assertEqual(keys, ["G-abc-20261017T101500Z-1a2b3c4d"] * 2)

    @patch("stripe.checkout.Session.create")
    def test_create_checkout_session_stripe_error(self, mock_create):
        """Test checkout session creation with Stripe error."""
        mock_create.side_effect = stripe.InvalidRequestError("No such price", "line_items")

        with self.assertRaises(PaymentException):
            self._create_session()

    @patch("stripe.Webhook.construct_event")
    def test_verify_webhook_success(self, mock_construct):
        """Test successful webhook verification."""
        mock_construct.return_value = {
            "id": "evt_test_123",
            "type": "checkout.session.completed",
            "data": {"object": {"id": "cs_test_123", "metadata": {"transfer_group": "G-1"}}},
            "created": 1234567890,
        }

        result = self.provider.verify_webhook(payload=b'{"test": "data"}', signature="test_signature")

        self.assertIsInstance(result, WebhookEvent)
        self.assertEqual(result.event_id, "evt_test_123")
        self.assertEqual(result.event_type, "checkout.session.completed")
        self.assertEqual(result.metadata, {"transfer_group": "G-1"})
        mock_construct.assert_called_once_with(b'{"test": "data"}', "test_signature", "whsec_test_fake")

    @patch("stripe.Webhook.construct_event")
    def test_verify_webhook_prefers_explicit_secret(self, mock_construct):
        mock_construct.return_value = {"id": "evt_1", "type": "x", "data": {"object": {}}, "created": 1}

        self.provider.verify_webhook(b"{}", "sig", secret="whsec_explicit")

        self.assertEqual(mock_construct.call_args.args[2], "whsec_explicit")

    @patch("stripe.Webhook.construct_event")
    def test_verify_webhook_invalid_signature(self, mock_construct):
        """Test webhook verification with invalid signature."""
        mock_construct.side_effect = stripe.SignatureVerificationError("Invalid signature", "sig_header")

        with self.assertRaises(WebhookVerificationError):
            self.provider.verify_webhook(payload=b'{"test": "data"}', signature="invalid_signature")

    @patch("stripe.Webhook.construct_event")
    def test_verify_webhook_invalid_payload(self, mock_construct):
        mock_construct.side_effect = ValueError("Invalid JSON")

        with self.assertRaises(WebhookVerificationError):
            self.provider.verify_webhook(payload=b"not json", signature="sig")

    @override_settings(STRIPE_WEBHOOK_SECRET="")
    def test_verify_webhook_without_secret(self):
        provider = StripeProvider()

        with self.assertRaises(WebhookVerificationError):
            provider.verify_webhook(payload=b"{}", signature="sig")

    @patch("stripe.Transfer.create")
    def test_create_transfer_passes_idempotency_key(self, mock_create):
        mock_create.return_value = StripeObjectStub(
            id="tr_123", amount=950, currency="usd", destination="acct_seller"
        )

        result = self.provider.create_transfer(
            amount=950,
            currency="USD",
            destination_account="acct_seller",
            transfer_group="G-1",
            metadata={"settlement_id": "s-1"},
            idempotency_key="G-1:seller-1",
        )

        self.assertEqual(result.transfer_id, "tr_123")
        self.assertEqual(result.transfer_group, "G-1")
        mock_create.assert_called_once_with(
            amount=950,
            currency="usd",
            destination="acct_seller",
            transfer_group="G-1",
            metadata={"settlement_id": "s-1"},
            idempotency_key="G-1:seller-1",
        )

    @patch("stripe.Transfer.create")
    def test_rejected_transfer_raises(self, mock_create):
        mock_create.side_effect = stripe.InvalidRequestError("Insufficient funds", None)

        with self.assertRaises(PaymentException):
            self.provider.create_transfer(950, "usd", "acct_seller", "G-1")

    @patch("stripe.PromotionCode.list")
    def test_lookup_promotion_code(self, mock_list):
        coupon = StripeObjectStub(id="co_1", valid=True, percent_off=15.0, redeem_by=None)
        mock_list.return_value = StripeObjectStub(
            data=[
                StripeObjectStub(
                    id="promo_1", active=True, times_redeemed=2, max_redemptions=10, expires_at=None, coupon=coupon
                )
            ]
        )

        discount = self.provider.lookup_discount("SPRING")

        self.assertEqual(discount.promotion_code_id, "promo_1")
        self.assertEqual(discount.coupon_id, "co_1")
        self.assertEqual(discount.percent_off, 15.0)
        self.assertEqual(discount.times_redeemed, 2)
        self.assertEqual(discount.max_redemptions, 10)
        self.assertTrue(discount.active)

    @patch("stripe.Coupon.retrieve")
    @patch("stripe.PromotionCode.list")
    def test_lookup_falls_back_to_coupon(self, mock_list, mock_retrieve):
        mock_list.return_value = StripeObjectStub(data=[])
        mock_retrieve.return_value = StripeObjectStub(id="co_2", valid=True, amount_off=500, currency="usd")

        discount = self.provider.lookup_discount("co_2")

        self.assertIsNone(discount.promotion_code_id)
        self.assertEqual(discount.amount_off, 500)

    @patch("stripe.Coupon.retrieve")
    @patch("stripe.PromotionCode.list")
    def test_lookup_unknown_code(self, mock_list, mock_retrieve):
        mock_list.return_value = StripeObjectStub(data=[])
        mock_retrieve.side_effect = stripe.InvalidRequestError("No such coupon", "id")

        with self.assertRaises(DiscountNotFound):
            self.provider.lookup_discount("NOPE")

    @patch("stripe.Price.create")
    @patch("stripe.Product.create")
    def test_create_price(self, mock_product, mock_price):
        mock_product.return_value = StripeObjectStub(id="prod_1")
        mock_price.return_value = StripeObjectStub(id="price_1")

        handle = self.provider.create_price("img-1", "Sunset", 1000, "USD")

        self.assertEqual((handle.product_id, handle.price_id, handle.amount), ("prod_1", "price_1", 1000))
        mock_price.assert_called_once_with(product="prod_1", unit_amount=1000, currency="usd")

    @patch("stripe.Account.retrieve")
    def test_retrieve_account(self, mock_retrieve):
        mock_retrieve.return_value = StripeObjectStub(
            id="acct_1", details_submitted=True, charges_enabled=True, payouts_enabled=False
        )

        account = self.provider.retrieve_account("acct_1")

        self.assertTrue(account.details_submitted)
        self.assertFalse(account.payouts_enabled)

    def test_map_stripe_status(self):
        """Test Stripe status mapping."""
        self.assertEqual(self.provider._map_stripe_status("unpaid"), PaymentStatus.PENDING)
        self.assertEqual(self.provider._map_stripe_status("paid"), PaymentStatus.SUCCEEDED)
        self.assertEqual(self.provider._map_stripe_status("no_payment_required"), PaymentStatus.SUCCEEDED)


class MockPaymentProviderTest(TestCase):
    def setUp(self):
        self.provider = MockPaymentProvider(webhook_secret="whsec_mock_test")

    def test_signed_payload_verifies(self):
        payload = json.dumps(
            {"id": "evt_1", "type": "checkout.session.completed", "data": {"object": {"id": "cs_1"}}}
        ).encode("utf-8")

        event = self.provider.verify_webhook(payload, self.provider.sign_payload(payload))

        self.assertEqual(event.event_type, "checkout.session.completed")
        self.assertEqual(event.data["id"], "cs_1")

    def test_wrong_secret_fails_verification(self):
        payload = b'{"id": "evt_1"}'

        with self.assertRaises(WebhookVerificationError):
            self.provider.verify_webhook(payload, self.provider.sign_payload(payload, secret="whsec_other"))

    def test_repeated_idempotency_key_returns_original_transfer(self):
        first = self.provider.create_transfer(950, "usd", "acct_1", "G-1", idempotency_key="G-1:s1")
        second = self.provider.create_transfer(950, "usd", "acct_1", "G-1", idempotency_key="G-1:s1")

        self.assertEqual(first.transfer_id, second.transfer_id)

    def test_failing_account_rejects_transfers(self):
        self.provider.failing_accounts.add("acct_bad")

        with self.assertRaises(PaymentException):
            self.provider.create_transfer(950, "usd", "acct_bad", "G-1")

        self.assertEqual(len(self.provider.transfers_for("G-1")), 1)

    def test_unknown_discount(self):
        with self.assertRaises(DiscountNotFound):
            self.provider.lookup_discount("NOPE")


class PaymentFactoryTest(TestCase):
    """Test PaymentFactory."""

    @override_settings(PAYMENT_PROVIDER="stripe")
    def test_create_stripe_provider(self):
        """Test factory creates Stripe provider from settings."""
        provider = PaymentFactory.create()
        self.assertIsInstance(provider, StripeProvider)

    @override_settings(STRIPE_WEBHOOK_SECRET="whsec_from_settings")
    def test_create_mock_provider(self):
        provider = PaymentFactory.create("mock")

        self.assertIsInstance(provider, MockPaymentProvider)
        self.assertEqual(provider.webhook_secret, "whsec_from_settings")

    def test_create_invalid_backend(self):
        """Test factory raises error for invalid backend."""
        with self.assertRaises(ValueError):
            PaymentFactory.create("invalid")
