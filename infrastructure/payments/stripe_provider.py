"""
Stripe Payment Provider
========================

Concrete implementation of PaymentProviderInterface using Stripe Checkout
and Stripe Connect.
"""

import logging
from typing import Any, Dict, List, Optional

import stripe
from django.conf import settings
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from utils.logging_utils import mask_value

from .interface import (
    AccountLink,
    CheckoutLineItem,
    CheckoutSession,
    Discount,
    DiscountNotFound,
    PaymentException,
    PaymentProviderInterface,
    PaymentStatus,
    PayoutAccount,
    PriceHandle,
    TransferResult,
    WebhookEvent,
    WebhookVerificationError,
)

logger = logging.getLogger(__name__)


# Retry transient Stripe failures. Only wrap calls that are safe to repeat:
# reads, and writes that carry an idempotency key or have no side effects
# beyond a new object.
stripe_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type(
        (
            stripe.RateLimitError,
            stripe.APIConnectionError,
            stripe.APIError,
        )
    ),
    reraise=True,
)


def _get(obj, key, default=None):
    """Read a key from a StripeObject or a plain dict."""
    if obj is None:
        return default
    try:
        value = obj[key]
    except (KeyError, TypeError):
        return default
    return default if value is None else value


class StripeProvider(PaymentProviderInterface):
    """
    Stripe payment provider implementation.

    Configuration (in settings.py):
        STRIPE_SECRET_KEY: Stripe secret API key
        STRIPE_WEBHOOK_SECRET: Webhook endpoint secret for signature verification
    """

    def __init__(self):
        """Initialize Stripe provider with API credentials."""
        stripe.api_key = getattr(settings, "STRIPE_SECRET_KEY", "")
        self.webhook_secret = getattr(settings, "STRIPE_WEBHOOK_SECRET", "")

        if not stripe.api_key:
            logger.warning("STRIPE_SECRET_KEY not configured")

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    @stripe_retry
    def _create_checkout_session_api(self, **kwargs):
        """Internal method to create session with retries."""
        return stripe.checkout.Session.create(**kwargs)

    def create_checkout_session(
        self,
        line_items: List[CheckoutLineItem],
        return_url: str,
        customer_handle: str,
        buyer_id: str,
        item_ids: List[str],
        correlation_token: str,
        discount: Optional[Discount] = None,
    ) -> CheckoutSession:
        """
        Create a Stripe hosted checkout session.

        The correlation token is attached both to the session metadata (read
        back by the completion webhook) and to the payment intent as its
        transfer group (links the charge to the seller transfers).
        """
        metadata = {
            "buyer_id": str(buyer_id),
            "image_ids": ",".join(str(item_id) for item_id in item_ids),
            "transfer_group": correlation_token,
        }

        session_params = {
            "mode": "payment",
            "line_items": [{"price": item.price_handle, "quantity": item.quantity} for item in line_items],
            "customer": customer_handle,
            "success_url": return_url,
            "cancel_url": return_url,
            "metadata": metadata,
            "payment_intent_data": {
                "transfer_group": correlation_token,
                "metadata": metadata,
            },
        }

        if discount is not None:
            if discount.promotion_code_id:
                session_params["discounts"] = [{"promotion_code": discount.promotion_code_id}]
            else:
                session_params["discounts"] = [{"coupon": discount.coupon_id}]

        try:
            session = self._create_checkout_session_api(idempotency_key=correlation_token, **session_params)
        except stripe.StripeError as e:
            logger.error(f"Stripe session creation failed: {str(e)}")
            raise PaymentException(f"Failed to create checkout session: {str(e)}") from e

        logger.info(f"Created Stripe checkout session: {session.id} ({correlation_token})")

        return CheckoutSession(
            session_id=session.id,
            url=session.url,
            amount=_get(session, "amount_total"),
            currency=_get(session, "currency", ""),
            status=self._map_stripe_status(_get(session, "payment_status", "unpaid")),
            metadata=metadata,
        )

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    def verify_webhook(self, payload: bytes, signature: str, secret: Optional[str] = None) -> WebhookEvent:
        """
        Verify Stripe webhook signature and parse event.

        Raises:
            WebhookVerificationError: If the payload or signature is invalid
        """
        endpoint_secret = secret or self.webhook_secret
        if not endpoint_secret:
            raise WebhookVerificationError("Webhook endpoint secret is not configured")

        try:
            event = stripe.Webhook.construct_event(payload, signature, endpoint_secret)
        except ValueError as e:
            logger.error(f"Invalid webhook payload: {str(e)}")
            raise WebhookVerificationError("Invalid webhook payload") from e
        except stripe.SignatureVerificationError as e:
            logger.error(f"Webhook signature verification failed: {str(e)}")
            raise WebhookVerificationError("Webhook signature verification failed") from e

        logger.info(f"Verified Stripe webhook event: {event['type']}")

        data_object = event["data"]["object"]
        if hasattr(data_object, "to_dict"):
            data_object = data_object.to_dict()

        return WebhookEvent(
            event_id=event["id"],
            event_type=event["type"],
            data=dict(data_object),
            created_at=event["created"],
        )

    # ------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------

    @stripe_retry
    def _create_transfer_api(self, **kwargs):
        return stripe.Transfer.create(**kwargs)

    def create_transfer(
        self,
        amount: int,
        currency: str,
        destination_account: str,
        transfer_group: str,
        metadata: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> TransferResult:
        """Create a transfer to a connected account."""
        transfer_params = {
            "amount": int(amount),
            "currency": currency.lower(),
            "destination": destination_account,
            "transfer_group": transfer_group,
        }

        if metadata:
            transfer_params["metadata"] = metadata

        if idempotency_key:
            transfer_params["idempotency_key"] = idempotency_key

        try:
            transfer = self._create_transfer_api(**transfer_params)
        except stripe.StripeError as e:
            logger.error(f"Stripe transfer to {mask_value(destination_account)} failed: {str(e)}")
            raise PaymentException(f"Transfer failed: {str(e)}") from e

        logger.info(f"Created Stripe transfer: {transfer.id} to {mask_value(destination_account)}")

        return TransferResult(
            transfer_id=transfer.id,
            amount=transfer.amount,
            currency=transfer.currency,
            destination=transfer.destination,
            transfer_group=transfer_group,
        )

    # ------------------------------------------------------------------
    # Discounts
    # ------------------------------------------------------------------

    @stripe_retry
    def _list_promotion_codes_api(self, code):
        return stripe.PromotionCode.list(code=code, limit=1)

    @stripe_retry
    def _retrieve_coupon_api(self, coupon_id):
        return stripe.Coupon.retrieve(coupon_id)

    def lookup_discount(self, code: str) -> Discount:
        """
        Resolve a customer-facing promotion code, falling back to a coupon id.

        Raises:
            DiscountNotFound: If neither a promotion code nor a coupon matches
        """
        try:
            promotion_codes = self._list_promotion_codes_api(code)
            matches = list(_get(promotion_codes, "data", []))
            if matches:
                return self._promotion_code_to_discount(code, matches[0])

            try:
                coupon = self._retrieve_coupon_api(code)
            except stripe.InvalidRequestError as e:
                raise DiscountNotFound(f"Discount code '{code}' not found") from e

            if _get(coupon, "deleted", False):
                return Discount(code=code, coupon_id=coupon.id, active=False, valid=False)
            return self._coupon_to_discount(code, coupon)

        except stripe.StripeError as e:
            logger.error(f"Discount lookup failed for '{code}': {str(e)}")
            raise PaymentException(f"Discount lookup failed: {str(e)}") from e

    def _promotion_code_to_discount(self, code, promotion_code) -> Discount:
        coupon = _get(promotion_code, "coupon")
        if coupon is None:
            # Newer API versions nest the coupon under "promotion"
            coupon = _get(_get(promotion_code, "promotion"), "coupon")
        if isinstance(coupon, str):
            coupon = self._retrieve_coupon_api(coupon)

        discount = self._coupon_to_discount(code, coupon)
        discount.promotion_code_id = promotion_code.id
        discount.active = bool(_get(promotion_code, "active", False))
        discount.times_redeemed = int(_get(promotion_code, "times_redeemed", 0))
        discount.max_redemptions = _get(promotion_code, "max_redemptions", discount.max_redemptions)
        discount.expires_at = _get(promotion_code, "expires_at", discount.expires_at)
        return discount

    def _coupon_to_discount(self, code, coupon) -> Discount:
        return Discount(
            code=code,
            coupon_id=coupon.id,
            active=True,
            valid=bool(_get(coupon, "valid", False)),
            times_redeemed=int(_get(coupon, "times_redeemed", 0)),
            max_redemptions=_get(coupon, "max_redemptions"),
            expires_at=_get(coupon, "redeem_by"),
            percent_off=_get(coupon, "percent_off"),
            amount_off=_get(coupon, "amount_off"),
            currency=_get(coupon, "currency"),
        )

    # ------------------------------------------------------------------
    # Customers, prices and connected accounts
    # ------------------------------------------------------------------

    @stripe_retry
    def _create_customer_api(self, **kwargs):
        return stripe.Customer.create(**kwargs)

    def create_customer(self, email: str, name: str, user_id: str) -> str:
        try:
            customer = self._create_customer_api(email=email, name=name, metadata={"user_id": str(user_id)})
        except stripe.StripeError as e:
            logger.error(f"Stripe customer creation failed for {mask_value(email)}: {str(e)}")
            raise PaymentException(f"Customer creation failed: {str(e)}") from e

        logger.info(f"Created Stripe customer {mask_value(customer.id)} for user {user_id}")
        return customer.id

    @stripe_retry
    def _create_product_api(self, **kwargs):
        return stripe.Product.create(**kwargs)

    @stripe_retry
    def _create_price_api(self, **kwargs):
        return stripe.Price.create(**kwargs)

    def create_price(self, image_id: str, name: str, amount: int, currency: str) -> PriceHandle:
        try:
            product = self._create_product_api(name=name, metadata={"image_id": str(image_id)})
            price = self._create_price_api(product=product.id, unit_amount=int(amount), currency=currency.lower())
        except stripe.StripeError as e:
            logger.error(f"Stripe price creation failed for image {image_id}: {str(e)}")
            raise PaymentException(f"Price creation failed: {str(e)}") from e

        logger.info(f"Registered Stripe price {price.id} for image {image_id}")
        return PriceHandle(product_id=product.id, price_id=price.id, amount=int(amount), currency=currency.lower())

    @stripe_retry
    def _create_account_api(self, **kwargs):
        return stripe.Account.create(**kwargs)

    def create_connected_account(self, email: str, user_id: str) -> PayoutAccount:
        try:
            account = self._create_account_api(type="standard", email=email, metadata={"user_id": str(user_id)})
        except stripe.StripeError as e:
            logger.error(f"Stripe connected account creation failed for {mask_value(email)}: {str(e)}")
            raise PaymentException(f"Connected account creation failed: {str(e)}") from e

        logger.info(f"Created Stripe connected account {mask_value(account.id)} for user {user_id}")
        return self._to_payout_account(account)

    @stripe_retry
    def _create_account_link_api(self, **kwargs):
        return stripe.AccountLink.create(**kwargs)

    def create_account_link(self, account_id: str, return_url: str, refresh_url: str) -> AccountLink:
        try:
            link = self._create_account_link_api(
                account=account_id,
                type="account_onboarding",
                return_url=return_url,
                refresh_url=refresh_url,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe account link creation failed for {mask_value(account_id)}: {str(e)}")
            raise PaymentException(f"Account link creation failed: {str(e)}") from e

        return AccountLink(url=link.url, expires_at=_get(link, "expires_at"))

    @stripe_retry
    def _retrieve_account_api(self, account_id):
        return stripe.Account.retrieve(account_id)

    def retrieve_account(self, account_id: str) -> PayoutAccount:
        try:
            account = self._retrieve_account_api(account_id)
        except stripe.StripeError as e:
            logger.error(f"Failed to retrieve connected account {mask_value(account_id)}: {str(e)}")
            raise PaymentException(f"Account retrieval failed: {str(e)}") from e

        return self._to_payout_account(account)

    def _to_payout_account(self, account) -> PayoutAccount:
        return PayoutAccount(
            account_id=account.id,
            details_submitted=bool(_get(account, "details_submitted", False)),
            charges_enabled=bool(_get(account, "charges_enabled", False)),
            payouts_enabled=bool(_get(account, "payouts_enabled", False)),
        )

    def _map_stripe_status(self, stripe_status: str) -> PaymentStatus:
        """Map Stripe session payment status to internal PaymentStatus."""
        status_mapping = {
            "unpaid": PaymentStatus.PENDING,
            "paid": PaymentStatus.SUCCEEDED,
            "no_payment_required": PaymentStatus.SUCCEEDED,
        }

        return status_mapping.get(stripe_status, PaymentStatus.PENDING)
