"""
Mock Payment Provider
=====================

In-memory implementation of PaymentProviderInterface for development and
testing. Records every call so tests can assert on what would have been sent
to the provider.
"""

import hashlib
import hmac
import json
import logging
import threading
import time
import uuid
from typing import Any, Dict, List, Optional

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


class MockPaymentProvider(PaymentProviderInterface):
    """
    Mock payment provider.

    Instead of calling a payment API, this provider:
        - Stores created sessions, transfers, customers and prices in memory
        - Verifies webhooks signed with ``sign_payload`` (HMAC-SHA256)
        - Fails transfers to any account listed in ``failing_accounts``

    Useful for:
        - Unit and integration tests
        - Local development without Stripe credentials
    """

    def __init__(self, webhook_secret: str = "whsec_mock"):
        self.webhook_secret = webhook_secret
        self.sessions: List[Dict[str, Any]] = []
        self.transfers: List[Dict[str, Any]] = []
        self.customers: List[Dict[str, Any]] = []
        self.prices: List[PriceHandle] = []
        self.discounts: Dict[str, Discount] = {}
        self.accounts: Dict[str, PayoutAccount] = {}
        self.failing_accounts = set()
        self.fail_checkout = False
        self._completed_transfers: Dict[str, TransferResult] = {}
        self._lock = threading.Lock()

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
        if self.fail_checkout:
            raise PaymentException("Mock checkout failure")

        session_id = f"cs_mock_{uuid.uuid4().hex}"
        metadata = {
            "buyer_id": str(buyer_id),
            "image_ids": ",".join(str(item_id) for item_id in item_ids),
            "transfer_group": correlation_token,
        }
        self.sessions.append(
            {
                "session_id": session_id,
                "line_items": list(line_items),
                "return_url": return_url,
                "customer": customer_handle,
                "discount": discount,
                "metadata": metadata,
            }
        )
        logger.info(f"[MOCK PAYMENT] Checkout session {session_id} for {len(line_items)} items")

        return CheckoutSession(
            session_id=session_id,
            url=f"https://checkout.mock/pay/{session_id}",
            amount=None,
            currency="usd",
            status=PaymentStatus.PENDING,
            metadata=metadata,
        )

    def sign_payload(self, payload: bytes, secret: Optional[str] = None, timestamp: Optional[int] = None) -> str:
        """Build a signature header accepted by ``verify_webhook``."""
        timestamp = timestamp or int(time.time())
        key = (secret or self.webhook_secret).encode("utf-8")
        digest = hmac.new(key, f"{timestamp}.".encode("utf-8") + payload, hashlib.sha256).hexdigest()
        return f"t={timestamp},v1={digest}"

    def verify_webhook(self, payload: bytes, signature: str, secret: Optional[str] = None) -> WebhookEvent:
        endpoint_secret = secret or self.webhook_secret
        if not endpoint_secret:
            raise WebhookVerificationError("Webhook endpoint secret is not configured")

        try:
            parts = dict(item.split("=", 1) for item in signature.split(","))
            timestamp = int(parts["t"])
            expected = self.sign_payload(payload, endpoint_secret, timestamp)
        except (KeyError, ValueError, AttributeError) as e:
            raise WebhookVerificationError("Malformed signature header") from e

        if not hmac.compare_digest(expected, signature):
            raise WebhookVerificationError("Webhook signature verification failed")

        try:
            event = json.loads(payload)
            return WebhookEvent(
                event_id=event["id"],
                event_type=event["type"],
                data=event["data"]["object"],
                created_at=event.get("created", timestamp),
            )
        except (ValueError, KeyError, TypeError) as e:
            raise WebhookVerificationError("Invalid webhook payload") from e

    def create_transfer(
        self,
        amount: int,
        currency: str,
        destination_account: str,
        transfer_group: str,
        metadata: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> TransferResult:
        with self._lock:
            self.transfers.append(
                {
                    "amount": amount,
                    "currency": currency,
                    "destination": destination_account,
                    "transfer_group": transfer_group,
                    "metadata": metadata or {},
                    "idempotency_key": idempotency_key,
                }
            )
            if idempotency_key and idempotency_key in self._completed_transfers:
                return self._completed_transfers[idempotency_key]

        if destination_account in self.failing_accounts:
            raise PaymentException(f"Mock transfer to {destination_account} rejected")

        result = TransferResult(
            transfer_id=f"tr_mock_{uuid.uuid4().hex[:16]}",
            amount=amount,
            currency=currency,
            destination=destination_account,
            transfer_group=transfer_group,
        )
        if idempotency_key:
            with self._lock:
                self._completed_transfers[idempotency_key] = result
        return result

    def lookup_discount(self, code: str) -> Discount:
        if code not in self.discounts:
            raise DiscountNotFound(f"Discount code '{code}' not found")
        return self.discounts[code]

    def create_customer(self, email: str, name: str, user_id: str) -> str:
        customer_id = f"cus_mock_{uuid.uuid4().hex[:16]}"
        self.customers.append({"id": customer_id, "email": email, "name": name, "user_id": str(user_id)})
        return customer_id

    def create_price(self, image_id: str, name: str, amount: int, currency: str) -> PriceHandle:
        handle = PriceHandle(
            product_id=f"prod_mock_{uuid.uuid4().hex[:12]}",
            price_id=f"price_mock_{uuid.uuid4().hex[:12]}",
            amount=int(amount),
            currency=currency,
        )
        self.prices.append(handle)
        return handle

    def create_connected_account(self, email: str, user_id: str) -> PayoutAccount:
        account = PayoutAccount(account_id=f"acct_mock_{uuid.uuid4().hex[:12]}", details_submitted=False)
        self.accounts[account.account_id] = account
        return account

    def create_account_link(self, account_id: str, return_url: str, refresh_url: str) -> AccountLink:
        return AccountLink(url=f"https://connect.mock/onboarding/{account_id}", expires_at=int(time.time()) + 300)

    def retrieve_account(self, account_id: str) -> PayoutAccount:
        if account_id not in self.accounts:
            raise PaymentException(f"No such account: {account_id}")
        return self.accounts[account_id]

    def transfers_for(self, transfer_group: str) -> List[Dict[str, Any]]:
        return [transfer for transfer in self.transfers if transfer["transfer_group"] == transfer_group]
