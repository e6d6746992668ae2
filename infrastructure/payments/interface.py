"""
Payment Provider Interface
===========================

Abstract base class defining the contract for payment operations used by
checkout and settlement: hosted checkout sessions, webhook verification,
transfers to seller payout accounts, discount lookup, and the catalogue and
account handles those operations depend on.

All amounts are integers in the currency's smallest unit (cents).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class PaymentStatus(str, Enum):
    """Payment status enumeration."""

    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"


@dataclass
class CheckoutLineItem:
    """
    One purchasable line of a checkout session.

    Attributes:
        price_handle: Provider price id registered when the image was listed for sale
        quantity: Always 1 for digital images
    """

    price_handle: str
    quantity: int = 1


@dataclass
class CheckoutSession:
    """
    Represents a hosted payment checkout session.

    Attributes:
        session_id: Unique session identifier
        url: Redirect URL for customer to complete payment
        amount: Session total in smallest currency unit, if known
        currency: ISO currency code (e.g., 'usd')
        status: Current status of the session
        metadata: Out-of-band data echoed back by the completion event
    """

    session_id: str
    url: str
    amount: Optional[int]
    currency: str
    status: PaymentStatus
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class WebhookEvent:
    """
    Represents a verified webhook event from the payment provider.

    Attributes:
        event_id: Unique event identifier
        event_type: Type of event (e.g., 'checkout.session.completed')
        data: The event's object payload
        created_at: Event creation timestamp
    """

    event_id: str
    event_type: str
    data: Dict[str, Any]
    created_at: int

    @property
    def metadata(self) -> Dict[str, Any]:
        return dict(self.data.get("metadata") or {})


@dataclass
class TransferResult:
    """A completed transfer to a connected account."""

    transfer_id: str
    amount: int
    currency: str
    destination: str
    transfer_group: Optional[str] = None


@dataclass
class Discount:
    """
    A customer-facing discount code and the redemption limits attached to it.

    Attributes:
        code: The code the buyer typed
        promotion_code_id: Provider promotion code id, if the code is a promotion code
        coupon_id: Provider coupon id backing the code
        active: False once the code was deactivated or deleted
        valid: False once the coupon can no longer be redeemed
        times_redeemed: Number of redemptions so far
        max_redemptions: Redemption cap, None if unlimited
        expires_at: Unix timestamp after which the code is expired, None if it never expires
        percent_off: Percentage discount, if any
        amount_off: Fixed discount in smallest currency unit, if any
        currency: Currency of amount_off
    """

    code: str
    coupon_id: str
    promotion_code_id: Optional[str] = None
    active: bool = True
    valid: bool = True
    times_redeemed: int = 0
    max_redemptions: Optional[int] = None
    expires_at: Optional[int] = None
    percent_off: Optional[float] = None
    amount_off: Optional[int] = None
    currency: Optional[str] = None

    @property
    def is_exhausted(self) -> bool:
        return self.max_redemptions is not None and self.times_redeemed >= self.max_redemptions

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if not self.valid:
            return True
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now.timestamp() >= self.expires_at


@dataclass
class PriceHandle:
    """Provider product and price created when an image is listed for sale."""

    product_id: str
    price_id: str
    amount: int
    currency: str


@dataclass
class PayoutAccount:
    """Connected account that receives seller transfers."""

    account_id: str
    details_submitted: bool
    charges_enabled: bool = False
    payouts_enabled: bool = False


@dataclass
class AccountLink:
    """Onboarding link for a connected account."""

    url: str
    expires_at: Optional[int] = None


class PaymentProviderInterface(ABC):
    """
    Abstract interface for payment provider operations.

    Concrete implementations:
        - StripeProvider: Stripe Checkout and Stripe Connect
        - MockPaymentProvider: In-memory provider for development and tests
    """

    @abstractmethod
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
        Create a hosted payment checkout session.

        Args:
            line_items: Priced lines, one per image
            return_url: Where the provider sends the buyer after paying or cancelling
            customer_handle: Provider customer id of the buyer
            buyer_id: Buyer id, echoed in the session metadata
            item_ids: Purchased image ids, echoed in the session metadata
            correlation_token: Transfer group tying the payment to its transfers
            discount: Verified discount to apply

        Returns:
            CheckoutSession with the session id and payment url

        Raises:
            PaymentException: If session creation fails
        """
        pass

    @abstractmethod
    def verify_webhook(self, payload: bytes, signature: str, secret: Optional[str] = None) -> WebhookEvent:
        """
        Verify and parse webhook event from payment provider.

        Args:
            payload: Raw webhook payload bytes
            signature: Webhook signature header for verification
            secret: Endpoint secret; the provider's configured secret when None

        Returns:
            Parsed and verified WebhookEvent

        Raises:
            WebhookVerificationError: If the payload or signature is invalid
        """
        pass

    @abstractmethod
    def create_transfer(
        self,
        amount: int,
        currency: str,
        destination_account: str,
        transfer_group: str,
        metadata: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> TransferResult:
        """
        Transfer funds to a connected account (seller payout).

        Args:
            amount: Amount in smallest currency unit
            currency: Currency code
            destination_account: Connected account id
            transfer_group: Correlation token of the settlement
            metadata: Optional metadata
            idempotency_key: Key that makes a repeated call return the original transfer

        Raises:
            PaymentException: If the transfer is rejected or fails
        """
        pass

    @abstractmethod
    def lookup_discount(self, code: str) -> Discount:
        """
        Resolve a discount code.

        Raises:
            DiscountNotFound: If no discount exists for the code
            PaymentException: If the lookup fails
        """
        pass

    @abstractmethod
    def create_customer(self, email: str, name: str, user_id: str) -> str:
        """Create a provider customer and return its id."""
        pass

    @abstractmethod
    def create_price(self, image_id: str, name: str, amount: int, currency: str) -> PriceHandle:
        """Register a product and a price for an image listed for sale."""
        pass

    @abstractmethod
    def create_connected_account(self, email: str, user_id: str) -> PayoutAccount:
        """Create a connected account for a seller."""
        pass

    @abstractmethod
    def create_account_link(self, account_id: str, return_url: str, refresh_url: str) -> AccountLink:
        """Create an onboarding link for a connected account."""
        pass

    @abstractmethod
    def retrieve_account(self, account_id: str) -> PayoutAccount:
        """Retrieve connected account details."""
        pass


class PaymentException(Exception):
    """Base exception for payment operations."""

    pass


class WebhookVerificationError(PaymentException):
    """Raised when a webhook payload or signature cannot be verified."""

    pass


class DiscountNotFound(PaymentException):
    """Raised when a discount code does not exist."""

    pass
