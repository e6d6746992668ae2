"""
Payment Service Abstraction Layer
==================================

Provides a unified interface for checkout, webhook and transfer operations
across payment providers.
"""

from .factory import PaymentFactory
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
from .mock_provider import MockPaymentProvider
from .stripe_provider import StripeProvider

__all__ = [
    "PaymentProviderInterface",
    "AccountLink",
    "CheckoutLineItem",
    "CheckoutSession",
    "Discount",
    "DiscountNotFound",
    "PaymentException",
    "PaymentStatus",
    "PayoutAccount",
    "PriceHandle",
    "TransferResult",
    "WebhookEvent",
    "WebhookVerificationError",
    "MockPaymentProvider",
    "StripeProvider",
    "PaymentFactory",
]
