"""
Dependency Injection Container
================================

Service locator for infrastructure providers and the domain services built on
them. The payment provider and the payment configuration are constructed once
and passed by reference into every service that needs them.

Usage:
    from infrastructure.container import container

    checkout = container.checkout_service()
    payment = container.payment()
"""

import logging
from typing import Optional

from django.conf import settings

from .email import EmailFactory, EmailServiceInterface
from .payments import PaymentFactory, PaymentProviderInterface

logger = logging.getLogger(__name__)


class ServiceContainer:
    """
    Service container for infrastructure dependencies.

    Implements lazy initialization and caching of service instances.
    Singleton pattern.
    """

    _instance: Optional["ServiceContainer"] = None
    _initialized: bool = False

    def __new__(cls):
        """Ensure only one instance exists (singleton pattern)."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        """Initialize container (only once)."""
        if not self._initialized:
            self._clear()
            self._initialized = True
            logger.info("Service container initialized")

    def _clear(self):
        self._email: Optional[EmailServiceInterface] = None
        self._payment: Optional[PaymentProviderInterface] = None
        self._payment_config = None

        # Domain Services
        self._image_service = None
        self._checkout_service = None
        self._webhook_service = None
        self._reconciliation_service = None
        self._payout_account_service = None

    def email(self, backend: Optional[str] = None) -> EmailServiceInterface:
        """
        Get email service instance.

        Args:
            backend: Email backend type ('smtp' or 'mock')
                    If None, uses configuration from settings
        """
        if self._email is None or backend is not None:
            self._email = EmailFactory.create(backend)
            logger.debug(f"Created email service: {type(self._email).__name__}")

        return self._email

    def payment(self, backend: Optional[str] = None) -> PaymentProviderInterface:
        """
        Get payment provider instance.

        Args:
            backend: Payment backend type ('stripe' or 'mock')
                    If None, uses configuration from settings
        """
        if self._payment is None or backend is not None:
            self._payment = PaymentFactory.create(backend)
            self._drop_payment_services()
            logger.debug(f"Created payment service: {type(self._payment).__name__}")

        return self._payment

    def payment_config(self):
        """Get the PaymentConfig built from settings."""
        if self._payment_config is None:
            from payment_system.config import PaymentConfig

            self._payment_config = PaymentConfig.from_settings(settings)
            logger.debug("Created PaymentConfig")
        return self._payment_config

    def image_service(self):
        """Get ImageService instance."""
        if self._image_service is None:
            from gallery.services import ImageService

            self._image_service = ImageService(payment_provider=self.payment(), config=self.payment_config())
            logger.debug("Created ImageService")
        return self._image_service

    def checkout_service(self):
        """Get CheckoutService instance."""
        if self._checkout_service is None:
            from payment_system.domain.services import CheckoutService

            self._checkout_service = CheckoutService(payment_provider=self.payment(), config=self.payment_config())
            logger.debug("Created CheckoutService")
        return self._checkout_service

    def reconciliation_service(self):
        """Get ReconciliationService instance."""
        if self._reconciliation_service is None:
            from payment_system.domain.services import ReconciliationService

            self._reconciliation_service = ReconciliationService(
                payment_provider=self.payment(), config=self.payment_config()
            )
            logger.debug("Created ReconciliationService")
        return self._reconciliation_service

    def webhook_service(self):
        """Get WebhookService instance."""
        if self._webhook_service is None:
            from payment_system.domain.services import WebhookService

            self._webhook_service = WebhookService(payment_provider=self.payment(), config=self.payment_config())
            logger.debug("Created WebhookService")
        return self._webhook_service

    def payout_account_service(self):
        """Get PayoutAccountService instance."""
        if self._payout_account_service is None:
            from payment_system.domain.services import PayoutAccountService

            self._payout_account_service = PayoutAccountService(
                payment_provider=self.payment(), config=self.payment_config()
            )
            logger.debug("Created PayoutAccountService")
        return self._payout_account_service

    def _drop_payment_services(self):
        self._image_service = None
        self._checkout_service = None
        self._webhook_service = None
        self._reconciliation_service = None
        self._payout_account_service = None

    def reset(self):
        """
        Reset all cached service instances.

        Useful for testing or when settings change.
        """
        self._clear()
        logger.info("Service container reset")

    def configure_for_testing(self):
        """
        Configure container with mock services for testing.

        Returns:
            The mock payment provider, so tests can script failures and inspect calls
        """
        self._clear()
        self._email = EmailFactory.create("mock")
        self._payment = PaymentFactory.create("mock")
        logger.info("Service container configured for testing")
        return self._payment


# Global singleton instance
container = ServiceContainer()


def get_email() -> EmailServiceInterface:
    """Get email service from global container."""
    return container.email()


def get_payment() -> PaymentProviderInterface:
    """Get payment provider from global container."""
    return container.payment()
