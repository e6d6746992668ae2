import logging

from django.apps import AppConfig


logger = logging.getLogger(__name__)


class PaymentSystemConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "payment_system"
    verbose_name = "Payment System"

    def ready(self):
        """Register Celery tasks when Django starts"""
        from payment_system import Tasks  # noqa: F401

        logger.debug("Payment system tasks registered")
