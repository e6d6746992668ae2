"""
Payment configuration.

``PaymentConfig`` is built once from Django settings by the service container
and passed to the checkout, webhook and reconciliation services. Those
services never read ``django.conf.settings`` themselves.
"""

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class PaymentConfig:
    currency: str = "usd"
    processing_fee_rate: Decimal = Decimal("0.04")
    platform_fee_rate: Decimal = Decimal("0.01")
    webhook_secret: str = ""
    frontend_url: str = "http://localhost:5173"
    transfer_timeout_seconds: float = 20.0
    transfer_max_workers: int = 4

    def __post_init__(self):
        if self.processing_fee_rate < 0 or self.platform_fee_rate < 0:
            raise ValueError("Fee rates must be non-negative")
        if self.processing_fee_rate + self.platform_fee_rate >= 1:
            raise ValueError("Combined fee rate must be below 100%")
        if self.transfer_max_workers < 1:
            raise ValueError("transfer_max_workers must be at least 1")

    @classmethod
    def from_settings(cls, settings) -> "PaymentConfig":
        return cls(
            currency=str(getattr(settings, "PAYMENT_CURRENCY", "usd")).lower(),
            processing_fee_rate=Decimal(str(getattr(settings, "PAYMENT_PROCESSING_FEE_RATE", "0.04"))),
            platform_fee_rate=Decimal(str(getattr(settings, "PAYMENT_PLATFORM_FEE_RATE", "0.01"))),
            webhook_secret=getattr(settings, "STRIPE_WEBHOOK_SECRET", "") or "",
            frontend_url=getattr(settings, "FRONTEND_URL", "http://localhost:5173"),
            transfer_timeout_seconds=float(getattr(settings, "TRANSFER_TIMEOUT_SECONDS", 20)),
            transfer_max_workers=int(getattr(settings, "TRANSFER_MAX_WORKERS", 4)),
        )
