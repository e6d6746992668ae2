from .checkout_service import MAX_CHECKOUT_IMAGES, CheckoutResult, CheckoutService, generate_transfer_group
from .fee_calculator import FeeBreakdown, SellerPayout, aggregate_payouts, calculate_fees
from .payout_account_service import OnboardingLink, PayoutAccountService
from .reconciliation_service import ReconciliationOutcome, ReconciliationService
from .transfer_executor import TransferExecutor, TransferLeg
from .webhook_service import WebhookOutcome, WebhookResult, WebhookService


__all__ = [
    "MAX_CHECKOUT_IMAGES",
    "CheckoutResult",
    "CheckoutService",
    "generate_transfer_group",
    "FeeBreakdown",
    "SellerPayout",
    "aggregate_payouts",
    "calculate_fees",
    "OnboardingLink",
    "PayoutAccountService",
    "ReconciliationOutcome",
    "ReconciliationService",
    "TransferExecutor",
    "TransferLeg",
    "WebhookOutcome",
    "WebhookResult",
    "WebhookService",
]
