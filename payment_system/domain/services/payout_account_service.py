"""
PayoutAccountService - seller onboarding to the provider's connected accounts.
"""

from dataclasses import dataclass

from infrastructure.payments import PaymentException, PaymentProviderInterface
from payment_system.config import PaymentConfig
from utils.service_base import BaseService, ErrorCodes, ServiceResult, service_err, service_ok


@dataclass
class OnboardingLink:
    account_id: str
    url: str
    expires_at: int = None


class PayoutAccountService(BaseService):
    def __init__(self, payment_provider: PaymentProviderInterface, config: PaymentConfig):
        super().__init__()
        self.payment_provider = payment_provider
        self.config = config

    @BaseService.log_performance
    def create_onboarding_link(self, user) -> ServiceResult[OnboardingLink]:
        """
        Return an onboarding link, creating the user's connected account first
        if they have none.
        """
        try:
            if not user.stripe_account_id:
                account = self.payment_provider.create_connected_account(email=user.email, user_id=str(user.id))
                user.stripe_account_id = account.account_id
                user.stripe_account_completed = False
                user.save(update_fields=["stripe_account_id", "stripe_account_completed"])
                self.logger.info(f"Created payout account {account.account_id} for user {user.id}")

            base = self.config.frontend_url.rstrip("/")
            link = self.payment_provider.create_account_link(
                account_id=user.stripe_account_id,
                return_url=f"{base}/payout-account/verify",
                refresh_url=f"{base}/payout-account/refresh",
            )
        except PaymentException as e:
            self.logger.error(f"Payout onboarding failed for user {user.id}: {e}")
            return service_err(ErrorCodes.PAYMENT_PROVIDER_ERROR, "Could not start payout account onboarding")

        return service_ok(OnboardingLink(account_id=user.stripe_account_id, url=link.url, expires_at=link.expires_at))

    @BaseService.log_performance
    def verify_account(self, user) -> ServiceResult[dict]:
        """Check whether the user finished onboarding and record it."""
        if not user.stripe_account_id:
            return service_err(ErrorCodes.NOT_FOUND, "No payout account, start onboarding first")

        try:
            account = self.payment_provider.retrieve_account(user.stripe_account_id)
        except PaymentException as e:
            self.logger.error(f"Payout account lookup failed for user {user.id}: {e}")
            return service_err(ErrorCodes.PAYMENT_PROVIDER_ERROR, "Could not verify payout account")

        if not account.details_submitted:
            return service_err(ErrorCodes.NOT_FOUND, "Please complete payout account onboarding")

        if not user.stripe_account_completed:
            user.stripe_account_completed = True
            user.save(update_fields=["stripe_account_completed"])

        return service_ok(
            {
                "account_id": account.account_id,
                "details_submitted": account.details_submitted,
                "charges_enabled": account.charges_enabled,
                "payouts_enabled": account.payouts_enabled,
            }
        )
