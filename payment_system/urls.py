from django.urls import include, path
from rest_framework.routers import SimpleRouter

from payment_system.api.views import payment_views, payout_views
from payment_system.api.views.settlement_views import SettlementViewSet


app_name = "payment_system"

router = SimpleRouter()
router.register(r"settlements", SettlementViewSet, basename="settlement")

urlpatterns = [
    # Checkout
    path("checkout/", payment_views.create_checkout_session, name="create_checkout_session"),
    path("checkout/webhook/", payment_views.StripeWebhookView.as_view(), name="stripe_webhook"),
    path("discounts/verify/", payment_views.verify_discount_code, name="verify_discount_code"),
    # Seller payout account onboarding
    path("payout-account/link/", payout_views.payout_account_link, name="payout_account_link"),
    path("payout-account/verify/", payout_views.payout_account_verify, name="payout_account_verify"),
    # Settlements and transfer reconciliation
    path("", include(router.urls)),
]
