import logging

from drf_spectacular.utils import extend_schema
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from infrastructure.container import container
from payment_system.api.serializers.response_serializers import (
    ErrorResponseSerializer,
    PayoutAccountLinkResponseSerializer,
    PayoutAccountStatusResponseSerializer,
)
from utils.service_base import http_status_for


logger = logging.getLogger(__name__)


@extend_schema(
    operation_id="payout_account_link",
    summary="Get payout account onboarding link",
    description="Creates the seller's Stripe connected account on first use and returns an onboarding link.",
    responses={200: PayoutAccountLinkResponseSerializer, 502: ErrorResponseSerializer},
    tags=["Payouts"],
)
@api_view(["GET"])
@permission_classes([IsAuthenticated])
def payout_account_link(request):
    result = container.payout_account_service().create_onboarding_link(request.user)
    if not result.ok:
        return Response({"error": result.error, "detail": result.error_detail}, status=http_status_for(result))

    link = result.value
    return Response({"account_id": link.account_id, "url": link.url, "expires_at": link.expires_at})


@extend_schema(
    operation_id="payout_account_verify",
    summary="Verify payout account onboarding",
    responses={200: PayoutAccountStatusResponseSerializer, 404: ErrorResponseSerializer},
    tags=["Payouts"],
)
@api_view(["GET"])
@permission_classes([IsAuthenticated])
def payout_account_verify(request):
    result = container.payout_account_service().verify_account(request.user)
    if not result.ok:
        return Response({"error": result.error, "detail": result.error_detail}, status=http_status_for(result))

    return Response(result.value)
