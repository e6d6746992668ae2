import logging

from django.http import HttpResponse
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt
from drf_spectacular.utils import OpenApiResponse, OpenApiTypes, extend_schema
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from infrastructure.container import container
from payment_system.api.serializers.request_serializers import (
    CheckoutRequestSerializer,
    DiscountVerifyRequestSerializer,
)
from payment_system.api.serializers.response_serializers import (
    CheckoutSessionResponseSerializer,
    DiscountResponseSerializer,
    ErrorResponseSerializer,
)
from payment_system.security import PaymentAuditLogger, get_client_ip
from utils.service_base import ErrorCodes, http_status_for


# Initialize logger
logger = logging.getLogger(__name__)


# Handle Stripe webhook events
@method_decorator(csrf_exempt, name="dispatch")
class StripeWebhookView(View):
    """Process Stripe webhooks - thin router that delegates to WebhookService."""

    @extend_schema(
        operation_id="payment_checkout_webhook",
        summary="Stripe Webhook Endpoint",
        description="Receives checkout completion events. Verifies the signature before anything is processed.",
        request=OpenApiTypes.OBJECT,
        responses={
            200: OpenApiResponse(description="Event handled or ignored"),
            400: OpenApiResponse(description="Missing or invalid signature"),
            500: OpenApiResponse(description="Webhook secret not configured"),
        },
        tags=["Webhooks"],
        auth=[],
    )
    def post(self, request):
        payload = request.body
        sig_header = request.headers.get("stripe-signature")
        client_ip = get_client_ip(request)

        if not container.payment_config().webhook_secret:
            PaymentAuditLogger.log_security_event(
                "webhook_missing_secret",
                client_ip,
                details="STRIPE_WEBHOOK_SECRET not configured",
            )
            logger.error("Critical Security Error: STRIPE_WEBHOOK_SECRET not configured. Rejecting webhook.")
            return HttpResponse(
                status=500,
                content=b"Webhook endpoint secret must be configured. Contact system administrator.",
            )

        if not sig_header:
            PaymentAuditLogger.log_security_event(
                "webhook_missing_signature", client_ip, details="Webhook request without stripe-signature header"
            )
            logger.warning(f"Webhook rejected: Missing stripe-signature header from IP {client_ip}")
            return HttpResponse(status=400, content=b"Missing stripe-signature header. Webhook verification required.")

        try:
            result = container.webhook_service().process_webhook(payload, sig_header, client_ip)
        except Exception as e:
            logger.error(f"Error processing webhook from IP {client_ip}: {str(e)}", exc_info=True)
            PaymentAuditLogger.log_security_event(
                "webhook_service_error", client_ip, details=f"WebhookService failed: {str(e)}"
            )
            # Return 200 to prevent Stripe retries for application errors
            return HttpResponse(status=200, content=b"Event processing failed")

        if not result.ok:
            if result.error == ErrorCodes.UNAUTHORIZED:
                return HttpResponse(status=400, content=result.error_detail.encode("utf-8"))
            logger.error(f"Webhook processing returned {result.error}: {result.error_detail}")
            return HttpResponse(status=200, content=b"Event processing failed")

        outcome = result.value
        logger.info(f"Event {outcome.event_type} finished with outcome '{outcome.outcome}'")
        return HttpResponse(status=200, content=f"{outcome.event_type}: {outcome.outcome}".encode("utf-8"))


@extend_schema(
    operation_id="payment_checkout_create",
    summary="Create checkout session",
    description="Builds a pending settlement for the selected images and returns the hosted payment link.",
    request=CheckoutRequestSerializer,
    responses={
        200: CheckoutSessionResponseSerializer,
        400: ErrorResponseSerializer,
        403: ErrorResponseSerializer,
        404: ErrorResponseSerializer,
        502: ErrorResponseSerializer,
    },
    tags=["Payments"],
)
@api_view(["POST"])
@permission_classes([IsAuthenticated])
def create_checkout_session(request):
    serializer = CheckoutRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(
            {"error": ErrorCodes.INVALID_REQUEST, "detail": serializer.errors}, status=status.HTTP_400_BAD_REQUEST
        )
    data = serializer.validated_data

    result = container.checkout_service().create_checkout_session(
        buyer=request.user,
        image_ids=[str(image_id) for image_id in data["images"]],
        return_url=data["currentUrl"],
        discount_code=data.get("discountCode") or None,
    )
    if not result.ok:
        return Response({"error": result.error, "detail": result.error_detail}, status=http_status_for(result))

    checkout = result.value
    return Response(
        {
            "paymentLink": checkout.payment_url,
            "url": checkout.return_url,
            "sessionId": checkout.session_id,
            "settlementId": str(checkout.settlement.id),
        },
        status=status.HTTP_200_OK,
    )


@extend_schema(
    operation_id="payment_discount_verify",
    summary="Verify discount code",
    request=DiscountVerifyRequestSerializer,
    responses={200: DiscountResponseSerializer, 400: ErrorResponseSerializer, 403: ErrorResponseSerializer},
    tags=["Payments"],
)
@api_view(["POST"])
@permission_classes([IsAuthenticated])
def verify_discount_code(request):
    serializer = DiscountVerifyRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(
            {"error": ErrorCodes.INVALID_REQUEST, "detail": serializer.errors}, status=status.HTTP_400_BAD_REQUEST
        )

    result = container.checkout_service().validate_discount(serializer.validated_data["code"])
    if not result.ok:
        return Response({"error": result.error, "detail": result.error_detail}, status=http_status_for(result))

    discount = result.value
    return Response(
        {
            "code": discount.code,
            "valid": True,
            "percent_off": discount.percent_off,
            "amount_off": discount.amount_off,
            "currency": discount.currency,
            "times_redeemed": discount.times_redeemed,
            "max_redemptions": discount.max_redemptions,
            "expires_at": discount.expires_at,
        }
    )
