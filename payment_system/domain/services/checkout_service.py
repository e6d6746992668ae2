"""
CheckoutService - Checkout Session Builder

Turns a buyer's selection of images into one pending Settlement (prices and
fees locked per line, net payout per seller) and a hosted payment session
whose metadata carries the settlement's transfer group.
"""

import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from django.core.exceptions import ValidationError
from django.db import transaction

from gallery.models import Image
from infrastructure.payments import (
    CheckoutLineItem,
    Discount,
    DiscountNotFound,
    PaymentException,
    PaymentProviderInterface,
)
from payment_system.config import PaymentConfig
from payment_system.domain.services.fee_calculator import aggregate_payouts, calculate_fees
from payment_system.infra.observability.metrics import checkout_sessions_total
from payment_system.models import Settlement, SettlementLine, SettlementPayout
from payment_system.security import PaymentAuditLogger
from utils.service_base import BaseService, ErrorCodes, ServiceResult, service_err, service_ok


# Image ids travel comma-joined in one provider metadata value (500 chars max)
MAX_CHECKOUT_IMAGES = 12

# Sellers named in a transfer group before the rest are summarised as "+N"
TRANSFER_GROUP_SELLERS = 4


@dataclass
class CheckoutResult:
    settlement: Settlement
    session_id: str
    payment_url: str
    return_url: str


def generate_transfer_group(seller_ids: Sequence[str], now: Optional[datetime] = None) -> str:
    """
    Build a human-auditable, unique correlation token.

    >>> generate_transfer_group(["9f1c...", "04ab..."])  # doctest: +SKIP
    'G-04ab12cd.9f1c34ef-20261017T101500Z-5d2e8a1b'
    """
    now = now or datetime.now(timezone.utc)
    short_ids = sorted(str(seller_id).replace("-", "")[:8] for seller_id in seller_ids)
    sellers = ".".join(short_ids[:TRANSFER_GROUP_SELLERS])
    if len(short_ids) > TRANSFER_GROUP_SELLERS:
        sellers += f"+{len(short_ids) - TRANSFER_GROUP_SELLERS}"
    return f"G-{sellers}-{now.strftime('%Y%m%dT%H%M%SZ')}-{secrets.token_hex(4)}"


class CheckoutService(BaseService):
    """
    Service for starting a multi-seller checkout.

    Responsibilities:
    - Validate the selected images and the optional discount code
    - Lock prices and fees into a pending Settlement
    - Request the hosted payment session and record its id

    Dependencies:
    - PaymentProviderInterface: discount lookup, customer handle, session creation
    - PaymentConfig: fee rates, currency
    """

    def __init__(self, payment_provider: PaymentProviderInterface, config: PaymentConfig):
        super().__init__()
        self.payment_provider = payment_provider
        self.config = config

    @BaseService.log_performance
    def create_checkout_session(
        self,
        buyer,
        image_ids: Sequence[str],
        return_url: str,
        discount_code: Optional[str] = None,
    ) -> ServiceResult[CheckoutResult]:
        """
        Create a pending Settlement and a hosted payment session for it.

        Nothing is persisted when validation fails. If the provider rejects the
        session request, the pending Settlement is kept without a session id;
        no completion event can ever match it.

        Args:
            buyer: Authenticated user paying for the images
            image_ids: Selected image ids, in display order
            return_url: Where the provider returns the buyer
            discount_code: Optional code typed by the buyer

        Returns:
            ServiceResult with CheckoutResult
        """
        ordered_ids = list(dict.fromkeys(str(image_id) for image_id in image_ids or []))
        if not ordered_ids:
            return service_err(ErrorCodes.INVALID_REQUEST, "Select at least one image")
        if len(ordered_ids) > MAX_CHECKOUT_IMAGES:
            return service_err(
                ErrorCodes.INVALID_REQUEST, f"A checkout can contain at most {MAX_CHECKOUT_IMAGES} images"
            )
        if not return_url:
            return service_err(ErrorCodes.INVALID_REQUEST, "Return url is required")

        images_result = self._load_images(buyer, ordered_ids)
        if not images_result.ok:
            return images_result
        images = images_result.value

        discount = None
        if discount_code:
            discount_result = self.validate_discount(discount_code)
            if not discount_result.ok:
                return discount_result
            discount = discount_result.value

        customer_result = self._ensure_customer(buyer)
        if not customer_result.ok:
            return customer_result

        settlement = self._create_pending_settlement(buyer, images, discount)

        try:
            session = self.payment_provider.create_checkout_session(
                line_items=[CheckoutLineItem(price_handle=image.stripe_price_id) for image in images],
                return_url=return_url,
                customer_handle=customer_result.value,
                buyer_id=str(buyer.id),
                item_ids=ordered_ids,
                correlation_token=settlement.transfer_group,
                discount=discount,
            )
        except PaymentException as e:
            checkout_sessions_total.labels(status="provider_error").inc()
            self.logger.error(f"Checkout session request failed for settlement {settlement.id}: {e}")
            return service_err(ErrorCodes.PAYMENT_PROVIDER_ERROR, "Payment provider could not create a session")

        # The session id is assigned once; a concurrent writer never overwrites it
        Settlement.objects.filter(pk=settlement.pk, stripe_checkout_session_id__isnull=True).update(
            stripe_checkout_session_id=session.session_id
        )
        settlement.refresh_from_db()

        checkout_sessions_total.labels(status="created").inc()
        PaymentAuditLogger.log_checkout_created(
            buyer.id, settlement.id, settlement.transfer_group, settlement.total_price, len(images)
        )

        return service_ok(
            CheckoutResult(
                settlement=settlement,
                session_id=settlement.stripe_checkout_session_id,
                payment_url=session.url,
                return_url=return_url,
            )
        )

    @BaseService.log_performance
    def validate_discount(self, code: str) -> ServiceResult[Discount]:
        """Resolve a discount code and check it can still be redeemed."""
        try:
            discount = self.payment_provider.lookup_discount(code)
        except DiscountNotFound:
            return service_err(ErrorCodes.INVALID_REQUEST, f"Discount code '{code}' does not exist")
        except PaymentException as e:
            self.logger.error(f"Discount lookup failed for '{code}': {e}")
            return service_err(ErrorCodes.PAYMENT_PROVIDER_ERROR, "Could not verify discount code")

        if not discount.active:
            return service_err(ErrorCodes.NOT_ALLOWED, "Discount code is no longer available")
        if discount.is_expired():
            return service_err(ErrorCodes.NOT_ALLOWED, "Discount code has expired")
        if discount.is_exhausted:
            return service_err(ErrorCodes.NOT_ALLOWED, "Discount code has reached its redemption limit")

        return service_ok(discount)

    def _load_images(self, buyer, ordered_ids: List[str]) -> ServiceResult[List[Image]]:
        try:
            found = {
                str(image.id): image
                for image in Image.objects.public().select_related("user").filter(id__in=ordered_ids)
            }
        except (ValidationError, ValueError):
            return service_err(ErrorCodes.NOT_FOUND, "One or more images do not exist")

        missing = [image_id for image_id in ordered_ids if image_id not in found]
        if missing:
            return service_err(ErrorCodes.NOT_FOUND, f"Images not found: {', '.join(missing)}")

        images = [found[image_id] for image_id in ordered_ids]
        for image in images:
            if image.user_id == buyer.id:
                return service_err(ErrorCodes.NOT_ALLOWED, "You cannot buy your own image")
            if image.price <= 0:
                return service_err(ErrorCodes.INVALID_REQUEST, f"Image {image.id} is not for sale")
            if not image.stripe_price_id:
                return service_err(ErrorCodes.INVALID_REQUEST, f"Image {image.id} has no registered price")

        return service_ok(images)

    def _ensure_customer(self, buyer) -> ServiceResult[str]:
        if buyer.stripe_customer_id:
            return service_ok(buyer.stripe_customer_id)

        try:
            customer_id = self.payment_provider.create_customer(
                email=buyer.email, name=buyer.display_name, user_id=str(buyer.id)
            )
        except PaymentException as e:
            self.logger.error(f"Customer creation failed for user {buyer.id}: {e}")
            return service_err(ErrorCodes.PAYMENT_PROVIDER_ERROR, "Could not register customer")

        buyer.stripe_customer_id = customer_id
        buyer.save(update_fields=["stripe_customer_id"])
        return service_ok(customer_id)

    @transaction.atomic
    def _create_pending_settlement(self, buyer, images: List[Image], discount: Optional[Discount]) -> Settlement:
        lines = [
            (
                image,
                calculate_fees(image.price, self.config.processing_fee_rate, self.config.platform_fee_rate),
            )
            for image in images
        ]
        payouts = aggregate_payouts((str(image.user_id), fees) for image, fees in lines)
        sellers = {str(image.user_id): image.user for image in images}

        settlement = Settlement.objects.create(
            buyer=buyer,
            currency=self.config.currency,
            total_price=sum(fees.price for _, fees in lines),
            processing_fee_total=sum(fees.processing_fee for _, fees in lines),
            platform_fee_total=sum(fees.platform_fee for _, fees in lines),
            transfer_group=generate_transfer_group(list(payouts)),
            discount_code=discount.code if discount else None,
        )

        SettlementLine.objects.bulk_create(
            [
                SettlementLine(
                    settlement=settlement,
                    position=position,
                    image=image,
                    seller_id=image.user_id,
                    price=fees.price,
                    processing_fee=fees.processing_fee,
                    platform_fee=fees.platform_fee,
                    net_amount=fees.net_to_seller,
                    stripe_price_id=image.stripe_price_id,
                )
                for position, (image, fees) in enumerate(lines)
            ]
        )

        SettlementPayout.objects.bulk_create(
            [
                SettlementPayout(
                    settlement=settlement,
                    seller_id=sellers[seller_id].id,
                    amount=payout.net_amount,
                    item_count=payout.item_count,
                    destination_account=sellers[seller_id].stripe_account_id,
                )
                for seller_id, payout in payouts.items()
            ]
        )

        self.logger.info(
            f"Pending settlement {settlement.id} ({settlement.transfer_group}) for {len(lines)} items "
            f"and {len(payouts)} sellers"
        )
        return settlement
