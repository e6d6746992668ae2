"""
ImageService - image listings owned by sellers.

Handles browsing, registering uploaded images, listing images for sale
(registering a provider price handle), visibility changes and soft deletion.
File storage and tag bookkeeping happen elsewhere; this service only keeps the
image rows.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from gallery.models import Image
from infrastructure.payments import PaymentException, PaymentProviderInterface
from utils.service_base import BaseService, ErrorCodes, ServiceResult, service_err, service_ok

MIN_TAGS = 2
DEFAULT_LIMIT = 10
MAX_LIMIT = 100


def _lower_tags(image):
    return {str(tag).lower() for tag in image.tags or []}


class ImageService(BaseService):
    """
    Service for managing image listings.

    All mutating operations only touch images owned by the calling user and
    never touch soft-deleted rows.
    """

    def __init__(self, payment_provider: PaymentProviderInterface, config):
        super().__init__()
        self.payment_provider = payment_provider
        self.config = config

    @BaseService.log_performance
    def list_images(
        self,
        filters: Optional[Dict[str, Any]] = None,
        offset: int = 0,
        limit: int = DEFAULT_LIMIT,
        viewer=None,
        owner_id: Optional[str] = None,
    ) -> ServiceResult[Dict[str, Any]]:
        """
        List visible images with filtering and offset pagination.

        Public images are visible to everyone; the viewer additionally sees
        their own private images.

        Args:
            filters: Optional keys ``tags`` (list), ``price_min``, ``price_max``, ``q``
            offset: Rows to skip
            limit: Page size, capped at MAX_LIMIT
            viewer: Authenticated user, if any
            owner_id: Restrict to one owner's images

        Returns:
            ServiceResult with ``{"results": [...], "count": int}``
        """
        filters = filters or {}
        offset = max(int(offset or 0), 0)
        limit = min(max(int(limit or DEFAULT_LIMIT), 1), MAX_LIMIT)

        visible = Q(is_public=True)
        if viewer is not None and viewer.is_authenticated:
            visible |= Q(user=viewer)

        queryset = Image.objects.active().filter(visible).select_related("user")

        if owner_id:
            queryset = queryset.filter(user_id=owner_id)

        if filters.get("price_min") is not None:
            queryset = queryset.filter(price__gte=filters["price_min"])
        if filters.get("price_max") is not None:
            queryset = queryset.filter(price__lte=filters["price_max"])

        images = list(queryset.order_by("-created_at"))

        # Tag matching runs in Python so it works on every database backend
        tags = [tag.lower() for tag in filters.get("tags") or []]
        if tags:
            images = [image for image in images if set(tags) & _lower_tags(image)]

        query = (filters.get("q") or "").lower()
        if query:
            images = [
                image
                for image in images
                if query in image.description.lower() or any(query in tag for tag in _lower_tags(image))
            ]

        return service_ok({"results": images[offset : offset + limit], "count": len(images)})

    @BaseService.log_performance
    def create_images(
        self,
        user,
        urls: Sequence[str],
        tags: Sequence[str],
        description: str = "",
        price: int = 0,
        is_public: bool = True,
    ) -> ServiceResult[List[Image]]:
        """
        Register uploaded images for a user, one row per url.

        A non-zero price lists every new image for sale straight away.
        """
        if not urls:
            return service_err(ErrorCodes.INVALID_REQUEST, "At least one image url is required")
        if len(tags) < MIN_TAGS:
            return service_err(ErrorCodes.INVALID_REQUEST, f"At least {MIN_TAGS} tags are required")
        if price < 0:
            return service_err(ErrorCodes.INVALID_REQUEST, "Price must be non-negative")
        if price > 0 and not user.stripe_account_id:
            return service_err(ErrorCodes.NOT_ALLOWED, "Please complete your payout account before selling")

        with transaction.atomic():
            images = [
                Image.objects.create(
                    user=user,
                    url=url,
                    description=description,
                    tags=list(tags),
                    price=0,
                    is_public=is_public,
                )
                for url in urls
            ]

        if price > 0:
            result = self.update_prices(user, [(str(image.id), price) for image in images])
            if not result.ok:
                return result
            images = result.value

        self.logger.info(f"User {user.id} registered {len(images)} images")
        return service_ok(images)

    @BaseService.log_performance
    def update_prices(self, user, prices: Sequence[Tuple[str, int]]) -> ServiceResult[List[Image]]:
        """
        Set prices on the user's images and register a provider price handle
        for each image listed for sale.

        A price of zero takes the image off sale. Price handles are created
        before any row is written, so a provider failure leaves every image
        unchanged.
        """
        if not prices:
            return service_err(ErrorCodes.INVALID_REQUEST, "No prices given")
        if any(price is None or int(price) < 0 for _, price in prices):
            return service_err(ErrorCodes.INVALID_REQUEST, "Prices must be non-negative integers")
        if any(int(price) > 0 for _, price in prices) and not user.stripe_account_id:
            return service_err(ErrorCodes.NOT_ALLOWED, "Please complete your payout account before selling")

        requested = {str(image_id): int(price) for image_id, price in prices}
        images = {str(image.id): image for image in Image.objects.owned_by(user).filter(id__in=list(requested))}
        missing = [image_id for image_id in requested if image_id not in images]
        if missing:
            return service_err(ErrorCodes.NOT_FOUND, f"Images not found: {', '.join(missing)}")

        handles = {}
        for image_id, price in requested.items():
            image = images[image_id]
            if price == 0 or (price == image.price and image.stripe_price_id):
                continue
            try:
                handles[image_id] = self.payment_provider.create_price(
                    image_id=image_id,
                    name=image.description[:250] or f"Image {image_id}",
                    amount=price,
                    currency=self.config.currency,
                )
            except PaymentException as e:
                self.logger.error(f"Price registration failed for image {image_id}: {e}")
                return service_err(ErrorCodes.PAYMENT_PROVIDER_ERROR, "Could not list image for sale")

        with transaction.atomic():
            for image_id, price in requested.items():
                image = images[image_id]
                image.price = price
                if price == 0:
                    image.stripe_product_id = None
                    image.stripe_price_id = None
                elif image_id in handles:
                    image.stripe_product_id = handles[image_id].product_id
                    image.stripe_price_id = handles[image_id].price_id
                image.save(update_fields=["price", "stripe_product_id", "stripe_price_id", "updated_at"])

        return service_ok([images[image_id] for image_id in requested])

    @BaseService.log_performance
    def change_visibility(self, user, image_ids: Sequence[str], is_public: bool) -> ServiceResult[int]:
        if not image_ids:
            return service_err(ErrorCodes.INVALID_REQUEST, "Image ids are required")

        updated = Image.objects.owned_by(user).filter(id__in=list(image_ids)).update(
            is_public=is_public, updated_at=timezone.now()
        )
        return service_ok(updated)

    @BaseService.log_performance
    def delete_images(self, user, image_ids: Sequence[str] = (), all_images: bool = False) -> ServiceResult[int]:
        """
        Soft-delete the user's images. Rows stay in place because settlements
        reference them.
        """
        if not all_images and not image_ids:
            return service_err(ErrorCodes.INVALID_REQUEST, "Image ids are required")

        queryset = Image.objects.owned_by(user)
        if not all_images:
            queryset = queryset.filter(id__in=list(image_ids))

        now = timezone.now()
        deleted = queryset.update(is_deleted=True, deleted_at=now, updated_at=now)
        self.logger.info(f"User {user.id} deleted {deleted} images")
        return service_ok(deleted)
