import uuid

from django.conf import settings
from django.db import models


class ImageQuerySet(models.QuerySet):
    def active(self):
        return self.filter(is_deleted=False)

    def public(self):
        return self.active().filter(is_public=True)

    def owned_by(self, user):
        return self.active().filter(user=user)

    def for_sale(self):
        return self.public().filter(price__gt=0, stripe_price_id__isnull=False)


class Image(models.Model):
    """
    A sellable digital image.

    Purchased copies are separate rows owned by the buyer: priced at zero,
    private, with ``original_user`` pointing at the seller and ``source_image``
    at the row that was bought.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="images")
    url = models.URLField(max_length=1024)
    description = models.TextField(blank=True)
    tags = models.JSONField(default=list, blank=True)

    price = models.PositiveIntegerField(default=0, help_text="Price in the smallest currency unit (cents)")
    is_public = models.BooleanField(default=True)
    is_deleted = models.BooleanField(default=False, db_index=True)
    deleted_at = models.DateTimeField(null=True, blank=True)

    original_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="sold_image_copies",
        help_text="Seller this copy was purchased from",
    )
    source_image = models.ForeignKey(
        "self",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="purchased_copies",
    )

    # Provider handles registered when the image is listed for sale
    stripe_product_id = models.CharField(max_length=255, blank=True, null=True)
    stripe_price_id = models.CharField(max_length=255, blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ImageQuerySet.as_manager()

    class Meta:
        db_table = "images"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["user", "is_deleted"], name="images_user_deleted_idx"),
            models.Index(fields=["is_public", "is_deleted"], name="images_public_deleted_idx"),
        ]

    def __str__(self):
        return f"Image {self.id} ({self.user_id})"

    @property
    def is_purchased_copy(self) -> bool:
        return self.original_user_id is not None

    @property
    def is_chargeable(self) -> bool:
        return self.price > 0 and bool(self.stripe_price_id) and not self.is_deleted
