import uuid

from django.conf import settings
from django.db import models
from django.db.models import Q


class SettlementQuerySet(models.QuerySet):
    def for_buyer(self, user):
        return self.filter(buyer=user)

    def for_seller(self, user):
        return self.filter(payouts__seller=user).distinct()

    def awaiting_transfers(self):
        """Paid settlements that still owe at least one seller a transfer."""
        return self.filter(payment_completed=True, transfer_completed=False)


class Settlement(models.Model):
    """
    One checkout's expected money and ownership movement.

    Created pending when checkout starts. Only the completion webhook and the
    transfer reconciler mutate it afterwards; it is never deleted.
    """

    class Status(models.TextChoices):
        PENDING = "pending", "Pending payment"
        PAID_PENDING_TRANSFER = "paid_pending_transfer", "Paid, transfers pending"
        SETTLED = "settled", "Settled"
        PAID_PARTIAL_TRANSFER_FAILURE = "paid_partial_transfer_failure", "Paid, some transfers failed"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    buyer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="purchases")
    status = models.CharField(max_length=40, choices=Status.choices, default=Status.PENDING)
    currency = models.CharField(max_length=3, default="usd")

    # Totals in the smallest currency unit
    total_price = models.PositiveIntegerField()
    platform_fee_total = models.PositiveIntegerField()
    processing_fee_total = models.PositiveIntegerField()

    transfer_group = models.CharField(
        max_length=128,
        unique=True,
        help_text="Correlation token grouping the payment and its seller transfers",
    )
    stripe_checkout_session_id = models.CharField(max_length=255, blank=True, null=True, unique=True)
    discount_code = models.CharField(max_length=100, blank=True, null=True)

    payment_completed = models.BooleanField(default=False)
    transfer_completed = models.BooleanField(default=False)

    paid_at = models.DateTimeField(null=True, blank=True)
    settled_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = SettlementQuerySet.as_manager()

    class Meta:
        db_table = "settlements"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["buyer", "created_at"], name="settlement_buyer_idx"),
            models.Index(fields=["payment_completed", "transfer_completed"], name="settlement_completion_idx"),
            models.Index(fields=["status"], name="settlement_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                check=Q(transfer_completed=False) | Q(payment_completed=True),
                name="settlement_transfer_after_payment",
            ),
        ]

    def __str__(self):
        return f"Settlement {self.transfer_group} ({self.status})"

    @property
    def item_ids(self):
        return [line.image_id for line in self.lines.order_by("position")]

    @property
    def payout_map(self):
        """Seller id -> net payout amount."""
        return {payout.seller_id: payout.amount for payout in self.payouts.all()}

    @property
    def failed_transfers(self):
        """Seller ids whose last transfer attempt failed."""
        return [
            payout.seller_id
            for payout in self.payouts.all()
            if payout.status == SettlementPayout.Status.FAILED
        ]

    @property
    def seller_payout_total(self) -> int:
        return sum(payout.amount for payout in self.payouts.all())

    def totals_balance(self) -> bool:
        return self.seller_payout_total + self.platform_fee_total + self.processing_fee_total == self.total_price


class SettlementLine(models.Model):
    """One purchased image, with the price and fees locked at checkout."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    settlement = models.ForeignKey(Settlement, on_delete=models.CASCADE, related_name="lines")
    position = models.PositiveIntegerField()
    image = models.ForeignKey("gallery.Image", on_delete=models.PROTECT, related_name="settlement_lines")
    seller = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="sold_lines")

    price = models.PositiveIntegerField()
    processing_fee = models.PositiveIntegerField()
    platform_fee = models.PositiveIntegerField()
    net_amount = models.PositiveIntegerField()

    stripe_price_id = models.CharField(max_length=255)

    class Meta:
        db_table = "settlement_lines"
        ordering = ["settlement", "position"]
        constraints = [
            models.UniqueConstraint(fields=["settlement", "position"], name="settlement_line_position_unique"),
            models.UniqueConstraint(fields=["settlement", "image"], name="settlement_line_image_unique"),
        ]

    def __str__(self):
        return f"Line {self.position} of {self.settlement_id}"


class SettlementPayout(models.Model):
    """Net payout owed to one seller of a settlement, and its transfer state."""

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        PROCESSING = "processing", "Processing"
        SUCCEEDED = "succeeded", "Succeeded"
        FAILED = "failed", "Failed"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    settlement = models.ForeignKey(Settlement, on_delete=models.CASCADE, related_name="payouts")
    seller = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="settlement_payouts")

    amount = models.PositiveIntegerField(help_text="Net amount owed in the smallest currency unit")
    item_count = models.PositiveIntegerField(default=1)

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    destination_account = models.CharField(max_length=255, blank=True, null=True)
    transfer_id = models.CharField(
        max_length=255,
        blank=True,
        null=True,
        help_text="Stripe transfer ID once the payout succeeded",
    )
    attempt_count = models.PositiveIntegerField(
        default=0, help_text="Transfer attempts that got a definitive answer from the provider"
    )
    last_error = models.TextField(blank=True)
    last_attempt_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "settlement_payouts"
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["seller", "status"], name="settlement_payout_seller_idx"),
        ]
        constraints = [
            models.UniqueConstraint(fields=["settlement", "seller"], name="settlement_payout_seller_unique"),
        ]

    def __str__(self):
        return f"Payout {self.amount} to {self.seller_id} ({self.status})"

    def idempotency_key(self, transfer_group: str) -> str:
        """
        Provider idempotency key for the next transfer attempt.

        Stays the same after a timeout, where the first request may still have
        gone through, and changes after a definitive rejection, which the
        provider would otherwise replay.
        """
        key = f"{transfer_group}:{self.seller_id}"
        return f"{key}:{self.attempt_count}" if self.attempt_count else key
