from rest_framework import serializers

from payment_system.models import Settlement, SettlementLine, SettlementPayout


# ==============================================================================
# Payment Flow Responses
# ==============================================================================


class CheckoutSessionResponseSerializer(serializers.Serializer):
    """Response for creating a checkout session"""

    paymentLink = serializers.URLField(help_text="Hosted payment page for the buyer")
    url = serializers.URLField(help_text="Page the buyer returns to after paying")
    sessionId = serializers.CharField(help_text="Stripe checkout session ID", required=False)
    settlementId = serializers.UUIDField(required=False)


class DiscountResponseSerializer(serializers.Serializer):
    code = serializers.CharField()
    valid = serializers.BooleanField()
    percent_off = serializers.FloatField(allow_null=True)
    amount_off = serializers.IntegerField(allow_null=True)
    currency = serializers.CharField(allow_null=True)
    times_redeemed = serializers.IntegerField()
    max_redemptions = serializers.IntegerField(allow_null=True)
    expires_at = serializers.IntegerField(allow_null=True)


class ErrorResponseSerializer(serializers.Serializer):
    error = serializers.CharField()
    detail = serializers.CharField()


# ==============================================================================
# Settlements
# ==============================================================================


class SettlementLineSerializer(serializers.ModelSerializer):
    class Meta:
        model = SettlementLine
        fields = ["position", "image", "seller", "price", "processing_fee", "platform_fee", "net_amount"]
        read_only_fields = fields


class SettlementPayoutSerializer(serializers.ModelSerializer):
    class Meta:
        model = SettlementPayout
        fields = [
            "seller",
            "amount",
            "item_count",
            "status",
            "transfer_id",
            "attempt_count",
            "last_error",
            "last_attempt_at",
        ]
        read_only_fields = fields


class SettlementSerializer(serializers.ModelSerializer):
    item_ids = serializers.SerializerMethodField()
    failed_transfers = serializers.SerializerMethodField()

    class Meta:
        model = Settlement
        fields = [
            "id",
            "status",
            "buyer",
            "currency",
            "total_price",
            "platform_fee_total",
            "processing_fee_total",
            "transfer_group",
            "discount_code",
            "payment_completed",
            "transfer_completed",
            "item_ids",
            "failed_transfers",
            "paid_at",
            "settled_at",
            "created_at",
        ]
        read_only_fields = fields

    def get_item_ids(self, obj):
        return [str(line.image_id) for line in obj.lines.all()]

    def get_failed_transfers(self, obj):
        return [str(seller_id) for seller_id in obj.failed_transfers]


class SettlementDetailSerializer(SettlementSerializer):
    lines = SettlementLineSerializer(many=True, read_only=True)
    payouts = SettlementPayoutSerializer(many=True, read_only=True)

    class Meta(SettlementSerializer.Meta):
        fields = SettlementSerializer.Meta.fields + ["lines", "payouts"]
        read_only_fields = fields


class ReconciliationResponseSerializer(serializers.Serializer):
    settlement_id = serializers.UUIDField()
    attempted = serializers.ListField(child=serializers.CharField())
    succeeded = serializers.ListField(child=serializers.CharField())
    failed = serializers.ListField(child=serializers.CharField())
    settled = serializers.BooleanField()


# ==============================================================================
# Stripe Connect Responses
# ==============================================================================


class PayoutAccountLinkResponseSerializer(serializers.Serializer):
    account_id = serializers.CharField()
    url = serializers.URLField()
    expires_at = serializers.IntegerField(allow_null=True)


class PayoutAccountStatusResponseSerializer(serializers.Serializer):
    account_id = serializers.CharField()
    details_submitted = serializers.BooleanField()
    charges_enabled = serializers.BooleanField()
    payouts_enabled = serializers.BooleanField()
