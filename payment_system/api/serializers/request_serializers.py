from rest_framework import serializers


class CheckoutRequestSerializer(serializers.Serializer):
    images = serializers.ListField(
        child=serializers.UUIDField(), allow_empty=False, help_text="Ids of the images to buy, in display order"
    )
    discountCode = serializers.CharField(
        required=False, allow_blank=True, max_length=100, help_text="Optional discount or promotion code"
    )
    currentUrl = serializers.URLField(max_length=1024, help_text="Page the buyer returns to after paying")


class DiscountVerifyRequestSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=100, help_text="Discount or promotion code to verify")


class SettlementListQuerySerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=["buyer", "seller"], default="buyer")
    awaiting_transfers = serializers.BooleanField(required=False, default=False)
