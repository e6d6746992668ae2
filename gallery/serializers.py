from rest_framework import serializers

from gallery.models import Image


class ImageOwnerSerializer(serializers.Serializer):
    id = serializers.UUIDField(read_only=True)
    display_name = serializers.CharField(read_only=True)


class ImageSerializer(serializers.ModelSerializer):
    owner = ImageOwnerSerializer(source="user", read_only=True)
    for_sale = serializers.SerializerMethodField()

    class Meta:
        model = Image
        fields = [
            "id",
            "url",
            "description",
            "tags",
            "price",
            "is_public",
            "owner",
            "for_sale",
            "source_image",
            "created_at",
        ]
        read_only_fields = fields

    def get_for_sale(self, obj):
        return obj.is_chargeable


class ImageListQuerySerializer(serializers.Serializer):
    offset = serializers.IntegerField(required=False, min_value=0, default=0)
    limit = serializers.IntegerField(required=False, min_value=1, max_value=100, default=10)
    tags = serializers.CharField(required=False, help_text="Comma separated tag list")
    price_min = serializers.IntegerField(required=False, min_value=0)
    price_max = serializers.IntegerField(required=False, min_value=0)
    q = serializers.CharField(required=False, max_length=100)
    user = serializers.UUIDField(required=False)

    def validate_tags(self, value):
        return [tag.strip() for tag in value.split(",") if tag.strip()]

    def validate(self, attrs):
        price_min, price_max = attrs.get("price_min"), attrs.get("price_max")
        if price_min is not None and price_max is not None and price_min > price_max:
            raise serializers.ValidationError("price_min cannot be greater than price_max")
        return attrs


class ImageCreateSerializer(serializers.Serializer):
    urls = serializers.ListField(child=serializers.URLField(max_length=1024), min_length=1, max_length=20)
    tags = serializers.ListField(child=serializers.CharField(max_length=50), min_length=2)
    description = serializers.CharField(required=False, allow_blank=True, max_length=500, default="")
    price = serializers.IntegerField(required=False, min_value=0, default=0)
    is_public = serializers.BooleanField(required=False, default=True)


class ImagePriceSerializer(serializers.Serializer):
    id = serializers.UUIDField()
    price = serializers.IntegerField(min_value=0)


class ImagePriceUpdateSerializer(serializers.Serializer):
    prices = ImagePriceSerializer(many=True, allow_empty=False)


class ImageVisibilitySerializer(serializers.Serializer):
    ids = serializers.ListField(child=serializers.UUIDField(), allow_empty=False)
    is_public = serializers.BooleanField()


class ImageDeleteSerializer(serializers.Serializer):
    ids = serializers.ListField(child=serializers.UUIDField(), required=False, default=list)
    all = serializers.BooleanField(required=False, default=False)

    def validate(self, attrs):
        if not attrs["all"] and not attrs["ids"]:
            raise serializers.ValidationError("Provide image ids or set all")
        return attrs
