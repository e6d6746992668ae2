from django.contrib import admin

from gallery.models import Image


@admin.register(Image)
class ImageAdmin(admin.ModelAdmin):
    list_display = ["id", "user", "price", "is_public", "is_deleted", "is_purchased_copy", "created_at"]
    list_filter = ["is_public", "is_deleted", "created_at"]
    search_fields = ["id", "description", "user__email"]
    readonly_fields = ["id", "stripe_product_id", "stripe_price_id", "original_user", "source_image", "created_at"]
    raw_id_fields = ["user"]

    @admin.display(boolean=True)
    def is_purchased_copy(self, obj):
        return obj.is_purchased_copy
