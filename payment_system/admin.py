from django.contrib import admin
from django.urls import reverse
from django.utils.html import format_html

from .models import Settlement, SettlementLine, SettlementPayout


def _money(amount, currency):
    return f"{amount / 100:.2f} {currency.upper()}"


class SettlementLineInline(admin.TabularInline):
    model = SettlementLine
    extra = 0
    can_delete = False
    fields = ["position", "image", "seller", "price", "processing_fee", "platform_fee", "net_amount"]
    readonly_fields = fields


class SettlementPayoutInline(admin.TabularInline):
    model = SettlementPayout
    extra = 0
    can_delete = False
    fields = ["seller", "amount", "status", "destination_account", "transfer_id", "attempt_count", "last_error"]
    readonly_fields = fields


@admin.register(Settlement)
class SettlementAdmin(admin.ModelAdmin):
    """Read-only view of settlements; they form the audit trail and are never edited or deleted."""

    list_display = [
        "id_short",
        "transfer_group",
        "buyer_link",
        "status_badge",
        "total_display",
        "payment_completed",
        "transfer_completed",
        "created_at",
    ]
    list_filter = ["status", "payment_completed", "transfer_completed", "created_at"]
    search_fields = ["transfer_group", "stripe_checkout_session_id", "buyer__email"]
    readonly_fields = [
        "buyer",
        "status",
        "currency",
        "total_price",
        "platform_fee_total",
        "processing_fee_total",
        "transfer_group",
        "stripe_checkout_session_id",
        "discount_code",
        "payment_completed",
        "transfer_completed",
        "paid_at",
        "settled_at",
        "created_at",
        "updated_at",
    ]
    inlines = [SettlementLineInline, SettlementPayoutInline]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    def id_short(self, obj):
        return str(obj.id)[:8] + "..."

    id_short.short_description = "ID"

    def buyer_link(self, obj):
        url = reverse("admin:authentication_customuser_change", args=[obj.buyer_id])
        return format_html('<a href="{}">{}</a>', url, obj.buyer.email)

    buyer_link.short_description = "Buyer"

    def status_badge(self, obj):
        colors = {
            Settlement.Status.SETTLED: "green",
            Settlement.Status.PAID_PARTIAL_TRANSFER_FAILURE: "red",
            Settlement.Status.PAID_PENDING_TRANSFER: "blue",
            Settlement.Status.PENDING: "orange",
        }
        color = colors.get(obj.status, "black")
        return format_html('<span style="color: {}; font-weight: bold;">{}</span>', color, obj.get_status_display())

    status_badge.short_description = "Status"

    def total_display(self, obj):
        return _money(obj.total_price, obj.currency)

    total_display.short_description = "Total"


@admin.register(SettlementPayout)
class SettlementPayoutAdmin(admin.ModelAdmin):
    list_display = ["settlement", "seller", "amount", "status", "attempt_count", "last_attempt_at"]
    list_filter = ["status"]
    search_fields = ["settlement__transfer_group", "seller__email", "transfer_id"]
    readonly_fields = [field.name for field in SettlementPayout._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
