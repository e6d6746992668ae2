from django.contrib import admin
from django.contrib.auth.admin import UserAdmin

from .models import CustomUser


@admin.register(CustomUser)
class CustomUserAdmin(UserAdmin):
    list_display = ["email", "username", "is_active", "stripe_account_completed", "date_joined"]
    search_fields = ["email", "username"]
    ordering = ["-date_joined"]
    fieldsets = UserAdmin.fieldsets + (
        ("Payments", {"fields": ("stripe_customer_id", "stripe_account_id", "stripe_account_completed")}),
    )
