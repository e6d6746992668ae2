import uuid

from django.contrib.auth.models import AbstractUser
from django.db import models


class CustomUser(AbstractUser):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    email = models.EmailField(unique=True)
    first_name = models.CharField(max_length=30, blank=True)
    last_name = models.CharField(max_length=30, blank=True)
    is_email_verified = models.BooleanField(default=False)

    # Stripe customer handle used when this user buys images
    stripe_customer_id = models.CharField(max_length=255, blank=True, null=True, unique=True)

    # Stripe Connect fields (payout destination when this user sells images)
    stripe_account_id = models.CharField(max_length=255, blank=True, null=True, unique=True)
    stripe_account_completed = models.BooleanField(
        default=False, help_text="True once the connected account finished onboarding"
    )

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = ["username"]

    class Meta:
        db_table = "users"

    def __str__(self):
        return self.email

    @property
    def display_name(self) -> str:
        full_name = self.get_full_name()
        return full_name or self.username

    @property
    def can_receive_payouts(self) -> bool:
        return bool(self.stripe_account_id)
