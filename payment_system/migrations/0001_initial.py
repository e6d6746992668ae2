import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("gallery", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Settlement",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending payment"),
                            ("paid_pending_transfer", "Paid, transfers pending"),
                            ("settled", "Settled"),
                            ("paid_partial_transfer_failure", "Paid, some transfers failed"),
                        ],
                        default="pending",
                        max_length=40,
                    ),
                ),
                ("currency", models.CharField(default="usd", max_length=3)),
                ("total_price", models.PositiveIntegerField()),
                ("platform_fee_total", models.PositiveIntegerField()),
                ("processing_fee_total", models.PositiveIntegerField()),
                (
                    "transfer_group",
                    models.CharField(
                        help_text="Correlation token grouping the payment and its seller transfers",
                        max_length=128,
                        unique=True,
                    ),
                ),
                (
                    "stripe_checkout_session_id",
                    models.CharField(blank=True, max_length=255, null=True, unique=True),
                ),
                ("discount_code", models.CharField(blank=True, max_length=100, null=True)),
                ("payment_completed", models.BooleanField(default=False)),
                ("transfer_completed", models.BooleanField(default=False)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("settled_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "buyer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="purchases",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "settlements",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["buyer", "created_at"], name="settlement_buyer_idx"),
                    models.Index(fields=["payment_completed", "transfer_completed"], name="settlement_completion_idx"),
                    models.Index(fields=["status"], name="settlement_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        check=models.Q(("transfer_completed", False), ("payment_completed", True), _connector="OR"),
                        name="settlement_transfer_after_payment",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="SettlementLine",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("position", models.PositiveIntegerField()),
                ("price", models.PositiveIntegerField()),
                ("processing_fee", models.PositiveIntegerField()),
                ("platform_fee", models.PositiveIntegerField()),
                ("net_amount", models.PositiveIntegerField()),
                ("stripe_price_id", models.CharField(max_length=255)),
                (
                    "image",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="settlement_lines",
                        to="gallery.image",
                    ),
                ),
                (
                    "seller",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="sold_lines",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "settlement",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="lines",
                        to="payment_system.settlement",
                    ),
                ),
            ],
            options={
                "db_table": "settlement_lines",
                "ordering": ["settlement", "position"],
                "constraints": [
                    models.UniqueConstraint(fields=("settlement", "position"), name="settlement_line_position_unique"),
                    models.UniqueConstraint(fields=("settlement", "image"), name="settlement_line_image_unique"),
                ],
            },
        ),
        migrations.CreateModel(
            name="SettlementPayout",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("amount", models.PositiveIntegerField(help_text="Net amount owed in the smallest currency unit")),
                ("item_count", models.PositiveIntegerField(default=1)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("succeeded", "Succeeded"),
                            ("failed", "Failed"),
                        ],
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("destination_account", models.CharField(blank=True, max_length=255, null=True)),
                (
                    "transfer_id",
                    models.CharField(
                        blank=True,
                        help_text="Stripe transfer ID once the payout succeeded",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "attempt_count",
                    models.PositiveIntegerField(
                        default=0, help_text="Transfer attempts that got a definitive answer from the provider"
                    ),
                ),
                ("last_error", models.TextField(blank=True)),
                ("last_attempt_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "seller",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="settlement_payouts",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "settlement",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="payouts",
                        to="payment_system.settlement",
                    ),
                ),
            ],
            options={
                "db_table": "settlement_payouts",
                "ordering": ["created_at"],
                "indexes": [
                    models.Index(fields=["seller", "status"], name="settlement_payout_seller_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("settlement", "seller"), name="settlement_payout_seller_unique"),
                ],
            },
        ),
    ]
