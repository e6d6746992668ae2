import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Image",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("url", models.URLField(max_length=1024)),
                ("description", models.TextField(blank=True)),
                ("tags", models.JSONField(blank=True, default=list)),
                (
                    "price",
                    models.PositiveIntegerField(default=0, help_text="Price in the smallest currency unit (cents)"),
                ),
                ("is_public", models.BooleanField(default=True)),
                ("is_deleted", models.BooleanField(db_index=True, default=False)),
                ("deleted_at", models.DateTimeField(blank=True, null=True)),
                ("stripe_product_id", models.CharField(blank=True, max_length=255, null=True)),
                ("stripe_price_id", models.CharField(blank=True, max_length=255, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "original_user",
                    models.ForeignKey(
                        blank=True,
                        help_text="Seller this copy was purchased from",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="sold_image_copies",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "source_image",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="purchased_copies",
                        to="gallery.image",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="images",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "images",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["user", "is_deleted"], name="images_user_deleted_idx"),
                    models.Index(fields=["is_public", "is_deleted"], name="images_public_deleted_idx"),
                ],
            },
        ),
    ]
