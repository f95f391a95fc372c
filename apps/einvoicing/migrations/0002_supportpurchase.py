# Generated manually for manually entered support documents

import uuid

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):
    dependencies = [
        ("pos", "0001_initial"),
        ("einvoicing", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="SupportPurchase",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("supplier_name", models.CharField(max_length=200)),
                (
                    "supplier_id_type",
                    models.CharField(default="cc", help_text="cc, nit, passport, ce, ti", max_length=30),
                ),
                ("supplier_id_number", models.CharField(max_length=30)),
                ("supplier_phone", models.CharField(blank=True, max_length=30)),
                ("supplier_email", models.EmailField(blank=True, max_length=254)),
                ("supplier_address", models.CharField(blank=True, max_length=300)),
                ("supplier_city_id", models.PositiveIntegerField(blank=True, null=True)),
                ("notes", models.TextField(blank=True)),
                ("issued_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "tenant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="support_purchases",
                        to="pos.tenant",
                    ),
                ),
            ],
            options={
                "db_table": "einvoicing_support_purchase",
                "ordering": ["-issued_at"],
            },
        ),
        migrations.CreateModel(
            name="SupportPurchaseLine",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("description", models.CharField(blank=True, max_length=300)),
                ("code", models.CharField(blank=True, max_length=60)),
                ("quantity", models.DecimalField(decimal_places=3, default=1, max_digits=12)),
                ("unit_price", models.DecimalField(decimal_places=2, max_digits=14)),
                ("tax_percent", models.DecimalField(decimal_places=2, default=0, max_digits=5)),
                (
                    "purchase",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="lines",
                        to="einvoicing.supportpurchase",
                    ),
                ),
            ],
            options={
                "db_table": "einvoicing_support_purchase_line",
                "ordering": ["id"],
            },
        ),
    ]
