# Generated manually for the POS collaborator models

import uuid
from decimal import Decimal

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies: list[tuple[str, str]] = []

    operations = [
        migrations.CreateModel(
            name="Tenant",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=200)),
                (
                    "tax_rate",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0.00"),
                        help_text="Default VAT percentage applied to sales (e.g. 19.00)",
                        max_digits=5,
                    ),
                ),
                ("address", models.CharField(blank=True, max_length=300)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={"db_table": "pos_tenant"},
        ),
        migrations.CreateModel(
            name="Customer",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=200)),
                ("id_type", models.CharField(blank=True, help_text="cc, nit, passport, ce, ti, cf", max_length=30)),
                ("id_number", models.CharField(blank=True, max_length=30)),
                ("phone", models.CharField(blank=True, max_length=30)),
                ("email", models.EmailField(blank=True, max_length=254)),
                ("address", models.CharField(blank=True, max_length=300)),
                ("country_code", models.PositiveIntegerField(blank=True, help_text="ISO 3166-1 numeric", null=True)),
                ("municipality_id", models.PositiveIntegerField(blank=True, null=True)),
                (
                    "organization_type_id",
                    models.PositiveSmallIntegerField(
                        blank=True, help_text="1 = legal entity, 2 = natural person", null=True
                    ),
                ),
                ("tax_regime_id", models.PositiveSmallIntegerField(blank=True, null=True)),
                ("tax_liability_id", models.PositiveSmallIntegerField(blank=True, null=True)),
                (
                    "tenant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="customers", to="pos.tenant"
                    ),
                ),
            ],
            options={"db_table": "pos_customer"},
        ),
        migrations.CreateModel(
            name="Product",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=300)),
                ("sku", models.CharField(blank=True, max_length=60)),
                ("barcode", models.CharField(blank=True, max_length=60)),
                (
                    "tenant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="products", to="pos.tenant"
                    ),
                ),
            ],
            options={"db_table": "pos_product"},
        ),
        migrations.CreateModel(
            name="Order",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("order_number", models.CharField(blank=True, max_length=40)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "customer",
                    models.ForeignKey(
                        blank=True,
                        help_text="Empty for walk-in sales (final consumer)",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="orders",
                        to="pos.customer",
                    ),
                ),
                (
                    "tenant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="orders", to="pos.tenant"
                    ),
                ),
            ],
            options={"db_table": "pos_order", "ordering": ["-created_at"]},
        ),
        migrations.CreateModel(
            name="OrderItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("quantity", models.DecimalField(decimal_places=3, max_digits=12)),
                ("unit_price", models.DecimalField(decimal_places=2, max_digits=14)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="items", to="pos.order"
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to="pos.product"
                    ),
                ),
            ],
            options={"db_table": "pos_order_item", "ordering": ["id"]},
        ),
        migrations.CreateModel(
            name="Payment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("method", models.CharField(default="cash", max_length=30)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=14)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="payments", to="pos.order"
                    ),
                ),
            ],
            options={"db_table": "pos_payment", "ordering": ["id"]},
        ),
        migrations.CreateModel(
            name="OrderAdjustment",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "adjustment_type",
                    models.CharField(
                        choices=[("refund", "Refund"), ("surcharge", "Surcharge")], default="refund", max_length=20
                    ),
                ),
                ("total", models.DecimalField(decimal_places=2, help_text="Gross amount including tax", max_digits=14)),
                ("reason_notes", models.CharField(blank=True, max_length=300)),
                (
                    "correction_concept",
                    models.CharField(
                        default="devolucion",
                        help_text="devolucion, anulacion, descuento, ajuste_precio, otros",
                        max_length=30,
                    ),
                ),
                ("original_cufe", models.CharField(blank=True, max_length=200)),
                ("original_number", models.CharField(blank=True, max_length=40)),
                ("original_date", models.DateField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="adjustments", to="pos.order"
                    ),
                ),
                (
                    "tenant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="order_adjustments",
                        to="pos.tenant",
                    ),
                ),
            ],
            options={"db_table": "pos_order_adjustment"},
        ),
    ]
