# Generated manually for document packages and subscriptions

import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("pos", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="DocumentPackage",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=100)),
                (
                    "included_documents",
                    models.PositiveIntegerField(default=0, help_text="Electronic documents included per billing cycle"),
                ),
                (
                    "billing_cycle",
                    models.CharField(
                        choices=[("monthly", "Monthly"), ("annual", "Annual")], default="monthly", max_length=20
                    ),
                ),
                ("price_usd_cents", models.PositiveIntegerField(default=0)),
                ("is_active", models.BooleanField(default=True)),
            ],
            options={"db_table": "billing_document_package"},
        ),
        migrations.CreateModel(
            name="Subscription",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("active", "Active"),
                            ("past_due", "Past Due"),
                            ("cancelled", "Cancelled"),
                            ("expired", "Expired"),
                        ],
                        db_index=True,
                        default="active",
                        max_length=20,
                    ),
                ),
                ("cycle_start", models.DateTimeField()),
                ("cycle_end", models.DateTimeField()),
                (
                    "overage_policy",
                    models.CharField(
                        choices=[
                            ("block", "Block"),
                            ("allow_and_charge", "Allow And Charge"),
                            ("allow_and_mark_overage", "Allow And Mark Overage"),
                        ],
                        default="block",
                        max_length=30,
                    ),
                ),
                (
                    "overage_price_per_doc_usd_cents",
                    models.PositiveIntegerField(
                        blank=True, help_text="Price charged per document beyond the allowance", null=True
                    ),
                ),
                (
                    "documents_included_snapshot",
                    models.PositiveIntegerField(
                        blank=True,
                        help_text="Allowance frozen at subscription time; overrides the package value",
                        null=True,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "package",
                    models.ForeignKey(
                        blank=True,
                        help_text="Package this subscription draws its allowance from",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="subscriptions",
                        to="billing.documentpackage",
                    ),
                ),
                (
                    "tenant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="document_subscriptions",
                        to="pos.tenant",
                    ),
                ),
            ],
            options={
                "db_table": "billing_subscription",
                "indexes": [
                    models.Index(fields=["tenant", "status", "cycle_start"], name="billing_sub_active_idx"),
                ],
            },
        ),
    ]
