# Generated manually for the e-invoicing engine models

import uuid

import django.db.models.deletion
from django.db import migrations, models

DOCUMENT_KIND_CHOICES = [
    ("POS", "Pos"),
    ("INVOICE", "Invoice"),
    ("POS_CREDIT_NOTE", "Pos Credit Note"),
    ("POS_DEBIT_NOTE", "Pos Debit Note"),
    ("SUPPORT_DOC", "Support Doc"),
    ("SUPPORT_ADJUSTMENT", "Support Adjustment"),
]

SOURCE_TYPE_CHOICES = [
    ("sale", "Sale"),
    ("refund", "Refund"),
    ("purchase", "Purchase"),
    ("adjustment", "Adjustment"),
]

DOCUMENT_STATUS_CHOICES = [
    ("PENDING", "Pending"),
    ("SENT", "Sent"),
    ("ACCEPTED", "Accepted"),
    ("REJECTED", "Rejected"),
    ("RETRY", "Retry"),
    ("FAILED", "Failed"),
]

FILE_KIND_CHOICES = [
    ("pdf", "Pdf"),
    ("attached_zip", "Attached Zip"),
    ("qr", "Qr"),
    ("xml", "Xml"),
]


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("pos", "0001_initial"),
        ("billing", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="ProviderConfig",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "base_url",
                    models.URLField(blank=True, help_text="Provider base URL; empty uses the platform default"),
                ),
                ("email", models.EmailField(blank=True, max_length=254)),
                ("password_encrypted", models.TextField(blank=True)),
                ("access_token_encrypted", models.TextField(blank=True)),
                ("token_expires_at", models.DateTimeField(blank=True, null=True)),
                ("default_resolution_number", models.CharField(blank=True, max_length=50)),
                ("default_prefix", models.CharField(blank=True, max_length=10)),
                (
                    "starting_number",
                    models.PositiveIntegerField(
                        blank=True,
                        help_text="First number to issue; empty asks the provider for the last issued number",
                        null=True,
                    ),
                ),
                (
                    "ending_number",
                    models.PositiveIntegerField(
                        blank=True, help_text="Last number authorized by the resolution (inclusive)", null=True
                    ),
                ),
                ("credit_note_resolution_number", models.CharField(blank=True, max_length=50)),
                ("credit_note_prefix", models.CharField(blank=True, max_length=10)),
                ("pos_terminal_number", models.CharField(blank=True, max_length=50)),
                ("pos_sales_code", models.CharField(blank=True, max_length=50)),
                ("pos_cashier_type", models.CharField(blank=True, max_length=50)),
                ("pos_address", models.CharField(blank=True, max_length=300)),
                ("software_id", models.CharField(blank=True, max_length=100)),
                ("software_pin", models.CharField(blank=True, max_length=100)),
                ("manufacturer_name", models.CharField(default="Flowp", max_length=200)),
                ("manufacturer_nit", models.CharField(blank=True, max_length=30)),
                ("is_enabled", models.BooleanField(default=False)),
                ("auto_submit_sales", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "tenant",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="einvoicing_config",
                        to="pos.tenant",
                    ),
                ),
            ],
            options={
                "db_table": "einvoicing_provider_config",
                "verbose_name": "e-Invoicing Provider Config",
            },
        ),
        migrations.CreateModel(
            name="SequenceCounter",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("resolution_number", models.CharField(max_length=50)),
                ("prefix", models.CharField(blank=True, max_length=10)),
                ("current_number", models.PositiveBigIntegerField(help_text="Last number issued")),
                (
                    "range_end",
                    models.PositiveBigIntegerField(
                        blank=True, help_text="Upper bound authorized by the resolution (inclusive)", null=True
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "tenant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="document_sequences",
                        to="pos.tenant",
                    ),
                ),
            ],
            options={
                "db_table": "einvoicing_sequence_counter",
                "constraints": [
                    models.UniqueConstraint(
                        fields=("tenant", "resolution_number", "prefix"),
                        name="einvoicing_unique_sequence_key",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="DocumentQueueEntry",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("kind", models.CharField(choices=DOCUMENT_KIND_CHOICES, max_length=30)),
                ("source_type", models.CharField(choices=SOURCE_TYPE_CHOICES, max_length=20)),
                ("source_id", models.CharField(help_text="ID of the sale/refund/purchase record", max_length=64)),
                ("order_number", models.CharField(blank=True, max_length=40)),
                ("resolution_number", models.CharField(max_length=50)),
                ("prefix", models.CharField(blank=True, max_length=10)),
                ("document_number", models.PositiveBigIntegerField(editable=False)),
                (
                    "status",
                    models.CharField(
                        choices=DOCUMENT_STATUS_CHOICES, db_index=True, default="PENDING", max_length=20
                    ),
                ),
                ("retry_count", models.PositiveIntegerField(default=0)),
                ("max_retries", models.PositiveIntegerField(default=3)),
                (
                    "request_json",
                    models.JSONField(blank=True, help_text="Payload sent to the provider", null=True),
                ),
                ("response_json", models.JSONField(blank=True, help_text="Last provider reply", null=True)),
                ("last_error", models.TextField(blank=True)),
                ("track_id", models.CharField(blank=True, db_index=True, max_length=100)),
                ("cufe", models.CharField(blank=True, help_text="Legal identifier (CUFE/CUDE)", max_length=200)),
                ("qr_code", models.TextField(blank=True)),
                ("submitted_at", models.DateTimeField(blank=True, null=True)),
                ("accepted_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "tenant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="electronic_documents",
                        to="pos.tenant",
                    ),
                ),
            ],
            options={
                "db_table": "einvoicing_document_queue",
                "verbose_name": "Electronic Document",
                "verbose_name_plural": "Electronic Documents",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        condition=models.Q(("status__in", ["PENDING", "RETRY"])),
                        fields=["status", "created_at"],
                        name="einv_queue_drain_idx",
                    ),
                    models.Index(fields=["tenant", "source_type", "source_id"], name="einv_queue_source_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("tenant", "resolution_number", "prefix", "document_number"),
                        name="einvoicing_unique_document_number",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="DocumentFile",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("kind", models.CharField(choices=FILE_KIND_CHOICES, max_length=20)),
                ("mime_type", models.CharField(default="application/octet-stream", max_length=100)),
                ("base64_data", models.TextField(blank=True)),
                ("url", models.URLField(blank=True, max_length=500)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "document",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="files",
                        to="einvoicing.documentqueueentry",
                    ),
                ),
            ],
            options={
                "db_table": "einvoicing_document_file",
                "constraints": [
                    models.UniqueConstraint(fields=("document", "kind"), name="einvoicing_unique_document_file"),
                ],
            },
        ),
        migrations.CreateModel(
            name="UsagePeriod",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("period_start", models.DateTimeField(help_text="First instant of the month")),
                ("period_end", models.DateTimeField(help_text="Last second of the month")),
                ("used_pos", models.PositiveIntegerField(default=0)),
                ("used_invoice", models.PositiveIntegerField(default=0)),
                ("used_notes", models.PositiveIntegerField(default=0)),
                ("used_support_docs", models.PositiveIntegerField(default=0)),
                ("used_total", models.PositiveIntegerField(default=0)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "subscription",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="usage_periods",
                        to="billing.subscription",
                    ),
                ),
                (
                    "tenant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="document_usage",
                        to="pos.tenant",
                    ),
                ),
            ],
            options={
                "db_table": "einvoicing_usage_period",
                "constraints": [
                    models.UniqueConstraint(fields=("tenant", "period_start"), name="einvoicing_unique_usage_period"),
                ],
            },
        ),
    ]
