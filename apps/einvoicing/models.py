"""
Electronic document models for DIAN compliance via the MATIAS provider.

This module tracks the complete lifecycle of an electronic document:
- Legal numbering per (tenant, resolution, prefix)
- Queue entry from enqueue to a terminal provider outcome
- Provider artifacts (CUFE, QR, PDF)
- Monthly usage counters for quota enforcement
"""

from __future__ import annotations

import base64
import uuid
from datetime import datetime
from enum import StrEnum
from typing import Any

from django.db import DatabaseError, models
from django.db.models import Q
from django.utils import timezone

from apps.common.encryption import decrypt_value, encrypt_value

from .exceptions import PersistenceError
from .metrics import metrics


# ===============================================================================
# ENUMERATIONS
# ===============================================================================


class DocumentKind(StrEnum):
    """Legal document kinds the provider accepts."""

    POS = "POS"
    INVOICE = "INVOICE"
    POS_CREDIT_NOTE = "POS_CREDIT_NOTE"
    POS_DEBIT_NOTE = "POS_DEBIT_NOTE"
    SUPPORT_DOC = "SUPPORT_DOC"
    SUPPORT_ADJUSTMENT = "SUPPORT_ADJUSTMENT"

    @classmethod
    def choices(cls) -> list[tuple[str, str]]:
        return [(kind.value, kind.name.replace("_", " ").title()) for kind in cls]

    @property
    def is_note(self) -> bool:
        return self in (DocumentKind.POS_CREDIT_NOTE, DocumentKind.POS_DEBIT_NOTE)

    @property
    def has_builder(self) -> bool:
        """Whether a payload can be built for this kind (support adjustments have no source records)."""
        return self != DocumentKind.SUPPORT_ADJUSTMENT


class SourceType(StrEnum):
    """Business record a document originates from."""

    SALE = "sale"
    REFUND = "refund"
    PURCHASE = "purchase"
    ADJUSTMENT = "adjustment"

    @classmethod
    def choices(cls) -> list[tuple[str, str]]:
        return [(source.value, source.name.title()) for source in cls]


class DocumentStatus(StrEnum):
    """Queue entry status enumeration."""

    PENDING = "PENDING"  # Enqueued, number allocated, not yet sent
    SENT = "SENT"  # Payload persisted, provider call in flight
    ACCEPTED = "ACCEPTED"  # Provider/DIAN accepted (legal document exists)
    REJECTED = "REJECTED"  # Provider kept rejecting after all retries
    RETRY = "RETRY"  # Failed attempt, will be picked up again
    FAILED = "FAILED"  # Configuration/build error or transient errors exhausted

    @classmethod
    def choices(cls) -> list[tuple[str, str]]:
        return [(status.value, status.name.title()) for status in cls]

    @classmethod
    def terminal_statuses(cls) -> set[str]:
        """Statuses that don't require further processing."""
        return {cls.ACCEPTED.value, cls.REJECTED.value, cls.FAILED.value}

    @classmethod
    def manually_retryable_statuses(cls) -> set[str]:
        """Statuses an operator may reset to PENDING."""
        return {cls.FAILED.value, cls.REJECTED.value, cls.RETRY.value}


class FileKind(StrEnum):
    PDF = "pdf"
    ATTACHED_ZIP = "attached_zip"
    QR = "qr"
    XML = "xml"

    @classmethod
    def choices(cls) -> list[tuple[str, str]]:
        return [(kind.value, kind.name.replace("_", " ").title()) for kind in cls]


# ===============================================================================
# TENANT PROVIDER CONFIGURATION
# ===============================================================================


class ProviderConfig(models.Model):
    """
    Per-tenant MATIAS account and DIAN numbering resolution.

    The account password and the cached access token are stored encrypted
    (AES-256-GCM); use the accessor methods instead of the raw fields.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.OneToOneField(
        "pos.Tenant",
        on_delete=models.CASCADE,
        related_name="einvoicing_config",
    )

    # Credentials
    base_url = models.URLField(blank=True, help_text="Provider base URL; empty uses the platform default")
    email = models.EmailField(blank=True)
    password_encrypted = models.TextField(blank=True)
    access_token_encrypted = models.TextField(blank=True)
    token_expires_at = models.DateTimeField(null=True, blank=True)

    # Numbering resolution for sales documents
    default_resolution_number = models.CharField(max_length=50, blank=True)
    default_prefix = models.CharField(max_length=10, blank=True)
    starting_number = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="First number to issue; empty asks the provider for the last issued number",
    )
    ending_number = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Last number authorized by the resolution (inclusive)",
    )

    # Numbering resolution for credit/debit notes
    credit_note_resolution_number = models.CharField(max_length=50, blank=True)
    credit_note_prefix = models.CharField(max_length=10, blank=True)

    # POS equivalent document data
    pos_terminal_number = models.CharField(max_length=50, blank=True)
    pos_sales_code = models.CharField(max_length=50, blank=True)
    pos_cashier_type = models.CharField(max_length=50, blank=True)
    pos_address = models.CharField(max_length=300, blank=True)

    # Software provider data
    software_id = models.CharField(max_length=100, blank=True)
    software_pin = models.CharField(max_length=100, blank=True)
    manufacturer_name = models.CharField(max_length=200, default="Flowp")
    manufacturer_nit = models.CharField(max_length=30, blank=True)

    is_enabled = models.BooleanField(default=False)
    auto_submit_sales = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "einvoicing_provider_config"
        verbose_name = "e-Invoicing Provider Config"

    def __str__(self) -> str:
        return f"ProviderConfig({self.tenant_id})"

    def set_password(self, raw_password: str) -> None:
        self.password_encrypted = encrypt_value(raw_password)

    def get_password(self) -> str:
        return decrypt_value(self.password_encrypted)

    @property
    def has_credentials(self) -> bool:
        return bool(self.email and self.password_encrypted)

    def cache_access_token(self, token: str, expires_at: datetime) -> None:
        """Persist the provider token encrypted, with its expiry."""
        self.access_token_encrypted = encrypt_value(token)
        self.token_expires_at = expires_at
        self.save(update_fields=["access_token_encrypted", "token_expires_at", "updated_at"])

    def get_cached_access_token(self) -> str | None:
        """Return the cached token if it has not expired."""
        if not self.access_token_encrypted or not self.token_expires_at:
            return None
        if self.token_expires_at <= timezone.now():
            return None
        return decrypt_value(self.access_token_encrypted)

    def clear_access_token(self) -> None:
        self.access_token_encrypted = ""
        self.token_expires_at = None
        self.save(update_fields=["access_token_encrypted", "token_expires_at", "updated_at"])

    def resolution_for(self, kind: DocumentKind) -> tuple[str, str]:
        """(resolution_number, prefix) to number a document of ``kind`` under."""
        if kind.is_note and self.credit_note_resolution_number:
            return self.credit_note_resolution_number, self.credit_note_prefix
        return self.default_resolution_number, self.default_prefix


# ===============================================================================
# LEGAL NUMBERING
# ===============================================================================


class SequenceCounter(models.Model):
    """
    Last legal number issued per (tenant, resolution, prefix).

    ``current_number`` only ever grows; a number handed out is never reused,
    even when its document later fails. Rows are locked with
    ``select_for_update()`` for every allocation (see ``sequence.py``).
    """

    tenant = models.ForeignKey("pos.Tenant", on_delete=models.CASCADE, related_name="document_sequences")
    resolution_number = models.CharField(max_length=50)
    prefix = models.CharField(max_length=10, blank=True)
    current_number = models.PositiveBigIntegerField(help_text="Last number issued")
    range_end = models.PositiveBigIntegerField(
        null=True,
        blank=True,
        help_text="Upper bound authorized by the resolution (inclusive)",
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "einvoicing_sequence_counter"
        constraints = [
            models.UniqueConstraint(
                fields=["tenant", "resolution_number", "prefix"],
                name="einvoicing_unique_sequence_key",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.prefix}{self.current_number} ({self.resolution_number})"


# ===============================================================================
# DOCUMENT QUEUE
# ===============================================================================


class DocumentQueueEntry(models.Model):
    """
    One legal document attempt and its lifecycle.

    PENDING -> SENT -> ACCEPTED | RETRY | REJECTED | FAILED
    RETRY is drained by the same worker loop as PENDING.

    Rows are never deleted; a manual retry resets status and attempts but
    keeps the allocated ``document_number``.
    """

    DEFAULT_MAX_RETRIES = 3

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey("pos.Tenant", on_delete=models.CASCADE, related_name="electronic_documents")

    kind = models.CharField(max_length=30, choices=DocumentKind.choices())
    source_type = models.CharField(max_length=20, choices=SourceType.choices())
    source_id = models.CharField(max_length=64, help_text="ID of the sale/refund/purchase record")
    order_number = models.CharField(max_length=40, blank=True)

    resolution_number = models.CharField(max_length=50)
    prefix = models.CharField(max_length=10, blank=True)
    document_number = models.PositiveBigIntegerField(editable=False)

    status = models.CharField(
        max_length=20,
        choices=DocumentStatus.choices(),
        default=DocumentStatus.PENDING.value,
        db_index=True,
    )
    retry_count = models.PositiveIntegerField(default=0)
    max_retries = models.PositiveIntegerField(default=DEFAULT_MAX_RETRIES)

    request_json = models.JSONField(null=True, blank=True, help_text="Payload sent to the provider")
    response_json = models.JSONField(null=True, blank=True, help_text="Last provider reply")
    last_error = models.TextField(blank=True)

    # Provider artifacts
    track_id = models.CharField(max_length=100, blank=True, db_index=True)
    cufe = models.CharField(max_length=200, blank=True, help_text="Legal identifier (CUFE/CUDE)")
    qr_code = models.TextField(blank=True)

    submitted_at = models.DateTimeField(null=True, blank=True)
    accepted_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "einvoicing_document_queue"
        verbose_name = "Electronic Document"
        verbose_name_plural = "Electronic Documents"
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["status", "created_at"],
                name="einv_queue_drain_idx",
                condition=Q(status__in=["PENDING", "RETRY"]),
            ),
            models.Index(fields=["tenant", "source_type", "source_id"], name="einv_queue_source_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["tenant", "resolution_number", "prefix", "document_number"],
                name="einvoicing_unique_document_number",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.kind} {self.full_number} [{self.status}]"

    @property
    def full_number(self) -> str:
        return f"{self.prefix}{self.document_number}"

    @property
    def document_kind(self) -> DocumentKind:
        return DocumentKind(self.kind)

    @property
    def is_terminal(self) -> bool:
        return self.status in DocumentStatus.terminal_statuses()

    # --- State Transitions ---

    def _transition(self, new_status: DocumentStatus, fields: list[str]) -> None:
        old_status = self.status
        self.status = new_status.value
        try:
            self.save(update_fields=[*fields, "status", "updated_at"])
        except DatabaseError as e:
            raise PersistenceError(f"Could not move document {self.id} to {new_status}: {e}") from e
        metrics.record_transition(old_status, new_status.value)

    def mark_sent(self, request_json: dict[str, Any]) -> bool:
        """
        Persist the payload and mark the provider call as in flight.

        The update only applies while the row still has the status this
        instance was loaded with. Returns False when another worker moved
        it first.
        """
        previous = self.status
        now = timezone.now()
        try:
            updated = DocumentQueueEntry.objects.filter(pk=self.pk, status=previous).update(
                status=DocumentStatus.SENT.value,
                request_json=request_json,
                submitted_at=now,
                updated_at=now,
            )
        except DatabaseError as e:
            raise PersistenceError(f"Could not move document {self.id} to SENT: {e}") from e
        if not updated:
            return False

        self.status = DocumentStatus.SENT.value
        self.request_json = request_json
        self.submitted_at = now
        self.updated_at = now
        metrics.record_transition(previous, DocumentStatus.SENT.value)
        return True

    def mark_accepted(self, track_id: str, cufe: str, qr_code: str, response: dict[str, Any] | None) -> None:
        self.track_id = track_id or ""
        self.cufe = cufe or ""
        self.qr_code = qr_code or ""
        self.response_json = response
        self.accepted_at = timezone.now()
        self.last_error = ""
        self._transition(
            DocumentStatus.ACCEPTED,
            ["track_id", "cufe", "qr_code", "response_json", "accepted_at", "last_error"],
        )

    def mark_failed(self, error_message: str) -> None:
        """Terminal failure that retrying cannot fix (configuration, payload)."""
        self.last_error = error_message
        self._transition(DocumentStatus.FAILED, ["last_error"])

    def record_failed_attempt(
        self,
        error_message: str,
        response: dict[str, Any] | None = None,
        provider_rejected: bool = False,
    ) -> DocumentStatus:
        """
        Count a failed submission attempt.

        Moves to RETRY while attempts remain. Once exhausted the document is
        REJECTED when the provider answered with a rejection, FAILED when
        the attempts ended in transport errors.
        """
        self.retry_count += 1
        self.last_error = error_message
        if response is not None:
            self.response_json = response

        if self.retry_count < self.max_retries:
            new_status = DocumentStatus.RETRY
        elif provider_rejected:
            new_status = DocumentStatus.REJECTED
        else:
            new_status = DocumentStatus.FAILED

        self._transition(new_status, ["retry_count", "last_error", "response_json"])
        return new_status

    def reset_for_retry(self) -> None:
        """Operator retry: back to PENDING with a fresh attempt budget, same number."""
        self.retry_count = 0
        self.last_error = ""
        self._transition(DocumentStatus.PENDING, ["retry_count", "last_error"])

    # --- Query Methods ---

    @classmethod
    def drainable(cls, status: DocumentStatus) -> models.QuerySet[DocumentQueueEntry]:
        """Rows in ``status`` that still have attempts left, oldest first."""
        return cls.objects.filter(status=status.value, retry_count__lte=models.F("max_retries")).order_by(
            "created_at"
        )

    @classmethod
    def stale_in_flight(cls, older_than: datetime) -> models.QuerySet[DocumentQueueEntry]:
        """SENT rows whose provider call started before ``older_than`` (worker died mid-call)."""
        return cls.objects.filter(status=DocumentStatus.SENT.value, submitted_at__lt=older_than)


class DocumentFile(models.Model):
    """Artifact returned by the provider for an accepted document."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    document = models.ForeignKey(DocumentQueueEntry, on_delete=models.CASCADE, related_name="files")
    kind = models.CharField(max_length=20, choices=FileKind.choices())
    mime_type = models.CharField(max_length=100, default="application/octet-stream")
    base64_data = models.TextField(blank=True)
    url = models.URLField(max_length=500, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "einvoicing_document_file"
        constraints = [
            models.UniqueConstraint(fields=["document", "kind"], name="einvoicing_unique_document_file"),
        ]

    @property
    def has_data(self) -> bool:
        return bool(self.base64_data)

    def get_bytes(self) -> bytes | None:
        if not self.base64_data:
            return None
        return base64.b64decode(self.base64_data)


# ===============================================================================
# SUPPORT DOCUMENT SOURCES
# ===============================================================================


class SupportPurchase(models.Model):
    """
    Purchase from a supplier who cannot invoice electronically.

    Entered manually from the e-billing screen; the tenant issues the
    support document (documento soporte) on the supplier's behalf.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey("pos.Tenant", on_delete=models.CASCADE, related_name="support_purchases")

    supplier_name = models.CharField(max_length=200)
    supplier_id_type = models.CharField(max_length=30, default="cc", help_text="cc, nit, passport, ce, ti")
    supplier_id_number = models.CharField(max_length=30)
    supplier_phone = models.CharField(max_length=30, blank=True)
    supplier_email = models.EmailField(blank=True)
    supplier_address = models.CharField(max_length=300, blank=True)
    supplier_city_id = models.PositiveIntegerField(null=True, blank=True)

    notes = models.TextField(blank=True)
    issued_at = models.DateTimeField(default=timezone.now)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "einvoicing_support_purchase"
        ordering = ["-issued_at"]

    def __str__(self) -> str:
        return f"{self.supplier_name} ({self.supplier_id_number})"


class SupportPurchaseLine(models.Model):
    purchase = models.ForeignKey(SupportPurchase, on_delete=models.CASCADE, related_name="lines")
    description = models.CharField(max_length=300, blank=True)
    code = models.CharField(max_length=60, blank=True)
    quantity = models.DecimalField(max_digits=12, decimal_places=3, default=1)
    unit_price = models.DecimalField(max_digits=14, decimal_places=2)
    tax_percent = models.DecimalField(max_digits=5, decimal_places=2, default=0)

    class Meta:
        db_table = "einvoicing_support_purchase_line"
        ordering = ["id"]


# ===============================================================================
# USAGE METERING
# ===============================================================================


class UsagePeriod(models.Model):
    """Per-tenant document counters for one calendar month."""

    tenant = models.ForeignKey("pos.Tenant", on_delete=models.CASCADE, related_name="document_usage")
    subscription = models.ForeignKey(
        "billing.Subscription",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="usage_periods",
    )
    period_start = models.DateTimeField(help_text="First instant of the month")
    period_end = models.DateTimeField(help_text="Last second of the month")

    used_pos = models.PositiveIntegerField(default=0)
    used_invoice = models.PositiveIntegerField(default=0)
    used_notes = models.PositiveIntegerField(default=0)
    used_support_docs = models.PositiveIntegerField(default=0)
    used_total = models.PositiveIntegerField(default=0)

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "einvoicing_usage_period"
        constraints = [
            models.UniqueConstraint(fields=["tenant", "period_start"], name="einvoicing_unique_usage_period"),
        ]

    @property
    def used_documents(self) -> int:
        """Sum of the per-kind counters."""
        return self.used_pos + self.used_invoice + self.used_notes + self.used_support_docs
