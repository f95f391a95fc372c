"""
Document queue entry points.

``enqueue`` is the only way a queue row is created. Compliance failures
never block the business flow that calls it: configuration, quota and
numbering problems are logged and reported as ``None``.

Usage:
    from apps.einvoicing.queue import enqueue

    result = enqueue(order.tenant_id, DocumentKind.POS, SourceType.SALE, order.id, order.order_number)
    if result:
        queue_document_processing(result.id)
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from django.db import DatabaseError, transaction
from django.db.models import QuerySet
from django.utils import timezone

from .exceptions import ConfigurationError, EInvoicingError, PersistenceError, QuotaExceededError, RangeExceeded
from .metrics import metrics
from .models import (
    DocumentFile,
    DocumentKind,
    DocumentQueueEntry,
    DocumentStatus,
    FileKind,
    ProviderConfig,
    SourceType,
    SupportPurchase,
    SupportPurchaseLine,
)
from .quota import quota_enforcer
from .sequence import sequence_allocator
from .settings import einvoicing_settings
from .worker import submission_worker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnqueueResult:
    id: Any
    document_number: int


@dataclass(frozen=True)
class SubmissionResult:
    """Outcome of an enqueue followed by an immediate submission."""

    success: bool
    document_id: Any = None
    document_number: int | None = None
    cufe: str = ""
    qr_code: str = ""
    track_id: str = ""
    status: str = ""
    error: str = ""

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["document_id"] = str(self.document_id) if self.document_id else None
        return data


def enqueue(
    tenant_id: Any,
    kind: DocumentKind | str,
    source_type: SourceType | str,
    source_id: Any,
    order_number: str | None = None,
) -> EnqueueResult | None:
    """
    Reserve a legal number and create a PENDING document.

    Returns:
        EnqueueResult, or None when the kind cannot be submitted, the tenant
        is not configured, the quota denies the document or no number could
        be allocated
    """
    kind = DocumentKind(kind)
    source_type = SourceType(source_type)

    # Checked before quota and numbering so no legal number is burned
    if not kind.has_builder:
        logger.warning(f"⚠️ [e-Invoicing Queue] Not enqueuing {kind} {source_id}: kind cannot be submitted")
        metrics.record_enqueue_rejected("unsupported_kind")
        return None

    try:
        resolution_number, prefix = _resolve_numbering(tenant_id, kind)
        _check_quota(tenant_id)
        document_number = sequence_allocator.next_number(tenant_id, resolution_number, prefix)
    except ConfigurationError as e:
        logger.info(f"[e-Invoicing Queue] Not enqueuing {kind} {source_id} for tenant {tenant_id}: {e}")
        metrics.record_enqueue_rejected("not_configured")
        return None
    except QuotaExceededError as e:
        logger.info(f"[e-Invoicing Queue] Not enqueuing {kind} {source_id}: {e}")
        metrics.record_enqueue_rejected(e.reason)
        return None
    except RangeExceeded as e:
        logger.error(f"🔥 [e-Invoicing Queue] Cannot number {kind} {source_id}: {e}")
        metrics.record_enqueue_rejected("range_exceeded")
        return None
    except EInvoicingError as e:
        logger.error(f"🔥 [e-Invoicing Queue] Enqueue failed for {kind} {source_id}: {e}")
        metrics.record_enqueue_rejected("error")
        return None

    try:
        entry = DocumentQueueEntry.objects.create(
            tenant_id=tenant_id,
            kind=kind.value,
            source_type=source_type.value,
            source_id=str(source_id),
            order_number=order_number or "",
            resolution_number=resolution_number,
            prefix=prefix,
            document_number=document_number,
            status=DocumentStatus.PENDING.value,
            max_retries=einvoicing_settings.max_retries,
        )
    except DatabaseError as e:
        # The number is already committed and stays burned
        logger.error(f"🔥 [e-Invoicing Queue] Could not store {kind} {prefix}{document_number}: {e}")
        raise PersistenceError(f"Could not store document {prefix}{document_number}: {e}") from e

    metrics.record_enqueued(kind.value)
    logger.info(
        f"[e-Invoicing Queue] Enqueued {kind} {entry.full_number} for {source_type} {source_id} (tenant {tenant_id})"
    )
    return EnqueueResult(id=entry.id, document_number=document_number)


def _resolve_numbering(tenant_id: Any, kind: DocumentKind) -> tuple[str, str]:
    config = ProviderConfig.objects.filter(tenant_id=tenant_id).first()
    if config is None:
        raise ConfigurationError("e-invoicing is not configured")
    if not config.is_enabled:
        raise ConfigurationError("e-invoicing is disabled")

    resolution_number, prefix = config.resolution_for(kind)
    if not resolution_number:
        raise ConfigurationError("no numbering resolution configured")
    return resolution_number, prefix


def _check_quota(tenant_id: Any) -> None:
    result = quota_enforcer.check_quota(tenant_id)
    if not result.allowed:
        raise QuotaExceededError(tenant_id, result.used, result.limit, reason=result.reason or "quota_exceeded")
    if result.is_overage:
        logger.info(f"[e-Invoicing Queue] Tenant {tenant_id} enqueuing over allowance ({result.used}/{result.limit})")


# ===============================================================================
# SYNCHRONOUS SUBMISSION
# ===============================================================================


def submit_document_sync(
    tenant_id: Any,
    kind: DocumentKind | str,
    source_type: SourceType | str,
    source_id: Any,
    order_number: str | None = None,
) -> SubmissionResult:
    """
    Enqueue a document and submit it in the same request.

    Used where the caller must print the CUFE and QR right away (the POS
    receipt). A document the provider does not accept yet stays queued
    for the worker.
    """
    queued = enqueue(tenant_id, kind, source_type, source_id, order_number)
    if queued is None:
        return SubmissionResult(success=False, error="Could not queue document. Check e-invoicing configuration.")

    accepted = submission_worker.process_document(queued.id)
    entry = DocumentQueueEntry.objects.get(pk=queued.id)
    return SubmissionResult(
        success=accepted,
        document_id=entry.id,
        document_number=entry.document_number,
        cufe=entry.cufe,
        qr_code=entry.qr_code,
        track_id=entry.track_id,
        status=entry.status,
        error="" if accepted else entry.last_error or "Document queued but submission pending",
    )


def create_support_document(
    tenant_id: Any,
    supplier: dict[str, Any],
    items: list[dict[str, Any]],
    notes: str = "",
    issued_at: datetime | None = None,
) -> SubmissionResult:
    """
    Record a purchase from a non-invoicing supplier and issue its support document.

    ``supplier`` keys: name, id_number, id_type, phone, email, address, city_id.
    ``items`` keys: description, code, quantity, unit_price, tax_percent.

    Raises:
        ConfigurationError: The tenant cannot issue documents (nothing is stored)
    """
    _resolve_numbering(tenant_id, DocumentKind.SUPPORT_DOC)

    with transaction.atomic():
        purchase = SupportPurchase.objects.create(
            tenant_id=tenant_id,
            supplier_name=supplier["name"],
            supplier_id_number=str(supplier["id_number"]),
            supplier_id_type=supplier.get("id_type") or "cc",
            supplier_phone=supplier.get("phone") or "",
            supplier_email=supplier.get("email") or "",
            supplier_address=supplier.get("address") or "",
            supplier_city_id=supplier.get("city_id") or None,
            notes=notes or "",
            issued_at=issued_at or timezone.now(),
        )
        SupportPurchaseLine.objects.bulk_create(
            [
                SupportPurchaseLine(
                    purchase=purchase,
                    description=item.get("description") or "",
                    code=item.get("code") or "",
                    quantity=Decimal(str(item.get("quantity") or 1)),
                    unit_price=Decimal(str(item.get("unit_price") or 0)),
                    tax_percent=Decimal(str(item.get("tax_percent") or 0)),
                )
                for item in items
            ]
        )

    logger.info(f"[e-Invoicing Queue] Support purchase {purchase.id} recorded for tenant {tenant_id}")
    return submit_document_sync(tenant_id, DocumentKind.SUPPORT_DOC, SourceType.PURCHASE, purchase.id)


# ===============================================================================
# MANUAL OPERATIONS AND READS
# ===============================================================================


DOCUMENT_LIST_LIMIT = 100


def _documents(tenant_id: Any = None) -> QuerySet[DocumentQueueEntry]:
    documents = DocumentQueueEntry.objects.all()
    if tenant_id is not None:
        documents = documents.filter(tenant_id=tenant_id)
    return documents


def list_documents(
    tenant_id: Any,
    status: DocumentStatus | str | None = None,
    kind: DocumentKind | str | None = None,
    limit: int = DOCUMENT_LIST_LIMIT,
) -> list[DocumentQueueEntry]:
    """A tenant's documents, newest first."""
    documents = DocumentQueueEntry.objects.filter(tenant_id=tenant_id)
    if status:
        documents = documents.filter(status=DocumentStatus(status).value)
    if kind:
        documents = documents.filter(kind=DocumentKind(kind).value)
    return list(documents.order_by("-created_at", "-document_number")[: min(limit, DOCUMENT_LIST_LIMIT)])


def document_summary(tenant_id: Any) -> dict[str, Any]:
    """Dashboard counters: configured flag, documents this month and overall acceptance rate."""
    config = ProviderConfig.objects.filter(tenant_id=tenant_id).first()
    documents = DocumentQueueEntry.objects.filter(tenant_id=tenant_id)
    month_start = timezone.localtime().replace(day=1, hour=0, minute=0, second=0, microsecond=0)

    total = documents.count()
    accepted = documents.filter(status=DocumentStatus.ACCEPTED.value).count()
    return {
        "configured": bool(config and config.is_enabled),
        "documents_this_month": documents.filter(created_at__gte=month_start).count(),
        "documents_total": total,
        "success_rate": f"{round(accepted * 100 / total)}%" if total else "N/A",
    }


def retry_document(document_id: Any, tenant_id: Any = None) -> bool:
    """
    Reset a failed document to PENDING with a fresh attempt budget.

    The allocated number is kept. Accepted and in-flight documents are refused.
    """
    entry = _documents(tenant_id).filter(pk=document_id).first()
    if entry is None:
        return False
    if entry.status not in DocumentStatus.manually_retryable_statuses():
        logger.warning(f"⚠️ [e-Invoicing Queue] Refusing retry of {entry.full_number} in status {entry.status}")
        return False

    entry.reset_for_retry()
    logger.info(f"[e-Invoicing Queue] Document {entry.full_number} reset to PENDING")
    return True


def get_status(document_id: Any, tenant_id: Any = None) -> dict[str, Any] | None:
    """Queue entry with its stored files, for display."""
    entry = _documents(tenant_id).filter(pk=document_id).first()
    if entry is None:
        return None

    return {
        "id": str(entry.id),
        "tenant_id": str(entry.tenant_id),
        "kind": entry.kind,
        "source_type": entry.source_type,
        "source_id": entry.source_id,
        "order_number": entry.order_number,
        "resolution_number": entry.resolution_number,
        "prefix": entry.prefix,
        "document_number": entry.document_number,
        "full_number": entry.full_number,
        "status": entry.status,
        "retry_count": entry.retry_count,
        "max_retries": entry.max_retries,
        "track_id": entry.track_id,
        "cufe": entry.cufe,
        "qr_code": entry.qr_code,
        "last_error": entry.last_error,
        "request_json": entry.request_json,
        "response_json": entry.response_json,
        "submitted_at": entry.submitted_at.isoformat() if entry.submitted_at else None,
        "accepted_at": entry.accepted_at.isoformat() if entry.accepted_at else None,
        "created_at": entry.created_at.isoformat(),
        "updated_at": entry.updated_at.isoformat(),
        "files": [
            {
                "id": str(f.id),
                "kind": f.kind,
                "mime_type": f.mime_type,
                "has_data": f.has_data,
                "url": f.url,
            }
            for f in entry.files.order_by("created_at")
        ],
    }


def download_file(document_id: Any, kind: FileKind | str, tenant_id: Any = None) -> bytes | None:
    stored = DocumentFile.objects.filter(document_id=document_id, kind=FileKind(kind).value)
    if tenant_id is not None:
        stored = stored.filter(document__tenant_id=tenant_id)
    stored = stored.first()
    if stored is None:
        return None
    return stored.get_bytes()
