"""
Submission worker: drains PENDING and RETRY documents to the provider.

The worker is polled (django-q2 schedule or the on-demand API endpoint) and
runs each batch synchronously. Rows are claimed with
``SELECT ... FOR UPDATE SKIP LOCKED``, and the move to SENT only applies
while the row still has the status it was claimed in, so two concurrent
workers never submit the same document.

Usage:
    from apps.einvoicing.worker import process_pending

    summary = process_pending()
"""

from __future__ import annotations

import base64
import logging
from collections.abc import Callable
from datetime import timedelta
from typing import Any

from django.db import transaction
from django.utils import timezone

from .client import MatiasClient, ProviderResponse, get_client_for_tenant
from .exceptions import PayloadBuildError, SubmissionError
from .metrics import metrics
from .models import DocumentFile, DocumentKind, DocumentQueueEntry, DocumentStatus, FileKind
from .payloads import Payload, build_payload_for_document
from .settings import ALREADY_VALIDATED_MARKERS, DIAN_DOCUMENT_SEARCH_URL, einvoicing_settings
from .usage import usage_meter

logger = logging.getLogger(__name__)


class SubmissionWorker:
    """
    Submit queued documents and record the provider outcome.

    Usage:
        worker = SubmissionWorker()
        worker.process_document(document_id)
    """

    def __init__(self, client_factory: Callable[[Any], MatiasClient | None] | None = None):
        self.client_factory = client_factory

    # --- Batch Processing ---

    def process_pending(self) -> dict[str, int]:
        """
        Process one batch of PENDING rows and a smaller batch of RETRY rows.

        Returns:
            Summary of processed documents
        """
        results = {"processed": 0, "accepted": 0, "failed": 0, "recovered": self.recover_stale_sent()}

        document_ids = self._claim(DocumentStatus.PENDING, einvoicing_settings.pending_batch_size)
        document_ids += self._claim(DocumentStatus.RETRY, einvoicing_settings.retry_batch_size)

        for document_id in document_ids:
            results["processed"] += 1
            try:
                accepted = self.process_document(document_id)
            except Exception as e:
                # One broken row must not stop the batch
                logger.exception(f"🔥 [e-Invoicing Worker] Unexpected error processing document {document_id}")
                self._record_unexpected_error(document_id, e)
                results["failed"] += 1
                continue
            results["accepted" if accepted else "failed"] += 1

        if document_ids:
            logger.info(f"[e-Invoicing Worker] Batch complete: {results}")
        return results

    def _record_unexpected_error(self, document_id: Any, error: Exception) -> None:
        """Count the crash as an attempt so a row that always crashes leaves the queue."""
        try:
            entry = DocumentQueueEntry.objects.filter(pk=document_id).first()
            if entry is None or entry.status in DocumentStatus.terminal_statuses():
                return
            status = entry.record_failed_attempt(f"Unexpected error: {error}")
            logger.warning(f"⚠️ [e-Invoicing Worker] {entry.full_number} crashed, attempt recorded -> {status}")
        except Exception:
            logger.exception(f"🔥 [e-Invoicing Worker] Could not record failure for document {document_id}")

    def _claim(self, status: DocumentStatus, limit: int) -> list[Any]:
        """Lock up to ``limit`` drainable rows, skipping rows other workers hold."""
        if limit <= 0:
            return []
        with transaction.atomic():
            ids = list(
                DocumentQueueEntry.drainable(status)
                .select_for_update(skip_locked=True)
                .values_list("id", flat=True)[:limit]
            )
        metrics.record_batch(status.value, len(ids))
        return ids

    def recover_stale_sent(self) -> int:
        """
        Count abandoned SENT documents as failed attempts so they are retried.

        A resubmission of a document the provider did receive comes back as
        "already validated" and is accepted then.
        """
        cutoff = timezone.now() - timedelta(minutes=einvoicing_settings.stale_sent_minutes)
        recovered = 0
        for entry in DocumentQueueEntry.stale_in_flight(cutoff):
            status = entry.record_failed_attempt("Submission interrupted before a provider reply was recorded")
            logger.warning(f"⚠️ [e-Invoicing Worker] Recovered stale SENT document {entry.full_number} -> {status}")
            recovered += 1
        return recovered

    # --- Single Document ---

    def process_document(self, document_id: Any) -> bool:
        """
        Submit one document.

        Returns:
            True when the document ends ACCEPTED, False otherwise
        """
        entry = DocumentQueueEntry.objects.filter(pk=document_id).first()
        if entry is None:
            logger.warning(f"⚠️ [e-Invoicing Worker] Document {document_id} not found")
            return False
        if entry.status == DocumentStatus.ACCEPTED.value:
            logger.info(f"[e-Invoicing Worker] Document {entry.full_number} already accepted, nothing to do")
            return True
        if entry.status == DocumentStatus.SENT.value:
            logger.info(f"[e-Invoicing Worker] Document {entry.full_number} is in flight, skipping")
            return False

        with metrics.time_submission(entry.kind) as ctx:
            accepted = self._submit(entry)
            ctx["outcome"] = entry.status.lower()
        return accepted

    def _submit(self, entry: DocumentQueueEntry) -> bool:
        client = (self.client_factory or get_client_for_tenant)(entry.tenant_id)
        if client is None:
            entry.mark_failed("Could not initialize provider client")
            logger.error(f"🔥 [e-Invoicing Worker] No provider client for tenant {entry.tenant_id}")
            return False

        try:
            payload = build_payload_for_document(entry)
        except PayloadBuildError as e:
            entry.mark_failed(f"Could not build payload: {e}")
            logger.error(f"🔥 [e-Invoicing Worker] Payload for {entry.full_number} failed: {e}")
            return False
        if payload is None:
            entry.mark_failed("Could not build payload")
            logger.error(f"🔥 [e-Invoicing Worker] No payload for {entry.kind} {entry.full_number}")
            return False

        if not entry.mark_sent(payload.envelope()):
            logger.info(f"[e-Invoicing Worker] {entry.full_number} was claimed by another worker, skipping")
            return False

        with client:
            try:
                response = self._dispatch(client, entry.document_kind, payload)
            except SubmissionError as e:
                status = entry.record_failed_attempt(str(e))
                logger.warning(
                    f"⚠️ [e-Invoicing Worker] {entry.full_number} attempt {entry.retry_count} failed: {e} -> {status}"
                )
                return False

            if response.success and response.data:
                self._accept(
                    client,
                    entry,
                    track_id=str(response.data.get("track_id") or response.data.get("XmlDocumentKey") or ""),
                    cufe=str(response.data.get("cufe") or response.data.get("uuid") or ""),
                    qr_code=str(response.data.get("qr_code") or response.data.get("qr") or ""),
                    response=response,
                )
                return True

            if self._is_already_validated(response):
                return self._accept_already_validated(client, entry, response)

            status = entry.record_failed_attempt(response.error_message, response.to_dict(), provider_rejected=True)
            logger.warning(
                f"⚠️ [e-Invoicing Worker] Provider rejected {entry.full_number} "
                f"(attempt {entry.retry_count}/{entry.max_retries}): {response.error_message} -> {status}"
            )
            return False

    def _dispatch(self, client: MatiasClient, kind: DocumentKind, payload: Payload) -> ProviderResponse:
        body = payload.to_dict()
        match kind:
            case DocumentKind.POS_CREDIT_NOTE:
                return client.submit_credit_note(body)
            case DocumentKind.POS_DEBIT_NOTE:
                return client.submit_debit_note(body)
            case DocumentKind.SUPPORT_DOC:
                return client.submit_support_document(body)
            case _:
                return client.submit(body)

    # --- Acceptance ---

    def _accept(
        self,
        client: MatiasClient,
        entry: DocumentQueueEntry,
        track_id: str,
        cufe: str,
        qr_code: str,
        response: ProviderResponse,
    ) -> None:
        entry.mark_accepted(track_id, cufe, qr_code, response.to_dict())
        logger.info(f"[e-Invoicing Worker] {entry.kind} {entry.full_number} accepted (CUFE {cufe[:16]}...)")

        try:
            usage_meter.increment(entry.tenant_id, entry.document_kind)
        except Exception:
            # Metering never undoes an accepted document
            logger.exception(f"🔥 [e-Invoicing Worker] Usage metering failed for {entry.full_number}")

        if track_id:
            self._store_pdf(client, entry, track_id)

    def _store_pdf(self, client: MatiasClient, entry: DocumentQueueEntry, track_id: str) -> None:
        try:
            pdf = client.download_pdf(track_id)
        except SubmissionError as e:
            logger.warning(f"⚠️ [e-Invoicing Worker] PDF download for {entry.full_number} failed: {e}")
            return
        if not pdf:
            return

        DocumentFile.objects.update_or_create(
            document=entry,
            kind=FileKind.PDF.value,
            defaults={"mime_type": "application/pdf", "base64_data": base64.b64encode(pdf).decode("ascii")},
        )

    def _is_already_validated(self, response: ProviderResponse) -> bool:
        message = response.message or ""
        if any(marker in message for marker in ALREADY_VALIDATED_MARKERS):
            return True
        return str(self._validated_data(response).get("is_valid")) == "1"

    def _validated_data(self, response: ProviderResponse) -> dict[str, Any]:
        """The ``data`` object of the reply, or the reply itself when it has none."""
        return response.data or response.raw

    def _accept_already_validated(
        self, client: MatiasClient, entry: DocumentQueueEntry, response: ProviderResponse
    ) -> bool:
        """Treat a duplicate submission DIAN already validated as accepted."""
        data = self._validated_data(response)
        json_data = data.get("jsonData") if isinstance(data.get("jsonData"), dict) else {}
        cufe = str(json_data.get("cufe") or data.get("uuid") or data.get("XmlDocumentKey") or "")
        qr_code = str(json_data.get("qr") or json_data.get("qrDian") or "")
        track_id = str(data.get("XmlDocumentKey") or data.get("track_id") or "")

        if not cufe or not qr_code:
            status = self._lookup_status(client, entry, track_id)
            if status.success and status.data:
                cufe = cufe or str(status.data.get("cufe") or status.data.get("cude") or "")
                qr_code = qr_code or str(status.data.get("qr_code") or "")

        if not cufe:
            status = entry.record_failed_attempt(
                "Provider reports the document as validated but returned no CUFE",
                response.to_dict(),
                provider_rejected=True,
            )
            logger.warning(f"⚠️ [e-Invoicing Worker] {entry.full_number} validated without CUFE -> {status}")
            return False

        if not qr_code:
            qr_code = DIAN_DOCUMENT_SEARCH_URL.format(cufe=cufe)

        logger.info(f"[e-Invoicing Worker] {entry.full_number} was already validated by DIAN")
        self._accept(client, entry, track_id=track_id, cufe=cufe, qr_code=qr_code, response=response)
        return True

    def _lookup_status(self, client: MatiasClient, entry: DocumentQueueEntry, track_id: str) -> ProviderResponse:
        try:
            if track_id:
                return client.get_status_by_track_id(track_id)
            return client.get_status(entry.resolution_number, entry.prefix, entry.document_number)
        except SubmissionError as e:
            logger.warning(f"⚠️ [e-Invoicing Worker] Status lookup for {entry.full_number} failed: {e}")
            return ProviderResponse.error(str(e))


submission_worker = SubmissionWorker()


def process_pending() -> dict[str, int]:
    return submission_worker.process_pending()


def process_document(document_id: Any) -> bool:
    return submission_worker.process_document(document_id)
