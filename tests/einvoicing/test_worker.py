"""
Tests for the submission worker.
"""

from datetime import timedelta
from unittest.mock import MagicMock, patch

from django.test import TestCase, override_settings
from django.utils import timezone

from apps.einvoicing.client import ProviderResponse
from apps.einvoicing.exceptions import ProviderNetworkError
from apps.einvoicing.models import DocumentFile, DocumentKind, DocumentQueueEntry, DocumentStatus, UsagePeriod
from apps.einvoicing.payloads import build_payload_for_document
from apps.einvoicing.worker import SubmissionWorker
from tests.factories.einvoicing_factories import (
    PREFIX,
    RESOLUTION,
    create_adjustment,
    create_document,
    create_order,
    create_provider_config,
    create_subscription,
    create_support_purchase,
    create_tenant,
)


def _accepted(track_id="T-1", cufe="CUFE-1", qr_code="https://qr.test/1"):
    data = {"track_id": track_id, "cufe": cufe, "qr_code": qr_code}
    return ProviderResponse(success=True, data=data, status_code=200, raw={"success": True, "data": data})


def _rejected(message="Regla FAD06: fecha invalida"):
    return ProviderResponse(success=False, message=message, status_code=422, raw={"message": message})


class SubmissionWorkerTestCase(TestCase):
    """Shared setup: a configured tenant with a sale ready to submit."""

    def setUp(self):
        self.tenant = create_tenant()
        create_provider_config(self.tenant)
        self.order = create_order(self.tenant)
        self.provider = MagicMock()
        self.provider.submit.return_value = _accepted()
        self.provider.download_pdf.return_value = b"%PDF-1.4"
        self.worker = SubmissionWorker(client_factory=lambda tenant_id: self.provider)

    def _document(self, number=1, **overrides):
        overrides.setdefault("source_id", str(self.order.id))
        return create_document(self.tenant, document_number=number, **overrides)

    def _reload(self, entry):
        return DocumentQueueEntry.objects.get(pk=entry.pk)


class ProcessDocumentTestCase(SubmissionWorkerTestCase):
    """Test single document submission."""

    def test_accepted_document(self):
        """Test a successful submission stores artifacts, usage and PDF."""
        create_subscription(self.tenant)
        entry = self._document()

        self.assertTrue(self.worker.process_document(entry.id))

        entry = self._reload(entry)
        self.assertEqual(entry.status, DocumentStatus.ACCEPTED.value)
        self.assertEqual(entry.track_id, "T-1")
        self.assertEqual(entry.cufe, "CUFE-1")
        self.assertEqual(entry.qr_code, "https://qr.test/1")
        self.assertIsNotNone(entry.submitted_at)
        self.assertIsNotNone(entry.accepted_at)
        self.assertEqual(entry.request_json["kind"], "POS")
        self.assertEqual(entry.request_json["body"]["document_number"], "1")
        self.assertTrue(entry.response_json["success"])

        self.assertEqual(UsagePeriod.objects.get(tenant=self.tenant).used_pos, 1)
        pdf = DocumentFile.objects.get(document=entry, kind="pdf")
        self.assertEqual(pdf.get_bytes(), b"%PDF-1.4")
        self.assertEqual(pdf.mime_type, "application/pdf")
        self.provider.download_pdf.assert_called_once_with("T-1")

    def test_submitted_body_matches_document(self):
        """Test the provider receives the payload numbered like the row."""
        entry = self._document(number=55)

        self.worker.process_document(entry.id)

        body = self.provider.submit.call_args.args[0]
        self.assertEqual(body["resolution_number"], RESOLUTION)
        self.assertEqual(body["prefix"], PREFIX)
        self.assertEqual(body["document_number"], "55")

    def test_alternate_response_keys(self):
        """Test uuid/XmlDocumentKey/qr are accepted in place of cufe/track_id/qr_code."""
        data = {"XmlDocumentKey": "K-1", "uuid": "UUID-1", "qr": "QR-1"}
        self.provider.submit.return_value = ProviderResponse(success=True, data=data, raw={"data": data})
        entry = self._document()

        self.worker.process_document(entry.id)

        entry = self._reload(entry)
        self.assertEqual((entry.track_id, entry.cufe, entry.qr_code), ("K-1", "UUID-1", "QR-1"))

    def test_no_client_fails(self):
        """Test a tenant without usable provider client fails terminally."""
        worker = SubmissionWorker(client_factory=lambda tenant_id: None)
        entry = self._document()

        self.assertFalse(worker.process_document(entry.id))

        entry = self._reload(entry)
        self.assertEqual(entry.status, DocumentStatus.FAILED.value)
        self.assertEqual(entry.last_error, "Could not initialize provider client")

    def test_payload_build_error_fails(self):
        """Test inconsistent source data fails terminally with the reason."""
        empty_order = create_order(self.tenant, items=[])
        entry = self._document(source_id=str(empty_order.id))

        self.assertFalse(self.worker.process_document(entry.id))

        entry = self._reload(entry)
        self.assertEqual(entry.status, DocumentStatus.FAILED.value)
        self.assertTrue(entry.last_error.startswith("Could not build payload: "))
        self.provider.submit.assert_not_called()

    def test_missing_source_fails(self):
        """Test a missing source record fails terminally."""
        entry = self._document(source_id="no-such-order")

        self.assertFalse(self.worker.process_document(entry.id))

        entry = self._reload(entry)
        self.assertEqual(entry.status, DocumentStatus.FAILED.value)
        self.assertEqual(entry.last_error, "Could not build payload")

    def test_external_source_id_fails(self):
        """Test a source id from another system fails terminally instead of crashing."""
        entry = self._document(source_id="gid://shopify/Order/1001")

        self.assertFalse(self.worker.process_document(entry.id))

        entry = self._reload(entry)
        self.assertEqual(entry.status, DocumentStatus.FAILED.value)
        self.assertEqual(entry.last_error, "Could not build payload")
        self.provider.submit.assert_not_called()

    def test_support_document_adjustment_fails(self):
        """Test kinds without a payload builder fail terminally."""
        entry = self._document(kind=DocumentKind.SUPPORT_ADJUSTMENT.value, source_type="purchase")

        self.assertFalse(self.worker.process_document(entry.id))
        self.assertEqual(self._reload(entry).status, DocumentStatus.FAILED.value)

    def test_support_document_dispatch(self):
        """Test support documents go to the support endpoint."""
        purchase = create_support_purchase(self.tenant)
        self.provider.submit_support_document.return_value = _accepted(track_id="DS-T", cufe="CUDS-1")
        entry = self._document(
            kind=DocumentKind.SUPPORT_DOC.value, source_type="purchase", source_id=str(purchase.id)
        )

        self.assertTrue(self.worker.process_document(entry.id))

        body = self.provider.submit_support_document.call_args.args[0]
        self.assertEqual(body["type_document_id"], 11)
        self.assertEqual(body["number"], 1)
        self.provider.submit.assert_not_called()
        entry = self._reload(entry)
        self.assertEqual(entry.request_json["schema"], "support")
        self.assertEqual((entry.status, entry.cufe), (DocumentStatus.ACCEPTED.value, "CUDS-1"))

    def test_network_errors_exhaust_to_failed(self):
        """Test transport failures retry and end FAILED after max_retries."""
        self.provider.submit.side_effect = ProviderNetworkError("timeout")
        entry = self._document()

        expected = [DocumentStatus.RETRY, DocumentStatus.RETRY, DocumentStatus.FAILED]
        for attempt, status in enumerate(expected, start=1):
            self.assertFalse(self.worker.process_document(entry.id))
            reloaded = self._reload(entry)
            self.assertEqual(reloaded.status, status.value)
            self.assertEqual(reloaded.retry_count, attempt)

        self.assertIn("timeout", reloaded.last_error)
        self.assertIsNone(reloaded.accepted_at)

    def test_recovers_after_transient_failures(self):
        """Test two failures followed by a success end ACCEPTED."""
        self.provider.submit.side_effect = [
            ProviderNetworkError("timeout"),
            ProviderNetworkError("timeout"),
            _accepted(),
        ]
        entry = self._document()

        for _ in range(3):
            self.worker.process_document(entry.id)

        entry = self._reload(entry)
        self.assertEqual(entry.status, DocumentStatus.ACCEPTED.value)
        self.assertEqual(entry.retry_count, 2)
        self.assertEqual(entry.last_error, "")
        self.assertEqual(entry.document_number, 1)

    def test_rejections_exhaust_to_rejected(self):
        """Test repeated provider rejections end REJECTED with the last reply stored."""
        self.provider.submit.return_value = _rejected()
        entry = self._document()

        for _ in range(3):
            self.worker.process_document(entry.id)

        entry = self._reload(entry)
        self.assertEqual(entry.status, DocumentStatus.REJECTED.value)
        self.assertEqual(entry.retry_count, 3)
        self.assertEqual(entry.last_error, "Regla FAD06: fecha invalida")
        self.assertEqual(entry.response_json["status_code"], 422)

    def test_first_rejection_is_retried(self):
        """Test a rejection with attempts left moves to RETRY."""
        self.provider.submit.return_value = _rejected()
        entry = self._document()

        self.worker.process_document(entry.id)

        self.assertEqual(self._reload(entry).status, DocumentStatus.RETRY.value)

    def test_already_validated_with_artifacts(self):
        """Test a duplicate DIAN already validated is accepted from the reply."""
        self.provider.submit.return_value = ProviderResponse(
            success=False,
            message="Documento SETP1 ya se encuentra validado",
            raw={"XmlDocumentKey": "K-7", "jsonData": {"cufe": "CUFE-7", "qr": "QR-7"}},
        )
        entry = self._document()

        self.assertTrue(self.worker.process_document(entry.id))

        entry = self._reload(entry)
        self.assertEqual(entry.status, DocumentStatus.ACCEPTED.value)
        self.assertEqual((entry.track_id, entry.cufe, entry.qr_code), ("K-7", "CUFE-7", "QR-7"))
        self.provider.get_status.assert_not_called()
        self.provider.download_pdf.assert_called_once_with("K-7")

    def test_already_validated_looks_up_missing_cufe(self):
        """Test a validated reply without CUFE asks the provider and falls back to the DIAN QR URL."""
        self.provider.submit.return_value = ProviderResponse(
            success=False, message="Solicitud procesada por la DIAN", raw={}
        )
        self.provider.get_status.return_value = ProviderResponse(success=True, data={"cufe": "CUFE-9"})
        entry = self._document(number=9)

        self.assertTrue(self.worker.process_document(entry.id))

        entry = self._reload(entry)
        self.provider.get_status.assert_called_once_with(RESOLUTION, PREFIX, 9)
        self.assertEqual(entry.cufe, "CUFE-9")
        self.assertEqual(
            entry.qr_code, "https://catalogo-vpfe.dian.gov.co/User/SearchDocument?DocumentKey=CUFE-9"
        )
        self.provider.download_pdf.assert_not_called()

    def test_is_valid_flag_looks_up_missing_qr_by_track_id(self):
        """Test an is_valid reply with track id fetches the QR by track id."""
        data = {"is_valid": "1", "XmlDocumentKey": "K-3", "jsonData": {"cufe": "CUFE-3"}}
        self.provider.submit.return_value = ProviderResponse(success=False, data=data, raw={"data": data})
        self.provider.get_status_by_track_id.return_value = ProviderResponse(success=True, data={"qr_code": "QR-3"})
        entry = self._document()

        self.assertTrue(self.worker.process_document(entry.id))

        entry = self._reload(entry)
        self.provider.get_status_by_track_id.assert_called_once_with("K-3")
        self.assertEqual((entry.cufe, entry.qr_code), ("CUFE-3", "QR-3"))

    def test_already_validated_reads_nested_data(self):
        """Test artifacts are read from the reply's data object, with uuid and qrDian as fallbacks."""
        data = {"XmlDocumentKey": "K-4", "uuid": "UUID-4", "jsonData": {"qrDian": "QR-DIAN-4"}}
        self.provider.submit.return_value = ProviderResponse(
            success=False,
            message="Documento ya se encuentra validado",
            data=data,
            raw={"jsonData": {"cufe": "IGNORED", "qr": "IGNORED"}, "data": data},
        )
        entry = self._document()

        self.assertTrue(self.worker.process_document(entry.id))

        entry = self._reload(entry)
        self.assertEqual((entry.track_id, entry.cufe, entry.qr_code), ("K-4", "UUID-4", "QR-DIAN-4"))
        self.provider.get_status.assert_not_called()
        self.provider.get_status_by_track_id.assert_not_called()

    def test_already_validated_falls_back_to_document_key(self):
        """Test the XmlDocumentKey stands in for a missing CUFE."""
        self.provider.submit.return_value = ProviderResponse(
            success=False,
            message="ya se encuentra validado",
            raw={"XmlDocumentKey": "K-5", "jsonData": {"qr": "QR-5"}},
        )
        entry = self._document()

        self.assertTrue(self.worker.process_document(entry.id))

        self.assertEqual(self._reload(entry).cufe, "K-5")

    def test_already_validated_without_cufe_is_retried(self):
        """Test a validated reply whose CUFE cannot be found counts as a failed attempt."""
        self.provider.submit.return_value = ProviderResponse(
            success=False, message="ya se encuentra validado", raw={}
        )
        self.provider.get_status.side_effect = ProviderNetworkError("timeout")
        entry = self._document()

        self.assertFalse(self.worker.process_document(entry.id))

        entry = self._reload(entry)
        self.assertEqual(entry.status, DocumentStatus.RETRY.value)
        self.assertEqual(entry.cufe, "")

    def test_accepted_document_is_not_resubmitted(self):
        """Test processing an ACCEPTED document is a no-op."""
        factory = MagicMock()
        entry = self._document(status=DocumentStatus.ACCEPTED.value, cufe="CUFE-1")

        self.assertTrue(SubmissionWorker(client_factory=factory).process_document(entry.id))
        factory.assert_not_called()

    def test_in_flight_document_is_skipped(self):
        """Test a SENT document is left to the worker that holds it."""
        entry = self._document(status=DocumentStatus.SENT.value)

        self.assertFalse(self.worker.process_document(entry.id))

        self.provider.submit.assert_not_called()
        self.assertEqual(self._reload(entry).status, DocumentStatus.SENT.value)

    def test_lost_claim_is_skipped(self):
        """Test a document another worker moved to SENT first is not submitted twice."""
        entry = self._document()

        with patch.object(DocumentQueueEntry, "mark_sent", return_value=False):
            self.assertFalse(self.worker.process_document(entry.id))

        self.provider.submit.assert_not_called()
        self.assertEqual(self._reload(entry).status, DocumentStatus.PENDING.value)

    def test_unknown_document(self):
        """Test a missing document returns False."""
        self.assertFalse(self.worker.process_document("00000000-0000-0000-0000-000000000000"))

    def test_metering_failure_keeps_acceptance(self):
        """Test a usage metering error does not undo an accepted document."""
        entry = self._document()

        with patch("apps.einvoicing.worker.usage_meter.increment", side_effect=RuntimeError("db gone")):
            self.assertTrue(self.worker.process_document(entry.id))

        self.assertEqual(self._reload(entry).status, DocumentStatus.ACCEPTED.value)

    def test_pdf_download_failure_keeps_acceptance(self):
        """Test a failed PDF download leaves the document accepted without files."""
        self.provider.download_pdf.side_effect = ProviderNetworkError("timeout")
        entry = self._document()

        self.assertTrue(self.worker.process_document(entry.id))
        self.assertFalse(DocumentFile.objects.filter(document=entry).exists())

    def test_credit_note_dispatch(self):
        """Test credit notes go to the credit note endpoint."""
        self.provider.submit_credit_note.return_value = _accepted()
        adjustment = create_adjustment(self.order)
        entry = self._document(
            kind=DocumentKind.POS_CREDIT_NOTE.value, source_type="refund", source_id=str(adjustment.id)
        )

        self.assertTrue(self.worker.process_document(entry.id))

        self.provider.submit.assert_not_called()
        body = self.provider.submit_credit_note.call_args.args[0]
        self.assertEqual(body["type_document_id"], 5)
        self.assertEqual(self._reload(entry).request_json["schema"], "note")

    def test_debit_note_dispatch(self):
        """Test debit notes go to the debit note endpoint and count as notes."""
        create_subscription(self.tenant)
        self.provider.submit_debit_note.return_value = _accepted()
        adjustment = create_adjustment(self.order, adjustment_type="surcharge", correction_concept="gastos")
        entry = self._document(
            kind=DocumentKind.POS_DEBIT_NOTE.value, source_type="adjustment", source_id=str(adjustment.id)
        )

        self.assertTrue(self.worker.process_document(entry.id))

        self.provider.submit_debit_note.assert_called_once()
        self.assertEqual(UsagePeriod.objects.get(tenant=self.tenant).used_notes, 1)


class ProcessPendingTestCase(SubmissionWorkerTestCase):
    """Test batch draining."""

    def test_empty_queue(self):
        """Test an empty queue reports zero counts."""
        self.assertEqual(
            self.worker.process_pending(), {"processed": 0, "accepted": 0, "failed": 0, "recovered": 0}
        )

    @override_settings(EINVOICING_PENDING_BATCH_SIZE=2)
    def test_pending_batch_size(self):
        """Test at most pending_batch_size PENDING rows are processed per run."""
        for number in range(1, 4):
            self._document(number=number)

        results = self.worker.process_pending()

        self.assertEqual(results["processed"], 2)
        self.assertEqual(results["accepted"], 2)
        self.assertEqual(DocumentQueueEntry.objects.filter(status=DocumentStatus.PENDING.value).count(), 1)

    def test_retry_rows_drained(self):
        """Test RETRY rows are processed alongside PENDING rows."""
        self._document(number=1)
        self._document(number=2, status=DocumentStatus.RETRY.value, retry_count=1)

        results = self.worker.process_pending()

        self.assertEqual(results["processed"], 2)
        self.assertEqual(DocumentQueueEntry.objects.filter(status=DocumentStatus.ACCEPTED.value).count(), 2)

    @override_settings(EINVOICING_RETRY_BATCH_SIZE=0)
    def test_retry_batch_can_be_disabled(self):
        """Test a zero retry batch leaves RETRY rows alone."""
        entry = self._document(status=DocumentStatus.RETRY.value, retry_count=1)

        self.assertEqual(self.worker.process_pending()["processed"], 0)
        self.assertEqual(self._reload(entry).status, DocumentStatus.RETRY.value)

    def test_exhausted_rows_not_claimed(self):
        """Test rows past their attempt budget are not drained."""
        self._document(status=DocumentStatus.RETRY.value, retry_count=4, max_retries=3)

        self.assertEqual(self.worker.process_pending()["processed"], 0)

    def test_terminal_rows_not_claimed(self):
        """Test terminal rows are never drained."""
        self._document(number=1, status=DocumentStatus.FAILED.value)
        self._document(number=2, status=DocumentStatus.ACCEPTED.value)

        self.assertEqual(self.worker.process_pending()["processed"], 0)

    def test_unexpected_error_does_not_stop_batch(self):
        """Test one broken document is counted as failed and the rest continue."""
        self._document(number=1)
        self._document(number=2)

        with patch.object(SubmissionWorker, "_submit", side_effect=[RuntimeError("boom"), True]):
            results = self.worker.process_pending()

        self.assertEqual(results, {"processed": 2, "accepted": 1, "failed": 1, "recovered": 0})
        crashed = DocumentQueueEntry.objects.get(document_number=1)
        self.assertEqual(crashed.status, DocumentStatus.RETRY.value)
        self.assertEqual(crashed.retry_count, 1)
        self.assertEqual(crashed.last_error, "Unexpected error: boom")

    @override_settings(EINVOICING_PENDING_BATCH_SIZE=10, EINVOICING_RETRY_BATCH_SIZE=10)
    def test_crashing_rows_leave_the_queue(self):
        """Test rows that always crash exhaust their attempts and stop blocking later rows."""
        for number in range(1, 11):
            self._document(number=number, source_id=f"SHOP-{number}")
        valid = self._document(number=11)

        def build_or_crash(entry):
            if entry.source_id.startswith("SHOP-"):
                raise RuntimeError(f"unreadable source {entry.source_id}")
            return build_payload_for_document(entry)

        with patch("apps.einvoicing.worker.build_payload_for_document", side_effect=build_or_crash):
            for _ in range(4):
                self.worker.process_pending()

        self.assertEqual(self._reload(valid).status, DocumentStatus.ACCEPTED.value)
        crashed = DocumentQueueEntry.objects.filter(source_id__startswith="SHOP-")
        self.assertEqual(crashed.filter(status=DocumentStatus.FAILED.value).count(), 10)
        self.assertFalse(DocumentQueueEntry.drainable(DocumentStatus.RETRY).exists())
        self.assertEqual(self.provider.submit.call_count, 1)

    def test_failed_submissions_counted(self):
        """Test rejected documents count as failed in the summary."""
        self.provider.submit.return_value = _rejected()
        self._document()

        results = self.worker.process_pending()

        self.assertEqual((results["accepted"], results["failed"]), (0, 1))


class StaleSentRecoveryTestCase(SubmissionWorkerTestCase):
    """Test recovery of documents left SENT by a crashed worker."""

    def test_stale_sent_counted_as_failed_attempt(self):
        """Test an old SENT row moves to RETRY and a recent one is left alone."""
        stale = self._document(
            number=1, status=DocumentStatus.SENT.value, submitted_at=timezone.now() - timedelta(minutes=30)
        )
        fresh = self._document(
            number=2, status=DocumentStatus.SENT.value, submitted_at=timezone.now() - timedelta(minutes=1)
        )

        self.assertEqual(self.worker.recover_stale_sent(), 1)

        stale = self._reload(stale)
        self.assertEqual(stale.status, DocumentStatus.RETRY.value)
        self.assertEqual(stale.retry_count, 1)
        self.assertEqual(self._reload(fresh).status, DocumentStatus.SENT.value)

    def test_stale_sent_out_of_attempts_fails(self):
        """Test a stale row on its last attempt ends FAILED."""
        stale = self._document(
            status=DocumentStatus.SENT.value,
            retry_count=2,
            submitted_at=timezone.now() - timedelta(hours=2),
        )

        self.worker.recover_stale_sent()

        self.assertEqual(self._reload(stale).status, DocumentStatus.FAILED.value)

    @override_settings(EINVOICING_STALE_SENT_MINUTES=60)
    def test_threshold_from_settings(self):
        """Test the staleness threshold comes from settings."""
        entry = self._document(
            status=DocumentStatus.SENT.value, submitted_at=timezone.now() - timedelta(minutes=30)
        )

        self.assertEqual(self.worker.recover_stale_sent(), 0)
        self.assertEqual(self._reload(entry).status, DocumentStatus.SENT.value)

    @override_settings(EINVOICING_PENDING_BATCH_SIZE=0, EINVOICING_RETRY_BATCH_SIZE=0)
    def test_process_pending_reports_recovered(self):
        """Test the batch summary counts recovered documents."""
        self._document(status=DocumentStatus.SENT.value, submitted_at=timezone.now() - timedelta(hours=1))

        self.assertEqual(self.worker.process_pending()["recovered"], 1)
