"""
Async tasks for electronic-document processing.

These tasks are designed for use with Django-Q2:
- process_pending_documents_task: Drain one batch of PENDING/RETRY documents
- process_document_task: Submit a single document

Usage:
    from django_q.tasks import async_task
    async_task('apps.einvoicing.tasks.process_document_task', document_id)
"""

from __future__ import annotations

import logging
from typing import Any

from django.utils import timezone
from django_q.models import Schedule
from django_q.tasks import async_task

from .models import DocumentQueueEntry
from .settings import einvoicing_settings
from .worker import submission_worker

logger = logging.getLogger(__name__)

# Task timeout in seconds
TASK_TIMEOUT = 300  # 5 minutes

PROCESS_PENDING_SCHEDULE = "einvoicing_process_pending"


def process_pending_documents_task() -> dict[str, Any]:
    """
    Process one batch of queued documents.

    This task is scheduled to run every ``worker_interval_minutes``.

    Returns:
        Dict with summary of processed documents
    """
    logger.info("[e-Invoicing Task] Processing pending documents")

    results = submission_worker.process_pending()

    logger.info(f"[e-Invoicing Task] Pending documents processed: {results}")
    return {
        "success": True,
        "timestamp": timezone.now().isoformat(),
        **results,
    }


def process_document_task(document_id: str) -> dict[str, Any]:
    """
    Submit a single document.

    Args:
        document_id: UUID of the DocumentQueueEntry

    Returns:
        Dict with result status and details
    """
    logger.info(f"[e-Invoicing Task] Processing document {document_id}")

    if not DocumentQueueEntry.objects.filter(pk=document_id).exists():
        logger.error(f"[e-Invoicing Task] Document {document_id} not found")
        return {"success": False, "error": "Document not found", "document_id": document_id}

    accepted = submission_worker.process_document(document_id)
    document = DocumentQueueEntry.objects.get(pk=document_id)

    return {
        "success": accepted,
        "document_id": document_id,
        "document_number": document.full_number,
        "status": document.status,
        "retry_count": document.retry_count,
        "error": document.last_error or None,
    }


# --- Task Scheduling Helpers ---


def schedule_einvoicing_tasks() -> None:
    """
    Schedule recurring e-invoicing tasks.

    Called from ``EInvoicingConfig.ready()`` when processing is enabled.
    """
    try:
        Schedule.objects.update_or_create(
            name=PROCESS_PENDING_SCHEDULE,
            defaults={
                "func": "apps.einvoicing.tasks.process_pending_documents_task",
                "schedule_type": Schedule.MINUTES,
                "minutes": einvoicing_settings.worker_interval_minutes,
            },
        )
        logger.info("[e-Invoicing Task] Scheduled tasks configured")

    except Exception as e:
        logger.error(f"🔥 [e-Invoicing Task] Failed to schedule e-invoicing tasks: {e}")


# --- Async Task Helpers ---


def queue_document_processing(document_id: Any) -> str | None:
    """
    Queue a document for immediate submission.

    Args:
        document_id: UUID of the DocumentQueueEntry

    Returns:
        Task ID if queued, None if failed
    """
    try:
        task_id = async_task(
            "apps.einvoicing.tasks.process_document_task",
            str(document_id),
            timeout=TASK_TIMEOUT,
        )
        logger.info(f"[e-Invoicing Task] Queued document {document_id}: task {task_id}")
        return str(task_id)

    except Exception as e:
        logger.error(f"🔥 [e-Invoicing Task] Failed to queue document {document_id}: {e}")
        return None
