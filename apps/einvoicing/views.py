# ===============================================================================
# E-INVOICING API VIEWS - DOCUMENTS, SEQUENCES AND PROVIDER OPERATIONS 🏛️
# ===============================================================================

import logging
from uuid import UUID

from django.http import HttpResponse
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response

from apps.pos.models import Tenant, TenantMembership

from . import queue
from .client import get_client_for_tenant
from .exceptions import ConfigurationError, PersistenceError, SubmissionError
from .models import DocumentQueueEntry, FileKind, SequenceCounter
from .quota import quota_enforcer
from .sequence import sequence_allocator
from .serializers import (
    DocumentQueueEntrySerializer,
    EnqueueRequestSerializer,
    QuotaCheckSerializer,
    SequenceConfigSerializer,
    SequenceCounterSerializer,
    SupportDocumentRequestSerializer,
)
from .tenant_access import require_tenant_access
from .worker import submission_worker

logger = logging.getLogger(__name__)

FILE_NAMES = {
    FileKind.PDF: ("application/pdf", "pdf"),
    FileKind.ATTACHED_ZIP: ("application/zip", "zip"),
    FileKind.XML: ("application/xml", "xml"),
    FileKind.QR: ("image/png", "png"),
}

NOT_QUEUED_MESSAGE = "Could not queue document. Check e-invoicing configuration."
NOT_CONFIGURED_MESSAGE = "e-invoicing not configured or disabled"


def _tenant_documents(tenant: Tenant):
    return DocumentQueueEntry.objects.filter(tenant=tenant)


def _can_manage(request: Request, tenant: Tenant) -> bool:
    """Staff, or the tenant's owner/admin."""
    if request.user.is_staff:
        return True
    return TenantMembership.objects.filter(
        user_id=request.user.pk,
        tenant=tenant,
        role__in=[TenantMembership.OWNER, TenantMembership.ADMIN],
    ).exists()


# ===============================================================================
# DOCUMENTS 📋
# ===============================================================================


@api_view(["GET", "POST"])
@permission_classes([IsAuthenticated])
@require_tenant_access
def documents_api(request: Request, tenant: Tenant) -> Response:
    """
    📋 List the tenant's documents, or enqueue one manually

    GET /api/einvoicing/documents/?status=&kind=&limit=
    POST /api/einvoicing/documents/  {kind, source_type, source_id, order_number?, submit_now?}
    """
    if request.method == "POST":
        return _enqueue_document(request, tenant)

    try:
        documents = queue.list_documents(
            tenant.id,
            status=request.query_params.get("status") or None,
            kind=request.query_params.get("kind") or None,
            limit=int(request.query_params.get("limit", queue.DOCUMENT_LIST_LIMIT)),
        )
    except ValueError:
        return Response(
            {"success": False, "error": "Invalid status, kind or limit filter"}, status=status.HTTP_400_BAD_REQUEST
        )

    return Response({"success": True, "documents": DocumentQueueEntrySerializer(documents, many=True).data})


def _enqueue_document(request: Request, tenant: Tenant) -> Response:
    serializer = EnqueueRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response({"success": False, "errors": serializer.errors}, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    try:
        if data["submit_now"]:
            result = queue.submit_document_sync(
                tenant.id, data["kind"], data["source_type"], data["source_id"], data.get("order_number")
            )
            return Response(result.to_dict())

        queued = queue.enqueue(
            tenant.id, data["kind"], data["source_type"], data["source_id"], data.get("order_number")
        )
    except PersistenceError as e:
        logger.error(f"🔥 [e-Invoicing API] Enqueue for tenant {tenant.id} failed: {e}")
        return Response(
            {"success": False, "error": "Could not store document"}, status=status.HTTP_503_SERVICE_UNAVAILABLE
        )

    if queued is None:
        return Response({"success": False, "message": NOT_QUEUED_MESSAGE})

    logger.info(f"[e-Invoicing API] Manual enqueue of {data['kind']} {data['source_id']} by {request.user}")
    return Response(
        {"success": True, "document_id": str(queued.id), "document_number": queued.document_number},
        status=status.HTTP_201_CREATED,
    )


@api_view(["GET"])
@permission_classes([IsAuthenticated])
@require_tenant_access
def document_detail_api(request: Request, tenant: Tenant, document_id: UUID) -> Response:
    """
    📋 Document status

    GET /api/einvoicing/documents/<uuid>/
    """
    document = _tenant_documents(tenant).prefetch_related("files").filter(pk=document_id).first()
    if document is None:
        return Response({"success": False, "error": "Document not found"}, status=status.HTTP_404_NOT_FOUND)

    return Response({"success": True, "document": DocumentQueueEntrySerializer(document).data})


@api_view(["POST"])
@permission_classes([IsAuthenticated])
@require_tenant_access
def document_retry_api(request: Request, tenant: Tenant, document_id: UUID) -> Response:
    """
    🔁 Manual retry: reset a failed document to PENDING and submit it now

    POST /api/einvoicing/documents/<uuid>/retry/
    """
    document = _tenant_documents(tenant).filter(pk=document_id).first()
    if document is None:
        return Response({"success": False, "error": "Document not found"}, status=status.HTTP_404_NOT_FOUND)

    if not queue.retry_document(document_id, tenant_id=tenant.id):
        return Response(
            {"success": False, "error": f"Document in status {document.status} cannot be retried"},
            status=status.HTTP_409_CONFLICT,
        )

    logger.info(f"[e-Invoicing API] Manual retry of {document.full_number} by {request.user}")
    accepted = submission_worker.process_document(document_id)
    document.refresh_from_db()
    return Response({"success": accepted, "document": DocumentQueueEntrySerializer(document).data})


@api_view(["GET"])
@permission_classes([IsAuthenticated])
@require_tenant_access
def document_file_api(request: Request, tenant: Tenant, document_id: UUID, kind: str) -> HttpResponse | Response:
    """
    📄 Download a stored artifact (pdf, attached_zip, qr, xml)

    GET /api/einvoicing/documents/<uuid>/files/<kind>/
    """
    try:
        file_kind = FileKind(kind)
    except ValueError:
        return Response({"success": False, "error": f"Unknown file kind: {kind}"}, status=status.HTTP_400_BAD_REQUEST)

    content = queue.download_file(document_id, file_kind, tenant_id=tenant.id)
    if content is None:
        return Response({"success": False, "error": "File not available"}, status=status.HTTP_404_NOT_FOUND)

    content_type, extension = FILE_NAMES[file_kind]
    response = HttpResponse(content, content_type=content_type)
    response["Content-Disposition"] = f'attachment; filename="{document_id}.{extension}"'
    return response


@api_view(["POST"])
@permission_classes([IsAuthenticated])
@require_tenant_access
def support_document_api(request: Request, tenant: Tenant) -> Response:
    """
    🧾 Record a purchase from a non-invoicing supplier and issue its support document

    POST /api/einvoicing/support-documents/  {supplier, items, notes?, date?}
    """
    serializer = SupportDocumentRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response({"success": False, "errors": serializer.errors}, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    try:
        result = queue.create_support_document(
            tenant.id, data["supplier"], data["items"], notes=data["notes"], issued_at=data.get("date")
        )
    except ConfigurationError as e:
        return Response({"success": False, "error": str(e)}, status=status.HTTP_400_BAD_REQUEST)

    message = "Support document submitted to DIAN" if result.success else "Document queued but submission pending"
    if result.document_id is None:
        message = result.error
    return Response({**result.to_dict(), "message": message})


# ===============================================================================
# NUMBERING 🔢
# ===============================================================================


@api_view(["GET", "POST"])
@permission_classes([IsAuthenticated])
@require_tenant_access
def sequences_api(request: Request, tenant: Tenant) -> Response:
    """
    🔢 Inspect or configure the tenant's numbering counters

    GET /api/einvoicing/sequences/
    POST /api/einvoicing/sequences/  {resolution_number, prefix, current_number?, range_end?}
    """
    if request.method == "GET":
        counters = SequenceCounter.objects.filter(tenant=tenant).order_by("resolution_number", "prefix")
        return Response({"success": True, "sequences": SequenceCounterSerializer(counters, many=True).data})

    if not _can_manage(request, tenant):
        return Response({"success": False, "error": "Access denied"}, status=status.HTTP_403_FORBIDDEN)

    serializer = SequenceConfigSerializer(data=request.data)
    if not serializer.is_valid():
        return Response({"success": False, "errors": serializer.errors}, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    try:
        counter, created = sequence_allocator.configure(
            tenant.id,
            data["resolution_number"],
            data["prefix"],
            current_number=data.get("current_number"),
            range_end=data.get("range_end"),
        )
    except ConfigurationError as e:
        return Response({"success": False, "error": str(e)}, status=status.HTTP_409_CONFLICT)

    logger.info(f"[e-Invoicing API] Sequence {counter} configured by {request.user}")
    return Response(
        {
            "success": True,
            "message": "Sequence created" if created else "Sequence updated",
            "sequence": SequenceCounterSerializer(counter).data,
        },
        status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
    )


# ===============================================================================
# PROVIDER OPERATIONS 🔌
# ===============================================================================


@api_view(["GET"])
@permission_classes([IsAuthenticated])
@require_tenant_access
def track_status_api(request: Request, tenant: Tenant, track_id: str) -> Response:
    """
    🔎 Provider status of a document by its track id

    GET /api/einvoicing/status/<track_id>/
    """
    client = get_client_for_tenant(tenant.id)
    if client is None:
        return Response({"success": False, "error": NOT_CONFIGURED_MESSAGE}, status=status.HTTP_400_BAD_REQUEST)

    try:
        with client:
            response = client.get_status_by_track_id(track_id)
    except SubmissionError as e:
        logger.warning(f"⚠️ [e-Invoicing API] Status lookup of {track_id} failed: {e}")
        return Response({"success": False, "error": str(e)}, status=status.HTTP_502_BAD_GATEWAY)

    return Response({"success": True, "status": response.to_dict()})


@api_view(["POST"])
@permission_classes([IsAuthenticated])
@require_tenant_access
def connection_check_api(request: Request, tenant: Tenant) -> Response:
    """
    🔌 Check the tenant's provider credentials

    POST /api/einvoicing/test-connection/
    """
    client = get_client_for_tenant(tenant.id)
    if client is None:
        return Response({"success": False, "message": NOT_CONFIGURED_MESSAGE})

    with client:
        ok, message = client.test_connection()
    return Response({"success": ok, "message": message})


# ===============================================================================
# DASHBOARD AND QUOTA 📊
# ===============================================================================


@api_view(["GET"])
@permission_classes([IsAuthenticated])
@require_tenant_access
def summary_api(request: Request, tenant: Tenant) -> Response:
    """
    📊 Dashboard counters for the e-billing screen

    GET /api/einvoicing/summary/
    """
    return Response({"success": True, **queue.document_summary(tenant.id)})


@api_view(["GET"])
@permission_classes([IsAuthenticated])
@require_tenant_access
def tenant_quota_api(request: Request, tenant: Tenant) -> Response:
    """
    📊 Quota pre-flight for the tenant

    GET /api/einvoicing/quota/
    """
    result = quota_enforcer.check_quota(tenant.id)
    data = {**result.to_dict(), "is_overage": result.is_overage}
    return Response({"success": True, "quota": QuotaCheckSerializer(data).data})


# ===============================================================================
# OPERATIONS ⚙️
# ===============================================================================


@api_view(["POST"])
@permission_classes([IsAdminUser])
def process_pending_api(request: Request) -> Response:
    """
    ⚙️ Drain one batch of queued documents on demand (all tenants)

    POST /api/einvoicing/documents/process-pending/
    """
    results = submission_worker.process_pending()
    return Response({"success": True, **results})
