# ===============================================================================
# E-INVOICING TENANT ACCESS - X-TENANT-ID SCOPING FOR API VIEWS 🔒
# ===============================================================================

import logging
import uuid
from collections.abc import Callable
from functools import wraps
from typing import Any

from rest_framework.request import Request
from rest_framework.response import Response

from apps.pos.models import Tenant, TenantMembership

logger = logging.getLogger(__name__)

TENANT_HEADER = "X-Tenant-ID"


def _uniform_error_response(message: str = "Access denied", status_code: int = 403) -> Response:
    """
    🔒 Uniform error response; the same message whether the tenant is unknown
    or the user simply does not belong to it.
    """
    headers = {
        "Cache-Control": "no-store",
        "X-Content-Type-Options": "nosniff",
    }
    return Response({"success": False, "error": message}, status=status_code, headers=headers)


def get_tenant_for_request(request: Request) -> tuple[Tenant | None, Response | None]:
    """
    🔒 Resolve the tenant named in the X-Tenant-ID header for the current user.

    Staff users may act on any tenant; everyone else needs a membership.

    Returns:
        (Tenant, None) on success, (None, error_response) otherwise
    """
    raw_tenant_id = request.headers.get(TENANT_HEADER, "").strip()
    if not raw_tenant_id:
        return None, _uniform_error_response("Tenant ID required", 400)
    try:
        tenant_id = uuid.UUID(raw_tenant_id)
    except ValueError:
        return None, _uniform_error_response("Tenant ID required", 400)

    tenant = Tenant.objects.filter(pk=tenant_id).first()
    if tenant is None:
        logger.warning(f"🔥 [e-Invoicing Access] Unknown tenant {tenant_id} requested by {request.user}")
        return None, _uniform_error_response()

    if request.user.is_staff:
        return tenant, None

    if not TenantMembership.objects.filter(user_id=request.user.pk, tenant=tenant).exists():
        logger.warning(f"🔥 [e-Invoicing Access] User {request.user} has no access to tenant {tenant_id}")
        return None, _uniform_error_response()

    return tenant, None


def require_tenant_access(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """
    🔒 Decorator for API views scoped to one tenant.

    Usage:
        @api_view(["GET"])
        @permission_classes([IsAuthenticated])
        @require_tenant_access
        def my_api_view(request, tenant):
            return Response({"tenant": str(tenant.id)})
    """

    @wraps(view_func)
    def wrapper(request: Request, *args: Any, **kwargs: Any) -> Response:
        tenant, error_response = get_tenant_for_request(request)
        if error_response is not None:
            return error_response
        return view_func(request, tenant, *args, **kwargs)

    return wrapper
