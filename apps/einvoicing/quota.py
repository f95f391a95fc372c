"""
Monthly electronic-document quota per tenant.

Quota enforcement is opt-in: a tenant without an active subscription is
allowed and unmetered. The check is advisory and runs at enqueue time only;
it is not repeated at submission, so a backlog can land slightly over the
allowance.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from django.utils import timezone

from apps.billing.models import OveragePolicy, Subscription

from .metrics import metrics
from .models import UsagePeriod

logger = logging.getLogger(__name__)


REASON_NO_SUBSCRIPTION = "no_subscription_required"
REASON_PACKAGE_NOT_FOUND = "package_not_found"
REASON_QUOTA_EXCEEDED = "quota_exceeded"


@dataclass
class QuotaCheckResult:
    """Outcome of a quota check."""

    allowed: bool
    used: int = 0
    limit: int = 0
    remaining: int = 0
    reason: str | None = None
    overage_policy: str | None = None

    @property
    def is_overage(self) -> bool:
        """Allowed past the allowance; the document is billable."""
        return self.allowed and self.limit > 0 and self.used >= self.limit

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "reason": self.reason,
            "used": self.used,
            "limit": self.limit,
            "remaining": self.remaining,
            "overage_policy": self.overage_policy,
        }


def month_start(at: datetime | None = None) -> datetime:
    """First instant of the month containing ``at`` (local time)."""
    at = timezone.localtime(at or timezone.now())
    return at.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


class QuotaEnforcer:
    """
    Decide whether a tenant may emit another document this period.

    Usage:
        result = QuotaEnforcer().check_quota(tenant_id)
        if not result.allowed:
            ...
    """

    def check_quota(self, tenant_id: Any, at: datetime | None = None) -> QuotaCheckResult:
        at = at or timezone.now()
        subscription = Subscription.get_active_for_tenant(tenant_id, at=at)

        if subscription is None:
            metrics.record_quota_check("no_subscription")
            return QuotaCheckResult(allowed=True, reason=REASON_NO_SUBSCRIPTION)

        package = subscription.package
        if package is None:
            logger.warning(f"⚠️ [e-Invoicing Quota] Subscription {subscription.id} has no package, denying")
            metrics.record_quota_check("package_not_found")
            return QuotaCheckResult(allowed=False, reason=REASON_PACKAGE_NOT_FOUND)

        limit = subscription.documents_included_snapshot or package.included_documents
        used = self._used_this_month(tenant_id, at)
        remaining = max(limit - used, 0)

        if used < limit:
            metrics.record_quota_check("allowed")
            return QuotaCheckResult(allowed=True, used=used, limit=limit, remaining=remaining)

        policy = subscription.overage_policy or OveragePolicy.BLOCK.value
        if policy == OveragePolicy.ALLOW_AND_CHARGE.value and subscription.overage_price_per_doc_usd_cents:
            metrics.record_quota_check("overage")
            logger.info(f"[e-Invoicing Quota] Tenant {tenant_id} over allowance ({used}/{limit}), charging overage")
            return QuotaCheckResult(
                allowed=True,
                used=used,
                limit=limit,
                remaining=0,
                overage_policy=policy,
            )

        metrics.record_quota_check("exceeded")
        logger.info(f"[e-Invoicing Quota] Tenant {tenant_id} quota exceeded ({used}/{limit}, policy {policy})")
        return QuotaCheckResult(
            allowed=False,
            used=used,
            limit=limit,
            remaining=0,
            reason=REASON_QUOTA_EXCEEDED,
            overage_policy=policy,
        )

    def _used_this_month(self, tenant_id: Any, at: datetime) -> int:
        usage = UsagePeriod.objects.filter(tenant_id=tenant_id, period_start=month_start(at)).first()
        return usage.used_documents if usage else 0


quota_enforcer = QuotaEnforcer()


def check_quota(tenant_id: Any) -> QuotaCheckResult:
    return quota_enforcer.check_quota(tenant_id)
