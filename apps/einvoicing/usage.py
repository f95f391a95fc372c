"""
Per-tenant monthly document usage counters.

Incremented once per accepted document. Metering never blocks a document
that DIAN already accepted: a tenant without an active subscription is
skipped, and the worker logs and swallows metering errors.
"""

from __future__ import annotations

import calendar
import logging
from datetime import datetime
from typing import Any

from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from apps.billing.models import Subscription

from .metrics import metrics
from .models import DocumentKind, UsagePeriod
from .quota import month_start

logger = logging.getLogger(__name__)


def counter_for_kind(kind: DocumentKind) -> str:
    """UsagePeriod counter field a document kind is metered against."""
    match kind:
        case DocumentKind.POS:
            return "used_pos"
        case DocumentKind.INVOICE:
            return "used_invoice"
        case DocumentKind.POS_CREDIT_NOTE | DocumentKind.POS_DEBIT_NOTE:
            return "used_notes"
        case DocumentKind.SUPPORT_DOC | DocumentKind.SUPPORT_ADJUSTMENT:
            return "used_support_docs"
    raise ValueError(f"Unknown document kind: {kind!r}")


def month_end(start: datetime) -> datetime:
    """Last second of the month starting at ``start``."""
    last_day = calendar.monthrange(start.year, start.month)[1]
    return start.replace(day=last_day, hour=23, minute=59, second=59, microsecond=0)


class UsageMeter:
    """
    Count accepted documents per tenant and month.

    Usage:
        UsageMeter().increment(tenant_id, DocumentKind.POS)
    """

    def increment(self, tenant_id: Any, kind: DocumentKind | str, at: datetime | None = None) -> bool:
        """
        Add one document to the tenant's current month.

        Returns:
            True if a counter was incremented, False when the tenant is unmetered
        """
        kind = DocumentKind(kind)
        at = at or timezone.now()

        subscription = Subscription.get_active_for_tenant(tenant_id, at=at)
        if subscription is None:
            logger.info(f"[e-Invoicing Usage] No active subscription for tenant {tenant_id}, usage not recorded")
            return False

        counter = counter_for_kind(kind)
        period_start = month_start(at)

        with transaction.atomic():
            usage = self._get_or_create_period(tenant_id, subscription, period_start)
            UsagePeriod.objects.filter(pk=usage.pk).update(
                **{counter: F(counter) + 1},
                used_total=F("used_total") + 1,
                updated_at=timezone.now(),
            )

        metrics.record_usage_increment(counter)
        logger.debug(f"[e-Invoicing Usage] Tenant {tenant_id}: {counter} +1 for {period_start:%Y-%m}")
        return True

    def _get_or_create_period(self, tenant_id: Any, subscription: Subscription, period_start: datetime) -> UsagePeriod:
        try:
            with transaction.atomic():
                usage, _ = UsagePeriod.objects.get_or_create(
                    tenant_id=tenant_id,
                    period_start=period_start,
                    defaults={"subscription": subscription, "period_end": month_end(period_start)},
                )
        except IntegrityError:
            # Another worker created the row first
            usage = UsagePeriod.objects.get(tenant_id=tenant_id, period_start=period_start)
        return usage


usage_meter = UsageMeter()
