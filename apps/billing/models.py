"""
Document packages and tenant subscriptions.

Subscription management (plans, charges, renewals) lives outside the
e-invoicing engine; these models only expose the monthly document
allowance and the overage policy that quota checks read.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import StrEnum

from django.db import models
from django.utils import timezone


class OveragePolicy(StrEnum):
    """Behavior once the monthly document allowance is used up."""

    BLOCK = "block"
    ALLOW_AND_CHARGE = "allow_and_charge"
    ALLOW_AND_MARK_OVERAGE = "allow_and_mark_overage"

    @classmethod
    def choices(cls) -> list[tuple[str, str]]:
        return [(policy.value, policy.name.replace("_", " ").title()) for policy in cls]


class SubscriptionStatus(StrEnum):
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

    @classmethod
    def choices(cls) -> list[tuple[str, str]]:
        return [(status.value, status.name.replace("_", " ").title()) for status in cls]


class DocumentPackage(models.Model):
    """Commercial plan defining how many electronic documents a month includes."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=100)
    included_documents = models.PositiveIntegerField(
        default=0,
        help_text="Electronic documents included per billing cycle",
    )
    billing_cycle = models.CharField(
        max_length=20,
        default="monthly",
        choices=[("monthly", "Monthly"), ("annual", "Annual")],
    )
    price_usd_cents = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = "billing_document_package"

    def __str__(self) -> str:
        return self.name


class Subscription(models.Model):
    """A tenant's subscription to a document package for one cycle."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey("pos.Tenant", on_delete=models.CASCADE, related_name="document_subscriptions")
    package = models.ForeignKey(
        DocumentPackage,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="subscriptions",
        help_text="Package this subscription draws its allowance from",
    )
    status = models.CharField(
        max_length=20,
        choices=SubscriptionStatus.choices(),
        default=SubscriptionStatus.ACTIVE.value,
        db_index=True,
    )
    cycle_start = models.DateTimeField()
    cycle_end = models.DateTimeField()
    overage_policy = models.CharField(
        max_length=30,
        choices=OveragePolicy.choices(),
        default=OveragePolicy.BLOCK.value,
    )
    overage_price_per_doc_usd_cents = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Price charged per document beyond the allowance",
    )
    documents_included_snapshot = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Allowance frozen at subscription time; overrides the package value",
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "billing_subscription"
        indexes = [
            models.Index(fields=["tenant", "status", "cycle_start"], name="billing_sub_active_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.tenant_id} ({self.status})"

    @classmethod
    def get_active_for_tenant(cls, tenant_id: uuid.UUID | str, at: datetime | None = None) -> Subscription | None:
        """Subscription whose cycle bounds (inclusive) contain ``at``."""
        at = at or timezone.now()
        return (
            cls.objects.select_related("package")
            .filter(
                tenant_id=tenant_id,
                status=SubscriptionStatus.ACTIVE.value,
                cycle_start__lte=at,
                cycle_end__gte=at,
            )
            .order_by("-cycle_start")
            .first()
        )
