"""
Point-of-sale records consumed by the e-invoicing engine.

These models are owned by the POS side of the platform (order entry,
customer and product CRUD). The e-invoicing app only reads them to build
provider payloads and never writes to them.
"""

from __future__ import annotations

import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models


class Tenant(models.Model):
    """A merchant account. Tax configuration drives payload arithmetic."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=200)
    tax_rate = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Default VAT percentage applied to sales (e.g. 19.00)",
    )
    address = models.CharField(max_length=300, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "pos_tenant"

    def __str__(self) -> str:
        return self.name


class TenantMembership(models.Model):
    """Platform user working for a tenant (owner, admin or cashier)."""

    OWNER = "owner"
    ADMIN = "admin"
    CASHIER = "cashier"
    ROLE_CHOICES = [(OWNER, "Owner"), (ADMIN, "Admin"), (CASHIER, "Cashier")]

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="tenant_memberships")
    tenant = models.ForeignKey(Tenant, on_delete=models.CASCADE, related_name="memberships")
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=CASHIER)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "pos_tenant_membership"
        constraints = [
            models.UniqueConstraint(fields=["user", "tenant"], name="pos_unique_tenant_membership"),
        ]

    def __str__(self) -> str:
        return f"{self.user_id} @ {self.tenant_id} ({self.role})"


class Customer(models.Model):
    """Buyer identity as captured at the register."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey(Tenant, on_delete=models.CASCADE, related_name="customers")
    name = models.CharField(max_length=200)
    id_type = models.CharField(max_length=30, blank=True, help_text="cc, nit, passport, ce, ti, cf")
    id_number = models.CharField(max_length=30, blank=True)
    phone = models.CharField(max_length=30, blank=True)
    email = models.EmailField(blank=True)
    address = models.CharField(max_length=300, blank=True)
    country_code = models.PositiveIntegerField(null=True, blank=True, help_text="ISO 3166-1 numeric")
    municipality_id = models.PositiveIntegerField(null=True, blank=True)
    organization_type_id = models.PositiveSmallIntegerField(
        null=True, blank=True, help_text="1 = legal entity, 2 = natural person"
    )
    tax_regime_id = models.PositiveSmallIntegerField(null=True, blank=True)
    tax_liability_id = models.PositiveSmallIntegerField(null=True, blank=True)

    class Meta:
        db_table = "pos_customer"

    def __str__(self) -> str:
        return self.name


class Product(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey(Tenant, on_delete=models.CASCADE, related_name="products")
    name = models.CharField(max_length=300)
    sku = models.CharField(max_length=60, blank=True)
    barcode = models.CharField(max_length=60, blank=True)

    class Meta:
        db_table = "pos_product"

    def __str__(self) -> str:
        return self.name


class Order(models.Model):
    """A completed sale."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey(Tenant, on_delete=models.CASCADE, related_name="orders")
    customer = models.ForeignKey(
        Customer,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="orders",
        help_text="Empty for walk-in sales (final consumer)",
    )
    order_number = models.CharField(max_length=40, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "pos_order"
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return self.order_number or str(self.id)


class OrderItem(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey(Product, on_delete=models.SET_NULL, null=True, blank=True)
    quantity = models.DecimalField(max_digits=12, decimal_places=3)
    unit_price = models.DecimalField(max_digits=14, decimal_places=2)

    class Meta:
        db_table = "pos_order_item"
        ordering = ["id"]


class Payment(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="payments")
    method = models.CharField(max_length=30, default="cash")
    amount = models.DecimalField(max_digits=14, decimal_places=2)

    class Meta:
        db_table = "pos_payment"
        ordering = ["id"]


class OrderAdjustment(models.Model):
    """
    Post-sale correction of an accepted order.

    Refunds produce credit notes, surcharges produce debit notes. Both carry
    the reference to the original accepted document.
    """

    REFUND = "refund"
    SURCHARGE = "surcharge"
    ADJUSTMENT_TYPE_CHOICES = [(REFUND, "Refund"), (SURCHARGE, "Surcharge")]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey(Tenant, on_delete=models.CASCADE, related_name="order_adjustments")
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="adjustments")
    adjustment_type = models.CharField(max_length=20, choices=ADJUSTMENT_TYPE_CHOICES, default=REFUND)
    total = models.DecimalField(max_digits=14, decimal_places=2, help_text="Gross amount including tax")
    reason_notes = models.CharField(max_length=300, blank=True)
    correction_concept = models.CharField(
        max_length=30,
        default="devolucion",
        help_text="devolucion, anulacion, descuento, ajuste_precio, otros",
    )
    original_cufe = models.CharField(max_length=200, blank=True)
    original_number = models.CharField(max_length=40, blank=True)
    original_date = models.DateField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "pos_order_adjustment"
