"""
MATIAS API v2 payloads built from POS records.

Payloads are typed per document family and tagged with their
``DocumentKind``:
- ``SalePayload``: POS-equivalent documents and invoices
- ``NotePayload``: credit and debit notes referencing an accepted document
- ``SupportPayload``: support documents for purchases from non-invoicing suppliers

Tax arithmetic follows DIAN 5.2 rules: every monetary value is rounded to
two decimals (half-up) at the step where it is produced, and document
totals are sums of already-rounded line values so the base of the document
always equals the sum of line bases.

Builders return ``None`` when the source record, tenant or provider
configuration cannot be resolved. Inconsistent data (e.g. a credit note
without the original CUFE) raises ``PayloadBuildError``.
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from django.utils import timezone

from apps.pos.models import Customer, Order, OrderAdjustment, Payment, Tenant

from .exceptions import PayloadBuildError
from .models import DocumentKind, DocumentQueueEntry, DocumentStatus, ProviderConfig, SupportPurchase
from .settings import (
    DEFAULT_CITY_ID,
    DEFAULT_COUNTRY_ID,
    DEFAULT_CUSTOMER_ADDRESS,
    DEFAULT_CUSTOMER_EMAIL,
    DEFAULT_POSTAL_CODE,
    DOCUMENT_TYPE_IDS,
    FINAL_CONSUMER_DNI,
    FINAL_CONSUMER_NAME,
    OPERATION_TYPE_CREDIT_NOTE,
    OPERATION_TYPE_DEBIT_NOTE,
    OPERATION_TYPE_SALE,
)

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")
TAX_ID_IVA = 1
SUPPORT_TAX_ID_IVA = "01"
SUPPORT_TAX_ID_NOT_CAUSED = "ZY"
SUPPORT_UNIT_MEASURE_ID = 70
SUPPORT_ITEM_ID_SCHEME = 4
UNIT_CODE = "1093"  # "Unidad"
ITEM_ID_SCHEME = "4"  # Standard adopted by the contributor
REFERENCE_PRICE_ID = "1"

PRODUCT_CODE_MAX_LENGTH = 20
DESCRIPTION_MAX_LENGTH = 300


def money(value: Decimal | int | float | str) -> Decimal:
    """Round to two decimals, half-up."""
    return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


# ===============================================================================
# CODE MAPPINGS
# ===============================================================================

# identity_document_id (MATIAS codes, not DIAN codes)
ID_TYPE_CODES = {
    "cc": 1,
    "cedula_ciudadania": 1,
    "nit": 2,
    "pp": 3,
    "pasaporte": 3,
    "passport": 3,
    "ce": 4,
    "cedula_extranjeria": 4,
    "ti": 5,
    "tarjeta_identidad": 5,
    "cf": 6,
    "consumidor_final": 6,
}
FINAL_CONSUMER_ID_TYPE = 6

# means_payment_id: the concrete instrument
MEANS_OF_PAYMENT_CODES = {
    "cash": 10,
    "card": 41,
    "credit_card": 41,
    "debit_card": 40,
    "transfer": 42,
    "check": 2,
}
MEANS_CASH = 10

# payment_method_id: the general category
PAYMENT_METHOD_CASH = 1  # Contado
PAYMENT_METHOD_MIXED = 3

ORGANIZATION_LEGAL_ENTITY = 1
ORGANIZATION_NATURAL_PERSON = 2
TAX_REGIME_NOT_RESPONSIBLE = 2
TAX_LEVEL_NOT_RESPONSIBLE = 5
NIT_ID_TYPE = ID_TYPE_CODES["nit"]

CREDIT_NOTE_CONCEPTS = {
    "devolucion": 1,
    "anulacion": 2,
    "descuento": 3,
    "ajuste_precio": 4,
    "otros": 5,
}
DEBIT_NOTE_CONCEPTS = {
    "intereses": 1,
    "gastos": 2,
    "cambio_valor": 3,
    "otros": 4,
}


def map_id_type(id_type: str | None) -> int:
    return ID_TYPE_CODES.get((id_type or "").lower(), 1)


def map_tax_level(liability_id: int | None) -> int:
    """
    MATIAS tax_level_id (1-5) from a stored liability code.

    Values already in range pass through; legacy DIAN liability codes are
    translated; everything else is "not VAT responsible" (5).
    """
    if liability_id and 1 <= liability_id <= 5:
        return liability_id
    match liability_id:
        case 117 | 49:
            return 2  # Autorretenedor
        case 48:
            return 5
        case _:
            return 5


def map_means_of_payment(method: str | None) -> int:
    return MEANS_OF_PAYMENT_CODES.get((method or "cash").lower(), MEANS_CASH)


def sanitize_product_code(raw: str | None, position: int) -> str:
    code = re.sub(r"[^A-Za-z0-9\-_]", "", raw or "")[:PRODUCT_CODE_MAX_LENGTH]
    return code or f"P{position}"


# ===============================================================================
# PAYLOAD TYPES
# ===============================================================================


@dataclass
class TaxTotal:
    tax_amount: Decimal
    taxable_amount: Decimal
    percent: Decimal
    tax_id: int | str = TAX_ID_IVA

    def to_dict(self) -> dict[str, Any]:
        return {
            "tax_id": self.tax_id,
            "tax_amount": float(self.tax_amount),
            "taxable_amount": float(self.taxable_amount),
            "percent": float(self.percent),
        }


@dataclass
class PayloadLine:
    description: str
    code: str
    quantity: Decimal
    price_amount: Decimal
    line_extension_amount: Decimal
    tax: TaxTotal

    @property
    def tax_amount(self) -> Decimal:
        return self.tax.tax_amount

    def to_dict(self) -> dict[str, Any]:
        quantity = format(self.quantity.normalize(), "f")
        return {
            "invoiced_quantity": quantity,
            "quantity_units_id": UNIT_CODE,
            "line_extension_amount": f"{self.line_extension_amount:.2f}",
            "free_of_charge_indicator": False,
            "description": self.description,
            "code": self.code,
            "type_item_identifications_id": ITEM_ID_SCHEME,
            "reference_price_id": REFERENCE_PRICE_ID,
            "price_amount": f"{self.price_amount:.2f}",
            "base_quantity": quantity,
            "tax_totals": [self.tax.to_dict()],
        }


@dataclass
class CustomerData:
    dni: str
    name: str
    address: str
    email: str
    identity_document_id: int
    type_organization_id: int
    tax_regime_id: int
    tax_level_id: int
    country_id: int = DEFAULT_COUNTRY_ID
    city_id: int = DEFAULT_CITY_ID
    postal_code: str = DEFAULT_POSTAL_CODE
    phone: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "dni": self.dni,
            "company_name": self.name,
            "name": self.name,
            "address": self.address,
            "email": self.email,
            "postal_code": self.postal_code,
            "country_id": str(self.country_id),
            "city_id": str(self.city_id),
            "identity_document_id": str(self.identity_document_id),
            "type_organization_id": self.type_organization_id,
            "tax_regime_id": self.tax_regime_id,
            "tax_level_id": self.tax_level_id,
        }
        if self.phone:
            data["mobile"] = self.phone
            data["phone"] = self.phone
        return data


@dataclass
class MonetaryTotals:
    line_extension_amount: Decimal
    tax_exclusive_amount: Decimal
    tax_inclusive_amount: Decimal
    payable_amount: Decimal

    def to_dict(self) -> dict[str, str]:
        return {name: f"{value:.2f}" for name, value in asdict(self).items()}


@dataclass
class PaymentData:
    payment_method_id: int
    means_payment_id: int
    value_paid: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "payment_method_id": self.payment_method_id,
            "means_payment_id": self.means_payment_id,
            "value_paid": f"{self.value_paid:.2f}",
        }


@dataclass
class BillingReference:
    """Original accepted document a note corrects."""

    number: str
    uuid: str
    date: str
    scheme_name: str = "CUFE-SHA384"

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


@dataclass
class DiscrepancyResponse:
    reference_id: str
    response_id: str
    correction_concept_id: int
    description: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SalePayload:
    """POS-equivalent document or invoice."""

    kind: DocumentKind
    resolution_number: str
    prefix: str
    document_number: int
    customer: CustomerData
    lines: list[PayloadLine]
    totals: MonetaryTotals
    tax_total: TaxTotal
    payment: PaymentData
    type_document_id: int = DOCUMENT_TYPE_IDS["invoice"]
    operation_type_id: int = OPERATION_TYPE_SALE

    @property
    def total_tax(self) -> Decimal:
        return self.tax_total.tax_amount

    @property
    def payable(self) -> Decimal:
        return self.totals.payable_amount

    def to_dict(self) -> dict[str, Any]:
        """Request body for the provider."""
        return {
            "type_document_id": self.type_document_id,
            "resolution_number": self.resolution_number,
            "prefix": self.prefix,
            "document_number": str(self.document_number),
            "operation_type_id": self.operation_type_id,
            "graphic_representation": 0,
            "send_email": 0,
            "customer": self.customer.to_dict(),
            "lines": [line.to_dict() for line in self.lines],
            "legal_monetary_totals": self.totals.to_dict(),
            "tax_totals": [self.tax_total.to_dict()],
            "payments": [self.payment.to_dict()],
        }

    def envelope(self) -> dict[str, Any]:
        """Tagged form persisted as ``request_json``."""
        return {"kind": self.kind.value, "schema": "sale", "body": self.to_dict()}


@dataclass
class NotePayload(SalePayload):
    """Credit or debit note referencing an accepted document."""

    billing_reference: BillingReference | None = None
    discrepancy_response: DiscrepancyResponse | None = None

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.billing_reference is not None:
            data["billing_reference"] = self.billing_reference.to_dict()
        if self.discrepancy_response is not None:
            data["discrepancy_response"] = self.discrepancy_response.to_dict()
        return data

    def envelope(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "schema": "note", "body": self.to_dict()}


class SupportLine(PayloadLine):
    """Support document line; the ``/ds`` endpoints use their own line schema."""

    def to_dict(self) -> dict[str, Any]:
        quantity = format(self.quantity.normalize(), "f")
        return {
            "invoiced_quantity": quantity,
            "unit_measure_id": SUPPORT_UNIT_MEASURE_ID,
            "line_extension_amount": f"{self.line_extension_amount:.2f}",
            "description": self.description,
            "code": self.code,
            "type_item_identification_id": SUPPORT_ITEM_ID_SCHEME,
            "price_amount": f"{self.price_amount:.2f}",
            "base_quantity": quantity,
            "tax_totals": [self.tax.to_dict()],
        }


@dataclass
class SupportPayload:
    """Support document issued by the tenant on behalf of a supplier."""

    kind: DocumentKind
    resolution_number: str
    prefix: str
    document_number: int
    supplier: CustomerData
    lines: list[SupportLine]
    totals: MonetaryTotals
    tax_total: TaxTotal | None
    issued_at: datetime
    notes: str = ""
    type_document_id: int = DOCUMENT_TYPE_IDS["support_document"]

    @property
    def total_tax(self) -> Decimal:
        return self.tax_total.tax_amount if self.tax_total else Decimal("0.00")

    @property
    def payable(self) -> Decimal:
        return self.totals.payable_amount

    def to_dict(self) -> dict[str, Any]:
        issued_at = timezone.localtime(self.issued_at)
        data: dict[str, Any] = {
            "type_document_id": self.type_document_id,
            "resolution_number": self.resolution_number,
            "prefix": self.prefix,
            "number": self.document_number,
            "date": issued_at.strftime("%Y-%m-%d"),
            "time": issued_at.strftime("%H:%M:%S"),
            "notes": self.notes,
            "supplier": self.supplier.to_dict(),
            "legal_monetary_totals": self.totals.to_dict(),
            "invoice_lines": [line.to_dict() for line in self.lines],
        }
        if self.tax_total is not None:
            data["tax_totals"] = [self.tax_total.to_dict()]
        return data

    def envelope(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "schema": "support", "body": self.to_dict()}


Payload = SalePayload | NotePayload | SupportPayload


# ===============================================================================
# BUILDING BLOCKS
# ===============================================================================


def build_customer(customer: Customer | None) -> CustomerData:
    """Customer block; walk-in sales use the final consumer placeholder."""
    if customer is None:
        return CustomerData(
            dni=FINAL_CONSUMER_DNI,
            name=FINAL_CONSUMER_NAME,
            address=DEFAULT_CUSTOMER_ADDRESS,
            email=DEFAULT_CUSTOMER_EMAIL,
            identity_document_id=FINAL_CONSUMER_ID_TYPE,
            type_organization_id=ORGANIZATION_NATURAL_PERSON,
            tax_regime_id=TAX_REGIME_NOT_RESPONSIBLE,
            tax_level_id=map_tax_level(None),
        )

    return CustomerData(
        dni=customer.id_number or customer.phone or FINAL_CONSUMER_DNI,
        name=customer.name or FINAL_CONSUMER_NAME,
        address=customer.address or DEFAULT_CUSTOMER_ADDRESS,
        email=customer.email or DEFAULT_CUSTOMER_EMAIL,
        identity_document_id=map_id_type(customer.id_type),
        type_organization_id=customer.organization_type_id or ORGANIZATION_NATURAL_PERSON,
        tax_regime_id=customer.tax_regime_id or TAX_REGIME_NOT_RESPONSIBLE,
        tax_level_id=map_tax_level(customer.tax_liability_id),
        country_id=customer.country_code or DEFAULT_COUNTRY_ID,
        city_id=customer.municipality_id or DEFAULT_CITY_ID,
        phone=customer.phone or None,
    )


def build_payment(payments: list[Payment], amount: Decimal) -> PaymentData:
    """A single payment maps directly; several collapse to the mixed method."""
    if len(payments) > 1:
        return PaymentData(PAYMENT_METHOD_MIXED, MEANS_CASH, amount)
    method = payments[0].method if payments else "cash"
    return PaymentData(PAYMENT_METHOD_CASH, map_means_of_payment(method), amount)


def build_line(
    position: int,
    description: str,
    code: str | None,
    quantity: Decimal,
    unit_price: Decimal,
    tax_rate: Decimal,
) -> PayloadLine:
    line_extension = money(quantity * unit_price)
    line_tax = money(line_extension * tax_rate / 100) if tax_rate > 0 else money(0)
    return PayloadLine(
        description=(description or f"Item {position}")[:DESCRIPTION_MAX_LENGTH],
        code=sanitize_product_code(code, position),
        quantity=quantity,
        price_amount=money(unit_price),
        line_extension_amount=line_extension,
        tax=TaxTotal(tax_amount=line_tax, taxable_amount=line_extension, percent=tax_rate),
    )


def compute_totals(lines: list[PayloadLine]) -> tuple[Decimal, Decimal, Decimal]:
    """(total line extension, total tax, payable) from already-rounded lines."""
    total_line_extension = money(sum((line.line_extension_amount for line in lines), Decimal("0")))
    total_tax = money(sum((line.tax_amount for line in lines), Decimal("0")))
    return total_line_extension, total_tax, money(total_line_extension + total_tax)


def back_calculate_tax(gross_amount: Decimal, tax_rate: Decimal) -> tuple[Decimal, Decimal]:
    """(base, tax) contained in a tax-inclusive amount."""
    gross = money(gross_amount)
    tax = money(gross * tax_rate / (100 + tax_rate)) if tax_rate > 0 else money(0)
    return money(gross - tax), tax


def _parse_uuid(value: Any) -> uuid.UUID | None:
    """Source records are keyed by UUID; external ids (e.g. "gid://shop/Order/1") resolve to nothing."""
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _load_order_context(order_id: Any) -> tuple[Order, Tenant, ProviderConfig] | None:
    order_pk = _parse_uuid(order_id)
    order = (
        Order.objects.select_related("tenant", "customer").filter(pk=order_pk).first() if order_pk else None
    )
    if order is None:
        logger.warning(f"[e-Invoicing Payload] Order {order_id} not found")
        return None
    config = ProviderConfig.objects.filter(tenant_id=order.tenant_id).first()
    if config is None:
        logger.warning(f"[e-Invoicing Payload] No provider configuration for tenant {order.tenant_id}")
        return None
    return order, order.tenant, config


# ===============================================================================
# BUILDERS
# ===============================================================================


def build_pos_payload(
    order_id: Any,
    resolution_number: str,
    prefix: str,
    document_number: int,
    kind: DocumentKind = DocumentKind.POS,
) -> SalePayload | None:
    """Payload for a completed sale (POS-equivalent document or invoice)."""
    context = _load_order_context(order_id)
    if context is None:
        return None
    order, tenant, _config = context

    tax_rate = Decimal(tenant.tax_rate or 0)
    lines = [
        build_line(
            position,
            item.product.name if item.product else "",
            (item.product.sku or item.product.barcode) if item.product else None,
            Decimal(item.quantity),
            Decimal(item.unit_price),
            tax_rate,
        )
        for position, item in enumerate(order.items.select_related("product"), start=1)
    ]
    if not lines:
        raise PayloadBuildError(f"Order {order_id} has no items")

    total_line_extension, total_tax, payable = compute_totals(lines)

    return SalePayload(
        kind=kind,
        resolution_number=resolution_number,
        prefix=prefix,
        document_number=document_number,
        customer=build_customer(order.customer),
        lines=lines,
        totals=MonetaryTotals(
            line_extension_amount=total_line_extension,
            tax_exclusive_amount=total_line_extension,
            tax_inclusive_amount=payable,
            payable_amount=payable,
        ),
        tax_total=TaxTotal(tax_amount=total_tax, taxable_amount=total_line_extension, percent=tax_rate),
        payment=build_payment(list(order.payments.all()), payable),
    )


def _build_note_payload(
    adjustment_id: Any,
    resolution_number: str,
    prefix: str,
    document_number: int,
    kind: DocumentKind,
) -> NotePayload | None:
    adjustment_pk = _parse_uuid(adjustment_id)
    adjustment = (
        OrderAdjustment.objects.select_related("order").filter(pk=adjustment_pk).first() if adjustment_pk else None
    )
    if adjustment is None:
        logger.warning(f"[e-Invoicing Payload] Adjustment {adjustment_id} not found")
        return None
    context = _load_order_context(adjustment.order_id)
    if context is None:
        return None
    order, tenant, config = context

    is_credit = kind == DocumentKind.POS_CREDIT_NOTE
    original = (
        DocumentQueueEntry.objects.filter(
            tenant_id=order.tenant_id,
            source_id=str(order.pk),
            kind__in=[DocumentKind.POS.value, DocumentKind.INVOICE.value],
            status=DocumentStatus.ACCEPTED.value,
        )
        .order_by("-accepted_at")
        .first()
    )

    original_cufe = adjustment.original_cufe or (original.cufe if original else "")
    if not original_cufe:
        raise PayloadBuildError(f"Adjustment {adjustment_id} has no original document CUFE to reference")
    original_number = adjustment.original_number or (str(original.document_number) if original else "")
    if adjustment.original_date:
        original_date = adjustment.original_date.isoformat()
    elif original and original.accepted_at:
        original_date = original.accepted_at.date().isoformat()
    else:
        raise PayloadBuildError(f"Adjustment {adjustment_id} has no original document issue date")

    original_prefix = original.prefix if original else config.default_prefix
    reference = f"{original_prefix}{original_number}"

    concepts = CREDIT_NOTE_CONCEPTS if is_credit else DEBIT_NOTE_CONCEPTS
    concept_id = concepts.get(adjustment.correction_concept, 1 if is_credit else concepts["otros"])
    reason = adjustment.reason_notes or adjustment.correction_concept

    tax_rate = Decimal(tenant.tax_rate or 0)
    gross = money(adjustment.total)
    base, tax = back_calculate_tax(gross, tax_rate)
    code_prefix = "NC" if is_credit else "ND"
    label = "Nota crédito" if is_credit else "Nota débito"

    line = PayloadLine(
        description=f"{label} - {reason}"[:DESCRIPTION_MAX_LENGTH],
        code=f"{code_prefix}-{re.sub(r'[^A-Za-z0-9]', '', str(order.pk)[:8])}",
        quantity=Decimal("1"),
        price_amount=base,
        line_extension_amount=base,
        tax=TaxTotal(tax_amount=tax, taxable_amount=base, percent=tax_rate),
    )

    return NotePayload(
        kind=kind,
        resolution_number=resolution_number,
        prefix=prefix,
        document_number=document_number,
        customer=build_customer(order.customer),
        lines=[line],
        totals=MonetaryTotals(
            line_extension_amount=base,
            tax_exclusive_amount=base,
            tax_inclusive_amount=gross,
            payable_amount=gross,
        ),
        tax_total=TaxTotal(tax_amount=tax, taxable_amount=base, percent=tax_rate),
        payment=PaymentData(PAYMENT_METHOD_CASH, MEANS_CASH, gross),
        type_document_id=DOCUMENT_TYPE_IDS["credit_note" if is_credit else "debit_note"],
        operation_type_id=OPERATION_TYPE_CREDIT_NOTE if is_credit else OPERATION_TYPE_DEBIT_NOTE,
        billing_reference=BillingReference(number=reference, uuid=original_cufe, date=original_date),
        discrepancy_response=DiscrepancyResponse(
            reference_id=reference,
            response_id="2" if is_credit else str(concept_id),
            correction_concept_id=concept_id,
            description=reason,
        ),
    )


def build_credit_note_payload(
    adjustment_id: Any, resolution_number: str, prefix: str, document_number: int
) -> NotePayload | None:
    """Credit note for a refund; tax is back-calculated from the gross refund."""
    return _build_note_payload(
        adjustment_id, resolution_number, prefix, document_number, DocumentKind.POS_CREDIT_NOTE
    )


def build_debit_note_payload(
    adjustment_id: Any, resolution_number: str, prefix: str, document_number: int
) -> NotePayload | None:
    """Debit note for a surcharge on an accepted sale."""
    return _build_note_payload(
        adjustment_id, resolution_number, prefix, document_number, DocumentKind.POS_DEBIT_NOTE
    )


def build_supplier(purchase: SupportPurchase) -> CustomerData:
    """Supplier block; a NIT identifies a legal entity, anything else a natural person."""
    id_type = map_id_type(purchase.supplier_id_type or "cc")
    return CustomerData(
        dni=purchase.supplier_id_number,
        name=purchase.supplier_name,
        address=purchase.supplier_address,
        email=purchase.supplier_email,
        identity_document_id=id_type,
        type_organization_id=ORGANIZATION_LEGAL_ENTITY if id_type == NIT_ID_TYPE else ORGANIZATION_NATURAL_PERSON,
        tax_regime_id=TAX_REGIME_NOT_RESPONSIBLE,
        tax_level_id=TAX_LEVEL_NOT_RESPONSIBLE,
        city_id=purchase.supplier_city_id or DEFAULT_CITY_ID,
        phone=purchase.supplier_phone or None,
    )


def build_support_doc_payload(
    purchase_id: Any, resolution_number: str, prefix: str, document_number: int
) -> SupportPayload | None:
    """
    Support document for a purchase from a supplier who cannot invoice.

    Lines carry their own VAT rate; untaxed lines are reported with the
    "ZY" (not caused) tax code. The document-level tax block is omitted
    when no line is taxed.
    """
    purchase_pk = _parse_uuid(purchase_id)
    purchase = SupportPurchase.objects.filter(pk=purchase_pk).first() if purchase_pk else None
    if purchase is None:
        logger.warning(f"[e-Invoicing Payload] Support purchase {purchase_id} not found")
        return None

    lines = []
    for position, item in enumerate(purchase.lines.all(), start=1):
        line = build_line(
            position,
            item.description,
            item.code,
            Decimal(item.quantity),
            Decimal(item.unit_price),
            Decimal(item.tax_percent),
        )
        line.tax.tax_id = SUPPORT_TAX_ID_IVA if line.tax.percent > 0 else SUPPORT_TAX_ID_NOT_CAUSED
        lines.append(SupportLine(**vars(line)))
    if not lines:
        raise PayloadBuildError(f"Support purchase {purchase_id} has no lines")

    total_line_extension, total_tax, payable = compute_totals(lines)
    taxed_rates = [line.tax.percent for line in lines if line.tax.percent > 0]
    tax_total = (
        TaxTotal(
            tax_amount=total_tax,
            taxable_amount=total_line_extension,
            percent=taxed_rates[0],
            tax_id=SUPPORT_TAX_ID_IVA,
        )
        if total_tax > 0
        else None
    )

    return SupportPayload(
        kind=DocumentKind.SUPPORT_DOC,
        resolution_number=resolution_number,
        prefix=prefix,
        document_number=document_number,
        supplier=build_supplier(purchase),
        lines=lines,
        totals=MonetaryTotals(
            line_extension_amount=total_line_extension,
            tax_exclusive_amount=total_line_extension,
            tax_inclusive_amount=payable,
            payable_amount=payable,
        ),
        tax_total=tax_total,
        issued_at=purchase.issued_at,
        notes=purchase.notes,
    )


def build_payload_for_document(entry: DocumentQueueEntry) -> Payload | None:
    """Build the payload matching a queue entry's kind."""
    match entry.document_kind:
        case DocumentKind.POS | DocumentKind.INVOICE:
            return build_pos_payload(
                entry.source_id, entry.resolution_number, entry.prefix, entry.document_number, entry.document_kind
            )
        case DocumentKind.POS_CREDIT_NOTE:
            return build_credit_note_payload(
                entry.source_id, entry.resolution_number, entry.prefix, entry.document_number
            )
        case DocumentKind.POS_DEBIT_NOTE:
            return build_debit_note_payload(
                entry.source_id, entry.resolution_number, entry.prefix, entry.document_number
            )
        case DocumentKind.SUPPORT_DOC:
            return build_support_doc_payload(
                entry.source_id, entry.resolution_number, entry.prefix, entry.document_number
            )
    logger.warning(f"[e-Invoicing Payload] No builder for {entry.kind} documents")
    return None
