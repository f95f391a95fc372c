"""
Tests for MATIAS payload construction.
"""

from datetime import datetime, timedelta
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone

from apps.einvoicing.exceptions import PayloadBuildError
from apps.einvoicing.models import DocumentKind, DocumentStatus, SourceType
from apps.einvoicing.payloads import (
    NotePayload,
    SalePayload,
    SupportPayload,
    back_calculate_tax,
    build_credit_note_payload,
    build_debit_note_payload,
    build_payload_for_document,
    build_pos_payload,
    build_support_doc_payload,
    map_id_type,
    map_means_of_payment,
    map_tax_level,
    money,
    sanitize_product_code,
)
from apps.pos.models import OrderAdjustment, Payment
from tests.factories.einvoicing_factories import (
    PREFIX,
    RESOLUTION,
    create_adjustment,
    create_customer,
    create_document,
    create_order,
    create_provider_config,
    create_support_purchase,
    create_tenant,
)


class MoneyTestCase(TestCase):
    """Test two-decimal half-up rounding."""

    def test_rounds_half_up(self):
        """Test midpoints round away from zero."""
        self.assertEqual(money("2.675"), Decimal("2.68"))
        self.assertEqual(money("0.125"), Decimal("0.13"))
        self.assertEqual(money("1.994"), Decimal("1.99"))

    def test_back_calculated_tax(self):
        """Test tax contained in a gross amount is split off."""
        self.assertEqual(back_calculate_tax(Decimal("119.00"), Decimal("19")), (Decimal("100.00"), Decimal("19.00")))
        self.assertEqual(back_calculate_tax(Decimal("50.00"), Decimal("0")), (Decimal("50.00"), Decimal("0.00")))


class CodeMappingTestCase(TestCase):
    """Test provider code mappings."""

    def test_id_type_codes(self):
        """Test identity document codes including aliases and default."""
        self.assertEqual(map_id_type("cc"), 1)
        self.assertEqual(map_id_type("NIT"), 2)
        self.assertEqual(map_id_type("passport"), 3)
        self.assertEqual(map_id_type("ce"), 4)
        self.assertEqual(map_id_type("tarjeta_identidad"), 5)
        self.assertEqual(map_id_type("cf"), 6)
        self.assertEqual(map_id_type(None), 1)
        self.assertEqual(map_id_type("unknown"), 1)

    def test_tax_level_codes(self):
        """Test tax level pass-through and legacy liability codes."""
        self.assertEqual(map_tax_level(1), 1)
        self.assertEqual(map_tax_level(3), 3)
        self.assertEqual(map_tax_level(117), 2)
        self.assertEqual(map_tax_level(49), 2)
        self.assertEqual(map_tax_level(48), 5)
        self.assertEqual(map_tax_level(None), 5)
        self.assertEqual(map_tax_level(99), 5)

    def test_means_of_payment_codes(self):
        """Test payment instrument codes."""
        self.assertEqual(map_means_of_payment("cash"), 10)
        self.assertEqual(map_means_of_payment("card"), 41)
        self.assertEqual(map_means_of_payment("credit_card"), 41)
        self.assertEqual(map_means_of_payment("debit_card"), 40)
        self.assertEqual(map_means_of_payment("transfer"), 42)
        self.assertEqual(map_means_of_payment("check"), 2)
        self.assertEqual(map_means_of_payment("crypto"), 10)

    def test_product_code_sanitized(self):
        """Test product codes keep only allowed characters and length."""
        self.assertEqual(sanitize_product_code("AB C/12*", 1), "ABC12")
        self.assertEqual(sanitize_product_code("CAF-500_x", 1), "CAF-500_x")
        self.assertEqual(sanitize_product_code("X" * 30, 1), "X" * 20)
        self.assertEqual(sanitize_product_code("", 3), "P3")
        self.assertEqual(sanitize_product_code("@@@", 4), "P4")


class PosPayloadTestCase(TestCase):
    """Test sale payloads."""

    def setUp(self):
        self.tenant = create_tenant(tax_rate="19.00")
        create_provider_config(self.tenant)

    def _build(self, order, **kwargs):
        return build_pos_payload(order.id, RESOLUTION, PREFIX, 42, **kwargs)

    def test_two_line_tax_arithmetic(self):
        """Test per-line rounding and document totals at 19% VAT."""
        order = create_order(
            self.tenant,
            items=[("Cafe", "CAF", "2", "10.00"), ("Pan", "PAN", "3", "5.00")],
            payments=[("cash", "41.65")],
        )

        payload = self._build(order)

        self.assertIsInstance(payload, SalePayload)
        self.assertEqual([line.line_extension_amount for line in payload.lines], [Decimal("20.00"), Decimal("15.00")])
        self.assertEqual([line.tax_amount for line in payload.lines], [Decimal("3.80"), Decimal("2.85")])
        self.assertEqual(payload.totals.line_extension_amount, Decimal("35.00"))
        self.assertEqual(payload.total_tax, Decimal("6.65"))
        self.assertEqual(payload.payable, Decimal("41.65"))

        body = payload.to_dict()
        self.assertEqual(body["legal_monetary_totals"]["payable_amount"], "41.65")
        self.assertEqual(body["legal_monetary_totals"]["tax_exclusive_amount"], "35.00")
        self.assertEqual(body["tax_totals"][0]["tax_amount"], 6.65)
        self.assertEqual(body["lines"][0]["line_extension_amount"], "20.00")
        self.assertEqual(body["lines"][0]["invoiced_quantity"], "2")
        self.assertEqual(body["payments"][0]["value_paid"], "41.65")

    def test_line_rounding_happens_per_step(self):
        """Test fractional quantities round the line base before computing tax."""
        order = create_order(self.tenant, items=[("Queso", "QSO", "1.5", "1.25")])

        line = self._build(order).lines[0]

        self.assertEqual(line.line_extension_amount, Decimal("1.88"))
        self.assertEqual(line.tax_amount, Decimal("0.36"))

    def test_zero_tax_rate(self):
        """Test a tenant without VAT produces zero tax."""
        self.tenant.tax_rate = Decimal("0")
        self.tenant.save()
        order = create_order(self.tenant, items=[("Libro", "LIB", "1", "30.00")])

        payload = self._build(order)

        self.assertEqual(payload.total_tax, Decimal("0.00"))
        self.assertEqual(payload.payable, Decimal("30.00"))

    def test_document_header(self):
        """Test numbering and fixed header fields."""
        order = create_order(self.tenant)

        body = self._build(order).to_dict()

        self.assertEqual(body["resolution_number"], RESOLUTION)
        self.assertEqual(body["prefix"], PREFIX)
        self.assertEqual(body["document_number"], "42")
        self.assertEqual(body["type_document_id"], 7)
        self.assertEqual(body["operation_type_id"], 1)
        self.assertEqual(body["send_email"], 0)

    def test_walk_in_sale_uses_final_consumer(self):
        """Test an order without customer is issued to the final consumer."""
        customer = self._build(create_order(self.tenant)).to_dict()["customer"]

        self.assertEqual(customer["dni"], "222222222222")
        self.assertEqual(customer["company_name"], "CONSUMIDOR FINAL")
        self.assertEqual(customer["identity_document_id"], "6")
        self.assertEqual(customer["country_id"], "170")
        self.assertEqual(customer["city_id"], "149")
        self.assertNotIn("mobile", customer)

    def test_identified_customer(self):
        """Test customer identity fields are mapped."""
        buyer = create_customer(self.tenant, tax_liability_id=117, organization_type_id=1)
        order = create_order(self.tenant, customer=buyer)

        customer = self._build(order).to_dict()["customer"]

        self.assertEqual(customer["dni"], "900123456")
        self.assertEqual(customer["name"], "Comercializadora Andina SAS")
        self.assertEqual(customer["identity_document_id"], "2")
        self.assertEqual(customer["type_organization_id"], 1)
        self.assertEqual(customer["tax_level_id"], 2)
        self.assertEqual(customer["city_id"], "1")
        self.assertEqual(customer["mobile"], "3001234567")

    def test_customer_without_id_number_falls_back_to_phone(self):
        """Test the phone stands in for a missing identification number."""
        buyer = create_customer(self.tenant, id_type="cc", id_number="", phone="3109998877")
        customer = self._build(create_order(self.tenant, customer=buyer)).to_dict()["customer"]

        self.assertEqual(customer["dni"], "3109998877")
        self.assertEqual(customer["identity_document_id"], "1")

    def test_single_card_payment(self):
        """Test one payment maps to cash method with its instrument."""
        order = create_order(self.tenant, payments=[("card", "23.80")])

        payment = self._build(order).to_dict()["payments"][0]

        self.assertEqual(payment["payment_method_id"], 1)
        self.assertEqual(payment["means_payment_id"], 41)

    def test_split_payment_is_mixed(self):
        """Test several payments collapse to the mixed method."""
        order = create_order(self.tenant, payments=[("cash", "10.00"), ("card", "13.80")])

        payment = self._build(order).to_dict()["payments"][0]

        self.assertEqual(payment["payment_method_id"], 3)
        self.assertEqual(payment["means_payment_id"], 10)
        self.assertEqual(payment["value_paid"], "23.80")

    def test_no_payment_defaults_to_cash(self):
        """Test an order without payment rows is reported as cash."""
        order = create_order(self.tenant, payments=[])
        Payment.objects.filter(order=order).delete()

        payment = self._build(order).to_dict()["payments"][0]

        self.assertEqual((payment["payment_method_id"], payment["means_payment_id"]), (1, 10))

    def test_line_without_product_gets_generic_description(self):
        """Test items whose product was deleted still produce a valid line."""
        order = create_order(self.tenant)
        order.items.update(product=None)

        line = self._build(order).to_dict()["lines"][0]

        self.assertEqual(line["description"], "Item 1")
        self.assertEqual(line["code"], "P1")

    def test_missing_order_returns_none(self):
        """Test an unknown order builds nothing."""
        self.assertIsNone(build_pos_payload("00000000-0000-0000-0000-000000000000", RESOLUTION, PREFIX, 1))

    def test_missing_configuration_returns_none(self):
        """Test a tenant without provider configuration builds nothing."""
        other = create_tenant(name="Sin Config")
        order = create_order(other)

        self.assertIsNone(self._build(order))

    def test_order_without_items_raises(self):
        """Test an empty order is inconsistent data."""
        order = create_order(self.tenant, items=[])

        with self.assertRaises(PayloadBuildError):
            self._build(order)

    def test_envelope_is_tagged_with_kind(self):
        """Test the persisted form carries the document kind."""
        envelope = self._build(create_order(self.tenant), kind=DocumentKind.INVOICE).envelope()

        self.assertEqual(envelope["kind"], "INVOICE")
        self.assertEqual(envelope["schema"], "sale")
        self.assertEqual(envelope["body"]["prefix"], PREFIX)


class NotePayloadTestCase(TestCase):
    """Test credit and debit note payloads."""

    def setUp(self):
        self.tenant = create_tenant(tax_rate="19.00")
        create_provider_config(self.tenant)
        self.order = create_order(self.tenant)

    def test_credit_note_back_calculates_tax(self):
        """Test a gross refund is split into base and tax."""
        adjustment = create_adjustment(self.order, total="119.00")

        payload = build_credit_note_payload(adjustment.id, RESOLUTION, "NC", 3)

        self.assertIsInstance(payload, NotePayload)
        self.assertEqual(payload.lines[0].line_extension_amount, Decimal("100.00"))
        self.assertEqual(payload.total_tax, Decimal("19.00"))
        self.assertEqual(payload.payable, Decimal("119.00"))

        body = payload.to_dict()
        self.assertEqual(body["type_document_id"], 5)
        self.assertEqual(body["operation_type_id"], 12)
        self.assertEqual(body["legal_monetary_totals"]["tax_inclusive_amount"], "119.00")
        self.assertEqual(body["payments"][0]["value_paid"], "119.00")

    def test_credit_note_references_original_document(self):
        """Test billing reference and discrepancy response."""
        adjustment = create_adjustment(self.order, correction_concept="anulacion", reason_notes="Venta anulada")

        body = build_credit_note_payload(adjustment.id, RESOLUTION, "NC", 3).to_dict()

        self.assertEqual(body["billing_reference"]["number"], f"{PREFIX}15")
        self.assertEqual(body["billing_reference"]["uuid"], "cufe-original-123")
        self.assertEqual(body["billing_reference"]["scheme_name"], "CUFE-SHA384")
        self.assertEqual(body["billing_reference"]["date"], timezone.localdate().isoformat())
        self.assertEqual(body["discrepancy_response"]["correction_concept_id"], 2)
        self.assertEqual(body["discrepancy_response"]["response_id"], "2")
        self.assertEqual(body["lines"][0]["description"], "Nota crédito - Venta anulada")
        self.assertTrue(body["lines"][0]["code"].startswith("NC-"))

    def test_credit_note_uses_accepted_sale_document(self):
        """Test missing original fields are taken from the accepted sale document."""
        accepted_at = timezone.now() - timedelta(days=2)
        create_document(
            self.tenant,
            document_number=7,
            prefix="FPOS",
            source_id=str(self.order.id),
            status=DocumentStatus.ACCEPTED.value,
            cufe="cufe-from-queue",
            accepted_at=accepted_at,
        )
        adjustment = create_adjustment(self.order, original_cufe="", original_number="", original_date=None)

        reference = build_credit_note_payload(adjustment.id, RESOLUTION, "NC", 3).to_dict()["billing_reference"]

        self.assertEqual(reference["number"], "FPOS7")
        self.assertEqual(reference["uuid"], "cufe-from-queue")
        self.assertEqual(reference["date"], accepted_at.date().isoformat())

    def test_credit_note_without_cufe_raises(self):
        """Test a note cannot be built without the original legal identifier."""
        adjustment = create_adjustment(self.order, original_cufe="")

        with self.assertRaises(PayloadBuildError):
            build_credit_note_payload(adjustment.id, RESOLUTION, "NC", 3)

    def test_unknown_concept_defaults_to_devolucion(self):
        """Test an unrecognized correction concept falls back to the return concept."""
        adjustment = create_adjustment(self.order, correction_concept="otro_motivo")

        body = build_credit_note_payload(adjustment.id, RESOLUTION, "NC", 3).to_dict()

        self.assertEqual(body["discrepancy_response"]["correction_concept_id"], 1)

    def test_debit_note(self):
        """Test a surcharge produces a debit note."""
        adjustment = create_adjustment(
            self.order,
            total="11.90",
            adjustment_type=OrderAdjustment.SURCHARGE,
            correction_concept="intereses",
            reason_notes="Intereses de mora",
        )

        payload = build_debit_note_payload(adjustment.id, RESOLUTION, "ND", 1)
        body = payload.to_dict()

        self.assertEqual(payload.kind, DocumentKind.POS_DEBIT_NOTE)
        self.assertEqual(body["type_document_id"], 4)
        self.assertEqual(body["operation_type_id"], 13)
        self.assertEqual(body["discrepancy_response"]["correction_concept_id"], 1)
        self.assertEqual(body["lines"][0]["line_extension_amount"], "10.00")
        self.assertTrue(body["lines"][0]["code"].startswith("ND-"))

    def test_missing_adjustment_returns_none(self):
        """Test an unknown adjustment builds nothing."""
        self.assertIsNone(build_credit_note_payload("00000000-0000-0000-0000-000000000000", RESOLUTION, "NC", 1))


class BuildPayloadForDocumentTestCase(TestCase):
    """Test dispatch from a queue entry."""

    def setUp(self):
        self.tenant = create_tenant()
        create_provider_config(self.tenant)
        self.order = create_order(self.tenant)

    def test_sale_document(self):
        """Test a POS entry builds a sale payload numbered like the entry."""
        entry = create_document(self.tenant, document_number=9, source_id=str(self.order.id))

        payload = build_payload_for_document(entry)

        self.assertIsInstance(payload, SalePayload)
        self.assertEqual(payload.document_number, 9)

    def test_credit_note_document(self):
        """Test a credit note entry builds from the adjustment it references."""
        adjustment = create_adjustment(self.order)
        entry = create_document(
            self.tenant,
            kind=DocumentKind.POS_CREDIT_NOTE.value,
            source_type=SourceType.REFUND.value,
            source_id=str(adjustment.id),
        )

        self.assertIsInstance(build_payload_for_document(entry), NotePayload)

    def test_support_document(self):
        """Test a support document entry builds from its supplier purchase."""
        purchase = create_support_purchase(self.tenant)
        entry = create_document(
            self.tenant,
            document_number=4,
            kind=DocumentKind.SUPPORT_DOC.value,
            source_type=SourceType.PURCHASE.value,
            source_id=str(purchase.id),
        )

        payload = build_payload_for_document(entry)

        self.assertIsInstance(payload, SupportPayload)
        self.assertEqual(payload.document_number, 4)

    def test_support_adjustment_has_no_builder(self):
        """Test kinds without a builder produce no payload."""
        entry = create_document(self.tenant, kind=DocumentKind.SUPPORT_ADJUSTMENT.value, source_type="purchase")

        self.assertIsNone(build_payload_for_document(entry))

    def test_external_source_ids_build_nothing(self):
        """Test ids from other systems resolve to no source record instead of raising."""
        for number, (kind, source_id) in enumerate(
            [
                (DocumentKind.POS, "gid://shopify/Order/1001"),
                (DocumentKind.POS_CREDIT_NOTE, "REFUND-77"),
                (DocumentKind.SUPPORT_DOC, "manual-1700000000"),
            ],
            start=20,
        ):
            with self.subTest(kind=kind):
                entry = create_document(self.tenant, document_number=number, kind=kind.value, source_id=source_id)
                self.assertIsNone(build_payload_for_document(entry))


class SupportPayloadTestCase(TestCase):
    """Test support documents for purchases from non-invoicing suppliers."""

    def setUp(self):
        self.tenant = create_tenant()
        create_provider_config(self.tenant)
        self.issued_at = timezone.make_aware(datetime(2026, 10, 19, 14, 5, 0))

    def _build(self, purchase, number=4):
        return build_support_doc_payload(purchase.id, RESOLUTION, "DS", number)

    def test_untaxed_purchase(self):
        """Test a purchase without VAT uses the not-caused tax code and no document tax block."""
        purchase = create_support_purchase(self.tenant, issued_at=self.issued_at)

        data = self._build(purchase).to_dict()

        self.assertEqual(data["type_document_id"], 11)
        self.assertEqual((data["resolution_number"], data["prefix"], data["number"]), (RESOLUTION, "DS", 4))
        self.assertEqual((data["date"], data["time"]), ("2026-10-19", "14:05:00"))
        self.assertEqual(data["notes"], "Compra de cosecha")
        self.assertNotIn("tax_totals", data)
        line = data["invoice_lines"][0]
        self.assertEqual(line["invoiced_quantity"], "10")
        self.assertEqual(line["line_extension_amount"], "125.00")
        self.assertEqual(line["unit_measure_id"], 70)
        self.assertEqual(line["type_item_identification_id"], 4)
        self.assertEqual(line["tax_totals"], [{"tax_id": "ZY", "tax_amount": 0.0, "taxable_amount": 125.0, "percent": 0.0}])
        self.assertEqual(data["legal_monetary_totals"]["payable_amount"], "125.00")

    def test_taxed_lines_are_summed_after_rounding(self):
        """Test document totals are sums of rounded line values."""
        purchase = create_support_purchase(
            self.tenant,
            lines=[("Cafe pergamino", "10", "12.50", "0"), ("Fertilizante", "2", "33.33", "19")],
        )

        payload = self._build(purchase)
        data = payload.to_dict()

        self.assertEqual(data["invoice_lines"][1]["tax_totals"][0]["tax_id"], "01")
        self.assertEqual(data["invoice_lines"][1]["tax_totals"][0]["tax_amount"], 12.67)
        self.assertEqual(
            data["legal_monetary_totals"],
            {
                "line_extension_amount": "191.66",
                "tax_exclusive_amount": "191.66",
                "tax_inclusive_amount": "204.33",
                "payable_amount": "204.33",
            },
        )
        self.assertEqual(
            data["tax_totals"], [{"tax_id": "01", "tax_amount": 12.67, "taxable_amount": 191.66, "percent": 19.0}]
        )
        self.assertEqual(payload.total_tax, Decimal("12.67"))

    def test_supplier_block(self):
        """Test a natural-person supplier and a NIT supplier."""
        person = self._build(create_support_purchase(self.tenant)).to_dict()["supplier"]
        company = self._build(
            create_support_purchase(self.tenant, supplier_id_type="nit", supplier_id_number="901234567", supplier_city_id=1)
        ).to_dict()["supplier"]

        self.assertEqual(person["dni"], "1012345678")
        self.assertEqual(person["identity_document_id"], "1")
        self.assertEqual(person["type_organization_id"], 2)
        self.assertEqual((person["tax_regime_id"], person["tax_level_id"]), (2, 5))
        self.assertEqual(person["city_id"], "149")
        self.assertEqual(person["mobile"], "3109876543")
        self.assertEqual(company["identity_document_id"], "2")
        self.assertEqual(company["type_organization_id"], 1)
        self.assertEqual(company["city_id"], "1")

    def test_envelope_is_tagged(self):
        """Test the persisted envelope names the support schema."""
        envelope = self._build(create_support_purchase(self.tenant)).envelope()

        self.assertEqual((envelope["kind"], envelope["schema"]), ("SUPPORT_DOC", "support"))

    def test_purchase_without_lines_raises(self):
        """Test an empty purchase is inconsistent data."""
        with self.assertRaises(PayloadBuildError):
            self._build(create_support_purchase(self.tenant, lines=[]))

    def test_missing_purchase_returns_none(self):
        """Test an unknown purchase builds nothing."""
        self.assertIsNone(build_support_doc_payload("00000000-0000-0000-0000-000000000000", RESOLUTION, "DS", 1))
