"""
Tests for the canonical mapper.

These tests verify alias resolution, value parsing and totals reconciliation.
"""

import copy
from decimal import Decimal

import pytest

from einvoice_core.exceptions import MappingError, UnknownFormatError
from einvoice_core.mapper import (
    is_eu_vat_id,
    normalize_date,
    normalize_tax_rate,
    parse_decimal,
    reconcile_totals,
    resolve_field,
    to_canonical_invoice,
)
from einvoice_core.monetary import recompute_totals
from einvoice_core.schemas import LineItem


class TestResolveField:
    """Tests for alias lookup."""

    def test_canonical_key_wins(self):
        raw = {"sellerAddress": "Canonical 1", "sellerStreet": "Alias 2"}
        assert resolve_field(raw, "sellerAddress") == "Canonical 1"

    def test_first_alias_in_order(self):
        raw = {"sellerStreet": "Street 1", "seller_address": "Street 2"}
        assert resolve_field(raw, "sellerAddress") == "Street 1"

    def test_empty_values_are_skipped(self):
        raw = {"invoiceNumber": "  ", "invoice_number": "INV-9"}
        assert resolve_field(raw, "invoiceNumber") == "INV-9"

    def test_missing(self):
        assert resolve_field({}, "invoiceNumber") is None


class TestValueParsing:
    """Tests for number, rate and date normalization."""

    @pytest.mark.parametrize("text,expected", [
        ("1.234,56", Decimal("1234.56")),
        ("1,234.56", Decimal("1234.56")),
        ("12,5", Decimal("12.5")),
        ("€ 99.90", Decimal("99.90")),
        (42, Decimal("42")),
    ])
    def test_parse_decimal(self, text, expected):
        assert parse_decimal(text) == expected

    @pytest.mark.parametrize("value", [None, "abc", True, "NaN"])
    def test_parse_decimal_rejects(self, value):
        assert parse_decimal(value) is None

    def test_fractional_rate_becomes_percentage(self):
        assert normalize_tax_rate(Decimal("0.19")) == Decimal("19.00")
        assert normalize_tax_rate(Decimal("7")) == Decimal("7")

    @pytest.mark.parametrize("text,expected", [
        ("2024-01-15", "2024-01-15"),
        ("2024-01-15T10:00:00Z", "2024-01-15"),
        ("20240115", "2024-01-15"),
        ("15.01.2024", "2024-01-15"),
        ("15/01/2024", "2024-01-15"),
        ("15 January 2024", "2024-01-15"),
    ])
    def test_normalize_date(self, text, expected):
        assert normalize_date(text) == expected

    def test_ambiguous_slash_date_kept(self):
        assert normalize_date("01/02/2024") == "01/02/2024"

    def test_eu_vat_id(self):
        assert is_eu_vat_id("DE123456789")
        assert is_eu_vat_id("fr 12 345678901")
        assert not is_eu_vat_id("12/345/67890")
        assert not is_eu_vat_id("US123456789")


class TestToCanonicalInvoice:
    """Tests for record mapping."""

    def test_inv1_totals(self, inv1_record):
        invoice = to_canonical_invoice(inv1_record)
        assert invoice.output_format == "xrechnung-cii"
        assert invoice.totals.subtotal == Decimal("200.00")
        assert invoice.totals.tax_amount == Decimal("38.00")
        assert invoice.totals.total_amount == Decimal("238.00")

    def test_idempotent(self, xrechnung_record):
        first = to_canonical_invoice(xrechnung_record, "xrechnung-cii")
        second = to_canonical_invoice(xrechnung_record, "xrechnung-cii")
        assert first == second

    def test_raw_not_modified(self, xrechnung_record):
        before = copy.deepcopy(xrechnung_record)
        to_canonical_invoice(xrechnung_record)
        assert xrechnung_record == before

    def test_explicit_format_overrides_record(self, inv1_record):
        invoice = to_canonical_invoice(inv1_record, "peppol-bis")
        assert invoice.output_format == "peppol-bis"

    def test_unknown_format(self, inv1_record):
        with pytest.raises(UnknownFormatError):
            to_canonical_invoice(inv1_record, "xrechnung-4")

    def test_not_a_mapping(self):
        with pytest.raises(MappingError):
            to_canonical_invoice(["INV-1"])

    def test_aliases_and_party_fields(self, xrechnung_record):
        invoice = to_canonical_invoice(xrechnung_record)
        assert invoice.seller.address == "Hauptstraße 1"
        assert invoice.payment.iban == "DE89370400440532013000"
        assert invoice.buyer_reference == "04011000-12345-03"

    def test_email_becomes_electronic_address(self, xrechnung_record):
        invoice = to_canonical_invoice(xrechnung_record)
        assert invoice.buyer.electronic_address == "rechnung@stadt-koeln.de"
        assert invoice.buyer.electronic_address_scheme == "EM"

    def test_seller_tax_id_split(self, inv1_record):
        vat = to_canonical_invoice({**inv1_record, "sellerTaxId": "DE123456789"})
        assert vat.seller.vat_id == "DE123456789"
        local = to_canonical_invoice({**inv1_record, "sellerTaxId": "12/345/67890"})
        assert local.seller.tax_number == "12/345/67890"
        assert local.seller.vat_id is None

    def test_line_defaults(self, inv1_record):
        raw = {**inv1_record, "taxRate": 7, "lineItems": [{"name": "Book", "price": "12,50"}]}
        invoice = to_canonical_invoice(raw)
        item = invoice.line_items[0]
        assert item.description == "Book"
        assert item.quantity == Decimal("1")
        assert item.total_price == Decimal("12.50")
        assert item.tax_rate == Decimal("7")

    def test_malformed_line_entries_skipped(self, inv1_record):
        raw = {**inv1_record, "lineItems": [inv1_record["lineItems"][0], "garbage", 42]}
        invoice = to_canonical_invoice(raw)
        assert len(invoice.line_items) == 1

    def test_credit_note_type(self, inv1_record):
        invoice = to_canonical_invoice({**inv1_record, "documentTypeCode": "381"})
        assert invoice.document_type_code == 381
        assert invoice.is_credit_note

    def test_gross_priced_lines_converted_to_net(self, inv1_record):
        raw = {
            **inv1_record,
            "lineItems": [{"description": "Gross item", "quantity": 1, "unitPrice": 119, "taxRate": 19}],
            "allowanceCharges": [{"chargeIndicator": False, "amount": 11.90, "taxRate": 19}],
            "subtotal": 100,
        }
        invoice = to_canonical_invoice(raw)
        assert invoice.line_items[0].total_price == Decimal("100.00")
        assert invoice.allowance_charges[0].amount == Decimal("10.00")

    @pytest.mark.parametrize("line,field", [
        ({"description": "Huge", "unitPrice": "1e30"}, "lineItems.unitPrice"),
        ({"description": "Huge", "quantity": "1e14", "unitPrice": "1e14"}, "lineItems.totalPrice"),
    ])
    def test_out_of_range_amount(self, inv1_record, line, field):
        with pytest.raises(MappingError) as exc_info:
            to_canonical_invoice({**inv1_record, "lineItems": [line]})
        assert field in str(exc_info.value)

    def test_collections_are_immutable(self, inv1_record):
        invoice = to_canonical_invoice(inv1_record)

        assert isinstance(invoice.line_items, tuple)
        assert isinstance(invoice.allowance_charges, tuple)
        assert isinstance(invoice.totals.tax_breakdown, tuple)
        with pytest.raises(AttributeError):
            invoice.line_items.append(invoice.line_items[0])

    def test_out_of_range_total(self, inv1_record):
        with pytest.raises(MappingError, match="totalAmount"):
            to_canonical_invoice({**inv1_record, "totalAmount": "1e30"})


class TestReconcileTotals:
    """Tests for choosing between extracted and recomputed totals."""

    @pytest.fixture
    def recomputed(self):
        item = LineItem(
            description="X",
            quantity=Decimal("2"),
            unit_price=Decimal("100"),
            total_price=Decimal("200"),
            tax_rate=Decimal("19"),
        )
        return recompute_totals([item])

    def test_missing_values_filled(self, recomputed):
        totals = reconcile_totals(None, None, None, recomputed, has_lines=True)
        assert (totals.subtotal, totals.tax_amount, totals.total_amount) == (
            Decimal("200.00"), Decimal("38.00"), Decimal("238.00")
        )

    def test_zero_treated_as_missing(self, recomputed):
        totals = reconcile_totals(Decimal("200"), Decimal("0"), Decimal("238"), recomputed, has_lines=True)
        assert totals.tax_amount == Decimal("38.00")

    def test_value_within_tolerance_kept(self, recomputed):
        totals = reconcile_totals(Decimal("200.01"), Decimal("38"), Decimal("238.01"), recomputed, has_lines=True)
        assert totals.subtotal == Decimal("200.01")

    def test_inconsistent_value_overridden(self, recomputed):
        totals = reconcile_totals(Decimal("200"), Decimal("38"), Decimal("999"), recomputed, has_lines=True)
        assert totals.total_amount == Decimal("238.00")

    def test_without_lines_raw_kept(self):
        empty = recompute_totals([])
        totals = reconcile_totals(Decimal("50"), Decimal("10"), Decimal("60"), empty, has_lines=False)
        assert totals.total_amount == Decimal("60.00")
