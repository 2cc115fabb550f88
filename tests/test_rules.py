"""
Tests for individual business rules.

These tests call the check functions directly on canonical invoices built
from extraction records.
"""

from decimal import Decimal

import pytest

from einvoice_core.config import RuleCategory, Severity
from einvoice_core.mapper import to_canonical_invoice
from einvoice_core.rules import BASE_RULES, PROFILE_RULES
from einvoice_core.rules.base import (
    check_document_type,
    check_grand_total,
    check_line_calculations,
    check_line_sum,
    check_total_positive,
    required_field,
    resolve_path,
)
from einvoice_core.rules.fatturapa import check_natura_categories, check_recipient_code, check_tax_regime
from einvoice_core.rules.ksef import check_invoice_number, check_seller_nip, check_statutory_rates
from einvoice_core.rules.peppol import NLCIUS_RULES, CIUS_RO_RULES
from einvoice_core.rules.xrechnung import check_currency_eur, check_seller_contact
from einvoice_core.schemas import Totals


def rule_ids_for(rules, invoice) -> list[str]:
    """Run a rule list directly and collect the ids it reports."""
    ids = []
    for rule in rules:
        found = rule.check(invoice)
        if found is None:
            continue
        if not isinstance(found, list):
            found = [found]
        ids.extend(v.rule_id for v in found)
    return ids


@pytest.fixture
def invoice(xrechnung_record):
    return to_canonical_invoice(xrechnung_record)


# ============================================================================
# Rule Building Blocks
# ============================================================================

class TestRuleBuilders:
    """Tests for required_field and path resolution."""

    def test_resolve_path(self, invoice):
        assert resolve_path(invoice, "seller.postal_code") == "10115"
        assert resolve_path(invoice, "payment.due_date") is None

    def test_required_field(self, invoice):
        rule = required_field("X-1", "payment.due_date", "Due date is required")
        violation = rule.check(invoice)
        assert violation.rule_id == "X-1"
        assert violation.location == "invoice.payment.due_date"
        assert rule.category == RuleCategory.MANDATORY_FIELD
        assert rule.severity == Severity.ERROR

    def test_rule_ids_unique_per_profile(self):
        for profile, rules in PROFILE_RULES.items():
            ids = [rule.rule_id for rule in rules]
            assert len(ids) == len(set(ids)), profile

    def test_every_profile_runs_base_rules(self):
        for rules in PROFILE_RULES.values():
            assert rules[:len(BASE_RULES)] == BASE_RULES


# ============================================================================
# Base Rules
# ============================================================================

class TestConsistencyRules:
    """Tests for the EN 16931 calculation rules."""

    def test_consistent_invoice(self, invoice):
        assert check_line_sum(invoice) is None
        assert check_grand_total(invoice) is None

    def test_subtotal_mismatch(self, invoice):
        broken = invoice.model_copy(update={"totals": invoice.totals.model_copy(update={"subtotal": Decimal("150.00")})})
        violation = check_line_sum(broken)
        assert violation.rule_id == "BR-CO-10"
        assert "200.00" in violation.message

    def test_grand_total_mismatch(self, invoice):
        broken = invoice.model_copy(update={"totals": invoice.totals.model_copy(update={"total_amount": Decimal("240.00")})})
        assert check_grand_total(broken).rule_id == "BR-CO-15"

    def test_grand_total_within_tolerance(self, invoice):
        close = invoice.model_copy(update={"totals": invoice.totals.model_copy(update={"total_amount": Decimal("238.02")})})
        assert check_grand_total(close) is None

    def test_zero_total_allowed_for_credit_note(self, invoice):
        zero = invoice.model_copy(update={"totals": Totals()})
        assert check_total_positive(zero).rule_id == "BR-TOTAL-POSITIVE"
        credit = zero.model_copy(update={"document_type_code": 381})
        assert check_total_positive(credit) is None

    def test_line_calculation_warning(self, xrechnung_record):
        raw = {**xrechnung_record, "lineItems": [
            {"description": "A", "quantity": 2, "unitPrice": 100, "totalPrice": 150, "taxRate": 19},
        ]}
        violations = check_line_calculations(to_canonical_invoice(raw))
        assert [v.location for v in violations] == ["invoice.line_items[0].total_price"]

    def test_document_type(self, invoice):
        assert check_document_type(invoice) is None
        assert check_document_type(invoice.model_copy(update={"document_type_code": 999})).rule_id == "CL-BT-3"


# ============================================================================
# Profile Rules
# ============================================================================

class TestXRechnungRules:
    """Tests for the German BR-DE rules."""

    def test_seller_contact_lists_missing_parts(self, xrechnung_record):
        raw = {k: v for k, v in xrechnung_record.items() if k not in ("sellerPhone", "sellerEmail")}
        violation = check_seller_contact(to_canonical_invoice(raw))
        assert violation.rule_id == "BR-DE-2"
        assert "phone number" in violation.message
        assert "email address" in violation.message

    def test_eur_only(self, xrechnung_record):
        assert check_currency_eur(to_canonical_invoice(xrechnung_record)) is None
        violation = check_currency_eur(to_canonical_invoice({**xrechnung_record, "currency": "usd"}))
        assert violation.rule_id == "BR-DE-18"
        assert "USD" in violation.message


class TestPeppolRules:
    """Tests for PEPPOL endpoint rules."""

    def test_invalid_scheme(self, peppol_record):
        raw = {**peppol_record, "buyerElectronicAddress": "12345", "buyerElectronicAddressScheme": "XX"}
        ids = rule_ids_for(PROFILE_RULES["peppol-bis"], to_canonical_invoice(raw))
        assert "PEPPOL-EN16931-R010-SCHEME" in ids
        assert "PEPPOL-EN16931-R010" not in ids

    def test_reverse_charge_needs_vat_ids(self, peppol_record):
        raw = {**peppol_record, "lineItems": [
            {"description": "Service", "quantity": 1, "unitPrice": 100, "taxRate": 0, "taxCategoryCode": "AE"},
        ]}
        ids = rule_ids_for(PROFILE_RULES["peppol-bis"], to_canonical_invoice(raw))
        assert ids.count("BR-AE-01") == 1

    def test_exempt_line_with_rate(self, peppol_record):
        raw = {**peppol_record, "lineItems": [
            {"description": "Course", "quantity": 1, "unitPrice": 100, "taxRate": 21, "taxCategoryCode": "E"},
        ]}
        assert "BR-E-01" in rule_ids_for(PROFILE_RULES["peppol-bis"], to_canonical_invoice(raw))

    def test_dutch_vat_format(self, peppol_record):
        raw = {**peppol_record, "sellerCountryCode": "NL", "sellerVatId": "NL12345678"}
        ids = rule_ids_for(NLCIUS_RULES, to_canonical_invoice(raw, "nlcius"))
        assert "NLCIUS-BTW-FORMAT" in ids

        fixed = {**raw, "sellerVatId": "NL123456789B01"}
        assert "NLCIUS-BTW-FORMAT" not in rule_ids_for(NLCIUS_RULES, to_canonical_invoice(fixed, "nlcius"))

    def test_oin_length(self, peppol_record):
        raw = {**peppol_record, "sellerElectronicAddress": "123", "sellerElectronicAddressScheme": "0190"}
        assert "NLCIUS-OIN-FORMAT" in rule_ids_for(NLCIUS_RULES, to_canonical_invoice(raw, "nlcius"))

    def test_romanian_vat_format(self, peppol_record):
        raw = {**peppol_record, "sellerVatId": "RO1"}
        assert "CIUS-RO-VAT-FORMAT" in rule_ids_for(CIUS_RO_RULES, to_canonical_invoice(raw, "cius-ro"))


class TestFatturaPARules:
    """Tests for the Italian SDI rules."""

    def test_recipient_code_length(self, fatturapa_record):
        invoice = to_canonical_invoice({**fatturapa_record, "buyerCodiceDestinatario": "ABC"})
        assert check_recipient_code(invoice).rule_id == "FPA-021"

    def test_pec_code_accepted(self, fatturapa_record):
        invoice = to_canonical_invoice({**fatturapa_record, "buyerCodiceDestinatario": "0000000"})
        assert check_recipient_code(invoice) is None

    def test_tax_regime(self, fatturapa_record):
        assert check_tax_regime(to_canonical_invoice({**fatturapa_record, "sellerTaxRegime": "RF01"})) is None
        assert check_tax_regime(to_canonical_invoice({**fatturapa_record, "sellerTaxRegime": "RF20"})) is not None

    def test_zero_rate_without_category(self, fatturapa_record):
        raw = {**fatturapa_record, "lineItems": [{"description": "Export", "quantity": 1, "unitPrice": 50, "taxRate": 0}]}
        violations = check_natura_categories(to_canonical_invoice(raw))
        assert [v.rule_id for v in violations] == ["FPA-035a"]


class TestKsefRules:
    """Tests for the Polish KSeF rules."""

    def test_nip_from_vat_id(self, ksef_record):
        assert check_seller_nip(to_canonical_invoice(ksef_record)) is None

    def test_nip_too_short(self, ksef_record):
        violation = check_seller_nip(to_canonical_invoice({**ksef_record, "sellerVatId": "PL12345"}))
        assert violation.rule_id == "KSEF-01"

    def test_invoice_number_length(self, ksef_record):
        violation = check_invoice_number(to_canonical_invoice({**ksef_record, "invoiceNumber": "X" * 257}))
        assert violation.rule_id == "KSEF-03"

    def test_non_statutory_rate(self, ksef_record):
        violations = check_statutory_rates(to_canonical_invoice(ksef_record))
        assert len(violations) == 1
        assert "19%" in violations[0].message
        assert "not a standard Polish VAT rate" in violations[0].message

    @pytest.mark.parametrize("rate", [23, 8, 5, 0, "23.00"])
    def test_statutory_rates(self, ksef_record, rate):
        raw = {**ksef_record, "lineItems": [{"description": "Towar", "quantity": 1, "unitPrice": 10, "taxRate": rate}]}
        assert check_statutory_rates(to_canonical_invoice(raw)) == []
