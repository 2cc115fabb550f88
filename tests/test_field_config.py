"""
Tests for per-format field requirements and missing-field analysis.
"""

import pytest

from einvoice_core.exceptions import UnknownFormatError
from einvoice_core.field_config import (
    FORMAT_FIELD_CONFIG,
    compute_missing_fields,
    get_field_hint,
    is_field_required,
    is_field_visible,
)
from einvoice_core.registry import FORMAT_IDS


class TestFieldTable:
    """Tests for the visibility table."""

    def test_every_format_configured(self):
        assert set(FORMAT_FIELD_CONFIG) == set(FORMAT_IDS)

    def test_required_fields(self):
        assert is_field_required("xrechnung-cii", "buyerReference")
        assert not is_field_required("peppol-bis", "buyerReference")
        assert is_field_required("fatturapa", "buyerCodiceDestinatario")

    def test_hidden_fields(self):
        assert not is_field_visible("xrechnung-cii", "buyerCodiceDestinatario")
        assert not is_field_visible("ksef", "sellerElectronicAddress")
        assert is_field_visible("peppol-bis", "notes")

    def test_hints(self):
        assert "Leitweg-ID" in get_field_hint("xrechnung-ubl", "buyerReference")
        assert get_field_hint("ksef", "buyerReference") is None

    def test_unknown_format(self):
        with pytest.raises(UnknownFormatError):
            is_field_required("edifact", "currency")


class TestComputeMissingFields:
    """Tests for missing-field analysis."""

    def test_complete_record(self, xrechnung_record):
        assert compute_missing_fields(xrechnung_record, "xrechnung-cii") == []

    def test_minimal_record_in_table_order(self, inv1_record):
        missing = compute_missing_fields(inv1_record, "xrechnung-cii")
        assert missing[:3] == ["sellerPhone", "sellerEmail", "sellerContactName"]
        assert "buyerReference" in missing
        assert missing.index("sellerStreet") < missing.index("buyerStreet")
        assert missing[-1] == "paymentTerms"
        assert "currency" not in missing
        assert len(missing) == len(set(missing))

    def test_aliases_are_honoured(self, inv1_record):
        raw = {**inv1_record, "seller_address": "Hauptstraße 1", "leitwegId": "991-12345-06"}
        missing = compute_missing_fields(raw, "xrechnung-cii")
        assert "sellerStreet" not in missing
        assert "buyerReference" not in missing

    def test_tax_number_satisfies_vat_id(self, inv1_record):
        raw = {**inv1_record, "sellerTaxNumber": "12/345/67890"}
        assert "sellerVatId" not in compute_missing_fields(raw, "xrechnung-cii")

    def test_email_satisfies_electronic_address(self, inv1_record):
        raw = {**inv1_record, "buyerEmail": "ap@example.com"}
        assert "buyerElectronicAddress" not in compute_missing_fields(raw, "xrechnung-cii")

    def test_peppol_needs_endpoints(self, peppol_record):
        missing = compute_missing_fields(peppol_record, "peppol-bis")
        assert "buyerElectronicAddress" in missing
        assert "sellerElectronicAddress" not in missing

    def test_non_mapping_reports_everything(self):
        missing = compute_missing_fields(None, "ksef")
        assert missing == ["sellerVatId", "currency"]
