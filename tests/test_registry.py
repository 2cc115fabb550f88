"""
Tests for the format registry and format detection.
"""

import pytest

from einvoice_core.exceptions import UnknownFormatError
from einvoice_core.registry import (
    FORMAT_IDS,
    detect_format_from_data,
    get_all_formats,
    get_format_metadata,
    get_formats_by_country,
    is_valid_format,
)


class TestRegistry:
    """Tests for format metadata lookups."""

    def test_nine_formats(self):
        assert FORMAT_IDS == [
            "xrechnung-cii",
            "xrechnung-ubl",
            "peppol-bis",
            "facturx-en16931",
            "facturx-basic",
            "fatturapa",
            "ksef",
            "nlcius",
            "cius-ro",
        ]
        assert [meta.id for meta in get_all_formats()] == FORMAT_IDS

    @pytest.mark.parametrize("value", ["xrechnung-cii", "ksef"])
    def test_valid_format(self, value):
        assert is_valid_format(value)

    @pytest.mark.parametrize("value", ["XRECHNUNG-CII", "zugferd", "", None, 42])
    def test_invalid_format(self, value):
        assert not is_valid_format(value)

    def test_metadata(self):
        meta = get_format_metadata("facturx-en16931")
        assert meta.mime_type == "application/pdf"
        assert meta.file_extension == ".pdf"
        assert meta.syntax_type == "PDF+CII"

    def test_unknown_metadata(self):
        with pytest.raises(UnknownFormatError):
            get_format_metadata("ubl-2.0")

    def test_formats_by_country(self):
        italian = [meta.id for meta in get_formats_by_country("it")]
        assert "fatturapa" in italian
        assert "xrechnung-cii" not in italian

        german = [meta.id for meta in get_formats_by_country("DE")]
        assert {"xrechnung-cii", "xrechnung-ubl", "facturx-en16931"} <= set(german)

    def test_non_eu_country(self):
        assert get_formats_by_country("US") == []


class TestDetectFormat:
    """Tests for format detection heuristics."""

    def test_explicit_format_wins(self):
        assert detect_format_from_data({"outputFormat": "ksef", "sellerCountryCode": "IT"}) == "ksef"

    def test_unknown_explicit_format_ignored(self):
        assert detect_format_from_data({"format": "edifact", "sellerCountryCode": "IT"}) == "fatturapa"

    @pytest.mark.parametrize("country,expected", [
        ("IT", "fatturapa"),
        ("PL", "ksef"),
        ("NL", "nlcius"),
        ("RO", "cius-ro"),
        ("FR", "facturx-en16931"),
        ("DE", "xrechnung-cii"),
    ])
    def test_seller_country(self, country, expected):
        assert detect_format_from_data({"sellerCountryCode": country}) == expected

    def test_french_buyer(self):
        assert detect_format_from_data({"sellerCountryCode": "DE", "buyerCountryCode": "FR"}) == "facturx-en16931"

    def test_polish_nip_without_country(self):
        assert detect_format_from_data({"sellerVatId": "PL 123-456-78-90"}) == "ksef"

    def test_bare_ten_digits_not_a_nip(self):
        assert detect_format_from_data({"sellerVatId": "1234567890"}) == "xrechnung-cii"

    def test_endpoint_selects_peppol(self):
        raw = {"sellerCountryCode": "BE", "buyerElectronicAddress": "0208:0123456789"}
        assert detect_format_from_data(raw) == "peppol-bis"

    def test_german_seller_with_endpoint_stays_xrechnung(self):
        raw = {"sellerCountryCode": "DE", "buyerElectronicAddress": "04011000-12345-03"}
        assert detect_format_from_data(raw) == "xrechnung-cii"

    def test_fallback(self):
        assert detect_format_from_data({}) == "xrechnung-cii"

    def test_not_a_mapping(self):
        assert detect_format_from_data("INV-1") is None
