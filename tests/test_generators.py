"""
Tests for the format generators.

These tests verify that every registered format produces a document and
check the format-specific parts of the output.
"""

import io
import xml.etree.ElementTree as ET

import fitz
import pdfplumber
import pytest

from einvoice_core.exceptions import GenerationError, UnknownFormatError
from einvoice_core.generators import GeneratorFactory
from einvoice_core.generators.base import local_name, serialize
from einvoice_core.generators.ksef import KSEF_NS
from einvoice_core.generators.ubl import CBC_NS, CREDIT_NOTE_NS, INVOICE_NS
from einvoice_core.mapper import to_canonical_invoice
from einvoice_core.registry import FORMAT_IDS


@pytest.fixture
def generic_record(xrechnung_record) -> dict:
    """A record every generator accepts (the tax number doubles as a NIP)."""
    return {**xrechnung_record, "sellerTaxNumber": "1234567890"}


def find_text(xml_content: str, name: str) -> list[str]:
    root = ET.fromstring(xml_content.encode("utf-8"))
    return [el.text for el in root.iter() if local_name(el.tag) == name]


class TestGeneratorFactory:
    """Tests for generator lookup."""

    @pytest.mark.parametrize("format_id", FORMAT_IDS)
    def test_format_id_matches(self, format_id):
        assert GeneratorFactory.create(format_id).format_id == format_id

    def test_instances_are_shared(self):
        assert GeneratorFactory.create("ksef") is GeneratorFactory.create("ksef")

    @pytest.mark.parametrize("format_id", ["", None, "ubl"])
    def test_unknown_format(self, format_id):
        with pytest.raises(UnknownFormatError):
            GeneratorFactory.create(format_id)

    def test_engine_versions(self):
        versions = GeneratorFactory.get_engine_versions()
        assert set(versions) == set(FORMAT_IDS)
        assert versions["ksef"]["spec_version"] == "FA(2)"


class TestAllFormats:
    """Every format generates a non-empty, structurally valid document."""

    @pytest.mark.parametrize("format_id", FORMAT_IDS)
    def test_generates(self, generic_record, format_id):
        invoice = to_canonical_invoice(generic_record, format_id)
        result = GeneratorFactory.create(format_id).generate(invoice)

        assert result.xml_content
        assert result.validation_status == "valid", result.validation_errors
        assert result.file_size > 0
        if format_id.startswith("facturx"):
            assert result.pdf_content.startswith(b"%PDF")
            assert result.file_name.endswith(".pdf")
        else:
            assert result.pdf_content is None
            assert result.file_name.endswith(".xml")

    def test_empty_invoice_number(self, generic_record):
        invoice = to_canonical_invoice({**generic_record, "invoiceNumber": ""}, "peppol-bis")
        with pytest.raises(GenerationError):
            GeneratorFactory.create("peppol-bis").generate(invoice)

    def test_unformattable_date(self, generic_record):
        invoice = to_canonical_invoice({**generic_record, "invoiceDate": "01/02/2024"}, "xrechnung-cii")
        with pytest.raises(GenerationError) as exc_info:
            GeneratorFactory.create("xrechnung-cii").generate(invoice)
        assert exc_info.value.field == "invoice_date"

    def test_unsafe_file_name(self, generic_record):
        invoice = to_canonical_invoice({**generic_record, "invoiceNumber": "RE/2024:01"}, "xrechnung-cii")
        result = GeneratorFactory.create("xrechnung-cii").generate(invoice)
        assert "/" not in result.file_name
        assert ":" not in result.file_name


class TestSerialize:
    """Tests for XML serialization."""

    def test_default_namespace_with_plain_attributes(self):
        root = ET.Element("{urn:example:root}Doc")
        ET.SubElement(root, "{urn:example:root}Amount", currencyID="EUR").text = "1.00"

        xml_content = serialize(root, default_namespace="urn:example:root")

        assert xml_content.startswith("<?xml")
        assert '<Doc xmlns="urn:example:root">' in xml_content
        assert '<Amount currencyID="EUR">1.00</Amount>' in xml_content
        parsed = ET.fromstring(xml_content.encode("utf-8"))
        assert parsed.tag == "{urn:example:root}Doc"
        assert parsed[0].tag == "{urn:example:root}Amount"
        assert parsed[0].get("currencyID") == "EUR"


class TestXRechnungCii:
    """Tests for the CII syntax."""

    def test_inv1_content(self, inv1_record):
        invoice = to_canonical_invoice(inv1_record)
        result = GeneratorFactory.create("xrechnung-cii").generate(invoice)

        assert "INV-1" in result.xml_content
        assert "200.00" in result.xml_content
        assert "238.00" in result.xml_content
        assert find_text(result.xml_content, "GrandTotalAmount") == ["238.00"]
        assert find_text(result.xml_content, "TypeCode")[0] == "380"

    def test_leitweg_id_as_buyer_reference(self, xrechnung_record):
        invoice = to_canonical_invoice(xrechnung_record)
        result = GeneratorFactory.create("xrechnung-cii").generate(invoice)
        assert find_text(result.xml_content, "BuyerReference") == ["04011000-12345-03"]

    def test_special_characters_escaped(self, xrechnung_record):
        invoice = to_canonical_invoice({**xrechnung_record, "sellerName": "Müller & Söhne <GmbH>"})
        result = GeneratorFactory.create("xrechnung-cii").generate(invoice)
        assert "Müller &amp; Söhne &lt;GmbH&gt;" in result.xml_content
        assert "Müller & Söhne <GmbH>" in find_text(result.xml_content, "Name")


class TestUbl:
    """Tests for the UBL syntax."""

    def test_credit_note_root(self, generic_record):
        raw = {**generic_record, "documentTypeCode": 381, "precedingInvoiceReference": "INV-0"}
        invoice = to_canonical_invoice(raw, "peppol-bis")
        result = GeneratorFactory.create("peppol-bis").generate(invoice)

        root = ET.fromstring(result.xml_content.encode("utf-8"))
        assert root.tag == f"{{{CREDIT_NOTE_NS}}}CreditNote"
        assert find_text(result.xml_content, "CreditNoteTypeCode") == ["381"]

    def test_payable_amount(self, generic_record):
        invoice = to_canonical_invoice(generic_record, "xrechnung-ubl")
        result = GeneratorFactory.create("xrechnung-ubl").generate(invoice)
        assert find_text(result.xml_content, "PayableAmount") == ["238.00"]

    @pytest.mark.parametrize("format_id", ["xrechnung-ubl", "peppol-bis", "nlcius", "cius-ro"])
    def test_invoice_namespace_and_currency(self, generic_record, format_id):
        invoice = to_canonical_invoice(generic_record, format_id)
        result = GeneratorFactory.create(format_id).generate(invoice)

        root = ET.fromstring(result.xml_content.encode("utf-8"))
        assert root.tag == f"{{{INVOICE_NS}}}Invoice"
        payable = root.find(f".//{{{CBC_NS}}}PayableAmount")
        assert payable.get("currencyID") == "EUR"


class TestKsef:
    """Tests for the KSeF FA(2) generator."""

    def test_non_statutory_rate_goes_to_other_bucket(self, ksef_record):
        invoice = to_canonical_invoice(ksef_record)
        result = GeneratorFactory.create("ksef").generate(invoice)

        assert find_text(result.xml_content, "P_13_5") == ["200.00"]
        assert find_text(result.xml_content, "P_14_5") == ["38.00"]
        assert find_text(result.xml_content, "P_13_1") == []
        assert any("19%" in w and "not a standard Polish VAT rate" in w for w in result.validation_warnings)

    def test_grand_total_is_subtotal_plus_tax(self, ksef_record):
        invoice = to_canonical_invoice(ksef_record)
        result = GeneratorFactory.create("ksef").generate(invoice)

        expected = invoice.totals.subtotal + invoice.totals.tax_amount
        assert find_text(result.xml_content, "P_15") == [f"{expected:.2f}"]

    def test_grand_total_ignores_extracted_total(self, ksef_record):
        raw = {**ksef_record, "subtotal": 200, "taxAmount": 38, "totalAmount": "238.01"}
        invoice = to_canonical_invoice(raw)
        assert str(invoice.totals.total_amount) == "238.01"

        result = GeneratorFactory.create("ksef").generate(invoice)
        assert find_text(result.xml_content, "P_15") == ["238.00"]

    def test_root_namespace(self, ksef_record):
        result = GeneratorFactory.create("ksef").generate(to_canonical_invoice(ksef_record))

        root = ET.fromstring(result.xml_content.encode("utf-8"))
        assert root.tag == f"{{{KSEF_NS}}}Faktura"
        form_code = root.find(f"{{{KSEF_NS}}}Naglowek/{{{KSEF_NS}}}KodFormularza")
        assert form_code.get("kodSystemowy") == "FA (2)"

    def test_output_is_reproducible(self, ksef_record):
        generator = GeneratorFactory.create("ksef")
        first = generator.generate(to_canonical_invoice(ksef_record))
        second = generator.generate(to_canonical_invoice(ksef_record))

        assert first.xml_content == second.xml_content
        assert find_text(first.xml_content, "DataWytworzeniaFa") == ["2024-03-05T00:00:00Z"]

    def test_statutory_rate_bucket(self, ksef_record):
        raw = {**ksef_record, "lineItems": [{"description": "Towar", "quantity": 1, "unitPrice": 100, "taxRate": 23}]}
        result = GeneratorFactory.create("ksef").generate(to_canonical_invoice(raw))

        assert find_text(result.xml_content, "P_13_1") == ["100.00"]
        assert find_text(result.xml_content, "P_14_1") == ["23.00"]
        assert result.validation_warnings == []

    def test_invoice_kind(self, ksef_record):
        raw = {**ksef_record, "documentTypeCode": 381, "precedingInvoiceReference": "FV/2024/02/009"}
        result = GeneratorFactory.create("ksef").generate(to_canonical_invoice(raw))
        assert find_text(result.xml_content, "RodzajFaktury") == ["KOR"]

    def test_missing_nip(self, ksef_record):
        raw = {key: value for key, value in ksef_record.items() if key != "sellerVatId"}
        with pytest.raises(GenerationError):
            GeneratorFactory.create("ksef").generate(to_canonical_invoice(raw))


class TestFatturaPA:
    """Tests for the FatturaPA generator."""

    def test_recipient_code_and_vat(self, fatturapa_record):
        result = GeneratorFactory.create("fatturapa").generate(to_canonical_invoice(fatturapa_record))

        assert find_text(result.xml_content, "CodiceDestinatario") == ["ABC1234"]
        assert "01234567890" in find_text(result.xml_content, "IdCodice")
        assert find_text(result.xml_content, "TipoDocumento") == ["TD01"]

    def test_missing_recipient_code_defaults(self, fatturapa_record):
        raw = {key: value for key, value in fatturapa_record.items() if key != "buyerCodiceDestinatario"}
        result = GeneratorFactory.create("fatturapa").generate(to_canonical_invoice(raw))
        assert find_text(result.xml_content, "CodiceDestinatario") == ["0000000"]


class TestFacturX:
    """Tests for the Factur-X hybrid PDF."""

    @pytest.fixture
    def result(self, generic_record):
        invoice = to_canonical_invoice(generic_record, "facturx-en16931")
        return GeneratorFactory.create("facturx-en16931").generate(invoice)

    def test_visible_text(self, result):
        with pdfplumber.open(io.BytesIO(result.pdf_content)) as pdf:
            text = "\n".join(page.extract_text() or "" for page in pdf.pages)
        assert "INVOICE" in text
        assert "INV-1" in text
        assert "238.00" in text

    def test_embedded_xml(self, result):
        doc = fitz.open(stream=result.pdf_content, filetype="pdf")
        try:
            assert "factur-x.xml" in doc.embfile_names()
            embedded = doc.embfile_get("factur-x.xml").decode("utf-8")
            metadata = doc.get_xml_metadata()
        finally:
            doc.close()
        assert embedded == result.xml_content
        assert "EN 16931" in metadata

    def test_regeneration_is_stable(self, result, generic_record):
        invoice = to_canonical_invoice(generic_record, "facturx-en16931")
        again = GeneratorFactory.create("facturx-en16931").generate(invoice)

        assert again.xml_content == result.xml_content
        first_doc = fitz.open(stream=result.pdf_content, filetype="pdf")
        second_doc = fitz.open(stream=again.pdf_content, filetype="pdf")
        try:
            assert first_doc.metadata["creationDate"] == second_doc.metadata["creationDate"]
            assert first_doc.metadata["creationDate"].startswith("D:20240115")
        finally:
            first_doc.close()
            second_doc.close()

    def test_guideline(self, result):
        guideline = find_text(result.xml_content, "ID")
        assert "urn:cen.eu:en16931:2017#compliant#urn:factur-x.eu:1p0:en16931" in guideline
