"""
Factur-X hybrid invoices: a readable PDF with the CII XML embedded.

The PDF is drawn with PyMuPDF; the XML is attached as factur-x.xml and the
XMP packet declares the Factur-X profile.
"""

from xml.sax.saxutils import escape

import fitz  # PyMuPDF

from ..config import logger
from ..monetary import format_amount, format_quantity, format_rate
from ..schemas import CanonicalInvoice, GenerationResult, Party
from .base import parse_iso_date
from .cii import CiiGenerator, line_rate

FACTURX_FILE_NAME = "factur-x.xml"
FX_NAMESPACE = "urn:factur-x:pdfa:CrossIndustryDocument:invoice:1p0#"

# A4 in points
PAGE_WIDTH = 595
PAGE_HEIGHT = 842
MARGIN = 50

FONT = "helv"
BOLD = "hebo"
GREY = (0.4, 0.4, 0.4)
DARK_BLUE = (0.1, 0.1, 0.4)

XMP_TEMPLATE = """<?xpacket begin="{bom}" id="W5M0MpCehiHzreSzNTczkc9d"?>
<x:xmpmeta xmlns:x="adobe:ns:meta/">
  <rdf:RDF xmlns:rdf="http://www.w3.org/1999/02/22-rdf-syntax-ns#">
    <rdf:Description rdf:about=""
      xmlns:dc="http://purl.org/dc/elements/1.1/"
      xmlns:pdf="http://ns.adobe.com/pdf/1.3/"
      xmlns:pdfaid="http://www.aiim.org/pdfa/ns/id/"
      xmlns:fx="{fx_ns}">
      <dc:title><rdf:Alt><rdf:li xml:lang="x-default">Invoice {number}</rdf:li></rdf:Alt></dc:title>
      <dc:creator><rdf:Seq><rdf:li>{seller}</rdf:li></rdf:Seq></dc:creator>
      <pdf:Producer>einvoice-core</pdf:Producer>
      <pdfaid:part>3</pdfaid:part>
      <pdfaid:conformance>B</pdfaid:conformance>
      <fx:DocumentFileName>{file_name}</fx:DocumentFileName>
      <fx:DocumentType>INVOICE</fx:DocumentType>
      <fx:ConformanceLevel>{level}</fx:ConformanceLevel>
      <fx:Version>1.0</fx:Version>
    </rdf:Description>
  </rdf:RDF>
</x:xmpmeta>
<?xpacket end="w"?>"""


def build_xmp(invoice: CanonicalInvoice, conformance_level: str) -> str:
    return XMP_TEMPLATE.format(
        bom="\ufeff",
        fx_ns=FX_NAMESPACE,
        number=escape(invoice.invoice_number),
        seller=escape(invoice.seller.name),
        file_name=FACTURX_FILE_NAME,
        level=conformance_level,
    )


def _party_lines(party: Party) -> list[str]:
    lines = [
        party.name,
        party.address or "",
        f"{party.postal_code or ''} {party.city or ''}".strip(),
        party.country_code or "",
        f"VAT: {party.vat_id}" if party.vat_id else "",
        party.email or "",
    ]
    return [line for line in lines if line]


class PdfCanvas:
    """Minimal top-down writer over a PyMuPDF page."""

    def __init__(self, doc: fitz.Document):
        self.doc = doc
        self.page = doc.new_page(width=PAGE_WIDTH, height=PAGE_HEIGHT)
        self.y = MARGIN

    def text(self, x: float, text: str, size: float = 9, bold: bool = False, color=(0, 0, 0)) -> None:
        self.page.insert_text((x, self.y), text, fontsize=size, fontname=BOLD if bold else FONT, color=color)

    def label(self, x: float, label: str, value: str, size: float = 9) -> None:
        self.text(x, label, size=size, bold=True, color=GREY)
        self.text(x + 90, value, size=size)
        self.advance(size + 4)

    def rule(self, x0: float = MARGIN, width: float = 0.5) -> None:
        self.page.draw_line((x0, self.y), (PAGE_WIDTH - MARGIN, self.y), color=GREY, width=width)

    def advance(self, dy: float) -> None:
        self.y += dy
        if self.y > PAGE_HEIGHT - MARGIN:
            self.page = self.doc.new_page(width=PAGE_WIDTH, height=PAGE_HEIGHT)
            self.y = MARGIN


def render_pdf(invoice: CanonicalInvoice, xml_content: str, conformance_level: str) -> bytes:
    """Render the visual invoice and embed the XML."""
    doc = fitz.open()
    try:
        canvas = PdfCanvas(doc)
        title = "CREDIT NOTE" if invoice.is_credit_note else "INVOICE"
        canvas.text(MARGIN, title, size=20, bold=True, color=DARK_BLUE)
        canvas.advance(30)

        canvas.label(MARGIN, "Invoice No:", invoice.invoice_number)
        canvas.label(MARGIN, "Date:", invoice.invoice_date)
        if invoice.payment.due_date:
            canvas.label(MARGIN, "Due Date:", invoice.payment.due_date)
        if invoice.preceding_invoice_reference:
            canvas.label(MARGIN, "Corrects:", invoice.preceding_invoice_reference)
        canvas.label(MARGIN, "Currency:", invoice.currency)
        canvas.advance(15)

        buyer_x = MARGIN + (PAGE_WIDTH - 2 * MARGIN) / 2
        canvas.text(MARGIN, "From (Seller)", size=11, bold=True, color=GREY)
        canvas.text(buyer_x, "To (Buyer)", size=11, bold=True, color=GREY)
        canvas.advance(16)
        seller_lines = _party_lines(invoice.seller)
        buyer_lines = _party_lines(invoice.buyer)
        for i in range(max(len(seller_lines), len(buyer_lines))):
            if i < len(seller_lines):
                canvas.text(MARGIN, seller_lines[i])
            if i < len(buyer_lines):
                canvas.text(buyer_x, buyer_lines[i])
            canvas.advance(13)
        canvas.advance(15)

        columns = [(MARGIN, "Description"), (300, "Qty"), (350, "Unit Price"), (430, "Total"), (500, "Tax %")]
        for x, heading in columns:
            canvas.text(x, heading, bold=True)
        canvas.advance(4)
        canvas.rule()
        canvas.advance(13)

        for item in invoice.line_items:
            values = [
                (item.description or "")[:45],
                format_quantity(item.quantity),
                format_amount(item.unit_price),
                format_amount(item.total_price),
                f"{format_rate(line_rate(item))}%",
            ]
            for (x, _), value in zip(columns, values):
                canvas.text(x, value, size=8)
            canvas.advance(13)

        canvas.advance(4)
        canvas.rule()
        canvas.advance(15)

        totals = invoice.totals
        totals_x = 380
        canvas.label(totals_x, "Subtotal:", format_amount(totals.subtotal))
        if totals.allowance_total:
            canvas.label(totals_x, "Allowances:", f"-{format_amount(totals.allowance_total)}")
        if totals.charge_total:
            canvas.label(totals_x, "Charges:", format_amount(totals.charge_total))
        canvas.label(totals_x, "Tax:", format_amount(totals.tax_amount))
        canvas.rule(x0=totals_x, width=1)
        canvas.advance(12)
        canvas.label(totals_x, "Total:", f"{format_amount(totals.total_amount)} {invoice.currency}", size=11)
        canvas.advance(20)

        if invoice.payment.iban:
            canvas.label(MARGIN, "IBAN:", invoice.payment.iban)
        if invoice.payment.bic:
            canvas.label(MARGIN, "BIC:", invoice.payment.bic)
        if invoice.payment.payment_terms:
            canvas.label(MARGIN, "Terms:", invoice.payment.payment_terms[:80])

        # Stamped with the issue date so regenerating an invoice gives the same metadata
        issued = parse_iso_date(invoice.invoice_date).strftime("D:%Y%m%d000000+00'00'")
        doc.set_metadata({
            "title": f"Invoice {invoice.invoice_number}",
            "author": invoice.seller.name,
            "subject": f"Factur-X {conformance_level} invoice",
            "creator": "einvoice-core",
            "producer": "einvoice-core",
            "creationDate": issued,
            "modDate": issued,
        })
        doc.embfile_add(
            FACTURX_FILE_NAME,
            xml_content.encode("utf-8"),
            filename=FACTURX_FILE_NAME,
            desc="Factur-X CII XML invoice",
        )
        doc.set_xml_metadata(build_xmp(invoice, conformance_level))
        return doc.tobytes(garbage=3, deflate=True, no_new_id=True)
    finally:
        doc.close()


class FacturXGenerator(CiiGenerator):
    """Factur-X: CII with the Factur-X guideline and no PEPPOL business process."""

    business_process = None
    conformance_level: str = "EN 16931"
    spec_version = "1.0.07"
    spec_date = "2023-10-15"

    def generate(self, invoice: CanonicalInvoice) -> GenerationResult:
        self.check_required(invoice)
        warnings: list[str] = []
        xml_content = self.build_xml(invoice, warnings)
        logger.info(f"Rendering Factur-X {self.conformance_level} PDF for {invoice.invoice_number}")
        pdf_content = render_pdf(invoice, xml_content, self.conformance_level)
        return self.build_result(invoice, xml_content, warnings, pdf_content=pdf_content)


class FacturXEn16931Generator(FacturXGenerator):
    format_id = "facturx-en16931"
    format_name = "Factur-X EN 16931 (Comfort)"
    guideline_id = "urn:cen.eu:en16931:2017#compliant#urn:factur-x.eu:1p0:en16931"
    conformance_level = "EN 16931"


class FacturXBasicGenerator(FacturXGenerator):
    format_id = "facturx-basic"
    format_name = "Factur-X Basic"
    guideline_id = "urn:cen.eu:en16931:2017#compliant#urn:factur-x.eu:1p0:basic"
    conformance_level = "BASIC"
