"""
FatturaPA (FatturaElettronica 1.2, FPR12) generator for the Italian SDI.
"""

import re
import xml.etree.ElementTree as ET
from decimal import Decimal
from typing import Optional

from ..monetary import format_amount, format_rate, round_money
from ..schemas import CanonicalInvoice, Party
from .base import BaseGenerator, parse_iso_date, serialize, sub, sub_if
from .cii import line_category, line_rate

FATTURAPA_NS = "http://ivaservizi.agenziaentrate.gov.it/docs/xsd/fatture/v1.2"
ET.register_namespace("p", FATTURAPA_NS)

TRANSMISSION_FORMAT = "FPR12"
DEFAULT_REGIME = "RF01"
# Recipient code for PEC delivery or private customers
NO_RECIPIENT_CODE = "0000000"

_RECIPIENT_CODE = re.compile(r"^[A-Z0-9]{7}$")

# EN 16931 document type -> TipoDocumento
DOCUMENT_TYPES = {
    380: "TD01",
    389: "TD01",
    381: "TD04",
    384: "TD05",
}

# Tax category of a 0% line -> Natura
NATURA_CODES = {
    "E": "N4",
    "Z": "N2.1",
    "AE": "N6",
    "K": "N3.2",
    "G": "N3.1",
    "O": "N2.2",
}
DEFAULT_NATURA = "N2.2"


def split_vat_id(value: Optional[str], fallback_country: Optional[str] = None) -> Optional[tuple[str, str]]:
    """Split "IT01234567890" into ("IT", "01234567890"); bare codes take the fallback country."""
    compact = re.sub(r"\s", "", value or "")
    if len(compact) < 2:
        return None
    if compact[:2].isalpha():
        return compact[:2].upper(), compact[2:]
    return fallback_country or "IT", compact


def natura_code(category: Optional[str], rate: Decimal) -> Optional[str]:
    """Natura is only reported for lines without VAT."""
    if rate > 0:
        return None
    return NATURA_CODES.get(category or "", DEFAULT_NATURA)


class FatturaPAGenerator(BaseGenerator):
    format_id = "fatturapa"
    format_name = "FatturaPA 1.2 (Italy)"
    spec_version = "1.2.2"
    spec_date = "2022-09-29"

    required_elements = (
        "FatturaElettronica",
        "FatturaElettronicaHeader",
        "DatiTrasmissione",
        "CedentePrestatore",
        "CessionarioCommittente",
        "FatturaElettronicaBody",
        "DatiGeneraliDocumento",
        "DettaglioLinee",
        "DatiRiepilogo",
    )

    def build_xml(self, invoice: CanonicalInvoice, warnings: list[str]) -> str:
        seller_vat = split_vat_id(invoice.seller.vat_id or invoice.seller.tax_id, invoice.seller.country_code)
        if seller_vat is None:
            warnings.append("Seller VAT id missing: IdTrasmittente and IdFiscaleIVA are empty")
            seller_vat = (invoice.seller.country_code or "IT", "")

        root = ET.Element(f"{{{FATTURAPA_NS}}}FatturaElettronica", versione=TRANSMISSION_FORMAT)
        header = sub(root, "FatturaElettronicaHeader")
        self._add_transmission(header, invoice, seller_vat, warnings)
        self._add_seller(header, invoice.seller, seller_vat)
        self._add_buyer(header, invoice.buyer)

        body = sub(root, "FatturaElettronicaBody")
        self._add_general_data(body, invoice)
        self._add_goods_and_services(body, invoice)
        self._add_payment(body, invoice)
        return serialize(root)

    # ========================================================================
    # Header
    # ========================================================================

    def _add_transmission(
        self,
        parent: ET.Element,
        invoice: CanonicalInvoice,
        seller_vat: tuple[str, str],
        warnings: list[str],
    ) -> None:
        transmission = sub(parent, "DatiTrasmissione")
        sender = sub(transmission, "IdTrasmittente")
        sub(sender, "IdPaese", seller_vat[0])
        sub(sender, "IdCodice", seller_vat[1])

        progressive = re.sub(r"[^A-Za-z0-9]", "", invoice.invoice_number)[-10:].rjust(5, "0")
        sub(transmission, "ProgressivoInvio", progressive)
        sub(transmission, "FormatoTrasmissione", TRANSMISSION_FORMAT)

        code = (invoice.buyer.electronic_address or "").strip().upper()
        if not _RECIPIENT_CODE.match(code):
            if code:
                warnings.append(f"Recipient code {code!r} is not a 7-character SDI code; 0000000 was used")
            code = NO_RECIPIENT_CODE
        sub(transmission, "CodiceDestinatario", code)
        if code == NO_RECIPIENT_CODE and invoice.buyer.email:
            sub(transmission, "PECDestinatario", invoice.buyer.email)

    def _add_address(self, parent: ET.Element, party: Party, fallback_country: str) -> None:
        seat = sub(parent, "Sede")
        sub(seat, "Indirizzo", party.address or "N/A")
        sub(seat, "CAP", party.postal_code or "00000")
        sub(seat, "Comune", party.city or "N/A")
        sub(seat, "Nazione", party.country_code or fallback_country)

    def _add_seller(self, parent: ET.Element, seller: Party, seller_vat: tuple[str, str]) -> None:
        element = sub(parent, "CedentePrestatore")
        registry = sub(element, "DatiAnagrafici")
        fiscal = sub(registry, "IdFiscaleIVA")
        sub(fiscal, "IdPaese", seller_vat[0])
        sub(fiscal, "IdCodice", seller_vat[1])
        sub_if(registry, "CodiceFiscale", seller.tax_number)
        sub(sub(registry, "Anagrafica"), "Denominazione", seller.name)
        sub(registry, "RegimeFiscale", seller.tax_regime or DEFAULT_REGIME)
        self._add_address(element, seller, seller_vat[0])

    def _add_buyer(self, parent: ET.Element, buyer: Party) -> None:
        buyer_vat = split_vat_id(buyer.vat_id, buyer.country_code)
        element = sub(parent, "CessionarioCommittente")
        registry = sub(element, "DatiAnagrafici")
        if buyer_vat:
            fiscal = sub(registry, "IdFiscaleIVA")
            sub(fiscal, "IdPaese", buyer_vat[0])
            sub(fiscal, "IdCodice", buyer_vat[1])
        if buyer.tax_number:
            sub(registry, "CodiceFiscale", buyer.tax_number)
        elif not buyer.vat_id and buyer.tax_id:
            sub(registry, "CodiceFiscale", buyer.tax_id)
        sub(sub(registry, "Anagrafica"), "Denominazione", buyer.name)
        self._add_address(element, buyer, buyer_vat[0] if buyer_vat else "IT")

    # ========================================================================
    # Body
    # ========================================================================

    def _add_general_data(self, parent: ET.Element, invoice: CanonicalInvoice) -> None:
        general = sub(parent, "DatiGenerali")
        document = sub(general, "DatiGeneraliDocumento")
        document_type = DOCUMENT_TYPES.get(invoice.document_type_code, "TD01")
        sub(document, "TipoDocumento", document_type)
        sub(document, "Divisa", invoice.currency)
        sub(document, "Data", parse_iso_date(invoice.invoice_date).isoformat())
        sub(document, "Numero", invoice.invoice_number)
        for ac in invoice.allowance_charges:
            discount = sub(document, "ScontoMaggiorazione")
            sub(discount, "Tipo", "MG" if ac.charge_indicator else "SC")
            sub(discount, "Importo", format_amount(ac.amount))
        sub(document, "ImportoTotaleDocumento", format_amount(invoice.totals.total_amount))
        sub_if(document, "Causale", (invoice.notes or "")[:200])

        if invoice.preceding_invoice_reference and document_type in ("TD04", "TD05"):
            linked = sub(general, "DatiFattureCollegate")
            sub(linked, "IdDocumento", invoice.preceding_invoice_reference)

    def _add_goods_and_services(self, parent: ET.Element, invoice: CanonicalInvoice) -> None:
        goods = sub(parent, "DatiBeniServizi")
        for index, item in enumerate(invoice.line_items, 1):
            rate = line_rate(item)
            line = sub(goods, "DettaglioLinee")
            sub(line, "NumeroLinea", index)
            sub(line, "Descrizione", item.description or "Item")
            sub(line, "Quantita", f"{round_money(item.quantity):.2f}")
            sub(line, "PrezzoUnitario", format_amount(item.unit_price))
            sub(line, "PrezzoTotale", format_amount(item.total_price))
            sub(line, "AliquotaIVA", format_rate(rate))
            sub_if(line, "Natura", natura_code(line_category(item), rate))

        for group in invoice.totals.tax_breakdown:
            summary = sub(goods, "DatiRiepilogo")
            sub(summary, "AliquotaIVA", format_rate(group.tax_rate))
            sub_if(summary, "Natura", natura_code(group.tax_category_code, group.tax_rate))
            sub(summary, "ImponibileImporto", format_amount(group.taxable_amount))
            sub(summary, "Imposta", format_amount(group.tax_amount))
            if group.tax_category_code == "AE":
                sub(summary, "EsigibilitaIVA", "I")

    def _add_payment(self, parent: ET.Element, invoice: CanonicalInvoice) -> None:
        payment = invoice.payment
        element = sub(parent, "DatiPagamento")
        # TP02: payment in a single instalment
        sub(element, "CondizioniPagamento", "TP02")
        detail = sub(element, "DettaglioPagamento")
        # MP05 bank transfer, MP01 cash
        sub(detail, "ModalitaPagamento", "MP05" if payment.iban else "MP01")
        due = parse_iso_date(payment.due_date)
        if due:
            sub(detail, "DataScadenzaPagamento", due.isoformat())
        sub(detail, "ImportoPagamento", format_amount(invoice.totals.total_amount))
        sub_if(detail, "IBAN", payment.iban)
        sub_if(detail, "BIC", payment.bic)
