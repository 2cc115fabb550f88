"""
KSeF FA(2) generator for the Polish national e-invoicing system.

Net and tax amounts are reported per statutory rate bucket (P_13_x/P_14_x).
Rates outside the Polish statutory set go to the other-rate bucket and are
flagged in the generation warnings.
"""

import re
import xml.etree.ElementTree as ET
from decimal import Decimal

from ..config import DEFAULT_UNIT_CODE, POLISH_VAT_RATES
from ..exceptions import GenerationError
from ..monetary import ZERO, format_amount, format_quantity, round_money, sum_money
from ..schemas import CanonicalInvoice, Party
from .base import BaseGenerator, parse_iso_date, serialize, sub, sub_if
from .cii import fallback_breakdown, line_category, line_rate

KSEF_NS = "http://crd.gov.pl/wzor/2023/06/29/12648/"
FORM_CODE = "FA"
FORM_SYSTEM_CODE = "FA (2)"
FORM_SCHEMA_VERSION = "1-0E"
FORM_VARIANT = "2"

K = "{%s}" % KSEF_NS

# Statutory rate -> (net field, tax field)
RATE_BUCKETS: dict[Decimal, tuple[str, str]] = {
    Decimal("23"): ("P_13_1", "P_14_1"),
    Decimal("22"): ("P_13_1", "P_14_1"),
    Decimal("8"): ("P_13_2", "P_14_2"),
    Decimal("7"): ("P_13_2", "P_14_2"),
    Decimal("5"): ("P_13_3", "P_14_3"),
}
OTHER_RATE_BUCKET = ("P_13_5", "P_14_5")
ZERO_RATE_FIELD = "P_13_6_1"
EXEMPT_FIELD = "P_13_7"

# Field order within Fa
BUCKET_ORDER = [
    "P_13_1", "P_14_1",
    "P_13_2", "P_14_2",
    "P_13_3", "P_14_3",
    "P_13_5", "P_14_5",
    "P_13_6_1",
    "P_13_7",
]

# P_12 markers for lines without a numeric rate
RATE_MARKERS = {
    "E": "zw",
    "O": "np",
    "K": "np",
    "G": "np",
    "AE": "oo",
}

_NIP_DIGITS = re.compile(r"\D")


def extract_nip(party: Party) -> str:
    """Ten-digit NIP from the tax number, VAT id or raw tax id (PL prefix removed)."""
    raw = party.tax_number or party.vat_id or party.tax_id or ""
    digits = _NIP_DIGITS.sub("", re.sub(r"^PL", "", raw.strip(), flags=re.IGNORECASE))
    return digits[:10] if len(digits) >= 10 else digits


def invoice_kind(document_type_code: int) -> str:
    """RodzajFaktury for an EN 16931 document type."""
    if document_type_code in (381, 384):
        return "KOR"
    if document_type_code == 389:
        return "ZAL"
    return "VAT"


def rate_marker(rate: Decimal, category: str) -> str:
    if rate == 0 and category in RATE_MARKERS:
        return RATE_MARKERS[category]
    return format_quantity(rate)


def is_statutory_rate(rate: Decimal) -> bool:
    # Decimal("23.00") and Decimal("23") compare and hash equal
    return rate in POLISH_VAT_RATES


def bucket_amounts(invoice: CanonicalInvoice) -> dict[str, Decimal]:
    """Sum the tax breakdown into the P_13/P_14 fields."""
    fields: dict[str, Decimal] = {}
    for group in invoice.totals.tax_breakdown or fallback_breakdown(invoice):
        rate = group.tax_rate
        if group.tax_category_code == "E":
            targets = [(EXEMPT_FIELD, group.taxable_amount)]
        elif rate == 0:
            targets = [(ZERO_RATE_FIELD, group.taxable_amount)]
        else:
            net_field, tax_field = RATE_BUCKETS.get(rate, OTHER_RATE_BUCKET)
            targets = [(net_field, group.taxable_amount), (tax_field, group.tax_amount)]
        for field, amount in targets:
            fields[field] = fields.get(field, ZERO) + amount
    return {field: round_money(amount) for field, amount in fields.items()}


class KsefGenerator(BaseGenerator):
    format_id = "ksef"
    format_name = "KSeF FA(2) (Poland)"
    spec_version = "FA(2)"
    spec_date = "2023-06-29"

    required_elements = ("Faktura", "Naglowek", "Podmiot1", "Podmiot2", "Fa", "P_15", "Adnotacje", "RodzajFaktury")

    def check_required(self, invoice: CanonicalInvoice) -> None:
        super().check_required(invoice)
        if len(extract_nip(invoice.seller)) != 10:
            raise GenerationError(
                self.format_id,
                "KSeF requires the seller NIP (10 digits). Provide a VAT id, tax number or tax id.",
                field="seller.vat_id",
            )

    def build_xml(self, invoice: CanonicalInvoice, warnings: list[str]) -> str:
        for item in invoice.line_items:
            rate = line_rate(item)
            if rate > 0 and not is_statutory_rate(rate):
                warnings.append(
                    f'Line "{item.description}": tax rate {format_quantity(rate)}% is not a standard Polish VAT rate. '
                    f"It was reported in {OTHER_RATE_BUCKET[0]}/{OTHER_RATE_BUCKET[1]} (other rates)."
                )

        root = ET.Element(f"{K}Faktura")
        self._add_header(root, invoice)
        self._add_seller(root, invoice.seller)
        self._add_buyer(root, invoice.buyer)
        self._add_invoice_data(root, invoice)
        return serialize(root, default_namespace=KSEF_NS)

    def _add_header(self, parent: ET.Element, invoice: CanonicalInvoice) -> None:
        header = sub(parent, f"{K}Naglowek")
        sub(header, f"{K}KodFormularza", FORM_CODE, kodSystemowy=FORM_SYSTEM_CODE, wersjaSchemy=FORM_SCHEMA_VERSION)
        sub(header, f"{K}WariantFormularza", FORM_VARIANT)
        # Midnight UTC of the issue date, so the same invoice always gives the same XML
        created = parse_iso_date(invoice.invoice_date).isoformat()
        sub(header, f"{K}DataWytworzeniaFa", f"{created}T00:00:00Z")
        sub(header, f"{K}SystemInfo", "einvoice-core")

    def _add_address(self, parent: ET.Element, party: Party) -> None:
        address = sub(parent, f"{K}Adres")
        sub(address, f"{K}KodKraju", party.country_code or "PL")
        sub(address, f"{K}AdresL1", party.address or "")
        line_two = " ".join(part for part in (party.postal_code, party.city) if part)
        sub_if(address, f"{K}AdresL2", line_two)

    def _add_contact(self, parent: ET.Element, party: Party) -> None:
        if party.email or party.phone:
            contact = sub(parent, f"{K}DaneKontaktowe")
            sub_if(contact, f"{K}Email", party.email)
            sub_if(contact, f"{K}Telefon", party.phone)

    def _add_seller(self, parent: ET.Element, seller: Party) -> None:
        element = sub(parent, f"{K}Podmiot1")
        identity = sub(element, f"{K}DaneIdentyfikacyjne")
        sub(identity, f"{K}NIP", extract_nip(seller))
        sub(identity, f"{K}Nazwa", seller.name)
        self._add_address(element, seller)
        self._add_contact(element, seller)

    def _add_buyer(self, parent: ET.Element, buyer: Party) -> None:
        element = sub(parent, f"{K}Podmiot2")
        identity = sub(element, f"{K}DaneIdentyfikacyjne")
        nip = extract_nip(buyer)
        if len(nip) == 10:
            sub(identity, f"{K}NIP", nip)
        else:
            sub(identity, f"{K}BrakID", "1")
        sub(identity, f"{K}Nazwa", buyer.name)
        if buyer.address or buyer.city or buyer.country_code:
            self._add_address(element, buyer)
        self._add_contact(element, buyer)

    def _add_invoice_data(self, parent: ET.Element, invoice: CanonicalInvoice) -> None:
        fa = sub(parent, f"{K}Fa")
        sub(fa, f"{K}KodWaluty", invoice.currency)
        sub(fa, f"{K}P_1", parse_iso_date(invoice.invoice_date).isoformat())
        sub(fa, f"{K}P_2", invoice.invoice_number)

        start = parse_iso_date(invoice.billing_period_start)
        end = parse_iso_date(invoice.billing_period_end)
        if start and end:
            period = sub(fa, f"{K}OkresFa")
            sub(period, f"{K}P_6_Od", start.isoformat())
            sub(period, f"{K}P_6_Do", end.isoformat())

        buckets = bucket_amounts(invoice)
        for field in BUCKET_ORDER:
            if field in buckets:
                sub(fa, f"{K}{field}", format_amount(buckets[field]))
        # P_15 is the sum of the bucket nets and taxes, not the extracted total
        sub(fa, f"{K}P_15", format_amount(sum_money(buckets.values())))

        # 1 = yes, 2 = no
        annotations = sub(fa, f"{K}Adnotacje")
        sub(annotations, f"{K}P_16", "2")
        sub(annotations, f"{K}P_17", "2")
        sub(annotations, f"{K}P_18", "2")
        sub(annotations, f"{K}P_18A", "2")
        sub(sub(annotations, f"{K}Zwolnienie"), f"{K}P_19N", "1")
        sub(sub(annotations, f"{K}NoweSrodkiTransportu"), f"{K}P_22N", "1")
        sub(annotations, f"{K}P_23", "2")
        sub(sub(annotations, f"{K}PMarzy"), f"{K}P_PMarzyN", "1")

        kind = invoice_kind(invoice.document_type_code)
        sub(fa, f"{K}RodzajFaktury", kind)
        if kind == "KOR" and invoice.preceding_invoice_reference:
            corrected = sub(fa, f"{K}DaneFaKorygowanej")
            sub(corrected, f"{K}DataWystFaKorygowanej", parse_iso_date(invoice.invoice_date).isoformat())
            sub(corrected, f"{K}NrFaKorygowanej", invoice.preceding_invoice_reference)

        for index, item in enumerate(invoice.line_items, 1):
            line = sub(fa, f"{K}FaWiersz")
            sub(line, f"{K}NrWierszaFa", index)
            sub(line, f"{K}P_7", item.description or "Item")
            sub(line, f"{K}P_8A", item.unit_code or DEFAULT_UNIT_CODE)
            sub(line, f"{K}P_8B", format_quantity(item.quantity))
            sub(line, f"{K}P_9A", format_amount(item.unit_price))
            sub(line, f"{K}P_11", format_amount(item.total_price))
            sub(line, f"{K}P_12", rate_marker(line_rate(item), line_category(item)))

        self._add_payment(fa, invoice)

    def _add_payment(self, parent: ET.Element, invoice: CanonicalInvoice) -> None:
        payment = invoice.payment
        due = parse_iso_date(payment.due_date)
        if not (due or payment.iban):
            return
        element = sub(parent, f"{K}Platnosc")
        if due:
            sub(sub(element, f"{K}TerminPlatnosci"), f"{K}Termin", due.isoformat())
        # 6 = bank transfer, 1 = cash
        sub(element, f"{K}FormaPlatnosci", "6" if payment.iban else "1")
        if payment.iban:
            sub(sub(element, f"{K}RachunekBankowy"), f"{K}NrRB", payment.iban)
