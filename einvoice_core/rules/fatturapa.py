"""
FatturaPA rules (Italian SDI).

FatturaPA is not an EN 16931 syntax; these rules follow the SDI technical
specification for FatturaElettronica 1.2.
"""

import re
from typing import Optional

from ..config import RuleCategory, Severity
from ..schemas import CanonicalInvoice, RuleViolation
from .base import ValidationRule, is_blank, make_rule, required_field

# EN 16931 document types with a TipoDocumento counterpart
MAPPABLE_DOCUMENT_TYPES = {380, 381, 384, 389}

_ISO_4217 = re.compile(r"^[A-Z]{3}$")
_RECIPIENT_CODE = re.compile(r"^[A-Z0-9]{7}$")
_TAX_REGIME = re.compile(r"^RF(0[1-9]|1[0-9])$")


def check_currency(invoice: CanonicalInvoice) -> Optional[RuleViolation]:
    currency = (invoice.currency or "").strip()
    if not currency:
        return RuleViolation(
            rule_id="FPA-003",
            message="Currency code (Divisa) is required for FatturaPA",
            location="invoice.currency",
        )
    if not _ISO_4217.match(currency.upper()):
        return RuleViolation(
            rule_id="FPA-003a",
            message=f'Currency "{currency}" is not a valid ISO 4217 code',
            location="invoice.currency",
        )
    return None


def check_document_type(invoice: CanonicalInvoice) -> Optional[RuleViolation]:
    code = invoice.document_type_code
    if code not in MAPPABLE_DOCUMENT_TYPES:
        return RuleViolation(
            rule_id="FPA-004",
            message=f"Document type code {code} cannot be mapped to a valid FatturaPA TipoDocumento",
            location="invoice.document_type_code",
            suggestion="Use 380 (invoice) or 381 (credit note)",
        )
    return None


def check_seller_vat_id(invoice: CanonicalInvoice) -> Optional[RuleViolation]:
    vat_id = (invoice.seller.vat_id or "").strip()
    if not vat_id:
        return RuleViolation(
            rule_id="FPA-010",
            message="Seller VAT ID (IdFiscaleIVA) is required for FatturaPA",
            location="invoice.seller.vat_id",
            suggestion='Provide VAT ID with country prefix (e.g. "IT01234567890")',
        )
    if len(vat_id) < 4:
        return RuleViolation(
            rule_id="FPA-010a",
            message=f'Seller VAT ID "{vat_id}" is too short: it must contain country code and VAT number',
            location="invoice.seller.vat_id",
        )
    return None


def check_buyer_identification(invoice: CanonicalInvoice) -> Optional[RuleViolation]:
    buyer = invoice.buyer
    if is_blank(buyer.vat_id) and is_blank(buyer.tax_number) and is_blank(buyer.tax_id):
        return RuleViolation(
            rule_id="FPA-020",
            message="Buyer identification is required for FatturaPA (VAT ID or fiscal code)",
            location="invoice.buyer.identification",
            suggestion="Provide buyer VAT ID (IdFiscaleIVA) or fiscal code (CodiceFiscale)",
        )
    return None


def check_recipient_code(invoice: CanonicalInvoice) -> Optional[RuleViolation]:
    """CodiceDestinatario is 7 characters; 0000000 routes by PEC."""
    code = (invoice.buyer.electronic_address or "").strip()
    if code and code != "0000000" and not _RECIPIENT_CODE.match(code):
        return RuleViolation(
            rule_id="FPA-021",
            message=f'CodiceDestinatario "{code}" should be exactly 7 alphanumeric characters',
            location="invoice.buyer.electronic_address",
            suggestion='Use 7-character SDI code or "0000000" for PEC delivery',
        )
    return None


def check_has_lines(invoice: CanonicalInvoice) -> Optional[RuleViolation]:
    if not invoice.line_items:
        return RuleViolation(
            rule_id="FPA-030",
            message="At least one line item (DettaglioLinee) is required for FatturaPA",
            location="invoice.line_items",
        )
    return None


def check_line_descriptions(invoice: CanonicalInvoice) -> list[RuleViolation]:
    return [
        RuleViolation(
            rule_id="FPA-031",
            message=f"Line item {i + 1}: description (Descrizione) is required",
            location=f"invoice.line_items[{i}].description",
        )
        for i, item in enumerate(invoice.line_items)
        if is_blank(item.description)
    ]


def check_line_quantities(invoice: CanonicalInvoice) -> list[RuleViolation]:
    return [
        RuleViolation(
            rule_id="FPA-032",
            message=f"Line item {i + 1}: quantity (Quantita) must be a positive number",
            location=f"invoice.line_items[{i}].quantity",
        )
        for i, item in enumerate(invoice.line_items)
        if item.quantity is None or item.quantity <= 0
    ]


def check_line_prices(invoice: CanonicalInvoice) -> list[RuleViolation]:
    return [
        RuleViolation(
            rule_id="FPA-033",
            message=f"Line item {i + 1}: unit price (PrezzoUnitario) is required",
            location=f"invoice.line_items[{i}].unit_price",
        )
        for i, item in enumerate(invoice.line_items)
        if item.unit_price is None
    ]


def check_line_rates(invoice: CanonicalInvoice) -> list[RuleViolation]:
    return [
        RuleViolation(
            rule_id="FPA-034",
            message=f"Line item {i + 1}: tax rate (AliquotaIVA) is required",
            location=f"invoice.line_items[{i}].tax_rate",
        )
        for i, item in enumerate(invoice.line_items)
        if item.tax_rate is None
    ]


def check_reverse_charge_rates(invoice: CanonicalInvoice) -> list[RuleViolation]:
    return [
        RuleViolation(
            rule_id="FPA-035",
            message=f"Line item {i + 1}: reverse charge (AE) tax rate must be 0%, got {item.tax_rate}%",
            location=f"invoice.line_items[{i}].tax_rate",
            suggestion="Set tax rate to 0 for reverse charge items",
        )
        for i, item in enumerate(invoice.line_items)
        if (item.tax_category_code or "").strip() == "AE" and item.tax_rate is not None and item.tax_rate != 0
    ]


def check_natura_categories(invoice: CanonicalInvoice) -> list[RuleViolation]:
    """A 0% line needs a tax category to pick its Natura code."""
    return [
        RuleViolation(
            rule_id="FPA-035a",
            message=(
                f"Line item {i + 1}: 0% VAT rate requires a tax category code "
                "to determine Natura (e.g. E, Z, AE, K, G, O)"
            ),
            location=f"invoice.line_items[{i}].tax_category_code",
            suggestion="Set the tax category code to map to the correct FatturaPA Natura code",
        )
        for i, item in enumerate(invoice.line_items)
        if item.tax_rate is not None and item.tax_rate == 0 and not item.tax_category_code
    ]


def check_tax_regime(invoice: CanonicalInvoice) -> Optional[RuleViolation]:
    regime = (invoice.seller.tax_regime or "").strip()
    if regime and not _TAX_REGIME.match(regime):
        return RuleViolation(
            rule_id="FPA-036",
            message=f'RegimeFiscale "{regime}" is not valid: must be RF01 through RF19',
            location="invoice.seller.tax_regime",
            suggestion="Use RF01 (ordinario) unless a special regime applies",
        )
    return None


FATTURAPA_RULES: list[ValidationRule] = [
    required_field("FPA-001", "invoice_number", "Invoice number (Numero) is required for FatturaPA"),
    required_field("FPA-002", "invoice_date", "Invoice date (Data) is required for FatturaPA"),
    make_rule("FPA-003", "Currency (Divisa) is required and must be ISO 4217", RuleCategory.CODE_LIST, check_currency),
    make_rule("FPA-004", "Document type must map to a TipoDocumento", RuleCategory.DOCUMENT_TYPE, check_document_type),
    make_rule("FPA-010", "Seller VAT id (IdFiscaleIVA) is required", RuleCategory.MANDATORY_FIELD, check_seller_vat_id),
    required_field("FPA-011", "seller.address", "Seller street address (Indirizzo) is required for FatturaPA"),
    required_field("FPA-012", "seller.city", "Seller city (Comune) is required for FatturaPA"),
    required_field("FPA-013", "seller.postal_code", "Seller postal code (CAP) is required for FatturaPA"),
    required_field("FPA-014", "seller.country_code", "Seller country code (Nazione) is required for FatturaPA"),
    make_rule(
        "FPA-020",
        "Buyer VAT id or fiscal code is required",
        RuleCategory.MANDATORY_FIELD,
        check_buyer_identification,
    ),
    make_rule(
        "FPA-021",
        "CodiceDestinatario should be 7 alphanumeric characters",
        RuleCategory.ROUTING,
        check_recipient_code,
        severity=Severity.WARNING,
    ),
    make_rule("FPA-030", "At least one line item is required", RuleCategory.MANDATORY_FIELD, check_has_lines),
    make_rule("FPA-031", "Line description is required", RuleCategory.MANDATORY_FIELD, check_line_descriptions),
    make_rule("FPA-032", "Line quantity must be positive", RuleCategory.CONSISTENCY, check_line_quantities),
    make_rule("FPA-033", "Line unit price is required", RuleCategory.MANDATORY_FIELD, check_line_prices),
    make_rule("FPA-034", "Line tax rate is required", RuleCategory.MANDATORY_FIELD, check_line_rates),
    make_rule("FPA-035", "Reverse charge lines must have a 0% rate", RuleCategory.CONSISTENCY, check_reverse_charge_rates),
    make_rule(
        "FPA-035a",
        "0% lines should carry a tax category for the Natura code",
        RuleCategory.CODE_LIST,
        check_natura_categories,
        severity=Severity.WARNING,
    ),
    make_rule("FPA-036", "RegimeFiscale must be RF01 to RF19", RuleCategory.CODE_LIST, check_tax_regime),
]
