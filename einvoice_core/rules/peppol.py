"""
PEPPOL BIS Billing 3.0 rules, and the Dutch (NLCIUS) and Romanian (CIUS-RO)
extensions that build on them.
"""

import re
from typing import Optional

from ..config import EAS_SCHEME_IDS, TAX_CATEGORY_CODES, RuleCategory, Severity
from ..schemas import CanonicalInvoice, Party, RuleViolation
from .base import (
    RuleCheckFn,
    ValidationRule,
    credit_note_reference_rule,
    has_seller_tax_identifier,
    is_blank,
)

_ISO_COUNTRY = re.compile(r"^[A-Z]{2}$")

_SCHEME_SUGGESTION = 'Use a valid EAS scheme identifier (e.g. "0088" for EAN, "0204" for Leitweg-ID)'


def _endpoint_check(party_name: str, rule_id: str, bt: str) -> RuleCheckFn:
    """Endpoint presence (R010 buyer, R020 seller)."""
    label = party_name.capitalize()

    def check(invoice: CanonicalInvoice) -> Optional[RuleViolation]:
        party: Party = getattr(invoice, party_name)
        if is_blank(party.electronic_address):
            return RuleViolation(
                rule_id=rule_id,
                message=f"{label} electronic address ({bt} EndpointID) is required for PEPPOL",
                location=f"invoice.{party_name}.electronic_address",
                suggestion=f"Provide {party_name} electronic address (e.g. PEPPOL participant ID)",
            )
        return None

    return check


def _scheme_check(party_name: str, rule_id: str) -> RuleCheckFn:
    label = party_name.capitalize()

    def check(invoice: CanonicalInvoice) -> Optional[RuleViolation]:
        party: Party = getattr(invoice, party_name)
        if is_blank(party.electronic_address):
            return None
        scheme = (party.electronic_address_scheme or "").strip()
        if not scheme:
            return RuleViolation(
                rule_id=rule_id,
                message=f"{label} endpoint scheme ID is missing",
                location=f"invoice.{party_name}.electronic_address_scheme",
                suggestion=_SCHEME_SUGGESTION,
            )
        if scheme not in EAS_SCHEME_IDS:
            return RuleViolation(
                rule_id=rule_id,
                message=f'{label} endpoint scheme ID "{scheme}" is not a valid EAS code',
                location=f"invoice.{party_name}.electronic_address_scheme",
                suggestion=_SCHEME_SUGGESTION,
            )
        return None

    return check


def check_tax_categories(invoice: CanonicalInvoice) -> list[RuleViolation]:
    allowed = ", ".join(sorted(TAX_CATEGORY_CODES))
    return [
        RuleViolation(
            rule_id="PEPPOL-EN16931-CL001",
            message=f'Tax category code "{item.tax_category_code}" is not in the PEPPOL allowed set ({allowed})',
            location=f"invoice.line_items[{i}].tax_category_code",
        )
        for i, item in enumerate(invoice.line_items)
        if item.tax_category_code and item.tax_category_code.strip() not in TAX_CATEGORY_CODES
    ]


def check_country_codes(invoice: CanonicalInvoice) -> list[RuleViolation]:
    violations = []
    for party_name in ("seller", "buyer"):
        code = (getattr(invoice, party_name).country_code or "").strip()
        if code and not _ISO_COUNTRY.match(code):
            violations.append(RuleViolation(
                rule_id="PEPPOL-EN16931-CL005",
                message=f'{party_name.capitalize()} country code "{code}" is not a valid ISO 3166-1 alpha-2 code',
                location=f"invoice.{party_name}.country_code",
                suggestion='Use a 2-letter uppercase country code (e.g. "DE", "SE", "NO")',
            ))
    return violations


def check_seller_tax_identifier(invoice: CanonicalInvoice) -> Optional[RuleViolation]:
    if not has_seller_tax_identifier(invoice):
        return RuleViolation(
            rule_id="PEPPOL-EN16931-R004",
            message="At least one seller tax identifier is required (BT-31, BT-32, or BT-63)",
            location="invoice.seller.tax_identifier",
            suggestion="Provide seller VAT ID or tax registration number",
        )
    return None


def check_reverse_charge(invoice: CanonicalInvoice) -> list[RuleViolation]:
    """BR-AE-01: reverse charge needs the VAT ids of both parties."""
    if not any((item.tax_category_code or "").strip() == "AE" for item in invoice.line_items):
        return []
    violations = []
    for party_name, bt in (("seller", "BT-31"), ("buyer", "BT-48")):
        if is_blank(getattr(invoice, party_name).vat_id):
            violations.append(RuleViolation(
                rule_id="BR-AE-01",
                message=(
                    f"Reverse charge (AE): {party_name.capitalize()} VAT ID ({bt}) "
                    "is required when tax category AE is used"
                ),
                location=f"invoice.{party_name}.vat_id",
                suggestion=f"Provide {party_name} VAT ID for reverse charge invoices",
            ))
    return violations


def check_exempt_rates(invoice: CanonicalInvoice) -> list[RuleViolation]:
    """BR-E-01: exempt lines carry a 0% rate."""
    return [
        RuleViolation(
            rule_id="BR-E-01",
            message=f"Exempt (E) line item {i + 1}: tax rate must be 0%, got {item.tax_rate}%",
            location=f"invoice.line_items[{i}].tax_rate",
            suggestion="Set tax rate to 0 for exempt items",
        )
        for i, item in enumerate(invoice.line_items)
        if (item.tax_category_code or "").strip() == "E" and item.tax_rate is not None and item.tax_rate != 0
    ]


PEPPOL_RULES: list[ValidationRule] = [
    ValidationRule(
        rule_id="PEPPOL-EN16931-R010",
        description="Buyer electronic address (BT-49) is required",
        category=RuleCategory.ROUTING,
        severity=Severity.ERROR,
        check=_endpoint_check("buyer", "PEPPOL-EN16931-R010", "BT-49"),
    ),
    ValidationRule(
        rule_id="PEPPOL-EN16931-R010-SCHEME",
        description="Buyer endpoint scheme must be an EAS code",
        category=RuleCategory.ROUTING,
        severity=Severity.ERROR,
        check=_scheme_check("buyer", "PEPPOL-EN16931-R010-SCHEME"),
    ),
    ValidationRule(
        rule_id="PEPPOL-EN16931-R020",
        description="Seller electronic address (BT-34) is required",
        category=RuleCategory.ROUTING,
        severity=Severity.ERROR,
        check=_endpoint_check("seller", "PEPPOL-EN16931-R020", "BT-34"),
    ),
    ValidationRule(
        rule_id="PEPPOL-EN16931-R020-SCHEME",
        description="Seller endpoint scheme must be an EAS code",
        category=RuleCategory.ROUTING,
        severity=Severity.ERROR,
        check=_scheme_check("seller", "PEPPOL-EN16931-R020-SCHEME"),
    ),
    ValidationRule(
        rule_id="PEPPOL-EN16931-CL001",
        description="Line tax category must be in the PEPPOL set",
        category=RuleCategory.CODE_LIST,
        severity=Severity.ERROR,
        check=check_tax_categories,
    ),
    ValidationRule(
        rule_id="PEPPOL-EN16931-CL005",
        description="Country codes must be ISO 3166-1 alpha-2",
        category=RuleCategory.CODE_LIST,
        severity=Severity.ERROR,
        check=check_country_codes,
    ),
    ValidationRule(
        rule_id="PEPPOL-EN16931-R004",
        description="At least one seller tax identifier is required",
        category=RuleCategory.MANDATORY_FIELD,
        severity=Severity.ERROR,
        check=check_seller_tax_identifier,
    ),
    ValidationRule(
        rule_id="BR-AE-01",
        description="Reverse charge requires seller and buyer VAT ids",
        category=RuleCategory.CONSISTENCY,
        severity=Severity.ERROR,
        check=check_reverse_charge,
    ),
    ValidationRule(
        rule_id="BR-E-01",
        description="Exempt lines must have a 0% rate",
        category=RuleCategory.CONSISTENCY,
        severity=Severity.ERROR,
        check=check_exempt_rates,
    ),
    credit_note_reference_rule(
        "PEPPOL-EN16931-R006",
        "Provide the original invoice number this credit note relates to",
    ),
]


# ============================================================================
# NLCIUS (Netherlands)
# ============================================================================

_DUTCH_BTW = re.compile(r"^NL\d{9}B\d{2}$")
_OIN = re.compile(r"^\d{20}$")
_KVK = re.compile(r"^\d{8}$")


def check_dutch_vat_ids(invoice: CanonicalInvoice) -> list[RuleViolation]:
    violations = []
    for party_name in ("seller", "buyer"):
        vat_id = (getattr(invoice, party_name).vat_id or "").strip()
        if vat_id.startswith("NL") and not _DUTCH_BTW.match(vat_id):
            violations.append(RuleViolation(
                rule_id="NLCIUS-BTW-FORMAT",
                message=f'Dutch VAT ID must match format NLxxxxxxxxxBxx, got "{vat_id}"',
                location=f"invoice.{party_name}.vat_id",
                suggestion="Format: NL + 9 digits + B + 2 digits (e.g. NL123456789B01)",
            ))
    return violations


def _dutch_endpoint_check(rule_id: str, scheme: str, pattern: re.Pattern, label: str, suggestion: str) -> RuleCheckFn:
    def check(invoice: CanonicalInvoice) -> list[RuleViolation]:
        violations = []
        for party_name in ("seller", "buyer"):
            party: Party = getattr(invoice, party_name)
            address = (party.electronic_address or "").strip()
            if address and party.electronic_address_scheme == scheme and not pattern.match(address):
                violations.append(RuleViolation(
                    rule_id=rule_id,
                    message=f'{party_name.capitalize()} {label} (schemeID {scheme}) is invalid, got "{address}"',
                    location=f"invoice.{party_name}.electronic_address",
                    suggestion=suggestion,
                ))
        return violations

    return check


NLCIUS_RULES: list[ValidationRule] = PEPPOL_RULES + [
    ValidationRule(
        rule_id="NLCIUS-BTW-FORMAT",
        description="Dutch VAT ids must match NL + 9 digits + B + 2 digits",
        category=RuleCategory.CODE_LIST,
        severity=Severity.ERROR,
        check=check_dutch_vat_ids,
    ),
    ValidationRule(
        rule_id="NLCIUS-OIN-FORMAT",
        description="OIN endpoints (scheme 0190) must be 20 digits",
        category=RuleCategory.ROUTING,
        severity=Severity.ERROR,
        check=_dutch_endpoint_check("NLCIUS-OIN-FORMAT", "0190", _OIN, "OIN", "Provide a 20-digit OIN identifier"),
    ),
    ValidationRule(
        rule_id="NLCIUS-KVK-FORMAT",
        description="KVK endpoints (scheme 0106) must be 8 digits",
        category=RuleCategory.ROUTING,
        severity=Severity.ERROR,
        check=_dutch_endpoint_check("NLCIUS-KVK-FORMAT", "0106", _KVK, "KVK number", "Provide an 8-digit KVK number"),
    ),
]


# ============================================================================
# CIUS-RO (Romania)
# ============================================================================

_CUI = re.compile(r"^(RO)?\d{1,10}$")
_RO_VAT = re.compile(r"^RO\d{2,10}$")


def check_romanian_cui(invoice: CanonicalInvoice) -> list[RuleViolation]:
    violations = []
    for party_name in ("seller", "buyer"):
        tax_number = (getattr(invoice, party_name).tax_number or "").strip()
        if tax_number and not _CUI.match(tax_number):
            violations.append(RuleViolation(
                rule_id="CIUS-RO-CUI-FORMAT",
                message=f'Romanian CUI/CIF must be optional "RO" prefix + up to 10 digits, got "{tax_number}"',
                location=f"invoice.{party_name}.tax_number",
                suggestion="Format: RO + up to 10 digits or just up to 10 digits (e.g. RO12345678 or 12345678)",
            ))
    return violations


def check_romanian_vat_ids(invoice: CanonicalInvoice) -> list[RuleViolation]:
    violations = []
    for party_name in ("seller", "buyer"):
        vat_id = (getattr(invoice, party_name).vat_id or "").strip()
        if vat_id.startswith("RO") and not _RO_VAT.match(vat_id):
            violations.append(RuleViolation(
                rule_id="CIUS-RO-VAT-FORMAT",
                message=f'Romanian VAT ID must be RO + 2 to 10 digits, got "{vat_id}"',
                location=f"invoice.{party_name}.vat_id",
                suggestion="Format: RO + 2 to 10 digits (e.g. RO12345678)",
            ))
    return violations


CIUS_RO_RULES: list[ValidationRule] = PEPPOL_RULES + [
    ValidationRule(
        rule_id="CIUS-RO-CUI-FORMAT",
        description="Romanian CUI/CIF must be an optional RO prefix + up to 10 digits",
        category=RuleCategory.CODE_LIST,
        severity=Severity.ERROR,
        check=check_romanian_cui,
    ),
    ValidationRule(
        rule_id="CIUS-RO-VAT-FORMAT",
        description="Romanian VAT ids must be RO + 2 to 10 digits",
        category=RuleCategory.CODE_LIST,
        severity=Severity.ERROR,
        check=check_romanian_vat_ids,
    ),
]
