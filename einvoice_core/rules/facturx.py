"""
Factur-X rules for the EN 16931 and BASIC profiles.

Factur-X carries neither the German BR-DE rules nor the PEPPOL routing rules:
there is no currency or Leitweg-ID restriction.
"""

import re
from typing import Optional

from ..config import COUNTRY_CODES, TAX_CATEGORY_CODES, RuleCategory, Severity
from ..schemas import CanonicalInvoice, RuleViolation
from .base import (
    RuleCheckFn,
    ValidationRule,
    credit_note_reference_rule,
    has_seller_tax_identifier,
    payment_terms_rule,
    required_field,
)

_ISO_4217 = re.compile(r"^[A-Z]{3}$")


def check_document_type(invoice: CanonicalInvoice) -> Optional[RuleViolation]:
    code = invoice.document_type_code
    if code not in (380, 381):
        return RuleViolation(
            rule_id="FX-COMMON-001",
            message=f'Document type code must be 380 (invoice) or 381 (credit note), got "{code}"',
            location="invoice.document_type_code",
            suggestion="Use 380 for invoices or 381 for credit notes",
        )
    return None


def check_has_lines(invoice: CanonicalInvoice) -> Optional[RuleViolation]:
    if not invoice.line_items:
        return RuleViolation(
            rule_id="FX-COMMON-002",
            message="At least one line item is required",
            location="invoice.line_items",
        )
    return None


def _country_check(party_name: str, rule_id: str) -> RuleCheckFn:
    """Missing country reports rule_id, an unknown one reports rule_id + "a"."""
    label = party_name.capitalize()

    def check(invoice: CanonicalInvoice) -> Optional[RuleViolation]:
        country = (getattr(invoice, party_name).country_code or "").strip()
        location = f"invoice.{party_name}.country_code"
        if not country:
            return RuleViolation(
                rule_id=rule_id,
                message=f"{label} country code is required for Factur-X",
                location=location,
            )
        if country not in COUNTRY_CODES:
            return RuleViolation(
                rule_id=f"{rule_id}a",
                message=f'{label} country code "{country}" is not a valid ISO 3166-1 alpha-2 code',
                location=location,
            )
        return None

    return check


def check_currency(invoice: CanonicalInvoice) -> Optional[RuleViolation]:
    currency = (invoice.currency or "").strip().upper()
    if currency and not _ISO_4217.match(currency):
        return RuleViolation(
            rule_id="FX-COMMON-008",
            message=f'Currency "{currency}" is not a valid ISO 4217 code',
            location="invoice.currency",
            suggestion='Use a 3-letter ISO 4217 currency code (e.g. "EUR", "USD")',
        )
    return None


def check_tax_categories(invoice: CanonicalInvoice) -> list[RuleViolation]:
    return [
        RuleViolation(
            rule_id="FX-COMMON-009",
            message=f'Tax category code "{item.tax_category_code}" is not in the EN 16931 allowed set',
            location=f"invoice.line_items[{i}].tax_category_code",
        )
        for i, item in enumerate(invoice.line_items)
        if item.tax_category_code and item.tax_category_code.strip() not in TAX_CATEGORY_CODES
    ]


def check_seller_tax_identifier(invoice: CanonicalInvoice) -> Optional[RuleViolation]:
    if not has_seller_tax_identifier(invoice):
        return RuleViolation(
            rule_id="FX-COMMON-011",
            message=(
                "At least one seller tax identifier is required "
                "(VAT ID, tax number, or tax representative VAT ID)"
            ),
            location="invoice.seller.tax_identifier",
            suggestion="Provide seller VAT ID or tax registration number",
        )
    return None


FACTURX_COMMON_RULES: list[ValidationRule] = [
    ValidationRule(
        rule_id="FX-COMMON-001",
        description="Document type must be 380 or 381",
        category=RuleCategory.DOCUMENT_TYPE,
        severity=Severity.ERROR,
        check=check_document_type,
    ),
    ValidationRule(
        rule_id="FX-COMMON-002",
        description="At least one line item is required",
        category=RuleCategory.MANDATORY_FIELD,
        severity=Severity.ERROR,
        check=check_has_lines,
    ),
    required_field("FX-COMMON-003", "seller.name", "Seller name is required for Factur-X"),
    required_field("FX-COMMON-004", "seller.address", "Seller address is required for Factur-X"),
    required_field("FX-COMMON-005", "buyer.name", "Buyer name is required for Factur-X"),
    ValidationRule(
        rule_id="FX-COMMON-006",
        description="Seller country code is required and must be ISO 3166-1 alpha-2",
        category=RuleCategory.MANDATORY_FIELD,
        severity=Severity.ERROR,
        check=_country_check("seller", "FX-COMMON-006"),
    ),
    ValidationRule(
        rule_id="FX-COMMON-007",
        description="Buyer country code is required and must be ISO 3166-1 alpha-2",
        category=RuleCategory.MANDATORY_FIELD,
        severity=Severity.ERROR,
        check=_country_check("buyer", "FX-COMMON-007"),
    ),
    ValidationRule(
        rule_id="FX-COMMON-008",
        description="Currency must be a 3-letter ISO 4217 code",
        category=RuleCategory.CODE_LIST,
        severity=Severity.ERROR,
        check=check_currency,
    ),
    ValidationRule(
        rule_id="FX-COMMON-009",
        description="Line tax category must be in the EN 16931 set",
        category=RuleCategory.CODE_LIST,
        severity=Severity.ERROR,
        check=check_tax_categories,
    ),
    credit_note_reference_rule(
        "FX-COMMON-010",
        "Provide the original invoice number this credit note relates to",
    ),
    ValidationRule(
        rule_id="FX-COMMON-011",
        description="At least one seller tax identifier is required",
        category=RuleCategory.MANDATORY_FIELD,
        severity=Severity.ERROR,
        check=check_seller_tax_identifier,
    ),
]

FACTURX_EN16931_RULES: list[ValidationRule] = FACTURX_COMMON_RULES + [
    payment_terms_rule(
        "FX-EN16931-001",
        "Either payment terms or payment due date is required for Factur-X EN 16931 profile",
    ),
]

# BASIC adds nothing to the common rules
FACTURX_BASIC_RULES: list[ValidationRule] = list(FACTURX_COMMON_RULES)
