"""
XRechnung 3.0 rules (German CIUS, BR-DE), shared by the CII and UBL syntaxes.
"""

from typing import Optional

from ..config import RuleCategory, Severity
from ..schemas import CanonicalInvoice, RuleViolation
from .base import (
    ValidationRule,
    credit_note_reference_rule,
    has_seller_tax_identifier,
    is_blank,
    payment_terms_rule,
    required_field,
)


def check_seller_contact(invoice: CanonicalInvoice) -> Optional[RuleViolation]:
    """
    BR-DE-2: the seller contact needs a name, phone number and email address.

    The seller name stands in for a missing contact name.
    """
    seller = invoice.seller
    missing = []
    if is_blank(seller.contact_name) and is_blank(seller.name):
        missing.append("contact name")
    if is_blank(seller.phone):
        missing.append("phone number")
    if is_blank(seller.email):
        missing.append("email address")
    if missing:
        return RuleViolation(
            rule_id="BR-DE-2",
            message=f"Seller contact information is incomplete: missing {', '.join(missing)}",
            location="invoice.seller.contact",
            suggestion="Provide seller contact name, phone number, and email address",
        )
    return None


def check_seller_tax_identifier(invoice: CanonicalInvoice) -> Optional[RuleViolation]:
    if not has_seller_tax_identifier(invoice):
        return RuleViolation(
            rule_id="BR-CO-26",
            message=(
                "At least one seller tax identifier is required: VAT ID (BT-31), "
                "tax registration number (BT-32), or tax representative VAT ID (BT-63)"
            ),
            location="invoice.seller.tax_identifier",
            suggestion='Provide either the seller USt-IdNr. (e.g. "DE123456789") or Steuernummer (e.g. "12/345/67890")',
        )
    return None


def check_currency_eur(invoice: CanonicalInvoice) -> Optional[RuleViolation]:
    currency = (invoice.currency or "EUR").strip().upper()
    if currency != "EUR":
        return RuleViolation(
            rule_id="BR-DE-18",
            message=f'XRechnung requires EUR as the invoice currency. Current currency: "{currency}"',
            location="invoice.currency",
            suggestion="Change the invoice currency to EUR (Euro)",
        )
    return None


XRECHNUNG_RULES: list[ValidationRule] = [
    required_field("BR-DE-1", "seller.address", "Seller street address is required"),
    ValidationRule(
        rule_id="BR-DE-2",
        description="Seller contact must include name, phone number and email",
        category=RuleCategory.MANDATORY_FIELD,
        severity=Severity.ERROR,
        check=check_seller_contact,
    ),
    required_field("BR-DE-3", "seller.city", "Seller city is required"),
    required_field("BR-DE-4", "seller.postal_code", "Seller postal code is required"),
    required_field("BR-DE-5", "seller.country_code", "Seller country code is required"),
    required_field(
        "BR-DE-6",
        "buyer.address",
        "Buyer street address is required for XRechnung",
        suggestion='Provide the buyer street address (e.g. "Musterstraße 1")',
    ),
    required_field(
        "BR-DE-7",
        "buyer.city",
        "Buyer city is required for XRechnung",
        suggestion='Provide the buyer city name (e.g. "Berlin")',
    ),
    required_field(
        "BR-DE-8",
        "buyer.postal_code",
        "Buyer postal code is required for XRechnung",
        suggestion='Provide the buyer postal code (e.g. "10115")',
    ),
    required_field(
        "BR-DE-11",
        "buyer.country_code",
        "Buyer country code is required",
        suggestion='Provide a 2-letter country code (e.g. "DE" for Germany)',
    ),
    required_field(
        "BR-DE-15",
        "buyer_reference",
        "Buyer reference (Leitweg-ID) is required for XRechnung",
        suggestion="Provide the Leitweg-ID of the receiving authority, or the buyer's order reference",
        category=RuleCategory.ROUTING,
    ),
    ValidationRule(
        rule_id="BR-CO-26",
        description="At least one seller tax identifier is required",
        category=RuleCategory.MANDATORY_FIELD,
        severity=Severity.ERROR,
        check=check_seller_tax_identifier,
    ),
    ValidationRule(
        rule_id="BR-DE-18",
        description="Invoice currency must be EUR",
        category=RuleCategory.CODE_LIST,
        severity=Severity.ERROR,
        check=check_currency_eur,
    ),
    required_field(
        "BR-DE-23-a",
        "payment.iban",
        "Seller IBAN is required for SEPA credit transfer (TypeCode 58)",
        suggestion="Provide the seller IBAN or change payment means type",
    ),
    required_field(
        "PEPPOL-EN16931-R010",
        "buyer.electronic_address",
        "Buyer electronic address (BT-49) is required for XRechnung",
        suggestion="Provide buyer electronic address (e.g. email)",
        category=RuleCategory.ROUTING,
    ),
    required_field(
        "BR-DE-SELLER-EADDR",
        "seller.electronic_address",
        "Seller electronic address (BT-34) is required for XRechnung",
        suggestion="Provide seller electronic address (e.g. email)",
        category=RuleCategory.ROUTING,
    ),
    credit_note_reference_rule(
        "BR-55",
        "Provide the original invoice number that this credit note relates to",
    ),
    payment_terms_rule("BR-CO-25", "Either payment terms or payment due date is required"),
]
