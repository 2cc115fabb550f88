"""
KSeF FA(2) rules (Polish national e-invoicing system).
"""

from typing import Optional

from ..config import MAX_INVOICE_NUMBER_LENGTH, RuleCategory, Severity
from ..generators.ksef import OTHER_RATE_BUCKET, extract_nip, is_statutory_rate
from ..monetary import format_quantity
from ..schemas import CanonicalInvoice, RuleViolation
from .base import ValidationRule, is_blank, make_rule, required_field


def check_seller_nip(invoice: CanonicalInvoice) -> Optional[RuleViolation]:
    nip = extract_nip(invoice.seller)
    if len(nip) != 10:
        return RuleViolation(
            rule_id="KSEF-01",
            message=f"Seller NIP (10-digit Polish tax ID) is required for KSeF, got {nip or '(empty)'}",
            location="invoice.seller.vat_id",
            suggestion='Provide the seller NIP, e.g. "PL1234567890" or "1234567890"',
        )
    return None


def check_buyer_identity(invoice: CanonicalInvoice) -> Optional[RuleViolation]:
    if not extract_nip(invoice.buyer) and is_blank(invoice.buyer.name):
        return RuleViolation(
            rule_id="KSEF-02",
            message="Buyer NIP or name is required for KSeF",
            location="invoice.buyer",
        )
    return None


def check_invoice_number(invoice: CanonicalInvoice) -> Optional[RuleViolation]:
    number = invoice.invoice_number
    if is_blank(number):
        return RuleViolation(
            rule_id="KSEF-03",
            message="Invoice number is required for KSeF",
            location="invoice.invoice_number",
        )
    if len(number) > MAX_INVOICE_NUMBER_LENGTH:
        return RuleViolation(
            rule_id="KSEF-03",
            message=f"Invoice number must not exceed {MAX_INVOICE_NUMBER_LENGTH} characters",
            location="invoice.invoice_number",
        )
    return None


def check_has_lines(invoice: CanonicalInvoice) -> Optional[RuleViolation]:
    if not invoice.line_items:
        return RuleViolation(
            rule_id="KSEF-06",
            message="At least one line item is required for KSeF",
            location="invoice.line_items",
        )
    return None


def check_line_items(invoice: CanonicalInvoice) -> list[RuleViolation]:
    """KSEF-07: every line needs a description (P_7) and a tax rate (P_12)."""
    violations = []
    for i, item in enumerate(invoice.line_items):
        if is_blank(item.description):
            violations.append(RuleViolation(
                rule_id="KSEF-07",
                message=f"Line item {i + 1}: description is required",
                location=f"invoice.line_items[{i}].description",
            ))
        if item.tax_rate is None:
            violations.append(RuleViolation(
                rule_id="KSEF-07",
                message=f"Line item {i + 1}: tax rate is required",
                location=f"invoice.line_items[{i}].tax_rate",
            ))
    return violations


def check_statutory_rates(invoice: CanonicalInvoice) -> list[RuleViolation]:
    """
    KSEF-08: rates outside 23/22/8/7/5/0 are reported in the other-rate bucket.

    This is a warning: such invoices are still generated and accepted.
    """
    return [
        RuleViolation(
            rule_id="KSEF-08",
            message=(
                f"Line item {i + 1}: tax rate {format_quantity(item.tax_rate)}% "
                "is not a standard Polish VAT rate"
            ),
            location=f"invoice.line_items[{i}].tax_rate",
            suggestion=f"The amount is reported in {OTHER_RATE_BUCKET[0]}/{OTHER_RATE_BUCKET[1]} (other rates)",
        )
        for i, item in enumerate(invoice.line_items)
        if item.tax_rate is not None and not is_statutory_rate(item.tax_rate)
    ]


KSEF_RULES: list[ValidationRule] = [
    make_rule("KSEF-01", "Seller NIP (10 digits) is required", RuleCategory.MANDATORY_FIELD, check_seller_nip),
    make_rule("KSEF-02", "Buyer NIP or name is required", RuleCategory.MANDATORY_FIELD, check_buyer_identity),
    make_rule("KSEF-03", "Invoice number is required, at most 256 characters", RuleCategory.MANDATORY_FIELD, check_invoice_number),
    required_field("KSEF-04", "invoice_date", "Invoice issue date is required for KSeF"),
    required_field("KSEF-05", "currency", "Currency code (ISO 4217) is required for KSeF"),
    make_rule("KSEF-06", "At least one line item is required", RuleCategory.MANDATORY_FIELD, check_has_lines),
    make_rule("KSEF-07", "Line description and tax rate are required", RuleCategory.MANDATORY_FIELD, check_line_items),
    make_rule(
        "KSEF-08",
        "Tax rates should be Polish statutory rates",
        RuleCategory.CODE_LIST,
        check_statutory_rates,
        severity=Severity.WARNING,
    ),
    required_field("KSEF-09", "totals.total_amount", "Total amount is required for KSeF"),
]
