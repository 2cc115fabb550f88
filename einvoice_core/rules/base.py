"""
Rule building blocks and the EN 16931 rules shared by every profile.

A rule wraps a check function. The check receives a CanonicalInvoice and
returns a RuleViolation, a list of them, or None when the invoice passes.
Whether a violation is an error or a warning is decided by the rule's
severity, not by the check.

Base rules are grouped by category:
- Mandatory fields: BR-02, BR-03, BR-06, BR-07, BR-16
- Consistency: BR-CO-10, BR-CO-14, BR-CO-15, BR-TOTAL-POSITIVE, LINE-CALC
- Code lists: CL-BT-3, CL-BT-5, CL-BT-40, CL-BT-55, CL-BT-151, CL-BT-95, CL-UNIT
"""

from dataclasses import dataclass
from typing import Callable, Optional, Union

from ..config import (
    COUNTRY_CODES,
    CREDIT_NOTE_TYPE_CODES,
    DOCUMENT_TYPE_CODES,
    SUPPORTED_CURRENCIES,
    TAX_CATEGORY_CODES,
    UNIT_CODES,
    RuleCategory,
    Severity,
)
from ..monetary import format_amount, money_equal, recompute_totals, round_money, sum_money
from ..schemas import CanonicalInvoice, RuleViolation

CheckResult = Union[RuleViolation, list[RuleViolation], None]

# Type alias for rule check functions
RuleCheckFn = Callable[[CanonicalInvoice], CheckResult]


@dataclass(frozen=True)
class ValidationRule:
    """
    Represents a single business rule.

    Attributes:
        rule_id: Identifier from the rule corpus (e.g. "BR-CO-15")
        description: Human-readable description of the rule
        category: Category of the rule (mandatory field, consistency, ...)
        severity: ERROR blocks validity, WARNING does not
        check: Function that performs the check
    """
    rule_id: str
    description: str
    category: RuleCategory
    severity: Severity
    check: RuleCheckFn


def is_blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


def resolve_path(invoice: CanonicalInvoice, path: str):
    """Follow a dotted attribute path such as "seller.postal_code"."""
    value = invoice
    for part in path.split("."):
        value = getattr(value, part, None)
        if value is None:
            return None
    return value


def required_field(
    rule_id: str,
    path: str,
    message: str,
    suggestion: Optional[str] = None,
    category: RuleCategory = RuleCategory.MANDATORY_FIELD,
    severity: Severity = Severity.ERROR,
) -> ValidationRule:
    """Build a rule that fails when the field at path is empty."""

    def check(invoice: CanonicalInvoice) -> Optional[RuleViolation]:
        if is_blank(resolve_path(invoice, path)):
            return RuleViolation(
                rule_id=rule_id,
                message=message,
                location=f"invoice.{path}",
                suggestion=suggestion,
            )
        return None

    return ValidationRule(
        rule_id=rule_id,
        description=message,
        category=category,
        severity=severity,
        check=check,
    )


def make_rule(
    rule_id: str,
    description: str,
    category: RuleCategory,
    check: RuleCheckFn,
    severity: Severity = Severity.ERROR,
) -> ValidationRule:
    return ValidationRule(
        rule_id=rule_id,
        description=description,
        category=category,
        severity=severity,
        check=check,
    )


def has_seller_tax_identifier(invoice: CanonicalInvoice) -> bool:
    seller = invoice.seller
    return not (is_blank(seller.vat_id) and is_blank(seller.tax_number) and is_blank(seller.tax_id))


def credit_note_reference_rule(rule_id: str, suggestion: str) -> ValidationRule:
    """BT-25 must be present on credit notes."""

    def check(invoice: CanonicalInvoice) -> Optional[RuleViolation]:
        if invoice.document_type_code in CREDIT_NOTE_TYPE_CODES and is_blank(invoice.preceding_invoice_reference):
            return RuleViolation(
                rule_id=rule_id,
                message="Credit notes (TypeCode 381) must include a preceding invoice reference (BT-25)",
                location="invoice.preceding_invoice_reference",
                suggestion=suggestion,
            )
        return None

    return ValidationRule(
        rule_id=rule_id,
        description="Credit notes must reference the invoice they correct",
        category=RuleCategory.DOCUMENT_TYPE,
        severity=Severity.ERROR,
        check=check,
    )


def payment_terms_rule(rule_id: str, message: str) -> ValidationRule:
    """Payment terms or a due date must be present."""

    def check(invoice: CanonicalInvoice) -> Optional[RuleViolation]:
        if is_blank(invoice.payment.payment_terms) and is_blank(invoice.payment.due_date):
            return RuleViolation(rule_id=rule_id, message=message, location="invoice.payment")
        return None

    return ValidationRule(
        rule_id=rule_id,
        description="Payment terms or payment due date must be provided",
        category=RuleCategory.MANDATORY_FIELD,
        severity=Severity.ERROR,
        check=check,
    )


# ============================================================================
# Consistency Rules
# ============================================================================

def check_line_sum(invoice: CanonicalInvoice) -> Optional[RuleViolation]:
    """
    BR-CO-10: the sum of line net amounts equals the subtotal (BT-106).

    Invoices without lines are reported by BR-16 instead.
    """
    if not invoice.line_items:
        return None
    line_sum = sum_money(item.total_price for item in invoice.line_items)
    if not money_equal(line_sum, invoice.totals.subtotal):
        return RuleViolation(
            rule_id="BR-CO-10",
            message=(
                "Sum of line net amounts does not match invoice subtotal (BT-106): "
                f"expected {format_amount(line_sum)}, got {format_amount(invoice.totals.subtotal)}"
            ),
            location="invoice.totals.subtotal",
        )
    return None


def check_tax_total(invoice: CanonicalInvoice) -> Optional[RuleViolation]:
    """BR-CO-14: the tax total equals the tax recomputed per rate group."""
    if not invoice.line_items:
        return None
    expected = recompute_totals(invoice.line_items, invoice.allowance_charges).tax_amount
    if not money_equal(expected, invoice.totals.tax_amount):
        return RuleViolation(
            rule_id="BR-CO-14",
            message=(
                "Total tax amount does not match the sum of the tax breakdown: "
                f"expected {format_amount(expected)}, got {format_amount(invoice.totals.tax_amount)}"
            ),
            location="invoice.totals.tax_amount",
        )
    return None


def check_grand_total(invoice: CanonicalInvoice) -> Optional[RuleViolation]:
    """BR-CO-15: subtotal - allowances + charges + tax equals the total (BT-112)."""
    totals = invoice.totals
    expected = round_money(totals.tax_basis_total + totals.tax_amount)
    if not money_equal(expected, totals.total_amount):
        return RuleViolation(
            rule_id="BR-CO-15",
            message=(
                "Invoice total with VAT does not match subtotal - allowances + charges + tax: "
                f"expected {format_amount(expected)}, got {format_amount(totals.total_amount)}"
            ),
            location="invoice.totals.total_amount",
        )
    return None


def check_total_positive(invoice: CanonicalInvoice) -> Optional[RuleViolation]:
    """Only credit notes may carry a zero or negative total."""
    if invoice.document_type_code in CREDIT_NOTE_TYPE_CODES:
        return None
    if invoice.totals.total_amount <= 0:
        return RuleViolation(
            rule_id="BR-TOTAL-POSITIVE",
            message="Total amount must be greater than 0",
            location="invoice.totals.total_amount",
            suggestion="Use document type 381 for credit notes",
        )
    return None


def check_line_calculations(invoice: CanonicalInvoice) -> list[RuleViolation]:
    """Line net amount should equal quantity x unit price."""
    violations = []
    for i, item in enumerate(invoice.line_items):
        expected = round_money(item.quantity * item.unit_price)
        if not money_equal(expected, item.total_price):
            violations.append(RuleViolation(
                rule_id="LINE-CALC",
                message=(
                    f"Line item {i + 1}: total {format_amount(item.total_price)} differs from "
                    f"quantity x unit price ({format_amount(expected)})"
                ),
                location=f"invoice.line_items[{i}].total_price",
            ))
    return violations


# ============================================================================
# Code List Rules
# ============================================================================

def check_document_type(invoice: CanonicalInvoice) -> Optional[RuleViolation]:
    code = invoice.document_type_code
    if code not in DOCUMENT_TYPE_CODES:
        return RuleViolation(
            rule_id="CL-BT-3",
            message=(
                f"Invalid document type code: {code}. Allowed values: 380 (invoice), "
                "381 (credit note), 384 (corrected invoice), 389 (self-billed invoice)."
            ),
            location="invoice.document_type_code",
        )
    return None


def check_currency_code(invoice: CanonicalInvoice) -> Optional[RuleViolation]:
    currency = invoice.currency
    if currency and currency not in SUPPORTED_CURRENCIES:
        return RuleViolation(
            rule_id="CL-BT-5",
            message=f"Unrecognized currency code: {currency}. Expected ISO 4217 code (e.g. EUR, USD, GBP).",
            location="invoice.currency",
        )
    return None


def _country_check(rule_id: str, party: str) -> RuleCheckFn:
    def check(invoice: CanonicalInvoice) -> Optional[RuleViolation]:
        country = getattr(invoice, party).country_code
        if country and country not in COUNTRY_CODES:
            return RuleViolation(
                rule_id=rule_id,
                message=f"Invalid {party} country code: {country}. Expected ISO 3166-1 alpha-2 code.",
                location=f"invoice.{party}.country_code",
            )
        return None

    return check


def check_line_tax_categories(invoice: CanonicalInvoice) -> list[RuleViolation]:
    return [
        RuleViolation(
            rule_id="CL-BT-151",
            message=f"Invalid tax category code: {item.tax_category_code}. Allowed: S, Z, E, AE, K, G, O, L, M.",
            location=f"invoice.line_items[{i}].tax_category_code",
        )
        for i, item in enumerate(invoice.line_items)
        if item.tax_category_code and item.tax_category_code not in TAX_CATEGORY_CODES
    ]


def check_allowance_tax_categories(invoice: CanonicalInvoice) -> list[RuleViolation]:
    return [
        RuleViolation(
            rule_id="CL-BT-95",
            message=f"Invalid tax category code on allowance/charge: {ac.tax_category_code}.",
            location=f"invoice.allowance_charges[{i}].tax_category_code",
        )
        for i, ac in enumerate(invoice.allowance_charges)
        if ac.tax_category_code and ac.tax_category_code not in TAX_CATEGORY_CODES
    ]


def check_unit_codes(invoice: CanonicalInvoice) -> list[RuleViolation]:
    return [
        RuleViolation(
            rule_id="CL-UNIT",
            message=(
                f"Unrecognized unit code: {item.unit_code}. Common codes: C62 (unit), "
                "EA (each), HUR (hour), DAY (day), KGM (kg)."
            ),
            location=f"invoice.line_items[{i}].unit_code",
        )
        for i, item in enumerate(invoice.line_items)
        if item.unit_code and item.unit_code not in UNIT_CODES
    ]


def check_has_lines(invoice: CanonicalInvoice) -> Optional[RuleViolation]:
    if not invoice.line_items:
        return RuleViolation(
            rule_id="BR-16",
            message="At least one line item is required",
            location="invoice.line_items",
        )
    return None


# ============================================================================
# Rule Registry
# ============================================================================

BASE_RULES: list[ValidationRule] = [
    # Mandatory fields
    required_field("BR-02", "invoice_number", "Invoice number is required"),
    required_field("BR-03", "invoice_date", "Invoice date is required"),
    required_field("BR-06", "seller.name", "Seller name is required"),
    required_field("BR-07", "buyer.name", "Buyer name is required"),
    ValidationRule(
        rule_id="BR-16",
        description="An invoice must have at least one line",
        category=RuleCategory.MANDATORY_FIELD,
        severity=Severity.ERROR,
        check=check_has_lines,
    ),

    # Consistency
    ValidationRule(
        rule_id="BR-CO-10",
        description="Sum of line net amounts must equal the subtotal",
        category=RuleCategory.CONSISTENCY,
        severity=Severity.ERROR,
        check=check_line_sum,
    ),
    ValidationRule(
        rule_id="BR-CO-14",
        description="Tax total must equal the tax recomputed per rate group",
        category=RuleCategory.CONSISTENCY,
        severity=Severity.ERROR,
        check=check_tax_total,
    ),
    ValidationRule(
        rule_id="BR-CO-15",
        description="subtotal - allowances + charges + tax must equal the total",
        category=RuleCategory.CONSISTENCY,
        severity=Severity.ERROR,
        check=check_grand_total,
    ),
    ValidationRule(
        rule_id="BR-TOTAL-POSITIVE",
        description="Total must be greater than 0 unless the document is a credit note",
        category=RuleCategory.CONSISTENCY,
        severity=Severity.ERROR,
        check=check_total_positive,
    ),
    ValidationRule(
        rule_id="LINE-CALC",
        description="Line total should equal quantity x unit price",
        category=RuleCategory.CONSISTENCY,
        severity=Severity.WARNING,
        check=check_line_calculations,
    ),

    # Code lists
    ValidationRule(
        rule_id="CL-BT-3",
        description="Document type must be 380, 381, 384 or 389",
        category=RuleCategory.CODE_LIST,
        severity=Severity.ERROR,
        check=check_document_type,
    ),
    ValidationRule(
        rule_id="CL-BT-5",
        description="Currency should be a known ISO 4217 code",
        category=RuleCategory.CODE_LIST,
        severity=Severity.WARNING,
        check=check_currency_code,
    ),
    ValidationRule(
        rule_id="CL-BT-40",
        description="Seller country must be an ISO 3166-1 alpha-2 code",
        category=RuleCategory.CODE_LIST,
        severity=Severity.ERROR,
        check=_country_check("CL-BT-40", "seller"),
    ),
    ValidationRule(
        rule_id="CL-BT-55",
        description="Buyer country must be an ISO 3166-1 alpha-2 code",
        category=RuleCategory.CODE_LIST,
        severity=Severity.ERROR,
        check=_country_check("CL-BT-55", "buyer"),
    ),
    ValidationRule(
        rule_id="CL-BT-151",
        description="Line tax category must be a UNCL5305 code",
        category=RuleCategory.CODE_LIST,
        severity=Severity.ERROR,
        check=check_line_tax_categories,
    ),
    ValidationRule(
        rule_id="CL-BT-95",
        description="Allowance/charge tax category must be a UNCL5305 code",
        category=RuleCategory.CODE_LIST,
        severity=Severity.ERROR,
        check=check_allowance_tax_categories,
    ),
    ValidationRule(
        rule_id="CL-UNIT",
        description="Unit code should be a common UN/ECE Rec 20 code",
        category=RuleCategory.CODE_LIST,
        severity=Severity.WARNING,
        check=check_unit_codes,
    ),
]
