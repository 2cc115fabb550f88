"""
Pydantic models for canonical invoices, generation and validation results.

This module defines the core data structures used throughout the e-invoice core:
- CanonicalInvoice and its parts (Party, PaymentInfo, LineItem, AllowanceCharge, Totals)
- GenerationResult for serialized documents
- ValidationResult and RuleViolation for business-rule outcomes
- FormatMetadata for the format registry
- RecordResult and BatchSummary for batch processing
"""

from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator


class Party(BaseModel):
    """
    Seller or buyer of an invoice.

    vat_id, tax_id and tax_number are alternative tax identifiers; most
    profiles require at least one of them for the seller.
    """
    name: str = Field("", description="Legal name of the party")
    email: Optional[str] = Field(None, description="Contact email address")
    address: Optional[str] = Field(None, description="Street and house number")
    city: Optional[str] = Field(None, description="City name")
    postal_code: Optional[str] = Field(None, description="Postal code")
    country_code: Optional[str] = Field(None, description="ISO 3166-1 alpha-2 country code")
    vat_id: Optional[str] = Field(None, description="VAT identification number (BT-31/BT-48)")
    tax_id: Optional[str] = Field(None, description="Tax identifier as extracted, before splitting")
    tax_number: Optional[str] = Field(None, description="National tax registration number (BT-32)")
    electronic_address: Optional[str] = Field(None, description="Routing endpoint (BT-34/BT-49)")
    electronic_address_scheme: Optional[str] = Field(None, description="EAS scheme of the endpoint")
    contact_name: Optional[str] = Field(None, description="Contact person")
    phone: Optional[str] = Field(None, description="Contact phone number")
    tax_regime: Optional[str] = Field(None, description="Italian RegimeFiscale (RF01..RF19)")

    @field_validator("country_code")
    @classmethod
    def normalize_country(cls, v: Optional[str]) -> Optional[str]:
        """Normalize country code to uppercase."""
        return v.upper().strip() if v else v

    model_config = {"frozen": True}


class PaymentInfo(BaseModel):
    """Payment details. The required subset depends on the profile."""
    iban: Optional[str] = None
    bic: Optional[str] = None
    payment_terms: Optional[str] = None
    due_date: Optional[str] = None
    prepaid_amount: Optional[Decimal] = None

    model_config = {"frozen": True}


class LineItem(BaseModel):
    """
    Represents a single invoice line.

    Attributes:
        description: Text description of the item or service
        quantity: Number of units
        unit_price: Net price per unit
        total_price: Net line amount (authoritative when extracted)
        tax_rate: Tax rate percentage, None when not extracted
        tax_category_code: UNCL5305 code (S, Z, E, AE, ...)
        unit_code: UN/CEFACT unit of measure
    """
    description: str = ""
    quantity: Decimal = Decimal("1")
    unit_price: Decimal = Decimal("0")
    total_price: Decimal = Decimal("0")
    tax_rate: Optional[Decimal] = None
    tax_category_code: Optional[str] = None
    unit_code: Optional[str] = None

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "examples": [
                {
                    "description": "Consulting services",
                    "quantity": "2",
                    "unit_price": "100.00",
                    "total_price": "200.00",
                    "tax_rate": "19",
                    "tax_category_code": "S",
                    "unit_code": "HUR",
                }
            ]
        },
    }


class AllowanceCharge(BaseModel):
    """Document-level discount (charge_indicator False) or surcharge (True), net of tax."""
    charge_indicator: bool = False
    amount: Decimal = Decimal("0")
    reason: Optional[str] = None
    reason_code: Optional[str] = None
    tax_rate: Optional[Decimal] = None
    tax_category_code: Optional[str] = None

    model_config = {"frozen": True}


class TaxBreakdown(BaseModel):
    """Tax subtotal for one (rate, category) group."""
    tax_rate: Decimal
    tax_category_code: str
    taxable_amount: Decimal
    tax_amount: Decimal

    model_config = {"frozen": True}


class Totals(BaseModel):
    """
    Document totals, all rounded to 2 fraction digits.

    total_amount = subtotal - allowance_total + charge_total + tax_amount
    """
    subtotal: Decimal = Decimal("0.00")
    tax_amount: Decimal = Decimal("0.00")
    total_amount: Decimal = Decimal("0.00")
    allowance_total: Decimal = Decimal("0.00")
    charge_total: Decimal = Decimal("0.00")
    tax_breakdown: tuple[TaxBreakdown, ...] = ()

    @property
    def tax_basis_total(self) -> Decimal:
        """Invoice total without VAT (BT-109)."""
        return self.subtotal - self.allowance_total + self.charge_total

    model_config = {"frozen": True}


class CanonicalInvoice(BaseModel):
    """
    The single internal representation consumed by generators and validators.

    Built fresh by the canonical mapper for every call and never mutated
    afterwards.
    """

    # ========================================================================
    # Document
    # ========================================================================
    output_format: str = Field(..., description="Target format id (e.g. xrechnung-cii)")
    document_type_code: int = Field(380, description="380 invoice, 381 credit note, ...")
    invoice_number: str = Field("", description="Invoice number assigned by the seller")
    invoice_date: str = Field("", description="Issue date, ISO YYYY-MM-DD when parseable")
    currency: str = Field("EUR", description="ISO 4217 currency code")
    buyer_reference: Optional[str] = Field(None, description="Buyer reference / Leitweg-ID")
    notes: Optional[str] = None
    preceding_invoice_reference: Optional[str] = Field(
        None,
        description="Number of the invoice a credit note corrects (BT-25)"
    )
    billing_period_start: Optional[str] = None
    billing_period_end: Optional[str] = None

    # ========================================================================
    # Parties
    # ========================================================================
    seller: Party = Field(default_factory=Party)
    buyer: Party = Field(default_factory=Party)
    payment: PaymentInfo = Field(default_factory=PaymentInfo)

    # ========================================================================
    # Lines and Totals
    # ========================================================================
    line_items: tuple[LineItem, ...] = ()
    allowance_charges: tuple[AllowanceCharge, ...] = ()
    totals: Totals = Field(default_factory=Totals)

    @field_validator("currency")
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        """Normalize currency code to uppercase."""
        return v.upper().strip()

    @property
    def is_credit_note(self) -> bool:
        return self.document_type_code == 381

    model_config = {"frozen": True}


# ============================================================================
# Generation
# ============================================================================

class GenerationResult(BaseModel):
    """
    Output of a format generator.

    pdf_content is only set for hybrid formats (Factur-X); xml_content always
    holds the raw XML for audit and debugging.
    """
    xml_content: str = Field(..., description="Serialized XML document")
    pdf_content: Optional[bytes] = Field(None, description="PDF with embedded XML (hybrid formats)")
    file_name: str = Field(..., description="Suggested file name")
    file_size: int = Field(..., ge=0, description="Size in bytes of the primary artifact")
    mime_type: str = Field(..., description="MIME type of the primary artifact")
    validation_status: Literal["valid", "invalid"] = "valid"
    validation_errors: list[str] = Field(default_factory=list)
    validation_warnings: list[str] = Field(default_factory=list)

    model_config = {"ser_json_bytes": "base64"}


class StructuralCheck(BaseModel):
    """Result of a generator's cheap structural check of its own XML."""
    valid: bool
    errors: list[str] = Field(default_factory=list)


# ============================================================================
# Validation
# ============================================================================

class RuleViolation(BaseModel):
    """A single business-rule violation."""
    rule_id: str = Field(..., description="Rule identifier, e.g. BR-CO-15")
    message: str = Field(..., description="Human-readable explanation")
    location: str = Field(..., description="Dotted path of the offending field")
    suggestion: Optional[str] = Field(None, description="How to fix it")


class ValidationResult(BaseModel):
    """
    Validation result of one invoice against one profile.

    valid is True when there are no errors; warnings never affect it.
    """
    profile: str = Field(..., description="Profile id the invoice was validated against")
    valid: bool = Field(..., description="True if no error-level rule fired")
    errors: list[RuleViolation] = Field(default_factory=list)
    warnings: list[RuleViolation] = Field(default_factory=list)

    @property
    def error_ids(self) -> list[str]:
        return [e.rule_id for e in self.errors]

    @property
    def warning_ids(self) -> list[str]:
        return [w.rule_id for w in self.warnings]

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "profile": "peppol-bis",
                    "valid": False,
                    "errors": [
                        {
                            "rule_id": "PEPPOL-EN16931-R010",
                            "message": "Buyer electronic address (BT-49 EndpointID) is required for PEPPOL",
                            "location": "invoice.buyer.electronic_address",
                        }
                    ],
                    "warnings": [],
                }
            ]
        }
    }


# ============================================================================
# Format Registry
# ============================================================================

class FormatMetadata(BaseModel):
    """Static description of an output format."""
    id: str
    display_name: str
    description: str
    countries: tuple[str, ...]
    mime_type: str
    file_extension: str
    file_suffix: str
    syntax_type: Literal["CII", "UBL", "FatturaPA", "KSeF", "PDF+CII"]
    spec_version: str
    is_eu: bool

    model_config = {"frozen": True}


# ============================================================================
# Batch Processing
# ============================================================================

class RecordResult(BaseModel):
    """
    Outcome of running one raw extraction record through the pipeline.

    error is set when the record could not be processed (unknown format,
    malformed input, generation failure); the other records of the batch are
    unaffected.
    """
    index: int = Field(..., ge=0, description="Position of the record in the batch")
    invoice_number: Optional[str] = None
    output_format: Optional[str] = None
    success: bool = Field(..., description="False if processing raised an error")
    invoice: Optional[CanonicalInvoice] = None
    validation: Optional[ValidationResult] = None
    generation: Optional[GenerationResult] = None
    missing_fields: list[str] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return self.success and self.validation is not None and self.validation.valid


class BatchSummary(BaseModel):
    """Aggregated statistics for a batch of extraction records."""
    total_records: int = Field(..., ge=0)
    valid_records: int = Field(..., ge=0)
    invalid_records: int = Field(..., ge=0)
    failed_records: int = Field(0, ge=0, description="Records that raised during processing")
    error_counts: dict[str, int] = Field(default_factory=dict)
    warning_counts: dict[str, int] = Field(default_factory=dict)
    format_counts: dict[str, int] = Field(default_factory=dict)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "total_records": 3,
                    "valid_records": 1,
                    "invalid_records": 1,
                    "failed_records": 1,
                    "error_counts": {"BR-DE-15": 1},
                    "warning_counts": {},
                    "format_counts": {"xrechnung-cii": 2},
                }
            ]
        }
    }


class BatchReport(BaseModel):
    """Complete batch report containing per-record results and summary."""
    summary: BatchSummary
    results: list[RecordResult] = Field(default_factory=list)
