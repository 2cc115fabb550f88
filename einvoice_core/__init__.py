"""
E-Invoice Core

A Python library and service that turns extracted invoice data into
standards-compliant e-invoices (XRechnung, PEPPOL BIS, Factur-X, FatturaPA,
KSeF, NLCIUS, CIUS-RO) and validates them against each format's business
rules.
"""

__version__ = "0.1.0"
__author__ = "E-Invoice Core Team"

from .exceptions import EInvoiceError, GenerationError, MappingError, UnknownFormatError
from .generators import GeneratorFactory
from .mapper import to_canonical_invoice
from .pipeline import process_batch, process_record
from .registry import detect_format_from_data, get_all_formats, get_format_metadata
from .schemas import CanonicalInvoice, GenerationResult, LineItem, Party, ValidationResult
from .validator import get_profile_validator, validate_invoice

__all__ = [
    "CanonicalInvoice",
    "EInvoiceError",
    "GenerationError",
    "GenerationResult",
    "GeneratorFactory",
    "LineItem",
    "MappingError",
    "Party",
    "UnknownFormatError",
    "ValidationResult",
    "detect_format_from_data",
    "get_all_formats",
    "get_format_metadata",
    "get_profile_validator",
    "process_batch",
    "process_record",
    "to_canonical_invoice",
    "validate_invoice",
]
