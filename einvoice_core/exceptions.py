"""
Exception types raised by the e-invoice core.

Business-rule violations are never raised; they are returned as data in a
ValidationResult. These exceptions cover the cases that end a single call.
"""

from typing import Optional


class EInvoiceError(Exception):
    """Base class for all e-invoice core errors."""


class UnknownFormatError(EInvoiceError):
    """The format or profile id is not registered."""

    def __init__(self, format_id: object):
        self.format_id = format_id
        super().__init__(f"Unknown e-invoice format: {format_id!r}")


class MappingError(EInvoiceError):
    """A raw extraction record cannot be turned into a canonical invoice."""


class GenerationError(EInvoiceError):
    """A document could not be serialized because a required element is absent."""

    def __init__(self, format_id: str, message: str, field: Optional[str] = None):
        self.format_id = format_id
        self.field = field
        super().__init__(f"[{format_id}] {message}")
