"""
Shared plumbing for format generators.

A generator turns one CanonicalInvoice into one serialized document. The
XML trees are built with xml.etree.ElementTree; every generator declares the
local element names that its structural check requires.
"""

import re
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from datetime import date
from typing import Optional

from ..config import logger
from ..exceptions import GenerationError
from ..registry import get_format_metadata
from ..schemas import CanonicalInvoice, GenerationResult, StructuralCheck

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>\n'

# Control characters that are not allowed in XML 1.0
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

# Path separators and characters Windows refuses in file names
_UNSAFE_FILE_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f]')


def clean_text(value: object) -> str:
    """Stringify a value and drop characters that XML 1.0 cannot carry."""
    if value is None:
        return ""
    return _CONTROL_CHARS.sub("", str(value)).strip()


def sub(parent: ET.Element, tag: str, text: object = None, **attrib: str) -> ET.Element:
    """Append a child element, optionally with text and attributes."""
    element = ET.SubElement(parent, tag, {k: v for k, v in attrib.items() if v is not None})
    if text is not None:
        element.text = clean_text(text)
    return element


def sub_if(parent: ET.Element, tag: str, text: object, **attrib: str) -> Optional[ET.Element]:
    """Append a child element only when text is non-empty."""
    if text is None or not clean_text(text):
        return None
    return sub(parent, tag, text, **attrib)


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """Parse an ISO date (the mapper normalizes dates to YYYY-MM-DD where it can)."""
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def local_name(tag: str) -> str:
    """Strip the {namespace} part of an ElementTree tag."""
    return tag.rsplit("}", 1)[-1]


def serialize(root: ET.Element, default_namespace: Optional[str] = None) -> str:
    """
    Pretty-print a tree with an explicit UTF-8 declaration.

    Elements in default_namespace are written unprefixed under an xmlns
    declaration on the root. ElementTree's own default_namespace option is
    not used because it rejects unqualified attributes such as currencyID.
    """
    ET.indent(root, space="  ")
    if default_namespace:
        qualifier = "{%s}" % default_namespace
        for element in root.iter():
            if element.tag.startswith(qualifier):
                element.tag = element.tag[len(qualifier):]
        attributes = dict(root.attrib)
        root.attrib.clear()
        root.set("xmlns", default_namespace)
        root.attrib.update(attributes)
    return XML_DECLARATION + ET.tostring(root, encoding="unicode")


class BaseGenerator(ABC):
    """
    Base class for format generators.

    Subclasses set the class attributes and implement build_xml. Generators
    hold no per-invoice state, so one instance can serve concurrent calls.
    """

    format_id: str = ""
    format_name: str = ""
    version: str = "1.0.0"
    spec_version: str = ""
    spec_date: str = ""

    # Local names that must appear in the serialized document
    required_elements: tuple[str, ...] = ()

    # ========================================================================
    # Generation
    # ========================================================================

    @abstractmethod
    def build_xml(self, invoice: CanonicalInvoice, warnings: list[str]) -> str:
        """Serialize the invoice; append generator-specific notes to warnings."""

    def generate(self, invoice: CanonicalInvoice) -> GenerationResult:
        """
        Generate the document for an invoice.

        Business-rule validation is not repeated here. validation_errors only
        holds structural problems found in the produced XML.

        Raises:
            GenerationError: If a required element cannot be produced
        """
        self.check_required(invoice)
        warnings: list[str] = []
        xml_content = self.build_xml(invoice, warnings)
        return self.build_result(invoice, xml_content, warnings)

    def check_required(self, invoice: CanonicalInvoice) -> None:
        """Fail early on elements no document of this format can omit."""
        if not invoice.invoice_number.strip():
            raise GenerationError(self.format_id, "Invoice number is required", field="invoice_number")
        if parse_iso_date(invoice.invoice_date) is None:
            raise GenerationError(
                self.format_id,
                f"Invoice date {invoice.invoice_date!r} cannot be formatted",
                field="invoice_date",
            )

    def build_result(
        self,
        invoice: CanonicalInvoice,
        xml_content: str,
        warnings: list[str],
        pdf_content: Optional[bytes] = None,
    ) -> GenerationResult:
        check = self.validate(xml_content)
        if not check.valid:
            logger.warning(f"{self.format_id}: structural check failed for {invoice.invoice_number}: {check.errors}")

        meta = get_format_metadata(self.format_id)
        primary = pdf_content if pdf_content is not None else xml_content.encode("utf-8")
        return GenerationResult(
            xml_content=xml_content,
            pdf_content=pdf_content,
            file_name=self.file_name(invoice),
            file_size=len(primary),
            mime_type=meta.mime_type,
            validation_status="valid" if check.valid else "invalid",
            validation_errors=check.errors,
            validation_warnings=warnings,
        )

    def file_name(self, invoice: CanonicalInvoice) -> str:
        """<invoice_number>_<suffix>.<ext> with unsafe characters replaced by '-'."""
        meta = get_format_metadata(self.format_id)
        number = _UNSAFE_FILE_CHARS.sub("-", invoice.invoice_number.strip()) or "invoice"
        return f"{number}_{meta.file_suffix}{meta.file_extension}"

    # ========================================================================
    # Structural Check
    # ========================================================================

    def validate(self, xml_content: str) -> StructuralCheck:
        """Parse the XML and check that the mandatory elements are present."""
        try:
            root = ET.fromstring(xml_content.encode("utf-8"))
        except ET.ParseError as e:
            return StructuralCheck(valid=False, errors=[f"XML is not well-formed: {e}"])

        present = {local_name(el.tag) for el in root.iter()}
        errors = [
            f"Missing required element: {name}"
            for name in self.required_elements
            if name not in present
        ]
        return StructuralCheck(valid=not errors, errors=errors)
