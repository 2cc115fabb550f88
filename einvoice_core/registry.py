"""
Static format metadata and format detection heuristics.
"""

import re
from collections.abc import Mapping
from typing import Any, Final, Optional

from .exceptions import UnknownFormatError
from .schemas import FormatMetadata


# EU member states plus the EEA countries connected to PEPPOL
EU_PEPPOL_COUNTRIES: Final[list[str]] = [
    "AT", "BE", "BG", "HR", "CY", "CZ", "DK", "EE", "FI", "FR",
    "DE", "GR", "HU", "IE", "IT", "LV", "LT", "LU", "MT", "NL",
    "PL", "PT", "RO", "SK", "SI", "ES", "SE", "NO", "IS", "LI",
]

FACTURX_COUNTRIES: Final[list[str]] = ["FR", "DE", "AT", "CH", "LU", "BE"]

_XML: Final[str] = "application/xml"
_PDF: Final[str] = "application/pdf"

FORMATS: Final[dict[str, FormatMetadata]] = {
    meta.id: meta
    for meta in [
        FormatMetadata(
            id="xrechnung-cii",
            display_name="XRechnung (CII)",
            description="German XRechnung 3.0 in UN/CEFACT Cross Industry Invoice syntax",
            countries=["DE"],
            mime_type=_XML,
            file_extension=".xml",
            file_suffix="xrechnung",
            syntax_type="CII",
            spec_version="XRechnung 3.0",
            is_eu=True,
        ),
        FormatMetadata(
            id="xrechnung-ubl",
            display_name="XRechnung (UBL)",
            description="German XRechnung 3.0 in OASIS UBL 2.1 syntax",
            countries=["DE"],
            mime_type=_XML,
            file_extension=".xml",
            file_suffix="xrechnung_ubl",
            syntax_type="UBL",
            spec_version="XRechnung 3.0",
            is_eu=True,
        ),
        FormatMetadata(
            id="peppol-bis",
            display_name="PEPPOL BIS 3.0",
            description="PEPPOL BIS Billing 3.0 for cross-border delivery over the PEPPOL network",
            countries=list(EU_PEPPOL_COUNTRIES),
            mime_type=_XML,
            file_extension=".xml",
            file_suffix="peppol",
            syntax_type="UBL",
            spec_version="BIS Billing 3.0",
            is_eu=True,
        ),
        FormatMetadata(
            id="facturx-en16931",
            display_name="Factur-X EN 16931",
            description="Hybrid PDF/A-3 with embedded CII XML, EN 16931 (COMFORT) profile",
            countries=list(FACTURX_COUNTRIES),
            mime_type=_PDF,
            file_extension=".pdf",
            file_suffix="facturx",
            syntax_type="PDF+CII",
            spec_version="Factur-X 1.0.07",
            is_eu=True,
        ),
        FormatMetadata(
            id="facturx-basic",
            display_name="Factur-X Basic",
            description="Hybrid PDF/A-3 with embedded CII XML, BASIC profile",
            countries=list(FACTURX_COUNTRIES),
            mime_type=_PDF,
            file_extension=".pdf",
            file_suffix="facturx_basic",
            syntax_type="PDF+CII",
            spec_version="Factur-X 1.0.07",
            is_eu=True,
        ),
        FormatMetadata(
            id="fatturapa",
            display_name="FatturaPA",
            description="Italian FatturaElettronica 1.2 for the SDI exchange system",
            countries=["IT"],
            mime_type=_XML,
            file_extension=".xml",
            file_suffix="fatturapa",
            syntax_type="FatturaPA",
            spec_version="1.2.2",
            is_eu=True,
        ),
        FormatMetadata(
            id="ksef",
            display_name="KSeF FA(2)",
            description="Polish national e-invoice schema FA(2) for the KSeF system",
            countries=["PL"],
            mime_type=_XML,
            file_extension=".xml",
            file_suffix="ksef",
            syntax_type="KSeF",
            spec_version="FA(2)",
            is_eu=True,
        ),
        FormatMetadata(
            id="nlcius",
            display_name="NLCIUS / SI-UBL 2.0",
            description="Dutch CIUS of EN 16931 (SI-UBL 2.0) on UBL 2.1",
            countries=["NL"],
            mime_type=_XML,
            file_extension=".xml",
            file_suffix="nlcius",
            syntax_type="UBL",
            spec_version="SI-UBL 2.0",
            is_eu=True,
        ),
        FormatMetadata(
            id="cius-ro",
            display_name="CIUS-RO",
            description="Romanian CIUS of EN 16931 for the RO e-Factura system",
            countries=["RO"],
            mime_type=_XML,
            file_extension=".xml",
            file_suffix="ciusro",
            syntax_type="UBL",
            spec_version="CIUS-RO 1.0.1",
            is_eu=True,
        ),
    ]
}

FORMAT_IDS: Final[list[str]] = list(FORMATS)

# Polish NIP: 10 digits, optionally prefixed with PL
_NIP_PATTERN = re.compile(r"^(PL)?\d{10}$", re.IGNORECASE)


def is_valid_format(format_id: Any) -> bool:
    """Check whether a format id is registered."""
    return isinstance(format_id, str) and format_id in FORMATS


def get_format_metadata(format_id: str) -> FormatMetadata:
    """Get metadata for a format id, raising UnknownFormatError if it is not registered."""
    if not is_valid_format(format_id):
        raise UnknownFormatError(format_id)
    return FORMATS[format_id]


def get_all_formats() -> list[FormatMetadata]:
    """Get metadata for all registered formats, in registry order."""
    return list(FORMATS.values())


def get_formats_by_country(country_code: str) -> list[FormatMetadata]:
    """Get the formats used in a country (case-insensitive). Empty for non-EU countries."""
    code = (country_code or "").strip().upper()
    return [meta for meta in FORMATS.values() if code in meta.countries]


def _text(raw: Mapping, *keys: str) -> str:
    for key in keys:
        value = raw.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return ""


def detect_format_from_data(raw: Any) -> Optional[str]:
    """
    Guess the intended output format of a raw extraction record.

    Detection is advisory; an explicit format passed by the caller always wins.

    Priority:
        1. Explicit outputFormat/format key naming a registered format
        2. Italian seller -> fatturapa
        3. Polish seller or NIP-shaped seller VAT id -> ksef
        4. Dutch seller -> nlcius
        5. Romanian seller -> cius-ro
        6. French seller or buyer -> facturx-en16931
        7. Electronic address on either party, non-German seller -> peppol-bis
        8. Fallback -> xrechnung-cii

    Returns:
        A format id, or None if the input is not a mapping
    """
    if not isinstance(raw, Mapping):
        return None

    explicit = _text(raw, "outputFormat", "output_format", "format")
    if is_valid_format(explicit):
        return explicit

    seller_country = _text(raw, "sellerCountryCode", "seller_country_code", "sellerCountry").upper()
    buyer_country = _text(raw, "buyerCountryCode", "buyer_country_code", "buyerCountry").upper()
    seller_vat = _text(raw, "sellerVatId", "seller_vat_id", "sellerTaxId", "seller_tax_id")
    seller_vat = seller_vat.replace(" ", "").replace("-", "").upper()

    if seller_country == "IT" or (seller_vat.startswith("IT") and not seller_country):
        return "fatturapa"
    # A bare 10-digit number is only taken as a NIP when it carries the PL prefix
    if seller_country == "PL" or (
        not seller_country and seller_vat.startswith("PL") and _NIP_PATTERN.match(seller_vat)
    ):
        return "ksef"
    if seller_country == "NL":
        return "nlcius"
    if seller_country == "RO":
        return "cius-ro"
    if "FR" in (seller_country, buyer_country):
        return "facturx-en16931"

    has_endpoint = bool(_text(
        raw,
        "sellerElectronicAddress", "seller_electronic_address",
        "sellerElectronicAddressScheme", "seller_electronic_address_scheme",
        "buyerElectronicAddress", "buyer_electronic_address",
        "buyerElectronicAddressScheme", "buyer_electronic_address_scheme",
    ))
    if has_endpoint and seller_country != "DE":
        return "peppol-bis"

    return "xrechnung-cii"
