"""
Per-format field requirements and missing-field analysis.

The table drives a "these fields are missing" hint for the review UI. It has
no effect on validity; the profile validators remain the authority.
"""

from collections.abc import Mapping
from enum import Enum
from typing import Any, Final, Optional

from .exceptions import UnknownFormatError
from .mapper import FIELD_ALIASES, resolve_field


class FieldVisibility(str, Enum):
    """How a field behaves for a given format."""
    REQUIRED = "required"
    OPTIONAL = "optional"
    HIDDEN = "hidden"


# Fields covered by the table, in display order
CONFIGURABLE_FIELDS: Final[list[str]] = [
    "sellerPhone",
    "sellerEmail",
    "sellerContactName",
    "sellerIban",
    "sellerBic",
    "sellerVatId",
    "sellerTaxNumber",
    "sellerElectronicAddress",
    "sellerElectronicAddressScheme",
    "sellerStreet",
    "sellerCity",
    "sellerPostalCode",
    "sellerCountryCode",
    "buyerStreet",
    "buyerCity",
    "buyerPostalCode",
    "buyerCountryCode",
    "buyerVatId",
    "buyerTaxNumber",
    "buyerReference",
    "buyerElectronicAddress",
    "buyerElectronicAddressScheme",
    "buyerCodiceDestinatario",
    "currency",
    "paymentTerms",
    "notes",
]

# Table field -> canonical raw key used by the mapper's alias table
FIELD_SOURCES: Final[dict[str, str]] = {
    "sellerStreet": "sellerAddress",
    "buyerStreet": "buyerAddress",
}

# Other fields that satisfy a required field when present
FIELD_ALTERNATIVES: Final[dict[str, tuple[str, ...]]] = {
    "sellerVatId": ("sellerTaxNumber", "sellerTaxId"),
    "sellerTaxNumber": ("sellerVatId", "sellerTaxId"),
    "buyerVatId": ("buyerTaxNumber", "buyerTaxId"),
    "buyerTaxNumber": ("buyerVatId", "buyerTaxId"),
    "sellerContactName": ("sellerName",),
    # The mapper falls back to the email address with scheme EM
    "sellerElectronicAddress": ("sellerEmail",),
    "sellerElectronicAddressScheme": ("sellerEmail",),
    "buyerElectronicAddress": ("buyerEmail", "buyerCodiceDestinatario"),
    "buyerElectronicAddressScheme": ("buyerEmail",),
    "buyerCodiceDestinatario": ("buyerElectronicAddress",),
}


def _config(required: set[str], hidden: set[str] = frozenset()) -> dict[str, FieldVisibility]:
    config = {}
    for field in CONFIGURABLE_FIELDS:
        if field in required:
            config[field] = FieldVisibility.REQUIRED
        elif field in hidden:
            config[field] = FieldVisibility.HIDDEN
        else:
            config[field] = FieldVisibility.OPTIONAL
    return config


_SELLER_ADDRESS = {"sellerStreet", "sellerCity", "sellerPostalCode", "sellerCountryCode"}
_BUYER_ADDRESS = {"buyerStreet", "buyerCity", "buyerPostalCode", "buyerCountryCode"}
_ENDPOINTS = {
    "sellerElectronicAddress",
    "sellerElectronicAddressScheme",
    "buyerElectronicAddress",
    "buyerElectronicAddressScheme",
}

_XRECHNUNG = _config(
    required={
        "sellerPhone", "sellerEmail", "sellerContactName", "sellerIban", "sellerVatId",
        "sellerElectronicAddress", "buyerElectronicAddress", "buyerReference",
        "currency", "paymentTerms",
    } | _SELLER_ADDRESS | _BUYER_ADDRESS,
    hidden={"buyerCodiceDestinatario"},
)

_PEPPOL = _config(
    required={"sellerVatId", "currency", "paymentTerms"} | _SELLER_ADDRESS | _ENDPOINTS,
    hidden={"buyerCodiceDestinatario"},
)

_FACTURX = _config(
    required={"sellerVatId", "buyerCountryCode", "currency", "paymentTerms"} | _SELLER_ADDRESS,
    hidden={"buyerCodiceDestinatario"},
)

FORMAT_FIELD_CONFIG: Final[dict[str, dict[str, FieldVisibility]]] = {
    "xrechnung-cii": _XRECHNUNG,
    "xrechnung-ubl": dict(_XRECHNUNG),
    "peppol-bis": _PEPPOL,
    "facturx-en16931": _FACTURX,
    "facturx-basic": {**_FACTURX, "paymentTerms": FieldVisibility.OPTIONAL},
    "fatturapa": _config(
        required={
            "sellerVatId", "buyerVatId", "buyerElectronicAddress",
            "buyerCodiceDestinatario", "currency",
        } | _SELLER_ADDRESS,
        hidden={"sellerElectronicAddress", "sellerElectronicAddressScheme", "buyerElectronicAddressScheme"},
    ),
    "ksef": _config(
        required={"sellerVatId", "currency"},
        hidden=_ENDPOINTS | {"buyerCodiceDestinatario", "notes"},
    ),
    "nlcius": dict(_PEPPOL),
    "cius-ro": dict(_PEPPOL),
}

FIELD_HINTS: Final[dict[str, dict[str, str]]] = {
    "xrechnung-cii": {
        "sellerVatId": "USt-IdNr. z.B. DE123456789, alternativ Steuernummer angeben",
        "sellerTaxNumber": "Steuernummer z.B. 12/345/67890, alternativ zur USt-IdNr.",
        "sellerElectronicAddress": "BT-34, z.B. E-Mail-Adresse des Rechnungsstellers",
        "buyerElectronicAddress": "BT-49, z.B. E-Mail-Adresse des Rechnungsempfängers",
        "buyerReference": "Leitweg-ID (BR-DE-15), Pflichtfeld für XRechnung",
        "currency": "Muss EUR sein (BR-DE-18)",
        "sellerIban": "IBAN für SEPA-Überweisung (BR-DE-23-a)",
    },
    "peppol-bis": {
        "sellerVatId": "EU VAT ID required for Peppol (e.g. DE123456789)",
        "sellerElectronicAddress": "Peppol Participant ID (BT-34), e.g. 0088:1234567890123",
        "sellerElectronicAddressScheme": "EAS scheme code, e.g. 0088 (EAN), 0192 (NO:ORG), 0184 (DK:P)",
        "buyerElectronicAddress": "Peppol Participant ID (BT-49), e.g. 0088:9876543210987",
        "buyerElectronicAddressScheme": "EAS scheme code, e.g. 0088 (EAN), 0192 (NO:ORG)",
    },
    "fatturapa": {
        "sellerVatId": "Partita IVA, formato IT + 11 cifre, es. IT01234567890",
        "buyerVatId": "P.IVA acquirente, o Codice Fiscale se soggetto privato",
        "buyerElectronicAddress": "CodiceDestinatario (7 caratteri, es. ABCDEF1) o indirizzo PEC",
        "buyerCodiceDestinatario": "Codice SDI, 7 caratteri alfanumerici per instradamento",
    },
    "ksef": {
        "sellerVatId": "NIP, dokładnie 10 cyfr, np. 1234567890",
        "buyerVatId": "NIP nabywcy (10 cyfr), lub podaj nazwę firmy jeśli brak NIP",
    },
    "nlcius": {
        "sellerVatId": "BTW-nummer: NL + 9 cijfers + B + 2 cijfers, bijv. NL123456789B01",
        "sellerElectronicAddress": "OIN (schema 0190, 20 cijfers) of KVK (schema 0106, 8 cijfers)",
        "sellerElectronicAddressScheme": "0190 voor OIN, 0106 voor KVK",
        "buyerElectronicAddress": "OIN (schema 0190, 20 cijfers) of KVK (schema 0106, 8 cijfers)",
        "buyerElectronicAddressScheme": "0190 voor OIN, 0106 voor KVK",
    },
    "facturx-en16931": {
        "sellerVatId": "EU VAT ID required, e.g. FR12345678901 or DE123456789",
    },
    "facturx-basic": {
        "sellerVatId": "EU VAT ID required, e.g. FR12345678901 or DE123456789",
    },
    "cius-ro": {
        "sellerVatId": "CIF/TVA: RO + 2-10 cifre, ex. RO12345678",
        "sellerTaxNumber": "CUI/CIF: prefixul RO opțional + până la 10 cifre",
        "buyerTaxNumber": "CUI/CIF cumpărător: prefixul RO opțional + până la 10 cifre",
        "sellerElectronicAddress": "ID Participant Peppol (BT-34)",
        "buyerElectronicAddress": "ID Participant Peppol (BT-49)",
    },
}
FIELD_HINTS["xrechnung-ubl"] = dict(FIELD_HINTS["xrechnung-cii"])


def _format_config(format_id: str) -> dict[str, FieldVisibility]:
    try:
        return FORMAT_FIELD_CONFIG[format_id]
    except KeyError:
        raise UnknownFormatError(format_id)


def is_field_required(format_id: str, field: str) -> bool:
    """True if the field is required for the format."""
    return _format_config(format_id).get(field) == FieldVisibility.REQUIRED


def is_field_visible(format_id: str, field: str) -> bool:
    """True if the field is shown (required or optional) for the format."""
    return _format_config(format_id).get(field, FieldVisibility.OPTIONAL) != FieldVisibility.HIDDEN


def get_field_hint(format_id: str, field: str) -> Optional[str]:
    """Format-specific hint shown below a field, if any."""
    _format_config(format_id)
    return FIELD_HINTS.get(format_id, {}).get(field)


def has_field_value(raw: Mapping, field: str) -> bool:
    """Check a field through the same alias fallbacks the mapper uses."""
    source = FIELD_SOURCES.get(field, field)
    if resolve_field(raw, source, FIELD_ALIASES) is not None:
        return True
    return source != field and resolve_field(raw, field, FIELD_ALIASES) is not None


def compute_missing_fields(raw: Any, format_id: str) -> list[str]:
    """
    List the required fields of a format that the raw record does not fill.

    A field with an accepted alternative (e.g. seller VAT id or tax number)
    is not reported once any alternative is present.

    Returns:
        Deduplicated field names in table order
    """
    config = _format_config(format_id)
    if not isinstance(raw, Mapping):
        raw = {}

    missing: list[str] = []
    for field, visibility in config.items():
        if visibility != FieldVisibility.REQUIRED or field in missing:
            continue
        if has_field_value(raw, field):
            continue
        if any(has_field_value(raw, alt) for alt in FIELD_ALTERNATIVES.get(field, ())):
            continue
        missing.append(field)
    return missing
