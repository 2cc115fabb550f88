"""
Business rules per validation profile.

Every profile runs BASE_RULES (EN 16931 core) followed by its own rules.
Profile ids are the output format ids.
"""

from .base import BASE_RULES, RuleCheckFn, ValidationRule, required_field
from .facturx import FACTURX_BASIC_RULES, FACTURX_EN16931_RULES
from .fatturapa import FATTURAPA_RULES
from .ksef import KSEF_RULES
from .peppol import CIUS_RO_RULES, NLCIUS_RULES, PEPPOL_RULES
from .xrechnung import XRECHNUNG_RULES

PROFILE_RULES: dict[str, list[ValidationRule]] = {
    "xrechnung-cii": BASE_RULES + XRECHNUNG_RULES,
    "xrechnung-ubl": BASE_RULES + XRECHNUNG_RULES,
    "peppol-bis": BASE_RULES + PEPPOL_RULES,
    "facturx-en16931": BASE_RULES + FACTURX_EN16931_RULES,
    "facturx-basic": BASE_RULES + FACTURX_BASIC_RULES,
    "fatturapa": BASE_RULES + FATTURAPA_RULES,
    "ksef": BASE_RULES + KSEF_RULES,
    "nlcius": BASE_RULES + NLCIUS_RULES,
    "cius-ro": BASE_RULES + CIUS_RO_RULES,
}

PROFILE_NAMES: dict[str, str] = {
    "xrechnung-cii": "XRechnung 3.0 (CII)",
    "xrechnung-ubl": "XRechnung 3.0 (UBL)",
    "peppol-bis": "PEPPOL BIS Billing 3.0",
    "facturx-en16931": "Factur-X EN 16931",
    "facturx-basic": "Factur-X BASIC",
    "fatturapa": "FatturaPA 1.2",
    "ksef": "KSeF FA(2)",
    "nlcius": "NLCIUS (SI-UBL 2.0)",
    "cius-ro": "CIUS-RO (RO e-Factura)",
}

__all__ = [
    "BASE_RULES",
    "PROFILE_NAMES",
    "PROFILE_RULES",
    "RuleCheckFn",
    "ValidationRule",
    "required_field",
]
