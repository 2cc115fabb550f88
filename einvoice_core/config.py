"""
Configuration constants, code lists and enums for the e-invoice core.
"""

import logging
import os
from decimal import Decimal
from enum import Enum
from typing import Final

# ============================================================================
# Monetary Tolerances
# ============================================================================

# Tolerance for amount comparisons (absorbs extraction rounding noise)
MONEY_TOLERANCE: Final[Decimal] = Decimal(os.getenv("EINVOICE_MONEY_TOLERANCE", "0.02"))

# Tolerance used when deciding whether line amounts are gross-priced
GROSS_DETECTION_TOLERANCE: Final[Decimal] = Decimal(os.getenv("EINVOICE_GROSS_TOLERANCE", "0.05"))

# Largest absolute amount accepted from a record; larger values cannot be
# rounded to the cent in the default Decimal context once multiplied out
MAX_AMOUNT: Final[Decimal] = Decimal("1e15")

# VAT rates tried (in order) when detecting gross-priced invoices
COMMON_VAT_RATES: Final[list[Decimal]] = [
    Decimal("19"),
    Decimal("7"),
    Decimal("20"),
    Decimal("21"),
    Decimal("10"),
    Decimal("5"),
]

# ============================================================================
# Defaults
# ============================================================================

DEFAULT_CURRENCY: Final[str] = os.getenv("EINVOICE_DEFAULT_CURRENCY", "EUR")
DEFAULT_FORMAT: Final[str] = os.getenv("EINVOICE_DEFAULT_FORMAT", "xrechnung-cii")
DEFAULT_UNIT_CODE: Final[str] = "C62"
DEFAULT_DOCUMENT_TYPE: Final[int] = 380

# ============================================================================
# Code Lists
# ============================================================================

# EN 16931 document type codes (BT-3)
DOCUMENT_TYPE_CODES: Final[set[int]] = {
    380,  # Commercial invoice
    381,  # Credit note
    384,  # Corrected invoice
    389,  # Self-billed invoice
}

CREDIT_NOTE_TYPE_CODES: Final[set[int]] = {381}

# UNCL5305 VAT category codes accepted by EN 16931
TAX_CATEGORY_CODES: Final[set[str]] = {"S", "Z", "E", "AE", "K", "G", "O", "L", "M"}

# ISO 4217 currencies commonly seen on European invoices
SUPPORTED_CURRENCIES: Final[set[str]] = {
    "EUR", "USD", "GBP", "CHF", "SEK", "NOK", "DKK", "PLN", "CZK", "HUF",
    "RON", "BGN", "HRK", "ISK", "TRY", "RUB", "UAH", "JPY", "CNY", "AUD",
    "CAD", "NZD", "ZAR", "BRL", "MXN", "INR", "KRW", "SGD", "HKD", "TWD",
    "THB", "MYR", "PHP", "IDR", "AED", "SAR", "ILS", "EGP", "ARS", "CLP",
    "COP", "PEN",
}

# ISO 3166-1 alpha-2 country codes
COUNTRY_CODES: Final[frozenset[str]] = frozenset("""
    AD AE AF AG AI AL AM AO AQ AR AS AT AU AW AX AZ BA BB BD BE BF BG BH BI BJ
    BL BM BN BO BQ BR BS BT BV BW BY BZ CA CC CD CF CG CH CI CK CL CM CN CO CR
    CU CV CW CX CY CZ DE DJ DK DM DO DZ EC EE EG EH ER ES ET FI FJ FK FM FO FR
    GA GB GD GE GF GG GH GI GL GM GN GP GQ GR GS GT GU GW GY HK HM HN HR HT HU
    ID IE IL IM IN IO IQ IR IS IT JE JM JO JP KE KG KH KI KM KN KP KR KW KY KZ
    LA LB LC LI LK LR LS LT LU LV LY MA MC MD ME MF MG MH MK ML MM MN MO MP MQ
    MR MS MT MU MV MW MX MY MZ NA NC NE NF NG NI NL NO NP NR NU NZ OM PA PE PF
    PG PH PK PL PM PN PR PS PT PW PY QA RE RO RS RU RW SA SB SC SD SE SG SH SI
    SJ SK SL SM SN SO SR SS ST SV SX SY SZ TC TD TF TG TH TJ TK TL TM TN TO TR
    TT TV TW TZ UA UG UM US UY UZ VA VC VE VG VI VN VU WF WS YE YT ZA ZM ZW
""".split())

# Common UNECE Recommendation 20 unit codes
UNIT_CODES: Final[set[str]] = {
    "C62", "EA", "HUR", "DAY", "MON", "ANN", "H87", "KGM", "MTR", "LTR",
    "MTK", "MTQ", "TNE", "KWH", "MIN", "SEC", "SET", "PR", "BX", "CT",
    "PK", "LS", "XPK", "XBX", "XCT", "KMT", "CMT", "MMT", "GRM", "MLT",
    "CLT", "DLT", "HLT", "PCE", "NAR", "NPR", "XPA", "XUN", "XSA",
    "LM", "WEE", "MOQ", "QAN",
}

# CEF Electronic Address Scheme (EAS) identifiers accepted by PEPPOL
EAS_SCHEME_IDS: Final[frozenset[str]] = frozenset(
    [f"{code:04d}" for code in (2, 7, 9)]
    + [f"{code:04d}" for code in range(10, 61)]
    + [
        "0088", "0096", "0097", "0106", "0130", "0135", "0142", "0147", "0151",
        "0170", "0183", "0184", "0188", "0190", "0191", "0192", "0193", "0194",
        "0195", "0196", "0198", "0199", "0200", "0201", "0202", "0203", "0204",
        "0208", "0209", "0210", "0211", "0212", "0213", "0215", "0216", "0217",
        "0218", "0219", "0220", "0221", "9901", "9910", "9913", "9914", "9915",
        "9918", "9919", "9920",
    ]
    + [str(code) for code in range(9922, 9959)]
    + ["EM"]
)

# Country prefixes of VAT identification numbers (EU plus Greece "EL" and Northern Ireland "XI")
EU_VAT_PREFIXES: Final[set[str]] = {
    "AT", "BE", "BG", "CY", "CZ", "DE", "DK", "EE", "EL", "ES", "FI", "FR",
    "HR", "HU", "IE", "IT", "LT", "LU", "LV", "MT", "NL", "PL", "PT", "RO",
    "SE", "SI", "SK", "XI",
}

# Polish statutory VAT rates (23/8/5/0 current, 22/7 legacy)
POLISH_VAT_RATES: Final[set[Decimal]] = {
    Decimal("23"), Decimal("22"), Decimal("8"), Decimal("7"), Decimal("5"), Decimal("0"),
}

# Longest invoice number accepted by the national schemas
MAX_INVOICE_NUMBER_LENGTH: Final[int] = 256

# ============================================================================
# Rule Categories
# ============================================================================

class RuleCategory(str, Enum):
    """Categories of business rules."""
    MANDATORY_FIELD = "mandatory_field"
    CONSISTENCY = "consistency"
    ROUTING = "routing"
    DOCUMENT_TYPE = "document_type"
    CODE_LIST = "code_list"


class Severity(str, Enum):
    """Whether a rule violation blocks validity."""
    ERROR = "error"
    WARNING = "warning"


# ============================================================================
# API Configuration
# ============================================================================

API_HOST: Final[str] = os.getenv("API_HOST", "0.0.0.0")
API_PORT: Final[int] = int(os.getenv("API_PORT", "8000"))
MAX_BATCH_SIZE: Final[int] = int(os.getenv("MAX_BATCH_SIZE", "500"))

# ============================================================================
# Logging Configuration
# ============================================================================

LOG_LEVEL: Final[str] = os.getenv("LOG_LEVEL", "INFO")

def setup_logging() -> logging.Logger:
    """Configure and return the application logger."""
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    return logging.getLogger("einvoice_core")


logger = setup_logging()
