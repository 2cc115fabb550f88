"""
Canonical mapper: raw extraction record -> CanonicalInvoice.

Extraction sources name the same field in different ways (sellerAddress vs
sellerStreet, lineItems vs line_items). Every canonical field has an explicit,
ordered tuple of raw keys; the canonical key is tried first, then each alias in
listed order, and the first non-empty value wins.

After the preliminary totals are read, the monetary engine recomputes them
from the lines and the raw values are only replaced where they are missing or
inconsistent (see reconcile_totals).
"""

import re
from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Sequence

from dateutil import parser as date_parser

from .config import (
    COMMON_VAT_RATES,
    DEFAULT_CURRENCY,
    DEFAULT_DOCUMENT_TYPE,
    EU_VAT_PREFIXES,
    GROSS_DETECTION_TOLERANCE,
    MAX_AMOUNT,
    MONEY_TOLERANCE,
    logger,
)
from .exceptions import MappingError, UnknownFormatError
from .monetary import ZERO, money_equal, recompute_totals, round_money, sum_money
from .registry import detect_format_from_data, is_valid_format
from .schemas import AllowanceCharge, CanonicalInvoice, LineItem, Party, PaymentInfo, Totals


# ============================================================================
# Alias Tables
# ============================================================================

def _party_aliases(prefix: str) -> dict[str, tuple[str, ...]]:
    """Alias candidates shared by the seller and buyer blocks."""
    p = prefix
    return {
        f"{p}Name": (f"{p}_name", f"{p}CompanyName"),
        f"{p}Email": (f"{p}_email", f"{p}EmailAddress"),
        f"{p}Address": (f"{p}Street", f"{p}_address", f"{p}_street", f"{p}AddressLine"),
        f"{p}City": (f"{p}_city", f"{p}Town"),
        f"{p}PostalCode": (f"{p}_postal_code", f"{p}Zip", f"{p}ZipCode", f"{p}Postcode"),
        f"{p}CountryCode": (f"{p}_country_code", f"{p}Country"),
        f"{p}Phone": (f"{p}PhoneNumber", f"{p}_phone", f"{p}Telephone"),
        f"{p}ContactName": (f"{p}Contact", f"{p}_contact_name", f"{p}ContactPerson"),
        f"{p}VatId": (f"{p}_vat_id", f"{p}VatNumber", f"{p}UstId"),
        f"{p}TaxNumber": (f"{p}_tax_number", f"{p}Steuernummer", f"{p}FiscalCode"),
        f"{p}TaxId": (f"{p}_tax_id",),
        f"{p}ElectronicAddress": (f"{p}_electronic_address", f"{p}EndpointId"),
        f"{p}ElectronicAddressScheme": (f"{p}_electronic_address_scheme", f"{p}EndpointScheme"),
    }


FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "invoiceNumber": ("invoice_number", "invoiceNo", "invoice_no", "documentNumber"),
    "invoiceDate": ("invoice_date", "issueDate", "issue_date", "date"),
    "documentTypeCode": ("document_type_code", "typeCode", "invoiceTypeCode"),
    "currency": ("currencyCode", "currency_code"),
    "buyerReference": ("buyer_reference", "leitwegId", "leitweg_id"),
    "notes": ("note", "remarks"),
    "precedingInvoiceReference": (
        "preceding_invoice_reference", "originalInvoiceNumber", "invoiceReference",
    ),
    "billingPeriodStart": ("billing_period_start", "servicePeriodStart"),
    "billingPeriodEnd": ("billing_period_end", "servicePeriodEnd"),
    **_party_aliases("seller"),
    **_party_aliases("buyer"),
    "sellerTaxRegime": ("seller_tax_regime", "taxRegime", "tax_regime"),
    "buyerCodiceDestinatario": ("buyer_codice_destinatario", "codiceDestinatario"),
    "sellerIban": ("iban", "seller_iban", "bankIban"),
    "sellerBic": ("bic", "seller_bic", "swift"),
    "paymentTerms": ("payment_terms", "termsOfPayment"),
    "dueDate": ("paymentDueDate", "due_date", "payment_due_date"),
    "prepaidAmount": ("prepaid_amount", "paidAmount"),
    "lineItems": ("line_items", "items", "positions"),
    "allowanceCharges": ("allowance_charges", "allowances"),
    "subtotal": ("netAmount", "net_amount", "netTotal", "net_total"),
    "taxAmount": ("tax_amount", "vatAmount", "vat_amount", "totalTax"),
    "totalAmount": ("total_amount", "grossAmount", "gross_amount", "grossTotal", "gross_total", "total"),
    "taxRate": ("tax_rate", "vatRate", "vat_rate"),
}

LINE_ITEM_ALIASES: dict[str, tuple[str, ...]] = {
    "description": ("name", "itemName", "item_name"),
    "quantity": ("qty", "amount_units"),
    "unitPrice": ("unit_price", "price", "netPrice"),
    "totalPrice": ("total_price", "lineTotal", "line_total", "netAmount", "net_amount"),
    "taxRate": ("tax_rate", "vatRate", "vat_rate"),
    "taxCategoryCode": ("tax_category_code", "vatCategory"),
    "unitCode": ("unit_code", "unit"),
}

ALLOWANCE_CHARGE_ALIASES: dict[str, tuple[str, ...]] = {
    "chargeIndicator": ("charge_indicator", "isCharge"),
    "amount": ("value",),
    "reason": ("description",),
    "reasonCode": ("reason_code",),
    "taxRate": ("tax_rate", "vatRate"),
    "taxCategoryCode": ("tax_category_code",),
}


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def resolve_field(
    raw: Mapping,
    field: str,
    aliases: Mapping[str, tuple[str, ...]] = FIELD_ALIASES,
) -> Any:
    """
    Resolve a canonical field from a raw record.

    The canonical key is checked first, then each alias in listed order.

    Returns:
        The first non-empty value, or None
    """
    for key in (field, *aliases.get(field, ())):
        value = raw.get(key)
        if not _is_empty(value):
            return value
    return None


# ============================================================================
# Value Parsing
# ============================================================================

_CURRENCY_NOISE = re.compile(r"[\s€$£]|EUR|USD|GBP|PLN", re.IGNORECASE)


def parse_decimal(value: Any) -> Optional[Decimal]:
    """
    Parse a loosely formatted number. Returns None when it is not a finite number.

    Handles "1.234,56" and "1,234.56" as well as plain numbers.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        text = repr(value) if isinstance(value, float) else str(value)
    else:
        text = _CURRENCY_NOISE.sub("", str(value))
        if "," in text and "." in text:
            if text.rfind(",") > text.rfind("."):
                text = text.replace(".", "").replace(",", ".")
            else:
                text = text.replace(",", "")
        elif "," in text:
            text = text.replace(",", ".")
    try:
        number = Decimal(text)
    except InvalidOperation:
        return None
    return number if number.is_finite() else None


def parse_amount(value: Any, field: str) -> Optional[Decimal]:
    """
    parse_decimal for amounts and quantities.

    Raises:
        MappingError: If the number is too large to be rounded to the cent
    """
    parsed = parse_decimal(value)
    check_amount(parsed, field)
    return parsed


def check_amount(value: Optional[Decimal], field: str) -> None:
    if value is not None and abs(value) >= MAX_AMOUNT:
        raise MappingError(f"{field}: amount {value} is out of range")


def _num(value: Any, field: str) -> Decimal:
    """Amount, 0 when absent or unparseable."""
    parsed = parse_amount(value, field)
    return parsed if parsed is not None else ZERO


def _str(value: Any) -> Optional[str]:
    if _is_empty(value) or isinstance(value, (list, dict)):
        return None
    return str(value).strip()


def normalize_tax_rate(rate: Optional[Decimal]) -> Optional[Decimal]:
    """Convert a fractional rate (0.19) to a percentage (19)."""
    if rate is None:
        return None
    if 0 < rate < 1:
        return (rate * 100).quantize(Decimal("0.01"))
    return rate


_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")
_COMPACT_DATE = re.compile(r"^(\d{4})(\d{2})(\d{2})$")
_GERMAN_DATE = re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{4})$")
_SLASH_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")


def normalize_date(value: Any) -> Optional[str]:
    """
    Normalize a date to ISO YYYY-MM-DD.

    Accepts ISO, YYYYMMDD, DD.MM.YYYY and textual dates ("15 January 2024").
    Slash dates are only accepted when the day is unambiguous (13/01/2024);
    anything that cannot be normalized is returned unchanged.
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = _str(value)
    if text is None:
        return None

    parts: Optional[tuple[int, int, int]] = None
    iso = _ISO_DATE.match(text) or _COMPACT_DATE.match(text)
    german = _GERMAN_DATE.match(text)
    slash = _SLASH_DATE.match(text)
    if iso:
        parts = (int(iso.group(1)), int(iso.group(2)), int(iso.group(3)))
    elif german:
        parts = (int(german.group(3)), int(german.group(2)), int(german.group(1)))
    elif slash:
        first, second, year = int(slash.group(1)), int(slash.group(2)), int(slash.group(3))
        if first > 12:
            parts = (year, second, first)
        elif second > 12:
            parts = (year, first, second)
        else:
            # 01/02/2024 could be January or February
            return text
    elif re.search(r"[A-Za-z]", text):
        try:
            return date_parser.parse(text).date().isoformat()
        except (ValueError, OverflowError):
            return text
    else:
        return text

    try:
        return date(*parts).isoformat()
    except ValueError:
        return text


def is_eu_vat_id(value: Optional[str]) -> bool:
    """Check whether a tax identifier looks like an EU VAT id (country prefix + digits)."""
    if not value:
        return False
    compact = re.sub(r"[\s.\-]", "", value).upper()
    if not re.match(r"^[A-Z]{2}[0-9A-Z]{2,13}$", compact):
        return False
    return compact[:2] in EU_VAT_PREFIXES and any(ch.isdigit() for ch in compact)


# ============================================================================
# Record Mapping
# ============================================================================

def _build_party(raw: Mapping, prefix: str) -> Party:
    def get(suffix: str) -> Optional[str]:
        return _str(resolve_field(raw, f"{prefix}{suffix}"))

    vat_id = get("VatId")
    tax_number = get("TaxNumber")
    tax_id = get("TaxId")
    if prefix == "seller" and tax_id and not vat_id and not tax_number:
        if is_eu_vat_id(tax_id):
            vat_id = tax_id
        else:
            tax_number = tax_id

    email = get("Email")
    electronic_address = get("ElectronicAddress")
    if electronic_address is None and prefix == "buyer":
        electronic_address = _str(resolve_field(raw, "buyerCodiceDestinatario"))
    scheme = get("ElectronicAddressScheme")
    if electronic_address is None and email:
        electronic_address = email
        scheme = scheme or "EM"

    return Party(
        name=get("Name") or "",
        email=email,
        address=get("Address"),
        city=get("City"),
        postal_code=get("PostalCode"),
        country_code=get("CountryCode"),
        vat_id=vat_id,
        tax_id=tax_id,
        tax_number=tax_number,
        electronic_address=electronic_address,
        electronic_address_scheme=scheme,
        contact_name=get("ContactName"),
        phone=get("Phone"),
        tax_regime=_str(resolve_field(raw, "sellerTaxRegime")) if prefix == "seller" else None,
    )


def _map_line_item(item: Mapping, default_rate: Optional[Decimal]) -> LineItem:
    def get(field: str) -> Any:
        return resolve_field(item, field, LINE_ITEM_ALIASES)

    quantity = parse_amount(get("quantity"), "lineItems.quantity")
    if quantity is None or quantity == 0:
        quantity = Decimal("1")
    unit_price = _num(get("unitPrice"), "lineItems.unitPrice")
    total_price = parse_amount(get("totalPrice"), "lineItems.totalPrice")
    if total_price is None or (total_price == 0 and unit_price * quantity != 0):
        total_price = unit_price * quantity
        check_amount(total_price, "lineItems.totalPrice")

    tax_rate = normalize_tax_rate(parse_amount(get("taxRate"), "lineItems.taxRate"))
    if tax_rate is None:
        tax_rate = default_rate
    category = _str(get("taxCategoryCode"))

    return LineItem(
        description=_str(get("description")) or "",
        quantity=quantity,
        unit_price=unit_price,
        total_price=round_money(total_price),
        tax_rate=tax_rate,
        tax_category_code=category.upper() if category else None,
        unit_code=_str(get("unitCode")),
    )


def _map_allowance_charge(ac: Mapping) -> AllowanceCharge:
    def get(field: str) -> Any:
        return resolve_field(ac, field, ALLOWANCE_CHARGE_ALIASES)

    indicator = get("chargeIndicator")
    if isinstance(indicator, str):
        indicator = indicator.strip().lower() in ("true", "1", "yes", "charge")
    category = _str(get("taxCategoryCode"))

    return AllowanceCharge(
        charge_indicator=bool(indicator),
        amount=round_money(abs(_num(get("amount"), "allowanceCharges.amount"))),
        reason=_str(get("reason")),
        reason_code=_str(get("reasonCode")),
        tax_rate=normalize_tax_rate(parse_amount(get("taxRate"), "allowanceCharges.taxRate")),
        tax_category_code=category.upper() if category else None,
    )


def _records(value: Any, label: str) -> list[Mapping]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        logger.warning(f"Ignoring {label}: expected a list, got {type(value).__name__}")
        return []
    records = [entry for entry in value if isinstance(entry, Mapping)]
    if len(records) != len(value):
        logger.warning(f"Skipped {len(value) - len(records)} malformed {label} entries")
    return records


def preprocess_gross_to_net(
    line_items: Sequence[LineItem],
    allowance_charges: Sequence[AllowanceCharge],
    raw_subtotal: Optional[Decimal],
) -> tuple[list[LineItem], list[AllowanceCharge]]:
    """
    Convert gross-priced (VAT-inclusive) lines and allowances to net amounts.

    Only applies when allowances or charges are present and the gross line sum
    misses the extracted subtotal, but dividing it by (1 + rate) for one of the
    common VAT rates hits the subtotal. The largest line absorbs a rounding
    difference of up to the gross detection tolerance.
    """
    lines, acs = list(line_items), list(allowance_charges)
    if not acs or not lines or not raw_subtotal:
        return lines, acs

    gross_total = sum_money(item.total_price for item in lines)
    if money_equal(gross_total, raw_subtotal, GROSS_DETECTION_TOLERANCE):
        return lines, acs

    detected: Optional[Decimal] = None
    for rate in COMMON_VAT_RATES:
        net = round_money(gross_total / (1 + rate / 100))
        if abs(net - raw_subtotal) < GROSS_DETECTION_TOLERANCE:
            detected = rate
            break
    if detected is None:
        return lines, acs

    logger.info(
        f"Gross-priced invoice detected (rate {detected}%), converting "
        f"{gross_total} gross to net subtotal {raw_subtotal}"
    )

    def net_of(amount: Decimal, rate: Optional[Decimal]) -> Decimal:
        divisor = 1 + (rate if rate is not None else detected) / 100
        return round_money(amount / divisor)

    lines = [
        item.model_copy(update={
            "unit_price": net_of(item.unit_price, item.tax_rate),
            "total_price": net_of(item.total_price, item.tax_rate),
        })
        for item in lines
    ]
    acs = [ac.model_copy(update={"amount": net_of(ac.amount, ac.tax_rate)}) for ac in acs]

    diff = round_money(raw_subtotal - sum_money(item.total_price for item in lines))
    if diff and abs(diff) <= GROSS_DETECTION_TOLERANCE:
        largest = max(range(len(lines)), key=lambda i: lines[i].total_price)
        lines[largest] = lines[largest].model_copy(
            update={"total_price": round_money(lines[largest].total_price + diff)}
        )
    return lines, acs


def reconcile_totals(
    raw_subtotal: Optional[Decimal],
    raw_tax: Optional[Decimal],
    raw_total: Optional[Decimal],
    recomputed: Totals,
    has_lines: bool,
) -> Totals:
    """
    Decide between extracted and recomputed totals.

    A raw value is replaced only if it is missing, or it deviates from the
    recomputed value beyond tolerance while the raw numbers do not already
    add up among themselves. Without lines there is nothing to recompute from
    and the raw values are kept.
    """
    if not has_lines:
        return recomputed.model_copy(update={
            "subtotal": round_money(raw_subtotal or 0),
            "tax_amount": round_money(raw_tax or 0),
            "total_amount": round_money(raw_total or 0),
        })

    raw_consistent = (
        raw_subtotal is not None and raw_tax is not None and raw_total is not None
        and money_equal(
            raw_subtotal - recomputed.allowance_total + recomputed.charge_total + raw_tax,
            raw_total,
        )
    )

    chosen: dict[str, Decimal] = {}
    for name, raw_value in (("subtotal", raw_subtotal), ("tax_amount", raw_tax), ("total_amount", raw_total)):
        computed = getattr(recomputed, name)
        if raw_value is None or (raw_value == 0 and computed != 0):
            chosen[name] = computed
        elif money_equal(raw_value, computed, MONEY_TOLERANCE) or raw_consistent:
            chosen[name] = round_money(raw_value)
        else:
            logger.warning(f"Overriding extracted {name} {raw_value} with recomputed {computed}")
            chosen[name] = computed

    return recomputed.model_copy(update=chosen)


def _resolve_format(raw: Mapping, output_format: Optional[str]) -> str:
    if output_format is not None:
        if not is_valid_format(output_format):
            raise UnknownFormatError(output_format)
        return output_format
    explicit = _str(raw.get("outputFormat") or raw.get("output_format") or raw.get("format"))
    if explicit is not None:
        if not is_valid_format(explicit):
            raise UnknownFormatError(explicit)
        return explicit
    return detect_format_from_data(raw)


def to_canonical_invoice(raw: Any, output_format: Optional[str] = None) -> CanonicalInvoice:
    """
    Normalize a raw extraction record into a CanonicalInvoice.

    Args:
        raw: Open-ended key/value record from the extraction step
        output_format: Target format id; overrides any format named in the record

    Returns:
        A new CanonicalInvoice; raw is not modified

    Raises:
        MappingError: If raw is not a mapping
        UnknownFormatError: If the requested format is not registered
    """
    if not isinstance(raw, Mapping):
        raise MappingError(f"Extraction record must be a mapping, got {type(raw).__name__}")

    fmt = _resolve_format(raw, output_format)

    default_rate = normalize_tax_rate(parse_amount(resolve_field(raw, "taxRate"), "taxRate"))
    line_items = [
        _map_line_item(item, default_rate)
        for item in _records(resolve_field(raw, "lineItems"), "line item")
    ]
    allowance_charges = [
        _map_allowance_charge(ac)
        for ac in _records(resolve_field(raw, "allowanceCharges"), "allowance/charge")
    ]

    raw_subtotal = parse_amount(resolve_field(raw, "subtotal"), "subtotal")
    raw_tax = parse_amount(resolve_field(raw, "taxAmount"), "taxAmount")
    raw_total = parse_amount(resolve_field(raw, "totalAmount"), "totalAmount")

    line_items, allowance_charges = preprocess_gross_to_net(line_items, allowance_charges, raw_subtotal)
    totals = reconcile_totals(
        raw_subtotal,
        raw_tax,
        raw_total,
        recompute_totals(line_items, allowance_charges),
        has_lines=bool(line_items),
    )

    doc_type = parse_decimal(resolve_field(raw, "documentTypeCode"))
    iban = _str(resolve_field(raw, "sellerIban"))
    bic = _str(resolve_field(raw, "sellerBic"))

    return CanonicalInvoice(
        output_format=fmt,
        document_type_code=int(doc_type) if doc_type is not None else DEFAULT_DOCUMENT_TYPE,
        invoice_number=_str(resolve_field(raw, "invoiceNumber")) or "",
        invoice_date=normalize_date(resolve_field(raw, "invoiceDate")) or date.today().isoformat(),
        currency=(_str(resolve_field(raw, "currency")) or DEFAULT_CURRENCY).upper(),
        buyer_reference=_str(resolve_field(raw, "buyerReference")),
        notes=_str(resolve_field(raw, "notes")),
        preceding_invoice_reference=_str(resolve_field(raw, "precedingInvoiceReference")),
        billing_period_start=normalize_date(resolve_field(raw, "billingPeriodStart")),
        billing_period_end=normalize_date(resolve_field(raw, "billingPeriodEnd")),
        seller=_build_party(raw, "seller"),
        buyer=_build_party(raw, "buyer"),
        payment=PaymentInfo(
            iban=iban.replace(" ", "").upper() if iban else None,
            bic=bic.replace(" ", "").upper() if bic else None,
            payment_terms=_str(resolve_field(raw, "paymentTerms")),
            due_date=normalize_date(resolve_field(raw, "dueDate")),
            prepaid_amount=parse_amount(resolve_field(raw, "prepaidAmount"), "prepaidAmount"),
        ),
        line_items=line_items,
        allowance_charges=allowance_charges,
        totals=totals,
    )
