"""
Monetary engine: rounding, tolerant comparison and totals recomputation.

All amounts are Decimal and rounded half away from zero to 2 fraction digits.
Floats are converted through their string form so that values such as 2.675
round the way they read instead of the way they are stored in binary.

Recomputation follows the EN 16931 calculation model:
- subtotal (BT-106) is the sum of line net amounts
- allowances and charges are netted per tax group before tax is applied
- tax per group is basis x rate / 100, rounded per group
- total (BT-112) = subtotal - allowances + charges + tax
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Optional, Sequence, Union

from .config import MONEY_TOLERANCE
from .schemas import AllowanceCharge, LineItem, TaxBreakdown, Totals

Number = Union[int, float, str, Decimal]

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def to_decimal(value: Number) -> Decimal:
    """Convert a number to Decimal without binary-float artifacts."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    try:
        return Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"Not a number: {value!r}")


def round_money(value: Number) -> Decimal:
    """Round to 2 fraction digits, half away from zero."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def money_equal(a: Number, b: Number, tolerance: Number = MONEY_TOLERANCE) -> bool:
    """True when |a - b| <= tolerance."""
    return abs(to_decimal(a) - to_decimal(b)) <= to_decimal(tolerance)


def sum_money(values: Iterable[Number]) -> Decimal:
    """Sum amounts and round the result."""
    return round_money(sum((to_decimal(v) for v in values), ZERO))


def compute_tax(basis: Number, rate: Number) -> Decimal:
    """Tax on a basis amount at a percentage rate."""
    return round_money(to_decimal(basis) * to_decimal(rate) / HUNDRED)


def derive_tax_category_code(rate: Optional[Number]) -> str:
    """S (standard) for a positive rate, E (exempt) otherwise."""
    if rate is not None and to_decimal(rate) > 0:
        return "S"
    return "E"


def _group_key(rate: Optional[Decimal], category: Optional[str]) -> tuple[Decimal, str]:
    # 19, 19.0 and 19.00 share a group
    rate = to_decimal(rate if rate is not None else 0).quantize(CENT, rounding=ROUND_HALF_UP)
    return rate, category or derive_tax_category_code(rate)


def group_by_tax_rate(
    line_items: Sequence[LineItem],
    allowance_charges: Sequence[AllowanceCharge] = (),
) -> list[TaxBreakdown]:
    """
    Group line items by (tax rate, tax category) and compute tax per group.

    Allowances reduce and charges increase the taxable amount of the group
    they name by rate. Those without a rate are spread over all groups in
    proportion to the groups' net amounts; the last group takes the rounding
    remainder.

    Returns:
        One TaxBreakdown per group, sorted by rate descending
    """
    nets: dict[tuple[Decimal, str], Decimal] = {}
    for item in line_items:
        key = _group_key(item.tax_rate, item.tax_category_code)
        nets[key] = nets.get(key, ZERO) + to_decimal(item.total_price)

    unassigned = ZERO
    for ac in allowance_charges:
        signed = to_decimal(ac.amount) if ac.charge_indicator else -to_decimal(ac.amount)
        if ac.tax_rate is None and ac.tax_category_code is None:
            unassigned += signed
            continue
        key = _group_key(ac.tax_rate, ac.tax_category_code)
        nets[key] = nets.get(key, ZERO) + signed

    bases = {key: round_money(net) for key, net in nets.items()}

    if unassigned and bases:
        line_total = sum(bases.values(), ZERO)
        keys = sorted(bases, key=lambda k: bases[k], reverse=True)
        remaining = round_money(unassigned)
        for i, key in enumerate(keys):
            if i == len(keys) - 1 or line_total == 0:
                share = remaining
            else:
                share = round_money(unassigned * bases[key] / line_total)
            bases[key] = round_money(bases[key] + share)
            remaining -= share
            if line_total == 0:
                break
    elif unassigned:
        bases[_group_key(None, None)] = round_money(unassigned)

    breakdown = [
        TaxBreakdown(
            tax_rate=rate,
            tax_category_code=category,
            taxable_amount=basis,
            tax_amount=compute_tax(basis, rate),
        )
        for (rate, category), basis in bases.items()
    ]
    breakdown.sort(key=lambda tb: tb.tax_rate, reverse=True)
    return breakdown


def recompute_totals(
    line_items: Sequence[LineItem],
    allowance_charges: Sequence[AllowanceCharge] = (),
) -> Totals:
    """
    Recompute subtotal, tax and total from line items.

    Pure function: the inputs are not modified.

    Args:
        line_items: Invoice lines; total_price is the net line amount
        allowance_charges: Document-level allowances and charges

    Returns:
        Totals with every aggregate rounded to 2 digits
    """
    breakdown = group_by_tax_rate(line_items, allowance_charges)
    subtotal = sum_money(item.total_price for item in line_items)
    allowance_total = sum_money(ac.amount for ac in allowance_charges if not ac.charge_indicator)
    charge_total = sum_money(ac.amount for ac in allowance_charges if ac.charge_indicator)
    tax_amount = sum_money(tb.tax_amount for tb in breakdown)

    return Totals(
        subtotal=subtotal,
        tax_amount=tax_amount,
        total_amount=round_money(subtotal - allowance_total + charge_total + tax_amount),
        allowance_total=allowance_total,
        charge_total=charge_total,
        tax_breakdown=breakdown,
    )


def format_amount(value: Number) -> str:
    """Render an amount with exactly 2 fraction digits (e.g. "238.00")."""
    return f"{round_money(value):.2f}"


def format_quantity(value: Number) -> str:
    """Render a quantity without trailing zeros (2.000 -> "2", 1.50 -> "1.5")."""
    d = to_decimal(value)
    if d == d.to_integral_value():
        return str(d.quantize(Decimal("1")))
    return format(d.normalize(), "f")


def format_rate(value: Number) -> str:
    """Render a tax rate with 2 fraction digits, as CII and UBL expect."""
    return f"{to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP):.2f}"
