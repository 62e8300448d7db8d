# storefront/utils/money.py

from decimal import Decimal, ROUND_HALF_UP

Money = Decimal

ZERO = Decimal("0")
CENT = Decimal("0.01")
UNIT = Decimal("1")


def D(x) -> Money:
    return x if isinstance(x, Decimal) else Decimal(str(x or "0"))

def round_money(x: Money) -> Money:
    return D(x).quantize(CENT, rounding=ROUND_HALF_UP)

def round_unit(x: Money) -> Money:
    """Round to whole currency units, half up."""
    return D(x).quantize(UNIT, rounding=ROUND_HALF_UP)

def to_minor_units(x: Money) -> int:
    """Major units -> integer minor units (paise), as payment providers expect."""
    return int((round_money(x) * 100).to_integral_value(rounding=ROUND_HALF_UP))

def from_minor_units(x: int) -> Money:
    return round_money(D(x) / 100)

def to_float(x) -> float:
    return float(round_money(x)) if x is not None else 0.0
