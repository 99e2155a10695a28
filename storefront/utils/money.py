# storefront/utils/money.py

from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP

Money = Decimal

CENT = Decimal("0.01")

def D(x) -> Money:
    return x if isinstance(x, Decimal) else Decimal(str(x or "0"))

def round_money(x: Money) -> Money:
    return D(x).quantize(CENT, rounding=ROUND_HALF_UP)

def floor_money(x: Money) -> Money:
    # discounts round toward zero so they never exceed the exact amount
    return D(x).quantize(CENT, rounding=ROUND_DOWN)

def to_float(x):
    return float(round_money(x)) if x is not None else None
