from __future__ import annotations
from decimal import Decimal

ZERO = Decimal("0")

def dec(x) -> Decimal:
    if x is None:
        return ZERO
    if isinstance(x, Decimal):
        return x
    return Decimal(str(x))

def num(x) -> int | float:
    """JSON-friendly quantity: whole numbers as int, the rest as float."""
    d = dec(x)
    if d == d.to_integral_value():
        return int(d)
    return float(d)
