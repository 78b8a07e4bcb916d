# ipd_billing/services/billing_math.py
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, localcontext
from typing import Optional, Tuple

TWOPLACES = Decimal("0.01")
ZERO = Decimal("0")
# ledger amounts are Numeric(12, 2)
MAX_AMOUNT = Decimal("1e10")


def D(x) -> Decimal:
    """Safe Decimal conversion (never Decimal -= float). Garbage -> 0."""
    value, _ = try_decimal(x)
    return value if value is not None else ZERO


def try_decimal(x) -> Tuple[Optional[Decimal], Optional[str]]:
    """
    Decimal conversion that reports why it failed.
    Returns (value, None) or (None, reason).
    """
    if x is None:
        return None, "missing"
    if isinstance(x, bool):
        return Decimal(int(x)), None
    if isinstance(x, str):
        x = x.replace(",", "").strip()
        if not x:
            return None, "missing"
    try:
        d = x if isinstance(x, Decimal) else Decimal(str(x))  # str() avoids float binary issues
    except (InvalidOperation, ValueError, TypeError):
        return None, "unparseable"
    if not d.is_finite():
        return None, "not a finite number"
    if abs(d) >= MAX_AMOUNT:
        return None, "out of range"
    return d, None


def money(x) -> Decimal:
    """
    Money rounding to 2 decimals. Computed Decimals are kept as they are
    (sums may pass MAX_AMOUNT); anything else goes through D().
    """
    d = x if isinstance(x, Decimal) and x.is_finite() else D(x)
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, d.adjusted() + 4)
        return d.quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def format_amount(x) -> str:
    """
    2000 -> "2000", 2000.5 -> "2000.50". No thousands separators.
    """
    m = money(x)
    if m == m.to_integral_value():
        return str(int(m))
    return f"{m:.2f}"
