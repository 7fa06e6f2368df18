import math
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Any


def normalize_amount(value: Any) -> float:
    """
    Coerce whatever the datastore or provider handed us into a float.

    Finite numbers pass through, numeric strings are parsed, booleans map to
    1/0, and anything missing or unparsable becomes 0.
    """
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else 0.0
    if value is None:
        return 0.0
    if isinstance(value, str) and not value.strip():
        return 0.0
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return 0.0
    return parsed if math.isfinite(parsed) else 0.0


def format_currency(value: Any, decimals: int = 0, include_sign: bool = False) -> str:
    """Format as dollars with thousands separators, e.g. ``-$1,234`` or ``+$10.50``."""
    amount = normalize_amount(value)
    magnitude = Decimal(str(abs(amount)))
    with localcontext() as ctx:
        # room for every integer digit plus the requested decimals
        ctx.prec = max(ctx.prec, magnitude.adjusted() + decimals + 2)
        rounded = magnitude.quantize(Decimal(1).scaleb(-decimals), rounding=ROUND_HALF_UP)
        formatted = f"{rounded:,.{decimals}f}"

    if amount < 0:
        prefix = "-"
    elif include_sign and amount > 0:
        prefix = "+"
    else:
        prefix = ""
    return f"{prefix}${formatted}"
