"""Mini README: Rounding of observed money amounts.

Amounts are rounded half away from zero through ``decimal`` so that values
such as ``2.675`` round the way they read rather than the way their binary
float representation happens to fall. ``nan`` (a missing exchange rate) is
returned unchanged. Intermediate sums are never rounded; only the values a
caller reads from ``cost``, ``total`` and friends are.
"""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal, localcontext


def round_amount(value: float, decimals: int = 2) -> float:
    """Round ``value`` to ``decimals`` places, half away from zero."""

    if value is None:
        return 0.0
    value = float(value)
    if math.isnan(value) or math.isinf(value):
        return value
    exact = Decimal(repr(value))
    quantum = Decimal(1).scaleb(-decimals)
    with localcontext() as context:
        # quantize needs room for every integer digit plus the requested decimals.
        context.prec = max(28, exact.adjusted() + decimals + 2)
        return float(exact.quantize(quantum, rounding=ROUND_HALF_UP))
