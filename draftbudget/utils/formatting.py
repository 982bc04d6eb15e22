"""Mini README: Display helpers for amounts and dates.

These helpers keep presentation concerns out of the budget model: the CLI
and API use them to print totals with thousands separators and to show
timestamps as plain ISO dates.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Optional


def format_amount(value: Optional[float], show_decimals: int = 2, if_zero: str = "0") -> str:
    """Format ``value`` as ``1,234.50``; missing rates render as ``n/a``."""

    if value is None or (isinstance(value, float) and math.isnan(value)):
        return "n/a"
    if not value:
        return if_zero
    return f"{float(value):,.{show_decimals}f}"


def date_iso(moment: Optional[datetime] = None) -> str:
    """Return the calendar date of ``moment`` (default: now, UTC) as ``YYYY-MM-DD``."""

    moment = moment or datetime.now(timezone.utc)
    return moment.date().isoformat()
