"""Mini README: Percentage surcharges attached to budget lines.

Structure:
    * Overhead - one surcharge owned by a ``BudgetLine``.

Overheads compound in sequence order. The first applies to the line's total
before overheads; every later one applies to that total plus all overheads
positioned before it. Nothing is cached: ``base_total`` and ``total`` are
recomputed on every read, so reordering or editing an overhead is reflected
by every later overhead on the next read.
"""

from __future__ import annotations

import math
import weakref
from typing import TYPE_CHECKING, Dict, Optional

from ..logging_utils import get_logger
from .notifications import MutationKind
from .rounding import round_amount

if TYPE_CHECKING:  # pragma: no cover
    from .line import BudgetLine

LOGGER = get_logger(__name__)


class Overhead:
    """A compounding surcharge expressed as a decimal fraction (0.2 == 20%)."""

    def __init__(
        self,
        main_line: "BudgetLine",
        title: str = "Overhead",
        percentage: float = 0.0,
        currency: Optional[str] = None,
    ) -> None:
        self._main_line = weakref.ref(main_line)
        self._title = str(title)
        self._percentage = 0.0
        self._currency: Optional[str] = None
        self._set_percentage(percentage)
        if currency:
            self._set_currency(currency)

    def __repr__(self) -> str:
        return f"Overhead(title={self._title!r}, percentage={self._percentage!r}, currency={self._currency!r})"

    @property
    def main_line(self) -> "BudgetLine":
        """Line this overhead belongs to."""

        line = self._main_line()
        if line is None:
            raise ReferenceError("The line owning this overhead no longer exists.")
        return line

    @property
    def position(self) -> int:
        """Zero-based position in the owning line's overhead sequence."""

        for position, overhead in enumerate(self.main_line.overhead):
            if overhead is self:
                return position
        return -1

    @property
    def title(self) -> str:
        """Display name of the overhead."""

        return self._title

    @title.setter
    def title(self, title: str) -> None:
        if title is None or not str(title).strip():
            LOGGER.warning("Ignoring blank overhead title on line %s", self.main_line.index)
            return
        self._title = str(title).strip()
        self._changed("title")

    @property
    def percentage(self) -> float:
        """Surcharge as a decimal fraction."""

        return self._percentage

    @percentage.setter
    def percentage(self, percentage: float) -> None:
        if self._set_percentage(percentage):
            self._changed("percentage")

    @property
    def currency(self) -> str:
        """The override currency, or the owning line's currency when unset."""

        return self._currency or self.main_line.currency

    @currency.setter
    def currency(self, currency: Optional[str]) -> None:
        if currency is None:
            self._currency = None
            self._changed("currency")
        elif self._set_currency(currency):
            self._changed("currency")

    @property
    def currency_override(self) -> Optional[str]:
        """Explicit currency, or ``None`` when following the line."""

        return self._currency

    def _set_percentage(self, percentage: float) -> bool:
        """Store a numeric percentage, rejecting anything else with a warning."""

        try:
            value = float(percentage)
        except (TypeError, ValueError):
            LOGGER.warning("Rejected overhead percentage %r: not a number", percentage)
            return False
        if math.isnan(value):
            LOGGER.warning("Rejected overhead percentage %r: not a number", percentage)
            return False
        self._percentage = value
        return True

    def _set_currency(self, currency: str) -> bool:
        """Store a known currency code, rejecting unknown ones with a warning."""

        resolver = self.main_line.resolver
        if not resolver.is_valid_currency(currency):
            LOGGER.warning("Rejected overhead currency %r: unknown currency code", currency)
            return False
        self._currency = currency.strip().upper()
        return True

    def _changed(self, prop: str) -> None:
        """Report a change of ``prop`` through the owning line."""

        self.main_line.touch(MutationKind.OVERHEAD, ("overhead", prop, "total"))

    # --- Compounding -------------------------------------------------------

    def raw_base_total(self) -> float:
        """Unrounded base in the owning line's currency."""

        line = self.main_line
        base = line.raw_total_without_overhead()
        for earlier in line.overhead:
            if earlier is self:
                break
            base += earlier.raw_total_in_line_currency()
        return base

    def raw_total_in_line_currency(self) -> float:
        """Unrounded surcharge in the owning line's currency."""

        return self.raw_base_total() * self._percentage

    def raw_total(self) -> float:
        """Unrounded surcharge converted into this overhead's currency."""

        line = self.main_line
        amount = self.raw_total_in_line_currency()
        return line.resolver.convert(amount, line.currency, self.currency)

    @property
    def base_total(self) -> float:
        """Amount this overhead applies to, in the owning line's currency."""

        return round_amount(self.raw_base_total(), self.main_line.settings.round_decimals)

    @property
    def total(self) -> float:
        """Surcharge amount expressed in this overhead's currency."""

        return round_amount(self.raw_total(), self.main_line.settings.round_decimals)

    def as_dict(self) -> Dict[str, object]:
        """Export the overhead in the interchange record layout."""

        return {
            "title": self._title,
            "percentage": self._percentage,
            "currency": self._currency,
        }
