"""Mini README: Exchange-rate lookups used while rolling up budget totals.

Structure:
    * DEFAULT_SYMBOLS - currency codes accepted out of the box.
    * RateTable - direct rates quoted against one base currency.
    * CurrencyResolver - symbol validation, direct conversion and the hooks
      used to request and receive missing rates.
    * get_resolver - cached process-wide resolver.

The resolver never performs network I/O. When a rate is missing it returns
``nan`` and asks the ``request_rates`` hook (if any) to fetch the base in the
background. Whoever fetches the rates hands them back through ``load_rates``,
which notifies listeners so that views can read the totals again.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Callable, Dict, List, Mapping, Optional, Set

from ..configuration import get_settings
from ..logging_utils import get_logger

LOGGER = get_logger(__name__)

DEFAULT_SYMBOLS: Dict[str, str] = {
    "AUD": "Australian Dollar",
    "BGN": "Bulgarian Lev",
    "BRL": "Brazilian Real",
    "CAD": "Canadian Dollar",
    "CHF": "Swiss Franc",
    "CNY": "Chinese Renminbi Yuan",
    "CZK": "Czech Koruna",
    "DKK": "Danish Krone",
    "EUR": "Euro",
    "GBP": "British Pound",
    "HKD": "Hong Kong Dollar",
    "HUF": "Hungarian Forint",
    "IDR": "Indonesian Rupiah",
    "ILS": "Israeli New Sheqel",
    "INR": "Indian Rupee",
    "ISK": "Icelandic Króna",
    "JPY": "Japanese Yen",
    "KRW": "South Korean Won",
    "MXN": "Mexican Peso",
    "MYR": "Malaysian Ringgit",
    "NOK": "Norwegian Krone",
    "NZD": "New Zealand Dollar",
    "PHP": "Philippine Peso",
    "PLN": "Polish Złoty",
    "RON": "Romanian Leu",
    "SEK": "Swedish Krona",
    "SGD": "Singapore Dollar",
    "THB": "Thai Baht",
    "TRY": "Turkish Lira",
    "USD": "United States Dollar",
    "ZAR": "South African Rand",
}

RatesListener = Callable[[str], None]


def _now() -> datetime:
    """Current UTC time used to stamp rate tables."""

    return datetime.now(timezone.utc)


@dataclass(slots=True)
class RateTable:
    """Direct rates from ``base`` into other currencies."""

    base: str
    rates: Dict[str, float]
    fetched_at: datetime = field(default_factory=_now)


class CurrencyResolver:
    """Validate currency codes and convert amounts using direct rates only."""

    def __init__(
        self,
        symbols: Optional[Mapping[str, str]] = None,
        *,
        default_currency: str = "USD",
        cache_ttl: timedelta = timedelta(hours=24),
        request_rates: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._symbols: Dict[str, str] = {}
        self.set_symbols(DEFAULT_SYMBOLS if symbols is None else symbols)
        self.default_currency = default_currency.upper()
        self.cache_ttl = cache_ttl
        self.request_rates = request_rates
        self._tables: Dict[str, RateTable] = {}
        self._in_flight: Set[str] = set()
        self._listeners: List[RatesListener] = []
        LOGGER.debug(
            "Currency resolver initialised with %s symbols (default %s)",
            len(self._symbols),
            self.default_currency,
        )

    @property
    def symbols(self) -> Dict[str, str]:
        """Copy of the accepted currency codes and their names."""

        return dict(self._symbols)

    @property
    def pending_bases(self) -> Set[str]:
        """Bases whose rates were requested but not loaded yet."""

        return set(self._in_flight)

    def set_symbols(self, symbols: Mapping[str, str]) -> None:
        """Replace the set of currency codes accepted by line setters."""

        self._symbols = {str(code).upper(): str(name) for code, name in symbols.items()}

    def is_valid_currency(self, code: object) -> bool:
        """Whether ``code`` is a known currency, ignoring case and padding."""

        if not isinstance(code, str) or not code.strip():
            return False
        return code.strip().upper() in self._symbols

    def normalise(self, code: Optional[str]) -> str:
        """Upper-case a code, falling back to the default currency when blank."""

        if not code or not str(code).strip():
            return self.default_currency
        return str(code).strip().upper()

    def load_rates(
        self,
        base: str,
        rates: Mapping[str, float],
        *,
        fetched_at: Optional[datetime] = None,
    ) -> RateTable:
        """Store freshly fetched rates for ``base`` and notify listeners."""

        base = self.normalise(base)
        table_rates = {str(code).upper(): float(rate) for code, rate in rates.items()}
        table_rates[base] = 1.0
        table = RateTable(base=base, rates=table_rates, fetched_at=fetched_at or _now())
        self._tables[base] = table
        self._in_flight.discard(base)
        LOGGER.info("Exchange rates loaded for %s (%s quotes)", base, len(table_rates) - 1)
        for listener in list(self._listeners):
            listener(base)
        return table

    def rate_table(self, base: str) -> Optional[RateTable]:
        """Cached rates quoted against ``base``, if any were loaded."""

        return self._tables.get(self.normalise(base))

    def is_cache_valid(self, base: str) -> bool:
        """Whether rates for ``base`` exist and are younger than the TTL."""

        table = self._tables.get(self.normalise(base))
        if table is None:
            return False
        return _now() - table.fetched_at < self.cache_ttl

    def on_rates_loaded(self, listener: RatesListener) -> None:
        """Register a callback receiving the base code of every loaded table."""

        self._listeners.append(listener)

    def remove_listener(self, listener: RatesListener) -> None:
        """Unregister a rate-loaded callback."""

        if listener in self._listeners:
            self._listeners.remove(listener)

    def convert(self, amount: float, from_currency: Optional[str], to_currency: Optional[str]) -> float:
        """Convert ``amount`` with a direct rate, returning ``nan`` when none is cached."""

        source = self.normalise(from_currency)
        target = self.normalise(to_currency)
        if source == target:
            return amount
        if isinstance(amount, float) and math.isnan(amount):
            return amount

        table = self._tables.get(source)
        if table is not None and target in table.rates:
            return amount * table.rates[target]

        if not self.is_cache_valid(source) and source not in self._in_flight:
            self._request(source)
        LOGGER.debug("No direct rate %s -> %s cached", source, target)
        return math.nan

    def _request(self, base: str) -> None:
        """Ask the fetch hook for ``base`` rates and mark the request in flight."""

        if self.request_rates is None:
            LOGGER.warning("Exchange rates for %s are unavailable and no fetcher is configured", base)
            return
        self._in_flight.add(base)
        LOGGER.info("Requesting exchange rates for %s", base)
        self.request_rates(base)


@lru_cache()
def get_resolver() -> CurrencyResolver:
    """Return the shared resolver configured from the application settings."""

    settings = get_settings()
    return CurrencyResolver(
        default_currency=settings.default_currency,
        cache_ttl=timedelta(hours=settings.fx_cache_ttl_hours),
    )
