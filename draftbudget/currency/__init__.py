"""Mini README: Currency handling for budget roll-ups.

Budget lines only ever talk to a ``CurrencyResolver``: it decides which codes
are valid and converts amounts between currencies with cached direct rates.
"""

from .resolver import DEFAULT_SYMBOLS, CurrencyResolver, RateTable, get_resolver

__all__ = ["CurrencyResolver", "DEFAULT_SYMBOLS", "RateTable", "get_resolver"]
