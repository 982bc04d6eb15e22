"""Mini README: Tests for exchange-rate lookups and rate loading."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta, timezone

import pytest

from draftbudget.budget import BudgetLine
from draftbudget.currency import CurrencyResolver


@pytest.fixture
def requested():
    return []


@pytest.fixture
def fetching_resolver(requested) -> CurrencyResolver:
    resolver = CurrencyResolver(request_rates=requested.append)
    resolver.load_rates("EUR", {"USD": 1.1})
    return resolver


def test_same_currency_is_identity(fetching_resolver: CurrencyResolver, requested) -> None:
    assert fetching_resolver.convert(42.0, "JPY", "jpy") == 42.0
    assert requested == []


def test_direct_rate_conversion(fetching_resolver: CurrencyResolver) -> None:
    """Amounts convert with the rate quoted for the source base."""

    assert fetching_resolver.convert(100.0, "EUR", "USD") == pytest.approx(110.0)
    assert fetching_resolver.convert(100.0, "EUR", "EUR") == pytest.approx(100.0)


def test_missing_rate_requests_base_once(fetching_resolver: CurrencyResolver, requested) -> None:
    """A miss asks for the base once while the request is in flight."""

    first = fetching_resolver.convert(10.0, "CHF", "USD")
    second = fetching_resolver.convert(20.0, "CHF", "EUR")

    assert math.isnan(first) and math.isnan(second)
    assert requested == ["CHF"]
    assert fetching_resolver.pending_bases == {"CHF"}


def test_loading_rates_notifies_and_clears_pending(fetching_resolver: CurrencyResolver, requested) -> None:
    """Loaded rates reach listeners and end the in-flight request."""

    loaded = []
    fetching_resolver.on_rates_loaded(loaded.append)
    fetching_resolver.convert(10.0, "CHF", "USD")

    table = fetching_resolver.load_rates("chf", {"usd": 1.08})

    assert loaded == ["CHF"]
    assert table.rates == {"USD": 1.08, "CHF": 1.0}
    assert fetching_resolver.pending_bases == set()
    assert fetching_resolver.convert(10.0, "CHF", "USD") == pytest.approx(10.8)

    fetching_resolver.remove_listener(loaded.append)
    fetching_resolver.load_rates("GBP", {"USD": 1.25})
    assert loaded == ["CHF"]


def test_no_cross_or_inverse_rates(fetching_resolver: CurrencyResolver, requested) -> None:
    """Only direct rates are used for conversion."""

    fetching_resolver.load_rates("USD", {"GBP": 0.8})

    assert math.isnan(fetching_resolver.convert(10.0, "EUR", "GBP"))
    assert math.isnan(fetching_resolver.convert(10.0, "USD", "EUR"))
    assert requested == []


def test_nan_amount_passes_through(fetching_resolver: CurrencyResolver) -> None:
    assert math.isnan(fetching_resolver.convert(math.nan, "EUR", "USD"))


def test_stale_rates_are_used_but_refreshed(requested) -> None:
    """Expired rates still convert while a refresh is requested."""

    resolver = CurrencyResolver(request_rates=requested.append, cache_ttl=timedelta(hours=24))
    resolver.load_rates("EUR", {"USD": 1.1}, fetched_at=datetime.now(timezone.utc) - timedelta(hours=25))

    assert not resolver.is_cache_valid("EUR")
    assert resolver.convert(10.0, "EUR", "USD") == pytest.approx(11.0)
    assert math.isnan(resolver.convert(10.0, "EUR", "JPY"))
    assert requested == ["EUR"]


def test_missing_fetcher_logs_warning(caplog) -> None:
    """Without a fetch hook a miss is logged, not raised."""

    resolver = CurrencyResolver()

    with caplog.at_level(logging.WARNING):
        assert math.isnan(resolver.convert(1.0, "SEK", "USD"))
    assert "no fetcher is configured" in caplog.text
    assert resolver.pending_bases == set()


def test_currency_validation_and_normalisation() -> None:
    """Currency codes are matched ignoring case and whitespace."""

    resolver = CurrencyResolver(default_currency="eur")

    assert resolver.is_valid_currency("usd")
    assert resolver.is_valid_currency(" GBP ")
    assert not resolver.is_valid_currency("XXX")
    assert not resolver.is_valid_currency("")
    assert not resolver.is_valid_currency(None)
    assert resolver.normalise(None) == "EUR"
    assert resolver.normalise(" chf ") == "CHF"

    resolver.set_symbols({"xau": "Gold"})
    assert resolver.is_valid_currency("XAU")
    assert not resolver.is_valid_currency("USD")


def test_loaded_rates_recover_budget_totals(budget: BudgetLine, resolver: CurrencyResolver) -> None:
    """Budget totals become available once the missing rates load."""

    budget.add(unit_cost=100, currency="CHF")
    assert budget.rate_unavailable

    resolver.load_rates("CHF", {"USD": 1.1})

    assert not budget.rate_unavailable
    assert budget.total == pytest.approx(110.0)
