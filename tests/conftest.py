"""Mini README: Shared fixtures for the DraftBudget test-suite.

Structure:
    * settings - settings writing into a temporary data directory.
    * resolver - resolver with a handful of direct USD/EUR/GBP rates.
    * budget - empty USD root line bound to both.
"""

from __future__ import annotations

import pytest

from draftbudget.budget import BudgetLine
from draftbudget.configuration import DraftBudgetSettings
from draftbudget.currency import CurrencyResolver


@pytest.fixture
def settings(tmp_path) -> DraftBudgetSettings:
    return DraftBudgetSettings(data_directory=tmp_path, autosave_debounce_seconds=0)


@pytest.fixture
def resolver() -> CurrencyResolver:
    resolver = CurrencyResolver(default_currency="USD")
    resolver.load_rates("EUR", {"USD": 1.1, "GBP": 0.85})
    resolver.load_rates("GBP", {"USD": 1.25})
    resolver.load_rates("USD", {"EUR": 0.9})
    return resolver


@pytest.fixture
def budget(settings, resolver) -> BudgetLine:
    return BudgetLine(title="Budget", currency="USD", settings=settings, resolver=resolver)
