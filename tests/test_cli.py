"""Mini README: Tests for the Typer CLI and the display helpers it uses."""

from __future__ import annotations

import json
import logging
import math
from datetime import datetime, timezone

import pytest
from typer.testing import CliRunner

from draftbudget.budget import BudgetLine
from draftbudget.configuration import get_settings
from draftbudget.currency import get_resolver
from draftbudget.logging_utils import set_log_level
from draftbudget.storage import BudgetStore
from draftbudget.utils import date_iso, format_amount
from main_budget_centre import cli

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point the cached settings at a temporary data directory."""

    monkeypatch.setenv("DRAFTBUDGET_DATA_DIRECTORY", str(tmp_path / "data"))
    get_settings.cache_clear()
    get_resolver.cache_clear()
    yield
    get_settings.cache_clear()
    get_resolver.cache_clear()


@pytest.fixture
def saved_path(tmp_path, budget: BudgetLine):
    equipment = budget.add(title="Equipment")
    equipment.add(
        title="Laptops", unit_type="each", unit_number=2, unit_cost=1250.5, start="2024-03-01", end="2024-09-30"
    )
    budget.add_overhead("Admin", 0.1)
    return BudgetStore(tmp_path / "budget.json").save(budget)


def test_show_prints_indented_tree(saved_path) -> None:
    """show prints one indented row per line with its overheads."""

    result = runner.invoke(cli, ["show", "--path", str(saved_path)])

    assert result.exit_code == 0, result.output
    lines = result.output.splitlines()
    assert lines[0].startswith("0 ")
    assert "2,751.10 USD" in lines[0]
    assert "Admin 10.00%: 250.10 USD" in result.output
    assert lines[2].startswith("  1 ")
    assert lines[3].startswith("    1.1")
    assert "2024-03-01 -> 2024-09-30" in lines[2]
    assert "exchange rates are unavailable" not in result.output


def test_show_flags_missing_rates(tmp_path, budget: BudgetLine) -> None:
    """Totals without a rate print as n/a with a notice."""

    budget.add(title="Zurich office", unit_cost=100, currency="CHF")
    path = BudgetStore(tmp_path / "budget.json").save(budget)

    result = runner.invoke(cli, ["show", "--path", str(path)])

    assert result.exit_code == 0
    assert "n/a" in result.output
    assert "Some exchange rates are unavailable; totals are incomplete." in result.output


def test_export_to_stdout_and_file(tmp_path, saved_path) -> None:
    """export writes the record to stdout or to a file."""

    result = runner.invoke(cli, ["export", "--path", str(saved_path)])
    assert result.exit_code == 0
    assert json.loads(result.output)["children"][0]["title"] == "Equipment"

    output = tmp_path / "export.json"
    result = runner.invoke(cli, ["export", "--path", str(saved_path), "--output", str(output)])
    assert result.exit_code == 0
    assert "Budget exported to" in result.output
    assert json.loads(output.read_text(encoding="utf-8"))["total"] == pytest.approx(2751.1)


def test_missing_budget_exits_with_error(tmp_path) -> None:
    """Commands fail with status 1 when nothing has been saved."""

    result = runner.invoke(cli, ["show", "--path", str(tmp_path / "absent.json")])

    assert result.exit_code == 1
    assert "No saved budget at" in result.output


def test_show_uses_default_data_directory(tmp_path, budget: BudgetLine) -> None:
    """Without --path the configured data directory is used."""

    budget.add(title="Default location", unit_cost=5)
    BudgetStore(get_settings().budget_path).save(budget)

    result = runner.invoke(cli, ["show"])

    assert result.exit_code == 0
    assert "Default location" in result.output
    assert get_settings().data_directory == (tmp_path / "data").resolve()


def test_format_amount() -> None:
    assert format_amount(1234.5) == "1,234.50"
    assert format_amount(1234.5, 0) == "1,234"
    assert format_amount(0) == "0"
    assert format_amount(0, if_zero="-") == "-"
    assert format_amount(math.nan) == "n/a"
    assert format_amount(None) == "n/a"


def test_date_iso() -> None:
    assert date_iso(datetime(2024, 2, 29, 23, 0, tzinfo=timezone.utc)) == "2024-02-29"
    assert len(date_iso()) == 10


def test_unknown_log_level_is_a_usage_error(saved_path) -> None:
    """An unknown --log-level value is rejected."""

    result = runner.invoke(cli, ["--log-level", "loud", "show", "--path", str(saved_path)])

    assert result.exit_code == 2


def test_log_level_option_sets_root_level(saved_path) -> None:
    result = runner.invoke(cli, ["--log-level", "debug", "show", "--path", str(saved_path)])

    assert result.exit_code == 0
    assert logging.getLogger().level == logging.DEBUG
    set_log_level("info")
