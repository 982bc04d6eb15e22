"""Mini README: Tests for saving budgets to disk and autosaving edits."""

from __future__ import annotations

import pytest

from draftbudget.budget import BudgetLine
from draftbudget.storage import AutosaveObserver, BudgetStore


@pytest.fixture
def store(tmp_path) -> BudgetStore:
    return BudgetStore(tmp_path / "saved" / "budget.json")


def test_save_and_load_round_trip(store: BudgetStore, budget: BudgetLine, settings, resolver) -> None:
    """Saving any line writes the whole tree from its root."""

    heading = budget.add(title="Equipment")
    heading.add(title="Laptops", unit_type="each", unit_number=3, unit_cost=1200)
    heading.add(title="Licences", unit_cost=300, unit_currency="EUR")

    path = store.save(heading)

    assert path == store.path
    assert store.exists()
    loaded = store.load(settings=settings, resolver=resolver)
    assert loaded is not None
    assert loaded.title == "Budget"
    assert loaded.get_line("1.1").title == "Laptops"
    assert loaded.total == pytest.approx(budget.total)


def test_load_without_saved_budget_returns_none(store: BudgetStore, settings, resolver) -> None:
    assert store.load(settings=settings, resolver=resolver) is None


def test_invalid_files_raise_value_error(store: BudgetStore, settings, resolver) -> None:
    """Unparseable or invalid saved files raise ValueError."""

    store.path.parent.mkdir(parents=True)

    store.path.write_text("{broken", encoding="utf-8")
    with pytest.raises(ValueError, match="is invalid"):
        store.load(settings=settings, resolver=resolver)

    store.path.write_text('{"children": 5}', encoding="utf-8")
    with pytest.raises(ValueError, match="is invalid"):
        store.load(settings=settings, resolver=resolver)


def test_clear_removes_saved_budget(store: BudgetStore, budget: BudgetLine) -> None:
    """clear deletes the file and reports whether one existed."""

    assert not store.clear()
    store.save(budget)

    assert store.clear()
    assert not store.exists()


def test_autosave_writes_after_changes(store: BudgetStore, budget: BudgetLine) -> None:
    """The observer only saves when the tree has changed."""

    autosave = AutosaveObserver(store, budget)
    assert not autosave.flush()

    budget.add(unit_cost=10)
    assert autosave.dirty
    assert autosave.flush()
    assert store.exists()
    assert not autosave.dirty
    assert not autosave.flush()


def test_autosave_debounces_bursts(store: BudgetStore, budget: BudgetLine) -> None:
    """Edits inside the debounce interval wait unless forced."""

    autosave = AutosaveObserver(store, budget, debounce_seconds=3600)
    line = budget.add(unit_cost=10)
    assert autosave.flush()

    line.unit_cost = 20
    line.unit_number = 2
    assert not autosave.flush()
    assert autosave.dirty

    assert autosave.flush(force=True)
    assert '"unit_cost": 20.0' in store.path.read_text(encoding="utf-8")


def test_autosave_close_saves_and_unsubscribes(store: BudgetStore, budget: BudgetLine) -> None:
    """Closing writes pending edits and stops watching the tree."""

    autosave = AutosaveObserver(store, budget, debounce_seconds=3600)
    budget.title = "Renamed"

    autosave.close()

    assert '"title": "Renamed"' in store.path.read_text(encoding="utf-8")
    budget.add()
    assert not autosave.dirty


def test_deferred_flush_saves_the_last_edit_later(store: BudgetStore, budget: BudgetLine, settings, resolver) -> None:
    """An edit inside the debounce interval is written by the trailing save."""

    autosave = AutosaveObserver(store, budget, debounce_seconds=1.0)
    line = budget.add(unit_cost=10)
    assert autosave.flush()

    line.unit_cost = 999
    assert not autosave.flush()
    assert autosave.save_scheduled

    autosave.wait(timeout=5)

    assert not autosave.dirty
    assert not autosave.save_scheduled
    assert store.load(settings=settings, resolver=resolver).get_line(1).unit_cost == pytest.approx(999.0)
