"""Mini README: Tests for compounding overheads.

Overheads apply in sequence order, each on the line total plus every earlier
overhead; reordering, editing and removing them must show up on the next
read without any explicit refresh.
"""

from __future__ import annotations

import logging
import math

import pytest

from draftbudget.budget import BudgetLine, MutationKind


@pytest.fixture
def line(budget: BudgetLine) -> BudgetLine:
    return budget.add(title="Programme", unit_cost=100)


def test_overheads_compound_in_order(line: BudgetLine) -> None:
    """10% then 20% on 100 gives 10, then 20% of 110."""

    first = line.add_overhead("Admin", 0.10)
    second = line.add_overhead("Contingency", 0.20)

    assert first.total == pytest.approx(10.0)
    assert second.base_total == pytest.approx(110.0)
    assert second.total == pytest.approx(22.0)
    assert line.overhead_total == pytest.approx(32.0)
    assert line.total == pytest.approx(132.0)
    assert line.total_without_overhead == pytest.approx(100.0)


def test_reordering_recomputes_later_bases(line: BudgetLine) -> None:
    """Swapping overheads changes which base each one compounds on."""

    line.add_overhead("Admin", 0.10)
    line.add_overhead("Contingency", 0.20)

    assert line.move_overhead_down(0)

    first, second = line.overhead
    assert first.title == "Contingency"
    assert first.total == pytest.approx(20.0)
    assert second.base_total == pytest.approx(120.0)
    assert second.total == pytest.approx(12.0)
    assert second.position == 1

    assert line.move_overhead_up(1)
    assert [overhead.title for overhead in line.overhead] == ["Admin", "Contingency"]


def test_reordering_at_the_edges_is_rejected(line: BudgetLine, caplog) -> None:
    """The first overhead cannot move up nor the last one down."""

    line.add_overhead("Admin", 0.10)
    line.add_overhead("Contingency", 0.20)

    with caplog.at_level(logging.WARNING):
        assert not line.move_overhead_up(0)
        assert not line.move_overhead_down(1)
        assert not line.move_overhead_down(5)
    assert [overhead.title for overhead in line.overhead] == ["Admin", "Contingency"]


def test_overheads_follow_leaf_edits(line: BudgetLine) -> None:
    """Overhead amounts track later cost edits."""

    overhead = line.add_overhead("Admin", 0.25)
    line.unit_cost = 200

    assert overhead.base_total == pytest.approx(200.0)
    assert overhead.total == pytest.approx(50.0)
    assert line.total == pytest.approx(250.0)


def test_overhead_currency_override(line: BudgetLine) -> None:
    """The overhead reports its own currency while the line total stays in USD."""

    overhead = line.add_overhead("Fee", 0.10, currency="EUR")

    assert overhead.currency == "EUR"
    assert overhead.total == pytest.approx(9.0)
    assert line.total == pytest.approx(110.0)

    overhead.currency = None
    assert overhead.currency == "USD"
    assert overhead.total == pytest.approx(10.0)


def test_invalid_overhead_values_are_rejected(line: BudgetLine, caplog) -> None:
    """Invalid overhead inputs keep the previous values."""

    overhead = line.add_overhead("Admin", 0.10)

    with caplog.at_level(logging.WARNING):
        overhead.percentage = "lots"
        overhead.currency = "XXX"
        overhead.title = " "
    assert overhead.percentage == pytest.approx(0.10)
    assert overhead.currency == "USD"
    assert overhead.title == "Admin"


def test_group_overhead_applies_to_rolled_up_total(budget: BudgetLine) -> None:
    """An overhead on a group applies to its children's total."""

    budget.add(unit_cost=120)
    budget.add(unit_cost=80, currency="EUR")
    budget.add_overhead("Indirect costs", 0.05)

    assert budget.total_without_overhead == pytest.approx(208.0)
    assert budget.total == pytest.approx(218.4)


def test_parent_total_includes_child_overheads(budget: BudgetLine, line: BudgetLine) -> None:
    line.add_overhead("Admin", 0.10)
    budget.add(unit_cost=50)

    assert budget.total == pytest.approx(160.0)


def test_update_and_remove_overhead(line: BudgetLine, caplog) -> None:
    """Overheads can be edited in place and removed by position."""

    line.add_overhead("Admin", 0.10)
    line.add_overhead("Contingency", 0.20)

    assert line.update_overhead(0, percentage=0.5, title="Management")
    assert line.overhead[0].title == "Management"
    assert line.total == pytest.approx(180.0)

    assert line.remove_overhead(0)
    assert line.total == pytest.approx(120.0)

    with caplog.at_level(logging.WARNING):
        assert not line.remove_overhead(3)
        assert not line.update_overhead(3, percentage=0.1)
    assert "no overhead at position 3" in caplog.text


def test_overhead_changes_notify_owner_and_ancestors(budget: BudgetLine, line: BudgetLine) -> None:
    """Editing an overhead notifies its line and the lines above."""

    events = []
    budget.subscribe(events.append)

    overhead = line.add_overhead("Admin", 0.10)
    overhead.percentage = 0.15
    assert not line.move_overhead_down(0)

    assert [event.kind for event in events] == [MutationKind.OVERHEAD, MutationKind.OVERHEAD]
    assert all(event.line is line for event in events)
    assert line.total == pytest.approx(115.0)


def test_overhead_currency_without_rate_flags_the_budget(budget: BudgetLine, line: BudgetLine) -> None:
    """A missing rate for an overhead's own currency marks the totals as incomplete."""

    overhead = line.add_overhead("Fee", 0.10, currency="JPY")

    assert math.isnan(overhead.total)
    assert line.total == pytest.approx(110.0)
    assert line.rate_unavailable
    assert budget.rate_unavailable

    overhead.currency = None
    assert not budget.rate_unavailable
