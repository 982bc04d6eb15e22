"""Mini README: Core package initializer for DraftBudget.

DraftBudget models a budget as a tree of lines whose totals, date ranges and
currency sets roll up from the leaves on demand, with compounding overheads
and currency conversion at every aggregation step. The most used entry
points are re-exported here.
"""

from .budget import BudgetLine, MoveMode, Overhead
from .logging_utils import get_logger

__all__ = ["BudgetLine", "MoveMode", "Overhead", "get_logger"]
