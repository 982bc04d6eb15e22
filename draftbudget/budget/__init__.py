"""Mini README: Budget tree model.

Exports ``BudgetLine`` (the tree node with its roll-up arithmetic),
``Overhead`` (compounding surcharges) and the notification types observers
receive when a tree changes.
"""

from .line import BudgetLine, LeafCosts, MoveMode, parse_timestamp
from .notifications import MutationEvent, MutationKind
from .overhead import Overhead
from .rounding import round_amount

__all__ = [
    "BudgetLine",
    "LeafCosts",
    "MoveMode",
    "MutationEvent",
    "MutationKind",
    "Overhead",
    "parse_timestamp",
    "round_amount",
]
