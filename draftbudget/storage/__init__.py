"""Mini README: Persistence collaborators for budget trees.

``BudgetStore`` writes and reads one JSON budget file; ``AutosaveObserver``
connects a store to a tree's mutation notifications.
"""

from .budget_store import AutosaveObserver, BudgetStore

__all__ = ["AutosaveObserver", "BudgetStore"]
