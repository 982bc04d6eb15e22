"""Mini README: Mutation notifications for budget trees.

Structure:
    * MutationKind - enum naming the kind of change that happened.
    * MutationEvent - immutable description handed to observers.
    * MutationObserver - callable signature for subscribers.
    * NotificationHub - per-line subscriber list with upward dispatch and the
      batch scope used during bulk construction.

Every mutation of a line (field write, add, remove, move, overhead change)
produces one event. The event bubbles from the mutated line to the root and
every line on that path calls its own subscribers, so an observer attached to
the root hears about the whole tree. Inside ``batch()`` events are queued on
the root and delivered, merged per line, when the outermost scope closes.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Dict, Iterator, List, Tuple

if TYPE_CHECKING:  # pragma: no cover
    from .line import BudgetLine


class MutationKind(str, Enum):
    """Enumerate the mutations a budget tree reports."""

    UPDATE = "update"
    ADD = "add"
    REMOVE = "remove"
    MOVE = "move"
    OVERHEAD = "overhead"


@dataclass(frozen=True)
class MutationEvent:
    """A change to ``line`` that also affects every one of its ancestors."""

    line: "BudgetLine"
    kind: MutationKind
    properties: Tuple[str, ...] = ()

    @property
    def affected(self) -> List["BudgetLine"]:
        """The mutated line followed by its ancestors up to the root."""

        return [self.line, *self.line.ancestors]

    def merge(self, other: "MutationEvent") -> "MutationEvent":
        """Combine two events for the same line; mixed kinds become UPDATE."""

        properties = self.properties + tuple(p for p in other.properties if p not in self.properties)
        kind = self.kind if self.kind is other.kind else MutationKind.UPDATE
        return MutationEvent(line=self.line, kind=kind, properties=properties)


MutationObserver = Callable[[MutationEvent], None]


class NotificationHub:
    """Subscribers of a single line plus the batch state used when it is a root."""

    def __init__(self) -> None:
        self.observers: List[MutationObserver] = []
        self.batch_depth = 0
        self.pending: Dict[int, MutationEvent] = {}

    @property
    def batching(self) -> bool:
        """Whether a batch scope is open on this hub."""

        return self.batch_depth > 0

    def queue(self, event: MutationEvent) -> None:
        """Hold ``event`` back, merging it with earlier events for its line."""

        key = id(event.line)
        queued = self.pending.get(key)
        self.pending[key] = queued.merge(event) if queued else event

    def drain(self) -> List[MutationEvent]:
        """Return and forget the queued events."""

        events = list(self.pending.values())
        self.pending.clear()
        return events


def dispatch(event: MutationEvent) -> None:
    """Deliver ``event`` to subscribers from the mutated line up to the root."""

    current = event.line
    while current is not None:
        for observer in list(current.hub.observers):
            observer(event)
        current = current.parent


def emit(event: MutationEvent) -> None:
    """Dispatch ``event`` now, or queue it on the root while a batch is open."""

    root_hub = event.line.root.hub
    if root_hub.batching:
        root_hub.queue(event)
    else:
        dispatch(event)


@contextmanager
def batch_scope(line: "BudgetLine") -> Iterator["BudgetLine"]:
    """Suppress notifications on ``line``'s tree until the outermost scope closes."""

    hub = line.root.hub
    hub.batch_depth += 1
    try:
        yield line
    finally:
        hub.batch_depth -= 1
        if hub.batch_depth == 0:
            for event in hub.drain():
                dispatch(event)
