"""Mini README: Hierarchical budget lines with on-demand roll-ups.

Structure:
    * LeafCosts - cost inputs carried by a line without children.
    * MoveMode - enum of the relocation modes accepted by ``BudgetLine.move``.
    * BudgetLine - ordered n-ary tree node computing cost, totals, date
      ranges and currency sets from its subtree.

A line is either a leaf holding ``LeafCosts`` or a group whose values are
derived from its children; the variant is swapped when the first child is
added and when the last child leaves. Totals are recomputed on every read and
converted between currencies at each aggregation step, so structural edits
never require renumbering or cache invalidation. Rejected mutations log a
warning and leave the tree untouched.
"""

from __future__ import annotations

import math
import weakref
from contextlib import contextmanager
from dataclasses import dataclass, fields
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Union

from ..configuration import DraftBudgetSettings, get_settings
from ..currency import CurrencyResolver, get_resolver
from ..logging_utils import get_logger
from .notifications import (
    MutationEvent,
    MutationKind,
    MutationObserver,
    NotificationHub,
    batch_scope,
    emit,
)
from .overhead import Overhead
from .rounding import round_amount

LOGGER = get_logger(__name__)

LUMP_SUM_TYPES = {"ls", "lumpsum"}
DERIVED_FIELDS = {"index", "cost", "total", "children", "overhead", "level"}
# Assignment order matters: a lump-sum unit type resets the unit number.
ASSIGNABLE_FIELDS = (
    "title",
    "currency",
    "unit_currency",
    "unit_type",
    "unit_number",
    "unit_cost",
    "frequency",
    "start",
    "end",
    "category",
)
DURATION_SECONDS = {
    "y": 31_536_000,
    "m": 2_628_000,
    "w": 604_800,
    "d": 86_400,
    "h": 3_600,
    "s": 1,
}

IndexPath = Union[int, str, None]


def _now() -> datetime:
    """Current UTC time; every stamp in a tree is timezone-aware."""

    return datetime.now(timezone.utc)


def parse_timestamp(value: object) -> datetime:
    """Coerce ISO strings, datetimes, dates or epoch milliseconds to aware datetimes."""

    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return parse_timestamp(datetime.fromisoformat(text))
    raise ValueError(f"Unsupported timestamp value: {value!r}")


@dataclass(slots=True)
class LeafCosts:
    """Direct cost inputs of a line that has no children."""

    unit_number: float = 1.0
    unit_type: str = "ls"
    unit_cost: float = 0.0
    unit_currency: Optional[str] = None
    frequency: int = 1


LEAF_FIELDS = tuple(f.name for f in fields(LeafCosts))
EMPTY_LEAF_VALUES: Dict[str, Any] = {
    "unit_number": 0.0,
    "unit_type": "",
    "unit_cost": 0.0,
    "unit_currency": None,
    "frequency": 0,
}


class MoveMode(str, Enum):
    """Where ``BudgetLine.move`` places a line relative to its target."""

    APPEND = "append"
    BEFORE = "before"
    AFTER = "after"
    PATH = "path"


class BudgetLine:
    """A node of a budget tree.

    Leaf lines carry ``unit_number``, ``unit_type``, ``unit_cost``,
    ``unit_currency`` and ``frequency``; group lines read those as zero or
    empty and derive ``total``, ``start``, ``end`` and ``modified`` from their
    descendants. Only a root may hold its own settings and resolver; every
    other line reads them from its root.
    """

    def __init__(
        self,
        options: Optional[Mapping[str, Any]] = None,
        *,
        settings: Optional[DraftBudgetSettings] = None,
        resolver: Optional[CurrencyResolver] = None,
        **field_values: Any,
    ) -> None:
        self.hub = NotificationHub()
        self._parent_ref: Optional[weakref.ReferenceType] = None
        self._children: List[BudgetLine] = []
        self._overhead: List[Overhead] = []
        self._costs: Optional[LeafCosts] = LeafCosts()
        self._settings = settings
        self._resolver = resolver
        self._title: Optional[str] = None
        self._currency: Optional[str] = None
        self._category: List[str] = []

        now = _now()
        self._start = now
        self._end = now + timedelta(days=1)
        self._created = now
        self._modified = now

        values = dict(options or {})
        values.update(field_values)
        self._apply(values)

        if self._currency is None:
            self._currency = self.settings.default_currency
        if values.get("start") is not None and values.get("end") is None:
            self._end = self._start + timedelta(days=1)
        if values.get("created") is not None:
            self.created = values["created"]
        self._modified = self._created
        if values.get("modified") is not None:
            self.modified = values["modified"]

    def _apply(self, values: Mapping[str, Any]) -> None:
        """Assign known fields in dependency order, warning about unknown names."""

        unknown = set(values) - set(ASSIGNABLE_FIELDS) - DERIVED_FIELDS - {"created", "modified"}
        for name in sorted(unknown):
            LOGGER.warning("Ignoring unknown line field '%s'", name)
        for name in ASSIGNABLE_FIELDS:
            if name in values and values[name] is not None:
                setattr(self, name, values[name])

    def __repr__(self) -> str:
        return f"BudgetLine(index={self.index!r}, title={self.title!r}, currency={self.currency!r})"

    # --- Context ------------------------------------------------------------

    @property
    def settings(self) -> DraftBudgetSettings:
        """Settings of the root line, or the process-wide defaults."""

        return self.root._settings or get_settings()

    @property
    def resolver(self) -> CurrencyResolver:
        """Currency resolver of the root line, or the shared resolver."""

        return self.root._resolver or get_resolver()

    # --- Notifications ------------------------------------------------------

    def subscribe(self, observer: MutationObserver) -> None:
        """Call ``observer`` for every mutation of this line or its descendants."""

        self.hub.observers.append(observer)

    def unsubscribe(self, observer: MutationObserver) -> None:
        """Stop calling ``observer``; unknown observers are ignored."""

        if observer in self.hub.observers:
            self.hub.observers.remove(observer)

    @contextmanager
    def batch(self) -> Iterator["BudgetLine"]:
        """Hold back notifications for the whole tree until the block ends."""

        with batch_scope(self) as line:
            yield line

    def touch(self, kind: MutationKind = MutationKind.UPDATE, properties: Iterable[str] = ()) -> None:
        """Stamp ``modified`` and notify observers from this line upwards."""

        self._modified = _now()
        self._notify(kind, properties)

    def _notify(self, kind: MutationKind, properties: Iterable[str] = ()) -> None:
        """Emit an event for this line without touching ``modified``."""

        emit(MutationEvent(line=self, kind=kind, properties=tuple(properties)))

    def _log_structure(self, message: str, *args: Any) -> None:
        """Log structural edits at INFO, or DEBUG while the tree is batching."""

        if self.root.hub.batching:
            LOGGER.debug(message, *args)
        else:
            LOGGER.info(message, *args)

    # --- Plain fields -------------------------------------------------------

    @property
    def created(self) -> datetime:
        """Creation timestamp of this line."""

        return self._created

    @created.setter
    def created(self, value: object) -> None:
        try:
            self._created = parse_timestamp(value)
        except ValueError as error:
            LOGGER.warning("Rejected created timestamp on line %s: %s", self.index, error)

    @property
    def modified(self) -> datetime:
        """Latest modification of this line or any of its descendants."""

        latest = self.get_last("modified")
        if latest is not None and latest.modified > self._modified:
            return latest.modified
        return self._modified

    @modified.setter
    def modified(self, value: object) -> None:
        try:
            self._modified = parse_timestamp(value)
        except ValueError as error:
            LOGGER.warning("Rejected modified timestamp on line %s: %s", self.index, error)

    @property
    def start(self) -> datetime:
        """Earliest start among the children, or this line's own start for a leaf."""

        first = self.get_first("start")
        return first.start if first is not None else self._start

    @start.setter
    def start(self, value: object) -> None:
        try:
            self._start = parse_timestamp(value)
        except ValueError as error:
            LOGGER.warning("Rejected start date on line %s: %s", self.index, error)
            return
        self.touch(properties=("start", "duration"))

    @property
    def end(self) -> datetime:
        """Latest end among the children, or this line's own end for a leaf."""

        last = self.get_last("end")
        return last.end if last is not None else self._end

    @end.setter
    def end(self, value: object) -> None:
        try:
            self._end = parse_timestamp(value)
        except ValueError as error:
            LOGGER.warning("Rejected end date on line %s: %s", self.index, error)
            return
        self.touch(properties=("end", "duration"))

    @property
    def duration(self) -> timedelta:
        """Time between ``start`` and ``end``."""

        return self.end - self.start

    def get_duration(self, measure: Optional[str] = None) -> float:
        """Duration in years ("y"), months ("m"), weeks ("w"), days ("d"), hours ("h") or seconds."""

        measure = measure or "s"
        if measure not in DURATION_SECONDS:
            raise ValueError(f"Unsupported duration measure: {measure!r}")
        return self.duration.total_seconds() / DURATION_SECONDS[measure]

    @property
    def level(self) -> int:
        """Depth from the root, which is level zero."""

        parent = self.parent
        return parent.level + 1 if parent is not None else 0

    @property
    def level_name(self) -> str:
        """Configured display name of this line's level."""

        names = self.settings.level_names
        return names[self.level] if self.level < len(names) else names[-1]

    @property
    def default_title(self) -> str:
        """Generated title such as ``Heading-2`` used when no title is set."""

        return f"{self.level_name}-{self.line_number}"

    @property
    def title(self) -> str:
        """Explicit title, or the generated default."""

        return (self._title or self.default_title).strip()

    @title.setter
    def title(self, title: Optional[str]) -> None:
        text = str(title).strip() if title is not None else ""
        self._title = text or None
        self.touch(properties=("title",))

    @property
    def has_title(self) -> bool:
        """Whether an explicit title is set."""

        return self._title is not None

    @property
    def currency(self) -> str:
        """Currency totals of this line are expressed in."""

        currency = self._currency or self.settings.default_currency
        return currency[:3].upper()

    @currency.setter
    def currency(self, currency: str) -> None:
        if not self.resolver.is_valid_currency(currency):
            LOGGER.warning("Rejected currency %r on line %s: unknown currency code", currency, self.index)
            return
        self._currency = currency.strip().upper()
        self.touch(properties=("currency", "total"))

    @property
    def category(self) -> List[str]:
        """Category tags in the order they were added."""

        return list(self._category)

    @category.setter
    def category(self, category: Union[str, Iterable[str]]) -> None:
        tags = [category] if isinstance(category, str) else list(category)
        self._category = []
        for tag in tags:
            if str(tag) not in self._category:
                self._category.append(str(tag))
        self.touch(properties=("category",))

    # --- Leaf-only fields ---------------------------------------------------

    @property
    def is_leaf(self) -> bool:
        """Whether the line has no children and carries its own costs."""

        return not self._children

    @property
    def costs(self) -> Optional[LeafCosts]:
        """The leaf cost inputs, or ``None`` for a group line."""

        return self._costs

    def _leaf_value(self, name: str) -> Any:
        """Read a cost input, or its empty value for a group."""

        if self._costs is None:
            return EMPTY_LEAF_VALUES[name]
        return getattr(self._costs, name)

    def _set_leaf_value(self, name: str, value: Any, affected: Iterable[str]) -> None:
        """Write a cost input on a leaf; groups reject the write with a warning."""

        if self._costs is None:
            LOGGER.warning(
                "Rejected %s on line %s: lines with children derive their costs", name, self.index
            )
            return
        setattr(self._costs, name, value)
        self.touch(properties=(name, *affected))

    @property
    def unit_number(self) -> float:
        """Number of units bought."""

        return self._leaf_value("unit_number")

    @unit_number.setter
    def unit_number(self, value: object) -> None:
        number = _coerce_number(value)
        if number is None or number < 0:
            LOGGER.warning("Rejected unit number %r on line %s", value, self.index)
            return
        self._set_leaf_value("unit_number", number, ("cost", "total"))

    @property
    def unit_type(self) -> str:
        """Unit label; "ls" and "lumpsum" mark a single lump sum."""

        return self._leaf_value("unit_type")

    @unit_type.setter
    def unit_type(self, value: object) -> None:
        unit_type = str(value).strip()
        self._set_leaf_value("unit_type", unit_type, ())
        if self._costs is not None and unit_type.lower() in LUMP_SUM_TYPES:
            self.unit_number = 1

    @property
    def unit_cost(self) -> float:
        """Cost of one unit in ``unit_currency``."""

        return self._leaf_value("unit_cost")

    @unit_cost.setter
    def unit_cost(self, value: object) -> None:
        number = _coerce_number(value)
        if number is None:
            LOGGER.warning("Rejected unit cost %r on line %s", value, self.index)
            return
        self._set_leaf_value("unit_cost", number, ("cost", "total"))

    @property
    def unit_currency(self) -> Optional[str]:
        """Currency of ``unit_cost``; a leaf without an override uses its own currency."""

        if self._costs is None:
            return None
        return self._costs.unit_currency or self.currency

    @unit_currency.setter
    def unit_currency(self, currency: str) -> None:
        if not self.resolver.is_valid_currency(currency):
            LOGGER.warning("Rejected unit currency %r on line %s: unknown currency code", currency, self.index)
            return
        self._set_leaf_value("unit_currency", currency.strip().upper(), ("cost", "total"))

    @property
    def frequency(self) -> int:
        """How many times the cost recurs."""

        return self._leaf_value("frequency")

    @frequency.setter
    def frequency(self, value: object) -> None:
        number = _coerce_number(value)
        if number is None or number < 1 or number != int(number):
            LOGGER.warning("Rejected frequency %r on line %s: expected a positive integer", value, self.index)
            return
        self._set_leaf_value("frequency", int(number), ("total",))

    # --- Aggregation --------------------------------------------------------

    def raw_cost(self) -> float:
        """Unrounded unit number times unit cost."""

        if self._costs is None:
            return 0.0
        return self._costs.unit_number * self._costs.unit_cost

    def raw_total_without_overhead(self) -> float:
        """Unrounded total in this line's currency before its own overheads."""

        resolver = self.resolver
        if self._costs is not None:
            amount = self.raw_cost() * self._costs.frequency
            return resolver.convert(amount, self.unit_currency, self.currency)
        total = 0.0
        for child in self._children:
            total += resolver.convert(child.raw_total(), child.currency, self.currency)
        return total

    def raw_overhead_total(self) -> float:
        """Unrounded sum of this line's overheads in its currency."""

        return sum((overhead.raw_total_in_line_currency() for overhead in self._overhead), 0.0)

    def raw_total(self) -> float:
        """Unrounded total including overheads; ``nan`` while a rate is missing."""

        return self.raw_total_without_overhead() + self.raw_overhead_total()

    def _rounded(self, value: float) -> float:
        """Round an observed amount to the configured decimals."""

        return round_amount(value, self.settings.round_decimals)

    @property
    def cost(self) -> float:
        """Unit number times unit cost, in ``unit_currency``; zero for groups."""

        return self._rounded(self.raw_cost())

    @property
    def total_without_overhead(self) -> float:
        """Rounded total before this line's own overheads."""

        return self._rounded(self.raw_total_without_overhead())

    @property
    def overhead_total(self) -> float:
        """Rounded sum of this line's overheads."""

        return self._rounded(self.raw_overhead_total())

    @property
    def total(self) -> float:
        """Total including overheads in this line's currency; ``nan`` while a rate is missing."""

        return self._rounded(self.raw_total())

    @property
    def rate_unavailable(self) -> bool:
        """True while a total in this subtree, or an overhead shown in its own currency, lacks a rate."""

        if math.isnan(self.raw_total()):
            return True
        return any(
            math.isnan(overhead.raw_total()) for line in (self, *self.descendants) for overhead in line._overhead
        )

    @property
    def currencies(self) -> List[str]:
        """Sorted currency codes used anywhere in this subtree, plus the default."""

        found = {self.currency, self.settings.default_currency}
        if self._costs is not None:
            found.add(self.unit_currency)
        for overhead in self._overhead:
            found.add(overhead.currency)
        for child in self._children:
            found.update(child.currencies)
        return sorted(found)

    # --- Tree navigation ----------------------------------------------------

    @property
    def parent(self) -> Optional["BudgetLine"]:
        """Owning line, or ``None`` for a root or detached line."""

        return self._parent_ref() if self._parent_ref is not None else None

    @property
    def children(self) -> List["BudgetLine"]:
        """Copy of the ordered child list."""

        return list(self._children)

    @property
    def overhead(self) -> List[Overhead]:
        """Copy of the overhead sequence in application order."""

        return list(self._overhead)

    @property
    def root(self) -> "BudgetLine":
        """Topmost line of this tree."""

        line = self
        while line.parent is not None:
            line = line.parent
        return line

    @property
    def ancestors(self) -> List["BudgetLine"]:
        """Parent, grandparent and so on up to the root."""

        ancestors: List[BudgetLine] = []
        current = self.parent
        while current is not None:
            ancestors.append(current)
            current = current.parent
        return ancestors

    @property
    def siblings(self) -> List["BudgetLine"]:
        """Other children of this line's parent."""

        parent = self.parent
        if parent is None:
            return []
        return [line for line in parent._children if line is not self]

    @property
    def descendants(self) -> List["BudgetLine"]:
        """All lines below this one in pre-order."""

        found: List[BudgetLine] = []
        for child in self._children:
            found.append(child)
            found.extend(child.descendants)
        return found

    @property
    def depth(self) -> int:
        """Number of levels below this line (zero for a leaf)."""

        if not self._children:
            return 0
        return 1 + max(child.depth for child in self._children)

    @property
    def line_number(self) -> int:
        """1-based position among the siblings; the root is line 1."""

        parent = self.parent
        if parent is None:
            return 1
        for position, sibling in enumerate(parent._children, start=1):
            if sibling is self:
                return position
        return 1

    @property
    def index(self) -> str:
        """Dot-joined line numbers from the root; the root itself is ``"0"``."""

        numbers: List[str] = []
        line = self
        while line.parent is not None:
            numbers.append(str(line.line_number))
            line = line.parent
        return ".".join(reversed(numbers)) if numbers else "0"

    @property
    def before(self) -> Optional["BudgetLine"]:
        """Previous line in document order, or ``None`` for the root."""

        parent = self.parent
        if parent is None:
            return None
        number = self.line_number
        if number == 1:
            return parent
        previous = parent._children[number - 2]
        return previous.descendants[-1] if previous._children else previous

    @property
    def after(self) -> Optional["BudgetLine"]:
        """Next line in document order, or ``None`` at the end of the tree."""

        if self._children:
            return self._children[0]
        current = self
        while current.parent is not None:
            parent = current.parent
            number = current.line_number
            if number < len(parent._children):
                return parent._children[number]
            current = parent
        return None

    @property
    def abs_line_number(self) -> int:
        """Position in document order counting the root as zero."""

        count = 0
        line = self.before
        while line is not None:
            count += 1
            line = line.before
        return count

    def recurse(self, callback: Callable[["BudgetLine"], None]) -> None:
        """Call ``callback`` on this line and every descendant in pre-order."""

        callback(self)
        for child in list(self._children):
            child.recurse(callback)

    def get_line(self, index: IndexPath = None) -> Optional["BudgetLine"]:
        """Resolve a relative hop (``2``) or dotted path (``"2.1"``) below this line.

        ``None``, ``0``, ``""`` and ``"0"`` resolve to the line itself. An
        unresolvable hop logs a warning and yields ``None``.
        """

        if index is None or index == 0 or index == "" or index == "0":
            return self
        if isinstance(index, int):
            return self._hop(index)
        line: Optional[BudgetLine] = self
        for segment in str(index).split("."):
            try:
                number = int(segment)
            except ValueError:
                LOGGER.warning("Line not found: '%s' is not a valid index path", index)
                return None
            line = line._hop(number)
            if line is None:
                return None
        return line

    def get_by_index(self, index: IndexPath) -> Optional["BudgetLine"]:
        """Resolve an absolute index path from the root of this line's tree."""

        return self.root.get_line(index)

    def _hop(self, number: int) -> Optional["BudgetLine"]:
        """Child at 1-based ``number``, warning when it does not exist."""

        if not self._children:
            LOGGER.warning("Line not found: line %s does not have any children", self.index)
            return None
        if number < 1 or number > len(self._children):
            prefix = "" if self.parent is None else f"{self.index}."
            LOGGER.warning("Line not found: line %s%s does not exist", prefix, number)
            return None
        return self._children[number - 1]

    def get_last(
        self, prop: str = "created", deep_search: bool = False, *, first: bool = False
    ) -> Optional["BudgetLine"]:
        """Child (or descendant) with the largest ``prop`` value; ties keep the earliest."""

        items = self.descendants if deep_search else self._children
        best: Optional[BudgetLine] = None
        best_value: Any = None
        for item in items:
            value = getattr(item, prop, None)
            if value is None or (isinstance(value, float) and math.isnan(value)):
                continue
            if best is None or (value < best_value if first else value > best_value):
                best, best_value = item, value
        return best

    def get_first(self, prop: str = "created", deep_search: bool = False) -> Optional["BudgetLine"]:
        """Child (or descendant) with the smallest ``prop`` value; ties keep the earliest."""

        return self.get_last(prop, deep_search, first=True)

    # --- Structural mutation ------------------------------------------------

    def add(
        self,
        options: Optional[Mapping[str, Any]] = None,
        index: IndexPath = None,
        **field_values: Any,
    ) -> Optional["BudgetLine"]:
        """Create a child line and return it, or ``None`` when the add is rejected.

        ``index`` is a 1-based insert position among this line's children, or
        a dotted path whose leading segments select another parent below this
        line and whose last segment is the position there. Without an index
        the line is appended. Unset cost inputs are inherited from the parent
        when it was a leaf, after which the parent turns into a group.
        """

        new_parent: Optional[BudgetLine] = self
        position: Optional[int] = index if isinstance(index, int) else None
        if isinstance(index, str):
            segments = index.split(".")
            try:
                position = int(segments[-1])
            except ValueError:
                LOGGER.warning("Rejected add: '%s' is not a valid index path", index)
                return None
            new_parent = self.get_line(".".join(segments[:-1]) or None)
            if new_parent is None:
                LOGGER.warning("Rejected add: no parent line for index '%s'", index)
                return None

        if new_parent.level >= self.settings.max_level:
            LOGGER.warning(
                "Rejected add: line %s is at the deepest level (%s)", new_parent.index, new_parent.level_name
            )
            return None
        if not new_parent._valid_position(position):
            return None

        values = dict(options or {})
        values.update(field_values)
        if new_parent._costs is not None:
            for name in LEAF_FIELDS:
                inherited = getattr(new_parent._costs, name)
                if values.get(name) is None and inherited is not None:
                    values[name] = inherited
        if values.get("currency") is None:
            values["currency"] = new_parent.currency

        line = BudgetLine(values, settings=self.settings, resolver=self.resolver)
        new_parent._attach(line, position)
        self._log_structure("New line added at %s", line.index)
        return line

    def add_line(self, line: "BudgetLine", index: Optional[int] = None) -> bool:
        """Attach an existing detached line (and its subtree) as a child."""

        if not isinstance(line, BudgetLine):
            LOGGER.warning("Rejected add: %r is not a budget line", line)
            return False
        if line.parent is not None:
            LOGGER.warning("Rejected add: line %s is still attached to a tree", line.index)
            return False
        if line is self or line is self.root:
            LOGGER.warning("Rejected add: a line cannot become its own descendant")
            return False
        max_level = self.settings.max_level
        if self.level >= max_level or self.level + 1 + line.depth > max_level:
            LOGGER.warning(
                "Rejected add: a subtree %s levels deep does not fit below line %s",
                line.depth + 1,
                self.index,
            )
            return False
        if not self._valid_position(index):
            return False
        self._attach(line, index)
        self._log_structure("Line added at %s", line.index)
        return True

    def _valid_position(self, position: Optional[int], moving: Optional["BudgetLine"] = None) -> bool:
        """Reject child positions below 1; positions past the end append with a warning."""

        if position is None:
            return True
        if position < 1:
            LOGGER.warning("Rejected position %s below line %s: positions start at 1", position, self.index)
            return False
        slots = sum(1 for child in self._children if child is not moving) + 1
        if position > slots:
            LOGGER.warning(
                "Position %s below line %s is past the end; appending as line %s", position, self.index, slots
            )
        return True

    def _attach(self, line: "BudgetLine", position: Optional[int], notify: bool = True) -> None:
        if not self._children:
            self._costs = None
        line._parent_ref = weakref.ref(self)
        if position is not None and 1 <= position <= len(self._children):
            self._children.insert(position - 1, line)
        else:
            self._children.append(line)
        self._modified = _now()
        if notify:
            line._notify(MutationKind.ADD, ("index", "total"))

    def _detach(self, line: "BudgetLine", notify: bool = True) -> None:
        self._children = [child for child in self._children if child is not line]
        line._parent_ref = None
        if not self._children:
            self._costs = LeafCosts()
        self._modified = _now()
        if notify:
            self._notify(MutationKind.REMOVE, ("children", "total"))

    def remove(self) -> bool:
        """Detach this line from its parent; the detached subtree stays intact."""

        parent = self.parent
        if parent is None:
            LOGGER.warning("Rejected remove: the root line cannot be removed")
            return False
        index = self.index
        parent._detach(self)
        parent._log_structure("Line %s deleted", index)
        return True

    def move(self, target: Union["BudgetLine", str, int], mode: Union[MoveMode, str] = MoveMode.APPEND) -> bool:
        """Relocate this line; returns ``False`` and leaves the tree unchanged on rejection.

        ``APPEND`` adds the line as the last child of ``target``; ``BEFORE`` and
        ``AFTER`` place it next to ``target``; ``PATH`` reads ``target`` as a
        dotted path naming the new parent and the final 1-based position.
        Targets given as paths are resolved before the line is taken out.
        """

        try:
            mode = MoveMode(mode)
        except ValueError:
            LOGGER.warning("Rejected move: unknown move mode %r", mode)
            return False

        old_parent = self.parent
        if old_parent is None:
            LOGGER.warning("Rejected move: the root line cannot be moved")
            return False
        root = self.root

        position: Optional[int] = None
        anchor: Optional[BudgetLine]
        if mode is MoveMode.PATH:
            segments = str(target).split(".")
            try:
                position = int(segments[-1])
            except ValueError:
                LOGGER.warning("Rejected move: '%s' is not a valid index path", target)
                return False
            anchor = root.get_line(".".join(segments[:-1]) or None)
        elif isinstance(target, BudgetLine):
            anchor = target if target.root is root else None
        else:
            anchor = root.get_line(target)
        if anchor is None:
            LOGGER.warning("Rejected move of line %s: target %r not found", self.index, target)
            return False
        if anchor is self:
            LOGGER.warning("Rejected move of line %s: a line cannot be moved relative to itself", self.index)
            return False
        if any(ancestor is self for ancestor in anchor.ancestors):
            LOGGER.warning(
                "Rejected move of line %s: target %s is one of its descendants", self.index, anchor.index
            )
            return False

        new_parent = anchor.parent if mode in (MoveMode.BEFORE, MoveMode.AFTER) else anchor
        if new_parent is None:
            LOGGER.warning("Rejected move of line %s: nothing can be placed beside the root", self.index)
            return False
        max_level = self.settings.max_level
        if new_parent.level >= max_level:
            LOGGER.warning(
                "Rejected move of line %s: line %s cannot have children", self.index, new_parent.index
            )
            return False
        if new_parent.level + 1 + self.depth > max_level:
            LOGGER.warning(
                "Rejected move of line %s: its subtree would exceed the deepest level", self.index
            )
            return False
        if mode is MoveMode.PATH and not new_parent._valid_position(position, moving=self):
            return False

        old_index = self.index
        old_parent._detach(self, notify=False)
        if mode is MoveMode.BEFORE:
            position = anchor.line_number
        elif mode is MoveMode.AFTER:
            position = anchor.line_number + 1
        new_parent._attach(self, position, notify=False)
        old_parent._notify(MutationKind.MOVE, ("children", "total"))
        self._notify(MutationKind.MOVE, ("index", "level", "total"))
        self._log_structure("Line %s moved to %s", old_index, self.index)
        return True

    def update(self, options: Optional[Mapping[str, Any]] = None, **field_values: Any) -> None:
        """Assign several fields at once, emitting a single merged notification."""

        values = dict(options or {})
        values.update(field_values)
        with self.batch():
            self._apply(values)
            if values.get("created") is not None:
                self.created = values["created"]
            if values.get("modified") is not None:
                self.modified = values["modified"]
            else:
                self._modified = _now()

    # --- Categories ---------------------------------------------------------

    def add_category(self, category: Union[str, Iterable[str]]) -> None:
        """Tag this line with one or more categories."""

        tags = [category] if isinstance(category, str) else list(category)
        self.category = self._category + [str(tag) for tag in tags]

    def remove_category(self, category: str) -> bool:
        """Drop a tag; returns ``False`` with a warning when it was not set."""

        if category not in self._category:
            LOGGER.warning("Line %s has no category '%s'", self.index, category)
            return False
        self.category = [tag for tag in self._category if tag != category]
        return True

    def list_category(self, category: str) -> List[str]:
        """Indexes of this line and its descendants tagged with ``category``."""

        found: List[str] = []

        def collect(line: BudgetLine) -> None:
            if category in line._category:
                found.append(line.index)

        self.recurse(collect)
        return found

    # --- Overheads ----------------------------------------------------------

    def add_overhead(
        self, title: str = "Overhead", percentage: float = 0.0, currency: Optional[str] = None
    ) -> Overhead:
        """Append a compounding overhead applied after all existing ones."""

        overhead = Overhead(self, title=title, percentage=percentage, currency=currency)
        self._overhead.append(overhead)
        self.touch(MutationKind.OVERHEAD, ("overhead", "total"))
        self._log_structure("Overhead '%s' added to line %s", overhead.title, self.index)
        return overhead

    def get_overhead(self, position: int) -> Optional[Overhead]:
        """Overhead at a 0-based position, warning when there is none."""

        if 0 <= position < len(self._overhead):
            return self._overhead[position]
        LOGGER.warning("Line %s has no overhead at position %s", self.index, position)
        return None

    def remove_overhead(self, position: int) -> bool:
        """Remove the overhead at ``position``; later overheads move up."""

        if self.get_overhead(position) is None:
            return False
        removed = self._overhead.pop(position)
        self.touch(MutationKind.OVERHEAD, ("overhead", "total"))
        self._log_structure("Overhead '%s' removed from line %s", removed.title, self.index)
        return True

    def update_overhead(
        self,
        position: int,
        title: Optional[str] = None,
        percentage: Optional[float] = None,
        currency: Optional[str] = None,
    ) -> bool:
        """Change any of an overhead's fields, notifying the line once."""

        overhead = self.get_overhead(position)
        if overhead is None:
            return False
        with self.batch():
            if title is not None:
                overhead.title = title
            if percentage is not None:
                overhead.percentage = percentage
            if currency is not None:
                overhead.currency = currency
        return True

    def move_overhead_up(self, position: int) -> bool:
        """Swap the overhead at ``position`` with the one applied before it."""

        if position == 0 and self._overhead:
            LOGGER.warning("Rejected overhead move on line %s: already applied first", self.index)
            return False
        return self._swap_overheads(position - 1, position)

    def move_overhead_down(self, position: int) -> bool:
        """Swap the overhead at ``position`` with the one applied after it."""

        if position == len(self._overhead) - 1:
            LOGGER.warning("Rejected overhead move on line %s: already applied last", self.index)
            return False
        return self._swap_overheads(position, position + 1)

    def _swap_overheads(self, upper: int, lower: int) -> bool:
        """Swap two overheads and notify the line."""

        if self.get_overhead(upper) is None or self.get_overhead(lower) is None:
            return False
        self._overhead[upper], self._overhead[lower] = self._overhead[lower], self._overhead[upper]
        self.touch(MutationKind.OVERHEAD, ("overhead", "total"))
        return True

    # --- Interchange --------------------------------------------------------

    def export_record(self) -> Dict[str, Any]:
        """Nested plain-dict record of this subtree (see ``serialization.records``)."""

        from ..serialization.records import export_record

        return export_record(self)


def _coerce_number(value: object) -> Optional[float]:
    """Return a finite float for numeric input, ``None`` otherwise."""

    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number
