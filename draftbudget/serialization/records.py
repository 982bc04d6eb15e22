"""Mini README: Plain-record interchange for budget trees.

Structure:
    * OverheadRecord / LineRecord - Pydantic models validating incoming records.
    * export_record - produce the nested record for a line and its subtree.
    * line_from_record - rebuild a tree from a record (dict or model).
    * export_json / line_from_json - JSON text wrappers.
    * clone_line - detached deep copy of a subtree.

Records are the only format shared with persistence and export code. Leaf
cost fields are omitted for lines with children, derived amounts (``cost``
and ``total``) are informational and ignored on import, timestamps are ISO
8601 strings and a missing exchange rate is written as ``null``.
"""

from __future__ import annotations

import json
import math
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, Field

from ..budget.line import ASSIGNABLE_FIELDS, BudgetLine
from ..configuration import DraftBudgetSettings
from ..currency import CurrencyResolver
from ..logging_utils import get_logger

LOGGER = get_logger(__name__)


class OverheadRecord(BaseModel):
    """Serialised overhead; ``currency`` is ``None`` when it follows the line."""

    title: str = "Overhead"
    percentage: float = 0.0
    currency: Optional[str] = None


class LineRecord(BaseModel):
    """Serialised budget line with nested children."""

    index: Optional[Union[str, int]] = None
    title: Optional[str] = None
    unit_number: Optional[float] = None
    unit_type: Optional[str] = None
    unit_cost: Optional[float] = None
    unit_currency: Optional[str] = None
    frequency: Optional[int] = None
    cost: Optional[float] = None
    total: Optional[float] = None
    currency: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    created: Optional[datetime] = None
    modified: Optional[datetime] = None
    category: List[str] = Field(default_factory=list)
    overhead: List[OverheadRecord] = Field(default_factory=list)
    children: List[LineRecord] = Field(default_factory=list)


LineRecord.model_rebuild()

_IMPORTED_FIELDS = set(ASSIGNABLE_FIELDS) | {"created", "modified"}


def _amount(value: float) -> Optional[float]:
    """Map a missing-rate ``nan`` to ``None`` for JSON output."""

    return None if math.isnan(value) else value


def export_record(line: BudgetLine) -> Dict[str, Any]:
    """Export ``line`` and its descendants as nested dictionaries."""

    record: Dict[str, Any] = {"index": line.index, "title": line.title}
    costs = line.costs
    if costs is not None:
        record.update(
            {
                "unit_number": costs.unit_number,
                "unit_type": costs.unit_type,
                "unit_cost": costs.unit_cost,
                "unit_currency": costs.unit_currency,
                "frequency": costs.frequency,
                "cost": _amount(line.cost),
            }
        )
    record.update(
        {
            "total": _amount(line.total),
            "currency": line.currency,
            "start": line.start.isoformat(),
            "end": line.end.isoformat(),
            "created": line.created.isoformat(),
            "modified": line.modified.isoformat(),
            "category": line.category,
            "overhead": [overhead.as_dict() for overhead in line.overhead],
        }
    )
    children = line.children
    if children:
        record["children"] = [export_record(child) for child in children]
    return record


def line_from_record(
    record: Union[LineRecord, Mapping[str, Any]],
    *,
    settings: Optional[DraftBudgetSettings] = None,
    resolver: Optional[CurrencyResolver] = None,
) -> BudgetLine:
    """Rebuild a detached tree from ``record``.

    Raises ``pydantic.ValidationError`` for malformed records and
    ``ValueError`` when the record is deeper than the configured levels.
    """

    if not isinstance(record, LineRecord):
        record = LineRecord.model_validate(record)
    line = _build(record, settings, resolver)
    _drop_default_titles(line, record)
    LOGGER.debug("Rebuilt budget '%s' with %s lines", line.title, len(line.descendants) + 1)
    return line


def _build(
    record: LineRecord,
    settings: Optional[DraftBudgetSettings],
    resolver: Optional[CurrencyResolver],
) -> BudgetLine:
    options = record.model_dump(include=_IMPORTED_FIELDS, exclude_none=True)
    line = BudgetLine(options, settings=settings, resolver=resolver)
    with line.batch():
        for child_record in record.children:
            child = _build(child_record, settings, resolver)
            if not line.add_line(child):
                raise ValueError(f"Record for '{child_record.title}' is nested deeper than the configured levels")
        for overhead in record.overhead:
            line.add_overhead(overhead.title, overhead.percentage, overhead.currency)
        if record.modified is not None:
            line.modified = record.modified
    return line


def _drop_default_titles(line: BudgetLine, record: LineRecord) -> None:
    """Unpin imported titles that equal the generated default."""

    # Generated titles follow the line's position, so they are not pinned on import.
    if record.title is not None and record.title.strip() == line.default_title:
        line._title = None
    for child, child_record in zip(line.children, record.children):
        _drop_default_titles(child, child_record)


def export_json(line: BudgetLine, indent: Optional[int] = 2) -> str:
    """Export ``line`` and its subtree as JSON text."""

    return json.dumps(export_record(line), indent=indent, ensure_ascii=False)


def line_from_json(
    text: Union[str, bytes],
    *,
    settings: Optional[DraftBudgetSettings] = None,
    resolver: Optional[CurrencyResolver] = None,
) -> BudgetLine:
    """Parse JSON text into a detached line; malformed input raises ``ValidationError``."""

    record = LineRecord.model_validate_json(text)
    return line_from_record(record, settings=settings, resolver=resolver)


def clone_line(line: BudgetLine) -> BudgetLine:
    """Return a detached copy of ``line`` and its subtree."""

    return line_from_record(export_record(line), settings=line.settings, resolver=line.resolver)
