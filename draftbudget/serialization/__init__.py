"""Mini README: Record and JSON interchange for budget trees."""

from .records import (
    LineRecord,
    OverheadRecord,
    clone_line,
    export_json,
    export_record,
    line_from_json,
    line_from_record,
)

__all__ = [
    "LineRecord",
    "OverheadRecord",
    "clone_line",
    "export_json",
    "export_record",
    "line_from_json",
    "line_from_record",
]
