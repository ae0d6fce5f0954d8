"""
Workbook data model.

A workbook is an ordered mapping of sheet name -> rows, each row an ordered
mapping of column name -> JSON-compatible value. Dict insertion order carries
sheet and column order end-to-end.

`CellValue` is the tagged variant both conversion directions agree on; rows
hold its JSON form (`CellValue.to_json()`), so the same representation flows
through parse, AI enhancement, caching and rendering.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

Row = Dict[str, Any]
Sheet = List[Row]
Workbook = Dict[str, Sheet]


class CellKind(str, Enum):
    NULL = "null"
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    ERROR = "error"


class StyleHint(str, Enum):
    """Symbolic output format of a prepared cell, resolved to a codec style by the writer."""

    DATE = "date"
    DATETIME = "datetime"
    PERCENT = "percent"
    ERROR = "error"
    HEADER = "header"


def format_instant(value: Union[date, datetime]) -> str:
    """
    ISO-8601 UTC instant, e.g. 2024-01-05T10:30:00Z or 2024-01-05T10:30:00.250Z.

    Spreadsheet dates carry no zone and are read as UTC; a bare date is its midnight.
    Fractional seconds appear only when non-zero, in groups of three digits.
    """
    if not isinstance(value, datetime):
        value = datetime.combine(value, time(0, 0))
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    text = value.replace(microsecond=0).isoformat()
    if value.microsecond:
        fraction = f"{value.microsecond:06d}"
        text += "." + (fraction[:3] if fraction.endswith("000") else fraction)
    return text + "Z"


@dataclass(frozen=True)
class CellValue:
    kind: CellKind
    value: Any = None

    @classmethod
    def null(cls) -> "CellValue":
        return cls(CellKind.NULL, None)

    @classmethod
    def string(cls, value: str) -> "CellValue":
        return cls(CellKind.STRING, value)

    @classmethod
    def number(cls, value: Union[int, float]) -> "CellValue":
        return cls(CellKind.NUMBER, value)

    @classmethod
    def boolean(cls, value: bool) -> "CellValue":
        return cls(CellKind.BOOLEAN, bool(value))

    @classmethod
    def date(cls, value: Union[date, datetime]) -> "CellValue":
        return cls(CellKind.DATE, value)

    @classmethod
    def error(cls, marker: str) -> "CellValue":
        return cls(CellKind.ERROR, marker)

    @property
    def is_blank(self) -> bool:
        if self.kind == CellKind.NULL:
            return True
        return self.kind == CellKind.STRING and not str(self.value).strip()

    def to_json(self) -> Any:
        """JSON form stored in rows: dates become UTC instant strings, error markers stay strings."""
        if self.kind == CellKind.DATE and isinstance(self.value, (date, datetime)):
            return format_instant(self.value)
        return self.value


@dataclass(frozen=True)
class PreparedCell:
    """Value ready to be written, plus the style it should be written with."""

    value: CellValue
    style: Optional[StyleHint] = None


@dataclass(frozen=True)
class Chunk:
    """A slice of one sheet's rows; `index` is the only reassembly ordering key."""

    sheet_name: str
    index: int
    rows: Sheet = field(default_factory=list)


def headers_of(rows: Sheet) -> List[str]:
    """Column names of a sheet, taken from the first row's keys (order kept, duplicates dropped)."""
    if not rows:
        return []
    return list(dict.fromkeys(str(key) for key in rows[0].keys()))


# sheet name -> {(row index, column name): original value} for every changed cell
WorkbookDiff = Dict[str, Dict[Tuple[int, str], Any]]


def display_text(value: Any) -> str:
    """String form of a row value, used for headers, previews and change detection."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def diff_workbooks(enhanced: Workbook, original: Workbook) -> WorkbookDiff:
    """
    Cells of `enhanced` whose string form differs from the same position in `original`.

    Rows are matched by index and columns by the enhanced sheet's headers; a
    missing original row or value compares as "".
    """
    diff: WorkbookDiff = {}
    for sheet_name, rows in enhanced.items():
        original_rows = original.get(sheet_name) or []
        headers = headers_of(rows)
        changed: Dict[Tuple[int, str], Any] = {}
        for row_index, row in enumerate(rows):
            original_row = original_rows[row_index] if row_index < len(original_rows) else {}
            for header in headers:
                old_value = original_row.get(header)
                if display_text(row.get(header)) != display_text(old_value):
                    changed[(row_index, header)] = old_value
        if changed:
            diff[sheet_name] = changed
    return diff
