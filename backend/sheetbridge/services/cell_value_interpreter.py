"""
Cell value interpretation in both conversion directions.

Spreadsheet -> JSON: an openpyxl cell becomes a `CellValue`, dispatched on the
cell's data type. Formulas are classified by their cached (last calculated)
result, which openpyxl exposes when the workbook is loaded with
`data_only=True`; the formula-mode cell is only needed to tell a formula apart
from a literal. Date cells carry no zone and are reported as UTC instants
(`2024-01-05T00:00:00Z`).

JSON -> spreadsheet: a row value becomes a `PreparedCell` (value + style hint).
Inference order, first match wins:
1) ISO date string            -> date,     DATE style
2) ISO date-time string       -> datetime, DATETIME style
3) "<number>%" string         -> number / 100, PERCENT style
4) number in a percent column -> number / 100, PERCENT style
5) anything else              -> native value, no style

Neither direction raises: an unconvertible value degrades to an error marker.
"""

from __future__ import annotations

import json
import math
import re
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

from sheetbridge.models.workbook import CellKind, CellValue, PreparedCell, StyleHint
from sheetbridge.utils.app_logger import get_logger

logger = get_logger(__name__)

EVAL_ERROR = "#EVAL_ERROR!"
CELL_ERROR_PREFIX = "#CELL_ERROR_"
FORMULA_ERROR_PREFIX = "#ERROR_"
PREP_ERROR = "PREP_ERROR"

DATE_PATTERN = re.compile(r"\d{4}-\d{2}-\d{2}")
DATETIME_PATTERN = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})(\.\d+)?([zZ]|([+-])(\d{2}):?(\d{2}))?"
)
PERCENT_KEYWORDS = ("percent", "rate", "share", "percentage", "discount")

_INT64_MIN = -(2 ** 63)
_INT64_MAX = 2 ** 63 - 1


class CellValueInterpreter:
    """Bidirectional mapping between spreadsheet cells and JSON row values."""

    # ---------------------------------------------------------------------
    # Spreadsheet -> JSON
    # ---------------------------------------------------------------------

    @classmethod
    def to_json_value(cls, cell: Any, formula_cell: Any = None) -> CellValue:
        """
        Interpret an openpyxl cell.

        Args:
            cell: Cell from a workbook loaded with data_only=True (cached values)
            formula_cell: Same cell from a workbook loaded with data_only=False, if available
        """
        if cell is None:
            return CellValue.null()
        try:
            if formula_cell is not None and getattr(formula_cell, "data_type", None) == "f":
                return cls._formula_result(cell)
            handler = cls._READERS.get(getattr(cell, "data_type", None) or "n", cls._read_other)
            return handler(cell)
        except Exception as e:
            logger.debug("Cell interpretation failed at %s: %s", getattr(cell, "coordinate", "?"), e)
            return CellValue.error(EVAL_ERROR)

    @classmethod
    def _formula_result(cls, cached: Any) -> CellValue:
        if cached.value is None:
            # Never calculated by a spreadsheet application, no cached result to report.
            return CellValue.error(EVAL_ERROR)
        if cached.data_type == "e":
            return CellValue.error(f"{FORMULA_ERROR_PREFIX}{cached.value}")
        handler = cls._READERS.get(cached.data_type or "n", cls._read_other)
        return handler(cached)

    @staticmethod
    def _read_string(cell: Any) -> CellValue:
        value = cell.value
        if value is None:
            return CellValue.null()
        return CellValue.string(value if isinstance(value, str) else str(value))

    @classmethod
    def _read_number(cls, cell: Any) -> CellValue:
        value = cell.value
        if value is None:
            return CellValue.null()
        if isinstance(value, (datetime, date, time)):
            return cls._read_date(cell)
        if isinstance(value, bool):
            return CellValue.boolean(value)
        return CellValue.number(cls.normalize_number(value))

    @staticmethod
    def _read_date(cell: Any) -> CellValue:
        value = cell.value
        if value is None:
            return CellValue.null()
        if isinstance(value, (datetime, date)):
            return CellValue.date(value)
        if isinstance(value, time):
            return CellValue.string(value.isoformat())
        if isinstance(value, timedelta):
            return CellValue.string(str(value))
        return CellValue.string(str(value))

    @staticmethod
    def _read_boolean(cell: Any) -> CellValue:
        if cell.value is None:
            return CellValue.null()
        return CellValue.boolean(bool(cell.value))

    @staticmethod
    def _read_error(cell: Any) -> CellValue:
        return CellValue.error(f"{CELL_ERROR_PREFIX}{cell.value}")

    @staticmethod
    def _read_other(cell: Any) -> CellValue:
        value = cell.value
        if value is None:
            return CellValue.null()
        return CellValue.string(str(value))

    @staticmethod
    def normalize_number(value: Any) -> Any:
        """Whole numbers within the 64-bit range become int, everything else float."""
        if isinstance(value, int):
            return value
        number = float(value) if isinstance(value, Decimal) else value
        if isinstance(number, float) and math.isfinite(number) and number.is_integer():
            if _INT64_MIN <= number <= _INT64_MAX:
                return int(number)
        return number

    # ---------------------------------------------------------------------
    # JSON -> spreadsheet
    # ---------------------------------------------------------------------

    @classmethod
    def to_prepared_cell(cls, value: Any, column_name: str) -> PreparedCell:
        try:
            kind = cls.json_kind(value)
            return cls._PREPARERS[kind](value, column_name)
        except Exception as e:
            logger.warning(
                "Could not prepare value of type %s for column '%s': %s",
                type(value).__name__, column_name, e,
            )
            return PreparedCell(CellValue.string(PREP_ERROR), StyleHint.ERROR)

    @staticmethod
    def json_kind(value: Any) -> Optional[CellKind]:
        """Classify a row value; None means "not a primitive JSON value"."""
        if value is None:
            return CellKind.NULL
        if isinstance(value, bool):
            return CellKind.BOOLEAN
        if isinstance(value, (int, float, Decimal)):
            return CellKind.NUMBER
        if isinstance(value, str):
            return CellKind.STRING
        if isinstance(value, (datetime, date)):
            return CellKind.DATE
        return None

    @staticmethod
    def _prepare_null(value: Any, column_name: str) -> PreparedCell:
        return PreparedCell(CellValue.null())

    @staticmethod
    def _prepare_boolean(value: Any, column_name: str) -> PreparedCell:
        return PreparedCell(CellValue.boolean(value))

    @staticmethod
    def _prepare_number(value: Any, column_name: str) -> PreparedCell:
        number = float(value) if isinstance(value, Decimal) else value
        lowered = str(column_name or "").lower()
        if any(keyword in lowered for keyword in PERCENT_KEYWORDS):
            return PreparedCell(CellValue.number(number / 100.0), StyleHint.PERCENT)
        return PreparedCell(CellValue.number(number))

    @staticmethod
    def _prepare_date(value: Any, column_name: str) -> PreparedCell:
        style = StyleHint.DATETIME if isinstance(value, datetime) else StyleHint.DATE
        return PreparedCell(CellValue.date(value), style)

    @classmethod
    def _prepare_string(cls, value: Any, column_name: str) -> PreparedCell:
        text = value.strip()

        if DATE_PATTERN.fullmatch(text):
            try:
                return PreparedCell(CellValue.date(date.fromisoformat(text)), StyleHint.DATE)
            except ValueError:
                pass

        match = DATETIME_PATTERN.fullmatch(text)
        if match:
            parsed = cls.parse_iso_datetime(match)
            if parsed is not None:
                return PreparedCell(CellValue.date(parsed), StyleHint.DATETIME)

        if text.endswith("%"):
            try:
                number = float(text[:-1])
            except ValueError:
                number = None
            if number is not None and math.isfinite(number):
                return PreparedCell(CellValue.number(number / 100.0), StyleHint.PERCENT)

        return PreparedCell(CellValue.string(text))

    @staticmethod
    def _prepare_other(value: Any, column_name: str) -> PreparedCell:
        if isinstance(value, (dict, list)):
            return PreparedCell(CellValue.string(json.dumps(value, ensure_ascii=False, default=str)))
        return PreparedCell(CellValue.string(str(value)))

    @staticmethod
    def parse_iso_datetime(match: "re.Match[str]") -> Optional[datetime]:
        """
        Build a naive datetime from a DATETIME_PATTERN match.

        Values with an offset (or Z) are converted to UTC; spreadsheet cells carry no zone.
        """
        year, month, day, hour, minute, second = (int(match.group(i)) for i in range(1, 7))
        fraction = match.group(7)
        microsecond = int(fraction[1:7].ljust(6, "0")) if fraction else 0
        try:
            parsed = datetime(year, month, day, hour, minute, second, microsecond)
        except ValueError:
            return None

        zone = match.group(8)
        if zone:
            if zone in ("Z", "z"):
                offset = timedelta(0)
            else:
                sign = -1 if match.group(9) == "-" else 1
                offset = sign * timedelta(hours=int(match.group(10)), minutes=int(match.group(11)))
            try:
                parsed = parsed.replace(tzinfo=timezone(offset)).astimezone(timezone.utc).replace(tzinfo=None)
            except ValueError:
                return None
        return parsed


CellValueInterpreter._READERS: Dict[str, Callable[[Any], CellValue]] = {
    "s": CellValueInterpreter._read_string,
    "str": CellValueInterpreter._read_string,
    "inlineStr": CellValueInterpreter._read_string,
    "n": CellValueInterpreter._read_number,
    "d": CellValueInterpreter._read_date,
    "b": CellValueInterpreter._read_boolean,
    "e": CellValueInterpreter._read_error,
}

CellValueInterpreter._PREPARERS: Dict[Optional[CellKind], Callable[[Any, str], PreparedCell]] = {
    CellKind.NULL: CellValueInterpreter._prepare_null,
    CellKind.BOOLEAN: CellValueInterpreter._prepare_boolean,
    CellKind.NUMBER: CellValueInterpreter._prepare_number,
    CellKind.DATE: CellValueInterpreter._prepare_date,
    CellKind.STRING: CellValueInterpreter._prepare_string,
    None: CellValueInterpreter._prepare_other,
}
