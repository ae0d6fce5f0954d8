"""
Sheet normalizer.

Converts spreadsheet bytes into the row-oriented workbook representation and
back:
- parse: xlsx/xlsm bytes -> {sheet name: [row, ...]} in source sheet order
- normalize_json: any supported JSON shape -> workbook
- render: workbook -> xlsx bytes (writing is delegated to SpreadsheetWriter)

Header detection: the first row holding at least one non-blank cell. Sheets
without such a row, or without any non-empty data row, are left out.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from io import BytesIO
from typing import Any, Dict, List, Optional, Sequence, Tuple

from openpyxl import load_workbook

from sheetbridge.exceptions import ConversionError, InputError
from sheetbridge.models.workbook import CellValue, Sheet, Workbook, display_text
from sheetbridge.services.cell_value_interpreter import CellValueInterpreter
from sheetbridge.services.spreadsheet_writer import SpreadsheetWriter
from sheetbridge.utils.app_logger import get_logger

logger = get_logger(__name__)

DEFAULT_SHEET_NAME = "Sheet1"


@dataclass(frozen=True)
class SheetParseOptions:
    """Options for spreadsheet parsing."""

    worker_threads: int = 4
    # Limit data rows per sheet (schema previews); None reads everything.
    max_data_rows: Optional[int] = None


class SheetNormalizer:
    """Spreadsheet <-> workbook normalization."""

    def __init__(self, writer: Optional[SpreadsheetWriter] = None, *, worker_threads: int = 4):
        self.writer = writer or SpreadsheetWriter(worker_threads=worker_threads)
        self.worker_threads = max(1, int(worker_threads))

    # ------------------------------------------------------------------
    # Spreadsheet -> workbook
    # ------------------------------------------------------------------

    def parse(self, content: bytes, *, options: Optional[SheetParseOptions] = None) -> Workbook:
        """
        Parse spreadsheet bytes into an ordered workbook.

        Raises:
            InputError: bytes are not a readable xlsx/xlsm workbook
            ConversionError: no sheets, or no sheet with usable data
        """
        opts = options or SheetParseOptions(worker_threads=self.worker_threads)
        values_wb, formulas_wb = self._load(content)
        try:
            sheet_pairs = list(zip(values_wb.worksheets, formulas_wb.worksheets))
            if not sheet_pairs:
                raise ConversionError("Excel file contains no sheets.")

            # Each sheet writes its own slot; the slot index is the source sheet position.
            slots: List[Optional[Tuple[str, Sheet]]] = [None] * len(sheet_pairs)

            def _process(index: int) -> None:
                values_ws, formulas_ws = sheet_pairs[index]
                slots[index] = (values_ws.title, self._parse_sheet(values_ws, formulas_ws, opts))

            with ThreadPoolExecutor(max_workers=max(1, min(opts.worker_threads, len(sheet_pairs)))) as pool:
                list(pool.map(_process, range(len(sheet_pairs))))
        finally:
            values_wb.close()
            formulas_wb.close()

        workbook: Workbook = {}
        for slot in slots:
            if slot is None:
                continue
            name, rows = slot
            if rows:
                workbook[name] = rows
            else:
                logger.debug("Skipping sheet without usable data: %s", name)

        if not workbook:
            raise ConversionError("Excel file contains no usable data.")
        return workbook

    @staticmethod
    def _load(content: bytes):
        if not content:
            raise InputError("Excel file is missing or empty.")
        try:
            values_wb = load_workbook(BytesIO(content), data_only=True)
            formulas_wb = load_workbook(BytesIO(content), data_only=False)
        except Exception as e:
            raise InputError(f"Failed to read Excel workbook: {e}") from e
        return values_wb, formulas_wb

    def _parse_sheet(self, values_ws: Any, formulas_ws: Any, opts: SheetParseOptions) -> Sheet:
        rows_iter = zip(values_ws.iter_rows(), formulas_ws.iter_rows())

        headers: Optional[List[str]] = None
        for value_cells, formula_cells in rows_iter:
            texts = [
                display_text(CellValueInterpreter.to_json_value(c, f).to_json()).strip()
                for c, f in zip(value_cells, formula_cells)
            ]
            if any(texts):
                headers = self._trim_trailing_blank(texts)
                break

        if not headers:
            return []

        sheet: Sheet = []
        for value_cells, formula_cells in rows_iter:
            if opts.max_data_rows is not None and len(sheet) >= opts.max_data_rows:
                break
            values = self._read_row(value_cells, formula_cells, len(headers))
            if all(v.is_blank for v in values):
                continue
            row: Dict[str, Any] = {}
            for header, value in zip(headers, values):
                row[header] = value.to_json()
            sheet.append(row)
        return sheet

    @staticmethod
    def _read_row(value_cells: Sequence[Any], formula_cells: Sequence[Any], width: int) -> List[CellValue]:
        values: List[CellValue] = []
        for col in range(width):
            cell = value_cells[col] if col < len(value_cells) else None
            formula = formula_cells[col] if col < len(formula_cells) else None
            values.append(CellValueInterpreter.to_json_value(cell, formula))
        return values

    @staticmethod
    def _trim_trailing_blank(texts: List[str]) -> List[str]:
        end = len(texts)
        while end > 0 and not texts[end - 1]:
            end -= 1
        return texts[:end]

    def extract_preview(self, content: bytes, *, max_rows: int = 3) -> Dict[str, List[Dict[str, str]]]:
        """
        Small display-string sample of every sheet (header + first data rows).

        Raises:
            ConversionError: no sheet yields preview rows
        """
        try:
            workbook = self.parse(content, options=SheetParseOptions(
                worker_threads=self.worker_threads, max_data_rows=max(1, int(max_rows)),
            ))
        except ConversionError as e:
            raise ConversionError("Excel file has no usable data for schema preview.") from e

        return {
            name: [{key: display_text(value).strip() for key, value in row.items()} for row in rows]
            for name, rows in workbook.items()
        }

    # ------------------------------------------------------------------
    # JSON -> workbook
    # ------------------------------------------------------------------

    @classmethod
    def normalize_json(cls, data: Any) -> Workbook:
        """
        Accept the supported JSON shapes and return a workbook.

        - {"a": 1, ...}                      -> one row under Sheet1
        - [{...}, {...}]                     -> rows under Sheet1
        - {"key": {...}}                     -> one row under Sheet1
        - {"key": []}                        -> sheet "key" without rows
        - {"key": [{...}, ...]}              -> rows under sheet "key"
        - {"key": [1, 2]}                    -> rows {"key": item} under Sheet1
        - {"sheet": [{...}], "other": [...]} -> as is
        """
        if isinstance(data, dict):
            if not data:
                raise InputError("Empty JSON object is not valid.")

            first_value = next(iter(data.values()))
            if not isinstance(first_value, (dict, list)):
                return {DEFAULT_SHEET_NAME: [dict(data)]}

            if len(data) == 1:
                key, value = next(iter(data.items()))
                return cls._normalize_single_key(str(key), value)

            workbook: Workbook = {}
            for name, rows in data.items():
                workbook[str(name)] = cls._rows_of(rows, sheet_name=str(name))
            return workbook

        if isinstance(data, list):
            return {DEFAULT_SHEET_NAME: cls._rows_of(data, sheet_name=DEFAULT_SHEET_NAME)}

        raise InputError(
            "Unsupported JSON structure. Must be an object, array of objects, or a map of arrays."
        )

    @classmethod
    def _normalize_single_key(cls, key: str, value: Any) -> Workbook:
        if isinstance(value, dict):
            return {DEFAULT_SHEET_NAME: [dict(value)]}
        if isinstance(value, list):
            if not value:
                return {key: []}
            if isinstance(value[0], dict):
                return {key: cls._rows_of(value, sheet_name=key)}
            return {DEFAULT_SHEET_NAME: [{key: item} for item in value]}
        raise InputError(f"Unsupported nested structure inside key: {key}")

    @staticmethod
    def _rows_of(rows: Any, *, sheet_name: str) -> Sheet:
        if not isinstance(rows, list):
            raise InputError(f"Sheet '{sheet_name}' must be an array of objects.")
        for index, row in enumerate(rows):
            if not isinstance(row, dict):
                raise InputError(
                    f"Sheet '{sheet_name}' row {index} must be an object.",
                    details={"sheet": sheet_name, "row": index},
                )
        return [dict(row) for row in rows]

    # ------------------------------------------------------------------
    # Workbook -> spreadsheet
    # ------------------------------------------------------------------

    def render(self, workbook: Workbook, original: Optional[Workbook] = None) -> bytes:
        """Render in caller order; with `original`, changed cells are highlighted."""
        return self.writer.write(workbook, original)
