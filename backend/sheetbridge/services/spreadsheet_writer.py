"""
Streaming spreadsheet writer.

Builds an xlsx workbook with openpyxl's write-only mode: rows are appended in
order and streamed to disk-backed XML, so peak memory stays bounded for large
sheets. Row values are first turned into PreparedCells (worker threads, one
batch per task, results read back in submission order), then written
sequentially.

Write-only sheets accept layout settings (column widths, frozen panes, row
heights) only before the rows they affect are appended, so widths are computed
from the prepared rows before the first append.

With a diff (AI mode) changed cells get a highlight fill and a comment holding
the original value, and sheets with changes end with a merged legend row.
"""

from __future__ import annotations

import re
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime
from io import BytesIO
from typing import Any, Dict, List, Optional, Sequence

from openpyxl import Workbook as XlsxWorkbook
from openpyxl.cell import WriteOnlyCell
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.comments import Comment
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.cell_range import CellRange

from sheetbridge.exceptions import ConversionError
from sheetbridge.models.workbook import (
    CellKind,
    PreparedCell,
    Sheet,
    StyleHint,
    Workbook,
    WorkbookDiff,
    diff_workbooks,
    display_text,
    headers_of,
)
from sheetbridge.services.cell_value_interpreter import CellValueInterpreter
from sheetbridge.utils.app_logger import get_logger
from sheetbridge.utils.json_utils import truncate_text

logger = get_logger(__name__)

FORMAT_DATE = "yyyy-mm-dd"
FORMAT_DATETIME = "yyyy-mm-dd hh:mm:ss"
FORMAT_PERCENT = "0.00%"

WRITE_ERROR = "WRITE_ERROR"
LEGEND_TEXT = "AI Modified: Hover over cell for original value"
COMMENT_AUTHOR = "SheetBridge"

HIGHLIGHT_COLOR = "FF99CCFF"
ERROR_COLOR = "FFFF0000"

DEFAULT_ROW_HEIGHT = 15.0
MIN_COLUMN_WIDTH = 8
MAX_COLUMN_WIDTH = 60
MAX_SHEET_TITLE = 31

_INVALID_TITLE_CHARS = re.compile(r"[\[\]\*\?/\\:]")

HEADER_FONT = Font(bold=True)
HEADER_ALIGNMENT = Alignment(horizontal="center")
ERROR_FONT = Font(color=ERROR_COLOR)
HIGHLIGHT_FILL = PatternFill(fill_type="solid", start_color=HIGHLIGHT_COLOR, end_color=HIGHLIGHT_COLOR)
LEGEND_FONT = Font(bold=True, italic=True, color=HIGHLIGHT_COLOR)
LEGEND_ALIGNMENT = Alignment(horizontal="center", wrap_text=True)

_NUMBER_FORMATS = {
    StyleHint.DATE: FORMAT_DATE,
    StyleHint.DATETIME: FORMAT_DATETIME,
    StyleHint.PERCENT: FORMAT_PERCENT,
}


def safe_sheet_title(name: Any) -> str:
    """Spreadsheet-legal sheet title: no []*?/\\: characters, no edge quotes, at most 31 chars."""
    title = ILLEGAL_CHARACTERS_RE.sub("", str(name or ""))
    title = _INVALID_TITLE_CHARS.sub(" ", title)
    title = title.strip("'")
    title = title[:MAX_SHEET_TITLE]
    return title if title.strip() else "Sheet"


class SpreadsheetWriter:
    """Writes a workbook into xlsx bytes."""

    def __init__(
        self,
        *,
        flush_rows: int = 1000,
        annotation_max_chars: int = 250,
        worker_threads: int = 4,
    ):
        self.flush_rows = max(1, int(flush_rows))
        self.annotation_max_chars = max(0, int(annotation_max_chars))
        self.worker_threads = max(1, int(worker_threads))

    def write(
        self,
        data: Workbook,
        original: Optional[Workbook] = None,
        *,
        diff: Optional[WorkbookDiff] = None,
    ) -> bytes:
        """
        Render `data` to xlsx bytes, one sheet per non-empty entry, in caller order.

        Passing `original` (or a precomputed `diff`) switches on change highlighting.

        Raises:
            ConversionError: nothing to write
        """
        if diff is None and original is not None:
            diff = diff_workbooks(data, original)
        highlight = diff is not None

        xlsx = XlsxWorkbook(write_only=True)
        written = 0
        for sheet_name, rows in data.items():
            if not rows:
                logger.debug("Skipping empty sheet: %s", sheet_name)
                continue
            changes = (diff or {}).get(sheet_name, {}) if highlight else {}
            self._write_sheet(xlsx, sheet_name, rows, changes)
            written += 1

        if not written:
            raise ConversionError("No non-empty sheets to write.")

        out = BytesIO()
        xlsx.save(out)
        logger.info("Workbook writing complete (%d sheet(s))", written)
        return out.getvalue()

    # ------------------------------------------------------------------
    # Preparation
    # ------------------------------------------------------------------

    def prepare_rows(self, rows: Sheet, headers: Sequence[str]) -> List[List[PreparedCell]]:
        """Prepare every row; output order equals input order."""
        batches = [rows[i:i + self.flush_rows] for i in range(0, len(rows), self.flush_rows)]

        def _prepare_batch(batch: Sheet) -> List[List[PreparedCell]]:
            return [
                [CellValueInterpreter.to_prepared_cell(row.get(header), header) for header in headers]
                for row in batch
            ]

        if len(batches) <= 1 or self.worker_threads == 1:
            prepared_batches = [_prepare_batch(batch) for batch in batches]
        else:
            with ThreadPoolExecutor(max_workers=min(self.worker_threads, len(batches))) as pool:
                prepared_batches = list(pool.map(_prepare_batch, batches))

        prepared: List[List[PreparedCell]] = []
        for batch in prepared_batches:
            prepared.extend(batch)
        return prepared

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def _write_sheet(
        self,
        xlsx: XlsxWorkbook,
        sheet_name: str,
        rows: Sheet,
        changes: Dict[Any, Any],
    ) -> None:
        ws = xlsx.create_sheet(title=safe_sheet_title(sheet_name))
        headers = headers_of(rows)
        prepared = self.prepare_rows(rows, headers)

        for col, width in enumerate(self._column_widths(headers, prepared), start=1):
            ws.column_dimensions[get_column_letter(col)].width = width
        ws.freeze_panes = "A2"

        ws.append([self._header_cell(ws, header) for header in headers])

        for row_index, prepared_row in enumerate(prepared):
            cells = []
            for col, (header, prepared_cell) in enumerate(zip(headers, prepared_row)):
                cell = self._data_cell(ws, prepared_cell, sheet_name, row_index + 1, col)
                key = (row_index, header)
                if key in changes:
                    self._mark_changed(cell, changes[key])
                cells.append(cell)
            ws.append(cells)

            if (row_index + 1) % self.flush_rows == 0:
                logger.debug("Sheet %s: %d rows written", ws.title, row_index + 1)

        if changes:
            self._append_legend(ws, header_count=len(headers), last_row=len(prepared) + 1)

        logger.debug("Finished writing sheet: %s (%d rows)", ws.title, len(prepared))

    @staticmethod
    def _header_cell(ws: Any, header: str) -> WriteOnlyCell:
        try:
            cell = WriteOnlyCell(ws, value=header)
        except Exception as e:
            logger.warning("Header write error. Sheet: %s, Header: %r. Err: %s", ws.title, header, e)
            cell = WriteOnlyCell(ws, value=WRITE_ERROR)
            cell.font = ERROR_FONT
            return cell
        cell.font = HEADER_FONT
        cell.alignment = HEADER_ALIGNMENT
        return cell

    @staticmethod
    def _data_cell(ws: Any, prepared: PreparedCell, sheet_name: str, row: int, col: int) -> WriteOnlyCell:
        try:
            cell = WriteOnlyCell(ws, value=prepared.value.value)
            if prepared.style == StyleHint.ERROR:
                cell.font = ERROR_FONT
            elif prepared.style in _NUMBER_FORMATS:
                cell.number_format = _NUMBER_FORMATS[prepared.style]
            return cell
        except Exception as e:
            logger.warning(
                "Cell write error. Sheet: %s, Row: %d, Col: %d, Value: '%s'. Err: %s",
                sheet_name, row, col, prepared.value.value, e,
            )
            cell = WriteOnlyCell(ws, value=WRITE_ERROR)
            cell.font = ERROR_FONT
            return cell

    def _mark_changed(self, cell: WriteOnlyCell, original_value: Any) -> None:
        cell.fill = HIGHLIGHT_FILL
        original_text = (
            "null" if original_value is None
            else truncate_text(display_text(original_value), max_chars=self.annotation_max_chars)
        )
        # Comment XML is not escaped for control characters.
        original_text = ILLEGAL_CHARACTERS_RE.sub("", original_text)
        cell.comment = Comment(f"AI Modified.\nOriginal: {original_text}", COMMENT_AUTHOR)

    @staticmethod
    def _append_legend(ws: Any, *, header_count: int, last_row: int) -> None:
        legend_row = last_row + 2
        ws.append([])
        ws.row_dimensions[legend_row].height = DEFAULT_ROW_HEIGHT * 3

        cell = WriteOnlyCell(ws, value=LEGEND_TEXT)
        cell.font = LEGEND_FONT
        cell.alignment = LEGEND_ALIGNMENT
        ws.append([cell])

        if header_count > 1:
            ws.merged_cells.add(
                CellRange(min_col=1, min_row=legend_row, max_col=header_count, max_row=legend_row)
            )

    @staticmethod
    def _column_widths(headers: Sequence[str], prepared: List[List[PreparedCell]]) -> List[int]:
        widths = [len(str(header)) for header in headers]
        for prepared_row in prepared:
            for col, prepared_cell in enumerate(prepared_row):
                length = _display_width(prepared_cell)
                if length > widths[col]:
                    widths[col] = length
        return [min(MAX_COLUMN_WIDTH, max(MIN_COLUMN_WIDTH, width + 2)) for width in widths]


def _display_width(prepared: PreparedCell) -> int:
    value = prepared.value
    if value.kind == CellKind.NULL:
        return 0
    if prepared.style == StyleHint.DATE or isinstance(value.value, date) and not isinstance(value.value, datetime):
        return len(FORMAT_DATE)
    if prepared.style == StyleHint.DATETIME or isinstance(value.value, datetime):
        return len(FORMAT_DATETIME)
    if prepared.style == StyleHint.PERCENT:
        return len(f"{value.value * 100:.2f}%") if isinstance(value.value, (int, float)) else 8
    return len(display_text(value.value))
