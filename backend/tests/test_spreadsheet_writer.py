from __future__ import annotations

from datetime import date, datetime

import pytest

from sheetbridge.exceptions import ConversionError
from sheetbridge.services.spreadsheet_writer import (
    ERROR_COLOR,
    FORMAT_DATE,
    FORMAT_DATETIME,
    FORMAT_PERCENT,
    HIGHLIGHT_COLOR,
    LEGEND_TEXT,
    MAX_COLUMN_WIDTH,
    WRITE_ERROR,
    SpreadsheetWriter,
    safe_sheet_title,
)
from tests.utils.fakes import open_xlsx


def test_header_and_layout() -> None:
    content = SpreadsheetWriter().write({"People": [{"name": "Ann", "note": "x" * 200}]})
    ws = open_xlsx(content)["People"]

    assert [c.value for c in ws[1]] == ["name", "note"]
    assert ws["A1"].font.b is True
    assert ws["A1"].alignment.horizontal == "center"
    assert ws.freeze_panes == "A2"
    assert ws.column_dimensions["B"].width == MAX_COLUMN_WIDTH
    assert ws.column_dimensions["A"].width >= 8


def test_typed_cells_get_number_formats() -> None:
    rows = [{
        "joined": "2024-01-05",
        "seen": "2024-01-05T10:30:00",
        "growth": "12.5%",
        "discount_rate": 25,
        "count": 7,
    }]
    ws = open_xlsx(SpreadsheetWriter().write({"S": rows}))["S"]

    joined, seen, growth, discount, count = ws[2]
    assert joined.value.date() == date(2024, 1, 5)
    assert joined.number_format == FORMAT_DATE
    assert seen.value == datetime(2024, 1, 5, 10, 30)
    assert seen.number_format == FORMAT_DATETIME
    assert growth.value == pytest.approx(0.125)
    assert growth.number_format == FORMAT_PERCENT
    assert discount.value == pytest.approx(0.25)
    assert discount.number_format == FORMAT_PERCENT
    assert count.value == 7


def test_unwritable_value_becomes_marker() -> None:
    ws = open_xlsx(SpreadsheetWriter().write({"S": [{"a": "bad\x01value", "b": "ok"}]}))["S"]
    assert ws["A2"].value == WRITE_ERROR
    assert ws["B2"].value == "ok"


def test_unwritable_header_becomes_marker() -> None:
    ws = open_xlsx(SpreadsheetWriter().write({"S": [{"bad\x01key": 1, "ok": 2}]}))["S"]

    assert [c.value for c in ws[1]] == [WRITE_ERROR, "ok"]
    assert ws["A1"].font.color.rgb == ERROR_COLOR
    assert [c.value for c in ws[2]] == [1, 2]


def test_control_characters_in_original_value_are_dropped_from_note() -> None:
    original = {"S": [{"a": "dirty\x01"}]}
    enhanced = {"S": [{"a": "clean"}]}

    ws = open_xlsx(SpreadsheetWriter().write(enhanced, original))["S"]

    assert ws["A2"].value == "clean"
    assert ws["A2"].comment.text == "AI Modified.\nOriginal: dirty"


def test_sheet_order_and_empty_sheets() -> None:
    wb = open_xlsx(SpreadsheetWriter().write({"Z": [{"a": 1}], "Empty": [], "A": [{"a": 2}]}))
    assert wb.sheetnames == ["Z", "A"]


def test_nothing_to_write_raises() -> None:
    with pytest.raises(ConversionError):
        SpreadsheetWriter().write({"Empty": []})


def test_rows_follow_first_row_headers() -> None:
    ws = open_xlsx(SpreadsheetWriter().write({"S": [{"a": 1, "b": 2}, {"b": 3, "extra": 9}]}))["S"]
    assert [c.value for c in ws[1]] == ["a", "b"]
    assert [c.value for c in ws[3]] == [None, 3]


def test_prepare_rows_keeps_order_across_batches() -> None:
    writer = SpreadsheetWriter(flush_rows=3, worker_threads=4)
    rows = [{"n": i} for i in range(20)]

    prepared = writer.prepare_rows(rows, ["n"])

    assert [row[0].value.value for row in prepared] == list(range(20))


def test_changed_cells_are_highlighted_with_original_value() -> None:
    original = {"S": [{"name": "ann", "city": "seoul", "age": 3}]}
    enhanced = {"S": [{"name": "Ann", "city": "seoul", "age": 3}]}

    ws = open_xlsx(SpreadsheetWriter().write(enhanced, original))["S"]

    name = ws["A2"]
    assert name.fill.fgColor.rgb == HIGHLIGHT_COLOR
    assert name.comment.text == "AI Modified.\nOriginal: ann"
    assert ws["B2"].comment is None

    legend = ws["A4"]
    assert legend.value == LEGEND_TEXT
    assert legend.font.b is True
    assert ws.row_dimensions[4].height == 45
    assert "A4:C4" in {str(r) for r in ws.merged_cells.ranges}


def test_original_value_in_note_is_truncated() -> None:
    original = {"S": [{"a": "y" * 400}]}
    enhanced = {"S": [{"a": "short"}]}

    ws = open_xlsx(SpreadsheetWriter(annotation_max_chars=10).write(enhanced, original))["S"]

    assert ws["A2"].comment.text == "AI Modified.\nOriginal: " + "y" * 10


def test_no_changes_means_no_legend() -> None:
    data = {"S": [{"a": 1}]}
    ws = open_xlsx(SpreadsheetWriter().write(data, data))["S"]
    assert ws.max_row == 2


@pytest.mark.parametrize(
    "name,expected",
    [
        ("Sales/2024", "Sales 2024"),
        ("'quoted'", "quoted"),
        ("x" * 40, "x" * 31),
        ("[]", "Sheet"),
        ("", "Sheet"),
        ("a\x01b", "ab"),
    ],
)
def test_safe_sheet_title(name: str, expected: str) -> None:
    assert safe_sheet_title(name) == expected
