from __future__ import annotations

import pytest

from sheetbridge.exceptions import ConversionError, InputError
from sheetbridge.services.sheet_normalizer import SheetNormalizer
from tests.utils.fakes import build_xlsx


def test_parse_detects_header_and_skips_blank_rows(normalizer: SheetNormalizer) -> None:
    content = build_xlsx({
        "People": [
            [None, None],
            ["name", "age", None],
            ["Ann", 30],
            [None, None],
            ["Bob", 41.5],
        ],
    })

    workbook = normalizer.parse(content)

    assert workbook == {"People": [{"name": "Ann", "age": 30}, {"name": "Bob", "age": 41.5}]}
    assert list(workbook["People"][0].keys()) == ["name", "age"]


def test_parse_keeps_sheet_order_and_skips_empty_sheets(normalizer: SheetNormalizer) -> None:
    content = build_xlsx({
        "Zeta": [["k"], ["z"]],
        "Empty": [],
        "HeaderOnly": [["k"]],
        "Alpha": [["k"], ["a"]],
    })

    workbook = normalizer.parse(content)

    assert list(workbook.keys()) == ["Zeta", "Alpha"]


def test_parse_without_usable_data_fails(normalizer: SheetNormalizer) -> None:
    with pytest.raises(ConversionError):
        normalizer.parse(build_xlsx({"Only": [["header"]]}))


def test_parse_rejects_unreadable_bytes(normalizer: SheetNormalizer) -> None:
    with pytest.raises(InputError):
        normalizer.parse(b"definitely not a zip archive")
    with pytest.raises(InputError):
        normalizer.parse(b"")


def test_parse_marks_formula_and_error_cells(normalizer: SheetNormalizer) -> None:
    content = build_xlsx({"Calc": [["a", "b", "c"], [1, "=1+1", "#DIV/0!"]]})

    row = normalizer.parse(content)["Calc"][0]

    assert row == {"a": 1, "b": "#EVAL_ERROR!", "c": "#CELL_ERROR_#DIV/0!"}


def test_extract_preview_limits_rows_and_stringifies(normalizer: SheetNormalizer) -> None:
    content = build_xlsx({"S": [["id", "ok"], [1, True], [2, False], [3, True], [4, False]]})

    preview = normalizer.extract_preview(content, max_rows=2)

    assert preview == {"S": [{"id": "1", "ok": "true"}, {"id": "2", "ok": "false"}]}


def test_extract_preview_without_data_fails(normalizer: SheetNormalizer) -> None:
    with pytest.raises(ConversionError, match="schema preview"):
        normalizer.extract_preview(build_xlsx({"S": [["only"]]}))


@pytest.mark.parametrize(
    "payload,expected",
    [
        ({"a": 1, "b": "x"}, {"Sheet1": [{"a": 1, "b": "x"}]}),
        ([{"a": 1}, {"a": 2}], {"Sheet1": [{"a": 1}, {"a": 2}]}),
        ({"user": {"id": 7}}, {"Sheet1": [{"id": 7}]}),
        ({"orders": []}, {"orders": []}),
        ({"orders": [{"id": 1}]}, {"orders": [{"id": 1}]}),
        ({"tags": ["x", "y"]}, {"Sheet1": [{"tags": "x"}, {"tags": "y"}]}),
        (
            {"s1": [{"a": 1}], "s2": [{"b": 2}]},
            {"s1": [{"a": 1}], "s2": [{"b": 2}]},
        ),
    ],
)
def test_normalize_json_shapes(payload, expected) -> None:
    workbook = SheetNormalizer.normalize_json(payload)
    assert workbook == expected
    assert list(workbook.keys()) == list(expected.keys())


@pytest.mark.parametrize(
    "payload",
    [
        {},
        "text",
        42,
        {"s1": [{"a": 1}], "s2": "nope"},
        {"s1": [{"a": 1}], "s2": [1, 2]},
        [1, 2],
    ],
)
def test_normalize_json_rejects_unsupported_shapes(payload) -> None:
    with pytest.raises(InputError):
        SheetNormalizer.normalize_json(payload)


def test_render_then_parse_preserves_values(normalizer: SheetNormalizer) -> None:
    workbook = {
        "People": [
            {
                "name": "Ann", "age": 30, "active": True,
                "joined": "2024-01-05T00:00:00Z", "seen": "2024-01-05T10:00:00Z",
            },
            {
                "name": "Bob", "age": 41.5, "active": False,
                "joined": "2023-12-31T00:00:00Z", "seen": "2023-12-31T23:59:59Z",
            },
        ],
        "Notes": [{"text": "hello"}],
    }

    parsed = normalizer.parse(normalizer.render(workbook))
    assert parsed == workbook
    assert list(parsed.keys()) == ["People", "Notes"]

    reparsed = normalizer.parse(normalizer.render(parsed))
    assert reparsed == parsed


def test_bare_date_reads_back_as_midnight_instant(normalizer: SheetNormalizer) -> None:
    parsed = normalizer.parse(normalizer.render({"S": [{"d": "2024-01-05", "pct": "50%"}]}))

    assert parsed == {"S": [{"d": "2024-01-05T00:00:00Z", "pct": 0.5}]}
