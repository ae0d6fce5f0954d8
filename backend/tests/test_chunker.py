from __future__ import annotations

import random

import pytest

from sheetbridge.exceptions import AIError
from sheetbridge.models.workbook import Chunk
from sheetbridge.services.chunker import (
    ChunkPolicy,
    chunk_payload,
    reassemble,
    split_rows,
    split_workbook,
)


def _rows(n: int):
    return [{"id": i, "name": f"row-{i}"} for i in range(n)]


@pytest.mark.parametrize("row_count", [0, 1, 99, 100, 101, 250, 1001])
def test_fixed_chunks_reassemble_in_order(row_count: int) -> None:
    rows = _rows(row_count)
    policy = ChunkPolicy.fixed(100, max_chunk_chars=10**9, max_total_chars=10**9)

    chunks = split_rows("S", rows, policy)
    assert [c.index for c in chunks] == list(range(len(chunks)))
    assert all(len(c.rows) <= 100 for c in chunks)

    shuffled = list(chunks)
    random.Random(7).shuffle(shuffled)
    assert reassemble(shuffled, ["S"]) == {"S": rows}


@pytest.mark.parametrize(
    "row_count,expected_size",
    [(1, 1), (200, 200), (201, 200), (1000, 200), (1001, 500), (5000, 500)],
)
def test_adaptive_size(row_count: int, expected_size: int) -> None:
    assert ChunkPolicy.adaptive().size_for(row_count) == expected_size


def test_adaptive_small_sheet_is_one_chunk() -> None:
    chunks = split_rows("S", _rows(150), ChunkPolicy.adaptive())
    assert len(chunks) == 1
    assert len(chunks[0].rows) == 150


def test_workbook_chunks_keep_sheet_order() -> None:
    workbook = {"B": _rows(3), "A": _rows(5), "Empty": []}
    policy = ChunkPolicy.fixed(2, max_chunk_chars=10**9, max_total_chars=10**9)

    chunks = split_workbook(workbook, policy)

    assert [(c.sheet_name, c.index) for c in chunks] == [
        ("B", 0), ("B", 1), ("A", 0), ("A", 1), ("A", 2),
    ]
    assert reassemble(list(reversed(chunks)), list(workbook.keys())) == workbook


def test_reassemble_orders_by_index_not_arrival() -> None:
    chunks = [
        Chunk("S", 2, [{"v": 5}]),
        Chunk("S", 0, [{"v": 1}, {"v": 2}]),
        Chunk("S", 1, [{"v": 3}, {"v": 4}]),
    ]
    assert reassemble(chunks, ["S"]) == {"S": [{"v": v} for v in range(1, 6)]}


def test_total_size_ceiling_raises() -> None:
    workbook = {"S": _rows(50)}
    with pytest.raises(AIError, match="Input too large"):
        split_workbook(workbook, ChunkPolicy.fixed(10, max_total_chars=100))


def test_chunk_size_ceiling_raises() -> None:
    rows = _rows(10)
    limit = len(chunk_payload("S", rows[:5])) - 1
    with pytest.raises(AIError, match="Chunk too large") as exc_info:
        split_rows("S", rows, ChunkPolicy.fixed(5, max_chunk_chars=limit, max_total_chars=10**9))
    assert exc_info.value.details["chunk_index"] == 0


def test_adaptive_policy_has_no_ceiling_by_default() -> None:
    rows = [{"text": "x" * 1000} for _ in range(200)]
    assert len(split_workbook({"S": rows}, ChunkPolicy.adaptive())) == 1
