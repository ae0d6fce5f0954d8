"""
Row chunking for AI submission.

Two sizing policies:
- fixed: constant chunk size, plus serialized-size ceilings for the whole
  dataset and for every chunk (spreadsheet -> JSON direction)
- adaptive: chunk size grows with the sheet (JSON -> spreadsheet direction):
  all rows when <= 200, 200 when <= 1000, else 500

A chunk's serialized size is the length of `{sheet name: rows}` as canonical
JSON, which is the payload embedded in the prompt. Exceeding a ceiling is an
AIError: data is never truncated.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from sheetbridge.exceptions import AIError
from sheetbridge.models.workbook import Chunk, Sheet, Workbook
from sheetbridge.utils.json_utils import canonical_json_dumps


@dataclass(frozen=True)
class ChunkPolicy:
    """Chunk sizing policy; `chunk_size=None` selects the adaptive size."""

    chunk_size: Optional[int] = None
    max_chunk_chars: Optional[int] = None
    max_total_chars: Optional[int] = None

    small_threshold: int = 200
    medium_threshold: int = 1000
    medium_size: int = 200
    large_size: int = 500

    @classmethod
    def fixed(cls, size: int = 100, *, max_chunk_chars: int = 30_000, max_total_chars: int = 300_000) -> "ChunkPolicy":
        return cls(chunk_size=size, max_chunk_chars=max_chunk_chars, max_total_chars=max_total_chars)

    @classmethod
    def adaptive(
        cls,
        *,
        small_threshold: int = 200,
        medium_threshold: int = 1000,
        medium_size: int = 200,
        large_size: int = 500,
        max_chunk_chars: Optional[int] = None,
    ) -> "ChunkPolicy":
        return cls(
            chunk_size=None,
            max_chunk_chars=max_chunk_chars,
            small_threshold=small_threshold,
            medium_threshold=medium_threshold,
            medium_size=medium_size,
            large_size=large_size,
        )

    def size_for(self, row_count: int) -> int:
        if self.chunk_size is not None:
            return max(1, int(self.chunk_size))
        if row_count <= self.small_threshold:
            return max(1, row_count)
        if row_count <= self.medium_threshold:
            return self.medium_size
        return self.large_size


def chunk_payload(sheet_name: str, rows: Sheet) -> str:
    """Serialized form of one chunk, as embedded in the prompt."""
    return canonical_json_dumps({sheet_name: rows})


def split_rows(sheet_name: str, rows: Sheet, policy: ChunkPolicy) -> List[Chunk]:
    """
    Split one sheet's rows into indexed chunks (index = emission order, from 0).

    Raises:
        AIError: a chunk exceeds the policy's per-chunk ceiling
    """
    if not rows:
        return []
    size = policy.size_for(len(rows))
    chunks: List[Chunk] = []
    for index, start in enumerate(range(0, len(rows), size)):
        chunk = Chunk(sheet_name=sheet_name, index=index, rows=list(rows[start:start + size]))
        if policy.max_chunk_chars is not None:
            length = len(chunk_payload(sheet_name, chunk.rows))
            if length > policy.max_chunk_chars:
                raise AIError(
                    f"Chunk too large for AI processing: sheet '{sheet_name}' chunk {index} "
                    f"is {length} characters (limit {policy.max_chunk_chars})",
                    details={"sheet": sheet_name, "chunk_index": index, "size": length},
                )
        chunks.append(chunk)
    return chunks


def split_workbook(workbook: Workbook, policy: ChunkPolicy) -> List[Chunk]:
    """
    Chunk every sheet, keeping sheet order then chunk order.

    Raises:
        AIError: the serialized workbook or any chunk exceeds the policy's ceilings
    """
    if policy.max_total_chars is not None:
        total = len(canonical_json_dumps(workbook))
        if total > policy.max_total_chars:
            raise AIError(
                f"Input too large for AI processing: {total} characters (limit {policy.max_total_chars})",
                details={"size": total},
            )
    chunks: List[Chunk] = []
    for sheet_name, rows in workbook.items():
        chunks.extend(split_rows(sheet_name, rows, policy))
    return chunks


def reassemble(chunks_with_rows: List[Chunk], sheet_order: List[str]) -> Workbook:
    """
    Group chunk results by sheet, order by chunk index, concatenate.

    Sheets in `sheet_order` without any chunk come back with no rows.
    """
    grouped = {name: [] for name in sheet_order}
    for chunk in chunks_with_rows:
        grouped.setdefault(chunk.sheet_name, []).append(chunk)

    workbook: Workbook = {}
    for name, chunks in grouped.items():
        rows: Sheet = []
        for chunk in sorted(chunks, key=lambda c: c.index):
            rows.extend(chunk.rows)
        workbook[name] = rows
    return workbook
