"""
Data models for SheetBridge
"""

from .workbook import CellKind, CellValue, Chunk, PreparedCell, Row, Sheet, StyleHint, Workbook

__all__ = [
    "CellKind",
    "CellValue",
    "Chunk",
    "PreparedCell",
    "Row",
    "Sheet",
    "StyleHint",
    "Workbook",
]
