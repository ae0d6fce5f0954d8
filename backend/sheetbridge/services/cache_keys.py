"""
Cache key derivation.

File uploads are keyed by identity (conversion type + filename + byte size +
AI flag), which is cheap but can alias two different files of equal name and
size. Raw JSON bodies, previews and AI inputs are keyed by the SHA-256 of their
canonical serialization.
"""

from __future__ import annotations

from typing import Any, Union

from sheetbridge.utils.json_utils import canonical_json_dumps, sha256_hex


def _flag(value: bool) -> str:
    return "true" if value else "false"


def excel_to_json_key(filename: str, size: int, use_ai: bool) -> str:
    return f"excel-to-json:{filename}:{int(size)}:{_flag(use_ai)}"


def json_file_to_excel_key(filename: str, size: int, use_ai: bool) -> str:
    return f"json-to-excel:file:{filename}:{int(size)}:{_flag(use_ai)}"


def json_to_excel_key(payload: Any, use_ai: bool) -> str:
    return f"json-to-excel:raw:{sha256_hex(canonical_json_dumps(payload))}:{_flag(use_ai)}"


def schema_preview_key(preview: Any) -> str:
    return f"schema:{sha256_hex(canonical_json_dumps(preview))}"


def schema_file_key(content: Union[bytes, str]) -> str:
    return f"schema-file:{sha256_hex(content)}"


def ai_workbook_key(workbook: Any, mode: str) -> str:
    """Whole-input fingerprint for an AI enhancement run (mode separates the two directions)."""
    return f"ai:{mode}:{sha256_hex(canonical_json_dumps(workbook))}"


def ai_chunk_key(mode: str, sheet_name: str, chunk_json: str) -> str:
    return f"ai-chunk:{mode}:{sha256_hex(sheet_name + chunk_json)}"
