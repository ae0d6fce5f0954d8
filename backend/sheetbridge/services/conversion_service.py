"""
Conversion pipeline facade.

input bytes -> cache key -> cache lookup (fast path)
            -> parse / normalize (worker thread)
            -> optional AI enhancement
            -> JSON payload or xlsx bytes (worker thread)
            -> cache store

Blocking spreadsheet work runs in `asyncio.to_thread` so the event loop only
ever waits on the AI backend.
"""

from __future__ import annotations

import asyncio
import json
import re
from pathlib import PurePosixPath
from typing import Any, Optional

from sheetbridge.exceptions import CacheError, InputError
from sheetbridge.models.workbook import Workbook
from sheetbridge.services import cache_keys
from sheetbridge.services.ai_enhancement import AIEnhancementOrchestrator
from sheetbridge.services.response_cache import ResponseCache
from sheetbridge.services.sheet_normalizer import SheetNormalizer
from sheetbridge.utils.app_logger import get_logger
from sheetbridge.utils.json_utils import json_dumps_bytes

logger = get_logger(__name__)

SPREADSHEET_EXTENSIONS = (".xlsx", ".xlsm")
LEGACY_SPREADSHEET_EXTENSIONS = (".xls",)
JSON_EXTENSIONS = (".json",)

DEFAULT_OUTPUT_FILENAME = "converted.xlsx"

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def _check_filename(filename: Optional[str]) -> str:
    name = (filename or "").strip()
    if not name:
        raise InputError("File must have a name.")
    if ".." in name or "/" in name or "\\" in name or _CONTROL_CHARS.search(name):
        raise InputError("Invalid or unsafe file name detected.")
    return name


def _check_content(content: Optional[bytes], *, max_bytes: int, label: str) -> bytes:
    if not content:
        raise InputError(f"{label} file is missing or empty.")
    if len(content) > max_bytes:
        raise InputError(
            f"{label} file is too large ({len(content)} bytes, limit {max_bytes}).",
            details={"size": len(content), "limit": max_bytes},
        )
    return content


def validate_spreadsheet_upload(filename: Optional[str], content: Optional[bytes], *, max_bytes: int) -> str:
    name = _check_filename(filename)
    lowered = name.lower()
    if lowered.endswith(LEGACY_SPREADSHEET_EXTENSIONS):
        raise InputError("Legacy .xls files are not supported; save the workbook as .xlsx.")
    if not lowered.endswith(SPREADSHEET_EXTENSIONS):
        raise InputError("Only .xlsx and .xlsm Excel files are supported.")
    _check_content(content, max_bytes=max_bytes, label="Excel")
    return name


def validate_json_upload(filename: Optional[str], content: Optional[bytes], *, max_bytes: int) -> str:
    name = _check_filename(filename)
    if not name.lower().endswith(JSON_EXTENSIONS):
        raise InputError("Only .json files are supported.")
    _check_content(content, max_bytes=max_bytes, label="JSON")
    return name


def output_filename(requested: Optional[str], upload_name: Optional[str] = None) -> str:
    """
    Requested name if given, else `<upload stem>.xlsx`, else converted.xlsx.

    Raises:
        InputError: the requested name is unsafe
    """
    if requested and requested.strip():
        return _check_filename(requested)
    if upload_name:
        stem = PurePosixPath(upload_name).stem
        if stem:
            return f"{stem}.xlsx"
    return DEFAULT_OUTPUT_FILENAME


class ConversionService:
    def __init__(
        self,
        normalizer: SheetNormalizer,
        orchestrator: AIEnhancementOrchestrator,
        *,
        excel_to_json_cache: ResponseCache,
        json_to_excel_cache: ResponseCache,
        max_upload_bytes: int = 10 * 1024 * 1024,
    ) -> None:
        self.normalizer = normalizer
        self.orchestrator = orchestrator
        self.excel_to_json_cache = excel_to_json_cache
        self.json_to_excel_cache = json_to_excel_cache
        self.max_upload_bytes = int(max_upload_bytes)

    # ------------------------------------------------------------------
    # Spreadsheet -> JSON
    # ------------------------------------------------------------------

    async def excel_to_json(self, content: bytes, filename: str, use_ai: bool = False) -> Workbook:
        name = validate_spreadsheet_upload(filename, content, max_bytes=self.max_upload_bytes)
        key = cache_keys.excel_to_json_key(name, len(content), use_ai)

        cached = self._read_cached_workbook(key)
        if cached is not None:
            logger.info("Excel-to-JSON cache HIT: %s", key)
            return cached
        logger.info("Excel-to-JSON cache MISS: %s", key)

        workbook = await asyncio.to_thread(self.normalizer.parse, content)
        if use_ai:
            workbook = await self.orchestrator.enhance(workbook)

        self.excel_to_json_cache.put(key, json_dumps_bytes(workbook))
        return workbook

    def _read_cached_workbook(self, key: str) -> Optional[Workbook]:
        raw = self.excel_to_json_cache.get(key)
        if raw is None:
            return None
        try:
            try:
                data = json.loads(raw)
            except (TypeError, ValueError) as e:
                raise CacheError(f"failed to parse cached JSON: {e}", key=key) from e
            if not isinstance(data, dict):
                raise CacheError("cached JSON is not a workbook object", key=key)
            return data
        except CacheError as e:
            logger.warning("%s; reprocessing", e.message)
            return None

    # ------------------------------------------------------------------
    # JSON -> spreadsheet
    # ------------------------------------------------------------------

    async def json_file_to_excel(self, content: bytes, filename: str, use_ai: bool = False) -> bytes:
        name = validate_json_upload(filename, content, max_bytes=self.max_upload_bytes)
        key = cache_keys.json_file_to_excel_key(name, len(content), use_ai)

        cached = self.json_to_excel_cache.get(key)
        if cached is not None:
            logger.info("JSON-to-Excel cache HIT: %s", key)
            return cached
        logger.info("JSON-to-Excel cache MISS: %s", key)

        try:
            data = json.loads(content)
        except (UnicodeDecodeError, ValueError) as e:
            raise InputError(f"Failed to parse JSON file: {e}") from e

        workbook = self.normalizer.normalize_json(data)
        result = await self._render(workbook, use_ai)
        self.json_to_excel_cache.put(key, result)
        return result

    async def json_to_excel(self, payload: Any, use_ai: bool = False) -> bytes:
        workbook = self.normalizer.normalize_json(payload)
        key = cache_keys.json_to_excel_key(workbook, use_ai)

        cached = self.json_to_excel_cache.get(key)
        if cached is not None:
            logger.info("JSON-to-Excel cache HIT: %s", key)
            return cached
        logger.info("JSON-to-Excel cache MISS: %s", key)

        result = await self._render(workbook, use_ai)
        self.json_to_excel_cache.put(key, result)
        return result

    async def _render(self, workbook: Workbook, use_ai: bool) -> bytes:
        if not use_ai:
            return await asyncio.to_thread(self.normalizer.render, workbook)
        enhanced, diff = await self.orchestrator.enhance_for_render(workbook)
        return await asyncio.to_thread(self.normalizer.writer.write, enhanced, None, diff=diff)
