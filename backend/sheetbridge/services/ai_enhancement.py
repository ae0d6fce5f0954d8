"""
AI enhancement orchestration.

Flow per run:
1) whole-input fingerprint lookup in the AI response cache (a corrupt entry is a miss)
2) chunk every sheet (fixed or adaptive policy)
3) fan chunks out to the AI backend under a semaphore; each chunk result lands
   in the slot of its submission position
4) reassemble: group by sheet, order by chunk index, concatenate
5) cache the merged workbook under the fingerprint

Any chunk failure fails the whole run with AIError. Sibling requests still in
flight are cancelled; no partially enhanced workbook is ever returned.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from sheetbridge.exceptions import AIError, CacheError
from sheetbridge.models.workbook import Chunk, Sheet, Workbook, WorkbookDiff, diff_workbooks
from sheetbridge.services.cache_keys import ai_chunk_key, ai_workbook_key
from sheetbridge.services.chunker import ChunkPolicy, chunk_payload, reassemble, split_workbook
from sheetbridge.services.gemini_client import GeminiClient
from sheetbridge.services.response_cache import ResponseCache
from sheetbridge.utils.app_logger import get_logger
from sheetbridge.utils.json_utils import json_dumps_bytes

logger = get_logger(__name__)

EXCEL_TO_JSON_PROMPT = (
    "You are an AI assistant. The input is a part of an Excel workbook in JSON format.\n"
    "Standardize data types, clean the content, and preserve the structure.\n"
    "Return the result as pure JSON.\n"
    "\n"
    "Input:\n"
)

JSON_TO_EXCEL_PROMPT = (
    "You are an AI assistant. Clean and standardize the following sheet's JSON.\n"
    "Fix typos, inconsistent formatting, and ensure data consistency.\n"
    "Wrap the cleaned result using the original sheet name as key. Return ONLY valid JSON.\n"
    "\n"
    "Input:\n"
)


@dataclass(frozen=True)
class EnhancementMode:
    name: str
    prompt: str
    json_response: bool = False


EXCEL_TO_JSON = EnhancementMode(name="excel-to-json", prompt=EXCEL_TO_JSON_PROMPT)
JSON_TO_EXCEL = EnhancementMode(name="json-to-excel", prompt=JSON_TO_EXCEL_PROMPT, json_response=True)


def dynamic_concurrency(sheet_count: int, cap: int = 5) -> int:
    return min(cap, max(1, sheet_count // 2))


class AIEnhancementOrchestrator:
    def __init__(
        self,
        client: GeminiClient,
        cache: ResponseCache,
        *,
        fixed_policy: Optional[ChunkPolicy] = None,
        adaptive_policy: Optional[ChunkPolicy] = None,
        max_concurrency: int = 3,
        dynamic_concurrency_cap: int = 5,
    ) -> None:
        self.client = client
        self.cache = cache
        self.fixed_policy = fixed_policy or ChunkPolicy.fixed()
        self.adaptive_policy = adaptive_policy or ChunkPolicy.adaptive()
        self.max_concurrency = max(1, int(max_concurrency))
        self.dynamic_concurrency_cap = max(1, int(dynamic_concurrency_cap))

    async def enhance(self, workbook: Workbook) -> Workbook:
        """Spreadsheet -> JSON direction: fixed chunking, fixed concurrency."""
        return await self._run(workbook, EXCEL_TO_JSON, self.fixed_policy, self.max_concurrency)

    async def enhance_for_render(self, workbook: Workbook) -> Tuple[Workbook, WorkbookDiff]:
        """JSON -> spreadsheet direction: adaptive chunking; returns the enhanced workbook and its cell diff."""
        concurrency = dynamic_concurrency(len(workbook), self.dynamic_concurrency_cap)
        enhanced = await self._run(workbook, JSON_TO_EXCEL, self.adaptive_policy, concurrency)
        return enhanced, diff_workbooks(enhanced, workbook)

    async def _run(self, workbook: Workbook, mode: EnhancementMode, policy: ChunkPolicy, concurrency: int) -> Workbook:
        key = ai_workbook_key(workbook, mode.name)
        cached = self._read_cached(key, self._decode_workbook)
        if cached is not None:
            logger.info("AI cache HIT (%s)", mode.name)
            return cached
        logger.info("AI cache MISS (%s)", mode.name)

        chunks = split_workbook(workbook, policy)
        logger.info(
            "AI enhancement (%s): %d sheet(s), %d chunk(s), concurrency=%d",
            mode.name, len(workbook), len(chunks), concurrency,
        )
        results = await self._fan_out(chunks, mode, concurrency)
        enhanced = reassemble(results, list(workbook.keys()))

        self._write_cached(key, enhanced)
        return enhanced

    async def _fan_out(self, chunks: List[Chunk], mode: EnhancementMode, concurrency: int) -> List[Chunk]:
        if not chunks:
            return []

        semaphore = asyncio.Semaphore(concurrency)
        slots: List[Optional[Chunk]] = [None] * len(chunks)

        async def _worker(position: int, chunk: Chunk) -> None:
            async with semaphore:
                slots[position] = await self._enhance_chunk(chunk, mode)

        tasks = [asyncio.ensure_future(_worker(i, chunk)) for i, chunk in enumerate(chunks)]
        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
            if pending:
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
            for task in tasks:
                if task.done() and not task.cancelled() and task.exception() is not None:
                    raise task.exception()
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

        return [slot for slot in slots if slot is not None]

    async def _enhance_chunk(self, chunk: Chunk, mode: EnhancementMode) -> Chunk:
        payload = chunk_payload(chunk.sheet_name, chunk.rows)
        key = ai_chunk_key(mode.name, chunk.sheet_name, payload)

        cached = self._read_cached(key, self._decode_rows)
        if cached is not None:
            logger.debug("Chunk cache HIT (sheet=%s chunk=%d)", chunk.sheet_name, chunk.index)
            return Chunk(sheet_name=chunk.sheet_name, index=chunk.index, rows=cached)

        logger.debug("Dispatching chunk (sheet=%s chunk=%d rows=%d)", chunk.sheet_name, chunk.index, len(chunk.rows))
        try:
            answer = await self.client.generate_json(mode.prompt + payload, json_response=mode.json_response)
            rows = self.rows_from_answer(answer, chunk.sheet_name)
        except AIError as e:
            logger.error("Failed to process chunk (sheet=%s chunk=%d): %s", chunk.sheet_name, chunk.index, e.message)
            raise AIError(
                f"Chunk processing error (sheet={chunk.sheet_name}, chunk={chunk.index}): {e.message}",
                details={"sheet": chunk.sheet_name, "chunk_index": chunk.index, **e.details},
            ) from e

        self._write_cached(key, rows)
        logger.debug("Chunk done (sheet=%s chunk=%d rows=%d)", chunk.sheet_name, chunk.index, len(rows))
        return Chunk(sheet_name=chunk.sheet_name, index=chunk.index, rows=rows)

    @staticmethod
    def rows_from_answer(answer: Any, sheet_name: str) -> Sheet:
        """
        Rows of one chunk from a decoded AI answer.

        `{sheet_name: [...]}` is the expected shape; a missing sheet key yields no
        rows and a bare array is taken as the rows.
        """
        if isinstance(answer, dict):
            if sheet_name not in answer:
                logger.warning("AI answer has no key for sheet '%s'; using empty chunk result", sheet_name)
                return []
            rows = answer[sheet_name]
        elif isinstance(answer, list):
            rows = answer
        else:
            raise AIError("AI answer must be a JSON object or array")

        if not isinstance(rows, list) or not all(isinstance(row, dict) for row in rows):
            raise AIError(f"AI answer for sheet '{sheet_name}' must be an array of objects")
        return rows

    # ------------------------------------------------------------------
    # Cache helpers (best-effort)
    # ------------------------------------------------------------------

    def _read_cached(self, key: str, decoder) -> Any:
        raw = self.cache.get(key)
        if raw is None:
            return None
        try:
            return decoder(raw, key)
        except CacheError as e:
            logger.warning("%s; treating as miss", e.message)
            return None

    def _write_cached(self, key: str, value: Any) -> None:
        try:
            self.cache.put(key, json_dumps_bytes(value))
        except Exception as e:
            logger.warning("AI cache write failed for key=%s: %s", key, e)

    @staticmethod
    def _decode_workbook(raw: bytes, key: str) -> Workbook:
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise CacheError(f"failed to decode cached workbook: {e}", key=key) from e
        if not isinstance(data, dict) or not all(isinstance(rows, list) for rows in data.values()):
            raise CacheError("cached workbook has an unexpected shape", key=key)
        return data

    @staticmethod
    def _decode_rows(raw: bytes, key: str) -> Sheet:
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise CacheError(f"failed to decode cached chunk: {e}", key=key) from e
        if not isinstance(data, list):
            raise CacheError("cached chunk has an unexpected shape", key=key)
        return data
