"""
JSON Schema generation from a spreadsheet sample.

Two cache keys are tried before calling the AI backend: the SHA-256 of the
uploaded bytes (exact re-upload) and the SHA-256 of the preview JSON (same
sample in a different file). A fresh answer is stored under both.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from sheetbridge.exceptions import AIError
from sheetbridge.services import cache_keys
from sheetbridge.services.gemini_client import GeminiClient, decode_answer
from sheetbridge.services.response_cache import ResponseCache
from sheetbridge.services.sheet_normalizer import SheetNormalizer
from sheetbridge.utils.app_logger import get_logger
from sheetbridge.utils.json_utils import canonical_json_dumps

logger = get_logger(__name__)

SCHEMA_PROMPT = (
    "You are a JSON Schema generator.\n"
    "The following is a sample of Excel data (converted to JSON).\n"
    "Please infer and generate a JSON Schema based on this structure.\n"
    "\n"
    "Output only the JSON Schema (no explanation).\n"
    "\n"
    "Input:\n"
)


class SchemaGenerator:
    def __init__(
        self,
        normalizer: SheetNormalizer,
        client: GeminiClient,
        cache: ResponseCache,
        *,
        preview_rows: int = 3,
    ) -> None:
        self.normalizer = normalizer
        self.client = client
        self.cache = cache
        self.preview_rows = max(1, int(preview_rows))

    async def generate(self, content: bytes, filename: Optional[str] = None) -> Any:
        file_key = cache_keys.schema_file_key(content)
        cached = self._cached_schema(file_key)
        if cached is not None:
            logger.info("File-based schema cache HIT for key: %s", file_key)
            return cached
        logger.info("File-based schema cache MISS for key: %s", file_key)

        preview = await asyncio.to_thread(self.normalizer.extract_preview, content, max_rows=self.preview_rows)
        semantic_key = cache_keys.schema_preview_key(preview)
        cached = self._cached_schema(semantic_key)
        if cached is not None:
            logger.info("Preview-based schema cache HIT for key: %s", semantic_key)
            return cached
        logger.info("Preview-based schema cache MISS for key: %s", semantic_key)

        logger.info("Calling AI backend to generate schema for %s", filename or "upload")
        answer = await self.client.generate_text(SCHEMA_PROMPT + canonical_json_dumps(preview))
        try:
            schema = decode_answer(answer)
        except AIError as e:
            raise AIError(f"Failed to parse AI schema response: {e.message}") from e

        encoded = answer.encode("utf-8")
        self.cache.put(file_key, encoded)
        self.cache.put(semantic_key, encoded)
        return schema

    def _cached_schema(self, key: str) -> Optional[Any]:
        raw = self.cache.get(key)
        if raw is None:
            return None
        try:
            return decode_answer(raw.decode("utf-8"))
        except (AIError, UnicodeDecodeError) as e:
            logger.warning("Cache error: failed to decode cached schema for key=%s (%s); treating as miss", key, e)
            return None
