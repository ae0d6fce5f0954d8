"""
Service wiring.

One container per process: the three response caches are shared by every
request, everything else is stateless. Built lazily from ApplicationSettings.
"""

from __future__ import annotations

from typing import Optional

from sheetbridge.config.settings import ApplicationSettings, get_settings
from sheetbridge.services.ai_enhancement import AIEnhancementOrchestrator
from sheetbridge.services.chunker import ChunkPolicy
from sheetbridge.services.conversion_service import ConversionService
from sheetbridge.services.gemini_client import GeminiClient
from sheetbridge.services.response_cache import ResponseCache
from sheetbridge.services.schema_generation import SchemaGenerator
from sheetbridge.services.sheet_normalizer import SheetNormalizer
from sheetbridge.services.spreadsheet_writer import SpreadsheetWriter
from sheetbridge.utils.app_logger import get_logger

logger = get_logger(__name__)


class ServiceContainer:
    def __init__(self, settings: ApplicationSettings) -> None:
        self.settings = settings
        chunks = settings.chunks
        limits = settings.limits

        self.excel_to_json_cache = ResponseCache("excel-to-json", settings.cache.policy_for("excel_to_json"))
        self.json_to_excel_cache = ResponseCache("json-to-excel", settings.cache.policy_for("json_to_excel"))
        self.ai_response_cache = ResponseCache("ai-response", settings.cache.policy_for("ai_response"))

        self.writer = SpreadsheetWriter(
            flush_rows=limits.writer_flush_rows,
            annotation_max_chars=limits.annotation_max_chars,
            worker_threads=limits.worker_threads,
        )
        self.normalizer = SheetNormalizer(self.writer, worker_threads=limits.worker_threads)
        self.client = GeminiClient(settings.ai)

        self.orchestrator = AIEnhancementOrchestrator(
            self.client,
            self.ai_response_cache,
            fixed_policy=ChunkPolicy.fixed(
                chunks.fixed_size,
                max_chunk_chars=chunks.max_chunk_chars,
                max_total_chars=chunks.max_total_chars,
            ),
            adaptive_policy=ChunkPolicy.adaptive(
                small_threshold=chunks.adaptive_small_threshold,
                medium_threshold=chunks.adaptive_medium_threshold,
                medium_size=chunks.adaptive_medium_size,
                large_size=chunks.adaptive_large_size,
                max_chunk_chars=chunks.adaptive_max_chunk_chars,
            ),
            max_concurrency=settings.ai.max_concurrency,
            dynamic_concurrency_cap=settings.ai.dynamic_concurrency_cap,
        )
        self.conversion_service = ConversionService(
            self.normalizer,
            self.orchestrator,
            excel_to_json_cache=self.excel_to_json_cache,
            json_to_excel_cache=self.json_to_excel_cache,
            max_upload_bytes=limits.max_upload_bytes,
        )
        self.schema_generator = SchemaGenerator(
            self.normalizer,
            self.client,
            self.ai_response_cache,
            preview_rows=limits.schema_preview_rows,
        )

    def cache_stats(self):
        return [
            self.excel_to_json_cache.get_stats(),
            self.json_to_excel_cache.get_stats(),
            self.ai_response_cache.get_stats(),
        ]


_container: Optional[ServiceContainer] = None


def get_container() -> ServiceContainer:
    global _container
    if _container is None:
        _container = ServiceContainer(get_settings())
        logger.info("Service container initialized (AI configured: %s)", _container.client.is_enabled())
    return _container


def reset_container() -> None:
    """Drop the process container (tests, settings reload)."""
    global _container
    _container = None


def get_conversion_service() -> ConversionService:
    return get_container().conversion_service


def get_schema_generator() -> SchemaGenerator:
    return get_container().schema_generator
