"""
In-process stand-ins for the AI backend and small xlsx builders.
"""

from __future__ import annotations

import asyncio
import json
from io import BytesIO
from typing import Any, Callable, Dict, List, Optional

from openpyxl import Workbook as XlsxWorkbook
from openpyxl import load_workbook

from sheetbridge.exceptions import AIError
from sheetbridge.services.ai_enhancement import AIEnhancementOrchestrator
from sheetbridge.services.chunker import ChunkPolicy
from sheetbridge.services.conversion_service import ConversionService
from sheetbridge.services.response_cache import ResponseCache
from sheetbridge.services.sheet_normalizer import SheetNormalizer

RowTransform = Callable[[Dict[str, Any]], Dict[str, Any]]


class FakeAIClient:
    """Echoes each chunk back through `transform` under its sheet name."""

    def __init__(
        self,
        transform: Optional[RowTransform] = None,
        *,
        answer: Optional[Callable[[str, List[Dict[str, Any]]], Any]] = None,
        delay: Optional[Callable[[str, List[Dict[str, Any]]], float]] = None,
    ) -> None:
        self.transform = transform or (lambda row: dict(row))
        self.answer = answer
        self.delay = delay
        self.calls: List[Dict[str, Any]] = []
        self.prompts: List[str] = []

    def is_enabled(self) -> bool:
        return True

    async def generate_json(self, prompt: str, *, json_response: bool = False) -> Any:
        self.prompts.append(prompt)
        payload = json.loads(prompt.split("Input:\n", 1)[1])
        self.calls.append(payload)
        ((sheet_name, rows),) = payload.items()
        if self.delay is not None:
            await asyncio.sleep(self.delay(sheet_name, rows))
        if self.answer is not None:
            return self.answer(sheet_name, rows)
        return {sheet_name: [self.transform(row) for row in rows]}


class FailingAIClient(FakeAIClient):
    async def generate_json(self, prompt: str, *, json_response: bool = False) -> Any:
        self.prompts.append(prompt)
        raise AIError("AI request timed out after 90 seconds")


class FakeSchemaClient:
    """Answers schema prompts with a fixed text."""

    def __init__(self, answer: str) -> None:
        self.answer = answer
        self.prompts: List[str] = []

    def is_enabled(self) -> bool:
        return True

    async def generate_text(self, prompt: str, *, json_response: bool = False) -> str:
        self.prompts.append(prompt)
        return self.answer


def build_xlsx(sheets: Dict[str, List[List[Any]]]) -> bytes:
    """xlsx bytes from {title: [[cell, ...], ...]}; row lists are anchored at A1, None leaves a cell empty."""
    wb = XlsxWorkbook()
    wb.remove(wb.active)
    for title, rows in sheets.items():
        ws = wb.create_sheet(title=title)
        for r, row in enumerate(rows, start=1):
            for c, value in enumerate(row, start=1):
                if value is not None:
                    ws.cell(row=r, column=c, value=value)
    out = BytesIO()
    wb.save(out)
    return out.getvalue()


def open_xlsx(content: bytes):
    return load_workbook(BytesIO(content))


def make_orchestrator(
    client: Any,
    cache: Optional[ResponseCache] = None,
    **kwargs: Any,
) -> AIEnhancementOrchestrator:
    return AIEnhancementOrchestrator(
        client,
        cache if cache is not None else ResponseCache("ai-response-test"),
        fixed_policy=kwargs.pop("fixed_policy", ChunkPolicy.fixed()),
        adaptive_policy=kwargs.pop("adaptive_policy", ChunkPolicy.adaptive()),
        **kwargs,
    )


def make_service(client: Any, *, ai_cache: Optional[ResponseCache] = None, **kwargs: Any) -> ConversionService:
    return ConversionService(
        SheetNormalizer(worker_threads=2),
        make_orchestrator(client, ai_cache),
        excel_to_json_cache=ResponseCache("excel-to-json-test"),
        json_to_excel_cache=ResponseCache("json-to-excel-test"),
        **kwargs,
    )
