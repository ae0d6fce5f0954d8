from __future__ import annotations

import pytest

from sheetbridge.services.container import reset_container
from sheetbridge.services.response_cache import ResponseCache
from sheetbridge.services.sheet_normalizer import SheetNormalizer
from tests.utils.fakes import FakeAIClient


@pytest.fixture
def fake_client() -> FakeAIClient:
    return FakeAIClient()


@pytest.fixture
def ai_cache() -> ResponseCache:
    return ResponseCache("ai-response-test")


@pytest.fixture
def normalizer() -> SheetNormalizer:
    return SheetNormalizer(worker_threads=2)


@pytest.fixture(autouse=True)
def _fresh_container():
    reset_container()
    yield
    reset_container()
