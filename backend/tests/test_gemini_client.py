from __future__ import annotations

import asyncio
from typing import Any, Dict, List

import httpx
import pytest

from sheetbridge.config.settings import AISettings
from sheetbridge.exceptions import AIError
from sheetbridge.services import gemini_client
from sheetbridge.services.gemini_client import GeminiClient, extract_answer_text


def _envelope(text: str) -> Dict[str, Any]:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


class _FakeResponse:
    def __init__(self, status_code: int, payload: Any = None, text: str = "") -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self) -> Any:
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


def _install_fake_http(monkeypatch, response: _FakeResponse, *, delay: float = 0.0) -> List[Dict[str, Any]]:
    calls: List[Dict[str, Any]] = []

    class _FakeAsyncClient:
        def __init__(self, *args: Any, **kwargs: Any) -> None:
            calls.append({"client_kwargs": kwargs})

        async def __aenter__(self):
            return self

        async def __aexit__(self, exc_type, exc, tb) -> bool:
            return False

        async def post(self, url: str, *, params=None, json=None):
            calls.append({"url": url, "params": params, "json": json})
            if delay:
                await asyncio.sleep(delay)
            return response

    monkeypatch.setattr(gemini_client.httpx, "AsyncClient", _FakeAsyncClient)
    return calls


def _client(**overrides: Any) -> GeminiClient:
    values = {"api_key": "secret", "model": "gemini-test", "base_url": "http://ai.test/", "timeout_seconds": 5}
    values.update(overrides)
    return GeminiClient(AISettings(**values))


def test_extract_answer_text_strips_fences() -> None:
    assert extract_answer_text(_envelope('```json\n{"a": 1}\n```')) == '{"a": 1}'
    assert extract_answer_text(_envelope("```\n[1]\n```")) == "[1]"
    assert extract_answer_text(_envelope(' {"a": 1} ')) == '{"a": 1}'


@pytest.mark.parametrize(
    "envelope",
    [{}, {"candidates": []}, {"candidates": [{"content": {"parts": [{}]}}]}, _envelope("   "), _envelope("```json\n```")],
)
def test_extract_answer_text_rejects_bad_envelopes(envelope) -> None:
    with pytest.raises(AIError):
        extract_answer_text(envelope)


@pytest.mark.asyncio
async def test_generate_json_posts_prompt_and_decodes(monkeypatch) -> None:
    calls = _install_fake_http(monkeypatch, _FakeResponse(200, _envelope('```json\n{"S": []}\n```')))
    client = _client()

    result = await client.generate_json("hello", json_response=True)

    assert result == {"S": []}
    request = calls[-1]
    assert request["url"] == "http://ai.test/v1beta/models/gemini-test:generateContent"
    assert request["params"] == {"key": "secret"}
    assert request["json"]["contents"] == [{"parts": [{"text": "hello"}]}]
    assert request["json"]["generationConfig"] == {"responseMimeType": "application/json"}


@pytest.mark.asyncio
async def test_plain_text_request_has_no_generation_config(monkeypatch) -> None:
    calls = _install_fake_http(monkeypatch, _FakeResponse(200, _envelope("{}")))

    assert await _client().generate_text("hi") == "{}"
    assert "generationConfig" not in calls[-1]["json"]


@pytest.mark.asyncio
async def test_http_error_status_raises(monkeypatch) -> None:
    _install_fake_http(monkeypatch, _FakeResponse(503, None, text="overloaded"))

    with pytest.raises(AIError, match="503") as exc_info:
        await _client().generate_text("hi")
    assert exc_info.value.details["status_code"] == 503


@pytest.mark.asyncio
async def test_non_json_answer_raises(monkeypatch) -> None:
    _install_fake_http(monkeypatch, _FakeResponse(200, _envelope("not json")))

    with pytest.raises(AIError, match="not valid JSON"):
        await _client().generate_json("hi")


@pytest.mark.asyncio
async def test_non_json_envelope_raises(monkeypatch) -> None:
    _install_fake_http(monkeypatch, _FakeResponse(200, ValueError("bad body")))

    with pytest.raises(AIError, match="envelope"):
        await _client().generate_text("hi")


@pytest.mark.asyncio
async def test_timeout_raises(monkeypatch) -> None:
    _install_fake_http(monkeypatch, _FakeResponse(200, _envelope("{}")), delay=1.0)

    with pytest.raises(AIError, match="timed out"):
        await _client(timeout_seconds=0.05).generate_text("hi")


@pytest.mark.asyncio
async def test_unconfigured_client_raises_without_calling(monkeypatch) -> None:
    calls = _install_fake_http(monkeypatch, _FakeResponse(200, _envelope("{}")))
    client = _client(api_key="")

    assert client.is_enabled() is False
    with pytest.raises(AIError, match="not configured"):
        await client.generate_text("hi")
    assert calls == []


@pytest.mark.parametrize(
    "error",
    [
        httpx.InvalidURL("Invalid non-printable ASCII character in URL"),
        httpx.UnsupportedProtocol("Request URL has an unsupported protocol 'ftp://'."),
    ],
)
@pytest.mark.asyncio
async def test_bad_base_url_raises_ai_error(monkeypatch, error: Exception) -> None:
    class _RaisingAsyncClient:
        def __init__(self, *args: Any, **kwargs: Any) -> None:
            pass

        async def __aenter__(self):
            return self

        async def __aexit__(self, exc_type, exc, tb) -> bool:
            return False

        async def post(self, url: str, *, params=None, json=None):
            raise error

    monkeypatch.setattr(gemini_client.httpx, "AsyncClient", _RaisingAsyncClient)

    with pytest.raises(AIError, match="AI request failed"):
        await _client(base_url="ftp://ai.test/").generate_text("hi")
