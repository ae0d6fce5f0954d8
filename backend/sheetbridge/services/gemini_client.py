"""
Gemini generateContent client.

Request:  POST {base_url}/v1beta/models/{model}:generateContent?key=...
          {"contents": [{"parts": [{"text": prompt}]}]}
Response: answer text at candidates[0].content.parts[0].text, possibly wrapped
          in a ```json fence.

Every failure (not configured, timeout, transport, bad base URL, HTTP status, envelope
shape, blank or non-JSON answer) surfaces as AIError. The API key travels as a
query parameter and is never logged.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, Optional

import httpx

from sheetbridge.config.settings import AISettings
from sheetbridge.exceptions import AIError
from sheetbridge.utils.app_logger import get_logger
from sheetbridge.utils.json_utils import strip_code_fences

logger = get_logger(__name__)


def extract_answer_text(envelope: Any) -> str:
    """
    Pull the answer text out of a generateContent response and strip code fences.

    Raises:
        AIError: the fixed answer path is missing or the answer is blank
    """
    try:
        text = envelope["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as e:
        raise AIError("Failed to extract text from AI response: unexpected response structure") from e
    if not isinstance(text, str):
        raise AIError("Failed to extract text from AI response: answer is not text")
    text = strip_code_fences(text)
    if not text:
        raise AIError("AI response text is empty")
    return text


def decode_answer(text: str) -> Any:
    try:
        return json.loads(text)
    except (TypeError, ValueError) as e:
        raise AIError(f"AI response is not valid JSON: {e}") from e


class GeminiClient:
    """Thin async wrapper around the generateContent endpoint."""

    def __init__(self, settings: Optional[AISettings] = None) -> None:
        self.settings = settings or AISettings()
        self.timeout_s = float(self.settings.timeout_seconds)

    def is_enabled(self) -> bool:
        return self.settings.is_configured

    @property
    def url(self) -> str:
        return f"{self.settings.base_url}{self.settings.model_path}"

    @staticmethod
    def build_request_body(prompt: str, *, json_response: bool = False) -> Dict[str, Any]:
        body: Dict[str, Any] = {"contents": [{"parts": [{"text": prompt}]}]}
        if json_response:
            body["generationConfig"] = {"responseMimeType": "application/json"}
        return body

    async def generate_text(self, prompt: str, *, json_response: bool = False) -> str:
        """Send one prompt; returns the fence-stripped answer text."""
        if not self.is_enabled():
            raise AIError("AI backend is not configured (set GEMINI_API_KEY and GEMINI_MODEL)")

        body = self.build_request_body(prompt, json_response=json_response)
        try:
            envelope = await asyncio.wait_for(self._post(body), timeout=self.timeout_s)
        except AIError:
            raise
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise AIError(f"AI request timed out after {self.timeout_s:g} seconds") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise AIError(f"AI request failed: {e.__class__.__name__}: {e}") from e
        return extract_answer_text(envelope)

    async def generate_json(self, prompt: str, *, json_response: bool = False) -> Any:
        return decode_answer(await self.generate_text(prompt, json_response=json_response))

    async def _post(self, body: Dict[str, Any]) -> Any:
        async with httpx.AsyncClient(timeout=self.timeout_s) as client:
            resp = await client.post(self.url, params={"key": self.settings.api_key}, json=body)
            if resp.status_code >= 400:
                raise AIError(
                    f"AI HTTP {resp.status_code}: {resp.text[:500]}",
                    details={"status_code": resp.status_code},
                )
            try:
                return resp.json()
            except ValueError as e:
                raise AIError("AI response envelope is not JSON") from e
