"""
JSON helpers shared by the cache key deriver, the AI orchestrator and the pipeline.

- Canonical serialization keeps key order: sheet and column order are part of
  the content, so two workbooks that only differ in column order must not
  share a fingerprint.
- AI answers are frequently wrapped in markdown code fences; strip them before
  decoding.
"""

from __future__ import annotations

import hashlib
import json
import re
from typing import Any, Union

_FENCE_OPEN_RE = re.compile(r"^```[A-Za-z0-9_-]*\s*")
_FENCE_CLOSE_RE = re.compile(r"\s*```\s*$")


def sha256_hex(value: Union[str, bytes]) -> str:
    data = value.encode("utf-8") if isinstance(value, str) else value
    return hashlib.sha256(data).hexdigest()


def canonical_json_dumps(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"), default=str)


def json_dumps_bytes(obj: Any) -> bytes:
    return canonical_json_dumps(obj).encode("utf-8")


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` (or bare ```) block."""
    text = (text or "").strip()
    if not text.startswith("```"):
        return text
    text = _FENCE_OPEN_RE.sub("", text, count=1)
    text = _FENCE_CLOSE_RE.sub("", text, count=1)
    return text.strip()


def truncate_text(text: str, *, max_chars: int) -> str:
    if max_chars <= 0:
        return ""
    return text if len(text) <= max_chars else text[:max_chars]
