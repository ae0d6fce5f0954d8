from __future__ import annotations

import os
import sys
from pathlib import Path


ROOT_DIR = Path(__file__).resolve().parent
BACKEND_DIR = ROOT_DIR / "backend"

if BACKEND_DIR.exists():
    backend_path = str(BACKEND_DIR)
    if backend_path not in sys.path:
        sys.path.insert(0, backend_path)


def _ensure_test_env() -> None:
    # Never read a developer .env or reach a real AI backend from tests.
    os.environ.setdefault("DOCKER_CONTAINER", "true")
    os.environ.setdefault("ENVIRONMENT", "test")
    os.environ.setdefault("GEMINI_API_KEY", "")
    os.environ.setdefault("GEMINI_MODEL", "gemini-test")
    os.environ.setdefault("GEMINI_BASE_URL", "http://gemini.invalid")


_ensure_test_env()
