"""
Centralized configuration for SheetBridge

Type-safe settings built on Pydantic Settings. Every tunable constant of the
conversion pipeline (AI timeouts and concurrency, chunk ceilings, cache bounds,
upload limits) lives here rather than in the services that consume it.
"""

import os
from enum import Enum
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sheetbridge.services.response_cache import CachePolicy

_ENV_FILE = ".env" if not os.getenv("DOCKER_CONTAINER") else None


class Environment(str, Enum):
    """Application environment types"""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


class AISettings(BaseSettings):
    """Generative AI backend (Gemini generateContent API)"""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    api_key: str = Field(
        default="",
        description="API key sent as the `key` query parameter"
    )
    model: str = Field(
        default="gemini-1.5-flash",
        description="Model name used to build the generateContent path"
    )
    base_url: str = Field(
        default="https://generativelanguage.googleapis.com",
        description="AI backend base URL"
    )
    timeout_seconds: float = Field(
        default=90.0,
        description="Per-chunk request timeout in seconds"
    )
    max_concurrency: int = Field(
        default=3,
        description="Fixed bound on in-flight chunk requests (spreadsheet->JSON)"
    )
    dynamic_concurrency_cap: int = Field(
        default=5,
        description="Upper cap of the sheet-count derived bound (JSON->spreadsheet)"
    )

    @field_validator("base_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v):
        return (v or "").strip().rstrip("/")

    @property
    def model_path(self) -> str:
        return f"/v1beta/models/{self.model}:generateContent"

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.model and self.base_url)


class ChunkSettings(BaseSettings):
    """Chunk sizing policies for AI submission"""

    model_config = SettingsConfigDict(
        env_prefix="CHUNK_",
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    fixed_size: int = Field(default=100, description="Rows per chunk for spreadsheet->JSON")
    max_total_chars: int = Field(default=300_000, description="Serialized workbook ceiling")
    max_chunk_chars: int = Field(default=30_000, description="Serialized chunk ceiling")

    adaptive_small_threshold: int = Field(default=200, description="Single chunk up to this many rows")
    adaptive_medium_threshold: int = Field(default=1000, description="Medium sheets upper bound")
    adaptive_medium_size: int = Field(default=200, description="Chunk size for medium sheets")
    adaptive_large_size: int = Field(default=500, description="Chunk size for large sheets")
    adaptive_max_chunk_chars: Optional[int] = Field(
        default=None,
        description="Optional serialized chunk ceiling for the adaptive policy"
    )


class CacheSettings(BaseSettings):
    """Bounds for the three in-memory sub-caches"""

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    excel_to_json_max_entries: Optional[int] = Field(default=None)
    excel_to_json_max_weight_bytes: Optional[int] = Field(default=50 * 1024 * 1024)
    excel_to_json_expire_after_write_seconds: Optional[float] = Field(default=None)
    excel_to_json_expire_after_access_seconds: Optional[float] = Field(default=300.0)

    json_to_excel_max_entries: Optional[int] = Field(default=None)
    json_to_excel_max_weight_bytes: Optional[int] = Field(default=50 * 1024 * 1024)
    json_to_excel_expire_after_write_seconds: Optional[float] = Field(default=None)
    json_to_excel_expire_after_access_seconds: Optional[float] = Field(default=300.0)

    ai_response_max_entries: Optional[int] = Field(default=None)
    ai_response_max_weight_bytes: Optional[int] = Field(default=50 * 1024 * 1024)
    ai_response_expire_after_write_seconds: Optional[float] = Field(default=None)
    ai_response_expire_after_access_seconds: Optional[float] = Field(default=300.0)

    def policy_for(self, name: str) -> CachePolicy:
        """Build the eviction policy of one sub-cache (excel_to_json, json_to_excel, ai_response)."""
        return CachePolicy(
            max_entries=getattr(self, f"{name}_max_entries"),
            max_weight=getattr(self, f"{name}_max_weight_bytes"),
            expire_after_write=getattr(self, f"{name}_expire_after_write_seconds"),
            expire_after_access=getattr(self, f"{name}_expire_after_access_seconds"),
        )


class LimitSettings(BaseSettings):
    """Input limits and writer tuning"""

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    max_upload_bytes: int = Field(default=10 * 1024 * 1024, description="Upload size limit")
    writer_flush_rows: int = Field(default=1000, description="Rows per writer batch")
    annotation_max_chars: int = Field(default=250, description="Original value length in change notes")
    schema_preview_rows: int = Field(default=3, description="Data rows per sheet in schema previews")
    worker_threads: int = Field(default=4, description="Threads for sheet parsing and row preparation")


class ApplicationSettings(BaseSettings):
    """Main application settings - aggregates all other settings"""

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment"
    )
    log_level: str = Field(default="INFO", description="Root log level")

    ai: AISettings = AISettings()
    chunks: ChunkSettings = ChunkSettings()
    cache: CacheSettings = CacheSettings()
    limits: LimitSettings = LimitSettings()

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION

    @property
    def is_test(self) -> bool:
        return self.environment == Environment.TEST


settings = ApplicationSettings()


def get_settings() -> ApplicationSettings:
    """
    Get the global settings instance.

    Usable with FastAPI's Depends() for dependency injection.
    """
    return settings


def reload_settings() -> ApplicationSettings:
    """Reload settings from environment (useful for testing)"""
    global settings
    settings = ApplicationSettings()
    return settings
