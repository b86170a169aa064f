"""Centralized configuration for the RAG engine."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DOTENV_PATH = Path(__file__).resolve().parents[2] / ".env"
if DOTENV_PATH.exists():
    load_dotenv(dotenv_path=DOTENV_PATH, override=False)
else:
    load_dotenv()


class Paths(BaseModel):
    project_root: Path = Field(default=Path(__file__).resolve().parents[2])
    corpus_dir: Path | None = Field(default=None)


class ModelSettings(BaseModel):
    llm_provider: Literal["openai", "ollama"] = Field(default="openai")
    llm_model: str = Field(default="bidara")
    llm_base_url: str = Field(default="https://api.llm7.io/v1")
    api_key: str = Field(default="unused")
    temperature: float = Field(default=0.7)
    max_output_tokens: int = Field(default=500)


class CacheSettings(BaseModel):
    search_ttl_seconds: float = Field(default=30 * 60)
    query_ttl_seconds: float = Field(default=60 * 60)
    max_size: int = Field(default=1000)


class RetrievalSettings(BaseModel):
    top_k: int = Field(default=5)
    fuzzy_weight: float = Field(default=1.0)
    category_weight: float = Field(default=0.5)
    length_bonus_weight: float = Field(default=0.1)
    length_bonus_chars: int = Field(default=1000)
    duplicate_factor: float = Field(default=0.5)


class ChunkingSettings(BaseModel):
    chunk_size: int = Field(default=500)
    overlap: int = Field(default=100)
    use_chunking: bool = Field(default=True)


class ContextSettings(BaseModel):
    max_context_length: int = Field(default=4000)


class ValidationSettings(BaseModel):
    min_length: int = Field(default=10)
    max_length: int = Field(default=5000)
    truncation_window: int = Field(default=200)


class PipelineSettings(BaseModel):
    max_retries: int = Field(default=2)
    initial_backoff_seconds: float = Field(default=1.0)
    timeout_seconds: float = Field(default=30.0)
    # Exceeds timeout_seconds, so the overall timeout fires first.
    generation_timeout_seconds: float = Field(default=60.0)
    fallback_context_chars: int = Field(default=500)
    recent_requests: int = Field(default=100)


class ObservabilitySettings(BaseModel):
    log_level: str = Field(default="INFO")
    enable_tracing: bool = Field(default=False)
    otlp_endpoint: str = Field(default="http://localhost:4318/v1/traces")
    enable_prometheus: bool = Field(default=True)


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="RAG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    paths: Paths = Paths()
    model: ModelSettings = ModelSettings()
    cache: CacheSettings = CacheSettings()
    retrieval: RetrievalSettings = RetrievalSettings()
    chunking: ChunkingSettings = ChunkingSettings()
    context: ContextSettings = ContextSettings()
    validation: ValidationSettings = ValidationSettings()
    pipeline: PipelineSettings = PipelineSettings()
    observability: ObservabilitySettings = ObservabilitySettings()


@lru_cache
def get_settings() -> AppSettings:
    """Return cached settings instance."""

    settings = AppSettings()
    corpus_dir = settings.paths.corpus_dir
    if corpus_dir is not None and not corpus_dir.is_absolute():
        settings.paths.corpus_dir = settings.paths.project_root / corpus_dir
    return settings
