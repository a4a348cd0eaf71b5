"""
config.py
=========
Explicit configuration for every pipeline component.

Settings are read once — from the environment (``Settings.from_env``, with
an optional ``.env`` file) or from a ``config.toml`` (``Settings.from_toml``)
— and then passed into each component's constructor. Components never read
environment variables themselves.

Environment variables (all optional):

  BRAIN_NAME, BRAIN_LOG_LEVEL
  BRAIN_CHUNK_SIZE, BRAIN_CHUNK_OVERLAP, BRAIN_CODE_OVERLAP_LINES
  BRAIN_EMBED_BACKEND, BRAIN_EMBED_MODEL, BRAIN_EMBED_DIMENSIONS,
  BRAIN_EMBED_MAX_TOKENS, BRAIN_EMBED_MAX_CHARS, BRAIN_CUDA_DEVICE
  BRAIN_CHROMA_PATH, BRAIN_COLLECTION, BRAIN_STORE_BATCH_SIZE
  BRAIN_LLM_BASE_URL, BRAIN_LLM_API_KEY, BRAIN_LLM_MODEL, BRAIN_LLM_MAX_TOKENS,
  BRAIN_LLM_TEMPERATURE, BRAIN_LLM_TIMEOUT, BRAIN_LLM_MAX_RETRIES
  BRAIN_INGEST_BATCH_SIZE, BRAIN_CONTEXT_CHARS, BRAIN_SEARCH_LIMIT
  BRAIN_HOST, BRAIN_PORT, BRAIN_CORS_ORIGINS
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from dotenv import load_dotenv  # type: ignore
from pydantic import BaseModel, Field, model_validator

logger = logging.getLogger(__name__)


def _clean_env(name: str, default: str = "") -> str:
    value = os.getenv(name, default)
    return value.strip().strip('"').strip("'")


def _env_overrides(mapping: Dict[str, str]) -> Dict[str, str]:
    """Return {field: raw value} for every mapped variable that is set."""
    found: Dict[str, str] = {}
    for field_name, env_name in mapping.items():
        value = _clean_env(env_name)
        if value:
            found[field_name] = value
    return found


# ---------------------------------------------------------------------------
# Component sections
# ---------------------------------------------------------------------------

class ChunkingConfig(BaseModel):
    chunk_size: int = Field(default=512, ge=1, description="Window size in words")
    chunk_overlap: int = Field(default=50, ge=0, description="Prose overlap in words")
    code_overlap_lines: int = Field(default=5, ge=0, description="Code overlap in lines")

    @model_validator(mode="after")
    def _overlap_smaller_than_window(self) -> "ChunkingConfig":
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")
        return self


class EmbeddingConfig(BaseModel):
    backend: Literal["sentence_transformers", "hash"] = "sentence_transformers"
    model: str = "sentence-transformers/all-MiniLM-L6-v2"
    dimensions: int = Field(default=384, ge=1)
    max_tokens: int = Field(default=512, ge=1)
    max_chars: int = Field(default=8000, ge=1)
    cuda_device: int = Field(default=0, ge=0)
    batch_size: int = Field(default=32, ge=1, description="Model forward-pass batch size")


class StorageConfig(BaseModel):
    path: Path = Path("./brain_data/chroma")
    collection: str = "documents"
    max_batch_size: int = Field(default=1000, ge=1, description="Rows per add/delete call")


class GenerationConfig(BaseModel):
    base_url: str = "http://localhost:1234/v1"
    api_key: str = "not-needed"
    model: str = "default"
    max_tokens: int = Field(default=1024, ge=1)
    temperature: float = Field(default=0.7, ge=0.0)
    timeout: float = Field(default=60.0, gt=0.0, description="Seconds per request")
    max_retries: int = Field(default=0, ge=0)


class IngestionConfig(BaseModel):
    batch_size: int = Field(default=64, ge=1, description="Chunks per embedding batch")


class RetrievalConfig(BaseModel):
    default_limit: int = Field(default=5, ge=1)
    context_chars: int = Field(default=12000, ge=1, description="Prompt budget in characters")
    preview_chars: int = Field(default=200, ge=0)


class ServerConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 3000
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------

_ENV = {
    "chunking": {
        "chunk_size": "BRAIN_CHUNK_SIZE",
        "chunk_overlap": "BRAIN_CHUNK_OVERLAP",
        "code_overlap_lines": "BRAIN_CODE_OVERLAP_LINES",
    },
    "embedding": {
        "backend": "BRAIN_EMBED_BACKEND",
        "model": "BRAIN_EMBED_MODEL",
        "dimensions": "BRAIN_EMBED_DIMENSIONS",
        "max_tokens": "BRAIN_EMBED_MAX_TOKENS",
        "max_chars": "BRAIN_EMBED_MAX_CHARS",
        "cuda_device": "BRAIN_CUDA_DEVICE",
    },
    "storage": {
        "path": "BRAIN_CHROMA_PATH",
        "collection": "BRAIN_COLLECTION",
        "max_batch_size": "BRAIN_STORE_BATCH_SIZE",
    },
    "generation": {
        "base_url": "BRAIN_LLM_BASE_URL",
        "api_key": "BRAIN_LLM_API_KEY",
        "model": "BRAIN_LLM_MODEL",
        "max_tokens": "BRAIN_LLM_MAX_TOKENS",
        "temperature": "BRAIN_LLM_TEMPERATURE",
        "timeout": "BRAIN_LLM_TIMEOUT",
        "max_retries": "BRAIN_LLM_MAX_RETRIES",
    },
    "ingestion": {"batch_size": "BRAIN_INGEST_BATCH_SIZE"},
    "retrieval": {
        "context_chars": "BRAIN_CONTEXT_CHARS",
        "default_limit": "BRAIN_SEARCH_LIMIT",
    },
    "server": {"host": "BRAIN_HOST", "port": "BRAIN_PORT"},
}

# config.toml layout used by earlier deployments: {section: {key: (section, field)}}
_TOML_KEYS = {
    "brain": {
        "name": (None, "name"),
        "chunk_size": ("chunking", "chunk_size"),
        "chunk_overlap": ("chunking", "chunk_overlap"),
        "code_overlap_lines": ("chunking", "code_overlap_lines"),
    },
    "embedding": {
        "backend": ("embedding", "backend"),
        "model": ("embedding", "model"),
        "dimensions": ("embedding", "dimensions"),
        "max_length": ("embedding", "max_tokens"),
        "max_tokens": ("embedding", "max_tokens"),
        "max_chars": ("embedding", "max_chars"),
        "cuda_device": ("embedding", "cuda_device"),
    },
    "storage": {
        "path": ("storage", "path"),
        "chroma_path": ("storage", "path"),
        "table_name": ("storage", "collection"),
        "collection": ("storage", "collection"),
    },
    "llm": {
        "base_url": ("generation", "base_url"),
        "api_key": ("generation", "api_key"),
        "model": ("generation", "model"),
        "max_tokens": ("generation", "max_tokens"),
        "temperature": ("generation", "temperature"),
        "timeout": ("generation", "timeout"),
        "max_retries": ("generation", "max_retries"),
    },
    "ingestion": {"batch_size": ("ingestion", "batch_size")},
    "retrieval": {
        "context_chars": ("retrieval", "context_chars"),
        "default_limit": ("retrieval", "default_limit"),
    },
    "server": {
        "host": ("server", "host"),
        "port": ("server", "port"),
        "cors_origins": ("server", "cors_origins"),
    },
}


class Settings(BaseModel):
    name: str = "brain"
    log_level: str = "INFO"
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    ingestion: IngestionConfig = Field(default_factory=IngestionConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Settings":
        """Build settings from ``BRAIN_*`` variables (after loading ``.env``)."""
        load_dotenv(env_file)

        data: Dict[str, Any] = {}
        for section, mapping in _ENV.items():
            values = _env_overrides(mapping)
            if values:
                data[section] = values

        origins = _clean_env("BRAIN_CORS_ORIGINS")
        if origins:
            data.setdefault("server", {})["cors_origins"] = [
                item.strip() for item in origins.split(",") if item.strip()
            ]
        for field_name, env_name in (("name", "BRAIN_NAME"), ("log_level", "BRAIN_LOG_LEVEL")):
            value = _clean_env(env_name)
            if value:
                data[field_name] = value

        return cls.model_validate(data)

    @classmethod
    def from_toml(cls, path: str | Path) -> "Settings":
        """Build settings from a ``config.toml`` file; unknown keys are ignored."""
        with open(path, "rb") as fh:
            raw = tomllib.load(fh)

        data: Dict[str, Any] = {}
        for table, keys in _TOML_KEYS.items():
            for key, value in (raw.get(table) or {}).items():
                target = keys.get(key)
                if target is None:
                    logger.debug("Ignoring config key [%s].%s", table, key)
                    continue
                section, field_name = target
                if section is None:
                    data[field_name] = value
                else:
                    data.setdefault(section, {})[field_name] = value

        return cls.model_validate(data)
