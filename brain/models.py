"""
models.py
=========
Pydantic v2 models for everything that crosses a component boundary:
chunks, persisted document records, search results, ingestion reports and
generated answers.

The DocumentRecord field set is the on-disk contract of the vector store;
renaming a field orphans previously indexed data.
"""

from __future__ import annotations

import hashlib
from datetime import UTC, datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class SourceType(str, Enum):
    GITHUB = "github"
    LOCAL = "local"


class DocumentKind(str, Enum):
    CODE = "code"
    PROSE = "prose"


# ---------------------------------------------------------------------------
# Source naming
# ---------------------------------------------------------------------------

def source_type_for(source: str) -> SourceType:
    """Infer the source type from the ``github:`` / ``local:`` prefix."""
    prefix, sep, _ = source.partition(":")
    if sep:
        try:
            return SourceType(prefix.lower())
        except ValueError:
            pass
    raise ValueError(f"Cannot infer source type from source name: {source!r}")


def derive_document_id(source: str, file_path: str, chunk_index: int) -> str:
    """
    Deterministic record id from (source, file path, chunk index).

    Timestamps and content are deliberately excluded so that re-ingesting the
    same chunk position yields the same id.
    """
    key = f"{source}\x00{file_path}\x00{chunk_index}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:32]


def utc_now() -> str:
    return datetime.now(UTC).isoformat(timespec="seconds").replace("+00:00", "Z")


# ---------------------------------------------------------------------------
# Chunks and records
# ---------------------------------------------------------------------------

class Chunk(BaseModel):
    """A contiguous slice of one document; ``text == document[start:end]``."""

    text: str
    index: int = Field(ge=0, description="Zero-based position within the document")
    kind: DocumentKind
    start: int = Field(ge=0, description="Character offset of the slice start")
    end: int = Field(ge=0, description="Character offset one past the slice end")


class SourceDocument(BaseModel):
    """One materialised file handed over by a source loader."""

    source: str
    source_type: SourceType
    file_path: str
    text: str
    kind: Optional[DocumentKind] = None


class DocumentRecord(BaseModel):
    id: str
    content: str
    source: str
    source_type: SourceType
    file_path: str
    chunk_index: int = Field(ge=0)
    created_at: str = Field(default_factory=utc_now)
    embedding: List[float]

    @field_validator("created_at", mode="before")
    @classmethod
    def _ensure_utc_string(cls, v: Any) -> str:
        if isinstance(v, datetime):
            return v.astimezone(UTC).isoformat(timespec="seconds").replace("+00:00", "Z")
        return str(v)


class SearchResult(BaseModel):
    id: str
    content: str
    source: str
    source_type: SourceType
    file_path: str
    chunk_index: int
    created_at: str
    score: float = Field(description="Cosine similarity (1 - distance)")
    distance: float = Field(description="Cosine distance")


class SourceSummary(BaseModel):
    source: str
    source_type: SourceType
    document_count: int


# ---------------------------------------------------------------------------
# Ingestion and generation results
# ---------------------------------------------------------------------------

class FailedFile(BaseModel):
    file_path: str
    reason: str


class IngestionReport(BaseModel):
    source: str
    files_seen: int = 0
    files_indexed: int = 0
    chunks_indexed: int = 0
    failed_files: List[FailedFile] = Field(default_factory=list)
    cancelled: bool = False
    elapsed_ms: float = 0.0

    @property
    def succeeded(self) -> bool:
        return not self.failed_files and not self.cancelled


class Citation(BaseModel):
    source: str
    file_path: str
    chunk_index: int
    score: float
    content_preview: str


class QueryAnswer(BaseModel):
    answer: str
    citations: List[Citation] = Field(default_factory=list)
    model: str
