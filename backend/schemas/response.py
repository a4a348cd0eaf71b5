"""
schemas/response.py
===================
Pydantic v2 request/response bodies for the HTTP adapter.

Pipeline models (SearchResult, QueryAnswer, IngestionReport, SourceSummary)
are returned as-is; the models here only wrap them for transport.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from brain.models import DocumentKind, SearchResult, SourceType, utc_now


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class QueryRequest(BaseModel):
    query: str
    # validated by the pipeline so bad limits surface as QueryError (400)
    limit: int = 5


class DocumentIn(BaseModel):
    file_path: str
    text: str
    kind: Optional[DocumentKind] = None


class IngestRequest(BaseModel):
    source: str = Field(description="github:<owner>/<repo> or local:<path>")
    source_type: Optional[SourceType] = None
    documents: List[DocumentIn] = Field(default_factory=list)
    replace: bool = Field(default=False, description="Delete the source before indexing")
    strict: bool = Field(default=False, description="Fail the request if any file fails to index")


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class SearchResponse(BaseModel):
    query: str
    results: List[SearchResult] = Field(default_factory=list)


class DeleteResponse(BaseModel):
    source: str
    deleted: int


class ErrorResponse(BaseModel):
    error: str
    detail: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    timestamp: str = Field(default_factory=utc_now)
