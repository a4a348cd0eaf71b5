# backend/schemas/__init__.py
from backend.schemas.response import (
    DeleteResponse,
    DocumentIn,
    ErrorResponse,
    IngestRequest,
    QueryRequest,
    SearchResponse,
)

__all__ = [
    "DeleteResponse", "DocumentIn", "ErrorResponse",
    "IngestRequest", "QueryRequest", "SearchResponse",
]
