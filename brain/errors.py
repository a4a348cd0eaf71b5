"""
errors.py
=========
Exception taxonomy shared by every stage of the brain pipeline.

  BrainError
  ├── EmbeddingError          input too long / device or compute failure
  ├── StorageError            I/O or schema problems in the vector store
  │   └── DimensionMismatch   vector width differs from the table's width
  ├── QueryError              invalid limit, empty or uninitialised table
  │   └── EmptyStoreError
  ├── GenerationUnavailable   generation service unreachable or failing
  └── IngestionPartialFailure carries the IngestionReport of a partial run

Every error keeps a ``details`` dict so the transport layer can report
structured context without parsing messages.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class BrainError(Exception):
    """Base class for all pipeline errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class EmbeddingError(BrainError):
    """Raised when the embedding provider cannot produce a valid vector."""


class StorageError(BrainError):
    """Raised when a vector store operation fails."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if operation:
            details["operation"] = operation
        super().__init__(message, details)


class DimensionMismatch(StorageError):
    """Raised when a vector's width differs from the table's fixed width."""

    def __init__(self, expected: int, actual: int, operation: Optional[str] = None) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Embedding dimension mismatch: expected {expected}, got {actual}",
            operation=operation,
            details={"expected": expected, "actual": actual},
        )


class QueryError(BrainError):
    """Raised for malformed queries or a store that cannot be searched."""


class EmptyStoreError(QueryError):
    """Raised when searching a table that holds no records."""


class GenerationUnavailable(BrainError):
    """Raised when the generation service is unreachable, times out or errors."""


class IngestionPartialFailure(BrainError):
    """Raised in strict mode when some files of a source failed to index."""

    def __init__(self, report: Any) -> None:
        self.report = report
        failed = len(report.failed_files)
        super().__init__(
            f"Ingestion of {report.source} finished with {failed} failed file(s)",
            details={
                "source": report.source,
                "chunks_indexed": report.chunks_indexed,
                "failed_files": [f.file_path for f in report.failed_files],
            },
        )
