"""
chroma_store.py
===============
Persistent vector store for DocumentRecords, backed by a ChromaDB
PersistentClient collection in cosine space.

Storage contract:
  • Embedding width is fixed when the collection is created and recorded in
    the collection metadata; any other width fails with DimensionMismatch.
  • Inserts are append-only. The derived document id is stored as the
    ``doc_id`` metadata field and every physical row gets its own key, so
    re-ingesting a source without deleting it first duplicates its rows.
  • Inserts are written in batches and are best-effort: if a later batch
    fails, earlier batches stay applied.
  • Search orders by ascending cosine distance; equal distances keep
    insertion order (``seq`` metadata, monotonic per process). When the
    approximate index cannot show every row tied at the cut, the ranking is
    recomputed exactly over the whole collection.
  • Readers and writers may run concurrently; a search is not guaranteed to
    observe an insert issued by another caller a moment earlier.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Sequence, Tuple

import chromadb  # type: ignore
import numpy as np

from brain.config import StorageConfig
from brain.errors import DimensionMismatch, EmptyStoreError, QueryError, StorageError
from brain.models import DocumentRecord, SearchResult, SourceSummary, SourceType

logger = logging.getLogger(__name__)

_SCHEMA_VERSION = 1
_LIST_PAGE_SIZE = 5000

# distances closer than this are ties and fall back to insertion order
_TIE_EPSILON = 1e-6

# (distance, seq, content, metadata)
_Row = Tuple[float, int, str, Dict[str, Any]]


def _row_order(row: _Row) -> Tuple[float, int]:
    return row[0], row[1]


def _cut_is_open(rows: List[_Row], limit: int) -> bool:
    """True when rows beyond the fetched window could still belong in the top ``limit``."""
    if len(rows) < limit:
        return True
    return rows[-1][0] <= rows[limit - 1][0] + _TIE_EPSILON


class ChromaVectorStore:
    """Chunk records + embeddings in one chroma collection."""

    def __init__(self, config: StorageConfig, dimension: int) -> None:
        self._name = config.collection
        self._dimension = dimension
        self._max_batch_size = config.max_batch_size
        self._seq_lock = threading.Lock()
        self._last_seq = 0

        persist_dir = Path(config.path)
        try:
            persist_dir.mkdir(parents=True, exist_ok=True)
            self._client = chromadb.PersistentClient(path=str(persist_dir))
        except Exception as exc:
            raise StorageError(
                f"Cannot open vector store at {persist_dir}: {exc}",
                operation="open",
            ) from exc

        self._collection = self._open_collection()
        logger.info(
            "Vector collection '%s' ready (%d documents, %d dimensions).",
            self._name, self.count(), self._dimension,
        )

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def collection_name(self) -> str:
        return self._name

    def _open_collection(self) -> Any:
        existing = self._existing_collection_names()
        try:
            if self._name in existing:
                collection = self._client.get_collection(self._name)
            else:
                collection = self._client.create_collection(
                    name=self._name,
                    metadata={
                        "hnsw:space": "cosine",
                        "dimension": self._dimension,
                        "schema_version": _SCHEMA_VERSION,
                    },
                )
                logger.info("Created collection: %s", self._name)
        except Exception as exc:
            raise StorageError(f"Cannot open collection {self._name}: {exc}", operation="open") from exc

        stored = (collection.metadata or {}).get("dimension")
        if stored is not None and int(stored) != self._dimension:
            raise DimensionMismatch(expected=int(stored), actual=self._dimension, operation="open")
        return collection

    def _existing_collection_names(self) -> List[str]:
        try:
            listed = self._client.list_collections()
        except Exception as exc:
            raise StorageError(f"Cannot list collections: {exc}", operation="open") from exc
        # chromadb < 0.6 returns Collection objects, later versions return names
        return [getattr(item, "name", item) for item in listed]

    def _next_seq(self) -> int:
        with self._seq_lock:
            self._last_seq = max(time.time_ns(), self._last_seq + 1)
            return self._last_seq

    # -----------------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------------

    def insert(self, records: Sequence[DocumentRecord]) -> int:
        """Append ``records``; returns the number of rows written."""
        if not records:
            return 0

        for record in records:
            if len(record.embedding) != self._dimension:
                raise DimensionMismatch(
                    expected=self._dimension, actual=len(record.embedding), operation="insert",
                )

        inserted = 0
        for start in range(0, len(records), self._max_batch_size):
            batch = records[start:start + self._max_batch_size]
            try:
                self._collection.add(
                    ids=[f"{r.id}-{uuid.uuid4().hex[:12]}" for r in batch],
                    embeddings=[list(r.embedding) for r in batch],
                    documents=[r.content for r in batch],
                    metadatas=[self._metadata_for(r) for r in batch],
                )
            except Exception as exc:
                raise StorageError(
                    f"Failed to insert documents: {exc}",
                    operation="insert",
                    details={"inserted": inserted, "requested": len(records)},
                ) from exc
            inserted += len(batch)

        logger.info("Inserted %d documents into %s", inserted, self._name)
        return inserted

    def _metadata_for(self, record: DocumentRecord) -> Dict[str, Any]:
        return {
            "doc_id": record.id,
            "source": record.source,
            "source_type": SourceType(record.source_type).value,
            "file_path": record.file_path,
            "chunk_index": record.chunk_index,
            "created_at": record.created_at,
            "seq": self._next_seq(),
        }

    def delete_by_source(self, source: str) -> int:
        """Delete every record of ``source``; 0 when the source is unknown."""
        try:
            found = self._collection.get(where={"source": source}, include=[])
            ids = list(found.get("ids") or [])
            for start in range(0, len(ids), self._max_batch_size):
                self._collection.delete(ids=ids[start:start + self._max_batch_size])
        except Exception as exc:
            raise StorageError(
                f"Failed to delete source {source}: {exc}",
                operation="delete_by_source",
                details={"source": source},
            ) from exc

        logger.info("Deleted %d documents from source: %s", len(ids), source)
        return len(ids)

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    def search(self, query_vector: Sequence[float], limit: int) -> List[SearchResult]:
        if limit < 1:
            raise QueryError("limit must be at least 1", details={"limit": limit})
        if len(query_vector) != self._dimension:
            raise DimensionMismatch(
                expected=self._dimension, actual=len(query_vector), operation="search",
            )

        total = self.count()
        if total == 0:
            raise EmptyStoreError(
                f"Collection {self._name} is empty", details={"collection": self._name},
            )

        # over-fetch so equal-distance neighbours at the cut can be re-ordered
        n_results = min(total, max(limit * 2, limit + 10))
        try:
            raw = self._collection.query(
                query_embeddings=[list(query_vector)],
                n_results=n_results,
                include=["documents", "metadatas", "distances"],
            )
        except Exception as exc:
            raise StorageError(f"Similarity search failed: {exc}", operation="search") from exc

        rows: List[_Row] = []
        documents = (raw.get("documents") or [[]])[0]
        metadatas = (raw.get("metadatas") or [[]])[0]
        distances = (raw.get("distances") or [[]])[0]
        for content, meta, distance in zip(documents, metadatas, distances):
            meta = meta or {}
            rows.append((float(distance), int(meta.get("seq", 0)), content or "", meta))
        rows.sort(key=_row_order)

        if len(rows) < total and _cut_is_open(rows, limit):
            logger.debug(
                "Ties cross the top-%d cut (%d of %d rows fetched); ranking exhaustively.",
                limit, len(rows), total,
            )
            rows = self._exact_rows(query_vector, limit)

        return [self._to_result(content, meta, distance) for distance, _, content, meta in rows[:limit]]

    def _exact_rows(self, query_vector: Sequence[float], limit: int) -> List[_Row]:
        """
        Rank every stored row by exact cosine distance, paging through the
        collection. Only the best ``limit`` rows plus anything tied with the
        ``limit``-th row are kept between pages.
        """
        query = np.asarray(query_vector, dtype=np.float64)
        query = query / (np.linalg.norm(query) or 1.0)

        kept: List[_Row] = []
        offset = 0
        try:
            while True:
                page = self._collection.get(
                    include=["embeddings", "documents", "metadatas"],
                    limit=_LIST_PAGE_SIZE,
                    offset=offset,
                )
                embeddings = page.get("embeddings")
                if embeddings is None or len(embeddings) == 0:
                    break
                matrix = np.asarray(embeddings, dtype=np.float64)
                norms = np.linalg.norm(matrix, axis=1)
                norms[norms == 0.0] = 1.0
                page_distances = 1.0 - (matrix @ query) / norms

                documents = page.get("documents") or [""] * len(matrix)
                metadatas = page.get("metadatas") or [{}] * len(matrix)
                for content, meta, distance in zip(documents, metadatas, page_distances):
                    meta = meta or {}
                    kept.append((float(distance), int(meta.get("seq", 0)), content or "", meta))

                kept.sort(key=_row_order)
                if len(kept) > limit:
                    cut = kept[limit - 1][0]
                    kept = [row for row in kept if row[0] <= cut + _TIE_EPSILON]

                if len(matrix) < _LIST_PAGE_SIZE:
                    break
                offset += _LIST_PAGE_SIZE
        except Exception as exc:
            raise StorageError(f"Similarity search failed: {exc}", operation="search") from exc
        return kept

    @staticmethod
    def _to_result(content: str, meta: Dict[str, Any], distance: float) -> SearchResult:
        return SearchResult(
            id=str(meta.get("doc_id", "")),
            content=content,
            source=str(meta.get("source", "")),
            source_type=SourceType(str(meta.get("source_type", SourceType.LOCAL.value))),
            file_path=str(meta.get("file_path", "")),
            chunk_index=int(meta.get("chunk_index", 0)),
            created_at=str(meta.get("created_at", "")),
            score=1.0 - distance,
            distance=distance,
        )

    def list_sources(self) -> List[SourceSummary]:
        """Distinct sources with their record counts, sorted by name."""
        counts: Counter = Counter()
        offset = 0
        try:
            while True:
                page = self._collection.get(
                    include=["metadatas"], limit=_LIST_PAGE_SIZE, offset=offset,
                )
                metadatas = page.get("metadatas") or []
                for meta in metadatas:
                    meta = meta or {}
                    counts[(str(meta.get("source", "")), str(meta.get("source_type", "local")))] += 1
                if len(metadatas) < _LIST_PAGE_SIZE:
                    break
                offset += _LIST_PAGE_SIZE
        except Exception as exc:
            raise StorageError(f"Failed to list sources: {exc}", operation="list_sources") from exc

        return [
            SourceSummary(source=source, source_type=SourceType(source_type), document_count=n)
            for (source, source_type), n in sorted(counts.items())
        ]

    def count(self) -> int:
        try:
            return int(self._collection.count())
        except Exception as exc:
            raise StorageError(f"Failed to count documents: {exc}", operation="count") from exc
