"""
ingestion.py
============
Turn materialised source files into stored, searchable DocumentRecords.

  1. chunk every file (kind resolved once from its extension unless given)
  2. batch chunks across files up to ``batch_size``
  3. embed each batch on the shared provider, build records, insert

Failures are captured per batch: an embedding or storage error marks every
file with chunks in that batch as failed and ingestion moves on, so a few
pathological files never abort a whole source. A file that spans several
batches can end up partially indexed; it is then reported as failed.

Cancellation is cooperative: ``cancel_event`` is checked before each batch
is embedded, never in the middle of an embedding call. Whatever was
inserted before cancellation stays in the store.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter
from typing import Dict, Iterable, List, Optional, Tuple, Union

from brain.chroma_store import ChromaVectorStore
from brain.chunker import chunk, kind_for_path
from brain.config import ChunkingConfig, IngestionConfig
from brain.embedder import EmbeddingProvider
from brain.errors import DimensionMismatch, EmbeddingError, IngestionPartialFailure, StorageError
from brain.models import (
    Chunk,
    DocumentKind,
    DocumentRecord,
    FailedFile,
    IngestionReport,
    SourceDocument,
    SourceType,
    derive_document_id,
    source_type_for,
    utc_now,
)

logger = logging.getLogger(__name__)

DocumentInput = Union[
    SourceDocument,
    Tuple[str, Union[str, bytes]],
    Tuple[str, Union[str, bytes], Optional[DocumentKind]],
]

_Pending = Tuple[str, Chunk]


def _coerce(item: DocumentInput) -> Tuple[str, Union[str, bytes], Optional[DocumentKind]]:
    if isinstance(item, SourceDocument):
        return item.file_path, item.text, item.kind
    if isinstance(item, tuple) and len(item) in (2, 3):
        kind = DocumentKind(item[2]) if len(item) == 3 and item[2] is not None else None
        return str(item[0]), item[1], kind
    raise TypeError(f"Unsupported document item: {type(item).__name__}")


def _decode(raw: Union[str, bytes]) -> str:
    if isinstance(raw, bytes):
        return raw.decode("utf-8")
    return raw


class IngestionPipeline:
    """Stateless orchestrator over the embedding provider and the store."""

    def __init__(
        self,
        embedder: EmbeddingProvider,
        store: ChromaVectorStore,
        chunking: ChunkingConfig,
        ingestion: IngestionConfig,
    ) -> None:
        if embedder.dimension != store.dimension:
            raise DimensionMismatch(
                expected=store.dimension, actual=embedder.dimension, operation="ingest",
            )
        self._embedder = embedder
        self._store = store
        self._chunking = chunking
        self._batch_size = ingestion.batch_size

    async def index_documents(
        self,
        source: str,
        documents: Iterable[DocumentInput],
        source_type: Optional[SourceType] = None,
        cancel_event: Optional[asyncio.Event] = None,
        strict: bool = False,
    ) -> IngestionReport:
        """
        Index ``documents`` under ``source``.

        Parameters
        ----------
        documents    : SourceDocument objects or ``(path, text[, kind])`` tuples;
                       ``text`` may be bytes, which must decode as UTF-8
        source_type  : inferred from the ``github:`` / ``local:`` prefix when omitted
        cancel_event : set it to stop before the next batch
        strict       : raise IngestionPartialFailure instead of returning a
                       report that lists failed files

        Returns
        -------
        IngestionReport with indexed counts and per-file failure reasons.
        """
        started = time.perf_counter()
        source_type = SourceType(source_type) if source_type else source_type_for(source)
        report = IngestionReport(source=source)

        expected: Dict[str, int] = {}
        indexed: Counter = Counter()
        failed: Dict[str, str] = {}
        batch: List[_Pending] = []

        for item in documents:
            if report.cancelled:
                break
            file_path, raw, kind = _coerce(item)
            report.files_seen += 1

            try:
                text = _decode(raw)
                chunks = chunk(
                    text,
                    kind or kind_for_path(file_path),
                    self._chunking.chunk_size,
                    self._chunking.chunk_overlap,
                    self._chunking.code_overlap_lines,
                )
            except (UnicodeDecodeError, ValueError) as exc:
                logger.warning("Skipping %s in %s: %s", file_path, source, exc)
                failed.setdefault(file_path, f"{type(exc).__name__}: {exc}")
                continue

            if not chunks:
                logger.debug("No content to index in %s", file_path)
                continue

            expected[file_path] = expected.get(file_path, 0) + len(chunks)
            for piece in chunks:
                batch.append((file_path, piece))
                if len(batch) >= self._batch_size:
                    if self._cancelled(cancel_event):
                        report.cancelled = True
                        break
                    await self._flush(source, source_type, batch, indexed, failed)
                    batch = []

        if batch and not report.cancelled:
            if self._cancelled(cancel_event):
                report.cancelled = True
            else:
                await self._flush(source, source_type, batch, indexed, failed)

        report.chunks_indexed = sum(indexed.values())
        report.files_indexed = sum(
            1 for path, n in expected.items() if path not in failed and indexed[path] == n
        )
        report.failed_files = [FailedFile(file_path=p, reason=r) for p, r in failed.items()]
        report.elapsed_ms = round((time.perf_counter() - started) * 1000, 2)

        logger.info(
            "Indexed %d chunks from %d/%d files of %s (%d failed%s) in %.0f ms",
            report.chunks_indexed, report.files_indexed, report.files_seen, source,
            len(report.failed_files), ", cancelled" if report.cancelled else "",
            report.elapsed_ms,
        )

        if strict and report.failed_files:
            raise IngestionPartialFailure(report)
        return report

    @staticmethod
    def _cancelled(cancel_event: Optional[asyncio.Event]) -> bool:
        return cancel_event is not None and cancel_event.is_set()

    async def _flush(
        self,
        source: str,
        source_type: SourceType,
        batch: List[_Pending],
        indexed: Counter,
        failed: Dict[str, str],
    ) -> None:
        try:
            vectors = await self._embedder.aembed_batch([piece.text for _, piece in batch])
            created_at = utc_now()
            records = [
                DocumentRecord(
                    id=derive_document_id(source, file_path, piece.index),
                    content=piece.text,
                    source=source,
                    source_type=source_type,
                    file_path=file_path,
                    chunk_index=piece.index,
                    created_at=created_at,
                    embedding=vector,
                )
                for (file_path, piece), vector in zip(batch, vectors)
            ]
            await asyncio.to_thread(self._store.insert, records)
        except (EmbeddingError, StorageError) as exc:
            files = list(dict.fromkeys(file_path for file_path, _ in batch))
            logger.warning(
                "Batch of %d chunks from %s failed (%d files): %s",
                len(batch), source, len(files), exc,
            )
            for file_path in files:
                failed.setdefault(file_path, f"{type(exc).__name__}: {exc.message}")
            return

        for file_path, _ in batch:
            indexed[file_path] += 1
