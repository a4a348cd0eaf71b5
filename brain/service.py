"""
service.py
==========
Single entry point used by transports (HTTP adapter, scripts, notebooks).

BrainService wires the embedding provider, the vector store and the
generation client from one explicit Settings value and exposes the plain
function-call contract: index_documents, replace_source, search, query,
list_sources, delete_by_source, count and status.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional

from brain.chroma_store import ChromaVectorStore
from brain.config import Settings
from brain.embedder import EmbeddingProvider, create_embedding_provider
from brain.ingestion import DocumentInput, IngestionPipeline
from brain.llm_client import GenerationClient
from brain.models import IngestionReport, QueryAnswer, SearchResult, SourceSummary, SourceType
from brain.retriever import RetrievalPipeline

logger = logging.getLogger(__name__)


class BrainService:
    def __init__(
        self,
        settings: Settings,
        embedder: Optional[EmbeddingProvider] = None,
        store: Optional[ChromaVectorStore] = None,
        generator: Optional[GenerationClient] = None,
    ) -> None:
        self.settings = settings

        if embedder is None:
            logger.info("Loading embedding model: %s", settings.embedding.model)
            embedder = create_embedding_provider(settings.embedding)
        logger.info("Embedding dimensions: %d", embedder.dimension)

        self.embedder = embedder
        self.store = store or ChromaVectorStore(settings.storage, embedder.dimension)
        self.generator = generator or GenerationClient(settings.generation)

        self.ingestion = IngestionPipeline(
            self.embedder, self.store, settings.chunking, settings.ingestion,
        )
        self.retrieval = RetrievalPipeline(
            self.embedder, self.store, self.generator, settings.retrieval,
        )

    # -- ingestion ---------------------------------------------------------

    async def index_documents(
        self,
        source: str,
        documents: Iterable[DocumentInput],
        source_type: Optional[SourceType] = None,
        cancel_event: Optional[asyncio.Event] = None,
        strict: bool = False,
    ) -> IngestionReport:
        return await self.ingestion.index_documents(
            source, documents, source_type=source_type, cancel_event=cancel_event, strict=strict,
        )

    async def replace_source(
        self,
        source: str,
        documents: Iterable[DocumentInput],
        source_type: Optional[SourceType] = None,
        cancel_event: Optional[asyncio.Event] = None,
        strict: bool = False,
    ) -> IngestionReport:
        """
        Full re-index: delete the source, then index ``documents``.

        The two steps are not atomic; a concurrent search may observe the
        source missing or partially re-indexed.
        """
        deleted = await self.delete_by_source(source)
        logger.info("Re-indexing %s (removed %d previous records)", source, deleted)
        return await self.index_documents(
            source, documents, source_type=source_type, cancel_event=cancel_event, strict=strict,
        )

    # -- retrieval ---------------------------------------------------------

    async def search(self, query: str, limit: Optional[int] = None) -> List[SearchResult]:
        return await self.retrieval.search(query, limit)

    async def query(self, query: str, limit: Optional[int] = None) -> QueryAnswer:
        return await self.retrieval.query(query, limit)

    # -- store management --------------------------------------------------

    async def list_sources(self) -> List[SourceSummary]:
        return await asyncio.to_thread(self.store.list_sources)

    async def delete_by_source(self, source: str) -> int:
        return await asyncio.to_thread(self.store.delete_by_source, source)

    async def count(self) -> int:
        return await asyncio.to_thread(self.store.count)

    async def status(self) -> Dict[str, Any]:
        sources = await self.list_sources()
        generation_ok = await asyncio.to_thread(self.generator.health_check)
        return {
            "name":                 self.settings.name,
            "document_count":       sum(s.document_count for s in sources),
            "source_count":         len(sources),
            "sources":              [s.model_dump(mode="json") for s in sources],
            "collection":           self.store.collection_name,
            "embedding_model":      self.embedder.model_name,
            "embedding_dimensions": self.embedder.dimension,
            "generation_model":     self.generator.model,
            "generation_available": generation_ok,
        }

    def close(self) -> None:
        self.embedder.close()
