"""
retriever.py
============
Similarity search and retrieval-augmented generation over the vector store.

  search(query, limit) — embed the query with the ingestion-time provider and
                         return the nearest chunks, best first. An empty store
                         is a successful, empty result.
  query(query, limit)  — search, pack the hits into a prompt that fits the
                         generation budget, call the generation service and
                         return the answer with the citations that were
                         actually part of the prompt.

Generation failures raise GenerationUnavailable from ``query`` only; ``search``
never touches the generation service.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Tuple

from brain.chroma_store import ChromaVectorStore
from brain.config import RetrievalConfig
from brain.embedder import EmbeddingProvider
from brain.errors import DimensionMismatch, EmptyStoreError, QueryError
from brain.llm_client import GenerationClient, Message
from brain.models import Citation, QueryAnswer, SearchResult

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Prompt templates
# ---------------------------------------------------------------------------

_SYSTEM_PROMPT = """You are a helpful assistant that answers questions based on the provided context.
Use the context to provide accurate and relevant answers.
If the context doesn't contain enough information to answer the question, say so.
Always cite which context(s) you used in your answer."""

_USER_PROMPT_TEMPLATE = (
    "Context:\n{context}\n\n"
    "Question: {question}\n\n"
    "Please answer the question using the context provided."
)

_CONTEXT_HEADER = "[Context {n} - {source}/{file_path}]:\n"
_CONTEXT_SEPARATOR = "\n---\n"


class RetrievalPipeline:
    """Stateless orchestrator over the provider, the store and the generator."""

    def __init__(
        self,
        embedder: EmbeddingProvider,
        store: ChromaVectorStore,
        generator: GenerationClient,
        config: RetrievalConfig,
    ) -> None:
        self._embedder = embedder
        self._store = store
        self._generator = generator
        self._config = config

    # -----------------------------------------------------------------------
    # Search
    # -----------------------------------------------------------------------

    async def search(self, query: str, limit: Optional[int] = None) -> List[SearchResult]:
        limit = self._config.default_limit if limit is None else limit
        if limit < 1:
            raise QueryError("limit must be at least 1", details={"limit": limit})
        if not query or not query.strip():
            raise QueryError("query must not be empty")
        if self._embedder.dimension != self._store.dimension:
            raise DimensionMismatch(
                expected=self._store.dimension, actual=self._embedder.dimension, operation="search",
            )

        vector = await self._embedder.aembed_one(query)
        try:
            results = await asyncio.to_thread(self._store.search, vector, limit)
        except EmptyStoreError:
            logger.info("Vector store is empty — returning no results.")
            return []

        logger.debug("Retrieved %d chunks for query %r", len(results), query[:80])
        return results

    # -----------------------------------------------------------------------
    # RAG
    # -----------------------------------------------------------------------

    async def query(self, query: str, limit: Optional[int] = None) -> QueryAnswer:
        results = await self.search(query, limit)
        messages, included = self.build_messages(query, results)

        answer = await asyncio.to_thread(self._generator.chat, messages)

        preview = self._config.preview_chars
        citations = [
            Citation(
                source          = r.source,
                file_path       = r.file_path,
                chunk_index     = r.chunk_index,
                score           = r.score,
                content_preview = r.content[:preview],
            )
            for r in included
        ]
        logger.info(
            "Answered query with %d/%d retrieved chunks in context", len(included), len(results),
        )
        return QueryAnswer(answer=answer, citations=citations, model=self._generator.model)

    def build_messages(
        self,
        query: str,
        results: List[SearchResult],
    ) -> Tuple[List[Message], List[SearchResult]]:
        """
        Assemble chat messages within ``context_chars``.

        Chunks are added best-first; the first one that does not fit and every
        lower-ranked one are dropped. Only the top chunk is ever shortened, and
        only when it alone exceeds the budget. The question is never cut.

        Returns
        -------
        (messages, results that made it into the prompt — possibly truncated)
        """
        fixed = len(_SYSTEM_PROMPT) + len(_USER_PROMPT_TEMPLATE.format(context="", question=query))
        remaining = self._config.context_chars - fixed

        blocks: List[str] = []
        included: List[SearchResult] = []
        for rank, result in enumerate(results, start=1):
            header = _CONTEXT_HEADER.format(n=rank, source=result.source, file_path=result.file_path)
            separator = _CONTEXT_SEPARATOR if blocks else ""
            block = f"{header}{result.content}\n"
            cost = len(separator) + len(block)

            if cost <= remaining:
                blocks.append(separator + block)
                included.append(result)
                remaining -= cost
                continue

            room = remaining - len(separator) - len(header) - 1
            if not blocks and room > 0:
                content = result.content[:room]
                blocks.append(f"{header}{content}\n")
                included.append(result.model_copy(update={"content": content}))
            break

        if not included:
            return [{"role": "user", "content": query}], []

        user_prompt = _USER_PROMPT_TEMPLATE.format(context="".join(blocks), question=query)
        messages: List[Message] = [
            {"role": "system", "content": _SYSTEM_PROMPT},
            {"role": "user", "content": user_prompt},
        ]
        return messages, included
