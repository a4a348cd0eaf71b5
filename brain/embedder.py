"""
embedder.py
===========
Convert chunk text into fixed-width, L2-normalised embedding vectors.

Backends:
  SentenceTransformerProvider — local sentence-transformers model on the
                                configured CUDA device (CPU when torch sees
                                no GPU).
  HashingEmbeddingProvider    — deterministic feature-hashing vectors with no
                                model download; selected explicitly
                                (``backend = "hash"``) for offline runs.

A provider owns one model instance and executes every call on its own
single-worker executor, so concurrent ingestion and query traffic queue up
in FIFO order instead of sharing the device context.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import re
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import List, Sequence

import numpy as np

from brain.config import EmbeddingConfig
from brain.errors import EmbeddingError

logger = logging.getLogger(__name__)

NORM_TOLERANCE = 1e-4

_TOKEN = re.compile(r"\w+")


class EmbeddingProvider(ABC):
    """Serialised text → vector capability consumed by the pipelines."""

    def __init__(self, model_name: str, dimension: int, max_tokens: int, max_chars: int) -> None:
        self._model_name = model_name
        self._dimension = dimension
        self._max_tokens = max_tokens
        self._max_chars = max_chars
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="embedder")

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def max_tokens(self) -> int:
        return self._max_tokens

    @property
    def max_chars(self) -> int:
        return self._max_chars

    # -- backend hooks -----------------------------------------------------

    @abstractmethod
    def _encode(self, texts: List[str]) -> Sequence[Sequence[float]]:
        """Embed already-truncated texts. Runs on the provider's worker thread."""

    @abstractmethod
    def token_count(self, text: str) -> int:
        """Number of model tokens in ``text`` (without special tokens)."""

    # -- public API --------------------------------------------------------

    def truncate(self, text: str) -> str:
        """Apply the character ceiling; runs before any tokenisation."""
        if len(text) > self._max_chars:
            return text[: self._max_chars]
        return text

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        return self._executor.submit(self._embed_now, list(texts)).result()

    def embed_one(self, text: str) -> List[float]:
        return self.embed_batch([text])[0]

    async def aembed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        future = self._executor.submit(self._embed_now, list(texts))
        return await asyncio.wrap_future(future)

    async def aembed_one(self, text: str) -> List[float]:
        vectors = await self.aembed_batch([text])
        return vectors[0]

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    # -- internals ---------------------------------------------------------

    def _embed_now(self, texts: List[str]) -> List[List[float]]:
        prepared = [self.truncate(t) for t in texts]
        try:
            self._log_truncation(texts, prepared)
            raw = self._encode(prepared)
        except EmbeddingError:
            raise
        except Exception as exc:
            raise EmbeddingError(
                f"Embedding computation failed: {exc}",
                details={"model": self._model_name, "batch_size": len(texts)},
            ) from exc
        return self._validate(raw, len(texts))

    def _log_truncation(self, texts: List[str], prepared: List[str]) -> None:
        """Report inputs cut by the character ceiling or by the model's token limit."""
        if not logger.isEnabledFor(logging.DEBUG):
            return
        clipped = sum(1 for before, after in zip(texts, prepared) if len(after) < len(before))
        over_tokens = sum(1 for t in prepared if self.token_count(t) > self._max_tokens)
        if clipped or over_tokens:
            logger.debug(
                "Batch of %d: %d input(s) cut at %d chars, %d over the %d-token limit",
                len(texts), clipped, self._max_chars, over_tokens, self._max_tokens,
            )

    def _validate(self, raw: Sequence[Sequence[float]], expected_rows: int) -> List[List[float]]:
        vectors = np.asarray(raw, dtype=np.float32)
        if vectors.ndim != 2 or vectors.shape != (expected_rows, self._dimension):
            raise EmbeddingError(
                "Embedding backend returned an unexpected shape",
                details={"expected": [expected_rows, self._dimension], "actual": list(vectors.shape)},
            )
        norms = np.linalg.norm(vectors.astype(np.float64), axis=1)
        bad = np.flatnonzero(np.abs(norms - 1.0) >= NORM_TOLERANCE)
        if bad.size:
            raise EmbeddingError(
                "Embedding backend returned vectors that are not L2-normalised",
                details={"rows": bad.tolist()[:10], "model": self._model_name},
            )
        return vectors.tolist()


# ---------------------------------------------------------------------------
# Sentence-Transformers
# ---------------------------------------------------------------------------

class SentenceTransformerProvider(EmbeddingProvider):
    """Local sentence-transformers model pinned to one device."""

    def __init__(self, config: EmbeddingConfig) -> None:
        super().__init__(config.model, config.dimensions, config.max_tokens, config.max_chars)
        import torch
        from sentence_transformers import SentenceTransformer  # type: ignore

        if torch.cuda.is_available():
            device = f"cuda:{config.cuda_device}"
        else:
            device = "cpu"

        self._batch_size = config.batch_size
        self._model = SentenceTransformer(config.model, device=device)
        logger.info("Embedder backend: sentence_transformers (%s on %s)", config.model, device)

        actual = self._model.get_sentence_embedding_dimension()
        if actual != config.dimensions:
            raise EmbeddingError(
                f"Model {config.model} produces {actual}-dim vectors, configured {config.dimensions}",
                details={"model": config.model, "expected": config.dimensions, "actual": actual},
            )

        hard_limit = getattr(self._model.tokenizer, "model_max_length", config.max_tokens)
        if config.max_tokens > hard_limit:
            logger.warning(
                "max_tokens=%d exceeds the model limit of %d tokens; clamping.",
                config.max_tokens, hard_limit,
            )
        self._max_tokens = min(config.max_tokens, hard_limit)
        self._model.max_seq_length = self._max_tokens

    def token_count(self, text: str) -> int:
        return len(self._model.tokenizer.encode(text, add_special_tokens=False))

    def _encode(self, texts: List[str]) -> Sequence[Sequence[float]]:
        return self._model.encode(
            texts,
            batch_size=self._batch_size,
            show_progress_bar=False,
            convert_to_numpy=True,
            normalize_embeddings=True,
        )


# ---------------------------------------------------------------------------
# Feature hashing
# ---------------------------------------------------------------------------

class HashingEmbeddingProvider(EmbeddingProvider):
    """Deterministic bag-of-words hashing embedder (numpy only)."""

    def __init__(self, config: EmbeddingConfig) -> None:
        super().__init__("hash", config.dimensions, config.max_tokens, config.max_chars)
        logger.info("Embedder backend: hash (%d dimensions)", config.dimensions)

    def token_count(self, text: str) -> int:
        return len(_TOKEN.findall(text))

    def _encode(self, texts: List[str]) -> Sequence[Sequence[float]]:
        vectors = np.zeros((len(texts), self._dimension), dtype=np.float64)
        for row, text in enumerate(texts):
            tokens = _TOKEN.findall(text.lower())[: self._max_tokens]
            if not tokens:
                raise EmbeddingError(
                    "Text contains no embeddable tokens",
                    details={"chars": len(text)},
                )
            for token in tokens:
                digest = hashlib.sha256(token.encode("utf-8", errors="ignore")).digest()
                idx = int.from_bytes(digest[:4], "big") % self._dimension
                sign = 1.0 if digest[4] % 2 == 0 else -1.0
                vectors[row, idx] += sign

            norm = np.linalg.norm(vectors[row])
            if norm == 0.0:
                # every token cancelled out; fall back to the first bucket hit
                digest = hashlib.sha256(tokens[0].encode("utf-8", errors="ignore")).digest()
                vectors[row, int.from_bytes(digest[:4], "big") % self._dimension] = 1.0
                norm = 1.0
            vectors[row] /= norm
        return vectors


def create_embedding_provider(config: EmbeddingConfig) -> EmbeddingProvider:
    if config.backend == "hash":
        return HashingEmbeddingProvider(config)
    return SentenceTransformerProvider(config)
