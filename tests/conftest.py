"""Shared fixtures: a throwaway Chroma directory and the offline hashing embedder."""

from types import SimpleNamespace

import pytest

from brain.chroma_store import ChromaVectorStore
from brain.config import (
    ChunkingConfig,
    EmbeddingConfig,
    GenerationConfig,
    IngestionConfig,
    RetrievalConfig,
    Settings,
    StorageConfig,
)
from brain.embedder import HashingEmbeddingProvider
from brain.llm_client import GenerationClient
from brain.service import BrainService

DIMENSIONS = 1024

# nothing listens on the discard port; connections are refused immediately
UNREACHABLE_LLM = "http://127.0.0.1:9/v1"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        name       = "brain-test",
        chunking   = ChunkingConfig(chunk_size=512, chunk_overlap=50),
        embedding  = EmbeddingConfig(backend="hash", model="hash", dimensions=DIMENSIONS),
        storage    = StorageConfig(path=tmp_path / "chroma", collection="test_documents"),
        generation = GenerationConfig(base_url=UNREACHABLE_LLM, timeout=2.0, max_retries=0),
        ingestion  = IngestionConfig(batch_size=16),
        retrieval  = RetrievalConfig(default_limit=5, context_chars=12000),
    )


@pytest.fixture
def embedder(settings):
    provider = HashingEmbeddingProvider(settings.embedding)
    yield provider
    provider.close()


@pytest.fixture
def store(settings):
    return ChromaVectorStore(settings.storage, DIMENSIONS)


@pytest.fixture
def generator(settings):
    return GenerationClient(settings.generation)


@pytest.fixture
def service(settings, embedder, store, generator):
    return BrainService(settings, embedder=embedder, store=store, generator=generator)


def fake_completion(content):
    """Shape of an openai ChatCompletion as far as GenerationClient reads it."""
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
    )


@pytest.fixture
def answering_generator(generator, monkeypatch):
    """GenerationClient whose endpoint answers every request with a fixed text."""
    calls = []

    def create(**kwargs):
        calls.append(kwargs)
        return fake_completion("Futures are polled by the executor. [Context 1]")

    monkeypatch.setattr(generator._client.chat.completions, "create", create)
    generator.calls = calls
    return generator
