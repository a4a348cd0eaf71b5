"""Tests for the FastAPI adapter (backend/)."""

import pytest
from fastapi.testclient import TestClient

from backend.main import create_app

from tests.conftest import DIMENSIONS

NOTES = " ".join(f"alpha{i}" for i in range(600)) + "\n\n" + " ".join(f"beta{i}" for i in range(200))
BETA_QUERY = " ".join(f"beta{i}" for i in range(50))


@pytest.fixture
def client(service):
    with TestClient(create_app(service=service)) as test_client:
        yield test_client


def _ingest(client, source="local:/home/me/notes", **extra):
    body = {"source": source, "documents": [{"file_path": "notes.md", "text": NOTES}]}
    body.update(extra)
    return client.post("/api/sources/documents", json=body)


class TestHealth:
    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["store_ready"] is True
        assert data["document_count"] == 0

    def test_status(self, client):
        _ingest(client)
        data = client.get("/api/status").json()
        assert data["name"] == "brain-test"
        assert data["document_count"] == 3
        assert data["source_count"] == 1
        assert data["embedding_dimensions"] == DIMENSIONS
        assert data["generation_available"] is False


class TestSources:
    def test_ingest_report(self, client):
        response = _ingest(client)
        assert response.status_code == 200
        report = response.json()
        assert report["chunks_indexed"] == 3
        assert report["files_indexed"] == 1
        assert report["failed_files"] == []

    def test_replace_flag(self, client):
        _ingest(client)
        _ingest(client, replace=True)
        (summary,) = client.get("/api/sources").json()
        assert summary == {
            "source": "local:/home/me/notes", "source_type": "local", "document_count": 3,
        }

    def test_source_without_prefix_rejected(self, client):
        response = _ingest(client, source="notes")
        assert response.status_code == 400

    def test_explicit_source_type(self, client):
        response = _ingest(client, source="notes", source_type="local")
        assert response.status_code == 200

    def test_delete(self, client):
        _ingest(client)
        response = client.delete("/api/sources/local:/home/me/notes")
        assert response.status_code == 200
        assert response.json() == {"source": "local:/home/me/notes", "deleted": 3}
        assert client.get("/api/sources").json() == []


class TestSearch:
    def test_search(self, client):
        _ingest(client)
        response = client.post("/api/search", json={"query": BETA_QUERY, "limit": 2})
        assert response.status_code == 200
        data = response.json()
        assert data["query"] == BETA_QUERY
        assert len(data["results"]) == 2
        assert data["results"][0]["chunk_index"] == 2

    def test_search_empty_store(self, client):
        response = client.post("/api/search", json={"query": "anything"})
        assert response.status_code == 200
        assert response.json()["results"] == []


class TestErrorMapping:
    def test_bad_limit_is_400(self, client):
        response = client.post("/api/search", json={"query": "x", "limit": 0})
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "QueryError"
        assert body["details"] == {"limit": 0}

    def test_unembeddable_query_is_422(self, client):
        response = client.post("/api/search", json={"query": "?!"})
        assert response.status_code == 422
        assert response.json()["error"] == "EmbeddingError"

    def test_generation_down_is_503(self, client):
        _ingest(client)
        response = client.post("/api/query", json={"query": "alpha1"})
        assert response.status_code == 503
        assert response.json()["error"] == "GenerationUnavailable"

    def test_strict_partial_failure_is_422(self, client):
        body = {
            "source": "local:/home/me/notes",
            "strict": True,
            "documents": [{"file_path": "rule.md", "text": "---- *** ----"}],
        }
        response = client.post("/api/sources/documents", json=body)

        assert response.status_code == 422
        data = response.json()
        assert data["error"] == "IngestionPartialFailure"
        assert data["details"]["failed_files"] == ["rule.md"]
        assert data["details"]["chunks_indexed"] == 0

    def test_partial_failure_without_strict_is_a_report(self, client):
        body = {
            "source": "local:/home/me/notes",
            "documents": [{"file_path": "rule.md", "text": "---- *** ----"}],
        }
        response = client.post("/api/sources/documents", json=body)

        assert response.status_code == 200
        assert [f["file_path"] for f in response.json()["failed_files"]] == ["rule.md"]

    def test_missing_field_is_validation_error(self, client):
        response = client.post("/api/search", json={"limit": 3})
        assert response.status_code == 422


class TestQuery:
    def test_query_answer(self, client, answering_generator):
        _ingest(client)
        response = client.post("/api/query", json={"query": BETA_QUERY, "limit": 1})
        assert response.status_code == 200
        data = response.json()
        assert data["answer"].startswith("Futures are polled")
        assert [c["chunk_index"] for c in data["citations"]] == [2]
