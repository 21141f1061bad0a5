"""Tests for the retrieval API endpoints."""

import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import TEST_URI, FakeMongo, VoyageStub, embedding_response
from config.settings import Settings


@pytest.fixture
def services():
    from api.services import get_services
    services = get_services()
    services.reset()
    yield services
    services.reset()


@pytest.fixture
def make_client(services, make_pipeline):
    """TestClient whose services use the given stubs and settings."""

    def _make(voyage=None, mongo=None, **settings):
        settings.setdefault("mongodb_uri", TEST_URI)
        settings.setdefault("voyage_api_key", "test-key")
        services.initialize(Settings(_env_file=None, **settings))
        services.pipeline = make_pipeline(
            voyage or VoyageStub(embedding_response()),
            mongo or FakeMongo(),
            uri=settings["mongodb_uri"],
        )
        from api.main import create_app
        return TestClient(create_app())

    return _make


def test_root_endpoint(make_client):
    resp = make_client().get("/")
    assert resp.status_code == 200
    assert resp.json()["service"] == "Knowledge Base Retrieval"


def test_health_configured(make_client):
    resp = make_client().get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["services"]["mongodb_configured"] is True


def test_health_degraded_without_credentials(make_client):
    data = make_client(mongodb_uri=None, voyage_api_key=None).get("/health").json()
    assert data["status"] == "degraded"
    assert data["services"]["voyage_configured"] is False


def test_retrieve_returns_chunks_and_context(make_client, sample_docs):
    client = make_client(mongo=FakeMongo(docs=sample_docs))

    resp = client.post("/api/v1/retrieve", json={"query": "revenue growth"})

    assert resp.status_code == 200
    data = resp.json()
    assert data["query"] == "revenue growth"
    assert [c["score"] for c in data["chunks"]] == [0.91, 0.85, 0.80]
    assert data["context"].startswith("Relevant context from the knowledge base")
    assert data["trace"] is None
    assert data["timed_out"] is False
    assert isinstance(data["processing_time_ms"], (int, float))


def test_retrieve_with_trace(make_client, sample_docs):
    client = make_client(mongo=FakeMongo(docs=sample_docs))

    resp = client.post("/api/v1/retrieve", json={"query": "revenue growth", "include_trace": True})

    steps = resp.json()["trace"]["steps"]
    assert [s["step"] for s in steps] == ["query", "embedding", "vector_search", "chunks", "context"]
    assert steps[2]["numCandidates"] == 100
    assert steps[3]["count"] == 3


def test_debug_setting_includes_trace(make_client):
    client = make_client(rag_debug=True)

    resp = client.post("/api/v1/retrieve", json={"query": "q"})

    assert resp.json()["trace"] is not None


def test_missing_connection_string_is_not_an_error(make_client):
    client = make_client(mongodb_uri=None)

    resp = client.post(
        "/api/v1/retrieve",
        json={"query": "What is the policy on refunds?", "include_trace": True},
    )

    assert resp.status_code == 200
    data = resp.json()
    assert data["chunks"] == []
    assert data["context"] == ""
    assert [s["step"] for s in data["trace"]["steps"]] == ["query", "config"]


def test_embedding_failure_is_not_an_error(make_client):
    client = make_client(voyage=VoyageStub(httpx.Response(500, json={"detail": "down"})))

    resp = client.post("/api/v1/retrieve", json={"query": "q", "include_trace": True})

    assert resp.status_code == 200
    assert resp.json()["trace"]["steps"][-1]["step"] == "embed_error"


def test_empty_query_fails_validation(make_client):
    resp = make_client().post("/api/v1/retrieve", json={"query": ""})
    assert resp.status_code == 422


def test_long_query_fails_validation(make_client):
    resp = make_client().post("/api/v1/retrieve", json={"query": "x" * 2001})
    assert resp.status_code == 422


def test_metrics_endpoint(make_client):
    client = make_client()
    client.post("/api/v1/retrieve", json={"query": "q"})

    resp = client.get("/metrics")

    assert resp.status_code == 200
    assert "kb_retrieval_outcome_total" in resp.text
