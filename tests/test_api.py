"""Tests for the FastAPI endpoints."""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def client(assistant):
    """TestClient over an AssistantService wired to mocks."""
    from execution.legal_assistant import api
    from execution.legal_assistant.service import set_service

    set_service(assistant)
    return TestClient(api.app)


class TestHealthEndpoint:
    def test_empty_index_is_degraded(self, client):
        response = client.get("/api/v1/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "degraded"
        assert data["index_ready"] is False
        assert data["index_name"] == "swiss-legal"

    def test_ready_after_ingestion(self, client, assistant):
        assistant.ingest_samples()
        data = client.get("/api/v1/health").json()
        assert data["status"] == "ok"
        assert data["ingestions_total"] == 1

    def test_misconfiguration_is_503(self):
        from execution.legal_assistant import api
        from execution.legal_assistant.errors import ConfigurationError
        with patch.object(api, "get_service", side_effect=ConfigurationError("OPENAI_API_KEY is required")):
            response = TestClient(api.app).get("/api/v1/health")
        assert response.status_code == 503
        assert "OPENAI_API_KEY" in response.json()["detail"]


class TestIngestEndpoint:
    def test_test_mode_ingests_samples(self, client):
        response = client.post("/api/v1/ingest", json={"mode": "test"})
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["total_pages"] == 5
        assert data["total_chunks"] > 0

    def test_path(self, client, tmp_path):
        document = tmp_path / "swiss_legal.txt"
        document.write_text("Article 1. The law governs all matters.", encoding="utf-8")
        response = client.post("/api/v1/ingest", json={"mode": "pdf", "path": str(document)})
        assert response.status_code == 200
        assert response.json()["total_chunks"] == 1

    def test_failure_is_500_with_zero_stats(self, client, tmp_path):
        response = client.post("/api/v1/ingest", json={"mode": "pdf", "path": str(tmp_path / "missing.pdf")})
        assert response.status_code == 500
        data = response.json()
        assert data["success"] is False
        assert data["total_chunks"] == 0

    def test_no_path_configured(self, client):
        response = client.post("/api/v1/ingest", json={"mode": "pdf"})
        assert response.status_code == 500

    def test_invalid_mode(self, client):
        assert client.post("/api/v1/ingest", json={"mode": "docx"}).status_code == 422


class TestChatEndpoint:
    def test_answer_with_citations(self, client, assistant):
        assistant.ingest_samples()
        response = client.post("/api/v1/chat", json={"question": "What does Article 1 of the Civil Code say?"})
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "complete"
        assert data["in_domain"] is True
        assert len(data["sources"]) == len(data["citations"]) > 0
        assert data["response_version"] == 2

    def test_greeting(self, client):
        data = client.post("/api/v1/chat", json={"question": "hello"}).json()
        assert data["in_domain"] is False
        assert data["metrics"]["confidence"] == 0.5

    def test_recent_turns_accepted(self, client, assistant):
        assistant.ingest_samples()
        response = client.post("/api/v1/chat", json={
            "question": "And Article 8?",
            "recent_turns": [
                {"role": "user", "content": "What does Article 1 say?"},
                {"role": "assistant", "content": "It defines the sources of law."},
            ],
        })
        assert response.status_code == 200

    def test_empty_question_rejected(self, client):
        assert client.post("/api/v1/chat", json={"question": ""}).status_code == 422

    def test_queries_counted(self, client):
        client.post("/api/v1/chat", json={"question": "hello"})
        metrics = client.get("/api/v1/metrics").json()
        assert metrics["queries"]["total"] == 1
        assert metrics["queries"]["by_path"] == {"general": 1}


class TestChatStreamEndpoint:
    def test_stream_events(self, client, assistant):
        from execution.legal_assistant.streaming import parse_sse_stream
        assistant.ingest_samples()
        response = client.post("/api/v1/chat/stream", json={"question": "What does Article 1 of the Civil Code say?"})
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = parse_sse_stream(response.text)
        names = [name for name, _ in events]
        assert names[0] == "metadata"
        assert names[-1] == "complete"
        assert "token" in names
