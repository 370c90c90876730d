"""
HTTP API tests.
Run the full application with a fake provider and an in-memory store.
"""
import pytest
from fastapi.testclient import TestClient

from support_relay.main import create_app
from support_relay.session import InMemoryHistoryStore

from conftest import FakeTextGenerator


@pytest.fixture
def generator():
    return FakeTextGenerator(reply="Happy to help with that.")


@pytest.fixture
def client(test_settings, escalation_settings, faq_index, generator):
    app = create_app(
        test_settings,
        escalation_settings,
        generator=generator,
        history_store=InMemoryHistoryStore(),
        faq_index=faq_index,
        start_sweeper=False
    )
    with TestClient(app) as test_client:
        yield test_client


def _new_session(client) -> str:
    response = client.post("/api/session/new")
    assert response.status_code == 200
    return response.json()["session_id"]


# ===========================
# Chat
# ===========================

@pytest.mark.integration
def test_chat_faq_answer(client, generator):
    session_id = _new_session(client)

    response = client.post("/api/chat", json={
        "message": "How do I reset my password?",
        "session_id": session_id
    })

    assert response.status_code == 200
    data = response.json()
    assert data["response"] == "Visit Settings > Reset Password."
    assert data["source"] == "faq"
    assert data["confidence"] == "high"
    assert data["faq_matched"] is True
    assert data["faq_id"] == 1
    assert data["escalated"] is False
    assert generator.calls == []


@pytest.mark.integration
def test_chat_provider_answer(client, generator):
    response = client.post("/api/chat", json={
        "message": "Can you explain warranty coverage?",
        "session_id": "client-chosen-id"
    })

    data = response.json()
    assert data["response"] == "Happy to help with that."
    assert data["source"] == "fake"
    assert data["confidence"] == "medium"
    assert len(generator.calls) == 1


@pytest.mark.integration
def test_chat_escalation_keyword(client):
    session_id = _new_session(client)

    data = client.post("/api/chat", json={
        "message": "I want to speak to a manager right now",
        "session_id": session_id
    }).json()

    assert data["source"] == "escalation"
    assert data["escalated"] is True
    assert data["escalation_reason"] == "customer_request"

    session = client.get(f"/api/session/{session_id}").json()["session"]
    assert session["escalated"] is True
    assert session["escalation_reason"] == "customer_request"


@pytest.mark.integration
@pytest.mark.parametrize("payload", [
    {"message": "   ", "session_id": "abc"},
    {"message": "", "session_id": "abc"},
    {"message": "hello", "session_id": "  "},
    {"message": "hello"},
    {"session_id": "abc"},
])
def test_chat_rejects_invalid_payload(client, payload):
    response = client.post("/api/chat", json=payload)
    assert response.status_code == 422


@pytest.mark.integration
def test_chat_records_both_turns(client):
    session_id = _new_session(client)
    client.post("/api/chat", json={"message": "How do I reset my password?", "session_id": session_id})

    session = client.get(f"/api/session/{session_id}").json()["session"]

    assert session["message_count"] == 2
    assert [m["role"] for m in session["conversation_history"]] == ["user", "assistant"]


# ===========================
# Sessions
# ===========================

@pytest.mark.integration
def test_unknown_session_returns_404(client):
    assert client.get("/api/session/missing").status_code == 404
    assert client.delete("/api/session/missing").status_code == 404
    assert client.post("/api/session/missing/escalate").status_code == 404


@pytest.mark.integration
def test_escalate_twice(client):
    session_id = _new_session(client)

    first = client.post(f"/api/session/{session_id}/escalate", json={"reason": "Billing dispute"})
    second = client.post(f"/api/session/{session_id}/escalate")

    assert first.status_code == 200
    assert first.json()["already_escalated"] is False
    assert first.json()["session"]["escalation_reason"] == "Billing dispute"
    assert first.json()["summary"] == "No conversation history available."

    assert second.status_code == 200
    assert second.json()["already_escalated"] is True
    assert second.json()["session"]["escalation_reason"] == "Billing dispute"


@pytest.mark.integration
def test_escalate_includes_transcript(client):
    session_id = _new_session(client)
    client.post("/api/chat", json={"message": "How do I reset my password?", "session_id": session_id})

    summary = client.post(f"/api/session/{session_id}/escalate").json()["summary"]

    assert "1. Customer: How do I reset my password?" in summary
    assert "2. Bot: Visit Settings > Reset Password." in summary


@pytest.mark.integration
def test_delete_session(client):
    session_id = _new_session(client)

    response = client.delete(f"/api/session/{session_id}")

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert client.get(f"/api/session/{session_id}").status_code == 404


@pytest.mark.integration
def test_list_sessions(client):
    first = _new_session(client)
    _new_session(client)
    client.post("/api/chat", json={"message": "How do I reset my password?", "session_id": first})

    data = client.get("/api/sessions").json()

    assert data["total"] == 2
    counts = {s["session_id"]: s["message_count"] for s in data["sessions"]}
    assert counts[first] == 2


# ===========================
# FAQs
# ===========================

@pytest.mark.integration
def test_list_faqs(client):
    data = client.get("/api/faqs").json()

    assert data["total"] == 4
    assert data["categories"] == ["account", "billing", "shipping"]


@pytest.mark.integration
def test_list_faqs_by_category(client):
    data = client.get("/api/faqs", params={"category": "shipping"}).json()
    assert [f["id"] for f in data["faqs"]] == [3, 4]


@pytest.mark.integration
def test_search_faqs(client):
    data = client.get("/api/faqs/search", params={"q": "reset password"}).json()

    assert data["total"] == 1
    assert data["results"][0]["id"] == 1
    assert data["results"][0]["relevance_score"] > 0


@pytest.mark.integration
def test_search_requires_query(client):
    assert client.get("/api/faqs/search").status_code == 422


# ===========================
# Health
# ===========================

@pytest.mark.integration
def test_health(client):
    data = client.get("/health").json()
    assert data["status"] == "healthy"


@pytest.mark.integration
def test_readiness(client):
    data = client.get("/health/ready").json()

    assert data["status"] == "healthy"
    assert data["services"]["history_store"] == "healthy"
    assert data["services"]["provider"] == "fake"


@pytest.mark.integration
def test_liveness_and_request_id(client):
    response = client.get("/health/live", headers={"X-Request-ID": "req-123"})

    assert response.json()["status"] == "alive"
    assert response.headers["X-Request-ID"] == "req-123"


@pytest.mark.integration
def test_generator_closed_on_shutdown(test_settings, faq_index, generator):
    app = create_app(test_settings, generator=generator, faq_index=faq_index, start_sweeper=False)

    with TestClient(app):
        pass

    assert generator.closed is True
