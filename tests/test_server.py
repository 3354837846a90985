import pytest
from fastapi.testclient import TestClient

from server.app import create_app

from conftest import ACCOUNT_ID, FakeLLM


@pytest.fixture()
def app(store, settings):
    return create_app(store=store, llm=FakeLLM(reply="The Pro plan is $299 per month."), settings=settings)


@pytest.fixture()
def client(app):
    return TestClient(app)


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "store": "InMemoryStore"}


def test_chat_requires_message(client):
    resp = client.post("/api/chatbot-response", json={"message": "  ", "accountId": ACCOUNT_ID})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Message is required"}


def test_chat_training_answer(client, store):
    resp = client.post(
        "/api/chatbot-response",
        json={
            "message": "what are your office hours?",
            "accountId": ACCOUNT_ID,
            "visitorInfo": {"visitorId": "visitor_1"},
            "previousMessages": [],
        },
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["response"] == "9-5 CET"
    assert body["source"] == "training"
    assert body["leadInfo"] == {}
    assert body["conversationId"].startswith("conv_")
    assert store.turns[0]["conversation_id"] == body["conversationId"]


def test_chat_without_account_uses_demo(client, store):
    resp = client.post("/api/chatbot-response", json={"message": "How much does the Pro plan cost?"})
    body = resp.json()
    assert body["source"] == "ai"
    assert "$299" in body["response"]
    assert body["leadInfo"] == {}
    assert store.turns == []


def test_unexpected_failure_is_an_error_envelope(app, client, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("unexpected")

    monkeypatch.setattr(app.state.generator, "respond", boom)
    resp = client.post("/api/chatbot-response", json={"message": "hello", "accountId": ACCOUNT_ID})
    assert resp.status_code == 500
    assert "error" in resp.json()


def test_search_training_data(client):
    resp = client.post(
        "/api/search-training-data",
        json={"queryText": "villas in marbella", "accountId": ACCOUNT_ID, "includeQA": False},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["qa_matches"] == []
    assert [row["title"] for row in body["property_listings"]] == ["Villa Azul"]
    assert all("similarity" in row and "priority" in row for row in body["file_content"])


def test_search_training_data_anonymous_is_empty(client):
    body = client.post("/api/search-training-data", json={"queryText": "office hours"}).json()
    assert body == {"qa_matches": [], "file_content": [], "property_listings": []}


def test_conversation_history(client):
    first = client.post(
        "/api/chatbot-response", json={"message": "what are your office hours?", "accountId": ACCOUNT_ID}
    ).json()
    client.post(
        "/api/chatbot-response",
        json={"message": "Tell me something", "accountId": ACCOUNT_ID, "conversationId": first["conversationId"]},
    )
    resp = client.post(
        "/api/conversation-history", json={"conversationId": first["conversationId"], "accountId": ACCOUNT_ID}
    )
    messages = resp.json()["messages"]
    assert [m["role"] for m in messages] == ["user", "bot", "user", "bot"]
    assert messages[1]["content"] == "9-5 CET"
    assert messages[3]["source"] == "ai"


def test_conversation_history_requires_id(client):
    resp = client.post("/api/conversation-history", json={"accountId": ACCOUNT_ID})
    assert resp.status_code == 400


def test_invalid_fields_use_the_error_envelope(client):
    resp = client.post("/api/conversation-history", json={"conversationId": "conv_1", "limit": 0})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid limit"}


def test_malformed_body_uses_the_error_envelope(client):
    resp = client.post(
        "/api/chatbot-response", content="not json", headers={"content-type": "application/json"}
    )
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid request body"}
