import asyncio

import httpx
import pytest

from chatbot.client import HttpResponder, LocalResponder
from chatbot.errors import TransportError
from chatbot.generator import ResponseGenerator

from conftest import ACCOUNT_ID

REQUEST = {
    "message": "what are your office hours?",
    "accountId": ACCOUNT_ID,
    "visitorInfo": {"visitorId": "visitor_1"},
    "conversationId": None,
    "previousMessages": [],
}


def _responder(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpResponder("http://homebot.test/", client=client)


def test_http_responder_posts_to_chat_endpoint():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"response": "9-5 CET", "source": "training", "conversationId": "conv_1"})

    body = asyncio.run(_responder(handler).respond(REQUEST))
    assert body["response"] == "9-5 CET"
    assert seen[0].url.path == "/api/chatbot-response"
    assert seen[0].method == "POST"


def test_http_error_status_is_a_transport_error():
    def handler(request):
        return httpx.Response(500, json={"error": "Internal server error"})

    with pytest.raises(TransportError) as excinfo:
        asyncio.run(_responder(handler).respond(REQUEST))
    assert excinfo.value.status_code == 500


def test_error_envelope_is_a_transport_error():
    def handler(request):
        return httpx.Response(200, json={"error": "Message is required"})

    with pytest.raises(TransportError):
        asyncio.run(_responder(handler).respond(REQUEST))


def test_connection_failure_is_a_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransportError) as excinfo:
        asyncio.run(_responder(handler).respond(REQUEST))
    assert excinfo.value.status_code is None


def test_local_responder_returns_wire_shape(store, fake_llm, settings):
    responder = LocalResponder(ResponseGenerator(store, fake_llm, settings))
    body = asyncio.run(responder.respond(REQUEST))
    assert body["response"] == "9-5 CET"
    assert body["source"] == "training"
    assert body["conversationId"].startswith("conv_")
    assert body["propertyRecommendations"] == []
