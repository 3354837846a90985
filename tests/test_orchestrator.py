import asyncio
import json

import pytest

from chatbot.errors import TransportError, TurnInProgressError
from chatbot.orchestrator import ERROR_MESSAGES, ChatOrchestrator, OrchestratorState, welcome_message
from chatbot.session import ConversationSessionManager

from conftest import ACCOUNT_ID


class ScriptedResponder:
    """Answers every request; mints `conv_new` when the request carries no id."""

    def __init__(self, replies=None):
        self.replies = list(replies or [])
        self.requests = []

    async def respond(self, request):
        self.requests.append(request)
        reply = self.replies.pop(0) if self.replies else {}
        if isinstance(reply, Exception):
            raise reply
        return {
            "response": f"echo: {request['message']}",
            "source": "ai",
            "conversationId": request.get("conversationId") or "conv_new",
            "leadInfo": {},
            "propertyRecommendations": [],
            **reply,
        }


class GatedResponder(ScriptedResponder):
    def __init__(self):
        super().__init__()
        self.release = asyncio.Event()

    async def respond(self, request):
        await self.release.wait()
        return await super().respond(request)


def _orchestrator(cache, responder, language="en"):
    session = ConversationSessionManager(cache, scope=ACCOUNT_ID, welcome=welcome_message(language))
    session.restore()
    return ChatOrchestrator(responder, session, account_id=ACCOUNT_ID, language=language)


def test_restored_conversation_id_is_reused(cache):
    cache.set(f"homebot_conversation_{ACCOUNT_ID}", "abc")
    responder = ScriptedResponder()
    orchestrator = _orchestrator(cache, responder)

    async def run():
        await orchestrator.send("first")
        await orchestrator.send("second")

    asyncio.run(run())
    assert [r["conversationId"] for r in responder.requests] == ["abc", "abc"]
    assert orchestrator.session.conversation_id == "abc"


def test_minted_conversation_id_is_adopted(cache):
    responder = ScriptedResponder()
    orchestrator = _orchestrator(cache, responder)

    async def run():
        await orchestrator.send("first")
        await orchestrator.send("second")

    asyncio.run(run())
    assert [r["conversationId"] for r in responder.requests] == [None, "conv_new"]
    assert cache.get(f"homebot_conversation_{ACCOUNT_ID}") == "conv_new"


def test_second_send_is_rejected_while_first_is_in_flight(cache):
    responder = GatedResponder()
    orchestrator = _orchestrator(cache, responder)

    async def run():
        first = asyncio.create_task(orchestrator.send("first"))
        await asyncio.sleep(0)
        assert orchestrator.state is OrchestratorState.SENDING
        assert orchestrator.is_typing
        with pytest.raises(TurnInProgressError):
            await orchestrator.send("second")
        responder.release.set()
        await first

    asyncio.run(run())
    assert [m.content for m in orchestrator.messages] == [welcome_message(), "first", "echo: first"]
    assert orchestrator.state is OrchestratorState.IDLE


def test_transport_failure_shows_banner_without_bot_message(cache):
    responder = ScriptedResponder(replies=[TransportError("server down", status_code=502)])
    orchestrator = _orchestrator(cache, responder, language="es")

    asyncio.run(orchestrator.send("hola"))
    assert orchestrator.error == ERROR_MESSAGES["es"]
    assert [m.content for m in orchestrator.messages] == [welcome_message("es"), "hola"]
    assert not orchestrator.is_typing

    asyncio.run(orchestrator.send("otra vez"))
    assert orchestrator.error is None
    assert orchestrator.messages[-1].content == "echo: otra vez"


def test_malformed_reply_leaves_no_bot_message(cache):
    responder = ScriptedResponder(replies=[{"response": "hi", "leadInfo": ["oops"]}])
    orchestrator = _orchestrator(cache, responder)

    assert asyncio.run(orchestrator.send("hello")) is None
    assert orchestrator.error == ERROR_MESSAGES["en"]
    assert [m.content for m in orchestrator.messages] == [welcome_message(), "hello"]
    cached = json.loads(cache.get(f"homebot_messages_{ACCOUNT_ID}"))
    assert [m["content"] for m in cached] == [welcome_message(), "hello"]
    assert orchestrator.session.conversation_id is None


def test_soft_failure_is_a_bot_message(cache):
    apology = "Sorry, I encountered an error while processing your request. Please try again."
    responder = ScriptedResponder(replies=[{"response": apology, "source": "error"}])
    orchestrator = _orchestrator(cache, responder)

    bot = asyncio.run(orchestrator.send("hello"))
    assert bot.content == apology
    assert orchestrator.error is None
    assert orchestrator.last_source == "error"


def test_lead_info_accumulates(cache):
    responder = ScriptedResponder(
        replies=[{"leadInfo": {"email": "a@b.com"}}, {"leadInfo": {"phone": "555-1234"}}, {}]
    )
    orchestrator = _orchestrator(cache, responder)

    async def run():
        await orchestrator.send("my email is a@b.com")
        await orchestrator.send("call me on 555-1234")
        await orchestrator.send("thanks")

    asyncio.run(run())
    assert orchestrator.visitor_info.email == "a@b.com"
    assert orchestrator.visitor_info.phone == "555-1234"
    assert responder.requests[2]["visitorInfo"]["email"] == "a@b.com"
    assert responder.requests[2]["visitorInfo"]["visitorId"].startswith("visitor_")


def test_request_history_excludes_welcome_and_current_message(cache):
    responder = ScriptedResponder()
    orchestrator = _orchestrator(cache, responder)

    async def run():
        await orchestrator.send("first")
        await orchestrator.send("second")

    asyncio.run(run())
    assert responder.requests[0]["previousMessages"] == []
    assert responder.requests[1]["previousMessages"] == [
        {"role": "user", "content": "first"},
        {"role": "bot", "content": "echo: first"},
    ]
    assert responder.requests[1]["message"] == "second"


def test_property_recommendations_are_attached(cache):
    rec = {"id": "villa-azul", "title": "Villa Azul", "price": "€1,250,000", "has_pool": True}
    responder = ScriptedResponder(replies=[{"propertyRecommendations": [rec]}])
    orchestrator = _orchestrator(cache, responder)

    bot = asyncio.run(orchestrator.send("villas with a pool"))
    assert [p.title for p in bot.properties] == ["Villa Azul"]
    assert bot.properties[0].has_pool


def test_blank_input_is_ignored(cache):
    responder = ScriptedResponder()
    orchestrator = _orchestrator(cache, responder)
    assert asyncio.run(orchestrator.send("   ")) is None
    assert responder.requests == []
    assert len(orchestrator.messages) == 1
