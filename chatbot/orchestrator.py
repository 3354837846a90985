"""
Front-end turn coordination: one in-flight turn at a time.

The visitor's message is shown immediately, the responder is awaited, and the
outcome is applied to the session. Transport failures leave an error banner
and no bot message; an "error" reply from the generator is shown as a normal
bot message.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Dict, Optional

from chatbot.client import Responder
from chatbot.errors import TransportError, TurnInProgressError
from chatbot.models import Message, PropertyRecommendation, Role, VisitorInfo, history_payload
from chatbot.session import ConversationSessionManager
from telemetry.logging_utils import get_logger

logger = get_logger(__name__)

WELCOME_MESSAGES = {
    "en": "Hi! I'm your real estate assistant. How can I help you today?",
    "es": "¡Hola! Soy tu asistente inmobiliario. ¿En qué puedo ayudarte hoy?",
    "fr": "Bonjour ! Je suis votre assistant immobilier. Comment puis-je vous aider aujourd'hui ?",
    "de": "Hallo! Ich bin Ihr Immobilienassistent. Wie kann ich Ihnen heute helfen?",
    "pt": "Olá! Sou o seu assistente imobiliário. Como posso ajudar hoje?",
}

ERROR_MESSAGES = {
    "en": "Sorry, something went wrong. Please try again.",
    "es": "Lo siento, algo salió mal. Por favor, inténtalo de nuevo.",
    "fr": "Désolé, une erreur s'est produite. Veuillez réessayer.",
    "de": "Entschuldigung, etwas ist schiefgelaufen. Bitte versuchen Sie es erneut.",
    "pt": "Desculpe, algo deu errado. Por favor, tente novamente.",
}


def _language(code: Optional[str]) -> str:
    base = (code or "en").split("-")[0].lower()
    return base if base in ERROR_MESSAGES else "en"


def welcome_message(language: Optional[str] = None) -> str:
    return WELCOME_MESSAGES[_language(language)]


def error_message(language: Optional[str] = None) -> str:
    return ERROR_MESSAGES[_language(language)]


class OrchestratorState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"


class ChatOrchestrator:
    def __init__(
        self,
        responder: Responder,
        session: ConversationSessionManager,
        account_id: Optional[str] = None,
        language: str = "en",
    ) -> None:
        self.responder = responder
        self.session = session
        self.account_id = account_id
        self.language = _language(language)
        self.state = OrchestratorState.IDLE
        self.error: Optional[str] = None
        self.last_source: Optional[str] = None
        self.visitor_info = VisitorInfo(visitor_id=session.visitor_id)
        self._lock = asyncio.Lock()

    @property
    def is_typing(self) -> bool:
        return self.state is OrchestratorState.SENDING

    @property
    def messages(self):
        return self.session.messages

    def _request(self, text: str) -> Dict[str, Any]:
        history = self.session.training_history()
        # The just-appended user message travels as `message`, not as history.
        if history and history[-1].role is Role.USER and history[-1].content == text:
            history = history[:-1]
        return {
            "message": text,
            "accountId": self.account_id,
            "visitorInfo": self.visitor_info.to_wire(),
            "conversationId": self.session.conversation_id,
            "previousMessages": history_payload(history),
        }

    async def send(self, text: str) -> Optional[Message]:
        """Run one turn; returns the bot message appended, if any."""
        content = (text or "").strip()
        if not content:
            return None
        if self._lock.locked() or self.state is OrchestratorState.SENDING:
            raise TurnInProgressError("A message is already being answered.")

        async with self._lock:
            self.state = OrchestratorState.SENDING
            self.error = None
            self.session.append(Message(role=Role.USER, content=content))
            try:
                reply = await self.responder.respond(self._request(content))
                return self._apply(reply)
            except TransportError as exc:
                logger.warning("orchestrator_transport_failed", extra={"status_code": exc.status_code})
                self.error = error_message(self.language)
                return None
            except Exception as exc:
                logger.error("orchestrator_turn_failed", extra={"error": f"{type(exc).__name__}: {exc}"[:300]})
                self.error = error_message(self.language)
                return None
            finally:
                self.state = OrchestratorState.IDLE

    def _apply(self, reply: Dict[str, Any]) -> Message:
        # Parse the whole reply before touching the session.
        lead_info = reply.get("leadInfo")
        if lead_info is not None and not isinstance(lead_info, dict):
            raise ValueError(f"leadInfo must be an object, got {type(lead_info).__name__}")
        conversation_id = reply.get("conversationId")
        if conversation_id is not None and not isinstance(conversation_id, str):
            raise ValueError(f"conversationId must be a string, got {type(conversation_id).__name__}")
        recommendations = tuple(
            PropertyRecommendation.from_dict(p) for p in reply.get("propertyRecommendations") or []
        )
        bot = Message(role=Role.BOT, content=str(reply.get("response") or ""), properties=recommendations)
        visitor_info = self.visitor_info.merge(lead_info)

        self.session.append(bot)
        self.visitor_info = visitor_info
        self.session.set_conversation_id(conversation_id)
        self.last_source = reply.get("source")
        if self.last_source == "error":
            logger.info("orchestrator_soft_failure", extra={"conversation_id": self.session.conversation_id})
        return bot
