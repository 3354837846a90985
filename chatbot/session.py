"""
Per-visitor conversation continuity backed by a client-side cache.

Two records are kept per scope: the message list and the conversation id.
They are written independently and both writes are best effort, so a
restored session may carry messages without an id (or the reverse).
"""

from __future__ import annotations

import json
import uuid
from typing import Any, List, Optional

from chatbot.errors import StorageError
from chatbot.models import ConversationSession, Message, Role
from storage.local_cache import KeyValueCache
from telemetry.logging_utils import get_logger

logger = get_logger(__name__)

MESSAGES_KEY = "homebot_messages_{scope}"
CONVERSATION_KEY = "homebot_conversation_{scope}"
VISITOR_KEY = "homebot_visitor_id"
DEFAULT_SCOPE = "landing"


def new_visitor_id() -> str:
    return f"visitor_{uuid.uuid4().hex}"


class ConversationSessionManager:
    def __init__(self, cache: KeyValueCache, scope: Optional[str] = None, welcome: str = "") -> None:
        self.cache = cache
        self.scope = scope or DEFAULT_SCOPE
        self.welcome = welcome
        self._visitor_id = self._load_visitor_id()
        self.session = ConversationSession(visitor_id=self._visitor_id, messages=self._welcome_messages())

    @property
    def messages_key(self) -> str:
        return MESSAGES_KEY.format(scope=self.scope)

    @property
    def conversation_key(self) -> str:
        return CONVERSATION_KEY.format(scope=self.scope)

    def _welcome_messages(self) -> List[Message]:
        return [Message(role=Role.BOT, content=self.welcome)] if self.welcome else []

    def _read(self, key: str) -> Optional[str]:
        try:
            return self.cache.get(key)
        except (StorageError, OSError) as exc:
            logger.warning("session_cache_read_failed", extra={"key": key, "error": str(exc)[:200]})
            return None

    def _write(self, key: str, value: str) -> bool:
        try:
            self.cache.set(key, value)
        except (StorageError, OSError) as exc:
            logger.warning("session_cache_write_failed", extra={"key": key, "error": str(exc)[:200]})
            return False
        return True

    def _load_visitor_id(self) -> str:
        stored = self._read(VISITOR_KEY)
        if not stored:
            stored = new_visitor_id()
            self._write(VISITOR_KEY, stored)
        return stored

    @property
    def visitor_id(self) -> str:
        return self._visitor_id

    @property
    def conversation_id(self) -> Optional[str]:
        return self.session.conversation_id

    @property
    def messages(self) -> List[Message]:
        return list(self.session.messages)

    def restore(self) -> ConversationSession:
        """Load cached messages and conversation id; anything unreadable means a fresh session."""
        messages = self._welcome_messages()
        raw = self._read(self.messages_key)
        if raw:
            try:
                decoded: Any = json.loads(raw)
                if not isinstance(decoded, list):
                    raise ValueError("message cache is not a list")
                cached = [Message.from_dict(item) for item in decoded]
            except (ValueError, TypeError, AttributeError) as exc:
                logger.warning("session_restore_invalid", extra={"scope": self.scope, "error": str(exc)[:200]})
            else:
                # A lone entry is just the welcome message.
                if len(cached) > 1:
                    messages = cached
        conversation_id = self._read(self.conversation_key) or None
        self.session = ConversationSession(
            visitor_id=self.visitor_id, conversation_id=conversation_id, messages=messages
        )
        logger.info(
            "session_restored",
            extra={"scope": self.scope, "message_count": len(messages), "has_conversation": bool(conversation_id)},
        )
        return self.session

    def append(self, message: Message) -> None:
        self.session.messages.append(message)
        if len(self.session.messages) > 1:
            payload = json.dumps([m.to_dict() for m in self.session.messages], ensure_ascii=False)
            self._write(self.messages_key, payload)

    def set_conversation_id(self, conversation_id: Optional[str]) -> None:
        if not conversation_id or conversation_id == self.session.conversation_id:
            return
        self.session.conversation_id = conversation_id
        self._write(self.conversation_key, conversation_id)

    def training_history(self) -> List[Message]:
        """Messages to send as context: everything except the leading welcome message."""
        messages = self.session.messages
        if messages and self.welcome and messages[0].role is Role.BOT and messages[0].content == self.welcome:
            return list(messages[1:])
        return list(messages)

    def reset(self) -> None:
        for key in (self.messages_key, self.conversation_key):
            try:
                self.cache.remove(key)
            except (StorageError, OSError) as exc:
                logger.warning("session_cache_write_failed", extra={"key": key, "error": str(exc)[:200]})
        self.session = ConversationSession(visitor_id=self.visitor_id, messages=self._welcome_messages())
