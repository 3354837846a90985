"""
Response generation for one chat turn.

The turn runs as a small LangGraph workflow:

    extract_lead -> match_training -> answer_from_training | generate -> finalize -> persist

A confident Q&A hit is answered verbatim without calling the model. Anything
that raises inside the graph turns into the fixed apology with source
"error", and such turns are never written to the conversation log.
"""

from __future__ import annotations

import os
import uuid
from typing import Any, Dict, List, Optional, Protocol, Sequence, TypedDict

import openai
from langgraph.graph import END, StateGraph
from openai import OpenAI

from chatbot.config import Settings
from chatbot.errors import GenerationError
from chatbot.identity import AccountIdentity, Authenticated
from chatbot.lead_extractor import LeadExtractor
from chatbot.links import rewrite_links
from chatbot.matcher import TrainingDataMatcher, document_items, is_identity_query, qa_items, shares_content_word
from chatbot.models import (
    SOURCE_AI,
    SOURCE_ERROR,
    SOURCE_TRAINING,
    ChatResponse,
    MatchResult,
    PropertyRecommendation,
    PropertyRecord,
    VisitorInfo,
)
from chatbot.prompts import (
    FALLBACK_APOLOGY,
    build_chat_messages,
    build_knowledge_context,
    build_system_prompt,
    format_price,
)
from telemetry.logging_utils import get_logger
from telemetry.metrics import MetricsRecorder, extract_usage_tokens
from telemetry.prompt_filters import INJECTION_REMINDER, detect_prompt_injection
from telemetry.retry import retry_with_backoff

logger = get_logger(__name__)

FEATURE_HIGHLIGHTS = ("sea view", "garden", "terrace", "garage", "gym", "beach", "golf", "renovated")


def new_conversation_id() -> str:
    return f"conv_{uuid.uuid4().hex}"


def get_openai_client() -> OpenAI:
    """Create an OpenAI client, raising a helpful error when the key is missing."""
    if not os.getenv("OPENAI_API_KEY"):
        raise GenerationError("OPENAI_API_KEY is required to generate chatbot replies.")
    return OpenAI()


class LLMClient(Protocol):
    def complete(self, messages: List[Dict[str, str]], *, conversation_id: Optional[str] = None) -> str:
        ...


class OpenAIChatClient:
    """Chat-completions backend for the generator."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        client: Optional[OpenAI] = None,
        metrics: Optional[MetricsRecorder] = None,
    ) -> None:
        self.settings = settings or Settings()
        self._client = client
        self.metrics = metrics or MetricsRecorder(self.settings.metrics_dir)

    def _get_client(self) -> OpenAI:
        if self._client is None:
            self._client = get_openai_client()
        return self._client

    def complete(self, messages: List[Dict[str, str]], *, conversation_id: Optional[str] = None) -> str:
        client = self._get_client()
        timer = self.metrics.start_timer("response_generator", self.settings.openai_model, conversation_id)
        try:
            resp = retry_with_backoff(
                lambda: client.chat.completions.create(
                    model=self.settings.openai_model,
                    messages=messages,
                    temperature=self.settings.temperature,
                    max_tokens=self.settings.max_tokens,
                ),
                retries=2,
                base_delay=0.5,
                retry_exceptions=(openai.APIConnectionError, openai.RateLimitError),
            )
        except openai.OpenAIError as exc:
            raise GenerationError(f"OpenAI request failed: {exc}") from exc
        tokens_in, tokens_out = extract_usage_tokens(resp)
        timer.done(tokens_in=tokens_in, tokens_out=tokens_out)
        try:
            content = resp.choices[0].message.content
        except (AttributeError, IndexError) as exc:
            raise GenerationError("OpenAI response had no choices.") from exc
        if not isinstance(content, str) or not content.strip():
            raise GenerationError("OpenAI returned an empty reply.")
        return content.strip()


class GeneratorState(TypedDict, total=False):
    message: str
    identity: AccountIdentity
    visitor_info: VisitorInfo
    conversation_id: str
    prior_turns: List[Dict[str, Any]]
    lead_info: Dict[str, str]
    matches: MatchResult
    training_enabled: bool
    response: str
    source: str
    recommendations: List[PropertyRecommendation]
    persisted: bool


def build_recommendations(records: Sequence[PropertyRecord], limit: int) -> List[PropertyRecommendation]:
    recs: List[PropertyRecommendation] = []
    for record in records[: max(limit, 0)]:
        text = record.search_text
        features = tuple(f for f in FEATURE_HIGHLIGHTS if f in text)
        if record.has_pool:
            features = ("pool",) + features
        highlight = None
        if record.featured:
            highlight = "Featured listing"
        elif features:
            highlight = f"Includes {features[0]}"
        recs.append(
            PropertyRecommendation(
                id=record.id,
                title=record.title,
                price=format_price(record.price),
                location=record.location or None,
                bedrooms=record.bedrooms,
                bathrooms=record.bathrooms,
                has_pool=record.has_pool,
                features=features,
                highlight=highlight,
                url=record.url or f"/properties/{record.id}",
            )
        )
    return recs


class ResponseGenerator:
    def __init__(
        self,
        store: Any,
        llm: LLMClient,
        settings: Optional[Settings] = None,
        *,
        extractor: Optional[LeadExtractor] = None,
        matcher: Optional[TrainingDataMatcher] = None,
    ) -> None:
        self.store = store
        self.llm = llm
        self.settings = settings or Settings()
        self.extractor = extractor or LeadExtractor()
        self.matcher = matcher or TrainingDataMatcher(store, self.settings)
        self._app = self.build_graph()

    # Graph nodes -----------------------------------------------------------------

    def _extract_lead(self, state: GeneratorState) -> GeneratorState:
        found = self.extractor.extract(state["message"])
        if found:
            logger.info("lead_signals_extracted", extra={"fields": sorted(found)})
        return {"lead_info": found}

    def _training_enabled(self, identity: Authenticated) -> bool:
        try:
            settings = self.store.get_chatbot_settings(identity.account_id) or {}
        except Exception as exc:
            logger.warning(
                "chatbot_settings_lookup_failed",
                extra={"account_id": identity.account_id, "error": f"{type(exc).__name__}: {exc}"[:300]},
            )
            return True
        return settings.get("training_enabled", True) is not False

    def _match_training(self, state: GeneratorState) -> GeneratorState:
        identity = state["identity"]
        if not isinstance(identity, Authenticated):
            return {"matches": MatchResult(), "training_enabled": False}
        if not self._training_enabled(identity):
            return {"matches": MatchResult(), "training_enabled": False}
        return {"matches": self.matcher.match(identity, state["message"]), "training_enabled": True}

    def _route_after_match(self, state: GeneratorState) -> str:
        matches = state.get("matches") or MatchResult()
        best = matches.qa_matches[0] if matches.qa_matches else None
        if best is None or best.low_confidence or best.similarity < self.settings.qa_threshold:
            return "generate"
        # Overlap on question words alone ("what are your ...") is not a verbatim answer.
        if shares_content_word(state["message"], best.item.text):
            return "answer_from_training"
        return "generate"

    def _answer_from_training(self, state: GeneratorState) -> GeneratorState:
        matches = state["matches"]
        logger.info(
            "generator_training_hit",
            extra={"conversation_id": state["conversation_id"], "similarity": round(matches.qa_matches[0].similarity, 3)},
        )
        properties = [m.item for m in matches.property_matches if isinstance(m.item, PropertyRecord)]
        return {
            "response": matches.qa_matches[0].item.answer,
            "source": SOURCE_TRAINING,
            "recommendations": build_recommendations(properties, self.settings.max_recommendations),
        }

    def _generate(self, state: GeneratorState) -> GeneratorState:
        identity = state["identity"]
        message = state["message"]
        matches = state.get("matches") or MatchResult()
        properties = [m.item for m in matches.property_matches if isinstance(m.item, PropertyRecord)]
        knowledge = build_knowledge_context(
            qa_items(matches.qa_matches),
            document_items(matches.file_matches),
            properties,
            max_chars=self.settings.context_chars,
        )
        low_confidence = any(m.low_confidence for m in matches.qa_matches + matches.file_matches)
        injection = detect_prompt_injection(message)
        if injection:
            logger.warning("prompt_injection_detected", extra={"pattern": injection})
        system_prompt = build_system_prompt(
            knowledge,
            demo=not isinstance(identity, Authenticated),
            identity_question=is_identity_query(message),
            low_confidence=low_confidence,
            safety_reminder=INJECTION_REMINDER if injection else None,
        )
        chat = build_chat_messages(
            system_prompt, state.get("prior_turns") or [], message, max_history=self.settings.max_history
        )
        reply = self.llm.complete(chat, conversation_id=state["conversation_id"])
        if not isinstance(reply, str) or not reply.strip():
            raise GenerationError("The model returned an empty reply.")
        return {
            "response": reply.strip(),
            "source": SOURCE_AI,
            "recommendations": build_recommendations(properties, self.settings.max_recommendations),
        }

    def _finalize(self, state: GeneratorState) -> GeneratorState:
        return {"response": rewrite_links(state["response"], self.settings.app_base_url)}

    def _persist(self, state: GeneratorState) -> GeneratorState:
        identity = state["identity"]
        if not isinstance(identity, Authenticated):
            return {"persisted": False}
        try:
            self.store.append_turn(
                identity.account_id,
                state["conversation_id"],
                visitor_id=state["visitor_info"].visitor_id,
                message=state["message"],
                response=state["response"],
                source=state["source"],
            )
        except Exception as exc:
            # The visitor still gets the reply; only the log entry is lost.
            logger.error(
                "conversation_persist_failed",
                extra={
                    "account_id": identity.account_id,
                    "conversation_id": state["conversation_id"],
                    "error": f"{type(exc).__name__}: {exc}"[:300],
                },
            )
            return {"persisted": False}
        return {"persisted": True}

    def build_graph(self):
        """Construct the LangGraph workflow for one turn."""
        graph = StateGraph(GeneratorState)

        graph.add_node("extract_lead", self._extract_lead)
        graph.add_node("match_training", self._match_training)
        graph.add_node("answer_from_training", self._answer_from_training)
        graph.add_node("generate", self._generate)
        graph.add_node("finalize", self._finalize)
        graph.add_node("persist", self._persist)

        graph.set_entry_point("extract_lead")
        graph.add_edge("extract_lead", "match_training")
        graph.add_conditional_edges(
            "match_training",
            self._route_after_match,
            {"answer_from_training": "answer_from_training", "generate": "generate"},
        )
        graph.add_edge("answer_from_training", "finalize")
        graph.add_edge("generate", "finalize")
        graph.add_edge("finalize", "persist")
        graph.add_edge("persist", END)

        return graph.compile()

    # Public API ------------------------------------------------------------------

    def respond(
        self,
        message: str,
        identity: AccountIdentity,
        visitor_info: Optional[VisitorInfo] = None,
        conversation_id: Optional[str] = None,
        prior_turns: Sequence[Dict[str, Any]] = (),
    ) -> ChatResponse:
        """Produce the reply for one visitor message."""
        text = (message or "").strip()
        if not text:
            raise ValueError("Message must not be empty.")
        conversation_id = conversation_id or new_conversation_id()
        visitor = visitor_info or VisitorInfo(visitor_id="anonymous")
        state: GeneratorState = {
            "message": text,
            "identity": identity,
            "visitor_info": visitor,
            "conversation_id": conversation_id,
            "prior_turns": list(prior_turns or []),
        }
        log_extra = {"conversation_id": conversation_id, "authenticated": identity.is_authenticated}
        logger.info("generator_turn_start", extra=log_extra)
        try:
            result = self._app.invoke(state)
        except Exception as exc:
            logger.exception(
                "generator_turn_failed", extra={**log_extra, "error": f"{type(exc).__name__}: {exc}"[:300]}
            )
            return ChatResponse(
                response=FALLBACK_APOLOGY,
                source=SOURCE_ERROR,
                conversation_id=conversation_id,
                lead_info=self.extractor.extract(text),
            )
        logger.info("generator_turn_complete", extra={**log_extra, "source": result.get("source")})
        return ChatResponse(
            response=result["response"],
            source=result["source"],
            conversation_id=conversation_id,
            lead_info=dict(result.get("lead_info") or {}),
            property_recommendations=tuple(result.get("recommendations") or ()),
        )
