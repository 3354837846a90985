from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from chatbot.config import Settings
from chatbot.generator import LLMClient, OpenAIChatClient, ResponseGenerator
from chatbot.identity import Authenticated, parse_identity
from chatbot.matcher import TrainingDataMatcher
from chatbot.models import VisitorInfo
from storage.memory_store import InMemoryStore
from storage.supabase_store import SupabaseStore
from telemetry.logging_utils import get_logger
from telemetry.metrics import MetricsRecorder

logger = get_logger(__name__)


class ChatRequestPayload(BaseModel):
    message: Optional[str] = None
    account_id: Optional[str] = Field(default=None, alias="accountId")
    visitor_info: Optional[Dict[str, Any]] = Field(default=None, alias="visitorInfo")
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")
    previous_messages: List[Dict[str, Any]] = Field(default_factory=list, alias="previousMessages")

    model_config = {"populate_by_name": True}


class SearchTrainingPayload(BaseModel):
    query_text: Optional[str] = Field(default=None, alias="queryText")
    account_id: Optional[str] = Field(default=None, alias="accountId")
    include_qa: bool = Field(default=True, alias="includeQA")
    include_files: bool = Field(default=True, alias="includeFiles")
    include_properties: bool = Field(default=True, alias="includeProperties")
    max_results: Optional[int] = Field(default=None, alias="maxResults", ge=1, le=50)
    previous_messages: List[Dict[str, Any]] = Field(default_factory=list, alias="previousMessages")

    model_config = {"populate_by_name": True}


class ConversationHistoryPayload(BaseModel):
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")
    account_id: Optional[str] = Field(default=None, alias="accountId")
    limit: int = Field(default=10, ge=1, le=100)

    model_config = {"populate_by_name": True}


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def default_store(settings: Settings) -> Any:
    if settings.supabase_configured:
        return SupabaseStore(settings.supabase_url, settings.supabase_key)
    logger.warning("supabase_not_configured", extra={"store": "memory"})
    return InMemoryStore()


def create_app(
    store: Any = None,
    llm: Optional[LLMClient] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    store = store if store is not None else default_store(settings)
    llm = llm or OpenAIChatClient(settings, metrics=MetricsRecorder(settings.metrics_dir, sink=store))
    generator = ResponseGenerator(store, llm, settings)
    matcher = TrainingDataMatcher(store, settings)

    app = FastAPI(title="Homebot chatbot API")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.store = store
    app.state.generator = generator

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        loc = errors[0].get("loc", ()) if errors else ()
        field = ".".join(str(part) for part in loc if isinstance(part, str) and part != "body")
        logger.warning("request_validation_failed", extra={"path": request.url.path, "field": field})
        return _error(status.HTTP_400_BAD_REQUEST, f"Invalid {field}" if field else "Invalid request body")

    @app.post("/api/chatbot-response")
    def chatbot_response(payload: ChatRequestPayload):
        message = (payload.message or "").strip()
        if not message:
            return _error(status.HTTP_400_BAD_REQUEST, "Message is required")
        identity = parse_identity(payload.account_id)
        visitor = VisitorInfo.from_wire(payload.visitor_info)
        try:
            result = generator.respond(
                message,
                identity,
                visitor,
                conversation_id=payload.conversation_id,
                prior_turns=payload.previous_messages,
            )
        except Exception as exc:
            logger.exception("chatbot_response_failed", extra={"error": f"{type(exc).__name__}: {exc}"[:300]})
            return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")
        return result.to_wire()

    @app.post("/api/search-training-data")
    def search_training_data(payload: SearchTrainingPayload):
        query = (payload.query_text or "").strip()
        if not query:
            return _error(status.HTTP_400_BAD_REQUEST, "Query text is required")
        identity = parse_identity(payload.account_id)
        try:
            result = matcher.match(
                identity,
                query,
                include_qa=payload.include_qa,
                include_files=payload.include_files,
                include_properties=payload.include_properties,
                max_results=payload.max_results,
            )
        except Exception as exc:
            logger.exception("search_training_data_failed", extra={"error": f"{type(exc).__name__}: {exc}"[:300]})
            return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")
        return result.to_wire()

    @app.post("/api/conversation-history")
    def conversation_history(payload: ConversationHistoryPayload):
        if not payload.conversation_id:
            return _error(status.HTTP_400_BAD_REQUEST, "Conversation ID is required")
        identity = parse_identity(payload.account_id)
        if not isinstance(identity, Authenticated):
            return {"messages": []}
        try:
            turns = store.list_turns(identity.account_id, payload.conversation_id, limit=payload.limit)
        except Exception as exc:
            logger.exception("conversation_history_failed", extra={"error": f"{type(exc).__name__}: {exc}"[:300]})
            return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")
        messages: List[Dict[str, Any]] = []
        for turn in turns:
            messages.append({"role": "user", "content": turn.get("message") or ""})
            messages.append({"role": "bot", "content": turn.get("response") or "", "source": turn.get("source")})
        return {"messages": messages}

    @app.get("/api/health")
    def health():
        ok = bool(store.ping())
        body = {"status": "ok" if ok else "degraded", "store": type(store).__name__}
        return JSONResponse(status_code=status.HTTP_200_OK if ok else status.HTTP_503_SERVICE_UNAVAILABLE, content=body)

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("server.app:create_app", factory=True, host="0.0.0.0", port=8000, reload=False)
