"""Ways for the orchestrator to reach the response generator."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional, Protocol

import httpx

from chatbot.errors import TransportError
from chatbot.identity import parse_identity
from chatbot.models import RESPONSE_SOURCES, VisitorInfo
from telemetry.logging_utils import get_logger

logger = get_logger(__name__)

CHAT_PATH = "/api/chatbot-response"


class Responder(Protocol):
    async def respond(self, request: Dict[str, Any]) -> Dict[str, Any]:
        ...


class HttpResponder:
    """POSTs chat requests to a running Homebot server."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    async def respond(self, request: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}{CHAT_PATH}"
        try:
            if self._client is not None:
                resp = await self._client.post(url, json=request, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.post(url, json=request)
        except httpx.HTTPError as exc:
            logger.warning("chat_transport_failed", extra={"url": url, "error": f"{type(exc).__name__}: {exc}"[:300]})
            raise TransportError(f"Could not reach {url}: {exc}") from exc

        try:
            body = resp.json()
        except ValueError:
            body = None
        if resp.status_code >= 400 or not isinstance(body, dict) or "error" in body:
            detail = body.get("error") if isinstance(body, dict) else resp.text[:200]
            logger.warning("chat_transport_rejected", extra={"url": url, "status_code": resp.status_code})
            raise TransportError(f"Server error {resp.status_code}: {detail}", status_code=resp.status_code)
        if "response" not in body or body.get("source") not in RESPONSE_SOURCES:
            raise TransportError("Server reply was not a chat response", status_code=resp.status_code)
        return body


class LocalResponder:
    """Runs a `ResponseGenerator` in-process, off the event loop."""

    def __init__(self, generator: Any) -> None:
        self.generator = generator

    async def respond(self, request: Dict[str, Any]) -> Dict[str, Any]:
        identity = parse_identity(request.get("accountId"))
        visitor = VisitorInfo.from_wire(request.get("visitorInfo"))
        result = await asyncio.to_thread(
            self.generator.respond,
            request.get("message") or "",
            identity,
            visitor,
            request.get("conversationId"),
            request.get("previousMessages") or [],
        )
        return result.to_wire()
