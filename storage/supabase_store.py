from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import httpx
from postgrest import APIError

from supabase import Client, create_client
from telemetry.retry import retry_with_backoff


class SupabaseStore:
    """Training data, property listings and the conversation log, per account."""

    def __init__(self, url: str, key: str, *, client: Optional[Client] = None) -> None:
        self.client: Client = client or create_client(url, key)
        self._max_retries = 3
        self._retry_backoff_seconds = 0.25

    def _table(self, name: str):
        return self.client.table(name)

    def _with_retry(self, fn: Callable[[], Any]) -> Any:
        return retry_with_backoff(
            fn,
            retries=self._max_retries,
            base_delay=self._retry_backoff_seconds,
            jitter=0.0,
            retry_exceptions=(httpx.RemoteProtocolError, httpx.WriteError, httpx.ConnectError, APIError),
        )

    # Training data ------------------------------------------------------------------

    def list_training_qa(self, account_id: str) -> List[Dict[str, Any]]:
        resp = self._with_retry(
            lambda: self._table("chatbot_training_data")
            .select("id, question, answer, category, priority")
            .eq("user_id", account_id)
            .order("priority", desc=True)
            .execute()
        )
        return resp.data or []

    def list_training_documents(self, account_id: str) -> List[Dict[str, Any]]:
        resp = self._with_retry(
            lambda: self._table("chatbot_training_files")
            .select("id, extracted_text, source_file, category, priority, processing_status")
            .eq("user_id", account_id)
            .order("priority", desc=True)
            .execute()
        )
        return resp.data or []

    def list_properties(self, account_id: str, *, status: Optional[str] = "active") -> List[Dict[str, Any]]:
        query = self._table("properties").select("*").eq("user_id", account_id)
        if status:
            query = query.eq("status", status)
        resp = self._with_retry(lambda: query.execute())
        return resp.data or []

    def get_chatbot_settings(self, account_id: str) -> Dict[str, Any]:
        resp = self._with_retry(
            lambda: self._table("chatbot_settings").select("settings").eq("user_id", account_id).maybe_single().execute()
        )
        row = resp.data if resp is not None else None
        return (row or {}).get("settings") or {}

    # Conversation log ---------------------------------------------------------------

    def append_turn(
        self,
        account_id: str,
        conversation_id: str,
        *,
        visitor_id: Optional[str],
        message: str,
        response: str,
        source: str,
    ) -> Dict[str, Any]:
        row = {
            "user_id": account_id,
            "conversation_id": conversation_id,
            "visitor_id": visitor_id,
            "message": message,
            "response": response,
            "source": source,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        resp = self._with_retry(lambda: self._table("chatbot_conversations").insert(row).execute())
        if not resp.data:
            raise RuntimeError("Failed to append conversation turn")
        return resp.data[0]

    def list_turns(self, account_id: str, conversation_id: str, *, limit: int = 10) -> List[Dict[str, Any]]:
        resp = self._with_retry(
            lambda: self._table("chatbot_conversations")
            .select("id, message, response, source, created_at, visitor_id")
            .eq("conversation_id", conversation_id)
            .eq("user_id", account_id)
            .order("created_at", desc=False)
            .limit(limit)
            .execute()
        )
        return resp.data or []

    # Metrics ------------------------------------------------------------------------

    def record_metric(self, row: Dict[str, Any]) -> None:
        self._with_retry(lambda: self._table("metrics").insert(row).execute())

    # Health -------------------------------------------------------------------------

    def ping(self) -> bool:
        try:
            self._table("chatbot_settings").select("user_id").limit(1).execute()
        except (httpx.HTTPError, APIError):
            return False
        return True
