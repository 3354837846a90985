from __future__ import annotations

import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class InMemoryStore:
    """Demo-mode store used when Supabase is unavailable, and the test double."""

    def __init__(self) -> None:
        self.training_qa: Dict[str, List[Dict[str, Any]]] = {}
        self.training_documents: Dict[str, List[Dict[str, Any]]] = {}
        self.properties: Dict[str, List[Dict[str, Any]]] = {}
        self.chatbot_settings: Dict[str, Dict[str, Any]] = {}
        self.turns: List[Dict[str, Any]] = []
        self.metrics: List[Dict[str, Any]] = []
        self._turn_lock = threading.Lock()

    # Seeding ---------------------------------------------------------------
    def add_qa(
        self,
        account_id: str,
        question: str,
        answer: str,
        *,
        category: Optional[str] = None,
        priority: int = 0,
    ) -> Dict[str, Any]:
        row = {
            "id": str(uuid.uuid4()),
            "question": question,
            "answer": answer,
            "category": category,
            "priority": priority,
        }
        self.training_qa.setdefault(account_id, []).append(row)
        return row

    def add_document(
        self,
        account_id: str,
        text: str,
        *,
        source_file: str = "upload.txt",
        category: Optional[str] = None,
        priority: int = 0,
    ) -> Dict[str, Any]:
        row = {
            "id": str(uuid.uuid4()),
            "extracted_text": text,
            "source_file": source_file,
            "category": category,
            "priority": priority,
            "processing_status": "completed",
        }
        self.training_documents.setdefault(account_id, []).append(row)
        return row

    def add_property(self, account_id: str, **fields: Any) -> Dict[str, Any]:
        row = {"id": str(uuid.uuid4()), "status": "active", "featured": False, **fields}
        self.properties.setdefault(account_id, []).append(row)
        return row

    def set_chatbot_settings(self, account_id: str, settings: Dict[str, Any]) -> None:
        self.chatbot_settings[account_id] = dict(settings)

    # Training data ---------------------------------------------------------
    def list_training_qa(self, account_id: str) -> List[Dict[str, Any]]:
        rows = list(self.training_qa.get(account_id, []))
        rows.sort(key=lambda r: r.get("priority") or 0, reverse=True)
        return rows

    def list_training_documents(self, account_id: str) -> List[Dict[str, Any]]:
        rows = list(self.training_documents.get(account_id, []))
        rows.sort(key=lambda r: r.get("priority") or 0, reverse=True)
        return rows

    def list_properties(self, account_id: str, *, status: Optional[str] = "active") -> List[Dict[str, Any]]:
        rows = self.properties.get(account_id, [])
        return [dict(r) for r in rows if status is None or r.get("status") == status]

    def get_chatbot_settings(self, account_id: str) -> Dict[str, Any]:
        return dict(self.chatbot_settings.get(account_id, {}))

    # Conversation log ------------------------------------------------------
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
            "id": str(uuid.uuid4()),
            "user_id": account_id,
            "conversation_id": conversation_id,
            "visitor_id": visitor_id,
            "message": message,
            "response": response,
            "source": source,
            "created_at": _now_iso(),
        }
        with self._turn_lock:
            self.turns.append(row)
        return row

    def list_turns(self, account_id: str, conversation_id: str, *, limit: int = 10) -> List[Dict[str, Any]]:
        with self._turn_lock:
            rows = [
                dict(t)
                for t in self.turns
                if t["user_id"] == account_id and t["conversation_id"] == conversation_id
            ]
        return rows[:limit]

    # Metrics ---------------------------------------------------------------
    def record_metric(self, row: Dict[str, Any]) -> None:
        with self._turn_lock:
            self.metrics.append(dict(row))

    # Health ----------------------------------------------------------------
    def ping(self) -> bool:
        return True
