import threading

import httpx
import pytest

from storage.memory_store import InMemoryStore
from storage.supabase_store import SupabaseStore
from telemetry.schemas import validate_document_rows, validate_property_rows, validate_qa_rows

from conftest import ACCOUNT_ID


class FakeQuery:
    """Chainable stand-in for a postgrest query; `execute` replays scripted outcomes."""

    def __init__(self, outcomes, calls):
        self.outcomes = outcomes
        self.calls = calls

    def __getattr__(self, name):
        def chain(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self

        return chain

    def execute(self):
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return type("Resp", (), {"data": outcome})()


class FakeSupabase:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []
        self.tables = []

    def table(self, name):
        self.tables.append(name)
        return FakeQuery(self.outcomes, self.calls)


def _store(outcomes):
    fake = FakeSupabase(outcomes)
    store = SupabaseStore("https://db.test", "key", client=fake)
    store._retry_backoff_seconds = 0
    return store, fake


def test_supabase_retries_transient_errors():
    rows = [{"id": "1", "question": "q", "answer": "a", "priority": 3}]
    store, fake = _store([httpx.ConnectError("reset"), rows])
    assert store.list_training_qa(ACCOUNT_ID) == rows
    assert fake.tables == ["chatbot_training_data", "chatbot_training_data"]
    assert ("eq", ("user_id", ACCOUNT_ID), {}) in fake.calls


def test_supabase_gives_up_after_retries():
    store, _ = _store([httpx.ConnectError("reset")] * 3)
    with pytest.raises(httpx.ConnectError):
        store.list_training_documents(ACCOUNT_ID)


def test_supabase_append_turn_inserts_row():
    store, fake = _store([[{"id": "row-1"}]])
    row = store.append_turn(
        ACCOUNT_ID, "conv_1", visitor_id="visitor_1", message="hi", response="hello", source="ai"
    )
    assert row == {"id": "row-1"}
    assert fake.tables == ["chatbot_conversations"]
    insert = [c for c in fake.calls if c[0] == "insert"][0]
    assert insert[1][0]["source"] == "ai"
    assert insert[1][0]["user_id"] == ACCOUNT_ID


def test_supabase_missing_settings_row():
    store, _ = _store([None])
    assert store.get_chatbot_settings(ACCOUNT_ID) == {}


def test_memory_store_keeps_arrival_order_under_threads():
    store = InMemoryStore()

    def writer(n):
        for i in range(50):
            store.append_turn(ACCOUNT_ID, "conv_1", visitor_id=f"v{n}", message=f"{n}-{i}", response="ok", source="ai")

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    turns = store.list_turns(ACCOUNT_ID, "conv_1", limit=1000)
    assert len(turns) == 200
    for n in range(4):
        mine = [t["message"] for t in turns if t["visitor_id"] == f"v{n}"]
        assert mine == [f"{n}-{i}" for i in range(50)]


def test_invalid_rows_are_dropped_and_priority_clamped():
    items = validate_qa_rows(
        [
            {"id": 1, "question": "q1", "answer": "a1", "priority": 15},
            {"id": 2, "question": "q2"},
            {"id": 3, "question": "q3", "answer": "a3", "priority": "high"},
        ]
    )
    assert [(i.id, i.priority) for i in items] == [("1", 10), ("3", 0)]


def test_document_and_property_rows():
    docs = validate_document_rows([{"id": "d1", "extracted_text": "", "source_file": "x"}, {"id": "d2", "extracted_text": "text", "source_file": None}])
    assert [(d.id, d.source_label) for d in docs] == [("d2", "")]
    props = validate_property_rows([{"id": "p1", "title": "Villa", "price": "450000", "has_pool": None}])
    assert props[0].price == 450000.0
    assert props[0].has_pool is False
