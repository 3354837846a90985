import json
from pathlib import Path

import pytest

from chatbot.config import Settings
from storage.local_cache import MemoryCache
from storage.memory_store import InMemoryStore

ACCOUNT_ID = "3f1c2b4e-8a6d-4c1e-9f2a-5b7d8e9c0a12"
APP_BASE_URL = "https://app.homebot.test"
FIXTURES = Path(__file__).resolve().parent / "fixtures"


def _load_fixture(name: str):
    with open(FIXTURES / name, "r", encoding="utf-8") as f:
        return json.load(f)


class FakeLLM:
    """Records every prompt; replies with a fixed string, a callable's result, or raises."""

    def __init__(self, reply="Stub reply", error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    def complete(self, messages, *, conversation_id=None):
        self.calls.append(messages)
        if self.error is not None:
            raise self.error
        if callable(self.reply):
            return self.reply(messages)
        return self.reply

    @property
    def system_prompt(self):
        return self.calls[-1][0]["content"]


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch):
    """Keep tests off the network."""
    for name in ("SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY", "OPENAI_API_KEY"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def settings():
    return Settings(app_base_url=APP_BASE_URL)


@pytest.fixture()
def store():
    data = _load_fixture("training_account.json")
    seeded = InMemoryStore()
    for row in data["qa"]:
        seeded.add_qa(ACCOUNT_ID, row["question"], row["answer"], category=row["category"], priority=row["priority"])
    for row in data["documents"]:
        seeded.add_document(
            ACCOUNT_ID,
            row["text"],
            source_file=row["source_file"],
            category=row["category"],
            priority=row["priority"],
        )
    for row in data["properties"]:
        seeded.add_property(ACCOUNT_ID, **row)
    return seeded


@pytest.fixture()
def fake_llm():
    return FakeLLM()


@pytest.fixture()
def cache():
    return MemoryCache()
