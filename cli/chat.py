"""
Terminal chat client for a Homebot account.

Runs the generator in-process by default, or talks to a running server:

    python main.py --account 3f1c... --server http://localhost:8000
"""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import List, Optional

from chatbot.client import HttpResponder, LocalResponder
from chatbot.config import Settings
from chatbot.errors import TurnInProgressError
from chatbot.generator import OpenAIChatClient, ResponseGenerator
from chatbot.links import format_property_link
from chatbot.orchestrator import ChatOrchestrator, welcome_message
from chatbot.session import ConversationSessionManager
from server.app import default_store
from storage.local_cache import JsonFileCache
from telemetry.metrics import MetricsRecorder

DEFAULT_CACHE_PATH = Path.home() / ".homebot" / "cache.json"


def build_orchestrator(
    account_id: Optional[str],
    *,
    server: Optional[str] = None,
    language: str = "en",
    cache_path: Path = DEFAULT_CACHE_PATH,
) -> ChatOrchestrator:
    settings = Settings.from_env()
    if server:
        responder = HttpResponder(server)
    else:
        store = default_store(settings)
        llm = OpenAIChatClient(settings, metrics=MetricsRecorder(settings.metrics_dir, sink=store))
        responder = LocalResponder(ResponseGenerator(store, llm, settings))
    session = ConversationSessionManager(
        JsonFileCache(cache_path), scope=account_id, welcome=welcome_message(language)
    )
    session.restore()
    return ChatOrchestrator(responder, session, account_id=account_id, language=language)


def _render_history(orchestrator: ChatOrchestrator) -> None:
    for message in orchestrator.messages:
        speaker = "You" if message.role.value == "user" else "Bot"
        print(f"{speaker}: {message.content}")


async def _repl(orchestrator: ChatOrchestrator) -> None:
    _render_history(orchestrator)
    print("(Type /reset to start over, /quit to exit.)")
    while True:
        try:
            text = (await asyncio.to_thread(input, "You: ")).strip()
        except (EOFError, KeyboardInterrupt):
            print()
            return
        if text in {"/quit", "/exit"}:
            return
        if text == "/reset":
            orchestrator.session.reset()
            _render_history(orchestrator)
            continue
        try:
            bot = await orchestrator.send(text)
        except TurnInProgressError:
            print("Still answering the previous message...")
            continue
        if orchestrator.error:
            print(f"[!] {orchestrator.error}")
            continue
        if bot is None:
            continue
        print(f"Bot: {bot.content}")
        for rec in bot.properties:
            details: List[str] = [rec.price]
            if rec.location:
                details.append(rec.location)
            if rec.bedrooms is not None:
                details.append(f"{rec.bedrooms} bed")
            print(f"  - {format_property_link(rec)} ({', '.join(details)})")


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Homebot terminal chat")
    parser.add_argument("--account", "-a", metavar="UUID", help="Account id; omit for the product demo assistant.")
    parser.add_argument("--server", "-s", metavar="URL", help="Base URL of a running Homebot server.")
    parser.add_argument("--language", "-l", default="en", help="Interface language (en, es, fr, de, pt).")
    parser.add_argument("--cache", type=Path, default=DEFAULT_CACHE_PATH, help="Session cache file.")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    args = _parse_args(argv)
    orchestrator = build_orchestrator(
        args.account, server=args.server, language=args.language, cache_path=args.cache
    )
    asyncio.run(_repl(orchestrator))


if __name__ == "__main__":
    main()
