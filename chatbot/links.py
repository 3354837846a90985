"""
Link handling for bot replies.

Replies are rendered inside the hosting app, so links that point back at the
app itself become relative paths (in-app navigation) while links to other
sites are left alone.
"""

from __future__ import annotations

import re
from typing import Optional
from urllib.parse import urlparse

from chatbot.models import PropertyRecommendation

MARKDOWN_LINK_RE = re.compile(r"\[([^\]]+)\]\((https?://[^\s)]+)\)")
BARE_URL_RE = re.compile(r"(?<![(\[\w])https?://[^\s<>()\[\]]+")
TRAILING_PUNCTUATION = ".,;:!?'\""


def property_path(property_id: str) -> str:
    return f"/properties/{property_id}"


def relative_target(url: str, base_url: Optional[str]) -> Optional[str]:
    """Return the in-app path for `url` when it shares an origin with `base_url`."""
    if not base_url:
        return None
    target = urlparse(url)
    base = urlparse(base_url)
    if not target.netloc or target.netloc.lower() != base.netloc.lower():
        return None
    if target.scheme.lower() not in {"http", "https"}:
        return None
    path = target.path or "/"
    if target.query:
        path += f"?{target.query}"
    if target.fragment:
        path += f"#{target.fragment}"
    return path


def rewrite_links(text: str, base_url: Optional[str]) -> str:
    if not text or not base_url:
        return text

    def _markdown(match: re.Match) -> str:
        label, url = match.group(1), match.group(2)
        path = relative_target(url, base_url)
        return f"[{label}]({path})" if path else match.group(0)

    rewritten = MARKDOWN_LINK_RE.sub(_markdown, text)

    def _bare(match: re.Match) -> str:
        raw = match.group(0)
        url = raw.rstrip(TRAILING_PUNCTUATION)
        tail = raw[len(url):]
        path = relative_target(url, base_url)
        if not path:
            return raw
        return f"[{path}]({path}){tail}"

    return BARE_URL_RE.sub(_bare, rewritten)


def format_property_link(recommendation: PropertyRecommendation, base_url: Optional[str] = None) -> str:
    target = recommendation.url or property_path(recommendation.id)
    path = relative_target(target, base_url) if target.startswith("http") else None
    return f"[{recommendation.title}]({path or target})"
