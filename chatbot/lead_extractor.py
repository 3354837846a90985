"""
Heuristic lead-signal extraction from a single visitor message.

Every field is produced by an `ExtractionStrategy`; `LeadExtractor` runs them
in order and keeps whatever they find. Absence is a normal outcome, so
strategies return None instead of raising and the extractor never raises.
Keys in the returned dict use the wire names (`propertyInterest`, ...), which
`VisitorInfo.merge` understands.
"""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional, Protocol

from telemetry.logging_utils import get_logger

logger = get_logger(__name__)

EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
# Optional country code, optional (area) code, 3-3-4 digits with space/dot/dash separators.
PHONE_RE = re.compile(r"(?<![\w+])(?:\+\d{1,4}[\s.-]?)?(?:\(\d{3}\)|\d{3})[\s.-]?\d{3}[\s.-]?\d{4}\b")
NAME_RE = re.compile(
    r"\b(?i:my\s+name\s+is|i\s+am|i['’]m)\s+([A-Z][a-zA-Z'\-]+(?:\s+[A-Z][a-zA-Z'\-]+)?)"
)
# Capitalized words that follow "I am" / "I'm" without being names.
NAME_STOPWORDS = {
    "Looking",
    "Interested",
    "Here",
    "Just",
    "Not",
    "Also",
    "Buying",
    "Selling",
    "Renting",
    "Moving",
    "Planning",
    "Trying",
    "From",
    "In",
    "On",
    "At",
    "The",
    "A",
    "An",
    "Sorry",
    "Fine",
    "Good",
    "Ok",
    "Okay",
}

BUDGET_CUES = ("budget", "afford", "looking to spend", "price range")
_AMOUNT = (
    r"(?:[$€£]\s?)?\d+(?:[,.]\d+)*(?:\s?(?:k|m|million|thousand))?\b"
    r"(?:\s?(?:€|eur|euros?|usd|dollars?))?"
)
BUDGET_RE = re.compile(rf"{_AMOUNT}(?:\s?(?:-|–|to)\s?{_AMOUNT})?", re.IGNORECASE)
_CURRENCY_HINT_RE = re.compile(r"[$€£]|\d\s?(?:k|m|million|thousand)\b|eur|usd|dollar", re.IGNORECASE)

PROPERTY_NOUN_RE = re.compile(r"\b(?:house|houses|home|homes|property|properties)\b", re.IGNORECASE)
# Checked in order; selling and renting cues are more specific than the buying ones.
INTENT_CUES = (
    ("Selling", re.compile(r"\b(?:sell|selling|sold|list\s+(?:my|our)|listing\s+(?:my|our))\b", re.IGNORECASE)),
    ("Renting", re.compile(r"\b(?:rent|renting|rental|lease|leasing)\b", re.IGNORECASE)),
    ("Buying", re.compile(r"\b(?:buy|buying|purchase|purchasing|looking\s+for|interested\s+in)\b", re.IGNORECASE)),
)


class ExtractionStrategy(Protocol):
    field: str

    def extract(self, text: str) -> Optional[str]:
        ...


class EmailStrategy:
    field = "email"

    def extract(self, text: str) -> Optional[str]:
        match = EMAIL_RE.search(text)
        return match.group(0) if match else None


class PhoneStrategy:
    field = "phone"

    def extract(self, text: str) -> Optional[str]:
        match = PHONE_RE.search(text)
        return match.group(0).strip() if match else None


class NameStrategy:
    """Only the explicit self-introduction form; no general entity recognition."""

    field = "name"

    def extract(self, text: str) -> Optional[str]:
        for match in NAME_RE.finditer(text):
            words = match.group(1).split()
            if words[0] in NAME_STOPWORDS:
                continue
            if len(words) > 1 and words[1] in NAME_STOPWORDS:
                words = words[:1]
            return " ".join(words)
        return None


class BudgetStrategy:
    field = "budget"

    def extract(self, text: str) -> Optional[str]:
        lowered = text.lower()
        positions = [lowered.find(cue) for cue in BUDGET_CUES if cue in lowered]
        if not positions:
            return None
        start = min(positions)
        for match in BUDGET_RE.finditer(text, start):
            candidate = match.group(0).strip()
            if _looks_like_currency(candidate):
                return candidate
        return None


class IntentStrategy:
    field = "propertyInterest"

    def extract(self, text: str) -> Optional[str]:
        if not PROPERTY_NOUN_RE.search(text):
            return None
        for label, pattern in INTENT_CUES:
            if pattern.search(text):
                return label
        return None


def _looks_like_currency(token: str) -> bool:
    if _CURRENCY_HINT_RE.search(token):
        return True
    digits = re.sub(r"\D", "", token)
    return len(digits) >= 4


DEFAULT_STRATEGIES: List[ExtractionStrategy] = [
    NameStrategy(),
    EmailStrategy(),
    PhoneStrategy(),
    BudgetStrategy(),
    IntentStrategy(),
]


class LeadExtractor:
    def __init__(self, strategies: Optional[Iterable[ExtractionStrategy]] = None) -> None:
        self.strategies: List[ExtractionStrategy] = list(strategies) if strategies is not None else list(DEFAULT_STRATEGIES)

    def extract(self, message: str) -> Dict[str, str]:
        """Return only the fields that were found in `message`."""
        found: Dict[str, str] = {}
        text = message or ""
        if not text.strip():
            return found
        for strategy in self.strategies:
            if strategy.field in found:
                continue
            try:
                value = strategy.extract(text)
            except Exception as exc:
                logger.warning(
                    "lead_strategy_failed",
                    extra={"strategy": type(strategy).__name__, "error": str(exc)[:200]},
                )
                continue
            if value:
                found[strategy.field] = value
        return found


_DEFAULT_EXTRACTOR = LeadExtractor()


def extract(message: str) -> Dict[str, str]:
    return _DEFAULT_EXTRACTOR.extract(message)
