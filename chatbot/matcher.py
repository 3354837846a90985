"""
Training data lookup for one account.

Three independent sub-searches feed a `MatchResult`:

* Q&A pairs and document text are scored with a word-overlap similarity
  (shared significant words / size of the smaller word set), ordered by
  similarity and then priority.
* Property records are filtered structurally (location, type, price,
  bedrooms, feature keywords) because they are structured rows, not prose.

Questions about the business itself ("who are you", "what services...")
get a multiplicative boost for business-profile content, and if nothing
clears the threshold the highest-priority items come back flagged as
low-confidence so the generator still has something to ground on.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence, Set, Tuple

from chatbot.config import Settings
from chatbot.errors import LookupFailure
from chatbot.identity import AccountIdentity, Authenticated
from chatbot.models import DocumentItem, Match, MatchResult, PropertyRecord, QAItem
from telemetry.logging_utils import get_logger
from telemetry.schemas import validate_document_rows, validate_property_rows, validate_qa_rows

logger = get_logger(__name__)

IDENTITY_BOOST = 1.5
MIN_WORD_LENGTH = 3
MIN_PLAUSIBLE_PRICE = 100

IDENTITY_QUERY_CUES = (
    "agency",
    "company",
    "about you",
    "about us",
    "your name",
    "who are you",
    "who is",
    "services",
    "your business",
    "your team",
    "tell me about yourself",
    "what do you do",
)
IDENTITY_CONTENT_CUES = (
    "about",
    "agency",
    "company",
    "business",
    "team",
    "who we are",
    "services",
)

KNOWN_LOCATIONS = (
    "marbella",
    "ibiza",
    "malaga",
    "madrid",
    "barcelona",
    "valencia",
    "seville",
    "granada",
    "estepona",
    "benahavis",
)
PROPERTY_TYPES = ("villa", "apartment", "penthouse", "house", "condo", "flat", "studio", "townhouse")
FEATURE_KEYWORDS = ("pool", "garden", "terrace", "sea view", "garage", "gym", "beach", "golf")
BROWSE_NOUNS_RE = re.compile(
    r"\b(?:propert(?:y|ies)|listings?|homes?|houses?|villas?|apartments?|flats?|penthouses?)\b",
    re.IGNORECASE,
)
LOCATION_RE = re.compile(
    r"\b(?:in|near|around)\s+([a-z][a-z\s]{1,40}?)"
    r"(?=\s*(?:[,.?!]|$|\s(?:with|under|below|over|above|for|that|which|and|from|up|max|min|at)\b))",
    re.IGNORECASE,
)
LOCATION_STOPWORDS = {"a", "an", "the", "my", "your", "buying", "selling", "renting", "touch", "mind", "general"}
_PRICE = r"(?:€|eur|euro|£|\$|usd|dollar)?\s?(\d+(?:[,.]\d+)*)\s?(k|m)?\b"
MIN_PRICE_RE = re.compile(rf"(?:from|min|minimum|above|over|more than)\s*{_PRICE}", re.IGNORECASE)
MAX_PRICE_RE = re.compile(rf"(?:up to|max|maximum|under|below|less than)\s*{_PRICE}", re.IGNORECASE)
BEDROOMS_RE = re.compile(r"(\d+)\s*(?:-\s*)?(?:bed|beds|bedroom|bedrooms|br)\b", re.IGNORECASE)
_WORD_RE = re.compile(r"[^\W_]+")
# Question scaffolding that can overlap without the two questions being about the same thing.
FILLER_WORDS = frozenset(
    {
        "what", "which", "who", "whom", "whose", "when", "where", "why", "how",
        "are", "is", "was", "were", "can", "could", "would", "should", "does", "did", "have", "has",
        "you", "your", "yours", "our", "ours", "they", "their", "the", "this", "that", "these", "those",
        "for", "and", "with", "from", "about", "any", "there", "tell", "please", "much", "many",
    }
)


def significant_words(text: str) -> Set[str]:
    return {w for w in _WORD_RE.findall((text or "").casefold()) if len(w) >= MIN_WORD_LENGTH}


def similarity(query: str, candidate: str) -> float:
    """Shared significant words over the smaller word-set size, in [0, 1]."""
    query_words = significant_words(query)
    candidate_words = significant_words(candidate)
    if not query_words or not candidate_words:
        return 0.0
    overlap = len(query_words & candidate_words)
    return overlap / min(len(query_words), len(candidate_words))


def content_words(text: str) -> Set[str]:
    return significant_words(text) - FILLER_WORDS


def shares_content_word(query: str, candidate: str) -> bool:
    return bool(content_words(query) & content_words(candidate))


def is_identity_query(query: str) -> bool:
    lowered = (query or "").lower()
    return any(cue in lowered for cue in IDENTITY_QUERY_CUES)


def has_identity_content(category: Optional[str], text: str) -> bool:
    haystack = f"{category or ''} {text or ''}".lower()
    return any(cue in haystack for cue in IDENTITY_CONTENT_CUES)


def boost_identity(score: float, factor: float = IDENTITY_BOOST) -> float:
    return min(1.0, score * factor)


@dataclass
class PropertySearchParams:
    location: Optional[str] = None
    property_type: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    bedrooms: Optional[int] = None
    features: List[str] = field(default_factory=list)
    browse: bool = False

    def has_filters(self) -> bool:
        return any(
            [
                self.location,
                self.property_type,
                self.min_price is not None,
                self.max_price is not None,
                self.bedrooms is not None,
                self.features,
            ]
        )

    @classmethod
    def parse(cls, query: str) -> "PropertySearchParams":
        text = (query or "").lower()
        params = cls()
        for known in KNOWN_LOCATIONS:
            if re.search(rf"\b{known}\b", text):
                params.location = known
                break
        if params.location is None:
            for match in LOCATION_RE.finditer(text):
                candidate = " ".join(match.group(1).split())
                words = candidate.split()
                if not words or words[0] in LOCATION_STOPWORDS or len(words) > 3:
                    continue
                params.location = candidate
                break
        for kind in PROPERTY_TYPES:
            if re.search(rf"\b{kind}s?\b", text):
                params.property_type = kind
                break
        params.min_price = _parse_price(MIN_PRICE_RE.search(text))
        params.max_price = _parse_price(MAX_PRICE_RE.search(text))
        bedrooms = BEDROOMS_RE.search(text)
        if bedrooms:
            params.bedrooms = int(bedrooms.group(1))
        params.features = [kw for kw in FEATURE_KEYWORDS if kw in text]
        params.browse = bool(BROWSE_NOUNS_RE.search(text))
        return params


def _parse_price(match: Optional[re.Match]) -> Optional[float]:
    if not match:
        return None
    raw, suffix = match.group(1), (match.group(2) or "").lower()
    digits = raw.replace(",", "")
    if suffix and digits.count(".") == 1:
        value = float(digits)
    else:
        value = float(digits.replace(".", ""))
    if suffix == "k":
        value *= 1_000
    elif suffix == "m":
        value *= 1_000_000
    # "max 3 bedrooms" is a room count, not a price.
    if value < MIN_PLAUSIBLE_PRICE:
        return None
    return value


def _property_passes(record: PropertyRecord, params: PropertySearchParams) -> Tuple[bool, int]:
    """Return (kept, keyword_hits) for one record under the parsed filters."""
    text = record.search_text
    hits = 0
    if params.location:
        place = " ".join(p for p in (record.city, record.state, record.address) if p).lower()
        if params.location not in place:
            return False, 0
        hits += 1
    if params.property_type:
        kind = (record.type or "").lower()
        if params.property_type != kind and params.property_type not in text:
            return False, 0
        hits += 1
    if params.min_price is not None and (record.price is None or record.price < params.min_price):
        return False, 0
    if params.max_price is not None and (record.price is None or record.price > params.max_price):
        return False, 0
    if params.bedrooms is not None and (record.bedrooms is None or record.bedrooms < params.bedrooms):
        return False, 0
    for feature in params.features:
        if feature == "pool" and record.has_pool:
            hits += 1
            continue
        if feature not in text:
            return False, 0
        hits += 1
    return True, hits


class TrainingDataMatcher:
    def __init__(self, store: Any, settings: Optional[Settings] = None) -> None:
        self.store = store
        self.settings = settings or Settings()

    def match(
        self,
        identity: AccountIdentity,
        query: str,
        *,
        include_qa: bool = True,
        include_files: bool = True,
        include_properties: bool = True,
        max_results: Optional[int] = None,
    ) -> MatchResult:
        """Search one account's training data; anonymous traffic gets an empty result."""
        if not isinstance(identity, Authenticated):
            return MatchResult()
        account_id = identity.account_id
        limit = max_results or self.settings.max_results
        identity_query = is_identity_query(query)

        result = MatchResult()
        if include_qa:
            result.qa_matches = self._guarded("qa", account_id, lambda: self._search_qa(account_id, query, identity_query))
        if include_files:
            result.file_matches = self._guarded(
                "files", account_id, lambda: self._search_documents(account_id, query, identity_query)
            )
        if include_properties:
            result.property_matches = self._guarded(
                "properties", account_id, lambda: self._search_properties(account_id, query, limit)
            )

        if identity_query and not (result.qa_matches or result.file_matches):
            result.qa_matches = self._fallback("qa", account_id, include_qa, limit)
            result.file_matches = self._fallback("files", account_id, include_files, limit)
        else:
            result.qa_matches = result.qa_matches[:limit]
            result.file_matches = result.file_matches[:limit]

        logger.info(
            "matcher_complete",
            extra={
                "account_id": account_id,
                "identity_query": identity_query,
                "qa_matches": len(result.qa_matches),
                "file_matches": len(result.file_matches),
                "property_matches": len(result.property_matches),
            },
        )
        return result

    def _guarded(self, section: str, account_id: str, fn: Callable[[], List[Match]]) -> List[Match]:
        try:
            return fn()
        except LookupFailure as exc:
            logger.warning(
                f"matcher_{section}_lookup_failed",
                extra={"account_id": account_id, "error": str(exc)[:300]},
            )
            return []

    def _fetch(self, section: str, fn: Callable[[], Any]) -> Any:
        """Run one store read; data-access errors become `LookupFailure`."""
        try:
            return fn()
        except Exception as exc:
            raise LookupFailure(section, f"{type(exc).__name__}: {exc}") from exc

    def _score(self, query: str, texts: Sequence[str], category: Optional[str], identity_query: bool) -> float:
        score = max((similarity(query, t) for t in texts), default=0.0)
        if identity_query and has_identity_content(category, " ".join(texts)):
            score = boost_identity(score)
        return score

    def _rank(self, matches: List[Match]) -> List[Match]:
        threshold = self.settings.match_threshold
        kept = [m for m in matches if m.similarity >= threshold and m.similarity > 0]
        kept.sort(key=lambda m: (m.similarity, m.priority), reverse=True)
        return kept

    def _search_qa(self, account_id: str, query: str, identity_query: bool) -> List[Match]:
        items = validate_qa_rows(self._fetch("qa", lambda: self.store.list_training_qa(account_id)))
        # A pair is matched on its question alone or on question plus answer, whichever is closer.
        scored = [
            Match(item=item, similarity=self._score(query, (item.question, item.text), item.category, identity_query))
            for item in items
        ]
        return self._rank(scored)

    def _search_documents(self, account_id: str, query: str, identity_query: bool) -> List[Match]:
        items = validate_document_rows(self._fetch("files", lambda: self.store.list_training_documents(account_id)))
        scored = [
            Match(item=item, similarity=self._score(query, (item.text,), item.category, identity_query))
            for item in items
        ]
        return self._rank(scored)

    def _search_properties(self, account_id: str, query: str, limit: int) -> List[Match]:
        params = PropertySearchParams.parse(query)
        if not params.has_filters() and not params.browse:
            return []
        records = validate_property_rows(self._fetch("properties", lambda: self.store.list_properties(account_id)))
        ranked: List[Tuple[PropertyRecord, int]] = []
        for record in records:
            kept, hits = _property_passes(record, params)
            if kept:
                ranked.append((record, hits))
        ranked.sort(key=lambda pair: (pair[0].featured, pair[1], pair[0].price or 0), reverse=True)
        return [Match(item=record, similarity=min(1.0, similarity(query, record.search_text))) for record, _ in ranked[:limit]]

    def _fallback(self, section: str, account_id: str, enabled: bool, limit: int) -> List[Match]:
        """Highest-priority items regardless of score, flagged as low confidence."""
        if not enabled:
            return []

        def _load() -> List[Match]:
            if section == "qa":
                items: List[Any] = validate_qa_rows(self._fetch("qa", lambda: self.store.list_training_qa(account_id)))
            else:
                items = validate_document_rows(self._fetch("files", lambda: self.store.list_training_documents(account_id)))
            items.sort(key=lambda item: item.priority, reverse=True)
            return [Match(item=item, similarity=0.0, low_confidence=True) for item in items[:limit]]

        return self._guarded(section, account_id, _load)


def qa_items(matches: Sequence[Match]) -> List[QAItem]:
    return [m.item for m in matches if isinstance(m.item, QAItem)]


def document_items(matches: Sequence[Match]) -> List[DocumentItem]:
    return [m.item for m in matches if isinstance(m.item, DocumentItem)]
