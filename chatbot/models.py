"""Shared types for the chatbot pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

SOURCE_TRAINING = "training"
SOURCE_AI = "ai"
SOURCE_ERROR = "error"
RESPONSE_SOURCES = {SOURCE_TRAINING, SOURCE_AI, SOURCE_ERROR}


class Role(str, Enum):
    USER = "user"
    BOT = "bot"

    @classmethod
    def parse(cls, raw: Any) -> "Role":
        """Accept wire roles; "assistant" is treated as the bot."""
        value = str(raw or "").strip().lower()
        if value == cls.USER.value:
            return cls.USER
        if value in {cls.BOT.value, "assistant"}:
            return cls.BOT
        raise ValueError(f"Unknown message role: {raw!r}")


@dataclass(frozen=True)
class PropertyRecommendation:
    id: str
    title: str
    price: str
    location: Optional[str] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    has_pool: bool = False
    features: Tuple[str, ...] = ()
    highlight: Optional[str] = None
    url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["features"] = list(self.features)
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PropertyRecommendation":
        return cls(
            id=str(data.get("id") or ""),
            title=str(data.get("title") or ""),
            price=str(data.get("price") or ""),
            location=data.get("location"),
            bedrooms=data.get("bedrooms"),
            bathrooms=data.get("bathrooms"),
            has_pool=bool(data.get("has_pool", data.get("hasPool", False))),
            features=tuple(data.get("features") or ()),
            highlight=data.get("highlight"),
            url=data.get("url"),
        )


@dataclass(frozen=True)
class Message:
    role: Role
    content: str
    properties: Tuple[PropertyRecommendation, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.properties:
            payload["properties"] = [p.to_dict() for p in self.properties]
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        props = tuple(PropertyRecommendation.from_dict(p) for p in data.get("properties") or [])
        return cls(role=Role.parse(data.get("role")), content=str(data.get("content") or ""), properties=props)


# Field names on the wire (camelCase, matching the embed widget) mapped to attributes.
VISITOR_WIRE_FIELDS = {
    "visitorId": "visitor_id",
    "name": "name",
    "email": "email",
    "phone": "phone",
    "budget": "budget",
    "propertyInterest": "property_interest",
}


@dataclass(frozen=True)
class VisitorInfo:
    """Accumulated lead signal for one visitor."""

    visitor_id: str
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    budget: Optional[str] = None
    property_interest: Optional[str] = None

    def merge(self, partial: Optional[Dict[str, Any]]) -> "VisitorInfo":
        """Return a copy with every non-empty extracted field applied; nothing is ever cleared."""
        updates: Dict[str, Any] = {}
        for key, value in (partial or {}).items():
            attr = VISITOR_WIRE_FIELDS.get(key, key)
            if attr == "visitor_id" or attr not in self.__dataclass_fields__:
                continue
            if value is None or (isinstance(value, str) and not value.strip()):
                continue
            updates[attr] = value
        return replace(self, **updates) if updates else self

    def to_wire(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        for wire_key, attr in VISITOR_WIRE_FIELDS.items():
            value = getattr(self, attr)
            if value is not None:
                payload[wire_key] = value
        return payload

    @classmethod
    def from_wire(cls, data: Optional[Dict[str, Any]], *, default_visitor_id: str = "anonymous") -> "VisitorInfo":
        data = data or {}
        base = cls(visitor_id=str(data.get("visitorId") or data.get("visitor_id") or default_visitor_id))
        return base.merge(data)


@dataclass(frozen=True)
class QAItem:
    id: str
    question: str
    answer: str
    category: Optional[str] = None
    priority: int = 0

    @property
    def text(self) -> str:
        return f"{self.question} {self.answer}"


@dataclass(frozen=True)
class DocumentItem:
    id: str
    text: str
    source_label: str = ""
    category: Optional[str] = None
    priority: int = 0


@dataclass(frozen=True)
class PropertyRecord:
    id: str
    title: str
    price: Optional[float] = None
    description: Optional[str] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    city: Optional[str] = None
    state: Optional[str] = None
    address: Optional[str] = None
    type: Optional[str] = None
    status: Optional[str] = "active"
    featured: bool = False
    has_pool: bool = False
    living_area: Optional[float] = None
    plot_area: Optional[float] = None
    url: Optional[str] = None
    priority: int = 0

    @property
    def location(self) -> str:
        return ", ".join(part for part in (self.city, self.state) if part)

    @property
    def search_text(self) -> str:
        parts = [self.title, self.description, self.city, self.state, self.address, self.type]
        return " ".join(p for p in parts if p).lower()


TrainingItem = Union[QAItem, DocumentItem, PropertyRecord]


@dataclass(frozen=True)
class Match:
    item: TrainingItem
    similarity: float
    low_confidence: bool = False

    @property
    def priority(self) -> int:
        return self.item.priority


@dataclass
class MatchResult:
    qa_matches: List[Match] = field(default_factory=list)
    file_matches: List[Match] = field(default_factory=list)
    property_matches: List[Match] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.qa_matches or self.file_matches or self.property_matches)

    def to_wire(self) -> Dict[str, List[Dict[str, Any]]]:
        def _row(match: Match) -> Dict[str, Any]:
            row = asdict(match.item)
            row["similarity"] = round(match.similarity, 4)
            row["priority"] = match.priority
            row["low_confidence"] = match.low_confidence
            return row

        return {
            "qa_matches": [_row(m) for m in self.qa_matches],
            "file_content": [_row(m) for m in self.file_matches],
            "property_listings": [_row(m) for m in self.property_matches],
        }


@dataclass(frozen=True)
class ChatResponse:
    response: str
    source: str
    conversation_id: str
    lead_info: Dict[str, Any] = field(default_factory=dict)
    property_recommendations: Tuple[PropertyRecommendation, ...] = ()

    def to_wire(self) -> Dict[str, Any]:
        return {
            "response": self.response,
            "source": self.source,
            "conversationId": self.conversation_id,
            "leadInfo": dict(self.lead_info),
            "propertyRecommendations": [p.to_dict() for p in self.property_recommendations],
        }


@dataclass
class ConversationSession:
    visitor_id: str
    conversation_id: Optional[str] = None
    messages: List[Message] = field(default_factory=list)


def history_payload(messages: Sequence[Message]) -> List[Dict[str, str]]:
    """Prior turns in the `{role, content}` shape the server expects."""
    return [{"role": m.role.value, "content": m.content} for m in messages]
