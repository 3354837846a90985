from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, Field, ValidationError, field_validator

from chatbot.models import DocumentItem, PropertyRecord, QAItem
from telemetry.logging_utils import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def _clamp_priority(value: Any) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return 0
    return max(0, min(10, number))


class TrainingQARow(BaseModel):
    id: str
    question: str
    answer: str
    category: Optional[str] = None
    priority: int = 0

    model_config = {"extra": "allow", "coerce_numbers_to_str": True}

    @field_validator("priority", mode="before")
    @classmethod
    def clamp_priority(cls, value: Any) -> int:
        return _clamp_priority(value)


class TrainingFileRow(BaseModel):
    id: str
    extracted_text: str = Field(min_length=1)
    source_file: Optional[str] = ""
    category: Optional[str] = None
    priority: int = 0

    model_config = {"extra": "allow", "coerce_numbers_to_str": True}

    @field_validator("priority", mode="before")
    @classmethod
    def clamp_priority(cls, value: Any) -> int:
        return _clamp_priority(value)


class PropertyRow(BaseModel):
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
    status: Optional[str] = None
    featured: Optional[bool] = False
    has_pool: Optional[bool] = False
    living_area: Optional[float] = None
    plot_area: Optional[float] = None
    url: Optional[str] = None

    model_config = {"extra": "allow", "coerce_numbers_to_str": True}


def _validate_rows(raw: Any, model: Type[BaseModel], build: Callable[[Any], T], kind: str) -> List[T]:
    cleaned: List[T] = []
    for entry in raw or []:
        try:
            parsed = model.model_validate(entry)
        except ValidationError as exc:
            logger.warning("training_row_invalid", extra={"kind": kind, "error": str(exc)[:200]})
            continue
        cleaned.append(build(parsed))
    return cleaned


def validate_qa_rows(raw: Any) -> List[QAItem]:
    """Coerce `chatbot_training_data` rows, dropping (and logging) invalid ones."""
    return _validate_rows(
        raw,
        TrainingQARow,
        lambda r: QAItem(id=r.id, question=r.question, answer=r.answer, category=r.category, priority=r.priority),
        "qa",
    )


def validate_document_rows(raw: Any) -> List[DocumentItem]:
    return _validate_rows(
        raw,
        TrainingFileRow,
        lambda r: DocumentItem(
            id=r.id,
            text=r.extracted_text,
            source_label=r.source_file or "",
            category=r.category,
            priority=r.priority,
        ),
        "document",
    )


def validate_property_rows(raw: Any) -> List[PropertyRecord]:
    def _build(r: PropertyRow) -> PropertyRecord:
        data: Dict[str, Any] = r.model_dump(include=set(PropertyRecord.__dataclass_fields__))
        data["featured"] = bool(r.featured)
        data["has_pool"] = bool(r.has_pool)
        return PropertyRecord(**data)

    return _validate_rows(raw, PropertyRow, _build, "property")
