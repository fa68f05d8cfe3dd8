"""
Contract models for the four reading stages.

Each stage's raw output goes through parse_stage_output, which returns a
tagged Parsed/Invalid result instead of raising.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Generic, List, Optional, Sequence, Type, TypeVar, Union

from pydantic import (AliasChoices, BaseModel, ConfigDict, Field, StrictInt,
                      ValidationError, ValidationInfo, field_validator,
                      model_validator)

from arcana.components.parsing import extract_json_object

DEFAULT_CARD_COUNT = 3
DEFAULT_ALLOWED_COUNTS = (3, 5)
DEFAULT_DECK_SIZE = 78


# ---------------------------------------------------------------------------
# Tagged results
# ---------------------------------------------------------------------------

T = TypeVar("T")


@dataclass(frozen=True)
class Parsed(Generic[T]):
    value: T


@dataclass(frozen=True)
class Invalid:
    reason: str


ParseResult = Union[Parsed[T], Invalid]


@dataclass(frozen=True)
class Approved:
    """Policy accepted the question"""
    context: Optional[str] = None


@dataclass(frozen=True)
class Rejected:
    """Policy refused the question; terminal, never retried"""
    reason: str


PolicyOutcome = Union[Approved, Rejected]


# ---------------------------------------------------------------------------
# Plain validators shared by models and the workflow
# ---------------------------------------------------------------------------

def selection_problem(items: Sequence[Any], expected_count: int, deck_size: int) -> Optional[str]:
    """Why a card selection is unusable, or None when it is valid"""
    if len(items) != expected_count:
        return f"expected {expected_count} cards, got {len(items)}"
    for item in items:
        if isinstance(item, bool) or not isinstance(item, int):
            return f"card id {item!r} is not an integer"
        if item < 0 or item >= deck_size:
            return f"card id {item} outside 0-{deck_size - 1}"
    if len(set(items)) != len(items):
        return "duplicate card ids"
    return None


def narration_problem(per_item_count: int, expected_count: int) -> Optional[str]:
    if per_item_count != expected_count:
        return f"expected {expected_count} per-card entries, got {per_item_count}"
    return None


def _context_value(info: ValidationInfo, key: str, default: Any) -> Any:
    if info.context and key in info.context:
        return info.context[key]
    return default


# ---------------------------------------------------------------------------
# Stage models
# ---------------------------------------------------------------------------

class PolicyDecision(BaseModel):
    approved: bool
    reason: str = ""
    context: Optional[str] = None

    def to_outcome(self) -> PolicyOutcome:
        if self.approved:
            return Approved(context=self.context)
        return Rejected(reason=self.reason or "Question was not accepted")


class AnalysisResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    mood: str = Field(..., min_length=1)
    topic: str = Field(..., min_length=1)
    period: str = Field(..., min_length=1)
    context: str = Field(..., min_length=1)
    recommended_count: int = Field(
        default=DEFAULT_CARD_COUNT,
        validation_alias=AliasChoices(
            "recommended_count", "card_count", "cardCount", "card_count_recommendation"
        ),
    )

    @field_validator("recommended_count", mode="before")
    @classmethod
    def coerce_count(cls, v: Any, info: ValidationInfo) -> int:
        """Unknown spread sizes fall back to the default spread"""
        allowed = _context_value(info, "allowed_counts", DEFAULT_ALLOWED_COUNTS)
        default = _context_value(info, "default_count", DEFAULT_CARD_COUNT)
        if isinstance(v, bool) or not isinstance(v, int) or v not in allowed:
            return default
        return v


class SelectionResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    selected_items: List[StrictInt] = Field(
        ...,
        validation_alias=AliasChoices("selected_items", "selectedCards", "selected_cards"),
    )
    reasoning: str = Field(..., min_length=1)
    confidence: float = Field(..., ge=0.0, le=1.0)

    @model_validator(mode="after")
    def check_items(self, info: ValidationInfo) -> "SelectionResult":
        expected = _context_value(info, "expected_count", None)
        deck_size = _context_value(info, "deck_size", DEFAULT_DECK_SIZE)
        if expected is not None:
            problem = selection_problem(self.selected_items, expected, deck_size)
            if problem:
                raise ValueError(problem)
        return self


class NarrationItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    position: Optional[int] = None
    interpretation: str = Field(..., min_length=1)


class NarrationResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    header: str = Field(..., min_length=1)
    per_item: List[NarrationItem] = Field(
        ..., validation_alias=AliasChoices("per_item", "cards_reading")
    )
    body: str = Field(..., min_length=1, validation_alias=AliasChoices("body", "reading"))
    suggestions: List[str]
    followups: List[str] = Field(..., validation_alias=AliasChoices("followups", "next_questions"))
    summary: str = Field(..., min_length=1, validation_alias=AliasChoices("summary", "final_summary"))
    disclaimer: str = Field(..., min_length=1)

    @model_validator(mode="after")
    def check_per_item(self, info: ValidationInfo) -> "NarrationResult":
        expected = _context_value(info, "expected_count", None)
        if expected is not None:
            problem = narration_problem(len(self.per_item), expected)
            if problem:
                raise ValueError(problem)
        return self


M = TypeVar("M", bound=BaseModel)


def _describe(error: ValidationError) -> str:
    parts = []
    for item in error.errors()[:3]:
        location = ".".join(str(part) for part in item.get("loc", ())) or "output"
        parts.append(f"{location}: {item.get('msg')}")
    return "; ".join(parts)


def parse_stage_output(
    raw: str,
    model: Type[M],
    context: Optional[Dict[str, Any]] = None,
) -> ParseResult:
    """
    Decode raw model text into model

    Args:
        raw: Text returned by the stage backend
        model: Contract model to validate against
        context: Validation context (expected_count, deck_size, allowed_counts)

    Returns:
        Parsed(model instance) or Invalid(reason)
    """
    data = extract_json_object(raw)
    if data is None:
        return Invalid("output is not a JSON object")
    try:
        return Parsed(model.model_validate(data, context=context or {}))
    except ValidationError as e:
        return Invalid(_describe(e))
