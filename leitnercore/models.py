"""
Domain models for leitnercore.

Python attributes are snake_case; the JSON exchange format uses the camelCase
aliases generated below (``deckId``, ``nextReview``, ``boxProgress``...). Both
spellings are accepted on input.
"""

from __future__ import annotations

import uuid
from enum import Enum
from datetime import datetime, date, timezone
from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from .constants import MAX_BOX, MIN_BOX

ModelT = TypeVar("ModelT", bound=BaseModel)


def new_id() -> str:
    """Return a fresh random identifier (UUIDv4 string)."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(ts: datetime) -> datetime:
    """Ensures the given datetime is UTC. Assumes UTC if naive."""
    if ts.tzinfo is None or ts.tzinfo.utcoffset(ts) is None:
        return ts.replace(tzinfo=timezone.utc)
    if ts.tzinfo != timezone.utc:
        return ts.astimezone(timezone.utc)
    return ts


def _empty_box_counts() -> Dict[int, int]:
    return {box: 0 for box in range(MIN_BOX, MAX_BOX + 1)}


def _null_as(empty: Any, value: Any) -> Any:
    # Exchange documents may carry explicit nulls for optional fields.
    return empty() if value is None else value


class LeitnerModel(BaseModel):
    model_config = ConfigDict(
        validate_assignment=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    @field_validator("*", mode="after")
    @classmethod
    def _normalize_datetimes(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return ensure_utc(value)
        return value


class CardType(str, Enum):
    """
    The presentation type of a flashcard.
    """

    Basic = "basic"
    Cloze = "cloze"
    Image = "image"
    MultiChoice = "multi-choice"


class CardMedia(LeitnerModel):
    front_image: Optional[str] = None
    back_image: Optional[str] = None


class Subject(LeitnerModel):
    """
    A top-level grouping of decks (e.g. "Biology").

    Decks reference their subject by ``subject_id``; the subject does not
    embed them at rest. Imported subjects may be nameless; only subjects
    created through LeitnerService must have a name.
    """

    id: str = Field(
        default_factory=new_id,
        min_length=1,
        description="Unique subject id. Auto-generated.",
    )
    name: str = Field(default="", description="Display name.")
    description: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    created_at: Optional[datetime] = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = Field(default_factory=utcnow)

    @field_validator("name", mode="before")
    @classmethod
    def _null_name(cls, value: Any) -> Any:
        return _null_as(str, value)


class Deck(LeitnerModel):
    """
    A named collection of cards, either standalone or owned by a Subject.
    """

    id: str = Field(default_factory=new_id, min_length=1)
    name: str = ""
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    subject_id: Optional[str] = Field(
        default=None,
        description="Owning subject id; None for a standalone deck.",
    )
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("name", mode="before")
    @classmethod
    def _null_name(cls, value: Any) -> Any:
        return _null_as(str, value)

    @field_validator("tags", mode="before")
    @classmethod
    def _null_tags(cls, value: Any) -> Any:
        return _null_as(list, value)


class Flashcard(LeitnerModel):
    """
    A single flashcard and its Leitner learning progress.

    Progress fields (box, last_reviewed, next_review, review_count,
    correct_count) are only changed by LeitnerScheduler.process_review.
    """

    id: str = Field(
        default_factory=new_id,
        min_length=1,
        description="Unique card id. Auto-generated.",
    )
    type: CardType = CardType.Basic
    front: str = Field(default="", description="Question side.")
    back: str = Field(default="", description="Answer side.")
    hints: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    difficulty: Optional[int] = Field(
        default=None, ge=1, le=5, description="Author-assigned 1-5 scale."
    )
    media: Optional[CardMedia] = None
    box: int = Field(
        default=MIN_BOX,
        ge=MIN_BOX,
        le=MAX_BOX,
        description="Leitner box (1=daily ... 4=mastered).",
    )
    last_reviewed: Optional[datetime] = Field(
        default=None, description="UTC timestamp of the last review."
    )
    next_review: Optional[date] = Field(
        default=None,
        description="Calendar day the card is next due. None means new.",
    )
    review_count: int = Field(default=0, ge=0)
    correct_count: int = Field(default=0, ge=0)
    deck_id: Optional[str] = Field(
        default=None,
        description="Owning deck id (wired from the enclosing deck on import).",
    )

    @field_validator("next_review", mode="before")
    @classmethod
    def truncate_to_calendar_day(cls, value: Any) -> Any:
        """
        Accept datetimes and ISO datetime strings, keeping only the UTC
        calendar day.
        """
        if isinstance(value, datetime):
            return ensure_utc(value).date()
        if isinstance(value, str):
            value = value.strip()
            if not value:
                return None
            if len(value) <= 10:
                return value
            if value.endswith(("Z", "z")):
                value = value[:-1] + "+00:00"
            try:
                return ensure_utc(datetime.fromisoformat(value)).date()
            except ValueError:
                # Let pydantic report the malformed value.
                return value
        return value

    @field_validator("hints", "tags", mode="before")
    @classmethod
    def _null_lists(cls, value: Any) -> Any:
        return _null_as(list, value)

    @model_validator(mode="after")
    def check_correct_not_above_reviews(self) -> "Flashcard":
        if self.correct_count > self.review_count:
            raise ValueError(
                f"correct_count ({self.correct_count}) cannot exceed "
                f"review_count ({self.review_count})."
            )
        return self


class BoxProgress(LeitnerModel):
    promoted: int = Field(default=0, ge=0)
    demoted: int = Field(default=0, ge=0)


def _empty_box_progress() -> Dict[int, BoxProgress]:
    return {box: BoxProgress() for box in range(MIN_BOX, MAX_BOX + 1)}


class StudySession(LeitnerModel):
    """
    One review pass: counters are updated once per answered card and the
    record is persisted (and immutable) once the pass completes.
    """

    id: str = Field(default_factory=new_id, min_length=1)
    deck_id: str = Field(
        ...,
        description="Reviewed deck id, or a scope label for multi-deck passes.",
    )
    start_time: datetime = Field(default_factory=utcnow)
    end_time: Optional[datetime] = None
    cards_reviewed: int = Field(default=0, ge=0)
    correct_answers: int = Field(default=0, ge=0)
    box_progress: Dict[int, BoxProgress] = Field(
        default_factory=_empty_box_progress
    )

    @field_validator("box_progress")
    @classmethod
    def fill_all_boxes(
        cls, progress: Dict[int, BoxProgress]
    ) -> Dict[int, BoxProgress]:
        """Ensure keys are boxes 1-4 and every box has an entry."""
        for box in progress:
            if not MIN_BOX <= box <= MAX_BOX:
                raise ValueError(f"Invalid box in box_progress: {box}.")
        return {
            box: progress.get(box, BoxProgress())
            for box in range(MIN_BOX, MAX_BOX + 1)
        }

    def record_answer(self, old_box: int, new_box: int, correct: bool) -> None:
        """Count one answered card and its box movement."""
        self.cards_reviewed += 1
        if correct:
            self.correct_answers += 1
        if new_box > old_box:
            self.box_progress[old_box].promoted += 1
        elif new_box < old_box:
            self.box_progress[old_box].demoted += 1

    def end_session(self, now: Optional[datetime] = None) -> None:
        """Stamp the end time if the session is still active."""
        if self.end_time is None:
            self.end_time = now or utcnow()

    @property
    def is_active(self) -> bool:
        return self.end_time is None

    @property
    def duration_ms(self) -> Optional[int]:
        if self.end_time is None:
            return None
        return int((self.end_time - self.start_time).total_seconds() * 1000)

    @property
    def accuracy(self) -> int:
        """Correct answers as a rounded percentage of cards reviewed."""
        if not self.cards_reviewed:
            return 0
        return round_half_up(self.correct_answers / self.cards_reviewed * 100)


class CardStatistics(LeitnerModel):
    """Aggregate Leitner statistics for a set of cards."""

    total: int = 0
    by_box: Dict[int, int] = Field(default_factory=_empty_box_counts)
    due_today: int = 0
    mastered: int = 0
    average_correct_rate: int = Field(
        default=0, description="Mean per-card correct rate, in percent."
    )


def round_half_up(value: float) -> int:
    """Round like JavaScript's Math.round (halves go up)."""
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


def normalize_field_names(
    model_cls: Type[BaseModel], data: Mapping[str, Any]
) -> Dict[str, Any]:
    """
    Map camelCase aliases in ``data`` onto the model's field names.

    Raises:
        ValueError: If a key names neither a field nor an alias.
    """
    by_alias = {
        (info.alias or name): name
        for name, info in model_cls.model_fields.items()
    }
    normalized: Dict[str, Any] = {}
    for key, value in data.items():
        if key in model_cls.model_fields:
            normalized[key] = value
        elif key in by_alias:
            normalized[by_alias[key]] = value
        else:
            raise ValueError(
                f"Unknown field '{key}' for {model_cls.__name__}."
            )
    return normalized


def merge_model(model: ModelT, updates: Mapping[str, Any]) -> ModelT:
    """
    Return a re-validated copy of ``model`` with ``updates`` merged in.

    Raises:
        ValueError: For unknown fields or an attempt to change the id.
        pydantic.ValidationError: If the merged data is invalid.
    """
    changes = normalize_field_names(type(model), updates)
    if "id" in changes and changes["id"] != getattr(model, "id", None):
        raise ValueError("The id of an existing record cannot be changed.")
    merged = model.model_dump()
    merged.update(changes)
    return type(model).model_validate(merged)
