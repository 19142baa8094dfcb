"""
LeitnerService: the operation surface used by front ends (the CLI, or any
other caller). It wires a FlashcardDatabase to a LeitnerScheduler and turns
import/restore failures into structured OperationResults.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .db.database import FlashcardDatabase
from .documents import (
    DocumentKind,
    FullBackupDocument,
    classify_document,
    decode_document,
    iter_decks,
)
from .exceptions import (
    LeitnerError,
    SessionStateError,
    StructuralMismatchError,
    ValidationError,
)
from .models import CardStatistics, Deck, Flashcard, Subject, ensure_utc
from .review_manager import AnswerResult, ReviewSessionManager, ReviewState
from .scheduler import LeitnerScheduler

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

NOT_A_BACKUP_MESSAGE = (
    "This is not a backup file. Use import for single-subject or deck "
    "exports."
)


@dataclass
class OperationResult:
    success: bool
    kind: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None
    stats: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def failure(cls, error: LeitnerError) -> "OperationResult":
        return cls(success=False, kind=error.kind, error=str(error))


def _require_name(name: Any) -> None:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError(
            "Validation error in field 'name': a name is required."
        )


def _build(model_cls: Type[ModelT], **data: Any) -> ModelT:
    try:
        return model_cls.model_validate(data)
    except PydanticValidationError as e:
        details = e.errors()[0]
        field_name = ".".join(map(str, details["loc"]))
        raise ValidationError(
            f"Validation error in field '{field_name}': {details['msg']}",
            original_exception=e,
        ) from e


class LeitnerService:
    def __init__(
        self,
        db: FlashcardDatabase,
        scheduler: Optional[LeitnerScheduler] = None,
    ):
        self.db = db
        self.scheduler = scheduler or LeitnerScheduler()
        self._reviews: Dict[str, ReviewSessionManager] = {}

    # --- Review ---

    def get_due_cards(
        self,
        deck_id: Optional[str] = None,
        subject_id: Optional[str] = None,
        box: Optional[int] = None,
        as_of: Optional[date] = None,
    ) -> List[Flashcard]:
        return self.db.get_cards_due_for_review(
            deck_id=deck_id, as_of=as_of, subject_id=subject_id, box=box
        )

    def start_review(
        self,
        deck_id: Optional[str] = None,
        subject_id: Optional[str] = None,
        box: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> str:
        """
        Open a review over the currently due cards of a scope and return its
        session id. A scope with nothing due yields an already completed
        session that is not kept.
        """
        manager = ReviewSessionManager(
            self.db,
            self.scheduler,
            deck_id=deck_id,
            subject_id=subject_id,
            box=box,
        )
        manager.start(now=now)
        if not manager.is_complete:
            self._reviews[manager.session.id] = manager
        return manager.session.id

    def get_review(self, session_id: str) -> ReviewSessionManager:
        try:
            return self._reviews[session_id]
        except KeyError:
            raise SessionStateError(
                f"No active review session {session_id}."
            ) from None

    def answer_card(
        self,
        session_id: str,
        correct: bool,
        now: Optional[datetime] = None,
    ) -> AnswerResult:
        """Answer the current card of a review, revealing it first if needed."""
        manager = self.get_review(session_id)
        if manager.state == ReviewState.PRESENTING:
            manager.reveal()
        try:
            return manager.answer(correct, now=now)
        finally:
            # A completed review is dropped even when recording it failed.
            if manager.is_complete:
                self._reviews.pop(session_id, None)

    # --- Subjects, decks, cards ---

    def create_subject(
        self,
        name: str,
        description: Optional[str] = None,
        icon: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Subject:
        _require_name(name)
        subject = _build(
            Subject, name=name, description=description, icon=icon, color=color
        )
        return self.db.create_subject(subject)

    def edit_subject(self, subject_id: str, **updates: Any) -> Subject:
        if "name" in updates:
            _require_name(updates["name"])
        return self.db.update_subject(subject_id, updates)

    def delete_subject_cascade(self, subject_id: str) -> Dict[str, int]:
        return self.db.delete_subject_cascade(subject_id)

    def create_deck(
        self,
        name: str,
        subject_id: Optional[str] = None,
        description: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> Deck:
        _require_name(name)
        deck = _build(
            Deck,
            name=name,
            subject_id=subject_id,
            description=description,
            tags=tags or [],
        )
        return self.db.create_deck(deck)

    def add_card(self, deck_id: str, **fields: Any) -> Flashcard:
        """Create a new card (box 1, due today) in an existing deck."""
        try:
            card = self.scheduler.initialize_card({**fields, "deck_id": deck_id})
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid card: {e.errors()[0]['msg']}", original_exception=e
            ) from e
        self.db.add_cards([card])
        return card

    # --- Import / export ---

    def _reset_progress(self, document: Any, today: Optional[date]) -> None:
        for deck in iter_decks(document):
            deck.cards = [
                self.scheduler.initialize_card(card, today=today)
                for card in deck.cards
            ]

    def import_document(
        self,
        raw: Any,
        clear_existing: bool = False,
        reset_progress: bool = True,
        now: Optional[datetime] = None,
    ) -> OperationResult:
        """
        Import any exchange document.

        Imported cards start over (box 1, due today) unless the document is
        a full backup or ``reset_progress`` is off. Single-subject documents
        are always added alongside existing data.
        """
        try:
            document = decode_document(raw)
            if reset_progress and not isinstance(document, FullBackupDocument):
                today = ensure_utc(now).date() if now else None
                self._reset_progress(document, today)
            result = self.db.import_data(
                document, clear_existing=clear_existing, now=now
            )
        except LeitnerError as e:
            logger.error(f"Import failed ({e.kind}): {e}")
            return OperationResult.failure(e)
        return OperationResult(
            success=True,
            kind=result.kind.value,
            message=result.message,
            stats=result.counts,
        )

    def restore_backup(
        self, raw: Any, now: Optional[datetime] = None
    ) -> OperationResult:
        """Replace all data with a full backup, keeping learning progress."""
        try:
            if classify_document(raw) != DocumentKind.FULL_BACKUP:
                raise StructuralMismatchError(NOT_A_BACKUP_MESSAGE)
            result = self.db.import_data(raw, clear_existing=True, now=now)
        except LeitnerError as e:
            logger.error(f"Restore failed ({e.kind}): {e}")
            return OperationResult.failure(e)
        return OperationResult(
            success=True,
            kind=result.kind.value,
            message=result.message,
            stats=result.counts,
        )

    def export_full_backup(
        self, include_stats: bool = True, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        return self.db.export_data(include_stats=include_stats, now=now)

    def export_subject(
        self, subject_id: str, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        return self.db.export_subject(subject_id, now=now)

    # --- Statistics ---

    def get_statistics(
        self,
        deck_id: Optional[str] = None,
        subject_id: Optional[str] = None,
        box: Optional[int] = None,
        as_of: Optional[date] = None,
    ) -> CardStatistics:
        cards = self.db.get_all_cards(
            deck_id=deck_id, subject_id=subject_id, box=box
        )
        return self.scheduler.get_statistics(cards, as_of=as_of)
