"""
This module defines the ReviewSessionManager class, which drives one pass
over a fixed set of cards: present, reveal, answer, advance. Answers are
scheduled with the LeitnerScheduler, persisted through the
FlashcardDatabase, and the finished StudySession is recorded once the last
card is done.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional, Sequence, Set, Tuple

from .db.database import FlashcardDatabase
from .exceptions import DatabaseError, SessionStateError
from .models import Flashcard, StudySession, utcnow
from .scheduler import LeitnerScheduler

logger = logging.getLogger(__name__)

PROGRESS_FIELDS = {
    "box",
    "last_reviewed",
    "next_review",
    "review_count",
    "correct_count",
}


class ReviewState(str, Enum):
    PRESENTING = "presenting"
    REVEALED = "revealed"
    COMPLETE = "complete"


@dataclass
class AnswerResult:
    """
    Outcome of ``answer`` or ``skip``.

    ``session`` is set only when this call completed the pass.
    """

    success: bool
    card: Optional[Flashcard] = None
    old_box: Optional[int] = None
    new_box: Optional[int] = None
    skipped: bool = False
    completed: bool = False
    error: Optional[str] = None
    session: Optional[StudySession] = None


class ReviewSessionManager:
    """
    Manages a review session over a snapshot of cards.

    The snapshot is taken at ``start()`` and never refreshed. Cards are
    answered at most once; ``previous()``/``next()`` only move the cursor.
    """

    def __init__(
        self,
        db_manager: FlashcardDatabase,
        scheduler: Optional[LeitnerScheduler] = None,
        deck_id: Optional[str] = None,
        subject_id: Optional[str] = None,
        box: Optional[int] = None,
    ):
        self.db = db_manager
        self.scheduler = scheduler or LeitnerScheduler()
        self.deck_id = deck_id
        self.subject_id = subject_id
        self.box = box

        self.cards: List[Flashcard] = []
        self.session: Optional[StudySession] = None
        self._index = 0
        self._state: Optional[ReviewState] = None
        self._answered: Set[int] = set()
        self._failed: Set[int] = set()

    @property
    def scope_label(self) -> str:
        """Value stored as the session's deck_id."""
        if self.deck_id:
            return self.deck_id
        if self.subject_id:
            return f"subject:{self.subject_id}"
        return "all"

    @property
    def state(self) -> Optional[ReviewState]:
        return self._state

    @property
    def is_complete(self) -> bool:
        return self._state == ReviewState.COMPLETE

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def current_card(self) -> Optional[Flashcard]:
        if self._state in (ReviewState.PRESENTING, ReviewState.REVEALED):
            return self.cards[self._index]
        return None

    @property
    def progress(self) -> Tuple[int, int]:
        """(1-based position, total). Both equal the total once complete."""
        total = len(self.cards)
        if self._state == ReviewState.COMPLETE:
            return total, total
        return self._index + 1, total

    @property
    def failed_card_ids(self) -> List[str]:
        return [self.cards[i].id for i in sorted(self._failed)]

    def is_answered(self, index: Optional[int] = None) -> bool:
        return (self._index if index is None else index) in self._answered

    def _require(self, *states: ReviewState) -> None:
        if self._state not in states:
            current = self._state.value if self._state else "not started"
            raise SessionStateError(
                f"Invalid action in state '{current}'; expected one of "
                f"{[state.value for state in states]}."
            )

    def start(
        self,
        cards: Optional[Sequence[Flashcard]] = None,
        now: Optional[datetime] = None,
    ) -> None:
        """
        Snapshot the cards to review and open the session.

        Without ``cards``, the due cards of the manager's scope are used. An
        empty snapshot completes immediately and records nothing.
        """
        if self._state is not None:
            raise SessionStateError("Review session already started.")

        if cards is None:
            cards = self.db.get_cards_due_for_review(
                deck_id=self.deck_id,
                as_of=now,
                subject_id=self.subject_id,
                box=self.box,
            )
        self.cards = list(cards)
        self.session = StudySession(
            deck_id=self.scope_label, start_time=now or utcnow()
        )
        self._index = 0

        if not self.cards:
            self._state = ReviewState.COMPLETE
            self.session.end_session(now)
            logger.info(f"No cards to review for '{self.scope_label}'.")
            return

        self._state = ReviewState.PRESENTING
        logger.info(
            f"Started review session {self.session.id} for "
            f"'{self.scope_label}' with {len(self.cards)} cards."
        )

    def hint(self) -> Optional[str]:
        """The first hint of the presented card, if any."""
        if self._state != ReviewState.PRESENTING:
            return None
        hints = self.cards[self._index].hints
        return hints[0] if hints else None

    def reveal(self) -> Flashcard:
        self._require(ReviewState.PRESENTING)
        self._state = ReviewState.REVEALED
        return self.cards[self._index]

    def answer(
        self, correct: bool, now: Optional[datetime] = None
    ) -> AnswerResult:
        """
        Grade the revealed card, persist it and advance.

        A storage failure is reported in the result (counters unchanged) and
        the card can then be skipped.

        Raises:
            SessionStateError: If the card is not revealed or was already
                answered.
        """
        self._require(ReviewState.REVEALED)
        if self._index in self._answered:
            raise SessionStateError(
                f"Card {self.cards[self._index].id} was already answered."
            )

        card = self.cards[self._index]
        scheduled = self.scheduler.process_review(card, correct, reviewed_at=now)
        try:
            stored = self.db.update_card(
                card.id, scheduled.model_dump(include=PROGRESS_FIELDS)
            )
        except DatabaseError as e:
            logger.warning(f"Could not save review of card {card.id}: {e}")
            self._failed.add(self._index)
            return AnswerResult(
                success=False, card=card, old_box=card.box, error=str(e)
            )

        self._failed.discard(self._index)
        self._answered.add(self._index)
        self.cards[self._index] = stored
        self.session.record_answer(card.box, stored.box, correct)

        completed = self._advance(now)
        return AnswerResult(
            success=True,
            card=stored,
            old_box=card.box,
            new_box=stored.box,
            completed=completed,
            session=self.session if completed else None,
        )

    def skip(self, now: Optional[datetime] = None) -> AnswerResult:
        """Move on without grading the current card."""
        self._require(ReviewState.PRESENTING, ReviewState.REVEALED)
        card = self.cards[self._index]
        logger.debug(f"Skipped card {card.id}.")
        completed = self._advance(now)
        return AnswerResult(
            success=True,
            card=card,
            skipped=True,
            completed=completed,
            session=self.session if completed else None,
        )

    def previous(self) -> Optional[Flashcard]:
        self._require(ReviewState.PRESENTING, ReviewState.REVEALED)
        if self._index > 0:
            self._index -= 1
            self._state = ReviewState.PRESENTING
        return self.current_card

    def next(self) -> Optional[Flashcard]:
        self._require(ReviewState.PRESENTING, ReviewState.REVEALED)
        if self._index < len(self.cards) - 1:
            self._index += 1
            self._state = ReviewState.PRESENTING
        return self.current_card

    def _advance(self, now: Optional[datetime]) -> bool:
        if self._index >= len(self.cards) - 1:
            self._complete(now)
            return True
        self._index += 1
        self._state = ReviewState.PRESENTING
        return False

    def _complete(self, now: Optional[datetime]) -> None:
        self._state = ReviewState.COMPLETE
        self.session.end_session(now)
        try:
            self.db.record_session(self.session)
        except DatabaseError as e:
            logger.error(f"Failed to record session {self.session.id}: {e}")
            raise
        logger.info(
            f"Review session {self.session.id} complete: "
            f"{self.session.correct_answers}/{self.session.cards_reviewed} "
            f"correct ({self.session.accuracy}%)."
        )
