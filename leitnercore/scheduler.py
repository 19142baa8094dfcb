# leitnercore/scheduler.py

"""
Defines the LeitnerScheduler: fixed-interval box scheduling for flashcards.

Everything here is pure. "Now" can be injected in every call so results are
deterministic; it defaults to the current UTC time.
"""

import logging
import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import BaseModel, Field, field_validator

from .constants import BOX_INTERVALS, MAX_BOX, MIN_BOX
from .models import CardStatistics, Flashcard, ensure_utc, round_half_up

logger = logging.getLogger(__name__)

DateLike = Union[datetime.date, datetime.datetime]


def _to_day(value: DateLike) -> datetime.date:
    """Truncate a datetime to its calendar day; dates pass through."""
    if isinstance(value, datetime.datetime):
        return ensure_utc(value).date()
    return value


class LeitnerSchedulerConfig(BaseModel):
    """Configuration for the Leitner Scheduler."""

    intervals: Dict[int, int] = Field(
        default_factory=lambda: dict(BOX_INTERVALS)
    )

    @field_validator("intervals")
    @classmethod
    def check_every_box_has_interval(
        cls, intervals: Dict[int, int]
    ) -> Dict[int, int]:
        expected = set(range(MIN_BOX, MAX_BOX + 1))
        if set(intervals) != expected:
            raise ValueError(
                f"Intervals must be defined for boxes {sorted(expected)}, "
                f"got {sorted(intervals)}."
            )
        for box, days in intervals.items():
            if days < 1:
                raise ValueError(
                    f"Interval for box {box} must be at least 1 day."
                )
        return intervals


class LeitnerScheduler:
    """
    Leitner box scheduler.

    A correct answer promotes a card one box (box 4 is terminal), a wrong
    answer sends it back to box 1. The next review is always "today plus the
    interval of the new box"; intervals restart on every review.
    """

    def __init__(self, config: Optional[LeitnerSchedulerConfig] = None):
        if config is None:
            config = LeitnerSchedulerConfig()
        self.config = config

    def _now(
        self, now: Optional[datetime.datetime] = None
    ) -> datetime.datetime:
        return ensure_utc(now) if now else datetime.datetime.now(
            datetime.timezone.utc
        )

    def next_review_date(self, box: int, today: datetime.date) -> datetime.date:
        """Return the day a card that just landed in ``box`` is next due."""
        if not MIN_BOX <= box <= MAX_BOX:
            raise ValueError(
                f"Invalid box: {box}. Must be {MIN_BOX}-{MAX_BOX}."
            )
        return today + datetime.timedelta(days=self.config.intervals[box])

    def is_due(
        self, card: Flashcard, as_of: Optional[DateLike] = None
    ) -> bool:
        """
        A card is due when it has never been scheduled or its next review
        day is on or before ``as_of``.
        """
        if card.next_review is None:
            return True
        as_of_day = _to_day(as_of) if as_of else self._now().date()
        return card.next_review <= as_of_day

    def process_review(
        self,
        card: Flashcard,
        correct: bool,
        reviewed_at: Optional[datetime.datetime] = None,
    ) -> Flashcard:
        """
        Apply one answer to a card and return the updated copy.

        The input card is not modified.
        """
        now = self._now(reviewed_at)
        new_box = min(card.box + 1, MAX_BOX) if correct else MIN_BOX

        updated = card.model_copy(
            update={
                "last_reviewed": now,
                "review_count": card.review_count + 1,
                "correct_count": card.correct_count + (1 if correct else 0),
                "box": new_box,
                "next_review": self.next_review_date(new_box, now.date()),
            }
        )
        logger.debug(
            f"Card {card.id}: box {card.box} -> {new_box} "
            f"({'correct' if correct else 'incorrect'}), "
            f"next review {updated.next_review}"
        )
        return updated

    def get_statistics(
        self,
        cards: Iterable[Flashcard],
        as_of: Optional[DateLike] = None,
    ) -> CardStatistics:
        """
        Summarize a set of cards.

        ``average_correct_rate`` is the mean per-card correct rate over cards
        that have been reviewed at least once, as a rounded percentage.
        Never-reviewed cards are left out of the average.
        """
        as_of_day = _to_day(as_of) if as_of else self._now().date()
        stats = CardStatistics()
        rate_sum = 0.0
        reviewed_cards = 0

        for card in cards:
            stats.total += 1
            stats.by_box[card.box] += 1
            if self.is_due(card, as_of_day):
                stats.due_today += 1
            if card.box == MAX_BOX:
                stats.mastered += 1
            if card.review_count > 0:
                rate_sum += card.correct_count / card.review_count
                reviewed_cards += 1

        if reviewed_cards:
            stats.average_correct_rate = round_half_up(
                rate_sum / reviewed_cards * 100
            )
        return stats

    def get_cards_by_box(
        self, cards: Iterable[Flashcard], box: int
    ) -> List[Flashcard]:
        return [card for card in cards if card.box == box]

    def initialize_card(
        self,
        partial: Union[Flashcard, Mapping[str, Any]],
        today: Optional[datetime.date] = None,
    ) -> Flashcard:
        """
        Build a fresh card from partial data.

        Content fields are kept (id, type, front and back get defaults when
        missing) but learning progress is always reset: box 1, zero counts,
        no last review, due today. Imported cards are treated as new.
        """
        if isinstance(partial, Flashcard):
            data: Dict[str, Any] = partial.model_dump()
        else:
            data = dict(partial)

        for key in ("lastReviewed", "nextReview", "reviewCount", "correctCount"):
            data.pop(key, None)
        if not data.get("id"):
            data.pop("id", None)
        for key, default in (("type", "basic"), ("front", ""), ("back", "")):
            if not data.get(key):
                data[key] = default

        data.update(
            box=MIN_BOX,
            review_count=0,
            correct_count=0,
            last_reviewed=None,
            next_review=today or self._now().date(),
        )
        return Flashcard.model_validate(data)
