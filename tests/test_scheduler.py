import pytest
from datetime import date, datetime, timedelta, timezone

from pydantic import ValidationError

from leitnercore.models import Flashcard
from leitnercore.scheduler import LeitnerScheduler, LeitnerSchedulerConfig

NOW = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)
TODAY = NOW.date()


@pytest.fixture
def scheduler() -> LeitnerScheduler:
    return LeitnerScheduler()


def _card(**overrides) -> Flashcard:
    data = dict(id="c1", front="Q", back="A", deck_id="d1")
    data.update(overrides)
    return Flashcard(**data)


class TestProcessReview:
    @pytest.mark.parametrize(
        "box, new_box, days",
        [(1, 2, 3), (2, 3, 7), (3, 4, 30), (4, 4, 30)],
    )
    def test_correct_answer_promotes(self, scheduler, box, new_box, days):
        updated = scheduler.process_review(_card(box=box), True, reviewed_at=NOW)
        assert updated.box == new_box
        assert updated.next_review == TODAY + timedelta(days=days)

    @pytest.mark.parametrize("box", [1, 2, 3, 4])
    def test_wrong_answer_resets_to_box_one(self, scheduler, box):
        updated = scheduler.process_review(_card(box=box), False, reviewed_at=NOW)
        assert updated.box == 1
        assert updated.next_review == TODAY + timedelta(days=1)

    def test_counters_and_timestamp(self, scheduler):
        card = _card(review_count=4, correct_count=2)
        correct = scheduler.process_review(card, True, reviewed_at=NOW)
        wrong = scheduler.process_review(card, False, reviewed_at=NOW)

        assert (correct.review_count, correct.correct_count) == (5, 3)
        assert (wrong.review_count, wrong.correct_count) == (5, 2)
        assert correct.last_reviewed == NOW

    def test_input_card_is_not_modified(self, scheduler):
        card = _card(box=2)
        scheduler.process_review(card, True, reviewed_at=NOW)
        assert card.box == 2
        assert card.review_count == 0
        assert card.last_reviewed is None

    def test_interval_restarts_from_review_day(self, scheduler):
        # Overdue by a week: the next date counts from the review, not the old due date.
        card = _card(box=2, next_review=TODAY - timedelta(days=7))
        updated = scheduler.process_review(card, True, reviewed_at=NOW)
        assert updated.next_review == TODAY + timedelta(days=7)

    def test_non_utc_review_time_uses_utc_day(self, scheduler):
        late_evening = datetime(
            2024, 3, 10, 23, 30, tzinfo=timezone(timedelta(hours=-5))
        )
        updated = scheduler.process_review(_card(), True, reviewed_at=late_evening)
        assert updated.next_review == date(2024, 3, 11) + timedelta(days=3)

    def test_defaults_to_now(self, scheduler):
        updated = scheduler.process_review(_card(), True)
        assert updated.last_reviewed is not None
        assert updated.last_reviewed.tzinfo == timezone.utc


class TestIsDue:
    def test_never_scheduled_card_is_due(self, scheduler):
        assert scheduler.is_due(_card(next_review=None), TODAY)

    def test_due_on_and_before_the_day(self, scheduler):
        assert scheduler.is_due(_card(next_review=TODAY), TODAY)
        assert scheduler.is_due(_card(next_review=TODAY - timedelta(days=2)), TODAY)
        assert not scheduler.is_due(_card(next_review=TODAY + timedelta(days=1)), TODAY)

    def test_datetime_as_of_is_truncated(self, scheduler):
        card = _card(next_review=TODAY)
        assert scheduler.is_due(card, datetime(2024, 3, 10, 0, 1, tzinfo=timezone.utc))


class TestStatistics:
    def test_empty(self, scheduler):
        stats = scheduler.get_statistics([], TODAY)
        assert stats.total == 0
        assert stats.by_box == {1: 0, 2: 0, 3: 0, 4: 0}
        assert stats.average_correct_rate == 0

    def test_counts(self, scheduler):
        cards = [
            _card(id="a", box=1, next_review=TODAY),
            _card(id="b", box=2, next_review=TODAY + timedelta(days=2)),
            _card(id="c", box=4, next_review=TODAY + timedelta(days=20)),
            _card(id="d", box=4, next_review=None),
        ]
        stats = scheduler.get_statistics(cards, TODAY)
        assert stats.total == 4
        assert stats.by_box == {1: 1, 2: 1, 3: 0, 4: 2}
        assert stats.due_today == 2
        assert stats.mastered == 2

    def test_average_excludes_never_reviewed_cards(self, scheduler):
        cards = [
            _card(id="a", review_count=10, correct_count=10),
            _card(id="b", review_count=3, correct_count=1),
            _card(id="c"),
        ]
        # (100% + 33.3%) / 2 = 66.67 -> 67
        assert scheduler.get_statistics(cards, TODAY).average_correct_rate == 67

    def test_average_rounds_half_up(self, scheduler):
        cards = [_card(review_count=8, correct_count=1)]
        assert scheduler.get_statistics(cards, TODAY).average_correct_rate == 13

    def test_get_cards_by_box(self, scheduler):
        cards = [_card(id="a", box=1), _card(id="b", box=3), _card(id="c", box=3)]
        assert [c.id for c in scheduler.get_cards_by_box(cards, 3)] == ["b", "c"]


class TestInitializeCard:
    def test_resets_progress_and_keeps_content(self, scheduler):
        imported = _card(
            id="keep-me",
            hints=["h"],
            box=4,
            review_count=9,
            correct_count=8,
            last_reviewed=NOW,
            next_review=TODAY + timedelta(days=30),
        )
        fresh = scheduler.initialize_card(imported, today=TODAY)
        assert fresh.id == "keep-me"
        assert fresh.front == "Q"
        assert fresh.hints == ["h"]
        assert fresh.deck_id == "d1"
        assert fresh.box == 1
        assert fresh.review_count == 0
        assert fresh.correct_count == 0
        assert fresh.last_reviewed is None
        assert fresh.next_review == TODAY

    def test_camel_case_progress_keys_are_discarded(self, scheduler):
        fresh = scheduler.initialize_card(
            {
                "front": "Q",
                "box": 3,
                "reviewCount": 5,
                "correctCount": 4,
                "nextReview": "2030-01-01",
                "lastReviewed": "2024-01-01T00:00:00Z",
                "deckId": "d9",
            },
            today=TODAY,
        )
        assert fresh.box == 1
        assert fresh.review_count == 0
        assert fresh.next_review == TODAY
        assert fresh.last_reviewed is None
        assert fresh.deck_id == "d9"

    def test_fills_defaults(self, scheduler):
        fresh = scheduler.initialize_card({"id": ""}, today=TODAY)
        assert fresh.id
        assert fresh.type.value == "basic"
        assert fresh.front == ""
        assert fresh.back == ""


class TestConfig:
    def test_default_intervals(self):
        assert LeitnerSchedulerConfig().intervals == {1: 1, 2: 3, 3: 7, 4: 30}

    def test_custom_intervals(self):
        config = LeitnerSchedulerConfig(intervals={1: 2, 2: 4, 3: 8, 4: 16})
        updated = LeitnerScheduler(config).process_review(_card(), True, reviewed_at=NOW)
        assert updated.next_review == TODAY + timedelta(days=4)

    def test_missing_box_rejected(self):
        with pytest.raises(ValidationError, match="boxes"):
            LeitnerSchedulerConfig(intervals={1: 1, 2: 3, 3: 7})

    def test_non_positive_interval_rejected(self):
        with pytest.raises(ValidationError, match="at least 1 day"):
            LeitnerSchedulerConfig(intervals={1: 0, 2: 3, 3: 7, 4: 30})

    def test_invalid_box_for_next_review_date(self):
        with pytest.raises(ValueError, match="Invalid box"):
            LeitnerScheduler().next_review_date(5, TODAY)
