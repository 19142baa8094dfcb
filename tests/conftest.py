import logging
import pytest
from pathlib import Path
from typing import Generator
from datetime import date, datetime, timezone

from leitnercore.db import FlashcardDatabase
from leitnercore.models import Deck, Flashcard, StudySession, Subject

NOW = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)
TODAY = date(2024, 3, 10)


# each test runs with cwd in its temp dir, so no stray .env is picked up
@pytest.fixture(autouse=True)
def go_to_tmpdir(tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    yield


# --- Database Fixtures ---
@pytest.fixture
def db_path_memory() -> str:
    return ":memory:"


@pytest.fixture
def db_path_file(tmp_path: Path) -> Path:
    return tmp_path / "test_leitner.db"


@pytest.fixture(params=["memory", "file"])
def db_manager(
    request, db_path_memory: str, db_path_file: Path
) -> Generator[FlashcardDatabase, None, None]:
    """
    A FlashcardDatabase, either in-memory or file-backed. The connection is
    closed and any database file removed on teardown.
    """
    if request.param == "memory":
        db_man = FlashcardDatabase(db_path_memory)
    else:
        db_man = FlashcardDatabase(db_path_file)
    try:
        yield db_man
    finally:
        db_man.close()
        if request.param == "file" and db_path_file.exists():
            try:
                db_path_file.unlink()
            except OSError as e:
                logging.warning(
                    f"Error removing temporary DB file in test fixture teardown: {e}"
                )


@pytest.fixture
def initialized_db_manager(db_manager: FlashcardDatabase) -> FlashcardDatabase:
    db_manager.initialize_schema()
    return db_manager


def create_sample_card(**overrides) -> Flashcard:
    data = dict(
        id="card-1",
        front="What is the powerhouse of the cell?",
        back="Mitochondria",
        deck_id="deck-cells",
        next_review=TODAY,
    )
    data.update(overrides)
    return Flashcard(**data)


@pytest.fixture
def biology_subject() -> Subject:
    return Subject(
        id="subj-bio",
        name="Biology",
        description="Life sciences",
        icon="leaf",
        color="#00aa00",
        created_at=datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc),
        updated_at=datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def populated_db(
    initialized_db_manager: FlashcardDatabase, biology_subject: Subject
) -> FlashcardDatabase:
    """
    Biology subject with a "Cells" deck holding three cards, plus a
    standalone "Spanish" deck with one card.

    Due on TODAY: card-1 (box 1) and card-3 (never scheduled). card-2 is due
    in the future; es-1 is due today in box 3.
    """
    db = initialized_db_manager
    db.create_subject(biology_subject)
    db.create_deck(
        Deck(id="deck-cells", name="Cells", subject_id="subj-bio", tags=["bio"])
    )
    db.create_deck(Deck(id="deck-es", name="Spanish"))
    db.add_cards(
        [
            create_sample_card(id="card-1", hints=["Starts with M", "Second"]),
            create_sample_card(
                id="card-2",
                front="What does DNA stand for?",
                back="Deoxyribonucleic acid",
                box=2,
                review_count=3,
                correct_count=2,
                last_reviewed=datetime(2024, 3, 8, 8, 30, tzinfo=timezone.utc),
                next_review=date(2024, 3, 11),
            ),
            create_sample_card(
                id="card-3",
                front="Cell wall material in plants?",
                back="Cellulose",
                next_review=None,
            ),
            create_sample_card(
                id="es-1",
                front="perro",
                back="dog",
                deck_id="deck-es",
                box=3,
                review_count=2,
                correct_count=2,
                next_review=TODAY,
            ),
        ]
    )
    db.record_session(
        StudySession(
            id="sess-1",
            deck_id="deck-cells",
            start_time=datetime(2024, 3, 8, 8, 0, tzinfo=timezone.utc),
            end_time=datetime(2024, 3, 8, 8, 30, tzinfo=timezone.utc),
            cards_reviewed=3,
            correct_answers=2,
            box_progress={1: {"promoted": 2, "demoted": 0}, 2: {"promoted": 0, "demoted": 1}},
        )
    )
    return db
