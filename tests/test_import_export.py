"""
Import and export through FlashcardDatabase: document shapes, round trips,
and atomicity of failed imports.
"""

import json
import pytest
from unittest.mock import patch

import duckdb

from leitnercore.db import FlashcardDatabase
from leitnercore.documents import DocumentKind
from leitnercore.exceptions import (
    NotFoundError,
    StorageTransactionError,
    ValidationError,
)
from leitnercore.models import Subject

from .conftest import NOW


def _snapshot(db: FlashcardDatabase):
    return {
        "subjects": db.get_all_subjects(),
        "decks": db.get_all_decks(),
        "cards": db.get_all_cards(),
        "sessions": db.get_all_sessions(),
    }


@pytest.fixture
def empty_db():
    db = FlashcardDatabase(":memory:")
    db.initialize_schema()
    yield db
    db.close()


class TestExportData:
    def test_full_backup_shape(self, populated_db: FlashcardDatabase):
        exported = populated_db.export_data(now=NOW)

        assert exported["version"] == "1.0"
        assert "kind" not in exported
        assert exported["metadata"] == {
            "created": "2024-03-10T12:00:00Z",
            "source": "Leitner Flashcards",
            "exportType": "full-backup",
            "stats": {
                "totalSubjects": 1,
                "totalDecks": 2,
                "totalCards": 4,
                "totalSessions": 1,
                "cardsByBox": {"1": 2, "2": 1, "3": 1, "4": 0},
            },
        }

        [subject] = exported["subjects"]
        assert subject["id"] == "subj-bio"
        [deck] = subject["decks"]
        assert deck["id"] == "deck-cells"
        assert [c["id"] for c in deck["cards"]] == ["card-1", "card-2", "card-3"]
        assert [d["id"] for d in exported["decks"]] == ["deck-es"]
        assert [s["id"] for s in exported["sessions"]] == ["sess-1"]

    def test_cards_use_camel_case_and_omit_unset_fields(
        self, populated_db: FlashcardDatabase
    ):
        cards = populated_db.export_data(now=NOW)["subjects"][0]["decks"][0]["cards"]
        first, second, third = cards
        assert first["nextReview"] == "2024-03-10"
        assert first["deckId"] == "deck-cells"
        assert "lastReviewed" not in first
        assert second["reviewCount"] == 3
        assert second["lastReviewed"] == "2024-03-08T08:30:00Z"
        assert "nextReview" not in third

    def test_without_stats(self, populated_db: FlashcardDatabase):
        exported = populated_db.export_data(include_stats=False, now=NOW)
        assert "sessions" not in exported
        assert "stats" not in exported["metadata"]

    def test_is_json_serializable(self, populated_db: FlashcardDatabase):
        json.dumps(populated_db.export_data())

    def test_empty_database(self, empty_db: FlashcardDatabase):
        exported = empty_db.export_data(now=NOW)
        assert exported["subjects"] == []
        assert exported["decks"] == []
        assert exported["metadata"]["stats"]["totalCards"] == 0


class TestExportSubject:
    def test_single_subject_shape(self, populated_db: FlashcardDatabase):
        exported = populated_db.export_subject("subj-bio", now=NOW)

        assert exported["metadata"]["exportType"] == "single-subject"
        assert exported["metadata"]["subjectName"] == "Biology"
        assert exported["metadata"]["stats"] == {
            "totalDecks": 1,
            "totalCards": 3,
            "cardsByBox": {"1": 2, "2": 1, "3": 0, "4": 0},
        }
        assert exported["subject"]["name"] == "Biology"
        assert len(exported["subject"]["decks"][0]["cards"]) == 3
        assert "decks" not in exported

    def test_missing_subject(self, populated_db: FlashcardDatabase):
        with pytest.raises(NotFoundError):
            populated_db.export_subject("nope")


class TestFullBackupRoundTrip:
    def test_into_fresh_database(
        self, populated_db: FlashcardDatabase, empty_db: FlashcardDatabase
    ):
        exported = populated_db.export_data(now=NOW)

        result = empty_db.import_data(exported)

        assert result.kind == DocumentKind.FULL_BACKUP
        assert result.counts == {"subjects": 1, "decks": 2, "cards": 4, "sessions": 1}
        assert _snapshot(empty_db) == _snapshot(populated_db)
        assert empty_db.export_data(now=NOW) == exported

    def test_restore_over_same_database(self, populated_db: FlashcardDatabase):
        exported = populated_db.export_data(now=NOW)
        before = _snapshot(populated_db)
        populated_db.delete_cards(["card-1"])
        populated_db.update_card("card-2", {"box": 4})

        result = populated_db.import_data(exported, clear_existing=True)

        assert result.cleared
        assert _snapshot(populated_db) == before

    def test_id_collision_without_clear_changes_nothing(
        self, populated_db: FlashcardDatabase
    ):
        exported = populated_db.export_data(now=NOW)
        before = _snapshot(populated_db)

        with pytest.raises(StorageTransactionError, match="Duplicate id"):
            populated_db.import_data(exported)
        assert _snapshot(populated_db) == before

    def test_failed_write_after_clear_is_rolled_back(
        self, populated_db: FlashcardDatabase
    ):
        exported = populated_db.export_data(now=NOW)
        before = _snapshot(populated_db)

        with patch.object(
            FlashcardDatabase,
            "_insert_rows",
            side_effect=[None, duckdb.Error("boom")],
        ):
            with pytest.raises(StorageTransactionError, match="boom"):
                populated_db.import_data(exported, clear_existing=True)

        assert _snapshot(populated_db) == before

    def test_invalid_document_changes_nothing(self, populated_db: FlashcardDatabase):
        before = _snapshot(populated_db)
        with pytest.raises(ValidationError, match="decks.0.cards.0.box"):
            populated_db.import_data(
                {"decks": [{"name": "Bad", "cards": [{"box": 7}]}]},
                clear_existing=True,
            )
        assert _snapshot(populated_db) == before

    def test_unrecognized_document_is_rejected_before_clearing(
        self, populated_db: FlashcardDatabase
    ):
        before = _snapshot(populated_db)
        with pytest.raises(ValidationError, match="Invalid import file format"):
            populated_db.import_data({"cards": []}, clear_existing=True)
        assert _snapshot(populated_db) == before

    def test_backup_with_nameless_deck_replaces_five_subjects(
        self, empty_db: FlashcardDatabase
    ):
        for i in range(5):
            empty_db.create_subject(Subject(id=f"s{i}", name=f"Subject {i}"))

        result = empty_db.import_data(
            {
                "metadata": {"exportType": "full-backup"},
                "subjects": [],
                "decks": [{"id": "d1", "cards": [{"id": "c1", "box": 1}]}],
            },
            clear_existing=True,
        )

        assert result.kind == DocumentKind.FULL_BACKUP
        assert result.counts == {"subjects": 0, "decks": 1, "cards": 1, "sessions": 0}
        assert empty_db.get_all_subjects() == []
        assert [d.id for d in empty_db.get_all_decks()] == ["d1"]
        assert empty_db.get_deck("d1").name == ""
        card = empty_db.get_card("c1")
        assert card.deck_id == "d1"
        assert card.box == 1


class TestSingleSubjectImport:
    def test_reimport_renames_and_regenerates_ids(
        self, populated_db: FlashcardDatabase
    ):
        exported = populated_db.export_subject("subj-bio", now=NOW)

        result = populated_db.import_data(exported, now=NOW)

        assert result.kind == DocumentKind.SINGLE_SUBJECT
        assert result.renamed_subject == "Biology (imported 2024-03-10 12:00:00)"
        subjects = populated_db.get_all_subjects()
        assert [s.name for s in subjects] == [
            "Biology",
            "Biology (imported 2024-03-10 12:00:00)",
        ]
        new_subject = subjects[1]
        assert new_subject.id != "subj-bio"

        [new_deck] = populated_db.get_all_decks(subject_id=new_subject.id)
        assert new_deck.id != "deck-cells"
        new_cards = populated_db.get_all_cards(deck_id=new_deck.id)
        assert len(new_cards) == 3
        assert not {c.id for c in new_cards} & {"card-1", "card-2", "card-3"}
        assert len(populated_db.get_all_cards()) == 7

    def test_clear_is_ignored(self, populated_db: FlashcardDatabase):
        exported = populated_db.export_subject("subj-bio", now=NOW)
        result = populated_db.import_data(exported, clear_existing=True, now=NOW)

        assert not result.cleared
        assert len(populated_db.get_all_subjects()) == 2
        assert populated_db.get_card("es-1") is not None

    def test_new_name_is_kept(self, populated_db: FlashcardDatabase, empty_db):
        exported = populated_db.export_subject("subj-bio", now=NOW)
        result = empty_db.import_data(exported, now=NOW)
        assert result.renamed_subject is None
        assert [s.name for s in empty_db.get_all_subjects()] == ["Biology"]


class TestOtherShapes:
    def test_standalone_decks_with_clear_replace_everything(
        self, empty_db: FlashcardDatabase
    ):
        for i in range(5):
            empty_db.create_subject(Subject(name=f"Subject {i}"))

        result = empty_db.import_data(
            {"decks": [{"name": "Only", "cards": [{"front": "q", "back": "a"}]}]},
            clear_existing=True,
        )

        assert result.kind == DocumentKind.STANDALONE_DECKS
        assert empty_db.get_database_stats()["total_subjects"] == 0
        [deck] = empty_db.get_all_decks()
        assert deck.subject_id is None
        [card] = empty_db.get_all_cards()
        assert card.deck_id == deck.id

    def test_legacy_sections(self, empty_db: FlashcardDatabase):
        result = empty_db.import_data(
            {
                "sections": [
                    {
                        "id": "s1",
                        "name": "Old format",
                        "decks": [
                            {
                                "id": "d1",
                                "name": "Deck",
                                "cards": [{"id": "c1", "front": "q", "back": "a"}],
                            }
                        ],
                    }
                ]
            }
        )

        assert result.kind == DocumentKind.MULTI_SUBJECT
        assert empty_db.get_subject("s1").name == "Old format"
        assert empty_db.get_deck("d1").subject_id == "s1"
        assert empty_db.get_card("c1").deck_id == "d1"

    def test_progress_is_stored_as_given(self, empty_db: FlashcardDatabase):
        empty_db.import_data(
            {
                "decks": [
                    {
                        "id": "d1",
                        "name": "Deck",
                        "cards": [
                            {
                                "id": "c1",
                                "box": 3,
                                "reviewCount": 4,
                                "correctCount": 3,
                                "nextReview": "2024-03-20T00:00:00.000Z",
                            }
                        ],
                    }
                ]
            }
        )
        card = empty_db.get_card("c1")
        assert card.box == 3
        assert card.review_count == 4
        assert str(card.next_review) == "2024-03-20"
