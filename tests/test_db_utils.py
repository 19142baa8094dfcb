import json
from datetime import datetime, timedelta, timezone

import pytest

from leitnercore.db import db_utils
from leitnercore.exceptions import MarshallingError
from leitnercore.models import CardMedia, Flashcard, StudySession


def test_to_db_timestamp_converts_to_naive_utc():
    eastern = datetime(2024, 3, 10, 7, 0, tzinfo=timezone(timedelta(hours=-5)))
    assert db_utils.to_db_timestamp(eastern) == datetime(2024, 3, 10, 12, 0)
    assert db_utils.to_db_timestamp(None) is None


def test_card_params_follow_column_order():
    card = Flashcard(
        id="c1",
        deck_id="d1",
        front="Q",
        back="A",
        hints=["h"],
        media=CardMedia(back_image="b.png"),
    )
    params = dict(zip(db_utils.CARD_COLUMNS, db_utils.card_to_db_params(card)))
    assert params["id"] == "c1"
    assert params["type"] == "basic"
    assert params["hints"] == ["h"]
    assert json.loads(params["media"]) == {"frontImage": None, "backImage": "b.png"}


def test_card_without_deck_cannot_be_stored():
    with pytest.raises(MarshallingError, match="no deck_id"):
        db_utils.card_to_db_params(Flashcard(id="c1"))


def test_db_row_to_card_defaults_empty_lists():
    row = dict.fromkeys(db_utils.CARD_COLUMNS)
    row.update(id="c1", deck_id="d1", type="cloze", front="Q", back="A", box=2,
               review_count=0, correct_count=0)
    card = db_utils.db_row_to_card(row)
    assert card.hints == []
    assert card.tags == []
    assert card.media is None


def test_session_round_trip_through_params():
    session = StudySession(
        id="s1",
        deck_id="d1",
        start_time=datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc),
        box_progress={3: {"promoted": 1, "demoted": 0}},
    )
    row = dict(zip(db_utils.SESSION_COLUMNS, db_utils.session_to_db_params(session)))
    assert json.loads(row["box_progress"])["3"] == {"promoted": 1, "demoted": 0}
    assert db_utils.db_row_to_session(row) == session


class TestDatabaseSnapshots:
    def test_backup_of_missing_file(self, tmp_path):
        assert db_utils.backup_database(tmp_path / "missing.db") is None

    def test_backup_and_find_latest(self, tmp_path):
        db_file = tmp_path / "leitner.db"
        db_file.write_bytes(b"first")
        first = db_utils.backup_database(db_file)
        db_file.write_bytes(b"second")
        second = db_utils.backup_database(db_file)

        assert first.parent == tmp_path / "backups"
        assert first.name.startswith("leitner-backup-")
        assert first.suffix == ".db"
        assert db_utils.find_latest_backup(db_file) == second
        assert second.read_bytes() == b"second"

    def test_find_latest_without_backups(self, tmp_path):
        assert db_utils.find_latest_backup(tmp_path / "leitner.db") is None
        (tmp_path / "backups").mkdir()
        assert db_utils.find_latest_backup(tmp_path / "leitner.db") is None
