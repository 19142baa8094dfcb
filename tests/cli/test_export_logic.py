"""
Tests for the export logic behind the CLI export commands.
"""

import json
import logging
from unittest.mock import MagicMock, patch

import pytest

from leitnercore.cli._export_logic import export_to_markdown, write_json_document
from leitnercore.db.database import FlashcardDatabase
from leitnercore.models import Deck

from ..conftest import create_sample_card


@pytest.fixture
def mock_db():
    """Fixture for a mocked FlashcardDatabase."""
    return MagicMock(spec=FlashcardDatabase)


def test_export_to_markdown_success(populated_db, tmp_path):
    """One file per deck, cards sorted by front, subject and hints included."""
    output_dir = tmp_path / "export"

    assert export_to_markdown(populated_db, output_dir) == 2

    cells = (output_dir / "Cells.md").read_text(encoding="utf-8")
    spanish = (output_dir / "Spanish.md").read_text(encoding="utf-8")

    assert cells.startswith("# Deck: Cells\n\n_Subject: Biology_")
    assert cells.index("Cell wall") < cells.index("What does DNA") < cells.index(
        "What is the powerhouse"
    )
    assert "**Hint:** Starts with M" in cells
    assert "**Box:** 2" in cells
    assert "_Subject:" not in spanish
    assert "**Front:** perro" in spanish


def test_export_to_markdown_no_cards(mock_db, tmp_path, caplog):
    mock_db.get_all_cards.return_value = []
    with caplog.at_level(logging.WARNING):
        assert export_to_markdown(mock_db, tmp_path / "empty") == 0
    assert "No cards found in the database to export." in caplog.text


def test_export_to_markdown_name_collision(populated_db, tmp_path):
    populated_db.create_deck(Deck(id="deck-cells-2", name="Cells"))
    populated_db.add_cards([create_sample_card(id="dup-1", deck_id="deck-cells-2")])

    assert export_to_markdown(populated_db, tmp_path) == 3
    assert (tmp_path / "Cells.md").exists()
    assert (tmp_path / "Cells_deck-cel.md").exists()


def test_export_to_markdown_sanitizes_names(mock_db, tmp_path):
    mock_db.get_all_cards.return_value = [create_sample_card(deck_id="d1")]
    mock_db.get_all_subjects.return_value = []
    mock_db.get_all_decks.return_value = [Deck(id="d1", name="A/B: C?")]

    export_to_markdown(mock_db, tmp_path)

    assert (tmp_path / "AB C.md").exists()


def test_export_to_markdown_directory_creation_fails(mock_db, tmp_path):
    with patch("pathlib.Path.mkdir", side_effect=OSError("Permission denied")):
        with pytest.raises(IOError, match="Failed to create output directory"):
            export_to_markdown(mock_db, tmp_path / "blocked")


def test_export_to_markdown_continues_after_write_error(populated_db, tmp_path, caplog):
    real_open = open

    def flaky_open(path, *args, **kwargs):
        if str(path).endswith("Cells.md"):
            raise IOError("Disk full")
        return real_open(path, *args, **kwargs)

    with patch("builtins.open", side_effect=flaky_open):
        written = export_to_markdown(populated_db, tmp_path)

    assert written == 1
    assert (tmp_path / "Spanish.md").exists()
    assert "Could not write to file" in caplog.text


def test_write_json_document(tmp_path):
    output = tmp_path / "nested" / "backup.json"
    document = {"metadata": {"exportType": "full-backup"}, "decks": [{"name": "Café"}]}

    assert write_json_document(document, output) == output

    text = output.read_text(encoding="utf-8")
    assert "Café" in text
    assert json.loads(text) == document
