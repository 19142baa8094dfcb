"""
Contains the business logic for exporting flashcards to files.
This logic is called by the CLI commands in main.py.
"""

import json
import logging
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict

from leitnercore.db.database import FlashcardDatabase

logger = logging.getLogger(__name__)


def write_json_document(document: Dict[str, Any], output: Path) -> Path:
    """Write an exchange document as pretty-printed UTF-8 JSON."""
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(
        json.dumps(document, indent=2, ensure_ascii=False), encoding="utf-8"
    )
    export_type = document.get("metadata", {}).get("exportType")
    logger.info(f"Wrote {export_type} document to {output}")
    return output


def _safe_file_stem(name: str) -> str:
    stem = "".join(c for c in name if c.isalnum() or c in (" ", "_", "-"))
    return stem.strip() or "unnamed_deck"


def export_to_markdown(db: FlashcardDatabase, output_dir: Path) -> int:
    """
    Write one Markdown file per deck under ``output_dir``.

    Each file starts with the deck (and subject) name, then lists every card
    with its box; cards are sorted by front. A write failure for one deck is
    logged and does not stop the others.

    Returns:
        Number of files written.

    Raises:
        IOError: If the output directory cannot be created.
    """
    logger.info(f"Starting Markdown export to directory: {output_dir}")

    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error(f"Could not create output directory {output_dir}: {e}")
        raise IOError(f"Failed to create output directory: {e}") from e

    all_cards = db.get_all_cards()
    if not all_cards:
        logger.warning("No cards found in the database to export.")
        return 0

    cards_by_deck = defaultdict(list)
    for card in all_cards:
        cards_by_deck[card.deck_id].append(card)
    subject_names = {s.id: s.name for s in db.get_all_subjects()}

    used_stems = set()
    exported_files = 0
    for deck in db.get_all_decks():
        cards = cards_by_deck.get(deck.id)
        if not cards:
            continue
        stem = _safe_file_stem(deck.name)
        if stem in used_stems:
            stem = f"{stem}_{deck.id[:8]}"
        used_stems.add(stem)
        file_path = output_dir / f"{stem}.md"

        try:
            with open(file_path, "w", encoding="utf-8") as f:
                f.write(f"# Deck: {deck.name}\n\n")
                if deck.subject_id in subject_names:
                    f.write(f"_Subject: {subject_names[deck.subject_id]}_\n\n")
                for card in sorted(cards, key=lambda c: c.front):
                    f.write(f"**Front:** {card.front}\n\n")
                    f.write(f"**Back:** {card.back}\n\n")
                    if card.hints:
                        f.write(f"**Hint:** {card.hints[0]}\n\n")
                    if card.tags:
                        tags_str = ", ".join(sorted(card.tags))
                        f.write(f"**Tags:** `{tags_str}`\n\n")
                    f.write(f"**Box:** {card.box}\n\n")
                    f.write("---\n\n")
            logger.info(
                f"Successfully exported {len(cards)} cards to {file_path}"
            )
            exported_files += 1
        except IOError as e:
            logger.error(f"Could not write to file {file_path}: {e}")

    logger.info(f"Markdown export complete. Wrote {exported_files} file(s).")
    return exported_files
