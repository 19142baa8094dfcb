"""
Marshalling between leitnercore models and DuckDB rows, plus file-level
database snapshots.
"""

import json
import logging
import shutil
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ..exceptions import MarshallingError
from ..models import Deck, Flashcard, StudySession, Subject, ensure_utc

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

SUBJECT_COLUMNS = (
    "id", "name", "description", "icon", "color", "created_at", "updated_at",
)
DECK_COLUMNS = (
    "id", "name", "description", "tags", "subject_id", "created_at",
    "updated_at",
)
CARD_COLUMNS = (
    "id", "deck_id", "type", "front", "back", "hints", "tags", "difficulty",
    "media", "box", "last_reviewed", "next_review", "review_count",
    "correct_count",
)
SESSION_COLUMNS = (
    "id", "deck_id", "start_time", "end_time", "cards_reviewed",
    "correct_answers", "box_progress",
)


def to_db_timestamp(ts: Optional[datetime]) -> Optional[datetime]:
    """Aware datetime -> naive UTC, the form stored in TIMESTAMP columns."""
    if ts is None:
        return None
    return ensure_utc(ts).replace(tzinfo=None)


def _validate_row(
    model_cls: Type[ModelT], data: Dict[str, Any], label: str
) -> ModelT:
    try:
        return model_cls.model_validate(data)
    except ValidationError as e:
        raise MarshallingError(
            f"Failed to parse {label} from DB row: {data}. Error: {e}",
            original_exception=e,
        ) from e


def subject_to_db_params(subject: Subject) -> Tuple:
    return (
        subject.id,
        subject.name,
        subject.description,
        subject.icon,
        subject.color,
        to_db_timestamp(subject.created_at),
        to_db_timestamp(subject.updated_at),
    )


def db_row_to_subject(row_dict: Dict[str, Any]) -> Subject:
    return _validate_row(Subject, row_dict, "subject")


def deck_to_db_params(deck: Deck) -> Tuple:
    return (
        deck.id,
        deck.name,
        deck.description,
        list(deck.tags),
        deck.subject_id,
        to_db_timestamp(deck.created_at),
        to_db_timestamp(deck.updated_at),
    )


def db_row_to_deck(row_dict: Dict[str, Any]) -> Deck:
    data = row_dict.copy()
    data["tags"] = data.get("tags") or []
    return _validate_row(Deck, data, "deck")


def card_to_db_params(card: Flashcard) -> Tuple:
    """
    Serialize a card in CARD_COLUMNS order.

    ``media`` is stored as JSON text; hints and tags as VARCHAR[].
    """
    if card.deck_id is None:
        raise MarshallingError(f"Card {card.id} has no deck_id.")
    return (
        card.id,
        card.deck_id,
        card.type.value,
        card.front,
        card.back,
        list(card.hints),
        list(card.tags),
        card.difficulty,
        card.media.model_dump_json(by_alias=True) if card.media else None,
        card.box,
        to_db_timestamp(card.last_reviewed),
        card.next_review,
        card.review_count,
        card.correct_count,
    )


def card_to_db_params_list(cards: Sequence[Flashcard]) -> List[Tuple]:
    return [card_to_db_params(card) for card in cards]


def db_row_to_card(row_dict: Dict[str, Any]) -> Flashcard:
    """
    Build a Flashcard from a cards row.

    Raises:
        MarshallingError: If the row does not validate (wraps the pydantic
            error).
    """
    data = row_dict.copy()
    data["hints"] = data.get("hints") or []
    data["tags"] = data.get("tags") or []
    media = data.get("media")
    if media:
        try:
            data["media"] = json.loads(media)
        except json.JSONDecodeError as e:
            raise MarshallingError(
                f"Card {data.get('id')} has unreadable media JSON: {e}",
                original_exception=e,
            ) from e
    return _validate_row(Flashcard, data, "card")


def session_to_db_params(session: StudySession) -> Tuple:
    box_progress = {
        str(box): progress.model_dump()
        for box, progress in session.box_progress.items()
    }
    return (
        session.id,
        session.deck_id,
        to_db_timestamp(session.start_time),
        to_db_timestamp(session.end_time),
        session.cards_reviewed,
        session.correct_answers,
        json.dumps(box_progress),
    )


def db_row_to_session(row_dict: Dict[str, Any]) -> StudySession:
    data = row_dict.copy()
    box_progress = data.pop("box_progress", None)
    if box_progress:
        try:
            data["box_progress"] = json.loads(box_progress)
        except json.JSONDecodeError as e:
            raise MarshallingError(
                f"Session {data.get('id')} has unreadable box_progress: {e}",
                original_exception=e,
            ) from e
    return _validate_row(StudySession, data, "session")


def find_latest_backup(db_path: Path) -> Optional[Path]:
    """
    Return the newest snapshot taken by ``backup_database`` for ``db_path``,
    or None. Snapshots live in a ``backups`` directory beside the database.
    """
    backup_dir = db_path.parent / "backups"
    if not backup_dir.exists():
        return None

    backup_files = list(
        backup_dir.glob(f"{db_path.stem}-backup-*{db_path.suffix}")
    )
    if not backup_files:
        return None

    # Names embed a sortable timestamp.
    return max(backup_files, key=lambda p: p.name)


def backup_database(db_path: Path) -> Optional[Path]:
    """
    Copy the database file to a timestamped snapshot.

    Returns:
        The snapshot path, or None when there is no database file yet.
    """
    if not db_path.exists():
        return None

    backup_dir = db_path.parent / "backups"
    backup_dir.mkdir(exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S-%f")
    backup_path = backup_dir / f"{db_path.stem}-backup-{timestamp}{db_path.suffix}"

    shutil.copy2(db_path, backup_path)
    logger.info(f"Database snapshot written to {backup_path}")
    return backup_path
