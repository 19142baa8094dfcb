"""
Turns decoded exchange documents into flat row lists ready to be written.

Planning is pure: no database access, and the clock and id generator are
passed in. FlashcardDatabase applies a plan inside one transaction.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Collection, Dict, List, Optional

from .documents import (
    DeckDocument,
    DocumentKind,
    FullBackupDocument,
    ImportDocument,
    SingleSubjectDocument,
    SubjectDocument,
)
from .models import Deck, Flashcard, StudySession, Subject, new_id, utcnow

logger = logging.getLogger(__name__)

IMPORTED_NAME_FORMAT = "{name} (imported {stamp})"
IMPORTED_STAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass
class ImportPlan:
    kind: DocumentKind
    clear_existing: bool
    subjects: List[Subject] = field(default_factory=list)
    decks: List[Deck] = field(default_factory=list)
    cards: List[Flashcard] = field(default_factory=list)
    sessions: List[StudySession] = field(default_factory=list)
    # Old id -> new id, filled only when ids are regenerated.
    id_map: Dict[str, str] = field(default_factory=dict)
    renamed_subject: Optional[str] = None


@dataclass
class ImportResult:
    """Outcome of an applied import."""

    kind: DocumentKind
    cleared: bool
    subjects: int = 0
    decks: int = 0
    cards: int = 0
    sessions: int = 0
    renamed_subject: Optional[str] = None

    @property
    def counts(self) -> Dict[str, int]:
        return {
            "subjects": self.subjects,
            "decks": self.decks,
            "cards": self.cards,
            "sessions": self.sessions,
        }

    @property
    def message(self) -> str:
        parts = [f"{count} {name}" for name, count in self.counts.items()]
        text = f"Imported {', '.join(parts)} ({self.kind.value})."
        if self.cleared:
            text += " Existing data was replaced."
        if self.renamed_subject:
            text += f" Subject renamed to '{self.renamed_subject}'."
        return text


@dataclass(frozen=True)
class SubjectRemap:
    """Fresh ids and the final name for an imported single subject."""

    subject_id: str
    subject_name: str
    renamed: bool
    id_map: Dict[str, str]


def plan_subject_remap(
    subject: SubjectDocument,
    existing_names: Collection[str],
    now: Optional[datetime] = None,
    id_factory: Callable[[], str] = new_id,
) -> SubjectRemap:
    """
    Assign new ids to a subject and everything under it, and pick its name.

    A name already used by an existing subject gets an "(imported <time>)"
    suffix.
    """
    id_map: Dict[str, str] = {subject.id: id_factory()}
    for deck in subject.decks:
        id_map[deck.id] = id_factory()
        for card in deck.cards:
            id_map[card.id] = id_factory()

    name = subject.name
    renamed = name in existing_names
    if renamed:
        stamp = (now or utcnow()).strftime(IMPORTED_STAMP_FORMAT)
        name = IMPORTED_NAME_FORMAT.format(name=name, stamp=stamp)
        logger.info(f"Subject '{subject.name}' exists; importing as '{name}'.")

    return SubjectRemap(
        subject_id=id_map[subject.id],
        subject_name=name,
        renamed=renamed,
        id_map=id_map,
    )


def _subject_row(subject: SubjectDocument, **overrides) -> Subject:
    return Subject.model_validate(
        {**subject.model_dump(exclude={"decks"}), **overrides}
    )


def _deck_row(deck: DeckDocument, **overrides) -> Deck:
    return Deck.model_validate(
        {**deck.model_dump(exclude={"cards"}), **overrides}
    )


def _add_deck(
    plan: ImportPlan,
    deck: DeckDocument,
    subject_id: Optional[str],
) -> None:
    plan.decks.append(_deck_row(deck, subject_id=subject_id))
    plan.cards.extend(
        card.model_copy(update={"deck_id": deck.id}) for card in deck.cards
    )


def _plan_single_subject(
    document: SingleSubjectDocument,
    existing_names: Collection[str],
    now: Optional[datetime],
    id_factory: Callable[[], str],
) -> ImportPlan:
    remap = plan_subject_remap(
        document.subject, existing_names, now=now, id_factory=id_factory
    )
    plan = ImportPlan(
        kind=DocumentKind.SINGLE_SUBJECT,
        clear_existing=False,
        id_map=remap.id_map,
        renamed_subject=remap.subject_name if remap.renamed else None,
    )
    plan.subjects.append(
        _subject_row(
            document.subject, id=remap.subject_id, name=remap.subject_name
        )
    )
    for deck in document.subject.decks:
        new_deck_id = remap.id_map[deck.id]
        plan.decks.append(
            _deck_row(deck, id=new_deck_id, subject_id=remap.subject_id)
        )
        plan.cards.extend(
            card.model_copy(
                update={"id": remap.id_map[card.id], "deck_id": new_deck_id}
            )
            for card in deck.cards
        )
    return plan


def build_import_plan(
    document: ImportDocument,
    clear_existing: bool = False,
    existing_subject_names: Collection[str] = (),
    now: Optional[datetime] = None,
    id_factory: Callable[[], str] = new_id,
) -> ImportPlan:
    """
    Flatten a decoded document into rows for the four tables.

    Single-subject documents always get fresh ids and never clear existing
    data, whatever ``clear_existing`` says. Every other shape keeps its ids.
    """
    if isinstance(document, SingleSubjectDocument):
        if clear_existing:
            logger.info(
                "Ignoring clear_existing for a single-subject import; "
                "it is always additive."
            )
        return _plan_single_subject(
            document, existing_subject_names, now, id_factory
        )

    plan = ImportPlan(
        kind=DocumentKind(document.kind), clear_existing=clear_existing
    )
    for subject in getattr(document, "subjects", []):
        plan.subjects.append(_subject_row(subject))
        for deck in subject.decks:
            _add_deck(plan, deck, subject.id)
    for deck in document.decks:
        _add_deck(plan, deck, deck.subject_id)
    if isinstance(document, FullBackupDocument):
        plan.sessions.extend(document.sessions)

    logger.debug(
        f"Planned {plan.kind.value} import: {len(plan.subjects)} subjects, "
        f"{len(plan.decks)} decks, {len(plan.cards)} cards, "
        f"{len(plan.sessions)} sessions."
    )
    return plan
