"""
Exchange documents: the JSON (or YAML) shapes leitnercore imports and exports.

A raw document is classified into exactly one of four shapes before anything
touches the database:

* ``single-subject``: one subject with nested decks and cards.
* ``full-backup``: everything, including study sessions.
* ``multi-subject``: a legacy ``subjects`` (or ``sections``) list plus
  optional standalone decks.
* ``standalone-decks``: a bare ``decks`` list.

When a document could match several shapes, the order above decides.
"""

import json
import logging
from enum import Enum
from pathlib import Path
from typing import (
    Annotated,
    Any,
    Dict,
    Iterable,
    List,
    Literal,
    Mapping,
    Optional,
    Union,
)

import yaml
from pydantic import AliasChoices, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .constants import EXPORT_TYPE_FULL_BACKUP, EXPORT_TYPE_SINGLE_SUBJECT
from .exceptions import ValidationError
from .models import Deck, Flashcard, StudySession, Subject, LeitnerModel

logger = logging.getLogger(__name__)


class DocumentKind(str, Enum):
    FULL_BACKUP = EXPORT_TYPE_FULL_BACKUP
    SINGLE_SUBJECT = EXPORT_TYPE_SINGLE_SUBJECT
    MULTI_SUBJECT = "multi-subject"
    STANDALONE_DECKS = "standalone-decks"


# A document must carry at least one of these keys to be considered at all.
RECOGNIZED_KEYS = ("version", "decks", "sections", "subject")

_KNOWN_KEYS = {
    DocumentKind.FULL_BACKUP: {
        "version", "metadata", "subjects", "sections", "decks", "sessions"
    },
    DocumentKind.SINGLE_SUBJECT: {"version", "metadata", "subject"},
    DocumentKind.MULTI_SUBJECT: {
        "version", "metadata", "subjects", "sections", "decks"
    },
    DocumentKind.STANDALONE_DECKS: {"version", "metadata", "decks"},
}


class ExportMetadata(LeitnerModel):
    """
    Informational header of a document. Only ``exportType`` drives import,
    so the other fields are carried through unvalidated.
    """

    created: Any = None
    source: Any = None
    export_type: Any = None
    subject_name: Any = None
    stats: Any = None


class DeckDocument(Deck):
    """A deck with its cards nested, as it appears in exchange documents."""

    cards: List[Flashcard] = Field(default_factory=list)


class SubjectDocument(Subject):
    """A subject with its decks (and their cards) nested."""

    decks: List[DeckDocument] = Field(default_factory=list)


class FullBackupDocument(LeitnerModel):
    kind: Literal["full-backup"] = "full-backup"
    version: Optional[str] = None
    metadata: ExportMetadata = Field(default_factory=ExportMetadata)
    subjects: List[SubjectDocument] = Field(
        default_factory=list,
        validation_alias=AliasChoices("subjects", "sections"),
    )
    decks: List[DeckDocument] = Field(default_factory=list)
    sessions: List[StudySession] = Field(default_factory=list)


class SingleSubjectDocument(LeitnerModel):
    kind: Literal["single-subject"] = "single-subject"
    version: Optional[str] = None
    metadata: ExportMetadata = Field(default_factory=ExportMetadata)
    subject: SubjectDocument


class MultiSubjectDocument(LeitnerModel):
    kind: Literal["multi-subject"] = "multi-subject"
    version: Optional[str] = None
    metadata: ExportMetadata = Field(default_factory=ExportMetadata)
    subjects: List[SubjectDocument] = Field(
        default_factory=list,
        validation_alias=AliasChoices("subjects", "sections"),
    )
    decks: List[DeckDocument] = Field(default_factory=list)


class StandaloneDecksDocument(LeitnerModel):
    kind: Literal["standalone-decks"] = "standalone-decks"
    version: Optional[str] = None
    metadata: ExportMetadata = Field(default_factory=ExportMetadata)
    decks: List[DeckDocument]


ImportDocument = Annotated[
    Union[
        FullBackupDocument,
        SingleSubjectDocument,
        MultiSubjectDocument,
        StandaloneDecksDocument,
    ],
    Field(discriminator="kind"),
]

DOCUMENT_TYPES = (
    FullBackupDocument,
    SingleSubjectDocument,
    MultiSubjectDocument,
    StandaloneDecksDocument,
)

_DOCUMENT_ADAPTER: TypeAdapter = TypeAdapter(ImportDocument)


def _export_type(raw: Mapping[str, Any]) -> Optional[str]:
    metadata = raw.get("metadata")
    if isinstance(metadata, Mapping):
        return metadata.get("exportType") or metadata.get("export_type")
    return None


def _is_list(raw: Mapping[str, Any], *keys: str) -> bool:
    return any(isinstance(raw.get(key), list) for key in keys)


def classify_document(raw: Any) -> DocumentKind:
    """
    Decide which exchange shape a raw document has.

    Raises:
        ValidationError: If ``raw`` is not a mapping, carries none of the
            recognized keys, or matches no shape.
    """
    if not isinstance(raw, Mapping):
        raise ValidationError(
            f"Import data must be an object, got {type(raw).__name__}."
        )
    if not any(key in raw for key in RECOGNIZED_KEYS):
        raise ValidationError(
            "Invalid import file format: expected at least one of "
            f"{', '.join(RECOGNIZED_KEYS)}."
        )

    export_type = _export_type(raw)

    if export_type == EXPORT_TYPE_SINGLE_SUBJECT or (
        export_type is None and "subject" in raw
    ):
        if not isinstance(raw.get("subject"), Mapping):
            raise ValidationError(
                "A single-subject export requires a 'subject' object."
            )
        return DocumentKind.SINGLE_SUBJECT

    if export_type == EXPORT_TYPE_FULL_BACKUP:
        if not _is_list(raw, "subjects", "sections", "decks"):
            raise ValidationError(
                "A full backup requires a 'subjects' or 'decks' list."
            )
        return DocumentKind.FULL_BACKUP

    if export_type is not None:
        logger.warning(
            f"Unknown exportType '{export_type}'; classifying by content."
        )

    if _is_list(raw, "subjects", "sections"):
        return DocumentKind.MULTI_SUBJECT
    if _is_list(raw, "decks"):
        return DocumentKind.STANDALONE_DECKS

    raise ValidationError(
        "Import data contains no subject, subjects, sections or decks."
    )


def _format_validation_error(
    kind: DocumentKind, error: PydanticValidationError
) -> str:
    details = error.errors()[0]
    loc = list(details["loc"])
    if loc and loc[0] == kind.value:
        loc = loc[1:]
    field = ".".join(map(str, loc)) or "<document>"
    return f"Validation error in field '{field}': {details['msg']}"


def _iter_decks(document: Any) -> Iterable[DeckDocument]:
    if isinstance(document, SingleSubjectDocument):
        yield from document.subject.decks
        return
    for subject in getattr(document, "subjects", []):
        yield from subject.decks
    yield from getattr(document, "decks", [])


def iter_subjects(document: Any) -> List[SubjectDocument]:
    if isinstance(document, SingleSubjectDocument):
        return [document.subject]
    return list(getattr(document, "subjects", []))


def iter_decks(document: Any) -> List[DeckDocument]:
    """All decks of a document: nested ones first, then standalone ones."""
    return list(_iter_decks(document))


def iter_cards(document: Any) -> List[Flashcard]:
    return [card for deck in _iter_decks(document) for card in deck.cards]


def _check_unique_ids(document: Any) -> None:
    groups = (
        ("subject", iter_subjects(document)),
        ("deck", iter_decks(document)),
        ("card", iter_cards(document)),
        ("session", getattr(document, "sessions", [])),
    )
    for label, records in groups:
        seen = set()
        for record in records:
            if record.id in seen:
                raise ValidationError(
                    f"Duplicate {label} id '{record.id}' in import document."
                )
            seen.add(record.id)


def decode_document(raw: Any) -> ImportDocument:
    """
    Classify and validate a raw document into its typed shape.

    Raises:
        ValidationError: For any malformed, ambiguous or inconsistent input.
            The error message names the offending field path.
    """
    kind = classify_document(raw)

    ignored = sorted(set(raw) - _KNOWN_KEYS[kind])
    if kind != DocumentKind.SINGLE_SUBJECT and _is_list(raw, "subjects"):
        if "sections" in raw:
            ignored.append("sections")
    if ignored:
        logger.warning(
            f"Ignoring top-level keys {ignored} in {kind.value} document."
        )

    try:
        document = _DOCUMENT_ADAPTER.validate_python(
            {**raw, "kind": kind.value}
        )
    except PydanticValidationError as e:
        message = _format_validation_error(kind, e)
        logger.error(f"Rejected {kind.value} document: {message}")
        raise ValidationError(message, original_exception=e) from e

    _check_unique_ids(document)
    return document


def count_records(document: Any) -> Dict[str, int]:
    """Number of subjects, decks, cards and sessions a document carries."""
    return {
        "subjects": len(iter_subjects(document)),
        "decks": len(iter_decks(document)),
        "cards": len(iter_cards(document)),
        "sessions": len(getattr(document, "sessions", [])),
    }


def load_document(path: Union[str, Path]) -> Any:
    """
    Read a raw document from a ``.json``, ``.yaml`` or ``.yml`` file.

    The result is undecoded; pass it to ``decode_document``.
    """
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ValidationError(f"File not found: {path}") from None
    except OSError as e:
        raise ValidationError(
            f"Could not read file {path}: {e}", original_exception=e
        ) from e

    if path.suffix.lower() in (".yaml", ".yml"):
        try:
            return yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ValidationError(
                f"Invalid YAML syntax in {path}: {e}", original_exception=e
            ) from e
    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        raise ValidationError(
            f"Invalid JSON in {path}: {e}", original_exception=e
        ) from e
