"""
DuckDB persistence for leitnercore.

FlashcardDatabase is the only public entry point of the db package. Every
multi-row write runs in a single cursor transaction (``_transaction``): a
failure rolls everything back and surfaces as StorageTransactionError.
"""

import duckdb
import logging
from collections import defaultdict
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
    Union,
)

from . import db_utils
from .connection import ConnectionHandler
from .schema import TABLE_NAMES
from .schema_manager import SchemaManager
from .. import config as leitner_config
from .. import documents
from ..constants import (
    EXPORT_TYPE_FULL_BACKUP,
    EXPORT_TYPE_SINGLE_SUBJECT,
    EXPORT_VERSION,
    MAX_BOX,
    MIN_BOX,
)
from ..exceptions import (
    DatabaseConnectionError,
    DatabaseError,
    LeitnerError,
    NotFoundError,
    StorageTransactionError,
    ValidationError,
)
from ..import_plan import ImportPlan, ImportResult, build_import_plan
from ..models import (
    Deck,
    Flashcard,
    StudySession,
    Subject,
    ensure_utc,
    merge_model,
    utcnow,
)

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT")

_COLUMNS = {
    "subjects": db_utils.SUBJECT_COLUMNS,
    "decks": db_utils.DECK_COLUMNS,
    "cards": db_utils.CARD_COLUMNS,
    "sessions": db_utils.SESSION_COLUMNS,
}

_INSERT_SQL = {
    table: (
        f"INSERT INTO {table} ({', '.join(columns)}) "
        f"VALUES ({', '.join('?' for _ in columns)});"
    )
    for table, columns in _COLUMNS.items()
}

# Every column but the id, in column order, then the id for the WHERE.
_UPDATE_SQL = {
    table: (
        f"UPDATE {table} SET {', '.join(f'{c} = ?' for c in columns[1:])} "
        "WHERE id = ?;"
    )
    for table, columns in _COLUMNS.items()
}

_TO_PARAMS: Dict[str, Callable[[Any], Tuple]] = {
    "subjects": db_utils.subject_to_db_params,
    "decks": db_utils.deck_to_db_params,
    "cards": db_utils.card_to_db_params,
    "sessions": db_utils.session_to_db_params,
}


def _rows_to_dicts(cursor: duckdb.DuckDBPyConnection) -> List[Dict[str, Any]]:
    """Convert cursor results to list of dictionaries using column names."""
    rows = cursor.fetchall()
    if not rows:
        return []
    description = cursor.description
    if description is None:
        return []
    columns = [desc[0] for desc in description]
    return [dict(zip(columns, row, strict=True)) for row in rows]


def _update_params(table: str, record: Any) -> Tuple:
    params = _TO_PARAMS[table](record)
    return params[1:] + (params[0],)


def _as_day(value: Optional[Union[date, datetime]]) -> date:
    if value is None:
        return utcnow().date()
    if isinstance(value, datetime):
        return ensure_utc(value).date()
    return value


def _box_counts_block(by_box: Mapping[int, int]) -> Dict[str, int]:
    return {str(box): by_box.get(box, 0) for box in range(MIN_BOX, MAX_BOX + 1)}


class FlashcardDatabase:
    """
    Facade over the DuckDB store: subjects, decks, cards and study sessions.

    Coordinates the ConnectionHandler, the SchemaManager and the row
    marshalling helpers. Use ``open()``/``close()`` or a ``with`` block.
    """

    def __init__(
        self,
        db_path: Union[str, Path],
        read_only: bool = False,
        export_source: Optional[str] = None,
    ):
        """
        Args:
            db_path: Database file, or ':memory:' for an in-memory store.
            read_only: Open the database read-only; writes then raise
                DatabaseConnectionError.
            export_source: ``metadata.source`` written to exports. Defaults
                to the configured ``export_source`` setting.
        """
        self._handler = ConnectionHandler(db_path=db_path, read_only=read_only)
        self._schema_manager = SchemaManager(self._handler)
        self.export_source = (
            export_source or leitner_config.settings.export_source
        )

    @property
    def db_path_resolved(self) -> Path:
        return self._handler.db_path_resolved

    @property
    def read_only(self) -> bool:
        return self._handler.read_only

    def get_connection(self) -> duckdb.DuckDBPyConnection:
        return self._handler.get_connection()

    def open(self) -> "FlashcardDatabase":
        """Connect, creating the schema when the database is new."""
        self.get_connection()
        if self._handler.is_new_db and not self._handler.read_only:
            self.initialize_schema()
        return self

    def close(self) -> None:
        self._handler.close_connection()

    def __enter__(self) -> "FlashcardDatabase":
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def initialize_schema(self, force_recreate_tables: bool = False) -> None:
        self._schema_manager.initialize_schema(
            force_recreate_tables=force_recreate_tables
        )

    # --- Plumbing ---

    def _ensure_writable(self, operation: str) -> None:
        if self.read_only:
            raise DatabaseConnectionError(
                f"Cannot {operation} in read-only mode."
            )

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[duckdb.DuckDBPyConnection]:
        """
        Run the body in one DuckDB transaction on a fresh cursor.

        On any failure the transaction is rolled back. LeitnerErrors raised by
        the body propagate unchanged; anything else is wrapped in
        StorageTransactionError.
        """
        self._ensure_writable(operation)
        conn = self.get_connection()
        with conn.cursor() as cursor:
            try:
                cursor.begin()
                yield cursor
                cursor.commit()
            except Exception as e:
                logger.error(f"Failed to {operation}: {e}")
                try:
                    cursor.rollback()
                    logger.info(f"Transaction rolled back ({operation}).")
                except duckdb.Error as rb_err:
                    logger.error(f"Failed to rollback transaction: {rb_err}")
                if isinstance(e, LeitnerError):
                    raise
                raise StorageTransactionError(
                    f"Failed to {operation}: {e}", original_exception=e
                ) from e

    def _fetch(
        self,
        sql: str,
        params: Sequence[Any],
        converter: Callable[[Dict[str, Any]], RecordT],
        what: str,
    ) -> List[RecordT]:
        conn = self.get_connection()
        try:
            cursor = conn.execute(sql, list(params))
            rows = _rows_to_dicts(cursor)
        except duckdb.Error as e:
            logger.error(f"Error fetching {what}: {e}")
            raise DatabaseError(
                f"Failed to fetch {what}: {e}", original_exception=e
            ) from e
        return [converter(row) for row in rows]

    def _fetch_one(
        self,
        table: str,
        record_id: str,
        converter: Callable[[Dict[str, Any]], RecordT],
    ) -> Optional[RecordT]:
        records = self._fetch(
            f"SELECT * FROM {table} WHERE id = ? LIMIT 1;",
            [record_id],
            converter,
            f"{table} row {record_id}",
        )
        return records[0] if records else None

    def _ensure_ids_free(
        self,
        cursor: duckdb.DuckDBPyConnection,
        table: str,
        ids: Iterable[str],
    ) -> None:
        """Id uniqueness check, run inside the write transaction."""
        ids = list(ids)
        if not ids:
            return
        taken = cursor.execute(
            f"SELECT id FROM {table} WHERE list_contains(?, id);",
            (ids,),
        ).fetchall()
        if taken:
            raise StorageTransactionError(
                f"Duplicate id(s) in {table}: "
                f"{', '.join(sorted(row[0] for row in taken))}."
            )

    def _insert_rows(
        self,
        cursor: duckdb.DuckDBPyConnection,
        table: str,
        params_list: List[Tuple],
    ) -> None:
        if params_list:
            cursor.executemany(_INSERT_SQL[table], params_list)

    def _insert_one(self, table: str, record: Any, label: str) -> None:
        params = _TO_PARAMS[table](record)
        with self._transaction(f"create {label} {record.id}") as cursor:
            self._ensure_ids_free(cursor, table, [record.id])
            self._insert_rows(cursor, table, [params])
        logger.info(f"Created {label} {record.id}.")

    def _update_one(self, table: str, record: Any, label: str) -> None:
        params = _update_params(table, record)
        with self._transaction(f"update {label} {record.id}") as cursor:
            cursor.execute(_UPDATE_SQL[table], params)

    @staticmethod
    def _merge(record: RecordT, updates: Mapping[str, Any]) -> RecordT:
        try:
            return merge_model(record, updates)
        except ValueError as e:
            # pydantic's ValidationError is a ValueError too.
            raise ValidationError(
                f"Invalid update for {type(record).__name__} "
                f"{getattr(record, 'id', '?')}: {e}",
                original_exception=e,
            ) from e

    def _count(
        self, cursor: duckdb.DuckDBPyConnection, sql: str, params: Sequence
    ) -> int:
        row = cursor.execute(sql, list(params)).fetchone()
        return row[0] if row else 0

    # --- Subjects ---

    def create_subject(self, subject: Subject) -> Subject:
        self._insert_one("subjects", subject, "subject")
        return subject

    def get_subject(self, subject_id: str) -> Optional[Subject]:
        return self._fetch_one("subjects", subject_id, db_utils.db_row_to_subject)

    def get_all_subjects(self) -> List[Subject]:
        return self._fetch(
            "SELECT * FROM subjects ORDER BY rowid;",
            [],
            db_utils.db_row_to_subject,
            "subjects",
        )

    def update_subject(
        self, subject_id: str, updates: Mapping[str, Any]
    ) -> Subject:
        """
        Merge ``updates`` into a subject and stamp ``updated_at``.

        Raises:
            NotFoundError: If the subject does not exist.
            ValidationError: If the merged subject is invalid.
        """
        subject = self.get_subject(subject_id)
        if subject is None:
            raise NotFoundError(f"Subject {subject_id} not found.")
        updated = self._merge(subject, updates)
        updated.updated_at = utcnow()
        self._update_one("subjects", updated, "subject")
        logger.info(f"Updated subject {subject_id}.")
        return updated

    def delete_subject_cascade(self, subject_id: str) -> Dict[str, int]:
        """
        Delete a subject, its decks and their cards in one transaction.

        Returns:
            Deleted row counts keyed by table name.

        Raises:
            NotFoundError: If the subject does not exist (nothing is deleted).
        """
        decks_sql = "SELECT id FROM decks WHERE subject_id = ?"
        with self._transaction(f"delete subject {subject_id}") as cursor:
            if not self._count(
                cursor, "SELECT COUNT(*) FROM subjects WHERE id = ?;", [subject_id]
            ):
                raise NotFoundError(f"Subject {subject_id} not found.")
            deleted = {
                "cards": self._count(
                    cursor,
                    f"SELECT COUNT(*) FROM cards WHERE deck_id IN ({decks_sql});",
                    [subject_id],
                ),
                "decks": self._count(
                    cursor,
                    "SELECT COUNT(*) FROM decks WHERE subject_id = ?;",
                    [subject_id],
                ),
                "subjects": 1,
            }
            cursor.execute(
                f"DELETE FROM cards WHERE deck_id IN ({decks_sql});",
                [subject_id],
            )
            cursor.execute("DELETE FROM decks WHERE subject_id = ?;", [subject_id])
            cursor.execute("DELETE FROM subjects WHERE id = ?;", [subject_id])
        logger.info(
            f"Deleted subject {subject_id} with {deleted['decks']} decks and "
            f"{deleted['cards']} cards."
        )
        return deleted

    # --- Decks ---

    def create_deck(self, deck: Deck) -> Deck:
        """
        Raises:
            NotFoundError: If ``deck.subject_id`` names an unknown subject.
        """
        if deck.subject_id is not None and self.get_subject(deck.subject_id) is None:
            raise NotFoundError(f"Subject {deck.subject_id} not found.")
        self._insert_one("decks", deck, "deck")
        return deck

    def get_deck(self, deck_id: str) -> Optional[Deck]:
        return self._fetch_one("decks", deck_id, db_utils.db_row_to_deck)

    def get_all_decks(self, subject_id: Optional[str] = None) -> List[Deck]:
        sql = "SELECT * FROM decks"
        params: List[Any] = []
        if subject_id is not None:
            sql += " WHERE subject_id = ?"
            params.append(subject_id)
        return self._fetch(
            sql + " ORDER BY rowid;", params, db_utils.db_row_to_deck, "decks"
        )

    def delete_deck_cascade(self, deck_id: str) -> Dict[str, int]:
        with self._transaction(f"delete deck {deck_id}") as cursor:
            if not self._count(
                cursor, "SELECT COUNT(*) FROM decks WHERE id = ?;", [deck_id]
            ):
                raise NotFoundError(f"Deck {deck_id} not found.")
            deleted = {
                "cards": self._count(
                    cursor, "SELECT COUNT(*) FROM cards WHERE deck_id = ?;", [deck_id]
                ),
                "decks": 1,
            }
            cursor.execute("DELETE FROM cards WHERE deck_id = ?;", [deck_id])
            cursor.execute("DELETE FROM decks WHERE id = ?;", [deck_id])
        logger.info(f"Deleted deck {deck_id} and {deleted['cards']} cards.")
        return deleted

    # --- Cards ---

    def add_cards(self, cards: Sequence[Flashcard]) -> int:
        """
        Insert new cards in one transaction.

        Raises:
            ValidationError: If a card has no deck or ids repeat in the batch.
            NotFoundError: If a card references an unknown deck.
            StorageTransactionError: If a card id already exists.
        """
        if not cards:
            return 0
        ids = [card.id for card in cards]
        if len(set(ids)) != len(ids):
            raise ValidationError("Duplicate card ids in batch.")
        deck_ids = {card.deck_id for card in cards}
        if None in deck_ids:
            raise ValidationError("Every card must belong to a deck.")
        known = {
            deck.id
            for deck in self._fetch(
                "SELECT * FROM decks WHERE list_contains(?, id);",
                [sorted(deck_ids)],
                db_utils.db_row_to_deck,
                "decks",
            )
        }
        missing = deck_ids - known
        if missing:
            raise NotFoundError(f"Deck(s) not found: {', '.join(sorted(missing))}.")

        params_list = db_utils.card_to_db_params_list(cards)
        with self._transaction(f"add {len(cards)} cards") as cursor:
            self._ensure_ids_free(cursor, "cards", ids)
            self._insert_rows(cursor, "cards", params_list)
        logger.info(f"Added {len(cards)} cards.")
        return len(cards)

    def get_card(self, card_id: str) -> Optional[Flashcard]:
        return self._fetch_one("cards", card_id, db_utils.db_row_to_card)

    @staticmethod
    def _card_filters(
        deck_id: Optional[str],
        subject_id: Optional[str],
        box: Optional[int],
    ) -> Tuple[List[str], List[Any]]:
        clauses: List[str] = []
        params: List[Any] = []
        if deck_id is not None:
            clauses.append("deck_id = ?")
            params.append(deck_id)
        if subject_id is not None:
            clauses.append("deck_id IN (SELECT id FROM decks WHERE subject_id = ?)")
            params.append(subject_id)
        if box is not None:
            clauses.append("box = ?")
            params.append(box)
        return clauses, params

    def get_all_cards(
        self,
        deck_id: Optional[str] = None,
        subject_id: Optional[str] = None,
        box: Optional[int] = None,
    ) -> List[Flashcard]:
        clauses, params = self._card_filters(deck_id, subject_id, box)
        sql = "SELECT * FROM cards"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        return self._fetch(
            sql + " ORDER BY rowid;", params, db_utils.db_row_to_card, "cards"
        )

    def get_cards_due_for_review(
        self,
        deck_id: Optional[str] = None,
        as_of: Optional[Union[date, datetime]] = None,
        subject_id: Optional[str] = None,
        box: Optional[int] = None,
    ) -> List[Flashcard]:
        """
        Cards whose next review is unset or on/before ``as_of`` (default:
        today, UTC), optionally narrowed to a deck, a subject or a box.
        Never-scheduled cards come first, then by due day.
        """
        clauses, params = self._card_filters(deck_id, subject_id, box)
        clauses.insert(0, "(next_review IS NULL OR next_review <= ?)")
        params.insert(0, _as_day(as_of))
        sql = (
            "SELECT * FROM cards WHERE "
            + " AND ".join(clauses)
            + " ORDER BY next_review ASC NULLS FIRST, rowid;"
        )
        return self._fetch(sql, params, db_utils.db_row_to_card, "due cards")

    def update_card(self, card_id: str, updates: Mapping[str, Any]) -> Flashcard:
        """
        Merge ``updates`` into a stored card and re-validate it.

        Raises:
            NotFoundError: If the card does not exist.
            ValidationError: If the merged card is invalid.
        """
        card = self.get_card(card_id)
        if card is None:
            raise NotFoundError(f"Card {card_id} not found.")
        updated = self._merge(card, updates)
        self._update_one("cards", updated, "card")
        logger.debug(f"Updated card {card_id}.")
        return updated

    def delete_cards(self, card_ids: Sequence[str]) -> int:
        if not card_ids:
            return 0
        ids = list(card_ids)
        with self._transaction(f"delete {len(ids)} cards") as cursor:
            count = self._count(
                cursor,
                "SELECT COUNT(*) FROM cards WHERE list_contains(?, id);",
                [ids],
            )
            cursor.execute(
                "DELETE FROM cards WHERE list_contains(?, id);", [ids]
            )
        logger.info(f"Deleted {count} cards.")
        return count

    # --- Sessions ---

    def record_session(self, session: StudySession) -> StudySession:
        """
        Append a finished study session. Sessions are never updated.

        Raises:
            StorageTransactionError: If a session with this id exists.
        """
        self._insert_one("sessions", session, "session")
        return session

    def get_session(self, session_id: str) -> Optional[StudySession]:
        return self._fetch_one("sessions", session_id, db_utils.db_row_to_session)

    def get_all_sessions(self, deck_id: Optional[str] = None) -> List[StudySession]:
        sql = "SELECT * FROM sessions"
        params: List[Any] = []
        if deck_id is not None:
            sql += " WHERE deck_id = ?"
            params.append(deck_id)
        return self._fetch(
            sql + " ORDER BY start_time, rowid;",
            params,
            db_utils.db_row_to_session,
            "sessions",
        )

    # --- Import ---

    def import_data(
        self,
        data: Any,
        clear_existing: bool = False,
        now: Optional[datetime] = None,
    ) -> ImportResult:
        """
        Import an exchange document atomically.

        ``data`` is either a raw mapping (decoded here) or an already decoded
        document. Learning progress is stored exactly as given.

        Raises:
            ValidationError: If the document is malformed; nothing is written.
            StorageTransactionError: If the write fails or an id collides
                with an existing row; the store is left unchanged.
        """
        self._ensure_writable("import data")
        if isinstance(data, documents.DOCUMENT_TYPES):
            document = data
        else:
            document = documents.decode_document(data)

        existing_names: Iterable[str] = ()
        if isinstance(document, documents.SingleSubjectDocument):
            existing_names = {subject.name for subject in self.get_all_subjects()}

        plan = build_import_plan(
            document,
            clear_existing=clear_existing,
            existing_subject_names=existing_names,
            now=now,
        )
        self._apply_import_plan(plan)

        result = ImportResult(
            kind=plan.kind,
            cleared=plan.clear_existing,
            subjects=len(plan.subjects),
            decks=len(plan.decks),
            cards=len(plan.cards),
            sessions=len(plan.sessions),
            renamed_subject=plan.renamed_subject,
        )
        logger.info(result.message)
        return result

    def _apply_import_plan(self, plan: ImportPlan) -> None:
        records = {
            "subjects": plan.subjects,
            "decks": plan.decks,
            "cards": plan.cards,
            "sessions": plan.sessions,
        }
        params = {
            table: [_TO_PARAMS[table](record) for record in rows]
            for table, rows in records.items()
        }
        with self._transaction(f"import {plan.kind.value} document") as cursor:
            if plan.clear_existing:
                for table in TABLE_NAMES:
                    cursor.execute(f"DELETE FROM {table};")
                logger.warning("Cleared all existing data for import.")
            for table in TABLE_NAMES:
                if not plan.clear_existing:
                    self._ensure_ids_free(
                        cursor, table, [record.id for record in records[table]]
                    )
                self._insert_rows(cursor, table, params[table])

    # --- Export & stats ---

    def get_database_stats(
        self, as_of: Optional[Union[date, datetime]] = None
    ) -> Dict[str, Any]:
        """
        Totals per table, cards per box and the number of cards due on
        ``as_of`` (default today).
        """
        conn = self.get_connection()
        totals_sql = """
        SELECT
            (SELECT COUNT(*) FROM subjects) AS total_subjects,
            (SELECT COUNT(*) FROM decks) AS total_decks,
            (SELECT COUNT(*) FROM cards) AS total_cards,
            (SELECT COUNT(*) FROM sessions) AS total_sessions,
            (SELECT COUNT(*) FROM cards
                WHERE next_review IS NULL OR next_review <= ?) AS due_today;
        """
        try:
            stats = _rows_to_dicts(conn.execute(totals_sql, [_as_day(as_of)]))[0]
            by_box = dict(
                conn.execute(
                    "SELECT box, COUNT(*) FROM cards GROUP BY box;"
                ).fetchall()
            )
        except (duckdb.Error, IndexError) as e:
            logger.error(f"Could not retrieve database stats due to an error: {e}")
            raise DatabaseError(
                "Could not retrieve database stats.", original_exception=e
            ) from e
        stats["cards_by_box"] = {
            box: by_box.get(box, 0) for box in range(MIN_BOX, MAX_BOX + 1)
        }
        return stats

    def _metadata(
        self,
        export_type: str,
        now: Optional[datetime],
        stats: Dict[str, Any],
        subject_name: Optional[str] = None,
    ) -> documents.ExportMetadata:
        return documents.ExportMetadata(
            created=now or utcnow(),
            source=self.export_source,
            export_type=export_type,
            subject_name=subject_name,
            stats=stats,
        )

    @staticmethod
    def _nest_decks(
        decks: Iterable[Deck], cards_by_deck: Mapping[str, List[Flashcard]]
    ) -> List[documents.DeckDocument]:
        return [
            documents.DeckDocument(
                **deck.model_dump(), cards=cards_by_deck.get(deck.id, [])
            )
            for deck in decks
        ]

    @staticmethod
    def _dump(document: Any) -> Dict[str, Any]:
        return document.model_dump(
            mode="json", by_alias=True, exclude_none=True, exclude={"kind"}
        )

    def export_data(
        self, include_stats: bool = True, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Export everything as a full-backup document (JSON-ready dict).

        Subjects nest their decks and cards; decks without a known subject
        are listed as standalone decks. Sessions and the stats block are
        included when ``include_stats`` is set.
        """
        subjects = self.get_all_subjects()
        decks = self.get_all_decks()
        cards_by_deck: Dict[str, List[Flashcard]] = defaultdict(list)
        for card in self.get_all_cards():
            cards_by_deck[card.deck_id].append(card)

        subject_ids = {subject.id for subject in subjects}
        nested = [
            documents.SubjectDocument(
                **subject.model_dump(),
                decks=self._nest_decks(
                    (d for d in decks if d.subject_id == subject.id),
                    cards_by_deck,
                ),
            )
            for subject in subjects
        ]
        standalone = self._nest_decks(
            (d for d in decks if d.subject_id not in subject_ids), cards_by_deck
        )

        stats: Optional[Dict[str, Any]] = None
        sessions: List[StudySession] = []
        if include_stats:
            db_stats = self.get_database_stats(as_of=now)
            stats = {
                "totalSubjects": db_stats["total_subjects"],
                "totalDecks": db_stats["total_decks"],
                "totalCards": db_stats["total_cards"],
                "totalSessions": db_stats["total_sessions"],
                "cardsByBox": _box_counts_block(db_stats["cards_by_box"]),
            }
            sessions = self.get_all_sessions()

        document = documents.FullBackupDocument(
            version=EXPORT_VERSION,
            metadata=self._metadata(EXPORT_TYPE_FULL_BACKUP, now, stats),
            subjects=nested,
            decks=standalone,
            sessions=sessions,
        )
        exported = self._dump(document)
        if not include_stats:
            exported.pop("sessions", None)
        logger.info(
            f"Exported full backup: {len(subjects)} subjects, {len(decks)} decks."
        )
        return exported

    def export_subject(
        self, subject_id: str, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Export one subject with its decks and cards as a single-subject
        document.

        Raises:
            NotFoundError: If the subject does not exist.
        """
        subject = self.get_subject(subject_id)
        if subject is None:
            raise NotFoundError(f"Subject {subject_id} not found.")
        decks = self.get_all_decks(subject_id=subject_id)
        cards = self.get_all_cards(subject_id=subject_id)
        cards_by_deck: Dict[str, List[Flashcard]] = defaultdict(list)
        by_box: Dict[int, int] = defaultdict(int)
        for card in cards:
            cards_by_deck[card.deck_id].append(card)
            by_box[card.box] += 1

        stats = {
            "totalDecks": len(decks),
            "totalCards": len(cards),
            "cardsByBox": _box_counts_block(by_box),
        }
        document = documents.SingleSubjectDocument(
            version=EXPORT_VERSION,
            metadata=self._metadata(
                EXPORT_TYPE_SINGLE_SUBJECT, now, stats, subject_name=subject.name
            ),
            subject=documents.SubjectDocument(
                **subject.model_dump(),
                decks=self._nest_decks(decks, cards_by_deck),
            ),
        )
        logger.info(f"Exported subject {subject_id} ({len(cards)} cards).")
        return self._dump(document)
