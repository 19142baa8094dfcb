import duckdb
import logging

from .connection import ConnectionHandler
from . import schema
from .. import config as leitner_config
from ..exceptions import DatabaseConnectionError, SchemaInitializationError

logger = logging.getLogger(__name__)


class SchemaManager:
    """Creates (and, on request, recreates) the Leitner tables."""

    def __init__(self, handler: ConnectionHandler):
        self._handler = handler

    def initialize_schema(self, force_recreate_tables: bool = False) -> None:
        """
        Create the tables and indexes in one transaction.

        Idempotent. With ``force_recreate_tables`` every table is dropped
        first, which refuses to run against a file database holding data
        unless ``testing_mode`` is set.

        Raises:
            DatabaseConnectionError: When recreating a read-only database.
            SchemaInitializationError: If any DDL statement fails.
        """
        if self._skip_for_read_only(force_recreate_tables):
            return

        conn = self._handler.get_connection()
        try:
            with conn.cursor() as cursor:
                cursor.begin()
                try:
                    if force_recreate_tables:
                        self._recreate_tables(cursor)
                    cursor.execute(schema.DB_SCHEMA_SQL)
                    cursor.commit()
                except Exception:
                    try:
                        cursor.rollback()
                        logger.info(
                            "Transaction rolled back due to schema "
                            "initialization error."
                        )
                    except duckdb.Error as rb_err:
                        logger.error(
                            f"Failed to rollback transaction: {rb_err}"
                        )
                    raise
            logger.info(
                f"Schema for {self._handler.db_path_resolved} is ready."
            )
        except (duckdb.Error, ValueError) as e:
            logger.error(
                "Error initializing database schema at "
                f"{self._handler.db_path_resolved}: {e}"
            )
            raise SchemaInitializationError(
                f"Failed to initialize schema: {e}", original_exception=e
            ) from e

    def _skip_for_read_only(self, force_recreate_tables: bool) -> bool:
        if not self._handler.read_only:
            return False
        if force_recreate_tables:
            raise DatabaseConnectionError(
                "Cannot force_recreate_tables in read-only mode."
            )
        if not self._handler.is_memory:
            logger.warning(
                "Attempting to initialize schema in read-only mode. Skipping."
            )
            return True
        return False

    def _perform_safety_check(self, cursor: duckdb.DuckDBPyConnection) -> None:
        """Refuse to drop tables of a file database that still holds data."""
        if self._handler.is_memory or leitner_config.settings.testing_mode:
            return

        existing = {
            row[0]
            for row in cursor.execute(
                "SELECT table_name FROM information_schema.tables "
                "WHERE table_schema = 'main'"
            ).fetchall()
        }
        counts = {}
        for table in schema.TABLE_NAMES:
            if table not in existing:
                continue
            row = cursor.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
            counts[table] = row[0] if row else 0

        if any(counts.values()):
            error_msg = (
                "CRITICAL: Attempted to drop tables with existing data! "
                f"{counts}. Export a full backup and restore it instead."
            )
            logger.error(error_msg)
            raise ValueError(error_msg)

    def _recreate_tables(self, cursor: duckdb.DuckDBPyConnection) -> None:
        self._perform_safety_check(cursor)
        logger.warning(
            f"Forcing table recreation for {self._handler.db_path_resolved}. "
            "ALL EXISTING DATA WILL BE LOST."
        )
        for table in reversed(schema.TABLE_NAMES):
            cursor.execute(f"DROP TABLE IF EXISTS {table} CASCADE;")
