import duckdb
import logging
from pathlib import Path
from typing import Optional, Union

from ..exceptions import DatabaseConnectionError

logger = logging.getLogger(__name__)

MEMORY_DB = ":memory:"


class ConnectionHandler:
    """Owns the single DuckDB connection of a FlashcardDatabase."""

    def __init__(self, db_path: Union[str, Path], read_only: bool = False):
        """
        Args:
            db_path: Database file, or ":memory:" (any case) for an in-memory
                store. File paths are resolved to absolute paths.
            read_only: Open the database read-only.
        """
        if isinstance(db_path, str) and db_path.lower() == MEMORY_DB:
            self.db_path_resolved = Path(MEMORY_DB)
            logger.info("Using in-memory DuckDB database.")
        else:
            self.db_path_resolved = Path(db_path).expanduser().resolve()
            logger.info(f"Leitner store located at: {self.db_path_resolved}")

        self.read_only: bool = read_only
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        # True when the first connect created the store (schema needed).
        self.is_new_db: bool = False

    @property
    def is_memory(self) -> bool:
        return str(self.db_path_resolved) == MEMORY_DB

    @property
    def is_open(self) -> bool:
        return self._connection is not None

    def get_connection(self) -> duckdb.DuckDBPyConnection:
        """
        Return the open connection, connecting on first use.

        Raises:
            DatabaseConnectionError: If DuckDB cannot open the database.
        """
        if self._connection is not None:
            return self._connection

        try:
            if self.is_memory:
                self.is_new_db = True
            else:
                self.is_new_db = not self.db_path_resolved.exists()
                if not self.read_only:
                    self.db_path_resolved.parent.mkdir(
                        parents=True, exist_ok=True
                    )

            self._connection = duckdb.connect(
                database=str(self.db_path_resolved),
                read_only=self.read_only,
            )
            logger.info(
                f"Connected to {self.db_path_resolved} "
                f"({'read-only' if self.read_only else 'read-write'})."
            )
        except duckdb.Error as e:
            raise DatabaseConnectionError(
                f"Failed to connect to database {self.db_path_resolved}: {e}",
                original_exception=e,
            ) from e
        return self._connection

    def close_connection(self) -> None:
        """Close the connection if open; a later call reconnects."""
        if self._connection is None:
            return
        try:
            self._connection.close()
            logger.info(f"Connection to {self.db_path_resolved} closed.")
        except duckdb.Error as e:
            logger.error(f"Error closing the database connection: {e}")
        finally:
            self._connection = None
