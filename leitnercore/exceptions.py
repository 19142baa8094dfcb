from typing import Optional


class LeitnerError(Exception):
    """Base exception for leitnercore.

    ``kind`` is the stable error-kind label reported to callers in
    structured results.
    """

    kind: str = "LeitnerError"

    def __init__(
        self, message: str, original_exception: Optional[Exception] = None
    ):
        super().__init__(message)
        self.original_exception = original_exception


class ValidationError(LeitnerError):
    """Raised for malformed or ambiguous import documents."""

    kind = "ValidationError"


class StructuralMismatchError(LeitnerError):
    """Raised when a document has the wrong shape for the requested
    operation (e.g. restoring a backup from a non-backup file)."""

    kind = "StructuralMismatch"


class SessionStateError(LeitnerError):
    """Raised for an invalid review session transition."""

    kind = "SessionStateError"


class DatabaseError(LeitnerError):
    """Base exception for database-related errors."""

    kind = "DatabaseError"


class DatabaseConnectionError(DatabaseError):
    """Raised for errors connecting to the database."""

    pass


class SchemaInitializationError(DatabaseError):
    """Raised for errors during schema setup."""

    pass


class MarshallingError(DatabaseError):
    """Indicates an error during data conversion between application models
    and DB format."""

    pass


class NotFoundError(DatabaseError):
    """Raised when a referenced subject, deck, card or session id is absent."""

    kind = "NotFoundError"


class StorageTransactionError(DatabaseError):
    """Raised when an atomic write fails. The transaction has been rolled
    back and ``original_exception`` holds the underlying cause."""

    kind = "StorageTransactionError"
