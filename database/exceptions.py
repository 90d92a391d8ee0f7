"""Database layer exceptions."""


class DatabaseError(Exception):
    """Base exception for storage failures."""
    pass


class DatabaseSchemaError(DatabaseError):
    """Raised when schema creation or validation fails."""
    pass


class TransactionConflictError(DatabaseError):
    """Raised when a transaction lost a race with a concurrent writer.

    The transaction has been rolled back and can be retried as a whole.
    """
    pass
