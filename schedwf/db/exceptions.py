"""Database-related exceptions for schedwf.

All exceptions avoid exposing sensitive data (e.g. passwords) in messages.
"""


class DatabaseError(Exception):
    """Base exception for database operations."""

    pass


class ConfigurationError(DatabaseError):
    """Raised when database configuration is invalid or missing."""

    pass


class TransientStorageError(DatabaseError):
    """Raised when the store is unreachable or a statement fails transiently.

    Callers retry through their ambient policy (the next poll cycle); the
    store itself never retries.
    """

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        super().__init__(f"Storage operation '{operation}' failed: {message}")
