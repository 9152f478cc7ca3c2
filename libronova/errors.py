import logging
import sqlite3
from functools import wraps

logger = logging.getLogger(__name__)


class LibraryError(Exception):
    """Base exception for library system errors."""


class DatabaseError(LibraryError):
    """The underlying store failed; wraps the sqlite3 error."""


class DuplicateIsbnError(LibraryError, ValueError):
    """A book with this ISBN already exists."""


class DuplicateEmailError(LibraryError, ValueError):
    """Another member already uses this email."""


class DuplicateUsernameError(LibraryError, ValueError):
    """Another user already has this username."""


class EntityInUseError(LibraryError):
    """Delete refused because loans still reference the row."""


class StockInvariantError(LibraryError, ValueError):
    """An edit would leave available copies negative or above the total."""


class InvalidCredentialsError(LibraryError):
    """Unknown username, wrong password or inactive account."""


class PermissionDeniedError(LibraryError):
    """The acting user lacks the role required for the operation."""


def translate_db_errors(message: str):
    """Re-raise sqlite3 errors from the wrapped call as DatabaseError(message)."""
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except sqlite3.Error as exc:
                logger.error(f"{message}: {exc}")
                raise DatabaseError(message) from exc
        return wrapper
    return decorator
