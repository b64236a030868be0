"""Exceptions raised by the persistence layer."""


class RepositoryException(Exception):
    """Base exception for repository operations."""


class DuplicateError(RepositoryException):
    """Raised when attempting to create a duplicate entity."""


class PersistenceError(RepositoryException):
    """Raised when the database itself fails (I/O, locking, driver errors)."""
