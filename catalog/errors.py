"""Exceptions raised by the catalog persistence layer.

Driver and SQLAlchemy errors are translated into these at the repository
boundary so callers (HTTP handlers, jobs) can map them without importing
SQLAlchemy.
"""
from typing import Any, Optional


class CatalogError(Exception):
    """Base class for catalog persistence errors."""


class NotFoundError(CatalogError):
    """Raised when the requested entity does not exist."""

    def __init__(self, entity: str, key: Any) -> None:
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} {key!r} not found")


class InvalidFilterError(CatalogError, ValueError):
    """Raised when a list filter carries a malformed ``page`` or ``limit``."""


class StoreError(CatalogError):
    """Any failure reported by the underlying store.

    The original SQLAlchemy/driver exception is kept as ``__cause__``.
    """

    def __init__(self, operation: str, detail: str,
                 cause: Optional[BaseException] = None) -> None:
        self.operation = operation
        self.detail = detail
        super().__init__(f"{operation} failed: {detail}")
        if cause is not None:
            self.__cause__ = cause


class TransientStoreError(StoreError):
    """A store failure that is expected to succeed on retry."""


class StoreUnavailableError(StoreError):
    """Raised when every retry attempt hit a transient failure."""

    def __init__(self, operation: str, attempts: int,
                 cause: Optional[BaseException] = None) -> None:
        self.attempts = attempts
        super().__init__(operation, f"store unavailable after {attempts} attempts: {cause}", cause)


class IdentifierConflictError(StoreError):
    """Raised when a new game's identifier was taken by a concurrent insert."""

    def __init__(self, game_id: int, cause: Optional[BaseException] = None) -> None:
        self.game_id = game_id
        super().__init__('create_game', f"identifier {game_id} already in use", cause)


__all__ = [
    'CatalogError',
    'NotFoundError',
    'InvalidFilterError',
    'StoreError',
    'TransientStoreError',
    'StoreUnavailableError',
    'IdentifierConflictError',
]
