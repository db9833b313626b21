"""
Game catalog persistence package.

Layers, leaf to root:

  catalog/retry.py         — re-runs a unit of work on transient store failures.
  catalog/query.py         — builds the filtered/sorted/paginated game query.
  catalog/relations.py     — full-replace sync of genre/platform junction rows.
  catalog/repositories/    — transactional CRUD over the pooled engine.

Schema and engine configuration live in the root-level ``database`` module.
Callers (HTTP handlers, jobs) build one :class:`GameRepository` per process
and receive plain dicts or :mod:`catalog.errors` exceptions back.
"""
import logging

from .errors import (
    CatalogError, NotFoundError, InvalidFilterError, StoreError,
    TransientStoreError, StoreUnavailableError, IdentifierConflictError,
)
from .query import GameFilter
from .retry import RetryPolicy, is_transient_error, retry_query
from .repositories import GameRepository


def setup_logging(level: str = 'WARNING') -> logging.Logger:
    """Configure the root catalog logger.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               Defaults to WARNING so normal use is quiet.

    Returns:
        Configured logger instance.
    """
    numeric = getattr(logging, level.upper(), logging.WARNING)
    logger = logging.getLogger('catalog')
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter('[%(levelname)s] %(name)s: %(message)s'))
        logger.addHandler(handler)
    logger.setLevel(numeric)
    return logger


__all__ = [
    'CatalogError',
    'NotFoundError',
    'InvalidFilterError',
    'StoreError',
    'TransientStoreError',
    'StoreUnavailableError',
    'IdentifierConflictError',
    'GameFilter',
    'GameRepository',
    'RetryPolicy',
    'is_transient_error',
    'retry_query',
    'setup_logging',
]
