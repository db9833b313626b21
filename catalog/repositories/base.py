"""Repository base class used by all concrete repositories."""
import logging
from typing import Any, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..errors import StoreError
from ..retry import RetryPolicy


class BaseRepository:
    """Runs units of work against the store through a retry policy.

    Each call to :meth:`_run` opens one transaction from the injected session
    factory, hands the session to the work function, and commits when it
    returns (rolling back on any exception).  The retry policy wraps the
    whole transaction, so a transient failure replays the unit of work from
    a clean state.

    SQLAlchemy errors that survive the retry policy are re-raised as
    :class:`~catalog.errors.StoreError`; domain errors pass through untouched.
    """

    def __init__(self, session_factory, retry_policy: Optional[RetryPolicy] = None) -> None:
        self._session_factory = session_factory
        self._retry = retry_policy or RetryPolicy()
        self._log = logging.getLogger(f'catalog.repository.{type(self).__name__}')

    def _transaction(self, work: Callable[..., Any], *args: Any) -> Any:
        with self._session_factory.begin() as db:
            return work(db, *args)

    def _run(self, operation: str, work: Callable[..., Any], *args: Any) -> Any:
        """Execute ``work(db, *args)`` in a transaction under the retry policy."""
        try:
            return self._retry.call(self._transaction, work, *args, operation=operation)
        except SQLAlchemyError as exc:
            self._log.error("%s failed: %s", operation, exc)
            raise StoreError(operation, str(exc), exc) from exc
