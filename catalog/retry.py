"""Retry executor for store operations that may hit transient failures.

A *transient* failure is one that is likely to succeed when repeated: the
connection was lost, refused, or timed out.  Everything else (constraint
violations, SQL errors, domain errors such as ``NotFoundError``) is raised
on the first attempt.
"""
import functools
import logging
import re
import time
from typing import Any, Callable, Optional

from sqlalchemy import exc as sa_exc

from .errors import StoreUnavailableError, TransientStoreError

logger = logging.getLogger('catalog.retry')

DEFAULT_MAX_RETRIES = 3
DEFAULT_DELAY = 1.0

# MySQL client error codes: can't connect (local/remote), server has gone
# away, lost connection during query, lost connection at handshake.
_MYSQL_TRANSIENT_CODES = frozenset({2002, 2003, 2006, 2013, 2055})

# SQLSTATE class 08 = connection exception; 57014 = statement cancelled,
# raised when the configured statement_timeout fires.
_SQLSTATE_CONNECTION_CLASS = '08'
_SQLSTATE_QUERY_CANCELED = '57014'

_TRANSIENT_MESSAGE = re.compile(
    r'connection (refused|reset|timed out|lost)|lost connection|'
    r'could not connect|server closed the connection|'
    r'server has gone away|timeout expired|timed out|'
    r'terminating connection|statement timeout|canceling statement',
    re.IGNORECASE,
)


def is_transient_error(error: BaseException) -> bool:
    """Return ``True`` when *error* is a lost/refused/timed-out connection."""
    if isinstance(error, TransientStoreError):
        return True
    if isinstance(error, (sa_exc.DisconnectionError, sa_exc.TimeoutError)):
        return True
    if isinstance(error, (ConnectionError, TimeoutError)):
        return True
    if isinstance(error, sa_exc.DBAPIError):
        if error.connection_invalidated:
            return True
        if isinstance(error, sa_exc.OperationalError):
            return _is_transient_driver_error(error.orig)
    return False


def _is_transient_driver_error(orig: Any) -> bool:
    if isinstance(orig, (ConnectionError, TimeoutError)):
        return True
    args = getattr(orig, 'args', ())
    if args and isinstance(args[0], int) and args[0] in _MYSQL_TRANSIENT_CODES:
        return True
    pgcode = getattr(orig, 'pgcode', None)
    if pgcode:
        pgcode = str(pgcode)
        if pgcode.startswith(_SQLSTATE_CONNECTION_CLASS) or pgcode == _SQLSTATE_QUERY_CANCELED:
            return True
    return bool(_TRANSIENT_MESSAGE.search(str(orig)))


def linear_backoff(delay: float, attempt: int) -> float:
    """``delay × attempt``: 1s, 2s, 3s, ... for the default delay."""
    return delay * attempt


class RetryPolicy:
    """Re-executes a unit of work while it fails transiently.

    Args:
        max_retries:  Total number of attempts (not extra retries).
        delay:        Base delay in seconds handed to *backoff*.
        backoff:      ``backoff(delay, attempt) -> seconds`` to wait after the
                      failed *attempt* (1-based).
        is_transient: Predicate classifying an exception as retryable.
        sleep:        Called with the computed wait; tests inject a recorder.
    """

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        delay: float = DEFAULT_DELAY,
        backoff: Callable[[float, int], float] = linear_backoff,
        is_transient: Callable[[BaseException], bool] = is_transient_error,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_retries < 1:
            raise ValueError('max_retries must be at least 1')
        self.max_retries = max_retries
        self.delay = delay
        self.backoff = backoff
        self.is_transient = is_transient
        self._sleep = sleep

    def call(self, func: Callable[..., Any], *args: Any,
             operation: Optional[str] = None, **kwargs: Any) -> Any:
        """Run ``func(*args, **kwargs)`` under this policy.

        Returns:
            Whatever *func* returns on its first successful attempt.

        Raises:
            StoreUnavailableError: every attempt failed transiently.
            Exception: any non-transient error, unchanged, on first sight.
        """
        operation = operation or getattr(func, '__name__', 'operation')
        last_error: Optional[BaseException] = None
        for attempt in range(1, self.max_retries + 1):
            try:
                return func(*args, **kwargs)
            except Exception as exc:
                if not self.is_transient(exc):
                    raise
                last_error = exc
                logger.warning("%s: attempt %d/%d failed: %s",
                               operation, attempt, self.max_retries, exc)
                if attempt < self.max_retries:
                    self._sleep(self.backoff(self.delay, attempt))

        logger.error("%s: giving up after %d attempts", operation, self.max_retries)
        raise StoreUnavailableError(operation, self.max_retries, last_error)


def retry_query(policy: Optional[RetryPolicy] = None, **policy_kwargs: Any):
    """Decorator form of :meth:`RetryPolicy.call`.

    Either pass a ready *policy* or the keyword arguments to build one::

        @retry_query(max_retries=5, delay=0.5)
        def load():
            ...
    """
    policy = policy or RetryPolicy(**policy_kwargs)

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            return policy.call(func, *args, operation=func.__name__, **kwargs)
        return wrapper
    return decorator
