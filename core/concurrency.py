"""
Bounded retry for stock writes that lose a lock race.

Each attempt must run its own outermost ``transaction.atomic()`` block so that
a failed attempt is rolled back completely before the next one starts.
"""
import logging
import time
from functools import wraps

from django.conf import settings
from django.db import DatabaseError, OperationalError

from .exceptions import ConcurrencyConflictError, StorageError

logger = logging.getLogger(__name__)

# Substrings of driver messages that indicate lock contention rather than a
# broken connection (PostgreSQL deadlock / serialization failure, SQLite busy).
CONTENTION_MARKERS = (
    'deadlock',
    'could not serialize',
    'could not obtain lock',
    'lock wait timeout',
    'database is locked',
    'database table is locked',
)


def is_lock_contention(exc: Exception) -> bool:
    message = str(exc).lower()
    return any(marker in message for marker in CONTENTION_MARKERS)


def retry_on_contention(func=None, *, max_attempts=None, backoff_seconds=None):
    """
    Retry ``func`` when the database reports lock contention.

    Args:
        max_attempts: Attempts before giving up (default ``settings.STOCK_MAX_RETRIES``)
        backoff_seconds: Linear backoff step (default ``settings.STOCK_RETRY_BACKOFF_SECONDS``)

    Raises:
        ConcurrencyConflictError: If every attempt hit contention
        StorageError: For any other database failure
    """
    def decorator(view_func):
        @wraps(view_func)
        def wrapper(*args, **kwargs):
            attempts = max_attempts or getattr(settings, 'STOCK_MAX_RETRIES', 5)
            step = backoff_seconds
            if step is None:
                step = getattr(settings, 'STOCK_RETRY_BACKOFF_SECONDS', 0.05)

            for attempt in range(1, attempts + 1):
                try:
                    return view_func(*args, **kwargs)
                except OperationalError as e:
                    if not is_lock_contention(e):
                        logger.error(f"Storage failure in {view_func.__name__}: {e}")
                        raise StorageError(str(e)) from e
                    logger.warning(
                        f"{view_func.__name__}: lock contention on attempt "
                        f"{attempt}/{attempts}: {e}"
                    )
                    if attempt < attempts:
                        time.sleep(step * attempt)
                except DatabaseError as e:
                    logger.error(f"Storage failure in {view_func.__name__}: {e}")
                    raise StorageError(str(e)) from e

            raise ConcurrencyConflictError(attempts)
        return wrapper

    if func is not None:
        return decorator(func)
    return decorator
