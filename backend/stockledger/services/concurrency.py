# Overview: Service-layer helpers for concurrency and bounded store access; encapsulates retry and batching rules.

from __future__ import annotations

import time
from typing import Callable, Iterable, Iterator, Sequence, TypeVar

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import StoreUnavailableError, ValidationError

T = TypeVar("T")

# Conflicts worth re-running the whole read-then-decide step for:
# lock timeouts, optimistic version conflicts and unique-key collisions
# (entry numbers, serial numbers, order numbers). Other IntegrityErrors
# are bugs and propagate unchanged.
RETRYABLE_ERRORS = (OperationalError, StaleDataError, IntegrityError)

_UNIQUE_VIOLATION_MARKERS = (
    "unique constraint",   # SQLite, PostgreSQL
    "duplicate key",       # PostgreSQL
    "duplicate entry",     # MySQL
)


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, IntegrityError):
        if getattr(exc.orig, "pgcode", None) == "23505":
            return True
        message = str(exc.orig if exc.orig is not None else exc).lower()
        return any(marker in message for marker in _UNIQUE_VIOLATION_MARKERS)
    return isinstance(exc, RETRYABLE_ERRORS)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; the item version column
    catches the conflict at flush time instead.
    """
    return query.with_for_update()


def run_with_retry(func: Callable[[], T], *, attempts: int | None = None, backoff_base: float | None = None) -> T:
    """
    Execute a unit of work with retry on concurrency-related failures.

    `func` must be the complete unit: validation reads, writes and the
    commit. On a retryable failure the session is rolled back and `func`
    runs again from scratch, so decisions are re-made against fresh state.
    Business rule errors are never retried.
    """
    if attempts is None:
        attempts = current_app.config.get("STORE_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("STORE_RETRY_BACKOFF_SECONDS", 0.1)
    attempts = max(1, int(attempts))

    for attempt in range(attempts):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if not is_retryable(exc):
                raise
            if attempt >= attempts - 1:
                current_app.logger.warning(
                    "Store operation failed after %d attempts: %s", attempts, exc.__class__.__name__
                )
                raise StoreUnavailableError(
                    f"Store operation failed after {attempts} attempts"
                ) from exc
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    raise StoreUnavailableError("Store operation did not run")


def ensure_batch_size(write_count: int) -> None:
    """Reject a unit of work that would exceed the atomic batch limit."""
    limit = current_app.config.get("STORE_MAX_BATCH_WRITES", 500)
    if write_count > limit:
        raise ValidationError(
            f"Operation needs {write_count} writes; a single batch allows at most {limit}"
        )


def chunked(values: Sequence[T], size: int) -> Iterator[list[T]]:
    size = max(1, int(size))
    for start in range(0, len(values), size):
        yield list(values[start:start + size])


def fetch_in_chunks(query_factory: Callable[[list], Iterable], keys: Iterable, *, chunk_size: int | None = None) -> list:
    """
    Run `query_factory(chunk)` for bounded chunks of `keys` and concatenate results.

    Keys are de-duplicated (order preserved). Each chunk holds at most
    STORE_WHERE_IN_LIMIT keys.
    """
    if chunk_size is None:
        chunk_size = current_app.config.get("STORE_WHERE_IN_LIMIT", 10)
    unique_keys = list(dict.fromkeys(k for k in keys if k is not None))
    rows: list = []
    for chunk in chunked(unique_keys, chunk_size):
        rows.extend(query_factory(chunk))
    return rows
