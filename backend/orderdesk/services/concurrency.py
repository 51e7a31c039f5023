# Overview: Locking and retry helpers shared by the stock, payment and code-minting services.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import ConflictError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; callers that must serialize
    on SQLite take the database write lock by issuing an UPDATE first.
    """
    return query.with_for_update()


def _configured_attempts(key: str, default: int) -> int:
    try:
        return int(current_app.config.get(key, default))
    except RuntimeError:
        # Outside an application context (plain scripts)
        return default


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, lock timeouts) and StaleDataError
    (optimistic locking conflicts). Business exceptions raised by func pass
    straight through and are never retried.
    """
    if attempts is None:
        attempts = _configured_attempts("DB_RETRY_ATTEMPTS", 3)
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Retrying after lock contention (attempt %s/%s): %s", attempt + 1, attempts, exc
            )
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def is_unique_violation(exc: IntegrityError) -> bool:
    """True when an IntegrityError comes from a UNIQUE constraint (SQLite or PostgreSQL)."""
    orig = getattr(exc, "orig", None)
    if getattr(orig, "pgcode", None) == "23505":
        return True
    return "unique" in str(orig if orig is not None else exc).lower()


def run_with_code_retry(func, *, attempts: int | None = None):
    """
    Run an allocate-code-and-insert operation, rerunning it from scratch when
    another writer claimed the same code first.

    func must allocate the code AND persist the row itself, so each rerun
    observes the competing row and mints the next code. After the last
    attempt the caller gets ConflictError.
    """
    if attempts is None:
        attempts = _configured_attempts("CODE_ALLOCATION_ATTEMPTS", 5)
    for attempt in range(attempts):
        try:
            return run_with_retry(func)
        except IntegrityError as exc:
            db.session.rollback()
            if not is_unique_violation(exc):
                raise
            current_app.logger.info(
                "Code collision, rerunning allocation (attempt %s/%s)", attempt + 1, attempts
            )
    raise ConflictError("Could not allocate a unique code, retry the operation")
