# Overview: Row locking and retry helpers that make every financial write an all-or-nothing unit of work.

from __future__ import annotations

import time

from flask import current_app, has_app_context
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Optimistic version columns still catch concurrent writers there.
    """
    return query.with_for_update()


def _retry_settings(attempts: int | None, backoff_base: float | None) -> tuple[int, float]:
    if has_app_context():
        if attempts is None:
            attempts = current_app.config.get("LATIDOS_RETRY_ATTEMPTS", 3)
        if backoff_base is None:
            backoff_base = current_app.config.get("LATIDOS_RETRY_BACKOFF", 0.1)
    return attempts or 3, 0.1 if backoff_base is None else backoff_base


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a unit of work with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Any other exception rolls the session
    back before propagating, so no partial write survives a failure.
    """
    attempts, backoff_base = _retry_settings(attempts, backoff_base)
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    if last_exc:
        raise last_exc
