# Overview: Transaction boundary, row locking and retry helpers shared by every mutating service.

"""
Unit-of-work semantics (authoritative)

- Every public mutating operation opens exactly one unit of work.
- Nested units join the outermost one: only the outermost commits, and any
  exception anywhere rolls back everything written inside it.
- Stock rows are read with SELECT ... FOR UPDATE before their new quantity is
  computed. SQLite ignores FOR UPDATE, so the outermost unit takes the
  database write lock up front with BEGIN IMMEDIATE instead.
- Retries happen only for lock/deadlock/optimistic-version failures and only
  around the outermost unit. Domain errors are never retried.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager

from flask import current_app, has_app_context
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)

_DEPTH_KEY = "retailpos.uow_depth"


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def in_unit_of_work() -> bool:
    return db.session.info.get(_DEPTH_KEY, 0) > 0


def _begin_write_intent(session) -> None:
    if db.engine.dialect.name != "sqlite":
        return
    # pysqlite defers BEGIN until the first DML statement; a SAVEPOINT issued
    # before that would open (and on RELEASE commit) its own transaction.
    connection = session.connection()
    if not connection.connection.dbapi_connection.in_transaction:
        connection.exec_driver_sql("BEGIN IMMEDIATE")


@contextmanager
def unit_of_work():
    """
    Explicit transaction boundary.

    Usage:
        with unit_of_work():
            item = get_or_create_stock_item(...)
            ...
    """
    session = db.session
    depth = session.info.get(_DEPTH_KEY, 0)
    if depth:
        session.info[_DEPTH_KEY] = depth + 1
        try:
            yield session
        finally:
            session.info[_DEPTH_KEY] = depth
        return

    session.info[_DEPTH_KEY] = 1
    try:
        _begin_write_intent(session)
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.info[_DEPTH_KEY] = 0


def _retry_settings(attempts, backoff_base):
    if has_app_context():
        if attempts is None:
            attempts = current_app.config.get("RETRY_ATTEMPTS", 3)
        if backoff_base is None:
            backoff_base = current_app.config.get("RETRY_BACKOFF_SECONDS", 0.1)
    return attempts or 3, 0.1 if backoff_base is None else backoff_base


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Inside an enclosing unit of work the
    operation runs once and failures propagate to the outer unit.
    """
    if in_unit_of_work():
        return func()

    attempts, backoff_base = _retry_settings(attempts, backoff_base)
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            logger.warning(
                "Concurrency conflict (%s), retrying attempt %d/%d",
                exc.__class__.__name__, attempt + 2, attempts,
            )
            time.sleep(backoff_base * (2 ** attempt))
