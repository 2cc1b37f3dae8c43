# Overview: Service-layer helpers for concurrency; write units, row locks and retry on lock contention.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write_unit() takes the
    database write lock up front instead.
    """
    return query.with_for_update()


def begin_write_unit(session=None) -> None:
    """
    Open the unit of work as a write transaction.

    On SQLite the default deferred BEGIN lets two writers both read before
    either writes, so the unit starts with BEGIN IMMEDIATE and concurrent
    writers queue on the busy timeout instead. No-op on other dialects
    (their conditional UPDATEs take row locks) and when a transaction is
    already open on the connection.
    """
    session = session or db.session
    if session.get_bind().dialect.name != "sqlite":
        return
    conn = session.connection()
    dbapi_conn = conn.connection.dbapi_connection
    if not dbapi_conn.in_transaction:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def run_with_retry(func, *, session=None, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, "database is locked") and
    StaleDataError (optimistic locking conflicts). The session is rolled
    back before every retry so func always starts from a clean unit.
    """
    session = session or db.session
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            logger.warning(
                "retrying after lock contention (attempt %d/%d): %s",
                attempt + 1,
                attempts,
                exc.__class__.__name__,
            )
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
