# Overview: Transaction boundary and retry helpers shared by every mutating service.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import StorageError
from ..extensions import db
from .connection_service import get_connection_manager, release_session_connection


def lock_for_update(query):
    """
    Apply row-level locking for critical operations and force a fresh read.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    On SQLite the write lock is already held via BEGIN IMMEDIATE.
    populate_existing() makes the read hit the database even when the row
    is already in the session's identity map.
    """
    return query.with_for_update().populate_existing()


def begin_immediate() -> None:
    """
    Take the SQLite write lock up front.

    A deferred transaction would let two writers read the same quantity and
    only collide at their first write; IMMEDIATE makes the second writer
    wait (busy_timeout) before it reads anything.
    """
    connection = db.session.connection()
    if connection.dialect.name != "sqlite":
        return
    if not connection.connection.dbapi_connection.in_transaction:
        connection.exec_driver_sql("BEGIN IMMEDIATE")


def run_in_transaction(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute `func` as one all-or-nothing DB transaction.

    - Retries on OperationalError (locks, busy) and StaleDataError with
      exponential backoff; exhausted retries raise StorageError.
    - Other SQLAlchemy errors roll back and raise StorageError.
    - Domain errors (NotFound, Validation, InsufficientStock...) roll back
      and propagate unchanged.
    """
    get_connection_manager().ensure_available()

    for attempt in range(attempts):
        try:
            begin_immediate()
            result = func()
            db.session.commit()
            return result
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise StorageError(
                    "Database is busy; the operation was rolled back",
                    details={"reason": str(exc.orig if isinstance(exc, OperationalError) else exc)},
                ) from exc
            time.sleep(backoff_base * (2 ** attempt))
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StorageError(
                "Database error; the operation was rolled back",
                details={"reason": str(getattr(exc, "orig", None) or exc)},
            ) from exc
        except Exception:
            db.session.rollback()
            raise


def run_read(func):
    """
    Run a read-only query, mapping driver failures to StorageError.

    A read that opened its own transaction ends it before returning, so the
    pooled connection is free for the next caller. Inside a write
    transaction the read joins it and leaves it open.
    """
    get_connection_manager().ensure_available()
    owns_transaction = not db.session().in_transaction()
    try:
        return func()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageError(
            "Database error while reading",
            details={"reason": str(getattr(exc, "orig", None) or exc)},
        ) from exc
    finally:
        if owns_transaction:
            release_session_connection()
