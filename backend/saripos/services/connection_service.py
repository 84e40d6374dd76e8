# Overview: Lifecycle of the single process-wide database connection.

from __future__ import annotations

import threading
import time

from flask import Flask, current_app
from sqlalchemy import event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ..errors import ConnectionUnavailableError
from ..extensions import db
"""
Connection invariants (authoritative)

- The engine behind `db` is a pool of one (QueuePool, pool_size=1,
  max_overflow=0). There is exactly one physical SQLite connection for the
  process; sessions queue on the pool for it.
- ConnectionManager is created once by create_app() and owned by the app
  (app.extensions["connection_manager"]). There is no module-level handle.
- Every physical connect is configured for WAL, synchronous=NORMAL and a
  bounded busy timeout.
- Reads give the connection back as soon as they finish
  (release_session_connection); only write transactions keep it until
  commit or rollback.
- Teardown removes the session, never the connection. Only dispose()
  (process shutdown / tests) and reconnect() close it.
- reconnect() is bounded: DB_RECONNECT_ATTEMPTS tries with linear backoff
  (attempt * DB_RECONNECT_DELAY_SECONDS). After that the manager is
  exhausted until reset() is called by an explicit user action.
"""


class ConnectionManager:
    """Pool-of-one owner: open, configure, probe and reconnect."""

    def __init__(self, app: Flask | None = None):
        self._open_lock = threading.Lock()
        self._opened = False
        self.error: str | None = None
        self.attempts = 0
        self.exhausted = False
        self.journal_mode: str | None = None
        self.app: Flask | None = None
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        self.app = app
        self.busy_timeout_ms = int(app.config.get("SQLITE_BUSY_TIMEOUT_MS", 5000))
        self.max_attempts = int(app.config.get("DB_RECONNECT_ATTEMPTS", 3))
        self.retry_delay = float(app.config.get("DB_RECONNECT_DELAY_SECONDS", 1.0))
        app.extensions["connection_manager"] = self

        with app.app_context():
            engine = db.engine
        if engine.dialect.name == "sqlite":
            event.listen(engine, "connect", self._configure_connection)

    # ------------------------------------------------------------------
    # configuration
    # ------------------------------------------------------------------

    def _configure_connection(self, dbapi_connection, connection_record) -> None:
        pragmas = (
            "PRAGMA journal_mode = WAL;",
            "PRAGMA synchronous = NORMAL;",
            f"PRAGMA busy_timeout = {self.busy_timeout_ms};",
            "PRAGMA foreign_keys = ON;",
        )
        cursor = dbapi_connection.cursor()
        try:
            for pragma in pragmas:
                try:
                    cursor.execute(pragma)
                except Exception as exc:
                    self.app.logger.warning("Failed to configure database pragma %r: %s", pragma, exc)
        finally:
            cursor.close()

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    @property
    def engine(self) -> Engine:
        return db.engine

    @property
    def is_connected(self) -> bool:
        return self._opened and self.error is None

    def _probe(self) -> None:
        db.session.execute(text("SELECT 1"))
        if self.engine.dialect.name == "sqlite":
            self.journal_mode = db.session.execute(text("PRAGMA journal_mode")).scalar()
        release_session_connection()

    def _mark_failed(self, exc: Exception) -> None:
        db.session.remove()
        self._opened = False
        self.error = str(exc) or exc.__class__.__name__

    def acquire(self) -> Engine:
        """
        Return the shared engine, opening the physical connection on first use.

        Concurrent first-time callers serialize on the open lock, so only one
        of them performs the open and the rest reuse its result.
        """
        if self._opened:
            return self.engine
        with self._open_lock:
            if self._opened:
                return self.engine
            if self.exhausted:
                raise ConnectionUnavailableError(
                    "Max reconnection attempts reached",
                    details={"attempts": self.attempts},
                )
            try:
                self._probe()
            except SQLAlchemyError as exc:
                self._mark_failed(exc)
                self.attempts += 1
                self.app.logger.error("Database open failed: %s", self.error)
                raise ConnectionUnavailableError(
                    "Database connection failed",
                    details={"reason": self.error},
                ) from exc
            self._opened = True
            self.error = None
            self.attempts = 0
            return self.engine

    def ensure_available(self) -> Engine:
        """Fail fast with ConnectionUnavailableError when no live handle exists."""
        if self.exhausted:
            raise ConnectionUnavailableError(
                "Max reconnection attempts reached",
                details={"attempts": self.attempts},
            )
        return self.acquire()

    def check_connection(self) -> bool:
        """Probe the shared handle with a trivial query."""
        if not self._opened:
            return False
        try:
            db.session.execute(text("SELECT 1 AS test")).scalar()
            release_session_connection()
            return True
        except SQLAlchemyError:
            db.session.rollback()
            return False

    def reconnect(self) -> Engine:
        """
        Close any stale handle and reopen, with bounded linear backoff.

        Raises ConnectionUnavailableError once DB_RECONNECT_ATTEMPTS failures
        have accumulated; reset() must be called before trying again.
        """
        with self._open_lock:
            if self.exhausted or self.attempts >= self.max_attempts:
                self.exhausted = True
                self.error = "Max reconnection attempts reached"
                raise ConnectionUnavailableError(self.error, details={"attempts": self.attempts})

            while self.attempts < self.max_attempts:
                self._close_stale()
                try:
                    self._probe()
                except SQLAlchemyError as exc:
                    self._mark_failed(exc)
                    self.attempts += 1
                    self.app.logger.warning(
                        "Reconnection failed (attempt %s of %s): %s",
                        self.attempts,
                        self.max_attempts,
                        self.error,
                    )
                    if self.attempts < self.max_attempts:
                        time.sleep(self.retry_delay * self.attempts)
                    continue

                self._opened = True
                self.error = None
                self.attempts = 0
                self.app.logger.info("Database reconnected")
                return self.engine

            self.exhausted = True
            self.error = "Max reconnection attempts reached"
            raise ConnectionUnavailableError(self.error, details={"attempts": self.attempts})

    def reset(self) -> None:
        """Clear the terminal error state (explicit user-triggered retry)."""
        with self._open_lock:
            self.exhausted = False
            self.attempts = 0
            self.error = None

    def _close_stale(self) -> None:
        db.session.remove()
        self.engine.dispose()
        self._opened = False

    def dispose(self) -> None:
        with self._open_lock:
            self._close_stale()

    def status(self) -> dict:
        return {
            "connected": self.is_connected,
            "error": self.error,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "exhausted": self.exhausted,
            "journal_mode": self.journal_mode,
            "busy_timeout_ms": self.busy_timeout_ms,
        }


def get_connection_manager() -> ConnectionManager:
    return current_app.extensions["connection_manager"]


def release_session_connection() -> None:
    """
    End the session's open transaction and hand the pooled connection back.

    Objects already loaded stay usable: they are not expired, so touching
    them afterwards does not check the connection out again. Only call this
    where the session holds reads alone; pending writes would be committed.
    """
    session = db.session()
    if not session.in_transaction():
        return
    expire_on_commit = session.expire_on_commit
    session.expire_on_commit = False
    try:
        session.commit()
    finally:
        session.expire_on_commit = expire_on_commit
