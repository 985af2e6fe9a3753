"""
auth/connection.py -- Per-operation SQLite connections via SQLAlchemy Core.

Pattern: scoped acquisition. Every operation opens a fresh connection inside
a `with` block and the block closes it on every exit path, error paths
included. The Engine uses NullPool, so a checked-in connection is really
closed: nothing is held between calls and concurrent callers never share a
DBAPI connection.

Templates are operator-authored SQL with positional (?) placeholders, so they
run through exec_driver_sql() with a parameter tuple instead of text().
Parameters are always bound, never formatted into the statement, and
hide_parameters keeps password digests out of exception text.

Cancellation: a StatementInterrupt handle may be passed to each call. The
engine uses it when its deadline passes. interrupt() calls sqlite3's
Connection.interrupt() on the live DBAPI connection, so a running statement
fails and its transaction rolls back. The commit itself runs under the
handle's lock: once a commit has started it completes, and an interrupt that
arrives afterwards is a no-op. The caller then sees the real outcome.

Errors: any SQLAlchemyError (or a UnicodeError while binding parameters)
raised while the scope is open is re-raised as StoreError carrying the
operation name. The engine catches StoreError at the operation boundary;
nothing from the driver reaches the host.

Layer rule: no imports from plugin.py.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any
from urllib.parse import quote

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from core.config import EngineConfig

logger = logging.getLogger("sqliteauth.connection")


class StoreError(Exception):
    """A store-level failure (open, execute, commit) during one operation."""

    def __init__(self, operation: str, cause: BaseException) -> None:
        super().__init__(f"{operation}: {cause}")
        self.operation = operation
        self.cause = cause


class StatementInterrupt:
    """Thread-safe handle for aborting the statement of one in-flight operation."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._dbapi_conn: Any = None
        self.interrupted = False

    def attach(self, operation: str, dbapi_conn: Any) -> None:
        with self._lock:
            if self.interrupted:
                raise StoreError(operation, TimeoutError("interrupted before execution"))
            self._dbapi_conn = dbapi_conn

    def detach(self) -> None:
        with self._lock:
            self._dbapi_conn = None

    def interrupt(self) -> None:
        """Abort the running statement. Blocks while a commit is in progress."""
        with self._lock:
            self.interrupted = True
            if self._dbapi_conn is not None:
                self._dbapi_conn.interrupt()

    @contextmanager
    def committing(self, operation: str) -> Iterator[None]:
        with self._lock:
            if self.interrupted:
                raise StoreError(operation, TimeoutError("interrupted before commit"))
            yield


def database_url(config: EngineConfig) -> URL:
    """Build a SQLite URI-filename URL so the open mode (ro/rw/rwc) is honoured.

    Equivalent to sqlite:///file:<path>?mode=<mode>&uri=true. The path is
    percent-encoded; a raw "#" or "?" would otherwise end the filename.
    """
    return URL.create(
        "sqlite",
        database=f"file:{quote(config.path, safe='/')}",
        query={"mode": config.mode, "uri": "true"},
    )


class ConnectionScope:
    """Opens one connection per operation and guarantees it is released.

    Usage:
        scope = ConnectionScope(config)
        rows = scope.fetch_rows("auth_user", template, ("alice", digest))
        count = scope.execute("add_user", template, ("bob", digest), interrupt=handle)
        scope.dispose()
    """

    def __init__(self, config: EngineConfig) -> None:
        self.engine: Engine = create_engine(
            database_url(config),
            poolclass=NullPool,
            hide_parameters=True,
            connect_args={"timeout": config.timeout_seconds, "check_same_thread": False},
        )

    @contextmanager
    def acquire(self, operation: str, interrupt: StatementInterrupt | None = None) -> Iterator[Connection]:
        """Yield an open connection; close it when the block exits."""
        try:
            with self.engine.connect() as conn:
                logger.debug("opened connection for %s", operation)
                if interrupt is not None:
                    interrupt.attach(operation, conn.connection.dbapi_connection)
                try:
                    yield conn
                finally:
                    if interrupt is not None:
                        interrupt.detach()
                    logger.debug("releasing connection for %s", operation)
        except (SQLAlchemyError, UnicodeError) as e:
            # sqlite3 raises UnicodeEncodeError unwrapped for lone surrogates
            raise StoreError(operation, e) from e

    def fetch_rows(
        self,
        operation: str,
        template: str,
        params: Sequence[Any],
        interrupt: StatementInterrupt | None = None,
    ) -> list[dict[str, Any]]:
        """Run a row-returning template and return every row as a column->value dict."""
        with self.acquire(operation, interrupt) as conn:
            result = conn.exec_driver_sql(template, tuple(params))
            return [dict(row) for row in result.mappings().all()]

    def execute(
        self,
        operation: str,
        template: str,
        params: Sequence[Any],
        interrupt: StatementInterrupt | None = None,
    ) -> int:
        """Run a write template, commit, and return the affected row count.

        SQLite reports -1 for statements where a count does not apply; callers
        should only treat 0 as "nothing matched".
        """
        with self.acquire(operation, interrupt) as conn:
            result = conn.exec_driver_sql(
                template, tuple(params), execution_options={"preserve_rowcount": True}
            )
            count = result.rowcount
            if interrupt is None:
                conn.commit()
            else:
                with interrupt.committing(operation):
                    conn.commit()
        return count

    def ping(self) -> None:
        """Round-trip a trivial query that reads the schema page.

        Raises StoreError if the file cannot be opened or is not a SQLite database.
        """
        with self.acquire("ping") as conn:
            conn.exec_driver_sql("SELECT count(*) FROM sqlite_master").scalar()

    def dispose(self) -> None:
        self.engine.dispose()
