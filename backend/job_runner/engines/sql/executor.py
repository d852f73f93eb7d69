"""
Run a raw SQL query on a pooled connection and stream the rows.

execute_query() checks out one DB-API connection, bounds it by the task
context (server-side statement timeout + driver interrupt on cancel) and
returns a RowCursor. The caller closes the cursor, which releases the
connection back to the pool.
"""

import logging
from collections.abc import Callable, Iterator
from typing import Any

from job_runner.core.context import TaskContext
from job_runner.core.errors import QueryError
from job_runner.core.pool import Connection, apply_statement_timeout, interrupt_connection

_log = logging.getLogger(__name__)

_FETCH_BATCH_SIZE = 500


class RowCursor:
    """
    Forward-only, single-pass iterator over result rows (tuples).

    - columns: result column names in order.
    - close(): idempotent; closes the DB-API cursor and returns the
      connection to the pool.
    """

    def __init__(
        self,
        cursor: Any,
        connection: Any,
        ctx: TaskContext,
        *,
        on_close: Callable[[], None] | None = None,
        batch_size: int = _FETCH_BATCH_SIZE,
    ) -> None:
        self._cursor = cursor
        self._connection = connection
        self._ctx = ctx
        self._on_close = on_close
        self._batch_size = batch_size
        self._closed = False
        self._consumed = False
        desc = cursor.description
        self.columns: list[str] = [d[0] for d in desc] if desc else []

    def __iter__(self) -> Iterator[tuple[Any, ...]]:
        if self._consumed:
            raise QueryError("row cursor can only be iterated once")
        self._consumed = True
        if not self.columns:
            return
        while True:
            try:
                batch = self._cursor.fetchmany(self._batch_size)
            except Exception as e:
                expired = self._ctx.err()
                if expired is not None:
                    raise expired from e
                raise QueryError(f"error iterating rows: {e}") from e
            if not batch:
                return
            for row in batch:
                yield tuple(row)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._cursor.close()
        except Exception:
            _log.warning("Failed to close cursor", exc_info=True)
        finally:
            if self._on_close is not None:
                self._on_close()
            self._connection.close()

    def __enter__(self) -> "RowCursor":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def _execute_prepared(backend: str, cursor: Any, sql: str) -> None:
    """Prepare-then-execute where the driver exposes it; plain execute otherwise."""
    if backend == "postgres":
        cursor.execute(sql, prepare=True)
        return
    prepare = getattr(cursor, "prepare", None)
    if callable(prepare):
        try:
            prepare(sql)
        except Exception as e:
            raise QueryError(f"prepare query failed: {e}") from e
        cursor.execute(None)
        return
    cursor.execute(sql)


def execute_query(conn: Connection, sql: str, ctx: TaskContext) -> RowCursor:
    """
    Execute *sql* on *conn* and return a RowCursor the caller must close.

    - prepared_statements: prepare-then-execute, else direct execute.
    - The remaining deadline of *ctx* is applied as a statement timeout and a
      cancel of *ctx* interrupts the running statement.
    - Raises the context error (DeadlineExceeded / Canceled) when *ctx* ends
      before or during execution, QueryError for any other failure.
    """
    ctx.raise_if_done()
    try:
        raw = conn.engine.raw_connection()
    except Exception as e:
        raise QueryError(f"failed to acquire connection: {e}") from e

    dbapi_conn = raw.dbapi_connection
    unregister = ctx.after_cancel(lambda: interrupt_connection(dbapi_conn))
    cur = None
    mode = "execute query"
    try:
        ctx.raise_if_done()
        apply_statement_timeout(conn.backend, dbapi_conn, ctx.remaining())
        cur = raw.cursor()
        if conn.options.prepared_statements:
            mode = "execute prepared query"
            _execute_prepared(conn.backend, cur, sql)
        else:
            cur.execute(sql)
    except Exception as e:
        unregister()
        if cur is not None:
            try:
                cur.close()
            except Exception:
                _log.warning("Failed to close cursor after error", exc_info=True)
        raw.close()
        expired = ctx.err()
        if expired is not None:
            raise expired from e
        if isinstance(e, QueryError):
            raise
        if cur is None:
            raise QueryError(f"failed to prepare connection: {e}") from e
        raise QueryError(f"{mode} failed: {e}") from e

    return RowCursor(cur, raw, ctx, on_close=unregister)
