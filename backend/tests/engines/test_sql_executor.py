"""Unit tests for engines.sql.executor (execute_query, RowCursor)."""

from collections.abc import Generator
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from job_runner.core.config import ConnectionOptions
from job_runner.core.context import TaskContext
from job_runner.core.errors import Canceled, DeadlineExceeded, QueryError
from job_runner.core.pool import Connection, open_connection
from job_runner.engines.sql import RowCursor, execute_query
from job_runner.engines.sql.executor import _execute_prepared


@pytest.fixture
def conn(metrics_db: Path) -> Generator[Connection, None, None]:
    with open_connection(str(metrics_db), ConnectionOptions()) as c:
        yield c


@pytest.fixture
def ctx() -> Generator[TaskContext, None, None]:
    with TaskContext(30) as c:
        yield c


def test_execute_query_streams_rows(conn: Connection, ctx: TaskContext) -> None:
    with execute_query(conn, "SELECT name, category, value FROM metrics ORDER BY value", ctx) as cur:
        assert cur.columns == ["name", "category", "value"]
        rows = list(cur)
    assert rows == [("errors", None, 7.0), ("users", "app", 1250.0), ("orders", "app", 5432.0)]


def test_execute_query_releases_connection(conn: Connection, ctx: TaskContext) -> None:
    cur = execute_query(conn, "SELECT 1 AS value", ctx)
    assert conn.engine.pool.checkedout() == 1
    cur.close()
    cur.close()
    assert conn.engine.pool.checkedout() == 0


def test_cursor_is_single_pass(conn: Connection, ctx: TaskContext) -> None:
    with execute_query(conn, "SELECT 1 AS value", ctx) as cur:
        assert list(cur) == [(1,)]
        with pytest.raises(QueryError, match="only be iterated once"):
            list(cur)


def test_empty_result_keeps_columns(conn: Connection, ctx: TaskContext) -> None:
    with execute_query(conn, "SELECT name, value FROM metrics WHERE 1 = 0", ctx) as cur:
        assert cur.columns == ["name", "value"]
        assert list(cur) == []


def test_execute_query_prepared_error(conn: Connection, ctx: TaskContext) -> None:
    with pytest.raises(QueryError, match="execute prepared query failed: no such table"):
        execute_query(conn, "SELECT * FROM nope", ctx)
    assert conn.engine.pool.checkedout() == 0


def test_execute_query_direct_error(metrics_db: Path, ctx: TaskContext) -> None:
    with open_connection(str(metrics_db), ConnectionOptions(prepared_statements=False)) as conn:
        with pytest.raises(QueryError, match="execute query failed: no such table"):
            execute_query(conn, "SELECT * FROM nope", ctx)


def test_execute_query_canceled_context(conn: Connection) -> None:
    ctx = TaskContext()
    ctx.cancel()
    with pytest.raises(Canceled):
        execute_query(conn, "SELECT 1", ctx)


def test_execute_query_expired_context(conn: Connection) -> None:
    ctx = TaskContext(0)
    try:
        with pytest.raises(DeadlineExceeded):
            execute_query(conn, "SELECT 1", ctx)
    finally:
        ctx.close()


def test_row_cursor_fetch_error() -> None:
    cursor = MagicMock()
    cursor.description = [("value",)]
    cursor.fetchmany.side_effect = RuntimeError("disk I/O error")
    raw = MagicMock()
    with TaskContext() as ctx:
        rows = RowCursor(cursor, raw, ctx)
        with pytest.raises(QueryError, match="error iterating rows: disk I/O error"):
            list(rows)
        rows.close()
    raw.close.assert_called_once_with()


def test_row_cursor_fetch_error_after_cancel() -> None:
    cursor = MagicMock()
    cursor.description = [("value",)]
    cursor.fetchmany.side_effect = RuntimeError("interrupted")
    ctx = TaskContext()
    ctx.cancel()
    with pytest.raises(Canceled):
        list(RowCursor(cursor, MagicMock(), ctx))


def test_row_cursor_batches() -> None:
    cursor = MagicMock()
    cursor.description = [("name",), ("value",)]
    cursor.fetchmany.side_effect = [[("a", 1), ("b", 2)], [("c", 3)], []]
    on_close = MagicMock()
    with TaskContext() as ctx:
        with RowCursor(cursor, MagicMock(), ctx, on_close=on_close, batch_size=2) as rows:
            assert list(rows) == [("a", 1), ("b", 2), ("c", 3)]
    cursor.fetchmany.assert_called_with(2)
    on_close.assert_called_once_with()


def test_execute_prepared_postgres() -> None:
    cursor = MagicMock()
    _execute_prepared("postgres", cursor, "SELECT 1")
    cursor.execute.assert_called_once_with("SELECT 1", prepare=True)


def test_execute_prepared_explicit_prepare() -> None:
    cursor = MagicMock(spec=["prepare", "execute"])
    _execute_prepared("oracle", cursor, "SELECT 1 FROM dual")
    cursor.prepare.assert_called_once_with("SELECT 1 FROM dual")
    cursor.execute.assert_called_once_with(None)


def test_execute_prepared_prepare_failure() -> None:
    cursor = MagicMock(spec=["prepare", "execute"])
    cursor.prepare.side_effect = RuntimeError("ORA-00942")
    with pytest.raises(QueryError, match="prepare query failed: ORA-00942"):
        _execute_prepared("oracle", cursor, "SELECT * FROM missing")
    cursor.execute.assert_not_called()


def test_execute_prepared_fallback() -> None:
    cursor = MagicMock(spec=["execute"])
    _execute_prepared("mysql", cursor, "SELECT 1")
    cursor.execute.assert_called_once_with("SELECT 1")
