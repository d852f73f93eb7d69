"""
Tests for core.pool: descriptor parsing, pool limits, driver parameters, ping.

Networked engines are exercised with create_engine patched; SQLite files
are opened for real.
"""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import create_engine

from job_runner.core.config import ConnectionOptions
from job_runner.core.context import TaskContext
from job_runner.core.errors import DBConnectionError
from job_runner.core.pool import (
    apply_statement_timeout,
    interrupt_connection,
    looks_embedded,
    open_connection,
    parse_descriptor,
    ping,
)
from job_runner.core.pool.connect import _pool_limits


@pytest.mark.parametrize(
    ("dsn", "expected"),
    [
        ("/var/lib/app.db", True),
        ("data.sqlite3", True),
        ("DATA.DB3", True),
        (":memory:", True),
        ("file:shared:memory:", True),
        ("postgres://u:p@h/app.db", False),
        ("no-extension", False),
    ],
)
def test_looks_embedded(dsn: str, expected: bool) -> None:
    assert looks_embedded(dsn) is expected


def test_looks_embedded_existing_file(tmp_path: Path) -> None:
    path = tmp_path / "plainfile"
    path.write_bytes(b"")
    assert looks_embedded(str(path)) is True


@pytest.mark.parametrize(
    ("dsn", "engine", "drivername"),
    [
        ("postgres://u:p@h:5432/d", "postgres", "postgresql+psycopg"),
        ("pg://u:p@h/d", "postgres", "postgresql+psycopg"),
        ("postgresql://u:p@h/d", "postgres", "postgresql+psycopg"),
        ("mysql://u:p@h:3306/d", "mysql", "mysql+pymysql"),
        ("mariadb://u:p@h/d", "mysql", "mysql+pymysql"),
        ("oracle://u:p@h:1521/d", "oracle", "oracle+oracledb"),
        ("mssql://u:p@h/d", "sqlserver", "mssql+pymssql"),
        ("mysql+mysqldb://u:p@h/d", "mysql", "mysql+mysqldb"),
    ],
)
def test_parse_descriptor_aliases(dsn: str, engine: str, drivername: str) -> None:
    name, url = parse_descriptor(dsn)
    assert name == engine
    assert url.drivername == drivername


def test_parse_descriptor_sqlserver_database_param() -> None:
    name, url = parse_descriptor("sqlserver://u:p@h:1433?database=reports")
    assert name == "sqlserver"
    assert url.drivername == "mssql+pymssql"
    assert url.database == "reports"
    assert "database" not in url.query


def test_parse_descriptor_embedded_path() -> None:
    name, url = parse_descriptor("/tmp/metrics.db")
    assert name == "sqlite"
    assert url.drivername == "sqlite"
    assert url.database == "/tmp/metrics.db"


def test_parse_descriptor_invalid() -> None:
    with pytest.raises(DBConnectionError, match="failed to parse DSN"):
        parse_descriptor("not a dsn")


@pytest.mark.parametrize(
    ("max_open", "max_idle", "expected"),
    [
        (5, 2, (2, 3)),
        (1, 5, (1, 0)),
        (5, 0, (1, 4)),
        (0, 2, (2, -1)),
    ],
)
def test_pool_limits(max_open: int, max_idle: int, expected: tuple[int, int]) -> None:
    opts = ConnectionOptions(max_connections=max_open, max_idle_connections=max_idle)
    assert _pool_limits(opts) == expected


@patch("job_runner.core.pool.connect.create_engine")
def test_open_connection_merges_driver_params(mock_create: MagicMock) -> None:
    opts = ConnectionOptions(
        no_ping=True,
        driver_params={"postgres": {"sslmode": "disable", "application_name": "job_runner"}},
    )
    conn = open_connection("postgres://u:p@db:5432/app?sslmode=require", opts)

    url = mock_create.call_args.args[0]
    kwargs = mock_create.call_args.kwargs
    assert url.drivername == "postgresql+psycopg"
    assert url.query["sslmode"] == "disable"
    assert url.query["application_name"] == "job_runner"
    assert kwargs["pool_size"] == 2
    assert kwargs["max_overflow"] == 3
    assert kwargs["pool_recycle"] == 600
    assert kwargs["connect_args"] == {"connect_timeout": 10}
    assert conn.backend == "postgres"
    assert conn.engine is mock_create.return_value


@patch("job_runner.core.pool.connect.create_engine")
def test_open_connection_timeout_in_descriptor_wins(mock_create: MagicMock) -> None:
    opts = ConnectionOptions(no_ping=True)
    open_connection("mysql://u:p@db/app?connect_timeout=3", opts)
    assert mock_create.call_args.kwargs["connect_args"] == {}


@patch("job_runner.core.pool.connect.ping")
@patch("job_runner.core.pool.connect.create_engine")
def test_open_connection_ping_failure_disposes(mock_create: MagicMock, mock_ping: MagicMock) -> None:
    mock_ping.side_effect = DBConnectionError("ping failed: connection refused")
    with pytest.raises(DBConnectionError, match="ping failed"):
        open_connection("postgres://u:p@db/app", ConnectionOptions())
    mock_create.return_value.dispose.assert_called_once_with()


def test_open_connection_unknown_driver() -> None:
    with pytest.raises(DBConnectionError, match="failed to open database connection") as exc_info:
        open_connection("nosuchdb://admin:s3cret@h/d", ConnectionOptions(no_ping=True))
    assert "s3cret" not in str(exc_info.value)


def test_open_sqlite_file(metrics_db: Path) -> None:
    with open_connection(str(metrics_db), ConnectionOptions()) as conn:
        assert conn.backend == "sqlite"
        assert conn.engine.url.database == str(metrics_db)


def test_open_sqlite_memory() -> None:
    with open_connection(":memory:", ConnectionOptions()) as conn:
        assert conn.backend == "sqlite"


def test_open_sqlite_unreachable_path(tmp_path: Path) -> None:
    missing = tmp_path / "no" / "such" / "dir" / "x.db"
    with pytest.raises(DBConnectionError, match="ping failed"):
        open_connection(str(missing), ConnectionOptions())


def test_ping_with_finished_context() -> None:
    engine = create_engine("sqlite://")
    ctx = TaskContext()
    ctx.cancel()
    try:
        with pytest.raises(DBConnectionError, match="context canceled"):
            ping(engine, ctx)
    finally:
        engine.dispose()


def test_ping_ok() -> None:
    engine = create_engine("sqlite://")
    try:
        with TaskContext(5) as ctx:
            ping(engine, ctx)
    finally:
        engine.dispose()


def test_apply_statement_timeout_postgres() -> None:
    dbapi_conn = MagicMock()
    apply_statement_timeout("postgres", dbapi_conn, 1.5)
    dbapi_conn.cursor.return_value.execute.assert_called_once_with("SET statement_timeout = 1500")
    dbapi_conn.cursor.return_value.close.assert_called_once_with()


def test_apply_statement_timeout_mysql() -> None:
    dbapi_conn = MagicMock()
    apply_statement_timeout("mysql", dbapi_conn, 2)
    dbapi_conn.cursor.return_value.execute.assert_called_once_with(
        "SET SESSION max_execution_time = 2000"
    )


def test_apply_statement_timeout_oracle() -> None:
    dbapi_conn = MagicMock()
    apply_statement_timeout("oracle", dbapi_conn, 0.25)
    assert dbapi_conn.call_timeout == 250


def test_apply_statement_timeout_no_deadline_or_sqlite() -> None:
    dbapi_conn = MagicMock()
    apply_statement_timeout("postgres", dbapi_conn, None)
    apply_statement_timeout("sqlite", dbapi_conn, 5)
    dbapi_conn.cursor.assert_not_called()


def test_interrupt_connection_prefers_cancel() -> None:
    dbapi_conn = MagicMock(spec=["cancel", "interrupt"])
    interrupt_connection(dbapi_conn)
    dbapi_conn.cancel.assert_called_once_with()
    dbapi_conn.interrupt.assert_not_called()


def test_interrupt_connection_sqlite_style() -> None:
    dbapi_conn = MagicMock(spec=["interrupt"])
    interrupt_connection(dbapi_conn)
    dbapi_conn.interrupt.assert_called_once_with()


def test_interrupt_connection_unsupported_driver() -> None:
    interrupt_connection(object())
