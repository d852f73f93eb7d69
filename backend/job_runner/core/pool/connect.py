"""
Open a pooled connection from a connection descriptor.

The descriptor is parsed with SQLAlchemy's URL parser, per-engine driver
parameters from the config are merged into its query, and a QueuePool
engine is created with the configured limits. Drivers: psycopg (PostgreSQL),
pymysql (MySQL/MariaDB), oracledb (Oracle), pymssql (SQL Server), sqlite3.
"""

import logging
import math
import os
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.exc import ArgumentError, NoSuchModuleError
from sqlalchemy.pool import QueuePool

from job_runner.core.config import ConnectionOptions
from job_runner.core.context import TaskContext
from job_runner.core.errors import DBConnectionError

from .dsn import redact_dsn
from .health import ping

_log = logging.getLogger(__name__)

EMBEDDED_EXTENSIONS = (".db", ".sqlite", ".sqlite3", ".db3", ".s3db", ".sl3")
MEMORY_SENTINEL = ":memory:"

_DEFAULT_POOL_TIMEOUT_SEC = 30.0

# URL scheme -> canonical engine name (also the driver_params key)
_ENGINE_ALIASES = {
    "pg": "postgres",
    "pgsql": "postgres",
    "postgres": "postgres",
    "postgresql": "postgres",
    "my": "mysql",
    "mysql": "mysql",
    "mariadb": "mysql",
    "or": "oracle",
    "ora": "oracle",
    "oracle": "oracle",
    "ms": "sqlserver",
    "mssql": "sqlserver",
    "sqlserver": "sqlserver",
    "file": "sqlite",
    "sqlite": "sqlite",
    "sqlite3": "sqlite",
}

_DRIVERS = {
    "postgres": "postgresql+psycopg",
    "mysql": "mysql+pymysql",
    "oracle": "oracle+oracledb",
    "sqlserver": "mssql+pymssql",
    "sqlite": "sqlite",
}

# engine -> DB-API connect() argument bounding connection setup (seconds)
_CONNECT_TIMEOUT_ARGS = {
    "postgres": "connect_timeout",
    "mysql": "connect_timeout",
    "oracle": "tcp_connect_timeout",
    "sqlserver": "login_timeout",
    "sqlite": "timeout",
}


class Connection:
    """
    One request-scoped database handle: a pooled SQLAlchemy Engine plus the
    options it was opened with. close() disposes the pool.
    """

    def __init__(self, engine: Engine, options: ConnectionOptions, backend: str) -> None:
        self.engine = engine
        self.options = options
        self.backend = backend

    def close(self) -> None:
        self.engine.dispose()

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def looks_embedded(dsn: str) -> bool:
    """True when a scheme-less descriptor should be opened as a SQLite file."""
    if "://" in dsn:
        return False
    lowered = dsn.lower()
    if lowered.endswith(MEMORY_SENTINEL) or lowered.endswith(EMBEDDED_EXTENSIONS):
        return True
    return os.path.isfile(dsn)


def parse_descriptor(dsn: str) -> tuple[str, URL]:
    """
    Parse *dsn* into (canonical engine name, SQLAlchemy URL with driver set).

    Raises DBConnectionError (with credentials redacted) when it is not a URL.
    """
    if looks_embedded(dsn):
        return "sqlite", URL.create("sqlite", database=dsn)
    try:
        url = make_url(dsn)
    except (ArgumentError, ValueError):
        raise DBConnectionError(f"failed to parse DSN: {redact_dsn(dsn)}") from None

    backend = url.get_backend_name().lower()
    engine = _ENGINE_ALIASES.get(backend, backend)
    if engine in _DRIVERS:
        dialect = _DRIVERS[engine].split("+")[0]
        if "+" in url.drivername:
            url = url.set(drivername=f"{dialect}+{url.get_driver_name()}")
        else:
            url = url.set(drivername=_DRIVERS[engine])

    if engine == "sqlite" and url.host:
        # sqlite://relative.db puts the path in the host slot
        database = url.host + (f"/{url.database}" if url.database else "")
        url = url.set(host=None, database=database)
    if engine == "sqlserver" and not url.database and "database" in url.query:
        url = url.set(database=url.query["database"]).difference_update_query(["database"])
    return engine, url


def _pool_limits(options: ConnectionOptions) -> tuple[int, int]:
    """(pool_size, max_overflow) from max-open / max-idle; <=0 max-open means unlimited."""
    idle = max(options.max_idle_connections, 1)
    if options.max_connections <= 0:
        return idle, -1
    size = min(idle, options.max_connections)
    return size, max(options.max_connections - size, 0)


def _connect_args(engine: str, url: URL, options: ConnectionOptions) -> dict[str, Any]:
    """Driver timeouts not already set through the descriptor or driver_params."""
    args: dict[str, Any] = {}
    connect_timeout = options.connect_timeout.total_seconds()
    key = _CONNECT_TIMEOUT_ARGS.get(engine)
    if key and connect_timeout > 0 and key not in url.query:
        if engine in ("oracle", "sqlite"):
            args[key] = connect_timeout
        else:
            args[key] = max(math.ceil(connect_timeout), 1)
    query_timeout = options.query_timeout.total_seconds()
    if engine == "sqlserver" and query_timeout > 0 and "timeout" not in url.query:
        args["timeout"] = max(math.ceil(query_timeout), 1)
    return args


def open_connection(
    dsn: str,
    options: ConnectionOptions,
    ctx: TaskContext | None = None,
) -> Connection:
    """
    Open a pooled connection for *dsn*.

    - driver_params[engine] override same-named query parameters in *dsn*.
    - max_connections / max_idle_connections / max_connection_lifetime map to
      QueuePool size, overflow and recycle.
    - Unless options.no_ping, one connection is pinged within connect_timeout
      (and *ctx*); on failure the pool is disposed and DBConnectionError raised.
    """
    engine_name, url = parse_descriptor(dsn)
    driver_params = options.driver_params.get(engine_name)
    if driver_params:
        url = url.update_query_dict(driver_params)

    pool_size, max_overflow = _pool_limits(options)
    lifetime = options.max_connection_lifetime.total_seconds()
    pool_timeout = options.connect_timeout.total_seconds()
    try:
        engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_recycle=int(lifetime) if lifetime > 0 else -1,
            pool_timeout=pool_timeout if pool_timeout > 0 else _DEFAULT_POOL_TIMEOUT_SEC,
            connect_args=_connect_args(engine_name, url, options),
        )
    except (ArgumentError, NoSuchModuleError, ImportError, TypeError) as e:
        raise DBConnectionError(
            f"failed to open database connection: {redact_dsn(str(e))}"
        ) from e

    if not options.no_ping:
        timeout = options.connect_timeout.total_seconds()
        parent = ctx if ctx is not None else TaskContext()
        try:
            with parent.with_timeout(timeout if timeout > 0 else None) as ping_ctx:
                ping(engine, ping_ctx)
        except Exception:
            engine.dispose()
            raise
        finally:
            if ctx is None:
                parent.close()

    _log.debug("Opened %s connection pool (size=%d, overflow=%d)", engine_name, pool_size, max_overflow)
    return Connection(engine, options, engine_name)


def apply_statement_timeout(backend: str, dbapi_connection: Any, seconds: float | None) -> None:
    """
    Bound the next statements on *dbapi_connection* server-side.

    PostgreSQL: statement_timeout; MySQL: max_execution_time; Oracle:
    call_timeout. SQL Server gets its query timeout at connect time and SQLite
    is interrupted through the task context.
    """
    if seconds is None:
        return
    timeout_ms = max(int(seconds * 1000), 1)
    if backend == "postgres":
        cur = dbapi_connection.cursor()
        try:
            cur.execute(f"SET statement_timeout = {timeout_ms}")
        finally:
            cur.close()
    elif backend == "mysql":
        cur = dbapi_connection.cursor()
        try:
            cur.execute(f"SET SESSION max_execution_time = {timeout_ms}")
        finally:
            cur.close()
    elif backend == "oracle":
        dbapi_connection.call_timeout = timeout_ms
