"""
Liveness check and statement interruption for pooled connections.
"""

import logging
from typing import Any

from sqlalchemy.engine import Engine

from job_runner.core.context import TaskContext
from job_runner.core.errors import DBConnectionError
from job_runner.core.pool.dsn import redact_dsn

_log = logging.getLogger(__name__)


def interrupt_connection(dbapi_connection: Any) -> None:
    """
    Abort whatever is running on *dbapi_connection*, if the driver allows it.

    psycopg and oracledb expose cancel(), sqlite3 exposes interrupt(); other
    drivers rely on the server-side statement timeout.
    """
    for name in ("cancel", "interrupt"):
        fn = getattr(dbapi_connection, name, None)
        if callable(fn):
            _log.debug("Interrupting database call via %s()", name)
            fn()
            return


def ping(engine: Engine, ctx: TaskContext) -> None:
    """
    Check out one connection and run the dialect ping on it.

    Raises DBConnectionError when the connection cannot be opened or the ping
    fails (including when *ctx* ends first). The connection goes back to the
    pool afterwards.
    """
    expired = ctx.err()
    if expired is not None:
        raise DBConnectionError(f"ping failed: {expired}") from expired
    try:
        raw = engine.raw_connection()
    except Exception as e:
        raise DBConnectionError(f"ping failed: {redact_dsn(str(e))}") from e
    try:
        unregister = ctx.after_cancel(lambda: interrupt_connection(raw.dbapi_connection))
        try:
            engine.dialect.do_ping(raw.dbapi_connection)
        finally:
            unregister()
    except Exception as e:
        reason = ctx.err() or e
        raise DBConnectionError(f"ping failed: {reason}") from e
    finally:
        raw.close()
