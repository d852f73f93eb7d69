"""
Connection-string builder: (engine token, credentials, host, port, db) -> DSN.

Embedded engines (SQLite) yield the bare file path. Known networked engines
use a canonical URL with a default port. Anything else is built from the
same template and validated against SQLAlchemy's URL parser and dialect
registry, so the opener can consume it.
"""

import re
from urllib.parse import quote, urlencode

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError, NoSuchModuleError

from job_runner.core.errors import DSNParseError, EmptyTargetError

EMBEDDED_ENGINES = frozenset({"sqlite", "sqlite3"})

# token -> (canonical scheme, default port)
_NETWORKED_ENGINES: dict[str, tuple[str, str]] = {
    "pg": ("postgres", "5432"),
    "postgres": ("postgres", "5432"),
    "postgresql": ("postgres", "5432"),
    "mysql": ("mysql", "3306"),
    "mariadb": ("mysql", "3306"),
    "oracle": ("oracle", "1521"),
    "sqlserver": ("sqlserver", "1433"),
    "mssql": ("sqlserver", "1433"),
}

_USERINFO_RE = re.compile(r"(?P<scheme>[A-Za-z][\w+.\-]*://)[^@/?#\s]*@")


def is_embedded(engine: str) -> bool:
    """True for engine tokens that address a local file rather than a server."""
    return (engine or "").strip().lower() in EMBEDDED_ENGINES


def redact_dsn(dsn: str) -> str:
    """Replace any user:password section of URL-shaped text with ***:***."""
    return _USERINFO_RE.sub(r"\g<scheme>***:***@", dsn)


def build_dsn(
    engine: str,
    username: str = "",
    password: str = "",
    host: str = "",
    port: str = "",
    database: str = "",
) -> str:
    """
    Build a connection descriptor for *engine*.

    - sqlite / sqlite3: *database* is the file path and is returned as-is;
      EmptyTargetError when it is empty.
    - pg, postgres, postgresql, mysql, mariadb, oracle, sqlserver, mssql:
      canonical URL, default port when *port* is empty. SQL Server passes the
      database as a query parameter.
    - other tokens: generic URL checked with SQLAlchemy; DSNParseError on
      failure (message carries the redacted descriptor only).
    """
    token = (engine or "").strip().lower()
    if token in EMBEDDED_ENGINES:
        if not database:
            raise EmptyTargetError("database path cannot be empty for SQLite")
        return database

    userinfo = f"{quote(username or '', safe='')}:{quote(password or '', safe='')}@"

    known = _NETWORKED_ENGINES.get(token)
    if known is not None:
        scheme, default_port = known
        hostport = f"{host}:{port or default_port}"
        if scheme == "sqlserver":
            return f"{scheme}://{userinfo}{hostport}?{urlencode({'database': database})}"
        return f"{scheme}://{userinfo}{hostport}/{database}"

    port_part = f":{port}" if port else ""
    dsn = f"{token}://{userinfo}{host}{port_part}/{database}"
    try:
        url = make_url(dsn)
        url.get_dialect()
    except (ArgumentError, NoSuchModuleError, ImportError, ValueError) as e:
        # the cause may embed the raw DSN, so it is not chained
        raise DSNParseError(
            f"failed to parse DSN {redact_dsn(dsn)}: {redact_dsn(str(e))}"
        ) from None
    return url.render_as_string(hide_password=False)
