"""
Connection strings and pooled connections for the databases a SQL task targets.
"""

from .connect import (
    Connection,
    apply_statement_timeout,
    looks_embedded,
    open_connection,
    parse_descriptor,
)
from .dsn import build_dsn, is_embedded, redact_dsn
from .health import interrupt_connection, ping

__all__ = [
    "Connection",
    "apply_statement_timeout",
    "build_dsn",
    "interrupt_connection",
    "is_embedded",
    "looks_embedded",
    "open_connection",
    "parse_descriptor",
    "ping",
    "redact_dsn",
]
