"""
SQL engine: run raw SQL on a pooled connection and stream the rows.

Exports: execute_query, RowCursor.
"""

from job_runner.engines.sql.executor import RowCursor, execute_query

__all__ = [
    "RowCursor",
    "execute_query",
]
