"""
Turn a SQL result set into gauge samples.

One column supplies the value; every other non-null column becomes a label,
its name rewritten to the label-name grammar (first column wins on a clash).
Values are coerced to float with a fixed cascade (see to_float); rows whose
value is null or cannot be coerced are skipped without failing the query.
"""

import logging
import re
from collections.abc import Iterable, Sequence
from decimal import Decimal
from functools import singledispatch
from typing import Any, Protocol

from job_runner.core.errors import ValueColumnNotFound

from .metric_set import MetricSet

_log = logging.getLogger(__name__)

DEFAULT_METRIC_PREFIX = "sql_query_result"
DEFAULT_VALUE_COLUMN = "value"

LABEL_INVALID_RE = re.compile(r"[^a-zA-Z0-9_]")


class Rows(Protocol):
    """What the generator needs from a cursor: column names and row tuples."""

    columns: Sequence[str]

    def __iter__(self) -> Any: ...


# ---------------------------------------------------------------------------
# Value coercion
# ---------------------------------------------------------------------------


def _parse(text: str) -> float | None:
    try:
        return float(text)
    except ValueError:
        return None


@singledispatch
def to_float(value: Any) -> float | None:
    """
    Coerce a database cell to float; None when it cannot be represented.

    int (and bool) / float: direct cast; str: parsed; bytes-like: decoded as
    UTF-8 then parsed; anything else (Decimal, dates, ...): str() then parsed.
    """
    return _parse(str(value))


@to_float.register
def _(value: int) -> float | None:
    try:
        return float(value)
    except OverflowError:
        return None


@to_float.register
def _(value: float) -> float | None:
    return value


@to_float.register
def _(value: str) -> float | None:
    return _parse(value)


@to_float.register(bytes)
@to_float.register(bytearray)
@to_float.register(memoryview)
def _(value: bytes | bytearray | memoryview) -> float | None:
    try:
        return _parse(bytes(value).decode("utf-8"))
    except UnicodeDecodeError:
        return None


@to_float.register
def _(value: Decimal) -> float | None:
    return _parse(str(value))


def label_value(value: Any) -> str:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------


def find_column(columns: Iterable[str], name: str) -> int | None:
    """Index of *name* in *columns*, compared case-insensitively."""
    wanted = name.casefold()
    for i, col in enumerate(columns):
        if col.casefold() == wanted:
            return i
    return None


def label_name(column: str) -> str:
    """Column name as a Prometheus label name ("my name" -> "my_name")."""
    name = LABEL_INVALID_RE.sub("_", column)
    if not name or name[0].isdigit():
        name = "_" + name
    return name


def label_columns(columns: Sequence[str], value_index: int) -> list[tuple[int, str]]:
    """(index, label name) for every non-value column; the first column wins a clashing name."""
    seen: set[str] = set()
    out = []
    for i, col in enumerate(columns):
        if i == value_index:
            continue
        name = label_name(col)
        if name in seen:
            _log.debug("Dropping column %r: label name %r already used", col, name)
            continue
        seen.add(name)
        out.append((i, name))
    return out


class MetricGenerator:
    """Builds `<prefix>{<label columns>} <value column>` samples from rows."""

    def __init__(self, metric_prefix: str = "", value_column: str = "") -> None:
        self.metric_prefix = metric_prefix or DEFAULT_METRIC_PREFIX
        self.value_column = value_column or DEFAULT_VALUE_COLUMN

    def generate(self, metric_set: MetricSet, rows: Rows) -> int:
        """
        Add one sample per usable row to *metric_set*; return how many were set.

        Raises ValueColumnNotFound before reading any row when the value
        column is missing. Errors raised by the cursor while iterating
        propagate (QueryError or the task context error); samples already
        set stay in *metric_set*.
        """
        columns = list(rows.columns)
        value_index = find_column(columns, self.value_column)
        if value_index is None:
            raise ValueColumnNotFound(
                f"value column '{self.value_column}' not found in result set"
            )
        metric_set.describe(
            self.metric_prefix,
            f"SQL query result (value column '{self.value_column}').",
        )

        names = label_columns(columns, value_index)

        emitted = 0
        for row in rows:
            raw = row[value_index]
            if raw is None:
                continue
            labels = [(name, label_value(row[i])) for i, name in names if row[i] is not None]
            value = to_float(raw)
            if value is None:
                _log.debug(
                    "Skipping row: cannot convert %s value %r to float (labels=%s)",
                    type(raw).__name__,
                    raw,
                    labels,
                )
                continue
            metric_set.set(self.metric_prefix, labels, value)
            emitted += 1
        return emitted
