"""
Pydantic models for task query parameters.

Query strings arrive as flat str -> str mappings; an empty value counts as
missing. parse_params() turns pydantic errors into a ValidationError (400)
with a readable "field: message" string.
"""

from collections.abc import Mapping
from datetime import timedelta
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from job_runner.core.config import parse_duration
from job_runner.core.errors import ValidationError
from job_runner.core.pool import is_embedded
from job_runner.metrics import DEFAULT_VALUE_COLUMN, is_valid_metric_name

M = TypeVar("M", bound=BaseModel)


def format_validation_errors(exc: PydanticValidationError) -> str:
    messages = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()))
        if err.get("type") == "value_error" and "error" in err.get("ctx", {}):
            msg = str(err["ctx"]["error"])
        else:
            msg = err.get("msg", "Invalid value")
        messages.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(messages)


def parse_params(model: type[M], params: Mapping[str, str]) -> M:
    """Validate *params* into *model*; ValidationError on any problem."""
    try:
        return model.model_validate(dict(params))
    except PydanticValidationError as e:
        raise ValidationError(format_validation_errors(e)) from None


def _drop_empty(data: Any) -> Any:
    if isinstance(data, dict):
        return {k: v for k, v in data.items() if v != ""}
    return data


# ---------------------------------------------------------------------------
# /sql
# ---------------------------------------------------------------------------


class SQLTaskParams(BaseModel):
    """Parameters of GET /sql."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    query: str = ""
    type: str = ""
    username: str = ""
    password: str = ""
    host: str = ""
    port: str = ""
    db: str = ""
    value_column: str = DEFAULT_VALUE_COLUMN
    metric_prefix: str = ""

    @model_validator(mode="before")
    @classmethod
    def _empty_is_missing(cls, data: Any) -> Any:
        return _drop_empty(data)

    @model_validator(mode="after")
    def _check_required(self) -> "SQLTaskParams":
        if not self.query:
            raise ValueError("missing required parameter: query")
        if not self.type:
            raise ValueError("missing required parameter: type")
        if is_embedded(self.type):
            if not self.db:
                raise ValueError("missing required parameter: db (database file path for SQLite)")
        elif not (self.username and self.host and self.db):
            raise ValueError(
                "missing required connection parameters (username, host, db) for non-SQLite types"
            )
        if self.metric_prefix and not is_valid_metric_name(self.metric_prefix):
            raise ValueError(f"invalid metric_prefix: {self.metric_prefix!r}")
        return self


# ---------------------------------------------------------------------------
# /http_check
# ---------------------------------------------------------------------------


class HTTPCheckParams(BaseModel):
    """Parameters of GET /http_check."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    target_url: str = ""
    method: str = "GET"
    expected_status: int = 200
    timeout: timedelta | None = None

    @model_validator(mode="before")
    @classmethod
    def _empty_is_missing(cls, data: Any) -> Any:
        return _drop_empty(data)

    @field_validator("method")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.upper()

    @field_validator("expected_status", mode="before")
    @classmethod
    def _status_int(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                return int(value.strip())
            except ValueError:
                raise ValueError(f"invalid expected_status: {value!r}") from None
        return value

    @field_validator("timeout", mode="before")
    @classmethod
    def _duration(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                return parse_duration(value)
            except ValueError as e:
                raise ValueError(f"invalid timeout duration: {e}") from None
        return value

    @model_validator(mode="after")
    def _check_required(self) -> "HTTPCheckParams":
        if not self.target_url:
            raise ValueError("missing required parameter: target_url")
        return self
