"""
Process settings and runtime configuration.

- Settings: process-level knobs from the environment (pydantic-settings,
  prefix JOB_RUNNER_).
- AppConfig / ConnectionOptions: the reloadable runtime configuration, read
  from a JSON file. Both are frozen; a reload builds a new instance.

Durations accept Go-style strings ("500ms", "1m30s"), plain numbers
(seconds) or ISO-8601, and are written back as Go-style strings.
"""

import re
from datetime import timedelta
from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    HttpUrl,
    PlainSerializer,
    field_validator,
)
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from job_runner.core.errors import ConfigError
from job_runner.metrics.metric_set import is_valid_metric_name

_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")
_DURATION_RE = re.compile(r"(?:(?:\d+(?:\.\d*)?|\.\d+)(?:ns|us|µs|μs|ms|s|m|h))+")

_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(value: str) -> timedelta:
    """
    Parse a Go-style duration string ("300ms", "1.5h", "2h45m") into a timedelta.

    A bare number is taken as seconds. Raises ValueError on anything else.
    """
    s = value.strip()
    if not s:
        raise ValueError("empty duration")
    sign = 1
    if s[0] in "+-":
        sign = -1 if s[0] == "-" else 1
        s = s[1:]
    try:
        total = float(s)
    except ValueError:
        if not _DURATION_RE.fullmatch(s):
            raise ValueError(f"invalid duration {value!r}") from None
        total = sum(
            float(num) * _UNIT_SECONDS[unit]
            for num, unit in _DURATION_PART_RE.findall(s)
        )
    try:
        return timedelta(seconds=sign * total)
    except OverflowError as e:
        raise ValueError(f"duration out of range {value!r}") from e


def format_duration(value: timedelta) -> str:
    """Render a timedelta the way Go prints a time.Duration (e.g. 10m0s, 500ms)."""
    micros = value // timedelta(microseconds=1)
    if micros == 0:
        return "0s"
    sign = "-" if micros < 0 else ""
    micros = abs(micros)
    if micros < 1000:
        return f"{sign}{micros}µs"
    if micros < 1_000_000:
        return f"{sign}{micros / 1000:g}ms"
    hours, rem = divmod(micros, 3_600_000_000)
    minutes, rem = divmod(rem, 60_000_000)
    seconds = f"{rem / 1_000_000:.6f}".rstrip("0").rstrip(".") + "s"
    if hours:
        return f"{sign}{hours}h{minutes}m{seconds}"
    if minutes:
        return f"{sign}{minutes}m{seconds}"
    return f"{sign}{seconds}"


def _coerce_duration(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return parse_duration(value)
        except ValueError:
            return value  # let pydantic try ISO-8601 and report the error
    return value


Duration = Annotated[
    timedelta,
    BeforeValidator(_coerce_duration),
    PlainSerializer(format_duration, return_type=str, when_used="json"),
]


# ---------------------------------------------------------------------------
# Runtime configuration (JSON file, reloadable)
# ---------------------------------------------------------------------------


class ConnectionOptions(BaseModel):
    """Pool, timeout and driver settings applied to every SQL task."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    max_connections: int = 5
    max_idle_connections: int = 2
    max_connection_lifetime: Duration = timedelta(minutes=10)
    driver_params: dict[str, dict[str, str]] = Field(default_factory=dict)
    connect_timeout: Duration = timedelta(seconds=10)
    query_timeout: Duration = timedelta(seconds=30)
    prepared_statements: bool = True
    no_ping: bool = False

    @field_validator("driver_params", mode="before")
    @classmethod
    def _normalize_driver_params(cls, value: Any) -> Any:
        """Engine keys are matched case-insensitively; values are passed as strings."""
        if not isinstance(value, dict):
            return value
        out: dict[str, dict[str, str]] = {}
        for engine, params in value.items():
            if not isinstance(params, dict):
                raise ValueError(f"driver_params[{engine!r}] must be an object")
            out[str(engine).lower()] = {
                str(k): _param_to_str(v) for k, v in params.items()
            }
        return out


def _param_to_str(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class AppConfig(BaseModel):
    """Server configuration snapshot handed to every task handler."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    http_addr: str = "0.0.0.0"
    http_port: int = 8080
    connection_options: ConnectionOptions = Field(default_factory=ConnectionOptions)
    query_metric_name: str = "sql_query_result"
    query_status_metric_name: str = "sql_query_status"
    http_check_task_timeout: Duration = timedelta(seconds=15)

    @field_validator("query_metric_name", "query_status_metric_name")
    @classmethod
    def _check_metric_name(cls, value: str) -> str:
        if not is_valid_metric_name(value):
            raise ValueError(f"invalid metric name {value!r}")
        return value


def load_config(config_path: str | Path | None) -> AppConfig:
    """Load AppConfig from a JSON file; no path means defaults."""
    if not config_path:
        return AppConfig()
    try:
        data = Path(config_path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"failed to read config file: {e}") from e
    try:
        return AppConfig.model_validate_json(data)
    except PydanticValidationError as e:
        raise ConfigError(f"failed to parse config file: {e}") from e


# ---------------------------------------------------------------------------
# Process settings (environment)
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="JOB_RUNNER_",
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    PROJECT_NAME: str = "Job Runner"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    CONFIG_FILE: str = ""
    HTTP_ADDR: str | None = None
    HTTP_PORT: int | None = None
    LOG_LEVEL: str = "INFO"
    SENTRY_DSN: HttpUrl | None = None


settings = Settings()  # type: ignore
