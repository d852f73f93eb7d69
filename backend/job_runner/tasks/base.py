"""
Task handler abstraction.

A handler receives the request (method, path, query parameters), the task
context and the config snapshot taken for this request, and returns a
TaskResult: Prometheus-formatted bytes, the HTTP status to answer with and
the error that caused a non-2xx status (if any). Handlers hold no
per-request state.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from starlette.requests import Request

from job_runner.core.config import AppConfig
from job_runner.core.context import TaskContext
from job_runner.core.errors import JobRunnerError, MethodNotAllowed


@dataclass(frozen=True)
class TaskRequest:
    method: str
    path: str
    params: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_starlette(cls, request: Request) -> "TaskRequest":
        """First value wins for repeated query parameters."""
        qp = request.query_params
        params = {key: qp.getlist(key)[0] for key in qp.keys()}
        return cls(
            method=request.method.upper(),
            path=request.url.path,
            params=MappingProxyType(params),
        )


@dataclass(frozen=True)
class TaskResult:
    body: bytes = b""
    status_code: int = 200
    error: Exception | None = None

    @classmethod
    def failed(cls, error: JobRunnerError, body: bytes = b"") -> "TaskResult":
        return cls(body=body, status_code=error.status_code, error=error)


class TaskHandler(ABC):
    """One task type served on one route."""

    @abstractmethod
    async def handle(
        self,
        ctx: TaskContext,
        request: TaskRequest,
        config: AppConfig,
    ) -> TaskResult:
        """Run the task and return its metrics, status and error."""

    @staticmethod
    def reject_method(request: TaskRequest, message: str = "method not allowed") -> TaskResult | None:
        """405 result for anything but GET; None when the method is acceptable."""
        if request.method != "GET":
            return TaskResult.failed(MethodNotAllowed(message))
        return None
