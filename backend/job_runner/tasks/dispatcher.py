"""
Route -> task handler dispatch.

The route table is fixed when the app is created. For each request the
dispatcher takes one config snapshot, runs the handler under a fresh task
context and turns the TaskResult into an HTTP response:

- non-empty body: written verbatim with the handler's status
  (Prometheus text content type), even when the task failed;
- empty body with an error: "Task execution failed: <error>" as plain text.
"""

import logging
from collections.abc import Mapping
from types import MappingProxyType

from prometheus_client import CONTENT_TYPE_LATEST
from starlette.responses import PlainTextResponse, Response

from job_runner.core.config_store import ConfigStore
from job_runner.core.context import TaskContext

from .base import TaskHandler, TaskRequest, TaskResult
from .http_check import HTTPCheckTaskHandler
from .sql import SQLTaskHandler

_log = logging.getLogger(__name__)


def default_handlers() -> dict[str, TaskHandler]:
    return {
        "/sql": SQLTaskHandler(),
        "/http_check": HTTPCheckTaskHandler(),
    }


class TaskDispatcher:
    def __init__(self, handlers: Mapping[str, TaskHandler], config_store: ConfigStore) -> None:
        self._handlers: Mapping[str, TaskHandler] = MappingProxyType(dict(handlers))
        self._config_store = config_store

    @property
    def handlers(self) -> Mapping[str, TaskHandler]:
        return self._handlers

    async def run(self, handler: TaskHandler, request: TaskRequest) -> TaskResult:
        config = self._config_store.snapshot()
        with TaskContext() as ctx:
            return await handler.handle(ctx, request, config)

    async def dispatch(self, request: TaskRequest) -> Response:
        handler = self._handlers.get(request.path)
        if handler is None:
            return PlainTextResponse("404 page not found", status_code=404)

        result = await self.run(handler, request)
        if result.error is not None:
            _log.error(
                "Task handler error: path=%s method=%s status_code=%d error=%s",
                request.path,
                request.method,
                result.status_code,
                result.error,
            )
        if result.body:
            return Response(
                content=result.body,
                status_code=result.status_code,
                media_type=CONTENT_TYPE_LATEST,
            )
        if result.error is not None:
            return PlainTextResponse(
                f"Task execution failed: {result.error}",
                status_code=result.status_code,
            )
        return Response(status_code=result.status_code)
