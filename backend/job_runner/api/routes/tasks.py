"""
Task routes: one route per registered handler (/sql, /http_check).

All methods are routed to the handler so it can answer 405 itself and the
request is still counted by the metrics middleware.
"""

from collections.abc import Iterable

from fastapi import APIRouter, Request
from fastapi.responses import Response

from job_runner.api.deps import DispatcherDep
from job_runner.tasks import TaskRequest

TASK_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


async def run_task(request: Request, dispatcher: DispatcherDep) -> Response:
    """Run the task registered for this path; body is Prometheus text."""
    return await dispatcher.dispatch(TaskRequest.from_starlette(request))


def build_router(paths: Iterable[str]) -> APIRouter:
    router = APIRouter(tags=["tasks"])
    for path in paths:
        for method in TASK_METHODS:
            router.add_api_route(
                path,
                run_task,
                methods=[method],
                name=f"task{path.replace('/', '_')}_{method.lower()}",
                response_class=Response,
                include_in_schema=method == "GET",
            )
    return router
