from collections.abc import Iterable

from fastapi import APIRouter

from job_runner.api.routes import tasks, utils


def build_api_router(task_paths: Iterable[str]) -> APIRouter:
    api_router = APIRouter()
    api_router.include_router(utils.router)
    api_router.include_router(tasks.build_router(task_paths))
    return api_router
