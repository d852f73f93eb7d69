import logging
from collections.abc import Mapping

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute

from job_runner.api.main import build_api_router
from job_runner.core.config import settings
from job_runner.core.config_store import ConfigStore
from job_runner.core.instrumentation import metrics_middleware
from job_runner.tasks import TaskDispatcher, TaskHandler, default_handlers

_logger = logging.getLogger(__name__)


def custom_generate_unique_id(route: APIRoute) -> str:
    return f"{route.tags[0]}-{route.name}" if route.tags else route.name


if settings.SENTRY_DSN and settings.ENVIRONMENT != "local":
    sentry_sdk.init(dsn=str(settings.SENTRY_DSN), enable_tracing=True)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return 422 with a human-readable detail string instead of raw Pydantic errors."""
    messages = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", []))
        msg = err.get("msg", "Invalid value")
        messages.append(f"{loc}: {msg}" if loc else msg)
    return JSONResponse(status_code=422, content={"detail": "; ".join(messages)})


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions: log and return 500 with a safe message."""
    _logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    detail = "Internal server error"
    if settings.ENVIRONMENT == "local":
        detail = f"Internal server error: {exc}"
    return JSONResponse(status_code=500, content={"detail": detail})


def create_app(
    config_store: ConfigStore | None = None,
    handlers: Mapping[str, TaskHandler] | None = None,
) -> FastAPI:
    """
    Build the application.

    - config_store: defaults to the file named by JOB_RUNNER_CONFIG_FILE
      (built-in defaults when unset).
    - handlers: route path -> task handler; defaults to /sql and /http_check.
      The route table is fixed for the lifetime of the app.
    """
    if config_store is None:
        config_store = ConfigStore.from_file(settings.CONFIG_FILE)
    dispatcher = TaskDispatcher(handlers if handlers is not None else default_handlers(), config_store)

    app = FastAPI(
        title=settings.PROJECT_NAME,
        docs_url="/docs",
        redoc_url="/redoc",
        generate_unique_id_function=custom_generate_unique_id,
    )
    app.state.config_store = config_store
    app.state.dispatcher = dispatcher

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
    app.middleware("http")(metrics_middleware)

    app.include_router(build_api_router(dispatcher.handlers.keys()))
    return app
