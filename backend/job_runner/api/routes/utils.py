import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from job_runner.api.deps import ConfigStoreDep
from job_runner.core.errors import ConfigError, ReloadNotSupported

_log = logging.getLogger(__name__)

router = APIRouter(tags=["utils"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Process-wide metrics (request counters and latencies)."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.get("/health", response_class=PlainTextResponse)
async def health() -> str:
    """
    Liveness probe. No I/O.
    """
    return "OK\n"


@router.get("/config")
async def current_config(store: ConfigStoreDep) -> JSONResponse:
    """Current configuration snapshot (durations as Go-style strings)."""
    return JSONResponse(content=store.snapshot().model_dump(mode="json"))


@router.api_route("/reload", methods=["GET", "POST"], response_class=PlainTextResponse)
async def reload_config(store: ConfigStoreDep) -> PlainTextResponse:
    """
    Re-read the config file given at startup and swap it in.

    501 when the server was started without a config file; 500 when the file
    cannot be read or parsed (the previous configuration stays active).
    """
    try:
        store.reload()
    except ReloadNotSupported as e:
        _log.warning("Config reload requested, but no config file path was provided at startup.")
        return PlainTextResponse(str(e), status_code=e.status_code)
    except ConfigError as e:
        _log.error("Failed to reload configuration from %s: %s", store.config_file, e)
        return PlainTextResponse(f"Failed to reload configuration: {e}", status_code=e.status_code)
    return PlainTextResponse("Configuration reloaded successfully.\n")
