"""
HTTP check task: probe a URL and report reachability as gauges.

GET /http_check?target_url=...[&method=GET][&expected_status=200][&timeout=15s]

Gauges (labels target_url, method, then status_code or error):
  http_check_up               1 when the response status matched
  http_check_duration_seconds time until the response body was read
  http_check_status_code      only when a response was received

Redirects are followed. A status mismatch is not an error (200, up=0).
"""

import asyncio
import logging
import re
import time

import httpx

from job_runner.core.config import AppConfig
from job_runner.core.context import TaskContext
from job_runner.core.errors import (
    ProbeError,
    ProbeRequestError,
    ProbeTimeout,
    ProbeTransportFailure,
    ValidationError,
)
from job_runner.metrics import MetricSet
from job_runner.schemas import HTTPCheckParams, parse_params

from .base import TaskHandler, TaskRequest, TaskResult

_log = logging.getLogger(__name__)

DEFAULT_HTTP_CHECK_TIMEOUT = 15.0
METRIC_PREFIX = "http_check"

# RFC 7230 token
METHOD_RE = re.compile(r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+")

_HELP = {
    "up": "Whether the HTTP check returned the expected status (1) or not (0).",
    "duration_seconds": "Duration of the HTTP check in seconds.",
    "status_code": "HTTP status code returned by the target.",
}


def _record(
    metric_set: MetricSet,
    target_url: str,
    method: str,
    *,
    up: float = 0.0,
    duration: float = 0.0,
    status_code: int = 0,
    error: BaseException | None = None,
) -> None:
    labels = [("target_url", target_url), ("method", method)]
    if error is not None:
        labels.append(("error", str(error) or type(error).__name__))
    elif status_code > 0:
        labels.append(("status_code", str(status_code)))

    def put(suffix: str, value: float) -> None:
        name = f"{METRIC_PREFIX}_{suffix}"
        metric_set.describe(name, _HELP[suffix])
        metric_set.set(name, labels, value)

    put("up", up)
    put("duration_seconds", duration)
    if status_code > 0:
        put("status_code", float(status_code))


def resolve_timeout(params: HTTPCheckParams, config: AppConfig) -> float:
    """Request timeout in seconds: parameter, else config, else 15s."""
    if params.timeout is not None:
        return params.timeout.total_seconds()
    timeout = config.http_check_task_timeout.total_seconds()
    return timeout if timeout > 0 else DEFAULT_HTTP_CHECK_TIMEOUT


def build_probe_request(client: httpx.AsyncClient, method: str, url: str) -> httpx.Request:
    """Build the outbound request; ValueError/InvalidURL when it cannot be sent as given."""
    if not METHOD_RE.fullmatch(method):
        raise ValueError(f"invalid method {method!r}")
    return client.build_request(method, url)


async def fetch(client: httpx.AsyncClient, outbound: httpx.Request) -> httpx.Response:
    """Send *outbound* and drain the body without keeping it."""
    response = await client.send(outbound, stream=True)
    try:
        async for _ in response.aiter_raw():
            pass
    finally:
        await response.aclose()
    return response


class HTTPCheckTaskHandler(TaskHandler):
    """
    transport: optional httpx transport (tests pass httpx.MockTransport).
    """

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._transport = transport

    async def handle(self, ctx: TaskContext, request: TaskRequest, config: AppConfig) -> TaskResult:
        rejected = self.reject_method(request, "method not allowed for http_check endpoint, use GET")
        if rejected is not None:
            return rejected
        try:
            params = parse_params(HTTPCheckParams, request.params)
        except ValidationError as e:
            return TaskResult.failed(e)

        timeout = resolve_timeout(params, config)
        remaining = ctx.remaining()
        if remaining is not None:
            timeout = min(timeout, remaining)

        metric_set = MetricSet()
        url, method = params.target_url, params.method

        async with httpx.AsyncClient(
            transport=self._transport,
            follow_redirects=True,
            timeout=None,
        ) as client:
            try:
                outbound = build_probe_request(client, method, url)
            except (httpx.InvalidURL, httpx.UnsupportedProtocol, ValueError, TypeError) as e:
                _record(metric_set, url, method, error=e)
                return self._failed(
                    ProbeRequestError(f"failed to create request for target_url {url}: {e}"),
                    metric_set,
                    e,
                )

            start = time.perf_counter()
            try:
                response = await asyncio.wait_for(fetch(client, outbound), timeout=max(timeout, 0.0))
            except (asyncio.TimeoutError, httpx.TimeoutException) as e:
                duration = time.perf_counter() - start
                reason = str(e) or "context deadline exceeded"
                _record(metric_set, url, method, duration=duration, error=ProbeTimeout(reason))
                return self._failed(
                    ProbeTimeout(f"request to target_url {url} timed out: {reason}"), metric_set, e
                )
            except httpx.HTTPError as e:
                duration = time.perf_counter() - start
                _record(metric_set, url, method, duration=duration, error=e)
                return self._failed(
                    ProbeTransportFailure(f"request to target_url {url} failed: {e}"), metric_set, e
                )
            duration = time.perf_counter() - start

        up = 1.0 if response.status_code == params.expected_status else 0.0
        _log.debug(
            "HTTP check %s %s -> %d in %.3fs (expected %d)",
            method, url, response.status_code, duration, params.expected_status,
        )
        _record(metric_set, url, method, up=up, duration=duration, status_code=response.status_code)
        return TaskResult(body=metric_set.render(), status_code=200)

    @staticmethod
    def _failed(error: ProbeError, metric_set: MetricSet, cause: BaseException) -> TaskResult:
        error.__cause__ = cause
        return TaskResult.failed(error, metric_set.render())
