"""
SQL task: run a caller-supplied query and expose the rows as gauges.

GET /sql?type=...&db=...&query=...[&username&password&host&port]
        [&value_column=value][&metric_prefix=<config query_metric_name>]

Every outcome past parameter validation carries the query status gauge in
the body. Status codes: 200 success, 400 connection string could not be
built, 500 connection / query / generation / deadline failure.
"""

import asyncio
import logging

from job_runner.core.config import AppConfig
from job_runner.core.context import TaskContext
from job_runner.core.errors import (
    DSNBuildError,
    GenerationError,
    JobRunnerError,
    ValidationError,
)
from job_runner.core.pool import build_dsn, open_connection
from job_runner.engines.sql import execute_query
from job_runner.metrics import MetricGenerator, MetricSet, record_query_status
from job_runner.schemas import SQLTaskParams, parse_params

from .base import TaskHandler, TaskRequest, TaskResult

_log = logging.getLogger(__name__)


def _failure(
    metric_set: MetricSet,
    status_metric: str,
    query: str,
    error: JobRunnerError,
    summary: str,
) -> TaskResult:
    record_query_status(metric_set, status_metric, query, error)
    wrapped = type(error)(f"{summary}: {error}")
    wrapped.__cause__ = error
    return TaskResult.failed(wrapped, metric_set.render())


def run_sql_task(params: SQLTaskParams, config: AppConfig, ctx: TaskContext) -> TaskResult:
    """
    Blocking pipeline: build DSN -> open pool -> execute -> generate -> status.

    Runs in a worker thread. *ctx* bounds connection setup and the query.
    """
    metric_set = MetricSet()
    status_metric = config.query_status_metric_name
    query = params.query

    try:
        dsn = build_dsn(params.type, params.username, params.password, params.host, params.port, params.db)
    except DSNBuildError as e:
        return _failure(metric_set, status_metric, query, e, "failed to build DSN")

    try:
        conn = open_connection(dsn, config.connection_options, ctx)
    except JobRunnerError as e:
        return _failure(metric_set, status_metric, query, e, "failed to connect to database")

    with conn:
        try:
            cursor = execute_query(conn, query, ctx)
        except JobRunnerError as e:
            return _failure(metric_set, status_metric, query, e, "failed to execute query")

        generator = MetricGenerator(params.metric_prefix or config.query_metric_name, params.value_column)
        with cursor:
            try:
                emitted = generator.generate(metric_set, cursor)
            except JobRunnerError as e:
                return _failure(metric_set, status_metric, query, e, "failed to generate metrics")
            except Exception as e:
                return _failure(
                    metric_set, status_metric, query, GenerationError(str(e)), "failed to generate metrics"
                )

    _log.debug("SQL task produced %d sample(s) for %s", emitted, params.type)
    record_query_status(metric_set, status_metric, query)
    return TaskResult(body=metric_set.render(), status_code=200)


class SQLTaskHandler(TaskHandler):
    async def handle(self, ctx: TaskContext, request: TaskRequest, config: AppConfig) -> TaskResult:
        rejected = self.reject_method(request)
        if rejected is not None:
            return rejected
        try:
            params = parse_params(SQLTaskParams, request.params)
        except ValidationError as e:
            return TaskResult.failed(e)

        timeout = config.connection_options.query_timeout.total_seconds()
        query_ctx = ctx.with_timeout(timeout if timeout > 0 else None)
        try:
            return await asyncio.to_thread(run_sql_task, params, config, query_ctx)
        except asyncio.CancelledError:
            # client went away: interrupt the driver, the thread unwinds on its own
            query_ctx.cancel()
            raise
        finally:
            query_ctx.close()
