"""
Run the job runner HTTP server.

Usage:
  python -m job_runner [--config FILE] [--http.addr ADDR] [--http.port PORT] [--log-level LEVEL]
  Or set env: JOB_RUNNER_CONFIG_FILE, JOB_RUNNER_HTTP_ADDR, JOB_RUNNER_HTTP_PORT, JOB_RUNNER_LOG_LEVEL

Flags win over the environment, which wins over the config file.
"""

import argparse
import logging
import sys

import uvicorn

from job_runner.core.config import settings
from job_runner.core.config_store import ConfigStore
from job_runner.core.errors import ConfigError
from job_runner.main import create_app

logger = logging.getLogger(__name__)

KEEP_ALIVE_TIMEOUT_SEC = 60
SHUTDOWN_TIMEOUT_SEC = 15


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="job-runner",
        description="Run SQL queries and HTTP checks on demand, exposed as Prometheus metrics.",
    )
    parser.add_argument(
        "--config",
        default=settings.CONFIG_FILE,
        help="Path to config file (JSON)",
    )
    parser.add_argument(
        "--http.addr",
        dest="http_addr",
        default=settings.HTTP_ADDR or "",
        help="HTTP server address (overrides config)",
    )
    parser.add_argument(
        "--http.port",
        dest="http_port",
        type=int,
        default=settings.HTTP_PORT or 0,
        help="HTTP server port (overrides config)",
    )
    parser.add_argument(
        "--log-level",
        default=settings.LOG_LEVEL,
        help="Logging level (default INFO)",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        store = ConfigStore.from_file(args.config)
    except ConfigError as e:
        logger.error("Failed to load configuration: %s", e)
        sys.exit(1)

    overrides: dict[str, object] = {}
    if args.http_addr:
        overrides["http_addr"] = args.http_addr
    if args.http_port:
        overrides["http_port"] = args.http_port
    if overrides:
        store.replace(store.snapshot().model_copy(update=overrides))

    config = store.snapshot()
    logger.info("Starting Job Runner on %s:%d", config.http_addr, config.http_port)
    uvicorn.run(
        create_app(store),
        host=config.http_addr,
        port=config.http_port,
        log_level=args.log_level.lower(),
        timeout_keep_alive=KEEP_ALIVE_TIMEOUT_SEC,
        timeout_graceful_shutdown=SHUTDOWN_TIMEOUT_SEC,
    )
    logger.info("Server gracefully stopped")


if __name__ == "__main__":
    main()
