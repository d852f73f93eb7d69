"""
Task handlers served over HTTP: /sql and /http_check.
"""

from job_runner.tasks.base import TaskHandler, TaskRequest, TaskResult
from job_runner.tasks.dispatcher import TaskDispatcher, default_handlers
from job_runner.tasks.http_check import HTTPCheckTaskHandler
from job_runner.tasks.sql import SQLTaskHandler

__all__ = [
    "HTTPCheckTaskHandler",
    "SQLTaskHandler",
    "TaskDispatcher",
    "TaskHandler",
    "TaskRequest",
    "TaskResult",
    "default_handlers",
]
