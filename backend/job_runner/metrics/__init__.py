"""
Per-request metrics: accumulator, SQL result generator, status gauge.
"""

from .generator import (
    DEFAULT_METRIC_PREFIX,
    DEFAULT_VALUE_COLUMN,
    MetricGenerator,
    to_float,
)
from .metric_set import MetricSet, is_valid_metric_name
from .status import record_query_status

__all__ = [
    "DEFAULT_METRIC_PREFIX",
    "DEFAULT_VALUE_COLUMN",
    "MetricGenerator",
    "MetricSet",
    "is_valid_metric_name",
    "record_query_status",
    "to_float",
]
