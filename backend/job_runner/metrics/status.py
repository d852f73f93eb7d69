"""
Query status gauge: one sample per SQL task, 1 on success and 0 on failure.
"""

from .metric_set import MetricSet


def record_query_status(
    metric_set: MetricSet,
    metric_name: str,
    query: str,
    error: BaseException | None = None,
) -> None:
    """Set `<metric_name>{query="..."[,error="..."]}` to 1, or 0 when *error* is given."""
    labels = [("query", query)]
    if error is not None:
        labels.append(("error", str(error)))
    metric_set.describe(metric_name, "Status of the SQL query (1 = success, 0 = failure).")
    metric_set.set(metric_name, labels, 0.0 if error is not None else 1.0)
