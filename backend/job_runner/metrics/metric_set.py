"""
Per-request metric accumulator rendered in the Prometheus text format.

A MetricSet maps (metric name, label pairs) to a float; setting an existing
key overwrites it. It implements the collector protocol (collect()) so
prometheus_client's exposition writer serializes it directly.
"""

import re
from collections.abc import Iterable, Iterator, Mapping

from prometheus_client import generate_latest
from prometheus_client.core import Metric

METRIC_NAME_RE = re.compile(r"^[a-zA-Z_:][a-zA-Z0-9_:]*$")

Labels = tuple[tuple[str, str], ...]


def is_valid_metric_name(name: str) -> bool:
    return bool(METRIC_NAME_RE.match(name or ""))


def _freeze(labels: Iterable[tuple[str, str]] | Mapping[str, str]) -> Labels:
    items = labels.items() if isinstance(labels, Mapping) else labels
    return tuple((str(k), str(v)) for k, v in items)


class MetricSet:
    """Gauge samples keyed by name + labels (label order as given)."""

    def __init__(self) -> None:
        self._samples: dict[tuple[str, Labels], float] = {}
        self._help: dict[str, str] = {}

    def set(
        self,
        name: str,
        labels: Iterable[tuple[str, str]] | Mapping[str, str] = (),
        value: float = 0.0,
    ) -> None:
        self._samples[(name, _freeze(labels))] = float(value)

    def get(
        self,
        name: str,
        labels: Iterable[tuple[str, str]] | Mapping[str, str] = (),
    ) -> float | None:
        return self._samples.get((name, _freeze(labels)))

    def describe(self, name: str, documentation: str) -> None:
        """Set the HELP text written for *name*."""
        self._help[name] = documentation

    def samples(self) -> list[tuple[str, Labels, float]]:
        return [(name, labels, value) for (name, labels), value in self._samples.items()]

    def __len__(self) -> int:
        return len(self._samples)

    def __bool__(self) -> bool:
        return bool(self._samples)

    def collect(self) -> Iterator[Metric]:
        families: dict[str, Metric] = {}
        for (name, labels), value in self._samples.items():
            family = families.get(name)
            if family is None:
                family = Metric(name, self._help.get(name, name), "gauge")
                families[name] = family
            family.add_sample(name, dict(labels), value)
        yield from families.values()

    def render(self) -> bytes:
        """Serialize every sample in the Prometheus text exposition format."""
        return generate_latest(self)  # type: ignore[arg-type]
