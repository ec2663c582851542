"""
Prometheus metrics for the node supervisor.

Minimal implementation without external dependencies.
Exposes metrics in Prometheus text format.
"""
from typing import Dict, Tuple, Union


Labels = Tuple[Tuple[str, str], ...]


def _format_labels(labels: Labels) -> str:
    if not labels:
        return ""
    pairs = ",".join(f'{key}="{value}"' for key, value in labels)
    return "{" + pairs + "}"


class _Metric:
    """Metric with one value per label set."""

    metric_type = "untyped"

    def __init__(self, name: str, description: str):
        self.name = name
        self.description = description
        self.values: Dict[Labels, float] = {}

    def get(self, **labels) -> float:
        return self.values.get(tuple(sorted(labels.items())), 0)

    def render(self) -> str:
        """Render in Prometheus text format."""
        lines = [
            f"# HELP {self.name} {self.description}",
            f"# TYPE {self.name} {self.metric_type}"
        ]
        for labels, value in sorted(self.values.items()):
            lines.append(f"{self.name}{_format_labels(labels)} {value}")
        return "\n".join(lines)


class Counter(_Metric):
    """Simple counter metric."""

    metric_type = "counter"

    def inc(self, amount: int = 1, **labels):
        """Increment counter."""
        key = tuple(sorted(labels.items()))
        self.values[key] = self.values.get(key, 0) + amount


class Gauge(_Metric):
    """Simple gauge metric."""

    metric_type = "gauge"

    def set(self, value: float, **labels):
        """Set gauge value."""
        self.values[tuple(sorted(labels.items()))] = value


class MetricsRegistry:
    """Registry for Prometheus metrics."""

    def __init__(self):
        self.metrics: Dict[str, Union[Counter, Gauge]] = {}

    def register_counter(self, name: str, description: str) -> Counter:
        """Register a counter metric."""
        counter = Counter(name, description)
        self.metrics[name] = counter
        return counter

    def register_gauge(self, name: str, description: str) -> Gauge:
        """Register a gauge metric."""
        gauge = Gauge(name, description)
        self.metrics[name] = gauge
        return gauge

    def render(self) -> str:
        """Render all metrics in Prometheus text format."""
        output = []
        for metric in self.metrics.values():
            output.append(metric.render())
        return "\n\n".join(output) + "\n"
