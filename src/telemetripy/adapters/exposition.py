"""Prometheus exposition of a hub, including process-level families."""

from telemetripy.adapters.memory import PsutilMemorySource, process_families
from telemetripy.core.encoding.prometheus import MetricFamily, encode_families
from telemetripy.core.hub import MonitoringHub
from telemetripy.core.models import MetricSample

NO_CACHE = "no-cache, no-store, must-revalidate"


def render_metrics(hub: MonitoringHub, include_process: bool = True) -> str:
    """Render the exposition document served on ``/metrics``.

    Args:
        hub: Hub whose state is exposed.
        include_process: Add psutil process memory and uptime families.

    Returns:
        Prometheus text format.
    """
    extra: list[MetricFamily] = []
    if include_process:
        source = None
        if hub.performance is not None and isinstance(hub.performance.memory.source, PsutilMemorySource):
            source = hub.performance.memory.source
        extra = process_families(source)
    return hub.render_prometheus(extra)


def metrics_error_body(namespace: str) -> str:
    """Document served when rendering fails: a single ``<ns>_metrics_error`` gauge."""
    name = f"{namespace}_metrics_error"
    return encode_families(
        [
            MetricFamily(
                name=name,
                help="Error generating metrics",
                type="gauge",
                samples=[MetricSample(name=name, timestamp=0.0, value=1)],
            )
        ]
    )
