"""Prometheus text exposition format encoder."""

import math
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Literal

from telemetripy.core.models import MetricSample

CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"

MetricType = Literal["counter", "gauge", "histogram", "summary", "untyped"]


@dataclass(frozen=True)
class MetricFamily:
    """A named metric with its help text, type and samples.

    Attributes:
        name: Family name, also the default sample name.
        help: One-line description for the ``# HELP`` line.
        type: Prometheus metric type.
        samples: Samples rendered under this family.
    """

    name: str
    help: str
    type: MetricType = "gauge"
    samples: list[MetricSample] = field(default_factory=list)


def escape_label_value(value: str) -> str:
    """Escape backslash, double quote and newline in a label value."""
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def _escape_help(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n")


def format_labels(labels: dict[str, str]) -> str:
    """Render ``{k="v",...}``, or an empty string without labels."""
    if not labels:
        return ""
    pairs = ",".join(f'{key}="{escape_label_value(str(value))}"' for key, value in labels.items())
    return "{" + pairs + "}"


def format_value(value: float) -> str:
    """Render a sample value; integral values have no decimal point."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if float(value).is_integer() and abs(value) < 1e15:
        return str(int(value))
    return repr(float(value))


def encode_families(families: Iterable[MetricFamily]) -> str:
    """Encode metric families to Prometheus text format.

    Each family renders as its ``# HELP`` and ``# TYPE`` lines, one line per
    sample and a blank separator line.

    Args:
        families: Families to render, in order.

    Returns:
        The exposition document. Empty string if there are no families.
    """
    lines: list[str] = []
    for family in families:
        lines.append(f"# HELP {family.name} {_escape_help(family.help)}")
        lines.append(f"# TYPE {family.name} {family.type}")
        for sample in family.samples:
            lines.append(f"{sample.name}{format_labels(sample.labels)} {format_value(sample.value)}")
        lines.append("")
    return "\n".join(lines)
