"""
Prometheus text format exporter for the unified exporter.
"""

import re
from typing import Iterator, List, Mapping

from prometheus_client.utils import floatToGoString

from shared.errors import EncodingError
from shared.logging import get_logger
from ..ingestion.models import LabelPair, MetricFamily, MetricType, Sample

CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"

METRIC_NAME_RE = re.compile(r"^[a-zA-Z_:][a-zA-Z0-9_:]*$")
LABEL_NAME_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


def _escape_help(text: str) -> str:
    return text.replace("\\", r"\\").replace("\n", r"\n")


def _escape_label_value(value: str) -> str:
    return value.replace("\\", r"\\").replace("\n", r"\n").replace('"', r'\"')


def _format_labels(family: str, labels: List[LabelPair]) -> str:
    formatted = []
    for name, value in labels:
        if not LABEL_NAME_RE.match(name):
            raise EncodingError(family, f"invalid label name {name!r}")
        formatted.append(f'{name}="{_escape_label_value(str(value))}"')
    return ",".join(formatted)


def _format_sample(family: str, sample: Sample) -> str:
    if not METRIC_NAME_RE.match(sample.name):
        raise EncodingError(family, f"invalid sample name {sample.name!r}")
    try:
        value = floatToGoString(sample.value)
    except (TypeError, ValueError):
        raise EncodingError(family, f"invalid value {sample.value!r} for {sample.name}")

    line = sample.name
    if sample.labels:
        line += "{" + _format_labels(family, sample.labels) + "}"
    line += " " + value
    if sample.timestamp is not None:
        line += f" {int(float(sample.timestamp) * 1000):d}"
    return line + "\n"


def encode_family(family: MetricFamily) -> str:
    """Render one metric family block in the text exposition format."""
    if not METRIC_NAME_RE.match(family.name or ""):
        raise EncodingError(str(family.name), "invalid metric family name")
    try:
        metric_type = MetricType(family.metric_type)
    except ValueError:
        raise EncodingError(family.name, f"invalid metric type {family.metric_type!r}")

    lines = []
    if family.documentation:
        lines.append(f"# HELP {family.name} {_escape_help(family.documentation)}\n")
    lines.append(f"# TYPE {family.name} {metric_type.value}\n")
    for sample in family.samples:
        lines.append(_format_sample(family.name, sample))
    return "".join(lines)


class PrometheusExporter:
    """Serializes merged metric families in ascending family-name order."""

    content_type = CONTENT_TYPE

    def __init__(self):
        self.logger = get_logger("exporter.exporters.prometheus")

    def iter_encoded(self, merged: Mapping[str, MetricFamily]) -> Iterator[bytes]:
        """Yield the encoded block of each family, sorted by name.

        An EncodingError propagates after the blocks already yielded.
        """
        for name in sorted(merged):
            yield encode_family(merged[name]).encode("utf-8")

    def serialize(self, merged: Mapping[str, MetricFamily]) -> bytes:
        """Encode all families into one body."""
        return b"".join(self.iter_encoded(merged))
