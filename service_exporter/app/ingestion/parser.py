"""
Decoding of the Prometheus text exposition format into MetricFamily objects.
"""

from collections import defaultdict, deque
from typing import Deque, Dict

from prometheus_client.parser import text_string_to_metric_families

from .models import MetricFamily, MetricType, Sample

# prometheus_client reports families without a TYPE line as "unknown".
_TYPE_MAP = {
    "counter": MetricType.COUNTER,
    "gauge": MetricType.GAUGE,
    "histogram": MetricType.HISTOGRAM,
    "summary": MetricType.SUMMARY,
    "unknown": MetricType.UNTYPED,
    "untyped": MetricType.UNTYPED,
}

_TOTAL = "_total"


def _declared_counter_names(text: str) -> Dict[str, Deque[str]]:
    """Map each counter base name to the names its TYPE lines declare, in order.

    prometheus_client reports both "# TYPE foo counter" and
    "# TYPE foo_total counter" as family "foo", so the declared name has to be
    read from the text itself.
    """
    declared: Dict[str, Deque[str]] = defaultdict(deque)
    for line in text.split("\n"):
        parts = line.strip().split(None, 3)
        if len(parts) != 4 or parts[0] != "#" or parts[1] != "TYPE" or parts[3] != "counter":
            continue
        name = parts[2]
        base = name[:-len(_TOTAL)] if name.endswith(_TOTAL) else name
        names = declared[base]
        if not names or names[-1] != name:
            names.append(name)
    return declared


def _counter_name(base: str, declared: Dict[str, Deque[str]]) -> str:
    names = declared.get(base)
    if not names:
        return base + _TOTAL
    # The last declaration also covers repeated TYPE lines of one family.
    return names.popleft() if len(names) > 1 else names[0]


def decode_metric_families(text: str) -> Dict[str, MetricFamily]:
    """Parse exposition text into a mapping of family name to MetricFamily.

    Family and sample names are the ones the text exposes. Samples of one
    name that the parser yields as separate families (untyped series spread
    over several lines) are folded into a single family.
    Raises ValueError on malformed input.
    """
    families: Dict[str, MetricFamily] = {}
    declared_counters = _declared_counter_names(text)

    for metric in text_string_to_metric_families(text):
        metric_type = _TYPE_MAP.get(metric.type, MetricType.UNTYPED)
        name = metric.name
        renamed_sample = None
        if metric_type == MetricType.COUNTER:
            name = _counter_name(metric.name, declared_counters)
            if name == metric.name:
                # The parser appended "_total" to the samples of this counter.
                renamed_sample = name + _TOTAL

        samples = [
            Sample(
                name=name if s.name == renamed_sample else s.name,
                labels=list(s.labels.items()),
                value=float(s.value),
                timestamp=float(s.timestamp) if s.timestamp is not None else None
            )
            for s in metric.samples
        ]

        existing = families.get(name)
        if existing is None:
            families[name] = MetricFamily(
                name=name,
                metric_type=metric_type,
                documentation=metric.documentation or "",
                samples=samples
            )
        else:
            existing.samples.extend(samples)

    return families
