"""
Structured metric-family representation shared by the scrape pipeline.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

LabelPair = Tuple[str, str]


class MetricType(str, Enum):
    """Metric family types of the text exposition format."""
    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"
    SUMMARY = "summary"
    UNTYPED = "untyped"


@dataclass
class Sample:
    """One observation of a metric family.

    Labels are kept as ordered pairs rather than a dict: label injection may
    add a name the sample already carries, and both pairs are kept.
    """
    name: str
    labels: List[LabelPair] = field(default_factory=list)
    value: float = 0.0
    timestamp: Optional[float] = None

    def label_names(self) -> List[str]:
        return [name for name, _ in self.labels]


@dataclass
class MetricFamily:
    """A named group of samples sharing type and help text."""
    name: str
    metric_type: MetricType
    documentation: str = ""
    samples: List[Sample] = field(default_factory=list)

    def copy(self) -> "MetricFamily":
        """Shallow copy with its own sample list."""
        return MetricFamily(
            name=self.name,
            metric_type=self.metric_type,
            documentation=self.documentation,
            samples=list(self.samples)
        )
