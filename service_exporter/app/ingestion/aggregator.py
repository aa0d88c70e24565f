"""
Merging of per-target results into one set of metric families.
"""

from typing import Any, Dict, Iterable, Mapping

from shared.logging import get_logger

from .collector import TargetResult
from .models import MetricFamily

MergedResult = Dict[str, MetricFamily]


def merge_results(results: Iterable[TargetResult]) -> MergedResult:
    """Join per-target families by name, concatenating their samples.

    Results are processed in the order given. Help text and type come from
    the first result that reported a family; later copies are not checked
    against it. Identical series from different targets are all kept.
    """
    merged: MergedResult = {}
    for result in results:
        if not result.ok:
            continue
        for name, family in result.families.items():
            existing = merged.get(name)
            if existing is None:
                merged[name] = family.copy()
            else:
                existing.samples.extend(family.samples)
    return merged


def sample_count(merged: Mapping[str, MetricFamily]) -> int:
    """Total number of samples across all families."""
    return sum(len(family.samples) for family in merged.values())


class MetricsAggregator:
    """Aggregates target results and keeps statistics about the last merge."""

    def __init__(self):
        self.logger = get_logger("exporter.aggregator")
        self.last_merge: Dict[str, Any] = {
            "targets": 0,
            "targets_failed": 0,
            "families": 0,
            "samples": 0
        }

    def aggregate(self, results: Iterable[TargetResult]) -> MergedResult:
        """Merge target results into one mapping of family name to family."""
        results = list(results)
        merged = merge_results(results)

        self.last_merge = {
            "targets": len(results),
            "targets_failed": sum(1 for r in results if not r.ok),
            "families": len(merged),
            "samples": sample_count(merged)
        }
        self.logger.debug("Target results merged", **self.last_merge)
        return merged

    def get_aggregation_stats(self) -> Dict[str, Any]:
        """Get statistics of the most recent merge."""
        return dict(self.last_merge)
