"""
Upstream metrics collection for the unified exporter.

One fetch task per target is started for every scrape. Each task pushes
exactly one TargetResult onto a queue sized to the number of targets, and the
collector drains exactly that many results before returning.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional

import httpx

from shared.errors import TargetFetchError
from shared.logging import get_logger
from shared.metrics import MetricsCollector

from ..targets.registry import TargetRecord
from .models import MetricFamily
from .parser import decode_metric_families


@dataclass
class TargetResult:
    """Outcome of fetching one target during one scrape."""
    target: TargetRecord
    families: Dict[str, MetricFamily] = field(default_factory=dict)
    error: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


def inject_labels(families: Mapping[str, MetricFamily], labels: Mapping[str, str]) -> None:
    """Append every target label to every sample, in place.

    Existing sample labels are never overridden: a colliding name yields two
    pairs with the same name.
    """
    if not labels:
        return
    pairs = list(labels.items())
    for family in families.values():
        for sample in family.samples:
            sample.labels.extend(pairs)


class TargetCollector:
    """Fetches, decodes and labels metrics from every configured target."""

    def __init__(
        self,
        timeout_seconds: Optional[float] = 10.0,
        max_concurrency: int = 0,
        metrics: Optional[MetricsCollector] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.timeout_seconds = timeout_seconds or None
        self.max_concurrency = max_concurrency
        # Pool size follows max_concurrency; httpx would otherwise cap it at 100.
        self.limits = httpx.Limits(
            max_connections=max_concurrency or None,
            max_keepalive_connections=max_concurrency or None
        )
        self.metrics = metrics
        self.transport = transport
        self.logger = get_logger("exporter.collector")

    def _create_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout_seconds),
            limits=self.limits,
            transport=self.transport
        )

    async def collect(self, targets: Iterable[TargetRecord]) -> List[TargetResult]:
        """Fetch all targets concurrently and return one result per target.

        Results are ordered by completion, not by configuration order.
        """
        targets = list(targets)
        if not targets:
            return []

        queue: asyncio.Queue = asyncio.Queue(maxsize=len(targets))
        semaphore = asyncio.Semaphore(self.max_concurrency) if self.max_concurrency > 0 else None

        async with self._create_client() as client:
            tasks = [
                asyncio.create_task(self._run_fetch(client, target, queue, semaphore))
                for target in targets
            ]

            results = []
            for _ in targets:
                results.append(await queue.get())

            # Every task has already reported; this only reaps them.
            await asyncio.gather(*tasks)

        failed = sum(1 for r in results if not r.ok)
        self.logger.debug(
            "Collection finished",
            targets=len(targets),
            failed=failed
        )
        return results

    async def _run_fetch(
        self,
        client: httpx.AsyncClient,
        target: TargetRecord,
        queue: asyncio.Queue,
        semaphore: Optional[asyncio.Semaphore]
    ) -> None:
        try:
            if semaphore is not None:
                async with semaphore:
                    result = await self.fetch_target(client, target)
            else:
                result = await self.fetch_target(client, target)
        except Exception as e:
            self.logger.error(
                "Unexpected error fetching target",
                url=target.address,
                error=str(e),
                exc_info=True
            )
            result = TargetResult(target=target, error=str(e))
        queue.put_nowait(result)

    async def fetch_target(self, client: httpx.AsyncClient, target: TargetRecord) -> TargetResult:
        """Fetch one target. Failures are logged and reported, never raised."""
        start = time.perf_counter()
        try:
            families = await self._fetch_families(client, target)
            inject_labels(families, target.labels)
            result = TargetResult(target=target, families=families)
        except TargetFetchError as e:
            self.logger.warning(
                "Failed to fetch metrics",
                url=e.url,
                labels=target.labels_serialized,
                error=e.message,
                **e.details
            )
            result = TargetResult(target=target, error=e.message)
        result.duration_seconds = time.perf_counter() - start

        if self.metrics is not None:
            self.metrics.record_target_fetch(target.address, result.ok, result.duration_seconds)
        return result

    async def _fetch_families(self, client: httpx.AsyncClient, target: TargetRecord) -> Dict[str, MetricFamily]:
        # httpx times each connect/read/write step; this bounds the whole fetch.
        try:
            return await asyncio.wait_for(
                self._request_families(client, target),
                timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            raise TargetFetchError(target.address, f"timed out after {self.timeout_seconds}s")

    async def _request_families(self, client: httpx.AsyncClient, target: TargetRecord) -> Dict[str, MetricFamily]:
        try:
            response = await client.get(target.address)
        except httpx.HTTPError as e:
            raise TargetFetchError(target.address, f"request failed: {e!r}")

        if response.status_code != 200:
            raise TargetFetchError(
                target.address,
                f"unexpected status {response.status_code}",
                details={"status_code": response.status_code}
            )

        try:
            return decode_metric_families(response.text)
        except ValueError as e:
            raise TargetFetchError(target.address, f"invalid exposition text: {e}")
