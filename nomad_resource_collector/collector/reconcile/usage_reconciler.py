"""
Usage reconciliation: metrics backend aggregates plus live-stats fallback.

The metrics backend lags behind the orchestrator: freshly scheduled or just
stopped allocations may not be scraped yet. For each usage metric kind the
job-level aggregate covers the allocations the backend knows about; every
allocation the orchestrator lists but the backend does not report is a
coverage gap, and gaps are filled from the node agent's live stats. Each
allocation therefore contributes exactly once per metric kind.
"""

from typing import List, Optional, Set

from nomad_resource_collector.common.model import (
    BYTES_PER_MB, MetricKind, CoverageGap, UsageTotals,
)
from nomad_resource_collector.common.exception import CollectorError
from nomad_resource_collector.common.logging import get_logger
from nomad_resource_collector.collector.monitor.prometheus_client import PrometheusClient
from nomad_resource_collector.collector.connection.nomad_client import NomadClient

logger = get_logger(__name__)

USAGE_KINDS = (MetricKind.RSS, MetricKind.CACHE, MetricKind.TICKS)


def scale_bytes_to_mb(value: float) -> float:
    return value / BYTES_PER_MB


def scale(kind: MetricKind, value: float) -> float:
    """Convert a raw metric value to output units (MB for memory kinds)."""
    return scale_bytes_to_mb(value) if kind.is_memory else value


class UsageReconciler:
    """Computes rss/cache/ticks totals for one job at a time.

    Holds no per-job state; the coverage gap map lives inside reconcile(), so
    one instance can serve concurrent jobs.
    """

    def __init__(self, metrics: PrometheusClient, orchestrator: NomadClient):
        self.metrics = metrics
        self.orchestrator = orchestrator

    def reconcile(self, job_id: str, name: str, errors: List[CollectorError]) -> UsageTotals:
        totals = UsageTotals()
        gaps = CoverageGap()

        allocations = self._job_allocations(job_id, errors)

        for kind in USAGE_KINDS:
            aggregate = self._aggregate_and_detect_gaps(job_id, name, kind, allocations, gaps, errors)
            totals.add(kind, aggregate)

        # 所有指标的缺口都检测完之后才统一回退查询，每个分配最多查询一次
        if gaps:
            self._fill_gaps(job_id, gaps, totals, errors)

        logger.debug(f"Job {job_id}: rss={totals.rss_mb:.2f}MB cache={totals.cache_mb:.2f}MB "
                     f"ticks={totals.ticks:.0f} ({len(gaps)} allocation(s) via live stats)")
        return totals

    def _job_allocations(self, job_id: str, errors: List[CollectorError]) -> Optional[Set[str]]:
        try:
            return self.orchestrator.list_allocations(job_id)
        except CollectorError as e:
            errors.append(e.with_context(job_id=job_id, operation="list_allocations"))
            logger.warning(f"Could not list allocations of job {job_id}, usage limited to metrics aggregates: {e}")
            return None

    def _aggregate_and_detect_gaps(self, job_id: str, name: str, kind: MetricKind,
                                   allocations: Optional[Set[str]], gaps: CoverageGap,
                                   errors: List[CollectorError]) -> float:
        """Scaled job aggregate for one kind; uncovered allocations are added to gaps."""
        try:
            aggregate = scale(kind, self.metrics.query_job_aggregate(kind, name))
            covered = self.metrics.list_covered_allocations(kind) if allocations else set()
        except CollectorError as e:
            errors.append(e.with_context(job_id=job_id, operation=f"metrics:{kind.value}"))
            if allocations is None:
                return 0.0
            # 聚合值不可信时整体改用 live stats，避免重复或遗漏计数
            logger.warning(f"Metrics query for {kind.value} of job {job_id} failed, "
                           f"falling back to live stats for {len(allocations)} allocation(s): {e}")
            for alloc_id in allocations:
                gaps.add(alloc_id, kind)
            return 0.0

        if allocations:
            for alloc_id in allocations - covered:
                gaps.add(alloc_id, kind)
        return aggregate

    def _fill_gaps(self, job_id: str, gaps: CoverageGap, totals: UsageTotals,
                   errors: List[CollectorError]):
        for alloc_id, kinds in gaps.items():
            try:
                stats = self.orchestrator.get_allocation_live_stats(alloc_id)
            except CollectorError as e:
                errors.append(e.with_context(job_id=job_id, operation=f"live_stats:{alloc_id}"))
                logger.warning(f"Live stats for allocation {alloc_id} of job {job_id} failed: {e}")
                continue
            if stats is None:
                # already garbage-collected
                continue
            for kind in kinds:
                totals.add(kind, stats.scaled(kind))
