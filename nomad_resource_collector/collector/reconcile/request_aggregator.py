"""
Requested-resource aggregation for a job.
"""

from typing import List, Optional

from nomad_resource_collector.common.model import (
    JobSpec, RequestTotals, CPU_ALLOCATED_METRIC, MEMORY_ALLOCATED_METRIC,
)
from nomad_resource_collector.common.exception import CollectorError
from nomad_resource_collector.common.logging import get_logger
from nomad_resource_collector.collector.monitor.prometheus_client import PrometheusClient
from nomad_resource_collector.collector.connection.nomad_client import NomadClient
from nomad_resource_collector.collector.reconcile.usage_reconciler import scale_bytes_to_mb

logger = get_logger(__name__)


def aggregate_requests(spec: Optional[JobSpec]) -> RequestTotals:
    """Sum requested resources over a job specification.

    CPU, memory and IOPS are requested per task, disk per task group; every
    group's requests are multiplied by its replica count. A missing spec, or
    one without task groups, requests nothing.
    """
    totals = RequestTotals()
    if spec is None or not spec.task_groups:
        return totals

    for group in spec.task_groups:
        for task in group.tasks:
            totals.cpu += group.count * task.resources.cpu
            totals.memory_mb += group.count * task.resources.memory_mb
            totals.iops += group.count * task.resources.iops
        totals.disk_mb += group.count * group.ephemeral_disk_mb
    return totals


class RequestAggregator:
    """Requested resources from the job specification held by the orchestrator."""

    def __init__(self, orchestrator: NomadClient):
        self.orchestrator = orchestrator

    def _fetch_spec(self, job_id: str, errors: List[CollectorError]) -> Optional[JobSpec]:
        try:
            return self.orchestrator.get_job_spec(job_id)
        except CollectorError as e:
            errors.append(e.with_context(job_id=job_id, operation="job_spec"))
            logger.warning(f"Could not fetch specification of job {job_id}, requests reported as zero: {e}")
            return None

    def collect(self, job_id: str, errors: List[CollectorError]) -> RequestTotals:
        return aggregate_requests(self._fetch_spec(job_id, errors))


class AllocatedRequestReconciler(RequestAggregator):
    """Experimental: CPU and memory requests from per-allocation "allocated" metrics.

    Mirrors the usage reconciliation: allocations the metrics backend does not
    report yet are filled from the allocation's own resource block. Disk and
    IOPS are not exported as metrics and still come from the specification.
    Enabled with request_source: allocated.
    """

    def __init__(self, metrics: PrometheusClient, orchestrator: NomadClient):
        super().__init__(orchestrator)
        self.metrics = metrics

    def collect(self, job_id: str, errors: List[CollectorError]) -> RequestTotals:
        totals = aggregate_requests(self._fetch_spec(job_id, errors))

        try:
            allocations = self.orchestrator.list_allocations(job_id)
        except CollectorError as e:
            errors.append(e.with_context(job_id=job_id, operation="list_allocations"))
            logger.warning(f"Could not list allocations of job {job_id}, keeping spec-based requests: {e}")
            return totals

        try:
            cpu_by_alloc = self.metrics.query_allocation_aggregate(CPU_ALLOCATED_METRIC, job_id)
            memory_by_alloc = {alloc_id: scale_bytes_to_mb(value) for alloc_id, value in
                               self.metrics.query_allocation_aggregate(MEMORY_ALLOCATED_METRIC, job_id).items()}
        except CollectorError as e:
            errors.append(e.with_context(job_id=job_id, operation="metrics:allocated"))
            cpu_by_alloc, memory_by_alloc = {}, {}

        cpu, memory_mb = 0.0, 0.0
        for alloc_id in allocations:
            if alloc_id in cpu_by_alloc and alloc_id in memory_by_alloc:
                cpu += cpu_by_alloc[alloc_id]
                memory_mb += memory_by_alloc[alloc_id]
                continue
            try:
                resources = self.orchestrator.get_allocation_resources(alloc_id)
            except CollectorError as e:
                errors.append(e.with_context(job_id=job_id, operation=f"allocation:{alloc_id}"))
                continue
            cpu += cpu_by_alloc.get(alloc_id, resources.cpu)
            memory_mb += memory_by_alloc.get(alloc_id, resources.memory_mb)

        totals.cpu = cpu
        totals.memory_mb = memory_mb
        return totals
