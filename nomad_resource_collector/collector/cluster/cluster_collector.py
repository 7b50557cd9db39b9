"""
Collects one JobRecord per job for a single cluster.
"""

import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import List, Optional, Tuple

from nomad_resource_collector.common.model import (
    ClusterEndpoints, ClusterResult, Job, JobRecord, TIMESTAMP_FORMAT,
)
from nomad_resource_collector.common.exception import CollectorError, ClusterCollectionError
from nomad_resource_collector.common.logging import get_logger
from nomad_resource_collector.control_plane.config import CollectorConfig, default_config
from nomad_resource_collector.collector.connection.http_client import JsonHttpClient, normalize_address
from nomad_resource_collector.collector.connection.nomad_client import NomadClient
from nomad_resource_collector.collector.monitor.prometheus_client import PrometheusClient
from nomad_resource_collector.collector.reconcile.usage_reconciler import UsageReconciler
from nomad_resource_collector.collector.reconcile.request_aggregator import (
    RequestAggregator, AllocatedRequestReconciler,
)

logger = get_logger(__name__)


class ClusterCollector:
    """Enumerates a cluster's jobs and builds their records.

    A failure inside one job degrades that job's fields to zero and is
    reported; only a failed job listing aborts the cluster.
    """

    def __init__(self, cluster: ClusterEndpoints, config: CollectorConfig,
                 http_client: Optional[JsonHttpClient] = None):
        self.cluster = cluster
        self.config = config
        self.http_client = http_client or JsonHttpClient(timeout=config.request_timeout, pool_size=config.job_workers)
        self.orchestrator = NomadClient(cluster.orchestrator_address, self.http_client, token=cluster.token)
        self.metrics = PrometheusClient(cluster.metrics_address, self.http_client)
        self.usage_reconciler = UsageReconciler(self.metrics, self.orchestrator)
        if config.request_source == "allocated":
            self.request_aggregator = AllocatedRequestReconciler(self.metrics, self.orchestrator)
        else:
            self.request_aggregator = RequestAggregator(self.orchestrator)

    def collect(self) -> ClusterResult:
        start_time = time.time()
        result = ClusterResult(cluster=self.cluster)

        try:
            jobs = self.orchestrator.list_jobs()
        except CollectorError as e:
            logger.error(f"Failed to list jobs on cluster {self.cluster.name}: {e}")
            result.errors.append(ClusterCollectionError(
                f"Could not list jobs: {e.message}", cluster=self.cluster.name, operation="list_jobs"))
            result.duration = time.time() - start_time
            return result

        logger.info(f"Collecting {len(jobs)} job(s) on cluster {self.cluster.name}")

        with ThreadPoolExecutor(max_workers=self.config.job_workers) as executor:
            outcomes = list(executor.map(self._collect_job_safely, jobs))

        for record, errors in outcomes:
            if record is not None:
                result.records.append(record)
            for error in errors:
                result.errors.append(error.with_context(cluster=self.cluster.name))

        result.duration = time.time() - start_time
        logger.info(f"Cluster {self.cluster.name}: {len(result.records)} record(s), "
                    f"{len(result.errors)} error(s) in {result.duration:.2f}s")
        return result

    def _collect_job_safely(self, job: Job) -> Tuple[Optional[JobRecord], List[CollectorError]]:
        errors: List[CollectorError] = []
        try:
            return self.collect_job(job, errors), errors
        except Exception as e:
            logger.exception(f"Unexpected failure collecting job {job.job_id} on {self.cluster.name}")
            errors.append(CollectorError(f"Unexpected failure: {e}", job_id=job.job_id, operation="collect_job"))
            return None, errors

    def collect_job(self, job: Job, errors: List[CollectorError]) -> JobRecord:
        """Build the record of one job; query failures are appended to errors."""
        logger.debug(f"Getting job {job.job_id}")
        usage = self.usage_reconciler.reconcile(job.job_id, job.name, errors)
        requested = self.request_aggregator.collect(job.job_id, errors)

        return JobRecord(
            job_id=job.job_id,
            name=job.name,
            ticks_used=usage.ticks,
            cpu_requested=requested.cpu,
            rss_mb=usage.rss_mb,
            cache_mb=usage.cache_mb,
            memory_mb_requested=requested.memory_mb,
            disk_mb_requested=requested.disk_mb,
            iops_requested=requested.iops,
            namespace=job.namespace,
            datacenters=",".join(job.datacenters),
            collected_at=datetime.now().strftime(TIMESTAMP_FORMAT),
        )


def collect_cluster(cluster_addr: str, metrics_addr: str,
                    config: Optional[CollectorConfig] = None,
                    http_client: Optional[JsonHttpClient] = None) -> Tuple[List[JobRecord], List[CollectorError]]:
    """Collect every job record of one cluster.

    Returns (records, errors); errors holds one entry per failed query.
    """
    config = config or default_config(cluster_addr, metrics_addr)
    cluster = ClusterEndpoints(
        orchestrator_address=normalize_address(cluster_addr),
        metrics_address=normalize_address(metrics_addr),
    )
    for configured in config.clusters:
        if configured == cluster:
            cluster = configured
            break
    owns_client = http_client is None
    collector = ClusterCollector(cluster, config, http_client=http_client)
    try:
        result = collector.collect()
    finally:
        if owns_client:
            collector.http_client.close()
    return result.records, result.errors
