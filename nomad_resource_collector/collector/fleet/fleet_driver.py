"""
Fans cluster collection out over every configured cluster.
"""

import concurrent.futures
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from nomad_resource_collector.common.model import ClusterEndpoints, ClusterResult, JobRecord
from nomad_resource_collector.common.exception import CollectorError, ClusterCollectionError
from nomad_resource_collector.common.logging import get_logger
from nomad_resource_collector.control_plane.config import CollectorConfig
from nomad_resource_collector.collector.connection.http_client import JsonHttpClient
from nomad_resource_collector.collector.cluster.cluster_collector import ClusterCollector

logger = get_logger(__name__)


@dataclass
class FleetResult:
    """Flattened output of one collection cycle."""
    records: List[JobRecord] = field(default_factory=list)
    errors: List[CollectorError] = field(default_factory=list)
    cluster_results: List[ClusterResult] = field(default_factory=list)
    duration: float = 0.0


class FleetDriver:
    """Runs one collection task per cluster and joins them."""

    def __init__(self, config: CollectorConfig, http_client: Optional[JsonHttpClient] = None):
        self.config = config
        self.http_client = http_client or JsonHttpClient(
            timeout=config.request_timeout,
            pool_size=config.max_cluster_workers * config.job_workers,
        )

    def _collect(self, cluster: ClusterEndpoints) -> ClusterResult:
        return ClusterCollector(cluster, self.config, http_client=self.http_client).collect()

    def run_cycle(self) -> FleetResult:
        """Collect all clusters concurrently and wait for every one of them."""
        start_time = time.time()
        fleet_result = FleetResult()

        max_workers = min(self.config.max_cluster_workers, len(self.config.clusters)) or 1
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            future_to_index = {
                executor.submit(self._collect, cluster): index
                for index, cluster in enumerate(self.config.clusters)
            }
            results_by_index: Dict[int, ClusterResult] = {}

            for future in concurrent.futures.as_completed(future_to_index):
                index = future_to_index[future]
                cluster = self.config.clusters[index]
                try:
                    cluster_result = future.result()
                except Exception as e:
                    logger.exception(f"Failed to collect cluster {cluster.name}")
                    cluster_result = ClusterResult(cluster=cluster, errors=[
                        ClusterCollectionError(f"Collection crashed: {e}", cluster=cluster.name)
                    ])
                results_by_index[index] = cluster_result

        # 按配置顺序合并，保证输出稳定
        for index in range(len(self.config.clusters)):
            cluster_result = results_by_index[index]
            fleet_result.cluster_results.append(cluster_result)
            fleet_result.records.extend(cluster_result.records)
            fleet_result.errors.extend(cluster_result.errors)

        fleet_result.duration = time.time() - start_time
        logger.info(f"Collection cycle finished: {len(fleet_result.records)} record(s) from "
                    f"{len(self.config.clusters)} cluster(s), {len(fleet_result.errors)} error(s) "
                    f"in {fleet_result.duration:.2f}s")
        return fleet_result

    def close(self):
        self.http_client.close()
