"""
Metrics aggregator for collection cycles.
"""

import time
from typing import Dict

from nomad_resource_collector.common.logging import get_logger
from nomad_resource_collector.collector.fleet.fleet_driver import FleetResult

logger = get_logger(__name__)


class MetricsAggregator:
    """Aggregates per-cycle statistics and exposes them in Prometheus format."""

    def __init__(self):
        self.metrics: Dict[str, float] = {}
        self.cycles = 0
        self.last_collection_time = 0.0

    def record_cycle(self, fleet_result: FleetResult) -> Dict[str, float]:
        """Collect metrics from a finished cycle."""
        self.cycles += 1
        self.last_collection_time = time.time()

        metrics = {
            "collector_cycles_total": float(self.cycles),
            "collector_cycle_duration_seconds": fleet_result.duration,
            "collector_records": float(len(fleet_result.records)),
            "collector_errors": float(len(fleet_result.errors)),
            "collector_last_cycle_timestamp": self.last_collection_time,
        }

        for cluster_result in fleet_result.cluster_results:
            # Replace invalid characters in metric names
            name = "".join(c if c.isalnum() else "_" for c in cluster_result.cluster.name)
            metrics[f"cluster_{name}_records"] = float(len(cluster_result.records))
            metrics[f"cluster_{name}_errors"] = float(len(cluster_result.errors))
            metrics[f"cluster_{name}_duration_seconds"] = cluster_result.duration

        self.metrics = metrics
        logger.debug(f"Collected metrics: {self.metrics}")
        return self.metrics

    def get_prometheus_format(self) -> str:
        """Get metrics in Prometheus exposition format."""
        lines = []
        lines.append("# HELP nomad_resource_collector_metrics Nomad Resource Collector Metrics")
        lines.append("# TYPE nomad_resource_collector_metrics gauge")

        for key, value in self.metrics.items():
            lines.append(f"{key} {value}")

        return "\n".join(lines)
