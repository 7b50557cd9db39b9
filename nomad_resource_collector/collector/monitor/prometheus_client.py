"""
Prometheus-compatible metrics backend client (VictoriaMetrics, Prometheus).
"""
from typing import Dict, List, Set, Any

from nomad_resource_collector.common.model import MetricKind, MetricSample
from nomad_resource_collector.common.exception import DecodeError
from nomad_resource_collector.common.logging import get_logger
from nomad_resource_collector.collector.connection.http_client import JsonHttpClient

logger = get_logger(__name__)

QUERY_PATH = "/api/v1/query"


def quote_label_value(value: str) -> str:
    """Escape a value for use inside a double-quoted PromQL label matcher."""
    return str(value).replace("\\", "\\\\").replace('"', '\\"')


def job_aggregate_query(metric_name: str, job_name: str) -> str:
    return f'sum({metric_name}{{job="{quote_label_value(job_name)}"}}) by (job)'


def allocation_aggregate_query(metric_name: str, job_id: str) -> str:
    return f'sum({metric_name}{{job="{quote_label_value(job_id)}"}}) by (alloc_id)'


def decode_samples(payload: Any) -> List[MetricSample]:
    """Decode an instant query response into typed samples.

    Expected shape:
        {"status": "success",
         "data": {"resultType": "vector",
                  "result": [{"metric": {...}, "value": [<ts>, "<number>"]}]}}
    """
    if not isinstance(payload, dict):
        raise DecodeError(f"Query response is not an object: {type(payload).__name__}")
    if payload.get("status") != "success":
        raise DecodeError(f"Query failed with status {payload.get('status')!r}: {payload.get('error', '')}")

    data = payload.get("data")
    if not isinstance(data, dict) or not isinstance(data.get("result"), list):
        raise DecodeError("Query response is missing data.result")

    samples = []
    for item in data["result"]:
        if not isinstance(item, dict):
            raise DecodeError(f"Unexpected result entry: {item!r}")
        value = item.get("value")
        if not isinstance(value, list) or len(value) != 2 or not isinstance(value[1], str):
            raise DecodeError(f"Sample value must be [timestamp, \"number\"], got {value!r}")
        try:
            timestamp = float(value[0])
        except (TypeError, ValueError):
            raise DecodeError(f"Sample timestamp {value[0]!r} is not a number")
        labels = item.get("metric") or {}
        if not isinstance(labels, dict):
            raise DecodeError(f"Sample labels must be an object, got {labels!r}")
        samples.append(MetricSample(labels=labels, timestamp=timestamp, raw_value=value[1]))
    return samples


class PrometheusClient:
    """Issues instant queries against one metrics backend."""

    def __init__(self, metrics_address: str, http_client: JsonHttpClient):
        self.metrics_address = metrics_address
        self.http_client = http_client

    def query(self, query: str) -> List[MetricSample]:
        """Send an instant query and return its decoded samples."""
        logger.debug(f"Metrics query on {self.metrics_address}: {query}")
        payload = self.http_client.get_json(self.metrics_address, QUERY_PATH, params={"query": query})
        return decode_samples(payload)

    def query_job_aggregate(self, kind: MetricKind, job_name: str) -> float:
        """Sum of a usage metric over a job, raw units. 0.0 when no series is reported."""
        samples = self.query(job_aggregate_query(kind.metric_name, job_name))
        if not samples:
            return 0.0
        return samples[0].value

    def query_allocation_aggregate(self, metric_name: str, job_id: str) -> Dict[str, float]:
        """Per-allocation sums of a metric for one job, raw units."""
        result = {}
        for sample in self.query(allocation_aggregate_query(metric_name, job_id)):
            if sample.alloc_id:
                result[sample.alloc_id] = sample.value
        return result

    def list_covered_allocations(self, kind: MetricKind) -> Set[str]:
        """Every allocation ID the backend currently reports for a metric kind."""
        return {sample.alloc_id for sample in self.query(kind.metric_name) if sample.alloc_id}
