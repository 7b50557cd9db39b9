"""
测试辅助工具：内存中的假客户端与可路由的假 HTTP session
Shared fakes for collector tests: in-memory clients and a routed HTTP session.
"""

import json
from typing import Dict, List, Optional, Set
from urllib.parse import urlparse

import requests

from nomad_resource_collector.common.model import MetricKind, MemCPU, Job, JobSpec, Resource
from nomad_resource_collector.common.exception import TransportError


MB = 1.049e6


# ==================== 内存中的假客户端 ====================

class FakeMetrics:
    """Metrics backend stand-in with per-kind aggregates and covered allocation sets."""

    def __init__(self, aggregates: Optional[Dict[MetricKind, float]] = None,
                 covered: Optional[Dict[MetricKind, Set[str]]] = None,
                 failing: Optional[Set[MetricKind]] = None,
                 allocated: Optional[Dict[str, Dict[str, float]]] = None):
        self.aggregates = aggregates or {}
        self.covered = covered or {}
        self.failing = failing or set()
        self.allocated = allocated or {}
        self.aggregate_calls: List[MetricKind] = []
        self.covered_calls: List[MetricKind] = []

    def query_job_aggregate(self, kind, job_name):
        self.aggregate_calls.append(kind)
        if kind in self.failing:
            raise TransportError(f"HTTP 500 for {kind.value}")
        return self.aggregates.get(kind, 0.0)

    def list_covered_allocations(self, kind):
        self.covered_calls.append(kind)
        if kind in self.failing:
            raise TransportError(f"HTTP 500 for {kind.value}")
        return set(self.covered.get(kind, set()))

    def query_allocation_aggregate(self, metric_name, job_id):
        return dict(self.allocated.get(metric_name, {}))


class FakeNomad:
    """Orchestrator stand-in that records every live-stats lookup."""

    def __init__(self, allocations: Optional[Dict[str, Set[str]]] = None,
                 live_stats: Optional[Dict[str, Optional[MemCPU]]] = None,
                 specs: Optional[Dict[str, Optional[JobSpec]]] = None,
                 jobs: Optional[List[Job]] = None,
                 alloc_resources: Optional[Dict[str, Resource]] = None):
        self.allocations = allocations or {}
        self.live_stats = live_stats or {}
        self.specs = specs or {}
        self.jobs = jobs or []
        self.alloc_resources = alloc_resources or {}
        self.live_stats_calls: List[str] = []
        self.resource_calls: List[str] = []

    def list_jobs(self):
        return list(self.jobs)

    def list_allocations(self, job_id):
        return set(self.allocations.get(job_id, set()))

    def get_job_spec(self, job_id):
        return self.specs.get(job_id)

    def get_allocation_live_stats(self, alloc_id):
        self.live_stats_calls.append(alloc_id)
        return self.live_stats.get(alloc_id)

    def get_allocation_resources(self, alloc_id):
        self.resource_calls.append(alloc_id)
        return self.alloc_resources.get(alloc_id, Resource())


# ==================== HTTP 层 ====================

def make_response(status: int, payload=None, url: str = "http://fake/") -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response.url = url
    response.reason = "OK" if status < 400 else "Error"
    if isinstance(payload, (bytes, str)):
        response._content = payload if isinstance(payload, bytes) else payload.encode()
    else:
        response._content = json.dumps(payload).encode()
    return response


def prom_vector(*samples) -> dict:
    """Build an instant-query payload from (labels, value) pairs."""
    return {
        "status": "success",
        "data": {
            "resultType": "vector",
            "result": [{"metric": labels, "value": [1700000000.123, str(value)]}
                       for labels, value in samples],
        },
    }


class FakeSession:
    """requests.Session stand-in routing GETs by path (and PromQL query)."""

    def __init__(self, routes: Optional[Dict[str, object]] = None,
                 queries: Optional[Dict[str, object]] = None):
        self.headers: Dict[str, str] = {}
        self.routes = routes or {}
        self.queries = queries or {}
        self.calls: List[dict] = []
        self.closed = False

    def _lookup(self, table, key, url):
        entry = table.get(key)
        if entry is None:
            return make_response(404, {"error": "not found"}, url)
        if isinstance(entry, Exception):
            raise entry
        if isinstance(entry, requests.Response):
            return entry
        status, payload = entry if isinstance(entry, tuple) else (200, entry)
        return make_response(status, payload, url)

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append({"url": url, "params": params, "headers": headers, "timeout": timeout})
        parsed = urlparse(url)
        if parsed.path == "/api/v1/query":
            query = (params or {}).get("query")
            if query not in self.queries:
                # unknown series: the backend answers with an empty vector
                return make_response(200, prom_vector(), url)
            return self._lookup(self.queries, query, url)
        # "host:port/path" routes win over bare "/path" routes
        host_key = f"{parsed.netloc}{parsed.path}"
        if host_key in self.routes:
            return self._lookup(self.routes, host_key, url)
        return self._lookup(self.routes, parsed.path, url)

    def close(self):
        self.closed = True
