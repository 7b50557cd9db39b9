"""
Core data models for the nomad resource collector.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Dict, List, Optional, Iterator, Tuple

from nomad_resource_collector.common.exception import CollectorError, DecodeError


# bytes -> MB, the same divisor is used for every memory-like quantity
BYTES_PER_MB = 1.049e6

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class MetricKind(Enum):
    """Usage metric kinds reconciled per job."""
    RSS = "rss"
    CACHE = "cache"
    TICKS = "ticks"

    @property
    def metric_name(self) -> str:
        return _USAGE_METRIC_NAMES[self]

    @property
    def is_memory(self) -> bool:
        return self is not MetricKind.TICKS


_USAGE_METRIC_NAMES = {
    MetricKind.RSS: "nomad_client_allocs_memory_rss_value",
    MetricKind.CACHE: "nomad_client_allocs_memory_cache_value",
    MetricKind.TICKS: "nomad_client_allocs_cpu_total_ticks_value",
}

CPU_ALLOCATED_METRIC = "nomad_client_allocs_cpu_allocated_value"
MEMORY_ALLOCATED_METRIC = "nomad_client_allocs_memory_allocated_value"


@dataclass(frozen=True)
class ClusterEndpoints:
    """An orchestrator endpoint paired with its metrics backend endpoint."""
    orchestrator_address: str
    metrics_address: str
    name: str = field(default="", compare=False)
    token: Optional[str] = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        if not self.name:
            object.__setattr__(self, "name", self.orchestrator_address)


@dataclass
class Job:
    """A job as listed in the orchestrator's job directory."""
    job_id: str
    name: str
    namespace: str = ""
    datacenters: List[str] = field(default_factory=list)


@dataclass
class Resource:
    """Requested resources of a task or allocation."""
    cpu: float = 0.0
    memory_mb: float = 0.0
    disk_mb: float = 0.0
    iops: float = 0.0


@dataclass
class Task:
    resources: Resource = field(default_factory=Resource)


@dataclass
class TaskGroup:
    """A replicated group of tasks; disk is requested here, not per task."""
    count: float = 0.0
    tasks: List[Task] = field(default_factory=list)
    ephemeral_disk_mb: float = 0.0


@dataclass
class JobSpec:
    task_groups: List[TaskGroup] = field(default_factory=list)


@dataclass
class MemCPU:
    """Live resource usage snapshot of one allocation (memory in bytes)."""
    rss: float = 0.0
    cache: float = 0.0
    swap: float = 0.0
    usage: float = 0.0
    max_usage: float = 0.0
    kernel_usage: float = 0.0
    kernel_max_usage: float = 0.0
    total_ticks: float = 0.0

    def is_empty(self) -> bool:
        return not any(asdict(self).values())

    def scaled(self, kind: MetricKind) -> float:
        """Value for a usage metric kind in output units (MB or ticks)."""
        if kind is MetricKind.RSS:
            return self.rss / BYTES_PER_MB
        if kind is MetricKind.CACHE:
            return self.cache / BYTES_PER_MB
        return self.total_ticks


@dataclass
class MetricSample:
    """One series of an instant query result: labels plus (timestamp, "number")."""
    labels: Dict[str, str]
    timestamp: float
    raw_value: str

    @property
    def alloc_id(self) -> Optional[str]:
        return self.labels.get("alloc_id")

    @property
    def value(self) -> float:
        try:
            return float(self.raw_value)
        except (TypeError, ValueError):
            raise DecodeError(f"Sample value {self.raw_value!r} is not a number")


class CoverageGap:
    """Allocations known to the orchestrator but missing from the metrics backend.

    Built fresh for every job and owned by that job's reconciliation only.
    """

    def __init__(self):
        self._gaps: Dict[str, List[MetricKind]] = {}

    def add(self, alloc_id: str, kind: MetricKind):
        kinds = self._gaps.setdefault(alloc_id, [])
        if kind not in kinds:
            kinds.append(kind)

    def items(self) -> Iterator[Tuple[str, List[MetricKind]]]:
        return iter(self._gaps.items())

    def __len__(self) -> int:
        return len(self._gaps)


@dataclass
class UsageTotals:
    rss_mb: float = 0.0
    cache_mb: float = 0.0
    ticks: float = 0.0

    def add(self, kind: MetricKind, value: float):
        if kind is MetricKind.RSS:
            self.rss_mb += value
        elif kind is MetricKind.CACHE:
            self.cache_mb += value
        else:
            self.ticks += value


@dataclass
class RequestTotals:
    cpu: float = 0.0
    memory_mb: float = 0.0
    disk_mb: float = 0.0
    iops: float = 0.0


@dataclass(frozen=True)
class JobRecord:
    """Consolidated requested and observed resources of one job for one cycle."""
    job_id: str
    name: str
    ticks_used: float
    cpu_requested: float
    rss_mb: float
    cache_mb: float
    memory_mb_requested: float
    disk_mb_requested: float
    iops_requested: float
    namespace: str
    datacenters: str
    collected_at: str

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


@dataclass
class ClusterResult:
    """Outcome of collecting one cluster."""
    cluster: ClusterEndpoints
    records: List[JobRecord] = field(default_factory=list)
    errors: List[CollectorError] = field(default_factory=list)
    duration: float = 0.0
