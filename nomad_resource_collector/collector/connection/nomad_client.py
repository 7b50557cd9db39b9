"""
Read-only client for the Nomad HTTP API.
"""
from typing import Any, Dict, List, Optional, Set

from nomad_resource_collector.common.model import Job, JobSpec, TaskGroup, Task, Resource, MemCPU
from nomad_resource_collector.common.exception import DecodeError
from nomad_resource_collector.common.logging import get_logger
from nomad_resource_collector.collector.connection.http_client import JsonHttpClient

logger = get_logger(__name__)


def _number(data: Dict[str, Any], key: str) -> float:
    value = data.get(key)
    if value is None:
        return 0.0
    if isinstance(value, bool):
        raise DecodeError(f"Field {key} is not a number: {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise DecodeError(f"Field {key} is not a number: {value!r}")


def _object(data: Any, what: str) -> Dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise DecodeError(f"{what} must be an object, got {type(data).__name__}")
    return data


def _list(data: Any, what: str) -> List[Any]:
    if data is None:
        return []
    if not isinstance(data, list):
        raise DecodeError(f"{what} must be a list, got {type(data).__name__}")
    return data


def parse_resource(data: Any) -> Resource:
    data = _object(data, "Resources")
    return Resource(
        cpu=_number(data, "CPU"),
        memory_mb=_number(data, "MemoryMB"),
        disk_mb=_number(data, "DiskMB"),
        iops=_number(data, "IOPS"),
    )


def parse_job(data: Any) -> Job:
    data = _object(data, "Job")
    job_id = data.get("ID")
    if not job_id:
        raise DecodeError(f"Job entry has no ID: {data!r}")
    summary = _object(data.get("JobSummary"), "JobSummary")
    return Job(
        job_id=job_id,
        name=data.get("Name") or job_id,
        namespace=summary.get("Namespace") or data.get("Namespace") or "",
        datacenters=[str(dc) for dc in _list(data.get("Datacenters"), "Datacenters")],
    )


def parse_job_spec(data: Any) -> JobSpec:
    data = _object(data, "Job")
    task_groups = []
    for group in _list(data.get("TaskGroups"), "TaskGroups"):
        group = _object(group, "TaskGroup")
        tasks = [Task(resources=parse_resource(_object(task, "Task").get("Resources")))
                 for task in _list(group.get("Tasks"), "Tasks")]
        disk = _object(group.get("EphemeralDisk"), "EphemeralDisk")
        task_groups.append(TaskGroup(
            count=_number(group, "Count"),
            tasks=tasks,
            ephemeral_disk_mb=_number(disk, "SizeMB"),
        ))
    return JobSpec(task_groups=task_groups)


def parse_live_stats(data: Any) -> Optional[MemCPU]:
    data = _object(data, "AllocResourceUsage")
    usage = _object(data.get("ResourceUsage"), "ResourceUsage")
    memory = _object(usage.get("MemoryStats"), "MemoryStats")
    cpu = _object(usage.get("CpuStats"), "CpuStats")
    stats = MemCPU(
        rss=_number(memory, "RSS"),
        cache=_number(memory, "Cache"),
        swap=_number(memory, "Swap"),
        usage=_number(memory, "Usage"),
        max_usage=_number(memory, "MaxUsage"),
        kernel_usage=_number(memory, "KernelUsage"),
        kernel_max_usage=_number(memory, "KernelMaxUsage"),
        total_ticks=_number(cpu, "TotalTicks"),
    )
    return None if stats.is_empty() else stats


class NomadClient:
    """Queries one Nomad cluster for jobs, specs, allocations and live stats."""

    def __init__(self, orchestrator_address: str, http_client: JsonHttpClient, token: Optional[str] = None):
        self.orchestrator_address = orchestrator_address
        self.http_client = http_client
        self.headers = {"X-Nomad-Token": token} if token else None

    def _get(self, path: str, allow_missing: bool = False) -> Any:
        return self.http_client.get_json(self.orchestrator_address, path,
                                         headers=self.headers, allow_missing=allow_missing)

    def list_jobs(self) -> List[Job]:
        """Full job directory of the cluster."""
        return [parse_job(entry) for entry in _list(self._get("/v1/jobs"), "Jobs")]

    def get_job_spec(self, job_id: str) -> Optional[JobSpec]:
        """Job specification, or None if the job no longer resolves."""
        data = self._get(f"/v1/job/{job_id}", allow_missing=True)
        if data is None:
            logger.debug(f"Job {job_id} has no specification")
            return None
        return parse_job_spec(data)

    def list_allocations(self, job_id: str) -> Set[str]:
        """Current allocation IDs of a job."""
        data = self._get(f"/v1/job/{job_id}/allocations", allow_missing=True)
        alloc_ids = set()
        for entry in _list(data, "Allocations"):
            alloc_id = _object(entry, "Allocation").get("ID")
            if alloc_id:
                alloc_ids.add(alloc_id)
        return alloc_ids

    def get_allocation_live_stats(self, alloc_id: str) -> Optional[MemCPU]:
        """Live usage from the node agent, None when the allocation was garbage-collected."""
        data = self._get(f"/v1/client/allocation/{alloc_id}/stats", allow_missing=True)
        if data is None:
            return None
        return parse_live_stats(data)

    def get_allocation_resources(self, alloc_id: str) -> Resource:
        """Requested-resource block recorded on one allocation."""
        data = self._get(f"/v1/allocation/{alloc_id}", allow_missing=True)
        if data is None:
            return Resource()
        return parse_resource(_object(data, "Allocation").get("Resources"))
