#!/usr/bin/env python3
"""
请求资源汇总测试
Requested resources derived from the job specification.
"""

import sys
import os
import pytest
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from nomad_resource_collector.common.model import (
    JobSpec, TaskGroup, Task, Resource, RequestTotals,
    CPU_ALLOCATED_METRIC, MEMORY_ALLOCATED_METRIC,
)
from nomad_resource_collector.common.exception import DecodeError
from nomad_resource_collector.collector.reconcile.request_aggregator import (
    aggregate_requests, RequestAggregator, AllocatedRequestReconciler,
)
from collector_fakes import FakeMetrics, FakeNomad, MB


# ==================== 辅助函数 ====================

def task(cpu=0.0, memory_mb=0.0, iops=0.0):
    return Task(resources=Resource(cpu=cpu, memory_mb=memory_mb, iops=iops))


def sample_spec():
    return JobSpec(task_groups=[
        TaskGroup(count=2, tasks=[task(500, 256, 10), task(100, 64, 0)], ephemeral_disk_mb=300),
        TaskGroup(count=3, tasks=[task(1000, 1024, 5)], ephemeral_disk_mb=150),
    ])


# ==================== 测试用例 ====================

class TestAggregateRequests:
    """纯函数汇总 - pure aggregation over the spec"""

    def test_sample_spec(self):
        totals = aggregate_requests(sample_spec())
        assert totals.cpu == 2 * 600 + 3 * 1000
        assert totals.memory_mb == 2 * 320 + 3 * 1024
        assert totals.iops == 2 * 10 + 3 * 5
        assert totals.disk_mb == 2 * 300 + 3 * 150

    def test_disk_is_group_level_not_per_task(self):
        spec = JobSpec(task_groups=[
            TaskGroup(count=2, tasks=[task(), task(), task()], ephemeral_disk_mb=500)
            for _ in range(3)
        ])
        assert aggregate_requests(spec).disk_mb == 3000

    def test_idempotent(self):
        spec = sample_spec()
        assert aggregate_requests(spec) == aggregate_requests(spec)

    def test_absent_spec_is_zero(self):
        assert aggregate_requests(None) == RequestTotals()

    def test_spec_without_task_groups_is_zero(self):
        assert aggregate_requests(JobSpec()) == RequestTotals()

    def test_zero_count_group_requests_nothing(self):
        spec = JobSpec(task_groups=[TaskGroup(count=0, tasks=[task(500, 256)], ephemeral_disk_mb=300)])
        assert aggregate_requests(spec) == RequestTotals()


class TestRequestAggregator:
    """从编排器获取 spec - fetching the spec"""

    def test_collect_uses_spec(self):
        nomad = FakeNomad(specs={"job-1": sample_spec()})
        errors = []
        totals = RequestAggregator(nomad).collect("job-1", errors)
        assert totals.cpu == 4200
        assert errors == []

    def test_missing_spec_is_not_an_error(self):
        errors = []
        totals = RequestAggregator(FakeNomad()).collect("ghost", errors)
        assert totals == RequestTotals()
        assert errors == []

    def test_spec_fetch_failure_yields_zeros_and_error(self):
        nomad = FakeNomad()

        def broken(job_id):
            raise DecodeError("unexpected payload")

        nomad.get_job_spec = broken
        errors = []
        totals = RequestAggregator(nomad).collect("job-1", errors)

        assert totals == RequestTotals()
        assert len(errors) == 1
        assert errors[0].operation == "job_spec"


class TestAllocatedRequestReconciler:
    """实验性：按分配汇总 - per-allocation allocated metrics with spec fallback"""

    def test_uncovered_allocation_filled_from_allocation_resources(self):
        metrics = FakeMetrics(allocated={
            CPU_ALLOCATED_METRIC: {"a1": 500.0, "a2": 500.0},
            MEMORY_ALLOCATED_METRIC: {"a1": 256 * MB, "a2": 256 * MB},
        })
        nomad = FakeNomad(
            allocations={"job-1": {"a1", "a2", "a3"}},
            specs={"job-1": sample_spec()},
            alloc_resources={"a3": Resource(cpu=200.0, memory_mb=128.0)},
        )
        totals = AllocatedRequestReconciler(metrics, nomad).collect("job-1", [])

        assert totals.cpu == pytest.approx(1200.0)
        assert totals.memory_mb == pytest.approx(640.0)
        assert totals.disk_mb == 2 * 300 + 3 * 150
        assert nomad.resource_calls == ["a3"]

    def test_no_allocations_means_no_cpu_or_memory(self):
        nomad = FakeNomad(allocations={"job-1": set()}, specs={"job-1": sample_spec()})
        totals = AllocatedRequestReconciler(FakeMetrics(), nomad).collect("job-1", [])
        assert totals.cpu == 0.0
        assert totals.memory_mb == 0.0
        assert totals.iops == 2 * 10 + 3 * 5
