"""
fleet-simulator: unit tests for telemetry drift
"""

from __future__ import annotations

import random

from fleet_simulator.domain.cluster_factory import create_cluster
from fleet_simulator.state.metrics import MIN_SM_CLOCK_MHZ, MetricsSimulator
from fleet_simulator.state.scenario_context import ScenarioContext
from fleet_simulator.state.store import SimulationStore


def test_tick_updates_every_gpu_through_the_mutator() -> None:
    store = SimulationStore(create_cluster(node_count=2, gpus_per_node=4))

    updated = MetricsSimulator(random.Random(1)).tick(store.get_cluster().nodes, store)

    assert updated == 8
    assert store.mutation_count == 8


def test_tick_on_readonly_context_updates_nothing() -> None:
    context = ScenarioContext("ro", create_cluster(node_count=1, gpus_per_node=2))
    context.set_readonly(True)

    assert MetricsSimulator(random.Random(1)).tick(context.get_cluster().nodes, context) == 0


def test_idle_gpu_cools_toward_idle_target() -> None:
    gpu = create_cluster(node_count=1, gpus_per_node=1).nodes[0].gpus[0]

    metrics = MetricsSimulator(random.Random(3)).next_metrics(gpu)

    assert 0.0 <= metrics["utilization"] <= 2.0  # type: ignore[operator]
    assert 50 <= metrics["memory_used"] <= 200  # type: ignore[operator]
    assert metrics["temperature"] < 45.0  # type: ignore[operator]
    assert metrics["clocks_sm"] == 1410


def test_busy_gpu_stays_near_its_load() -> None:
    gpu = create_cluster(node_count=1, gpus_per_node=1).nodes[0].gpus[0]
    gpu.allocated_job_id = 7
    gpu.utilization = 80.0

    metrics = MetricsSimulator(random.Random(5)).next_metrics(gpu)

    assert 79.5 <= metrics["utilization"] <= 80.5  # type: ignore[operator]
    assert metrics["power_draw"] > gpu.power_draw  # type: ignore[operator]


def test_hot_gpu_throttles_clocks() -> None:
    gpu = create_cluster(node_count=1, gpus_per_node=1).nodes[0].gpus[0]
    gpu.allocated_job_id = 1
    gpu.utilization = 100.0
    gpu.power_draw = 400.0
    gpu.temperature = 90.0

    metrics = MetricsSimulator(random.Random(9)).next_metrics(gpu, boost_clock_mhz=1410)

    assert MIN_SM_CLOCK_MHZ <= metrics["clocks_sm"] < 1410  # type: ignore[operator]


def test_seeded_simulators_are_deterministic() -> None:
    gpu = create_cluster(node_count=1, gpus_per_node=1).nodes[0].gpus[0]

    first = MetricsSimulator(random.Random(42)).next_metrics(gpu)
    second = MetricsSimulator(random.Random(42)).next_metrics(gpu)

    assert first == second
