"""
fleet-simulator: unit tests for scenario contexts

File: tests/unit/state/test_scenario_context.py

Purpose
- Validate that scenario contexts are isolated sandboxes over private cluster copies.

What this test file should cover
- Mutations never leak into the base cluster, the global store or sibling contexts.
- One recorded mutation per successful write, none for missing targets.
- Reset, readonly mode, snapshot and JSON export.
- Context manager lifecycle and active-context tracking.
"""

from __future__ import annotations

import json

import pytest

from fleet_simulator.domain.cluster_factory import create_cluster
from fleet_simulator.domain.models import (
    ClusterConfig,
    HealthStatus,
    LinkStatus,
    SlurmNodeState,
    XIDEvent,
    XIDSeverity,
    utc_now,
)
from fleet_simulator.state.mutations import MutationType
from fleet_simulator.state.scenario_context import ScenarioContext, ScenarioContextManager
from fleet_simulator.state.store import SimulationStore


@pytest.fixture()
def base() -> ClusterConfig:
    return create_cluster(node_count=2, gpus_per_node=2)


def test_context_mutations_do_not_leak(base: ClusterConfig) -> None:
    store = SimulationStore(base)
    first = ScenarioContext("first", base)
    second = ScenarioContext("second", base)

    assert first.update_gpu("dgx-00", 0, {"temperature": 95.0})

    assert first.get_gpu("dgx-00", 0).temperature == 95.0  # type: ignore[union-attr]
    assert second.get_gpu("dgx-00", 0).temperature == 45.0  # type: ignore[union-attr]
    assert base.nodes[0].gpus[0].temperature == 45.0
    assert store.get_gpu("dgx-00", 0).temperature == 45.0  # type: ignore[union-attr]
    assert store.mutation_count == 0


def test_base_changes_after_creation_are_invisible(base: ClusterConfig) -> None:
    context = ScenarioContext("late", base)

    base.nodes[0].gpus[0].temperature = 10.0

    assert context.get_gpu("dgx-00", 0).temperature == 45.0  # type: ignore[union-attr]


def test_shared_update_mapping_is_not_aliased(base: ClusterConfig) -> None:
    store = SimulationStore(base)
    first = ScenarioContext("first", base)
    second = ScenarioContext("second", base)
    updates: dict[str, object] = {"xid_errors": []}
    event = XIDEvent(
        code=79,
        timestamp=utc_now(),
        description="GPU Fallen Off Bus",
        severity=XIDSeverity.CRITICAL,
    )

    assert first.update_gpu("dgx-00", 0, updates)
    assert second.update_gpu("dgx-00", 0, updates)
    assert store.update_gpu("dgx-00", 0, updates)
    assert first.add_xid_error("dgx-00", 0, event)

    first_gpu, second_gpu = first.get_gpu("dgx-00", 0), second.get_gpu("dgx-00", 0)
    global_gpu = store.get_gpu("dgx-00", 0)
    assert first_gpu is not None
    assert second_gpu is not None
    assert global_gpu is not None
    assert [xid.code for xid in first_gpu.xid_errors] == [79]
    assert second_gpu.xid_errors == []
    assert global_gpu.xid_errors == []
    assert first_gpu.xid_errors is not updates["xid_errors"]
    assert first.get_mutations()[0].data == {"xid_errors": []}


def test_recorded_mutation_data_is_detached(base: ClusterConfig) -> None:
    context = ScenarioContext("log", base)
    instances: list[object] = []

    assert context.update_gpu("dgx-00", 0, {"mig_instances": instances})
    instances.append("late")

    gpu = context.get_gpu("dgx-00", 0)
    assert gpu is not None
    assert gpu.mig_instances == []
    assert context.get_mutations()[0].data == {"mig_instances": []}


def test_each_successful_write_records_one_mutation(base: ClusterConfig) -> None:
    context = ScenarioContext("writes", base)
    event = XIDEvent(
        code=48, timestamp=utc_now(), description="DBE", severity=XIDSeverity.CRITICAL
    )

    assert context.update_gpu("dgx-00", "1", {"utilization": 50.0}, "cmd")
    assert context.add_xid_error("dgx-00", 0, event)
    assert context.update_node_health("dgx-01", "Critical")
    assert context.set_mig_mode("dgx-00", 0, True)
    assert context.set_slurm_state("dgx-01", "drain", "bad gpu")
    assert context.update_nvlink("dgx-00", 0, 2, {"status": "Down"})
    assert context.update_ecc("dgx-00", 0, single_bit=4)

    assert context.get_mutation_count() == 7
    assert [mutation.type for mutation in context.get_mutations()] == [
        MutationType.GPU_UPDATE,
        MutationType.XID_ERROR,
        MutationType.NODE_HEALTH,
        MutationType.MIG_MODE,
        MutationType.SLURM_STATE,
        MutationType.NVLINK_UPDATE,
        MutationType.ECC_UPDATE,
    ]
    assert context.get_mutations()[0].gpu_id == 1
    assert context.get_mutations()[0].command == "cmd"
    assert context.get_diff() == context.get_mutations()

    node = context.get_node("dgx-01")
    assert node is not None
    assert node.health_status is HealthStatus.CRITICAL
    assert node.slurm_state is SlurmNodeState.DRAIN
    assert node.slurm_reason == "bad gpu"
    gpu = context.get_gpu("dgx-00", 0)
    assert gpu is not None
    assert gpu.mig_mode
    assert gpu.nvlinks[2].status is LinkStatus.DOWN
    assert gpu.ecc_errors.single_bit == 4
    assert gpu.ecc_errors.aggregated.single_bit == 4
    assert gpu.xid_errors[-1].code == 48


def test_missing_targets_are_noops(base: ClusterConfig) -> None:
    context = ScenarioContext("missing", base)

    assert not context.update_gpu("dgx-99", 0, {"temperature": 1.0})
    assert not context.update_gpu("dgx-00", 9, {"temperature": 1.0})
    assert not context.update_node_health("dgx-99", "OK")
    assert not context.set_slurm_state("dgx-99", "idle")
    assert not context.update_nvlink("dgx-00", 0, 99, {"status": "Down"})
    assert not context.update_ecc("dgx-00", 9, double_bit=1)
    assert context.get_mutation_count() == 0


def test_invalid_updates_raise(base: ClusterConfig) -> None:
    context = ScenarioContext("invalid", base)

    with pytest.raises(ValueError, match="unknown or immutable fields"):
        context.update_gpu("dgx-00", 0, {"fan_speed": 3})
    with pytest.raises(ValueError):
        context.set_slurm_state("dgx-00", "exploded")
    assert context.get_mutation_count() == 0


def test_reset_restores_baseline(base: ClusterConfig) -> None:
    context = ScenarioContext("reset", base)
    context.update_gpu("dgx-00", 0, {"temperature": 95.0})
    context.set_slurm_state("dgx-00", "down", "maintenance")

    context.reset()

    assert context.get_mutation_count() == 0
    assert context.get_gpu("dgx-00", 0).temperature == 45.0  # type: ignore[union-attr]
    assert context.get_node("dgx-00").slurm_state is SlurmNodeState.IDLE  # type: ignore[union-attr]

    assert context.update_gpu("dgx-00", 0, {"temperature": 60.0})
    context.reset()
    assert context.get_gpu("dgx-00", 0).temperature == 45.0  # type: ignore[union-attr]


def test_readonly_context_rejects_writes(base: ClusterConfig) -> None:
    context = ScenarioContext("frozen", base)
    context.update_gpu("dgx-00", 0, {"temperature": 70.0})
    context.set_readonly(True)

    assert context.is_readonly()
    assert not context.update_gpu("dgx-00", 0, {"temperature": 95.0})
    assert not context.set_mig_mode("dgx-00", 0, True)
    context.reset()

    assert context.get_gpu("dgx-00", 0).temperature == 70.0  # type: ignore[union-attr]
    assert context.get_mutation_count() == 1

    context.set_readonly(False)
    assert context.update_gpu("dgx-00", 0, {"temperature": 95.0})


def test_snapshot_is_detached(base: ClusterConfig) -> None:
    context = ScenarioContext("snap", base)
    snapshot = context.snapshot()

    context.update_gpu("dgx-00", 0, {"temperature": 99.0})

    assert snapshot.nodes[0].gpus[0].temperature == 45.0


def test_export_is_json_with_mutations(base: ClusterConfig) -> None:
    context = ScenarioContext("export-me", base)
    context.update_gpu("dgx-00", 0, {"health_status": HealthStatus.WARNING}, "fault:thermal")

    payload = json.loads(context.export())

    assert set(payload) == {"cluster", "mutations", "runtime", "scenarioId"}
    assert payload["scenarioId"] == "export-me"
    assert payload["cluster"]["nodes"][0]["gpus"][0]["health_status"] == "Warning"
    mutation = payload["mutations"][0]
    assert mutation["type"] == "gpu-update"
    assert mutation["nodeId"] == "dgx-00"
    assert mutation["gpuId"] == 0
    assert mutation["data"] == {"health_status": "Warning"}
    assert mutation["command"] == "fault:thermal"
    assert mutation["timestamp"].endswith("Z")
    assert isinstance(payload["runtime"], int)


def test_empty_scenario_id_is_rejected(base: ClusterConfig) -> None:
    with pytest.raises(ValueError, match="scenario_id must not be empty"):
        ScenarioContext("  ", base)


def test_manager_lifecycle(base: ClusterConfig) -> None:
    manager = ScenarioContextManager()

    first = manager.create_context("b", base)
    manager.create_context("a", base)
    manager.set_active_context("b")

    assert manager.context_ids() == ("a", "b")
    assert manager.active_context_id == "b"
    assert manager.get_active_context() is first
    assert manager.get_or_create_context("b", base) is first
    assert manager.get_context("zzz") is None

    assert manager.delete_context("b")
    assert manager.active_context_id is None
    assert manager.get_active_context() is None
    assert not manager.delete_context("b")

    manager.clear_all()
    assert manager.context_ids() == ()


def test_manager_create_replaces_existing(base: ClusterConfig) -> None:
    manager = ScenarioContextManager()
    original = manager.create_context("lab", base)
    original.update_gpu("dgx-00", 0, {"temperature": 90.0})

    replacement = manager.create_context("lab", base)

    assert replacement is not original
    assert replacement.get_mutation_count() == 0
    assert manager.get_context("lab") is replacement


def test_manager_rejects_unknown_active_id(base: ClusterConfig) -> None:
    manager = ScenarioContextManager()

    with pytest.raises(KeyError):
        manager.set_active_context("ghost")
    manager.set_active_context(None)
    assert manager.get_active_context() is None
