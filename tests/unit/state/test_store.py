"""
fleet-simulator: unit tests for the global simulation store
"""

from __future__ import annotations

from fleet_simulator.domain.cluster_factory import create_cluster
from fleet_simulator.domain.models import (
    HealthStatus,
    MIGInstance,
    SlurmNodeState,
    XIDEvent,
    utc_now,
)
from fleet_simulator.state.store import SimulationStore


def test_default_store_holds_default_cluster() -> None:
    store = SimulationStore()

    assert len(store.get_cluster().nodes) == 8
    assert store.get_node("dgx-07") is not None
    assert store.get_gpu("dgx-00", "7") is not None
    assert store.mutation_count == 0


def test_writes_apply_in_place_and_count() -> None:
    store = SimulationStore(create_cluster(node_count=1, gpus_per_node=1))

    assert store.update_gpu("dgx-00", 0, {"temperature": 77.0})
    assert store.add_xid_error(
        "dgx-00", 0, XIDEvent(code=79, timestamp=utc_now(), description="off bus")
    )
    assert store.update_node_health("dgx-00", HealthStatus.WARNING)
    assert store.set_mig_mode("dgx-00", 0, True)
    assert store.set_slurm_state("dgx-00", SlurmNodeState.DRAIN, "xid")
    assert store.update_nvlink("dgx-00", 0, 0, {"rx_errors": 5})
    assert store.update_ecc("dgx-00", 0, double_bit=2)

    assert store.mutation_count == 7
    gpu = store.get_gpu("dgx-00", 0)
    assert gpu is not None
    assert gpu.temperature == 77.0
    assert gpu.nvlinks[0].rx_errors == 5
    assert gpu.ecc_errors.double_bit == 2


def test_missing_targets_are_not_counted() -> None:
    store = SimulationStore(create_cluster(node_count=1, gpus_per_node=1))

    assert not store.update_gpu("dgx-00", 3, {"temperature": 1.0})
    assert not store.set_slurm_state("dgx-42", "idle")
    assert store.mutation_count == 0


def test_set_cluster_replaces_world_and_resets_count() -> None:
    store = SimulationStore(create_cluster(node_count=1))
    store.update_gpu("dgx-00", 0, {"temperature": 50.0})
    replacement = create_cluster(node_count=3, name="lab")

    store.set_cluster(replacement)

    assert store.get_cluster() is replacement
    assert store.mutation_count == 0


def test_mig_disable_clears_instances() -> None:
    store = SimulationStore(create_cluster(node_count=1, gpus_per_node=1))
    store.set_mig_mode("dgx-00", 0, True)
    gpu = store.get_gpu("dgx-00", 0)
    assert gpu is not None
    gpu.mig_instances.append(MIGInstance(instance_id=1, profile="MIG 1g.10gb", memory_mib=9728))

    store.set_mig_mode("dgx-00", 0, False)

    assert gpu.mig_instances == []
