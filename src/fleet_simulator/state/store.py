"""Shared global world: the cluster every session sees outside a scenario."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from fleet_simulator.domain.cluster_factory import create_default_cluster
from fleet_simulator.domain.models import (
    GPU,
    ClusterConfig,
    DGXNode,
    HealthStatus,
    SlurmNodeState,
    XIDEvent,
)
from fleet_simulator.state.mutations import (
    apply_ecc_update,
    apply_gpu_update,
    apply_mig_mode,
    apply_node_health,
    apply_nvlink_update,
    apply_slurm_state,
    apply_xid_error,
    find_gpu,
)

logger = logging.getLogger(__name__)


class SimulationStore:
    """Owner of the global ``ClusterConfig`` with the same write API as a context."""

    def __init__(self, cluster: ClusterConfig | None = None) -> None:
        self._cluster = cluster if cluster is not None else create_default_cluster()
        self._mutation_count = 0

    @property
    def mutation_count(self) -> int:
        return self._mutation_count

    def get_cluster(self) -> ClusterConfig:
        return self._cluster

    def get_node(self, node_id: str) -> DGXNode | None:
        return self._cluster.node(node_id)

    def get_gpu(self, node_id: str, gpu_id: int | str) -> GPU | None:
        return find_gpu(self._cluster, node_id, gpu_id)

    def set_cluster(self, cluster: ClusterConfig) -> None:
        self._cluster = cluster
        self._mutation_count = 0
        logger.info(
            "global cluster replaced",
            extra={"cluster": cluster.name, "nodes": len(cluster.nodes)},
        )

    def update_gpu(
        self,
        node_id: str,
        gpu_id: int | str,
        updates: Mapping[str, object],
        command: str | None = None,
    ) -> bool:
        return self._counted(apply_gpu_update(self._cluster, node_id, gpu_id, updates))

    def add_xid_error(
        self,
        node_id: str,
        gpu_id: int | str,
        event: XIDEvent,
        command: str | None = None,
    ) -> bool:
        return self._counted(apply_xid_error(self._cluster, node_id, gpu_id, event))

    def update_node_health(
        self,
        node_id: str,
        health: HealthStatus | str,
        command: str | None = None,
    ) -> bool:
        return self._counted(apply_node_health(self._cluster, node_id, HealthStatus(health)))

    def set_mig_mode(
        self,
        node_id: str,
        gpu_id: int | str,
        enabled: bool,
        command: str | None = None,
    ) -> bool:
        return self._counted(apply_mig_mode(self._cluster, node_id, gpu_id, enabled))

    def set_slurm_state(
        self,
        node_id: str,
        state: SlurmNodeState | str,
        reason: str | None = None,
        command: str | None = None,
    ) -> bool:
        return self._counted(
            apply_slurm_state(self._cluster, node_id, SlurmNodeState(state), reason)
        )

    def update_nvlink(
        self,
        node_id: str,
        gpu_id: int | str,
        link_id: int,
        updates: Mapping[str, object],
        command: str | None = None,
    ) -> bool:
        return self._counted(
            apply_nvlink_update(self._cluster, node_id, gpu_id, link_id, updates)
        )

    def update_ecc(
        self,
        node_id: str,
        gpu_id: int | str,
        *,
        single_bit: int | None = None,
        double_bit: int | None = None,
        command: str | None = None,
    ) -> bool:
        return self._counted(
            apply_ecc_update(
                self._cluster, node_id, gpu_id, single_bit=single_bit, double_bit=double_bit
            )
        )

    def _counted(self, applied: bool) -> bool:
        if applied:
            self._mutation_count += 1
        return applied


__all__ = ["SimulationStore"]
