"""Isolated, per-scenario copies of the simulated cluster.

A ``ScenarioContext`` owns a deep copy of the cluster it was created from, so
nothing it mutates is reachable from the shared store or from any other
context. The ``ScenarioContextManager`` keeps contexts by id and tracks at
most one active id; it is constructed explicitly and owned by the session.
"""

from __future__ import annotations

import copy
import json
import logging
import time
from collections.abc import Mapping

from fleet_simulator.domain.models import (
    GPU,
    ClusterConfig,
    DGXNode,
    HealthStatus,
    SlurmNodeState,
    XIDEvent,
    coerce_gpu_id,
)
from fleet_simulator.state.mutations import (
    MutationType,
    StateMutation,
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


class ScenarioContext:
    """Mutable sandbox around one exclusively owned ``ClusterConfig``.

    Each mutating call that finds its target adds exactly one
    ``StateMutation``. Calls against missing targets, or made while the
    context is readonly, change nothing and record nothing.
    """

    def __init__(self, scenario_id: str, base_cluster: ClusterConfig) -> None:
        if not scenario_id.strip():
            raise ValueError("scenario_id must not be empty")
        self._scenario_id = scenario_id
        self._baseline = copy.deepcopy(base_cluster)
        self._cluster = copy.deepcopy(base_cluster)
        self._mutations: list[StateMutation] = []
        self._readonly = False
        self._started = time.monotonic()

    @property
    def scenario_id(self) -> str:
        return self._scenario_id

    # Reads

    def get_cluster(self) -> ClusterConfig:
        return self._cluster

    def get_node(self, node_id: str) -> DGXNode | None:
        return self._cluster.node(node_id)

    def get_gpu(self, node_id: str, gpu_id: int | str) -> GPU | None:
        return find_gpu(self._cluster, node_id, gpu_id)

    def get_mutation_count(self) -> int:
        return len(self._mutations)

    def get_mutations(self) -> list[StateMutation]:
        return list(self._mutations)

    def get_diff(self) -> list[StateMutation]:
        """Changes since creation or the last reset, oldest first."""

        return self.get_mutations()

    def snapshot(self) -> ClusterConfig:
        return copy.deepcopy(self._cluster)

    def runtime_ms(self) -> int:
        return int((time.monotonic() - self._started) * 1000)

    def export(self) -> str:
        payload = {
            "scenarioId": self._scenario_id,
            "cluster": self._cluster.to_dict(),
            "mutations": [mutation.to_dict() for mutation in self._mutations],
            "runtime": self.runtime_ms(),
        }
        return json.dumps(payload, sort_keys=True, indent=2, ensure_ascii=False)

    def is_readonly(self) -> bool:
        return self._readonly

    def set_readonly(self, readonly: bool) -> None:
        self._readonly = readonly

    # Writes

    def update_gpu(
        self,
        node_id: str,
        gpu_id: int | str,
        updates: Mapping[str, object],
        command: str | None = None,
    ) -> bool:
        if self._readonly or not apply_gpu_update(self._cluster, node_id, gpu_id, updates):
            return False
        self._record(MutationType.GPU_UPDATE, node_id, gpu_id, dict(updates), command)
        return True

    def add_xid_error(
        self,
        node_id: str,
        gpu_id: int | str,
        event: XIDEvent,
        command: str | None = None,
    ) -> bool:
        if self._readonly or not apply_xid_error(self._cluster, node_id, gpu_id, event):
            return False
        self._record(
            MutationType.XID_ERROR,
            node_id,
            gpu_id,
            {"code": event.code, "description": event.description, "severity": event.severity},
            command,
        )
        return True

    def update_node_health(
        self,
        node_id: str,
        health: HealthStatus | str,
        command: str | None = None,
    ) -> bool:
        status = HealthStatus(health)
        if self._readonly or not apply_node_health(self._cluster, node_id, status):
            return False
        self._record(MutationType.NODE_HEALTH, node_id, None, {"health": status}, command)
        return True

    def set_mig_mode(
        self,
        node_id: str,
        gpu_id: int | str,
        enabled: bool,
        command: str | None = None,
    ) -> bool:
        if self._readonly or not apply_mig_mode(self._cluster, node_id, gpu_id, enabled):
            return False
        self._record(MutationType.MIG_MODE, node_id, gpu_id, {"enabled": enabled}, command)
        return True

    def set_slurm_state(
        self,
        node_id: str,
        state: SlurmNodeState | str,
        reason: str | None = None,
        command: str | None = None,
    ) -> bool:
        slurm_state = SlurmNodeState(state)
        if self._readonly or not apply_slurm_state(self._cluster, node_id, slurm_state, reason):
            return False
        self._record(
            MutationType.SLURM_STATE,
            node_id,
            None,
            {"state": slurm_state, "reason": reason},
            command,
        )
        return True

    def update_nvlink(
        self,
        node_id: str,
        gpu_id: int | str,
        link_id: int,
        updates: Mapping[str, object],
        command: str | None = None,
    ) -> bool:
        if self._readonly or not apply_nvlink_update(
            self._cluster, node_id, gpu_id, link_id, updates
        ):
            return False
        self._record(
            MutationType.NVLINK_UPDATE,
            node_id,
            gpu_id,
            {"link_id": link_id, **updates},
            command,
        )
        return True

    def update_ecc(
        self,
        node_id: str,
        gpu_id: int | str,
        *,
        single_bit: int | None = None,
        double_bit: int | None = None,
        command: str | None = None,
    ) -> bool:
        if self._readonly or not apply_ecc_update(
            self._cluster, node_id, gpu_id, single_bit=single_bit, double_bit=double_bit
        ):
            return False
        self._record(
            MutationType.ECC_UPDATE,
            node_id,
            gpu_id,
            {"single_bit": single_bit, "double_bit": double_bit},
            command,
        )
        return True

    def reset(self) -> None:
        """Restore the creation-time cluster and forget all mutations."""

        if self._readonly:
            logger.warning(
                "reset ignored for readonly scenario", extra={"scenario_id": self._scenario_id}
            )
            return
        self._cluster = copy.deepcopy(self._baseline)
        self._mutations.clear()
        self._started = time.monotonic()

    def _record(
        self,
        mutation_type: MutationType,
        node_id: str,
        gpu_id: int | str | None,
        data: Mapping[str, object],
        command: str | None,
    ) -> None:
        self._mutations.append(
            StateMutation(
                type=mutation_type,
                node_id=node_id,
                gpu_id=coerce_gpu_id(gpu_id) if gpu_id is not None else None,
                data=copy.deepcopy(dict(data)),
                command=command,
            )
        )


class ScenarioContextManager:
    def __init__(self) -> None:
        self._contexts: dict[str, ScenarioContext] = {}
        self._active_id: str | None = None

    def create_context(self, scenario_id: str, base_cluster: ClusterConfig) -> ScenarioContext:
        """Create (or replace) the context for ``scenario_id`` from ``base_cluster``."""

        context = ScenarioContext(scenario_id, base_cluster)
        replaced = scenario_id in self._contexts
        self._contexts[scenario_id] = context
        logger.info(
            "scenario context created",
            extra={"scenario_id": scenario_id, "replaced": replaced},
        )
        return context

    def get_context(self, scenario_id: str) -> ScenarioContext | None:
        return self._contexts.get(scenario_id)

    def get_or_create_context(
        self, scenario_id: str, base_cluster: ClusterConfig
    ) -> ScenarioContext:
        existing = self._contexts.get(scenario_id)
        if existing is not None:
            return existing
        return self.create_context(scenario_id, base_cluster)

    def delete_context(self, scenario_id: str) -> bool:
        if self._contexts.pop(scenario_id, None) is None:
            return False
        if self._active_id == scenario_id:
            self._active_id = None
        logger.info("scenario context deleted", extra={"scenario_id": scenario_id})
        return True

    def set_active_context(self, scenario_id: str | None) -> None:
        if scenario_id is not None and scenario_id not in self._contexts:
            raise KeyError(f"unknown scenario context: {scenario_id!r}")
        self._active_id = scenario_id

    def get_active_context(self) -> ScenarioContext | None:
        if self._active_id is None:
            return None
        return self._contexts.get(self._active_id)

    @property
    def active_context_id(self) -> str | None:
        return self._active_id

    def context_ids(self) -> tuple[str, ...]:
        return tuple(sorted(self._contexts))

    def clear_all(self) -> None:
        self._contexts.clear()
        self._active_id = None


__all__ = ["ScenarioContext", "ScenarioContextManager"]
