"""Typed mutation operations shared by the global store and scenario contexts.

Every ``apply_*`` function edits a ``ClusterConfig`` in place and returns
``True`` when its target existed. Missing nodes, GPUs or links are a silent
no-op so that stale UI actions cannot raise.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol

from fleet_simulator.domain.models import (
    GPU,
    CanonicalModel,
    HealthStatus,
    LinkStatus,
    SlurmNodeState,
    XIDEvent,
    utc_now,
)

if TYPE_CHECKING:
    from fleet_simulator.domain.models import ClusterConfig


class MutationType(StrEnum):
    GPU_UPDATE = "gpu-update"
    NODE_HEALTH = "node-health"
    XID_ERROR = "xid-error"
    MIG_MODE = "mig-mode"
    SLURM_STATE = "slurm-state"
    NVLINK_UPDATE = "nvlink-update"
    ECC_UPDATE = "ecc-update"


@dataclass(frozen=True, slots=True)
class StateMutation:
    """One applied change, recorded for replay, diffing and export."""

    type: MutationType
    node_id: str
    gpu_id: int | None = None
    data: Mapping[str, object] = field(default_factory=dict)
    command: str | None = None
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "type": self.type.value,
            "nodeId": self.node_id,
            "gpuId": self.gpu_id,
            "data": {key: _jsonable(value) for key, value in self.data.items()},
            "command": self.command,
            "timestamp": self.timestamp.isoformat(timespec="milliseconds").replace(
                "+00:00", "Z"
            ),
        }


class StateMutator(Protocol):
    """Write sink for simulators: the global store or one scenario context."""

    def update_gpu(
        self,
        node_id: str,
        gpu_id: int | str,
        updates: Mapping[str, object],
        command: str | None = None,
    ) -> bool: ...

    def add_xid_error(
        self,
        node_id: str,
        gpu_id: int | str,
        event: XIDEvent,
        command: str | None = None,
    ) -> bool: ...

    def update_node_health(
        self,
        node_id: str,
        health: HealthStatus | str,
        command: str | None = None,
    ) -> bool: ...

    def set_mig_mode(
        self,
        node_id: str,
        gpu_id: int | str,
        enabled: bool,
        command: str | None = None,
    ) -> bool: ...

    def set_slurm_state(
        self,
        node_id: str,
        state: SlurmNodeState | str,
        reason: str | None = None,
        command: str | None = None,
    ) -> bool: ...

    def update_nvlink(
        self,
        node_id: str,
        gpu_id: int | str,
        link_id: int,
        updates: Mapping[str, object],
        command: str | None = None,
    ) -> bool: ...

    def update_ecc(
        self,
        node_id: str,
        gpu_id: int | str,
        *,
        single_bit: int | None = None,
        double_bit: int | None = None,
        command: str | None = None,
    ) -> bool: ...


def find_gpu(cluster: ClusterConfig, node_id: str, gpu_id: int | str) -> GPU | None:
    node = cluster.node(node_id)
    if node is None:
        return None
    return node.gpu(gpu_id)


def apply_gpu_update(
    cluster: ClusterConfig,
    node_id: str,
    gpu_id: int | str,
    updates: Mapping[str, object],
) -> bool:
    gpu = find_gpu(cluster, node_id, gpu_id)
    if gpu is None:
        return False
    gpu.apply_updates(updates)
    return True


def apply_xid_error(
    cluster: ClusterConfig,
    node_id: str,
    gpu_id: int | str,
    event: XIDEvent,
) -> bool:
    gpu = find_gpu(cluster, node_id, gpu_id)
    if gpu is None:
        return False
    gpu.xid_errors.append(
        XIDEvent(
            code=event.code,
            timestamp=event.timestamp,
            description=event.description,
            severity=event.severity,
        )
    )
    return True


def apply_node_health(cluster: ClusterConfig, node_id: str, health: HealthStatus) -> bool:
    node = cluster.node(node_id)
    if node is None:
        return False
    node.health_status = health
    return True


def apply_mig_mode(
    cluster: ClusterConfig,
    node_id: str,
    gpu_id: int | str,
    enabled: bool,
) -> bool:
    gpu = find_gpu(cluster, node_id, gpu_id)
    if gpu is None:
        return False
    gpu.mig_mode = enabled
    if not enabled:
        gpu.mig_instances.clear()
    return True


def apply_slurm_state(
    cluster: ClusterConfig,
    node_id: str,
    state: SlurmNodeState,
    reason: str | None,
) -> bool:
    node = cluster.node(node_id)
    if node is None:
        return False
    node.slurm_state = state
    node.slurm_reason = reason
    return True


def apply_nvlink_update(
    cluster: ClusterConfig,
    node_id: str,
    gpu_id: int | str,
    link_id: int,
    updates: Mapping[str, object],
) -> bool:
    gpu = find_gpu(cluster, node_id, gpu_id)
    if gpu is None:
        return False
    for link in gpu.nvlinks:
        if link.link_id != link_id:
            continue
        for key, value in updates.items():
            if key == "link_id" or not hasattr(link, key):
                raise ValueError(f"NVLinkConnection.update: unknown or immutable field {key!r}")
            if key == "status":
                value = LinkStatus(value)
            setattr(link, key, copy.deepcopy(value))
        return True
    return False


def apply_ecc_update(
    cluster: ClusterConfig,
    node_id: str,
    gpu_id: int | str,
    *,
    single_bit: int | None,
    double_bit: int | None,
) -> bool:
    gpu = find_gpu(cluster, node_id, gpu_id)
    if gpu is None:
        return False
    if single_bit is not None:
        gpu.ecc_errors.single_bit = single_bit
        gpu.ecc_errors.aggregated.single_bit = max(gpu.ecc_errors.aggregated.single_bit, single_bit)
    if double_bit is not None:
        gpu.ecc_errors.double_bit = double_bit
        gpu.ecc_errors.aggregated.double_bit = max(gpu.ecc_errors.aggregated.double_bit, double_bit)
    return True


def _jsonable(value: object) -> object:
    if isinstance(value, CanonicalModel):
        return value.to_dict()
    if isinstance(value, StrEnum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


__all__ = [
    "MutationType",
    "StateMutation",
    "StateMutator",
    "apply_ecc_update",
    "apply_gpu_update",
    "apply_mig_mode",
    "apply_node_health",
    "apply_nvlink_update",
    "apply_slurm_state",
    "apply_xid_error",
    "find_gpu",
]
