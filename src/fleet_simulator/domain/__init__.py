"""Cluster domain models, catalogues and factories."""

from fleet_simulator.domain.cluster_factory import create_cluster, create_default_cluster
from fleet_simulator.domain.models import (
    GPU,
    ClusterConfig,
    DGXNode,
    HealthStatus,
    SlurmNodeState,
    XIDEvent,
    XIDSeverity,
)

__all__ = [
    "ClusterConfig",
    "DGXNode",
    "GPU",
    "HealthStatus",
    "SlurmNodeState",
    "XIDEvent",
    "XIDSeverity",
    "create_cluster",
    "create_default_cluster",
]
