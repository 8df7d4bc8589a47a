"""
fleet-simulator: unit tests for cluster domain models

File: tests/unit/domain/test_models.py

Purpose
- Validate strict parsing, canonical serialization and in-place GPU updates.

What this test file should cover
- Cluster serialization survives a parse cycle.
- Unknown, missing and mistyped fields fail with path-qualified messages.
- Timestamps are normalized to UTC.
- GPU partial updates reject unknown fields and coerce health values.
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from fleet_simulator.domain.cluster_factory import create_cluster
from fleet_simulator.domain.models import (
    ClusterConfig,
    HealthStatus,
    NVLinkConnection,
    XIDEvent,
    XIDSeverity,
    coerce_gpu_id,
)


def test_cluster_serialization_parses_back_equal() -> None:
    cluster = create_cluster(node_count=2, gpus_per_node=2)

    restored = ClusterConfig.from_json(cluster.to_json())

    assert restored == cluster


def test_to_json_is_canonical() -> None:
    link = NVLinkConnection(link_id=3)

    assert link.to_json() == (
        '{"link_id":3,"replay_errors":0,"rx_errors":0,"speed":25.0,"status":"Active",'
        '"tx_errors":0}'
    )


def test_xid_event_timestamp_normalized_to_utc() -> None:
    event = XIDEvent.from_dict(
        {
            "code": 79,
            "timestamp": "2026-01-02T03:04:05Z",
            "description": "GPU Fallen Off Bus",
            "severity": "Critical",
        }
    )

    assert event.timestamp == datetime(2026, 1, 2, 3, 4, 5, tzinfo=UTC)
    assert event.severity is XIDSeverity.CRITICAL
    assert event.to_dict()["timestamp"] == "2026-01-02T03:04:05.000Z"


def test_naive_timestamp_is_rejected() -> None:
    with pytest.raises(ValueError, match="XIDEvent.timestamp: datetime must be timezone-aware"):
        XIDEvent.from_dict(
            {"code": 1, "timestamp": "2026-01-02T03:04:05", "description": "x"}
        )


def test_unexpected_fields_are_rejected() -> None:
    with pytest.raises(ValueError, match=r"NVLinkConnection: unexpected fields: \['colour'\]"):
        NVLinkConnection.from_dict({"link_id": 0, "colour": "green"})


def test_missing_fields_are_rejected() -> None:
    with pytest.raises(ValueError, match="missing required fields"):
        NVLinkConnection.from_dict({})


def test_invalid_enum_value_lists_allowed_values() -> None:
    with pytest.raises(ValueError, match="expected one of: Active, Down"):
        NVLinkConnection.from_dict({"link_id": 0, "status": "Flapping"})


def test_from_json_rejects_non_object_root() -> None:
    with pytest.raises(ValueError, match="JSON root must be an object"):
        ClusterConfig.from_json("[]")


def test_gpu_apply_updates() -> None:
    gpu = create_cluster(node_count=1, gpus_per_node=1).nodes[0].gpus[0]

    gpu.apply_updates({"temperature": 91.0, "health_status": "Critical"})

    assert gpu.temperature == 91.0
    assert gpu.health_status is HealthStatus.CRITICAL


@pytest.mark.parametrize("field_name", ["id", "fan_speed"])
def test_gpu_apply_updates_rejects_unknown_or_immutable(field_name: str) -> None:
    gpu = create_cluster(node_count=1, gpus_per_node=1).nodes[0].gpus[0]

    with pytest.raises(ValueError, match="unknown or immutable fields"):
        gpu.apply_updates({field_name: 1})


def test_node_gpu_lookup() -> None:
    node = create_cluster(node_count=1, gpus_per_node=4).nodes[0]

    assert node.gpu(2) is node.gpus[2]
    assert node.gpu("3") is node.gpus[3]
    assert node.gpu(9) is None
    assert node.gpu("x") is None


@pytest.mark.parametrize(
    ("value", "expected"),
    [(0, 0), (7, 7), ("5", 5), (" 2 ", 2), (-1, None), ("a", None), (True, None)],
)
def test_coerce_gpu_id(value: int | str, expected: int | None) -> None:
    assert coerce_gpu_id(value) == expected
