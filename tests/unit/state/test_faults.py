"""
fleet-simulator: unit tests for fault injection

File: tests/unit/state/test_faults.py

Purpose
- Validate fault spec parsing and the effect of every fault type on a scenario.

What this test file should cover
- ``node:gpu:type[:key=value,...]`` parsing and its errors.
- Per-type effects and parameter defaults.
- Missing targets and unknown types are skipped and not counted.
- The global store accepts faults through the same target protocol.
"""

from __future__ import annotations

import pytest

from fleet_simulator.domain.cluster_factory import create_cluster
from fleet_simulator.domain.models import HealthStatus, LinkStatus, XIDSeverity
from fleet_simulator.state.faults import (
    DEFAULT_THERMAL_TARGET,
    MEMORY_FULL_MIB,
    FaultSpec,
    apply_faults_to_context,
)
from fleet_simulator.state.scenario_context import ScenarioContext
from fleet_simulator.state.store import SimulationStore


def _context() -> ScenarioContext:
    return ScenarioContext("faults", create_cluster(node_count=2, gpus_per_node=2))


def _inject(context: ScenarioContext, text: str) -> int:
    return apply_faults_to_context([FaultSpec.parse(text)], context)


def test_parse_with_parameters() -> None:
    spec = FaultSpec.parse("dgx-00:1:ecc-error:singleBit=3,doubleBit=1")

    assert spec.node_id == "dgx-00"
    assert spec.gpu_id == 1
    assert spec.type == "ecc-error"
    assert spec.parameters == {"singleBit": 3, "doubleBit": 1}


def test_parse_numbers_and_strings() -> None:
    spec = FaultSpec.parse("dgx-00:0:thermal:targetTemp=92.5,label=hot")

    assert spec.parameters == {"targetTemp": 92.5, "label": "hot"}


@pytest.mark.parametrize(
    ("text", "message"),
    [
        ("dgx-00:thermal", "expected node:gpu:type"),
        ("dgx-00:x:thermal", "gpu must be a non-negative integer"),
        ("dgx-00:0:thermal:targetTemp", "malformed parameter"),
        ("dgx-00:0:thermal:=5", "malformed parameter"),
    ],
)
def test_parse_errors(text: str, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        FaultSpec.parse(text)


def test_xid_fault_defaults_to_fallen_off_bus() -> None:
    context = _context()

    assert _inject(context, "dgx-00:0:xid-error") == 1

    event = context.get_gpu("dgx-00", 0).xid_errors[-1]  # type: ignore[union-attr]
    assert event.code == 79
    assert event.description == "GPU Fallen Off Bus"
    assert event.severity is XIDSeverity.CRITICAL


def test_xid_fault_with_code() -> None:
    context = _context()
    _inject(context, "dgx-00:1:xid-error:xid=48")

    assert context.get_gpu("dgx-00", 1).xid_errors[-1].code == 48  # type: ignore[union-attr]


def test_thermal_fault_default_and_target() -> None:
    context = _context()
    _inject(context, "dgx-00:0:thermal")
    _inject(context, "dgx-00:1:thermal:targetTemp=95")

    default_target, explicit = context.get_gpu("dgx-00", 0), context.get_gpu("dgx-00", 1)
    assert default_target is not None
    assert explicit is not None
    assert default_target.temperature == DEFAULT_THERMAL_TARGET
    assert explicit.temperature == 95.0


def test_memory_full_fault() -> None:
    context = _context()
    _inject(context, "dgx-01:0:memory-full")

    assert context.get_gpu("dgx-01", 0).memory_used == MEMORY_FULL_MIB  # type: ignore[union-attr]


def test_ecc_fault_sets_counters() -> None:
    context = _context()
    _inject(context, "dgx-00:0:ecc-error:singleBit=3,doubleBit=1")

    ecc = context.get_gpu("dgx-00", 0).ecc_errors  # type: ignore[union-attr]
    assert (ecc.single_bit, ecc.double_bit) == (3, 1)
    assert (ecc.aggregated.single_bit, ecc.aggregated.double_bit) == (3, 1)


def test_nvlink_failure_downs_first_link_only_in_context() -> None:
    base = create_cluster(node_count=1, gpus_per_node=1)
    context = ScenarioContext("links", base)

    apply_faults_to_context([FaultSpec.parse("dgx-00:0:nvlink-failure")], context)

    gpu = context.get_gpu("dgx-00", 0)
    assert gpu is not None
    assert gpu.nvlinks[0].status is LinkStatus.DOWN
    assert gpu.nvlinks[1].status is LinkStatus.ACTIVE
    assert gpu.health_status is HealthStatus.WARNING
    assert base.nodes[0].gpus[0].nvlinks[0].status is LinkStatus.ACTIVE


def test_gpu_hang_and_power_faults() -> None:
    context = _context()
    _inject(context, "dgx-00:0:gpu-hang")
    _inject(context, "dgx-00:1:power")

    hung = context.get_gpu("dgx-00", 0)
    powered = context.get_gpu("dgx-00", 1)
    assert hung is not None and powered is not None
    assert hung.utilization == 0.0
    assert hung.health_status is HealthStatus.CRITICAL
    assert powered.power_draw == 380.0
    assert powered.health_status is HealthStatus.WARNING


def test_unapplied_faults_are_not_counted() -> None:
    context = _context()
    faults = [
        FaultSpec.parse("dgx-00:0:thermal"),
        FaultSpec.parse("dgx-09:0:thermal"),
        FaultSpec.parse("dgx-00:7:thermal"),
        FaultSpec.parse("dgx-00:0:meltdown"),
        FaultSpec.parse("dgx-01:1:gpu-hang"),
    ]

    assert apply_faults_to_context(faults, context) == 2
    assert context.get_mutation_count() == 2


def test_invalid_parameter_value_raises() -> None:
    with pytest.raises(ValueError):
        _inject(_context(), "dgx-00:0:thermal:targetTemp=hot")


def test_store_accepts_faults() -> None:
    store = SimulationStore(create_cluster(node_count=1, gpus_per_node=1))

    assert apply_faults_to_context([FaultSpec.parse("dgx-00:0:gpu-hang")], store) == 1
    assert store.mutation_count == 1
