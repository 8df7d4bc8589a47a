"""
fleet-simulator: unit tests for node-local system tool simulators

File: tests/unit/simulators/test_system.py

Purpose
- Validate dmesg, hostname, ipmitool and ibstat output against node state.

What this test file should cover
- Hostname short and fully-qualified forms per current node.
- dmesg boot log, XID lines from scenario state, level filter and clear.
- ipmitool sensor, power, chassis and mc views plus unsupported actions.
- ibstat listing, device detail and unknown device failure.
- Unreachable nodes.
"""

from __future__ import annotations

import re

import pytest

from fleet_simulator.domain.cluster_factory import create_cluster
from fleet_simulator.domain.commands import CommandResult
from fleet_simulator.interpreter.parser import parse
from fleet_simulator.simulators.base import CommandContext
from fleet_simulator.simulators.system import SystemSimulator
from fleet_simulator.state.faults import FaultSpec, apply_faults_to_context
from fleet_simulator.state.scenario_context import ScenarioContext
from fleet_simulator.state.store import SimulationStore


@pytest.fixture()
def store() -> SimulationStore:
    return SimulationStore(create_cluster(node_count=4))


def _run(
    store: SimulationStore,
    line: str,
    *,
    node: str = "dgx-00",
    scenario: ScenarioContext | None = None,
) -> CommandResult:
    context = CommandContext(current_node=node, scenario_context=scenario)
    return SystemSimulator(store).execute(parse(line), context)


def test_hostname(store: SimulationStore) -> None:
    assert _run(store, "hostname").output == "dgx-00"
    assert _run(store, "hostname -f").output == "dgx-00.cluster.local"
    assert _run(store, "hostname", node="dgx-03").output == "dgx-03"


def test_unreachable_node(store: SimulationStore) -> None:
    assert _run(store, "ibstat", node="dgx-99") == CommandResult(
        "ibstat: node dgx-99 is unreachable", 1
    )


def test_dmesg_boot_log(store: SimulationStore) -> None:
    lines = _run(store, "dmesg").output.splitlines()

    assert lines[0].startswith("[    0.000000] Linux version 5.15.0-91-generic")
    assert not any("Xid" in line for line in lines)
    assert _run(store, "dmesg -l err").output == ""


def test_dmesg_reports_scenario_xids(store: SimulationStore) -> None:
    scenario = ScenarioContext("xid", store.get_cluster())
    apply_faults_to_context([FaultSpec.parse("dgx-00:0:xid-error")], scenario)

    scoped = _run(store, "dmesg", scenario=scenario).output.splitlines()
    errors = _run(store, "dmesg -l err", scenario=scenario).output.splitlines()

    assert scoped[-1].endswith("NVRM: Xid (PCI:00000000:07:00.0): 79, GPU Fallen Off Bus")
    assert errors == [scoped[-1]]
    assert "Xid" not in _run(store, "dmesg").output


def test_dmesg_human_time_and_clear(store: SimulationStore) -> None:
    first = _run(store, "dmesg -T").output.splitlines()[0]

    assert re.match(r"^\[\w{3} \w{3} \d{2} \d{2}:\d{2}:\d{2} \d{4}\] Linux version", first)
    assert _run(store, "dmesg -C") == CommandResult("")


def test_dmesg_clear_drops_xid_events_in_scenario(store: SimulationStore) -> None:
    scenario = ScenarioContext("clear", store.get_cluster())
    apply_faults_to_context(
        [FaultSpec.parse("dgx-00:0:xid-error"), FaultSpec.parse("dgx-00:2:xid-error:xid=48")],
        scenario,
    )

    assert _run(store, "dmesg -C", scenario=scenario) == CommandResult("")

    assert scenario.get_mutation_count() == 4
    assert "Xid" not in _run(store, "dmesg", scenario=scenario).output
    assert [mutation.command for mutation in scenario.get_mutations()[2:]] == [
        "dmesg -C",
        "dmesg -C",
    ]
    assert store.mutation_count == 0


def test_dmesg_read_clear_prints_before_clearing(store: SimulationStore) -> None:
    scenario = ScenarioContext("read-clear", store.get_cluster())
    apply_faults_to_context([FaultSpec.parse("dgx-00:1:xid-error:xid=63")], scenario)

    printed = _run(store, "dmesg -c -l err", scenario=scenario).output
    after = _run(store, "dmesg -l err", scenario=scenario).output

    assert printed.endswith("): 63, Row Remapping Failure")
    assert after == ""
    assert scenario.get_mutation_count() == 2


def test_ipmitool_views(store: SimulationStore) -> None:
    sensors = _run(store, "ipmitool sensor").output.splitlines()

    assert sensors[0].startswith("CPU0 Temp        | 42.000")
    assert "FAN0" in _run(store, "ipmitool sdr").output
    assert _run(store, "ipmitool power status").output == "Chassis Power is on"
    assert _run(store, "ipmitool chassis status").output.startswith(
        "System Power         : on"
    )
    assert "Firmware Revision         : 1.13.2" in _run(store, "ipmitool mc info").output


@pytest.mark.parametrize(
    ("line", "fragment"),
    [
        ("ipmitool", "No command provided!"),
        ("ipmitool power off", "Chassis power control 'off' is not available"),
        ("ipmitool lan print", "Invalid command: lan print"),
    ],
)
def test_ipmitool_errors(store: SimulationStore, line: str, fragment: str) -> None:
    result = _run(store, line)

    assert result.exit_code == 1
    assert fragment in result.output


def test_ibstat(store: SimulationStore) -> None:
    listing = _run(store, "ibstat -l").output.splitlines()
    detail = _run(store, "ibstat mlx5_0").output.splitlines()

    assert listing == [f"mlx5_{index}" for index in range(8)]
    assert detail[:2] == ["CA 'mlx5_0'", "\tCA type: ConnectX-6"]
    assert "\t\tState: Active" in detail
    assert "\t\tRate: 200" in detail
    assert _run(store, "ibstat").output.count("CA '") == 8


def test_ibstat_unknown_device(store: SimulationStore) -> None:
    result = _run(store, "ibstat mlx5_9")

    assert result.exit_code == 255
    assert result.output.startswith("ibpanic: [dgx-00]")


def test_help_without_registry_uses_metadata(store: SimulationStore) -> None:
    output = _run(store, "dmesg --help").output

    assert output.startswith("dmesg: Kernel log, host identity")
    assert "Supported commands: dmesg, hostname, ipmitool, ibstat" in output
