"""
fleet-simulator: unit tests for the Slurm client simulators

File: tests/unit/simulators/test_slurm.py

Purpose
- Validate sinfo, squeue and scontrol rendering and node-state updates.

What this test file should cover
- Partition rows grouped by node state with compressed host lists.
- sinfo filters (partition, state), reasons, summary and node-oriented views.
- squeue job listing derived from GPU allocations.
- scontrol show/update/ping, including privilege and validation errors.
- scontrol updates land in the scenario context and leave the store untouched.
"""

from __future__ import annotations

import pytest

from fleet_simulator.domain.cluster_factory import create_cluster
from fleet_simulator.domain.commands import CommandResult
from fleet_simulator.domain.models import SlurmNodeState
from fleet_simulator.interpreter.parser import parse
from fleet_simulator.interpreter.registry import CommandDefinitionRegistry
from fleet_simulator.simulators.base import CommandContext
from fleet_simulator.simulators.slurm import SlurmSimulator, compress_hostlist
from fleet_simulator.state.scenario_context import ScenarioContext
from fleet_simulator.state.store import SimulationStore

REGISTRY = CommandDefinitionRegistry.from_directory()


@pytest.fixture()
def store() -> SimulationStore:
    return SimulationStore(create_cluster(node_count=8, gpus_per_node=2))


def _run(
    store: SimulationStore,
    line: str,
    *,
    root: bool = False,
    scenario: ScenarioContext | None = None,
) -> CommandResult:
    parsed = parse(line, word_flags=REGISTRY.word_flags(line.split()[0]))
    context = CommandContext(is_root=root, scenario_context=scenario)
    return SlurmSimulator(store, REGISTRY).execute(parsed, context)


def _rows(result: CommandResult) -> list[list[str]]:
    return [line.split() for line in result.output.splitlines()[1:]]


@pytest.mark.parametrize(
    ("node_ids", "expected"),
    [
        ([], ""),
        (["dgx-05"], "dgx-05"),
        (["dgx-00", "dgx-01", "dgx-02"], "dgx-[00-02]"),
        (["dgx-00", "dgx-01", "dgx-03"], "dgx-[00-01,03]"),
        (["dgx-02", "dgx-00"], "dgx-[00,02]"),
        (["login"], "login"),
        (["a-1", "a-2", "b"], "a-[1-2],b"),
    ],
)
def test_compress_hostlist(node_ids: list[str], expected: str) -> None:
    assert compress_hostlist(node_ids) == expected


def test_sinfo_default_view(store: SimulationStore) -> None:
    result = _run(store, "sinfo")

    assert result.output.splitlines()[0] == "PARTITION AVAIL  TIMELIMIT  NODES  STATE NODELIST"
    assert _rows(result) == [
        ["batch*", "up", "infinite", "8", "idle", "dgx-[00-07]"],
        ["debug", "up", "1:00:00", "2", "idle", "dgx-[00-01]"],
    ]


def test_sinfo_groups_nodes_by_state(store: SimulationStore) -> None:
    store.set_slurm_state("dgx-01", SlurmNodeState.DRAIN, "xid 79")

    rows = _rows(_run(store, "sinfo -p batch"))

    assert rows == [
        ["batch*", "up", "infinite", "1", "drain", "dgx-01"],
        ["batch*", "up", "infinite", "7", "idle", "dgx-[00,02-07]"],
    ]


def test_sinfo_filters(store: SimulationStore) -> None:
    store.set_slurm_state("dgx-03", SlurmNodeState.DOWN, "power")

    assert _run(store, "sinfo -p nope").output == (
        "PARTITION AVAIL  TIMELIMIT  NODES  STATE NODELIST"
    )
    assert _rows(_run(store, "sinfo -t down")) == [
        ["batch*", "up", "infinite", "1", "down", "dgx-03"]
    ]
    assert not _run(store, "sinfo -h").output.startswith("PARTITION")


def test_sinfo_reasons(store: SimulationStore) -> None:
    store.set_slurm_state("dgx-01", SlurmNodeState.DRAIN, "xid 79")
    store.set_slurm_state("dgx-02", SlurmNodeState.DRAIN, "xid 79")

    lines = _run(store, "sinfo -R").output.splitlines()

    assert lines[0].startswith("REASON")
    assert lines[1].startswith("xid 79")
    assert lines[1].endswith("dgx-[01-02]")


def test_sinfo_summary_counts(store: SimulationStore) -> None:
    store.set_slurm_state("dgx-07", SlurmNodeState.DRAIN, "maint")

    rows = _rows(_run(store, "sinfo -s"))

    assert rows[0][3] == "0/7/1/8"
    assert rows[1][3] == "0/2/0/2"


def test_sinfo_node_oriented_long(store: SimulationStore) -> None:
    lines = _run(store, "sinfo -N -l").output.splitlines()

    assert lines[0].endswith("REASON")
    assert len(lines) == 1 + 8 + 2
    assert lines[1].split()[:4] == ["dgx-00", "1", "batch*", "idle"]


def test_squeue_lists_allocated_jobs(store: SimulationStore) -> None:
    assert _run(store, "squeue").output.splitlines()[0].split()[:2] == ["JOBID", "PARTITION"]
    for node_id in ("dgx-00", "dgx-01"):
        store.get_gpu(node_id, 0).allocated_job_id = 42  # type: ignore[union-attr]

    rows = _rows(_run(store, "squeue"))

    assert len(rows) == 1
    assert rows[0][0] == "42"
    assert rows[0][-1] == "dgx-[00-01]"
    assert _rows(_run(store, "squeue -j 7")) == []


def test_scontrol_show_node_and_partition(store: SimulationStore) -> None:
    store.set_slurm_state("dgx-02", SlurmNodeState.DRAIN, "bad gpu")

    node = _run(store, "scontrol show node dgx-02").output
    partition = _run(store, "scontrol show partition debug").output

    assert node.startswith("NodeName=dgx-02")
    assert "State=DRAIN" in node
    assert "Reason=bad gpu [root]" in node
    assert partition.splitlines()[0] == "PartitionName=debug"
    assert "Default=NO" in partition
    assert "Nodes=dgx-[00-01]" in partition
    assert _run(store, "scontrol show nodes").output.count("NodeName=") == 8


@pytest.mark.parametrize(
    ("line", "message"),
    [
        ("scontrol", "scontrol: no command given; try 'scontrol --help'"),
        ("scontrol show node dgx-99", "Node dgx-99 not found"),
        ("scontrol show jobsteps", "invalid entity: jobsteps for keyword: show"),
        ("scontrol frobnicate", "invalid keyword: frobnicate"),
    ],
)
def test_scontrol_errors(store: SimulationStore, line: str, message: str) -> None:
    assert _run(store, line) == CommandResult(message, 1)


def test_scontrol_ping(store: SimulationStore) -> None:
    assert _run(store, "scontrol ping").output == "Slurmctld(primary) at bcm-head-01 is UP"


@pytest.mark.parametrize(
    ("line", "root", "fragment"),
    [
        ("scontrol update nodename=dgx-01 state=drain reason=x", False, "Invalid user id"),
        ("scontrol update nodename=dgx-01 drain", True, "Invalid input: drain"),
        ("scontrol update state=drain reason=x", True, "No valid entity"),
        ("scontrol update nodename=dgx-01 state=bogus", True, "Invalid node state specified"),
        ("scontrol update nodename=dgx-01 state=drain", True, "must specify a reason"),
        ("scontrol update nodename=dgx-99 state=resume", True, "Invalid node name specified"),
        ("scontrol reconfigure", False, "Invalid user id"),
    ],
)
def test_scontrol_update_rejections(
    store: SimulationStore, line: str, root: bool, fragment: str
) -> None:
    result = _run(store, line, root=root)

    assert result.exit_code == 1
    assert fragment in result.output
    assert store.mutation_count == 0


def test_scontrol_drain_then_resume(store: SimulationStore) -> None:
    drained = _run(store, "scontrol update nodename=dgx-01 state=drain reason='xid 79'", root=True)

    node = store.get_node("dgx-01")
    assert drained == CommandResult("")
    assert node is not None
    assert node.slurm_state is SlurmNodeState.DRAIN
    assert node.slurm_reason == "xid 79"

    _run(store, "scontrol update NodeName=dgx-01 State=RESUME", root=True)

    node = store.get_node("dgx-01")
    assert node is not None
    assert node.slurm_state is SlurmNodeState.IDLE
    assert node.slurm_reason is None


def test_scontrol_update_is_scenario_scoped(store: SimulationStore) -> None:
    scenario = ScenarioContext("drain", store.get_cluster())

    line = "scontrol update nodename=dgx-04 state=down reason=psu"
    _run(store, line, root=True, scenario=scenario)

    scoped, global_node = scenario.get_node("dgx-04"), store.get_node("dgx-04")
    assert scoped is not None
    assert global_node is not None
    assert scoped.slurm_state is SlurmNodeState.DOWN
    assert global_node.slurm_state is SlurmNodeState.IDLE
    assert "down" in _run(store, "sinfo", scenario=scenario).output


def test_version_flag(store: SimulationStore) -> None:
    assert _run(store, "sinfo --version").output == "sinfo slurm 23.02.7"
    assert _run(store, "squeue -V").output == "squeue slurm 23.02.7"
