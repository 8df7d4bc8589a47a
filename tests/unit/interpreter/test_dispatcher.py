"""
fleet-simulator: unit tests for the command dispatcher

File: tests/unit/interpreter/test_dispatcher.py

Purpose
- Validate the end-to-end interpretation pipeline for one command line.

What this test file should cover
- sudo handling and root-only flag denial.
- Bounded session history.
- "command not found" with suggestions, and typo hints appended to output.
- Pipe filters and empty pipeline segments.
- Active scenario isolation and config-driven assembly.
- One structured log record per executed command.
"""

from __future__ import annotations

import logging

import pytest

from fleet_simulator.domain.cluster_factory import create_cluster
from fleet_simulator.domain.commands import CommandResult
from fleet_simulator.interpreter.dispatcher import CommandDispatcher
from fleet_simulator.interpreter.registry import CommandDefinitionRegistry
from fleet_simulator.simulators.base import CommandContext
from fleet_simulator.state.store import SimulationStore

REGISTRY = CommandDefinitionRegistry.from_directory()
ROOT_DENIED = "nvidia-smi: Operation requires root privileges. Run with sudo."


def _dispatcher(config: dict[str, object] | None = None) -> CommandDispatcher:
    store = SimulationStore(create_cluster(node_count=2, gpus_per_node=4))
    return CommandDispatcher.from_config(config or {}, registry=REGISTRY, store=store)


def _power_limit(dispatcher: CommandDispatcher) -> float:
    gpu = dispatcher.store.get_gpu("dgx-00", 0)
    assert gpu is not None
    return gpu.power_limit


def test_root_only_flag_is_denied_without_sudo() -> None:
    dispatcher = _dispatcher()
    context = CommandContext()

    result = dispatcher.execute("nvidia-smi -i 0 -pl 300", context)

    assert result == CommandResult(ROOT_DENIED, 1)
    assert _power_limit(dispatcher) == 400.0


def test_subcommand_flag_is_not_mistaken_for_root_option() -> None:
    dispatcher = _dispatcher()
    context = CommandContext()

    counters = dispatcher.execute("nvidia-smi nvlink -e", context)
    ecc = dispatcher.execute("nvidia-smi -e 0", context)

    assert counters.ok
    assert "Replay Errors: 0" in counters.output
    assert ecc == CommandResult(ROOT_DENIED, 1)


def test_sudo_elevates_single_command() -> None:
    dispatcher = _dispatcher()
    context = CommandContext()

    result = dispatcher.execute("sudo nvidia-smi -i 0 -pl 300", context)

    assert result.ok
    assert _power_limit(dispatcher) == 300.0
    assert context.is_root is False
    assert dispatcher.execute("sudo", context) == CommandResult("usage: sudo command", 1)


def test_privilege_enforcement_can_be_disabled() -> None:
    dispatcher = _dispatcher({"session": {"enforce_privileges": False}})

    assert dispatcher.execute("nvidia-smi -i 0 -pl 250", CommandContext()).ok
    assert _power_limit(dispatcher) == 250.0


def test_history_is_bounded() -> None:
    dispatcher = _dispatcher({"session": {"history_limit": 3}})
    context = CommandContext()

    for line in ("hostname", "sinfo", "squeue", "sudo hostname -f", "   "):
        dispatcher.execute(line, context)

    assert context.history == ["sinfo", "squeue", "sudo hostname -f"]


def test_unknown_command_with_suggestion() -> None:
    dispatcher = _dispatcher()

    assert dispatcher.execute("nvidai-smi -L", CommandContext()) == CommandResult(
        "nvidai-smi: command not found\nDid you mean 'nvidia-smi'?", 127
    )
    assert dispatcher.execute("frobnicate", CommandContext()) == CommandResult(
        "frobnicate: command not found", 127
    )


def test_flag_typo_hint_is_appended() -> None:
    dispatcher = _dispatcher()

    result = dispatcher.execute("nvidia-smi --query-gpuu=index --format=csv", CommandContext())

    assert result.ok
    assert result.output.splitlines()[-1] == (
        "nvidia-smi: unrecognized option 'query-gpuu'. Did you mean '--query-gpu'?"
    )


def test_unknown_single_letter_flag_gets_no_hint() -> None:
    dispatcher = _dispatcher()

    result = dispatcher.execute("nvidia-smi -L -z", CommandContext())

    assert result.ok
    assert "unrecognized option" not in result.output
    assert result.output.splitlines()[0].startswith("GPU 0:")


def test_subcommand_typo_hint_is_appended() -> None:
    dispatcher = _dispatcher()

    result = dispatcher.execute("nvidia-smi topoo -m", CommandContext())

    assert result.exit_code == 2
    assert result.output.splitlines()[-1] == (
        "nvidia-smi: unknown subcommand 'topoo'. Did you mean 'topo'?"
    )


def test_pipes_filter_output() -> None:
    dispatcher = _dispatcher()

    result = dispatcher.execute("nvidia-smi -L | grep 'GPU 3'", CommandContext())
    counted = dispatcher.execute("nvidia-smi -L | wc -l", CommandContext())

    assert result.output.startswith("GPU 3: NVIDIA A100-SXM4-80GB")
    assert len(result.output.splitlines()) == 1
    assert counted.output == "4"


def test_empty_leading_pipeline_segment_is_a_syntax_error() -> None:
    result = _dispatcher().execute("| grep x", CommandContext())

    assert result == CommandResult("syntax error near unexpected token `|'", 2)


def test_active_scenario_isolates_writes() -> None:
    dispatcher = _dispatcher()
    scenario = dispatcher.contexts.create_context("drill", dispatcher.store.get_cluster())
    dispatcher.contexts.set_active_context("drill")

    result = dispatcher.execute("sudo nvidia-smi -i 0 -pl 250", CommandContext())

    assert result.ok
    assert scenario.get_gpu("dgx-00", 0).power_limit == 250.0  # type: ignore[union-attr]
    assert _power_limit(dispatcher) == 400.0

    dispatcher.contexts.set_active_context(None)
    assert "250.00" not in dispatcher.execute(
        "nvidia-smi --query-gpu=power.limit --format=csv -i 0", CommandContext()
    ).output


def test_from_config_builds_cluster_section() -> None:
    dispatcher = CommandDispatcher.from_config(
        {"cluster": {"node_count": 3, "gpus_per_node": 2, "system_type": "DGX-H100"}},
        registry=REGISTRY,
    )

    cluster = dispatcher.store.get_cluster()
    assert [node.id for node in cluster.nodes] == ["dgx-00", "dgx-01", "dgx-02"]
    assert dispatcher.router.names() == (
        "dmesg",
        "hostname",
        "ibstat",
        "ipmitool",
        "nvidia-smi",
        "scontrol",
        "sinfo",
        "squeue",
    )


def test_each_command_emits_one_log_record(caplog: pytest.LogCaptureFixture) -> None:
    dispatcher = _dispatcher()
    caplog.set_level(logging.INFO, logger="fleet_simulator.interpreter.dispatcher")

    dispatcher.execute("sudo ipmitool -P hunter2 power status", CommandContext())

    records = [r for r in caplog.records if r.getMessage() == "command executed"]
    assert len(records) == 1
    assert "hunter2" not in records[0].command_line  # type: ignore[attr-defined]
    assert records[0].root is True  # type: ignore[attr-defined]
