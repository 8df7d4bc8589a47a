"""
fleet-simulator: unit tests for the privilege state engine

File: tests/unit/interpreter/test_state_engine.py

Purpose
- Validate root requirements derived from option flags and state write gates.
"""

from __future__ import annotations

import pytest

from fleet_simulator.interpreter.registry import CommandDefinitionRegistry
from fleet_simulator.interpreter.state_engine import ExecutionCheck, StateEngine
from fleet_simulator.simulators.base import CommandContext


@pytest.fixture(scope="module")
def engine() -> StateEngine:
    return StateEngine(CommandDefinitionRegistry.from_directory())


@pytest.mark.parametrize(
    ("command", "flags", "expected"),
    [
        ("nvidia-smi", [], False),
        ("nvidia-smi", ["q", "i"], False),
        ("nvidia-smi", ["pl"], True),
        ("nvidia-smi", ["-pl"], True),
        ("nvidia-smi", ["power-limit"], True),
        ("nvidia-smi", ["mig"], True),
        ("dmesg", [], False),
        ("dmesg", ["T"], False),
        ("dmesg", ["C"], True),
        ("ipmitool", [], True),
        ("sinfo", ["N", "l"], False),
        ("scontrol", [], False),
        ("kubectl", ["x"], False),
    ],
)
def test_requires_root(
    engine: StateEngine, command: str, flags: list[str], expected: bool
) -> None:
    assert engine.requires_root(command, flags) is expected


def test_subcommand_flags_do_not_trigger_command_writes(engine: StateEngine) -> None:
    user = CommandContext(is_root=False)

    assert engine.requires_root("nvidia-smi", ["e"])
    assert not engine.requires_root("nvidia-smi", ["e"], "nvlink")
    assert engine.requires_root("nvidia-smi", ["e", "pl"], "nvlink")
    assert engine.can_execute("nvidia-smi", ["e"], user, subcommand="nvlink") == ExecutionCheck(
        valid=True
    )


def test_can_execute_denies_unprivileged_caller(engine: StateEngine) -> None:
    check = engine.can_execute("nvidia-smi", ["pl"], CommandContext(is_root=False))

    assert check == ExecutionCheck(
        valid=False,
        reason="nvidia-smi: Operation requires root privileges. Run with sudo.",
    )


def test_can_execute_allows_root_and_read_only_commands(engine: StateEngine) -> None:
    assert engine.can_execute("nvidia-smi", ["pl"], CommandContext(is_root=True)).valid
    assert engine.can_execute("nvidia-smi", ["L"], CommandContext()).valid
    assert engine.get_prerequisite_error("sinfo", [], CommandContext()) is None


def test_get_state_interactions_passes_through(engine: StateEngine) -> None:
    interactions = engine.get_state_interactions("ipmitool")

    assert interactions is not None
    assert interactions.writes_to[0].requires_privilege == "root"
    assert engine.get_state_interactions("missing") is None
