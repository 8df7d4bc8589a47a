"""Simulator contract and the shared state-resolution rules.

Every simulator reads and writes through the same resolution: an explicit
cluster on the call context wins for reads, then the active scenario
context, then the global store. Writes always go to exactly one sink, the
scenario context when one is attached and the global store otherwise.
"""

from __future__ import annotations

import abc
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeAlias

from fleet_simulator.constants import DEFAULT_NODE_ID, DEFAULT_PATH, EXIT_FAILURE, EXIT_SUCCESS
from fleet_simulator.domain.commands import CommandResult, ParsedCommand

if TYPE_CHECKING:
    from fleet_simulator.domain.models import ClusterConfig, DGXNode
    from fleet_simulator.interpreter.registry import CommandDefinitionRegistry
    from fleet_simulator.state.mutations import StateMutator
    from fleet_simulator.state.scenario_context import ScenarioContext
    from fleet_simulator.state.store import SimulationStore


@dataclass(slots=True)
class CommandContext:
    """Per-invocation execution context supplied by the caller."""

    is_root: bool = False
    current_node: str = DEFAULT_NODE_ID
    current_path: str = DEFAULT_PATH
    environment: dict[str, str] = field(default_factory=dict)
    history: list[str] = field(default_factory=list)
    cluster: ClusterConfig | None = None
    scenario_context: ScenarioContext | None = None


@dataclass(frozen=True, slots=True)
class SimulatorMetadata:
    name: str
    version: str
    description: str
    commands: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class ExplicitSource:
    cluster: ClusterConfig
    sink: StateMutator


@dataclass(frozen=True, slots=True)
class ScenarioSource:
    context: ScenarioContext


@dataclass(frozen=True, slots=True)
class GlobalSource:
    store: SimulationStore


StateSource: TypeAlias = ExplicitSource | ScenarioSource | GlobalSource


def resolve_state_source(context: CommandContext, store: SimulationStore) -> StateSource:
    if context.cluster is not None:
        sink: StateMutator = (
            context.scenario_context if context.scenario_context is not None else store
        )
        return ExplicitSource(cluster=context.cluster, sink=sink)
    if context.scenario_context is not None:
        return ScenarioSource(context=context.scenario_context)
    return GlobalSource(store=store)


def source_cluster(source: StateSource) -> ClusterConfig:
    match source:
        case ExplicitSource(cluster=cluster):
            return cluster
        case ScenarioSource(context=scenario):
            return scenario.get_cluster()
        case GlobalSource(store=store):
            return store.get_cluster()
    raise TypeError(f"unsupported state source: {type(source).__name__}")


def source_mutator(source: StateSource) -> StateMutator:
    match source:
        case ExplicitSource(sink=sink):
            return sink
        case ScenarioSource(context=scenario):
            return scenario
        case GlobalSource(store=store):
            return store
    raise TypeError(f"unsupported state source: {type(source).__name__}")


class BaseSimulator(abc.ABC):
    """Base class for per-tool simulators.

    User mistakes are reported as non-zero ``CommandResult`` values; an
    exception escaping ``execute`` is a simulator bug.
    """

    def __init__(
        self,
        store: SimulationStore,
        registry: CommandDefinitionRegistry | None = None,
    ) -> None:
        self._store = store
        self._registry = registry

    @abc.abstractmethod
    def get_metadata(self) -> SimulatorMetadata:
        raise NotImplementedError

    @abc.abstractmethod
    def execute(self, parsed: ParsedCommand, context: CommandContext) -> CommandResult:
        raise NotImplementedError

    # State resolution

    def resolve_cluster(self, context: CommandContext) -> ClusterConfig:
        return source_cluster(resolve_state_source(context, self._store))

    def resolve_node(self, context: CommandContext, node_id: str | None = None) -> DGXNode | None:
        return self.resolve_cluster(context).node(node_id or context.current_node)

    def resolve_all_nodes(self, context: CommandContext) -> list[DGXNode]:
        return list(self.resolve_cluster(context).nodes)

    def resolve_mutator(self, context: CommandContext) -> StateMutator:
        return source_mutator(resolve_state_source(context, self._store))

    # Result helpers

    @staticmethod
    def create_success(output: str = "") -> CommandResult:
        return CommandResult(output=output, exit_code=EXIT_SUCCESS)

    @staticmethod
    def create_error(message: str, exit_code: int = EXIT_FAILURE) -> CommandResult:
        return CommandResult(output=message, exit_code=exit_code)

    @staticmethod
    def has_any_flag(parsed: ParsedCommand, *names: str) -> bool:
        return parsed.has_flag(*names)

    @staticmethod
    def flag_value(parsed: ParsedCommand, *names: str) -> str | None:
        return parsed.flag_value(*names)

    @staticmethod
    def arguments(parsed: ParsedCommand) -> list[str]:
        """Subcommand chain followed by positional arguments."""

        return [*parsed.subcommands, *parsed.positional_args]

    def handle_help(
        self, parsed: ParsedCommand, *, names: Sequence[str] = ("help",)
    ) -> CommandResult | None:
        if not parsed.has_flag(*names):
            return None
        if self._registry is not None:
            text = self._registry.get_command_help(parsed.base_command)
            if text:
                return self.create_success(text)
        metadata = self.get_metadata()
        return self.create_success(
            f"{parsed.base_command}: {metadata.description}\n"
            f"Supported commands: {', '.join(metadata.commands)}"
        )

    def handle_version(
        self, parsed: ParsedCommand, *, names: Sequence[str] = ("version",)
    ) -> CommandResult | None:
        if not parsed.has_flag(*names):
            return None
        return self.create_success(f"{parsed.base_command} {self.get_metadata().version}")


__all__ = [
    "BaseSimulator",
    "CommandContext",
    "ExplicitSource",
    "GlobalSource",
    "ScenarioSource",
    "SimulatorMetadata",
    "StateSource",
    "resolve_state_source",
    "source_cluster",
    "source_mutator",
]
