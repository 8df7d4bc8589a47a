"""Terminal session pipeline: one command line in, one ``CommandResult`` out.

The dispatcher strings the interpreter together. It strips ``sudo``, parses
with the tool's word flags, routes to a simulator, appends typo hints, gates
on privileges, attaches the active scenario and runs pipe filters.
"""

from __future__ import annotations

import dataclasses
import logging
import uuid
from collections.abc import Mapping
from typing import TYPE_CHECKING, Final

from fleet_simulator.constants import (
    EXIT_FAILURE,
    EXIT_NOT_FOUND,
    EXIT_USAGE,
    MAX_SUGGESTIONS,
    SUGGESTION_DISTANCE_THRESHOLD,
)
from fleet_simulator.domain.cluster_factory import create_cluster
from fleet_simulator.domain.commands import CommandResult
from fleet_simulator.interpreter.parser import parse
from fleet_simulator.interpreter.pipes import apply_pipeline
from fleet_simulator.interpreter.registry import CommandDefinitionRegistry
from fleet_simulator.interpreter.router import CommandRouter
from fleet_simulator.interpreter.state_engine import StateEngine
from fleet_simulator.interpreter.suggestions import CommandInterceptor, rank_candidates
from fleet_simulator.observability.logging import correlation_scope, redact_command_line
from fleet_simulator.simulators import NvidiaSmiSimulator, SlurmSimulator, SystemSimulator
from fleet_simulator.state.scenario_context import ScenarioContextManager
from fleet_simulator.state.store import SimulationStore

if TYPE_CHECKING:
    from fleet_simulator.domain.commands import ParsedCommand
    from fleet_simulator.simulators.base import BaseSimulator, CommandContext

SUDO: Final[str] = "sudo"
DEFAULT_HISTORY_LIMIT: Final[int] = 1000
_SHORT_FLAG_HINT_LENGTH: Final[int] = 3

logger = logging.getLogger(__name__)


def default_router(
    store: SimulationStore, registry: CommandDefinitionRegistry | None = None
) -> CommandRouter[BaseSimulator]:
    """Route every tool the bundled simulators claim in their metadata."""

    router: CommandRouter[BaseSimulator] = CommandRouter()
    for simulator in (
        NvidiaSmiSimulator(store, registry),
        SlurmSimulator(store, registry),
        SystemSimulator(store, registry),
    ):
        router.register_many(simulator.get_metadata().commands, simulator)
    return router


class CommandDispatcher:
    def __init__(
        self,
        router: CommandRouter[BaseSimulator],
        registry: CommandDefinitionRegistry,
        state_engine: StateEngine,
        store: SimulationStore,
        contexts: ScenarioContextManager,
        config: Mapping[str, object] | None = None,
    ) -> None:
        session = _section(config, "session")
        self._router = router
        self._registry = registry
        self._state_engine = state_engine
        self._store = store
        self._contexts = contexts
        self._enforce_privileges = bool(session.get("enforce_privileges", True))
        self._history_limit = _positive_int(session.get("history_limit"), DEFAULT_HISTORY_LIMIT)
        self._threshold = _positive_int(
            session.get("suggestion_threshold"), SUGGESTION_DISTANCE_THRESHOLD, minimum=0
        )
        self._max_suggestions = _positive_int(session.get("max_suggestions"), MAX_SUGGESTIONS)

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, object],
        *,
        registry: CommandDefinitionRegistry | None = None,
        store: SimulationStore | None = None,
        contexts: ScenarioContextManager | None = None,
    ) -> CommandDispatcher:
        """Assemble a dispatcher with its collaborators from an effective config."""

        session = _section(config, "session")
        if registry is None:
            commands_dir = _section(config, "registry").get("commands_dir")
            registry = CommandDefinitionRegistry.from_directory(
                commands_dir if isinstance(commands_dir, str) and commands_dir else None,
                interceptor=CommandInterceptor(
                    threshold=_positive_int(
                        session.get("suggestion_threshold"),
                        SUGGESTION_DISTANCE_THRESHOLD,
                        minimum=0,
                    ),
                    max_suggestions=_positive_int(session.get("max_suggestions"), MAX_SUGGESTIONS),
                ),
            )
        if store is None:
            cluster = _section(config, "cluster")
            store = SimulationStore(create_cluster(**cluster) if cluster else None)
        return cls(
            default_router(store, registry),
            registry,
            StateEngine(registry),
            store,
            contexts if contexts is not None else ScenarioContextManager(),
            config,
        )

    @property
    def registry(self) -> CommandDefinitionRegistry:
        return self._registry

    @property
    def store(self) -> SimulationStore:
        return self._store

    @property
    def contexts(self) -> ScenarioContextManager:
        return self._contexts

    @property
    def router(self) -> CommandRouter[BaseSimulator]:
        return self._router

    def execute(self, line: str, context: CommandContext) -> CommandResult:
        text = line.strip()
        if not text:
            return CommandResult("")
        self._remember(text, context)

        elevated = context.is_root
        if text == SUDO or text.startswith(SUDO + " "):
            text = text[len(SUDO) :].strip()
            elevated = True
            if not text:
                return CommandResult("usage: sudo command", EXIT_FAILURE)

        scenario = context.scenario_context or self._contexts.get_active_context()
        call_context = dataclasses.replace(
            context, is_root=elevated, scenario_context=scenario
        )
        command_id = uuid.uuid4().hex[:12]
        with correlation_scope(
            command_id=command_id,
            scenario_id=scenario.scenario_id if scenario is not None else None,
        ):
            result = self._run(text, call_context)
            logger.info(
                "command executed",
                extra={
                    "command_line": redact_command_line(text),
                    "exit_code": result.exit_code,
                    "node": call_context.current_node,
                    "root": call_context.is_root,
                },
            )
        return result

    def _run(self, text: str, context: CommandContext) -> CommandResult:
        base = parse(text).base_command
        if not base:
            return CommandResult("syntax error near unexpected token `|'", EXIT_USAGE)
        simulator = self._router.resolve(base)
        if simulator is None:
            return self._command_not_found(base)

        parsed = parse(text, word_flags=self._registry.word_flags(base))
        hints = self._typo_hints(parsed)

        if self._enforce_privileges:
            subcommand = parsed.subcommands[0] if parsed.subcommands else None
            check = self._state_engine.can_execute(
                base, parsed.flags.keys(), context, subcommand=subcommand
            )
            if not check.valid:
                return CommandResult(check.reason or "permission denied", EXIT_FAILURE)

        result = simulator.execute(parsed, context)
        if parsed.is_piped:
            result = apply_pipeline(parsed.piped_segments[1:], result)
        if hints:
            output = "\n".join(part for part in (result.output, *hints) if part)
            result = dataclasses.replace(result, output=output)
        return result

    def _command_not_found(self, base: str) -> CommandResult:
        message = f"{base}: command not found"
        suggestions, _, _ = rank_candidates(
            base,
            {name: name for name in self._router.names()},
            threshold=self._threshold,
            limit=self._max_suggestions,
        )
        if len(suggestions) == 1:
            message += f"\nDid you mean '{suggestions[0]}'?"
        elif suggestions:
            message += "\nDid you mean one of: " + ", ".join(f"'{s}'" for s in suggestions) + "?"
        return CommandResult(message, EXIT_NOT_FOUND)

    def _typo_hints(self, parsed: ParsedCommand) -> list[str]:
        tool = parsed.base_command
        definition = self._registry.get_definition(tool)
        if definition is None:
            return []
        interceptor = self._registry.interceptor
        hints: list[str] = []
        for flag in parsed.flags:
            # Short candidates sit within the edit threshold of every single-letter alias.
            cap = len(flag) - 1 if len(flag) < _SHORT_FLAG_HINT_LENGTH else None
            result = interceptor.validate_flag(tool, flag, max_distance=cap)
            hint = interceptor.format_suggestion(tool, result)
            if hint:
                hints.append(f"{tool}: unrecognized option '{flag}'. {hint}")

        if definition.subcommands and parsed.subcommands:
            first = parsed.subcommands[0]
            result = interceptor.validate_subcommand(tool, first)
            hint = interceptor.format_suggestion(tool, result, is_flag=False)
            if hint:
                hints.append(f"{tool}: unknown subcommand '{first}'. {hint}")
        return hints

    def _remember(self, text: str, context: CommandContext) -> None:
        context.history.append(text)
        overflow = len(context.history) - self._history_limit
        if overflow > 0:
            del context.history[:overflow]


def _section(config: Mapping[str, object] | None, key: str) -> dict[str, object]:
    if config is None:
        return {}
    value = config.get(key)
    return dict(value) if isinstance(value, Mapping) else {}


def _positive_int(value: object, default: int, *, minimum: int = 1) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        return default
    return value


__all__ = ["CommandDispatcher", "DEFAULT_HISTORY_LIMIT", "default_router"]
