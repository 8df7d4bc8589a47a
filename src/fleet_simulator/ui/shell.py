"""Interactive simulator shell.

``ShellSession`` owns the per-session state (execution context, scenario
manager through the dispatcher) and layers a few builtins on top of the
simulated tools: ``explain``, ``scenario``, ``fault``, ``tick``, ``history``,
``help`` and ``exit``. ``ShellCompleter`` backs readline tab completion.
"""

from __future__ import annotations

import readline
import shlex
from collections.abc import Callable, Sequence
from typing import Final

from rich.console import Console
from rich.text import Text

from fleet_simulator.constants import EXIT_FAILURE, EXIT_USAGE
from fleet_simulator.domain.commands import CommandResult
from fleet_simulator.interpreter.dispatcher import CommandDispatcher
from fleet_simulator.interpreter.explain import generate_explain_output
from fleet_simulator.simulators.base import (
    CommandContext,
    resolve_state_source,
    source_cluster,
    source_mutator,
)
from fleet_simulator.state.faults import FaultSpec, apply_faults_to_context
from fleet_simulator.state.metrics import MetricsSimulator

EXIT_WORDS: Final[frozenset[str]] = frozenset({"exit", "quit", "logout"})
SCENARIO_ACTIONS: Final[tuple[str, ...]] = ("create", "use", "reset", "delete", "list", "export")
SCENARIO_USAGE: Final[str] = f"usage: scenario {'|'.join(SCENARIO_ACTIONS)} [id]"

_Builtin = Callable[["ShellSession", Sequence[str]], CommandResult]


class ShellSession:
    """One operator session: context, history, scenario selection and builtins."""

    def __init__(
        self,
        dispatcher: CommandDispatcher,
        *,
        context: CommandContext | None = None,
        metrics: MetricsSimulator | None = None,
    ) -> None:
        self.dispatcher = dispatcher
        self.context = context if context is not None else CommandContext()
        self.metrics = metrics if metrics is not None else MetricsSimulator()
        self.finished = False

    def prompt(self) -> str:
        user = "root" if self.context.is_root else "admin"
        marker = "#" if self.context.is_root else "$"
        scenario = self.dispatcher.contexts.active_context_id
        prefix = f"({scenario}) " if scenario else ""
        return f"{prefix}{user}@{self.context.current_node}:~{marker} "

    def handle(self, line: str) -> CommandResult:
        """Run one line: a builtin when the first word names one, else a simulated tool."""

        stripped = line.strip()
        if not stripped:
            return CommandResult("")
        try:
            words = shlex.split(stripped)
        except ValueError:
            words = stripped.split()
        if words and words[0] in EXIT_WORDS:
            self.finished = True
            return CommandResult("logout")
        builtin = _BUILTINS.get(words[0]) if words else None
        if builtin is not None:
            self.context.history.append(stripped)
            return builtin(self, words[1:])
        return self.dispatcher.execute(stripped, self.context)

    def run(self, console: Console | None = None) -> int:
        """Read-eval-print until ``exit`` or EOF; returns the last exit code."""

        console = console if console is not None else Console(highlight=False)
        last = CommandResult("")
        previous, delims = readline.get_completer(), readline.get_completer_delims()
        readline.set_completer(ShellCompleter(self).complete)
        # Dashes belong to option words.
        readline.set_completer_delims(" \t\n")
        readline.parse_and_bind("tab: complete")
        try:
            while not self.finished:
                try:
                    line = console.input(Text(self.prompt(), style="bold green"))
                except EOFError:
                    console.print()
                    break
                except KeyboardInterrupt:
                    console.print("^C")
                    continue
                last = self.handle(line)
                if last.output:
                    console.print(Text(last.output, style="" if last.ok else "red"))
        finally:
            readline.set_completer(previous)
            readline.set_completer_delims(delims)
        return last.exit_code

    # Builtins

    def _explain(self, args: Sequence[str]) -> CommandResult:
        if not args:
            return CommandResult("usage: explain <command> [flag|subcommand]", EXIT_USAGE)
        return CommandResult(generate_explain_output(" ".join(args), self.dispatcher.registry))

    def _scenario(self, args: Sequence[str]) -> CommandResult:
        if not args:
            return CommandResult(SCENARIO_USAGE, EXIT_USAGE)
        action, rest = args[0], list(args[1:])
        contexts = self.dispatcher.contexts
        if action == "list":
            active = contexts.active_context_id
            lines = []
            for known_id in contexts.context_ids():
                known = contexts.get_context(known_id)
                count = known.get_mutation_count() if known is not None else 0
                marker = "*" if known_id == active else " "
                lines.append(f"{marker} {known_id} ({count} mutations)")
            return CommandResult("\n".join(lines) if lines else "No scenarios.")

        if action == "use" and rest and rest[0] == "none":
            contexts.set_active_context(None)
            return CommandResult("Scenario detached; commands now act on the shared cluster.")

        scenario_id = rest[0] if rest else contexts.active_context_id
        if scenario_id is None:
            return CommandResult(SCENARIO_USAGE, EXIT_USAGE)

        if action == "create":
            contexts.create_context(scenario_id, self.dispatcher.store.get_cluster())
            contexts.set_active_context(scenario_id)
            return CommandResult(f"Scenario '{scenario_id}' created and activated.")

        existing = contexts.get_context(scenario_id)
        if existing is None:
            return CommandResult(f"scenario: no such scenario '{scenario_id}'", EXIT_FAILURE)
        if action == "use":
            contexts.set_active_context(scenario_id)
            return CommandResult(f"Switched to scenario '{scenario_id}'.")
        if action == "reset":
            existing.reset()
            return CommandResult(f"Scenario '{scenario_id}' reset to its starting state.")
        if action == "delete":
            contexts.delete_context(scenario_id)
            return CommandResult(f"Scenario '{scenario_id}' deleted.")
        if action == "export":
            return CommandResult(existing.export())
        return CommandResult(SCENARIO_USAGE, EXIT_USAGE)

    def _fault(self, args: Sequence[str]) -> CommandResult:
        scenario = self.dispatcher.contexts.get_active_context()
        if scenario is None:
            return CommandResult(
                "fault: no active scenario (run 'scenario create <id>' first)", EXIT_FAILURE
            )
        if not args:
            return CommandResult("usage: fault node:gpu:type[:key=value,...] ...", EXIT_USAGE)
        try:
            faults = [FaultSpec.parse(item) for item in args]
            applied = apply_faults_to_context(faults, scenario)
        except ValueError as exc:
            return CommandResult(f"fault: {exc}", EXIT_USAGE)
        return CommandResult(
            f"Injected {applied} of {len(faults)} fault(s) into '{scenario.scenario_id}'.",
            0 if applied == len(faults) else EXIT_FAILURE,
        )

    def _tick(self, args: Sequence[str]) -> CommandResult:
        steps = 1
        if args:
            if not args[0].isdigit() or int(args[0]) < 1:
                return CommandResult("usage: tick [steps]", EXIT_USAGE)
            steps = int(args[0])
        context = CommandContext(
            current_node=self.context.current_node,
            scenario_context=self.dispatcher.contexts.get_active_context(),
        )
        source = resolve_state_source(context, self.dispatcher.store)
        mutator = source_mutator(source)
        updated = 0
        for _ in range(steps):
            updated += self.metrics.tick(source_cluster(source).nodes, mutator)
        return CommandResult(f"Advanced metrics {steps} step(s), {updated} GPU update(s).")

    def _history(self, args: Sequence[str]) -> CommandResult:
        del args
        return CommandResult(
            "\n".join(
                f"{index:>5}  {entry}" for index, entry in enumerate(self.context.history, 1)
            )
        )

    def _help(self, args: Sequence[str]) -> CommandResult:
        del args
        tools = ", ".join(self.dispatcher.router.names())
        builtins = ", ".join(sorted((*_BUILTINS, "exit")))
        return CommandResult(
            f"Simulated tools: {tools}\n"
            f"Shell builtins: {builtins}\n"
            "Prefix a command with 'sudo' to run it as root."
        )


_BUILTINS: Final[dict[str, _Builtin]] = {
    "explain": ShellSession._explain,
    "scenario": ShellSession._scenario,
    "fault": ShellSession._fault,
    "tick": ShellSession._tick,
    "history": ShellSession._history,
    "help": ShellSession._help,
}


class ShellCompleter:
    """Readline completion over tool names, builtins, subcommands and options."""

    def __init__(self, session: ShellSession) -> None:
        self.session = session

    def complete(self, text: str, state: int) -> str | None:
        options = self.candidates(readline.get_line_buffer(), text)
        if state < len(options):
            return options[state]
        return None

    def candidates(self, buffer: str, text: str) -> list[str]:
        """Completions for ``text``, the word under the cursor at the end of ``buffer``."""

        try:
            tokens = shlex.split(buffer)
        except ValueError:
            tokens = buffer.split()
        if buffer and not buffer[-1].isspace() and tokens:
            tokens.pop()
        if tokens and tokens[0] == "sudo":
            tokens = tokens[1:]
        if not tokens:
            return _matching(self._first_words(), text)
        head = tokens[0]
        if head == "scenario":
            return _matching(SCENARIO_ACTIONS, text) if len(tokens) == 1 else []
        if head == "explain":
            if len(tokens) == 1:
                return _matching(self._tool_names(), text)
            head, tokens = tokens[1], tokens[1:]
        return self._tool_words(head, tokens[1:], text)

    def _tool_names(self) -> list[str]:
        registry = self.session.dispatcher.registry
        return sorted({*self.session.dispatcher.router.names(), *registry.command_names()})

    def _first_words(self) -> list[str]:
        return sorted({*self._tool_names(), *_BUILTINS, "exit", "sudo"})

    def _tool_words(self, tool: str, typed: Sequence[str], text: str) -> list[str]:
        definition = self.session.dispatcher.registry.get_definition(tool)
        if definition is None:
            return []
        options = list(definition.options)
        chosen = None
        for word in typed:
            chosen = chosen or definition.subcommand(word)
        if chosen is not None:
            options.extend(chosen.options)
        if text.startswith("-"):
            flags = []
            for option in options:
                if option.short:
                    flags.append(f"-{option.short}")
                if option.long:
                    flags.append(f"--{option.long}")
            return _matching(sorted(set(flags)), text)
        if chosen is None:
            return _matching([subcommand.name for subcommand in definition.subcommands], text)
        return []


def _matching(words: Sequence[str], text: str) -> list[str]:
    return [word for word in words if word.startswith(text)]


__all__ = ["ShellCompleter", "ShellSession"]
