"""Command-line interface router for fleet-sim."""

from __future__ import annotations

import argparse
import json
import sys
import uuid
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Final

from rich.console import Console

from fleet_simulator.config import (
    ConfigLoadError,
    ConfigValidationError,
    assert_valid_config,
    effective_config,
    load_config,
)
from fleet_simulator.constants import DEFAULT_NODE_ID
from fleet_simulator.interpreter import (
    CommandDispatcher,
    RegistryLoadError,
    generate_explain_output,
    validate_command_executed,
)
from fleet_simulator.observability import setup_logging, shutdown_logging
from fleet_simulator.simulators.base import CommandContext
from fleet_simulator.state.faults import FaultSpec, apply_faults_to_context
from fleet_simulator.ui.render import CLIRenderer, color_allowed, create_renderer
from fleet_simulator.ui.shell import ShellSession

DEFAULT_SCENARIO_ID: Final[str] = "cli"


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="fleet-sim",
        description=(
            "fleet-sim: simulated GPU-fleet administration terminal.\n\n"
            "Common workflows:\n"
            "  fleet-sim shell                      Start an interactive session\n"
            "  fleet-sim exec 'nvidia-smi -L'       Run one simulated command\n"
            "  fleet-sim explain nvidia-smi -q      Show documentation for a flag\n"
            "  fleet-sim validate 'sinfo -N' 'sinfo'\n"
            "                                       Check a command against templates\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to simulator TOML config (default: ./fleetsim.toml if present).",
    )
    common.add_argument(
        "--profile",
        default=None,
        help="Optional config profile overlay name.",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show detailed output.",
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # exec ----------------------------------------------------------------
    exec_parser = subparsers.add_parser(
        "exec",
        parents=[common],
        help="Run one simulated command line",
        description="Run a single command line against a freshly built simulated cluster.",
    )
    exec_parser.add_argument("line", help="Command line, quoted, e.g. 'nvidia-smi -q | grep Temp'")
    exec_parser.add_argument(
        "--root", action="store_true", default=False, help="Run as root (like sudo)"
    )
    exec_parser.add_argument("--node", default=None, help="Node the session is logged into")
    exec_parser.add_argument(
        "--scenario",
        default=None,
        help="Run inside a scenario sandbox with this ID",
    )
    exec_parser.add_argument(
        "--fault",
        dest="faults",
        action="append",
        default=[],
        metavar="SPEC",
        help="Inject a fault node:gpu:type[:key=value,...] before running (repeatable)",
    )
    exec_parser.add_argument("--json", action="store_true", help="Emit deterministic JSON output")
    exec_parser.set_defaults(handler=_cmd_exec)

    # shell ---------------------------------------------------------------
    shell_parser = subparsers.add_parser(
        "shell",
        parents=[common],
        help="Start an interactive simulator shell",
        description="Read-eval-print loop over the simulated tools and shell builtins.",
    )
    shell_parser.add_argument("--node", default=None, help="Node the session is logged into")
    shell_parser.set_defaults(handler=_cmd_shell)

    # explain -------------------------------------------------------------
    explain_parser = subparsers.add_parser(
        "explain",
        parents=[common],
        help="Show documentation for a tool, flag or subcommand",
    )
    explain_parser.add_argument("tool", help="Tool name, e.g. nvidia-smi")
    explain_parser.add_argument(
        "target",
        nargs=argparse.REMAINDER,
        help="Optional flag or subcommand (dash-prefixed flags are taken verbatim)",
    )
    explain_parser.set_defaults(handler=_cmd_explain)

    # validate ------------------------------------------------------------
    validate_parser = subparsers.add_parser(
        "validate",
        parents=[common],
        help="Check an executed command against expected templates",
    )
    validate_parser.add_argument("executed", help="The command line that was run")
    validate_parser.add_argument("expected", nargs="+", help="Accepted command templates")
    validate_parser.add_argument(
        "--json", action="store_true", help="Emit deterministic JSON output"
    )
    validate_parser.set_defaults(handler=_cmd_validate)

    # config --------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Show effective (redacted) configuration",
    )
    config_parser.add_argument("--json", action="store_true", help="Emit JSON output")
    config_parser.set_defaults(handler=_cmd_config)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


def main(argv: Sequence[str] | None = None) -> int:
    """Compatibility wrapper for main-module wiring."""

    return run_cli(argv)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_exec(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    dispatcher = _build_dispatcher(config)
    context = _session_context(config, node=_optional_str(getattr(args, "node", None)))
    if _flag(args, "root"):
        context.is_root = True

    scenario_id = _optional_str(getattr(args, "scenario", None))
    faults = _parse_faults(getattr(args, "faults", ()))
    if faults and scenario_id is None:
        scenario_id = DEFAULT_SCENARIO_ID

    scenario = None
    if scenario_id is not None:
        scenario = dispatcher.contexts.create_context(scenario_id, dispatcher.store.get_cluster())
        dispatcher.contexts.set_active_context(scenario_id)
        try:
            applied = apply_faults_to_context(faults, scenario)
        except ValueError as exc:
            raise CLIError(f"invalid --fault: {exc}", exit_code=2) from exc
        if applied != len(faults):
            raise CLIError(
                f"only {applied} of {len(faults)} fault(s) matched a node/GPU", exit_code=2
            )

    with _logging_session(config):
        result = dispatcher.execute(args.line, context)

    if _flag(args, "json"):
        _emit_json(
            {
                "command": "exec",
                "exit_code": result.exit_code,
                "line": args.line,
                "mutations": scenario.get_mutation_count() if scenario is not None else 0,
                "output": result.output,
                "scenario": scenario_id,
            }
        )
        return result.exit_code

    renderer = _get_renderer(args)
    renderer.command_result(result)
    if renderer.verbose and scenario is not None:
        renderer.section("Scenario:")
        renderer.kv("ID", scenario.scenario_id)
        renderer.kv("Mutations", scenario.get_mutation_count())
    return result.exit_code


def _cmd_shell(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    dispatcher = _build_dispatcher(config)
    context = _session_context(config, node=_optional_str(getattr(args, "node", None)))
    session = ShellSession(dispatcher, context=context)
    console = Console(highlight=False, no_color=not color_allowed(_flag(args, "no_color")))

    with _logging_session(config):
        console.print("Simulated GPU fleet shell. Type 'help' for commands, 'exit' to leave.")
        return session.run(console)


def _cmd_explain(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    registry = _build_dispatcher(config).registry
    tool = _require_str(getattr(args, "tool", None), "tool")
    target = " ".join(_string_sequence(getattr(args, "target", None)))
    query = f"{tool} {target}" if target else tool

    renderer = _get_renderer(args)
    renderer.text(generate_explain_output(query, registry).rstrip("\n"))
    return 0 if registry.has(tool) else 1


def _cmd_validate(args: argparse.Namespace) -> int:
    executed = _require_str(getattr(args, "executed", None), "executed")
    expected = _string_sequence(getattr(args, "expected", None))
    matched = validate_command_executed(executed, expected)

    if _flag(args, "json"):
        _emit_json(
            {
                "command": "validate",
                "executed": executed,
                "expected": list(expected),
                "matched": matched,
            }
        )
        return 0 if matched else 1

    renderer = _get_renderer(args)
    renderer.kv("Executed", executed)
    if renderer.verbose:
        renderer.section("Expected templates:")
        renderer.items(list(expected))
    renderer.kv("Result", "match" if matched else "no match")
    return 0 if matched else 1


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    profile = _optional_str(getattr(args, "profile", None))
    redacted = effective_config(config)

    payload: dict[str, object] = {
        "command": "config",
        "active_profile": profile,
        "config": redacted,
    }

    if _flag(args, "json"):
        _emit_json(payload)
        return 0

    renderer = _get_renderer(args)
    renderer.kv("Active profile", profile or "(default)")
    renderer.text(json.dumps(redacted, indent=2, sort_keys=True, ensure_ascii=False))
    return 0


# ---------------------------------------------------------------------------
# Rendering helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    """Retrieve or create a CLI renderer from the parsed namespace."""

    no_color = _flag(args, "no_color")
    verbose = _flag(args, "verbose")
    return create_renderer(no_color=no_color, verbose=verbose)


# ---------------------------------------------------------------------------
# Helpers: config, session wiring
# ---------------------------------------------------------------------------


def _load_effective_config(args: argparse.Namespace) -> dict[str, object]:
    config_path = _optional_str(getattr(args, "config_path", None))
    profile = _optional_str(getattr(args, "profile", None))

    try:
        loaded = load_config(config_path, profile=profile)
        validated = assert_valid_config(loaded, active_profile=profile)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc

    return {key: value for key, value in validated.items()}


def _build_dispatcher(config: Mapping[str, object]) -> CommandDispatcher:
    try:
        return CommandDispatcher.from_config(config)
    except RegistryLoadError as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _session_context(config: Mapping[str, object], *, node: str | None) -> CommandContext:
    session = config.get("session")
    settings: Mapping[str, object] = session if isinstance(session, Mapping) else {}
    default_node = settings.get("default_node")
    return CommandContext(
        is_root=bool(settings.get("start_as_root", False)),
        current_node=node or (default_node if isinstance(default_node, str) else DEFAULT_NODE_ID),
    )


def _parse_faults(raw: object) -> list[FaultSpec]:
    try:
        return [FaultSpec.parse(item) for item in _string_sequence(raw)]
    except ValueError as exc:
        raise CLIError(f"invalid --fault: {exc}", exit_code=2) from exc


@contextmanager
def _logging_session(config: Mapping[str, object]) -> Iterator[None]:
    observability = config.get("observability")
    handle = setup_logging(
        observability if isinstance(observability, Mapping) else None,
        session_id=f"session-{uuid.uuid4().hex[:12]}",
    )
    try:
        yield
    finally:
        shutdown_logging(handle)


def _require_str(value: object, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise CLIError(f"{name} must be a non-empty string", exit_code=2)
    return value


def _optional_str(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


def _flag(args: argparse.Namespace, name: str) -> bool:
    return bool(getattr(args, name, False))


def _string_sequence(value: object) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, Sequence):
        return ()
    return tuple(item for item in value if isinstance(item, str))


__all__ = ["CLIError", "build_parser", "main", "run_cli"]
