"""UI package exports for the CLI, plain-text rendering and the interactive shell."""

from fleet_simulator.ui.cli import CLIError, build_parser, main, run_cli
from fleet_simulator.ui.render import CLIRenderer, color_allowed, create_renderer
from fleet_simulator.ui.shell import ShellSession

__all__ = [
    "CLIError",
    "CLIRenderer",
    "ShellSession",
    "build_parser",
    "color_allowed",
    "create_renderer",
    "main",
    "run_cli",
]
