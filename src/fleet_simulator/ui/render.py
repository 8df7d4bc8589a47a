"""Plain-text output helpers for the ``fleet-sim`` CLI.

Respects the ``NO_COLOR`` environment variable and the ``--no-color`` flag.
The interactive shell styles its output through rich; everything here stays
deterministic plain text so it can be piped and diffed.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING, TextIO

if TYPE_CHECKING:
    from collections.abc import Sequence

    from fleet_simulator.domain.commands import CommandResult


def color_allowed(no_color_flag: bool, stream: TextIO | None = None) -> bool:
    """Check whether color output should be attempted."""

    if no_color_flag:
        return False
    if os.environ.get("NO_COLOR", ""):
        return False
    target = stream if stream is not None else sys.stdout
    return hasattr(target, "isatty") and target.isatty()


class CLIRenderer:
    """Thin CLI output renderer writing to stdout, errors to stderr."""

    def __init__(self, *, no_color: bool = False, verbose: bool = False) -> None:
        self.verbose = verbose
        self.color = color_allowed(no_color)

    def text(self, line: str) -> None:
        print(line)

    def kv(self, key: str, value: object) -> None:
        print(f"{key}: {value}")

    def section(self, title: str) -> None:
        """Print a section header with a preceding blank line."""

        print(f"\n{title}")

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        for entry in entries:
            print(f"  {prefix}{entry}")

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[str]],
        *,
        title: str | None = None,
    ) -> None:
        """Print a formatted ASCII table."""

        if not rows:
            return

        col_count = len(headers)
        widths = [len(h) for h in headers]
        for row in rows:
            for i in range(min(len(row), col_count)):
                widths[i] = max(widths[i], len(str(row[i])))

        def _pad(cells: Sequence[str]) -> str:
            parts: list[str] = []
            for i in range(col_count):
                cell = str(cells[i]) if i < len(cells) else ""
                parts.append(cell.ljust(widths[i]))
            return "  ".join(parts).rstrip()

        if title:
            self.section(title)
        print(f"  {_pad(list(headers))}")
        print(f"  {'  '.join('-' * w for w in widths)}")
        for row in rows:
            print(f"  {_pad(list(row))}")

    def command_result(self, result: CommandResult) -> None:
        """Print simulated command output; failures go to stderr like a real tool."""

        if not result.output:
            return
        stream = sys.stdout if result.ok else sys.stderr
        print(result.output, file=stream)

    def error(self, message: str) -> None:
        print(f"error: {message}", file=sys.stderr)


def create_renderer(*, no_color: bool = False, verbose: bool = False) -> CLIRenderer:
    return CLIRenderer(no_color=no_color, verbose=verbose)


__all__ = ["CLIRenderer", "color_allowed", "create_renderer"]
