"""Text filters for the trailing segments of a pipeline (``| grep``, ``| head`` ...)."""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from typing import Final

from fleet_simulator.constants import EXIT_FAILURE, EXIT_NOT_FOUND, EXIT_SUCCESS, EXIT_USAGE
from fleet_simulator.domain.commands import CommandResult
from fleet_simulator.interpreter.parser import tokenize

DEFAULT_LINE_COUNT: Final[int] = 10
_DASH_COUNT: Final[re.Pattern[str]] = re.compile(r"^-(\d+)$")

_Filter = Callable[[Sequence[str], str], CommandResult]


def apply_pipeline(segments: Sequence[str], result: CommandResult) -> CommandResult:
    """Feed ``result.output`` through each filter segment in order.

    A failing producer is returned unchanged: its text stands for stderr and is
    never piped.
    """

    if not result.ok:
        return result
    current = result
    for segment in segments:
        tokens = tokenize(segment)
        if not tokens:
            return CommandResult("syntax error near unexpected token `|'", EXIT_USAGE)
        handler = _FILTERS.get(tokens[0])
        if handler is None:
            return CommandResult(f"{tokens[0]}: command not found", EXIT_NOT_FOUND)
        current = handler(tokens[1:], current.output)
    return current


def supported_filters() -> tuple[str, ...]:
    return tuple(sorted(_FILTERS))


def _lines(text: str) -> list[str]:
    return text.split("\n") if text else []


def _grep(args: Sequence[str], text: str) -> CommandResult:
    ignore_case = invert = count_only = False
    pattern: str | None = None
    for arg in args:
        if arg.startswith("-") and len(arg) > 1 and pattern is None:
            for letter in arg[1:]:
                if letter == "i":
                    ignore_case = True
                elif letter == "v":
                    invert = True
                elif letter == "c":
                    count_only = True
                else:
                    return CommandResult(f"grep: invalid option -- '{letter}'", EXIT_USAGE)
        elif pattern is None:
            pattern = arg
    if pattern is None:
        return CommandResult("Usage: grep [OPTION]... PATTERNS [FILE]...", EXIT_USAGE)

    try:
        compiled = re.compile(pattern, re.IGNORECASE if ignore_case else 0)
    except re.error:
        return CommandResult(f"grep: Invalid regular expression: {pattern}", EXIT_USAGE)

    selected = [line for line in _lines(text) if bool(compiled.search(line)) != invert]
    status = EXIT_SUCCESS if selected else EXIT_FAILURE
    if count_only:
        return CommandResult(str(len(selected)), status)
    return CommandResult("\n".join(selected), status)


def _line_count(name: str, args: Sequence[str]) -> int | CommandResult:
    count = DEFAULT_LINE_COUNT
    index = 0
    while index < len(args):
        arg = args[index]
        raw: str | None = None
        if arg == "-n":
            if index + 1 >= len(args):
                return CommandResult(f"{name}: option requires an argument -- 'n'", EXIT_USAGE)
            raw = args[index + 1]
            index += 1
        elif arg.startswith("-n"):
            raw = arg[2:]
        elif (match := _DASH_COUNT.match(arg)) is not None:
            raw = match.group(1)
        else:
            return CommandResult(f"{name}: unsupported argument '{arg}'", EXIT_USAGE)
        try:
            count = int(raw)
        except ValueError:
            return CommandResult(f"{name}: invalid number of lines: '{raw}'", EXIT_FAILURE)
        if count < 0:
            return CommandResult(f"{name}: invalid number of lines: '{raw}'", EXIT_FAILURE)
        index += 1
    return count


def _head(args: Sequence[str], text: str) -> CommandResult:
    count = _line_count("head", args)
    if isinstance(count, CommandResult):
        return count
    return CommandResult("\n".join(_lines(text)[:count]))


def _tail(args: Sequence[str], text: str) -> CommandResult:
    count = _line_count("tail", args)
    if isinstance(count, CommandResult):
        return count
    lines = _lines(text)
    return CommandResult("\n".join(lines[len(lines) - count :] if count else []))


def _wc(args: Sequence[str], text: str) -> CommandResult:
    lines = len(_lines(text))
    words = len(text.split())
    chars = len(text) + (1 if text else 0)
    selected = {letter for arg in args if arg.startswith("-") for letter in arg[1:]}
    unknown = selected - {"l", "w", "c"}
    if unknown:
        return CommandResult(f"wc: invalid option -- '{sorted(unknown)[0]}'", EXIT_USAGE)
    if selected == {"l"}:
        return CommandResult(str(lines))
    if selected == {"w"}:
        return CommandResult(str(words))
    if selected == {"c"}:
        return CommandResult(str(chars))
    return CommandResult(f"{lines:>7} {words:>7} {chars:>7}")


_FILTERS: Final[dict[str, _Filter]] = {
    "grep": _grep,
    "head": _head,
    "tail": _tail,
    "wc": _wc,
}


__all__ = ["DEFAULT_LINE_COUNT", "apply_pipeline", "supported_filters"]
