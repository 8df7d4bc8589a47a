"""Total, best-effort parser for shell-like command lines.

The parser never raises: malformed quoting falls back to whitespace splitting and
any token shape it does not recognise becomes a subcommand or positional argument.
"""

from __future__ import annotations

import re
import shlex
from collections.abc import Collection
from typing import Final

from fleet_simulator.domain.commands import FlagValue, ParsedCommand

_NEGATIVE_NUMBER: Final[re.Pattern[str]] = re.compile(r"^-\d+(\.\d+)?$")
_END_OF_OPTIONS: Final[str] = "--"


def parse(line: str, *, word_flags: Collection[str] = ()) -> ParsedCommand:
    """Parse ``line`` into a :class:`ParsedCommand`.

    ``word_flags`` names multi-letter single-dash options (``-pl``) that must be
    kept whole instead of expanded into one boolean per letter.
    """

    raw = line if isinstance(line, str) else ""
    segments = split_pipeline(raw)
    is_piped = len(segments) > 1
    tokens = tokenize(segments[0] if segments else "")

    if not tokens:
        return ParsedCommand(
            base_command="",
            is_piped=is_piped,
            piped_segments=tuple(segments) if is_piped else (),
            raw=raw,
        )

    flags: dict[str, FlagValue] = {}
    subcommands: list[str] = []
    positional: list[str] = []
    seen_flag = False
    options_ended = False
    index = 1

    while index < len(tokens):
        token = tokens[index]
        index += 1

        if options_ended:
            positional.append(token)
            continue
        if token == _END_OF_OPTIONS:
            options_ended = True
            seen_flag = True
            continue

        if token.startswith("--"):
            seen_flag = True
            name, sep, inline_value = token[2:].partition("=")
            if sep:
                flags[name] = inline_value
                continue
            if index < len(tokens) and not is_flag_token(tokens[index]):
                flags[name] = tokens[index]
                index += 1
            else:
                flags[name] = True
            continue

        if is_flag_token(token):
            seen_flag = True
            body = token[1:]
            if len(body) == 1 or body in word_flags:
                if index < len(tokens) and not is_flag_token(tokens[index]):
                    flags[body] = tokens[index]
                    index += 1
                else:
                    flags[body] = True
            else:
                for letter in body:
                    flags[letter] = True
            continue

        if seen_flag:
            positional.append(token)
        else:
            subcommands.append(token)

    return ParsedCommand(
        base_command=tokens[0],
        subcommands=tuple(subcommands),
        flags=flags,
        positional_args=tuple(positional),
        is_piped=is_piped,
        piped_segments=tuple(segments) if is_piped else (),
        raw=raw,
    )


def is_flag_token(token: str) -> bool:
    """Return whether ``token`` looks like an option rather than a value."""

    if len(token) < 2 or not token.startswith("-"):
        return False
    if token == _END_OF_OPTIONS:
        return True
    return _NEGATIVE_NUMBER.match(token) is None


def tokenize(segment: str) -> list[str]:
    """Split one pipeline segment into words, honouring single and double quotes."""

    lexer = shlex.shlex(segment, posix=True)
    lexer.whitespace_split = True
    lexer.commenters = ""
    try:
        return list(lexer)
    except ValueError:
        # Unbalanced quotes: degrade to plain whitespace splitting.
        return segment.split()


def split_pipeline(line: str) -> list[str]:
    """Split ``line`` on ``|`` characters that are outside quotes, trimming each part."""

    if "|" not in line:
        stripped = line.strip()
        return [stripped] if stripped else []

    segments: list[str] = []
    current: list[str] = []
    quote: str | None = None
    for char in line:
        if quote is not None:
            current.append(char)
            if char == quote:
                quote = None
            continue
        if char in {"'", '"'}:
            quote = char
            current.append(char)
            continue
        if char == "|":
            segments.append("".join(current).strip())
            current = []
            continue
        current.append(char)
    segments.append("".join(current).strip())
    return segments


__all__ = ["is_flag_token", "parse", "split_pipeline", "tokenize"]
