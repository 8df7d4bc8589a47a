"""Judge whether an executed command line satisfies a training step.

Matching is deliberately loose: extra flags are tolerated, piped commands
compare segment by segment, and a few tool-specific spellings are treated as
equivalent. The tokenizer here is plain whitespace splitting with no quote
handling, which is all expected-command templates need.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Final

_SUBSTITUTION: Final[re.Pattern[str]] = re.compile(r"\$\([^)]+\)")
_SUBSTITUTION_VALUE: Final[str] = "12345"
_NEGATIVE_NUMBER: Final[re.Pattern[str]] = re.compile(r"^-\d+$")

# Lines that look plausible but are always wrong, whatever the template.
_INVALID_PATTERNS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"\s-i\s+-\d+"),
    re.compile(r"\s--id\s+-\d+"),
    re.compile(r"nvidia-smi.*\s-gpu\s"),
    re.compile(r"sinfo\s+help"),
    re.compile(r"scontrol\s+help(?!\s)"),
)


@dataclass(frozen=True, slots=True)
class _Shape:
    base_command: str
    args: tuple[str, ...] = ()
    flags: dict[str, str | bool] = field(default_factory=dict)
    piped_segments: tuple[str, ...] = ()

    @property
    def is_piped(self) -> bool:
        return bool(self.piped_segments)


def normalize_command(text: str) -> str:
    """Lowercase, trim and replace ``$(...)`` substitutions with a fixed value."""

    return _SUBSTITUTION.sub(_SUBSTITUTION_VALUE, text.strip().lower())


def is_invalid_command(normalized: str) -> bool:
    return any(pattern.search(normalized) for pattern in _INVALID_PATTERNS)


def validate_command_executed(executed: str, expected_templates: Iterable[str]) -> bool:
    """True when ``executed`` matches at least one of ``expected_templates``."""

    normalized = normalize_command(executed)
    if is_invalid_command(normalized):
        return False
    shape = _shape(normalized)
    return any(
        _matches(normalized, shape, normalize_command(template))
        for template in expected_templates
    )


def _matches(executed: str, executed_shape: _Shape, expected: str) -> bool:
    if executed == expected:
        return True

    expected_shape = _shape(expected)
    if executed_shape.is_piped and expected_shape.is_piped:
        # Segment counts must agree; a mismatch fails this template outright.
        return executed_shape.piped_segments == expected_shape.piped_segments

    if executed_shape.base_command == expected_shape.base_command:
        if not expected_shape.flags and not expected_shape.args:
            return True
        if _flags_satisfied(executed_shape, expected_shape):
            if not expected_shape.args:
                return True
            if all(
                index < len(executed_shape.args) and executed_shape.args[index] == arg
                for index, arg in enumerate(expected_shape.args)
            ):
                return True

    return _equivalent_spelling(executed_shape, expected_shape)


def _flags_satisfied(executed: _Shape, expected: _Shape) -> bool:
    for name, value in expected.flags.items():
        if name not in executed.flags:
            return False
        if value is not True and executed.flags[name] != value:
            return False
    return True


def _equivalent_spelling(executed: _Shape, expected: _Shape) -> bool:
    if executed.base_command != expected.base_command:
        return False

    if executed.base_command == "sinfo":
        output_flags = ("o", "output-format")
        if any(name in executed.flags for name in output_flags) and any(
            name in expected.flags for name in output_flags
        ):
            return True

    if executed.base_command == "scontrol":
        if executed.args[:1] == ("show",) and expected.args[:1] == ("show",):
            if len(executed.args) > 1 and len(expected.args) > 1:
                return executed.args[1].removesuffix("s") == expected.args[1].removesuffix("s")
    return False


def _shape(command: str) -> _Shape:
    parts = command.split()
    if not parts:
        return _Shape(base_command="")

    args: list[str] = []
    flags: dict[str, str | bool] = {}
    index = 1
    while index < len(parts):
        part = parts[index]
        following = parts[index + 1] if index + 1 < len(parts) else None
        takes_value = following is not None and not following.startswith("-")
        if part.startswith("--"):
            if takes_value and following is not None:
                flags[part[2:]] = following
                index += 1
            else:
                flags[part[2:]] = True
        elif part.startswith("-") and len(part) > 1 and not _NEGATIVE_NUMBER.match(part):
            letters = part[1:]
            if len(letters) == 1:
                if takes_value and following is not None:
                    flags[letters] = following
                    index += 1
                else:
                    flags[letters] = True
            else:
                for letter in letters:
                    flags[letter] = True
        else:
            args.append(part)
        index += 1

    segments: tuple[str, ...] = ()
    if "|" in command:
        segments = tuple(segment.strip() for segment in command.split("|"))
    return _Shape(base_command=parts[0], args=tuple(args), flags=flags, piped_segments=segments)


__all__ = ["is_invalid_command", "normalize_command", "validate_command_executed"]
