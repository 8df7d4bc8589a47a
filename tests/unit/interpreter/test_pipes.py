"""
fleet-simulator: unit tests for pipeline text filters

File: tests/unit/interpreter/test_pipes.py

Purpose
- Validate grep/head/tail/wc behaviour on simulated command output.

What this test file should cover
- Filter options and exit statuses.
- Chaining, unknown filters and empty segments.
- Failing producers are never piped.
"""

from __future__ import annotations

import pytest

from fleet_simulator.domain.commands import CommandResult
from fleet_simulator.interpreter.pipes import apply_pipeline, supported_filters

_LOG = "\n".join(
    [
        "[ 1.0] boot ok",
        "[ 2.0] NVRM: Xid (PCI:0000:07:00): 79, GPU has fallen off the bus",
        "[ 3.0] eth0 up",
        "[ 4.0] NVRM: Xid (PCI:0000:0f:00): 48, DBE",
    ]
)


def _pipe(*segments: str, text: str = _LOG) -> CommandResult:
    return apply_pipeline(list(segments), CommandResult(text))


def test_supported_filters() -> None:
    assert supported_filters() == ("grep", "head", "tail", "wc")


def test_grep_selects_matching_lines() -> None:
    result = _pipe("grep Xid")

    assert result.ok
    assert result.output.splitlines() == [_LOG.splitlines()[1], _LOG.splitlines()[3]]


def test_grep_options() -> None:
    assert _pipe("grep -i xid").output.count("Xid") == 2
    assert _pipe("grep -v Xid").output == "[ 1.0] boot ok\n[ 3.0] eth0 up"
    assert _pipe("grep -ic XID").output == "2"


def test_grep_without_matches_exits_one() -> None:
    assert _pipe("grep nothing-here") == CommandResult("", 1)
    assert _pipe("grep -c nothing-here") == CommandResult("0", 1)


@pytest.mark.parametrize(
    ("segment", "message"),
    [
        ("grep", "Usage: grep [OPTION]... PATTERNS [FILE]..."),
        ("grep -z Xid", "grep: invalid option -- 'z'"),
        ("grep (", "grep: Invalid regular expression: ("),
    ],
)
def test_grep_usage_errors(segment: str, message: str) -> None:
    assert _pipe(segment) == CommandResult(message, 2)


def test_head_and_tail_counts() -> None:
    lines = "\n".join(str(number) for number in range(1, 21))

    assert _pipe("head", text=lines).output.splitlines() == [str(n) for n in range(1, 11)]
    assert _pipe("head -n 2", text=lines).output == "1\n2"
    assert _pipe("head -3", text=lines).output == "1\n2\n3"
    assert _pipe("tail -n2", text=lines).output == "19\n20"
    assert _pipe("tail -n 0", text=lines).output == ""
    assert _pipe("tail -n 50", text="a\nb").output == "a\nb"


def test_head_invalid_counts() -> None:
    assert _pipe("head -n x") == CommandResult("head: invalid number of lines: 'x'", 1)
    assert _pipe("head -n") == CommandResult("head: option requires an argument -- 'n'", 2)
    assert _pipe("tail --bytes") == CommandResult("tail: unsupported argument '--bytes'", 2)


def test_wc_counts() -> None:
    assert _pipe("wc -l", text="a\nb\nc").output == "3"
    assert _pipe("wc -w", text="a b\nc").output == "3"
    assert _pipe("wc -c", text="abc").output == "4"
    assert _pipe("wc", text="a b\nc").output == f"{2:>7} {3:>7} {6:>7}"
    assert _pipe("wc -x").exit_code == 2


def test_filters_chain_in_order() -> None:
    assert _pipe("grep Xid", "wc -l").output == "2"
    assert _pipe("grep NVRM", "head -n 1", "grep 79").ok


def test_unknown_filter_is_not_found() -> None:
    assert _pipe("sort") == CommandResult("sort: command not found", 127)


def test_empty_segment_is_syntax_error() -> None:
    assert _pipe("").exit_code == 2


def test_failing_producer_is_not_piped() -> None:
    failed = CommandResult("nvidia-smi: no devices", 6)

    assert apply_pipeline(["grep anything"], failed) is failed
