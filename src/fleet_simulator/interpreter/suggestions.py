"""Edit-distance suggestions for mistyped flags and subcommands."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Final

from fleet_simulator.constants import MAX_SUGGESTIONS, SUGGESTION_DISTANCE_THRESHOLD

_NO_MATCH_CONFIDENCE: Final[float] = 0.0


@dataclass(frozen=True, slots=True)
class FlagAlias:
    """Short/long alias pair for one declared flag."""

    short: str | None = None
    long: str | None = None

    @property
    def canonical(self) -> str:
        return self.long or self.short or ""


@dataclass(frozen=True, slots=True)
class SuggestionResult:
    candidate: str
    exact_match: bool
    confidence: float
    suggestions: tuple[str, ...] = ()


def levenshtein(left: str, right: str) -> int:
    """Classic insert/delete/substitute edit distance."""

    if left == right:
        return 0
    if not left:
        return len(right)
    if not right:
        return len(left)

    previous = list(range(len(right) + 1))
    for row, left_char in enumerate(left, start=1):
        current = [row]
        for column, right_char in enumerate(right, start=1):
            cost = 0 if left_char == right_char else 1
            current.append(
                min(
                    previous[column] + 1,
                    current[column - 1] + 1,
                    previous[column - 1] + cost,
                )
            )
        previous = current
    return previous[-1]


def rank_candidates(
    candidate: str,
    aliases: Mapping[str, str],
    *,
    threshold: int = SUGGESTION_DISTANCE_THRESHOLD,
    limit: int = MAX_SUGGESTIONS,
) -> tuple[tuple[str, ...], int | None, str | None]:
    """Rank canonical names whose alias is within ``threshold`` edits of ``candidate``.

    ``aliases`` maps every accepted spelling to its canonical name. Returns the
    suggestions (sorted by distance, then name), the best distance and the alias
    that produced it.
    """

    best_by_canonical: dict[str, int] = {}
    best_distance: int | None = None
    best_alias: str | None = None
    for alias in sorted(aliases):
        distance = levenshtein(candidate, alias)
        if distance > threshold:
            continue
        canonical = aliases[alias]
        known = best_by_canonical.get(canonical)
        if known is None or distance < known:
            best_by_canonical[canonical] = distance
        if best_distance is None or distance < best_distance:
            best_distance = distance
            best_alias = alias

    ranked = sorted(best_by_canonical.items(), key=lambda item: (item[1], item[0]))
    return tuple(name for name, _ in ranked[:limit]), best_distance, best_alias


class CommandInterceptor:
    """Per-tool registry of known flags and subcommands with fuzzy lookups."""

    def __init__(
        self,
        *,
        threshold: int = SUGGESTION_DISTANCE_THRESHOLD,
        max_suggestions: int = MAX_SUGGESTIONS,
    ) -> None:
        if threshold < 0:
            raise ValueError("threshold must be >= 0")
        if max_suggestions < 1:
            raise ValueError("max_suggestions must be >= 1")
        self._threshold = threshold
        self._max_suggestions = max_suggestions
        self._flags: dict[str, tuple[FlagAlias, ...]] = {}
        self._subcommands: dict[str, tuple[str, ...]] = {}

    def register_flags(self, tool: str, flags: Iterable[FlagAlias]) -> None:
        self._flags[tool] = tuple(flags)

    def register_subcommands(self, tool: str, names: Iterable[str]) -> None:
        self._subcommands[tool] = tuple(names)

    def registered_flags(self, tool: str) -> tuple[FlagAlias, ...]:
        return self._flags.get(tool, ())

    def registered_subcommands(self, tool: str) -> tuple[str, ...]:
        return self._subcommands.get(tool, ())

    def validate_flag(
        self, tool: str, candidate: str, *, max_distance: int | None = None
    ) -> SuggestionResult:
        """Match ``candidate`` against the tool's aliases.

        ``max_distance`` can only tighten the configured threshold.
        """

        declared = self._flags.get(tool)
        if declared is None:
            return SuggestionResult(candidate, exact_match=False, confidence=_NO_MATCH_CONFIDENCE)
        aliases: dict[str, str] = {}
        for flag in declared:
            for alias in (flag.short, flag.long):
                if alias:
                    aliases[alias] = flag.canonical
        threshold = self._threshold if max_distance is None else min(self._threshold, max_distance)
        return self._evaluate(candidate.lstrip("-"), aliases, threshold)

    def validate_subcommand(self, tool: str, candidate: str) -> SuggestionResult:
        declared = self._subcommands.get(tool)
        if declared is None:
            return SuggestionResult(candidate, exact_match=False, confidence=_NO_MATCH_CONFIDENCE)
        return self._evaluate(candidate, {name: name for name in declared}, self._threshold)

    def format_suggestion(
        self,
        tool: str,
        result: SuggestionResult,
        *,
        is_flag: bool = True,
    ) -> str:
        """Render a one-line "did you mean" hint; empty when nothing to suggest."""

        if result.exact_match or not result.suggestions:
            return ""
        rendered = [
            _display(tool, name, is_flag=is_flag, registry=self) for name in result.suggestions
        ]
        if len(rendered) == 1:
            return f"Did you mean '{rendered[0]}'?"
        quoted = ", ".join(f"'{item}'" for item in rendered)
        return f"Did you mean one of: {quoted}?"

    def _evaluate(
        self, candidate: str, aliases: Mapping[str, str], threshold: int
    ) -> SuggestionResult:
        if candidate in aliases:
            return SuggestionResult(candidate, exact_match=True, confidence=1.0)

        suggestions, best_distance, best_alias = rank_candidates(
            candidate,
            aliases,
            threshold=threshold,
            limit=self._max_suggestions,
        )
        if best_distance is None or best_alias is None:
            return SuggestionResult(candidate, exact_match=False, confidence=_NO_MATCH_CONFIDENCE)

        longest = max(len(candidate), len(best_alias), 1)
        confidence = min(1.0, max(0.0, 1.0 - best_distance / longest))
        return SuggestionResult(
            candidate,
            exact_match=False,
            confidence=confidence,
            suggestions=suggestions,
        )


def _display(tool: str, name: str, *, is_flag: bool, registry: CommandInterceptor) -> str:
    if not is_flag:
        return name
    for flag in registry.registered_flags(tool):
        if flag.canonical == name and flag.long is None:
            return f"-{name}"
    return f"--{name}" if len(name) > 1 else f"-{name}"


__all__ = [
    "CommandInterceptor",
    "FlagAlias",
    "SuggestionResult",
    "levenshtein",
    "rank_candidates",
]
