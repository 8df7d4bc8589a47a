"""Immutable command-line records: parse results, execution results and tool definitions."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Final

FlagValue = bool | str

_ALLOWED_DEFINITION_FIELDS: Final[frozenset[str]] = frozenset(
    {
        "command",
        "category",
        "description",
        "synopsis",
        "version",
        "global_options",
        "subcommands",
        "state_interactions",
        "common_usage_patterns",
        "exit_codes",
        "error_messages",
        "related_commands",
        "source_urls",
    }
)
_REQUIRED_DEFINITION_FIELDS: Final[frozenset[str]] = frozenset(
    {"command", "category", "description", "synopsis"}
)


@dataclass(frozen=True, slots=True)
class ParsedCommand:
    """Structured view of one command line.

    ``flags`` keys are option names without leading dashes. ``subcommands`` is
    the run of positional tokens that precede the first flag.
    """

    base_command: str
    subcommands: tuple[str, ...] = ()
    flags: Mapping[str, FlagValue] = field(default_factory=dict)
    positional_args: tuple[str, ...] = ()
    is_piped: bool = False
    piped_segments: tuple[str, ...] = ()
    raw: str = ""

    def has_flag(self, *names: str) -> bool:
        return any(name in self.flags for name in names)

    def flag_value(self, *names: str) -> str | None:
        """Return the first string value bound to any of ``names``."""

        for name in names:
            value = self.flags.get(name)
            if isinstance(value, str):
                return value
        return None


@dataclass(frozen=True, slots=True)
class CommandResult:
    output: str
    exit_code: int = 0
    prompt: str | None = None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


@dataclass(frozen=True, slots=True)
class CommandOption:
    short: str | None
    long: str | None
    description: str
    arguments: str | None = None
    argument_type: str | None = None
    default: str | None = None
    example: str | None = None
    requires_root: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "short", _strip_dashes(self.short))
        object.__setattr__(self, "long", _strip_dashes(self.long))
        if self.short is None and self.long is None:
            raise ValueError("CommandOption: one of short/long is required")

    @property
    def canonical_name(self) -> str:
        """Long name when available, otherwise the short alias."""

        return self.long or self.short or ""

    @property
    def aliases(self) -> tuple[str, ...]:
        return tuple(item for item in (self.short, self.long) if item)

    def display(self) -> str:
        parts = []
        if self.short:
            parts.append(f"-{self.short}")
        if self.long:
            parts.append(f"--{self.long}")
        return ", ".join(parts)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object], *, location: str) -> CommandOption:
        parsed = _expect_mapping(
            payload,
            location,
            allowed={
                "short",
                "long",
                "description",
                "arguments",
                "argument_type",
                "default",
                "example",
                "requires_root",
            },
            required={"description"},
        )
        requires_root = parsed.get("requires_root", False)
        if not isinstance(requires_root, bool):
            raise ValueError(f"{location}.requires_root: expected bool")
        try:
            return cls(
                short=_optional_text(parsed.get("short"), f"{location}.short"),
                long=_optional_text(parsed.get("long"), f"{location}.long"),
                description=_text(parsed["description"], f"{location}.description"),
                arguments=_optional_text(parsed.get("arguments"), f"{location}.arguments"),
                argument_type=_optional_text(
                    parsed.get("argument_type"), f"{location}.argument_type"
                ),
                default=_optional_text(parsed.get("default"), f"{location}.default"),
                example=_optional_text(parsed.get("example"), f"{location}.example"),
                requires_root=requires_root,
            )
        except ValueError as exc:
            raise ValueError(f"{location}: {exc}") from exc


@dataclass(frozen=True, slots=True)
class SubcommandDefinition:
    name: str
    description: str
    synopsis: str | None = None
    options: tuple[CommandOption, ...] = ()

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object], *, location: str) -> SubcommandDefinition:
        parsed = _expect_mapping(
            payload,
            location,
            allowed={"name", "description", "synopsis", "options"},
            required={"name", "description"},
        )
        return cls(
            name=_text(parsed["name"], f"{location}.name"),
            description=_text(parsed["description"], f"{location}.description"),
            synopsis=_optional_text(parsed.get("synopsis"), f"{location}.synopsis"),
            options=tuple(
                CommandOption.from_mapping(item, location=f"{location}.options[{index}]")
                for index, item in enumerate(
                    _mapping_list(parsed.get("options"), f"{location}.options")
                )
            ),
        )


@dataclass(frozen=True, slots=True)
class StateRead:
    state_domain: str
    fields: tuple[str, ...] = ()

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object], *, location: str) -> StateRead:
        parsed = _expect_mapping(
            payload, location, allowed={"state_domain", "fields"}, required={"state_domain"}
        )
        return cls(
            state_domain=_text(parsed["state_domain"], f"{location}.state_domain"),
            fields=_text_tuple(parsed.get("fields"), f"{location}.fields"),
        )


@dataclass(frozen=True, slots=True)
class StateWrite:
    """A state domain a command may modify, optionally gated by flags and privilege."""

    state_domain: str
    fields: tuple[str, ...] = ()
    requires_flags: tuple[str, ...] = ()
    requires_privilege: str | None = None

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object], *, location: str) -> StateWrite:
        parsed = _expect_mapping(
            payload,
            location,
            allowed={"state_domain", "fields", "requires_flags", "requires_privilege"},
            required={"state_domain"},
        )
        return cls(
            state_domain=_text(parsed["state_domain"], f"{location}.state_domain"),
            fields=_text_tuple(parsed.get("fields"), f"{location}.fields"),
            requires_flags=_text_tuple(parsed.get("requires_flags"), f"{location}.requires_flags"),
            requires_privilege=_optional_text(
                parsed.get("requires_privilege"), f"{location}.requires_privilege"
            ),
        )


@dataclass(frozen=True, slots=True)
class StateInteractions:
    reads_from: tuple[StateRead, ...] = ()
    writes_to: tuple[StateWrite, ...] = ()

    @classmethod
    def from_mapping(cls, payload: object, *, location: str) -> StateInteractions:
        parsed = _expect_mapping(payload, location, allowed={"reads_from", "writes_to"})
        return cls(
            reads_from=tuple(
                StateRead.from_mapping(item, location=f"{location}.reads_from[{index}]")
                for index, item in enumerate(
                    _mapping_list(parsed.get("reads_from"), f"{location}.reads_from")
                )
            ),
            writes_to=tuple(
                StateWrite.from_mapping(item, location=f"{location}.writes_to[{index}]")
                for index, item in enumerate(
                    _mapping_list(parsed.get("writes_to"), f"{location}.writes_to")
                )
            ),
        )


@dataclass(frozen=True, slots=True)
class UsageExample:
    command: str
    description: str
    output_example: str | None = None
    requires_root: bool = False

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object], *, location: str) -> UsageExample:
        parsed = _expect_mapping(
            payload,
            location,
            allowed={"command", "description", "output_example", "requires_root"},
            required={"command", "description"},
        )
        requires_root = parsed.get("requires_root", False)
        if not isinstance(requires_root, bool):
            raise ValueError(f"{location}.requires_root: expected bool")
        return cls(
            command=_text(parsed["command"], f"{location}.command"),
            description=_text(parsed["description"], f"{location}.description"),
            output_example=_optional_text(
                parsed.get("output_example"), f"{location}.output_example"
            ),
            requires_root=requires_root,
        )


@dataclass(frozen=True, slots=True)
class ExitCodeDefinition:
    code: int
    meaning: str

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object], *, location: str) -> ExitCodeDefinition:
        parsed = _expect_mapping(
            payload, location, allowed={"code", "meaning"}, required={"code", "meaning"}
        )
        code = parsed["code"]
        if isinstance(code, bool) or not isinstance(code, int):
            raise ValueError(f"{location}.code: expected integer, got {type(code).__name__}")
        return cls(code=code, meaning=_text(parsed["meaning"], f"{location}.meaning"))


@dataclass(frozen=True, slots=True)
class ErrorMessage:
    message: str
    meaning: str
    resolution: str | None = None

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object], *, location: str) -> ErrorMessage:
        parsed = _expect_mapping(
            payload,
            location,
            allowed={"message", "meaning", "resolution"},
            required={"message", "meaning"},
        )
        return cls(
            message=_text(parsed["message"], f"{location}.message"),
            meaning=_text(parsed["meaning"], f"{location}.meaning"),
            resolution=_optional_text(parsed.get("resolution"), f"{location}.resolution"),
        )


@dataclass(frozen=True, slots=True)
class CommandDefinition:
    """Full reference documentation and state contract for one tool."""

    command: str
    category: str
    description: str
    synopsis: str
    version: str | None = None
    options: tuple[CommandOption, ...] = ()
    subcommands: tuple[SubcommandDefinition, ...] = ()
    state_interactions: StateInteractions | None = None
    usage_examples: tuple[UsageExample, ...] = ()
    exit_codes: tuple[ExitCodeDefinition, ...] = ()
    error_messages: tuple[ErrorMessage, ...] = ()
    related_commands: tuple[str, ...] = ()
    source_urls: tuple[str, ...] = ()

    def all_options(self) -> tuple[CommandOption, ...]:
        """Global options followed by every subcommand's options."""

        collected = list(self.options)
        for subcommand in self.subcommands:
            collected.extend(subcommand.options)
        return tuple(collected)

    def subcommand(self, name: str) -> SubcommandDefinition | None:
        for candidate in self.subcommands:
            if candidate.name == name:
                return candidate
        return None

    @classmethod
    def from_mapping(cls, payload: object, *, location: str) -> CommandDefinition:
        if not isinstance(payload, Mapping):
            raise ValueError(f"{location}: expected object, got {type(payload).__name__}")
        parsed = _expect_mapping(
            payload,
            location,
            allowed=set(_ALLOWED_DEFINITION_FIELDS),
            required=set(_REQUIRED_DEFINITION_FIELDS),
        )
        interactions_raw = parsed.get("state_interactions")
        return cls(
            command=_text(parsed["command"], f"{location}.command"),
            category=_text(parsed["category"], f"{location}.category"),
            description=_text(parsed["description"], f"{location}.description"),
            synopsis=_text(parsed["synopsis"], f"{location}.synopsis"),
            version=_optional_text(parsed.get("version"), f"{location}.version"),
            options=tuple(
                CommandOption.from_mapping(item, location=f"{location}.global_options[{index}]")
                for index, item in enumerate(
                    _mapping_list(parsed.get("global_options"), f"{location}.global_options")
                )
            ),
            subcommands=tuple(
                SubcommandDefinition.from_mapping(
                    item, location=f"{location}.subcommands[{index}]"
                )
                for index, item in enumerate(
                    _mapping_list(parsed.get("subcommands"), f"{location}.subcommands")
                )
            ),
            state_interactions=(
                StateInteractions.from_mapping(
                    interactions_raw, location=f"{location}.state_interactions"
                )
                if interactions_raw is not None
                else None
            ),
            usage_examples=tuple(
                UsageExample.from_mapping(
                    item, location=f"{location}.common_usage_patterns[{index}]"
                )
                for index, item in enumerate(
                    _mapping_list(
                        parsed.get("common_usage_patterns"), f"{location}.common_usage_patterns"
                    )
                )
            ),
            exit_codes=tuple(
                ExitCodeDefinition.from_mapping(item, location=f"{location}.exit_codes[{index}]")
                for index, item in enumerate(
                    _mapping_list(parsed.get("exit_codes"), f"{location}.exit_codes")
                )
            ),
            error_messages=tuple(
                ErrorMessage.from_mapping(item, location=f"{location}.error_messages[{index}]")
                for index, item in enumerate(
                    _mapping_list(parsed.get("error_messages"), f"{location}.error_messages")
                )
            ),
            related_commands=_text_tuple(
                parsed.get("related_commands"), f"{location}.related_commands"
            ),
            source_urls=_text_tuple(parsed.get("source_urls"), f"{location}.source_urls"),
        )


def _strip_dashes(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip().lstrip("-").rstrip("=")
    return stripped or None


def _expect_mapping(
    value: object,
    location: str,
    *,
    allowed: set[str],
    required: set[str] | None = None,
) -> dict[str, object]:
    if not isinstance(value, Mapping):
        raise ValueError(f"{location}: expected object, got {type(value).__name__}")
    parsed: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ValueError(f"{location}: object keys must be strings, got {type(key).__name__}")
        parsed[key] = item
    unknown = sorted(set(parsed) - allowed)
    if unknown:
        raise ValueError(f"{location}: unexpected fields {unknown}")
    missing = sorted((required or set()) - set(parsed))
    if missing:
        raise ValueError(f"{location}: missing required fields {missing}")
    return parsed


def _mapping_list(value: object, location: str) -> list[Mapping[str, object]]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"{location}: expected array, got {type(value).__name__}")
    out: list[Mapping[str, object]] = []
    for index, item in enumerate(value):
        if not isinstance(item, Mapping):
            raise ValueError(f"{location}[{index}]: expected object, got {type(item).__name__}")
        out.append(item)
    return out


def _text(value: object, location: str) -> str:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str):
        raise ValueError(f"{location}: expected string, got {type(value).__name__}")
    normalized = value.strip()
    if not normalized:
        raise ValueError(f"{location}: must not be empty")
    return normalized


def _optional_text(value: object, location: str) -> str | None:
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    return _text(value, location)


def _text_tuple(value: object, location: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, list):
        raise ValueError(f"{location}: expected array of strings")
    return tuple(_text(item, f"{location}[{index}]") for index, item in enumerate(value))


__all__ = [
    "CommandDefinition",
    "CommandOption",
    "CommandResult",
    "ErrorMessage",
    "ExitCodeDefinition",
    "FlagValue",
    "ParsedCommand",
    "StateInteractions",
    "StateRead",
    "StateWrite",
    "SubcommandDefinition",
    "UsageExample",
]
