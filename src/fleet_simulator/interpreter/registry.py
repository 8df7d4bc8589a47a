"""Deterministic command definition registry loaded from ``data/commands/*.yaml``."""

from __future__ import annotations

import asyncio
import logging
import os
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Final, TypeAlias, cast

import yaml

from fleet_simulator.domain.commands import (
    CommandDefinition,
    CommandOption,
    StateInteractions,
    UsageExample,
)
from fleet_simulator.interpreter.suggestions import CommandInterceptor, FlagAlias

PathLike: TypeAlias = str | os.PathLike[str]

_DEFINITION_SUFFIXES: Final[tuple[str, ...]] = ("*.yaml", "*.yml", "*.json")

logger = logging.getLogger(__name__)


class RegistryLoadError(ValueError):
    """Raised when command definitions cannot be read or fail validation."""


@dataclass(frozen=True, slots=True)
class FlagValidation:
    valid: bool
    suggestions: tuple[str, ...] = ()


def default_commands_dir() -> Path:
    """Directory of the command definitions shipped with the package."""

    return Path(str(resources.files("fleet_simulator").joinpath("data", "commands")))


class CommandDefinitionRegistry:
    """In-memory view of per-tool command definitions.

    Queries for tools that are not defined return empty or negative answers;
    only loading can fail.
    """

    def __init__(
        self,
        commands_dir: PathLike | None = None,
        *,
        interceptor: CommandInterceptor | None = None,
    ) -> None:
        self._commands_dir = Path(commands_dir) if commands_dir is not None else None
        self._interceptor = interceptor if interceptor is not None else CommandInterceptor()
        self._definitions: dict[str, CommandDefinition] = {}
        self._options: dict[str, dict[str, CommandOption]] = {}
        self._source_files: tuple[Path, ...] = ()
        self._load_lock = threading.Lock()
        self._initialized = False

    @classmethod
    def from_directory(
        cls,
        commands_dir: PathLike | None = None,
        *,
        interceptor: CommandInterceptor | None = None,
    ) -> CommandDefinitionRegistry:
        registry = cls(commands_dir, interceptor=interceptor)
        registry.load()
        return registry

    @classmethod
    def from_definitions(
        cls,
        definitions: Iterable[CommandDefinition],
        *,
        interceptor: CommandInterceptor | None = None,
    ) -> CommandDefinitionRegistry:
        registry = cls(interceptor=interceptor)
        with registry._load_lock:
            registry._index(tuple(definitions), source_files=())
        return registry

    @property
    def commands_dir(self) -> Path:
        return self._commands_dir if self._commands_dir is not None else default_commands_dir()

    @property
    def interceptor(self) -> CommandInterceptor:
        return self._interceptor

    @property
    def source_files(self) -> tuple[Path, ...]:
        return self._source_files

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def count(self) -> int:
        return len(self._definitions)

    def load(self) -> None:
        """Load every definition file once; later calls are no-ops."""

        with self._load_lock:
            if self._initialized:
                return
            root = self.commands_dir
            files = _definition_files(root)
            definitions = tuple(
                definition for path in files for definition in _load_definition_file(path)
            )
            self._index(definitions, source_files=files)
        logger.info(
            "command registry loaded",
            extra={"commands_dir": root.as_posix(), "definitions": len(definitions)},
        )

    async def initialize(self) -> None:
        """Load definitions off the event loop."""

        if self._initialized:
            return
        await asyncio.to_thread(self.load)

    def has(self, tool: str) -> bool:
        return tool in self._definitions

    def command_names(self) -> tuple[str, ...]:
        return tuple(sorted(self._definitions))

    def get_definition(self, tool: str) -> CommandDefinition | None:
        return self._definitions.get(tool)

    def get_by_category(self, category: str) -> tuple[CommandDefinition, ...]:
        return tuple(
            self._definitions[name]
            for name in sorted(self._definitions)
            if self._definitions[name].category == category
        )

    def get_option(
        self, tool: str, flag: str, subcommand: str | None = None
    ) -> CommandOption | None:
        """Resolve ``flag`` (short or long, dashes optional) to its declared option.

        Options of ``subcommand`` shadow global options that share an alias.
        """

        name = flag.lstrip("-")
        for option in self.subcommand_options(tool, subcommand):
            if name in option.aliases:
                return option
        return self._options.get(tool, {}).get(name)

    def subcommand_options(
        self, tool: str, subcommand: str | None
    ) -> tuple[CommandOption, ...]:
        definition = self._definitions.get(tool)
        if definition is None or subcommand is None:
            return ()
        scoped = definition.subcommand(subcommand)
        return scoped.options if scoped is not None else ()

    def word_flags(self, tool: str) -> frozenset[str]:
        """Multi-letter single-dash aliases such as ``pl`` or ``mig``."""

        definition = self._definitions.get(tool)
        if definition is None:
            return frozenset()
        return frozenset(
            option.short
            for option in definition.all_options()
            if option.short is not None and len(option.short) > 1
        )

    def validate_flag(self, tool: str, flag: str) -> FlagValidation:
        if tool not in self._definitions:
            return FlagValidation(valid=False)
        result = self._interceptor.validate_flag(tool, flag)
        return FlagValidation(valid=result.exact_match, suggestions=result.suggestions)

    def validate_subcommand(self, tool: str, subcommand: str) -> FlagValidation:
        if tool not in self._definitions:
            return FlagValidation(valid=False)
        result = self._interceptor.validate_subcommand(tool, subcommand)
        return FlagValidation(valid=result.exact_match, suggestions=result.suggestions)

    def get_command_help(self, tool: str) -> str:
        definition = self._definitions.get(tool)
        if definition is None:
            return ""
        lines = [f"{definition.command} - {definition.description}", "", "Usage:"]
        lines.append(f"  {definition.synopsis}")
        if definition.options:
            lines.extend(("", "Options:"))
            lines.extend(
                f"  {option.display():<28} {option.description}" for option in definition.options
            )
        if definition.subcommands:
            lines.extend(("", "Subcommands:"))
            lines.extend(
                f"  {subcommand.name:<16} {subcommand.description}"
                for subcommand in definition.subcommands
            )
        return "\n".join(lines)

    def get_flag_help(self, tool: str, flag: str) -> str:
        option = self.get_option(tool, flag)
        if option is None:
            return ""
        text = f"{option.display()}: {option.description}"
        if option.arguments:
            text += f"\n  Arguments: {option.arguments}"
        if option.requires_root:
            text += "\n  Requires root privileges."
        return text

    def get_usage_examples(self, tool: str) -> tuple[UsageExample, ...]:
        definition = self._definitions.get(tool)
        return definition.usage_examples if definition is not None else ()

    def get_exit_code_meaning(self, tool: str, code: int) -> str | None:
        definition = self._definitions.get(tool)
        if definition is None:
            return None
        for entry in definition.exit_codes:
            if entry.code == code:
                return entry.meaning
        return None

    def requires_root(self, tool: str, flag: str, subcommand: str | None = None) -> bool:
        option = self.get_option(tool, flag, subcommand)
        return option is not None and option.requires_root

    def get_state_interactions(self, tool: str) -> StateInteractions | None:
        definition = self._definitions.get(tool)
        return definition.state_interactions if definition is not None else None

    def _index(
        self,
        definitions: tuple[CommandDefinition, ...],
        *,
        source_files: tuple[Path, ...],
    ) -> None:
        indexed: dict[str, CommandDefinition] = {}
        options: dict[str, dict[str, CommandOption]] = {}
        for definition in definitions:
            if definition.command in indexed:
                raise RegistryLoadError(
                    f"duplicate command definition for tool: {definition.command!r}"
                )
            indexed[definition.command] = definition

            aliases: dict[str, CommandOption] = {}
            for option in definition.all_options():
                for alias in option.aliases:
                    aliases.setdefault(alias, option)
            options[definition.command] = aliases

            self._interceptor.register_flags(
                definition.command,
                (
                    FlagAlias(short=option.short, long=option.long)
                    for option in definition.all_options()
                ),
            )
            self._interceptor.register_subcommands(
                definition.command, (subcommand.name for subcommand in definition.subcommands)
            )

        self._definitions = indexed
        self._options = options
        self._source_files = source_files
        self._initialized = True


def _definition_files(root: Path) -> tuple[Path, ...]:
    if not root.exists():
        raise RegistryLoadError(f"command definition directory does not exist: {root}")
    if not root.is_dir():
        raise RegistryLoadError(f"command definition path is not a directory: {root}")
    found = {path for pattern in _DEFINITION_SUFFIXES for path in root.glob(pattern)}
    return tuple(sorted(found, key=lambda path: (path.name, path.as_posix())))


def _load_definition_file(path: Path) -> list[CommandDefinition]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            loaded = cast("object", yaml.safe_load(handle))
    except yaml.YAMLError as exc:
        raise RegistryLoadError(f"{path}: invalid YAML ({exc})") from exc
    except OSError as exc:
        raise RegistryLoadError(f"{path}: unable to read definition file ({exc})") from exc

    documents = loaded if isinstance(loaded, list) else [loaded]
    out: list[CommandDefinition] = []
    for index, document in enumerate(documents):
        location = path.name if len(documents) == 1 else f"{path.name}[{index}]"
        try:
            out.append(CommandDefinition.from_mapping(document, location=location))
        except ValueError as exc:
            raise RegistryLoadError(str(exc)) from exc
    return out


__all__ = [
    "CommandDefinitionRegistry",
    "FlagValidation",
    "RegistryLoadError",
    "default_commands_dir",
]
