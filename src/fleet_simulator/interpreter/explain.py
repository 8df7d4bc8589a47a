"""Plain-text ``explain`` output built from command definitions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from fleet_simulator.domain.commands import (
        CommandDefinition,
        CommandOption,
        SubcommandDefinition,
    )
    from fleet_simulator.interpreter.registry import CommandDefinitionRegistry

MAX_EXAMPLES: Final[int] = 5
MAX_OPTIONS: Final[int] = 8
MAX_SUBCOMMANDS: Final[int] = 6
MAX_ERRORS: Final[int] = 3
MAX_EXIT_CODES: Final[int] = 4
MAX_RELATED: Final[int] = 5


def generate_explain_output(text: str, registry: CommandDefinitionRegistry) -> str:
    """Explain a tool, one of its flags (``tool -x``) or a subcommand (``tool sub``)."""

    parts = text.split()
    if not parts:
        return "Usage: explain <command> [flag|subcommand]"
    command = parts[0]
    definition = registry.get_definition(command)
    if definition is None:
        return (
            f"Command '{command}' not found in documentation.\n"
            "Try 'help' to see available commands."
        )

    target = parts[1] if len(parts) > 1 else None
    if target is not None and target.startswith("-"):
        return _explain_flag(definition, target, registry)
    if target is not None:
        subcommand = definition.subcommand(target)
        if subcommand is not None:
            return _explain_subcommand(definition, subcommand)
        validation = registry.validate_subcommand(command, target)
        message = f"Subcommand '{target}' not found for {command}."
        if validation.suggestions:
            message += f"\nDid you mean: {', '.join(validation.suggestions)}?"
        return message
    return _explain_command(definition)


def _explain_command(definition: CommandDefinition) -> str:
    lines = [
        f"=== {definition.command} ===",
        "",
        "Description:",
        f"  {definition.description}",
        "",
        "Usage:",
        f"  {definition.synopsis}",
        "",
    ]

    if definition.usage_examples:
        lines.append("Examples:")
        for example in definition.usage_examples[:MAX_EXAMPLES]:
            lines.extend(["", f"  {example.command}", f"    {example.description}"])
            if example.requires_root:
                lines.append("    Requires root privileges")
        lines.append("")

    if definition.options:
        lines.append("Common Options:")
        for option in definition.options[:MAX_OPTIONS]:
            lines.append(f"  {option.display():<25} {_truncate(option.description, 60)}")
        remaining = len(definition.options) - MAX_OPTIONS
        if remaining > 0:
            lines.append(f"  ... and {remaining} more options")
        lines.append("")

    if definition.subcommands:
        lines.append("Subcommands:")
        for subcommand in definition.subcommands[:MAX_SUBCOMMANDS]:
            lines.append(f"  {subcommand.name:<15} {_truncate(subcommand.description, 50)}")
        remaining = len(definition.subcommands) - MAX_SUBCOMMANDS
        if remaining > 0:
            lines.append(f"  ... and {remaining} more")
        lines.append("")

    if definition.error_messages:
        lines.append("Common Errors:")
        for error in definition.error_messages[:MAX_ERRORS]:
            lines.append(f"  {_truncate(error.message, 50)}")
            lines.append(f"    Meaning: {error.meaning}")
            if error.resolution:
                lines.append(f"    Fix: {_truncate(error.resolution, 80)}")
        lines.append("")

    if definition.exit_codes:
        lines.append("Exit Codes:")
        for exit_code in definition.exit_codes[:MAX_EXIT_CODES]:
            lines.append(f"  {exit_code.code:<5} {exit_code.meaning}")
        lines.append("")

    if definition.related_commands:
        lines.append(
            "Related Commands: " + ", ".join(definition.related_commands[:MAX_RELATED])
        )
        lines.append("")

    if definition.source_urls:
        lines.append(f"Documentation: {definition.source_urls[0]}")

    return "\n".join(lines).rstrip() + "\n"


def _explain_flag(
    definition: CommandDefinition, flag: str, registry: CommandDefinitionRegistry
) -> str:
    option = registry.get_option(definition.command, flag)
    if option is None:
        validation = registry.validate_flag(definition.command, flag)
        lines = [f"Flag '{flag}' not found for {definition.command}."]
        if validation.suggestions:
            lines.append(f"Did you mean: {', '.join(validation.suggestions)}?")
            lines.append(f"Run 'explain {definition.command}' to see all available options.")
        else:
            lines.append(f"Run 'explain {definition.command}' to see available options.")
        return "\n".join(lines)
    return _render_option(definition, flag, option)


def _render_option(definition: CommandDefinition, flag: str, option: CommandOption) -> str:
    lines = [
        f"=== {definition.command} {flag} ===",
        "",
        f"Flag: {option.display()}",
        "",
        "Description:",
        f"  {option.description}",
        "",
    ]
    if option.arguments:
        suffix = f" ({option.argument_type})" if option.argument_type else ""
        lines.extend([f"Arguments: {option.arguments}{suffix}", ""])
    if option.default:
        lines.extend([f"Default: {option.default}", ""])
    if option.example:
        lines.extend(["Example:", f"  {option.example}", ""])
    if option.requires_root:
        lines.append("This option requires root privileges")
    return "\n".join(lines).rstrip() + "\n"


def _explain_subcommand(definition: CommandDefinition, subcommand: SubcommandDefinition) -> str:
    lines = [
        f"=== {definition.command} {subcommand.name} ===",
        "",
        "Description:",
        f"  {subcommand.description}",
        "",
    ]
    if subcommand.synopsis:
        lines.extend(["Usage:", f"  {subcommand.synopsis}", ""])
    if subcommand.options:
        lines.append("Options:")
        lines.extend(
            f"  {option.display():<20} {option.description}" for option in subcommand.options
        )
    return "\n".join(lines).rstrip() + "\n"


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


__all__ = ["generate_explain_output"]
