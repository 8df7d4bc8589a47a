"""Privilege and prerequisite decisions derived from command definitions.

The engine is advisory: it answers whether a command line needs root and
explains why. The dispatcher decides what to do with the answer.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from fleet_simulator.constants import ROOT_PRIVILEGE, ROOT_REQUIRED_MESSAGE

if TYPE_CHECKING:
    from fleet_simulator.domain.commands import StateInteractions
    from fleet_simulator.interpreter.registry import CommandDefinitionRegistry


class PrivilegeContext(Protocol):
    is_root: bool


@dataclass(frozen=True, slots=True)
class ExecutionCheck:
    valid: bool
    reason: str | None = None


class StateEngine:
    def __init__(self, registry: CommandDefinitionRegistry) -> None:
        self._registry = registry

    def requires_root(
        self,
        command: str,
        flags: Iterable[str],
        subcommand: str | None = None,
    ) -> bool:
        """True when a root-marked flag is present or a gated write is triggered.

        A ``writes_to`` entry demanding root applies unconditionally when it
        lists no ``requires_flags``; otherwise any one listed flag triggers it.
        Flags that resolve to an option of ``subcommand`` never trigger a
        command-level write.
        """

        present = {flag.lstrip("-") for flag in flags}
        if any(self._registry.requires_root(command, flag, subcommand) for flag in present):
            return True
        scoped = {
            alias
            for option in self._registry.subcommand_options(command, subcommand)
            for alias in option.aliases
        }
        present -= scoped

        interactions = self._registry.get_state_interactions(command)
        if interactions is None:
            return False
        for write in interactions.writes_to:
            if write.requires_privilege != ROOT_PRIVILEGE:
                continue
            if not write.requires_flags:
                return True
            if any(flag.lstrip("-") in present for flag in write.requires_flags):
                return True
        return False

    def get_state_interactions(self, command: str) -> StateInteractions | None:
        return self._registry.get_state_interactions(command)

    def get_prerequisite_error(
        self,
        command: str,
        flags: Iterable[str],
        context: PrivilegeContext,
        subcommand: str | None = None,
    ) -> str | None:
        if context.is_root or not self.requires_root(command, flags, subcommand):
            return None
        return f"{command}: {ROOT_REQUIRED_MESSAGE}"

    def can_execute(
        self,
        command: str,
        flags: Iterable[str],
        context: PrivilegeContext,
        subcommand: str | None = None,
    ) -> ExecutionCheck:
        reason = self.get_prerequisite_error(command, flags, context, subcommand)
        return ExecutionCheck(valid=reason is None, reason=reason)


__all__ = ["ExecutionCheck", "PrivilegeContext", "StateEngine"]
