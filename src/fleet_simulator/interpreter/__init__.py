"""Command interpretation: parsing, definitions, suggestions, privileges and dispatch."""

from fleet_simulator.interpreter.dispatcher import CommandDispatcher, default_router
from fleet_simulator.interpreter.explain import generate_explain_output
from fleet_simulator.interpreter.parser import parse
from fleet_simulator.interpreter.registry import (
    CommandDefinitionRegistry,
    FlagValidation,
    RegistryLoadError,
)
from fleet_simulator.interpreter.router import CommandRouter
from fleet_simulator.interpreter.state_engine import ExecutionCheck, StateEngine
from fleet_simulator.interpreter.suggestions import CommandInterceptor, SuggestionResult
from fleet_simulator.interpreter.validator import validate_command_executed

__all__ = [
    "CommandDefinitionRegistry",
    "CommandDispatcher",
    "CommandInterceptor",
    "CommandRouter",
    "ExecutionCheck",
    "FlagValidation",
    "RegistryLoadError",
    "StateEngine",
    "SuggestionResult",
    "default_router",
    "generate_explain_output",
    "parse",
    "validate_command_executed",
]
