"""Stable constants shared across the simulator packages."""

from __future__ import annotations

from typing import Final

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
COMMAND_DEFINITION_SCHEMA_VERSION: Final[int] = 1

# Suggestion engine tuning.
SUGGESTION_DISTANCE_THRESHOLD: Final[int] = 2
MAX_SUGGESTIONS: Final[int] = 3

# Shell exit codes.
EXIT_SUCCESS: Final[int] = 0
EXIT_FAILURE: Final[int] = 1
EXIT_USAGE: Final[int] = 2
EXIT_NOT_FOUND: Final[int] = 127

# Privilege vocabulary used by command definitions.
ROOT_PRIVILEGE: Final[str] = "root"
ROOT_REQUIRED_MESSAGE: Final[str] = "Operation requires root privileges. Run with sudo."

# Default simulated session values.
DEFAULT_NODE_ID: Final[str] = "dgx-00"
DEFAULT_PATH: Final[str] = "/root"
DEFAULT_CLUSTER_NAME: Final[str] = "DGX SuperPOD"
DEFAULT_SYSTEM_TYPE: Final[str] = "DGX-A100"

SYSTEM_TYPES: Final[tuple[str, ...]] = ("DGX-A100", "DGX-H100", "DGX-H200", "DGX-B200")

__all__ = [
    "COMMAND_DEFINITION_SCHEMA_VERSION",
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_CLUSTER_NAME",
    "DEFAULT_NODE_ID",
    "DEFAULT_PATH",
    "DEFAULT_SYSTEM_TYPE",
    "EXIT_FAILURE",
    "EXIT_NOT_FOUND",
    "EXIT_SUCCESS",
    "EXIT_USAGE",
    "MAX_SUGGESTIONS",
    "ROOT_PRIVILEGE",
    "ROOT_REQUIRED_MESSAGE",
    "SUGGESTION_DISTANCE_THRESHOLD",
    "SYSTEM_TYPES",
]
