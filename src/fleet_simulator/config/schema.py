"""
fleet-simulator configuration schema and validation.

Defines the built-in defaults, strict validation rules with structured issues
(field path + message), profile overlays and deterministic deep-merge helpers.
Credentials never belong in config: keys that look like secrets are rejected
outright and masked in dumps.
"""

from __future__ import annotations

import copy
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict

from fleet_simulator.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_CLUSTER_NAME,
    DEFAULT_NODE_ID,
    DEFAULT_SYSTEM_TYPE,
    MAX_SUGGESTIONS,
    SUGGESTION_DISTANCE_THRESHOLD,
    SYSTEM_TYPES,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION

BUILTIN_PROFILE_NAMES: Final[tuple[str, ...]] = (
    "strict",
    "training",
    "sandbox",
)

LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")
MAX_NODE_COUNT: Final[int] = 256
MAX_GPUS_PER_NODE: Final[int] = 8

_PROFILE_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_-]*$")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")

_SENSITIVE_KEY_TOKENS: Final[frozenset[str]] = frozenset(
    {"secret", "token", "password", "passwd", "credential", "credentials"}
)

# Config paths normalized relative to the config file location. Empty means "built-in".
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("registry", "commands_dir"),
    ("observability", "log_dir"),
)


class MetaConfig(TypedDict):
    schema_version: int


class RegistryConfig(TypedDict):
    commands_dir: str


class SessionConfig(TypedDict):
    default_node: str
    start_as_root: bool
    enforce_privileges: bool
    suggestion_threshold: int
    max_suggestions: int
    history_limit: int


class ClusterSettings(TypedDict):
    name: str
    node_count: int
    gpus_per_node: int
    system_type: str


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_dir: str
    log_to_stderr: bool


class ProfileOverlay(TypedDict, total=False):
    registry: dict[str, object]
    session: dict[str, object]
    cluster: dict[str, object]
    observability: dict[str, object]


class SimulatorConfig(TypedDict):
    meta: MetaConfig
    registry: RegistryConfig
    session: SessionConfig
    cluster: ClusterSettings
    observability: ObservabilityConfig
    profiles: dict[str, ProfileOverlay]


DEFAULT_CONFIG: Final[SimulatorConfig] = {
    "meta": {
        "schema_version": ConfigSchemaVersion,
    },
    "registry": {
        "commands_dir": "",
    },
    "session": {
        "default_node": DEFAULT_NODE_ID,
        "start_as_root": False,
        "enforce_privileges": True,
        "suggestion_threshold": SUGGESTION_DISTANCE_THRESHOLD,
        "max_suggestions": MAX_SUGGESTIONS,
        "history_limit": 1000,
    },
    "cluster": {
        "name": DEFAULT_CLUSTER_NAME,
        "node_count": 8,
        "gpus_per_node": 8,
        "system_type": DEFAULT_SYSTEM_TYPE,
    },
    "observability": {
        "log_level": "INFO",
        "log_dir": "",
        "log_to_stderr": False,
    },
    "profiles": {
        "strict": {
            "session": {"start_as_root": False, "enforce_privileges": True, "max_suggestions": 1},
        },
        "training": {
            "session": {"start_as_root": False, "enforce_privileges": True},
            "cluster": {"node_count": 4},
        },
        "sandbox": {
            "session": {"start_as_root": True, "enforce_privileges": False},
            "observability": {"log_level": "DEBUG"},
        },
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


_SectionValidator = Callable[[Mapping[str, object], str, _IssueCollector, bool], dict[str, Any]]


def default_config() -> SimulatorConfig:
    """Return a deep copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade fleetsim.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade the fleet-simulator package"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def apply_profile_overlay(config: Mapping[str, object], profile: str | None) -> dict[str, Any]:
    """Apply a named profile overlay and re-validate the resulting config."""

    materialized = _deep_copy_mapping(config)
    if profile is None or not profile.strip():
        return materialized
    selected = profile.strip()

    profiles_raw = materialized.get("profiles")
    if not isinstance(profiles_raw, Mapping):
        raise ConfigValidationError(
            (ConfigValidationIssue("profiles", "profiles section is required"),)
        )
    overlay_raw = profiles_raw.get(selected)
    if overlay_raw is None:
        raise ConfigValidationError(
            (ConfigValidationIssue("profiles", f"profile {selected!r} is not defined"),)
        )
    if not isinstance(overlay_raw, Mapping):
        raise ConfigValidationError(
            (ConfigValidationIssue(f"profiles.{selected}", "profile overlay must be an object"),)
        )

    merged = merge_config(materialized, overlay_raw)
    return assert_valid_config(merged, active_profile=selected)


def validate_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> ConfigValidationResult:
    """Validate config and return structured issues with deterministic paths."""

    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    normalized = _validate_root(root, issues)

    selected_profile = active_profile.strip() if isinstance(active_profile, str) else None
    if selected_profile:
        profiles = normalized.get("profiles")
        if not isinstance(profiles, Mapping) or selected_profile not in profiles:
            issues.add("profiles", f"profile {selected_profile!r} is not defined")

    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config, active_profile=active_profile)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def redact_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Return a sorted copy with credential-looking values masked."""

    if not isinstance(config, Mapping):
        return {}
    redacted = _redact_value(config, parent_key=None)
    return redacted if isinstance(redacted, dict) else {}


def dump_redacted(config: Mapping[str, object] | object) -> dict[str, Any]:
    return redact_config(config)


def _validate_root(payload: Mapping[str, object], issues: _IssueCollector) -> dict[str, Any]:
    required = set(_SECTION_VALIDATORS)
    _reject_unknown_keys(payload, required | {"profiles"}, "", issues)
    _require_keys(payload, required, "", issues)

    out: dict[str, Any] = {}
    for key, validator in _SECTION_VALIDATORS.items():
        raw = payload.get(key)
        if raw is None:
            continue
        section = _as_object(raw, key, issues)
        if section is not None:
            out[key] = validator(section, key, issues, False)

    profiles_raw = payload.get("profiles")
    if profiles_raw is not None:
        profiles = _as_object(profiles_raw, "profiles", issues)
        if profiles is not None:
            out["profiles"] = _validate_profiles(profiles, "profiles", issues)
    return out


def _validate_meta(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, partial: bool
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"schema_version"}, path, issues)
    if not partial:
        _require_keys(payload, {"schema_version"}, path, issues)

    out: dict[str, Any] = {}
    if "schema_version" in payload:
        parsed = _as_int(
            payload["schema_version"], _join(path, "schema_version"), issues, minimum=1
        )
        if parsed is not None:
            out["schema_version"] = parsed
            if parsed != ConfigSchemaVersion:
                issues.add(_join(path, "schema_version"), migration_guidance(parsed))
    return out


def _validate_registry(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, partial: bool
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"commands_dir"}, path, issues)
    if not partial:
        _require_keys(payload, {"commands_dir"}, path, issues)

    out: dict[str, Any] = {}
    if "commands_dir" in payload:
        parsed = _as_optional_path(payload["commands_dir"], _join(path, "commands_dir"), issues)
        if parsed is not None:
            out["commands_dir"] = parsed
    return out


def _validate_session(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, partial: bool
) -> dict[str, Any]:
    allowed = {
        "default_node",
        "start_as_root",
        "enforce_privileges",
        "suggestion_threshold",
        "max_suggestions",
        "history_limit",
    }
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "default_node" in payload:
        parsed_node = _as_str(payload["default_node"], _join(path, "default_node"), issues)
        if parsed_node is not None:
            out["default_node"] = parsed_node

    for flag in ("start_as_root", "enforce_privileges"):
        if flag in payload:
            parsed_flag = _as_bool(payload[flag], _join(path, flag), issues)
            if parsed_flag is not None:
                out[flag] = parsed_flag

    if "suggestion_threshold" in payload:
        parsed_threshold = _as_int(
            payload["suggestion_threshold"],
            _join(path, "suggestion_threshold"),
            issues,
            minimum=0,
        )
        if parsed_threshold is not None:
            out["suggestion_threshold"] = parsed_threshold

    for key in ("max_suggestions", "history_limit"):
        if key in payload:
            parsed_count = _as_int(payload[key], _join(path, key), issues, minimum=1)
            if parsed_count is not None:
                out[key] = parsed_count
    return out


def _validate_cluster(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, partial: bool
) -> dict[str, Any]:
    allowed = {"name", "node_count", "gpus_per_node", "system_type"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "name" in payload:
        parsed_name = _as_str(payload["name"], _join(path, "name"), issues)
        if parsed_name is not None:
            out["name"] = parsed_name

    if "node_count" in payload:
        parsed_nodes = _as_int(
            payload["node_count"],
            _join(path, "node_count"),
            issues,
            minimum=1,
            maximum=MAX_NODE_COUNT,
        )
        if parsed_nodes is not None:
            out["node_count"] = parsed_nodes

    if "gpus_per_node" in payload:
        parsed_gpus = _as_int(
            payload["gpus_per_node"],
            _join(path, "gpus_per_node"),
            issues,
            minimum=1,
            maximum=MAX_GPUS_PER_NODE,
        )
        if parsed_gpus is not None:
            out["gpus_per_node"] = parsed_gpus

    if "system_type" in payload:
        parsed_type = _as_enum(
            payload["system_type"], _join(path, "system_type"), issues, allowed_values=SYSTEM_TYPES
        )
        if parsed_type is not None:
            out["system_type"] = parsed_type
    return out


def _validate_observability(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, partial: bool
) -> dict[str, Any]:
    allowed = {"log_level", "log_dir", "log_to_stderr"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "log_level" in payload:
        parsed_level = _as_enum(
            payload["log_level"], _join(path, "log_level"), issues, allowed_values=LOG_LEVELS
        )
        if parsed_level is not None:
            out["log_level"] = parsed_level

    if "log_dir" in payload:
        parsed_dir = _as_optional_path(payload["log_dir"], _join(path, "log_dir"), issues)
        if parsed_dir is not None:
            out["log_dir"] = parsed_dir

    if "log_to_stderr" in payload:
        parsed_stderr = _as_bool(payload["log_to_stderr"], _join(path, "log_to_stderr"), issues)
        if parsed_stderr is not None:
            out["log_to_stderr"] = parsed_stderr
    return out


_SECTION_VALIDATORS: Final[dict[str, _SectionValidator]] = {
    "meta": _validate_meta,
    "registry": _validate_registry,
    "session": _validate_session,
    "cluster": _validate_cluster,
    "observability": _validate_observability,
}


def _validate_profiles(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for profile_name in sorted(payload):
        profile_path = _join(path, profile_name)
        if not _PROFILE_NAME_PATTERN.fullmatch(profile_name):
            issues.add(profile_path, "profile name must match ^[a-z][a-z0-9_-]*$")
            continue
        overlay = _as_object(payload[profile_name], profile_path, issues)
        if overlay is None:
            continue

        # Overlays may touch any section except meta and profiles themselves.
        allowed = set(_SECTION_VALIDATORS) - {"meta"}
        _reject_unknown_keys(overlay, allowed, profile_path, issues)
        validated: dict[str, Any] = {}
        for section in sorted(allowed):
            raw = overlay.get(section)
            if raw is None:
                continue
            section_path = _join(profile_path, section)
            section_obj = _as_object(raw, section_path, issues)
            if section_obj is not None:
                validated[section] = _SECTION_VALIDATORS[section](
                    section_obj, section_path, issues, True
                )
        out[profile_name] = validated
    return out


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_optional_path(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    if "\x00" in value:
        issues.add(path, "must not contain NUL bytes")
        return None
    return value.strip()


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    if maximum is not None and value > maximum:
        issues.add(path, f"must be <= {maximum}")
        return None
    return value


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key in allowed:
            continue
        if _looks_sensitive_key(key):
            issues.add(_join(path, key), "credentials must not be stored in config")
        else:
            issues.add(_join(path, key), "unknown field")


def _require_keys(
    payload: Mapping[str, object],
    required: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(required):
        if key not in payload:
            issues.add(_join(path, key), "missing required field")


def _looks_sensitive_key(key: str) -> bool:
    tokens = _NON_ALNUM.sub("_", key.strip().lower()).split("_")
    return any(token in _SENSITIVE_KEY_TOKENS for token in tokens if token)


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            if isinstance(existing, dict):
                _merge_into(existing, value)
            else:
                nested: dict[str, Any] = (
                    _deep_copy_mapping(existing) if isinstance(existing, Mapping) else {}
                )
                _merge_into(nested, value)
                target[key] = nested
        else:
            target[key] = copy.deepcopy(value)


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    return {key: copy.deepcopy(value[key]) for key in sorted(value)}


def _redact_value(value: object, parent_key: str | None) -> object:
    if isinstance(value, Mapping):
        return {
            key: "<redacted>" if _looks_sensitive_key(key) else _redact_value(value[key], key)
            for key in sorted(value)
        }
    if isinstance(value, (list, tuple)):
        return [_redact_value(item, parent_key) for item in value]
    return value


__all__ = [
    "BUILTIN_PROFILE_NAMES",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "ProfileOverlay",
    "SimulatorConfig",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "dump_redacted",
    "merge_config",
    "migration_guidance",
    "redact_config",
    "validate_config",
]
