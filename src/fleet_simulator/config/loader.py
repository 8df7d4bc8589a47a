"""
fleet-simulator runtime config loader.

Precedence is CLI > environment (``FLEETSIM_``) > ``fleetsim.toml`` > defaults.
Environment names are derived from the default config tree, so every scalar
setting has one, e.g. ``FLEETSIM_SESSION_DEFAULT_NODE``.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final, Literal

from fleet_simulator.config.schema import (
    PATH_FIELDS,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    dump_redacted,
    merge_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "fleetsim.toml"
ENV_PREFIX: Final[str] = "FLEETSIM_"

_BOOLEAN_TRUE: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_BOOLEAN_FALSE: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})

_ValueKind = Literal["str", "int", "bool"]


@dataclass(frozen=True, slots=True)
class _Binding:
    path: tuple[str, ...]
    value_type: _ValueKind


class ConfigLoadError(ValueError):
    """Raised when config cannot be loaded or overrides cannot be coerced."""


def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Load effective config with deterministic precedence: CLI > env > file > defaults."""

    resolved_path = _resolve_config_path(config_path)
    env_map = dict(os.environ if environ is None else environ)
    cli_map = dict(cli_overrides or {})

    file_payload = _load_toml_file(resolved_path, required=config_path is not None)
    selected_profile = _resolve_profile(profile=profile, cli_overrides=cli_map, environ=env_map)

    merged = assert_valid_config(merge_config(default_config(), file_payload))
    if selected_profile is not None:
        merged = apply_profile_overlay(merged, selected_profile)

    merged = merge_config(merged, _collect_env_overrides(merged, env_map))
    merged = merge_config(merged, _materialize_cli_overrides(cli_map))
    merged = assert_valid_config(merged, active_profile=selected_profile)

    return normalize_paths(merged, base_dir=resolved_path.parent)


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Resolve non-empty path fields relative to ``base_dir``."""

    materialized = merge_config({}, config)
    for field_path in PATH_FIELDS:
        _normalize_path_field(materialized, field_path, base_dir)
    return materialized


def effective_config(config: Mapping[str, object]) -> dict[str, Any]:
    return dump_redacted(config)


def dump_effective_config(config: Mapping[str, object], *, indent: int | None = None) -> str:
    """Return a deterministic JSON dump of the redacted effective config."""

    separators = (",", ":") if indent is None else (",", ": ")
    return json.dumps(
        effective_config(config),
        sort_keys=True,
        separators=separators,
        indent=indent,
        ensure_ascii=False,
    )


def _resolve_config_path(config_path: str | Path | None) -> Path:
    if config_path is None:
        return (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    return Path(config_path).expanduser().resolve()


def _load_toml_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}

    try:
        with path.open("rb") as handle:
            parsed = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc

    return parsed


def _resolve_profile(
    *,
    profile: str | None,
    cli_overrides: Mapping[str, object],
    environ: Mapping[str, str],
) -> str | None:
    if profile is not None:
        return profile.strip() or None

    cli_profile = cli_overrides.get("profile")
    if cli_profile is not None:
        if not isinstance(cli_profile, str):
            raise ConfigLoadError("cli override 'profile' must be a string")
        return cli_profile.strip() or None

    env_profile = environ.get(f"{ENV_PREFIX}PROFILE")
    if env_profile is None:
        return None
    return env_profile.strip() or None


def _collect_env_overrides(
    config: Mapping[str, object], environ: Mapping[str, str]
) -> dict[str, Any]:
    bindings = _build_bindings(config)
    overrides: dict[str, Any] = {}
    for env_name in sorted(bindings):
        raw = environ.get(env_name)
        if raw is None:
            continue
        binding = bindings[env_name]
        _set_nested(overrides, binding.path, _coerce_env(raw, binding, env_name))
    return overrides


def _build_bindings(config: Mapping[str, object]) -> dict[str, _Binding]:
    bindings: dict[str, _Binding] = {}
    for path, value in _iter_scalar_paths(config):
        if path[0] in ("profiles", "meta"):
            continue
        kind = _kind_for_value(value)
        if kind is not None:
            bindings[_env_name_for_path(path)] = _Binding(path=path, value_type=kind)
    return bindings


def _iter_scalar_paths(
    payload: Mapping[str, object],
    prefix: tuple[str, ...] = (),
) -> list[tuple[tuple[str, ...], object]]:
    pairs: list[tuple[tuple[str, ...], object]] = []
    for key in sorted(payload):
        value = payload[key]
        path = (*prefix, key)
        if isinstance(value, Mapping):
            pairs.extend(_iter_scalar_paths(value, path))
        else:
            pairs.append((path, value))
    return pairs


def _kind_for_value(value: object) -> _ValueKind | None:
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, str):
        return "str"
    return None


def _coerce_env(raw: str, binding: _Binding, env_name: str) -> object:
    value = raw.strip()
    dotted = ".".join(binding.path)
    if binding.value_type == "str":
        return value
    if binding.value_type == "int":
        try:
            return int(value)
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} -> {dotted} must be an integer") from exc

    lowered = value.lower()
    if lowered in _BOOLEAN_TRUE:
        return True
    if lowered in _BOOLEAN_FALSE:
        return False
    raise ConfigLoadError(
        f"{env_name} -> {dotted} must be a boolean (true/false/1/0/yes/no/on/off)"
    )


def _materialize_cli_overrides(cli_overrides: Mapping[str, object]) -> dict[str, Any]:
    """Expand dotted CLI keys (``session.default_node``) into nested sections."""

    payload: dict[str, Any] = {}
    for key in sorted(cli_overrides):
        if key == "profile":
            continue
        value = cli_overrides[key]
        if value is None:
            continue
        path = tuple(part for part in key.split(".") if part)
        if not path:
            raise ConfigLoadError(f"invalid CLI override key {key!r}")
        _set_nested(payload, path, value)
    return payload


def _set_nested(target: dict[str, Any], path: tuple[str, ...], value: object) -> None:
    cursor = target
    for part in path[:-1]:
        next_node = cursor.get(part)
        if not isinstance(next_node, dict):
            next_node = {}
            cursor[part] = next_node
        cursor = next_node
    cursor[path[-1]] = value


def _get_nested(payload: Mapping[str, object], path: tuple[str, ...]) -> object | None:
    cursor: object = payload
    for part in path:
        if not isinstance(cursor, Mapping) or part not in cursor:
            return None
        cursor = cursor[part]
    return cursor


def _normalize_path_field(config: dict[str, Any], path: tuple[str, ...], base_dir: Path) -> None:
    value = _get_nested(config, path)
    if not isinstance(value, str) or not value:
        return
    _set_nested(config, path, _normalize_one_path(value, base_dir))


def _normalize_one_path(raw: str, base_dir: Path) -> str:
    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(str(candidate))).as_posix()


def _env_name_for_path(path: tuple[str, ...]) -> str:
    return ENV_PREFIX + "_".join(part.upper() for part in path)


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "dump_effective_config",
    "effective_config",
    "load_config",
    "normalize_paths",
]
