"""
fleet-simulator: unit tests for config loader

File: tests/unit/config/test_loader.py

Purpose
- Validate deterministic config loading from defaults, TOML, env overrides, and CLI overrides.

What this test file should cover
- Precedence: CLI > env > file > defaults.
- Deterministic env var path mapping and type coercion.
- Profile selection from argument, CLI override and environment.
- Path normalization relative to the config file.
- Redacted effective config dumping.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from fleet_simulator.config import ConfigValidationError
from fleet_simulator.config.loader import (
    ConfigLoadError,
    dump_effective_config,
    load_config,
)

REPO_ROOT = Path(__file__).resolve().parents[3]


def _write_config(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def test_loader_precedence_default_file_env_cli(tmp_path: Path) -> None:
    config_path = tmp_path / "fleetsim.toml"
    default_path = tmp_path / "default.toml"
    _write_config(default_path, "")
    _write_config(
        config_path,
        """
[session]
history_limit = 40
""".strip(),
    )

    env = {"FLEETSIM_SESSION_HISTORY_LIMIT": "60"}
    default_loaded = load_config(default_path, environ={})
    file_loaded = load_config(config_path, environ={})
    env_loaded = load_config(config_path, environ=env)
    cli_loaded = load_config(
        config_path, environ=env, cli_overrides={"session.history_limit": 70}
    )

    assert default_loaded["session"]["history_limit"] == 1000
    assert file_loaded["session"]["history_limit"] == 40
    assert env_loaded["session"]["history_limit"] == 60
    assert cli_loaded["session"]["history_limit"] == 70


def test_env_mapping_coerces_booleans_and_strings(tmp_path: Path) -> None:
    config_path = tmp_path / "fleetsim.toml"
    _write_config(config_path, "")

    loaded = load_config(
        config_path,
        environ={
            "FLEETSIM_SESSION_START_AS_ROOT": "yes",
            "FLEETSIM_SESSION_DEFAULT_NODE": " dgx-03 ",
            "FLEETSIM_CLUSTER_SYSTEM_TYPE": "DGX-H100",
            "FLEETSIM_UNRELATED": "ignored",
        },
    )

    assert loaded["session"]["start_as_root"] is True
    assert loaded["session"]["default_node"] == "dgx-03"
    assert loaded["cluster"]["system_type"] == "DGX-H100"


@pytest.mark.parametrize(
    ("env_name", "raw", "message"),
    [
        ("FLEETSIM_CLUSTER_NODE_COUNT", "many", "must be an integer"),
        ("FLEETSIM_OBSERVABILITY_LOG_TO_STDERR", "perhaps", "must be a boolean"),
    ],
)
def test_invalid_env_coercion_raises_actionable_error(
    tmp_path: Path, env_name: str, raw: str, message: str
) -> None:
    config_path = tmp_path / "fleetsim.toml"
    _write_config(config_path, "")

    with pytest.raises(ConfigLoadError, match=message) as excinfo:
        load_config(config_path, environ={env_name: raw})

    assert env_name in str(excinfo.value)


def test_out_of_range_override_fails_validation(tmp_path: Path) -> None:
    config_path = tmp_path / "fleetsim.toml"
    _write_config(config_path, "")

    with pytest.raises(ConfigValidationError, match="cluster.gpus_per_node: must be <= 8"):
        load_config(config_path, environ={}, cli_overrides={"cluster.gpus_per_node": 16})


def test_missing_explicit_config_file_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="config file not found"):
        load_config(tmp_path / "absent.toml", environ={})


def test_invalid_toml_is_reported(tmp_path: Path) -> None:
    config_path = tmp_path / "fleetsim.toml"
    _write_config(config_path, "[session\nhistory_limit = ")

    with pytest.raises(ConfigLoadError, match="invalid TOML"):
        load_config(config_path, environ={})


def test_profile_selection_sources(tmp_path: Path) -> None:
    config_path = tmp_path / "fleetsim.toml"
    _write_config(config_path, "")

    by_argument = load_config(config_path, profile="sandbox", environ={})
    by_cli = load_config(config_path, environ={}, cli_overrides={"profile": "training"})
    by_env = load_config(config_path, environ={"FLEETSIM_PROFILE": "strict"})

    assert by_argument["session"]["enforce_privileges"] is False
    assert by_argument["observability"]["log_level"] == "DEBUG"
    assert by_cli["cluster"]["node_count"] == 4
    assert by_env["session"]["max_suggestions"] == 1


def test_env_overrides_apply_on_top_of_profile(tmp_path: Path) -> None:
    config_path = tmp_path / "fleetsim.toml"
    _write_config(config_path, "")

    loaded = load_config(
        config_path,
        profile="training",
        environ={"FLEETSIM_CLUSTER_NODE_COUNT": "6"},
    )

    assert loaded["cluster"]["node_count"] == 6


def test_unknown_profile_is_rejected(tmp_path: Path) -> None:
    config_path = tmp_path / "fleetsim.toml"
    _write_config(config_path, "")

    with pytest.raises(ConfigValidationError, match="profile 'night' is not defined"):
        load_config(config_path, profile="night", environ={})


def test_path_normalization_is_relative_to_config_file(tmp_path: Path) -> None:
    config_path = tmp_path / "conf" / "fleetsim.toml"
    _write_config(
        config_path,
        """
[registry]
commands_dir = "defs"

[observability]
log_dir = "../logs"
""".strip(),
    )

    loaded = load_config(config_path, environ={})
    root = tmp_path.resolve()

    assert loaded["registry"]["commands_dir"] == (root / "conf" / "defs").as_posix()
    assert loaded["observability"]["log_dir"] == (root / "logs").as_posix()


def test_loader_is_deterministic_for_same_inputs(tmp_path: Path) -> None:
    config_path = tmp_path / "fleetsim.toml"
    _write_config(config_path, "[cluster]\nnode_count = 3\n")

    first = dump_effective_config(load_config(config_path, environ={}))
    second = dump_effective_config(load_config(config_path, environ={}))

    assert first == second
    assert json.loads(first)["cluster"]["node_count"] == 3


def test_dump_effective_config_is_sorted_json(tmp_path: Path) -> None:
    config_path = tmp_path / "fleetsim.toml"
    _write_config(config_path, "")

    dumped = dump_effective_config(load_config(config_path, environ={}), indent=2)

    payload = json.loads(dumped)
    assert list(payload) == sorted(payload)
    assert payload["meta"]["schema_version"] == 1


def test_can_load_repo_fleetsim_toml_with_profile() -> None:
    loaded = load_config(REPO_ROOT / "fleetsim.toml", profile="lab", environ={})

    assert loaded["cluster"]["node_count"] == 2
    assert loaded["cluster"]["system_type"] == "DGX-H100"
    assert loaded["session"]["start_as_root"] is True
