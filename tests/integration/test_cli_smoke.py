"""
fleet-simulator: CLI subprocess smoke contracts

File: tests/integration/test_cli_smoke.py

Purpose
- Exercise ``python -m fleet_simulator`` as an operator would, through a real subprocess.
- Verify exit codes, stdout/stderr routing and JSON payloads for exec, explain and config.
"""

from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
SRC_PATH = PROJECT_ROOT / "src"


def _run_cli(workdir: Path, *args: str) -> subprocess.CompletedProcess[str]:
    env = {key: value for key, value in os.environ.items() if not key.startswith("FLEETSIM_")}
    existing_pythonpath = env.get("PYTHONPATH")
    src_pythonpath = str(SRC_PATH)
    env["PYTHONPATH"] = (
        src_pythonpath if not existing_pythonpath else f"{src_pythonpath}:{existing_pythonpath}"
    )
    env["NO_COLOR"] = "1"
    return subprocess.run(
        [sys.executable, "-m", "fleet_simulator", *args],
        cwd=workdir,
        text=True,
        capture_output=True,
        check=False,
        env=env,
    )


@pytest.fixture()
def workdir(tmp_path: Path) -> Path:
    (tmp_path / "fleetsim.toml").write_text(
        "[cluster]\nnode_count = 4\ngpus_per_node = 8\n\n"
        "[observability]\nlog_dir = \"logs\"\n",
        encoding="utf-8",
    )
    return tmp_path


def test_help_lists_workflows(workdir: Path) -> None:
    completed = _run_cli(workdir, "--help")

    assert completed.returncode == 0
    assert "fleet-sim exec 'nvidia-smi -L'" in completed.stdout


def test_exec_uses_config_in_working_directory(workdir: Path) -> None:
    completed = _run_cli(workdir, "exec", "sinfo -h -p batch")

    assert completed.returncode == 0
    rows = [line.split() for line in completed.stdout.splitlines()]
    assert rows
    assert {row[0] for row in rows} == {"batch*"}
    assert sum(int(row[3]) for row in rows) == 4


def test_exec_writes_session_log(workdir: Path) -> None:
    completed = _run_cli(workdir, "exec", "--root", "ipmitool -P hunter2 power status")

    assert completed.returncode == 0
    assert completed.stdout.strip() == "Chassis Power is on"
    log_files = list((workdir / "logs").glob("session-*/fleetsim.jsonl"))
    assert len(log_files) == 1
    content = log_files[0].read_text(encoding="utf-8")
    records = [json.loads(line) for line in content.splitlines()]
    executed = [record for record in records if record["message"] == "command executed"]
    assert len(executed) == 1
    assert executed[0]["fields"]["exit_code"] == 0
    assert "hunter2" not in content


def test_exec_failure_passes_simulated_exit_code(workdir: Path) -> None:
    completed = _run_cli(workdir, "exec", "nvidia-smi -r -i 0")

    assert completed.returncode == 1
    assert completed.stdout == ""
    assert "requires root privileges" in completed.stderr


def test_exec_fault_scenario_json(workdir: Path) -> None:
    completed = _run_cli(
        workdir,
        "exec",
        "--json",
        "--fault",
        "dgx-02:3:xid-error:xid=79",
        "--node",
        "dgx-02",
        "dmesg -l err",
    )

    assert completed.returncode == 0
    payload = json.loads(completed.stdout)
    assert payload["scenario"] == "cli"
    assert payload["mutations"] == 1
    assert "NVRM: Xid (PCI:" in payload["output"]
    assert "): 79, " in payload["output"]


def test_explain_and_config_dump(workdir: Path) -> None:
    explained = _run_cli(workdir, "explain", "scontrol", "update")
    dumped = _run_cli(workdir, "config", "--json")

    assert explained.returncode == 0
    assert explained.stdout.startswith("=== scontrol update ===")
    assert dumped.returncode == 0
    config = json.loads(dumped.stdout)["config"]
    assert config["cluster"]["node_count"] == 4
    assert config["observability"]["log_dir"] == (workdir.resolve() / "logs").as_posix()


def test_invalid_config_exits_with_config_error(workdir: Path) -> None:
    (workdir / "fleetsim.toml").write_text("[cluster]\nnode_count = 0\n", encoding="utf-8")

    completed = _run_cli(workdir, "exec", "hostname")

    assert completed.returncode == 2
    assert "cluster.node_count: must be >= 1" in completed.stderr
