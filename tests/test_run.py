from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from polyrun.registry import Registry
from polyrun.run import extract_target_arg, main

from conftest import make_target, write_project


def _config(**overrides) -> dict:
    config = {
        "project": {"name": "demo"},
        "targets": {
            "rs": {
                "type": "language",
                "title": "Rust",
                "depends_on": ["py"],
                "commands": {"build": "echo ${target} >> ../order.txt", "test": "true"},
            },
            "py": {
                "type": "language",
                "title": "Python",
                "commands": {"build": "echo ${target} >> ../order.txt", "test": "true", "clean": None},
            },
        },
    }
    config.update(overrides)
    return config


def _order(root: Path) -> list[str]:
    return (root / "order.txt").read_text().split()


def test_run_all_targets_in_dependency_order(tmp_path: Path) -> None:
    write_project(tmp_path, _config())
    assert main(["--root", str(tmp_path), "run", "build"]) == 0
    assert _order(tmp_path) == ["py", "rs"]


def test_run_single_target(tmp_path: Path) -> None:
    write_project(tmp_path, _config())
    assert main(["--root", str(tmp_path), "run", "build", "rs"]) == 0
    assert _order(tmp_path) == ["rs"]


def test_run_failure_exits_with_runtime_code(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    config = _config()
    config["targets"]["py"]["commands"]["test"] = "exit 1"
    write_project(tmp_path, config)

    assert main(["--root", str(tmp_path), "--continue", "run", "test"]) == 1
    out = capsys.readouterr().out
    assert "test summary" in out
    assert "Failed:   1 (py)" in out


def test_unknown_command_exits_with_config_code(tmp_path: Path) -> None:
    write_project(tmp_path, _config())
    assert main(["--root", str(tmp_path), "run", "deploy"]) == 2


def test_target_name_as_command_suggests_fix(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    write_project(tmp_path, _config())
    with caplog.at_level(logging.INFO, logger="polyrun"):
        assert main(["--root", str(tmp_path), "run", "py"]) == 2
    assert "did you mean 'polyrun run build py'?" in caplog.text


def test_empty_type_filter_succeeds(tmp_path: Path) -> None:
    write_project(tmp_path, _config())
    assert main(["--root", str(tmp_path), "--type", "auxiliary", "run", "build"]) == 0
    assert not (tmp_path / "order.txt").exists()


def test_cycle_exits_with_config_code(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    config = _config()
    config["targets"]["py"]["depends_on"] = ["rs"]
    write_project(tmp_path, config)
    assert main(["--root", str(tmp_path), "run", "build"]) == 2
    assert "circular dependency" in caplog.text


def test_missing_project_exits_with_config_code(tmp_path: Path) -> None:
    assert main(["--root", str(tmp_path), "validate"]) == 2


def test_targets_json(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    write_project(tmp_path, _config())
    assert main(["--root", str(tmp_path), "targets", "--json"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert [t["name"] for t in payload] == ["rs", "py"]
    assert payload[1]["commands"]["clean"] is None
    assert payload[0]["depends_on"] == ["py"]


def test_validate(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    write_project(tmp_path, _config())
    assert main(["--root", str(tmp_path), "validate"]) == 0
    out = capsys.readouterr().out
    assert "Configuration is valid." in out
    assert "2 (2 language, 0 auxiliary)" in out


def test_ci_writes_report(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    write_project(tmp_path, _config())
    report = tmp_path / "reports" / "ci.json"
    assert main(["--root", str(tmp_path), "ci", "--report", str(report)]) == 0

    payload = json.loads(report.read_text())
    assert payload["pipeline"] == "ci"
    assert payload["success"] is True
    assert [p["phase"] for p in payload["phases"]] == ["clean", "restore", "check", "build", "test"]
    assert _order(tmp_path) == ["py", "rs"]
    assert "ci pipeline completed successfully." in capsys.readouterr().out


def test_ci_release_stops_at_failing_phase(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    config = _config()
    config["targets"]["py"]["commands"]["build:release"] = "exit 4"
    write_project(tmp_path, config)
    assert main(["--root", str(tmp_path), "ci:release"]) == 1
    out = capsys.readouterr().out
    assert "Failed:   build:release" in out
    assert "ci:release pipeline failed." in out


def test_ci_until(tmp_path: Path) -> None:
    write_project(tmp_path, _config())
    assert main(["--root", str(tmp_path), "ci", "--until", "check"]) == 0
    assert not (tmp_path / "order.txt").exists()


def test_extract_target_arg() -> None:
    registry = Registry([make_target("py"), make_target("rs")])
    assert extract_target_arg([], registry) == (None, [])
    assert extract_target_arg(["py"], registry) == ("py", [])
    assert extract_target_arg(["py", "--", "-x"], registry) == ("py", ["-x"])
    assert extract_target_arg(["--", "py"], registry) == (None, ["py"])
    assert extract_target_arg(["-k", "smoke"], registry) == (None, ["-k", "smoke"])


def test_unexpected_error_exits_with_runtime_code(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    write_project(tmp_path, _config())

    def broken_load(args):
        raise KeyError("project")

    monkeypatch.setattr("polyrun.run._load", broken_load)
    assert main(["--root", str(tmp_path), "validate"]) == 1
    assert "unexpected error" in caplog.text
