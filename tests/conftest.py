from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import pytest

from polyrun.errors import CommandSkipped, TargetExecutionError
from polyrun.executor import ExecOptions
from polyrun.models import DisabledCommand, TargetType, parse_command_definition
from polyrun.registry import Registry, Target


def make_target(
    name: str,
    *,
    type: str = "language",
    commands: Optional[Mapping[str, Any]] = None,
    depends_on: Iterable[str] = (),
    vars: Optional[Mapping[str, str]] = None,
    env: Optional[Mapping[str, str]] = None,
) -> Target:
    if commands is None:
        commands = {"build": f"build {name}", "test": f"test {name}"}
    return Target(
        name=name,
        title=name.upper(),
        type=TargetType(type),
        directory=name,
        cwd=name,
        commands={k: parse_command_definition(v) for k, v in commands.items()},
        depends_on=tuple(depends_on),
        env=dict(env or {}),
        vars=dict(vars or {}),
    )


class RecordingExecutor:
    """Records every (target, command) call; fails for names listed in ``failing``."""

    def __init__(self, failing: Iterable[str] = (), on_execute=None) -> None:
        self.failing = set(failing)
        self.calls: List[Tuple[str, str]] = []
        self.options: List[ExecOptions] = []
        self._on_execute = on_execute

    def execute(self, target: Target, command: str, options: ExecOptions) -> None:
        self.calls.append((target.name, command))
        self.options.append(options)
        if self._on_execute is not None:
            self._on_execute(target, command)
        if isinstance(target.get_command(command), DisabledCommand):
            raise CommandSkipped(target.name, command)
        if target.name in self.failing or f"{target.name}:{command}" in self.failing:
            raise TargetExecutionError(target.name, command, "exited with code 1", returncode=1)

    @property
    def targets(self) -> List[str]:
        return [name for name, _ in self.calls]


@pytest.fixture
def recorder() -> RecordingExecutor:
    return RecordingExecutor()


@pytest.fixture
def three_targets() -> Registry:
    return Registry([make_target("a"), make_target("b"), make_target("c")])


def write_project(root: Path, config: Dict[str, Any], *, filename: str = "config.json") -> Path:
    """Write ``.polyrun/<filename>`` plus one directory per target under ``root``."""
    config_dir = root / ".polyrun"
    config_dir.mkdir(parents=True, exist_ok=True)
    path = config_dir / filename
    path.write_text(json.dumps(config, indent=2))
    for name, target in (config.get("targets") or {}).items():
        (root / (target.get("directory") or name)).mkdir(parents=True, exist_ok=True)
    return path
