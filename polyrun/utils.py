from __future__ import annotations

import json
import os
import subprocess
from pathlib import Path
from typing import Mapping, Optional, Sequence


def run_command(
    command: Sequence[str],
    *,
    cwd: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    capture: bool = True,
) -> subprocess.CompletedProcess[str]:
    """Execute a subprocess command and return the completed process.

    With ``capture=False`` the child inherits stdout/stderr so its output streams
    straight to the terminal.
    """

    process_env = os.environ.copy()
    if env:
        process_env.update(env)

    output = subprocess.PIPE if capture else None
    return subprocess.run(
        list(command),
        cwd=str(cwd) if cwd else None,
        env=process_env,
        stdout=output,
        stderr=output,
        text=True,
        check=False,
    )


def ensure_directory(path: str | Path) -> Path:
    """Create a directory and return its Path object."""

    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def dump_json(path: str | Path, payload: Mapping[str, object], *, indent: int = 2) -> None:
    """Write structured JSON to disk with a trailing newline for readability."""

    path = Path(path)
    ensure_directory(path.parent)
    path.write_text(json.dumps(payload, indent=indent, sort_keys=True) + "\n")


def shell_argv(command: str, shell: Optional[str] = None) -> list[str]:
    return [shell or "sh", "-c", command]
