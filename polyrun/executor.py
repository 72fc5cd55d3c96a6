from __future__ import annotations

import logging
import os
import re
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from .errors import CommandSkipped, DockerUnavailableError, TargetExecutionError
from .models import AliasCommand, DisabledCommand, DockerConfig, Verbosity
from .registry import Target
from .utils import run_command, shell_argv

logger = logging.getLogger(__name__)

_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")
_ESCAPE_PLACEHOLDER = "\x00ESCAPED\x00"

Runner = Callable[..., "subprocess.CompletedProcess[str]"]


@dataclass
class ExecOptions:
    docker: bool = False
    args: Sequence[str] = ()
    verbosity: Verbosity = Verbosity.DEFAULT


class Executor(Protocol):
    """Runs one command for one target.

    Implementations raise :class:`TargetExecutionError` on failure and
    :class:`CommandSkipped` when the command is intentionally not run.
    """

    def execute(self, target: Target, command: str, options: ExecOptions) -> None:
        ...


def resolve_command_variant(target: Target, command: str, verbosity: Verbosity) -> str:
    """Prefer ``<command>:verbose`` / ``<command>:quiet`` when the target defines it."""
    suffix = verbosity.command_suffix
    if suffix and target.has_command(command + suffix):
        return command + suffix
    return command


def interpolate_vars(command: str, target: Target) -> str:
    """Replace ``${name}`` references; ``$${name}`` yields a literal ``${name}``."""
    values: Dict[str, str] = {"target": target.name, "target_dir": target.directory}
    values.update(target.vars)

    escaped = command.replace("$${", _ESCAPE_PLACEHOLDER)
    replaced = _VAR_PATTERN.sub(lambda m: values.get(m.group(1), m.group(0)), escaped)
    return replaced.replace(_ESCAPE_PLACEHOLDER, "${")


def docker_available(runner: Runner = run_command) -> bool:
    try:
        result = runner(["docker", "info"], capture=True)
    except OSError:
        return False
    return result.returncode == 0


def build_docker_argv(docker: DockerConfig, target: Target, command: str) -> List[str]:
    argv = ["docker", "compose", "-f", docker.compose_file, "run", "--rm"]
    if hasattr(os, "getuid"):
        argv += ["--user", f"{os.getuid()}:{os.getgid()}"]
    for key, value in target.env.items():
        argv += ["-e", f"{key}={value}"]
    argv.append(docker.service_for(target.name))
    argv += shell_argv(command)
    return argv


class ShellExecutor:
    """Runs target commands through ``sh -c``, natively or via docker compose."""

    def __init__(
        self,
        root: str | Path,
        *,
        docker: Optional[DockerConfig] = None,
        runner: Runner = run_command,
    ) -> None:
        self.root = Path(root)
        self.docker = docker or DockerConfig()
        self._runner = runner
        self._docker_checked = False

    def execute(self, target: Target, command: str, options: ExecOptions) -> None:
        self._execute(target, command, options, ())

    def ensure_docker(self) -> None:
        if self._docker_checked:
            return
        if not docker_available(self._runner):
            raise DockerUnavailableError()
        self._docker_checked = True

    def _execute(
        self,
        target: Target,
        command: str,
        options: ExecOptions,
        stack: Tuple[str, ...],
    ) -> None:
        resolved = resolve_command_variant(target, command, options.verbosity)
        definition = target.get_command(resolved)
        if definition is None:
            raise TargetExecutionError(target.name, command, "command not defined")
        if isinstance(definition, DisabledCommand):
            raise CommandSkipped(target.name, command)
        if isinstance(definition, AliasCommand):
            if resolved in stack:
                chain = " -> ".join(stack + (resolved,))
                raise TargetExecutionError(target.name, command, f"alias cycle: {chain}")
            for name in definition.names:
                self._execute(target, name, options, stack + (resolved,))
            return

        script = interpolate_vars(definition.command, target)
        if options.args:
            script = script + " " + " ".join(shlex.quote(arg) for arg in options.args)
        self._run_script(target, command, script, options)

    def _run_script(self, target: Target, command: str, script: str, options: ExecOptions) -> None:
        env = dict(target.env)
        if options.docker:
            self.ensure_docker()
            argv = build_docker_argv(self.docker, target, script)
            cwd = self.root
        else:
            argv = shell_argv(script)
            cwd = self.root / target.cwd

        logger.debug("[%s] %s: %s", target.name, command, script)
        try:
            result = self._runner(argv, cwd=cwd, env=env, capture=False)
        except OSError as exc:
            raise TargetExecutionError(target.name, command, str(exc)) from exc
        if result.returncode != 0:
            raise TargetExecutionError(
                target.name,
                command,
                f"exited with code {result.returncode}",
                returncode=result.returncode,
            )
