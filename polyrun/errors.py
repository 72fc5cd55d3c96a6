from __future__ import annotations

from typing import Optional, Sequence

EXIT_SUCCESS = 0
EXIT_RUNTIME_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_ENVIRONMENT_ERROR = 3


class OrchestratorError(RuntimeError):
    """Base class for errors surfaced to the command line."""

    exit_code = EXIT_RUNTIME_ERROR


class ConfigError(OrchestratorError):
    """Raised when the project configuration is structurally invalid."""

    exit_code = EXIT_CONFIG_ERROR


class ValidationError(ConfigError):
    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class CycleError(ConfigError):
    """Raised when ``depends_on`` edges do not form a DAG."""

    def __init__(self, cycle: Sequence[str]) -> None:
        self.cycle = list(cycle)
        self.target = self.cycle[0]
        if len(self.cycle) == 2 and self.cycle[0] == self.cycle[1]:
            message = f"circular dependency: {self.target!r} depends on itself"
        else:
            message = "circular dependency detected: " + " -> ".join(self.cycle)
        super().__init__(message)


class DanglingDependencyError(ConfigError):
    def __init__(self, target: str, missing: str) -> None:
        self.target = target
        self.missing = missing
        super().__init__(f"target {target!r} depends on undefined target {missing!r}: target not found")


class TargetNotFoundError(ConfigError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"target not found: {name}")


class UnknownCommandError(OrchestratorError):
    """Raised when no target (or the named target) defines a command."""

    exit_code = EXIT_CONFIG_ERROR

    def __init__(self, command: str, target: Optional[str] = None) -> None:
        self.command = command
        self.target = target
        if target is None:
            message = f"unknown command {command!r}: no target defines it"
        else:
            message = f"command {command!r} is not defined for target {target!r}"
        super().__init__(message)


class TargetExecutionError(OrchestratorError):
    """Raised by an executor when a target's command fails."""

    def __init__(
        self,
        target: str,
        command: str,
        message: str,
        *,
        returncode: Optional[int] = None,
    ) -> None:
        self.target = target
        self.command = command
        self.returncode = returncode
        super().__init__(f"[{target}] {command}: {message}")


class CommandSkipped(Exception):
    """Signals that a command was intentionally not run (for example, disabled)."""

    def __init__(self, target: str, command: str, reason: str = "disabled") -> None:
        self.target = target
        self.command = command
        self.reason = reason
        super().__init__(f"[{target}] {command}: {reason}, skipping")


class PhaseFailure(OrchestratorError):
    def __init__(self, phase: str, cause: Optional[BaseException] = None) -> None:
        self.phase = phase
        self.cause = cause
        message = f"pipeline phase {phase!r} failed"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class DockerUnavailableError(OrchestratorError):
    exit_code = EXIT_ENVIRONMENT_ERROR

    def __init__(self) -> None:
        super().__init__("docker is not available or not running")


def exit_code_for(error: Optional[BaseException]) -> int:
    """Map an exception (or ``None`` for success) to a process exit code."""
    if error is None:
        return EXIT_SUCCESS
    if isinstance(error, OrchestratorError):
        return error.exit_code
    return EXIT_RUNTIME_ERROR
