from __future__ import annotations

import datetime as _dt
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, List, Optional, Tuple, Union

from .errors import PhaseFailure


class TargetType(str, Enum):
    LANGUAGE = "language"
    AUXILIARY = "auxiliary"

    @classmethod
    def parse(cls, value: Union[str, "TargetType"]) -> "TargetType":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError as exc:
            raise ValueError(
                f"invalid target type {value!r} (must be 'language' or 'auxiliary')"
            ) from exc


class Verbosity(Enum):
    DEFAULT = auto()
    QUIET = auto()
    VERBOSE = auto()

    @property
    def command_suffix(self) -> Optional[str]:
        """Suffix of the command variant preferred at this verbosity, if any."""
        if self is Verbosity.VERBOSE:
            return ":verbose"
        if self is Verbosity.QUIET:
            return ":quiet"
        return None


@dataclass(frozen=True)
class LiteralCommand:
    """A shell command string run as-is (after interpolation)."""

    command: str


@dataclass(frozen=True)
class AliasCommand:
    """An ordered list of other command names run one after another."""

    names: Tuple[str, ...]


@dataclass(frozen=True)
class DisabledCommand:
    """Present in the configuration but intentionally not runnable."""


CommandDefinition = Union[LiteralCommand, AliasCommand, DisabledCommand]


def parse_command_definition(value: Any) -> CommandDefinition:
    if value is None:
        return DisabledCommand()
    if isinstance(value, str):
        return LiteralCommand(value)
    if isinstance(value, (list, tuple)):
        if not all(isinstance(item, str) for item in value):
            raise TypeError("command list elements must be strings")
        return AliasCommand(tuple(value))
    raise TypeError(f"invalid command type {type(value).__name__}; must be string, null, or array")


def command_definition_to_raw(definition: CommandDefinition) -> Any:
    if isinstance(definition, LiteralCommand):
        return definition.command
    if isinstance(definition, AliasCommand):
        return list(definition.names)
    return None


@dataclass
class TargetConfig:
    """Configuration of one target as declared in the project file."""

    type: TargetType
    title: str
    directory: str = ""
    cwd: str = ""
    commands: Dict[str, CommandDefinition] = field(default_factory=dict)
    depends_on: List[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)
    vars: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "TargetConfig":
        directory = data.get("directory") or name
        return cls(
            type=TargetType.parse(data["type"]),
            title=data.get("title", ""),
            directory=directory,
            cwd=data.get("cwd") or directory,
            commands={
                cmd: parse_command_definition(raw)
                for cmd, raw in (data.get("commands") or {}).items()
            },
            depends_on=list(data.get("depends_on") or []),
            env={str(k): str(v) for k, v in (data.get("env") or {}).items()},
            vars={str(k): str(v) for k, v in (data.get("vars") or {}).items()},
        )


@dataclass
class DockerConfig:
    compose_file: str = "docker-compose.yml"
    services: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DockerConfig":
        return cls(
            compose_file=data.get("compose_file") or "docker-compose.yml",
            services=dict(data.get("services") or {}),
        )

    def service_for(self, target_name: str) -> str:
        return self.services.get(target_name, target_name)


@dataclass
class CIConfig:
    pipeline: List[str] = field(default_factory=list)
    release_pipeline: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CIConfig":
        return cls(
            pipeline=list(data.get("pipeline") or []),
            release_pipeline=list(data.get("release_pipeline") or []),
        )


@dataclass
class ProjectConfig:
    """Validated project configuration."""

    name: str
    description: str = ""
    targets: Dict[str, TargetConfig] = field(default_factory=dict)
    docker: DockerConfig = field(default_factory=DockerConfig)
    ci: CIConfig = field(default_factory=CIConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProjectConfig":
        project = data.get("project") or {}
        return cls(
            name=project.get("name", ""),
            description=project.get("description", ""),
            targets={
                name: TargetConfig.from_dict(name, raw)
                for name, raw in (data.get("targets") or {}).items()
            },
            docker=DockerConfig.from_dict(data.get("docker") or {}),
            ci=CIConfig.from_dict(data.get("ci") or {}),
        )


def _error_text(error: Optional[BaseException]) -> Optional[str]:
    return str(error) if error is not None else None


@dataclass
class DispatchResult:
    """Outcome of running one command on one target."""

    name: str
    success: bool
    duration: float
    error: Optional[BaseException] = None
    skipped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target": self.name,
            "success": self.success,
            "skipped": self.skipped,
            "duration_s": round(self.duration, 3),
            "error": _error_text(self.error),
        }


@dataclass
class DispatchSummary:
    passed: int
    failed: int
    duration: float
    failed_targets: List[str] = field(default_factory=list)

    @classmethod
    def from_results(cls, results: List[DispatchResult]) -> "DispatchSummary":
        failed = [r.name for r in results if not r.success]
        return cls(
            passed=len(results) - len(failed),
            failed=len(failed),
            duration=sum(r.duration for r in results),
            failed_targets=failed,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passed": self.passed,
            "failed": self.failed,
            "duration_s": round(self.duration, 3),
            "failed_targets": list(self.failed_targets),
        }


@dataclass
class DispatchOutcome:
    """Aggregate of one dispatch invocation (single target or all targets)."""

    command: str
    results: List[DispatchResult] = field(default_factory=list)
    warning: Optional[str] = None
    cancelled: bool = False

    @property
    def success(self) -> bool:
        return not self.cancelled and all(r.success for r in self.results)

    @property
    def attempted(self) -> List[str]:
        return [r.name for r in self.results]

    @property
    def failed_targets(self) -> List[str]:
        return [r.name for r in self.results if not r.success]

    @property
    def first_error(self) -> Optional[BaseException]:
        for result in self.results:
            if result.error is not None and not result.success:
                return result.error
        return None

    @property
    def summary(self) -> Optional[DispatchSummary]:
        # Single-target runs rely on the immediate error message.
        if len(self.results) <= 1:
            return None
        return DispatchSummary.from_results(self.results)

    def to_dict(self) -> Dict[str, Any]:
        summary = self.summary
        return {
            "command": self.command,
            "success": self.success,
            "cancelled": self.cancelled,
            "warning": self.warning,
            "targets": [r.to_dict() for r in self.results],
            "summary": summary.to_dict() if summary else None,
        }


class PipelineState(Enum):
    NOT_STARTED = auto()
    RUNNING = auto()
    FAILED = auto()
    SUCCEEDED = auto()


@dataclass
class PhaseResult:
    """Summary emitted by a pipeline phase."""

    name: str
    start_time: _dt.datetime
    end_time: _dt.datetime
    duration: float
    success: bool
    error: Optional[BaseException] = None
    outcome: Optional[DispatchOutcome] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.name,
            "success": self.success,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "duration_s": round(self.duration, 3),
            "error": _error_text(self.error),
            "targets": [r.to_dict() for r in self.outcome.results] if self.outcome else [],
        }


@dataclass
class PipelineResult:
    name: str
    start_time: _dt.datetime
    end_time: Optional[_dt.datetime] = None
    duration: float = 0.0
    phases: List[PhaseResult] = field(default_factory=list)
    state: PipelineState = PipelineState.NOT_STARTED
    cancelled: bool = False

    @property
    def success(self) -> bool:
        return self.state is PipelineState.SUCCEEDED

    @property
    def failed_phase(self) -> Optional[PhaseResult]:
        for phase in self.phases:
            if not phase.success:
                return phase
        return None

    def raise_for_status(self) -> None:
        failed = self.failed_phase
        if failed is not None:
            raise PhaseFailure(failed.name, failed.error)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pipeline": self.name,
            "success": self.success,
            "state": self.state.name.lower(),
            "cancelled": self.cancelled,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_s": round(self.duration, 3),
            "phases": [p.to_dict() for p in self.phases],
        }

