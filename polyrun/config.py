from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from .errors import ConfigError, ValidationError
from .models import ProjectConfig

try:  # pragma: no cover - tomllib is stdlib from 3.11 onwards
    import tomllib  # type: ignore
except ModuleNotFoundError:  # pragma: no cover - fallback for 3.10
    import tomli as tomllib  # type: ignore

logger = logging.getLogger(__name__)

CONFIG_DIR_NAME = ".polyrun"
CONFIG_FILE_NAMES = ("config.json", "config.yaml", "config.yml", "config.toml")
ROOT_ENV_VAR = "POLYRUN_ROOT"

MAX_PROJECT_NAME_LENGTH = 128
_PROJECT_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9]*(-[a-z0-9]+)*$")
_TARGET_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9-]*$")

_KNOWN_KEYS: Dict[str, frozenset] = {
    "": frozenset({"project", "targets", "docker", "ci"}),
    "project": frozenset({"name", "description"}),
    "target": frozenset({"type", "title", "directory", "cwd", "commands", "depends_on", "env", "vars"}),
    "docker": frozenset({"compose_file", "services"}),
    "ci": frozenset({"pipeline", "release_pipeline"}),
}


class ProjectNotFoundError(ConfigError):
    def __init__(self, start: Path) -> None:
        super().__init__(
            f"{CONFIG_DIR_NAME}/config.* not found in {start} or any parent directory"
        )


def find_config_file(root: str | Path) -> Optional[Path]:
    config_dir = Path(root) / CONFIG_DIR_NAME
    for name in CONFIG_FILE_NAMES:
        candidate = config_dir / name
        if candidate.is_file():
            return candidate
    return None


def find_project_root(start: str | Path | None = None) -> Path:
    """Walk up from ``start`` (or ``$POLYRUN_ROOT``, or the cwd) to the project root."""
    if start is None:
        start = os.environ.get(ROOT_ENV_VAR) or Path.cwd()
    origin = Path(start).resolve()
    for directory in (origin, *origin.parents):
        if find_config_file(directory) is not None:
            return directory
    raise ProjectNotFoundError(origin)


def parse_config_text(raw_text: str, suffix: str = ".json") -> Any:
    """Parse configuration text; TOML by suffix, otherwise JSON with a YAML fallback."""
    if suffix == ".toml":
        try:
            return tomllib.loads(raw_text)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"failed to parse config file: {exc}") from exc
    try:
        return json.loads(raw_text)
    except json.JSONDecodeError:
        try:
            return yaml.safe_load(raw_text)
        except yaml.YAMLError as exc:
            raise ConfigError(f"failed to parse config file: {exc}") from exc


def _unknown_keys(section: str, data: Mapping[str, Any], prefix: str) -> List[str]:
    known = _KNOWN_KEYS[section]
    return [f"unknown field {prefix}{key!s} (ignored)" for key in data if key not in known]


def _require_mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValidationError(field_name, "must be an object")
    return value


def _validate_string_map(value: Any, field_name: str) -> None:
    for key, item in _require_mapping(value, field_name).items():
        if not isinstance(item, (str, int, float, bool)):
            raise ValidationError(f"{field_name}.{key}", "must be a string")


def validate_project_name(name: Any) -> None:
    if not name:
        raise ValidationError("project.name", "required")
    if not isinstance(name, str):
        raise ValidationError("project.name", "must be a string")
    if len(name) > MAX_PROJECT_NAME_LENGTH:
        raise ValidationError("project.name", f"must be {MAX_PROJECT_NAME_LENGTH} characters or less")
    if not _PROJECT_NAME_PATTERN.match(name):
        raise ValidationError(
            "project.name",
            "must match pattern ^[a-z][a-z0-9]*(-[a-z0-9]+)*$ (lowercase letters, digits, non-consecutive hyphens)",
        )


def validate_command_definition(target: str, command: str, definition: Any) -> None:
    field_name = f"targets.{target}.commands.{command}"
    if definition is None or isinstance(definition, str):
        return
    if isinstance(definition, list):
        for i, item in enumerate(definition):
            if not isinstance(item, str):
                raise ValidationError(
                    f"{field_name}[{i}]",
                    f"command list elements must be strings, got {type(item).__name__}",
                )
        return
    if isinstance(definition, Mapping):
        raise ValidationError(field_name, "object-form commands are not supported; use string or array syntax")
    raise ValidationError(field_name, f"invalid command type {type(definition).__name__}; must be string, null, or array")


def validate_target(name: str, data: Any) -> List[str]:
    prefix = f"targets.{name}"
    if not _TARGET_NAME_PATTERN.match(name):
        raise ValidationError(prefix, "target name must match pattern ^[a-z][a-z0-9-]*$ (lowercase letters, digits, hyphens)")
    data = _require_mapping(data, prefix)

    target_type = data.get("type")
    if not target_type:
        raise ValidationError(f"{prefix}.type", "required")
    if target_type not in ("language", "auxiliary"):
        raise ValidationError(f"{prefix}.type", 'must be "language" or "auxiliary"')
    if not data.get("title"):
        raise ValidationError(f"{prefix}.title", "required")

    for command, definition in _require_mapping(data.get("commands"), f"{prefix}.commands").items():
        validate_command_definition(name, command, definition)

    depends_on = data.get("depends_on") or []
    if not isinstance(depends_on, list) or not all(isinstance(dep, str) for dep in depends_on):
        raise ValidationError(f"{prefix}.depends_on", "must be a list of target names")

    _validate_string_map(data.get("env"), f"{prefix}.env")
    _validate_string_map(data.get("vars"), f"{prefix}.vars")
    return _unknown_keys("target", data, f"{prefix}.")


def validate_config(data: Any) -> List[str]:
    """Validate raw configuration data; return warnings for non-fatal issues."""
    if not isinstance(data, Mapping):
        raise ValidationError("config", "top level must be an object")

    warnings = _unknown_keys("", data, "")
    project = _require_mapping(data.get("project"), "project")
    validate_project_name(project.get("name"))
    warnings += _unknown_keys("project", project, "project.")

    for name, target in _require_mapping(data.get("targets"), "targets").items():
        warnings += validate_target(str(name), target)

    docker = _require_mapping(data.get("docker"), "docker")
    _validate_string_map(docker.get("services"), "docker.services")
    warnings += _unknown_keys("docker", docker, "docker.")

    ci = _require_mapping(data.get("ci"), "ci")
    for key in ("pipeline", "release_pipeline"):
        phases = ci.get(key) or []
        if not isinstance(phases, list) or not all(isinstance(p, str) and p for p in phases):
            raise ValidationError(f"ci.{key}", "must be a list of command names")
    warnings += _unknown_keys("ci", ci, "ci.")
    return warnings


def load_config(path: str | Path) -> Tuple[ProjectConfig, List[str]]:
    path = Path(path)
    try:
        raw_text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"failed to read config file {path}: {exc}") from exc
    raw_data = parse_config_text(raw_text, path.suffix)
    warnings = validate_config(raw_data)
    return ProjectConfig.from_dict(raw_data), warnings


@dataclass
class Project:
    """A loaded project: its root directory and validated configuration."""

    root: Path
    config_path: Path
    config: ProjectConfig
    warnings: List[str] = field(default_factory=list)

    @classmethod
    def load(cls, start: str | Path | None = None) -> "Project":
        root = find_project_root(start)
        config_path = find_config_file(root)
        assert config_path is not None
        config, warnings = load_config(config_path)
        for name, target in config.targets.items():
            if not (root / target.directory).is_dir():
                raise ValidationError(
                    f"targets.{name}.directory",
                    f"directory {target.directory!r} does not exist",
                )
        for warning in warnings:
            logger.warning("%s: %s", config_path.name, warning)
        return cls(root=root, config_path=config_path, config=config, warnings=warnings)
