from __future__ import annotations

import heapq
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from .errors import CycleError, DanglingDependencyError, ValidationError
from .models import (
    CommandDefinition,
    ProjectConfig,
    TargetConfig,
    TargetType,
    command_definition_to_raw,
)


@dataclass(frozen=True)
class Target:
    name: str
    title: str
    type: TargetType
    directory: str
    cwd: str = ""
    commands: Mapping[str, CommandDefinition] = field(default_factory=dict)
    depends_on: Tuple[str, ...] = ()
    env: Mapping[str, str] = field(default_factory=dict)
    vars: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_config(cls, name: str, config: TargetConfig) -> "Target":
        return cls(
            name=name,
            title=config.title,
            type=config.type,
            directory=config.directory or name,
            cwd=config.cwd or config.directory or name,
            commands=MappingProxyType(dict(config.commands)),
            depends_on=tuple(config.depends_on),
            env=MappingProxyType(dict(config.env)),
            vars=MappingProxyType(dict(config.vars)),
        )

    def has_command(self, name: str) -> bool:
        """Whether ``name`` is defined for this target (disabled still counts)."""
        return name in self.commands

    def get_command(self, name: str) -> Optional[CommandDefinition]:
        return self.commands.get(name)

    def command_names(self) -> List[str]:
        return sorted(self.commands)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type.value,
            "title": self.title,
            "directory": self.directory,
            "commands": {k: command_definition_to_raw(self.commands[k]) for k in self.command_names()},
            "depends_on": list(self.depends_on),
        }


class Registry:
    """All targets of one project, in declaration order."""

    def __init__(self, targets: Iterable[Target]) -> None:
        self._targets: Dict[str, Target] = {}
        for target in targets:
            if target.name in self._targets:
                raise ValidationError(f"targets.{target.name}", "duplicate target name")
            self._targets[target.name] = target
        self._check_references()
        self._order: Tuple[Target, ...] = tuple(self._sort())

    @classmethod
    def from_config(cls, config: ProjectConfig) -> "Registry":
        return cls(Target.from_config(name, cfg) for name, cfg in config.targets.items())

    def get(self, name: str) -> Optional[Target]:
        return self._targets.get(name)

    def all(self) -> List[Target]:
        return list(self._targets.values())

    def by_type(self, target_type: TargetType) -> List[Target]:
        return [t for t in self._targets.values() if t.type is target_type]

    def languages(self) -> List[Target]:
        return self.by_type(TargetType.LANGUAGE)

    def auxiliary(self) -> List[Target]:
        return self.by_type(TargetType.AUXILIARY)

    def topological_order(self) -> List[Target]:
        return list(self._order)

    def __len__(self) -> int:
        return len(self._targets)

    def __contains__(self, name: object) -> bool:
        return name in self._targets

    def __iter__(self) -> Iterator[Target]:
        return iter(self._targets.values())

    def _check_references(self) -> None:
        for target in self._targets.values():
            for dep in target.depends_on:
                if dep not in self._targets:
                    raise DanglingDependencyError(target.name, dep)

    def _sort(self) -> List[Target]:
        """Kahn's algorithm; ready targets are taken in declaration order."""
        index = {name: i for i, name in enumerate(self._targets)}
        pending: Dict[str, int] = {}
        dependents: Dict[str, List[str]] = {name: [] for name in self._targets}
        for target in self._targets.values():
            deps = list(dict.fromkeys(target.depends_on))
            pending[target.name] = len(deps)
            for dep in deps:
                dependents[dep].append(target.name)

        ready = [index[name] for name, count in pending.items() if count == 0]
        heapq.heapify(ready)
        names = list(self._targets)
        ordered: List[Target] = []
        while ready:
            name = names[heapq.heappop(ready)]
            ordered.append(self._targets[name])
            for dependent in dependents[name]:
                pending[dependent] -= 1
                if pending[dependent] == 0:
                    heapq.heappush(ready, index[dependent])

        if len(ordered) != len(self._targets):
            stuck = [name for name in names if pending[name] > 0]
            raise CycleError(self._find_cycle(stuck))
        return ordered

    def _find_cycle(self, stuck: List[str]) -> List[str]:
        """Walk unresolved dependencies from the first stuck target until one repeats."""
        remaining = set(stuck)
        path: List[str] = []
        seen: Dict[str, int] = {}
        current = stuck[0]
        while current not in seen:
            seen[current] = len(path)
            path.append(current)
            # Every stuck target has at least one stuck dependency.
            current = next(dep for dep in self._targets[current].depends_on if dep in remaining)
        return path[seen[current]:] + [current]
