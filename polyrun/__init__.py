"""Dependency-ordered command orchestration for multi-language monorepos."""

from .config import Project
from .dispatch import DispatchOptions, Dispatcher
from .pipeline import Pipeline, RELEASE_PHASES, STANDARD_PHASES
from .registry import Registry, Target

__all__ = [
    "DispatchOptions",
    "Dispatcher",
    "Pipeline",
    "Project",
    "RELEASE_PHASES",
    "Registry",
    "STANDARD_PHASES",
    "Target",
]

__version__ = "0.1.0"
