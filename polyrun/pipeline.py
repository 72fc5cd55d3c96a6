from __future__ import annotations

import datetime as _dt
import logging
import threading
import time
from typing import Callable, Dict, List, Optional, Sequence

from .dispatch import Dispatcher
from .errors import ValidationError
from .models import CIConfig, PhaseResult, PipelineResult, PipelineState, TargetType

logger = logging.getLogger(__name__)

STANDARD_PHASES = ("clean", "restore", "check", "build", "test")
RELEASE_PHASES = ("clean", "restore", "check", "build:release", "test")


def phases_for(release: bool, ci: Optional[CIConfig] = None) -> List[str]:
    """Phase list for the standard or release pipeline, honoring config overrides."""
    if ci is not None:
        configured = ci.release_pipeline if release else ci.pipeline
        if configured:
            return list(configured)
    return list(RELEASE_PHASES if release else STANDARD_PHASES)


def _now() -> _dt.datetime:
    return _dt.datetime.now(_dt.timezone.utc)


class Pipeline:
    """Runs a fixed list of phases, each an all-targets dispatch.

    The first phase whose dispatch fails halts the pipeline; continue-on-error
    only affects targets inside a phase.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        phases: Sequence[str],
        *,
        name: str = "ci",
        target_type: Optional[TargetType] = None,
        cancel: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.dispatcher = dispatcher
        self.phases = tuple(phases)
        self.name = name
        self.target_type = target_type
        self.cancel = cancel or dispatcher.cancel
        self._clock = clock
        self.state = PipelineState.NOT_STARTED
        self._results: List[PhaseResult] = []

    def run(self) -> PipelineResult:
        return self.run_until(None)

    def run_until(self, last_phase: Optional[str]) -> PipelineResult:
        if last_phase is not None and last_phase not in self.phases:
            raise ValidationError("until", f"unknown phase {last_phase!r} (phases: {', '.join(self.phases)})")

        result = PipelineResult(name=self.name, start_time=_now())
        started = self._clock()
        self._results = result.phases
        for phase in self.phases:
            if self.cancel.is_set():
                logger.warning("%s cancelled before phase %s", self.name, phase)
                result.cancelled = True
                self.state = PipelineState.FAILED
                break
            self.state = PipelineState.RUNNING
            phase_result = self.run_phase(phase)
            result.phases.append(phase_result)
            if not phase_result.success:
                logger.error("%s: phase %s failed", self.name, phase)
                result.cancelled = bool(phase_result.outcome and phase_result.outcome.cancelled)
                self.state = PipelineState.FAILED
                break
            if phase == last_phase:
                break

        if self.state is not PipelineState.FAILED:
            self.state = PipelineState.SUCCEEDED
        result.state = self.state
        result.end_time = _now()
        result.duration = self._clock() - started
        return result

    def run_phase(self, phase: str) -> PhaseResult:
        logger.info("--- phase %s ---", phase)
        start_time = _now()
        started = self._clock()
        outcome = self.dispatcher.run_all(phase, target_type=self.target_type, require_defined=False)
        duration = self._clock() - started
        return PhaseResult(
            name=phase,
            start_time=start_time,
            end_time=_now(),
            duration=duration,
            success=outcome.success,
            error=outcome.first_error,
            outcome=outcome,
        )

    def status(self) -> Dict[str, str]:
        statuses: Dict[str, str] = {}
        for phase in self._results:
            statuses[phase.name] = "passed" if phase.success else "failed"
        return statuses
