from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from .errors import (
    CommandSkipped,
    OrchestratorError,
    TargetExecutionError,
    TargetNotFoundError,
    UnknownCommandError,
)
from .executor import ExecOptions, Executor
from .models import DispatchOutcome, DispatchResult, TargetType, Verbosity
from .registry import Registry, Target

logger = logging.getLogger(__name__)

TEST_COMMAND = "test"


@dataclass
class DispatchOptions:
    continue_on_error: bool = False
    docker: bool = False
    args: Sequence[str] = ()


class Dispatcher:
    def __init__(
        self,
        registry: Registry,
        executor: Executor,
        *,
        options: Optional[DispatchOptions] = None,
        verbosity: Verbosity = Verbosity.DEFAULT,
        cancel: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.registry = registry
        self.executor = executor
        self.options = options or DispatchOptions()
        self.verbosity = verbosity
        self.cancel = cancel or threading.Event()
        self._clock = clock

    def run_target(self, command: str, target_name: str) -> DispatchOutcome:
        target = self.registry.get(target_name)
        if target is None:
            raise TargetNotFoundError(target_name)
        if not target.has_command(command):
            raise UnknownCommandError(command, target_name)
        return self._run_sequence(command, [target])

    def run_all(
        self,
        command: str,
        *,
        target_type: Optional[TargetType] = None,
        require_defined: bool = True,
    ) -> DispatchOutcome:
        targets, warning = self.select_targets(
            command, target_type=target_type, require_defined=require_defined
        )
        if not targets:
            if warning:
                logger.info(warning)
            return DispatchOutcome(command=command, warning=warning)
        return self._run_sequence(command, targets)

    def select_targets(
        self,
        command: str,
        *,
        target_type: Optional[TargetType] = None,
        require_defined: bool = True,
    ) -> Tuple[List[Target], Optional[str]]:
        """Resolve the ordered targets ``run_all`` would execute.

        Returns the targets and, when the list is empty for a non-error
        reason, an informational message.
        """
        effective_type = target_type
        if effective_type is None and command == TEST_COMMAND:
            effective_type = TargetType.LANGUAGE

        ordered = self.registry.topological_order()
        if effective_type is not None:
            ordered = [t for t in ordered if t.type is effective_type]
            if not ordered:
                return [], f"no targets of type {effective_type.value!r} found"
        elif not ordered:
            return [], "no targets configured"

        runnable = [t for t in ordered if t.has_command(command)]
        if not runnable:
            if require_defined:
                raise UnknownCommandError(command)
            return [], f"no targets define command {command!r}"
        return runnable, None

    def _run_sequence(self, command: str, targets: List[Target]) -> DispatchOutcome:
        outcome = DispatchOutcome(command=command)
        for target in targets:
            if self.cancel.is_set():
                logger.warning("cancelled before %s %s", command, target.name)
                outcome.cancelled = True
                break
            result = self._execute_one(target, command)
            outcome.results.append(result)
            if not result.success and not self.options.continue_on_error:
                remaining = len(targets) - len(outcome.results)
                if remaining:
                    logger.debug("stopping after [%s] failure, %d target(s) not attempted", target.name, remaining)
                break
        return outcome

    def _execute_one(self, target: Target, command: str) -> DispatchResult:
        exec_options = ExecOptions(
            docker=self.options.docker,
            args=self.options.args,
            verbosity=self.verbosity,
        )
        logger.info("==> [%s] %s", target.name, command)
        start = self._clock()
        try:
            self.executor.execute(target, command, exec_options)
        except CommandSkipped as exc:
            logger.warning("%s", exc)
            return DispatchResult(target.name, True, self._clock() - start, skipped=True)
        except TargetExecutionError as exc:
            logger.error("%s", exc)
            return DispatchResult(target.name, False, self._clock() - start, error=exc)
        except OrchestratorError:
            raise
        except Exception as exc:
            error = TargetExecutionError(target.name, command, str(exc) or type(exc).__name__)
            error.__cause__ = exc
            logger.error("%s", error)
            return DispatchResult(target.name, False, self._clock() - start, error=error)
        return DispatchResult(target.name, True, self._clock() - start)
