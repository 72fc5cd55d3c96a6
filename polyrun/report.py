from __future__ import annotations

from typing import Iterable, TextIO

from .models import DispatchOutcome, PipelineResult
from .registry import Target


def format_duration(seconds: float) -> str:
    if seconds < 1:
        return f"{int(seconds * 1000)}ms"
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, rest = divmod(int(seconds), 60)
    return f"{minutes}m{rest}s"


def _header(stream: TextIO, title: str) -> None:
    stream.write(f"\n{title}\n{'=' * len(title)}\n")


def _status(success: bool) -> str:
    return "ok" if success else "FAILED"


def render_dispatch_summary(outcome: DispatchOutcome, stream: TextIO) -> None:
    summary = outcome.summary
    if summary is None:
        return
    _header(stream, f"{outcome.command} summary")
    for result in outcome.results:
        status = "skipped" if result.skipped else _status(result.success)
        stream.write(f"  {result.name:<16} {status:<8} {format_duration(result.duration)}\n")
    stream.write(f"\n  Passed:   {summary.passed}\n")
    if summary.failed:
        stream.write(f"  Failed:   {summary.failed} ({', '.join(summary.failed_targets)})\n")
    stream.write(f"  Duration: {format_duration(summary.duration)}\n")
    if outcome.cancelled:
        stream.write("  Cancelled before all targets ran.\n")


def render_ci_summary(result: PipelineResult, stream: TextIO) -> None:
    _header(stream, f"{result.name} summary")
    stream.write("Phases:\n")
    for phase in result.phases:
        line = f"  {phase.name:<16} {_status(phase.success):<8} {format_duration(phase.duration)}"
        if phase.error is not None:
            line += f"  {phase.error}"
        stream.write(line + "\n")

    passed = [p.name for p in result.phases if p.success]
    failed = [p.name for p in result.phases if not p.success]
    stream.write("\n")
    if passed:
        stream.write(f"  Passed:   {', '.join(passed)}\n")
    if failed:
        stream.write(f"  Failed:   {', '.join(failed)}\n")
    stream.write(f"  Duration: {format_duration(result.duration)}\n\n")

    if result.success:
        stream.write(f"{result.name} pipeline completed successfully.\n")
    elif result.cancelled:
        stream.write(f"{result.name} pipeline cancelled.\n")
    else:
        stream.write(f"{result.name} pipeline failed.\n")


def render_targets(targets: Iterable[Target], stream: TextIO) -> None:
    for target in targets:
        stream.write(f"{target.name} ({target.type.value}): {target.title}\n")
        stream.write(f"  commands:   {', '.join(target.command_names())}\n")
        if target.depends_on:
            stream.write(f"  depends_on: {', '.join(target.depends_on)}\n")
