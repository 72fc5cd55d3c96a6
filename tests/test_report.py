from __future__ import annotations

import datetime as dt
import io

from polyrun.errors import TargetExecutionError
from polyrun.models import DispatchOutcome, DispatchResult, PhaseResult, PipelineResult, PipelineState
from polyrun.report import format_duration, render_ci_summary, render_dispatch_summary, render_targets

from conftest import make_target

START = dt.datetime(2024, 1, 1, tzinfo=dt.timezone.utc)


def test_format_duration() -> None:
    assert format_duration(0.25) == "250ms"
    assert format_duration(3.21) == "3.2s"
    assert format_duration(125) == "2m5s"


def test_dispatch_summary_lists_failures() -> None:
    error = TargetExecutionError("b", "build", "exited with code 1", returncode=1)
    outcome = DispatchOutcome(
        command="build",
        results=[DispatchResult("a", True, 0.5), DispatchResult("b", False, 1.5, error=error)],
    )
    stream = io.StringIO()
    render_dispatch_summary(outcome, stream)
    text = stream.getvalue()
    assert "build summary" in text
    assert "Passed:   1" in text
    assert "Failed:   1 (b)" in text
    assert "Duration: 2.0s" in text


def test_single_result_has_no_summary() -> None:
    outcome = DispatchOutcome(command="build", results=[DispatchResult("a", True, 0.5)])
    stream = io.StringIO()
    render_dispatch_summary(outcome, stream)
    assert stream.getvalue() == ""


def _phase(name: str, success: bool) -> PhaseResult:
    return PhaseResult(name=name, start_time=START, end_time=START, duration=0.1, success=success)


def test_ci_summary_success_and_failure() -> None:
    ok = PipelineResult(name="ci", start_time=START, phases=[_phase("clean", True)], state=PipelineState.SUCCEEDED)
    stream = io.StringIO()
    render_ci_summary(ok, stream)
    assert stream.getvalue().rstrip().endswith("ci pipeline completed successfully.")

    failed = PipelineResult(
        name="ci:release",
        start_time=START,
        phases=[_phase("clean", True), _phase("check", False)],
        state=PipelineState.FAILED,
    )
    stream = io.StringIO()
    render_ci_summary(failed, stream)
    text = stream.getvalue()
    assert "Failed:   check" in text
    assert text.rstrip().endswith("ci:release pipeline failed.")


def test_render_targets() -> None:
    stream = io.StringIO()
    render_targets([make_target("rs", depends_on=["py"])], stream)
    assert stream.getvalue() == (
        "rs (language): RS\n"
        "  commands:   build, test\n"
        "  depends_on: py\n"
    )
