from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import threading
from typing import List, Optional, Sequence, Tuple

from .config import Project
from .dispatch import DispatchOptions, Dispatcher
from .errors import (
    EXIT_RUNTIME_ERROR,
    EXIT_SUCCESS,
    OrchestratorError,
    UnknownCommandError,
    exit_code_for,
)
from .executor import ShellExecutor
from .models import TargetType, Verbosity
from .pipeline import Pipeline, phases_for
from .registry import Registry
from .report import render_ci_summary, render_dispatch_summary, render_targets
from .utils import dump_json

logger = logging.getLogger(__name__)


def _verbosity(args: argparse.Namespace) -> Verbosity:
    if args.quiet:
        return Verbosity.QUIET
    if args.verbose:
        return Verbosity.VERBOSE
    return Verbosity.DEFAULT


def _target_type(args: argparse.Namespace) -> Optional[TargetType]:
    return TargetType(args.target_type) if args.target_type else None


def _load(args: argparse.Namespace) -> Tuple[Project, Registry]:
    project = Project.load(args.root)
    return project, Registry.from_config(project.config)


def _build_dispatcher(
    args: argparse.Namespace,
    project: Project,
    registry: Registry,
    extra_args: Sequence[str] = (),
) -> Dispatcher:
    executor = ShellExecutor(project.root, docker=project.config.docker)
    if args.docker:
        executor.ensure_docker()
    options = DispatchOptions(
        continue_on_error=args.continue_on_error,
        docker=args.docker,
        args=list(extra_args),
    )
    return Dispatcher(
        registry,
        executor,
        options=options,
        verbosity=_verbosity(args),
        cancel=args.cancel,
    )


def extract_target_arg(rest: Sequence[str], registry: Registry) -> Tuple[Optional[str], List[str]]:
    """Split ``[TARGET] [--] ARGS...``; the first word is a target only if one has that name."""
    remaining = list(rest)
    if remaining and remaining[0] == "--":
        return None, remaining[1:]
    target_name: Optional[str] = None
    if remaining and remaining[0] in registry:
        target_name = remaining.pop(0)
    if remaining and remaining[0] == "--":
        remaining.pop(0)
    return target_name, remaining


def cmd_run(args: argparse.Namespace) -> int:
    project, registry = _load(args)
    target_name, extra_args = extract_target_arg(args.rest, registry)
    dispatcher = _build_dispatcher(args, project, registry, extra_args)
    try:
        if target_name is not None:
            outcome = dispatcher.run_target(args.command, target_name)
        else:
            outcome = dispatcher.run_all(args.command, target_type=_target_type(args))
    except UnknownCommandError:
        if target_name is None and args.command in registry:
            logger.info("did you mean 'polyrun run build %s'?", args.command)
        raise
    render_dispatch_summary(outcome, sys.stdout)
    return EXIT_SUCCESS if outcome.success else EXIT_RUNTIME_ERROR


def cmd_targets(args: argparse.Namespace) -> int:
    _, registry = _load(args)
    target_type = _target_type(args)
    targets = registry.by_type(target_type) if target_type else registry.all()
    if args.json:
        print(json.dumps([t.to_dict() for t in targets], indent=2))
        return EXIT_SUCCESS
    if not targets:
        logger.warning("no targets of type %r found", args.target_type)
        return EXIT_SUCCESS
    render_targets(targets, sys.stdout)
    return EXIT_SUCCESS


def cmd_validate(args: argparse.Namespace) -> int:
    project, registry = _load(args)
    print("Configuration is valid.")
    print(f"  Project:  {project.config.name}")
    print(
        f"  Targets:  {len(registry)} "
        f"({len(registry.languages())} language, {len(registry.auxiliary())} auxiliary)"
    )
    if project.warnings:
        print(f"  Warnings: {len(project.warnings)}")
    return EXIT_SUCCESS


def cmd_ci(args: argparse.Namespace) -> int:
    project, registry = _load(args)
    dispatcher = _build_dispatcher(args, project, registry)
    pipeline = Pipeline(
        dispatcher,
        phases_for(args.release, project.config.ci),
        name=args.subcommand,
        target_type=_target_type(args),
    )
    result = pipeline.run_until(args.until)
    render_ci_summary(result, sys.stdout)
    if args.report:
        dump_json(args.report, result.to_dict())
    return EXIT_SUCCESS if result.success else EXIT_RUNTIME_ERROR


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="polyrun", description="Multi-language monorepo task orchestrator")
    parser.add_argument(
        "--root",
        default=None,
        help="Directory to search upwards from for .polyrun/ (default: $POLYRUN_ROOT or the cwd).",
    )
    parser.add_argument(
        "--type",
        dest="target_type",
        choices=[t.value for t in TargetType],
        help="Only run targets of this type.",
    )
    parser.add_argument(
        "--continue",
        dest="continue_on_error",
        action="store_true",
        help="Keep running remaining targets after one fails.",
    )
    parser.add_argument("--docker", action="store_true", help="Run commands inside docker compose services.")
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Only report warnings and errors.")
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    subparsers = parser.add_subparsers(dest="subcommand", required=True)

    run_parser = subparsers.add_parser("run", help="Run a command on one target or on all targets")
    run_parser.add_argument("command", help="Command name, e.g. build, test, build:release.")
    run_parser.add_argument(
        "rest",
        nargs=argparse.REMAINDER,
        help="Optional target name, then arguments forwarded to the command (use -- to separate).",
    )
    run_parser.set_defaults(func=cmd_run)

    targets_parser = subparsers.add_parser("targets", help="List configured targets")
    targets_parser.add_argument("--json", action="store_true", help="Print machine-readable JSON.")
    targets_parser.set_defaults(func=cmd_targets)

    validate_parser = subparsers.add_parser("validate", help="Validate the project configuration")
    validate_parser.set_defaults(func=cmd_validate)

    for command, release in (("ci", False), ("ci:release", True)):
        ci_parser = subparsers.add_parser(command, help=f"Run the {command} pipeline across all targets")
        ci_parser.add_argument("--until", default=None, help="Stop after this phase.")
        ci_parser.add_argument("--report", default=None, help="Write the pipeline result as JSON to this path.")
        ci_parser.set_defaults(func=cmd_ci, release=release)

    return parser


def _configure_logging(verbosity: Verbosity) -> None:
    level = {
        Verbosity.QUIET: logging.WARNING,
        Verbosity.DEFAULT: logging.INFO,
        Verbosity.VERBOSE: logging.DEBUG,
    }[verbosity]
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")
    logging.getLogger("polyrun").setLevel(level)


def _interrupt_handler(cancel: threading.Event):
    def _handle(signum, frame):  # noqa: ARG001
        if cancel.is_set():
            raise KeyboardInterrupt
        logger.warning("interrupted: finishing the current target, press Ctrl-C again to abort")
        cancel.set()

    return _handle


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(_verbosity(args))

    args.cancel = threading.Event()
    in_main_thread = threading.current_thread() is threading.main_thread()
    if in_main_thread:
        previous = signal.signal(signal.SIGINT, _interrupt_handler(args.cancel))
    try:
        return args.func(args)
    except OrchestratorError as exc:
        logger.error("%s", exc)
        return exit_code_for(exc)
    except Exception as exc:
        logger.error("unexpected error: %s", exc)
        logger.debug("traceback", exc_info=True)
        return exit_code_for(exc)
    finally:
        if in_main_thread:
            signal.signal(signal.SIGINT, previous or signal.SIG_DFL)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
