# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import argparse
import logging
import os
import threading
from datetime import datetime
from datetime import timezone
from pathlib import Path
from typing import Callable
from typing import Collection
from typing import Mapping
from typing import Optional
from typing import Sequence

from ci_stack._assertions import PreflightFailed
from ci_stack._cleanup_modules import KEEP_PACKAGES_SKIP
from provisioning import ChangeHistory
from provisioning import CompositeEventSink
from provisioning import FailurePolicy
from provisioning import JsonLinesJournal
from provisioning import ModuleRegistry
from provisioning import Orchestrator
from provisioning import PlanningError
from provisioning import RunResult
from provisioning import RunStatus
from provisioning import StateStore
from provisioning import StoreUnavailable
from provisioning import UnknownModule
from verification import AssertionSuite
from verification import Target

_logger = logging.getLogger(__name__)

DIRECTIONS = ('deploy', 'cleanup')

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_NOT_STARTED = 2
EXIT_CANCELLED = 3
EXIT_MODULES_FAILED = 4


class StackContext:
    """Everything a command touches outside its arguments."""

    def __init__(
            self,
            registries: Mapping[str, ModuleRegistry],
            preflight: Mapping[str, AssertionSuite],
            target: Target,
            state_root: Path,
            log_root: Path,
            report_root: Path,
            metadata: Mapping[str, object],
            confirm: Callable[[str], bool],
            cancel: Optional[threading.Event] = None,
            ):
        self.registries = registries
        self.preflight = preflight
        self.target = target
        self.state_root = state_root
        self.log_root = log_root
        self.report_root = report_root
        self.metadata = metadata
        self.confirm = confirm
        self.cancel = cancel or threading.Event()

    def store(self, direction: str) -> StateStore:
        return StateStore(self.state_root, direction)


def main(args: Sequence[str], context: StackContext) -> int:
    parsed_args = _parse_args(args)
    try:
        return parsed_args.func(parsed_args, context)
    except StoreUnavailable as e:
        _logger.error("State store is unavailable: %s", e)
        return EXIT_ERROR


def _run_direction(parsed_args, context: StackContext) -> int:
    direction = parsed_args.command
    skip = list(parsed_args.skip)
    if getattr(parsed_args, 'keep_packages', False):
        skip.extend(KEEP_PACKAGES_SKIP)
    [counterpart] = [d for d in DIRECTIONS if d != direction]
    stamp = f"{datetime.now(timezone.utc):%Y%m%d-%H%M%S}-{os.getpid()}"
    # Both are written on the first event; a dry run emits none.
    journal = JsonLinesJournal(context.log_root / 'runs' / f'{direction}-{stamp}.jsonl')
    history = ChangeHistory(
        context.log_root / 'change-history.log',
        host=str(context.metadata.get('run_hostname', '')),
        user=str(context.metadata.get('run_username', '')),
        )
    orchestrator = Orchestrator(
        context.registries[direction],
        context.store(direction),
        context.target.shell(),
        counterpart_store=context.store(counterpart),
        events=CompositeEventSink([journal, history]),
        policy=FailurePolicy.FORCE if parsed_args.force else FailurePolicy.ABORT,
        cancel=context.cancel,
        )
    try:
        plan = orchestrator.plan(parsed_args.modules, skip)
    except PlanningError as e:
        _logger.error("Cannot plan %s: %s", direction, e)
        return EXIT_NOT_STARTED
    if parsed_args.dry_run:
        result = orchestrator.run(parsed_args.modules, skip, rerun=parsed_args.rerun, dry_run=True)
        _print_result(result)
        return EXIT_OK
    if not parsed_args.skip_validation:
        try:
            _check_preflight(context.preflight[direction], context.target)
        except PreflightFailed as e:
            _logger.error("%s", e)
            return EXIT_NOT_STARTED
    if not (parsed_args.yes or parsed_args.force):
        question = (
            f"Run {direction} of {len(plan.modules)} modules "
            f"({', '.join(plan.names())}) on {context.target.address()}?")
        if not context.confirm(question):
            _logger.info("Declined: nothing is changed")
            return EXIT_CANCELLED
    result = orchestrator.run(parsed_args.modules, skip, rerun=parsed_args.rerun)
    report = context.report_root / f'{direction}-report-{stamp}.json'
    result.save(report, **context.metadata, journal=str(journal.path()))
    _print_result(result)
    return _exit_code(result)


def _check_preflight(suite: AssertionSuite, target: Target):
    result = suite.run(target)
    for r in result.results:
        _logger.info("Pre-flight %s: %s: %s", r.assertion.artifact, 'ok' if r.passed else 'FAILED', r.detail)
    if result.failures():
        raise PreflightFailed(result)


def _print_result(result: RunResult):
    for record in result.records:
        detail = f": {record.detail}" if record.detail else ''
        print(f"{record.outcome.value:>8} {record.module}{detail}")
    print(result.summary())


def _exit_code(result: RunResult) -> int:
    if result.status == RunStatus.SUCCESS:
        return EXIT_OK
    if result.status == RunStatus.CANCELLED:
        return EXIT_CANCELLED
    return EXIT_MODULES_FAILED


def _status(parsed_args, context: StackContext) -> int:
    for direction in DIRECTIONS:
        store = context.store(direction)
        records = {state.module: state for state in store.list()}
        print(f"{direction}:")
        for module in context.registries[direction]:
            name = module.name()
            state = records.pop(name, None)
            if state is None:
                line = f"  {name}: not done"
            else:
                current = module.version()
                stale = '' if state.version == current else f" (stale, current v{current})"
                line = f"  {name}: v{state.version} at {state.completed_at}{stale}"
            if module.description():
                line += f" - {module.description()}"
            print(line)
        for name in sorted(records):
            print(f"  {name}: unknown module")
    return EXIT_OK


def _reset(parsed_args, context: StackContext) -> int:
    directions = DIRECTIONS if parsed_args.direction == 'all' else [parsed_args.direction]
    for name in parsed_args.modules or ():
        if not any(name in context.registries[d] for d in directions):
            _logger.error("Cannot reset %s: %s", parsed_args.direction, UnknownModule(name))
            return EXIT_NOT_STARTED
    for direction in directions:
        registry = context.registries[direction]
        store = context.store(direction)
        with store.locked():
            if parsed_args.modules is None:
                removed = store.reset()
            else:
                names = [name for name in parsed_args.modules if name in registry]
                removed = [name for name in names if store.delete(name)]
        _logger.info("Reset %s: %s", direction, ', '.join(removed) or 'nothing recorded')
    return EXIT_OK


def _names(value: str) -> Collection[str]:
    """Parse comma-separated module names.

    >>> _names('nginx, jenkins,')
    ['nginx', 'jenkins']
    """
    return [name.strip() for name in value.split(',') if name.strip()]


def _parse_args(args: Sequence[str]):
    parser = argparse.ArgumentParser(
        prog='python -m ci_stack',
        description="Deploy or clean up the CI/CD stack on this host.")
    commands = parser.add_subparsers(dest='command', required=True)
    for direction in DIRECTIONS:
        command = commands.add_parser(direction, help=f"Run {direction} modules.")
        command.add_argument(
            '--modules', type=_names,
            help="Comma-separated modules to run, with their dependencies. Default: all.")
        command.add_argument(
            '--skip', type=_names, action='extend', default=[],
            help="Comma-separated modules to leave out. May be repeated.")
        command.add_argument(
            '--force', action='store_true',
            help="Continue after a module fails; implies --yes.")
        command.add_argument(
            '--rerun', action='store_true',
            help="Run modules even if recorded as done.")
        command.add_argument(
            '--dry-run', action='store_true',
            help="Show what would run; change nothing.")
        command.add_argument(
            '--yes', action='store_true',
            help="Do not ask for confirmation.")
        command.add_argument(
            '--skip-validation', action='store_true',
            help="Do not check that the host is ready before the run.")
        if direction == 'cleanup':
            command.add_argument(
                '--keep-packages', action='store_true',
                help="Keep installed packages and their repositories; remove only configs and data.")
        command.set_defaults(func=_run_direction)
    status = commands.add_parser('status', help="Show recorded module state.")
    status.set_defaults(func=_status)
    reset = commands.add_parser('reset', help="Forget recorded module state; the host is not touched.")
    reset.add_argument('--direction', choices=[*DIRECTIONS, 'all'], default='all')
    reset.add_argument('--modules', type=_names, help="Comma-separated modules. Default: all.")
    reset.set_defaults(func=_reset)
    return parser.parse_args(args)
