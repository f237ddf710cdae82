# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import json
import logging
import threading
import time
from contextlib import ExitStack
from datetime import datetime
from datetime import timezone
from enum import Enum
from pathlib import Path
from typing import Collection
from typing import List
from typing import NamedTuple
from typing import Optional
from typing import Sequence

from os_access import Shell
from provisioning._core import ModuleBodyFailed
from provisioning._events import EventSink
from provisioning._events import NullEventSink
from provisioning._module import Module
from provisioning._module import ModuleRegistry
from provisioning._resolver import Plan
from provisioning._resolver import resolve_plan
from provisioning._state_store import ModuleState
from provisioning._state_store import StateStore

_logger = logging.getLogger(__name__)

_ALREADY_SATISFIED = "already satisfied"


class FailurePolicy(Enum):
    ABORT = 'abort'
    FORCE = 'force'


class Outcome(Enum):
    SUCCESS = 'success'
    FAILED = 'failed'
    SKIPPED = 'skipped'


class RunStatus(Enum):
    SUCCESS = 'success'
    FAILED = 'failed'
    PARTIAL = 'partial'
    CANCELLED = 'cancelled'
    DRY_RUN = 'dry_run'


class ExecutionRecord(NamedTuple):
    module: str
    started_at: datetime
    finished_at: datetime
    outcome: Outcome
    detail: str = ''

    def to_json(self):
        return {
            'module': self.module,
            'started_at': self.started_at.isoformat(),
            'finished_at': self.finished_at.isoformat(),
            'outcome': self.outcome.value,
            'detail': self.detail,
            }


class ModuleExecutionFailed(Exception):

    def __init__(self, records: Sequence[ExecutionRecord]):
        failures = '; '.join(f'{r.module}: {r.detail}' for r in records)
        super().__init__(f"Failed modules: {failures}")
        self.records = list(records)


class RunResult(NamedTuple):
    direction: str
    plan: Plan
    records: Sequence[ExecutionRecord]
    status: RunStatus
    started_at: datetime
    finished_at: datetime

    def failed(self) -> Sequence[ExecutionRecord]:
        return [r for r in self.records if r.outcome == Outcome.FAILED]

    def succeeded(self) -> Sequence[ExecutionRecord]:
        return [r for r in self.records if r.outcome == Outcome.SUCCESS]

    def skipped(self) -> Sequence[ExecutionRecord]:
        return [r for r in self.records if r.outcome == Outcome.SKIPPED]

    def summary(self) -> str:
        return (
            f"{self.status.value}: {len(self.succeeded())} succeeded, "
            f"{len(self.failed())} failed, {len(self.skipped())} skipped "
            f"of {len(self.plan.modules)} planned")

    def raise_for_status(self):
        failed = self.failed()
        if failed:
            raise ModuleExecutionFailed(failed)

    def to_json(self):
        return {
            'direction': self.direction,
            'status': self.status.value,
            'started_at': self.started_at.isoformat(),
            'finished_at': self.finished_at.isoformat(),
            'requested': list(self.plan.requested),
            'skipped_by_request': list(self.plan.skipped),
            'plan': list(self.plan.names()),
            'records': [r.to_json() for r in self.records],
            }

    def save(self, path: Path, **metadata):
        """Write the report; an existing file is never overwritten."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open('x', encoding='utf-8') as f:
            json.dump({**metadata, **self.to_json()}, f, indent=4)
        _logger.info("Report: %s", path)


class Orchestrator:
    """Run modules of a registry one by one in dependency order.

    A run takes the lock of its store and of the counterpart store
    for its whole duration: it writes one and deletes from the other.
    Cancellation is checked between modules only:
    a running body is never interrupted.
    """

    def __init__(
            self,
            registry: ModuleRegistry,
            store: StateStore,
            shell: Shell,
            counterpart_store: Optional[StateStore] = None,
            events: Optional[EventSink] = None,
            policy: FailurePolicy = FailurePolicy.ABORT,
            cancel: Optional[threading.Event] = None,
            ):
        self._registry = registry
        self._store = store
        self._counterpart_store = counterpart_store
        self._shell = shell
        self._events = events if events is not None else NullEventSink()
        self._policy = policy
        self._cancel = cancel if cancel is not None else threading.Event()

    def __repr__(self):
        return f'<Orchestrator {self._store.namespace()} on {self._shell!r}>'

    def plan(self, requested: Optional[Sequence[str]] = None, skip: Collection[str] = ()) -> Plan:
        return resolve_plan(self._registry, requested, skip)

    def run(
            self,
            requested: Optional[Sequence[str]] = None,
            skip: Collection[str] = (),
            rerun: bool = False,
            dry_run: bool = False,
            ) -> RunResult:
        plan = self.plan(requested, skip)
        if dry_run:
            return self._preview(plan, rerun)
        stores = [self._store]
        if self._counterpart_store is not None:
            stores.append(self._counterpart_store)
        with ExitStack() as stack:
            # Same order in every run, whichever direction it is.
            for store in sorted(stores, key=lambda s: s.namespace()):
                stack.enter_context(store.locked())
            return self._execute(plan, rerun)

    def _preview(self, plan: Plan, rerun: bool) -> RunResult:
        now = _now()
        records = []
        for position, module in enumerate(plan.modules, 1):
            if not rerun and self._store.is_satisfied(module):
                detail = f"dry run: {_ALREADY_SATISFIED}"
            else:
                detail = "dry run: would run"
            _logger.info(
                "%r: %d/%d %s (%s)",
                self, position, len(plan.modules), module.name(), detail)
            records.append(ExecutionRecord(module.name(), now, now, Outcome.SKIPPED, detail))
        return RunResult(self._store.namespace(), plan, records, RunStatus.DRY_RUN, now, now)

    def _execute(self, plan: Plan, rerun: bool) -> RunResult:
        direction = self._store.namespace()
        started_at = _now()
        self._events.emit(
            'run_started',
            direction=direction, plan=plan.names(), policy=self._policy.value, rerun=rerun)
        records: List[ExecutionRecord] = []
        blocked = set()
        cancelled = False
        try:
            for module in plan.modules:
                if self._cancel.is_set():
                    _logger.warning("%r: Cancelled before %s", self, module.name())
                    cancelled = True
                    break
                failed_dependencies = [d for d in module.depends_on() if d in blocked]
                if failed_dependencies:
                    detail = f"dependency failed: {', '.join(failed_dependencies)}"
                    records.append(self._skip(module, detail))
                    blocked.add(module.name())
                    continue
                if not rerun and self._store.is_satisfied(module):
                    records.append(self._skip(module, _ALREADY_SATISFIED))
                    continue
                record = self._run_module(module)
                records.append(record)
                if record.outcome == Outcome.FAILED:
                    blocked.add(module.name())
                    if self._policy == FailurePolicy.ABORT:
                        _logger.error("%r: Abort after %s failed", self, module.name())
                        break
        except Exception as e:
            self._events.emit('run_crashed', direction=direction, error=repr(e))
            raise
        status = self._status(records, cancelled)
        result = RunResult(direction, plan, records, status, started_at, _now())
        self._events.emit(
            'run_finished',
            direction=direction, status=status.value, summary=result.summary())
        _logger.info("%r: %s", self, result.summary())
        return result

    def _skip(self, module: Module, detail: str) -> ExecutionRecord:
        now = _now()
        _logger.info("%r: Skip %s: %s", self, module.name(), detail)
        self._events.emit('module_skipped', module=module.name(), reason=detail)
        return ExecutionRecord(module.name(), now, now, Outcome.SKIPPED, detail)

    def _run_module(self, module: Module) -> ExecutionRecord:
        started_at = _now()
        started_monotonic = time.monotonic()
        _logger.info("%r: Run %s v%s", self, module.name(), module.version())
        self._events.emit('module_started', module=module.name(), version=module.version())
        try:
            module.run(self._shell)
        except ModuleBodyFailed as e:
            _logger.error("%r: %s failed: %s", self, module.name(), e)
            return self._fail(module, started_at, str(e))
        except Exception as e:
            _logger.exception("%r: %s failed", self, module.name())
            return self._fail(module, started_at, f'{e.__class__.__name__}: {e}')
        finished_at = _now()
        self._store.put(ModuleState(module.name(), finished_at, module.version()))
        if self._counterpart_store is not None:
            for name in module.invalidates():
                self._counterpart_store.delete(name)
        duration_sec = time.monotonic() - started_monotonic
        _logger.info("%r: %s done in %.1f sec", self, module.name(), duration_sec)
        self._events.emit(
            'module_completed',
            module=module.name(), version=module.version(), duration_sec=round(duration_sec, 3))
        return ExecutionRecord(module.name(), started_at, finished_at, Outcome.SUCCESS)

    def _fail(self, module: Module, started_at: datetime, detail: str) -> ExecutionRecord:
        self._events.emit('module_failed', module=module.name(), error=detail)
        return ExecutionRecord(module.name(), started_at, _now(), Outcome.FAILED, detail)

    def _status(self, records: Sequence[ExecutionRecord], cancelled: bool) -> RunStatus:
        if cancelled:
            return RunStatus.CANCELLED
        if not any(r.outcome == Outcome.FAILED for r in records):
            return RunStatus.SUCCESS
        if self._policy == FailurePolicy.ABORT:
            return RunStatus.FAILED
        satisfied = [
            r for r in records
            if r.outcome == Outcome.SUCCESS or r.detail == _ALREADY_SATISFIED]
        return RunStatus.PARTIAL if satisfied else RunStatus.FAILED


def _now():
    return datetime.now(timezone.utc)
