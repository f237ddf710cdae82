# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import tempfile
from contextlib import ExitStack
from datetime import datetime
from datetime import timezone
from pathlib import Path
from typing import Collection

from provisioning import FailurePolicy
from provisioning import JsonLinesJournal
from provisioning import ModuleRegistry
from provisioning import Orchestrator
from provisioning import RunStatus
from provisioning import StateStore
from provisioning import resolve_plan
from roundtrip._environment import EnvironmentFactory
from roundtrip._report import HarnessState
from roundtrip._report import PhaseReport
from roundtrip._report import RoundTripReport
from verification import AssertionSuite
from verification import inverse_violations

_logger = logging.getLogger(__name__)


class SuitesNotInverse(ValueError):

    def __init__(self, violations):
        super().__init__("Suites are not inverse: " + '; '.join(violations))
        self.violations = violations


class RoundTripHarness:
    """Deploy everything, check, clean up everything, check the inverse.

    Deploy failures do not stop the harness: cleanup always runs
    so the environment is left as it was found as far as possible.
    The environment itself is released on every exit path.
    """

    def __init__(
            self,
            deploy: ModuleRegistry,
            cleanup: ModuleRegistry,
            deploy_suite: AssertionSuite,
            cleanup_suite: AssertionSuite,
            environment: EnvironmentFactory,
            work_dir: Path,
            deploy_skip: Collection[str] = (),
            cleanup_skip: Collection[str] = (),
            policy: FailurePolicy = FailurePolicy.FORCE,
            ):
        self._deploy = deploy
        self._cleanup = cleanup
        self._deploy_suite = deploy_suite
        self._cleanup_suite = cleanup_suite
        self._environment = environment
        self._work_dir = work_dir
        self._deploy_skip = deploy_skip
        self._cleanup_skip = cleanup_skip
        self._policy = policy
        self._state = HarnessState.CLEAN

    def state(self) -> HarnessState:
        return self._state

    def run(self) -> RoundTripReport:
        # Nothing is acquired until both plans and suites are known to be sound.
        resolve_plan(self._deploy, None, self._deploy_skip)
        resolve_plan(self._cleanup, None, self._cleanup_skip)
        violations = inverse_violations(self._deploy_suite, self._cleanup_suite)
        if violations:
            raise SuitesNotInverse(violations)
        started_at = datetime.now(timezone.utc)
        self._work_dir.mkdir(parents=True, exist_ok=True)
        journal_prefix = f'roundtrip-{started_at:%Y%m%d-%H%M%S-%f}'
        with ExitStack() as stack:
            # Records matter only within this run; the journals are kept.
            state_root = Path(stack.enter_context(
                tempfile.TemporaryDirectory(prefix='state-', dir=self._work_dir)))
            deploy_store = StateStore(state_root, 'deploy')
            cleanup_store = StateStore(state_root, 'cleanup')
            target = stack.enter_context(self._environment())
            self._transition(HarnessState.DEPLOYING)
            deploy_run = Orchestrator(
                self._deploy, deploy_store, target.shell(),
                counterpart_store=cleanup_store,
                events=JsonLinesJournal(self._work_dir / f'{journal_prefix}-deploy.jsonl'),
                policy=self._policy,
                ).run(skip=self._deploy_skip)
            if deploy_run.status == RunStatus.SUCCESS:
                self._transition(HarnessState.DEPLOYED)
                deploy_suite = self._deploy_suite.run(target)
            else:
                _logger.error("Deploy: %s; post-deploy suite is not evaluated", deploy_run.summary())
                self._transition(HarnessState.DEPLOYED_WITH_FAILURES)
                deploy_suite = None
            self._transition(HarnessState.CLEANING)
            cleanup_run = Orchestrator(
                self._cleanup, cleanup_store, target.shell(),
                counterpart_store=deploy_store,
                events=JsonLinesJournal(self._work_dir / f'{journal_prefix}-cleanup.jsonl'),
                policy=self._policy,
                ).run(skip=self._cleanup_skip)
            cleanup_suite = self._cleanup_suite.run(target)
            if cleanup_run.status == RunStatus.SUCCESS and not cleanup_suite.failures():
                self._transition(HarnessState.CLEAN)
            else:
                self._transition(HarnessState.CLEAN_WITH_RESIDUE)
        report = RoundTripReport(
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            final_state=self._state,
            deploy=PhaseReport('deploy', deploy_run, deploy_suite),
            cleanup=PhaseReport('cleanup', cleanup_run, cleanup_suite),
            )
        _logger.info("Round trip: %s", report.status().value)
        return report

    def _transition(self, state: HarnessState):
        _logger.info("Harness: %s -> %s", self._state.value, state.value)
        self._state = state
