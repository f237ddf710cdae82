# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import tempfile
import threading
import unittest
from datetime import datetime
from datetime import timezone
from pathlib import Path

from os_access.local_shell import local_shell
from provisioning import CyclicDependency
from provisioning import FailurePolicy
from provisioning import Module
from provisioning import ModuleBodyFailed
from provisioning import ModuleExecutionFailed
from provisioning import ModuleRegistry
from provisioning import ModuleState
from provisioning import Orchestrator
from provisioning import Outcome
from provisioning import RunStatus
from provisioning import StateStore
from provisioning import StoreLocked
from provisioning.tests._fake_body import CancellingBody
from provisioning.tests._fake_body import FakeBody
from provisioning.tests._fake_body import ListEventSink
from provisioning.tests._fake_body import make_registry


class TestOrchestrator(unittest.TestCase):

    def setUp(self):
        self._tmp_dir = tempfile.TemporaryDirectory()
        self._root = Path(self._tmp_dir.name)
        self._store = StateStore(self._root, 'deploy')
        self._calls = []
        self._events = ListEventSink()

    def tearDown(self):
        self._tmp_dir.cleanup()

    def _orchestrator(self, registry, **kwargs):
        return Orchestrator(registry, self._store, local_shell, events=self._events, **kwargs)

    def test_runs_in_dependency_order(self):
        registry = make_registry({'A': [], 'B': ['A'], 'C': ['A']}, self._calls)
        result = self._orchestrator(registry).run(['C', 'B'])
        self.assertEqual(self._calls, ['A', 'B', 'C'])
        self.assertEqual(result.status, RunStatus.SUCCESS)
        self.assertEqual([r.module for r in result.records], ['A', 'B', 'C'])
        self.assertEqual([s.module for s in self._store.list()], ['A', 'B', 'C'])
        result.raise_for_status()

    def test_second_run_skips_everything(self):
        registry = make_registry({'A': [], 'B': ['A'], 'C': ['B']}, self._calls)
        self._orchestrator(registry).run()
        self._calls.clear()
        result = self._orchestrator(registry).run()
        self.assertEqual(self._calls, [])
        self.assertEqual(result.status, RunStatus.SUCCESS)
        self.assertEqual({r.outcome for r in result.records}, {Outcome.SKIPPED})
        self.assertEqual({r.detail for r in result.records}, {"already satisfied"})

    def test_rerun_executes_satisfied(self):
        registry = make_registry({'A': [], 'B': ['A']}, self._calls)
        self._orchestrator(registry).run()
        self._calls.clear()
        self._orchestrator(registry).run(rerun=True)
        self.assertEqual(self._calls, ['A', 'B'])

    def test_version_bump_runs_again(self):
        self._orchestrator(make_registry({'A': [], 'B': ['A']}, self._calls)).run()
        self._calls.clear()
        bumped = make_registry({'A': [], 'B': ['A']}, self._calls, versions={'B': '2'})
        self._orchestrator(bumped).run()
        self.assertEqual(self._calls, ['B'])
        self.assertEqual(self._store.get('B').version, '2')

    def test_failed_dependency_aborts(self):
        registry = make_registry(
            {'A': [], 'B': ['A']}, self._calls,
            failing={'A': ModuleBodyFailed("apt-get is locked")})
        result = self._orchestrator(registry).run()
        self.assertEqual(result.status, RunStatus.FAILED)
        self.assertEqual(self._calls, ['A'])
        self.assertEqual([r.module for r in result.records], ['A'])
        self.assertEqual(result.records[0].outcome, Outcome.FAILED)
        self.assertEqual(result.records[0].detail, "apt-get is locked")
        self.assertEqual(self._store.list(), [])
        with self.assertRaises(ModuleExecutionFailed):
            result.raise_for_status()

    def test_abort_stops_unrelated_modules_too(self):
        registry = make_registry(
            {'A': [], 'B': [], 'C': []}, self._calls,
            failing={'B': RuntimeError("boom")})
        result = self._orchestrator(registry).run()
        self.assertEqual(self._calls, ['A', 'B'])
        self.assertEqual([r.module for r in result.records], ['A', 'B'])
        self.assertEqual(result.records[1].detail, "RuntimeError: boom")
        self.assertEqual(result.status, RunStatus.FAILED)
        self.assertIsNotNone(self._store.get('A'))

    def test_force_continues_past_failure(self):
        registry = make_registry(
            {'A': [], 'B': ['A'], 'C': [], 'D': ['B']}, self._calls,
            failing={'A': ModuleBodyFailed("no network")})
        result = self._orchestrator(registry, policy=FailurePolicy.FORCE).run()
        self.assertEqual(self._calls, ['A', 'C'])
        self.assertEqual(result.status, RunStatus.PARTIAL)
        outcomes = {r.module: (r.outcome, r.detail) for r in result.records}
        self.assertEqual(outcomes['A'], (Outcome.FAILED, "no network"))
        self.assertEqual(outcomes['B'], (Outcome.SKIPPED, "dependency failed: A"))
        self.assertEqual(outcomes['C'], (Outcome.SUCCESS, ''))
        self.assertEqual(outcomes['D'], (Outcome.SKIPPED, "dependency failed: B"))

    def test_force_with_failed_root_only(self):
        registry = make_registry(
            {'A': [], 'B': ['A']}, self._calls,
            failing={'A': ModuleBodyFailed("disk full")})
        result = self._orchestrator(registry, policy=FailurePolicy.FORCE).run()
        self.assertEqual(result.status, RunStatus.FAILED)
        self.assertEqual(self._store.list(), [])

    def test_force_counts_satisfied_as_progress(self):
        registry = make_registry({'A': [], 'B': []}, self._calls)
        self._orchestrator(registry).run(['A'])
        failing = make_registry({'A': [], 'B': []}, self._calls, failing={'B': OSError()})
        result = self._orchestrator(failing, policy=FailurePolicy.FORCE).run()
        self.assertEqual(result.status, RunStatus.PARTIAL)

    def test_planning_error_runs_nothing(self):
        registry = make_registry({'A': [], 'B': ['C'], 'C': ['B']}, self._calls)
        with self.assertRaises(CyclicDependency):
            self._orchestrator(registry).run()
        self.assertEqual(self._calls, [])
        self.assertEqual(self._events.events, [])

    def test_dry_run_has_no_side_effects(self):
        registry = make_registry({'A': [], 'B': ['A']}, self._calls)
        self._orchestrator(registry).run(['A'])
        self._calls.clear()
        self._events.events.clear()
        with self._store.locked():
            result = self._orchestrator(registry).run(dry_run=True)
        self.assertEqual(result.status, RunStatus.DRY_RUN)
        self.assertEqual(self._calls, [])
        self.assertEqual(self._events.events, [])
        self.assertEqual([s.module for s in self._store.list()], ['A'])
        details = [r.detail for r in result.records]
        self.assertEqual(details, ["dry run: already satisfied", "dry run: would run"])

    def test_cancel_between_modules(self):
        cancel = threading.Event()
        registry = ModuleRegistry([
            Module('A', FakeBody('A', self._calls)),
            Module('B', CancellingBody('B', self._calls, cancel)),
            Module('C', FakeBody('C', self._calls)),
            ])
        result = self._orchestrator(registry, cancel=cancel).run()
        self.assertEqual(self._calls, ['A', 'B'])
        self.assertEqual(result.status, RunStatus.CANCELLED)
        self.assertEqual([r.outcome for r in result.records], [Outcome.SUCCESS, Outcome.SUCCESS])
        self.assertIsNotNone(self._store.get('B'))

    def test_concurrent_run_refused(self):
        registry = make_registry({'A': []}, self._calls)
        with StateStore(self._root, 'deploy').locked():
            with self.assertRaises(StoreLocked):
                self._orchestrator(registry).run()
        self.assertEqual(self._calls, [])

    def test_run_refused_while_counterpart_locked(self):
        cleanup_store = StateStore(self._root, 'cleanup')
        self._store.put(ModuleState('app', datetime.now(timezone.utc), '1'))
        registry = make_registry({'stop': []}, self._calls, invalidates={'stop': ['app']})
        with self._store.locked():
            with self.assertRaises(StoreLocked):
                Orchestrator(registry, cleanup_store, local_shell, counterpart_store=self._store).run()
            self.assertIsNotNone(self._store.get('app'))
        self.assertEqual(self._calls, [])
        self.assertEqual(cleanup_store.list(), [])

    def test_success_invalidates_counterpart_records(self):
        deploy_store = self._store
        cleanup_store = StateStore(self._root, 'cleanup')
        deploy = make_registry({'nginx': []}, self._calls, invalidates={'nginx': ['remove-nginx']})
        cleanup = make_registry({'remove-nginx': []}, self._calls, invalidates={'remove-nginx': ['nginx']})
        Orchestrator(deploy, deploy_store, local_shell, counterpart_store=cleanup_store).run()
        Orchestrator(cleanup, cleanup_store, local_shell, counterpart_store=deploy_store).run()
        self.assertIsNone(deploy_store.get('nginx'))
        self.assertIsNotNone(cleanup_store.get('remove-nginx'))
        Orchestrator(deploy, deploy_store, local_shell, counterpart_store=cleanup_store).run()
        self.assertEqual(self._calls, ['nginx', 'remove-nginx', 'nginx'])
        self.assertIsNone(cleanup_store.get('remove-nginx'))

    def test_events_per_module(self):
        registry = make_registry(
            {'A': [], 'B': ['A']}, self._calls, failing={'B': ModuleBodyFailed("bad config")})
        self._orchestrator(registry).run()
        self.assertEqual(self._events.names(), [
            'run_started',
            'module_started', 'module_completed',
            'module_started', 'module_failed',
            'run_finished',
            ])
        [_, failed_fields] = self._events.events[4]
        self.assertEqual(failed_fields, {'module': 'B', 'error': "bad config"})
        [_, finished_fields] = self._events.events[-1]
        self.assertEqual(finished_fields['status'], 'failed')

    def test_report_never_overwritten(self):
        registry = make_registry({'A': []}, self._calls)
        result = self._orchestrator(registry).run()
        report = self._root / 'report.json'
        result.save(report, run_hostname='ci-home01')
        self.assertIn('"run_hostname": "ci-home01"', report.read_text())
        with self.assertRaises(FileExistsError):
            result.save(report)


if __name__ == '__main__':
    unittest.main()
