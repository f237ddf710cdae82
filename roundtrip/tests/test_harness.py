# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import json
import socket
import tempfile
import unittest
from contextlib import contextmanager
from pathlib import Path

from os_access.local_shell import local_shell
from provisioning import Command
from provisioning import CyclicDependency
from provisioning import FailurePolicy
from provisioning import Module
from provisioning import ModuleBodyFailed
from provisioning import ModuleRegistry
from provisioning import RunStatus
from roundtrip import HarnessState
from roundtrip import ReportStatus
from roundtrip import RoundTripHarness
from roundtrip import SuitesNotInverse
from verification import AssertionSuite
from verification import Directory
from verification import ReachablePort
from verification import Target
from verification import round_trip_suites


class _Listener:

    def __init__(self):
        with socket.socket() as probe:
            probe.bind(('127.0.0.1', 0))
            self.port = probe.getsockname()[1]
        self._socket = None

    def start(self):
        if self._socket is None:
            self._socket = socket.socket()
            self._socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            self._socket.bind(('127.0.0.1', self.port))
            self._socket.listen()

    def stop(self):
        if self._socket is not None:
            self._socket.close()
            self._socket = None


class _StartListener(Command):

    def __init__(self, listener: _Listener):
        self._listener = listener

    def run(self, shell):
        self._listener.start()


class _StopListener(Command):

    def __init__(self, listener: _Listener):
        self._listener = listener

    def run(self, shell):
        self._listener.stop()


class _DoNothing(Command):

    def run(self, shell):
        pass


class _Fail(Command):

    def __init__(self, error: BaseException):
        self._error = error

    def run(self, shell):
        raise self._error


class _RecordingEnvironment:

    def __init__(self):
        self.acquired = 0
        self.released = 0

    @contextmanager
    def __call__(self):
        self.acquired += 1
        try:
            yield Target(local_shell, '127.0.0.1')
        finally:
            self.released += 1


class TestRoundTripHarness(unittest.TestCase):

    def setUp(self):
        self._tmp_dir = tempfile.TemporaryDirectory()
        self._work_dir = Path(self._tmp_dir.name)
        self._listener = _Listener()
        self._environment = _RecordingEnvironment()
        self._deploy_suite, self._cleanup_suite = round_trip_suites([ReachablePort(self._listener.port)])

    def tearDown(self):
        self._listener.stop()
        self._tmp_dir.cleanup()

    def _harness(self, deploy, cleanup, **kwargs):
        return RoundTripHarness(
            deploy, cleanup, self._deploy_suite, self._cleanup_suite,
            self._environment, self._work_dir, **kwargs)

    def test_clean_round_trip(self):
        deploy = ModuleRegistry([Module('service', _StartListener(self._listener))])
        cleanup = ModuleRegistry([Module('stop-service', _StopListener(self._listener))])
        harness = self._harness(deploy, cleanup)
        report = harness.run()
        self.assertEqual(report.status(), ReportStatus.PASSED, report.summary())
        self.assertEqual(harness.state(), HarnessState.CLEAN)
        self.assertEqual(report.final_state, HarnessState.CLEAN)
        self.assertEqual((report.total(), report.passed()), (2, 2))
        self.assertEqual(self._environment.released, 1)

    def test_listener_left_running_is_the_only_failure(self):
        deploy = ModuleRegistry([Module('service', _StartListener(self._listener))])
        cleanup = ModuleRegistry([Module('forget-to-stop', _DoNothing())])
        report = self._harness(deploy, cleanup).run()
        self.assertEqual(report.status(), ReportStatus.FAILED)
        self.assertEqual(report.final_state, HarnessState.CLEAN_WITH_RESIDUE)
        self.assertEqual(report.cleanup.run.status, RunStatus.SUCCESS)
        [failed] = report.failed_assertions()
        self.assertEqual(failed.phase, 'cleanup')
        self.assertEqual(failed.artifact, f'port:{self._listener.port}')
        self.assertIn(str(self._listener.port), report.summary())

    def test_deploy_failure_still_cleans_up(self):
        deploy = ModuleRegistry([
            Module('service', _StartListener(self._listener)),
            Module('broken', _Fail(ModuleBodyFailed("apt-get failed")), depends_on=['service']),
            ])
        cleanup = ModuleRegistry([Module('stop-service', _StopListener(self._listener))])
        harness = self._harness(deploy, cleanup)
        report = harness.run()
        self.assertEqual(report.deploy.run.status, RunStatus.PARTIAL)
        self.assertIsNone(report.deploy.suite)
        self.assertEqual(report.cleanup.run.status, RunStatus.SUCCESS)
        self.assertEqual(report.failed_assertions(), [])
        self.assertEqual(report.final_state, HarnessState.CLEAN)
        self.assertEqual(report.status(), ReportStatus.FAILED)
        self.assertIn("module broken failed: apt-get failed", report.summary())

    def test_abort_policy(self):
        deploy = ModuleRegistry([
            Module('broken', _Fail(ModuleBodyFailed("no disk"))),
            Module('service', _StartListener(self._listener)),
            ])
        cleanup = ModuleRegistry([Module('stop-service', _StopListener(self._listener))])
        report = self._harness(deploy, cleanup, policy=FailurePolicy.ABORT).run()
        self.assertEqual(report.deploy.run.status, RunStatus.FAILED)
        self.assertEqual([r.module for r in report.deploy.run.records], ['broken'])
        self.assertEqual(report.status(), ReportStatus.FAILED)

    def test_planning_error_acquires_nothing(self):
        deploy = ModuleRegistry([Module('a', _DoNothing(), depends_on=['a'])])
        cleanup = ModuleRegistry([Module('b', _DoNothing())])
        with self.assertRaises(CyclicDependency):
            self._harness(deploy, cleanup).run()
        self.assertEqual(self._environment.acquired, 0)

    def test_suites_not_inverse(self):
        deploy = ModuleRegistry([Module('a', _DoNothing())])
        cleanup = ModuleRegistry([Module('b', _DoNothing())])
        harness = RoundTripHarness(
            deploy, cleanup,
            AssertionSuite('post-deploy', Directory('/srv/data').present()),
            AssertionSuite('post-cleanup', []),
            self._environment, self._work_dir)
        with self.assertRaises(SuitesNotInverse) as context:
            harness.run()
        self.assertEqual(len(context.exception.violations), 1)
        self.assertEqual(self._environment.acquired, 0)

    def test_environment_released_on_interrupt(self):
        deploy = ModuleRegistry([Module('a', _Fail(KeyboardInterrupt()))])
        cleanup = ModuleRegistry([Module('b', _DoNothing())])
        with self.assertRaises(KeyboardInterrupt):
            self._harness(deploy, cleanup).run()
        self.assertEqual(self._environment.acquired, 1)
        self.assertEqual(self._environment.released, 1)

    def test_report_saved_once(self):
        deploy = ModuleRegistry([Module('service', _StartListener(self._listener))])
        cleanup = ModuleRegistry([Module('stop-service', _StopListener(self._listener))])
        report = self._harness(deploy, cleanup).run()
        report_dir = self._work_dir / 'reports'
        path = report.save(report_dir, run_hostname='ci-home01')
        saved = json.loads(path.read_text())
        self.assertEqual(saved['status'], 'passed')
        self.assertEqual(saved['total'], 2)
        self.assertEqual(saved['run_hostname'], 'ci-home01')
        self.assertTrue(path.name.startswith('roundtrip-'))
        with self.assertRaises(FileExistsError):
            report.save(report_dir)

    def test_fresh_state_every_run(self):
        deploy = ModuleRegistry([Module('service', _StartListener(self._listener))])
        cleanup = ModuleRegistry([Module('stop-service', _StopListener(self._listener))])
        first = self._harness(deploy, cleanup).run()
        second = self._harness(deploy, cleanup).run()
        self.assertEqual(first.status(), ReportStatus.PASSED)
        self.assertEqual(second.status(), ReportStatus.PASSED)
        self.assertEqual(len(second.deploy.run.succeeded()), 1)

    def test_state_removed_journals_kept(self):
        deploy = ModuleRegistry([Module('service', _StartListener(self._listener))])
        cleanup = ModuleRegistry([Module('stop-service', _StopListener(self._listener))])
        self._harness(deploy, cleanup).run()
        self.assertEqual(list(self._work_dir.glob('state-*')), [])
        journals = sorted(p.name for p in self._work_dir.glob('roundtrip-*.jsonl'))
        self.assertEqual(len(journals), 2)
        self.assertTrue(journals[0].endswith('-cleanup.jsonl'))
        self.assertTrue(journals[1].endswith('-deploy.jsonl'))


if __name__ == '__main__':
    unittest.main()
