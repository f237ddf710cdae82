# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import json
import logging
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List
from typing import NamedTuple
from typing import Optional

from provisioning import RunResult
from provisioning import RunStatus
from verification import SuiteResult

_logger = logging.getLogger(__name__)


class HarnessState(Enum):
    CLEAN = 'clean'
    DEPLOYING = 'deploying'
    DEPLOYED = 'deployed'
    DEPLOYED_WITH_FAILURES = 'deployed_with_failures'
    CLEANING = 'cleaning'
    CLEAN_WITH_RESIDUE = 'clean_with_residue'


class ReportStatus(Enum):
    PASSED = 'passed'
    FAILED = 'failed'


class PhaseReport(NamedTuple):
    name: str
    run: RunResult
    suite: Optional[SuiteResult]

    def to_json(self):
        return {
            'run_status': self.run.status.value,
            'run_summary': self.run.summary(),
            'records': [r.to_json() for r in self.run.records],
            'suite': self.suite.to_json() if self.suite is not None else None,
            'suite_evaluated': self.suite is not None,
            }


class FailedAssertion(NamedTuple):
    phase: str
    artifact: str
    predicate: str
    explanation: str


class RoundTripReport(NamedTuple):
    started_at: datetime
    finished_at: datetime
    final_state: HarnessState
    deploy: PhaseReport
    cleanup: PhaseReport

    def status(self) -> ReportStatus:
        if self.deploy.run.status != RunStatus.SUCCESS:
            return ReportStatus.FAILED
        if self.cleanup.run.status != RunStatus.SUCCESS:
            return ReportStatus.FAILED
        if self.failed_assertions():
            return ReportStatus.FAILED
        return ReportStatus.PASSED

    def _suites(self) -> List[SuiteResult]:
        return [p.suite for p in (self.deploy, self.cleanup) if p.suite is not None]

    def total(self) -> int:
        return sum(suite.total() for suite in self._suites())

    def passed(self) -> int:
        return sum(suite.passed() for suite in self._suites())

    def failed_assertions(self) -> List[FailedAssertion]:
        failed = []
        for phase in self.deploy, self.cleanup:
            if phase.suite is None:
                continue
            for result in phase.suite.failures():
                failed.append(FailedAssertion(
                    phase.name,
                    result.assertion.artifact,
                    repr(result.assertion.predicate),
                    result.detail,
                    ))
        return failed

    def to_json(self):
        return {
            'status': self.status().value,
            'started_at': self.started_at.isoformat(),
            'finished_at': self.finished_at.isoformat(),
            'final_state': self.final_state.value,
            'total': self.total(),
            'passed': self.passed(),
            'failed': len(self.failed_assertions()),
            'failed_assertions': [f._asdict() for f in self.failed_assertions()],
            'deploy': self.deploy.to_json(),
            'cleanup': self.cleanup.to_json(),
            }

    def save(self, report_dir: Path, **metadata) -> Path:
        """Exclusive create: an existing report is never overwritten."""
        report_dir.mkdir(parents=True, exist_ok=True)
        path = report_dir / f'roundtrip-{self.finished_at:%Y%m%d-%H%M%S-%f}.json'
        with path.open('x', encoding='utf-8') as f:
            json.dump({**metadata, **self.to_json()}, f, indent=4)
        _logger.info("Round-trip report: %s", path)
        return path

    def summary(self) -> str:
        lines = [
            f"Round trip {self.status().value.upper()}, final state {self.final_state.value}",
            f"  deploy:  {self.deploy.run.summary()}",
            f"  cleanup: {self.cleanup.run.summary()}",
            ]
        if self.deploy.suite is None:
            lines.append("  post-deploy suite not evaluated: deploy did not succeed")
        lines.append(
            f"  assertions: {self.total()} total, {self.passed()} passed, "
            f"{len(self.failed_assertions())} failed")
        for failed in self.failed_assertions():
            lines.append(f"    [{failed.phase}] {failed.artifact}: {failed.explanation}")
        for phase in self.deploy, self.cleanup:
            for record in phase.run.failed():
                lines.append(f"    [{phase.name}] module {record.module} failed: {record.detail}")
        return '\n'.join(lines)
