# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
from enum import Enum
from typing import NamedTuple
from typing import Sequence

from verification._predicates import Predicate
from verification._target import Target

_logger = logging.getLogger(__name__)


class Presence(Enum):
    PRESENT = 'present'
    ABSENT = 'absent'


class Assertion(NamedTuple):
    predicate: Predicate
    expected: bool
    artifact: str
    presence: Presence

    def __str__(self):
        return f"{self.artifact} {self.presence.value}: {self.predicate!r} is {self.expected}"


class AssertionResult(NamedTuple):
    assertion: Assertion
    passed: bool
    detail: str

    def to_json(self):
        return {
            'artifact': self.assertion.artifact,
            'presence': self.assertion.presence.value,
            'predicate': repr(self.assertion.predicate),
            'expected': self.assertion.expected,
            'passed': self.passed,
            'detail': self.detail,
            }


class AssertionFailed(Exception):

    def __init__(self, suite: str, failures: Sequence[AssertionResult]):
        lines = [f"{r.assertion.artifact}: {r.detail}" for r in failures]
        super().__init__(f"Suite {suite}: {len(failures)} failed: " + '; '.join(lines))
        self.suite = suite
        self.failures = list(failures)


class SuiteResult(NamedTuple):
    suite: str
    results: Sequence[AssertionResult]

    def total(self) -> int:
        return len(self.results)

    def passed(self) -> int:
        return sum(1 for r in self.results if r.passed)

    def failures(self) -> Sequence[AssertionResult]:
        return [r for r in self.results if not r.passed]

    def raise_for_failures(self):
        failures = self.failures()
        if failures:
            raise AssertionFailed(self.suite, failures)

    def to_json(self):
        return {
            'suite': self.suite,
            'total': self.total(),
            'passed': self.passed(),
            'failed': len(self.failures()),
            'results': [r.to_json() for r in self.results],
            }


class AssertionSuite:
    """Named ordered checks; all are evaluated whatever fails."""

    def __init__(self, name: str, assertions: Sequence[Assertion]):
        self._name = name
        self._assertions = list(assertions)

    def __repr__(self):
        return f'<AssertionSuite {self._name} of {len(self._assertions)}>'

    def name(self) -> str:
        return self._name

    def assertions(self) -> Sequence[Assertion]:
        return self._assertions

    def run(self, target: Target) -> SuiteResult:
        results = []
        for assertion in self._assertions:
            results.append(_evaluate(assertion, target))
        result = SuiteResult(self._name, results)
        _logger.info(
            "Suite %s on %r: %d of %d passed",
            self._name, target, result.passed(), result.total())
        return result


def _evaluate(assertion: Assertion, target: Target) -> AssertionResult:
    try:
        observation = assertion.predicate.observe(target)
    except Exception as e:
        _logger.exception("%s: cannot observe", assertion)
        return AssertionResult(assertion, False, f"cannot observe: {e.__class__.__name__}: {e}")
    passed = observation.observed == assertion.expected
    if passed:
        _logger.debug("PASS %s: %s", assertion, observation.detail)
    else:
        _logger.warning("FAIL %s: %s", assertion, observation.detail)
    return AssertionResult(assertion, passed, observation.detail)
