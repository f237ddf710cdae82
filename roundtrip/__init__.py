# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
from roundtrip._environment import EnvironmentFactory
from roundtrip._environment import docker_container
from roundtrip._environment import local_host
from roundtrip._harness import RoundTripHarness
from roundtrip._harness import SuitesNotInverse
from roundtrip._report import FailedAssertion
from roundtrip._report import HarnessState
from roundtrip._report import PhaseReport
from roundtrip._report import ReportStatus
from roundtrip._report import RoundTripReport
from roundtrip._waiting import WaitTimeout
from roundtrip._waiting import wait_for_truthy

__all__ = [
    'EnvironmentFactory',
    'FailedAssertion',
    'HarnessState',
    'PhaseReport',
    'ReportStatus',
    'RoundTripHarness',
    'RoundTripReport',
    'SuitesNotInverse',
    'WaitTimeout',
    'docker_container',
    'local_host',
    'wait_for_truthy',
    ]
