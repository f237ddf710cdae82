# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
"""Assertions about live state of a host.

Predicates only look: they never change anything on the target.
A suite evaluates every assertion and collects all discrepancies,
so a single run gives the complete picture.
"""
from verification._artifacts import Artifact
from verification._artifacts import Directory
from verification._artifacts import Endpoint
from verification._artifacts import File
from verification._artifacts import FirewallRule
from verification._artifacts import ListeningPort
from verification._artifacts import Package
from verification._artifacts import ReachablePort
from verification._artifacts import Service
from verification._artifacts import SystemUser
from verification._artifacts import inverse_violations
from verification._artifacts import round_trip_suites
from verification._certificate import CertificateValid
from verification._predicates import CommandAvailable
from verification._predicates import EffectiveUser
from verification._predicates import FirewallAllows
from verification._predicates import HostResolves
from verification._predicates import HttpResponds
from verification._predicates import HttpStatus
from verification._predicates import Observation
from verification._predicates import OsRelease
from verification._predicates import PackageAbsent
from verification._predicates import PackageInstalled
from verification._predicates import PathAbsent
from verification._predicates import PathPresent
from verification._predicates import PortListening
from verification._predicates import Predicate
from verification._predicates import ProcessRunning
from verification._predicates import RemoteSecret
from verification._predicates import ServiceActive
from verification._predicates import TcpPortReachable
from verification._predicates import UserExists
from verification._suite import Assertion
from verification._suite import AssertionFailed
from verification._suite import AssertionResult
from verification._suite import AssertionSuite
from verification._suite import Presence
from verification._suite import SuiteResult
from verification._target import Target

__all__ = [
    'Artifact',
    'Assertion',
    'AssertionFailed',
    'AssertionResult',
    'AssertionSuite',
    'CertificateValid',
    'CommandAvailable',
    'Directory',
    'EffectiveUser',
    'Endpoint',
    'File',
    'FirewallAllows',
    'FirewallRule',
    'HostResolves',
    'HttpResponds',
    'HttpStatus',
    'ListeningPort',
    'Observation',
    'OsRelease',
    'Package',
    'PackageAbsent',
    'PackageInstalled',
    'PathAbsent',
    'PathPresent',
    'PortListening',
    'Predicate',
    'Presence',
    'ProcessRunning',
    'ReachablePort',
    'RemoteSecret',
    'Service',
    'ServiceActive',
    'SuiteResult',
    'SystemUser',
    'Target',
    'TcpPortReachable',
    'UserExists',
    'inverse_violations',
    'round_trip_suites',
    ]
