# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
"""Provisioning of a single host as code under version control.

The goal is to keep configuration in code under version control.
It serves as documentation for what is installed and configured.
Nothing may be changed on the host without a provisioning module.

Every unit of work is a Module: a name, the names it depends on
and a body. A body is formulated in terms of commands.
In most cases, it is a Run object or a CompositeCommand of those.
It is desirable that commands be written in the most raw form,
so that it is clear what is being run and it is easy to copy.

Commands must be idempotent.
The second run must not "accumulate" changes.
Running it multiple times must be safe.

Bodies are not run directly. Only via an Orchestrator.
It orders modules by their dependencies, stops or continues on failures
according to a single policy, records successful modules in a StateStore
and reports every step to an EventSink.

The StateStore is an optimization and an audit trail.
Bodies still check live state themselves:
the store may be stale after manual changes on the host.

Deployment and cleanup are separate registries with separate graphs.
Cleanup is not the reverse of deployment:
order teardown by actual resource lifetimes.
"""
from provisioning._config_files import SetOption
from provisioning._core import Check
from provisioning._core import Command
from provisioning._core import CompositeCommand
from provisioning._core import InstallFile
from provisioning._core import ModuleBodyFailed
from provisioning._core import Run
from provisioning._events import ChangeHistory
from provisioning._events import CompositeEventSink
from provisioning._events import EventSink
from provisioning._events import JsonLinesJournal
from provisioning._events import NullEventSink
from provisioning._events import read_journal
from provisioning._module import Module
from provisioning._module import ModuleRegistry
from provisioning._orchestrator import ExecutionRecord
from provisioning._orchestrator import FailurePolicy
from provisioning._orchestrator import ModuleExecutionFailed
from provisioning._orchestrator import Orchestrator
from provisioning._orchestrator import Outcome
from provisioning._orchestrator import RunResult
from provisioning._orchestrator import RunStatus
from provisioning._packages import AptInstall
from provisioning._packages import AptPurge
from provisioning._packages import AptRepository
from provisioning._packages import RemovePaths
from provisioning._resolver import CyclicDependency
from provisioning._resolver import DependencyExcluded
from provisioning._resolver import Plan
from provisioning._resolver import PlanningError
from provisioning._resolver import UnknownDependency
from provisioning._resolver import UnknownModule
from provisioning._resolver import resolve_plan
from provisioning._services import LaunchSystemdService
from provisioning._services import RemoveSystemdUnit
from provisioning._services import StopService
from provisioning._services import SystemCtl
from provisioning._state_store import ModuleState
from provisioning._state_store import StateStore
from provisioning._state_store import StoreLocked
from provisioning._state_store import StoreUnavailable
from provisioning._users import AddSystemUser
from provisioning._users import RemoveUser

__all__ = [
    'AddSystemUser',
    'AptInstall',
    'AptPurge',
    'AptRepository',
    'ChangeHistory',
    'Check',
    'Command',
    'CompositeCommand',
    'CompositeEventSink',
    'CyclicDependency',
    'DependencyExcluded',
    'EventSink',
    'ExecutionRecord',
    'FailurePolicy',
    'InstallFile',
    'JsonLinesJournal',
    'LaunchSystemdService',
    'Module',
    'ModuleBodyFailed',
    'ModuleExecutionFailed',
    'ModuleRegistry',
    'ModuleState',
    'NullEventSink',
    'Orchestrator',
    'Outcome',
    'Plan',
    'PlanningError',
    'RemovePaths',
    'RemoveSystemdUnit',
    'RemoveUser',
    'Run',
    'RunResult',
    'RunStatus',
    'SetOption',
    'StateStore',
    'StopService',
    'StoreLocked',
    'StoreUnavailable',
    'SystemCtl',
    'UnknownDependency',
    'UnknownModule',
    'read_journal',
    'resolve_plan',
    ]
