# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
"""Home CI/CD host: Jenkins, Nginx, Netdata and artifact storage behind one proxy."""
from ci_stack._assertions import PreflightFailed
from ci_stack._assertions import deployed_artifacts
from ci_stack._assertions import preflight_suite
from ci_stack._assertions import stack_suites
from ci_stack._cleanup_modules import KEEP_PACKAGES_SKIP
from ci_stack._cleanup_modules import cleanup_registry
from ci_stack._deploy_modules import deploy_registry
from ci_stack._layout import StackLayout

__all__ = [
    'KEEP_PACKAGES_SKIP',
    'PreflightFailed',
    'StackLayout',
    'cleanup_registry',
    'deploy_registry',
    'deployed_artifacts',
    'preflight_suite',
    'stack_suites',
    ]
