# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
from os_access._command import DEFAULT_RUN_TIMEOUT_SEC
from os_access._command import CalledProcessError
from os_access._command import Shell
from os_access._container_shell import ContainerShell
from os_access._posix_shell import PosixShell
from os_access._posix_shell import quote_arg

__all__ = [
    'CalledProcessError',
    'ContainerShell',
    'DEFAULT_RUN_TIMEOUT_SEC',
    'PosixShell',
    'Shell',
    'quote_arg',
    ]
