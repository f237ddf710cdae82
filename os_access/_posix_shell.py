# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import os
import shlex
from abc import ABCMeta
from abc import abstractmethod
from textwrap import dedent
from typing import Sequence

from os_access._command import Shell

_logger = logging.getLogger(__name__)


def quote_arg(arg):
    return shlex.quote(str(arg))


def command_to_args(command) -> Sequence[str]:
    """Stringify an argument vector.

    >>> from pathlib import PurePosixPath
    >>> command_to_args(['ls', '-l', PurePosixPath('/srv/data'), 2])
    ['ls', '-l', '/srv/data', '2']
    >>> command_to_args(['ls', None])  # doctest: +IGNORE_EXCEPTION_DETAIL
    Traceback (most recent call last):
    ...
    TypeError: Unsupported arg type None in command ['ls', None]
    """
    str_args = []
    for arg in command:
        if isinstance(arg, str):
            str_args.append(arg)
        elif isinstance(arg, int) and not isinstance(arg, bool):
            str_args.append(str(arg))
        elif isinstance(arg, os.PathLike):
            str_args.append(os.fspath(arg))
        else:
            raise TypeError(f"Unsupported arg type {arg} in command {command}")
    return str_args


def augment_script(script, set_eux=True):
    """Prepend options; multi-line scripts stop on the first error.

    >>> print(augment_script('''
    ...     mkdir -p /srv/data
    ...     chmod 755 /srv/data
    ...     '''))
    set -eux
    mkdir -p /srv/data
    chmod 755 /srv/data
    >>> print(augment_script('true', set_eux=False))
    true
    """
    augmented_script_lines = []
    if set_eux:
        # language=Bash
        augmented_script_lines.append('set -eux')  # It's sh (dash), pipefail cannot be set here.
    augmented_script_lines.append(dedent(script).strip())
    return '\n'.join(augmented_script_lines)


class PosixShell(Shell, metaclass=ABCMeta):
    """Posix-specific interface: scripts are run by sh."""

    def _command_line(self, args):
        if isinstance(args, str):
            set_eux = '\n' in args.strip()
            script = augment_script(args, set_eux=set_eux)
            _logger.info("%r: Run script:\n%s", self, script)
            argv = ['sh', '-c', script]
        else:
            argv = command_to_args(args)
            _logger.info("%r: Run: %s", self, shlex.join(argv))
        return self._wrap(argv)

    @abstractmethod
    def _wrap(self, argv: Sequence[str]) -> Sequence[str]:
        pass
