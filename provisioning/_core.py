# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import shlex
from abc import ABCMeta
from abc import abstractmethod
from pathlib import PurePosixPath
from typing import Optional
from typing import Sequence
from typing import Union

from os_access import Shell

_logger = logging.getLogger(__name__)


class ModuleBodyFailed(Exception):
    """A body found the host in a state it cannot fix; the text explains."""


class Command(metaclass=ABCMeta):

    @abstractmethod
    def run(self, shell: Shell):
        pass


class Run(Command):
    """Shell script or argument vector; non-zero exit status is a failure.

    There is no deadline: package downloads take as long as they take.
    """

    def __init__(self, command: Union[str, Sequence[str]]):
        self._command = command

    def __repr__(self):
        return f'{Run.__name__}({self._command!r})'

    def run(self, shell):
        shell.run(self._command, timeout_sec=None)


class Check(Command):
    """Fail with an explanation unless the script succeeds."""

    def __init__(self, script: str, message: str):
        self._script = script
        self._message = message

    def __repr__(self):
        return f'{Check.__name__}({self._script!r})'

    def run(self, shell):
        result = shell.run(self._script, timeout_sec=None, check=False)
        if result.returncode != 0:
            stderr = result.stderr.decode(errors='backslashreplace').strip()
            raise ModuleBodyFailed(f"{self._message}: {stderr}" if stderr else self._message)


class InstallFile(Command):
    """Upload content. Set owner and permissions. Make dirs (-D).

    >>> print(InstallFile('/etc/nginx/sites-available/ci', 'server {}')._command)
    install /dev/stdin /etc/nginx/sites-available/ci -o root -g root -D -m u=rw,go=r
    >>> print(InstallFile('/home/ci admin/.token', 'x', owner='ci', mode='u=rw,go=')._command)
    install /dev/stdin '/home/ci admin/.token' -o ci -g ci -D -m u=rw,go=
    >>> InstallFile('relative/path', '') # doctest: +IGNORE_EXCEPTION_DETAIL
    Traceback (most recent call last):
    ...
    ValueError: Target must be absolute, got 'relative/path'
    """

    def __init__(
            self,
            target: str,
            content: Union[str, bytes],
            owner: str = 'root',
            mode: str = 'u=rw,go=r',
            group: Optional[str] = None,
            ):
        path = PurePosixPath(target)
        if not path.is_absolute():
            raise ValueError(f"Target must be absolute, got {target!r}")
        self._target = path
        self._content = content.encode() if isinstance(content, str) else content
        params = ['-o', owner, '-g', group or owner, '-D', '-m', mode]
        self._command = f'install /dev/stdin {shlex.quote(str(path))} {shlex.join(params)}'

    def __repr__(self):
        return f'{InstallFile.__name__}({str(self._target)!r})'

    def run(self, shell):
        shell.run(self._command, input=self._content, timeout_sec=None)


class CompositeCommand(Command):

    def __init__(self, commands: Sequence[Command]):
        self._commands: Sequence[Command] = commands

    def __repr__(self):
        return f'<{self.__class__.__name__} with {len(self._commands)} commands>'

    def run(self, shell):
        for command in self._commands:
            _logger.debug("%r: Command %r", shell, command)
            command.run(shell)
