# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import shlex
from typing import Sequence

from provisioning._core import Command
from provisioning._core import CompositeCommand
from provisioning._core import Run

_logger = logging.getLogger(__name__)

_apt_get = 'DEBIAN_FRONTEND=noninteractive apt-get -y -o Dpkg::Options::=--force-confold'


class AptInstall(Run):

    def __init__(self, *packages: str):
        super().__init__(f'{_apt_get} install {shlex.join(packages)}')
        self._repr = f'{AptInstall.__name__}{packages!r}'

    def __repr__(self):
        return self._repr


class AptPurge(Command):
    """Purge packages which are installed; absent ones are skipped."""

    def __init__(self, *packages: str):
        self._packages = packages

    def __repr__(self):
        return f'{AptPurge.__name__}{self._packages!r}'

    def run(self, shell):
        installed = []
        for package in self._packages:
            r = shell.run(['dpkg-query', '-W', '-f', '${db:Status-Status}', package], check=False)
            status = r.stdout.decode().strip()
            if r.returncode == 0 and status not in ('', 'not-installed'):
                installed.append(package)
            else:
                _logger.info("%r: %s: not installed", shell, package)
        if installed:
            shell.run(f'{_apt_get} purge {shlex.join(installed)}', timeout_sec=None)
            _logger.info("%r: Purged: %s", shell, ' '.join(installed))


class AptRepository(CompositeCommand):
    """Signed third-party repository under /etc/apt/keyrings."""

    def __init__(self, name: str, key_url: str, source: str):
        keyring = f'/etc/apt/keyrings/{name}-keyring.asc'
        line = f'deb [signed-by={keyring}] {source}'
        list_file = f'/etc/apt/sources.list.d/{name}.list'
        super().__init__([
            Run('install -d -m 0755 /etc/apt/keyrings'),
            Run(f'test -s {keyring} || curl -fsSL -o {keyring} {shlex.quote(key_url)}'),
            Run(f'echo {shlex.quote(line)} > {list_file}'),
            Run(f'{_apt_get} update'),
            ])
        self._repr = f'{AptRepository.__name__}({name!r})'

    def __repr__(self):
        return self._repr

    @staticmethod
    def files(name: str) -> Sequence[str]:
        return [
            f'/etc/apt/sources.list.d/{name}.list',
            f'/etc/apt/keyrings/{name}-keyring.asc',
            ]


class RemovePaths(Run):

    def __init__(self, *paths: str):
        super().__init__(['rm', '-rf', '--', *paths])
        self._repr = f'{RemovePaths.__name__}{paths!r}'

    def __repr__(self):
        return self._repr
