# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import shlex

from os_access import CalledProcessError
from provisioning._core import Command


class AddSystemUser(Command):

    def __init__(self, username, home=None, shell='/usr/sbin/nologin'):
        self._username = username
        self._home = home
        self._shell = shell

    def __repr__(self):
        return f'{AddSystemUser.__name__}({self._username!r})'

    def run(self, shell):
        u = shlex.quote(self._username)
        if self._home is None:
            home = '--no-create-home'
        else:
            home = f'--create-home --home-dir {shlex.quote(self._home)}'
        r = shell.run(
            f'useradd --system --user-group {home} --shell {shlex.quote(self._shell)} {u}',
            check=False)
        if r.returncode == 0:
            _logger.info("%r: %s: user added", shell, self._username)
        elif b'already exists' in r.stderr.lower():
            _logger.info("%r: %s: user already exists", shell, self._username)
        else:
            _logger.error("%r: %s: failure: %s", shell, self._username, r.stderr)
            raise CalledProcessError(r.returncode, r.args, r.stdout, r.stderr)


class RemoveUser(Command):

    def __init__(self, username: str, remove_home=True):
        self._user = username
        self._remove_home = remove_home

    def __repr__(self):
        return f'{RemoveUser.__name__}({self._user!r})'

    def run(self, shell):
        self._kill_processes(shell)
        self._delete_user(shell)
        self._delete_group(shell)  # In case other users were in user group.

    def _delete_user(self, shell):
        flags = '-f -r' if self._remove_home else '-f'
        r = shell.run(f'userdel {flags} {shlex.quote(self._user)}', check=False)
        if b'does not exist' in r.stderr.lower():
            _logger.info("User does not exist: %s", self._user)
        # Exit status 12: home directory was already gone.
        elif r.returncode in (0, 12):
            _logger.info("User deleted: %s", self._user)
        else:
            raise CalledProcessError(r.returncode, r.args, r.stdout, r.stderr)

    def _delete_group(self, shell):
        r = shell.run(f'groupdel {shlex.quote(self._user)}', check=False)
        if b'does not exist' in r.stderr.lower():
            _logger.info("Group does not exist: %s", self._user)
        elif r.returncode == 0:
            _logger.info("Group deleted: %s", self._user)
        else:
            raise CalledProcessError(r.returncode, r.args, r.stdout, r.stderr)

    def _kill_processes(self, shell):
        """Kill processes started by user.

        They may remain defunct (zombie) waiting to be reaped.
        """
        r = shell.run(f'pkill -KILL -u {shlex.quote(self._user)}', check=False)
        if r.returncode == 1:
            _logger.info("No processes by user: %s", self._user)
        elif r.returncode == 0:
            _logger.info("Processes terminated: %s", self._user)
        elif b'invalid user name' in r.stderr.lower():
            _logger.info("No user: %s", self._user)
        else:
            raise CalledProcessError(r.returncode, r.args, r.stdout, r.stderr)


_logger = logging.getLogger(__name__)
