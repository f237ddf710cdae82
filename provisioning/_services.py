# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import shlex

from provisioning._core import Command
from provisioning._core import CompositeCommand
from provisioning._core import InstallFile
from provisioning._core import Run

_logger = logging.getLogger(__name__)


class SystemCtl(Run):

    def __init__(self, *command: str):
        super().__init__(f'systemctl {shlex.join(command)}')
        self._repr = f'{SystemCtl.__name__}{command!r}'

    def __repr__(self):
        return self._repr


class LaunchSystemdService(CompositeCommand):

    def __init__(self, unit_name: str, unit_text: str):
        super().__init__([
            InstallFile(f'/etc/systemd/system/{unit_name}', unit_text),
            SystemCtl('daemon-reload'),
            SystemCtl('enable', unit_name),
            SystemCtl('restart', unit_name),
            SystemCtl('is-active', unit_name),
            ])
        self._repr = f'{LaunchSystemdService.__name__}({unit_name!r})'

    def __repr__(self):
        return self._repr


class StopService(Command):
    """Stop and disable; a unit that is not installed is already stopped."""

    def __init__(self, unit_name: str):
        self._unit_name = unit_name

    def __repr__(self):
        return f'{StopService.__name__}({self._unit_name!r})'

    def run(self, shell):
        unit = shlex.quote(self._unit_name)
        load_state = shell.output(f'systemctl show -p LoadState --value {unit}').strip()
        if load_state == 'not-found':
            _logger.info("%r: %s: unit not installed", shell, self._unit_name)
            return
        shell.run(f'systemctl stop {unit}', timeout_sec=None)
        shell.run(f'systemctl disable {unit}', check=False)
        _logger.info("%r: %s: stopped", shell, self._unit_name)


class RemoveSystemdUnit(CompositeCommand):

    def __init__(self, unit_name: str):
        super().__init__([
            StopService(unit_name),
            Run(['rm', '-f', f'/etc/systemd/system/{unit_name}']),
            SystemCtl('daemon-reload'),
            SystemCtl('reset-failed'),
            ])
        self._repr = f'{RemoveSystemdUnit.__name__}({unit_name!r})'

    def __repr__(self):
        return self._repr
