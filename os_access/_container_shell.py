# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import subprocess

from os_access._posix_shell import PosixShell

_logger = logging.getLogger(__name__)


class ContainerShell(PosixShell):
    """Run commands inside a running container with "docker exec".

    Standard input is always attached, so that scripts can be fed
    with file contents.
    """

    def __init__(self, container_name: str, docker: str = 'docker'):
        self._container_name = container_name
        self._docker = docker

    def __repr__(self):
        return f'<ContainerShell {self._container_name}>'

    def _wrap(self, argv):
        return [self._docker, 'exec', '-i', self._container_name, *argv]

    def is_working(self):
        command = [self._docker, 'inspect', '--format', '{{.State.Running}}', self._container_name]
        process = subprocess.run(command, stdout=subprocess.PIPE, stderr=subprocess.PIPE, timeout=30)
        if process.returncode != 0:
            _logger.debug(
                "%r: inspect failed: %s",
                self, process.stderr.decode(errors='backslashreplace').strip())
            return False
        return process.stdout.strip() == b'true'
