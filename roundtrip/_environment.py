# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Callable
from typing import ContextManager
from typing import Optional

from os_access import ContainerShell
from os_access.local_shell import local_shell
from roundtrip._waiting import wait_for_truthy
from verification import Target

_logger = logging.getLogger(__name__)

EnvironmentFactory = Callable[[], ContextManager[Target]]


@contextmanager
def docker_container(
        image: str,
        name: str,
        build_dir: Optional[Path] = None,
        keep_image: bool = True,
        docker: str = 'docker',
        boot_timeout_sec: float = 180,
        ):
    """Disposable host: a privileged container with systemd as PID 1.

    The container (and the image, unless kept) is removed on exit
    whatever happened inside.
    """
    if build_dir is not None:
        _logger.info("Build image %s from %s", image, build_dir)
        local_shell.run([docker, 'build', '-t', image, build_dir], timeout_sec=None)
    # A container left by an interrupted run holds the name.
    local_shell.run([docker, 'rm', '-f', name], check=False)
    try:
        local_shell.run([
            docker, 'run', '-d',
            '--name', name,
            '--privileged',
            '--cgroupns=host',
            '-v', '/sys/fs/cgroup:/sys/fs/cgroup:rw',
            image,
            ])
        shell = ContainerShell(name, docker=docker)
        wait_for_truthy(
            lambda: _systemd_is_up(shell),
            description=f"systemd is up in {name}",
            timeout_sec=boot_timeout_sec)
        address = local_shell.output([
            docker, 'inspect', '-f', '{{range .NetworkSettings.Networks}}{{.IPAddress}}{{end}}', name,
            ]).strip()
        if not address:
            raise RuntimeError(f"Container {name} has no IP address")
        target = Target(shell, address)
        _logger.info("Environment ready: %r", target)
        yield target
    finally:
        _logger.info("Remove container %s", name)
        local_shell.run([docker, 'rm', '-f', name], check=False)
        if not keep_image:
            _logger.info("Remove image %s", image)
            local_shell.run([docker, 'rmi', image], check=False)


def _systemd_is_up(shell: ContainerShell) -> bool:
    if not shell.is_working():
        raise RuntimeError(f"{shell!r} stopped while booting")
    result = shell.run(['systemctl', 'is-system-running'], check=False)
    state = result.stdout.decode().strip()
    # A single failed unit in a container makes the system "degraded" but usable.
    return state in ('running', 'degraded')


@contextmanager
def local_host():
    """This very machine; nothing to tear down. Use only on disposable VMs."""
    yield Target(local_shell, '127.0.0.1')
