# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import os
import socket
import tempfile
import unittest
from pathlib import Path

from os_access.local_shell import local_shell
from verification import CommandAvailable
from verification import FirewallAllows
from verification import OsRelease
from verification import PackageAbsent
from verification import PackageInstalled
from verification import PathAbsent
from verification import PathPresent
from verification import PortListening
from verification import ProcessRunning
from verification import ServiceActive
from verification import Target
from verification import TcpPortReachable
from verification import UserExists
from verification.tests._fake_shell import fake_target

_ss_output = b'''\
LISTEN 0      511          0.0.0.0:80        0.0.0.0:*
LISTEN 0      50                 *:8080            *:*
LISTEN 0      4096            [::]:19999        [::]:*
'''

_ufw_output = b'''\
Status: active

To                         Action      From
--                         ------      ----
4926/tcp                   ALLOW       Anywhere
80/tcp                     ALLOW       Anywhere
'''


class TestCommandPredicates(unittest.TestCase):

    def setUp(self):
        self._shell, self._target = fake_target()

    def test_service_active(self):
        self._shell.add(['systemctl', 'is-active', 'jenkins'], b'active\n')
        self._shell.add(['systemctl', 'is-active', 'nginx'], b'inactive\n', returncode=3)
        self.assertTrue(ServiceActive('jenkins').observe(self._target).observed)
        observation = ServiceActive('nginx').observe(self._target)
        self.assertFalse(observation.observed)
        self.assertEqual(observation.detail, "service nginx is inactive")

    def test_process_running(self):
        self._shell.add(['pgrep', '-x', 'fail2ban-server'], b'812\n')
        self._shell.add(['pgrep', '-x', 'netdata'], returncode=1)
        self.assertTrue(ProcessRunning('fail2ban-server').observe(self._target).observed)
        self.assertFalse(ProcessRunning('netdata').observe(self._target).observed)

    def test_port_listening_exact_match(self):
        self._shell.add(['ss', '-Htln'], _ss_output)
        self.assertTrue(PortListening(8080).observe(self._target).observed)
        self.assertTrue(PortListening(19999).observe(self._target).observed)
        self.assertFalse(PortListening(808).observe(self._target).observed)
        self.assertFalse(PortListening(8081).observe(self._target).observed)

    def test_package_states(self):
        query = ['dpkg-query', '-W', '-f', '${Status}']
        self._shell.add([*query, 'nginx'], b'install ok installed')
        self._shell.add([*query, 'jenkins'], b'deinstall ok config-files')
        self._shell.add([*query, 'netdata'], returncode=1, stderr=b'no packages found')
        self.assertTrue(PackageInstalled('nginx').observe(self._target).observed)
        self.assertFalse(PackageAbsent('nginx').observe(self._target).observed)
        self.assertFalse(PackageInstalled('jenkins').observe(self._target).observed)
        config_files_left = PackageAbsent('jenkins').observe(self._target)
        self.assertFalse(config_files_left.observed)
        self.assertIn("config files remain", config_files_left.detail)
        self.assertTrue(PackageAbsent('netdata').observe(self._target).observed)
        self.assertFalse(PackageInstalled('netdata').observe(self._target).observed)

    def test_user_exists(self):
        self._shell.add(['getent', 'passwd', 'jenkins'], b'jenkins:x:113:119::/var/lib/jenkins:/bin/bash\n')
        self._shell.add(['getent', 'passwd', 'ghost'], returncode=2)
        self.assertTrue(UserExists('jenkins').observe(self._target).observed)
        self.assertFalse(UserExists('ghost').observe(self._target).observed)

    def test_firewall(self):
        self._shell.add(['ufw', 'status'], _ufw_output)
        self.assertTrue(FirewallAllows(4926).observe(self._target).observed)
        self.assertFalse(FirewallAllows(8080).observe(self._target).observed)

    def test_firewall_inactive(self):
        self._shell.add(['ufw', 'status'], b'Status: inactive\n')
        observation = FirewallAllows(80).observe(self._target)
        self.assertFalse(observation.observed)
        self.assertEqual(observation.detail, "firewall is inactive")

    def test_os_release(self):
        self._shell.add(['cat', '/etc/os-release'], b'PRETTY_NAME="Ubuntu 22.04 LTS"\nID=ubuntu\nID_LIKE=debian\n')
        self.assertTrue(OsRelease({'debian'}).observe(self._target).observed)
        self.assertTrue(OsRelease({'ubuntu'}).observe(self._target).observed)
        self.assertFalse(OsRelease({'fedora', 'rhel'}).observe(self._target).observed)


class TestLocalPredicates(unittest.TestCase):

    def setUp(self):
        self._tmp_dir = tempfile.TemporaryDirectory()
        self._root = Path(self._tmp_dir.name)
        self._target = Target(local_shell, '127.0.0.1')

    def tearDown(self):
        self._tmp_dir.cleanup()

    def test_directory_present(self):
        directory = self._root / 'artifacts'
        directory.mkdir(mode=0o750)
        directory.chmod(0o750)
        self.assertTrue(PathPresent(str(directory), 'directory', 0o750).observe(self._target).observed)
        self.assertFalse(PathAbsent(str(directory)).observe(self._target).observed)

    def test_wrong_mode_is_explained(self):
        secret = self._root / '.admin-password'
        secret.write_text('x')
        secret.chmod(0o644)
        observation = PathPresent(str(secret), 'file', 0o600).observe(self._target)
        self.assertFalse(observation.observed)
        self.assertIn("exists but has mode 644, expected 600", observation.detail)

    def test_wrong_kind_is_explained(self):
        observation = PathPresent(str(self._root), 'file').observe(self._target)
        self.assertFalse(observation.observed)
        self.assertIn("is directory, expected file", observation.detail)

    def test_missing(self):
        missing = str(self._root / 'nginx' / 'sites-enabled' / 'ci')
        self.assertFalse(PathPresent(missing).observe(self._target).observed)
        self.assertTrue(PathAbsent(missing).observe(self._target).observed)

    @unittest.skipIf(os.geteuid() == 0, "Root can inspect anything")
    def test_cannot_inspect_is_not_absent(self):
        locked = self._root / 'locked'
        locked.mkdir()
        (locked / 'inner').write_text('')
        locked.chmod(0)
        try:
            with self.assertRaises(RuntimeError):
                PathAbsent(str(locked / 'inner')).observe(self._target)
        finally:
            locked.chmod(0o700)

    def test_command_available(self):
        self.assertTrue(CommandAvailable('sh').observe(self._target).observed)
        self.assertFalse(CommandAvailable('no-such-command-here').observe(self._target).observed)

    def test_tcp_port_reachable(self):
        with socket.socket() as server:
            server.bind(('127.0.0.1', 0))
            server.listen()
            port = server.getsockname()[1]
            self.assertTrue(TcpPortReachable(port).observe(self._target).observed)
        self.assertFalse(TcpPortReachable(port).observe(self._target).observed)


if __name__ == '__main__':
    unittest.main()
