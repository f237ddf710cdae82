# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import grp
import os
import pwd
import stat
import tempfile
import unittest
from pathlib import Path

from os_access import CalledProcessError
from os_access.local_shell import local_shell
from provisioning import Check
from provisioning import CompositeCommand
from provisioning import InstallFile
from provisioning import ModuleBodyFailed
from provisioning import Run


class TestCommands(unittest.TestCase):

    def setUp(self):
        self._tmp_dir = tempfile.TemporaryDirectory()
        self._root = Path(self._tmp_dir.name)
        self._user = pwd.getpwuid(os.getuid()).pw_name
        self._group = grp.getgrgid(os.getgid()).gr_name

    def tearDown(self):
        self._tmp_dir.cleanup()

    def test_run_script_is_idempotent(self):
        target = self._root / 'srv' / 'data'
        command = Run(f'''
            mkdir -p {target}
            chmod 750 {target}
            ''')
        command.run(local_shell)
        command.run(local_shell)
        self.assertEqual(stat.S_IMODE(target.stat().st_mode), 0o750)

    def test_run_failure_raises(self):
        with self.assertRaises(CalledProcessError):
            Run(['false']).run(local_shell)

    def test_check(self):
        Check('test -d /', "Root is not a directory").run(local_shell)
        with self.assertRaises(ModuleBodyFailed) as ctx:
            Check('echo "port 8080 busy" >&2; exit 1', "Port check failed").run(local_shell)
        self.assertEqual(str(ctx.exception), "Port check failed: port 8080 busy")

    def test_install_file(self):
        target = self._root / 'etc' / 'nginx' / 'sites-available' / 'ci'
        command = InstallFile(
            str(target), 'server {}\n', owner=self._user, group=self._group, mode='u=rw,go=')
        command.run(local_shell)
        command.run(local_shell)
        self.assertEqual(target.read_text(), 'server {}\n')
        self.assertEqual(stat.S_IMODE(target.stat().st_mode), 0o600)

    def test_composite_stops_on_first_failure(self):
        marker = self._root / 'marker'
        command = CompositeCommand([
            Run(['false']),
            Run(['touch', marker]),
            ])
        with self.assertRaises(CalledProcessError):
            command.run(local_shell)
        self.assertFalse(marker.exists())


if __name__ == '__main__':
    unittest.main()
