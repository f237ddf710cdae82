# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import unittest
from pathlib import PurePosixPath
from subprocess import TimeoutExpired

from os_access import CalledProcessError
from os_access import ContainerShell
from os_access.local_shell import local_shell


class TestLocalShell(unittest.TestCase):

    def test_args(self):
        result = local_shell.run(['echo', 'a b', 3, PurePosixPath('/srv')])
        self.assertEqual(result.stdout, b'a b 3 /srv\n')
        self.assertEqual(result.returncode, 0)

    def test_script_stops_on_first_error(self):
        script = '''
            echo first
            false
            echo unreachable
            '''
        with self.assertRaises(CalledProcessError) as context:
            local_shell.run(script)
        self.assertEqual(context.exception.stdout, b'first\n')
        self.assertIn("exit status 1", str(context.exception))

    def test_no_check(self):
        result = local_shell.run(['sh', '-c', 'echo oops >&2; exit 3'], check=False)
        self.assertEqual(result.returncode, 3)
        self.assertEqual(result.stderr, b'oops\n')

    def test_input(self):
        self.assertEqual(local_shell.run(['cat'], input=b'payload').stdout, b'payload')

    def test_output(self):
        self.assertEqual(local_shell.output('echo -n text'), 'text')

    def test_timeout(self):
        with self.assertRaises(TimeoutExpired):
            local_shell.run(['sleep', '5'], timeout_sec=0.2)


class TestContainerShell(unittest.TestCase):

    def test_command_line(self):
        shell = ContainerShell('roundtrip-1', docker='/usr/bin/docker')
        self.assertEqual(
            shell._command_line(['systemctl', 'is-active', 'nginx']),
            ['/usr/bin/docker', 'exec', '-i', 'roundtrip-1', 'systemctl', 'is-active', 'nginx'],
            )

    def test_script_command_line(self):
        shell = ContainerShell('roundtrip-1')
        [*prefix, sh, c, script] = shell._command_line('mkdir -p /a\nchmod 755 /a')
        self.assertEqual(prefix, ['docker', 'exec', '-i', 'roundtrip-1'])
        self.assertEqual([sh, c], ['sh', '-c'])
        self.assertEqual(script, 'set -eux\nmkdir -p /a\nchmod 755 /a')


if __name__ == '__main__':
    unittest.main()
