# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import unittest

from os_access import CalledProcessError
from provisioning import AddSystemUser
from provisioning import AptInstall
from provisioning import AptPurge
from provisioning import AptRepository
from provisioning import RemovePaths
from provisioning import RemoveUser
from provisioning import StopService
from verification.tests._fake_shell import FakeShell

_dpkg_status = ['dpkg-query', '-W', '-f', '${db:Status-Status}']


class TestUsers(unittest.TestCase):

    def test_add_existing_user(self):
        shell = FakeShell()
        command = 'useradd --system --user-group --no-create-home --shell /usr/sbin/nologin artifacts'
        shell.add(command, returncode=9, stderr=b"useradd: user 'artifacts' already exists")
        AddSystemUser('artifacts').run(shell)
        self.assertEqual(shell.commands, [command])

    def test_add_user_failure(self):
        shell = FakeShell()
        command = 'useradd --system --user-group --no-create-home --shell /usr/sbin/nologin artifacts'
        shell.add(command, returncode=10, stderr=b"useradd: cannot lock /etc/group")
        with self.assertRaises(CalledProcessError):
            AddSystemUser('artifacts').run(shell)

    def test_remove_missing_user(self):
        shell = FakeShell()
        shell.add('pkill -KILL -u jenkins', returncode=2, stderr=b"pkill: invalid user name: jenkins")
        shell.add('userdel -f -r jenkins', returncode=6, stderr=b"userdel: user 'jenkins' does not exist")
        shell.add('groupdel jenkins', returncode=6, stderr=b"groupdel: group 'jenkins' does not exist")
        RemoveUser('jenkins').run(shell)
        self.assertEqual(len(shell.commands), 3)

    def test_remove_user_without_home(self):
        shell = FakeShell()
        shell.add('pkill -KILL -u artifacts', returncode=1)
        shell.add('userdel -f -r artifacts', returncode=12, stderr=b"userdel: artifacts home directory not found")
        shell.add('groupdel artifacts')
        RemoveUser('artifacts').run(shell)


class TestServices(unittest.TestCase):

    def test_stop_not_installed(self):
        shell = FakeShell()
        shell.add('systemctl show -p LoadState --value netdata', stdout=b'not-found\n')
        StopService('netdata').run(shell)
        self.assertEqual(shell.commands, ['systemctl show -p LoadState --value netdata'])

    def test_stop_installed(self):
        shell = FakeShell()
        shell.add('systemctl show -p LoadState --value nginx', stdout=b'loaded\n')
        shell.add('systemctl stop nginx')
        shell.add('systemctl disable nginx')
        StopService('nginx').run(shell)
        self.assertEqual(shell.commands[1:], ['systemctl stop nginx', 'systemctl disable nginx'])

    def test_stop_failure(self):
        shell = FakeShell()
        shell.add('systemctl show -p LoadState --value nginx', stdout=b'loaded\n')
        shell.add('systemctl stop nginx', returncode=1, stderr=b"Job for nginx.service canceled")
        with self.assertRaises(CalledProcessError):
            StopService('nginx').run(shell)


class TestPackages(unittest.TestCase):

    def test_purge_only_installed(self):
        shell = FakeShell()
        shell.add((*_dpkg_status, 'nginx'), stdout=b'installed')
        shell.add((*_dpkg_status, 'nginx-full'), returncode=1, stderr=b"no packages found matching nginx-full")
        shell.add((*_dpkg_status, 'fail2ban'), stdout=b'config-files')
        purge = 'DEBIAN_FRONTEND=noninteractive apt-get -y -o Dpkg::Options::=--force-confold purge nginx fail2ban'
        shell.add(purge)
        AptPurge('nginx', 'nginx-full', 'fail2ban').run(shell)
        self.assertEqual(shell.commands[-1], purge)

    def test_purge_nothing_installed(self):
        shell = FakeShell()
        shell.add((*_dpkg_status, 'jenkins'), stdout=b'not-installed')
        AptPurge('jenkins').run(shell)
        self.assertEqual(len(shell.commands), 1)

    def test_install(self):
        shell = FakeShell()
        install = 'DEBIAN_FRONTEND=noninteractive apt-get -y -o Dpkg::Options::=--force-confold install nginx fail2ban'
        shell.add(install)
        AptInstall('nginx', 'fail2ban').run(shell)
        self.assertEqual(shell.commands, [install])

    def test_repository_files(self):
        self.assertEqual(AptRepository.files('jenkins'), [
            '/etc/apt/sources.list.d/jenkins.list',
            '/etc/apt/keyrings/jenkins-keyring.asc',
            ])

    def test_remove_paths(self):
        shell = FakeShell()
        shell.add(('rm', '-rf', '--', '/srv/data', '/opt/core-setup'))
        RemovePaths('/srv/data', '/opt/core-setup').run(shell)
        self.assertEqual(len(shell.commands), 1)


if __name__ == '__main__':
    unittest.main()
