# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
from typing import Sequence
from typing import Tuple

from ci_stack._layout import ARTIFACTS_USER
from ci_stack._layout import ARTIFACT_TYPES
from ci_stack._layout import StackLayout
from verification import Artifact
from verification import Assertion
from verification import AssertionSuite
from verification import CommandAvailable
from verification import Directory
from verification import EffectiveUser
from verification import Endpoint
from verification import File
from verification import FirewallRule
from verification import HostResolves
from verification import ListeningPort
from verification import OsRelease
from verification import Package
from verification import Presence
from verification import RemoteSecret
from verification import Service
from verification import SuiteResult
from verification import SystemUser
from verification import round_trip_suites

SUPPORTED_DISTRIBUTIONS = ('debian', 'ubuntu')
REQUIRED_COMMANDS = ('apt-get', 'systemctl', 'curl')
# Package repositories are fetched by name; a host that cannot resolve it cannot deploy.
RESOLVED_HOST = 'pkg.jenkins.io'


class PreflightFailed(Exception):

    def __init__(self, result: SuiteResult):
        details = '; '.join(f'{r.assertion.artifact}: {r.detail}' for r in result.failures())
        super().__init__(f"Pre-flight {result.suite} failed: {details}")
        self.result = result


def deployed_artifacts(layout: StackLayout) -> Sequence[Artifact]:
    """Everything a complete deployment creates, checked after deploy and after cleanup."""
    admin = (layout.admin_username, RemoteSecret(layout.admin_password_file()))
    artifacts = [
        Service('jenkins'),
        Service('nginx'),
        Service('netdata'),
        Service('artifact-upload'),
        Service('fail2ban'),
        ListeningPort(layout.jenkins_port),
        ListeningPort(layout.http_port),
        ListeningPort(layout.netdata_port),
        ListeningPort(layout.artifact_upload_port),
        Directory(layout.deployment_root),
        Directory(layout.config_dir()),
        Directory(layout.logs_dir()),
        Directory(layout.scripts_dir()),
        Directory(layout.data_root),
        Directory(layout.artifacts_dir(), owner=ARTIFACTS_USER),
        *[Directory(f'{layout.artifacts_dir()}/{t}') for t in ARTIFACT_TYPES],
        Directory('/var/lib/jenkins', owner='jenkins'),
        File(layout.htpasswd_file(), mode=0o640),
        File(layout.admin_password_file(), mode=0o600, owner='root'),
        Package('jenkins'),
        Package('nginx'),
        Package('netdata'),
        Package('fail2ban'),
        SystemUser('jenkins'),
        SystemUser(ARTIFACTS_USER),
        FirewallRule(layout.http_port),
        FirewallRule(layout.https_port),
        FirewallRule(layout.jenkins_port),
        Endpoint(layout.jenkins_port, expected=(200, 403), label='direct'),
        ]
    for name in ('', 'jenkins', 'monitoring'):
        host = layout.subdomain(name) if name else layout.domain_name
        authenticated = (200, 403) if name == 'jenkins' else (200,)
        artifacts.append(Endpoint(layout.http_port, expected=(401,), host_header=host, label='anonymous'))
        artifacts.append(Endpoint(
            layout.http_port, expected=authenticated, host_header=host, credentials=admin, label='admin'))
    artifacts.append(Endpoint(
        layout.http_port, host_header=layout.subdomain('artifacts'), label='public'))
    return artifacts


def stack_suites(layout: StackLayout) -> Tuple[AssertionSuite, AssertionSuite]:
    return round_trip_suites(deployed_artifacts(layout))


def preflight_suite(direction: str = 'deploy') -> AssertionSuite:
    """Host readiness: root, a supported distribution, name resolution, tools.

    Cleanup only needs root and the tools; nothing is downloaded.
    """
    assertions = [Assertion(EffectiveUser('root'), True, 'user:root', Presence.PRESENT)]
    if direction == 'deploy':
        assertions.extend([
            Assertion(OsRelease(SUPPORTED_DISTRIBUTIONS), True, 'os-release', Presence.PRESENT),
            Assertion(HostResolves(RESOLVED_HOST), True, f'dns:{RESOLVED_HOST}', Presence.PRESENT),
            ])
        commands = REQUIRED_COMMANDS
    else:
        commands = ('apt-get', 'systemctl')
    for command in commands:
        assertions.append(Assertion(CommandAvailable(command), True, f'command:{command}', Presence.PRESENT))
    return AssertionSuite(f'preflight-{direction}', assertions)
