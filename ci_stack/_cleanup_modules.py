# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
"""Teardown of the CI/CD host, ordered by resource lifetimes.

Services stop before their files go; the firewall is reset before
the packages that ship its jails are purged; directories the purge
leaves behind are swept after it. The SSH rule and the SSH port stay:
the host must remain reachable.
"""
import logging
import shlex
from textwrap import dedent

from ci_stack._deploy_modules import JENKINS_REPOSITORY
from ci_stack._deploy_modules import VERSION
from ci_stack._deploy_modules import nginx_site_names
from ci_stack._layout import ARTIFACTS_USER
from ci_stack._layout import StackLayout
from provisioning import AptPurge
from provisioning import AptRepository
from provisioning import CompositeCommand
from provisioning import Module
from provisioning import ModuleRegistry
from provisioning import RemovePaths
from provisioning import RemoveSystemdUnit
from provisioning import RemoveUser
from provisioning import Run
from provisioning import StopService
from provisioning import SystemCtl

_logger = logging.getLogger(__name__)

CLEANUP_BACKUP_ROOT = '/var/backups/core-setup-cleanup'

PURGED_PACKAGES = (
    'jenkins',
    'fail2ban',
    'nginx',
    'nginx-common',
    'nginx-core',
    'nginx-full',
    'netdata',
    'netdata-core',
    'netdata-plugins-bash',
    'netdata-plugins-python',
    'netdata-web',
    )

# Cleanup with --keep-packages leaves packages, their files and repositories.
KEEP_PACKAGES_SKIP = ('remove-packages', 'sweep-leftover-directories', 'remove-repositories')


def _backup_configs(layout: StackLayout):
    q = shlex.quote
    nginx = q(layout.nginx_conf_dir)
    script = f'''
        backup_dir={q(CLEANUP_BACKUP_ROOT)}/$(date +%Y%m%d-%H%M%S)
        install -d -m 0700 "$backup_dir"
        if [ -d {q(layout.deployment_root)} ]; then
            cp -a {q(layout.deployment_root)} "$backup_dir/"
        fi
        if [ -d {nginx} ]; then
            install -d "$backup_dir/nginx"
            for item in nginx.conf sites-available sites-enabled conf.d; do
                if [ -e {nginx}/$item ]; then
                    cp -a {nginx}/$item "$backup_dir/nginx/"
                fi
            done
        fi
        if [ -d /etc/fail2ban ]; then
            cp -a /etc/fail2ban "$backup_dir/"
        fi
        echo "$backup_dir"
        '''
    return Module(
        'backup-configs',
        Run(script),
        version=VERSION,
        description=f"Copy deployment and proxy configuration to {CLEANUP_BACKUP_ROOT}",
        )


def _stop_services(layout: StackLayout):
    return Module(
        'stop-services',
        CompositeCommand([
            RemoveSystemdUnit('artifact-upload.service'),
            StopService('jenkins'),
            StopService('netdata'),
            StopService('nginx'),
            StopService('fail2ban'),
            ]),
        depends_on=['backup-configs'],
        version=VERSION,
        description="Stop and disable every service of the stack",
        invalidates=['firewall', 'nginx', 'netdata', 'jenkins', 'artifact-storage'],
        )


def _remove_nginx_sites(layout: StackLayout):
    paths = []
    for name in nginx_site_names(layout):
        paths.append(f'{layout.nginx_conf_dir}/sites-enabled/{name}')
        paths.append(f'{layout.nginx_conf_dir}/sites-available/{name}')
    return Module(
        'remove-nginx-sites',
        RemovePaths(*paths, '/etc/fail2ban/jail.d/nginx.conf', '/var/www/core'),
        depends_on=['stop-services'],
        version=VERSION,
        description="Virtual hosts and the main site content",
        invalidates=['nginx'],
        )


def _remove_cron_jobs(layout: StackLayout):
    # A crontab entry is how older deployments scheduled DNS updates.
    legacy_crontab = dedent('''
        if crontab -l > /dev/null 2>&1 && crontab -l | grep -qF update-dynu-dns.sh; then
            crontab -l | grep -vF update-dynu-dns.sh | crontab -
        fi
        ''')
    return Module(
        'remove-cron-jobs',
        CompositeCommand([
            RemovePaths('/etc/cron.d/artifact-cleanup', '/etc/cron.d/dynu-dns-update'),
            Run(legacy_crontab),
            ]),
        depends_on=['backup-configs'],
        version=VERSION,
        description="Artifact retention and DNS update schedules",
        invalidates=['artifact-storage', 'dns'],
        )


def _remove_dns_updater(layout: StackLayout):
    return Module(
        'remove-dns-updater',
        RemovePaths(
            f'{layout.scripts_dir()}/update-dynu-dns.sh',
            layout.dynu_api_key_file,
            '/var/log/dynu-dns-update.log',
            ),
        depends_on=['remove-cron-jobs'],
        version=VERSION,
        description="Dynamic DNS script, its API key and log",
        invalidates=['dns'],
        )


def _reset_firewall(layout: StackLayout):
    ports = [layout.http_port, layout.https_port, layout.jenkins_port, layout.docker_registry_port]
    # The rate-limited SSH rule is not touched.
    script = dedent(f'''
        if command -v ufw > /dev/null; then
            for port in {' '.join(str(p) for p in ports)}; do
                if ufw show added | grep -qxF "ufw allow $port/tcp"; then
                    ufw delete allow "$port/tcp"
                fi
            done
        fi
        ''')
    return Module(
        'reset-firewall',
        Run(script),
        depends_on=['stop-services'],
        version=VERSION,
        description="Close service ports, keep SSH open",
        invalidates=['firewall'],
        )


def _remove_directories(layout: StackLayout):
    return Module(
        'remove-directories',
        RemovePaths(
            layout.deployment_root,
            layout.data_root,
            layout.backup_root,
            layout.central_log_dir,
            '/var/lib/jenkins',
            '/var/cache/jenkins',
            '/var/log/jenkins',
            ),
        depends_on=['stop-services', 'remove-nginx-sites', 'remove-dns-updater'],
        version=VERSION,
        description="Deployment, data, backup and log directories",
        invalidates=['base-system', 'users', 'jenkins', 'artifact-storage', 'dns'],
        )


def _remove_packages(layout: StackLayout):
    return Module(
        'remove-packages',
        CompositeCommand([
            AptPurge(*PURGED_PACKAGES),
            Run('DEBIAN_FRONTEND=noninteractive apt-get -y autoremove'),
            Run('apt-get clean'),
            ]),
        depends_on=['reset-firewall', 'remove-directories'],
        version=VERSION,
        description="Purge Jenkins, Nginx, Netdata and fail2ban",
        invalidates=['firewall', 'nginx', 'netdata', 'jenkins'],
        )


def _sweep_leftover_directories(layout: StackLayout):
    return Module(
        'sweep-leftover-directories',
        CompositeCommand([
            RemovePaths(
                layout.nginx_conf_dir,
                '/etc/fail2ban',
                '/etc/netdata',
                '/opt/netdata',
                '/var/lib/netdata',
                '/var/cache/netdata',
                '/var/log/netdata',
                '/var/lib/fail2ban',
                '/var/lib/jenkins',
                '/var/www/html',
                '/etc/systemd/system/jenkins.service.d',
                ),
            SystemCtl('daemon-reload'),
            ]),
        depends_on=['remove-packages'],
        version=VERSION,
        description="Directories package purge leaves behind",
        invalidates=['firewall', 'nginx', 'netdata', 'jenkins'],
        )


def _remove_users(layout: StackLayout):
    return Module(
        'remove-users',
        CompositeCommand([
            RemoveUser('jenkins'),
            RemoveUser(ARTIFACTS_USER),
            ]),
        depends_on=['stop-services', 'remove-directories'],
        version=VERSION,
        description="System users of Jenkins and the artifact upload API",
        invalidates=['jenkins', 'artifact-storage'],
        )


def _remove_repositories(layout: StackLayout):
    return Module(
        'remove-repositories',
        CompositeCommand([
            RemovePaths(*AptRepository.files(JENKINS_REPOSITORY)),
            Run('DEBIAN_FRONTEND=noninteractive apt-get update'),
            ]),
        depends_on=['remove-packages'],
        version=VERSION,
        description="Jenkins package repository and its signing key",
        invalidates=['jenkins'],
        )


def cleanup_registry(layout: StackLayout) -> ModuleRegistry:
    return ModuleRegistry([
        _backup_configs(layout),
        _stop_services(layout),
        _remove_nginx_sites(layout),
        _remove_cron_jobs(layout),
        _remove_dns_updater(layout),
        _reset_firewall(layout),
        _remove_directories(layout),
        _remove_packages(layout),
        _sweep_leftover_directories(layout),
        _remove_users(layout),
        _remove_repositories(layout),
        ])
