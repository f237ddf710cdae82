# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
"""Deployment of the CI/CD host: a reverse proxy in front of Jenkins, monitoring and artifacts.

Every body checks live state itself; the state store only saves time.
"""
import logging
import shlex
from pathlib import Path
from textwrap import dedent

from ci_stack._layout import ARTIFACTS_USER
from ci_stack._layout import ARTIFACT_TYPES
from ci_stack._layout import StackLayout
from provisioning import AddSystemUser
from provisioning import AptInstall
from provisioning import AptRepository
from provisioning import Check
from provisioning import CompositeCommand
from provisioning import InstallFile
from provisioning import LaunchSystemdService
from provisioning import Module
from provisioning import ModuleRegistry
from provisioning import Run
from provisioning import SetOption
from provisioning import SystemCtl

_logger = logging.getLogger(__name__)

_remote_dir = Path(__file__).with_name('_remote')

VERSION = '1.0.0'

BASE_PACKAGES = (
    'curl',
    'wget',
    'git',
    'vim',
    'htop',
    'net-tools',
    'dnsutils',
    'ca-certificates',
    'gnupg',
    'lsb-release',
    'apt-transport-https',
    'cron',
    'openssl',
    'iproute2',
    'python3',
    'unattended-upgrades',
    )

JENKINS_REPOSITORY = 'jenkins'


def _base_system(layout: StackLayout):
    q = shlex.quote
    return Module(
        'base-system',
        CompositeCommand([
            Run('DEBIAN_FRONTEND=noninteractive apt-get update'),
            AptInstall(*BASE_PACKAGES),
            InstallFile('/etc/apt/apt.conf.d/20auto-upgrades', dedent('''\
                APT::Periodic::Update-Package-Lists "1";
                APT::Periodic::Unattended-Upgrade "1";
                APT::Periodic::AutocleanInterval "7";
                ''')),
            Run(f'install -d -m 0755 {q(layout.deployment_root)} {q(layout.scripts_dir())} {q(layout.config_dir())}'),
            Run(f'install -d -m 0755 {q(layout.logs_dir())} {q(layout.logs_dir() + "/modules")}'),
            Run(f'install -d -m 0750 {q(layout.backup_root)} {q(layout.backup_root + "/config-snapshots")}'),
            Run(f'install -d -m 0755 {q(layout.central_log_dir)}'),
            InstallFile('/etc/sysctl.d/99-core-setup.conf', dedent('''\
                net.ipv4.tcp_syncookies = 1
                net.ipv4.conf.all.rp_filter = 1
                fs.inotify.max_user_watches = 524288
                ''')),
            Run('sysctl -p /etc/sysctl.d/99-core-setup.conf'),
            AptInstall('openssh-server'),
            SetOption('/etc/ssh/sshd_config', 'Port', layout.ssh_port),
            Check('sshd -t', "SSH daemon configuration is invalid"),
            SystemCtl('enable', 'ssh'),
            SystemCtl('restart', 'ssh'),
            ]),
        version=VERSION,
        description="Base packages, unattended upgrades, directories, kernel settings, SSH port",
        invalidates=['backup-configs', 'remove-directories', 'remove-packages', 'sweep-leftover-directories'],
        )


def _firewall(layout: StackLayout):
    allowed_ports = [layout.http_port, layout.https_port, layout.jenkins_port, layout.docker_registry_port]
    return Module(
        'firewall',
        CompositeCommand([
            AptInstall('ufw', 'fail2ban'),
            Run('ufw default deny incoming'),
            Run('ufw default allow outgoing'),
            Run('ufw default deny routed'),
            Run('ufw logging low'),
            # Rate-limited, so that it is not locked out by mistake.
            Run(f'ufw limit {layout.ssh_port}/tcp'),
            *[Run(f'ufw allow {port}/tcp') for port in allowed_ports],
            Run('ufw --force enable'),
            InstallFile('/etc/fail2ban/jail.local', dedent(f'''\
                [DEFAULT]
                bantime = 3600
                findtime = 600
                maxretry = 5
                ignoreip = 127.0.0.1/8 ::1
                banaction = ufw
                banaction_allports = ufw

                [sshd]
                enabled = true
                port = {layout.ssh_port}
                backend = systemd
                ''')),
            SystemCtl('enable', 'fail2ban'),
            SystemCtl('restart', 'fail2ban'),
            ]),
        depends_on=['base-system'],
        version=VERSION,
        description="UFW rules and fail2ban",
        invalidates=['backup-configs', 'stop-services', 'reset-firewall', 'remove-packages'],
        )


def _users(layout: StackLayout):
    password_file = shlex.quote(layout.admin_password_file())
    htpasswd_file = shlex.quote(layout.htpasswd_file())
    user = shlex.quote(layout.admin_username)
    # The password is generated once; later runs sync htpasswd with the kept file.
    # It is passed on stdin, never in arguments.
    script = f'''
        if [ ! -s {password_file} ]; then
            (umask 077 && openssl rand -base64 18 > {password_file})
        fi
        chmod 600 {password_file}
        create=$(test -f {htpasswd_file} || echo -c)
        htpasswd $create -iB {htpasswd_file} {user} < {password_file}
        chown root:www-data {htpasswd_file}
        chmod 640 {htpasswd_file}
        '''
    return Module(
        'users',
        CompositeCommand([
            AptInstall('apache2-utils'),
            Run(f'install -d -m 0755 {shlex.quote(layout.config_dir())}'),
            Run(script),
            Check(
                f'htpasswd -vi {htpasswd_file} {user} < {password_file}',
                f"Password of {layout.admin_username} does not match {layout.htpasswd_file()}"),
            ]),
        depends_on=['base-system'],
        version=VERSION,
        description="Web users for basic authentication on the reverse proxy",
        invalidates=['backup-configs', 'remove-directories'],
        )


def _nginx_sites(layout: StackLayout):
    port = layout.http_port
    realm = layout.domain_name
    htpasswd = layout.htpasswd_file()
    jenkins = layout.subdomain('jenkins')
    monitoring = layout.subdomain('monitoring')
    artifacts = layout.subdomain('artifacts')
    return {
        layout.domain_name: dedent(f'''\
            server {{
                listen {port};
                listen [::]:{port};
                server_name {layout.domain_name};
                auth_basic "{realm}";
                auth_basic_user_file {htpasswd};
                root /var/www/core;
                index index.html;
                location / {{
                    try_files $uri $uri/ =404;
                }}
                add_header X-Frame-Options "DENY" always;
                add_header X-Content-Type-Options "nosniff" always;
            }}
            '''),
        jenkins: dedent(f'''\
            upstream jenkins {{
                server 127.0.0.1:{layout.jenkins_port} fail_timeout=0;
            }}
            server {{
                listen {port};
                listen [::]:{port};
                server_name {jenkins};
                auth_basic "{realm}";
                auth_basic_user_file {htpasswd};
                client_max_body_size 100m;
                location / {{
                    proxy_pass http://jenkins;
                    # Jenkins must not see credentials of the proxy.
                    proxy_set_header Authorization "";
                    proxy_set_header Host $host;
                    proxy_set_header X-Real-IP $remote_addr;
                    proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;
                    proxy_set_header X-Forwarded-Proto $scheme;
                    proxy_read_timeout 90;
                }}
            }}
            '''),
        monitoring: dedent(f'''\
            server {{
                listen {port};
                listen [::]:{port};
                server_name {monitoring};
                auth_basic "{realm}";
                auth_basic_user_file {htpasswd};
                location / {{
                    proxy_pass http://127.0.0.1:{layout.netdata_port}/;
                    proxy_set_header Host $host;
                    proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;
                }}
            }}
            '''),
        artifacts: dedent(f'''\
            server {{
                listen {port};
                listen [::]:{port};
                server_name {artifacts};
                client_max_body_size 1g;
                root {layout.artifacts_dir()};
                location / {{
                    autoindex on;
                    autoindex_exact_size off;
                }}
                location /upload/ {{
                    auth_basic "{realm}";
                    auth_basic_user_file {htpasswd};
                    proxy_pass http://127.0.0.1:{layout.artifact_upload_port};
                    proxy_set_header Host $host;
                    proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;
                    proxy_request_buffering off;
                }}
            }}
            '''),
        }


def nginx_site_names(layout: StackLayout):
    return list(_nginx_sites(layout))


def _nginx(layout: StackLayout):
    commands = [AptInstall('nginx')]
    for name, text in _nginx_sites(layout).items():
        available = f'{layout.nginx_conf_dir}/sites-available/{name}'
        enabled = f'{layout.nginx_conf_dir}/sites-enabled/{name}'
        commands.append(InstallFile(available, text))
        commands.append(Run(['ln', '-sfn', available, enabled]))
    commands.extend([
        InstallFile('/var/www/core/index.html', dedent(f'''\
            <!DOCTYPE html>
            <html><head><title>{layout.domain_name}</title></head>
            <body>
            <h1>{layout.domain_name}</h1>
            <ul>
            <li><a href="http://{layout.subdomain('jenkins')}/">Jenkins</a></li>
            <li><a href="http://{layout.subdomain('monitoring')}/">Monitoring</a></li>
            <li><a href="http://{layout.subdomain('artifacts')}/">Artifacts</a></li>
            </ul>
            </body></html>
            '''), owner='www-data'),
        Check('nginx -t', "Nginx configuration is invalid"),
        SystemCtl('enable', 'nginx'),
        SystemCtl('reload-or-restart', 'nginx'),
        InstallFile('/etc/fail2ban/jail.d/nginx.conf', dedent('''\
            [nginx-http-auth]
            enabled = true
            port = http,https
            logpath = /var/log/nginx/error.log
            maxretry = 3

            [nginx-botsearch]
            enabled = true
            port = http,https
            logpath = /var/log/nginx/access.log
            maxretry = 2
            bantime = 86400
            ''')),
        SystemCtl('restart', 'fail2ban'),
        ])
    return Module(
        'nginx',
        CompositeCommand(commands),
        depends_on=['base-system', 'firewall'],
        version=VERSION,
        description="Reverse proxy with virtual hosts for the main site, Jenkins, monitoring and artifacts",
        invalidates=['backup-configs', 'stop-services', 'remove-nginx-sites', 'remove-packages', 'sweep-leftover-directories'],
        )


def _netdata(layout: StackLayout):
    return Module(
        'netdata',
        CompositeCommand([
            AptInstall('netdata'),
            InstallFile('/etc/netdata/netdata.conf', dedent(f'''\
                [global]
                    run as user = netdata
                [web]
                    bind to = 127.0.0.1:{layout.netdata_port}
                '''), group='netdata'),
            SystemCtl('enable', 'netdata'),
            SystemCtl('restart', 'netdata'),
            Check(
                f'for i in $(seq 30); do curl -fsS -o /dev/null http://127.0.0.1:{layout.netdata_port}/ && exit 0; sleep 2; done; exit 1',
                f"Netdata does not answer on port {layout.netdata_port}"),
            ]),
        depends_on=['base-system'],
        version=VERSION,
        description="Netdata monitoring bound to localhost, published through the proxy",
        invalidates=['backup-configs', 'stop-services', 'remove-packages', 'sweep-leftover-directories'],
        )


def _jenkins(layout: StackLayout):
    java_options = '-Xmx2048m -Djava.awt.headless=true -Djenkins.install.runSetupWizard=false'
    return Module(
        'jenkins',
        CompositeCommand([
            AptInstall('fontconfig', 'default-jre-headless'),
            AptRepository(
                JENKINS_REPOSITORY,
                'https://pkg.jenkins.io/debian-stable/jenkins.io-2023.key',
                'https://pkg.jenkins.io/debian-stable binary/'),
            AptInstall('jenkins'),
            InstallFile('/etc/systemd/system/jenkins.service.d/override.conf', dedent(f'''\
                [Service]
                Environment="JENKINS_PORT={layout.jenkins_port}"
                Environment="JAVA_OPTS={java_options}"
                ''')),
            InstallFile(
                '/var/lib/jenkins/jenkins.model.JenkinsLocationConfiguration.xml',
                dedent(f'''\
                    <?xml version='1.1' encoding='UTF-8'?>
                    <jenkins.model.JenkinsLocationConfiguration>
                      <jenkinsUrl>http://{layout.subdomain('jenkins')}/</jenkinsUrl>
                    </jenkins.model.JenkinsLocationConfiguration>
                    '''),
                owner='jenkins'),
            SystemCtl('daemon-reload'),
            SystemCtl('enable', 'jenkins'),
            SystemCtl('restart', 'jenkins'),
            Check(
                f'for i in $(seq 60); do ss -Htln | grep -q ":{layout.jenkins_port} " && exit 0; sleep 5; done; exit 1',
                f"Jenkins does not listen on port {layout.jenkins_port}"),
            ]),
        depends_on=['base-system', 'firewall', 'users'],
        version=VERSION,
        description="Jenkins LTS from the upstream repository",
        invalidates=[
            'backup-configs', 'stop-services', 'remove-directories', 'remove-packages',
            'sweep-leftover-directories', 'remove-users', 'remove-repositories',
            ],
        )


def _artifact_storage(layout: StackLayout):
    q = shlex.quote
    artifacts_dir = layout.artifacts_dir()
    upload_script = f'{layout.scripts_dir()}/artifact-upload-api.py'
    retention_days = 90
    return Module(
        'artifact-storage',
        CompositeCommand([
            AddSystemUser(ARTIFACTS_USER),
            Run(f'install -d -m 0755 {q(layout.data_root)}'),
            Run(f'install -d -m 0755 -o {ARTIFACTS_USER} -g {ARTIFACTS_USER} {q(artifacts_dir)}'),
            *[
                Run(f'install -d -m 0755 -o {ARTIFACTS_USER} -g {ARTIFACTS_USER} {q(artifacts_dir + "/" + t)}')
                for t in ARTIFACT_TYPES
                ],
            InstallFile(upload_script, (_remote_dir / 'artifact-upload-api.py').read_bytes(), mode='u=rwx,go=rx'),
            LaunchSystemdService('artifact-upload.service', dedent(f'''\
                [Unit]
                Description=Artifact upload API
                After=network.target

                [Service]
                Type=simple
                User={ARTIFACTS_USER}
                Group={ARTIFACTS_USER}
                Environment="ARTIFACTS_DIR={artifacts_dir}"
                Environment="ARTIFACT_API_PORT={layout.artifact_upload_port}"
                ExecStart=/usr/bin/python3 {upload_script}
                Restart=on-failure

                [Install]
                WantedBy=multi-user.target
                ''')),
            InstallFile('/etc/cron.d/artifact-cleanup', dedent(f'''\
                # Artifacts older than {retention_days} days are deleted daily.
                30 3 * * * root find {artifacts_dir} -type f -mtime +{retention_days} -delete
                ''')),
            Check(
                f'for i in $(seq 30); do curl -fsS -o /dev/null http://127.0.0.1:{layout.artifact_upload_port}/health && exit 0; sleep 1; done; exit 1',
                f"Artifact upload API does not answer on port {layout.artifact_upload_port}"),
            ]),
        depends_on=['base-system', 'nginx', 'users'],
        version=VERSION,
        description="Artifact tree served by the proxy and the upload API behind it",
        invalidates=['backup-configs', 'stop-services', 'remove-cron-jobs', 'remove-directories', 'remove-users'],
        )


def _dns(layout: StackLayout):
    script = f'{layout.scripts_dir()}/update-dynu-dns.sh'
    key_file = layout.dynu_api_key_file
    command = shlex.join([script, layout.domain_name, key_file])
    return Module(
        'dns',
        CompositeCommand([
            Check(
                f'test -s {shlex.quote(key_file)}',
                f"Dynu API key is missing: put it to {key_file}"),
            Run(f'chmod 600 {shlex.quote(key_file)}'),
            InstallFile(script, (_remote_dir / 'update-dynu-dns.sh').read_bytes(), mode='u=rwx,go=rx'),
            Run(command),
            InstallFile('/etc/cron.d/dynu-dns-update', dedent(f'''\
                */{layout.dns_update_interval_min} * * * * root {command} >> /var/log/dynu-dns-update.log 2>&1
                ''')),
            ]),
        depends_on=['base-system'],
        version=VERSION,
        description=f"Dynamic DNS record of {layout.domain_name}",
        invalidates=['backup-configs', 'remove-cron-jobs', 'remove-dns-updater'],
        )


def deploy_registry(layout: StackLayout) -> ModuleRegistry:
    return ModuleRegistry([
        _base_system(layout),
        _firewall(layout),
        _users(layout),
        _nginx(layout),
        _netdata(layout),
        _jenkins(layout),
        _artifact_storage(layout),
        _dns(layout),
        ])
