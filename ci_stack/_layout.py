# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
from typing import Mapping
from typing import NamedTuple

from config import global_config


class StackLayout(NamedTuple):
    """Names, paths and ports shared by deploy, cleanup and the suites."""

    domain_name: str
    admin_username: str
    deployment_root: str
    data_root: str
    backup_root: str
    central_log_dir: str
    nginx_conf_dir: str
    ssh_port: int
    http_port: int
    https_port: int
    jenkins_port: int
    artifact_upload_port: int
    netdata_port: int
    docker_registry_port: int
    dns_update_interval_min: int
    dynu_api_key_file: str

    @classmethod
    def from_config(cls, config: Mapping[str, str] = global_config) -> 'StackLayout':
        kwargs = {}
        for field, field_type in cls.__annotations__.items():
            kwargs[field] = field_type(config[field])
        return cls(**kwargs)

    def config_dir(self):
        return f'{self.deployment_root}/config'

    def scripts_dir(self):
        return f'{self.deployment_root}/scripts'

    def logs_dir(self):
        return f'{self.deployment_root}/logs'

    def artifacts_dir(self):
        return f'{self.data_root}/artifacts'

    def htpasswd_file(self):
        return f'{self.config_dir()}/users.htpasswd'

    def admin_password_file(self):
        return f'{self.config_dir()}/.admin-password'

    def subdomain(self, name):
        return f'{name}.{self.domain_name}'


ARTIFACTS_USER = 'artifacts'

ARTIFACT_TYPES = ('iso', 'jar', 'npm', 'python', 'docker')
