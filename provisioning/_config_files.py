# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import shlex

from provisioning._core import Run


class SetOption(Run):
    """Set "Key value" in a config file, uncommenting or appending it.

    >>> print(SetOption('/etc/ssh/sshd_config', 'Port', 4926)._command)
    grep -qE '^#? *Port ' /etc/ssh/sshd_config && sed -i -E 's/^#? *Port .*/Port 4926/' /etc/ssh/sshd_config || echo 'Port 4926' >> /etc/ssh/sshd_config
    """

    def __init__(self, path, key, value, separator=' '):
        line = f'{key}{separator}{value}'
        sed_line = line.replace('/', '\\/')
        path = shlex.quote(path)
        super().__init__(
            f"grep -qE {shlex.quote(f'^#? *{key}{separator}')} {path}"
            f" && sed -i -E {shlex.quote(f's/^#? *{key}{separator}.*/{sed_line}/')} {path}"
            f" || echo {shlex.quote(line)} >> {path}")


_logger = logging.getLogger(__name__)
