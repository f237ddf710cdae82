# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import getpass
import os
import socket
from datetime import datetime
from datetime import timezone
from functools import lru_cache
from typing import Mapping


@lru_cache()
def run_started_at() -> datetime:
    """Nearly unique id of the run, used in names of dirs, logs and reports."""
    return datetime.now(timezone.utc)


@lru_cache()
def run_metadata() -> Mapping[str, str]:
    return {
        'run_username': os.getenv('SUDO_USER') or getpass.getuser(),
        'run_hostname': socket.gethostname(),
        'run_started_at_iso': run_started_at().isoformat(timespec='microseconds'),
        'run_pid': str(os.getpid()),
        }
