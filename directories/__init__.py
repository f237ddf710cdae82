# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
from directories._directories import get_log_root
from directories._directories import get_report_root
from directories._directories import get_run_dir
from directories._directories import get_state_root
from directories._metadata import run_metadata
from directories._metadata import run_started_at

__all__ = [
    'get_log_root',
    'get_report_root',
    'get_run_dir',
    'get_state_root',
    'run_metadata',
    'run_started_at',
    ]
