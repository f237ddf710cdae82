# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import os
from functools import lru_cache
from pathlib import Path

from config import config_path
from config import global_config
from directories._metadata import run_started_at

_logger = logging.getLogger(__name__)


@lru_cache()
def get_state_root() -> Path:
    """Idempotency records; must survive restarts and be kept between runs."""
    return _ensure_dir('state_dir')


@lru_cache()
def get_report_root() -> Path:
    return _ensure_dir('report_dir')


@lru_cache()
def get_log_root() -> Path:
    return _ensure_dir('log_dir')


@lru_cache()
def get_run_dir() -> Path:
    """Scratch directory of this process, e.g. for a round trip."""
    work_dir = _ensure_dir('work_dir')
    name = f'run_{run_started_at():%Y%m%d_%H%M%S}_{os.getpid()}'
    run_dir = work_dir / name
    run_dir.mkdir(parents=False, exist_ok=False)
    _make_dir_link(run_dir, 'latest', work_dir)
    _logger.info("Run dir: %s", run_dir)
    return run_dir


def _ensure_dir(key: str) -> Path:
    path = config_path(global_config, key)
    path.mkdir(parents=True, exist_ok=True)
    return path


def _make_dir_link(target: Path, name: str, base: Path):
    link = base / name
    try:
        link.unlink()
    except FileNotFoundError:
        pass
    try:
        link.symlink_to(target.relative_to(base), target_is_directory=True)
    except FileExistsError:
        # Parallel processes on the same host may race for the link.
        # It is a convenience for manual runs only.
        pass
