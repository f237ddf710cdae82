# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import logging.handlers
from pathlib import Path

from directories import get_log_root

_formatter = logging.Formatter(
    '%(asctime)s %(threadName)10s %(name)s %(levelname)s %(message)s')


def init_logging(name: str, verbose: bool = False) -> Path:
    """Everything goes to the file; the terminal gets progress only."""
    logging.getLogger().setLevel(logging.DEBUG)
    log_file = _init_file_logging(get_log_root(), name)
    _init_stream_logging(logging.DEBUG if verbose else logging.INFO)
    return log_file


def _init_file_logging(log_dir: Path, name: str) -> Path:
    log_file = log_dir / f'{name}.log'
    file_handler = logging.handlers.RotatingFileHandler(
        log_file, maxBytes=200 * 1024**2, backupCount=6)
    file_handler.setFormatter(_formatter)
    file_handler.setLevel(logging.DEBUG)
    logging.getLogger().addHandler(file_handler)
    return log_file


def _init_stream_logging(level: int):
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(_formatter)
    stream_handler.setLevel(level)
    logging.getLogger().addHandler(stream_handler)
