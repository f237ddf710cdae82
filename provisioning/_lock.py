# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import fcntl
import logging
import os
import socket
from contextlib import contextmanager
from pathlib import Path

# "flock" locks an open file description, so two opens in one process
# exclude each other as well: two runs within a test are serialized too.
# See: https://man7.org/linux/man-pages/man2/flock.2.html

_logger = logging.getLogger(__name__)


class AlreadyLocked(Exception):

    def __init__(self, file: Path, holder: str):
        super().__init__(f"{file} is held by {holder or 'unknown process'}")
        self.holder = holder


@contextmanager
def run_lock(file: Path):
    """Exclusive non-blocking lock; the holder is written into the file.

    The lock dies with the process, so a crashed run never leaves
    the store locked. The file itself is left in place.
    """
    file.touch(exist_ok=True)
    with file.open('r+') as f:
        try:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            raise AlreadyLocked(file, f.read().strip())
        f.truncate()
        f.write(f'pid {os.getpid()} on {socket.gethostname()}\n')
        f.flush()
        _logger.debug("%s: Locked", file)
        try:
            yield
        finally:
            f.seek(0)
            f.truncate()
            _logger.debug("%s: Released", file)
