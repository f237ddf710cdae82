# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import subprocess
import time
from abc import ABCMeta
from abc import abstractmethod
from subprocess import CompletedProcess
from typing import Optional
from typing import Sequence
from typing import Union

_logger = logging.getLogger(__name__)

DEFAULT_RUN_TIMEOUT_SEC = 60

# In Python "bytes" in a type annotation denotes any of the following.
_Bytes = Union[bytes, bytearray, memoryview]


class CalledProcessError(subprocess.CalledProcessError):

    def __str__(self):
        stderr = (self.stderr or b'').decode(errors='backslashreplace')[:5000]
        if self.returncode is None:
            result = "no exit status"
        else:
            result = f"exit status {self.returncode} (0x{self.returncode & 0xFFFFFFFF:x})"
        return f"Command {self.cmd} died with {result}: {stderr}"


class Shell(metaclass=ABCMeta):
    """Run commands on a host: the local machine or an isolated one.

    A string is a shell script; a sequence is an argument vector.
    """

    @abstractmethod
    def _command_line(self, args: Union[str, Sequence]) -> Sequence[str]:
        pass

    def run(
            self,
            args: Union[str, Sequence],
            input: Optional[_Bytes] = None,  # noqa PyShadowingBuiltins
            timeout_sec: Optional[float] = DEFAULT_RUN_TIMEOUT_SEC,
            check=True,
            ) -> CompletedProcess:
        """Run to completion; timeout_sec=None waits as long as it takes."""
        command = self._command_line(args)
        started_at = time.monotonic()
        process = subprocess.run(
            command,
            input=bytes(input) if input is not None else None,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            timeout=timeout_sec,
            )
        _logger.debug(
            "%r: exit status %d after %.1f sec; stdout %d bytes, stderr %d bytes",
            self, process.returncode, time.monotonic() - started_at,
            len(process.stdout), len(process.stderr))
        if check and process.returncode != 0:
            raise CalledProcessError(process.returncode, args, process.stdout, process.stderr)
        return CompletedProcess(args, process.returncode, process.stdout, process.stderr)

    def output(self, args: Union[str, Sequence], timeout_sec: Optional[float] = DEFAULT_RUN_TIMEOUT_SEC) -> str:
        """Shortcut: stdout of a successful command as text."""
        return self.run(args, timeout_sec=timeout_sec).stdout.decode(errors='backslashreplace')

    @abstractmethod
    def is_working(self) -> bool:
        pass
