# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
from os_access._posix_shell import PosixShell


class _LocalShell(PosixShell):
    """This host, as the user running the tool; deploy and cleanup need root."""

    def __repr__(self):
        return '<LocalShell>'

    def _wrap(self, argv):
        return argv

    def is_working(self):
        return True


local_shell = _LocalShell()
