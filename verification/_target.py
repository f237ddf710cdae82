# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
from os_access import Shell


class Target:
    """Host under verification: commands through the shell, network through the address."""

    def __init__(self, shell: Shell, address: str):
        self._shell = shell
        self._address = address

    def __repr__(self):
        return f'<Target {self._address} via {self._shell!r}>'

    def shell(self) -> Shell:
        return self._shell

    def address(self) -> str:
        return self._address
