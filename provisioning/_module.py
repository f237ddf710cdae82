# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import re
from typing import Collection
from typing import Dict
from typing import Iterable
from typing import Iterator
from typing import Sequence

from os_access import Shell
from provisioning._core import Command

_name_re = re.compile(r'[A-Za-z0-9][A-Za-z0-9_.-]*')


def _validate_name(name: str):
    """Names are listed comma-separated on the command line.

    >>> _validate_name('artifact-storage')
    >>> _validate_name('nginx,jenkins') # doctest: +IGNORE_EXCEPTION_DETAIL
    Traceback (most recent call last):
    ...
    ValueError: Invalid module name 'nginx,jenkins'
    """
    if not isinstance(name, str) or _name_re.fullmatch(name) is None:
        raise ValueError(f"Invalid module name {name!r}")


class Module:
    """Named idempotent unit of work; a second run must be a no-op.

    The version is part of the idempotency record: bump it when the body
    changes so hosts provisioned with the old body get it again.
    Invalidated names are records of the opposite direction
    (deploy vs cleanup) made stale by a successful run of this module.
    """

    def __init__(
            self,
            name: str,
            body: Command,
            depends_on: Iterable[str] = (),
            version: str = '1',
            description: str = '',
            invalidates: Iterable[str] = (),
            ):
        _validate_name(name)
        depends_on = tuple(dict.fromkeys(depends_on))
        for dependency in depends_on:
            _validate_name(dependency)
        invalidates = tuple(dict.fromkeys(invalidates))
        for invalidated in invalidates:
            _validate_name(invalidated)
        self._name = name
        self._body = body
        self._depends_on = depends_on
        self._version = str(version)
        self._description = description
        self._invalidates = invalidates

    def __repr__(self):
        return f'<Module {self._name} v{self._version}>'

    def name(self) -> str:
        return self._name

    def depends_on(self) -> Collection[str]:
        return self._depends_on

    def version(self) -> str:
        return self._version

    def description(self) -> str:
        return self._description

    def invalidates(self) -> Collection[str]:
        return self._invalidates

    def run(self, shell: Shell):
        self._body.run(shell)


class ModuleRegistry:
    """Modules in registration order; the order breaks ties when planning."""

    def __init__(self, modules: Iterable[Module] = ()):
        self._modules: Dict[str, Module] = {}
        for module in modules:
            self.register(module)

    def __repr__(self):
        return f'<ModuleRegistry {", ".join(self._modules)}>'

    def register(self, module: Module):
        if module.name() in self._modules:
            raise ValueError(f"Module {module.name()!r} is already registered")
        self._modules[module.name()] = module

    def get(self, name: str) -> Module:
        return self._modules[name]

    def names(self) -> Sequence[str]:
        return list(self._modules)

    def __contains__(self, name):
        return name in self._modules

    def __iter__(self) -> Iterator[Module]:
        return iter(self._modules.values())

    def __len__(self):
        return len(self._modules)
