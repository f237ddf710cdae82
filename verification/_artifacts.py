# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
from abc import ABCMeta
from abc import abstractmethod
from typing import List
from typing import Optional
from typing import Sequence
from typing import Tuple

from verification._predicates import Credentials
from verification._predicates import FirewallAllows
from verification._predicates import HttpResponds
from verification._predicates import HttpStatus
from verification._predicates import PackageAbsent
from verification._predicates import PackageInstalled
from verification._predicates import PathAbsent
from verification._predicates import PathPresent
from verification._predicates import PortListening
from verification._predicates import ServiceActive
from verification._predicates import TcpPortReachable
from verification._predicates import UserExists
from verification._suite import Assertion
from verification._suite import AssertionSuite
from verification._suite import Presence


class Artifact(metaclass=ABCMeta):
    """Piece of live state that deployment creates or must never create.

    Each artifact knows how to assert its own presence and absence,
    so suites built from artifacts are inverse of each other.
    """

    @abstractmethod
    def key(self) -> str:
        pass

    @abstractmethod
    def present(self) -> Sequence[Assertion]:
        pass

    @abstractmethod
    def absent(self) -> Sequence[Assertion]:
        pass

    def __repr__(self):
        return f'<{self.__class__.__name__} {self.key()}>'


class Service(Artifact):

    def __init__(self, name: str):
        self._name = name

    def key(self):
        return f'service:{self._name}'

    def present(self):
        return [Assertion(ServiceActive(self._name), True, self.key(), Presence.PRESENT)]

    def absent(self):
        return [Assertion(ServiceActive(self._name), False, self.key(), Presence.ABSENT)]


class ListeningPort(Artifact):

    def __init__(self, port: int):
        self._port = port

    def key(self):
        return f'port:{self._port}'

    def present(self):
        return [Assertion(PortListening(self._port), True, self.key(), Presence.PRESENT)]

    def absent(self):
        return [Assertion(PortListening(self._port), False, self.key(), Presence.ABSENT)]


class ReachablePort(Artifact):
    """Port checked from outside, through the network."""

    def __init__(self, port: int):
        self._port = port

    def key(self):
        return f'port:{self._port}'

    def present(self):
        return [Assertion(TcpPortReachable(self._port), True, self.key(), Presence.PRESENT)]

    def absent(self):
        return [Assertion(TcpPortReachable(self._port), False, self.key(), Presence.ABSENT)]


class Directory(Artifact):

    def __init__(self, path: str, mode: Optional[int] = None, owner: Optional[str] = None):
        self._path = path
        self._mode = mode
        self._owner = owner

    def key(self):
        return f'path:{self._path}'

    def present(self):
        predicate = PathPresent(self._path, 'directory', self._mode, self._owner)
        return [Assertion(predicate, True, self.key(), Presence.PRESENT)]

    def absent(self):
        return [Assertion(PathAbsent(self._path), True, self.key(), Presence.ABSENT)]


class File(Artifact):

    def __init__(self, path: str, mode: Optional[int] = None, owner: Optional[str] = None):
        self._path = path
        self._mode = mode
        self._owner = owner

    def key(self):
        return f'path:{self._path}'

    def present(self):
        predicate = PathPresent(self._path, 'file', self._mode, self._owner)
        return [Assertion(predicate, True, self.key(), Presence.PRESENT)]

    def absent(self):
        return [Assertion(PathAbsent(self._path), True, self.key(), Presence.ABSENT)]


class Package(Artifact):

    def __init__(self, name: str):
        self._name = name

    def key(self):
        return f'package:{self._name}'

    def present(self):
        return [Assertion(PackageInstalled(self._name), True, self.key(), Presence.PRESENT)]

    def absent(self):
        return [Assertion(PackageAbsent(self._name), True, self.key(), Presence.ABSENT)]


class SystemUser(Artifact):

    def __init__(self, name: str):
        self._name = name

    def key(self):
        return f'user:{self._name}'

    def present(self):
        return [Assertion(UserExists(self._name), True, self.key(), Presence.PRESENT)]

    def absent(self):
        return [Assertion(UserExists(self._name), False, self.key(), Presence.ABSENT)]


class FirewallRule(Artifact):

    def __init__(self, port: int):
        self._port = port

    def key(self):
        return f'firewall:{self._port}/tcp'

    def present(self):
        return [Assertion(FirewallAllows(self._port), True, self.key(), Presence.PRESENT)]

    def absent(self):
        return [Assertion(FirewallAllows(self._port), False, self.key(), Presence.ABSENT)]


class Endpoint(Artifact):
    """HTTP resource answering with a given status; after cleanup nothing answers."""

    def __init__(
            self,
            port: int,
            path: str = '/',
            expected: Sequence[int] = (200,),
            host_header: Optional[str] = None,
            credentials: Optional[Credentials] = None,
            label: str = '',
            ):
        self._port = port
        self._path = path
        self._expected = expected
        self._host_header = host_header
        self._credentials = credentials
        self._label = label

    def key(self):
        host = self._host_header or '*'
        suffix = f' ({self._label})' if self._label else ''
        return f'http:{host}:{self._port}{self._path}{suffix}'

    def present(self):
        predicate = HttpStatus(
            self._port, self._path, self._expected,
            host_header=self._host_header, credentials=self._credentials)
        return [Assertion(predicate, True, self.key(), Presence.PRESENT)]

    def absent(self):
        predicate = HttpResponds(self._port, self._path, host_header=self._host_header)
        return [Assertion(predicate, False, self.key(), Presence.ABSENT)]


def round_trip_suites(
        deployed: Sequence[Artifact],
        never_present: Sequence[Artifact] = (),
        ) -> Tuple[AssertionSuite, AssertionSuite]:
    """Post-deploy and post-cleanup suites that are inverse by construction."""
    deploy_assertions = []
    cleanup_assertions = []
    for artifact in deployed:
        deploy_assertions.extend(artifact.present())
        cleanup_assertions.extend(artifact.absent())
    for artifact in never_present:
        deploy_assertions.extend(artifact.absent())
        cleanup_assertions.extend(artifact.absent())
    return (
        AssertionSuite('post-deploy', deploy_assertions),
        AssertionSuite('post-cleanup', cleanup_assertions),
        )


def inverse_violations(deploy: AssertionSuite, cleanup: AssertionSuite) -> List[str]:
    """Artifacts the cleanup suite does not assert absent.

    Whatever the deploy suite expects present must be asserted absent after cleanup,
    and whatever must never exist must stay absent.
    """
    absent_after_cleanup = {
        a.artifact for a in cleanup.assertions() if a.presence == Presence.ABSENT}
    violations = []
    for assertion in deploy.assertions():
        if assertion.artifact in absent_after_cleanup:
            continue
        if assertion.presence == Presence.PRESENT:
            violations.append(f"{assertion.artifact}: present after deploy, not asserted absent after cleanup")
        else:
            violations.append(f"{assertion.artifact}: never present, not asserted absent after cleanup")
    return violations
