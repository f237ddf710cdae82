# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import socket
import warnings
from abc import ABCMeta
from abc import abstractmethod
from typing import Collection
from typing import NamedTuple
from typing import Optional
from typing import Sequence
from typing import Tuple
from typing import Union

import requests
import urllib3
from urllib3.exceptions import InsecureRequestWarning

from os_access import quote_arg
from verification._target import Target

_logger = logging.getLogger(__name__)


class Observation(NamedTuple):
    observed: bool
    detail: str


class Predicate(metaclass=ABCMeta):
    """Read-only query of live state.

    Failing to observe (e.g. a command that cannot run at all) raises;
    that is not the same as observing False.
    """

    @abstractmethod
    def observe(self, target: Target) -> Observation:
        pass

    @abstractmethod
    def __repr__(self):
        pass


class ServiceActive(Predicate):

    def __init__(self, name: str):
        self._name = name

    def __repr__(self):
        return f'{ServiceActive.__name__}({self._name!r})'

    def observe(self, target):
        result = target.shell().run(['systemctl', 'is-active', self._name], check=False)
        state = result.stdout.decode().strip() or 'unknown'
        return Observation(state == 'active', f"service {self._name} is {state}")


class ProcessRunning(Predicate):

    def __init__(self, name: str):
        self._name = name

    def __repr__(self):
        return f'{ProcessRunning.__name__}({self._name!r})'

    def observe(self, target):
        result = target.shell().run(['pgrep', '-x', self._name], check=False)
        pids = result.stdout.decode().split()
        if result.returncode == 0:
            return Observation(True, f"process {self._name} runs as PID {', '.join(pids)}")
        if result.returncode == 1:
            return Observation(False, f"no process {self._name}")
        raise RuntimeError(f"pgrep exited with {result.returncode}: {result.stderr.decode()}")


def listening_ports(ss_output: str) -> Collection[int]:
    """Local ports of `ss -Htln` output.

    >>> sorted(listening_ports('''
    ... LISTEN 0      511          0.0.0.0:80        0.0.0.0:*
    ... LISTEN 0      50                 *:8080            *:*
    ... LISTEN 0      4096            [::]:19999        [::]:*
    ... LISTEN 0      128   127.0.0.53%lo:53         0.0.0.0:*
    ... '''))
    [53, 80, 8080, 19999]
    """
    ports = set()
    for line in ss_output.splitlines():
        fields = line.split()
        if len(fields) < 4:
            continue
        _address, _colon, port = fields[3].rpartition(':')
        ports.add(int(port))
    return ports


class PortListening(Predicate):

    def __init__(self, port: int):
        self._port = port

    def __repr__(self):
        return f'{PortListening.__name__}({self._port})'

    def observe(self, target):
        ports = listening_ports(target.shell().output(['ss', '-Htln']))
        if self._port in ports:
            return Observation(True, f"TCP port {self._port} is listening")
        return Observation(False, f"TCP port {self._port} is not listening")


class TcpPortReachable(Predicate):

    def __init__(self, port: int, timeout_sec: float = 3):
        self._port = port
        self._timeout_sec = timeout_sec

    def __repr__(self):
        return f'{TcpPortReachable.__name__}({self._port})'

    def observe(self, target):
        address = (target.address(), self._port)
        try:
            with socket.create_connection(address, timeout=self._timeout_sec):
                pass
        except OSError as e:
            return Observation(False, f"TCP port {self._port} on {address[0]}: {e}")
        return Observation(True, f"TCP port {self._port} on {address[0]} accepts connections")


_missing_markers = ('No such file or directory', 'Not a directory')


def _stat(target: Target, path: str) -> Optional[Tuple[str, int, str]]:
    """Kind, mode and owner; None if there is no such path."""
    result = target.shell().run(['stat', '-c', '%F|%a|%U', path], check=False)
    if result.returncode != 0:
        stderr = result.stderr.decode(errors='backslashreplace')
        if any(marker in stderr for marker in _missing_markers):
            return None
        raise RuntimeError(f"Cannot inspect {path}: {stderr.strip()}")
    kind, mode, owner = result.stdout.decode().strip().split('|')
    return kind, int(mode, 8), owner


def _kind_matches(expected: str, actual: str) -> bool:
    """Match stat's %F.

    >>> _kind_matches('file', 'regular empty file')
    True
    >>> _kind_matches('directory', 'regular file')
    False
    >>> _kind_matches('any', 'symbolic link')
    True
    """
    if expected == 'any':
        return True
    if expected == 'file':
        return actual.startswith('regular')
    return actual == expected


class PathPresent(Predicate):
    """Exists and, if asked, has the kind, permissions and owner.

    An existing path with wrong attributes is not present
    and the detail tells what is wrong.
    """

    def __init__(
            self,
            path: str,
            kind: str = 'any',
            mode: Optional[int] = None,
            owner: Optional[str] = None,
            ):
        if kind not in ('any', 'file', 'directory', 'symbolic link'):
            raise ValueError(f"Unknown kind {kind!r}")
        self._path = path
        self._kind = kind
        self._mode = mode
        self._owner = owner

    def __repr__(self):
        return f'{PathPresent.__name__}({self._path!r}, {self._kind!r})'

    def observe(self, target):
        stat = _stat(target, self._path)
        if stat is None:
            return Observation(False, f"{self._path} does not exist")
        kind, mode, owner = stat
        problems = []
        if not _kind_matches(self._kind, kind):
            problems.append(f"is {kind}, expected {self._kind}")
        if self._mode is not None and mode != self._mode:
            problems.append(f"has mode {mode:o}, expected {self._mode:o}")
        if self._owner is not None and owner != self._owner:
            problems.append(f"is owned by {owner}, expected {self._owner}")
        if problems:
            return Observation(False, f"{self._path} exists but " + ', '.join(problems))
        return Observation(True, f"{self._path} is {kind} {mode:o} {owner}")


class PathAbsent(Predicate):

    def __init__(self, path: str):
        self._path = path

    def __repr__(self):
        return f'{PathAbsent.__name__}({self._path!r})'

    def observe(self, target):
        stat = _stat(target, self._path)
        if stat is None:
            return Observation(True, f"{self._path} does not exist")
        kind, mode, owner = stat
        return Observation(False, f"{self._path} is still there: {kind} {mode:o} {owner}")


def _dpkg_status(target: Target, package: str) -> Optional[str]:
    result = target.shell().run(
        ['dpkg-query', '-W', '-f', '${Status}', package], check=False)
    if result.returncode != 0:
        return None
    return result.stdout.decode().strip()


class PackageInstalled(Predicate):

    def __init__(self, name: str):
        self._name = name

    def __repr__(self):
        return f'{PackageInstalled.__name__}({self._name!r})'

    def observe(self, target):
        status = _dpkg_status(target, self._name)
        if status is None:
            return Observation(False, f"package {self._name} is unknown to dpkg")
        if status.endswith(' installed'):
            return Observation(True, f"package {self._name}: {status}")
        return Observation(False, f"package {self._name}: {status}")


class PackageAbsent(Predicate):
    """Removed with configuration: "config-files" state is not absent."""

    def __init__(self, name: str):
        self._name = name

    def __repr__(self):
        return f'{PackageAbsent.__name__}({self._name!r})'

    def observe(self, target):
        status = _dpkg_status(target, self._name)
        if status is None or status.endswith(' not-installed'):
            return Observation(True, f"package {self._name} is not installed")
        if status.endswith(' config-files'):
            return Observation(False, f"package {self._name} is removed but its config files remain")
        return Observation(False, f"package {self._name}: {status}")


class UserExists(Predicate):

    def __init__(self, name: str):
        self._name = name

    def __repr__(self):
        return f'{UserExists.__name__}({self._name!r})'

    def observe(self, target):
        result = target.shell().run(['getent', 'passwd', self._name], check=False)
        if result.returncode == 0:
            return Observation(True, f"user {self._name} exists")
        return Observation(False, f"no user {self._name}")


def firewall_allowed_ports(ufw_status: str) -> Optional[Collection[int]]:
    """Ports with ALLOW rules; None if the firewall is off.

    >>> sorted(firewall_allowed_ports('''Status: active
    ...
    ... To                         Action      From
    ... --                         ------      ----
    ... 4926/tcp                   ALLOW       Anywhere
    ... 80/tcp                     ALLOW       Anywhere
    ... 8080/tcp                   DENY        Anywhere
    ... 80/tcp (v6)                ALLOW       Anywhere (v6)
    ... '''))
    [80, 4926]
    >>> firewall_allowed_ports('Status: inactive') is None
    True
    """
    lines = ufw_status.strip().splitlines()
    if not lines or lines[0].strip() != 'Status: active':
        return None
    ports = set()
    for line in lines[1:]:
        fields = line.split()
        if 'ALLOW' not in fields:
            continue
        port, _slash, _proto = fields[0].partition('/')
        if port.isdigit():
            ports.add(int(port))
    return ports


class FirewallAllows(Predicate):

    def __init__(self, port: int):
        self._port = port

    def __repr__(self):
        return f'{FirewallAllows.__name__}({self._port})'

    def observe(self, target):
        result = target.shell().run(['ufw', 'status'], check=False)
        if result.returncode != 0:
            return Observation(False, f"ufw status failed: {result.stderr.decode().strip()}")
        ports = firewall_allowed_ports(result.stdout.decode())
        if ports is None:
            return Observation(False, "firewall is inactive")
        if self._port in ports:
            return Observation(True, f"firewall allows {self._port}/tcp")
        return Observation(False, f"firewall has no rule allowing {self._port}/tcp")


class RemoteSecret:
    """Secret generated on the target, read when an observation is made."""

    def __init__(self, path: str):
        self._path = path

    def __repr__(self):
        return f'{RemoteSecret.__name__}({self._path!r})'

    def read(self, target: Target) -> str:
        return target.shell().output(['cat', self._path]).strip()


Credentials = Tuple[str, Union[str, RemoteSecret]]


class _HttpPredicate(Predicate, metaclass=ABCMeta):

    def __init__(
            self,
            port: int,
            path: str = '/',
            host_header: Optional[str] = None,
            credentials: Optional[Credentials] = None,
            scheme: str = 'http',
            timeout_sec: float = 10,
            ):
        self._port = port
        self._path = path
        self._host_header = host_header
        self._credentials = credentials
        self._scheme = scheme
        self._timeout_sec = timeout_sec

    def _get(self, target: Target) -> Tuple[str, Union[requests.Response, requests.RequestException]]:
        url = f'{self._scheme}://{target.address()}:{self._port}{self._path}'
        headers = {'Host': self._host_header} if self._host_header else {}
        auth = None
        if self._credentials is not None:
            user, password = self._credentials
            if isinstance(password, RemoteSecret):
                password = password.read(target)
            auth = (user, password)
        with requests.Session() as session:
            # The target is addressed directly, never through a proxy from the environment.
            session.trust_env = False
            try:
                # Certificates are issued for the public name, the address is internal.
                with warnings.catch_warnings():
                    urllib3.disable_warnings(InsecureRequestWarning)
                    response = session.get(
                        url, headers=headers, auth=auth, timeout=self._timeout_sec,
                        allow_redirects=False, verify=False)
            except requests.RequestException as e:
                _logger.debug("GET %s: %s", url, e)
                return url, e
        _logger.debug("GET %s: %d", url, response.status_code)
        return url, response


class HttpStatus(_HttpPredicate):

    def __init__(self, port: int, path: str = '/', expected: Sequence[int] = (200,), **kwargs):
        super().__init__(port, path, **kwargs)
        self._expected = tuple(expected)

    def __repr__(self):
        host = f' Host: {self._host_header}' if self._host_header else ''
        auth = ' with credentials' if self._credentials else ''
        return f'{HttpStatus.__name__}({self._port}, {self._path!r}{host}{auth} in {self._expected})'

    def observe(self, target):
        url, response = self._get(target)
        if isinstance(response, requests.RequestException):
            return Observation(False, f"GET {url}: {response.__class__.__name__}: {response}")
        observed = response.status_code in self._expected
        return Observation(observed, f"GET {url}: {response.status_code}, expected {self._expected}")


class HttpResponds(_HttpPredicate):
    """Any HTTP response at all, whatever the status."""

    def __repr__(self):
        return f'{HttpResponds.__name__}({self._port}, {self._path!r})'

    def observe(self, target):
        url, response = self._get(target)
        if isinstance(response, requests.RequestException):
            return Observation(False, f"GET {url}: no response: {response.__class__.__name__}")
        return Observation(True, f"GET {url}: {response.status_code}")


class CommandAvailable(Predicate):

    def __init__(self, name: str):
        self._name = name

    def __repr__(self):
        return f'{CommandAvailable.__name__}({self._name!r})'

    def observe(self, target):
        result = target.shell().run(f'command -v {quote_arg(self._name)}', check=False)
        if result.returncode == 0:
            return Observation(True, f"{self._name} is {result.stdout.decode().strip()}")
        return Observation(False, f"{self._name} is not found in PATH")


def parse_os_release(text: str):
    """Key-value pairs of /etc/os-release.

    >>> release = parse_os_release('''
    ... PRETTY_NAME="Ubuntu 22.04.4 LTS"
    ... ID=ubuntu
    ... ID_LIKE=debian
    ... # comment
    ... ''')
    >>> release['ID'], release['ID_LIKE'], release['PRETTY_NAME']
    ('ubuntu', 'debian', 'Ubuntu 22.04.4 LTS')
    """
    result = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith('#') or '=' not in line:
            continue
        key, _, value = line.partition('=')
        result[key] = value.strip('"\'')
    return result


class OsRelease(Predicate):
    """Distribution ID or one it is like (ID_LIKE) is in the list."""

    def __init__(self, ids: Collection[str]):
        self._ids = ids

    def __repr__(self):
        return f'{OsRelease.__name__}({sorted(self._ids)})'

    def observe(self, target):
        release = parse_os_release(target.shell().output(['cat', '/etc/os-release']))
        own_ids = [release.get('ID', ''), *release.get('ID_LIKE', '').split()]
        name = release.get('PRETTY_NAME', release.get('ID', 'unknown'))
        if any(own_id in self._ids for own_id in own_ids):
            return Observation(True, f"{name} is supported")
        return Observation(False, f"{name} is not one of {', '.join(sorted(self._ids))}")


class HostResolves(Predicate):

    def __init__(self, name: str):
        self._name = name

    def __repr__(self):
        return f'{HostResolves.__name__}({self._name!r})'

    def observe(self, target):
        result = target.shell().run(['getent', 'hosts', self._name], check=False)
        if result.returncode == 0:
            address = result.stdout.decode().split()[0]
            return Observation(True, f"{self._name} resolves to {address}")
        return Observation(False, f"{self._name} does not resolve")


class EffectiveUser(Predicate):

    def __init__(self, name: str):
        self._name = name

    def __repr__(self):
        return f'{EffectiveUser.__name__}({self._name!r})'

    def observe(self, target):
        user = target.shell().output(['id', '-un']).strip()
        return Observation(user == self._name, f"commands run as {user}")
