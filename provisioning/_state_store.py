# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import json
import logging
import os
import tempfile
from contextlib import ExitStack
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import List
from typing import NamedTuple
from typing import Optional

from provisioning._lock import AlreadyLocked
from provisioning._lock import run_lock
from provisioning._module import Module

_logger = logging.getLogger(__name__)


class StoreUnavailable(Exception):
    pass


class StoreLocked(StoreUnavailable):
    pass


class ModuleState(NamedTuple):
    module: str
    completed_at: datetime
    version: str
    outcome: str = 'success'

    def to_json(self):
        return {
            'module': self.module,
            'completed_at': self.completed_at.isoformat(),
            'version': self.version,
            'outcome': self.outcome,
            }

    @classmethod
    def from_json(cls, raw):
        return cls(
            module=raw['module'],
            completed_at=datetime.fromisoformat(raw['completed_at']),
            version=str(raw['version']),
            outcome=raw['outcome'],
            )


class StateStore:
    """Last successful run of each module; one JSON file per module.

    Files are meant to be read by humans too:
    `cat <state_dir>/deploy/nginx.json` shows when and which version.
    Only the presence of a record with a matching version matters
    for skipping; module bodies check live state by themselves.
    """

    def __init__(self, root: Path, namespace: str):
        self._namespace = namespace
        self._dir = root / namespace

    def __repr__(self):
        return f'<StateStore {self._dir}>'

    def namespace(self) -> str:
        return self._namespace

    def get(self, name: str) -> Optional[ModuleState]:
        path = self._record_path(name)
        try:
            text = path.read_text(encoding='utf-8')
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StoreUnavailable(f"Cannot read {path}: {e}")
        return self._decode(path, text)

    def put(self, state: ModuleState):
        path = self._record_path(state.module)
        content = json.dumps(state.to_json(), indent=4) + '\n'
        try:
            _atomic_write_text(path, content)
        except OSError as e:
            raise StoreUnavailable(f"Cannot write {path}: {e}")
        _logger.debug("%r: Saved %s", self, state)

    def delete(self, name: str) -> bool:
        path = self._record_path(name)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StoreUnavailable(f"Cannot delete {path}: {e}")
        _logger.info("%r: Forgot %s", self, name)
        return True

    def list(self) -> List[ModuleState]:
        try:
            paths = sorted(self._dir.glob('*.json'))
        except OSError as e:
            raise StoreUnavailable(f"Cannot list {self._dir}: {e}")
        records = []
        for path in paths:
            try:
                text = path.read_text(encoding='utf-8')
            except OSError as e:
                raise StoreUnavailable(f"Cannot read {path}: {e}")
            records.append(self._decode(path, text))
        return records

    def reset(self) -> List[str]:
        forgotten = []
        for state in self.list():
            if self.delete(state.module):
                forgotten.append(state.module)
        return forgotten

    def is_satisfied(self, module: Module) -> bool:
        state = self.get(module.name())
        return state is not None and state.version == module.version()

    @contextmanager
    def locked(self):
        """Fail fast if another run holds the store."""
        lock_file = self._dir / '.lock'
        with ExitStack() as stack:
            try:
                self._dir.mkdir(parents=True, exist_ok=True)
                stack.enter_context(run_lock(lock_file))
            except AlreadyLocked as e:
                raise StoreLocked(f"{self._dir} is used by another run: {e}")
            except OSError as e:
                raise StoreUnavailable(f"Cannot lock {lock_file}: {e}")
            yield

    def _record_path(self, name: str) -> Path:
        return self._dir / f'{name}.json'

    @staticmethod
    def _decode(path: Path, text: str) -> ModuleState:
        try:
            state = ModuleState.from_json(json.loads(text))
        except (ValueError, KeyError, TypeError) as e:
            raise StoreUnavailable(f"Corrupt record {path}: {e!r}")
        if state.module != path.stem:
            raise StoreUnavailable(f"Record {path} belongs to {state.module!r}")
        return state


def _atomic_write_text(path: Path, content: str):
    # A crash mid-write must not leave a truncated record behind.
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f'.{path.name}.', suffix='.tmp')
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        os.unlink(tmp_path)
        raise
