# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import json
import logging
from abc import ABCMeta
from abc import abstractmethod
from datetime import datetime
from datetime import timezone
from pathlib import Path
from typing import Mapping
from typing import Sequence

_logger = logging.getLogger(__name__)


class EventSink(metaclass=ABCMeta):
    """Receiver of structured run events.

    Events: run_started, module_started, module_completed, module_failed,
    module_skipped, run_finished, run_crashed.
    """

    @abstractmethod
    def emit(self, event: str, **fields):
        pass


class NullEventSink(EventSink):

    def emit(self, event, **fields):
        pass


class CompositeEventSink(EventSink):

    def __init__(self, sinks: Sequence[EventSink]):
        self._sinks = sinks

    def emit(self, event, **fields):
        for sink in self._sinks:
            sink.emit(event, **fields)


class JsonLinesJournal(EventSink):
    """One JSON object per line, flushed after every event.

    The file is created on the first event,
    so a run that does nothing leaves nothing behind.
    """

    def __init__(self, path: Path):
        self._path = path

    def __repr__(self):
        return f'<JsonLinesJournal {self._path}>'

    def path(self) -> Path:
        return self._path

    def emit(self, event, **fields):
        record = {'ts': _now_iso(), 'event': event, **fields}
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open('a', encoding='utf-8') as f:
            f.write(json.dumps(record, default=str) + '\n')


def read_journal(path: Path) -> Sequence[Mapping]:
    with path.open(encoding='utf-8') as f:
        return [json.loads(line) for line in f if line.strip()]


class ChangeHistory(EventSink):
    """Human-readable audit trail shared by all runs on the host.

    Line format: [timestamp] [host] [user] ACTION: details
    """

    def __init__(self, path: Path, host: str, user: str):
        self._path = path
        self._host = host
        self._user = user

    def __repr__(self):
        return f'<ChangeHistory {self._path}>'

    def append(self, action: str, details: str):
        line = f'[{_now_iso()}] [{self._host}] [{self._user}] {action}: {details}\n'
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open('a', encoding='utf-8') as f:
            f.write(line)

    def emit(self, event, **fields):
        direction = fields.get('direction', '').upper()
        if event == 'run_started':
            self.append(f'{direction}_START', ', '.join(fields['plan']) or "nothing to do")
        elif event == 'run_finished':
            self.append(f'{direction}_{fields["status"].upper()}', fields['summary'])
        elif event == 'module_completed':
            self.append('MODULE_SUCCESS', f'{fields["module"]} v{fields["version"]}')
        elif event == 'module_failed':
            self.append('MODULE_FAILED', f'{fields["module"]}: {fields["error"]}')
        elif event == 'run_crashed':
            self.append(f'{direction}_CRASHED', fields['error'])


def _now_iso():
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds')
