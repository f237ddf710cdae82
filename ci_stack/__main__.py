# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import signal
import sys
import threading

from ci_stack._assertions import preflight_suite
from ci_stack._cleanup_modules import cleanup_registry
from ci_stack._cli import StackContext
from ci_stack._cli import main
from ci_stack._deploy_modules import deploy_registry
from ci_stack._layout import StackLayout
from ci_stack._prompt import confirm
from directories import get_log_root
from directories import get_report_root
from directories import get_state_root
from directories import run_metadata
from os_access.local_shell import local_shell
from runner import init_logging
from verification import Target


def _install_signal_handlers(cancel: threading.Event):
    """First signal asks to stop after the current module; the second one is not caught."""

    def _handler(signum, _frame):
        _logger.warning(
            "%s: stopping after the current module; repeat to interrupt it",
            signal.Signals(signum).name)
        cancel.set()
        signal.signal(signal.SIGINT, signal.default_int_handler)
        signal.signal(signal.SIGTERM, signal.SIG_DFL)

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def _default_context() -> StackContext:
    layout = StackLayout.from_config()
    cancel = threading.Event()
    _install_signal_handlers(cancel)
    return StackContext(
        registries={
            'deploy': deploy_registry(layout),
            'cleanup': cleanup_registry(layout),
            },
        preflight={
            'deploy': preflight_suite('deploy'),
            'cleanup': preflight_suite('cleanup'),
            },
        target=Target(local_shell, '127.0.0.1'),
        state_root=get_state_root(),
        log_root=get_log_root(),
        report_root=get_report_root(),
        metadata=run_metadata(),
        confirm=confirm,
        cancel=cancel,
        )


_logger = logging.getLogger(__name__)


if __name__ == '__main__':
    init_logging('ci_stack')
    exit(main(sys.argv[1:], _default_context()))
