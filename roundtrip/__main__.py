# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import argparse
import logging
import sys
from functools import partial
from pathlib import Path

from ci_stack import StackLayout
from ci_stack import cleanup_registry
from ci_stack import deploy_registry
from ci_stack import stack_suites
from config import config_list
from config import global_config
from directories import get_report_root
from directories import get_run_dir
from directories import run_metadata
from provisioning import PlanningError
from roundtrip._environment import docker_container
from roundtrip._environment import local_host
from roundtrip._harness import RoundTripHarness
from roundtrip._harness import SuitesNotInverse
from roundtrip._report import ReportStatus
from runner import init_logging


def main(args):
    parsed = _parse_args(args)
    layout = StackLayout.from_config()
    deploy_suite, cleanup_suite = stack_suites(layout)
    if parsed.local:
        environment = local_host
    else:
        build_dir = parsed.build_dir or global_config.get('container_build_dir') or None
        environment = partial(
            docker_container,
            parsed.image or global_config['container_image'],
            global_config['container_name'],
            build_dir=Path(build_dir) if build_dir else None,
            keep_image=parsed.keep_image,
            )
    skip = config_list(global_config, 'roundtrip_skip')
    harness = RoundTripHarness(
        deploy_registry(layout),
        cleanup_registry(layout),
        deploy_suite,
        cleanup_suite,
        environment,
        get_run_dir(),
        deploy_skip=skip,
        )
    try:
        report = harness.run()
    except (PlanningError, SuitesNotInverse) as e:
        _logger.error("Round trip not started: %s", e)
        return 2
    report.save(get_report_root(), **run_metadata())
    print(report.summary())
    return 0 if report.status() == ReportStatus.PASSED else 1


def _parse_args(args):
    parser = argparse.ArgumentParser(
        prog='roundtrip',
        description="Deploy the whole stack into a disposable host, verify, clean up, verify again.")
    parser.add_argument(
        '--local', action='store_true',
        help="Use this machine instead of a container. Only for disposable VMs.")
    parser.add_argument('--image', help="Container image, default from config")
    parser.add_argument('--build-dir', help="Build the image from this directory first")
    parser.add_argument(
        '--keep-image', action='store_true',
        help="Do not remove the image after the run")
    return parser.parse_args(args)


_logger = logging.getLogger(__name__)


if __name__ == '__main__':
    init_logging('roundtrip')
    exit(main(sys.argv[1:]))
