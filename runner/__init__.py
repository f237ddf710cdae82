# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
from runner._logging import init_logging

__all__ = [
    'init_logging',
    ]
