# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import fnmatch
import logging
import socket
from configparser import ConfigParser
from pathlib import Path
from typing import Collection
from typing import Mapping

_logger = logging.getLogger(__name__)


def _read_config(*paths: Path, host: str) -> Mapping[str, str]:
    """Read and resolve overrides according to versions.

    Sections are host masks: "[defaults]", "[ci-*]", "[ci-home01]".
    Optionally add ";v123" to sections like "[ci-*;v45]".
    If not specified, "v0" is assumed.
    Higher versions override lower versions.
    With equal versions, later files and later sections win.

    A per-user file can override values shipped with the repository,
    and a newer repository file can override an outdated per-user file
    by bumping the version of its section.
    """
    config_parts = []
    for path_i, path in enumerate(paths):
        config_parser = ConfigParser(interpolation=None)
        config_parser.read(path)
        sections = config_parser.sections()
        for section_i, section in enumerate(sections):
            mask, version = _parse_section_header(section)
            if fnmatch.fnmatch(host, mask):
                _logger.info("Config %s: section %s: read", path, section)
                items = config_parser.items(section)
                config_parts.append((version, path_i, section_i, items))
            else:
                _logger.debug("Config %s: section %s: skip", path, section)
    config_parts.sort(key=lambda part: part[:3])
    config = {}
    for _version, _path_i, _section_i, items in config_parts:
        config.update(items)
    return config


def _parse_section_header(section):
    """Split section name to a host mask and a version.

    >>> _parse_section_header('defaults')
    ('*', 0)
    >>> _parse_section_header('ci-*')
    ('ci-*', 0)
    >>> _parse_section_header('ci-*;v3')
    ('ci-*', 3)
    >>> _parse_section_header('ci-*;x3')  # doctest: +IGNORE_EXCEPTION_DETAIL
    Traceback (most recent call last):
    ...
    ValueError: Unknown x3 in ci-*;x3
    """
    if section == 'defaults':
        return '*', 0
    else:
        mask, semicolon, extra = section.partition(';')
        if not extra:
            return mask, 0
        elif extra.startswith('v'):
            try:
                return mask, int(extra[1:])
            except ValueError:
                raise ValueError(f"Cannot parse {extra} in {section}")
        else:
            raise ValueError(f"Unknown {extra} in {section}")


def config_path(config: Mapping[str, str], key: str) -> Path:
    return Path(config[key]).expanduser()


def config_list(config: Mapping[str, str], key: str) -> Collection[str]:
    """Parse comma-separated value; empty items are dropped.

    >>> config_list({'skip': 'dns, ,backup'}, 'skip')
    ['dns', 'backup']
    >>> config_list({}, 'skip')
    []
    """
    value = config.get(key, '')
    return [item.strip() for item in value.split(',') if item.strip()]


global_config = _read_config(
    Path(__file__).with_name('config.ini'),
    Path('~/.config/stack_provisioning.ini').expanduser(),
    host=socket.gethostname(),
    )

if __name__ == '__main__':
    for k, v in global_config.items():
        print(k + '=' + v)
