# Copyright (C) 2026 Linuxfabrik <info@linuxfabrik.ch>
#
# This program is free software; you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation; either version 2 of the License, or
# (at your option) any later version.
#
# On Debian systems, the complete text of the GNU General Public License
# version 2 can be found in /usr/share/common-licenses/GPL-2.
#
# SPDX-License-Identifier: GPL-2.0-or-later

"""YAML reader for proxy-init policy files.

A policy file is a flat mapping using the long option names as keys::

    incoming-proxy-port: 4143
    outgoing-proxy-port: 4140
    proxy-uid: 2102
    inbound-ports-to-ignore: [4190, 4191]
    outbound-ports-to-ignore: "443,6443"
    subnets-to-ignore:
      - 10.0.0.0/8
"""

import logging
import pathlib

import yaml

from ._errors import InvalidPolicyError
from .options import BOOL_OPTIONS, INT_OPTIONS, LIST_OPTIONS, ProxyInitOption

logger = logging.getLogger(__name__)

_TRUE_STRINGS = frozenset({'1', 'true', 'yes', 'on'})
_FALSE_STRINGS = frozenset({'0', 'false', 'no', 'off', ''})


def split_list(value) -> list[str]:
    """Turn a YAML list or a comma-separated string into a list of strings."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        items = value
    else:
        items = str(value).split(',')
    return [str(item).strip() for item in items if str(item).strip()]


def _to_bool(key: ProxyInitOption, value) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    raise InvalidPolicyError(f'{key}: expected a boolean, got "{value}"')


def _to_int(key: ProxyInitOption, value) -> int:
    if isinstance(value, bool):
        raise InvalidPolicyError(f'{key}: expected an integer, got "{value}"')
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidPolicyError(f'{key}: expected an integer, got "{value}"') from None


def coerce_options(data: dict) -> dict[ProxyInitOption, object]:
    """Convert a raw mapping into typed options; unknown keys are skipped."""
    options: dict[ProxyInitOption, object] = {}
    for raw_key, value in data.items():
        try:
            key = ProxyInitOption(str(raw_key).replace('_', '-'))
        except ValueError:
            logger.warning('Ignoring unknown option in policy file: %s', raw_key)
            continue

        if key in LIST_OPTIONS:
            options[key] = split_list(value)
        elif key in BOOL_OPTIONS:
            options[key] = _to_bool(key, value)
        elif key in INT_OPTIONS:
            options[key] = _to_int(key, value)
        else:
            options[key] = '' if value is None else str(value)
    return options


def load_policy_file(path) -> dict[ProxyInitOption, object]:
    """Read a YAML policy file and return its options.

    Raises:
        InvalidPolicyError: the file cannot be read, is not valid YAML,
            is not a mapping, or holds a value of the wrong type.
    """
    file_path = pathlib.Path(path)
    try:
        text = file_path.read_text(encoding='utf-8')
    except OSError as e:
        raise InvalidPolicyError(f'failed to read policy file {file_path}: {e}') from e

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise InvalidPolicyError(f'failed to parse policy file {file_path}: {e}') from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidPolicyError(
            f'policy file {file_path} must contain a mapping, not {type(data).__name__}'
        )
    logger.debug('Loaded %d option(s) from %s', len(data), file_path)
    return coerce_options(data)
