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

"""Policy model, port parsing, errors and policy file loading."""

from ._errors import (
    BackendResolutionError,
    ExecutionError,
    InvalidPolicyError,
    InvalidPortSpecError,
    ProxyInitError,
)
from ._policy import RedirectionPolicy, build_policy, default_binaries
from ._ports import (
    MAX_PORT,
    MIN_PORT,
    PortRange,
    is_valid_port,
    parse_port,
    parse_port_range,
)
from ._yaml_reader import coerce_options, load_policy_file, split_list

__all__ = [
    'MAX_PORT',
    'MIN_PORT',
    'BackendResolutionError',
    'ExecutionError',
    'InvalidPolicyError',
    'InvalidPortSpecError',
    'PortRange',
    'ProxyInitError',
    'RedirectionPolicy',
    'build_policy',
    'coerce_options',
    'default_binaries',
    'is_valid_port',
    'load_policy_file',
    'parse_port',
    'parse_port_range',
    'split_list',
]
