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

"""Typed option keys and schemas for proxy-init configuration.

This module provides:

- **StrEnum keys**: option names shared by the CLI, the YAML policy file
  and the policy builder
- **Dataclass schemas**: typed defaults for every option

Usage::

    from proxyinit.core.options import PROXY_INIT_DEFAULTS, ProxyInitOption

    options = PROXY_INIT_DEFAULTS.as_options()
    options[ProxyInitOption.INCOMING_PROXY_PORT] = 4143
"""

from proxyinit.core.options._keys import (
    BackendMode,
    LogFormat,
    ProxyInitOption,
    RedirectMode,
)
from proxyinit.core.options._schemas import (
    BOOL_OPTIONS,
    INT_OPTIONS,
    LIST_OPTIONS,
    PROXY_INIT_DEFAULTS,
    ProxyInitDefaults,
)

__all__ = [
    'BOOL_OPTIONS',
    'INT_OPTIONS',
    'LIST_OPTIONS',
    'PROXY_INIT_DEFAULTS',
    'BackendMode',
    'LogFormat',
    'ProxyInitDefaults',
    'ProxyInitOption',
    'RedirectMode',
]
