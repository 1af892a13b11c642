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

"""IPTables platform: backend selection and command execution."""

from proxyinit.platforms.iptables._backend import (
    MARKER_CHAINS,
    BackendSelection,
    count_rules_in_output,
    detect_backend,
    find_best_binary,
    has_kubernetes_chains,
    resolve_bin_fallback,
    select_backend,
)
from proxyinit.platforms.iptables._executor import CommandExecutor, ExecutionRecord

__all__ = [
    'MARKER_CHAINS',
    'BackendSelection',
    'CommandExecutor',
    'ExecutionRecord',
    'count_rules_in_output',
    'detect_backend',
    'find_best_binary',
    'has_kubernetes_chains',
    'resolve_bin_fallback',
    'select_backend',
]
